"""Indexing control: start, stop and single-page re-indexing."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request
from fastapi.responses import ORJSONResponse

from models import OperationResponse

router = APIRouter(prefix="/api", tags=["indexing"])


@router.get("/startIndexing", response_model=OperationResponse, response_model_exclude_none=True)
async def start_indexing(request: Request) -> OperationResponse:
    await request.app.state.orchestrator.start_full_indexing()
    return OperationResponse(result=True)


@router.get("/stopIndexing", response_model=OperationResponse, response_model_exclude_none=True)
async def stop_indexing(request: Request) -> OperationResponse:
    await request.app.state.orchestrator.stop_indexing()
    return OperationResponse(result=True)


@router.post("/indexPage", response_model=OperationResponse, response_model_exclude_none=True)
async def index_page(request: Request, url: str = Query(..., min_length=1)):
    """Re-index the site that owns ``url`` starting from that page only."""

    indexed = await request.app.state.orchestrator.index_single_page(url.strip())
    if not indexed:
        return ORJSONResponse(
            {"result": False, "error": "Page could not be indexed, see the site error in statistics"},
            status_code=500,
        )
    return OperationResponse(result=True)
