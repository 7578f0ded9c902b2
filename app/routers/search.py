"""Search endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request

from models import SearchResponse

router = APIRouter(prefix="/api", tags=["search"])


@router.get(
    "/search",
    response_model=SearchResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def search(
    request: Request,
    query: str = "",
    site: str | None = None,
    offset: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=0),
) -> SearchResponse:
    """Ranked pages for ``query``, optionally restricted to one ``site``."""

    return await request.app.state.search.search(query, site=site, offset=offset, limit=limit)
