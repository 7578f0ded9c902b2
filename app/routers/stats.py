"""Statistics and logging router."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import ORJSONResponse

from core.statistics import get_statistics
from models import StatisticsResponse
from observability.logging import get_recent_logs

router = APIRouter(prefix="/api", tags=["stats"])


@router.get("/statistics", response_model=StatisticsResponse, response_model_by_alias=True)
async def statistics(request: Request) -> StatisticsResponse:
    """Totals and per-site status of the index."""

    state = request.app.state
    return await get_statistics(state.settings, state.store, state.orchestrator)


@router.get("/logs", response_class=ORJSONResponse)
def logs(request: Request, limit: int = 200) -> ORJSONResponse:
    """Return recent application logs.

    Parameters
    ----------
    limit:
        Maximum number of lines to return (default 200, at most 1000).
    """
    limit = max(1, min(limit, 1000))
    return ORJSONResponse({"lines": get_recent_logs(limit)})
