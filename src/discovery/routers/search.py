"""Search router – people search and suggestions.

POST /search/users
    Ranked, paginated people search.

GET /search/suggestions
    Completions for a partially typed term.

GET /search/cache/stats
    Counters of the composed-result cache.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ..errors import status_for
from ..lib.cache import CacheStats
from ..models import ErrorResponse, SearchRequest, SearchResponse, SuggestionResponse
from ..security import verify_api_key

router = APIRouter(tags=["search"], dependencies=[Depends(verify_api_key)])

logger = logging.getLogger(__name__)


def _error(resp: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_for(resp.error.type), content=resp.model_dump(mode="json"))


@router.post(
    "/search/users",
    response_model=SearchResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
)
async def search_users(request: Request, payload: SearchRequest):
    """Search people visible to ``searcher_user_id``.

    Failures come back as ``{"success": false, "error": {...}}`` with the
    status code of the error kind.
    """
    result = await request.app.state.orchestrator.search(payload)
    if isinstance(result, ErrorResponse):
        return _error(result)
    return result


@router.get("/search/suggestions", response_model=SuggestionResponse)
async def search_suggestions(
    request: Request,
    q: str = Query(..., description="Partially typed term"),
    user_id: str = Query(..., description="Identifier of the requesting user"),
    limit: int = Query(10, ge=1, le=50),
):
    result = await request.app.state.orchestrator.suggest(q, user_id, limit)
    if isinstance(result, ErrorResponse):
        return _error(result)
    return result


@router.get("/search/cache/stats", response_model=CacheStats)
async def search_cache_stats(request: Request):
    stats = request.app.state.orchestrator.cache_stats()
    if stats is None:
        return CacheStats(size=0, hits=0, misses=0, hit_rate=0.0, evictions=0, memory_bytes=0)
    return stats
