"""Recommendations router – content picked from matched clusters."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..errors import DiscoveryError, InternalError
from ..models import ErrorResponse, RecommendationRequest, RecommendationResponse
from ..security import verify_api_key

router = APIRouter(tags=["recommendations"], dependencies=[Depends(verify_api_key)])

logger = logging.getLogger(__name__)


@router.post(
    "/recommendations",
    response_model=RecommendationResponse,
    responses={503: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def recommend(request: Request, payload: RecommendationRequest):
    engine = request.app.state.recommendations
    try:
        return await engine.recommend(
            payload.user_id,
            limit=payload.limit,
            exclude_ids=payload.exclude_ids,
            context=payload.context,
        )
    except DiscoveryError as exc:
        logger.warning("Recommendations for %s failed: %s", payload.user_id, exc.message)
        err = exc
    except Exception as exc:
        logger.exception("Recommendations for %s failed", payload.user_id)
        err = InternalError.wrap(exc, "Recommendation failed")

    request.app.state.metrics.record_error(f"{err.kind}: {err.message}")
    return JSONResponse(status_code=err.status_code, content=err.to_payload())
