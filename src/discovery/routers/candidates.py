"""Candidates router – lists the candidate sources behind people search.

GET /candidates/sources
    Names of the configured candidate sources.
"""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ..security import verify_api_key

router = APIRouter(tags=["candidates"], dependencies=[Depends(verify_api_key)])


class SourceListResponse(BaseModel):
    """Lists available candidate source names."""

    sources: list[str]


@router.get("/candidates/sources", response_model=SourceListResponse)
async def candidates_list_sources(request: Request) -> SourceListResponse:
    return SourceListResponse(sources=request.app.state.orchestrator.source_names())
