"""Search API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from voice_search.api.dependencies import get_app_settings, get_query_engine
from voice_search.core.config import Settings
from voice_search.core.errors import SearchUnavailableError
from voice_search.models.dto import SearchHit, SearchRequest, SearchResponse
from voice_search.retrieval.search import HybridQueryEngine

router = APIRouter()


@router.post("/search", response_model=SearchResponse, summary="Hybrid vector and keyword search")
async def run_search(
    request: SearchRequest,
    engine: HybridQueryEngine = Depends(get_query_engine),
    settings: Settings = Depends(get_app_settings),
) -> SearchResponse:
    limit = request.limit or settings.default_limit
    try:
        results = await engine.search(request.query, limit=limit)
    except SearchUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return SearchResponse(query=request.query, results=[SearchHit.from_result(result) for result in results])


__all__ = ["router"]
