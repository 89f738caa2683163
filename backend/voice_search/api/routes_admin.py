"""Index maintenance and status routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from voice_search.api.dependencies import get_orchestrator
from voice_search.core.errors import RecordNotFoundError
from voice_search.core.metrics import metrics_response
from voice_search.ingest.orchestrator import IndexOrchestrator
from voice_search.models.dto import (
    DeleteResponse,
    IndexRecordResponse,
    StatsResponse,
    StatusResponse,
    SyncResponse,
)

router = APIRouter()


@router.get("/stats", response_model=StatsResponse, summary="Vector store, keyword index and sync status")
async def get_stats(orchestrator: IndexOrchestrator = Depends(get_orchestrator)) -> StatsResponse:
    return StatsResponse.from_stats(await orchestrator.stats())


@router.get("/status", response_model=StatusResponse, summary="Current indexing status")
async def get_status(orchestrator: IndexOrchestrator = Depends(get_orchestrator)) -> StatusResponse:
    return StatusResponse.from_snapshot(orchestrator.snapshot())


@router.post("/index/sync", response_model=SyncResponse, summary="Reconcile indexes with the record store")
async def sync_indexes(orchestrator: IndexOrchestrator = Depends(get_orchestrator)) -> SyncResponse:
    return SyncResponse.from_report(await orchestrator.sync_indexes())


@router.post("/index/reindex", response_model=SyncResponse, summary="Clear and rebuild every index")
async def reindex(orchestrator: IndexOrchestrator = Depends(get_orchestrator)) -> SyncResponse:
    return SyncResponse.from_report(await orchestrator.force_full_reindex())


@router.post("/records/{record_id}/index", response_model=IndexRecordResponse, summary="Index one record now")
async def index_record(
    record_id: str,
    orchestrator: IndexOrchestrator = Depends(get_orchestrator),
) -> IndexRecordResponse:
    try:
        chunks = await orchestrator.index_record_by_id(record_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return IndexRecordResponse(record_id=record_id, chunks=chunks)


@router.delete("/records/{record_id}", response_model=DeleteResponse, summary="Remove a record from the indexes")
async def remove_record(
    record_id: str,
    orchestrator: IndexOrchestrator = Depends(get_orchestrator),
) -> DeleteResponse:
    removed = await orchestrator.remove_record(record_id)
    return DeleteResponse(status="ok" if removed else "noop", record_id=record_id)


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
