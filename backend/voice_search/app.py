"""FastAPI application setup for Voice Search."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from voice_search.api.dependencies import (
    get_app_settings,
    get_orchestrator,
    get_query_engine,
    get_vector_store,
)
from voice_search.api.routes_admin import router as admin_router
from voice_search.api.routes_query import router as query_router
from voice_search.core.logging import configure_logging
from voice_search.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from voice_search.ingest.watcher import RecordWatcher

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the vector store, start the optional watcher and the startup sync."""
    settings = get_app_settings()
    await get_vector_store().init()
    orchestrator = get_orchestrator()
    get_query_engine()

    watcher: RecordWatcher | None = None
    if settings.watch_records:
        watcher = RecordWatcher(settings.records_dir, orchestrator.sync_indexes, asyncio.get_running_loop())
        watcher.start()

    startup_sync: asyncio.Task | None = None
    if settings.sync_on_startup:
        startup_sync = asyncio.create_task(orchestrator.sync_indexes())
    try:
        yield
    finally:
        if watcher is not None:
            watcher.stop()
        if startup_sync is not None:
            outcome = (await asyncio.gather(startup_sync, return_exceptions=True))[0]
            if isinstance(outcome, Exception):
                logger.warning("Startup sync failed: %s", outcome)
        await orchestrator.close()


app = FastAPI(
    title="Voice Search",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5174",
        "http://localhost:5174",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(query_router, prefix="", tags=["search"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", "unmatched")
    REQUEST_LATENCY.labels(endpoint=endpoint, method=request.method).observe(time.perf_counter() - started)
    REQUEST_COUNT.labels(endpoint=endpoint, method=request.method, status=str(response.status_code)).inc()
    return response


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
