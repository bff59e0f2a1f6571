"""FastAPI application exposing the pipeline read surface.

Endpoints:
- GET /health - Readiness, loop state and archive size
- GET /data/raw - Normalized entries per lookback period
- GET /data/transformed - Distilled observable rows

The ingester loop runs as a background task for the lifetime of the app.
Data endpoints answer 503 until the first tick has been written.

Environment:
- DATABASE_URL - Snapshot store (default: sqlite:///data/pipeline.db)
- AUTH_TOKEN - Optional opaque bearer token required by /data endpoints
- RATE_LIMIT_PER_MINUTE - Per-client request limit on /data endpoints (default: 60, 0 disables)
- PIPELINE_* / COINGECKO_* - See pipeline.config
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from api.deps import token_digest
from api.ratelimit import RateLimiter
from api.routes import data, health
from pipeline.adapters import create_registry
from pipeline.config import PipelineConfig
from pipeline.ingester import Ingester
from pipeline.storage import SqlSnapshotStore, StoreConfig

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 60


def build_ingester() -> Ingester:
    """Ingester wired from environment configuration."""
    config = PipelineConfig.from_env()
    store = SqlSnapshotStore(config=StoreConfig.from_env())
    return Ingester(config=config, registry=create_registry(config), store=store)


def _on_ingester_done(task: asyncio.Task) -> None:
    """An ingester loop that dies outside its guarded boundaries takes the process down."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.critical(f"Ingester loop crashed: {exc.__class__.__name__}: {exc}")
        os.kill(os.getpid(), signal.SIGTERM)


def create_app(
    ingester: Optional[Ingester] = None,
    *,
    run_ingester: bool = True,
    auth_token: Optional[str] = None,
    rate_limit: Optional[int] = None,
) -> FastAPI:
    """Build the API app.

    Args:
        ingester: Pre-built ingester (default: built from environment at startup)
        run_ingester: Start the polling loop in the background on startup
        auth_token: Bearer token for /data routes (default: AUTH_TOKEN env var)
        rate_limit: Requests per minute per client on /data routes, 0 disables
            (default: RATE_LIMIT_PER_MINUTE env var, else 60)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.ingester is None:
            app.state.ingester = build_ingester()
        await asyncio.to_thread(app.state.ingester.initialize)

        task: Optional[asyncio.Task] = None
        if run_ingester:
            task = asyncio.create_task(app.state.ingester.run(), name="ingester")
            task.add_done_callback(_on_ingester_done)
        try:
            yield
        finally:
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            await asyncio.to_thread(app.state.ingester.close)

    app = FastAPI(
        title="Snapshot Pipeline API",
        description="Raw snapshot windows and distilled observables",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.ingester = ingester
    app.state.auth_digest = token_digest(auth_token if auth_token is not None else os.environ.get("AUTH_TOKEN"))
    if rate_limit is None:
        rate_limit = int(os.environ.get("RATE_LIMIT_PER_MINUTE") or DEFAULT_RATE_LIMIT)
    app.state.rate_limiter = RateLimiter(limit=rate_limit) if rate_limit > 0 else None

    app.include_router(health.router)
    app.include_router(data.router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler to ensure consistent error responses."""
        logger.error(f"{request.url.path}: {exc.__class__.__name__}: {exc}")
        return JSONResponse(status_code=500, content={"status": "error"})

    return app


app = create_app()
