"""Health check API endpoint."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from api.deps import get_ingester
from pipeline.ingester import Ingester

router = APIRouter(tags=["health"])

# Track API start time
_api_start_time = time.time()


@router.get("/health")
async def health(ingester: Ingester = Depends(get_ingester)) -> dict[str, Any]:
    """Get pipeline health.

    Returns readiness, loop state, configured sources and archive size. Store
    errors are reported in the body instead of failing the check.
    """
    result: dict[str, Any] = {
        "status": "ok",
        "uptime_seconds": int(time.time() - _api_start_time),
        "ready": ingester.ready,
        "running": ingester.running,
        "sources": ingester.registry.sources,
    }

    try:
        # Run blocking DB checks in thread pool to avoid blocking event loop
        result["archive_rows"] = await asyncio.to_thread(ingester.store.count_archive)
    except SQLAlchemyError as exc:
        result["status"] = "degraded"
        result["archive_rows"] = None
        result["error"] = type(exc).__name__

    if not ingester.ready and result["status"] == "ok":
        result["status"] = "starting"

    return result
