"""Read-only data endpoints: raw windows and distilled observables."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from api.deps import get_distiller, get_ready_ingester, rate_limit, require_auth
from pipeline.distiller import Distiller
from pipeline.ingester import Ingester

router = APIRouter(
    prefix="/data",
    tags=["data"],
    dependencies=[Depends(require_auth), Depends(rate_limit)],
)


@router.get("/raw")
def get_raw(ingester: Ingester = Depends(get_ready_ingester)) -> dict[str, Any]:
    """Normalized entries per lookback period (sparse: missing periods are absent)."""
    return {"status": "ok", "data": ingester.get().to_dict()}


@router.get("/transformed")
def get_transformed(
    ingester: Ingester = Depends(get_ready_ingester),
    distiller: Distiller = Depends(get_distiller),
) -> dict[str, Any]:
    """Distilled rows with their observables, one per adapter row/column."""
    return {"status": "ok", "data": distiller.transform(ingester.get())}
