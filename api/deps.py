"""Request dependencies shared by the API routes."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request, Response

from api.ratelimit import RateLimiter
from pipeline.distiller import Distiller
from pipeline.ingester import Ingester
from pipeline.types import NotReadyError

logger = logging.getLogger(__name__)


def token_digest(token: Optional[str]) -> Optional[bytes]:
    """SHA-256 of an opaque bearer token (None when auth is disabled)."""
    if not token:
        return None
    return hashlib.sha256(token.strip().encode()).digest()


def require_auth(request: Request) -> None:
    """Bearer auth, enabled when the app was created with an AUTH_TOKEN."""
    expected: Optional[bytes] = getattr(request.app.state, "auth_digest", None)
    if expected is None:
        return

    scheme, _, token = (request.headers.get("authorization") or "").partition(" ")
    presented = token_digest(token) if scheme.lower() == "bearer" else None
    if presented is None or not hmac.compare_digest(expected, presented):
        logger.warning(f"Invalid auth for {request.url.path}")
        raise HTTPException(
            status_code=401,
            detail={"status": "unauthorized"},
            headers={"WWW-Authenticate": 'Bearer realm="snapshot-pipeline"'},
        )


def get_ingester(request: Request) -> Ingester:
    ingester: Optional[Ingester] = getattr(request.app.state, "ingester", None)
    if ingester is None:
        raise HTTPException(status_code=503, detail={"status": "error", "message": "Ingester not configured"})
    return ingester


def get_ready_ingester(request: Request) -> Ingester:
    ingester = get_ingester(request)
    try:
        ingester.require_ready()
    except NotReadyError as exc:
        raise HTTPException(status_code=503, detail={"status": "error", "message": str(exc)}) from exc
    return ingester


def get_distiller(request: Request) -> Distiller:
    ingester = get_ingester(request)
    return Distiller(config=ingester.config, registry=ingester.registry)


def rate_limit(request: Request, response: Response) -> None:
    """Per-client request limit, enabled when the app holds a RateLimiter."""
    limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return

    client = request.client.host if request.client else "unknown"
    info = limiter.hit(client)
    now = limiter.clock()
    headers = info.headers(now)
    if not info.allowed:
        logger.warning(f"Rate limit exceeded for {client} on {request.url.path}")
        raise HTTPException(
            status_code=429,
            detail={"status": "error", "message": "Too many requests, please try again later."},
            headers={**headers, "Retry-After": str(info.reset_in_seconds(now))},
        )
    response.headers.update(headers)
