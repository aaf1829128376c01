"""Bearer-token guard for the operator endpoints.

The manual send and debug endpoints trigger real pushes or expose
subscriber endpoints, so they require ``Authorization: Bearer <token>``
matching ``SERVICE_AUTH_TOKEN``.

Usage::

    from shared.auth import require_service_auth

    @app.post("/sendNow")
    async def send_now(_=Depends(require_service_auth)):
        ...
"""

from __future__ import annotations

import hmac

import structlog
from fastapi import HTTPException, Request

from shared.config import get_settings

logger = structlog.get_logger()


def _bearer_token(request: Request) -> str | None:
    """Token from ``Authorization: Bearer <token>``; the scheme is case-insensitive."""
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_service_auth(request: Request) -> None:
    """FastAPI dependency guarding operator endpoints.

    Raises 401 if the token is missing or incorrect. Skips validation when
    ``service_auth_token`` is empty (dev mode).
    """
    expected = get_settings().service_auth_token
    if not expected:
        logger.warning(
            "service_auth_disabled",
            path=request.url.path,
            hint="Set SERVICE_AUTH_TOKEN in .env for production",
        )
        return

    token = _bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing service auth token")

    if not hmac.compare_digest(token.encode(), expected.encode()):
        logger.warning(
            "service_auth_failed",
            path=request.url.path,
            remote=request.client.host if request.client else "unknown",
        )
        raise HTTPException(status_code=401, detail="Invalid service auth token")
