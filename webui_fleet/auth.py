"""X-API-Key guard for the fleet routes."""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from webui_fleet.config import settings
from webui_fleet.utils.logging import get_logger

log = get_logger(__name__)

_key_header = APIKeyHeader(
    name="X-API-Key",
    auto_error=False,
    description="Value of WEBUI_API_KEY",
)


async def require_api_key(presented: str | None = Security(_key_header)) -> None:
    """Reject the request unless it carries the configured key.

    An empty WEBUI_API_KEY leaves the routes open for local use.
    """
    expected = settings.api_key
    if not expected:
        return
    if presented is None or not secrets.compare_digest(
        presented.encode("utf-8"), expected.encode("utf-8"),
    ):
        log.warning("auth.rejected", key_present=presented is not None)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "APIKey"},
        )
