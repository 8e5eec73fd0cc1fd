"""Bearer API-key authentication for the HTTP surface."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException

from analysis_worker.config import settings


async def require_api_key(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> None:
    """Validate ``Authorization: Bearer <API_KEY>``.

    When API_KEY is empty the API is open.
    """
    expected = settings.api_key.strip()
    if not expected:
        return
    value = (authorization or "").strip()
    if not value.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing API key")
    if value[7:] != expected:
        raise HTTPException(status_code=403, detail="Invalid API key")


# Usable as ``dependencies=[ApiKeyAuth]`` on routers.
ApiKeyAuth = Depends(require_api_key)
