"""
Shared route dependencies.
"""
import hmac

from fastapi import Header, HTTPException, status

from app.core.config import settings


def require_admin_key(x_api_key: str | None = Header(default=None)) -> None:
    """Static admin key on write routes; open when admin_api_key is not configured."""
    if not settings.admin_api_key:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, settings.admin_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
