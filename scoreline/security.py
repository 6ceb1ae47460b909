"""Security middleware: rate limiting and API key authentication."""

import logging
import os
from typing import Optional

from fastapi import Header, HTTPException, Security
from fastapi.security import APIKeyHeader
from slowapi import Limiter
from slowapi.util import get_remote_address

from scoreline.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

IS_PRODUCTION = os.getenv("ENVIRONMENT") == "production"

# Rate limiter using client IP
limiter = Limiter(key_func=get_remote_address)

# API Key header for admin endpoints
api_key_header = APIKeyHeader(name=settings.API_KEY_HEADER, auto_error=False)


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> bool:
    """
    Verify API key for protected endpoints.

    SECURITY: In production, API_KEY must be configured. Empty API_KEY
    blocks all admin requests (fail-closed). In development, empty API_KEY
    allows all requests for convenience.
    """
    if not settings.API_KEY:
        if IS_PRODUCTION:
            logger.error("API_KEY not configured in production - blocking admin access")
            raise HTTPException(
                status_code=503,
                detail="Service misconfigured. Admin access disabled.",
            )
        return True

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail=f"Missing API key. Provide it via {settings.API_KEY_HEADER} header.",
        )

    if api_key != settings.API_KEY:
        logger.warning("Invalid API key attempt")
        raise HTTPException(status_code=403, detail="Invalid API key")

    return True


async def optional_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> Optional[str]:
    """API key if present and valid, else None. Never fails the request."""
    if api_key and settings.API_KEY and api_key == settings.API_KEY:
        return api_key
    return None


async def current_viewer(
    api_key: Optional[str] = Security(optional_api_key),
    x_user_id: Optional[int] = Header(default=None),
) -> Optional[dict]:
    """
    Who is asking: an admin (valid API key), a user identified upstream by
    the X-User-Id header, or None for anonymous viewers.
    """
    if api_key:
        return {"id": None, "role": "admin"}
    if x_user_id is not None:
        return {"id": x_user_id, "role": "user"}
    return None
