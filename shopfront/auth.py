# auth.py
import logging
import secrets
from typing import Optional

from fastapi import Header, Request

from shopfront.errors import AppError, ErrorKind
from shopfront.settings import Settings

logger = logging.getLogger(__name__)


def _extract_key(x_api_key: Optional[str], authorization: Optional[str]) -> Optional[str]:
    if x_api_key:
        return x_api_key
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None


# ===================================================================
# Admin Dependency
# ===================================================================

async def require_admin(
    request: Request,
    x_api_key: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
) -> None:
    """
    Dependency guarding admin endpoints with the shared ADMIN_API_KEY.
    The key is accepted as `X-API-Key: <key>` or `Authorization: Bearer <key>`.
    """
    settings: Settings = request.app.state.settings
    if not settings.ADMIN_API_KEY:
        raise AppError("Admin authentication not configured", 500, kind=ErrorKind.INTERNAL)

    supplied = _extract_key(x_api_key, authorization)
    if not supplied:
        raise AppError("API key is required", kind=ErrorKind.UNAUTHORIZED)

    if not secrets.compare_digest(supplied.encode(), settings.ADMIN_API_KEY.encode()):
        logger.warning(f"Rejected admin request to {request.url.path}: invalid API key")
        raise AppError("Invalid API key", kind=ErrorKind.UNAUTHORIZED)
