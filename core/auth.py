from fastapi import Request
from typing import Optional
import logging

from config.settings import settings
from utilities.jwt import user_id_from_token

logger = logging.getLogger(__name__)

def _extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    return None

async def get_optional_user_id(request: Request) -> Optional[int]:
    """Dependency: id of the signed-in user, or None for anonymous visitors.

    Viewing is public, so a missing or bad token never fails the request.
    """
    token = _extract_token(request)
    user_id = user_id_from_token(token)
    if token and user_id is None:
        logger.debug("Ignoring invalid session token on public route")
    return user_id
