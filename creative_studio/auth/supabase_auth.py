"""Supabase JWT validation dependencies for FastAPI."""

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Query, WebSocketException, status

from creative_studio.config import settings
from creative_studio.db.supabase_client import get_anon_supabase

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid token")
    return authorization[len("Bearer "):]


def resolve_user_id(token: str) -> str:
    """Look up the user behind a Supabase access token. Raises HTTPException(401)."""
    try:
        user_response = get_anon_supabase().auth.get_user(token)
    except Exception as exc:
        logger.info("Token lookup failed: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid token")
    user = getattr(user_response, "user", None)
    if user is None or not getattr(user, "id", None):
        raise HTTPException(status_code=401, detail="Invalid token")
    return str(user.id)


def current_user_id(authorization: str = Header(None)) -> str:
    """Validate the Supabase JWT from the Authorization header.

    Returns the authenticated user's id, which becomes the job owner. Plain def, so the
    blocking auth lookup runs in the threadpool.
    """
    return resolve_user_id(_bearer_token(authorization))


async def require_service_role(authorization: str = Header(None)) -> None:
    """Only the service-role key may trigger backend workers."""
    token = _bearer_token(authorization)
    expected = settings.supabase_service_role_key
    if not expected or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Service role required")


def websocket_user_id(token: str = Query(None)) -> str:
    """Browsers cannot set headers on WebSocket requests, so the JWT comes in ?token=."""
    if not token:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
    try:
        return resolve_user_id(token)
    except HTTPException:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
