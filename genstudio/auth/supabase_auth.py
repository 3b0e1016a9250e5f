"""Supabase JWT validation dependency for FastAPI."""

import logging

from fastapi import Header, HTTPException
from supabase import create_client
from genstudio.config import settings

logger = logging.getLogger(__name__)


def verify_jwt(authorization: str = Header(None)) -> str:
    """Validate Supabase JWT from Authorization header.

    Returns the authenticated user's id. Declared sync so FastAPI runs the
    blocking Supabase call in its threadpool, off the event loop.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")

    token = authorization.replace("Bearer ", "", 1)
    try:
        client = create_client(settings.supabase_url, settings.supabase_anon_key)
        user_response = client.auth.get_user(token)
    except Exception as exc:
        logger.info("Token rejected: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = getattr(user_response, "user", None)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return user.id
