"""Firebase authentication utilities."""

import asyncio
import json
import os
from typing import Any, Optional

import firebase_admin
from fastapi import Header
from firebase_admin import auth, credentials

from .errors import AuthError

_firebase_app: Optional[firebase_admin.App] = None


def _load_firebase_credentials() -> Optional[credentials.Base]:
    """Load Firebase credentials from env, supporting JSON content or a file path."""
    raw_value = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON", "").strip()
    if not raw_value:
        return None
    if raw_value.startswith("{"):
        return credentials.Certificate(json.loads(raw_value))
    return credentials.Certificate(raw_value)


def init_firebase() -> None:
    """Initialise Firebase Admin SDK once per process."""
    global _firebase_app
    if _firebase_app:
        return
    cred = _load_firebase_credentials()
    if cred is None:
        _firebase_app = firebase_admin.initialize_app()
        return
    _firebase_app = firebase_admin.initialize_app(cred)


def verify_firebase_token(token: str) -> dict[str, Any]:
    """Verify a Firebase ID token and return the decoded claims."""
    init_firebase()
    if not token:
        raise AuthError("Missing Firebase token")
    try:
        return auth.verify_id_token(token)
    except Exception as exc:
        raise AuthError("Invalid Firebase token") from exc


async def get_current_user(authorization: str = Header(default="")) -> Optional[dict[str, Any]]:
    """Resolve the signed-in user from a Bearer token.

    Returns None when no token was sent at all; the core services turn
    that into an AuthError for operations that need an identity.  A token
    that is present but invalid is rejected straight away.
    """
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise AuthError("Missing Bearer token")
    token = authorization.split(" ", 1)[1].strip()
    return await asyncio.to_thread(verify_firebase_token, token)


async def get_current_user_id(authorization: str = Header(default="")) -> Optional[str]:
    """FastAPI dependency yielding only the user id the core needs."""
    user = await get_current_user(authorization)
    if user is None:
        return None
    return user.get("uid")
