"""
deckguard/core/auth.py — Admin authentication for moderation endpoints
Accepts X-API-Key header OR HTTP Basic Auth. With no credentials configured,
every admin request is refused.
"""
from __future__ import annotations

import base64
import secrets
from typing import Optional

from fastapi import HTTPException, Request, status

from deckguard.config import get_settings


def _matches(candidate: Optional[str], expected: Optional[str]) -> bool:
    if not candidate or not expected:
        return False
    return secrets.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def _check_basic_auth_from_header(authorization: Optional[str]) -> bool:
    """Parse and validate Basic Auth from Authorization header string."""
    if not authorization or not authorization.startswith("Basic "):
        return False
    settings = get_settings()
    try:
        decoded = base64.b64decode(authorization[6:]).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return False
    username, _, password = decoded.partition(":")
    correct_username = _matches(username, settings.admin_user)
    correct_password = _matches(password, settings.admin_pass)
    return correct_username and correct_password


def is_api_key_request(request: Request) -> bool:
    return _matches(request.headers.get("X-API-Key"), get_settings().admin_api_key)


async def admin_auth(request: Request) -> bool:
    """Dependency for /admin routes: API key OR Basic Auth."""
    if is_api_key_request(request):
        return True
    if _check_basic_auth_from_header(request.headers.get("Authorization")):
        return True

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required. Provide X-API-Key header or HTTP Basic Auth.",
        headers={"WWW-Authenticate": "Basic"},
    )
