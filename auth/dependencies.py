"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens are accepted from two places, checked in priority order:
  1. "access_token" cookie -- set by POST /users/login and /users/refresh-token.
  2. Authorization: Bearer <token> header -- API clients.

Both converge on SessionManager.authenticate(), which raises
UnauthorizedError on any failure. The exception handler in api/main.py turns
that into a 401 with the shared error envelope.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import User
from auth.sessions import SessionManager
from auth.tokens import ACCESS_COOKIE


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.sessions


def get_current_user(request: Request) -> User:
    """Require a valid access token. Raises UnauthorizedError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    token: str | None = request.cookies.get(ACCESS_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return get_session_manager(request).authenticate(token)
