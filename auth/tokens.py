"""
auth/tokens.py -- JWT issue/verify and session cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Two token classes, each with its own secret and
       lifetime from core.config.get_settings():
         access  -- {id, username, email, fullname, jti, iat, exp}, minutes
         refresh -- {id, jti, iat, exp}, days
       Separate secrets mean a refresh token can never pass as an access token
       and vice versa [S2].

  jti: a random id in every token. Two tokens minted for the same user in the
       same second would otherwise be byte-identical, and rotation relies on
       each refresh producing a new value.

  Verification raises TokenExpired or TokenInvalid. The split exists only so
       callers can log the reason; both become the same 401 for the client.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User

logger = logging.getLogger("vidtube.tokens")

_settings = get_settings()

_ALGORITHM = "HS256"

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    """Bad signature, malformed token, or missing required claims."""


# ---------------------------------------------------------------------------
# Issue
# ---------------------------------------------------------------------------


def _encode(claims: dict, secret: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def create_access_token(user: User, expire_minutes: int = 0) -> str:
    """Encode a signed access token asserting the user's identity claims.

    Args:
        user:           The identity to assert. Only public fields are embedded.
        expire_minutes: Lifetime override. 0 (default) uses
                        Settings.access_token_expire_minutes.
    """
    minutes = expire_minutes if expire_minutes > 0 else _settings.access_token_expire_minutes
    claims = {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "fullname": user.fullname,
    }
    return _encode(claims, _settings.access_token_secret, timedelta(minutes=minutes))


def create_refresh_token(user_id: str, expire_days: int = 0) -> str:
    """Encode a signed refresh token carrying only the user id."""
    days = expire_days if expire_days > 0 else _settings.refresh_token_expire_days
    return _encode({"id": user_id}, _settings.refresh_token_secret, timedelta(days=days))


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------


def _decode(token: str, secret: str) -> dict:
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpired("token has expired") from exc
    except JWTError as exc:
        raise TokenInvalid(str(exc)) from exc
    if not payload.get("id"):
        raise TokenInvalid("token has no id claim")
    return payload


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry of an access token and return its claims.

    Raises TokenExpired or TokenInvalid.
    """
    return _decode(token, _settings.access_token_secret)


def decode_refresh_token(token: str) -> dict:
    """Verify signature and expiry of a refresh token and return its claims.

    Raises TokenExpired or TokenInvalid.
    """
    return _decode(token, _settings.refresh_token_secret)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookies(response, access_token: str, refresh_token: str) -> None:
    """Write both session tokens as httpOnly cookies on the response.

    httponly=True: JS cannot read the cookies (XSS mitigation).
    samesite="strict": never sent on cross-site requests (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true (the default).
    max_age: matches each token's own lifetime so cookie and JWT expire together.
    """
    response.set_cookie(
        ACCESS_COOKIE,
        value=access_token,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
        max_age=_settings.access_token_expire_seconds,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        value=refresh_token,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
        max_age=_settings.refresh_token_expire_seconds,
    )


def clear_session_cookies(response) -> None:
    response.delete_cookie(ACCESS_COOKIE, httponly=True, samesite="strict", secure=_settings.secure_cookies)
    response.delete_cookie(REFRESH_COOKIE, httponly=True, samesite="strict", secure=_settings.secure_cookies)
