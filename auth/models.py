"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Hashing and token
minting live in auth/passwords.py and auth/tokens.py and take these records as
parameters; the store and the session manager do the work.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered identity as persisted by UserStore.

    username and email are stored lower-cased; the store normalizes them on
    every write.

    refresh_token holds the single refresh token currently honoured for this
    user. None means no live session (never logged in, or logged out). Only
    SessionManager writes it.
    """

    username: str
    email: str
    fullname: str
    avatar: str  # asset URL
    hashed_password: str
    cover_image: str = ""  # asset URL, "" when not set
    id: str | None = None
    refresh_token: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class PublicUser:
    """The subset of a User that is safe to hand to clients.

    There is no hashed_password or refresh_token field, so a PublicUser can
    never leak them.
    """

    id: str
    username: str
    email: str
    fullname: str
    avatar: str
    cover_image: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class LoginResult:
    user: PublicUser
    access_token: str
    refresh_token: str
