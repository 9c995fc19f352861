"""
auth/store.py -- SQLAlchemy Core persistence layer for user identities.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Session and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  username and email are trimmed and lower-cased here, on every write, and
  UNIQUE constraints on both columns make the database the final arbiter of
  uniqueness. A racing duplicate insert surfaces as IntegrityError.

Refresh-token rotation:
  update_refresh_token(..., expected=...) is a single conditional UPDATE
  (WHERE id = :id AND refresh_token = :expected). The row count tells the
  caller whether it won, so two concurrent refreshes presenting the same token
  cannot both persist a successor. No application locks are needed.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text, case, create_engine, event, or_, text
from sqlalchemy.engine import Engine

from auth.models import User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("username", String(255), nullable=False, unique=True, index=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("fullname", String(255), nullable=False),
    Column("avatar", Text, nullable=False),
    Column("cover_image", Text, nullable=False, server_default=""),
    Column("hashed_password", Text, nullable=False),
    Column("refresh_token", Text),  # NULL = no live session
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns update_profile() may touch. Everything else has a dedicated method.
_PROFILE_FIELDS = frozenset({"fullname", "email", "avatar", "cover_image"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalize(value: str) -> str:
    return value.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore()
        user_id = store.create_user(User(username="alice", email="alice@x.com", ...))
        user = store.find_by_identity(username="alice")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_identity(self, username: str | None = None, email: str | None = None) -> User | None:
        """Return the user whose username OR email matches (case-insensitive).

        Blank identifiers are ignored. Returns None when neither is supplied
        or nothing matches. When the two identifiers match different users,
        the username match wins.
        """
        clauses = []
        if username and username.strip():
            clauses.append(_users.c.username == _normalize(username))
        if email and email.strip():
            clauses.append(_users.c.email == _normalize(email))
        if not clauses:
            return None
        stmt = _users.select().where(or_(*clauses))
        if len(clauses) == 2:
            stmt = stmt.order_by(case((clauses[0], 0), else_=1))
        with self.engine.connect() as conn:
            row = conn.execute(stmt.limit(1)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the username or email is
        already taken. SessionManager turns that into ConflictError.
        """
        user_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    username=_normalize(user.username),
                    email=_normalize(user.email),
                    fullname=user.fullname.strip(),
                    avatar=user.avatar,
                    cover_image=user.cover_image or "",
                    hashed_password=user.hashed_password,
                    refresh_token=None,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return user_id

    def update_refresh_token(self, user_id: str, new_token: str, expected: str | None = None) -> bool:
        """Store new_token as the user's current refresh token.

        With expected=None the write is unconditional (login). Otherwise the
        row is only updated while its refresh_token still equals expected
        (rotation). Returns True if a row was updated.
        """
        condition = _users.c.id == user_id
        if expected is not None:
            condition = condition & (_users.c.refresh_token == expected)
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(condition).values(refresh_token=new_token, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def clear_refresh_token(self, user_id: str) -> bool:
        """Remove the stored refresh token. Returns True if the user exists."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(refresh_token=None, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def update_password_hash(self, user_id: str, hashed_password: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(hashed_password=hashed_password, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def update_profile(self, user_id: str, **fields) -> User | None:
        """Patch public profile fields and return the updated user.

        Accepted fields: fullname, email, avatar, cover_image. Unknown keys
        raise ValueError rather than being silently ignored. email is
        normalized like at creation; a duplicate raises IntegrityError.

        Returns None if user_id was not found.
        """
        unknown = set(fields) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = _normalize(fields["email"])
        if "fullname" in fields:
            fields["fullname"] = fields["fullname"].strip()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        fullname=row.fullname,
        avatar=row.avatar,
        cover_image=row.cover_image or "",
        hashed_password=row.hashed_password,
        refresh_token=row.refresh_token,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
