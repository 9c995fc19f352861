"""
auth/sessions.py -- Registration, login, refresh rotation, logout, and profile
operations.

SessionManager is the only component that writes User.refresh_token:
  login    -- overwrite unconditionally (any session open elsewhere ends)
  refresh  -- compare-and-set against the presented token, then replace
  logout   -- clear

Replay protection [R1]:
  A refresh token is honoured only if it verifies (signature + expiry) AND is
  equal to the value currently stored for its user. Each successful refresh
  stores a new token, so the presented one can never be used again. Expiry
  alone is not enough -- an old but unexpired token would still verify.

Concurrency [R2]:
  The stored token is replaced with UserStore.update_refresh_token(...,
  expected=presented), a conditional UPDATE. If it reports no row updated,
  the token is re-read: a different stored value means another refresh won
  (401); the same value means the write did not land and is retried a bounded
  number of times before giving up with InternalError.

Password change [R3]:
  change_password() does not clear the refresh token. Sessions open at the
  time of the change stay valid until they expire, are rotated out, or the
  user logs out.

Every method raises a core.errors.ServiceError subclass on failure and never
reports partial success.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
import logging
from pathlib import Path

from sqlalchemy.exc import IntegrityError

from auth.models import LoginResult, PublicUser, TokenPair, User
from auth.passwords import hash_password, verify_password
from auth.store import UserStore
from auth.tokens import (
    TokenError,
    TokenExpired,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
)
from core.config import get_settings
from core.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
    UploadError,
    ValidationError,
)
from media.storage import AssetStore, UploadedAsset, discard_local_file

logger = logging.getLogger("vidtube.sessions")


def to_public(user: User) -> PublicUser:
    """Project a stored User onto the fields clients may see."""
    return PublicUser(
        id=user.id or "",
        username=user.username,
        email=user.email,
        fullname=user.fullname,
        avatar=user.avatar,
        cover_image=user.cover_image or "",
        created_at=user.created_at or "",
        updated_at=user.updated_at or "",
    )


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


class SessionManager:
    def __init__(self, store: UserStore, assets: AssetStore) -> None:
        self.store = store
        self.assets = assets
        self._rotation_retries = get_settings().refresh_rotation_retries

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        fullname: str | None,
        email: str | None,
        username: str | None,
        password: str | None,
        avatar_path: str | Path | None,
        cover_path: str | Path | None = None,
    ) -> PublicUser:
        """Create a new identity and return its public projection.

        Staged upload files are always discarded, including on early failure.
        """
        try:
            if any(_blank(v) for v in (fullname, email, username, password)):
                raise ValidationError("All fields are required.")

            if self.store.find_by_identity(username=username, email=email) is not None:
                raise ConflictError("User with this username or email already exists.")

            if not avatar_path:
                raise ValidationError("Avatar file is required.")

            avatar = self._upload(avatar_path)
            if avatar is None:
                raise UploadError("Avatar upload failed.")
            cover = self._upload(cover_path) if cover_path else None

            new_user = User(
                username=username,
                email=email,
                fullname=fullname,
                avatar=avatar.url,
                cover_image=cover.url if cover else "",
                hashed_password=hash_password(password),
            )
            try:
                user_id = self.store.create_user(new_user)
            except IntegrityError as exc:
                # Lost a race with a concurrent registration for the same name.
                raise ConflictError("User with this username or email already exists.") from exc
        finally:
            discard_local_file(avatar_path)
            discard_local_file(cover_path)

        created = self.store.get_by_id(user_id)
        if created is None:
            logger.error("User %s not found after insert", user_id)
            raise InternalError("Something went wrong while registering the user.")
        logger.info("Registered user %s (%s)", created.id, created.username)
        return to_public(created)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def login(self, password: str | None, username: str | None = None, email: str | None = None) -> LoginResult:
        """Verify credentials and open a new session.

        The new refresh token overwrites whatever was stored, so a session
        opened earlier on another client can no longer refresh.
        """
        if _blank(username) and _blank(email):
            raise ValidationError("Username or email is required.")

        user = self.store.find_by_identity(username=username, email=email)
        if user is None:
            raise NotFoundError("User does not exist.")

        if not verify_password(password or "", user.hashed_password):
            logger.info("Failed login for user %s", user.id)
            raise UnauthorizedError("Invalid user credentials.")

        access_token = create_access_token(user)
        refresh_token = create_refresh_token(user.id)
        if not self.store.update_refresh_token(user.id, refresh_token):
            raise InternalError("Could not persist the session.")

        logger.info("User %s logged in", user.id)
        return LoginResult(user=to_public(user), access_token=access_token, refresh_token=refresh_token)

    def refresh(self, presented: str | None) -> TokenPair:
        """Exchange a refresh token for a new token pair [R1][R2]."""
        if _blank(presented):
            raise UnauthorizedError("Unauthorized request.")

        try:
            claims = decode_refresh_token(presented)
        except TokenError as exc:
            reason = "expired" if isinstance(exc, TokenExpired) else "invalid"
            logger.info("Rejected refresh token (%s): %s", reason, exc)
            raise UnauthorizedError("Invalid refresh token.") from exc

        user_id = claims["id"]
        for attempt in range(1, self._rotation_retries + 1):
            user = self.store.get_by_id(user_id)
            if user is None:
                raise UnauthorizedError("Invalid refresh token.")

            if not user.refresh_token or not hmac.compare_digest(presented.encode(), user.refresh_token.encode()):
                logger.warning("Refresh token for user %s is not the current one (reuse or logout)", user_id)
                raise UnauthorizedError("Refresh token is expired or used.")

            new_refresh = create_refresh_token(user.id)
            if self.store.update_refresh_token(user.id, new_refresh, expected=presented):
                logger.info("Rotated refresh token for user %s", user_id)
                return TokenPair(access_token=create_access_token(user), refresh_token=new_refresh)

            logger.warning("Refresh token rotation conflict for user %s (attempt %d)", user_id, attempt)

        raise InternalError("Could not rotate the refresh token.")

    def logout(self, user_id: str) -> None:
        """End the user's session. Safe to call repeatedly."""
        self.store.clear_refresh_token(user_id)
        logger.info("User %s logged out", user_id)

    def authenticate(self, access_token: str | None) -> User:
        """Return the user an access token belongs to.

        Every failure (no token, bad signature, expired, unknown user) is the
        same UnauthorizedError.
        """
        if _blank(access_token):
            raise UnauthorizedError("Unauthorized request.")
        try:
            claims = decode_access_token(access_token)
        except TokenError as exc:
            reason = "expired" if isinstance(exc, TokenExpired) else "invalid"
            logger.debug("Rejected access token (%s): %s", reason, exc)
            raise UnauthorizedError("Invalid access token.") from exc
        user = self.store.get_by_id(claims["id"])
        if user is None:
            raise UnauthorizedError("Invalid access token.")
        return user

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------

    def change_password(self, user_id: str, old_password: str | None, new_password: str | None) -> None:
        """Replace the password hash. Existing sessions are left alone [R3]."""
        if _blank(new_password):
            raise ValidationError("New password is required.")
        user = self._require_user(user_id)
        if not verify_password(old_password or "", user.hashed_password):
            logger.info("Password change rejected for user %s: wrong old password", user_id)
            raise UnauthorizedError("Invalid old password.")
        if not self.store.update_password_hash(user_id, hash_password(new_password)):
            raise InternalError("Could not update the password.")
        logger.info("Password changed for user %s", user_id)

    def get_current_user(self, user_id: str) -> PublicUser:
        return to_public(self._require_user(user_id))

    def update_profile(self, user_id: str, fullname: str | None = None, email: str | None = None) -> PublicUser:
        fields = {k: v for k, v in (("fullname", fullname), ("email", email)) if v is not None}
        if not fields:
            raise ValidationError("Nothing to update.")
        if any(_blank(v) for v in fields.values()):
            raise ValidationError("Fields must not be blank.")
        if "email" in fields:
            owner = self.store.find_by_identity(email=fields["email"])
            if owner is not None and owner.id != user_id:
                raise ConflictError("Email is already in use.")
        return self._patch(user_id, **fields)

    def update_avatar(self, user_id: str, local_path: str | Path | None) -> PublicUser:
        return self._replace_asset(user_id, "avatar", local_path)

    def update_cover_image(self, user_id: str, local_path: str | Path | None) -> PublicUser:
        return self._replace_asset(user_id, "cover_image", local_path)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_user(self, user_id: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User does not exist.")
        return user

    def _upload(self, local_path: str | Path | None) -> UploadedAsset | None:
        try:
            return self.assets.upload(local_path)
        finally:
            discard_local_file(local_path)

    def _replace_asset(self, user_id: str, field: str, local_path: str | Path | None) -> PublicUser:
        if not local_path:
            raise ValidationError(f"{field.replace('_', ' ').capitalize()} file is missing.")
        asset = self._upload(local_path)
        if asset is None or not asset.url:
            raise UploadError(f"Error while uploading {field.replace('_', ' ')}.")
        return self._patch(user_id, **{field: asset.url})

    def _patch(self, user_id: str, **fields) -> PublicUser:
        try:
            updated = self.store.update_profile(user_id, **fields)
        except IntegrityError as exc:
            raise ConflictError("Email is already in use.") from exc
        if updated is None:
            raise NotFoundError("User does not exist.")
        return to_public(updated)
