"""
api/routes/v1/users.py -- Account and session REST endpoints.

Routes:
  POST  /api/v1/users/register        -- multipart registration with avatar (+ optional cover)
  POST  /api/v1/users/login           -- password login; sets both session cookies
  POST  /api/v1/users/logout          -- clears stored refresh token and both cookies
  POST  /api/v1/users/refresh-token   -- rotate refresh token; sets both session cookies
  POST  /api/v1/users/change-password -- requires old password
  GET   /api/v1/users/current-user    -- public projection of the caller
  PATCH /api/v1/users/update-account  -- fullname / email
  PATCH /api/v1/users/avatar          -- multipart avatar replacement
  PATCH /api/v1/users/cover-image     -- multipart cover image replacement

Handlers are thin: they stage uploads, call SessionManager, and map the result
onto response models. Every failure is a core.errors.ServiceError raised by
SessionManager and rendered by the handler in api/main.py.

Handlers are plain `def` so FastAPI runs them in its threadpool -- bcrypt
and the SQLAlchemy store are blocking.

Security:
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from api.models import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProfilePatch,
    RefreshRequest,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import get_current_user, get_session_manager
from auth.models import User
from auth.sessions import SessionManager
from auth.tokens import REFRESH_COOKIE, clear_session_cookies, set_session_cookies
from core.config import get_settings
from media.storage import discard_local_file

# Auth policy:
# - register, login, refresh-token: public
# - everything else: requires a valid access token (get_current_user)
router = APIRouter(prefix="/users")


# ---------------------------------------------------------------------------
# Upload staging
# ---------------------------------------------------------------------------


def _stage_upload(upload: UploadFile | None) -> Path | None:
    """Copy a multipart upload to UPLOAD_DIR and return the local path.

    Returns None when the field was not sent or is an empty file part.
    SessionManager discards the staged file once it has been handed to the
    asset store. A copy that fails part way leaves nothing behind.
    """
    if upload is None or not upload.filename:
        return None
    upload_dir = Path(get_settings().upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(upload.filename).suffix
    tmp = tempfile.NamedTemporaryFile(dir=upload_dir, suffix=suffix, delete=False)
    try:
        with tmp:
            shutil.copyfileobj(upload.file, tmp)
    except Exception:
        discard_local_file(tmp.name)
        raise
    return Path(tmp.name)


def _stage_uploads(*uploads: UploadFile | None) -> list[Path | None]:
    """Stage several uploads, all or nothing.

    If any copy fails, the files already staged are removed before the error
    propagates.
    """
    staged: list[Path | None] = []
    try:
        for upload in uploads:
            staged.append(_stage_upload(upload))
    except Exception:
        for path in staged:
            discard_local_file(path)
        raise
    return staged


def _token_response(content: dict, access_token: str, refresh_token: str) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=content)
    set_session_cookies(resp, access_token, refresh_token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/register", response_model=UserResponse, status_code=201)
def register(
    fullname: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    sessions: SessionManager = Depends(get_session_manager),
) -> UserResponse:
    """Create an account. The avatar file is required; the cover image is optional."""
    avatar_path, cover_path = _stage_uploads(avatar, cover_image)
    created = sessions.register(
        fullname=fullname,
        email=email,
        username=username,
        password=password,
        avatar_path=avatar_path,
        cover_path=cover_path,
    )
    return UserResponse.from_public(created)


@router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest, sessions: SessionManager = Depends(get_session_manager)) -> JSONResponse:
    """Authenticate with username or email plus password; open a session.

    Any session previously open for this user elsewhere can no longer refresh.
    """
    result = sessions.login(body.password, username=body.username, email=body.email)
    content = LoginResponse(
        user=UserResponse.from_public(result.user),
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=get_settings().access_token_expire_seconds,
    ).model_dump()
    return _token_response(content, result.access_token, result.refresh_token)


@router.post("/refresh-token", response_model=TokenPairResponse)
def refresh_token(
    request: Request,
    body: Optional[RefreshRequest] = None,
    sessions: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Exchange the current refresh token for a new pair.

    The presented token is single-use: replaying it after this call succeeds
    returns 401.
    """
    presented = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    pair = sessions.refresh(presented)
    content = TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=get_settings().access_token_expire_seconds,
    ).model_dump()
    return _token_response(content, pair.access_token, pair.refresh_token)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/logout", response_model=MessageResponse)
def logout(
    current_user: User = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """End the session: forget the stored refresh token and clear both cookies."""
    sessions.logout(current_user.id)
    resp = JSONResponse(content=MessageResponse(message="User logged out.").model_dump())
    clear_session_cookies(resp)
    return resp


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    sessions.change_password(current_user.id, body.old_password, body.new_password)
    return MessageResponse(message="Password changed successfully.")


@router.get("/current-user", response_model=UserResponse)
def current_user_profile(
    current_user: User = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
) -> UserResponse:
    return UserResponse.from_public(sessions.get_current_user(current_user.id))


@router.patch("/update-account", response_model=UserResponse)
def update_account(
    body: ProfilePatch,
    current_user: User = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
) -> UserResponse:
    updated = sessions.update_profile(current_user.id, fullname=body.fullname, email=body.email)
    return UserResponse.from_public(updated)


@router.patch("/avatar", response_model=UserResponse)
def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
) -> UserResponse:
    updated = sessions.update_avatar(current_user.id, _stage_upload(avatar))
    return UserResponse.from_public(updated)


@router.patch("/cover-image", response_model=UserResponse)
def update_cover_image(
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    current_user: User = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
) -> UserResponse:
    updated = sessions.update_cover_image(current_user.id, _stage_upload(cover_image))
    return UserResponse.from_public(updated)
