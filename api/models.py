"""
API request and response models for VidTube Auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import PublicUser

# Passwords above 72 bytes are truncated by bcrypt; 128 chars keeps typical
# input well inside that while rejecting abuse.
_PASSWORD_MAX = 128


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/users/login. Either username or email is required.

    Only the identifiers are trimmed. The password is verified exactly as sent,
    matching how registration and change-password hash it.
    """

    username: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(max_length=_PASSWORD_MAX)

    @field_validator("username", "email")
    @classmethod
    def strip_identifier(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v


class RefreshRequest(BaseModel):
    """Optional body for POST /api/v1/users/refresh-token.

    Browser clients send the refresh_token cookie instead; the cookie wins
    when both are present.
    """

    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(max_length=_PASSWORD_MAX)
    new_password: str = Field(max_length=_PASSWORD_MAX)


class ProfilePatch(BaseModel):
    """Request body for PATCH /api/v1/users/update-account. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    fullname: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public projection of a user. Never carries the password hash or refresh token."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    email: str
    fullname: str
    avatar: str
    cover_image: str
    created_at: str
    updated_at: str

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            fullname=user.fullname,
            avatar=user.avatar,
            cover_image=user.cover_image,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int


class LoginResponse(TokenPairResponse):
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


class ErrorDetail(BaseModel):
    """Structured error body. code is stable and machine-readable."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
