"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for VidTube Auth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Dev mode generates missing signing secrets with a warning,
      production mode refuses to start without them.

Security notes:
  [S1] Each signing secret must be at least 32 characters. HS256 relies on
       key entropy -- a short key weakens every token signed with it.

  [S2] The access and refresh secrets must differ. A refresh token must never
       verify as an access token (and vice versa).

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or media/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("vidtube.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'vidtube_auth.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = _DEFAULT_DB_URL
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev secret or raises, so callers never see "".
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 10
    # Bounded retries for the refresh-token compare-and-set.
    refresh_rotation_retries: int = 3

    secure_cookies: bool = True

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    # bcrypt cost factor. Each digest embeds its own cost, so raising this
    # never invalidates stored hashes.
    password_hash_rounds: int = 10

    # ------------------------------------------------------------------
    # Asset storage (Cloudinary upload API)
    # ------------------------------------------------------------------

    upload_dir: str = "public/temp"
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_token_settings(self) -> "Settings":
        """Enforce signing-secret and TTL policy.

        Dev mode (DEBUG=true): auto-generate missing secrets with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if either
            secret is missing.

        Both modes: reject short secrets [S1], identical secrets [S2], and
            non-positive TTLs.
        """
        for name in ("access_token_secret", "refresh_token_secret"):
            if getattr(self, name):
                continue
            env_name = name.upper()
            if not self.debug:
                raise ValueError(
                    f"{env_name} is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            setattr(self, name, secrets.token_hex(32))
            logger.warning("WARNING: Using auto-generated %s. Sessions will not persist across restarts.", env_name)

        if len(self.access_token_secret) < 32 or len(self.refresh_token_secret) < 32:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be at least 32 characters.")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ.")
        if self.access_token_expire_minutes <= 0 or self.refresh_token_expire_days <= 0:
            raise ValueError("Token lifetimes must be positive.")
        if not 4 <= self.password_hash_rounds <= 31:
            raise ValueError("PASSWORD_HASH_ROUNDS must be between 4 and 31.")
        if self.refresh_rotation_retries < 1:
            raise ValueError("REFRESH_ROTATION_RETRIES must be at least 1.")
        return self

    @property
    def access_token_expire_seconds(self) -> int:
        return self.access_token_expire_minutes * 60

    @property
    def refresh_token_expire_seconds(self) -> int:
        return self.refresh_token_expire_days * 24 * 60 * 60


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
