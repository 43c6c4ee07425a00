"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AuthGuard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. SECRET_KEY and BCRYPT_ROUNDS are both relaxed in DEBUG mode only.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
       relies on key entropy -- a short key weakens every issued token.

  [M7] In production mode a missing SECRET_KEY is a hard startup failure.
       Rotating the key invalidates every outstanding token.

  [M8] BCRYPT_ROUNDS below 12 is only accepted with DEBUG=true so the test
       suite can run fast without a production deployment ever doing so.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authguard.config")

_MIN_PRODUCTION_ROUNDS = 12


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # Empty string selects the in-memory backend. Anything else is passed to
    # SQLAlchemy's create_engine() unchanged.
    database_url: str = ""

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    token_expire_seconds: int = Field(default=24 * 3600, gt=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    api_key_prefix: str = Field(default="sk_", min_length=1, max_length=8)

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    activity_page_size: int = Field(default=50, ge=1, le=500)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_bcrypt_rounds(self) -> "Settings":
        """Reject a cheap bcrypt cost outside DEBUG mode [M8]."""
        if self.bcrypt_rounds < _MIN_PRODUCTION_ROUNDS:
            if not self.debug:
                raise ValueError(f"BCRYPT_ROUNDS must be at least {_MIN_PRODUCTION_ROUNDS} outside DEBUG mode.")
            logger.warning("WARNING: BCRYPT_ROUNDS=%d is below the production minimum.", self.bcrypt_rounds)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
