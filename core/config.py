"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for NexusAuth happen here. No module should
call os.getenv() or os.environ.get() directly.

Only the entry points (asgi.py, main.py) call get_settings(). Everything below
them receives a Settings instance (or the individual values it needs) as an
explicit constructor argument, so tests can build an app with a fixed secret,
a throwaway database and a cheap bcrypt cost without touching the environment.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies on
  key entropy -- a short key weakens every issued token.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a hard
  startup failure. In debug mode a random key is generated with a warning;
  tokens then do not survive a restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("nexusauth.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'nexusauth.db'}"

_URL_PLACEHOLDERS = ("<password>", "<username>")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (with DEBUG=true or an explicit
    secret_key). Field names map to upper-cased env vars, e.g. `database_url`
    reads DATABASE_URL.
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
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    db_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = Field(default=24 * 60 * 60, gt=0)
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)
    # Login reports "Account not found" and "Invalid password provided"
    # separately unless this is set.
    unify_login_errors: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    host: str = "0.0.0.0"  # nosec B104 -- bind address for the dev server
    port: int = 5000
    cors_allow_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start if SECRET_KEY is missing.
        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Issued tokens will not survive a restart."
                )
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
    def check_database_url(self) -> "Settings":
        """Flag a DATABASE_URL that still carries template placeholders.

        Not fatal: the store reports the connection failure on its own. The
        log line just points the operator at the actual cause.
        """
        if any(p in self.database_url for p in _URL_PLACEHOLDERS):
            logger.critical(
                "DATABASE_URL still contains placeholders like '<password>'. "
                "Replace them with the real database credentials."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
