"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Staylist happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The app
      lifespan reads it once and passes it into the hasher, token codec, and
      auth gates -- those objects never re-read the environment.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  frozen=True: a Settings instance is immutable after validation, so it can be
      shared by reference across concurrent requests without locking.

Security notes:
  [S1] SECRET_KEY and PASSWORD_PEPPER are both required. A missing value is a
       startup failure, never a per-request error.

  [S2] SECRET_KEY shorter than 32 chars is rejected. HMAC-SHA256 token signing
       relies on key entropy -- a short key weakens every issued token.

  [S3] PASSWORD_PEPPER must differ from SECRET_KEY. The token signing key and
       the password hashing secret are separate secrets with separate roles.

  [S4] PASSWORD_PEPPER shorter than 8 bytes is rejected. It is the Argon2 salt.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("staylist.config")

_MIN_SECRET_LENGTH = 32
# Argon2 rejects salts shorter than 8 bytes, and the pepper is the salt.
_MIN_PEPPER_BYTES = 8


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Non-secret fields have defaults. The two secrets default to the empty
    string, which is the "not configured" sentinel rejected by the validator.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `secret_key` reads from SECRET_KEY, `password_pepper` from PASSWORD_PEPPER.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = "sqlite:///staylist.db"
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000"]

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    secret_key: str = ""
    password_pepper: str = ""

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # "compact" = payload.signature HMAC token; "jwt" = HS256 JWT via python-jose.
    token_format: Literal["compact", "jwt"] = "compact"
    token_expire_seconds: int = 24 * 60 * 60

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    # Argon2id costs. memory_cost is in KiB and must be at least 8 * parallelism.
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 64 * 1024
    argon2_parallelism: int = 4

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Refuse to build a Settings object without usable secrets [S1]-[S4]."""
        required = {"SECRET_KEY": self.secret_key, "PASSWORD_PEPPER": self.password_pepper}
        missing = [name for name, value in required.items() if not value.strip()]
        if missing:
            raise ValueError(
                f"Missing required configuration: {', '.join(missing)}. "
                "Set them in your environment or .env file."
            )
        if len(self.secret_key) < _MIN_SECRET_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters.")
        if len(self.password_pepper.encode("utf-8")) < _MIN_PEPPER_BYTES:
            raise ValueError(f"PASSWORD_PEPPER must be at least {_MIN_PEPPER_BYTES} bytes.")
        if self.password_pepper == self.secret_key:
            raise ValueError("PASSWORD_PEPPER must not reuse SECRET_KEY.")
        if self.token_expire_seconds <= 0:
            raise ValueError("TOKEN_EXPIRE_SECONDS must be positive.")
        if self.argon2_time_cost < 1 or self.argon2_parallelism < 1:
            raise ValueError("ARGON2_TIME_COST and ARGON2_PARALLELISM must be at least 1.")
        if self.argon2_memory_cost < 8 * self.argon2_parallelism:
            raise ValueError("ARGON2_MEMORY_COST must be at least 8 KiB per lane.")
        if self.debug:
            logger.warning("DEBUG is enabled -- do not run this configuration in production.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    This is the official FastAPI pattern for config (see FastAPI docs /advanced/settings/).

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
