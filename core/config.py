"""
core/config.py -- Threadline settings, read once from the environment.

Every knob lives on Settings. Other modules ask get_settings() for the cached
instance and never read os.environ themselves. Env var names are the upper-
cased field names (SECRET_KEY, REDIS_URL, FORGOT_PASSWORD_DELAY_SECONDS, ...)
and a local .env file is honoured.

SECRET_KEY keys the HMAC on the qid session cookie:
  - DEBUG=true and no key: a throwaway key is generated and every session
    dies on restart.
  - DEBUG unset and no key: startup fails.
  - Any key under 32 characters is refused.

Layer rule: core/ imports nothing from api/, auth/ or cache/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("threadline.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'threadline_auth.db'}"


class Settings(BaseSettings):
    """Runtime configuration. Every field has a default except the secret in
    production, so tests can build Settings(...) directly."""

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
    # When set, reset tokens and sessions live in Redis. Otherwise the SQLite
    # key-value store at kv_db_path (or its default location) is used.
    redis_url: str = ""
    kv_db_path: str = ""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_cookie_name: str = "qid"
    session_ttl_seconds: int = 60 * 60 * 24 * 365 * 10  # 10 years
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    reset_token_ttl_seconds: int = 600
    forgot_password_delay_seconds: float = 5.0
    # False keeps the delay on the unknown-email branch only. True pads both
    # branches so the call never completes before the delay has elapsed.
    equalize_forgot_password_latency: bool = False
    frontend_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Mail (empty smtp_host = log reset links instead of sending)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_starttls: bool = True
    mail_from: str = "Threadline <no-reply@threadline.local>"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("frontend_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Generate a dev key, or refuse to start without a usable one."""
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("DEBUG is on and SECRET_KEY is unset; generated a temporary key. Sessions end on restart.")
            else:
                raise ValueError("SECRET_KEY must be set unless DEBUG=true.")
        if len(self.secret_key) < 32:
            raise ValueError(f"SECRET_KEY is {len(self.secret_key)} characters; 32 or more are required.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Cached Settings. Tests that change env vars call get_settings.cache_clear()."""
    return Settings()
