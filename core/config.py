"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TenantGuard happen here. No module should
call os.getenv() or os.environ.get() directly. The composition roots
(api/main.py lifespan and the main.py CLI) call get_settings() once and pass
the values they need into the stores and services they construct.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Used for the token secret policy and the default password check.

Security notes:
  [S1] Access and refresh tokens are signed with two independent secrets. A
       leaked refresh secret cannot mint access tokens and vice versa, so the
       validator refuses identical values.

  [S2] Token secrets shorter than 32 chars are rejected outright. In production
       mode (DEBUG not set or false) a missing secret is a hard startup failure.

  [S3] bootstrap_secret and reset_secret default to "" which disables the
       bootstrap and emergency reset workflows entirely.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or tenants/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tenantguard.config")

_MIN_SECRET_LENGTH = 32

# Same checks, in the same order and with the same character classes, as
# auth.passwords.validate_password_strength. Duplicated because core/ may not
# import from auth/; tests/test_config.py keeps the two in step.
_SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'
_DEFAULT_PASSWORD_RULES = (
    (lambda p: len(p.encode("utf-8")) <= 72, "be at most 72 bytes"),
    (lambda p: bool(p.strip()) and len(p) >= 8, "be at least 8 characters"),
    (lambda p: any(c.isupper() for c in p), "contain an uppercase letter"),
    (lambda p: any(c.islower() for c in p), "contain a lowercase letter"),
    (lambda p: any(c.isdigit() for c in p), "contain a digit"),
    (lambda p: any(c in _SPECIAL_CHARACTERS for c in p), "contain a special character"),
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings(debug=True) can be instantiated in
    test environments without a real .env file. The model_validator enforces
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
    database_url: str = "sqlite:///tenantguard.db"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    access_token_ttl_minutes: int = Field(default=60, gt=0)
    refresh_token_ttl_days: int = Field(default=7, gt=0)

    # ------------------------------------------------------------------
    # Passwords and lockout
    # ------------------------------------------------------------------

    # bcrypt cost factor. 12 in every real deployment; tests lower it to 4.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    lockout_threshold: int = Field(default=4, gt=0)
    # Handed to newly created users exactly once, in the create-user response.
    default_password: str = "ChangeMe@2025"

    # ------------------------------------------------------------------
    # Operational escape hatches [S3]
    # ------------------------------------------------------------------

    bootstrap_secret: str = ""
    reset_secret: str = ""

    # ------------------------------------------------------------------
    # HTTP adapter
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_storage_uri: str = "memory://"
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_token_secrets(self) -> "Settings":
        """Enforce the token secret policy [S1] [S2].

        Dev mode (DEBUG=true): auto-generate any missing secret with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if either secret is missing.
        """
        for name in ("access_token_secret", "refresh_token_secret"):
            value = getattr(self, name)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, name, value)
                logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", name.upper())
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{name.upper()} must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be different.")
        return self

    @model_validator(mode="after")
    def validate_default_password(self) -> "Settings":
        """Reject a DEFAULT_PASSWORD that users could never have chosen themselves."""
        for check, label in _DEFAULT_PASSWORD_RULES:
            if not check(self.default_password):
                raise ValueError(f"DEFAULT_PASSWORD must {label}.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
