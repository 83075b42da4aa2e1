"""
Runtime configuration for the Medical Device Navigator API.

Values are read from the process environment after loading an optional
``.env`` file.  Secrets are never given working defaults in production.
"""

import logging
import os
from dataclasses import dataclass, field, replace

from dotenv import load_dotenv

from api.errors import ConfigurationError

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_DATA_DIR = os.path.join(BASE_DIR, "data")
DEFAULT_DATABASE_URL = f"sqlite:///{os.path.join(DEFAULT_DATA_DIR, 'navigator.db')}"

# Salt the first deployments shipped with.  Only honoured in development so
# that codes generated before the secret was configured keep verifying.
LEGACY_ACCESS_CODE_SALT = "medical-device-navigator-2025"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


@dataclass
class Settings:
    env: str = "development"
    access_code_secret: str | None = None
    session_secret: str | None = None
    access_code_strict: bool = False
    database_url: str = DEFAULT_DATABASE_URL
    data_dir: str = DEFAULT_DATA_DIR
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    checkout_amount_cents: int = 200
    checkout_currency: str = "eur"
    public_base_url: str = "http://localhost:5175"
    trial_seconds: int = 600
    premium_token_ttl: int = 86400
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "Settings":
        """Build settings from the environment (``.env`` is loaded first)."""
        load_dotenv(dotenv_path)
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            env=os.getenv("APP_ENV", "development").strip().lower(),
            access_code_secret=os.getenv("ACCESS_CODE_SECRET") or None,
            session_secret=os.getenv("SESSION_SECRET") or None,
            access_code_strict=_env_bool("ACCESS_CODE_STRICT"),
            database_url=os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL,
            data_dir=os.getenv("DATA_DIR") or DEFAULT_DATA_DIR,
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY") or None,
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET") or None,
            checkout_amount_cents=_env_int("CHECKOUT_AMOUNT_CENTS", 200),
            checkout_currency=os.getenv("CHECKOUT_CURRENCY", "eur").lower(),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:5175").rstrip("/"),
            trial_seconds=_env_int("TRIAL_SECONDS", 600),
            premium_token_ttl=_env_int("PREMIUM_TOKEN_TTL", 86400),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **changes)

    def resolve_access_code_secret(self) -> str:
        """Return the salt used for access-code hashing."""
        if self.access_code_secret:
            return self.access_code_secret
        if self.is_production:
            raise ConfigurationError("ACCESS_CODE_SECRET must be set in production")
        logger.warning(
            "ACCESS_CODE_SECRET is not set; using the legacy development salt. "
            "Never run like this in production."
        )
        return LEGACY_ACCESS_CODE_SALT

    def resolve_session_secret(self) -> str:
        """Return the HMAC key for session tokens."""
        if self.session_secret:
            return self.session_secret
        if self.is_production:
            raise ConfigurationError("SESSION_SECRET must be set in production")
        logger.warning("SESSION_SECRET is not set; deriving it from the access-code secret.")
        return f"session:{self.resolve_access_code_secret()}"
