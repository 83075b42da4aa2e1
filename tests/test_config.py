"""Tests for environment-driven settings."""

import pytest

from api.config import LEGACY_ACCESS_CODE_SALT, Settings
from api.errors import ConfigurationError

ENV_VARS = [
    "APP_ENV", "ACCESS_CODE_SECRET", "SESSION_SECRET", "ACCESS_CODE_STRICT", "DATABASE_URL", "DATA_DIR",
    "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "CHECKOUT_AMOUNT_CENTS", "CHECKOUT_CURRENCY",
    "PUBLIC_BASE_URL", "TRIAL_SECONDS", "PREMIUM_TOKEN_TTL", "CORS_ORIGINS",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        # setenv first so values loaded from a .env file are undone too
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    # No .env file is picked up from here
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestFromEnv:

    def test_defaults(self, clean_env, tmp_path) -> None:
        settings = Settings.from_env(str(tmp_path / "missing.env"))
        assert settings.env == "development"
        assert settings.access_code_strict is False
        assert settings.checkout_amount_cents == 200
        assert settings.checkout_currency == "eur"
        assert settings.cors_origins == ["*"]
        assert settings.stripe_secret_key is None

    def test_reads_variables(self, clean_env, tmp_path) -> None:
        clean_env.setenv("APP_ENV", "Production")
        clean_env.setenv("ACCESS_CODE_SECRET", "s3cret")
        clean_env.setenv("ACCESS_CODE_STRICT", "yes")
        clean_env.setenv("CHECKOUT_CURRENCY", "USD")
        clean_env.setenv("PUBLIC_BASE_URL", "https://navigator.example/")
        clean_env.setenv("TRIAL_SECONDS", "300")
        clean_env.setenv("CORS_ORIGINS", "https://a.example, https://b.example")

        settings = Settings.from_env(str(tmp_path / "missing.env"))
        assert settings.is_production is True
        assert settings.access_code_secret == "s3cret"
        assert settings.access_code_strict is True
        assert settings.checkout_currency == "usd"
        assert settings.public_base_url == "https://navigator.example"
        assert settings.trial_seconds == 300
        assert settings.cors_origins == ["https://a.example", "https://b.example"]

    def test_loads_dotenv_file(self, clean_env, tmp_path) -> None:
        env_file = tmp_path / "navigator.env"
        env_file.write_text("STRIPE_SECRET_KEY=sk_test_from_file\n", encoding="utf-8")
        assert Settings.from_env(str(env_file)).stripe_secret_key == "sk_test_from_file"

    def test_bad_integer(self, clean_env, tmp_path) -> None:
        clean_env.setenv("CHECKOUT_AMOUNT_CENTS", "two euros")
        with pytest.raises(ConfigurationError):
            Settings.from_env(str(tmp_path / "missing.env"))


class TestSecrets:

    def test_configured_secrets(self) -> None:
        settings = Settings(access_code_secret="a", session_secret="b")
        assert settings.resolve_access_code_secret() == "a"
        assert settings.resolve_session_secret() == "b"

    def test_development_fallbacks(self) -> None:
        settings = Settings()
        assert settings.resolve_access_code_secret() == LEGACY_ACCESS_CODE_SALT
        assert settings.resolve_session_secret() == f"session:{LEGACY_ACCESS_CODE_SALT}"

    def test_production_requires_access_code_secret(self) -> None:
        with pytest.raises(ConfigurationError):
            Settings(env="production").resolve_access_code_secret()

    def test_production_requires_session_secret(self) -> None:
        with pytest.raises(ConfigurationError):
            Settings(env="production", access_code_secret="a").resolve_session_secret()
