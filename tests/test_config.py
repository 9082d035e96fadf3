import pytest

from checkout_service.config import Settings
from checkout_service.errors import ConfigurationError
from checkout_service.main import create_app

ENV_VARS = [
    "VISERPAY_PUBLIC_KEY",
    "VISERPAY_SECRET_KEY",
    "VISERPAY_ENV",
    "VISERPAY_BASE_URL",
    "GATEWAY_TIMEOUT_SECONDS",
    "DATABASE_URL",
    "RABBITMQ_URL",
    "CORS_ORIGINS",
    "PORT",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr("checkout_service.config.load_dotenv", lambda: False)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_secret_key_refuses_to_start(monkeypatch):
    monkeypatch.setenv("VISERPAY_PUBLIC_KEY", "pk")

    with pytest.raises(ConfigurationError) as exc_info:
        Settings.from_env()

    assert "VISERPAY_SECRET_KEY" in str(exc_info.value)


def test_missing_both_keys_lists_both():
    with pytest.raises(ConfigurationError) as exc_info:
        Settings.from_env()

    assert "VISERPAY_PUBLIC_KEY" in str(exc_info.value)
    assert "VISERPAY_SECRET_KEY" in str(exc_info.value)


def test_blank_secret_key_is_missing(monkeypatch):
    monkeypatch.setenv("VISERPAY_PUBLIC_KEY", "pk")
    monkeypatch.setenv("VISERPAY_SECRET_KEY", "   ")

    with pytest.raises(ConfigurationError):
        Settings.from_env()


def test_create_app_refuses_to_start_without_keys():
    with pytest.raises(ConfigurationError):
        create_app()


def test_defaults_use_sandbox(monkeypatch):
    monkeypatch.setenv("VISERPAY_PUBLIC_KEY", "pk")
    monkeypatch.setenv("VISERPAY_SECRET_KEY", "sk")

    settings = Settings.from_env()

    assert settings.gateway_initiate_url == "https://script.viserlab.com/viserpay/sandbox/payment/initiate"
    assert settings.port == 3001
    assert settings.rabbitmq_url is None
    assert settings.cors_origins == ("http://localhost:3000", "http://frontend:3000")


def test_production_environment(monkeypatch):
    monkeypatch.setenv("VISERPAY_PUBLIC_KEY", "pk")
    monkeypatch.setenv("VISERPAY_SECRET_KEY", "sk")
    monkeypatch.setenv("VISERPAY_ENV", "production")
    monkeypatch.setenv("GATEWAY_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("PORT", "8080")

    settings = Settings.from_env()

    assert settings.is_production
    assert settings.gateway_initiate_url == "https://script.viserlab.com/viserpay/payment/initiate"
    assert settings.gateway_timeout == 5.0
    assert settings.port == 8080


def test_invalid_numeric_setting(monkeypatch):
    monkeypatch.setenv("VISERPAY_PUBLIC_KEY", "pk")
    monkeypatch.setenv("VISERPAY_SECRET_KEY", "sk")
    monkeypatch.setenv("PORT", "abc")

    with pytest.raises(ConfigurationError):
        Settings.from_env()
