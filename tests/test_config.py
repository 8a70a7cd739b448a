import pytest

from app.core.config import PRODUCTION_MODE, SANDBOX_MODE, ProviderConfig, Settings, normalize_mode


@pytest.mark.parametrize("value", ["dev", "development", "sandbox", "test", "TEST", " Sandbox "])
def test_sandbox_aliases(value):
    assert normalize_mode(value) == SANDBOX_MODE


@pytest.mark.parametrize("value", ["prod", "production", "live", "LIVE", "staging", "", None])
def test_production_aliases_and_default(value):
    assert normalize_mode(value) == PRODUCTION_MODE


def test_provider_config_is_built_from_settings():
    settings = Settings(
        MERCADO_PAGO_MODE="dev",
        MERCADO_PAGO_ACCESS_TOKEN="APP_USR-123",
        MERCADO_PAGO_API_HOST="api.example.test",
        MERCADO_PAGO_WEBHOOK_URL="https://agendo.test/hook",
        MERCADO_PAGO_BACK_URL="",
    )
    config = settings.provider_config()

    assert settings.is_sandbox
    assert config.mode == SANDBOX_MODE
    assert config.access_token == "APP_USR-123"
    assert config.base_url == "https://api.example.test"
    assert config.webhook_url == "https://agendo.test/hook"
    assert config.back_url is None
    assert config.currency == "BRL"


def test_provider_config_defaults_to_production():
    config = ProviderConfig(access_token="APP_USR-123")

    assert config.mode == PRODUCTION_MODE
    assert config.base_url == "https://api.mercadopago.com"
