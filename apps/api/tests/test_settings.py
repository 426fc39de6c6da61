import pytest
from pydantic import ValidationError

from reben.core.settings import Settings


def _settings(**overrides) -> Settings:
    values = {"SUPABASE_URL": "https://example.supabase.co/", "SUPABASE_ANON_KEY": "anon"}
    values.update(overrides)
    return Settings(**values)


def test_supabase_endpoints_are_derived() -> None:
    settings = _settings()
    assert settings.SUPABASE_ISSUER == "https://example.supabase.co/auth/v1"
    assert settings.SUPABASE_JWKS_URL == "https://example.supabase.co/auth/v1/.well-known/jwks.json"


def test_webhook_headers_follow_product_name() -> None:
    settings = _settings(WEBHOOK_PRODUCT_NAME="Acme")
    assert settings.webhook_user_agent == "Acme-Webhook/1.0"
    assert settings.webhook_header("Signature") == "X-Acme-Signature"


def test_retry_bound_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        _settings(NOTIFY_MAX_RETRIES=0)


def test_production_requires_sender_address() -> None:
    with pytest.raises(ValidationError):
        _settings(REBEN_ENV="production", EMAIL_FROM=" ")
    assert _settings(REBEN_ENV="production", EMAIL_FROM="alerts@example.com").EMAIL_FROM == "alerts@example.com"


def test_cors_origins_list() -> None:
    settings = _settings(API_CORS_ORIGINS="https://app.example.com, ,http://localhost:3000")
    assert settings.cors_origins_list == ["https://app.example.com", "http://localhost:3000"]
