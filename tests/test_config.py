"""
Tests for settings parsing and production safety checks.
"""
import pytest

from storefront.core.config import Settings


def build(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "postgres://shop:pw@db.internal:5432/shop",
        "SECRET_KEY": "Zx81-k2Yq7tLm3Rv9pWd",
        "ENVIRONMENT": "production",
        "CORS_ORIGINS": "https://shop.example.com",
    }
    values.update(overrides)
    return Settings(**values)


class TestSettings:
    def test_database_url_uses_asyncpg(self):
        settings = build()
        assert settings.DATABASE_URL == "postgresql+asyncpg://shop:pw@db.internal:5432/shop"

    def test_cors_comma_separated(self):
        settings = build(CORS_ORIGINS="https://a.example.com, https://b.example.com")
        assert settings.CORS_ORIGINS == ["https://a.example.com", "https://b.example.com"]

    def test_missing_stripe_key_only_disables_payments(self):
        settings = build(STRIPE_SECRET_KEY="")
        assert settings.payments_enabled is False

    @pytest.mark.parametrize("overrides", [
        {"DEBUG": True},
        {"SECRET_KEY": "changeme-please"},
        {"DATABASE_URL": "postgresql://shop:pw@localhost:5432/shop"},
        {"CORS_ORIGINS": "*"},
    ])
    def test_production_rejects_insecure_config(self, overrides):
        with pytest.raises(ValueError):
            build(**overrides)

    def test_development_is_lenient(self):
        settings = build(ENVIRONMENT="development", DEBUG=True, CORS_ORIGINS="http://localhost:3000")
        assert settings.DEBUG is True
