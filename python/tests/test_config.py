"""Tests for settings loading and validation."""

import pytest
from pydantic import ValidationError

from casefile.config import Environment, Settings


def make_settings(monkeypatch, **env) -> Settings:
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://localhost/casefile")
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return Settings(_env_file=None)


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CASEFILE_ENV", raising=False)
        monkeypatch.delenv("CORS_ALLOWED_ORIGINS", raising=False)
        monkeypatch.delenv("APP_URL", raising=False)
        monkeypatch.delenv("API_URL", raising=False)
        settings = make_settings(monkeypatch)

        assert settings.casefile_env == Environment.LOCAL
        assert settings.capture_timeout_s == 30.0
        assert settings.signed_url_expiry_s == 3600
        assert settings.cors_origin_list == ["http://localhost:3000"]
        assert settings.catalog_cache_ttl_s is None
        assert settings.normalized_app_url == "http://localhost:3000"
        assert settings.normalized_api_url == "http://localhost:8000"
        assert not settings.requires_internal_header

    def test_database_url_required(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_internal_secret_required_in_prod(self, monkeypatch):
        monkeypatch.delenv("CASEFILE_INTERNAL_SECRET", raising=False)
        with pytest.raises(ValidationError, match="CASEFILE_INTERNAL_SECRET"):
            make_settings(monkeypatch, CASEFILE_ENV="prod")

    def test_prod_requires_internal_header(self, monkeypatch):
        settings = make_settings(
            monkeypatch, CASEFILE_ENV="prod", CASEFILE_INTERNAL_SECRET="s3cret"
        )
        assert settings.requires_internal_header

    def test_capture_timeout_must_be_positive(self, monkeypatch):
        with pytest.raises(ValidationError, match="CAPTURE_TIMEOUT_S"):
            make_settings(monkeypatch, CAPTURE_TIMEOUT_S="0")

    def test_lists_are_parsed(self, monkeypatch):
        settings = make_settings(
            monkeypatch,
            SUPABASE_AUDIENCES="authenticated, anon ,",
            CORS_ALLOWED_ORIGINS="https://a.example, https://b.example",
            SUPABASE_ISSUER="https://project.supabase.co/auth/v1/",
            APP_URL="https://casefile.example.com/",
        )

        assert settings.audience_list == ["authenticated", "anon"]
        assert settings.cors_origin_list == ["https://a.example", "https://b.example"]
        assert settings.normalized_issuer == "https://project.supabase.co/auth/v1"
        assert settings.normalized_app_url == "https://casefile.example.com"

    def test_api_url_is_separate_from_app_url(self, monkeypatch):
        settings = make_settings(
            monkeypatch,
            APP_URL="https://casefile.example.com",
            API_URL="https://api.casefile.example.com/",
        )

        assert settings.normalized_app_url == "https://casefile.example.com"
        assert settings.normalized_api_url == "https://api.casefile.example.com"

    def test_missing_auth_settings(self, monkeypatch):
        for name in ("SUPABASE_JWKS_URL", "SUPABASE_ISSUER", "SUPABASE_AUDIENCES"):
            monkeypatch.delenv(name, raising=False)
        settings = make_settings(monkeypatch, SUPABASE_ISSUER="https://issuer")

        assert settings.missing_auth_settings == ["SUPABASE_JWKS_URL", "SUPABASE_AUDIENCES"]
