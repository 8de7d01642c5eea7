"""Tests for settings validation and the CORS setup of the app."""

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from core.config import Settings
from main import app, validate_cors_origins


@pytest.fixture
def cors_client():
    return TestClient(app)


class TestCORSConfiguration:
    """CORS answers only configured origins and exposes tracing headers."""

    def test_cors_preflight_for_generation(self, cors_client):
        response = cors_client.options(
            "/api/v1/generate",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type, Authorization",
            },
        )

        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert response.headers["Access-Control-Allow-Credentials"] == "true"

    def test_cors_simple_request_exposes_correlation_id(self, cors_client):
        response = cors_client.get(
            "/api/v1/health", headers={"Origin": "http://127.0.0.1:5173"}
        )

        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "http://127.0.0.1:5173"
        exposed = response.headers["Access-Control-Expose-Headers"]
        assert "X-Correlation-ID" in exposed
        assert "Retry-After" in exposed

    def test_cors_request_from_disallowed_origin(self, cors_client):
        response = cors_client.get(
            "/api/v1/health", headers={"Origin": "http://malicious-site.com"}
        )

        # Still served, but without an allow header for the foreign origin
        assert response.status_code == 200
        assert (
            response.headers.get("Access-Control-Allow-Origin")
            != "http://malicious-site.com"
        )

    def test_validate_cors_origins_drops_invalid_entries(self):
        origins = [
            "http://localhost:5173",
            "https://app.example.com",
            "localhost:3000",
            "ftp://files.example.com",
            "",
        ]

        assert validate_cors_origins(origins) == [
            "http://localhost:5173",
            "https://app.example.com",
        ]


class TestSettingsValidation:
    def test_cors_credentials_with_wildcard_prevented(self):
        with pytest.raises(ValueError, match="CORS configuration error"):
            Settings(SECRET_KEY="test-key", CORS_ORIGINS=["*"], ALLOW_CREDENTIALS=True)

    def test_wildcard_allowed_without_credentials(self):
        settings = Settings(
            SECRET_KEY="test-key", CORS_ORIGINS=["*"], ALLOW_CREDENTIALS=False
        )

        assert settings.CORS_ORIGINS == ["*"]

    @pytest.mark.parametrize(
        "raw",
        [
            "http://localhost:5173, https://app.example.com",
            '["http://localhost:5173", "https://app.example.com"]',
        ],
    )
    def test_cors_origins_from_csv_or_json(self, raw):
        settings = Settings(SECRET_KEY="test-key", CORS_ORIGINS=raw)

        assert settings.CORS_ORIGINS == [
            "http://localhost:5173",
            "https://app.example.com",
        ]

    def test_cors_origins_malformed_json_rejected(self):
        with pytest.raises(ValidationError):
            Settings(SECRET_KEY="test-key", CORS_ORIGINS='["http://localhost:5173",')

    def test_provider_name_is_normalized(self):
        settings = Settings(SECRET_KEY="test-key", LLM_PROVIDER="  OpenAI ")

        assert settings.LLM_PROVIDER == "openai"

    def test_blank_provider_rejected(self):
        with pytest.raises(ValidationError):
            Settings(SECRET_KEY="test-key", LLM_PROVIDER="  ")

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(SECRET_KEY="test-key", LLM_MAX_ATTEMPTS=0)

    def test_generation_defaults(self):
        settings = Settings(SECRET_KEY="test-key")

        assert settings.LLM_MAX_TOKENS == 512
        assert settings.LLM_TEMPERATURE == 0.7
        assert settings.LLM_MAX_ATTEMPTS == 2
        assert settings.LLM_RETRY_DELAY_SECONDS == 3.0
        assert settings.DEFAULT_CODE_LANGUAGE == "javascript"
