"""Unit tests for application settings validation."""

import pytest
from pydantic import ValidationError

from finops_agent.core.config import Settings


class TestCORSOriginValidation:
    """Test suite for CORS origin validation in Settings."""

    def test_valid_origins_development(self):
        """Test that plain HTTP origins are accepted outside production."""
        settings = Settings(
            APP_ENV="development",
            ALLOWED_ORIGINS=["http://localhost:3000", "https://finops.example.com"],
        )

        assert settings.ALLOWED_ORIGINS == ["http://localhost:3000", "https://finops.example.com"]

    def test_comma_separated_string(self):
        """Test that a comma-separated string is split into origins."""
        settings = Settings(ALLOWED_ORIGINS="http://localhost:3000, https://finops.example.com")

        assert settings.ALLOWED_ORIGINS == ["http://localhost:3000", "https://finops.example.com"]

    def test_reject_wildcard(self):
        """Test that wildcard '*' is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(ALLOWED_ORIGINS=["*"])

        assert "wildcard" in str(exc_info.value).lower()

    def test_reject_missing_scheme(self):
        """Test that an origin without scheme is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(ALLOWED_ORIGINS=["finops.example.com"])

        assert "scheme" in str(exc_info.value)

    def test_production_requires_https(self):
        """Test that production rejects plain HTTP origins other than localhost."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(APP_ENV="production", ALLOWED_ORIGINS=["http://finops.example.com"])

        assert "HTTPS" in str(exc_info.value)

    def test_production_allows_localhost(self):
        """Test that localhost stays allowed in production."""
        settings = Settings(
            APP_ENV="production",
            ALLOWED_ORIGINS=["https://finops.example.com", "http://localhost:3000"],
        )

        assert len(settings.ALLOWED_ORIGINS) == 2


class TestPipelineSettings:
    """Test drift tick and remediation settings."""

    def test_defaults(self):
        """Test default execution mode and timeout."""
        settings = Settings()

        assert settings.DEFAULT_EXECUTION_MODE == "manual"
        assert settings.REMEDIATION_TIMEOUT_SECONDS > 0
        assert settings.MAX_SNOOZE_DAYS >= 1

    def test_reject_unknown_execution_mode(self):
        """Test that only manual and automated are accepted."""
        with pytest.raises(ValidationError):
            Settings(DEFAULT_EXECUTION_MODE="yolo")

    def test_reject_non_positive_timeout(self):
        """Test that remediation calls must be bounded by a positive timeout."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(REMEDIATION_TIMEOUT_SECONDS=0)

        assert "REMEDIATION_TIMEOUT_SECONDS" in str(exc_info.value)
