"""Tests for configuration management.

Tests cover:
- Defaults and loading from PROOFPACK_ environment variables
- Validation of invalid configuration
- Production environment constraints
- Settings cache behavior
"""

import logging
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from proofpack.core.config import (
    ConfigValidationError,
    Environment,
    S3Settings,
    Settings,
    validate_settings,
)
from proofpack.core.settings import clear_settings_cache, configure_logging, get_settings


@pytest.fixture(autouse=True)
def clean_settings_cache():
    """Clear settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def production_env():
    """Production environment variables that pass every check."""
    return {
        "PROOFPACK_ENVIRONMENT": "production",
        "PROOFPACK_IDENTITY__CLIENT_SECRET": "introspection-secret",
        "PROOFPACK_DISCLOSURE__IP_HASH_SALT": "a-long-random-salt",
    }


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

        assert settings.environment is Environment.DEV
        assert settings.is_development
        assert settings.scoring.max_recompute_attempts == 5
        assert settings.scoring.expiry_warning_days == 30
        assert settings.review.block_approval_on_critical_findings is True
        assert settings.review.require_low_score_justification is True
        assert settings.disclosure.default_share_ttl_days == 30
        assert settings.worker.queues == ["default"]


class TestEnvironmentLoading:
    """Tests for loading from environment variables."""

    def test_nested_settings(self):
        with patch.dict(
            os.environ,
            {
                "PROOFPACK_DATABASE__POOL_SIZE": "20",
                "PROOFPACK_SCORING__EXPIRY_WARNING_DAYS": "45",
                "PROOFPACK_REVIEW__BLOCK_APPROVAL_ON_CRITICAL_FINDINGS": "false",
            },
            clear=True,
        ):
            settings = Settings()

        assert settings.database.pool_size == 20
        assert settings.scoring.expiry_warning_days == 45
        assert settings.review.block_approval_on_critical_findings is False

    def test_log_level_is_normalized(self):
        with patch.dict(os.environ, {"PROOFPACK_LOG_LEVEL": "debug"}, clear=True):
            settings = Settings()

        assert settings.log_level == "DEBUG"

    def test_unknown_log_level(self):
        with (
            patch.dict(os.environ, {"PROOFPACK_LOG_LEVEL": "chatty"}, clear=True),
            pytest.raises(ValidationError),
        ):
            Settings()

    def test_out_of_range_value(self):
        with (
            patch.dict(os.environ, {"PROOFPACK_SCORING__MAX_RECOMPUTE_ATTEMPTS": "0"}, clear=True),
            pytest.raises(ValidationError),
        ):
            Settings()

    def test_invalid_bucket_name(self):
        with pytest.raises(ValidationError):
            S3Settings(bucket="ab")


class TestProductionConstraints:
    """Tests for production-only checks."""

    def test_debug_not_allowed(self, production_env):
        with (
            patch.dict(os.environ, {**production_env, "PROOFPACK_DEBUG": "true"}, clear=True),
            pytest.raises(ValidationError),
        ):
            Settings()

    def test_valid_production(self, production_env):
        with patch.dict(os.environ, production_env, clear=True):
            settings = Settings()

        assert settings.is_production
        validate_settings(settings)

    def test_client_secret_required(self, production_env):
        env = {k: v for k, v in production_env.items() if "CLIENT_SECRET" not in k}
        with patch.dict(os.environ, env, clear=True):
            settings = Settings()

        with pytest.raises(ConfigValidationError) as exc_info:
            validate_settings(settings)
        assert exc_info.value.field == "identity.client_secret"

    def test_default_salt_rejected(self, production_env):
        env = {k: v for k, v in production_env.items() if "SALT" not in k}
        with patch.dict(os.environ, env, clear=True):
            settings = Settings()

        with pytest.raises(ConfigValidationError) as exc_info:
            validate_settings(settings)
        assert exc_info.value.field == "disclosure.ip_hash_salt"

    def test_notifications_need_endpoint(self):
        with patch.dict(os.environ, {"PROOFPACK_NOTIFICATIONS__ENDPOINT_URL": ""}, clear=True):
            settings = Settings()

        with pytest.raises(ConfigValidationError):
            validate_settings(settings)


class TestGetSettings:
    """Tests for the cached accessor."""

    def test_cached(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_settings() is get_settings()

    def test_invalid_config_exits(self):
        with (
            patch.dict(os.environ, {"PROOFPACK_API_PORT": "70000"}, clear=True),
            pytest.raises(SystemExit),
        ):
            get_settings()

    def test_failed_runtime_validation_exits(self, production_env):
        env = {k: v for k, v in production_env.items() if "SALT" not in k}
        with patch.dict(os.environ, env, clear=True), pytest.raises(SystemExit):
            get_settings()

    def test_configure_logging(self):
        with patch("proofpack.core.settings.logging.basicConfig") as basic_config:
            configure_logging(Settings(log_level="WARNING"))

        assert basic_config.call_args.kwargs["level"] == logging.WARNING
