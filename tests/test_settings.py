"""Tests for EnrollmentSettings."""

import pytest
from pydantic import ValidationError

from config.settings import EnrollmentSettings, get_settings, reload_settings


class TestDefaults:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ENROLL_ENVIRONMENT", raising=False)
        monkeypatch.delenv("ENROLL_STORAGE_BACKEND", raising=False)
        settings = EnrollmentSettings(_env_file=None)
        assert settings.environment == "development"
        assert settings.storage_backend == "memory"
        assert settings.min_coverage_age == 19
        assert settings.max_coverage_age == 65
        assert settings.supported_states == ["FL"]
        assert settings.lookup_timeout_seconds == 8.0
        assert settings.session_ttl_seconds == 24 * 3600

    def test_test_environment(self):
        assert EnrollmentSettings(environment="test").is_test
        assert EnrollmentSettings(environment="production").is_production


class TestEnvironmentOverrides:

    def test_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("ENROLL_STORAGE_BACKEND", "SQL")
        monkeypatch.setenv("ENROLL_MAX_COVERAGE_AGE", "70")
        monkeypatch.setenv("ENROLL_SUPPORTED_STATES", '["FL", "GA"]')
        settings = EnrollmentSettings(_env_file=None)
        assert settings.storage_backend == "sql"
        assert settings.max_coverage_age == 70
        assert settings.supported_states == ["FL", "GA"]

    def test_cached_instance(self):
        assert get_settings() is get_settings()

    def test_reload_with_overrides(self):
        settings = reload_settings(log_level="debug")
        assert settings.log_level == "DEBUG"
        assert reload_settings() is get_settings()


class TestValidation:

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            EnrollmentSettings(storage_backend="redis")

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            EnrollmentSettings(log_level="LOUD")

    def test_age_bounds_order(self):
        with pytest.raises(ValidationError):
            EnrollmentSettings(min_coverage_age=70, max_coverage_age=65)
