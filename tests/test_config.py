"""
Tests for configuration loading and validation.
"""

import pytest
from pydantic import ValidationError

from api.config import APIConfig
from utilities.config import AppConfig


class TestAppConfig:
    """Test cases for AppConfig."""

    def test_defaults(self):
        config = AppConfig(_env_file=None)

        assert config.mongodb_url == "mongodb://localhost:27017"
        assert config.reviews_collection == "reviews"
        assert config.get_log_file_path() is None

    def test_log_level_normalized(self):
        assert AppConfig(log_level="debug", _env_file=None).log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            AppConfig(log_level="loud", _env_file=None)

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            AppConfig(log_format="xml", _env_file=None)

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("MONGODB_DATABASE", "reviews_test")

        assert AppConfig(_env_file=None).mongodb_database == "reviews_test"


class TestAPIConfig:
    """Test cases for APIConfig."""

    def test_defaults(self):
        config = APIConfig(_env_file=None)

        assert config.port == 5000
        assert config.default_page_size == 5
        assert config.jwt_algorithm == "HS256"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", "from-environment-secret-value-long-enough")

        assert APIConfig(_env_file=None).jwt_secret == "from-environment-secret-value-long-enough"
