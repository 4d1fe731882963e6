"""Unit tests for library settings."""

import pytest
from pydantic import ValidationError

from flcore.config import Settings
from flcore.core.constants import DEFAULT_QUERY_LIMIT


pytestmark = pytest.mark.unit


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test the default values."""
        s = Settings(_env_file=None)
        assert s.query_default_limit == DEFAULT_QUERY_LIMIT
        assert s.query_default_order == "updated_at DESC"
        assert s.global_id_app == "flcore"
        assert s.is_development

    def test_environment_prefix(self, monkeypatch):
        """Test that settings are read from FLCORE_ variables."""
        monkeypatch.setenv("FLCORE_QUERY_DEFAULT_LIMIT", "5")
        monkeypatch.setenv("FLCORE_DISABLE_CAPTCHA", "true")
        s = Settings(_env_file=None)
        assert s.query_default_limit == 5
        assert s.disable_captcha is True

    def test_short_secret_key(self):
        """Test that custom secret keys must be long enough."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, secret_key="short")
        assert Settings(_env_file=None, secret_key="k" * 32).secret_key == "k" * 32

    def test_log_level(self):
        """Test log level normalization and validation."""
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="loud")

    def test_production_requires_secret(self):
        """Test that production mode rejects the default secret key."""
        s = Settings(_env_file=None, environment="production")
        with pytest.raises(ValueError):
            _ = s.is_production
        assert Settings(_env_file=None, environment="production", secret_key="s" * 40).is_production
