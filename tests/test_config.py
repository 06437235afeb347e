"""
Tests for Settings validation.
"""

import pytest

from iap_manager.config import ConfigurationError, Settings, get_settings


class TestSettings:
    """Tests for fail-fast configuration."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.entitlement_key_prefix == "Purchased-"
        assert settings.coalesce_product_requests is True

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("IAP_ENTITLEMENT_KEY_PREFIX", "Owned-")
        assert Settings(_env_file=None).entitlement_key_prefix == "Owned-"

    def test_empty_prefix_rejected(self):
        with pytest.raises(ConfigurationError, match="ENTITLEMENT_KEY_PREFIX"):
            Settings(_env_file=None, entitlement_key_prefix="")

    def test_bad_log_level_rejected(self):
        with pytest.raises(ConfigurationError, match="IAP_LOG_LEVEL"):
            Settings(_env_file=None, log_level="LOUD")

    def test_bad_log_format_rejected(self):
        with pytest.raises(ConfigurationError, match="IAP_LOG_FORMAT"):
            Settings(_env_file=None, log_format="xml")

    def test_get_settings(self):
        assert get_settings() is get_settings()
