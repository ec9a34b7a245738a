"""Tests for environment-driven configuration."""

import pytest

from config.settings import AppConfig


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("PROVIDER_BASE_URL", "PROVIDER_API_KEY", "MIN_POLL_INTERVAL", "TIMEOUT_MULTIPLIER",
                 "ADMIN_USER_IDS", "GALLERY_SERVICE_URL", "EXTRA_BANNED_TERMS", "ENABLE_CREDIT_CHECKS",
                 "API_PORT", "CREDIT_SERVICE_URL", "UNLOCKED_MODES"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestAppConfig:
    """Test cases for AppConfig."""

    def test_defaults(self, clean_env):
        config = AppConfig(load_env_file=False)

        assert config.polling.min_poll_interval == 2.0
        assert config.polling.default_timeout_multiplier == 6.0
        assert config.polling.progress_cap == 90
        assert config.credits.enabled
        assert config.gallery.base_url is None
        assert config.validate() == []

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("PROVIDER_BASE_URL", "https://gateway.example.com/api")
        clean_env.setenv("MIN_POLL_INTERVAL", "5")
        clean_env.setenv("ADMIN_USER_IDS", "alice, bob,,")
        clean_env.setenv("EXTRA_BANNED_TERMS", "gore,weapon")
        clean_env.setenv("ENABLE_CREDIT_CHECKS", "FALSE")
        clean_env.setenv("API_PORT", "9000")

        config = AppConfig(load_env_file=False)

        assert config.provider.base_url == "https://gateway.example.com/api"
        assert config.polling.min_poll_interval == 5.0
        assert config.credits.admin_user_ids == ["alice", "bob"]
        assert config.content_filter.extra_banned_terms == ["gore", "weapon"]
        assert not config.credits.enabled
        assert config.api.port == 9000

    def test_is_admin(self, clean_env):
        clean_env.setenv("ADMIN_USER_IDS", "alice")
        config = AppConfig(load_env_file=False)

        assert config.is_admin("alice")
        assert not config.is_admin("bob")
        assert not config.is_admin(None)

    def test_validate_reports_problems(self, clean_env):
        clean_env.setenv("MIN_POLL_INTERVAL", "0")
        clean_env.setenv("TIMEOUT_MULTIPLIER", "0.5")
        config = AppConfig(load_env_file=False)

        errors = config.validate()

        assert "MIN_POLL_INTERVAL must be positive" in errors
        assert "TIMEOUT_MULTIPLIER must be at least 1" in errors

    def test_unlocked_modes(self, clean_env):
        clean_env.setenv("UNLOCKED_MODES", "flux-pro-kontext, nano-banana-edit, warp-drive")
        config = AppConfig(load_env_file=False)

        assert config.credits.unlocked_modes == ["flux-pro-kontext", "nano-banana-edit", "warp-drive"]
        assert config.validate() == ["UNLOCKED_MODES names unknown mode 'warp-drive'"]
        assert config.to_dict()["credits"]["unlocked_modes"] == config.credits.unlocked_modes

    def test_to_dict_excludes_api_key(self, clean_env):
        clean_env.setenv("PROVIDER_API_KEY", "secret-key")
        config = AppConfig(load_env_file=False)

        data = config.to_dict()

        assert config.provider.api_key == "secret-key"
        assert "secret-key" not in str(data)
        assert data["polling"]["min_poll_interval"] == 2.0
