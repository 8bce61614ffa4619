"""
Unit tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from storage_proxy.config.settings import Settings, get_settings


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.key_prefix == ""
        assert settings.bind_address == "127.0.0.1"
        assert settings.bind_port == 8080
        assert settings.chunk_size == 64 * 1024
        assert not settings.storage_mock_mode

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("BUCKET_NAME", "artifacts")
        monkeypatch.setenv("KEY_PREFIX", "builds/")
        monkeypatch.setenv("BIND_PORT", "9000")
        monkeypatch.setenv("STORAGE_MOCK_MODE", "true")

        settings = Settings(_env_file=None)

        assert settings.bucket_name == "artifacts"
        assert settings.key_prefix == "builds/"
        assert settings.bind_port == 9000
        assert settings.storage_mock_mode

    def test_rejects_out_of_range_port(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, bind_port=70000)

    def test_storage_config_carries_connection_details(self):
        settings = Settings(
            _env_file=None,
            bucket_name="artifacts",
            storage_endpoint_url="http://localhost:9000",
            storage_region="auto",
            upload_spool_max_mb=2,
        )

        config = settings.storage_config()

        assert config.bucket_name == "artifacts"
        assert config.endpoint_url == "http://localhost:9000"
        assert config.region == "auto"
        assert config.spool_max_bytes == 2 * 1024 * 1024


class TestValidateRequiredFields:
    """Tests for startup configuration checks."""

    def test_bucket_required_outside_mock_mode(self):
        settings = Settings(_env_file=None)

        assert settings.validate_required_fields() == ["BUCKET_NAME"]

    def test_mock_mode_needs_no_bucket(self):
        settings = Settings(_env_file=None, storage_mock_mode=True)

        assert settings.validate_required_fields() == []

    def test_credentials_must_come_in_pairs(self):
        settings = Settings(
            _env_file=None,
            bucket_name="artifacts",
            storage_access_key_id="key-only",
        )

        assert settings.validate_required_fields() == ["STORAGE_SECRET_ACCESS_KEY"]


def test_get_settings_is_cached(clean_settings_cache):
    assert get_settings() is get_settings()
