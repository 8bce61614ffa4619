"""
Shared fixtures for the proxy tests.

Everything runs in-process against an in-memory bucket with a 1 KiB
chunk size, so multi-chunk streaming is exercised with small payloads.
"""

import pytest
from fastapi.testclient import TestClient

from storage_proxy.config.settings import Settings, get_settings
from storage_proxy.main import create_app

from tests.fakes import TEST_PREFIX, RecordingBucket


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        storage_mock_mode=True,
        key_prefix=TEST_PREFIX,
        chunk_size_kb=1,
    )


@pytest.fixture
def bucket() -> RecordingBucket:
    return RecordingBucket()


@pytest.fixture
def app(settings, bucket):
    return create_app(settings, bucket=bucket)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def clean_settings_cache():
    """Reset the cached settings around a test that reads the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
