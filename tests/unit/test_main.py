"""
Tests for the process entry point and listener startup.

The server loop itself is never started; serve() is replaced where a
test only cares about what main() passes to it.
"""

import logging
import socket

import pytest
from fastapi import FastAPI

from storage_proxy import main as main_module
from storage_proxy.infrastructure.storage.client import MockBucketHandle
from storage_proxy.main import bind_listener, create_app, serve

from tests.fakes import RecordingBucket


class TestBindListener:
    """Tests for opening the TCP listener."""

    def test_port_zero_binds_a_free_port(self):
        sock = bind_listener("127.0.0.1", 0)
        try:
            host, port = sock.getsockname()[:2]
            assert host == "127.0.0.1"
            assert port > 0
        finally:
            sock.close()

    def test_taken_port_raises(self):
        taken = bind_listener("127.0.0.1", 0)
        try:
            port = taken.getsockname()[1]
            with pytest.raises(OSError):
                bind_listener("127.0.0.1", port)
        finally:
            taken.close()

    def test_serve_propagates_bind_failure(self, app):
        taken = socket.create_server(("127.0.0.1", 0))
        try:
            port = taken.getsockname()[1]
            with pytest.raises(OSError):
                serve(app, "127.0.0.1", port)
        finally:
            taken.close()


class TestCreateApp:
    def test_builds_mock_bucket_from_settings(self, settings):
        app = create_app(settings)

        assert isinstance(app, FastAPI)
        assert isinstance(app.state.proxy.config.bucket, MockBucketHandle)
        assert app.state.proxy.config.prefix == "cache/"

    def test_startup_log_names_the_injected_backend(self, settings, caplog):
        """The log reports the bucket actually served, not the mock flag."""
        settings = settings.model_copy(update={"storage_mock_mode": False})

        with caplog.at_level(logging.INFO, logger="storage_proxy.main"):
            create_app(settings, bucket=RecordingBucket())

        records = [r for r in caplog.records if r.getMessage() == "FastAPI application created"]
        assert len(records) == 1
        assert records[0].backend == "RecordingBucket"
        assert not hasattr(records[0], "mock_mode")

    def test_docs_routes_are_disabled(self, app):
        """/docs must be an object key like any other path."""
        assert app.docs_url is None
        assert app.openapi_url is None


class TestMain:
    """Tests for command-line handling."""

    @pytest.fixture
    def served(self, monkeypatch, clean_settings_cache):
        calls = []

        def fake_serve(app, address, port, log_level="info"):
            calls.append({"app": app, "address": address, "port": port})

        monkeypatch.setattr(main_module, "serve", fake_serve)
        monkeypatch.setattr(main_module, "configure_logging", lambda level="INFO": None)
        for name in ("BUCKET_NAME", "KEY_PREFIX", "STORAGE_MOCK_MODE", "BIND_PORT", "BIND_ADDRESS"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.chdir("/")
        return calls

    def test_flags_override_settings(self, served):
        main_module.main(["--mock", "--prefix", "p/", "--address", "0.0.0.0", "--port", "0"])

        assert len(served) == 1
        assert served[0]["address"] == "0.0.0.0"
        assert served[0]["port"] == 0
        assert served[0]["app"].state.proxy.config.prefix == "p/"

    def test_missing_bucket_is_fatal(self, served):
        with pytest.raises(SystemExit) as exc_info:
            main_module.main([])

        assert exc_info.value.code == 2
        assert served == []
