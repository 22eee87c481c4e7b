"""
Unit tests for configuration loading and server startup.
uvicorn.run is replaced so no socket is ever bound.
"""

import logging

import pytest
from pydantic import ValidationError

import codebuild_sample
from codebuild_sample import (
    Settings,
    get_settings,
    main,
    setup_logging,
    utc_timestamp,
)


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Clear cached settings and keep the root logger untouched."""
    get_settings.cache_clear()
    monkeypatch.setattr(codebuild_sample, "setup_logging", lambda level: None)
    yield
    get_settings.cache_clear()


@pytest.fixture
def server_calls(monkeypatch):
    calls = []
    monkeypatch.setattr(
        codebuild_sample.uvicorn, "run", lambda app, **kwargs: calls.append(kwargs)
    )
    return calls


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("PORT", "APP_ENV", "NODE_ENV", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.port == 3000
        assert settings.environment == "development"
        assert settings.log_level == "INFO"
        assert not settings.is_test

    def test_port_from_environment(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")

        assert Settings(_env_file=None).port == 8080

    def test_empty_port_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("PORT", "")

        assert Settings(_env_file=None).port == 3000

    def test_empty_node_env_falls_back_to_development(self, monkeypatch):
        monkeypatch.delenv("APP_ENV", raising=False)
        monkeypatch.setenv("NODE_ENV", "")

        assert Settings(_env_file=None).environment == "development"

    def test_invalid_port_raises(self, monkeypatch):
        monkeypatch.setenv("PORT", "not-a-port")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_explicit_environment(self):
        assert Settings(_env_file=None, environment="test").is_test


class TestMain:
    def test_main_starts_server_on_configured_port(
        self, monkeypatch, server_calls, caplog
    ):
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("PORT", "4321")
        caplog.set_level(logging.INFO, logger="codebuild_sample")

        main()

        assert server_calls == [{"host": "0.0.0.0", "port": 4321}]
        assert "Server running on port 4321" in caplog.text

    def test_main_skips_server_in_test_environment(self, monkeypatch, server_calls):
        monkeypatch.setenv("APP_ENV", "test")

        main()

        assert server_calls == []

    def test_node_env_test_also_skips_server(self, monkeypatch, server_calls):
        monkeypatch.delenv("APP_ENV", raising=False)
        monkeypatch.setenv("NODE_ENV", "test")

        main()

        assert server_calls == []


def test_utc_timestamp_format():
    timestamp = utc_timestamp()

    # 2026-10-19T12:00:00.123Z
    assert len(timestamp) == 24
    assert timestamp[10] == "T"
    assert timestamp.endswith("Z")


def test_setup_logging_adds_a_single_handler():
    saved_handlers = logging.root.handlers[:]
    saved_level = logging.root.level
    logging.root.handlers.clear()
    try:
        setup_logging("DEBUG")
        setup_logging("WARNING")

        assert len(logging.root.handlers) == 1
        assert logging.root.level == logging.WARNING
    finally:
        logging.root.handlers[:] = saved_handlers
        logging.root.setLevel(saved_level)
