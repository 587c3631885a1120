"""Tests for core/config.py."""

import logging

from core.config import Settings, configure_logging, load_config

CONFIG_ENV = (
    "HOST",
    "PORT",
    "ENVIRONMENT",
    "SKIP_AUTH",
    "SQLITE_DB_PATH",
    "MAX_CONCURRENT_JOBS",
    "POLL_INTERVAL",
    "CORS_ORIGINS",
    "PLUGIN_DIR",
    "LOG_LEVEL",
)


def _clear(monkeypatch):
    for name in CONFIG_ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch, tmp_path):
    _clear(monkeypatch)
    settings = load_config(str(tmp_path / "missing.env"))
    assert settings.port == 3000
    assert settings.db_path == "./data/jobs.db"
    assert settings.max_concurrent_jobs == 3
    assert settings.cors_origins == ["*"]
    assert settings.plugin_dir is None
    assert not settings.auth_disabled


def test_environment_overrides(monkeypatch, tmp_path):
    _clear(monkeypatch)
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("SKIP_AUTH", "true")
    monkeypatch.setenv("MAX_CONCURRENT_JOBS", "0")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_config(str(tmp_path / "missing.env"))
    assert settings.port == 8080
    assert settings.auth_disabled
    assert settings.max_concurrent_jobs == 1
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
    assert settings.log_level == "DEBUG"


def test_invalid_numbers_fall_back(monkeypatch, tmp_path):
    _clear(monkeypatch)
    monkeypatch.setenv("PORT", "eighty")
    monkeypatch.setenv("POLL_INTERVAL", "soon")
    settings = load_config(str(tmp_path / "missing.env"))
    assert settings.port == 3000
    assert settings.poll_interval == 1.0


def test_dotenv_file_is_loaded(monkeypatch, tmp_path):
    _clear(monkeypatch)
    # Registers SQLITE_DB_PATH with monkeypatch so the value written by
    # load_dotenv is removed on teardown
    monkeypatch.setenv("SQLITE_DB_PATH", "")
    monkeypatch.delenv("SQLITE_DB_PATH")
    env_file = tmp_path / ".env"
    env_file.write_text("SQLITE_DB_PATH=/var/lib/research/jobs.db\n")
    settings = load_config(str(env_file))
    assert settings.db_path == "/var/lib/research/jobs.db"


def test_skip_auth_needs_development():
    assert not Settings(skip_auth=True, environment="production").auth_disabled
    assert Settings(skip_auth=True, environment="dev").auth_disabled


def test_configure_logging_quiets_http_clients():
    configure_logging("DEBUG")
    assert logging.getLogger("httpx").level == logging.WARNING
