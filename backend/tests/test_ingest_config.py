"""Tests for ingestion configuration loading and validation."""

import pytest
from cryptography.fernet import Fernet

from config.ingest_config import DEFAULT_DATABASE_URL, IngestConfig, load_config

ENV_VARS = [
    "DATABASE_URL",
    "ENCRYPTION_KEY",
    "GMAIL_POLL_INTERVAL",
    "GMAIL_INITIAL_SYNC_DAYS",
    "GMAIL_PAGE_SIZE",
    "TOKEN_REFRESH_BUFFER_SECONDS",
    "OAUTH_REDIRECT_PORT",
    "OAUTH_CALLBACK_TIMEOUT",
    "OAUTH_USE_PKCE",
    "INSERT_RETRY_LIMIT",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    config = load_config()

    assert config.database_url == DEFAULT_DATABASE_URL
    assert config.poll_interval_seconds == 30.0
    assert config.initial_sync_days == 90
    assert config.page_size == 50
    assert config.token_refresh_buffer_seconds == 60
    assert config.oauth_use_pkce is True
    assert config.insert_retry_limit == 0
    assert config.cipher is None
    assert config.redirect_uri == "http://localhost:8249/callback"


def test_environment_overrides(clean_env):
    key = Fernet.generate_key().decode()
    clean_env.setenv("DATABASE_URL", "sqlite://")
    clean_env.setenv("ENCRYPTION_KEY", key)
    clean_env.setenv("GMAIL_POLL_INTERVAL", "5")
    clean_env.setenv("OAUTH_REDIRECT_PORT", "9000")
    clean_env.setenv("OAUTH_USE_PKCE", "false")
    clean_env.setenv("INSERT_RETRY_LIMIT", "3")

    config = load_config()

    assert config.database_url == "sqlite://"
    assert config.poll_interval_seconds == 5.0
    assert config.redirect_uri == "http://localhost:9000/callback"
    assert config.oauth_use_pkce is False
    assert config.insert_retry_limit == 3
    assert config.cipher is not None


@pytest.mark.parametrize(
    "overrides",
    [
        {"database_url": ""},
        {"poll_interval_seconds": 0},
        {"initial_sync_days": 0},
        {"page_size": 501},
        {"token_refresh_buffer_seconds": -1},
        {"oauth_redirect_port": 70000},
        {"insert_retry_limit": -1},
        {"encryption_key": "not-a-fernet-key"},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        IngestConfig(**overrides)
