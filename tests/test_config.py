"""Tests for settings and logging setup."""

import json
import logging
from pathlib import Path

import pytest
from rich.logging import RichHandler

from networth_tracker.config import Settings
from networth_tracker.core.errors import ValidationError
from networth_tracker.logging_config import JsonFormatter, configure_logging


def test_defaults_from_empty_environment():
    """Test that an empty environment yields the defaults."""
    settings = Settings.from_env({})

    assert settings.user_id == "default"
    assert settings.db_path is None
    assert settings.price_cache_ttl == 60.0
    assert settings.log_level == "WARNING"
    assert settings.log_json is False
    assert settings.plaid_configured is False


def test_values_from_environment():
    """Test reading every supported variable."""
    settings = Settings.from_env(
        {
            "NETWORTH_USER_ID": "alice",
            "NETWORTH_DB_PATH": "/tmp/networth.db",
            "MORALIS_API_KEY": "moralis-key",
            "PLAID_CLIENT_ID": "client",
            "PLAID_SECRET": "secret",
            "PLAID_ENV": "production",
            "PRICE_CACHE_TTL": "15",
            "LOG_LEVEL": "debug",
            "LOG_JSON": "true",
        }
    )

    assert settings.user_id == "alice"
    assert settings.db_path == Path("/tmp/networth.db")
    assert settings.plaid_env == "production"
    assert settings.price_cache_ttl == 15.0
    assert settings.log_level == "DEBUG"
    assert settings.log_json is True
    assert settings.plaid_configured is True


def test_empty_values_keep_defaults():
    """Test that empty strings are treated as unset."""
    settings = Settings.from_env({"NETWORTH_USER_ID": "", "PLAID_ENV": ""})

    assert settings.user_id == "default"
    assert settings.plaid_env == "sandbox"


def test_invalid_ttl():
    """Test that a non-numeric cache TTL is rejected."""
    with pytest.raises(ValidationError, match="PRICE_CACHE_TTL"):
        Settings.from_env({"PRICE_CACHE_TTL": "soon"})


def test_secrets_hidden_from_repr():
    """Test that API keys and secrets never appear in repr output."""
    settings = Settings.from_env({"MORALIS_API_KEY": "moralis-key", "PLAID_SECRET": "plaid-secret"})

    assert "moralis-key" not in repr(settings)
    assert "plaid-secret" not in repr(settings)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLogging:
    def test_rich_handler_by_default(self, restore_root_logger):
        handler = configure_logging("debug")

        assert isinstance(handler, RichHandler)
        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_repeated_calls_replace_handler(self, restore_root_logger):
        configure_logging("INFO")
        handler = configure_logging("INFO", json_output=True)

        assert restore_root_logger.handlers == [handler]

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        configure_logging("chatty")

        assert restore_root_logger.level == logging.INFO

    def test_json_formatter(self):
        record = logging.LogRecord("networth_tracker.core", logging.WARNING, __file__, 1, "wallet %s failed", ("7",), None)

        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["logger"] == "networth_tracker.core"
        assert payload["message"] == "wallet 7 failed"
        assert payload["ts"].endswith("Z")
