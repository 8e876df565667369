"""Tests for broker settings and .env loading."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from credential_broker.config import (
    DEFAULT_ACTIVE_LICENSE_RANGE,
    DEFAULT_CONFIG_RANGE,
    GOOGLE_SERVICE_ACCOUNT,
    BrokerSettings,
    _load_env_file,
    get_credential_status,
)


class TestBrokerSettings:
    """Test reading settings from the environment."""

    def test_requires_spreadsheet_id(self):
        """Should raise error when BROKER_SPREADSHEET_ID is not set."""
        with (
            patch.dict(os.environ, {}, clear=True),
            pytest.raises(ValueError, match="BROKER_SPREADSHEET_ID"),
        ):
            BrokerSettings.from_env()

    def test_defaults(self):
        """Should fall back to the default ranges and key path."""
        with patch.dict(os.environ, {"BROKER_SPREADSHEET_ID": "sheet-123"}, clear=True):
            settings = BrokerSettings.from_env()
        assert settings.spreadsheet_id == "sheet-123"
        assert settings.config_range == DEFAULT_CONFIG_RANGE
        assert settings.active_license_range == DEFAULT_ACTIVE_LICENSE_RANGE
        assert settings.service_account_path == GOOGLE_SERVICE_ACCOUNT
        assert settings.token_url is None
        assert settings.safety_margin == 300

    def test_overrides(self):
        """Should read every setting from its environment variable."""
        env = {
            "BROKER_SPREADSHEET_ID": "sheet-123",
            "BROKER_SERVICE_ACCOUNT_KEY": "/keys/broker.json",
            "BROKER_CONFIG_RANGE": "Config!A1:A3",
            "BROKER_LICENSE_LIST_RANGE": "Licenses!A2:B",
            "BROKER_ACTIVE_LICENSE_RANGE": "Licenses!D1:E1",
            "BROKER_LICENSE_SERVER_RANGE": "Licenses!G1",
            "BROKER_TOKEN_URL": "https://token.example/token",
            "BROKER_TOKEN_SAFETY_MARGIN": "120",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = BrokerSettings.from_env()
        assert settings.service_account_path == Path("/keys/broker.json")
        assert settings.config_range == "Config!A1:A3"
        assert settings.license_list_range == "Licenses!A2:B"
        assert settings.active_license_range == "Licenses!D1:E1"
        assert settings.license_server_range == "Licenses!G1"
        assert settings.token_url == "https://token.example/token"
        assert settings.safety_margin == 120.0

    def test_invalid_safety_margin(self):
        env = {"BROKER_SPREADSHEET_ID": "sheet-123", "BROKER_TOKEN_SAFETY_MARGIN": "soon"}
        with patch.dict(os.environ, env, clear=True), pytest.raises(ValueError, match="number"):
            BrokerSettings.from_env()

    def test_negative_safety_margin(self):
        """Should reject a margin that would put the boundary after expiry."""
        env = {"BROKER_SPREADSHEET_ID": "sheet-123", "BROKER_TOKEN_SAFETY_MARGIN": "-5"}
        with patch.dict(os.environ, env, clear=True), pytest.raises(ValueError, match="negative"):
            BrokerSettings.from_env()


class TestEnvFile:
    """Test .env parsing."""

    def test_missing_file(self, tmp_path):
        assert _load_env_file(tmp_path / ".env") == {}

    def test_parses_and_strips_quotes(self, tmp_path):
        """Should skip comments and blank lines and strip surrounding quotes."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# broker settings\n"
            "\n"
            "BROKER_SPREADSHEET_ID='sheet-123'\n"
            'BROKER_CONFIG_RANGE="Config!A1:A3"\n'
            "not a setting\n"
        )
        with patch.dict(os.environ, {}, clear=True):
            loaded = _load_env_file(env_file)
            assert os.environ["BROKER_SPREADSHEET_ID"] == "sheet-123"
        assert loaded == {
            "BROKER_SPREADSHEET_ID": "sheet-123",
            "BROKER_CONFIG_RANGE": "Config!A1:A3",
        }

    def test_environment_takes_precedence(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("BROKER_SPREADSHEET_ID=from-file\n")
        with patch.dict(os.environ, {"BROKER_SPREADSHEET_ID": "from-env"}, clear=True):
            loaded = _load_env_file(env_file)
            assert os.environ["BROKER_SPREADSHEET_ID"] == "from-env"
        assert loaded == {}


class TestCredentialStatus:
    def test_reports_key_path(self, key_file):
        env = {"BROKER_SPREADSHEET_ID": "sheet-123", "BROKER_SERVICE_ACCOUNT_KEY": str(key_file)}
        with patch.dict(os.environ, env, clear=True):
            status = get_credential_status()
        assert status["spreadsheet_id"] is True
        assert status["service_account"] == {"path": str(key_file), "exists": True}
