"""Unit tests for config.py - Configuration management."""

import os
from unittest.mock import patch

import pytest

from config import (
    Config,
    ConnectionProfile,
    PollerConfig,
    ReconcilerConfig,
)
from errors import InvalidStateError


class TestConnectionProfile:
    """Tests for ConnectionProfile class."""

    def test_default_values(self):
        """Test default configuration values."""
        profile = ConnectionProfile()
        assert profile.name == "default"
        assert profile.hostname == "localhost"
        assert profile.username == "admin"
        assert profile.password == ""
        assert profile.validate_certs is True
        assert profile.timeout == 60

    def test_password_not_in_repr(self):
        profile = ConnectionProfile(password="topsecret")
        assert "topsecret" not in repr(profile)

    def test_from_env(self):
        """Test loading a profile from environment variables."""
        env_vars = {
            "ONTAP_PROFILE_NAME": "cluster4",
            "ONTAP_HOST": "10.193.1.1",
            "ONTAP_USER": "vsadmin",
            "ONTAP_PASSWORD": "netapp1!",
            "ONTAP_VALIDATE_CERTS": "false",
            "ONTAP_TIMEOUT": "30",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            profile = ConnectionProfile.from_env()
            assert profile.name == "cluster4"
            assert profile.hostname == "10.193.1.1"
            assert profile.username == "vsadmin"
            assert profile.password == "netapp1!"
            assert profile.validate_certs is False
            assert profile.timeout == 30

    def test_from_env_missing_password_raises(self):
        """Test that missing password raises ValueError."""
        with patch.dict(os.environ, {"ONTAP_HOST": "cluster"}, clear=True):
            with pytest.raises(ValueError, match="ONTAP_PASSWORD"):
                ConnectionProfile.from_env()

    def test_from_dict_requires_password(self):
        with pytest.raises(ValueError, match="must set a password"):
            ConnectionProfile.from_dict({"name": "cluster4", "hostname": "x"})


class TestPollerConfig:
    """Tests for PollerConfig class."""

    def test_default_values(self):
        cfg = PollerConfig()
        assert cfg.interval == 3.0
        assert cfg.timeout == 120.0

    def test_from_env(self):
        with patch.dict(os.environ, {"POLL_INTERVAL": "1.5", "POLL_TIMEOUT": "10"}):
            cfg = PollerConfig.from_env()
            assert cfg.interval == 1.5
            assert cfg.timeout == 10.0


class TestReconcilerConfig:
    """Tests for ReconcilerConfig class."""

    def test_default_values(self):
        cfg = ReconcilerConfig()
        assert cfg.max_concurrent_reconciles == 5
        assert cfg.state_file == "ontap-state.json"
        assert cfg.operation_timeout is None

    def test_from_env(self):
        env_vars = {
            "MAX_CONCURRENT_RECONCILES": "8",
            "STATE_FILE": "/tmp/state.json",
            "OPERATION_TIMEOUT": "300",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = ReconcilerConfig.from_env()
            assert cfg.max_concurrent_reconciles == 8
            assert cfg.state_file == "/tmp/state.json"
            assert cfg.operation_timeout == 300.0


class TestConfig:
    """Tests for the main Config class."""

    def test_from_env(self):
        env_vars = {
            "ONTAP_PASSWORD": "secret",
            "ONTAP_PROFILE_NAME": "cluster4",
            "LOG_LEVEL": "DEBUG",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = Config.from_env()
            assert list(cfg.profiles) == ["cluster4"]
            assert cfg.default_profile == "cluster4"
            assert cfg.log_level == "DEBUG"
            assert cfg.get_profile().password == "secret"

    def test_from_file(self, tmp_path):
        """Test loading configuration from a YAML file."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "connection_profiles:\n"
            "  - name: cluster4\n"
            "    hostname: 10.0.0.1\n"
            "    password: secret\n"
            "    validate_certs: false\n"
            "  - name: cluster5\n"
            "    hostname: 10.0.0.2\n"
            "    password: other\n"
            "poller:\n"
            "  interval: 5\n"
            "reconciler:\n"
            "  state_file: state.json\n"
            "  operation_timeout: 60\n"
        )
        cfg = Config.from_file(str(path))

        assert set(cfg.profiles) == {"cluster4", "cluster5"}
        assert cfg.default_profile == "cluster4"
        assert cfg.get_profile("cluster5").hostname == "10.0.0.2"
        assert cfg.get_profile().validate_certs is False
        assert cfg.poller.interval == 5.0
        assert cfg.poller.timeout == 120.0
        assert cfg.reconciler.state_file == "state.json"
        assert cfg.reconciler.operation_timeout == 60.0

    def test_from_file_empty_sections(self, tmp_path):
        """Test that empty poller/reconciler keys fall back to defaults."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "connection_profiles:\n"
            "  - name: cluster4\n"
            "    password: secret\n"
            "poller:\n"
            "reconciler:\n"
        )
        cfg = Config.from_file(str(path))

        assert cfg.poller == PollerConfig()
        assert cfg.reconciler == ReconcilerConfig()

    def test_from_file_without_profiles_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("poller:\n  interval: 1\n")
        with pytest.raises(ValueError, match="No connection_profiles"):
            Config.from_file(str(path))

    def test_unknown_profile_raises(self, config):
        with pytest.raises(InvalidStateError, match="Unknown connection profile"):
            config.get_profile("missing")
