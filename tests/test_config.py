"""Unit tests for config.py - Configuration management."""

import os
import pytest
from unittest.mock import patch

import config
from config import (
    Config,
    ControllerConfig,
    DatabaseConfig,
    LoggingConfig,
    StoreConfig,
    get_config,
    load_config,
    reset_config,
)


class TestStoreConfig:
    """Tests for StoreConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = StoreConfig()
        assert cfg.api_server == "https://kubernetes.default.svc"
        assert cfg.token == ""
        assert cfg.verify_ssl is True
        assert cfg.request_timeout == 30

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            "KUBE_API_SERVER": "https://10.0.0.1:6443",
            "KUBE_TOKEN": "sekret",
            "KUBE_VERIFY_SSL": "false",
            "KUBE_REQUEST_TIMEOUT": "5",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = StoreConfig.from_env()
            assert cfg.api_server == "https://10.0.0.1:6443"
            assert cfg.token == "sekret"
            assert cfg.verify_ssl is False
            assert cfg.request_timeout == 5

    def test_token_not_in_repr(self):
        """Test that the bearer token is not exposed in repr."""
        cfg = StoreConfig(token="secret123")
        assert "secret123" not in repr(cfg)


class TestControllerConfig:
    """Tests for ControllerConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = ControllerConfig()
        assert cfg.poll_timeout == 60.0
        assert cfg.poll_interval == 1.0
        assert cfg.optimistic_concurrency is False
        assert cfg.await_updates is True

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            "CONVERGE_TIMEOUT": "120",
            "CONVERGE_INTERVAL": "0.5",
            "OPTIMISTIC_CONCURRENCY": "yes",
            "AWAIT_UPDATES": "0",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = ControllerConfig.from_env()
            assert cfg.poll_timeout == 120.0
            assert cfg.poll_interval == 0.5
            assert cfg.optimistic_concurrency is True
            assert cfg.await_updates is False

    def test_from_env_defaults(self):
        """Test defaults when environment variables are not set."""
        with patch.dict(os.environ, {}, clear=True):
            cfg = ControllerConfig.from_env()
            assert cfg == ControllerConfig()


class TestDatabaseConfig:
    """Tests for DatabaseConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = DatabaseConfig()
        assert cfg.host == "localhost"
        assert cfg.port == 5432
        assert cfg.database == "kubeconverge"
        assert cfg.user == "kubeconverge"
        assert cfg.password == ""
        assert cfg.min_pool_size == 1
        assert cfg.max_pool_size == 5

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            "DB_HOST": "envhost",
            "DB_PORT": "5434",
            "DB_NAME": "envdb",
            "DB_USER": "envuser",
            "DB_PASSWORD": "envpassword",
            "DB_MIN_POOL_SIZE": "2",
            "DB_MAX_POOL_SIZE": "8",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = DatabaseConfig.from_env()
            assert cfg.host == "envhost"
            assert cfg.port == 5434
            assert cfg.database == "envdb"
            assert cfg.user == "envuser"
            assert cfg.password == "envpassword"
            assert cfg.min_pool_size == 2
            assert cfg.max_pool_size == 8

    def test_from_env_missing_password_raises(self):
        """Test that missing password raises ValueError."""
        with patch.dict(os.environ, {"DB_PASSWORD": ""}, clear=True):
            with pytest.raises(ValueError) as exc_info:
                DatabaseConfig.from_env()
            assert "DB_PASSWORD" in str(exc_info.value)

    def test_password_not_in_repr(self):
        """Test that password is not exposed in repr."""
        cfg = DatabaseConfig(password="secret123")
        assert "secret123" not in repr(cfg)


class TestLoggingConfig:
    """Tests for LoggingConfig class."""

    def test_level_is_upper_cased(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "debug"}, clear=False):
            assert LoggingConfig.from_env().level == "DEBUG"


class TestConfig:
    """Tests for main Config class."""

    def test_default(self):
        """Test default configuration."""
        cfg = Config.default()
        assert isinstance(cfg.store, StoreConfig)
        assert isinstance(cfg.controller, ControllerConfig)
        assert isinstance(cfg.database, DatabaseConfig)
        assert isinstance(cfg.logging, LoggingConfig)

    def test_from_env(self):
        """Test loading full configuration from environment."""
        env_vars = {
            "DB_HOST": "testhost",
            "DB_PASSWORD": "testpass",
            "KUBE_API_SERVER": "https://cluster:6443",
            "CONVERGE_TIMEOUT": "30",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = Config.from_env()
            assert cfg.database.host == "testhost"
            assert cfg.database.password == "testpass"
            assert cfg.store.api_server == "https://cluster:6443"
            assert cfg.controller.poll_timeout == 30.0


class TestConfigSingleton:
    """Tests for config singleton functions."""

    def setup_method(self):
        """Reset config before each test."""
        reset_config()

    def teardown_method(self):
        """Reset config after each test."""
        reset_config()

    def test_get_config_loads_if_none(self):
        """Test get_config loads config if not loaded."""
        with patch.dict(os.environ, {"DB_PASSWORD": "testpass"}, clear=False):
            cfg = get_config()
            assert isinstance(cfg, Config)

    def test_singleton_returns_same_instance(self):
        """Test that singleton returns same instance."""
        with patch.dict(os.environ, {"DB_PASSWORD": "testpass"}, clear=False):
            cfg1 = load_config()
            cfg2 = get_config()
            assert cfg1 is cfg2

    def test_reset_config(self):
        """Test reset_config clears the singleton."""
        with patch.dict(os.environ, {"DB_PASSWORD": "testpass"}, clear=False):
            cfg1 = load_config()
            reset_config()
            assert config.config is None
            cfg2 = load_config()
            assert cfg1 is not cfg2
