"""
Configuration module for kubeconverge.

Loads configuration from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class StoreConfig:
    """Connection settings for the Kubernetes API server."""

    api_server: str = "https://kubernetes.default.svc"
    token: str = field(default="", repr=False)  # Never log token
    verify_ssl: bool = True
    request_timeout: int = 30  # seconds

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            api_server=os.getenv("KUBE_API_SERVER", "https://kubernetes.default.svc"),
            token=os.getenv("KUBE_TOKEN", ""),
            verify_ssl=_env_bool("KUBE_VERIFY_SSL", "true"),
            request_timeout=int(os.getenv("KUBE_REQUEST_TIMEOUT", "30")),
        )


@dataclass
class ControllerConfig:
    """Resource controller and convergence polling configuration."""

    poll_timeout: float = 60.0  # seconds
    poll_interval: float = 1.0  # seconds between reads
    optimistic_concurrency: bool = False  # guard patches with resourceVersion
    await_updates: bool = True  # poll for convergence after patches too

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            poll_timeout=float(os.getenv("CONVERGE_TIMEOUT", "60")),
            poll_interval=float(os.getenv("CONVERGE_INTERVAL", "1")),
            optimistic_concurrency=_env_bool("OPTIMISTIC_CONCURRENCY", "false"),
            await_updates=_env_bool("AWAIT_UPDATES", "true"),
        )


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration for the state store."""

    host: str = "localhost"
    port: int = 5432
    database: str = "kubeconverge"
    user: str = "kubeconverge"
    password: str = field(default="", repr=False)  # Never log password
    min_pool_size: int = 1
    max_pool_size: int = 5

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        password = os.getenv("DB_PASSWORD", "")
        if not password:
            raise ValueError(
                "DB_PASSWORD environment variable must be set. "
                "Database password cannot be empty."
            )

        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "kubeconverge"),
            user=os.getenv("DB_USER", "kubeconverge"),
            password=password,
            min_pool_size=int(os.getenv("DB_MIN_POOL_SIZE", "1")),
            max_pool_size=int(os.getenv("DB_MAX_POOL_SIZE", "5")),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(level=os.getenv("LOG_LEVEL", "INFO").upper())


@dataclass
class Config:
    """Main configuration object."""

    store: StoreConfig
    controller: ControllerConfig
    database: DatabaseConfig
    logging: LoggingConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            store=StoreConfig.from_env(),
            controller=ControllerConfig.from_env(),
            database=DatabaseConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            store=StoreConfig(),
            controller=ControllerConfig(),
            database=DatabaseConfig(),
            logging=LoggingConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
