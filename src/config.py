"""
Configuration module for the Vendor Reconciler.

Loads configuration from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_API_ORIGIN = "https://api.replicated.com/vendor"


@dataclass
class VendorAPIConfig:
    """Vendor API endpoint and credentials."""

    endpoint: str = DEFAULT_API_ORIGIN
    api_token: str = field(default="", repr=False)  # Never log token
    timeout: int = 60  # seconds per request

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        api_token = os.getenv("REPLICATED_API_TOKEN", "")
        if not api_token:
            raise ValueError(
                "REPLICATED_API_TOKEN environment variable must be set. "
                "The vendor API token cannot be empty."
            )

        return cls(
            endpoint=os.getenv("REPLICATED_API_ORIGIN", "") or DEFAULT_API_ORIGIN,
            api_token=api_token,
            timeout=int(os.getenv("VENDOR_API_TIMEOUT", "60")),
        )


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration for persisted state."""

    host: str = "localhost"
    port: int = 5432
    database: str = "vendor_reconciler"
    user: str = "reconciler"
    password: str = field(default="", repr=False)  # Never log password
    min_pool_size: int = 2
    max_pool_size: int = 10

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
            database=os.getenv("DB_NAME", "vendor_reconciler"),
            user=os.getenv("DB_USER", "reconciler"),
            password=password,
            min_pool_size=int(os.getenv("DB_MIN_POOL_SIZE", "2")),
            max_pool_size=int(os.getenv("DB_MAX_POOL_SIZE", "10")),
        )


@dataclass
class ControllerConfig:
    """Driver loop configuration."""

    manifest_path: str = "resources.yaml"
    reconcile_interval: int = 60  # seconds
    max_concurrent_reconciles: int = 5
    prune: bool = True
    oneshot: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            manifest_path=os.getenv("MANIFEST_PATH", "resources.yaml"),
            reconcile_interval=int(os.getenv("RECONCILE_INTERVAL", "60")),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            prune=os.getenv("PRUNE", "true").lower() == "true",
            oneshot=os.getenv("ONESHOT", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@dataclass
class Config:
    """Main configuration object."""

    vendor_api: VendorAPIConfig
    database: DatabaseConfig
    controller: ControllerConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            vendor_api=VendorAPIConfig.from_env(),
            database=DatabaseConfig.from_env(),
            controller=ControllerConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            vendor_api=VendorAPIConfig(),
            database=DatabaseConfig(),
            controller=ControllerConfig(),
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
