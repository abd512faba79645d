"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
Components never read this directly; they receive explicit settings records
(TokenSettings, RepositorySettings) assembled from it at startup.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class PaywireConfig(BaseSettings):
    """Paywire transfer ledger configuration"""

    # Database configuration
    database_path: str = "paywire.db"  # ":memory:" for a throwaway store
    table_prefix: str = ""
    database_timeout: float = 30.0  # Seconds to wait for the write lock

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Security configuration
    token_secret: str = "change-me-in-production"
    token_ttl_seconds: int = 24 * 60 * 60
    token_issuer: str = ""  # Empty = issuer claim is not checked
    password_min_length: int = 5

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    opening_balance: str = "500.00"  # Credited to every newly registered account
    history_limit: int = 100  # Max transfers returned by the history listing

    class Config:
        env_prefix = "PAYWIRE_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = PaywireConfig()


def get_config() -> PaywireConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PaywireConfig:
    """Reload configuration from environment"""
    global config
    config = PaywireConfig()
    return config
