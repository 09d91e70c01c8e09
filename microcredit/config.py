"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class MicrocreditConfig(BaseSettings):
    """Microcredit loan core configuration"""

    # Database configuration
    database_path: str = "microcredit.db"  # SQLite file, ":memory:" for ephemeral
    use_sqlite: bool = True

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_workers: int = 1

    # Security configuration
    auth_enabled: bool = True  # When False the actor comes from the X-User-Id header
    jwt_secret: str = "change-me-in-production-use-a-long-random-secret"
    jwt_algorithm: str = "HS256"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    currency_code: str = "KES"  # Display only, single currency
    amount_precision: int = 2
    max_term_months: int = 600
    transaction_reference_prefix: str = "TRANS"

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "MICROCREDIT_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = MicrocreditConfig()


def get_config() -> MicrocreditConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> MicrocreditConfig:
    """Reload configuration from environment"""
    global config
    config = MicrocreditConfig()
    return config
