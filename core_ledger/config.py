"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerConfig(BaseSettings):
    """Ledger service configuration"""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Database configuration
    database_url: str = Field(
        default="sqlite:///ledger.db",
        validation_alias=AliasChoices("LEDGER_DATABASE_URL", "DATABASE_URL"),
    )
    db_min_conns: int = Field(
        default=1,
        ge=1,
        validation_alias=AliasChoices("LEDGER_DB_MIN_CONNS", "DB_MIN_CONNS"),
    )
    db_max_conns: int = Field(
        default=10,
        ge=1,
        validation_alias=AliasChoices("LEDGER_DB_MAX_CONNS", "DB_MAX_CONNS"),
    )

    # Account domain
    account_id_min: int = 1
    account_id_max: int = 5
    seed_accounts: bool = True  # Create the default account set on startup

    # Statement configuration
    statement_size: int = Field(default=10, ge=1)

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = Field(
        default=8080,
        validation_alias=AliasChoices("LEDGER_API_PORT", "HTTP_PORT"),
    )

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    @property
    def account_ids(self) -> range:
        """Valid account ids, checked before touching storage"""
        return range(self.account_id_min, self.account_id_max + 1)


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
