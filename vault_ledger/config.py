"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings


class VaultLedgerConfig(BaseSettings):
    """Vault ledger engine configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "vault_ledger.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None  # If None, logs to stdout

    # Fee and bonus rates
    withdrawal_fee_rate: Decimal = Decimal("0.005")
    parking_incentive_rate: Decimal = Decimal("0.0025")
    vesting_bonus_rate: Decimal = Decimal("0.02")

    # Business rules
    max_deposit_amount: Decimal = Decimal("1000000.00")
    pension_lock_years: int = 1
    vesting_period_years: int = 10
    retirement_min_years_ahead: int = 10
    retirement_max_years_ahead: int = 80
    parking_incentive_cooldown_days: int = 0  # 0 disables the cooldown

    # Atomicity layer
    conflict_retries: int = 1

    class Config:
        env_prefix = "VAULT_LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = VaultLedgerConfig()


def get_config() -> VaultLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> VaultLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = VaultLedgerConfig()
    return config
