"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class FundLedgerConfig(BaseSettings):
    """Fund ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="FUNDLEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage configuration
    database_path: str = "fund_ledger.db"
    use_sqlite: bool = True

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    loan_interest_rate_percent: str = "3"  # Flat monthly rate on outstanding principal
    installment_count: int = 24
    account_prefix: str = "AZH"
    account_number_width: int = 3

    # Feature flags
    enable_audit_logging: bool = True

    @property
    def interest_rate(self) -> Decimal:
        """Interest rate percent as Decimal"""
        return Decimal(self.loan_interest_rate_percent)


# Global configuration instance
config = FundLedgerConfig()


def get_config() -> FundLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> FundLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = FundLedgerConfig()
    return config
