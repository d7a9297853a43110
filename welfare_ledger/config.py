"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Welfare ledger engine configuration"""

    # Database configuration
    database_path: str = "welfare_ledger.db"  # SQLite file, ":memory:" for tests

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Quarterly interest rules
    interest_rate_pct: str = "3.0"  # Percent of subscription total per quarter
    interest_sanity_cap: str = "1000000"  # Larger charges are rejected as errors
    post_interest_ledger_entry: bool = True  # Post an "Interest Charge" data entry
    batch_max_workers: int = 1

    # Reporting
    currency_code: str = "INR"
    breakdown_page_size: int = 10
    fiscal_year_floor: int = 2013  # Earliest FY offered in selectors

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "WELFARE_LEDGER_"
        env_file = ".env"
        case_sensitive = False


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
