"""Configuration module"""
from signal_scanner.config.settings import (
    AppConfig,
    VendorConfig,
    SmtpConfig,
    SchedulerConfig,
    DatabaseConfig,
    get_config,
    reset_config,
)

__all__ = [
    "AppConfig",
    "VendorConfig",
    "SmtpConfig",
    "SchedulerConfig",
    "DatabaseConfig",
    "get_config",
    "reset_config",
]
