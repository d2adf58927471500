"""
Configuration management using Pydantic settings.
Loads process configuration from environment variables.

Runtime-tunable knobs (scan/email flags, burst sizing, alert threshold) live
in the ``settings`` table instead, so they can change without a restart.
"""
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VendorConfig(BaseSettings):
    """Twelve Data API configuration"""
    api_key: Optional[str] = Field(None, alias="TWELVEDATA__API_KEY")
    base_url: str = Field("https://api.twelvedata.com", alias="TWELVEDATA__BASE_URL")
    output_size: int = Field(100, alias="TWELVEDATA__OUTPUT_SIZE")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class SmtpConfig(BaseSettings):
    """SMTP email configuration (optional: alerts are skipped when unset)"""
    server: Optional[str] = Field(None, alias="SMTP__SERVER")
    port: Optional[int] = Field(None, alias="SMTP__PORT")
    user: Optional[str] = Field(None, alias="SMTP__USER")
    password: Optional[str] = Field(None, alias="SMTP__PASSWORD")
    from_email: Optional[str] = Field(None, alias="SMTP__FROM_EMAIL")
    to_email: Optional[str] = Field(None, alias="SMTP__TO_EMAIL")
    use_ssl: Optional[bool] = Field(None, alias="SMTP__USE_SSL")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_configured(self) -> bool:
        return bool(self.server and self.port and self.user and self.password)

    @property
    def ssl_enabled(self) -> bool:
        """Implicit TLS when requested, or when talking to port 465"""
        if self.use_ssl is not None:
            return self.use_ssl
        return self.port == 465


class SchedulerConfig(BaseSettings):
    """Scan scheduler configuration"""
    grace_seconds: float = Field(2.0, alias="SCHEDULER__GRACE_SECONDS")
    lock_key: int = Field(424242, alias="SCHEDULER__LOCK_KEY")
    autostart: bool = Field(True, alias="SCHEDULER__AUTOSTART")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class DatabaseConfig(BaseSettings):
    """Database configuration"""
    user: Optional[str] = Field(None, alias="POSTGRES_USER")
    password: Optional[str] = Field(None, alias="POSTGRES_PASSWORD")
    db: Optional[str] = Field(None, alias="POSTGRES_DB")
    host: str = Field("localhost", alias="POSTGRES_HOST")
    port: int = Field(5432, alias="POSTGRES_PORT")
    url_override: Optional[str] = Field(None, alias="DATABASE_URL")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def url(self) -> str:
        """Get database connection URL"""
        if self.url_override:
            return self.url_override
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"


class AppConfig(BaseSettings):
    """Main application configuration"""
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_structured: bool = Field(True, alias="LOG_STRUCTURED")
    vendor: VendorConfig = Field(default_factory=VendorConfig)
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def validate_all(self) -> None:
        """
        Validate configuration sections needed at startup.

        A missing vendor API key is deliberately not checked here: the
        scheduler still starts and every fetch fails until it is configured.
        """
        errors = []

        if not self.database.url_override:
            if not self.database.user:
                errors.append("POSTGRES_USER is required")
            if not self.database.password:
                errors.append("POSTGRES_PASSWORD is required")
            if not self.database.db:
                errors.append("POSTGRES_DB is required")

        if self.smtp.server and not self.smtp.port:
            errors.append("SMTP__PORT is required when SMTP__SERVER is set")

        if self.scheduler.grace_seconds < 0:
            errors.append("SCHEDULER__GRACE_SECONDS must not be negative")

        if errors:
            raise ValueError("Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))


# Global config instance
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create global configuration instance"""
    global _config
    if _config is None:
        _config = AppConfig()
        _config.validate_all()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (tests, CLI re-reads)"""
    global _config
    _config = None
