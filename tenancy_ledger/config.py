"""Configuration management using Pydantic Settings"""

from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./tenancy_ledger.db"

    # External Services
    notification_webhook_url: str = "http://localhost:8002/mock-mailer"

    # Service
    service_name: str = "tenancy-ledger"
    log_level: str = "INFO"
    currency: str = "KSH"

    # Billing defaults
    default_garbage_fee: Decimal = Decimal("150")

    # Tenant removal
    removal_grace_hours: int = 48
    removal_sweep_interval_seconds: float = 300.0

    # Concurrency
    tenant_lock_timeout_seconds: float = 5.0

    # HTTP Client
    http_timeout_seconds: float = 5.0
    webhook_max_retries: int = 5
    webhook_backoff_base: float = 1.0  # Exponential backoff base in seconds


settings = Settings()
