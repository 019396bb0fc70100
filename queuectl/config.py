"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from QUEUECTL_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="QUEUECTL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./queuectl.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20
    database_busy_timeout_seconds: float = 30.0

    # Worker Configuration
    worker_poll_interval_seconds: float = 1.0
    # Written by `worker start`, read by `worker stop`
    worker_pid_file: str = "./queuectl-workers.pid"

    # Reaper Configuration
    reaper_interval_seconds: int = 60
    reaper_stale_lock_seconds: int = 900

    # Queue defaults, seeded into the config table on first start
    default_max_retries: int = 3
    default_backoff_base: int = 2

    # Observability
    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "queuectl"
    metrics_enabled: bool = False
    prometheus_port: int = 9090
    log_level: str = "INFO"
    log_format: str = "console"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
