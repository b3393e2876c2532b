"""
Configuration management for the Search Console pipeline
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "GSC Pipeline"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_dir: Optional[str] = "logs"  # None/empty disables file logging

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./gsc_pipeline.db"

    # Outbound HTTP
    http_timeout_seconds: float = 30.0
    # Minimum spacing between per-URL provider calls (inspection, indexing, sitemaps)
    provider_call_interval_seconds: float = 0.2

    # Search analytics sync
    gsc_lookback_days: int = 480
    gsc_row_limit: int = 25000  # Provider max rows per request
    gsc_max_start_row: int = 75000  # Hard pagination cap (3 pages at 25k)
    metrics_insert_batch_size: int = 500

    # Indexing API
    indexing_batch_size: int = 50  # URLs per submit call
    indexing_daily_limit: int = 200  # Reported against, enforced by Google
    indexing_status_batch_size: int = 20
    indexing_list_limit: int = 200

    # URL inspection
    inspection_batch_size: int = 20
    inspection_inventory_limit: int = 50
    inspection_staleness_hours: int = 24

    # Indexing schedules
    scheduler_enabled: bool = True
    schedule_poll_minutes: int = 5
    schedule_window_minutes: int = 5
    schedule_default_max_urls: int = 200

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
