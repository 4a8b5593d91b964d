"""
Options Flow — Configuration Management

Pydantic Settings: loads from .env, validates all configuration at startup.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Core ──
    app_env: str = "development"
    app_debug: bool = True

    # ── Redis (ticker registry, quote cache, Celery broker) ──
    redis_url: str = "redis://localhost:6379/0"
    ticker_registry_key: str = "TICKER_MASTER_LIST"

    # ── History store (SQLite) ──
    history_db_path: str = "data/analysis_history.db"
    history_write_timeout: float = 15.0  # seconds, batch insert budget

    # ── Nasdaq chain source ──
    nasdaq_base_url: str = "https://api.nasdaq.com/api/quote"
    chain_row_limit: int = 1000
    chain_fetch_timeout: float = 10.0  # seconds per ticker
    quote_cache_ttl: int = 60  # seconds, /quote pass-through cache

    # ── Batch run ──
    analysis_interval_seconds: int = 60 * 30
    max_concurrent_fetches: int = 4
    run_timeout_seconds: float = 240.0

    # ── Signal thresholds ──
    signal_volume_threshold: int = 500  # V/OI contract volume that counts as new money
    voi_min_volume: int = 100  # contracts below this volume are ignored for max V/OI

    # ── CORS ──
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def task_soft_time_limit(self) -> int:
        """Celery soft limit for one batch: run budget plus the write budget and slack."""
        return int(self.run_timeout_seconds + self.history_write_timeout) + 30


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance, created once."""
    return Settings()
