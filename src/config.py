"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All configuration is loaded from RESTWELL_* environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Restwell"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Sync policy ---
    staleness_window_seconds: int = 3600
    sync_lookback_days: int = 7
    provider_timeout_seconds: float = 20.0

    # --- Persistence ---
    database_url: str | None = None  # postgres DSN; in-memory stores when unset

    # --- Providers ---
    google_fit_access_token: str = ""

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = SettingsConfigDict(
        env_prefix="RESTWELL_", env_file=".env", env_file_encoding="utf-8"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
