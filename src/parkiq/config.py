"""Application configuration."""

import os
from datetime import tzinfo
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    api_base_url: str
    supabase_url: str
    supabase_anon_key: str
    environment: str = _ENVIRONMENT
    log_level: str = "INFO"
    request_timeout_seconds: float | None = None
    geo_cache_ttl_seconds: float = 10.0
    geo_debounce_seconds: float = 0.3
    geo_min_distance_degrees: float = 0.0005
    geo_search_radius_meters: int = 2000
    timer_tick_seconds: float = 1.0
    history_page_size: int = 50
    photo_store_dir: str = ".parkiq/photos"
    reminder_title: str = "Parking reminder"
    reminder_body: str = "Your parking reminder is due."
    reminder_timezone: str | None = None

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_timezone(raw: str | None) -> tzinfo | None:
    """Parse the reminder timezone; empty means the host's local zone."""
    if raw is None:
        return None
    cleaned = raw.strip()
    if not cleaned:
        return None
    return ZoneInfo(cleaned)
