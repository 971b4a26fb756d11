"""Dependency container wiring for the parking core."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from supabase import create_client

from parkiq.adapters.asyncio_notifications import AsyncioNotificationCenter
from parkiq.adapters.file_photo_store import FilePhotoStore
from parkiq.adapters.parking_api_client import HttpxParkingApiClient, ParkingApi
from parkiq.adapters.supabase_auth import SupabaseTokenProvider
from parkiq.app_logging import configure_logging
from parkiq.config import Settings, parse_timezone
from parkiq.services.cache import GeoCache
from parkiq.services.geodata import FetchCoordinator
from parkiq.services.reminders import NotificationCenter, ReminderScheduler
from parkiq.services.sessions import PhotoStore, SessionStore
from parkiq.services.timer import SessionTimer


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    api_client: ParkingApi
    notification_center: NotificationCenter
    photo_store: PhotoStore
    reminder_scheduler: ReminderScheduler
    session_store: SessionStore
    session_timer: SessionTimer
    fetch_coordinator: FetchCoordinator
    close_resources: Callable[[], Awaitable[None]]


def build_container(
    settings: Settings | None = None,
    notification_center: NotificationCenter | None = None,
    photo_store: PhotoStore | None = None,
) -> AppContainer:
    """Create the default dependency container.

    The host may pass its own notification facility and photo store; the
    defaults fire notifications on the event loop and keep photos on disk.
    """
    resolved_settings = settings or Settings()
    configure_logging(resolved_settings.log_level)
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_anon_key
    )
    api_client = HttpxParkingApiClient.create(
        base_url=resolved_settings.api_base_url,
        token_provider=SupabaseTokenProvider(supabase_client),
        timeout_seconds=resolved_settings.request_timeout_seconds,
    )
    resolved_notifications = notification_center or AsyncioNotificationCenter()
    resolved_photos = photo_store or FilePhotoStore(
        Path(resolved_settings.photo_store_dir)
    )
    reminder_scheduler = ReminderScheduler(
        notification_center=resolved_notifications,
        title=resolved_settings.reminder_title,
        body=resolved_settings.reminder_body,
        timezone=parse_timezone(resolved_settings.reminder_timezone),
    )
    session_store = SessionStore(
        api=api_client,
        reminder_scheduler=reminder_scheduler,
        photo_store=resolved_photos,
        history_page_size=resolved_settings.history_page_size,
    )
    session_timer = SessionTimer(
        session_store, tick_seconds=resolved_settings.timer_tick_seconds
    )
    fetch_coordinator = FetchCoordinator(
        api=api_client,
        cache=GeoCache(ttl_seconds=resolved_settings.geo_cache_ttl_seconds),
        radius_meters=resolved_settings.geo_search_radius_meters,
        debounce_seconds=resolved_settings.geo_debounce_seconds,
        min_distance_degrees=resolved_settings.geo_min_distance_degrees,
    )

    async def close_resources() -> None:
        await session_timer.close()
        await fetch_coordinator.close()
        await api_client.close()

    return AppContainer(
        settings=resolved_settings,
        api_client=api_client,
        notification_center=resolved_notifications,
        photo_store=resolved_photos,
        reminder_scheduler=reminder_scheduler,
        session_store=session_store,
        session_timer=session_timer,
        fetch_coordinator=fetch_coordinator,
        close_resources=close_resources,
    )
