"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from parkiq.adapters.parking_api_client import ParkingApi
from parkiq.config import Settings
from parkiq.domain.errors import BackendRejection
from parkiq.domain.geo import ParkingLocation, PricedSpot
from parkiq.domain.sessions import ParkingSession
from parkiq.services.cancellation import CancellationToken
from parkiq.services.reminders import NotificationCenter, ReminderScheduler
from parkiq.services.sessions import PhotoStore, SessionStore

START = datetime(2026, 10, 19, 10, 0, tzinfo=UTC)


@dataclass
class FakeClock:
    """Manually advanced wall clock."""

    now: datetime = START

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class InMemoryParkingApi(ParkingApi):
    """In-memory backend that enforces a single active session."""

    clock: FakeClock
    sessions: list[ParkingSession] = field(default_factory=list)
    failures: dict[str, Exception] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failures:
            raise self.failures[operation]

    async def create_session(  # noqa: PLR0913
        self,
        latitude: float,
        longitude: float,
        note: str | None = None,
        adjusted_started_at: datetime | None = None,
        has_photo: bool = False,
        location_name: str | None = None,
    ) -> ParkingSession:
        self._record("create_session")
        if any(session.is_active for session in self.sessions):
            raise BackendRejection(
                "Session already active", code="SESSION_ACTIVE", status_code=409
            )
        session = ParkingSession(
            id=str(uuid4()),
            started_at=self.clock(),
            latitude=latitude,
            longitude=longitude,
            adjusted_started_at=adjusted_started_at,
            note=note,
            has_photo=has_photo,
            location_name=location_name,
        )
        self.sessions.insert(0, session)
        return session

    async def end_session(self, session_id: str, ended_at: datetime) -> ParkingSession:
        self._record("end_session")
        for index, session in enumerate(self.sessions):
            if session.id == session_id and session.is_active:
                ended = replace(
                    session,
                    ended_at=ended_at,
                    duration_seconds=session.elapsed_seconds(ended_at),
                )
                self.sessions[index] = ended
                return ended
        raise BackendRejection(
            "No active session", code="NO_ACTIVE_SESSION", status_code=404
        )

    async def list_session_history(
        self, limit: int, offset: int = 0
    ) -> list[ParkingSession]:
        self._record("list_session_history")
        return self.sessions[offset : offset + limit]

    async def update_session_note(
        self, session_id: str, note: str | None
    ) -> ParkingSession:
        self._record("update_session_note")
        for index, session in enumerate(self.sessions):
            if session.id == session_id:
                self.sessions[index] = replace(session, note=note)
                return self.sessions[index]
        raise BackendRejection("Session not found", status_code=404)

    async def query_priced_spots(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        cancellation: CancellationToken | None = None,
    ) -> list[PricedSpot]:
        self._record("query_priced_spots")
        return []

    async def query_parking_locations(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        cancellation: CancellationToken | None = None,
    ) -> list[ParkingLocation]:
        self._record("query_parking_locations")
        return []

    def active_sessions(self) -> list[ParkingSession]:
        return [session for session in self.sessions if session.is_active]


@dataclass
class FakeNotificationCenter(NotificationCenter):
    """Records scheduled and cancelled notifications."""

    granted: bool = True
    error: Exception | None = None
    scheduled: dict[str, datetime] = field(default_factory=dict)
    cancelled: list[str] = field(default_factory=list)
    cancel_gate: asyncio.Event | None = None
    _counter: int = 0

    async def request_permission(self) -> bool:
        return self.granted

    async def schedule_at(self, when: datetime, title: str, body: str) -> str:
        if self.error is not None:
            raise self.error
        self._counter += 1
        handle = f"notification-{self._counter}"
        self.scheduled[handle] = when
        return handle

    async def cancel(self, handle: str) -> None:
        if self.cancel_gate is not None:
            await self.cancel_gate.wait()
        self.cancelled.append(handle)
        self.scheduled.pop(handle, None)


@dataclass
class InMemoryPhotoStore(PhotoStore):
    """In-memory photo store for tests."""

    photos: dict[str, bytes] = field(default_factory=dict)

    def put(self, session_id: str, image_bytes: bytes) -> str:
        self.photos[session_id] = image_bytes
        return f"memory://parking_photo_{session_id}"

    def get(self, session_id: str) -> str | None:
        if session_id not in self.photos:
            return None
        return f"memory://parking_photo_{session_id}"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_base_url="https://api.parkiq.test",
        supabase_url="https://example.supabase.co",
        supabase_anon_key=(
            "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9."
            "eyJyb2xlIjoiYW5vbiJ9."
            "c2lnbmF0dXJl"
        ),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def parking_api(clock: FakeClock) -> InMemoryParkingApi:
    return InMemoryParkingApi(clock=clock)


@pytest.fixture
def notification_center() -> FakeNotificationCenter:
    return FakeNotificationCenter()


@pytest.fixture
def photo_store() -> InMemoryPhotoStore:
    return InMemoryPhotoStore()


@pytest.fixture
def reminder_scheduler(
    notification_center: FakeNotificationCenter, clock: FakeClock
) -> ReminderScheduler:
    return ReminderScheduler(
        notification_center=notification_center, timezone=UTC, clock=clock
    )


@pytest.fixture
def session_store(
    parking_api: InMemoryParkingApi,
    reminder_scheduler: ReminderScheduler,
    photo_store: InMemoryPhotoStore,
    clock: FakeClock,
) -> SessionStore:
    return SessionStore(
        api=parking_api,
        reminder_scheduler=reminder_scheduler,
        photo_store=photo_store,
        clock=clock,
    )
