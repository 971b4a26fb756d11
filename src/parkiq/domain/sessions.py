"""Domain models for parking sessions."""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from parkiq.domain.reminders import ReminderTrigger


@dataclass(frozen=True)
class ParkingSession:
    """Represents a parking session as known to the client."""

    id: str
    started_at: datetime
    latitude: float
    longitude: float
    adjusted_started_at: datetime | None = None
    note: str | None = None
    has_photo: bool = False
    photo_uri: str | None = None
    location_name: str | None = None
    next_tariff_change_at: datetime | None = None
    ended_at: datetime | None = None
    duration_seconds: int | None = None

    @property
    def is_active(self) -> bool:
        """Return True while the session has not been ended."""
        return self.ended_at is None

    @property
    def effective_started_at(self) -> datetime:
        """Start time used by every time-based computation."""
        return self.adjusted_started_at or self.started_at

    def elapsed_seconds(self, now: datetime) -> int:
        """Whole seconds parked, up to ``ended_at`` or ``now``."""
        end = self.ended_at or now
        elapsed = int((end - self.effective_started_at).total_seconds())
        return max(elapsed, 0)

    def with_local_fields(self, local: "ParkingSession") -> "ParkingSession":
        """Fill fields the backend does not echo back from a local copy."""
        return replace(
            self,
            adjusted_started_at=self.adjusted_started_at or local.adjusted_started_at,
            note=self.note if self.note is not None else local.note,
            has_photo=self.has_photo or local.has_photo,
            photo_uri=self.photo_uri or local.photo_uri,
            location_name=self.location_name or local.location_name,
            next_tariff_change_at=(
                self.next_tariff_change_at or local.next_tariff_change_at
            ),
        )


@dataclass(frozen=True)
class StartParkingInput:
    """User input for starting a parking session."""

    latitude: float
    longitude: float
    note: str | None = None
    adjusted_started_at: datetime | None = None
    photo: bytes | None = None
    location_name: str | None = None
    reminder: ReminderTrigger | None = None

    @property
    def has_photo(self) -> bool:
        return self.photo is not None


def adjusted_start_from_minutes_ago(
    now: datetime, parked_minutes_ago: int
) -> datetime | None:
    """Return the backdated start for "I parked N minutes ago", if any."""
    if parked_minutes_ago <= 0:
        return None
    return now - timedelta(minutes=parked_minutes_ago)


def clean_note(note: str | None) -> str | None:
    """Normalize a free-text note; blank notes become None."""
    if note is None:
        return None
    stripped = note.strip()
    return stripped or None


def format_duration(session: ParkingSession, now: datetime) -> str:
    """Format a session duration for history display, e.g. ``1h 5m``."""
    total = session.elapsed_seconds(now)
    hours, remainder = divmod(total, 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
