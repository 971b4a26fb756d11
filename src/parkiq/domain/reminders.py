"""Domain models for parking reminders."""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import StrEnum

DEFAULT_REMINDER_OFFSET_MINUTES = 10


class TriggerMode(StrEnum):
    """How a reminder trigger time is derived."""

    AT_ABSOLUTE_TIME = "time"
    AFTER_DURATION = "duration"


@dataclass(frozen=True)
class AtAbsoluteTime:
    """Fire at the next occurrence of a local wall-clock time."""

    hour: int
    minute: int

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:  # noqa: PLR2004
            raise ValueError(f"hour must be within 0-23, got {self.hour}")
        if not 0 <= self.minute <= 59:  # noqa: PLR2004
            raise ValueError(f"minute must be within 0-59, got {self.minute}")

    @property
    def mode(self) -> TriggerMode:
        return TriggerMode.AT_ABSOLUTE_TIME


@dataclass(frozen=True)
class AfterDuration:
    """Fire a fixed duration after the session's effective start."""

    hours: int = 0
    minutes: int = DEFAULT_REMINDER_OFFSET_MINUTES

    def __post_init__(self) -> None:
        if self.hours < 0 or self.minutes < 0:
            raise ValueError("reminder duration must not be negative")

    @property
    def mode(self) -> TriggerMode:
        return TriggerMode.AFTER_DURATION

    @property
    def duration(self) -> timedelta:
        return timedelta(hours=self.hours, minutes=self.minutes)


ReminderTrigger = AtAbsoluteTime | AfterDuration


@dataclass(frozen=True)
class ReminderConfig:
    """Reminder state for the active session."""

    enabled: bool = False
    trigger: ReminderTrigger = field(default_factory=AfterDuration)
    scheduled_notification_id: str | None = None

    @property
    def trigger_mode(self) -> TriggerMode:
        return self.trigger.mode
