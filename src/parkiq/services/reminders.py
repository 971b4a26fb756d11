"""Reminder scheduling on top of the local notification facility."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Protocol

from parkiq.domain.errors import PermissionDenied
from parkiq.domain.reminders import AfterDuration, AtAbsoluteTime, ReminderTrigger

_logger = logging.getLogger(__name__)


class NotificationCenter(Protocol):
    """Interface for the host's local notification facility."""

    async def request_permission(self) -> bool:
        """Ask for permission to post notifications."""

    async def schedule_at(self, when: datetime, title: str, body: str) -> str:
        """Schedule a notification and return its handle."""

    async def cancel(self, handle: str) -> None:
        """Cancel a scheduled notification."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def next_wall_clock_time(
    now: datetime, hour: int, minute: int, timezone: tzinfo | None = None
) -> datetime:
    """Return the next occurrence of ``hour:minute`` in ``timezone``.

    Today if that time is still ahead, otherwise tomorrow. ``timezone`` of
    None means the host's local zone.
    """
    if timezone is None:
        # Naive wall time so the host's DST rules apply to the target date.
        local_now = now.astimezone().replace(tzinfo=None)
    else:
        local_now = now.astimezone(timezone)
    candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate += timedelta(days=1)
    if timezone is None:
        candidate = candidate.astimezone()
    return candidate.astimezone(UTC)


def compute_trigger_time(
    trigger: ReminderTrigger,
    session_start: datetime,
    now: datetime,
    timezone: tzinfo | None = None,
) -> datetime:
    """Compute when a reminder should fire.

    ``session_start`` must be the session's effective start time, so a
    backdated session is reminded relative to the claimed start.
    """
    if isinstance(trigger, AtAbsoluteTime):
        return next_wall_clock_time(now, trigger.hour, trigger.minute, timezone)
    if isinstance(trigger, AfterDuration):
        return session_start + trigger.duration
    raise TypeError(f"Unsupported reminder trigger: {trigger!r}")


@dataclass
class ReminderScheduler:
    """Keeps at most one reminder notification outstanding."""

    notification_center: NotificationCenter
    title: str = "Parking reminder"
    body: str = "Your parking reminder is due."
    timezone: tzinfo | None = None
    clock: Callable[[], datetime] = _utc_now
    _outstanding: str | None = None

    @property
    def outstanding(self) -> str | None:
        """Handle of the currently scheduled reminder, if any."""
        return self._outstanding

    def trigger_time(self, trigger: ReminderTrigger, session_start: datetime) -> datetime:
        return compute_trigger_time(trigger, session_start, self.clock(), self.timezone)

    async def schedule(
        self, trigger: ReminderTrigger, session_start: datetime
    ) -> str | None:
        """Schedule a reminder, replacing any outstanding one.

        Returns None when nothing was scheduled: permission refused, a trigger
        time that is already past, or a failing notification facility.
        """
        await self.cancel(self._outstanding)
        when = self.trigger_time(trigger, session_start)
        if when <= self.clock():
            _logger.info("Reminder trigger %s is in the past; not scheduled", when)
            return None
        try:
            if not await self.notification_center.request_permission():
                raise PermissionDenied()
            handle = await self.notification_center.schedule_at(
                when, self.title, self.body
            )
        except PermissionDenied:
            _logger.info("Notification permission denied; reminder skipped")
            return None
        except Exception:
            _logger.exception("Failed to schedule reminder for %s", when)
            return None
        self._outstanding = handle
        _logger.info("Reminder %s scheduled for %s", handle, when.isoformat())
        return handle

    async def cancel(self, handle: str | None) -> None:
        """Cancel a reminder. Unknown or missing handles are ignored."""
        if handle is None:
            return
        if self._outstanding == handle:
            self._outstanding = None
        try:
            await self.notification_center.cancel(handle)
        except Exception:
            _logger.exception("Failed to cancel reminder %s", handle)
