"""Local notification facility backed by the asyncio event loop."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from parkiq.domain.errors import PermissionDenied
from parkiq.services.reminders import NotificationCenter

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalNotification:
    """A notification scheduled on the event loop."""

    handle: str
    when: datetime
    title: str
    body: str


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _log_delivery(notification: LocalNotification) -> None:
    _logger.info("%s: %s", notification.title, notification.body)


@dataclass
class AsyncioNotificationCenter(NotificationCenter):
    """Fires notifications through ``loop.call_later``.

    Delivery is only guaranteed while the loop is running; there is no
    persistence across process restarts.
    """

    permission_granted: bool = True
    deliver: Callable[[LocalNotification], None] = _log_delivery
    clock: Callable[[], datetime] = _utc_now
    _scheduled: dict[str, tuple[LocalNotification, asyncio.TimerHandle]] = field(
        default_factory=dict
    )

    @property
    def pending(self) -> list[LocalNotification]:
        return [notification for notification, _ in self._scheduled.values()]

    async def request_permission(self) -> bool:
        return self.permission_granted

    async def schedule_at(self, when: datetime, title: str, body: str) -> str:
        """Schedule a notification and return its handle."""
        if not self.permission_granted:
            raise PermissionDenied()
        notification = LocalNotification(
            handle=uuid4().hex, when=when, title=title, body=body
        )
        delay = max(0.0, (when - self.clock()).total_seconds())
        timer = asyncio.get_running_loop().call_later(
            delay, self._fire, notification.handle
        )
        self._scheduled[notification.handle] = (notification, timer)
        return notification.handle

    async def cancel(self, handle: str) -> None:
        """Cancel a scheduled notification; unknown handles are ignored."""
        entry = self._scheduled.pop(handle, None)
        if entry is not None:
            entry[1].cancel()

    def _fire(self, handle: str) -> None:
        entry = self._scheduled.pop(handle, None)
        if entry is None:
            return
        self.deliver(entry[0])
