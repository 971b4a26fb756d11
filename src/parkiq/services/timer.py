"""Elapsed-time clock derived from the active session."""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from parkiq.domain.sessions import ParkingSession
from parkiq.services.events import Listeners
from parkiq.services.sessions import SessionStore

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ElapsedTime:
    """Whole seconds split into zero-padded display parts."""

    total_seconds: int = 0

    @property
    def hours(self) -> str:
        return f"{self.total_seconds // 3600:02d}"

    @property
    def minutes(self) -> str:
        return f"{self.total_seconds % 3600 // 60:02d}"

    @property
    def seconds(self) -> str:
        return f"{self.total_seconds % 60:02d}"

    def __str__(self) -> str:
        return f"{self.hours}:{self.minutes}:{self.seconds}"


@dataclass(frozen=True)
class TimerReading:
    """One tick of the session timer."""

    elapsed: ElapsedTime
    remaining_seconds: int | None = None


def read_timer(session: ParkingSession | None, now: datetime) -> TimerReading:
    """Compute the timer reading for a session at ``now``."""
    if session is None:
        return TimerReading(elapsed=ElapsedTime())
    remaining = None
    if session.next_tariff_change_at is not None:
        delta = (session.next_tariff_change_at - now).total_seconds()
        remaining = max(0, int(delta))
    return TimerReading(
        elapsed=ElapsedTime(session.elapsed_seconds(now)),
        remaining_seconds=remaining,
    )


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class SessionTimer:
    """Publishes a timer reading every tick while a session is active.

    Readings are recomputed from the session's effective start on every tick,
    so nothing drifts across app suspension. The periodic task is replaced
    whenever the active session changes and torn down when it goes away.
    """

    def __init__(
        self,
        store: SessionStore,
        tick_seconds: float = 1.0,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.tick_seconds = tick_seconds
        self.clock = clock
        self._listeners: Listeners[TimerReading] = Listeners(name="session-timer")
        self._task: asyncio.Task | None = None
        self._tracked: tuple[str, datetime] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def current(self) -> TimerReading:
        """Reading for the store's active session at the current time."""
        return read_timer(self.store.active_session, self.clock())

    def subscribe(self, listener: Callable[[TimerReading], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    def attach(self) -> None:
        """Follow the store's active session. Requires a running loop."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_session_changed)
        self._on_session_changed(self.store.active_session)

    def detach(self) -> None:
        """Stop following the store and cancel the periodic task."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._stop()
        self._tracked = None

    async def close(self) -> None:
        task = self._task
        self.detach()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _on_session_changed(self, session: ParkingSession | None) -> None:
        if session is None:
            self._stop()
            self._tracked = None
            self._listeners.publish(TimerReading(elapsed=ElapsedTime()))
            return
        tracked = (session.id, session.effective_started_at)
        if tracked == self._tracked and self.running:
            return
        self._stop()
        self._tracked = tracked
        self._task = asyncio.get_running_loop().create_task(self._run(session))
        _logger.debug("Timer started for session %s", session.id)

    def _stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, session: ParkingSession) -> None:
        while True:
            current = self.store.active_session
            if current is not None and current.id == session.id:
                session = current
            self._listeners.publish(read_timer(session, self.clock()))
            await asyncio.sleep(self.tick_seconds)
