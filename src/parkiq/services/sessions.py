"""Parking session state machine."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol

from parkiq.adapters.parking_api_client import ParkingApi
from parkiq.domain.errors import InvalidTransition
from parkiq.domain.reminders import ReminderConfig, ReminderTrigger
from parkiq.domain.sessions import ParkingSession, StartParkingInput, clean_note
from parkiq.services.events import Listeners
from parkiq.services.reminders import ReminderScheduler

_logger = logging.getLogger(__name__)


class PhotoStore(Protocol):
    """Device-local storage for session photos."""

    def put(self, session_id: str, image_bytes: bytes) -> str:
        """Store a photo for a session and return its URI."""

    def get(self, session_id: str) -> str | None:
        """Return the stored photo URI for a session, if present."""


class SessionState(StrEnum):
    """States of the parking session machine."""

    IDLE = "idle"
    ACTIVE = "active"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _new_listeners() -> Listeners[ParkingSession | None]:
    return Listeners(name="active-session")


@dataclass
class SessionStore:
    """Owns the single active parking session.

    Transitions are ``Idle -> Active`` (``start_parking``), ``Active -> Idle``
    (``end_parking``) and ``reconcile``, which re-derives the state from the
    backend's history. Only one operation may be pending at a time; callers
    await each call before issuing the next.
    """

    api: ParkingApi
    reminder_scheduler: ReminderScheduler
    photo_store: PhotoStore
    history_page_size: int = 50
    clock: Callable[[], datetime] = _utc_now
    _active: ParkingSession | None = None
    _reminder: ReminderConfig = field(default_factory=ReminderConfig)
    _reminder_session_id: str | None = None
    _pending: str | None = None
    _listeners: Listeners[ParkingSession | None] = field(default_factory=_new_listeners)

    @property
    def active_session(self) -> ParkingSession | None:
        return self._active

    @property
    def state(self) -> SessionState:
        return SessionState.ACTIVE if self._active is not None else SessionState.IDLE

    @property
    def reminder_config(self) -> ReminderConfig:
        return self._reminder

    @property
    def loading(self) -> bool:
        """True while a transition or reconcile is in flight."""
        return self._pending is not None

    def subscribe(
        self, listener: Callable[[ParkingSession | None], None]
    ) -> Callable[[], None]:
        """Receive the active session (or None) after every change."""
        return self._listeners.subscribe(listener)

    async def start_parking(self, request: StartParkingInput) -> ParkingSession:
        """Create a session on the backend and make it active.

        Backend failures propagate unchanged and leave the store idle.
        """
        self._ensure_ready("start parking", SessionState.IDLE)
        self._pending = "start parking"
        try:
            created = await self.api.create_session(
                latitude=request.latitude,
                longitude=request.longitude,
                note=clean_note(request.note),
                adjusted_started_at=request.adjusted_started_at,
                has_photo=request.has_photo,
                location_name=request.location_name,
            )
            session = replace(
                created,
                adjusted_started_at=(
                    created.adjusted_started_at or request.adjusted_started_at
                ),
                note=created.note if created.note is not None else clean_note(request.note),
                location_name=created.location_name or request.location_name,
            )
            if request.photo is not None:
                session = self._store_photo(session, request.photo)
            if self._reminder_session_id not in (None, session.id):
                # Left over from a session lost while offline.
                await self._reset_reminder()
            self._set_active(session)
            _logger.info("Parking session %s started", session.id)
            if request.reminder is not None:
                await self._schedule_reminder(session, request.reminder)
        finally:
            self._pending = None
        return session

    async def end_parking(self) -> ParkingSession:
        """End the active session and return the closed record.

        If the backend call fails the session stays active and unchanged; the
        caller has to retry.
        """
        self._ensure_ready("end parking", SessionState.ACTIVE)
        active = self._active
        ended_at = self.clock()
        self._pending = "end parking"
        try:
            record = await self.api.end_session(active.id, ended_at)
            closed = record.with_local_fields(active)
            if closed.ended_at is None:
                closed = replace(closed, ended_at=ended_at)
            await self._reset_reminder()
            self._set_active(None)
        finally:
            self._pending = None
        _logger.info(
            "Parking session %s ended after %ss",
            closed.id,
            closed.elapsed_seconds(ended_at),
        )
        return closed

    async def reconcile(self) -> ParkingSession | None:
        """Adopt the backend's un-ended session, if any.

        Never raises: when history cannot be loaded the store assumes there is
        no active session so the app stays usable offline.
        """
        if self._pending is not None:
            _logger.info("Skipping reconcile while %s is pending", self._pending)
            return self._active
        self._pending = "reconcile"
        try:
            try:
                history = await self.api.list_session_history(
                    limit=self.history_page_size, offset=0
                )
            except Exception:
                _logger.exception("Failed to load active session; assuming none")
                self._set_active(None)
                return None
            remote = next((session for session in history if session.is_active), None)
            adopted = self._adopt(remote) if remote is not None else None
            owner = self._reminder_session_id
            if owner is not None and (adopted is None or adopted.id != owner):
                await self._reset_reminder()
            self._set_active(adopted)
        finally:
            self._pending = None
        return adopted

    async def update_note(self, note: str | None) -> ParkingSession:
        """Edit the active session's note.

        The edit is applied locally first and rolled back if the backend
        rejects it; the error is then re-raised.
        """
        self._ensure_ready("edit note", SessionState.ACTIVE)
        previous = self._active
        cleaned = clean_note(note)
        if cleaned == previous.note:
            return previous
        self._set_active(replace(previous, note=cleaned))
        self._pending = "edit note"
        try:
            await self.api.update_session_note(previous.id, cleaned)
        except Exception:
            _logger.warning("Note update for %s failed; rolling back", previous.id)
            self._set_active(previous)
            raise
        finally:
            self._pending = None
        return self._active

    async def set_reminder(self, trigger: ReminderTrigger) -> ReminderConfig:
        """Enable or replace the reminder for the active session."""
        self._ensure_ready("set reminder", SessionState.ACTIVE)
        self._pending = "set reminder"
        try:
            await self._schedule_reminder(self._active, trigger)
        finally:
            self._pending = None
        return self._reminder

    async def disable_reminder(self) -> ReminderConfig:
        """Cancel the outstanding reminder and keep the chosen trigger."""
        self._ensure_ready("disable reminder", SessionState.ACTIVE)
        trigger = self._reminder.trigger
        await self._reset_reminder()
        self._reminder = ReminderConfig(enabled=False, trigger=trigger)
        return self._reminder

    async def list_history(
        self, limit: int | None = None, offset: int = 0
    ) -> list[ParkingSession]:
        """Return ended sessions, most recent first."""
        sessions = await self.api.list_session_history(
            limit=limit or self.history_page_size, offset=offset
        )
        return [session for session in sessions if not session.is_active]

    async def clear(self) -> None:
        """Drop local session state, e.g. on sign-out."""
        await self._reset_reminder()
        self._set_active(None)

    def _ensure_ready(self, operation: str, required: SessionState) -> None:
        if self._pending is not None:
            raise InvalidTransition(operation, f"{self._pending} is pending")
        if self.state is not required:
            raise InvalidTransition(operation, self.state.value)

    def _set_active(self, session: ParkingSession | None) -> None:
        if session == self._active:
            return
        self._active = session
        self._listeners.publish(session)

    def _store_photo(self, session: ParkingSession, photo: bytes) -> ParkingSession:
        try:
            uri = self.photo_store.put(session.id, photo)
        except OSError:
            _logger.exception("Failed to store photo for session %s", session.id)
            return session
        return replace(session, has_photo=True, photo_uri=uri)

    def _adopt(self, remote: ParkingSession) -> ParkingSession:
        current = self._active
        if current is not None and current.id == remote.id:
            return remote.with_local_fields(current)
        try:
            photo_uri = self.photo_store.get(remote.id)
        except OSError:
            _logger.exception("Failed to read photo for session %s", remote.id)
            photo_uri = None
        if photo_uri is None:
            return remote
        return replace(remote, has_photo=True, photo_uri=photo_uri)

    async def _schedule_reminder(
        self, session: ParkingSession, trigger: ReminderTrigger
    ) -> None:
        await self.reminder_scheduler.cancel(self._reminder.scheduled_notification_id)
        handle = await self.reminder_scheduler.schedule(
            trigger, session.effective_started_at
        )
        self._reminder = ReminderConfig(
            enabled=True, trigger=trigger, scheduled_notification_id=handle
        )
        self._reminder_session_id = session.id

    async def _reset_reminder(self) -> None:
        await self.reminder_scheduler.cancel(self._reminder.scheduled_notification_id)
        self._reminder = ReminderConfig()
        self._reminder_session_id = None
