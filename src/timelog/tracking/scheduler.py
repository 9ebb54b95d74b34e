"""Session clock and prompt scheduler."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterable

from ..notify import Notification, Notifier
from ..schedules import QuietTime, active_window
from ..storage import InvalidArgumentError, PersistenceError, SessionRecord, TimelogStore
from ..storage.models import DEFAULT_INTERVAL_MS, MIN_INTERVAL_MS
from .events import EventBus, EventKind, Listener

logger = logging.getLogger(__name__)

DEFAULT_SESSION_MAX_AGE = timedelta(hours=1)

PROMPT = Notification(
    title="timelog",
    body="What have you been doing? Time to log your activity!",
    require_interaction=True,
)


class NoActiveSessionError(RuntimeError):
    """Raised when an operation needs a tracking session and none is active."""


class TrackingState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    AWAITING_ENTRY = "awaiting_entry"
    STOPPING = "stopping"


@dataclass(slots=True)
class SessionState:
    """Mutable scheduler state; owned by a single ``SessionScheduler``."""

    state: TrackingState = TrackingState.IDLE
    start_time: datetime | None = None
    last_prompt_time: datetime | None = None
    # boundary captured when the pending prompt fired
    due_at: datetime | None = None
    quiet_mode: bool = False

    def clear_session(self) -> None:
        self.state = TrackingState.IDLE
        self.start_time = None
        self.last_prompt_time = None
        self.due_at = None


@dataclass(slots=True, frozen=True)
class SessionInfo:
    is_active: bool
    state: TrackingState
    start_time: datetime | None
    last_prompt_time: datetime | None
    elapsed_ms: int
    since_last_prompt_ms: int
    next_prompt_at: datetime | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "is_active": self.is_active,
            "state": self.state.value,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "last_prompt_time": (
                self.last_prompt_time.isoformat() if self.last_prompt_time else None
            ),
            "elapsed_ms": self.elapsed_ms,
            "since_last_prompt_ms": self.since_last_prompt_ms,
            "next_prompt_at": self.next_prompt_at.isoformat() if self.next_prompt_at else None,
        }


def _ms(delta: timedelta) -> int:
    return max(0, delta // timedelta(milliseconds=1))


class SessionScheduler:
    """Drive the tracking session state machine.

    ``tick()`` is one poll iteration. While a session is active and an asyncio
    loop is running, a poll task calls it every ``poll_interval`` seconds.
    """

    def __init__(
        self,
        store: TimelogStore,
        notifier: Notifier,
        *,
        events: EventBus | None = None,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        quiet_times: Iterable[QuietTime] | None = None,
        clock: Callable[[], datetime] | None = None,
        poll_interval: float = 1.0,
        session_max_age: timedelta = DEFAULT_SESSION_MAX_AGE,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._events = events or EventBus()
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._poll_interval = poll_interval
        self._session_max_age = session_max_age
        self._quiet_times: list[QuietTime] = list(quiet_times or [])
        self._state = SessionState()
        self._poll_task: asyncio.Task[None] | None = None
        self._interval = timedelta(milliseconds=MIN_INTERVAL_MS)
        self.set_notification_interval(interval_ms)

    # Properties

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def state(self) -> TrackingState:
        return self._state.state

    @property
    def is_active(self) -> bool:
        return self._state.state is not TrackingState.IDLE

    @property
    def interval_ms(self) -> int:
        return _ms(self._interval)

    @property
    def quiet_mode(self) -> bool:
        return self._state.quiet_mode

    @property
    def quiet_times(self) -> list[QuietTime]:
        return list(self._quiet_times)

    @property
    def poll_task(self) -> asyncio.Task[None] | None:
        return self._poll_task

    def now(self) -> datetime:
        return self._clock()

    def subscribe(
        self,
        listener: Listener,
        kinds: Iterable[EventKind | str] | None = None,
    ) -> Callable[[], None]:
        return self._events.subscribe(listener, kinds)

    # Configuration

    def set_notification_interval(self, milliseconds: int) -> None:
        """Set the prompt interval; values below one second are rejected."""

        if isinstance(milliseconds, bool) or not isinstance(milliseconds, int):
            raise InvalidArgumentError("Interval must be an integer number of milliseconds")
        if milliseconds < MIN_INTERVAL_MS:
            raise InvalidArgumentError("Interval must be at least 1 second")
        self._interval = timedelta(milliseconds=milliseconds)

    def set_quiet_mode(self, enabled: bool) -> None:
        self._state.quiet_mode = bool(enabled)

    def set_quiet_times(self, quiet_times: Iterable[QuietTime]) -> None:
        self._quiet_times = list(quiet_times)

    def in_quiet_time(self, now: datetime | None = None) -> bool:
        return active_window(self._quiet_times, now or self._clock()) is not None

    # Lifecycle

    def start_tracking(self) -> None:
        if self._state.state is not TrackingState.IDLE:
            logger.warning("Tracking already started", extra={"state": self._state.state.value})
            return

        now = self._clock()
        self._state.state = TrackingState.TRACKING
        self._state.start_time = now
        self._state.last_prompt_time = now
        self._state.due_at = None
        self._persist_session()
        self._start_polling()

        logger.info("Tracking started", extra={"interval_ms": self.interval_ms})
        self._events.emit(EventKind.SESSION_STARTED, {"start_time": now, "restored": False})

    def stop_tracking(self) -> None:
        """Request a stop; teardown waits for the final entry."""

        if self._state.state is TrackingState.IDLE:
            logger.warning("No tracking session to stop")
            return
        if self._state.state is TrackingState.STOPPING:
            return

        self._state.state = TrackingState.STOPPING
        _, boundary = self.current_interval()
        logger.info("Stop requested; awaiting final entry")
        self._events.emit(
            EventKind.NOTIFICATION_DUE,
            {"due_at": boundary, "overdue_ms": 0, "final": True},
        )

    def restore_session(self) -> bool:
        """Resume a persisted session if it is younger than the maximum age."""

        if self._state.state is not TrackingState.IDLE:
            logger.warning("Cannot restore over an active session")
            return False

        try:
            record = self._store.load_session()
        except PersistenceError as exc:
            logger.warning("Failed to load persisted session", extra={"error": str(exc)})
            return False

        if record is None:
            return False

        now = self._clock()
        age = now - record.start
        if age >= self._session_max_age:
            logger.info("Discarding stale session", extra={"age_seconds": age.total_seconds()})
            self._clear_persisted_session()
            return False

        self._state.state = TrackingState.TRACKING
        self._state.start_time = record.start
        self._state.last_prompt_time = record.last_notification
        self._state.due_at = None
        self._start_polling()

        logger.info(
            "Restored tracking session",
            extra={"start_time": record.start.isoformat(), "age_seconds": age.total_seconds()},
        )
        self._events.emit(EventKind.SESSION_STARTED, {"start_time": record.start, "restored": True})
        return True

    def close(self) -> None:
        """Stop polling without discarding the persisted session."""

        self._stop_polling()

    # Polling

    def tick(self, now: datetime | None = None) -> bool:
        """Run one poll iteration; return True when a prompt fired."""

        if self._state.state is not TrackingState.TRACKING:
            return False
        if self._state.quiet_mode:
            return False

        now = now or self._clock()
        if active_window(self._quiet_times, now) is not None:
            return False

        assert self._state.last_prompt_time is not None
        scheduled = self._state.last_prompt_time + self._interval
        if now < scheduled:
            return False

        # the prompt boundary is the moment it fires, not when it was scheduled
        self._state.state = TrackingState.AWAITING_ENTRY
        self._state.due_at = now
        self._notify()
        self._events.emit(
            EventKind.NOTIFICATION_DUE,
            {"due_at": now, "overdue_ms": _ms(now - scheduled), "final": False},
        )
        return True

    def ensure_polling(self) -> bool:
        """Start the poll task for an active session; return True if one is running."""

        if self._state.state is TrackingState.IDLE:
            return False
        self._start_polling()
        return self._poll_task is not None

    async def run_poll_loop(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._poll_interval)

    def _start_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; poll with tick()")
            return
        self._poll_task = loop.create_task(self.run_poll_loop(), name="timelog-poll")

    def _stop_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    # Interval bookkeeping

    def current_interval(self) -> tuple[datetime, datetime]:
        """Return the boundaries the next recorded activity will carry."""

        self._require_active()
        assert self._state.last_prompt_time is not None
        last = self._state.last_prompt_time
        if self._state.due_at is None:
            return last, last + self._interval
        end = self._state.due_at
        # time spent overdue (quiet periods, restarts) is not attributed
        return max(end - self._interval, last), end

    def close_interval(self, end: datetime) -> bool:
        """Advance the prompt clock to ``end``; return True if a stop is pending."""

        self._require_active()
        self._state.last_prompt_time = end
        self._state.due_at = None
        if self._state.state is TrackingState.STOPPING:
            return True
        self._state.state = TrackingState.TRACKING
        self._persist_session()
        return False

    def finish_stop(self) -> None:
        if self._state.state is not TrackingState.STOPPING:
            return

        start_time = self._state.start_time
        end_time = self._state.last_prompt_time
        self._stop_polling()
        self._state.clear_session()
        self._clear_persisted_session()

        logger.info("Tracking stopped")
        self._events.emit(
            EventKind.SESSION_STOPPED, {"start_time": start_time, "end_time": end_time}
        )

    def skip_notification(self) -> None:
        """Snooze: restart the prompt clock from now without logging anything."""

        self._require_active()
        assert self._state.start_time is not None
        self._state.last_prompt_time = max(self._clock(), self._state.start_time)
        self._state.due_at = None
        if self._state.state is TrackingState.AWAITING_ENTRY:
            self._state.state = TrackingState.TRACKING
        self._persist_session()

    def get_session_info(self, now: datetime | None = None) -> SessionInfo:
        now = now or self._clock()
        start = self._state.start_time
        last = self._state.last_prompt_time
        next_prompt_at: datetime | None = None
        if self._state.state is TrackingState.TRACKING and last is not None:
            next_prompt_at = last + self._interval
        elif self._state.due_at is not None:
            next_prompt_at = self._state.due_at

        return SessionInfo(
            is_active=self.is_active,
            state=self._state.state,
            start_time=start,
            last_prompt_time=last,
            elapsed_ms=_ms(now - start) if start else 0,
            since_last_prompt_ms=_ms(now - last) if last else 0,
            next_prompt_at=next_prompt_at,
        )

    # Internals

    def _require_active(self) -> None:
        if self._state.state is TrackingState.IDLE:
            raise NoActiveSessionError("No active session")

    def _notify(self) -> None:
        try:
            delivered = self._notifier.show(PROMPT)
        except Exception:
            logger.exception("Error showing notification")
            return
        if not delivered:
            logger.debug("Prompt not shown by notifier")

    def _persist_session(self) -> None:
        assert self._state.start_time is not None and self._state.last_prompt_time is not None
        record = SessionRecord(
            start=self._state.start_time,
            last_notification=self._state.last_prompt_time,
        )
        try:
            self._store.save_session(record)
        except PersistenceError as exc:
            logger.warning("Failed to persist session state", extra={"error": str(exc)})

    def _clear_persisted_session(self) -> None:
        try:
            self._store.clear_session()
        except PersistenceError as exc:
            logger.warning("Failed to clear persisted session", extra={"error": str(exc)})


__all__ = [
    "InvalidArgumentError",
    "NoActiveSessionError",
    "PROMPT",
    "SessionInfo",
    "SessionScheduler",
    "SessionState",
    "TrackingState",
]
