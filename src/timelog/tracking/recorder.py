"""Turn closed intervals into persisted activities."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence
from uuid import uuid4

from pydantic import ValidationError

from ..storage import Activity, TimelogStore
from .events import EventKind
from .scheduler import InvalidArgumentError, NoActiveSessionError, SessionScheduler

logger = logging.getLogger(__name__)

SKIPPED_DESCRIPTION = "Activity skipped"
SKIPPED_TAG = ":skipped"


def generate_activity_id(now: datetime) -> str:
    return f"{int(now.timestamp() * 1000)}-{uuid4().hex[:9]}"


class ActivityRecorder:
    """Record the interval since the last prompt boundary.

    Activities are back-dated: they span from the previous boundary to the
    boundary that triggered the prompt, not to the moment of entry.
    """

    def __init__(
        self,
        scheduler: SessionScheduler,
        store: TimelogStore,
        *,
        id_factory: Callable[[datetime], str] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._store = store
        self._id_factory = id_factory or generate_activity_id

    def record_activity(
        self,
        description: str,
        tags: Sequence[str],
        planned_next: str | None = None,
        mood: int | None = None,
        excuse: str | None = None,
    ) -> Activity:
        if not self._scheduler.is_active:
            raise NoActiveSessionError("No active session")

        start, end = self._scheduler.current_interval()
        now = self._scheduler.now()
        try:
            activity = Activity(
                id=self._id_factory(now),
                description=description,
                tags=list(tags),
                planned_next=planned_next,
                mood=mood,
                excuse=excuse,
                start_time=start,
                end_time=end,
                created_at=now,
            )
        except ValidationError as exc:
            raise InvalidArgumentError(str(exc)) from exc

        # a failed write leaves the scheduler untouched so the entry can be retried
        self._store.add_activity(activity)
        stopping = self._scheduler.close_interval(end)

        logger.info(
            "Recorded activity",
            extra={"activity_id": activity.id, "duration_ms": activity.duration},
        )
        self._scheduler.events.emit(EventKind.ACTIVITY_ADDED, activity)

        if stopping:
            self._scheduler.finish_stop()
        return activity

    def record_skipped_interval(self) -> Activity:
        """Close the pending interval with a sentinel so totals stay contiguous."""

        return self.record_activity(SKIPPED_DESCRIPTION, [SKIPPED_TAG])


__all__ = [
    "ActivityRecorder",
    "SKIPPED_DESCRIPTION",
    "SKIPPED_TAG",
    "generate_activity_id",
]
