"""Session scheduling, lifecycle events and activity recording."""

from .events import EventBus, EventKind, TrackingEvent
from .recorder import SKIPPED_DESCRIPTION, SKIPPED_TAG, ActivityRecorder
from .scheduler import (
    InvalidArgumentError,
    NoActiveSessionError,
    SessionInfo,
    SessionScheduler,
    TrackingState,
)

__all__ = [
    "ActivityRecorder",
    "EventBus",
    "EventKind",
    "InvalidArgumentError",
    "NoActiveSessionError",
    "SKIPPED_DESCRIPTION",
    "SKIPPED_TAG",
    "SessionInfo",
    "SessionScheduler",
    "TrackingEvent",
    "TrackingState",
]
