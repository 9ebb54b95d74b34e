"""Notification data types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class NotificationPermission(str, Enum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(slots=True, frozen=True)
class Notification:
    """A prompt handed to the platform notifier."""

    title: str
    body: str
    require_interaction: bool = True


__all__ = ["Notification", "NotificationPermission"]
