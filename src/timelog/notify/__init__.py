"""Prompt delivery."""

from .models import Notification, NotificationPermission
from .notifier import FakeNotifier, Notifier, TerminalNotifier

__all__ = [
    "FakeNotifier",
    "Notification",
    "NotificationPermission",
    "Notifier",
    "TerminalNotifier",
]
