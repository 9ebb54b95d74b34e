"""Platform notifiers used to surface activity prompts."""

from __future__ import annotations

import logging
import sys
from typing import Protocol, TextIO

from .models import Notification, NotificationPermission

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Minimal notifier API consumed by the scheduler."""

    @property
    def permission(self) -> NotificationPermission:
        ...

    def show(self, notification: Notification) -> bool:
        ...


class TerminalNotifier:
    """Surface prompts through the log and the terminal bell."""

    def __init__(
        self,
        *,
        permission: NotificationPermission = NotificationPermission.DEFAULT,
        sound_enabled: bool = True,
        stream: TextIO | None = None,
    ) -> None:
        self._permission = NotificationPermission(permission)
        self._sound_enabled = sound_enabled
        self._stream = stream

    @property
    def permission(self) -> NotificationPermission:
        return self._permission

    @property
    def sound_enabled(self) -> bool:
        return self._sound_enabled

    def set_sound_enabled(self, enabled: bool) -> None:
        self._sound_enabled = bool(enabled)

    def request_permission(self) -> NotificationPermission:
        """Grant terminal alerts unless the user has already denied them."""

        if self._permission is NotificationPermission.DEFAULT:
            self._permission = NotificationPermission.GRANTED
        return self._permission

    def show(self, notification: Notification) -> bool:
        if self._permission is not NotificationPermission.GRANTED:
            logger.warning(
                "Notification permission not granted",
                extra={"permission": self._permission.value},
            )
            return False

        self._deliver(notification)
        if self._sound_enabled:
            self._play_sound()
        return True

    def _deliver(self, notification: Notification) -> None:
        logger.info(
            "%s: %s",
            notification.title,
            notification.body,
            extra={"require_interaction": notification.require_interaction},
        )

    def _play_sound(self) -> None:
        stream = self._stream or sys.stderr
        try:
            stream.write("\a")
            stream.flush()
        except (OSError, ValueError) as exc:
            logger.error("Error playing notification sound: %s", exc)


class FakeNotifier(TerminalNotifier):
    """Test double that records delivered notifications."""

    def __init__(
        self,
        *,
        permission: NotificationPermission = NotificationPermission.GRANTED,
        sound_enabled: bool = False,
        fail: bool = False,
    ) -> None:
        super().__init__(permission=permission, sound_enabled=sound_enabled)
        self._fail = fail
        self._shown: list[Notification] = []
        self.sounds_played = 0

    def _deliver(self, notification: Notification) -> None:  # type: ignore[override]
        if self._fail:
            raise RuntimeError("notifier backend unavailable")
        self._shown.append(notification)

    def _play_sound(self) -> None:  # type: ignore[override]
        self.sounds_played += 1

    @property
    def shown(self) -> list[Notification]:
        return self._shown


__all__ = ["FakeNotifier", "Notifier", "TerminalNotifier"]
