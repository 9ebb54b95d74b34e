"""Line-oriented terminal front end: answers prompts and drives the session."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Callable, Optional, Sequence

from .app import TimelogApp, configure_logging, create_app
from .config import get_settings
from .notify import NotificationPermission
from .storage import PersistenceError
from .tracking import EventKind, InvalidArgumentError, TrackingEvent, TrackingState
from .tracking.scheduler import PROMPT

logger = logging.getLogger(__name__)

ENTRY_HINT = "Enter 'what you did | tag, tag' (blank line skips the interval)"
COMMANDS = "Commands: /stop /snooze /quiet /status /help"

Reader = Callable[[], str]
Writer = Callable[[str], None]


def parse_entry(line: str) -> tuple[str, list[str]]:
    """Split ``"description | tag, tag"`` into its parts."""

    description, _, tag_text = line.partition("|")
    tags = [tag.strip() for tag in tag_text.split(",") if tag.strip()]
    return description.strip(), tags


def _pump_lines(loop: asyncio.AbstractEventLoop, inbox: asyncio.Queue, reader: Reader) -> None:
    while True:
        try:
            line: str | None = reader()
        except EOFError:
            line = None
        try:
            loop.call_soon_threadsafe(inbox.put_nowait, line)
        except RuntimeError:
            # loop already closed
            return
        if line is None:
            return


class ConsoleSession:
    """Turns typed lines into tracking actions and prompts into printed text."""

    def __init__(self, app: TimelogApp, *, writer: Writer = print) -> None:
        self._app = app
        self._write = writer
        self.finished = False

    def handle_event(self, event: TrackingEvent) -> None:
        if event.kind is EventKind.SESSION_STOPPED:
            self._write("Tracking stopped.")
            self.finished = True
        elif event.kind is EventKind.NOTIFICATION_DUE:
            if event.data.get("final"):
                self._write("Stopping: describe the last interval before the session ends.")
            else:
                self._write(PROMPT.body)
            self._write(ENTRY_HINT)

    def handle_line(self, line: str | None) -> None:
        if line is None:
            self.finished = True
            return
        text = line.strip()
        if text.startswith("/"):
            self._command(text[1:].lower())
            return
        if self._app.scheduler.state not in (TrackingState.AWAITING_ENTRY, TrackingState.STOPPING):
            if text:
                self._write(f"No entry is due yet. {COMMANDS}")
            return

        description, tags = parse_entry(text)
        try:
            if description:
                activity = self._app.add_activity(description, tags)
            else:
                activity = self._app.skip_activity()
        except (InvalidArgumentError, PersistenceError) as exc:
            self._write(f"Could not record entry: {exc}")
            return
        self._write(
            f"Logged {activity.start_time:%H:%M:%S}-{activity.end_time:%H:%M:%S} "
            f"{activity.description}"
        )

    def _command(self, name: str) -> None:
        if name == "stop":
            self._app.stop_tracking()
        elif name == "snooze":
            if self._app.scheduler.state is TrackingState.AWAITING_ENTRY:
                self._app.snooze()
                self._write("Snoozed until the next interval.")
            else:
                self._write("Nothing to snooze.")
        elif name == "quiet":
            enabled = self._app.toggle_quiet_mode()
            self._write(f"Quiet mode {'on' if enabled else 'off'}.")
        elif name == "status":
            self._write(json.dumps(self._app.status(), indent=2))
        elif name == "help":
            self._write(f"{ENTRY_HINT}\n{COMMANDS}")
        else:
            self._write(f"Unknown command '/{name}'. {COMMANDS}")

    async def run(self, reader: Reader = input) -> None:
        """Process prompts and typed lines until the session stops or input ends."""

        loop = asyncio.get_running_loop()
        inbox: asyncio.Queue[TrackingEvent | str | None] = asyncio.Queue()
        unsubscribe = self._app.events.subscribe(
            inbox.put_nowait,
            kinds=[EventKind.NOTIFICATION_DUE, EventKind.SESSION_STOPPED],
        )
        threading.Thread(
            target=_pump_lines,
            args=(loop, inbox, reader),
            name="timelog-stdin",
            daemon=True,
        ).start()
        try:
            if not self._app.scheduler.is_active:
                self._app.start_tracking()
            self._app.scheduler.ensure_polling()
            while not self.finished:
                item = await inbox.get()
                if isinstance(item, TrackingEvent):
                    self.handle_event(item)
                else:
                    self.handle_line(item)
        finally:
            unsubscribe()


async def run_console(app: TimelogApp, *, reader: Reader = input, writer: Writer = print) -> None:
    """Start or resume tracking and answer prompts from a terminal."""

    if app.notifier.permission is NotificationPermission.DEFAULT:
        permission = app.request_notification_permission()
        logger.info("Notification permission requested", extra={"permission": permission.value})
    elif app.notifier.permission is NotificationPermission.DENIED:
        writer("Notifications are denied; prompts will only appear here.")

    writer(COMMANDS)
    session = ConsoleSession(app, writer=writer)
    try:
        await session.run(reader)
    finally:
        app.close()


def _log_event(event: TrackingEvent) -> None:
    logger.debug("Tracking event", extra={"event_kind": event.kind.value})


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entry point for the ``timelog`` console script."""

    config = get_settings()
    configure_logging(config.log_level)
    app = create_app(config)
    app.events.subscribe(_log_event)
    logger.info("Starting timelog", extra={"db_path": str(config.db_path)})
    try:
        asyncio.run(run_console(app))
    except KeyboardInterrupt:
        logger.info("Interrupted; session kept for the next launch")


if __name__ == "__main__":
    main()
