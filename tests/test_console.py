from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from timelog.app import create_app
from timelog.config import TimelogSettings
from timelog.console import ConsoleSession, parse_entry, run_console
from timelog.notify import FakeNotifier, NotificationPermission
from timelog.storage import STORAGE_KEYS, MemoryBackend, PersistenceError, TimelogStore
from timelog.tracking import EventKind, TrackingState

T0 = datetime(2024, 1, 3, 10, 0, 0, tzinfo=timezone.utc)


class FlakyBackend(MemoryBackend):
    def __init__(self) -> None:
        super().__init__()
        self.failing: set[str] = set()

    def set(self, key: str, value: str) -> None:
        if key in self.failing:
            raise PersistenceError(f"cannot write {key}")
        super().set(key, value)


@pytest.fixture
def config(monkeypatch, tmp_path: Path) -> TimelogSettings:
    monkeypatch.setenv("TIMELOG_DB_PATH", str(tmp_path / "timelog.sqlite3"))
    monkeypatch.setenv("TIMELOG_QUIET_TIME_PATHS", str(tmp_path / "quiet_times"))
    monkeypatch.setenv("TIMELOG_POLL_INTERVAL_SECONDS", "0.01")
    return TimelogSettings()


def build(config, clock, *, store=None, notifier=None):
    return create_app(
        config,
        store=store or TimelogStore(MemoryBackend()),
        notifier=notifier or FakeNotifier(),
        clock=clock,
    )


def scripted(lines):
    pending = list(lines)

    def reader() -> str:
        if not pending:
            raise EOFError
        return pending.pop(0)

    return reader


@pytest.mark.parametrize(
    "line, expected",
    [
        ("writing docs | work, docs", ("writing docs", ["work", "docs"])),
        ("  lunch  ", ("lunch", [])),
        ("review |", ("review", [])),
        (" | , ", ("", [])),
    ],
)
def test_parse_entry(line, expected) -> None:
    assert parse_entry(line) == expected


def test_session_records_entry_when_prompted(config, clock) -> None:
    app = build(config, clock)
    output: list[str] = []
    session = ConsoleSession(app, writer=output.append)
    app.events.subscribe(session.handle_event)
    app.start_tracking()

    session.handle_line("too early")
    assert "No entry is due yet" in output[-1]
    assert app.activities() == []

    clock.advance(seconds=15)
    app.scheduler.tick()
    assert "Time to log your activity" in output[-2]

    clock.advance(seconds=3)
    session.handle_line("planning | work, admin")

    activity = app.activities()[0]
    assert activity.description == "planning"
    assert activity.tags == ["work", "admin"]
    assert output[-1] == "Logged 10:00:00-10:00:15 planning"
    assert app.scheduler.state is TrackingState.TRACKING


def test_session_blank_line_skips_interval(config, clock) -> None:
    app = build(config, clock)
    session = ConsoleSession(app, writer=lambda _text: None)
    app.start_tracking()
    clock.advance(seconds=15)
    app.scheduler.tick()

    session.handle_line("")

    assert [activity.tags for activity in app.activities()] == [[":skipped"]]


def test_session_stop_command_takes_final_entry(config, clock) -> None:
    app = build(config, clock)
    output: list[str] = []
    session = ConsoleSession(app, writer=output.append)
    app.events.subscribe(session.handle_event)
    app.start_tracking()
    clock.advance(seconds=5)

    session.handle_line("/stop")
    assert app.scheduler.state is TrackingState.STOPPING
    assert "describe the last interval" in output[-2]

    session.handle_line("wrap up | admin")

    assert session.finished is True
    assert app.scheduler.state is TrackingState.IDLE
    assert "Tracking stopped." in output
    assert [activity.description for activity in app.activities()] == ["wrap up"]


def test_session_commands(config, clock) -> None:
    app = build(config, clock)
    output: list[str] = []
    session = ConsoleSession(app, writer=output.append)
    app.start_tracking()

    session.handle_line("/snooze")
    assert output[-1] == "Nothing to snooze."

    session.handle_line("/quiet")
    assert output[-1] == "Quiet mode on."
    assert app.scheduler.quiet_mode is True

    session.handle_line("/status")
    assert '"quiet_mode": true' in output[-1]

    session.handle_line("/dance")
    assert output[-1].startswith("Unknown command '/dance'")

    app.toggle_quiet_mode()
    clock.advance(seconds=15)
    app.scheduler.tick()
    session.handle_line("/snooze")
    assert app.scheduler.state is TrackingState.TRACKING
    assert app.activities() == []


def test_session_reports_failed_write(config, clock) -> None:
    backend = FlakyBackend()
    app = build(config, clock, store=TimelogStore(backend))
    output: list[str] = []
    session = ConsoleSession(app, writer=output.append)
    app.start_tracking()
    clock.advance(seconds=15)
    app.scheduler.tick()

    backend.failing.add(STORAGE_KEYS["activities"])
    session.handle_line("lost? | work")

    assert output[-1].startswith("Could not record entry")
    assert app.scheduler.state is TrackingState.AWAITING_ENTRY

    backend.failing.clear()
    session.handle_line("kept | work")
    assert [activity.description for activity in app.activities()] == ["kept"]


def test_run_console_requests_permission_and_starts_tracking(config, clock) -> None:
    store = TimelogStore(MemoryBackend())
    notifier = FakeNotifier(permission=NotificationPermission.DEFAULT)
    app = build(config, clock, store=store, notifier=notifier)
    output: list[str] = []

    asyncio.run(run_console(app, reader=scripted([]), writer=output.append))

    assert notifier.permission is NotificationPermission.GRANTED
    assert store.load_settings().notification_permission is NotificationPermission.GRANTED
    assert app.scheduler.is_active
    # input ended, so the session is kept for the next launch
    assert store.load_session() is not None
    assert app.scheduler.poll_task is None


def test_run_console_answers_pending_prompt(config, clock) -> None:
    app = build(config, clock)
    app.start_tracking()
    clock.advance(seconds=15)
    app.scheduler.tick()
    clock.advance(seconds=2)
    output: list[str] = []

    asyncio.run(
        run_console(app, reader=scripted(["coding | work", "/stop", ""]), writer=output.append)
    )

    assert [activity.description for activity in app.activities()] == ["coding", "Activity skipped"]
    first, last = app.activities()
    assert first.end_time == last.start_time == T0 + timedelta(seconds=15)
    assert app.scheduler.state is TrackingState.IDLE
    assert any(line.startswith("Logged 10:00:15-10:00:30") for line in output)


def test_run_console_warns_when_permission_denied(config, clock) -> None:
    notifier = FakeNotifier(permission=NotificationPermission.DENIED)
    app = build(config, clock, notifier=notifier)
    output: list[str] = []
    seen = []
    app.events.subscribe(seen.append, kinds=[EventKind.SESSION_STARTED])

    asyncio.run(run_console(app, reader=scripted([]), writer=output.append))

    assert "Notifications are denied" in output[0]
    assert notifier.permission is NotificationPermission.DENIED
    assert len(seen) == 1
