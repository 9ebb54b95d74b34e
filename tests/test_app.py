from __future__ import annotations

import asyncio
import json
import textwrap
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from timelog.app import TimelogApp, create_app
from timelog.config import TimelogSettings
from timelog.notify import FakeNotifier, NotificationPermission
from timelog.storage import (
    STORAGE_KEYS,
    MemoryBackend,
    PersistenceError,
    SessionRecord,
    TimelogStore,
    TrackerSettings,
)
from timelog.tracking import EventKind, InvalidArgumentError, TrackingState

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


def build(config, clock, *, store=None, notifier=None) -> TimelogApp:
    return create_app(
        config,
        store=store or TimelogStore(MemoryBackend()),
        notifier=notifier or FakeNotifier(),
        clock=clock,
    )


def test_create_app_with_empty_store_uses_defaults(config, clock) -> None:
    store = TimelogStore(MemoryBackend())

    app = build(config, clock, store=store)

    assert app.settings.notification_interval_ms == 15000
    assert app.scheduler.interval_ms == 15000
    assert app.scheduler.state is TrackingState.IDLE
    assert store.load_settings() == app.settings


def test_create_app_falls_back_on_corrupt_settings(config, clock, caplog) -> None:
    store = TimelogStore(MemoryBackend({STORAGE_KEYS["settings"]: "{oops"}))
    caplog.set_level("WARNING", logger="timelog.app")

    app = build(config, clock, store=store)

    assert app.settings.notification_interval_ms == 15000
    assert "Stored settings unreadable" in caplog.text


def test_create_app_merges_quiet_time_presets(config, clock) -> None:
    preset_dir = config.quiet_time_paths[0]
    preset_dir.mkdir()
    (preset_dir / "defaults.yaml").write_text(
        textwrap.dedent(
            """
            quiet_times:
              - id: lunch
                start_time: "12:00"
                end_time: "13:00"
                days: [mon, tue, wed, thu, fri]
              - id: night
                start_time: "22:00"
                end_time: "07:00"
                days: [0, 1, 2, 3, 4, 5, 6]
            """
        ).strip(),
        encoding="utf-8",
    )
    store = TimelogStore(MemoryBackend())
    store.save_settings(
        TrackerSettings(
            quiet_times=[{"id": "lunch", "startTime": "11:30", "endTime": "12:30", "days": [3]}]
        )
    )

    app = build(config, clock, store=store)

    ids = [window.id for window in app.settings.quiet_times]
    assert ids == ["lunch", "night"]
    # stored windows win over presets with the same id
    assert app.settings.quiet_times[0].start_time == "11:30"
    assert [window.id for window in app.scheduler.quiet_times] == ["lunch", "night"]


def test_create_app_reports_overlapping_and_empty_presets(config, clock, caplog) -> None:
    preset_dir = config.quiet_time_paths[0]
    preset_dir.mkdir()
    (preset_dir / "team.yml").write_text(
        textwrap.dedent(
            """
            - id: standup
              start_time: "09:50"
              end_time: "10:10"
              days: [wed]
            - id: someday
              start_time: "15:00"
              end_time: "16:00"
              days: []
            """
        ).strip(),
        encoding="utf-8",
    )
    store = TimelogStore(MemoryBackend())
    store.save_settings(
        TrackerSettings(
            quiet_times=[{"id": "focus", "startTime": "09:00", "endTime": "10:00", "days": [3]}]
        )
    )
    caplog.set_level("WARNING", logger="timelog.app")

    app = build(config, clock, store=store)

    assert [window.id for window in app.settings.quiet_times] == ["focus", "standup"]
    assert "overlaps a stored window" in caplog.text
    assert "has no days" in caplog.text


def test_create_app_survives_broken_preset_file(config, clock, caplog) -> None:
    preset_dir = config.quiet_time_paths[0]
    preset_dir.mkdir()
    (preset_dir / "broken.yaml").write_text("- id: x\n  start_time: '25:00'\n", encoding="utf-8")
    caplog.set_level("ERROR", logger="timelog.app")

    app = build(config, clock)

    assert app.settings.quiet_times == []
    assert "Failed to load quiet-time presets" in caplog.text


def test_quiet_times_export_and_import(config, clock, tmp_path: Path) -> None:
    source = build(config, clock)
    source.add_quiet_time({"id": "night", "startTime": "22:00", "endTime": "07:00", "days": [5, 6]})
    exported = tmp_path / "night.yaml"
    exported.write_text(source.export_quiet_times(), encoding="utf-8")

    store = TimelogStore(MemoryBackend())
    target = build(config, clock, store=store)
    merge = target.import_quiet_times(exported)

    assert merge.added == ["night"]
    assert target.settings.quiet_times == source.settings.quiet_times
    assert store.load_settings().quiet_times == source.settings.quiet_times
    assert target.import_quiet_times(exported).shadowed == ["night"]


def test_create_app_restores_recent_session(config, clock) -> None:
    store = TimelogStore(MemoryBackend())
    store.save_session(
        SessionRecord(start=T0 - timedelta(minutes=30), last_notification=T0 - timedelta(minutes=1))
    )

    app = build(config, clock, store=store)

    assert app.scheduler.is_active
    assert app.status()["session"]["start_time"] == (T0 - timedelta(minutes=30)).isoformat()


def test_create_app_drops_stale_session(config, clock) -> None:
    store = TimelogStore(MemoryBackend())
    store.save_session(SessionRecord(start=T0 - timedelta(hours=2), last_notification=T0))

    app = build(config, clock, store=store)

    assert not app.scheduler.is_active
    assert store.load_session() is None


def test_tracking_flow_through_app(config, clock) -> None:
    app = build(config, clock)
    added = []
    app.events.subscribe(added.append, kinds=[EventKind.ACTIVITY_ADDED])

    app.start_tracking()
    clock.advance(seconds=15)
    app.scheduler.tick()
    clock.advance(seconds=5)
    first = app.add_activity("planning", ["work"], planned_next="coding", mood=4)
    clock.advance(seconds=10)
    app.scheduler.tick()
    skipped = app.skip_activity()

    assert first.end_time == skipped.start_time
    assert [activity.id for activity in app.activities()] == [first.id, skipped.id]
    assert app.all_tags() == [":skipped", "work"]
    assert len(added) == 2

    app.stop_tracking()
    app.add_activity("done", ["work"])
    assert app.scheduler.state is TrackingState.IDLE


def test_toggle_quiet_mode_and_snooze(config, clock) -> None:
    app = build(config, clock)
    app.start_tracking()

    assert app.toggle_quiet_mode() is True
    assert app.status()["quiet_mode"] is True
    assert app.toggle_quiet_mode() is False

    clock.advance(seconds=15)
    app.scheduler.tick()
    app.snooze()
    assert app.scheduler.state is TrackingState.TRACKING


def test_set_notification_interval_persists(config, clock) -> None:
    store = TimelogStore(MemoryBackend())
    app = build(config, clock, store=store)

    app.set_notification_interval(1, 30)

    assert app.scheduler.interval_ms == 90000
    assert store.load_settings().notification_interval_ms == 90000

    with pytest.raises(InvalidArgumentError):
        app.set_notification_interval(0, 0)
    assert app.scheduler.interval_ms == 90000
    assert app.settings.notification_interval_ms == 90000


def test_update_settings_rejects_invalid_values(config, clock) -> None:
    app = build(config, clock)

    with pytest.raises(InvalidArgumentError):
        app.update_settings(notification_interval_ms=5)

    assert app.settings.notification_interval_ms == 15000


def test_update_settings_survives_storage_failure(config, clock, caplog) -> None:
    backend = FlakyBackend()
    app = build(config, clock, store=TimelogStore(backend))
    backend.failing.add(STORAGE_KEYS["settings"])
    caplog.set_level("ERROR", logger="timelog.app")

    app.update_settings(sound_enabled=False)

    assert app.settings.sound_enabled is False
    assert app.notifier.sound_enabled is False
    assert "Error saving settings" in caplog.text


def test_quiet_time_crud(config, clock) -> None:
    store = TimelogStore(MemoryBackend())
    app = build(config, clock, store=store)

    app.add_quiet_time({"id": "focus", "startTime": "09:00", "endTime": "11:00", "days": [3]})
    assert app.scheduler.in_quiet_time()

    updated = app.update_quiet_time("focus", enabled=False)
    assert updated is not None and updated.enabled is False
    assert not app.scheduler.in_quiet_time()
    assert app.update_quiet_time("missing", enabled=True) is None

    with pytest.raises(InvalidArgumentError):
        app.update_quiet_time("focus", start_time="99:99")

    assert app.remove_quiet_time("focus") is True
    assert app.remove_quiet_time("focus") is False
    assert store.load_settings().quiet_times == []


def test_request_notification_permission(config, clock) -> None:
    store = TimelogStore(MemoryBackend())
    notifier = FakeNotifier(permission=NotificationPermission.DEFAULT)
    app = build(config, clock, store=store, notifier=notifier)

    assert app.request_notification_permission() is NotificationPermission.GRANTED
    assert store.load_settings().notification_permission is NotificationPermission.GRANTED


def test_import_applies_settings(config, clock) -> None:
    app = build(config, clock)
    payload = json.dumps(
        {
            "activities": [],
            "settings": {"notificationIntervalMs": 45000, "soundEnabled": False},
        }
    )

    app.import_data(payload)

    assert app.scheduler.interval_ms == 45000
    assert app.notifier.sound_enabled is False
    assert json.loads(app.export_data())["settings"]["notificationIntervalMs"] == 45000


def test_edit_and_export_csv(config, clock) -> None:
    app = build(config, clock)
    app.start_tracking()
    recorded = app.add_activity("typo", ["work"])

    edited = app.update_activity(recorded.id, description="fixed")
    assert edited is not None and edited.description == "fixed"
    with pytest.raises(InvalidArgumentError):
        app.update_activity(recorded.id, mood=0)
    with pytest.raises(InvalidArgumentError):
        app.update_activity(recorded.id, plannedNxt="lunch")

    csv_text = app.export_csv("today")
    assert csv_text.splitlines()[0].startswith("Date,Start Time")
    assert '"fixed"' in csv_text

    assert app.delete_activity(recorded.id) is True
    assert app.activities() == []


def test_status_payload(config, clock) -> None:
    app = build(config, clock)

    status = app.status()

    assert status["session"]["is_active"] is False
    assert status["interval_ms"] == 15000
    assert status["notification_permission"] == "granted"
    assert status["in_quiet_time"] is False


def test_serve_polls_until_cancelled(config, clock) -> None:
    store = TimelogStore(MemoryBackend())
    store.save_session(SessionRecord(start=T0 - timedelta(minutes=1), last_notification=T0))
    app = build(config, clock, store=store)
    assert app.scheduler.poll_task is None

    async def scenario() -> None:
        serving = asyncio.create_task(app.serve())
        await asyncio.sleep(0)
        assert app.scheduler.poll_task is not None

        clock.advance(seconds=15)
        await asyncio.sleep(0.05)
        assert app.scheduler.state is TrackingState.AWAITING_ENTRY

        serving.cancel()
        with pytest.raises(asyncio.CancelledError):
            await serving
        assert app.scheduler.poll_task is None

    asyncio.run(scenario())
    # closing keeps the session for the next launch
    assert store.load_session() is not None
