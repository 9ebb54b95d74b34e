"""Application bootstrap for timelog."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

from pydantic import ValidationError

from . import __version__
from .config import TimelogSettings, get_settings
from .notify import NotificationPermission, TerminalNotifier
from .reports import ReportPeriod, activities_for_period, export_csv
from .schedules import (
    PresetMerge,
    QuietTime,
    QuietTimeLoadError,
    dump_quiet_times,
    load_presets,
    merge_presets,
    read_preset_file,
)
from .storage import (
    Activity,
    PersistenceError,
    SqliteBackend,
    TimelogStore,
    TrackerSettings,
)
from .tracking import (
    ActivityRecorder,
    EventBus,
    InvalidArgumentError,
    SessionScheduler,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for timelog."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


class TimelogApp:
    """Composed services plus the user-facing actions that drive them."""

    def __init__(
        self,
        *,
        store: TimelogStore,
        notifier: TerminalNotifier,
        scheduler: SessionScheduler,
        recorder: ActivityRecorder,
        settings: TrackerSettings,
        config: TimelogSettings,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.scheduler = scheduler
        self.recorder = recorder
        self.config = config
        self._settings = settings

    @property
    def settings(self) -> TrackerSettings:
        return self._settings

    @property
    def events(self) -> EventBus:
        return self.scheduler.events

    # Tracking actions

    def start_tracking(self) -> None:
        self._apply_settings(self._settings)
        self.scheduler.start_tracking()

    def stop_tracking(self) -> None:
        self.scheduler.stop_tracking()

    def toggle_quiet_mode(self) -> bool:
        enabled = not self.scheduler.quiet_mode
        self.scheduler.set_quiet_mode(enabled)
        return enabled

    def add_activity(
        self,
        description: str,
        tags: Sequence[str],
        planned_next: str | None = None,
        mood: int | None = None,
        excuse: str | None = None,
    ) -> Activity:
        return self.recorder.record_activity(description, tags, planned_next, mood, excuse)

    def skip_activity(self) -> Activity:
        return self.recorder.record_skipped_interval()

    def snooze(self) -> None:
        self.scheduler.skip_notification()

    # Settings actions

    def update_settings(self, **updates: Any) -> TrackerSettings:
        merged = self._settings.model_dump()
        merged.update(updates)
        try:
            settings = TrackerSettings.model_validate(merged)
        except ValidationError as exc:
            raise InvalidArgumentError(str(exc)) from exc
        self._apply_settings(settings)
        self._save_settings(settings)
        self._settings = settings
        return settings

    def set_notification_interval(self, minutes: int, seconds: int = 0) -> TrackerSettings:
        milliseconds = (int(minutes) * 60 + int(seconds)) * 1000
        self.scheduler.set_notification_interval(milliseconds)
        return self.update_settings(notification_interval_ms=milliseconds)

    def add_quiet_time(self, quiet_time: QuietTime | dict[str, Any]) -> QuietTime:
        window = QuietTime.model_validate(quiet_time) if isinstance(quiet_time, dict) else quiet_time
        remaining = [existing for existing in self._settings.quiet_times if existing.id != window.id]
        self.update_settings(quiet_times=[*remaining, window])
        return window

    def remove_quiet_time(self, quiet_time_id: str) -> bool:
        remaining = [qt for qt in self._settings.quiet_times if qt.id != quiet_time_id]
        if len(remaining) == len(self._settings.quiet_times):
            return False
        self.update_settings(quiet_times=remaining)
        return True

    def update_quiet_time(self, quiet_time_id: str, **updates: Any) -> QuietTime | None:
        updated: QuietTime | None = None
        windows: list[QuietTime] = []
        for window in self._settings.quiet_times:
            if window.id == quiet_time_id:
                try:
                    window = QuietTime.model_validate({**window.model_dump(), **updates})
                except ValidationError as exc:
                    raise InvalidArgumentError(str(exc)) from exc
                updated = window
            windows.append(window)
        if updated is not None:
            self.update_settings(quiet_times=windows)
        return updated

    def import_quiet_times(self, path: Path) -> PresetMerge:
        """Add the windows in a preset file; stored windows keep their ids."""

        merge = _log_merge(merge_presets(self._settings.quiet_times, read_preset_file(path)))
        if merge.added:
            self.update_settings(quiet_times=merge.quiet_times)
        return merge

    def export_quiet_times(self) -> str:
        return dump_quiet_times(self._settings.quiet_times)

    def request_notification_permission(self) -> NotificationPermission:
        permission = self.notifier.request_permission()
        self.update_settings(notification_permission=permission)
        return permission

    # Data actions

    def activities(self) -> list[Activity]:
        try:
            return self.store.load_activities()
        except PersistenceError as exc:
            logger.error("Error loading activities", extra={"error": str(exc)})
            return []

    def delete_activity(self, activity_id: str) -> bool:
        return self.store.delete_activity(activity_id)

    def update_activity(self, activity_id: str, **updates: Any) -> Activity | None:
        return self.store.update_activity(activity_id, updates)

    def all_tags(self) -> list[str]:
        return self.store.all_tags()

    def export_data(self) -> str:
        return self.store.export_data()

    def import_data(self, payload: str) -> None:
        self.store.import_data(payload)
        settings = self.store.load_settings()
        if settings is not None:
            self._apply_settings(settings)
            self._settings = settings

    def export_csv(self, period: ReportPeriod | str = ReportPeriod.ALL) -> str:
        selected = activities_for_period(self.activities(), period, self.scheduler.now())
        return export_csv(selected)

    def status(self) -> dict[str, Any]:
        info = self.scheduler.get_session_info()
        return {
            "timestamp": self.scheduler.now().isoformat(),
            "version": __version__,
            "session": info.as_dict(),
            "quiet_mode": self.scheduler.quiet_mode,
            "in_quiet_time": self.scheduler.in_quiet_time(),
            "interval_ms": self.scheduler.interval_ms,
            "notification_permission": self.notifier.permission.value,
            "sound_enabled": self.notifier.sound_enabled,
            "quiet_times": [window.id for window in self._settings.quiet_times],
        }

    # Runtime

    async def serve(self) -> None:
        """Keep the event loop alive while the poll task runs; returns on cancel."""

        # a session restored before the loop started has no poll task yet
        self.scheduler.ensure_polling()
        try:
            while True:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.close()
            raise

    def close(self) -> None:
        self.scheduler.close()

    # Internals

    def _apply_settings(self, settings: TrackerSettings) -> None:
        self.scheduler.set_notification_interval(settings.notification_interval_ms)
        self.scheduler.set_quiet_times(settings.quiet_times)
        self.notifier.set_sound_enabled(settings.sound_enabled)

    def _save_settings(self, settings: TrackerSettings) -> None:
        try:
            self.store.save_settings(settings)
        except PersistenceError as exc:
            logger.error("Error saving settings", extra={"error": str(exc)})


def _load_tracker_settings(store: TimelogStore, config: TimelogSettings) -> TrackerSettings:
    try:
        settings = store.load_settings()
    except PersistenceError as exc:
        logger.warning("Stored settings unreadable; using defaults", extra={"error": str(exc)})
        settings = None
    if settings is None:
        settings = TrackerSettings(notification_interval_ms=config.default_interval_ms)
    return settings


def _log_merge(merge: PresetMerge) -> PresetMerge:
    for preset_id in merge.shadowed:
        logger.debug("Quiet-time preset already stored", extra={"quiet_time_id": preset_id})
    for preset_id in merge.inactive:
        logger.warning("Quiet-time preset has no days; skipped", extra={"quiet_time_id": preset_id})
    for preset_id, stored_id in merge.overlaps:
        logger.warning(
            "Quiet-time preset overlaps a stored window",
            extra={"quiet_time_id": preset_id, "overlaps": stored_id},
        )
    return merge


def _merge_presets(settings: TrackerSettings, presets: Iterable[QuietTime]) -> TrackerSettings:
    merge = _log_merge(merge_presets(settings.quiet_times, presets))
    if not merge.added:
        return settings
    return settings.model_copy(update={"quiet_times": merge.quiet_times})


def create_app(
    config: Optional[TimelogSettings] = None,
    *,
    store: TimelogStore | None = None,
    notifier: TerminalNotifier | None = None,
    clock: Callable[[], datetime] | None = None,
) -> TimelogApp:
    """Construct every service once and restore any persisted session."""

    config = config or get_settings()
    store = store or TimelogStore(SqliteBackend(config.db_path))

    settings = _load_tracker_settings(store, config)

    try:
        presets = load_presets(config.quiet_time_paths)
    except QuietTimeLoadError as exc:
        logger.error("Failed to load quiet-time presets", extra={"error": str(exc)})
        presets = {}
    settings = _merge_presets(settings, presets.values())

    if notifier is None:
        notifier = TerminalNotifier(
            permission=settings.notification_permission,
            sound_enabled=settings.sound_enabled,
        )
    settings = settings.model_copy(update={"notification_permission": notifier.permission})

    scheduler = SessionScheduler(
        store,
        notifier,
        events=EventBus(),
        interval_ms=settings.notification_interval_ms,
        quiet_times=settings.quiet_times,
        clock=clock,
        poll_interval=config.poll_interval_seconds,
        session_max_age=timedelta(seconds=config.session_max_age_seconds),
    )
    recorder = ActivityRecorder(scheduler, store)

    app = TimelogApp(
        store=store,
        notifier=notifier,
        scheduler=scheduler,
        recorder=recorder,
        settings=settings,
        config=config,
    )
    app._apply_settings(settings)
    app._save_settings(settings)
    scheduler.restore_session()
    return app

