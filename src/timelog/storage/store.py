"""Repository over the three persisted blobs: activities, settings, session."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from pydantic import TypeAdapter, ValidationError

from .backends import KeyValueBackend, PersistenceError
from .models import Activity, SessionRecord, TrackerSettings

logger = logging.getLogger(__name__)

STORAGE_KEYS = {
    "activities": "timelog.v1.activities",
    "settings": "timelog.v1.settings",
    "session": "timelog.v1.session",
}

_ACTIVITY_LIST = TypeAdapter(list[Activity])

# immutable or derived
_FROZEN_ACTIVITY_FIELDS = frozenset({"id", "duration"})


class InvalidArgumentError(ValueError):
    """Raised when an operation receives an out-of-range or unknown value."""


def _activity_field(key: str) -> str:
    if key in Activity.model_fields or key in _FROZEN_ACTIVITY_FIELDS:
        return key
    for name, info in Activity.model_fields.items():
        if info.alias == key:
            return name
    raise InvalidArgumentError(f"Unknown activity field '{key}'")


class TimelogStore:
    """Load and save activities, settings and the session marker."""

    def __init__(self, backend: KeyValueBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    def _read(self, name: str) -> Any | None:
        raw = self._backend.get(STORAGE_KEYS[name])
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Stored {name} blob is not valid JSON: {exc}") from exc

    def _write(self, name: str, payload: Any) -> None:
        self._backend.set(STORAGE_KEYS[name], json.dumps(payload))

    # Activities

    def load_activities(self) -> list[Activity]:
        data = self._read("activities")
        if data is None:
            return []
        try:
            return _ACTIVITY_LIST.validate_python(data)
        except ValidationError as exc:
            raise PersistenceError(f"Stored activities are invalid: {exc}") from exc

    def save_activities(self, activities: Iterable[Activity]) -> None:
        self._write(
            "activities",
            [activity.model_dump(mode="json", by_alias=True) for activity in activities],
        )

    def add_activity(self, activity: Activity) -> None:
        activities = self.load_activities()
        activities.append(activity)
        self.save_activities(activities)

    def delete_activity(self, activity_id: str) -> bool:
        activities = self.load_activities()
        remaining = [activity for activity in activities if activity.id != activity_id]
        if len(remaining) == len(activities):
            return False
        self.save_activities(remaining)
        return True

    def update_activity(self, activity_id: str, updates: dict[str, Any]) -> Activity | None:
        """Apply ``updates`` to one activity; ``duration`` and ``id`` cannot be changed.

        Keys may use field names or their camelCase aliases. Unknown keys and
        invalid values raise ``InvalidArgumentError`` before anything is written.
        """

        changes = {_activity_field(key): value for key, value in updates.items()}
        activities = self.load_activities()
        for index, activity in enumerate(activities):
            if activity.id != activity_id:
                continue
            merged = activity.model_dump()
            merged.pop("duration", None)
            for key, value in changes.items():
                if key not in _FROZEN_ACTIVITY_FIELDS:
                    merged[key] = value
            try:
                updated = Activity.model_validate(merged)
            except ValidationError as exc:
                raise InvalidArgumentError(str(exc)) from exc
            activities[index] = updated
            self.save_activities(activities)
            return updated
        return None

    def all_tags(self) -> list[str]:
        tags: set[str] = set()
        for activity in self.load_activities():
            tags.update(activity.tags)
        return sorted(tags)

    # Settings

    def load_settings(self) -> TrackerSettings | None:
        data = self._read("settings")
        if data is None:
            return None
        try:
            return TrackerSettings.model_validate(data)
        except ValidationError as exc:
            raise PersistenceError(f"Stored settings are invalid: {exc}") from exc

    def save_settings(self, settings: TrackerSettings) -> None:
        self._write("settings", settings.model_dump(mode="json", by_alias=True))

    # Session

    def load_session(self) -> SessionRecord | None:
        data = self._read("session")
        if data is None:
            return None
        try:
            return SessionRecord.model_validate(data)
        except ValidationError as exc:
            raise PersistenceError(f"Stored session is invalid: {exc}") from exc

    def save_session(self, session: SessionRecord) -> None:
        self._write("session", session.model_dump(mode="json", by_alias=True))

    def clear_session(self) -> None:
        self._backend.delete(STORAGE_KEYS["session"])

    # Bulk operations

    def export_data(self) -> str:
        settings = self.load_settings()
        payload = {
            "activities": [
                activity.model_dump(mode="json", by_alias=True)
                for activity in self.load_activities()
            ],
            "settings": settings.model_dump(mode="json", by_alias=True) if settings else None,
        }
        return json.dumps(payload, indent=2)

    def import_data(self, json_data: str) -> None:
        """Replace activities and settings with those in an exported payload.

        The payload is fully validated before anything is written.
        """

        try:
            payload = json.loads(json_data)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Import payload is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise PersistenceError("Import payload must be a JSON object")

        try:
            activities = (
                _ACTIVITY_LIST.validate_python(payload["activities"])
                if payload.get("activities") is not None
                else None
            )
            settings = (
                TrackerSettings.model_validate(payload["settings"])
                if payload.get("settings") is not None
                else None
            )
        except ValidationError as exc:
            raise PersistenceError(f"Import payload is invalid: {exc}") from exc

        if activities is not None:
            self.save_activities(activities)
        if settings is not None:
            self.save_settings(settings)
        logger.info(
            "Imported data",
            extra={
                "activity_count": len(activities) if activities is not None else 0,
                "settings_imported": settings is not None,
            },
        )

    def clear_all(self) -> None:
        for key in STORAGE_KEYS.values():
            self._backend.delete(key)


__all__ = ["InvalidArgumentError", "STORAGE_KEYS", "TimelogStore"]
