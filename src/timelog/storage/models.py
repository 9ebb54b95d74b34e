"""Data models for persistent tracking."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..notify.models import NotificationPermission
from ..schedules.models import QuietTime

DEFAULT_INTERVAL_MS = 15000
MIN_INTERVAL_MS = 1000


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.astimezone()
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Activity(_CamelModel):
    """One closed interval of a tracking session."""

    id: str
    description: str
    tags: list[str] = Field(default_factory=list)
    planned_next: str | None = None
    mood: int | None = Field(default=None, ge=1, le=5)
    excuse: str | None = None
    start_time: datetime
    end_time: datetime
    created_at: datetime

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            raise TypeError("tags must be a sequence of strings")
        tags: list[str] = []
        for item in value:
            tag = str(item).strip()
            if tag and tag not in tags:
                tags.append(tag)
        return tags

    @field_validator("planned_next", "excuse", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("start_time", "end_time", "created_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        return _aware(value)

    @model_validator(mode="after")
    def _check_bounds(self) -> "Activity":
        if self.start_time > self.end_time:
            raise ValueError("Activity start_time must not be after end_time")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration(self) -> int:
        """Interval length in milliseconds."""

        return (self.end_time - self.start_time) // timedelta(milliseconds=1)


class SessionRecord(_CamelModel):
    """Persisted mirror of an in-progress tracking session."""

    start: datetime
    last_notification: datetime

    @field_validator("start", "last_notification")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        return _aware(value)

    @model_validator(mode="after")
    def _check_order(self) -> "SessionRecord":
        if self.last_notification < self.start:
            raise ValueError("Session last_notification must not precede start")
        return self


class TrackerSettings(_CamelModel):
    """User preferences persisted alongside the activity log."""

    notification_interval_ms: int = Field(
        default=DEFAULT_INTERVAL_MS,
        ge=MIN_INTERVAL_MS,
        alias="notificationIntervalMs",
        validation_alias=AliasChoices(
            "notificationIntervalMs", "notificationInterval", "notification_interval_ms"
        ),
    )
    sound_enabled: bool = True
    notification_permission: NotificationPermission = NotificationPermission.DEFAULT
    quiet_times: list[QuietTime] = Field(default_factory=list)


__all__ = [
    "Activity",
    "DEFAULT_INTERVAL_MS",
    "MIN_INTERVAL_MS",
    "SessionRecord",
    "TrackerSettings",
]
