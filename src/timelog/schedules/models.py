"""Quiet-time window models."""

from __future__ import annotations

import re
from datetime import datetime
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class Weekday(IntEnum):
    """Day of week, numbered the way the persisted settings blob stores it."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, moment: datetime) -> "Weekday":
        # datetime.weekday() counts from Monday
        return cls((moment.weekday() + 1) % 7)

    @classmethod
    def parse(cls, value: Any) -> "Weekday":
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and not value.strip().isdigit():
            name = value.strip().upper()
            for day in cls:
                if day.name == name or day.name[:3] == name:
                    return day
            raise ValueError(f"Unknown weekday '{value}'")
        return cls(int(value))


class QuietTime(BaseModel):
    """A recurring window during which prompts are suppressed."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Stable identifier for the window.")
    name: str = Field(default="", description="Human-friendly label.")
    start_time: str = Field(..., description="Window start, zero-padded HH:MM.")
    end_time: str = Field(..., description="Window end, zero-padded HH:MM, inclusive.")
    days: list[Weekday] = Field(
        default_factory=list,
        description="Weekdays on which the window applies.",
    )
    enabled: bool = Field(default=True)

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Quiet time id must not be empty")
        return normalized

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _normalize_hhmm(cls, value: Any) -> str:
        if isinstance(value, int) and not isinstance(value, bool):
            # YAML 1.1 reads unquoted 12:30 as the base-60 integer 750
            hours, minutes = divmod(value, 60)
            value = f"{hours:02d}:{minutes:02d}"
        text = str(value).strip()
        if len(text) == 4 and text[1] == ":":
            text = "0" + text
        if not _HHMM.match(text):
            raise ValueError(f"Expected HH:MM, got '{value}'")
        return text

    @field_validator("days", mode="before")
    @classmethod
    def _dedupe_days(cls, value: Any):
        if value is None:
            return []
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise TypeError("days must be a sequence of weekdays")
        seen: list[Weekday] = []
        for item in value:
            day = Weekday.parse(item)
            if day not in seen:
                seen.append(day)
        return seen

    @property
    def wraps_midnight(self) -> bool:
        return self.start_time > self.end_time


__all__ = ["QuietTime", "Weekday"]
