"""Quiet-time presets: YAML interchange and merging into stored settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from .models import QuietTime

MINUTES_PER_DAY = 24 * 60
PRESET_SUFFIXES = (".yaml", ".yml")


class QuietTimeLoadError(RuntimeError):
    """Raised when quiet-time presets cannot be parsed or validated."""


def _minute_of_day(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def week_coverage(window: QuietTime) -> set[int]:
    """Return the minutes of the week (Sunday 00:00 is 0) that ``window`` silences.

    Mirrors ``window_matches``: bounds are inclusive and the early-morning part
    of a window that wraps midnight belongs to the day after a listed day.
    """

    if not window.enabled:
        return set()
    start = _minute_of_day(window.start_time)
    end = _minute_of_day(window.end_time)
    covered: set[int] = set()
    for day in window.days:
        base = int(day) * MINUTES_PER_DAY
        if start <= end:
            covered.update(range(base + start, base + end + 1))
            continue
        covered.update(range(base + start, base + MINUTES_PER_DAY))
        following = ((int(day) + 1) % 7) * MINUTES_PER_DAY
        covered.update(range(following, following + end + 1))
    return covered


def windows_overlap(first: QuietTime, second: QuietTime) -> bool:
    return not week_coverage(first).isdisjoint(week_coverage(second))


def parse_quiet_times(document: Any, *, source: str = "<document>") -> list[QuietTime]:
    """Validate a YAML document holding one window, a list, or ``quiet_times: [...]``."""

    if document is None:
        return []
    if isinstance(document, dict) and "quiet_times" in document:
        entries = document["quiet_times"] or []
    elif isinstance(document, list):
        entries = document
    else:
        entries = [document]
    if not isinstance(entries, list):
        raise QuietTimeLoadError(f"{source}: quiet_times must be a list")

    windows: list[QuietTime] = []
    errors: list[str] = []
    for position, entry in enumerate(entries):
        try:
            windows.append(QuietTime.model_validate(entry))
        except ValidationError as exc:
            errors.append(f"{source} entry {position}: {exc}")
    if errors:
        raise QuietTimeLoadError("; ".join(errors))
    return windows


def read_preset_file(path: Path) -> list[QuietTime]:
    try:
        document = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise QuietTimeLoadError(f"Failed to read {path}: {exc}") from exc
    return parse_quiet_times(document, source=str(path))


def _preset_files(search_paths: Iterable[Path]) -> list[Path]:
    files: list[Path] = []
    for base in (Path(path) for path in search_paths):
        if base.is_file():
            files.append(base)
        elif base.is_dir():
            files.extend(
                sorted(path for path in base.iterdir() if path.suffix in PRESET_SUFFIXES)
            )
    return files


def load_presets(search_paths: Iterable[Path] | None = None) -> dict[str, QuietTime]:
    """Read every preset file under ``search_paths``; later files win on id clashes.

    Missing paths are skipped. Problems in any file are collected and raised
    together after all files have been read.
    """

    presets: dict[str, QuietTime] = {}
    errors: list[str] = []
    for path in _preset_files(search_paths or []):
        try:
            windows = read_preset_file(path)
        except QuietTimeLoadError as exc:
            errors.append(str(exc))
            continue
        for window in windows:
            presets[window.id] = window
    if errors:
        raise QuietTimeLoadError("; ".join(errors))
    return presets


@dataclass(slots=True)
class PresetMerge:
    """Outcome of folding presets into the stored quiet-time list."""

    quiet_times: list[QuietTime]
    added: list[str] = field(default_factory=list)
    # ids already present in settings; the stored window is kept
    shadowed: list[str] = field(default_factory=list)
    # presets with no days never match and are not added
    inactive: list[str] = field(default_factory=list)
    # (preset id, stored id) pairs that silence the same minutes
    overlaps: list[tuple[str, str]] = field(default_factory=list)


def merge_presets(stored: Iterable[QuietTime], presets: Iterable[QuietTime]) -> PresetMerge:
    current = list(stored)
    known = {window.id for window in current}
    merge = PresetMerge(quiet_times=list(current))
    for preset in presets:
        if preset.id in known:
            merge.shadowed.append(preset.id)
            continue
        if not preset.days:
            merge.inactive.append(preset.id)
            continue
        merge.overlaps.extend(
            (preset.id, existing.id) for existing in current if windows_overlap(preset, existing)
        )
        merge.quiet_times.append(preset)
        merge.added.append(preset.id)
        known.add(preset.id)
    return merge


def dump_quiet_times(windows: Iterable[QuietTime]) -> str:
    """Render windows as a preset document that ``parse_quiet_times`` reads back."""

    entries = []
    for window in windows:
        entries.append(
            {
                "id": window.id,
                "name": window.name,
                "start_time": window.start_time,
                "end_time": window.end_time,
                "days": [day.name[:3].lower() for day in window.days],
                "enabled": window.enabled,
            }
        )
    return yaml.safe_dump({"quiet_times": entries}, sort_keys=False)


__all__ = [
    "PresetMerge",
    "QuietTimeLoadError",
    "dump_quiet_times",
    "load_presets",
    "merge_presets",
    "parse_quiet_times",
    "read_preset_file",
    "week_coverage",
    "windows_overlap",
]
