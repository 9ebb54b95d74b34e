"""Quiet-time models, presets and window evaluation."""

from .models import QuietTime, Weekday
from .presets import (
    PresetMerge,
    QuietTimeLoadError,
    dump_quiet_times,
    load_presets,
    merge_presets,
    parse_quiet_times,
    read_preset_file,
    windows_overlap,
)
from .windows import active_window, in_quiet_period, window_matches

__all__ = [
    "PresetMerge",
    "QuietTime",
    "QuietTimeLoadError",
    "Weekday",
    "active_window",
    "dump_quiet_times",
    "in_quiet_period",
    "load_presets",
    "merge_presets",
    "parse_quiet_times",
    "read_preset_file",
    "window_matches",
    "windows_overlap",
]
