"""Quiet-time window evaluation."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from .models import QuietTime, Weekday


def hhmm(moment: datetime) -> str:
    return f"{moment.hour:02d}:{moment.minute:02d}"


def window_matches(window: QuietTime, moment: datetime) -> bool:
    """Return True when ``moment`` falls inside ``window``.

    Bounds are compared as zero-padded ``HH:MM`` strings and both ends are
    inclusive. A window whose start sorts after its end wraps past midnight:
    the evening part belongs to the listed day and the early-morning part to
    the day after it.
    """

    if not window.enabled:
        return False

    current = hhmm(moment)
    today = Weekday.of(moment)

    if not window.wraps_midnight:
        return today in window.days and window.start_time <= current <= window.end_time

    if current >= window.start_time:
        return today in window.days
    if current <= window.end_time:
        return Weekday.of(moment - timedelta(days=1)) in window.days
    return False


def active_window(quiet_times: Iterable[QuietTime], moment: datetime) -> QuietTime | None:
    for window in quiet_times:
        if window_matches(window, moment):
            return window
    return None


def in_quiet_period(quiet_times: Iterable[QuietTime], moment: datetime) -> bool:
    return active_window(quiet_times, moment) is not None


__all__ = ["active_window", "hhmm", "in_quiet_period", "window_matches"]
