"""Aggregate views over recorded activities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Iterable, Sequence

from .storage import Activity

CSV_HEADERS = ("Date", "Start Time", "End Time", "Duration (minutes)", "Description", "Tags")


class ReportPeriod(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


@dataclass(slots=True, frozen=True)
class TagStats:
    tag: str
    total_duration: int
    count: int
    percentage: float


@dataclass(slots=True, frozen=True)
class DailyStats:
    date: str
    total_duration: int
    activity_count: int
    tags: list[TagStats]


@dataclass(slots=True, frozen=True)
class PlannedVsActual:
    planned_activity: Activity
    actual_activity: Activity
    planned: str
    actual: str
    matched: bool


@dataclass(slots=True, frozen=True)
class Insights:
    most_productive_tag: str | None
    total_activities: int
    total_time: int
    average_session_duration: float
    longest_session: Activity | None


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def period_start(period: ReportPeriod | str, now: datetime) -> datetime | None:
    """Return the inclusive lower bound for ``period``; weeks start on Sunday."""

    period = ReportPeriod(period)
    if period is ReportPeriod.ALL:
        return None
    today = _start_of_day(now)
    if period is ReportPeriod.TODAY:
        return today
    if period is ReportPeriod.WEEK:
        return today - timedelta(days=(today.weekday() + 1) % 7)
    return today.replace(day=1)


def activities_for_period(
    activities: Iterable[Activity],
    period: ReportPeriod | str,
    now: datetime,
) -> list[Activity]:
    start = period_start(period, now)
    if start is None:
        return list(activities)
    return [activity for activity in activities if start <= activity.start_time <= now]


def tag_stats(activities: Iterable[Activity]) -> list[TagStats]:
    totals: dict[str, list[int]] = {}
    for activity in activities:
        for tag in activity.tags:
            entry = totals.setdefault(tag, [0, 0])
            entry[0] += activity.duration
            entry[1] += 1

    grand_total = sum(total for total, _ in totals.values())
    stats = [
        TagStats(
            tag=tag,
            total_duration=total,
            count=count,
            percentage=(total / grand_total) * 100 if grand_total > 0 else 0.0,
        )
        for tag, (total, count) in totals.items()
    ]
    stats.sort(key=lambda item: item.total_duration, reverse=True)
    return stats


def daily_stats(activities: Iterable[Activity], day: datetime) -> DailyStats:
    start = _start_of_day(day)
    end = start + timedelta(days=1)
    selected = [activity for activity in activities if start <= activity.start_time <= end]
    return DailyStats(
        date=start.strftime("%Y-%m-%d"),
        total_duration=sum(activity.duration for activity in selected),
        activity_count=len(selected),
        tags=tag_stats(selected),
    )


def total_time(activities: Iterable[Activity]) -> int:
    return sum(activity.duration for activity in activities)


def search_activities(activities: Iterable[Activity], query: str) -> list[Activity]:
    needle = query.lower()
    return [
        activity
        for activity in activities
        if needle in activity.description.lower()
        or any(needle in tag.lower() for tag in activity.tags)
    ]


def filter_by_tag(activities: Iterable[Activity], tag: str) -> list[Activity]:
    wanted = tag.lower()
    return [
        activity
        for activity in activities
        if any(existing.lower() == wanted for existing in activity.tags)
    ]


def _localize(moment: datetime, tz: tzinfo | None) -> datetime:
    return moment.astimezone(tz) if tz is not None else moment


def timeline(
    activities: Iterable[Activity],
    *,
    tz: tzinfo | None = None,
) -> list[tuple[str, list[Activity]]]:
    """Group activities by the hour they started in, newest hour first."""

    buckets: dict[str, list[Activity]] = {}
    for activity in activities:
        hour = _localize(activity.start_time, tz).strftime("%Y-%m-%d %H:00")
        buckets.setdefault(hour, []).append(activity)
    return sorted(buckets.items(), key=lambda item: item[0], reverse=True)


def insights(activities: Sequence[Activity]) -> Insights:
    stats = tag_stats(activities)
    total = total_time(activities)
    longest: Activity | None = None
    for activity in activities:
        if longest is None or activity.duration > longest.duration:
            longest = activity
    return Insights(
        most_productive_tag=stats[0].tag if stats else None,
        total_activities=len(activities),
        total_time=total,
        average_session_duration=total / len(activities) if activities else 0.0,
        longest_session=longest,
    )


def planned_vs_actual(activities: Iterable[Activity]) -> list[PlannedVsActual]:
    """Pair each activity's ``planned_next`` with what the following interval logged."""

    ordered = sorted(activities, key=lambda activity: activity.start_time)
    comparisons: list[PlannedVsActual] = []
    for previous, current in zip(ordered, ordered[1:]):
        if not previous.planned_next:
            continue
        planned = previous.planned_next.lower().strip()
        actual = current.description.lower().strip()
        comparisons.append(
            PlannedVsActual(
                planned_activity=previous,
                actual_activity=current,
                planned=previous.planned_next,
                actual=current.description,
                matched=planned in actual or actual in planned,
            )
        )
    return comparisons


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def export_csv(activities: Iterable[Activity], *, tz: tzinfo | None = None) -> str:
    rows = [",".join(CSV_HEADERS)]
    for activity in activities:
        start = _localize(activity.start_time, tz)
        end = _localize(activity.end_time, tz)
        rows.append(
            ",".join(
                [
                    start.strftime("%Y-%m-%d"),
                    start.strftime("%H:%M:%S"),
                    end.strftime("%H:%M:%S"),
                    f"{activity.duration / 60000:.2f}",
                    _quote(activity.description),
                    _quote(", ".join(activity.tags)),
                ]
            )
        )
    return "\n".join(rows)


__all__ = [
    "CSV_HEADERS",
    "DailyStats",
    "Insights",
    "PlannedVsActual",
    "ReportPeriod",
    "TagStats",
    "activities_for_period",
    "daily_stats",
    "export_csv",
    "filter_by_tag",
    "insights",
    "period_start",
    "planned_vs_actual",
    "search_activities",
    "tag_stats",
    "timeline",
    "total_time",
]
