"""timelog diagnostics CLI."""

from __future__ import annotations

import argparse
import json
from datetime import datetime
from pathlib import Path

from timelog.config import TimelogSettings
from timelog.reports import ReportPeriod, activities_for_period, export_csv, filter_by_tag
from timelog.schedules import QuietTimeLoadError, dump_quiet_times, merge_presets, read_preset_file
from timelog.storage import PersistenceError, SqliteBackend, TimelogStore, TrackerSettings


def load_store(settings: TimelogSettings) -> TimelogStore:
    try:
        return TimelogStore(SqliteBackend(settings.db_path))
    except PersistenceError as exc:
        print(f"Store unavailable: {exc}")
        raise SystemExit(1)


def _emit(text: str, output: str | None) -> None:
    if output:
        Path(output).write_text(text, encoding="utf-8")
        print(f"Wrote {output}")
    else:
        print(text)


def cmd_session(args: argparse.Namespace) -> None:
    settings = TimelogSettings()
    store = load_store(settings)
    try:
        record = store.load_session()
    except PersistenceError as exc:
        print(f"Store unavailable: {exc}")
        raise SystemExit(1)
    payload = record.model_dump(mode="json", by_alias=True) if record else None
    print(json.dumps(payload, indent=2))


def cmd_activities(args: argparse.Namespace) -> None:
    settings = TimelogSettings()
    store = load_store(settings)
    try:
        activities = store.load_activities()
    except PersistenceError as exc:
        print(f"Store unavailable: {exc}")
        raise SystemExit(1)

    if args.tag:
        activities = filter_by_tag(activities, args.tag)
    activities.sort(key=lambda activity: activity.start_time)
    if args.limit is not None and args.limit > 0:
        activities = activities[-args.limit :]

    print(
        json.dumps(
            [activity.model_dump(mode="json", by_alias=True) for activity in activities],
            indent=2,
        )
    )


def cmd_tags(args: argparse.Namespace) -> None:
    settings = TimelogSettings()
    store = load_store(settings)
    try:
        tags = store.all_tags()
    except PersistenceError as exc:
        print(f"Store unavailable: {exc}")
        raise SystemExit(1)
    for tag in tags:
        print(tag)


def cmd_export(args: argparse.Namespace) -> None:
    settings = TimelogSettings()
    store = load_store(settings)
    try:
        if args.format == "json":
            text = store.export_data()
        else:
            selected = activities_for_period(
                store.load_activities(), args.period, datetime.now().astimezone()
            )
            text = export_csv(selected)
    except PersistenceError as exc:
        print(f"Store unavailable: {exc}")
        raise SystemExit(1)
    _emit(text, args.output)


def cmd_quiet_times(args: argparse.Namespace) -> None:
    settings = TimelogSettings()
    store = load_store(settings)
    try:
        tracker = store.load_settings() or TrackerSettings()
    except PersistenceError as exc:
        print(f"Store unavailable: {exc}")
        raise SystemExit(1)

    if not args.import_path:
        _emit(dump_quiet_times(tracker.quiet_times), args.output)
        return

    try:
        presets = read_preset_file(Path(args.import_path))
    except QuietTimeLoadError as exc:
        print(f"Invalid preset file: {exc}")
        raise SystemExit(1)
    merge = merge_presets(tracker.quiet_times, presets)
    if merge.added:
        try:
            store.save_settings(tracker.model_copy(update={"quiet_times": merge.quiet_times}))
        except PersistenceError as exc:
            print(f"Store unavailable: {exc}")
            raise SystemExit(1)
    print(f"Added: {', '.join(merge.added) or '-'}")
    if merge.shadowed:
        print(f"Already stored: {', '.join(merge.shadowed)}")
    if merge.inactive:
        print(f"Skipped (no days): {', '.join(merge.inactive)}")
    for preset_id, stored_id in merge.overlaps:
        print(f"Warning: {preset_id} overlaps {stored_id}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="timelog diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_session = sub.add_parser("session", help="Show the persisted tracking session")
    p_session.set_defaults(func=cmd_session)

    p_activities = sub.add_parser("activities", help="List recorded activities")
    p_activities.add_argument("--tag")
    p_activities.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the latest N activities",
    )
    p_activities.set_defaults(func=cmd_activities)

    p_tags = sub.add_parser("tags", help="List every tag in use")
    p_tags.set_defaults(func=cmd_tags)

    p_export = sub.add_parser("export", help="Export activities and settings")
    p_export.add_argument("--format", choices=("json", "csv"), default="json")
    p_export.add_argument(
        "--period",
        choices=[period.value for period in ReportPeriod],
        default=ReportPeriod.ALL.value,
        help="CSV only: restrict rows to this period",
    )
    p_export.add_argument("--output", help="Write to this file instead of stdout")
    p_export.set_defaults(func=cmd_export)

    p_quiet = sub.add_parser("quiet-times", help="Export stored quiet times or import presets")
    p_quiet.add_argument(
        "--import",
        dest="import_path",
        metavar="PATH",
        help="Merge the windows in this YAML file into the stored settings",
    )
    p_quiet.add_argument("--output", help="Write the export to this file instead of stdout")
    p_quiet.set_defaults(func=cmd_quiet_times)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
