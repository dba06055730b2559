from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from typing import Any, Callable, TextIO

from . import __version__
from .autosave import DEFAULT_AUTOSAVE_DELAY_SECONDS, Autosaver
from .browse import JournalBrowser, entry_icon, preview_text
from .capsules import QUICK_DELIVERY_CHOICES, default_delivery_date, prefill_letter, quick_delivery_date
from .config import Config, build_backend
from .days import format_or_raw, human_date, long_date, parse_timestamp, short_date, today_key
from .errors import ValidationError
from .export import EXPORT_FORMATS, export_entries
from .journal import JournalService, compose_affirmations, split_affirmations
from .models import Entry, JournalSnapshot
from .paths import ensure_directories
from .spark import RANDOM_THEME, SPARK_MODES, SPARK_PROMPTS

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="luminote", description="A daily gratitude journal.")
    parser.add_argument("--version", action="store_true", help="Print app version and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("today", help="Show streak, daily spark, today's entry and a look back")

    write = commands.add_parser("write", help="Save today's entry")
    write.add_argument("--bright-spots", help="Bright spots, one per line")
    write.add_argument("--intentions", help="Intentions, one per line")
    write.add_argument("--affirmation", action="append", default=[], help="Affirmation line (up to 3)")
    write.add_argument("--interactive", action="store_true", help="Type the entry line by line with autosave")

    capsule = commands.add_parser("capsule", help="Seal a note for your future self")
    capsule.add_argument("--note", help="Letter text; defaults to a letter prefilled from today's entry")
    when = capsule.add_mutually_exclusive_group()
    when.add_argument("--in", dest="quick", choices=QUICK_DELIVERY_CHOICES, help="Quick delivery date")
    when.add_argument("--on", dest="deliver_on", help="Delivery date (YYYY-MM-DD or ISO timestamp)")

    timeline = commands.add_parser("timeline", help="List past entries, newest first")
    timeline.add_argument("--limit", type=int, default=0, help="Show at most this many entries")

    search = commands.add_parser("search", help="Search your journal")
    search.add_argument("query")

    commands.add_parser("sealed", help="List capsules that are still sealed")
    commands.add_parser("delivered", help="List delivered capsules")

    show = commands.add_parser("show", help="Show one entry")
    show.add_argument("entry_id")

    export = commands.add_parser("export", help="Print an export of entries created in a date range")
    export.add_argument("--from", dest="start", required=True, help="Start date (YYYY-MM-DD)")
    export.add_argument("--to", dest="end", required=True, help="End date (YYYY-MM-DD)")
    export.add_argument("--format", dest="fmt", choices=EXPORT_FORMATS, default="PlainText")
    export.add_argument("--no-capsules", action="store_true", help="Leave capsule notes out")

    spark = commands.add_parser("spark-settings", help="Show or change daily spark settings")
    toggle = spark.add_mutually_exclusive_group()
    toggle.add_argument("--enable", dest="enabled", action="store_true", default=None)
    toggle.add_argument("--disable", dest="enabled", action="store_false")
    spark.add_argument("--mode", choices=SPARK_MODES)
    spark.add_argument("--theme", choices=(RANDOM_THEME, *SPARK_PROMPTS))
    return parser


def _configure_logging(config: Config, verbose: bool) -> None:
    level = logging.DEBUG if verbose else str(config.get("log_level", "WARNING")).upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _start_session(service: JournalService, now: datetime, out: TextIO) -> JournalSnapshot:
    snapshot = service.start(now, on_view=lambda entry_id: f"luminote show {entry_id}")
    notification = snapshot.notification
    if notification is not None:
        hint = f" View: {notification.action()}" if notification.action else ""
        print(f"** {notification.title}: {notification.description}{hint}", file=out)
    return snapshot


def _print_entry(entry: Entry, out: TextIO, label: str | None = None) -> None:
    heading = label or format_or_raw(human_date, entry.date)
    print(f"{entry_icon(entry)} {heading}  [{entry.id}]", file=out)
    if entry.is_sealed:
        opens = short_date(entry.deliver_at) if entry.deliver_at else "a future date"
        print(f"   Sealed until {opens}.", file=out)
        return
    if entry.is_delivered:
        # a delivered capsule shows only the letter
        if entry.delivered_at is not None:
            print(f"   Delivered on {human_date(entry.delivered_at)}", file=out)
        _print_body(entry, out)
        return
    if entry.spark_prompt:
        print(f"   Your daily spark was: \"{entry.spark_prompt}\"", file=out)
    for name, title in (("bright_spots", "Bright Spots"), ("intentions", "Intentions"), ("affirmations", "Affirmations")):
        text = entry.text(name)
        if text:
            print(f"   {title}:", file=out)
            for line in text.split("\n"):
                print(f"     {line}", file=out)
    _print_body(entry, out)


def _print_body(entry: Entry, out: TextIO) -> None:
    if entry.body:
        print("   Note:", file=out)
        for line in entry.body.split("\n"):
            print(f"     {line}", file=out)


def _print_listing(entries: list[Entry], out: TextIO, empty: str) -> None:
    if not entries:
        print(empty, file=out)
        return
    for entry in entries:
        print(f"{entry_icon(entry)} {format_or_raw(long_date, entry.date)}  [{entry.id}]", file=out)
        if entry.spark_prompt:
            print(f"   \"{entry.spark_prompt}\"", file=out)
        print(f"   {preview_text(entry)}", file=out)


def _cmd_today(snapshot: JournalSnapshot, out: TextIO) -> int:
    print(f"Day Streak: {snapshot.streak}    Total Entries: {snapshot.total_entries}", file=out)
    if snapshot.spark:
        print(f"\nToday's spark: {snapshot.spark}", file=out)
    print("", file=out)
    if snapshot.today_entry is not None:
        _print_entry(snapshot.today_entry, out, label=f"Today, {human_date(snapshot.today)}")
    else:
        print(f"Nothing written yet for {human_date(snapshot.today)}.", file=out)

    print("\nA Look Back", file=out)
    if snapshot.month_ago_entry is None and snapshot.year_ago_entry is None:
        print("Your memories will appear here as you build your journal practice.", file=out)
    if snapshot.month_ago_entry is not None:
        _print_entry(snapshot.month_ago_entry, out, label="1 Month Ago Today")
    if snapshot.year_ago_entry is not None:
        _print_entry(snapshot.year_ago_entry, out, label="1 Year Ago Today")
    return 0


def _cmd_write(
    service: JournalService,
    snapshot: JournalSnapshot,
    args: argparse.Namespace,
    now: datetime,
    autosave_delay_seconds: float,
    out: TextIO,
) -> int:
    if args.interactive:
        return _write_interactive(service, snapshot, now, autosave_delay_seconds, out)

    fields: dict[str, Any] = {}
    if args.bright_spots is not None:
        fields["bright_spots"] = args.bright_spots
    if args.intentions is not None:
        fields["intentions"] = args.intentions
    if args.affirmation:
        fields["affirmations"] = compose_affirmations(args.affirmation)
    if not fields:
        print("Nothing to save: pass --bright-spots, --intentions or --affirmation.", file=sys.stderr)
        return 1

    saved = service.save_entry(fields, now)
    if saved is None:
        print("Could not save today's entry. It will be retried on your next save.", file=out)
        return 0
    print("Saved!", file=out)
    return 0


def _write_interactive(
    service: JournalService,
    snapshot: JournalSnapshot,
    now: datetime,
    delay_seconds: float,
    out: TextIO,
    read_line: Callable[[], str] | None = None,
) -> int:
    read_line = read_line or sys.stdin.readline
    existing = snapshot.today_entry
    form: dict[str, Any] = {
        "bright_spots": existing.text("bright_spots") if existing else "",
        "intentions": existing.text("intentions") if existing else "",
        "affirmations": split_affirmations(existing.text("affirmations")) if existing else ["", "", ""],
    }

    def save(data: dict[str, Any], autosave: bool) -> None:
        service.save_entry(
            {
                "bright_spots": data["bright_spots"],
                "intentions": data["intentions"],
                "affirmations": compose_affirmations(data["affirmations"]),
            },
            now=now,
            autosave=autosave,
        )

    saver = Autosaver(save, delay_seconds=delay_seconds, initial=_form_copy(form))
    try:
        for name, title in (("bright_spots", "Bright spots"), ("intentions", "Intentions")):
            print(f"{title} (blank line to finish):", file=out)
            lines: list[str] = []
            while True:
                line = read_line()
                if not line or not line.strip():
                    break
                lines.append(line.rstrip("\n"))
                form[name] = "\n".join(lines)
                saver.change(_form_copy(form))
            saver.flush()

        print("Three affirmations, I am...", file=out)
        for slot in range(3):
            line = read_line()
            if not line:
                break
            form["affirmations"][slot] = line.strip()
            saver.change(_form_copy(form))
            saver.flush()
    finally:
        saver.flush()
        saver.close()

    print("Saved!", file=out)
    return 0


def _form_copy(form: dict[str, Any]) -> dict[str, Any]:
    return {**form, "affirmations": list(form["affirmations"])}


def _cmd_capsule(
    service: JournalService,
    snapshot: JournalSnapshot,
    args: argparse.Namespace,
    now: datetime,
    out: TextIO,
) -> int:
    if args.deliver_on:
        deliver_at = parse_timestamp(args.deliver_on)
    elif args.quick:
        deliver_at = quick_delivery_date(args.quick, now)
    else:
        deliver_at = default_delivery_date(now)
    body = args.note if args.note is not None else prefill_letter(snapshot.today_entry)

    notification = service.schedule_capsule(body, deliver_at, now)
    if notification is None:
        print("Could not schedule your capsule right now.", file=out)
        return 0
    print(notification.description, file=out)
    return 0


def _cmd_export(service: JournalService, args: argparse.Namespace, now: datetime, out: TextIO) -> int:
    result = export_entries(
        service.backend,
        start=args.start,
        end=args.end,
        fmt=args.fmt,
        include_capsules=not args.no_capsules,
        today=today_key(now),
        record_range=True,
    )
    if result is None:
        print("No entries found in that date range.", file=sys.stderr)
        return 0
    out.write(result.content)
    if not result.content.endswith("\n"):
        out.write("\n")
    logger.info("Exported %d entries as %s", result.count, result.filename)
    return 0


def _cmd_spark_settings(service: JournalService, args: argparse.Namespace, now: datetime, out: TextIO) -> int:
    changes: dict[str, Any] = {}
    if args.enabled is not None:
        changes["daily_spark_enabled"] = args.enabled
    if args.mode:
        changes["spark_mode"] = args.mode
    if args.theme:
        changes["daily_spark_theme"] = args.theme

    user = service.update_spark_settings(**changes) if changes else service.current_user()
    if user is None:
        print("Could not load settings. Please try again.", file=out)
        return 0
    if changes:
        print("Daily Spark settings saved.", file=out)
    state = "on" if user.daily_spark_enabled else "off"
    print(f"Daily spark: {state}  mode={user.spark_mode}  theme={user.daily_spark_theme}", file=out)
    print(f"Today's spark: {service.daily_spark(now) or '(none)'}", file=out)
    return 0


def run(
    args: argparse.Namespace,
    service: JournalService,
    now: datetime,
    out: TextIO = sys.stdout,
    autosave_delay_seconds: float = DEFAULT_AUTOSAVE_DELAY_SECONDS,
) -> int:
    if args.command == "spark-settings":
        return _cmd_spark_settings(service, args, now, out)

    snapshot = _start_session(service, now, out)
    browser = JournalBrowser(service.backend)
    if args.command in (None, "today"):
        return _cmd_today(snapshot, out)
    if args.command == "write":
        return _cmd_write(service, snapshot, args, now, autosave_delay_seconds, out)
    if args.command == "capsule":
        return _cmd_capsule(service, snapshot, args, now, out)
    if args.command == "timeline":
        entries = browser.timeline()
        if args.limit > 0:
            entries = entries[: args.limit]
        _print_listing(entries, out, "No entries yet. Start writing to build your timeline.")
        return 0
    if args.command == "search":
        hits = browser.search(args.query)
        noun = "entry" if len(hits) == 1 else "entries"
        print(f"Found {len(hits)} {noun}", file=out)
        for hit in hits:
            print(f"{entry_icon(hit.entry)} {format_or_raw(long_date, hit.entry.date)}  [{hit.entry.id}]", file=out)
            if hit.spark_matched:
                print(f"   \"{hit.entry.spark_prompt}\"", file=out)
            print(f"   {hit.preview}", file=out)
        return 0
    if args.command == "sealed":
        notes = browser.sealed_notes()
        if not notes:
            print("No sealed notes. Send one to your future self with `luminote capsule`.", file=out)
        for note in notes:
            opens = human_date(note.deliver_at) if note.deliver_at else "a future date"
            print(f"{entry_icon(note)} Opens on {opens}  (written {format_or_raw(short_date, note.date)})", file=out)
        return 0
    if args.command == "delivered":
        capsules = browser.delivered_capsules()
        if not capsules:
            print("No capsules have arrived yet.", file=out)
        for capsule in capsules:
            _print_entry(capsule, out, label=f"Note from {format_or_raw(human_date, capsule.date)}")
        return 0
    if args.command == "show":
        entry = browser.entry_detail(args.entry_id)
        if entry is None:
            print("Entry not found.", file=out)
            return 0
        _print_entry(entry, out)
        return 0
    if args.command == "export":
        return _cmd_export(service, args, now, out)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.version:
        print(__version__)
        return 0

    config = Config()
    _configure_logging(config, args.verbose)
    ensure_directories()
    try:
        service = JournalService(build_backend(config))
        return run(
            args,
            service,
            datetime.now().astimezone(),
            autosave_delay_seconds=config.get("autosave_delay_seconds"),
        )
    except ValidationError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
