"""CLI entry point for Focus Dial."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

import click

from focusdial.controller import BREAK_PROMPT, WORK_PROMPT, DialController
from focusdial.errors import FocusDialError, InvalidDayKeyError, SegmentNotFoundError, UnknownTagError
from focusdial.review import ReviewData, build_review
from focusdial.segments import segments_for_day
from focusdial.store import SessionStore, system_clock
from focusdial.summary import DialSummary, build_summary
from focusdial.sync import DocumentStore, SyncCoordinator
from focusdial.tagcolor import DEFAULT_ACCENT, normalize_tag_key, parse_color
from focusdial.timeutil import (
    MS_PER_DAY,
    format_clock,
    format_duration,
    format_hm,
    format_hms,
    parse_clock,
    to_local,
)

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "focusdial" / "state.db"


def format_date_range(start: int, end: int, period: str) -> str:
    """Format date range for report header.

    Args:
        start: Start epoch ms.
        end: End epoch ms (exclusive).
        period: "day", "week" or "month".

    Returns:
        Formatted string like "Jan 20-26, 2025" or "Jan 28, 2025".
    """
    start_dt = to_local(start)
    # Subtract 1 second from end to get the last inclusive day
    end_dt = to_local(end) - timedelta(seconds=1)

    if period == "day":
        return start_dt.strftime("%b %d, %Y")
    if period == "month":
        return start_dt.strftime("%B %Y")

    if start_dt.month == end_dt.month:
        return f"{start_dt.strftime('%b')} {start_dt.day}-{end_dt.day}, {start_dt.year}"
    elif start_dt.year == end_dt.year:
        return f"{start_dt.strftime('%b %d')} - {end_dt.strftime('%b %d')}, {start_dt.year}"
    else:
        return f"{start_dt.strftime('%b %d, %Y')} - {end_dt.strftime('%b %d, %Y')}"


def make_progress_bar(value: int, max_value: int, width: int = 16) -> str:
    """Create ASCII progress bar.

    Args:
        value: Current value.
        max_value: Maximum value (100%).
        width: Total width of bar (default: 16).

    Returns:
        Progress bar string like '████████░░░░░░░░'.
    """
    if max_value == 0 or value == 0:
        return "░" * width
    filled = max(1, min(width, round((value / max_value) * width)))
    return "█" * filled + "░" * (width - filled)


def click_text_input(message: str, current: str) -> str | None:
    """Text input backed by a terminal prompt; Ctrl-C cancels."""
    try:
        return click.prompt(message, default=current, show_default=bool(current))
    except click.Abort:
        return None


@contextmanager
def open_store(ctx: click.Context) -> Iterator[SessionStore]:
    """Load the shared document into a store that saves on every change."""
    db: Path = ctx.obj["db"]
    with DocumentStore.open(db) as documents:
        store = SessionStore(clock=ctx.obj.get("clock", system_clock))
        coordinator = SyncCoordinator(store, documents)
        coordinator.load()
        ctx.obj["coordinator"] = coordinator
        try:
            yield store
        finally:
            coordinator.detach()


def fail(message: str) -> None:
    click.echo(message, err=True)
    sys.exit(1)


@click.group()
@click.option(
    "--db",
    type=click.Path(path_type=Path),
    default=DEFAULT_DB_PATH,
    envvar="FOCUSDIAL_DB",
    help="Path to SQLite database",
)
@click.option(
    "--accent",
    default=DEFAULT_ACCENT,
    envvar="FOCUSDIAL_ACCENT",
    help="Accent color tag colors are derived from",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, db: Path, accent: str, verbose: bool) -> None:
    """Focus Dial: a daily focus-session tracker."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    ctx.ensure_object(dict)
    ctx.obj["db"] = db
    ctx.obj["accent"] = accent


@main.command("start")
@click.pass_context
def start_command(ctx: click.Context) -> None:
    """Start a focus session."""
    with open_store(ctx) as store:
        if not store.start_session():
            fail("A session is already running")
        click.echo(f"Started session at {format_clock(store.now())}")


def _stop(store: SessionStore) -> None:
    running = store.running_session()
    if running is None:
        fail("No session is running")
    count = len(store.sessions)
    store.stop_session()
    if len(store.sessions) < count:
        click.echo(f"Discarded session shorter than {store.min_session_ms // 1000}s")
    else:
        click.echo(f"Stopped session after {format_hms(store.now() - running.start)}")


@main.command("stop")
@click.pass_context
def stop_command(ctx: click.Context) -> None:
    """Stop the running session (sessions under 15s are discarded)."""
    with open_store(ctx) as store:
        _stop(store)


@main.command("toggle")
@click.pass_context
def toggle_command(ctx: click.Context) -> None:
    """Start a session, or stop the running one."""
    with open_store(ctx) as store:
        if store.is_running():
            _stop(store)
        else:
            store.start_session()
            click.echo(f"Started session at {format_clock(store.now())}")


@main.command("status")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status_command(ctx: click.Context, output_json: bool) -> None:
    """Show today's dial: worked time, goal, timers, segments and tags."""
    with open_store(ctx) as store:
        store.housekeep()
        summary = build_summary(store, accent=ctx.obj["accent"])
    if output_json:
        _output_json_status(summary)
    else:
        _output_human_status(summary)


def _output_json_status(summary: DialSummary) -> None:
    """Output JSON status."""
    output = {
        "day": summary.day,
        "generated_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "worked_ms": summary.worked_ms,
        "goal_minutes": summary.goal_minutes,
        "remaining_minutes": summary.remaining_minutes,
        "goal_reached": summary.goal_reached,
        "running": summary.running,
        "session_ms": summary.live_ms,
        "break_ms": summary.break_ms,
        "welcome": summary.welcome,
        "streak": {
            "current": summary.streak.current,
            "best": summary.streak.best,
            "last_day": summary.streak.last_day,
        },
        "badges": summary.badges,
        "segments": [
            {
                "start": seg.start_ms,
                "end": seg.end_ms,
                "tag": seg.tag,
                "color": seg.color,
            }
            for seg in summary.segments
        ],
        "gaps": [{"start": gap.start_ms, "end": gap.end_ms} for gap in summary.gaps],
        "work_tags": [
            {"tag": t.tag, "ms": t.ms, "last_used": t.last_used, "color": t.color} for t in summary.work_tags
        ],
        "break_tags": [{"tag": t.tag, "ms": t.ms, "last_used": t.last_used} for t in summary.break_tags],
    }
    click.echo(json.dumps(output, indent=2))


def _output_human_status(summary: DialSummary) -> None:
    """Output human-readable status."""
    click.echo(f"Focus Dial: {format_date_range(summary.day_start, summary.day_start + MS_PER_DAY, 'day')}")
    if summary.welcome:
        click.echo(summary.welcome)
    click.echo()

    bar = make_progress_bar(int(summary.worked_minutes), summary.goal_minutes)
    click.echo(f"Worked: {format_hm(summary.worked_minutes):>9}   {bar}")
    if summary.goal_reached:
        click.echo(f"Goal:   {format_hm(summary.goal_minutes):>9}   GOAL REACHED")
    else:
        click.echo(f"Goal:   {format_hm(summary.goal_minutes):>9}   {format_hm(summary.remaining_minutes)} TO GOAL")
    if summary.running:
        click.echo(f"SESSION {format_hms(summary.live_ms)}")
    else:
        click.echo(f"BREAK   {format_hms(summary.break_ms)}")
    click.echo(f"Streak: {summary.streak.current} (best {summary.streak.best})")
    if summary.badges:
        click.echo(f"Badges: {', '.join(summary.badges)}")

    if summary.segments:
        click.echo()
        click.echo("Sessions:")
        for i, seg in enumerate(summary.segments, 1):
            click.echo(
                f"  {i:>2}. {format_clock(seg.start_ms)}-{format_clock(seg.end_ms)} "
                f"{format_duration(seg.end_ms - seg.start_ms):>7}  {seg.tag or '(Session)'}"
            )

    for title, items in (("Work tags:", summary.work_tags), ("Break tags:", summary.break_tags)):
        if not items:
            continue
        click.echo()
        click.echo(title)
        for item in items:
            display_tag = item.tag if len(item.tag) <= 20 else item.tag[:17] + "..."
            click.echo(f"  {display_tag:<20} {format_hm(item.minutes):>9}")


@main.command("goal")
@click.argument("minutes", type=int, required=False)
@click.option("--up", "step", flag_value=1, help="Raise the goal by 30 minutes")
@click.option("--down", "step", flag_value=-1, help="Lower the goal by 30 minutes")
@click.pass_context
def goal_command(ctx: click.Context, minutes: int | None, step: int | None) -> None:
    """Show or change the daily goal (minutes, clamped to 0-1440)."""
    with open_store(ctx) as store:
        if minutes is not None:
            store.set_goal(minutes)
        elif step:
            store.adjust_goal(step)
        click.echo(f"Goal: {format_hm(store.state.goal_minutes)}")


def _segment_session_index(store: SessionStore, index: int) -> int:
    segs = segments_for_day(store.today_start(), store.sessions, store.now())
    if not 1 <= index <= len(segs):
        raise SegmentNotFoundError(f"No session #{index} today (have {len(segs)})")
    return segs[index - 1].session_index


@main.command("tag")
@click.argument("index", type=int)
@click.argument("text", required=False)
@click.pass_context
def tag_command(ctx: click.Context, index: int, text: str | None) -> None:
    """Tag today's INDEX-th session (as numbered by `status`).

    An empty TEXT clears the tag back to the default 'Session N'.
    """
    with open_store(ctx) as store:
        try:
            session_index = _segment_session_index(store, index)
        except FocusDialError as e:
            fail(str(e))
        if text is None:
            text = click_text_input(WORK_PROMPT, store.sessions[session_index].tag or "")
        if store.tag_session(session_index, text):
            click.echo(f"Tagged session #{index}: {store.sessions[session_index].tag}")


@main.command("tag-break")
@click.argument("at")
@click.argument("text", required=False)
@click.pass_context
def tag_break_command(ctx: click.Context, at: str, text: str | None) -> None:
    """Tag the break containing time AT (HH:MM). Empty TEXT removes the tag."""
    with open_store(ctx) as store:
        try:
            t = parse_clock(at, store.today_start())
        except ValueError as e:
            fail(str(e))
        existing, gap = store.break_log_at(t)
        if gap is None:
            fail(f"No break at {at}")
        if text is None:
            text = click_text_input(BREAK_PROMPT, existing.tag if existing is not None else "")
        if store.tag_gap(t, text):
            click.echo(f"Break {format_clock(gap.start_ms)}-{format_clock(gap.end_ms)}: {text.strip() or '(untagged)'}")


@main.command("rename-tag")
@click.argument("old")
@click.argument("new")
@click.option("--break", "is_break", is_flag=True, help="Rename a break tag instead of a work tag")
@click.pass_context
def rename_tag_command(ctx: click.Context, old: str, new: str, is_break: bool) -> None:
    """Rename today's tag OLD to NEW (empty NEW clears it)."""
    with open_store(ctx) as store:
        renamed = store.rename_break_tag(old, new) if is_break else store.rename_work_tag(old, new)
        if not renamed:
            fail(str(UnknownTagError(old)))
        click.echo(f"Renamed '{old}' to '{new}'" if new.strip() else f"Cleared '{old}'")


@main.command("clear-today")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear_today_command(ctx: click.Context, yes: bool) -> None:
    """Remove today's sessions, break tags and badges."""
    if not yes:
        click.confirm("Clear ONLY today?", abort=True)
    with open_store(ctx) as store:
        store.clear_day()
    click.echo("Cleared today")


@main.command("ignore")
@click.argument("day")
@click.pass_context
def ignore_command(ctx: click.Context, day: str) -> None:
    """Exclude DAY (YYYY-MM-DD) from streak qualification."""
    with open_store(ctx) as store:
        try:
            store.ignore_day(day)
        except InvalidDayKeyError as e:
            fail(str(e))
        click.echo(f"Ignoring {day.strip()}")


@main.command("unignore")
@click.argument("day")
@click.pass_context
def unignore_command(ctx: click.Context, day: str) -> None:
    """Count DAY (YYYY-MM-DD) towards streaks again."""
    with open_store(ctx) as store:
        try:
            store.unignore_day(day)
        except InvalidDayKeyError as e:
            fail(str(e))
        click.echo(f"Counting {day.strip()}")


@main.command("streak")
@click.pass_context
def streak_command(ctx: click.Context) -> None:
    """Show the current and best streak."""
    with open_store(ctx) as store:
        store.housekeep()
        streak = store.state.streak
        ignored = sorted(store.state.ignored_days)
    click.echo(f"Current streak: {streak.current} day{'s' if streak.current != 1 else ''}")
    click.echo(f"Best streak:    {streak.best} day{'s' if streak.best != 1 else ''}")
    if streak.last_day:
        click.echo(f"Last day:       {streak.last_day}")
    if ignored:
        click.echo(f"Ignored days:   {', '.join(ignored)}")


@main.command("color")
@click.argument("tag")
@click.argument("color", required=False)
@click.option("--auto", "randomize", is_flag=True, help="Pick a random color near the accent")
@click.option("--reset", is_flag=True, help="Remove the override and use the derived color")
@click.pass_context
def color_command(ctx: click.Context, tag: str, color: str | None, randomize: bool, reset: bool) -> None:
    """Show or set TAG's color (hex, rgb() or hsl())."""
    if not normalize_tag_key(tag):
        fail("Tag must not be empty")
    accent = ctx.obj["accent"]
    with open_store(ctx) as store:
        if reset:
            store.set_tag_color(tag, None)
        elif randomize:
            store.randomize_tag_color(tag, accent)
        elif color is not None:
            info = parse_color(color)
            if info is None:
                fail(f"Invalid color: {color}")
            store.set_tag_color(tag, info.normalized)
        click.echo(f"{tag}: {store.color_for_tag(tag, tag, accent)}")


@main.command("theme")
@click.pass_context
def theme_command(ctx: click.Context) -> None:
    """Toggle between the light and dark theme."""
    with open_store(ctx) as store:
        click.echo(f"Theme: {store.toggle_theme()}")


@main.command("sort")
@click.argument("panel", type=click.Choice(["work", "break"]))
@click.pass_context
def sort_command(ctx: click.Context, panel: str) -> None:
    """Cycle a tag panel's sort mode (time-desc, time-asc, recent-desc, recent-asc)."""
    with open_store(ctx) as store:
        click.echo(f"{panel.capitalize()} tags sorted by {store.cycle_sort(panel)}")


@main.command("review")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def review_command(ctx: click.Context, output_json: bool) -> None:
    """Review every active day with weekly and monthly roll-ups."""
    with open_store(ctx) as store:
        data = build_review(store.state, store.now())
    if output_json:
        _output_json_review(data)
    elif not data.days:
        click.echo("No time tracked yet.")
    else:
        _output_human_review(data)


def _output_json_review(data: ReviewData) -> None:
    """Output JSON review."""
    output = {
        "generated_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "totals": {
            "work_ms": data.work_ms,
            "break_ms": data.break_ms,
            "tagged_break_ms": data.tagged_break_ms,
            "sessions": data.sessions,
            "active_days": data.active_days,
            "goal_hits": data.goal_hits,
            "goal_ms": data.goal_ms,
            "todos_completed": data.todos_completed,
            "longest_day": {"ms": data.longest_day[0], "date": data.longest_day[1]},
            "longest_session": {
                "ms": data.longest_session[0],
                "date": data.longest_session[1],
                "tag": data.longest_session[2],
            },
        },
        "days": [
            {
                "date": d.date,
                "work_ms": d.work_ms,
                "break_ms": d.break_ms,
                "tagged_break_ms": d.tagged_break_ms,
                "sessions": d.session_count,
                "first_start": d.first_start,
                "last_end": d.last_end,
                "goal_met": d.goal_met,
            }
            for d in data.days
        ],
        "weeks": [
            {"week": w.key, "work_ms": w.work_ms, "active_days": w.active_days, "goal_hits": w.goal_hits}
            for w in data.weeks
        ],
        "months": [
            {"month": m.key, "work_ms": m.work_ms, "active_days": m.active_days, "goal_hits": m.goal_hits}
            for m in data.months
        ],
        "by_tag": [{"tag": t.tag, "ms": t.ms, "share": t.share} for t in data.tags],
        "by_break_tag": [{"tag": t.tag, "ms": t.ms, "share": t.share} for t in data.break_tags],
    }
    click.echo(json.dumps(output, indent=2))


def _output_human_review(data: ReviewData) -> None:
    """Output human-readable review."""
    click.echo(f"Review: {data.active_days} active day{'s' if data.active_days != 1 else ''}")
    click.echo()
    click.echo(f"Total: {format_duration(data.work_ms)}")
    click.echo(f"  Breaks:    {format_duration(data.break_ms):>9}")
    click.echo(f"  Sessions:  {data.sessions:>9}")
    click.echo(f"  Goal hits: {data.goal_hits:>9}")
    if data.longest_day[1]:
        click.echo(f"  Longest day:     {format_duration(data.longest_day[0])} on {data.longest_day[1]}")
    if data.longest_session[1]:
        tag = data.longest_session[2] or "(untagged)"
        click.echo(f"  Longest session: {format_duration(data.longest_session[0])} on {data.longest_session[1]} ({tag})")
    click.echo()

    max_day = max((d.work_ms for d in data.days), default=0)
    click.echo("By Day:")
    for d in data.days:
        mark = "*" if d.goal_met else " "
        bar = make_progress_bar(d.work_ms, max_day)
        click.echo(f"  {d.date} {mark} {format_duration(d.work_ms):>9} {d.session_count:>3} sessions   {bar}")
    click.echo()

    click.echo("By Week:")
    for w in data.weeks:
        label = format_date_range(w.start_ms, w.start_ms + 7 * MS_PER_DAY, "week")
        click.echo(f"  {label:<24} {format_duration(w.work_ms):>9}  {w.active_days} days, {w.goal_hits} goals")
    click.echo()

    click.echo("By Month:")
    for m in data.months:
        label = format_date_range(m.start_ms, m.start_ms + MS_PER_DAY, "month")
        click.echo(f"  {label:<24} {format_duration(m.work_ms):>9}  {m.active_days} days")
    click.echo()

    max_tag = max((t.ms for t in data.tags), default=0)
    click.echo("By Tag:")
    for t in data.tags:
        display_tag = t.label if len(t.label) <= 20 else t.label[:17] + "..."
        bar = make_progress_bar(t.ms, max_tag)
        click.echo(f"  {display_tag:<20} {format_duration(t.ms):>9} {round(t.share * 100):>3}%   {bar}")

    if data.break_tags:
        click.echo()
        click.echo("By Break Tag:")
        for t in data.break_tags:
            click.echo(f"  {t.label:<20} {format_duration(t.ms):>9} {round(t.share * 100):>3}%")


@main.command("watch")
@click.option("--frames", type=int, default=0, hidden=True, help="Stop after this many draws")
@click.option("--keep-running", is_flag=True, help="Do not stop the running session on exit")
@click.pass_context
def watch_command(ctx: click.Context, frames: int, keep_running: bool) -> None:
    """Live status line, refreshed every half second (Ctrl-C to quit).

    Exiting closes out a running session unless --keep-running is given.
    """
    accent = ctx.obj["accent"]
    with open_store(ctx) as store:
        coordinator: SyncCoordinator = ctx.obj["coordinator"]

        def draw() -> None:
            s = build_summary(store, accent=accent)
            mode = f"SESSION {format_hms(s.live_ms)}" if s.running else f"BREAK {format_hms(s.break_ms)}"
            goal = "GOAL REACHED" if s.goal_reached else f"{format_hm(s.remaining_minutes)} TO GOAL"
            click.echo(f"\r{format_clock(s.now_ms, seconds=True)}  {format_hm(s.worked_minutes)}  {goal}  {mode}  ", nl=False)

        controller = DialController(store, draw=draw, text_input=click_text_input)
        controller.scheduler.on_tick.insert(0, coordinator.poll)
        try:
            controller.scheduler.run(should_stop=lambda: frames > 0 and controller.scheduler.draw_count >= frames)
        except KeyboardInterrupt:
            pass
        finally:
            if not keep_running:
                store.close_out()
            click.echo()


if __name__ == "__main__":
    main()
