# timeclock/reporting.py
import datetime as dt
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from timeclock.duration import calculate_duration
from timeclock.logger import log
from timeclock.models import WorkSession
from timeclock.state_store import StateStore
from timeclock.time_utils import format_duration, now_utc

SELF_SERVICE_LABEL = "Self-service"


@dataclass
class PayrollEntry:
    user_id: int
    total_ms: int
    sessions: int


@dataclass
class HistoryRow:
    session: WorkSession
    duration_ms: int
    started_by_label: str
    running_total_ms: int


@dataclass
class HistoryReport:
    user_id: int
    guild_id: int
    rows: List[HistoryRow] = field(default_factory=list)
    total_ms: int = 0


def total_for(store: StateStore, guild_id: int, user_id: int,
              include_active: bool = False, now: Optional[dt.datetime] = None) -> int:
    """Historical total of a user, never below zero."""
    now = now or now_utc()
    total = sum(calculate_duration(s, now) for s in store.find_closed(user_id, guild_id))
    if include_active:
        active = store.find_open(user_id, guild_id)
        if active is not None:
            total += calculate_duration(active, now)
    return max(0, total)


def payroll_listing(store: StateStore, guild_id: int) -> List[PayrollEntry]:
    totals: Dict[int, int] = defaultdict(int)
    counts: Dict[int, int] = defaultdict(int)
    for s in store.find_closed_by_guild(guild_id):
        totals[s.user_id] += calculate_duration(s)
        counts[s.user_id] += 1
    entries = [PayrollEntry(uid, ms, counts[uid]) for uid, ms in totals.items() if ms > 0]
    return sorted(entries, key=lambda e: e.total_ms, reverse=True)


def payroll_reset(store: StateStore, guild_id: int, user_id: int) -> int:
    deleted = store.delete_closed(user_id, guild_id)
    log.info(f"[PAYROLL] paid out user={user_id} guild={guild_id} sessions={deleted}")
    return deleted


def history_report(store: StateStore, guild_id: int, user_id: int,
                   resolve_name: Optional[Callable[[int], str]] = None) -> HistoryReport:
    resolve_name = resolve_name or str
    report = HistoryReport(user_id=user_id, guild_id=guild_id)
    running = 0
    for s in store.find_closed(user_id, guild_id):
        duration = calculate_duration(s)
        running += duration
        label = SELF_SERVICE_LABEL if s.is_self_service else resolve_name(s.started_by)
        report.rows.append(HistoryRow(s, duration, label, running))
    report.total_ms = max(0, running)
    return report


def render_history(report: HistoryReport, tz_name: str = "UTC") -> str:
    tz = ZoneInfo(tz_name)
    lines = [f"{'Start':<17} | {'End':<17} | {'Worked':>9} | {'Total':>9} | Started by"]
    lines.append("-" * len(lines[0]))
    for row in report.rows:
        start = row.session.start_time.astimezone(tz).strftime("%Y-%m-%d %H:%M")
        end = row.session.end_time.astimezone(tz).strftime("%Y-%m-%d %H:%M")
        lines.append(
            f"{start:<17} | {end:<17} | {format_duration(row.duration_ms):>9} | "
            f"{format_duration(row.running_total_ms):>9} | {row.started_by_label}"
        )
    lines.append("")
    lines.append(f"Grand total: {format_duration(report.total_ms)} ({len(report.rows)} sessions)")
    return "\n".join(lines)
