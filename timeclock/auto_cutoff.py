# timeclock/auto_cutoff.py
import datetime as dt
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfoNotFoundError

from timeclock.logger import log
from timeclock.models import GuildConfig, WorkSession
from timeclock.session_manager import SessionManager
from timeclock.time_utils import local_now, weekday_index


@dataclass
class CutoffResult:
    config: GuildConfig
    closed: List[Tuple[WorkSession, int]] = field(default_factory=list)


def is_cutoff_due(config: GuildConfig, now: dt.datetime) -> bool:
    # exact minute match, not a range
    if config.auto_cut is None or config.is_frozen:
        return False
    day = weekday_index(config.auto_cut.day)
    if day is None:
        return False
    local = local_now(config.timezone, now)
    return local.weekday() == day and local.strftime("%H:%M") == config.auto_cut.time.strip()


def run_auto_cutoff_sweep(manager: SessionManager, now: Optional[dt.datetime] = None) -> List[CutoffResult]:
    """Freeze every guild whose cut-off minute is `now` and close its open sessions.

    The freeze is saved before any session is closed; once frozen a guild is
    skipped by later sweeps until someone unfreezes it.
    """
    now = now or manager.clock()
    results = []
    for config in manager.store.iter_guilds():
        try:
            due = is_cutoff_due(config, now)
        except (ZoneInfoNotFoundError, ValueError) as e:
            log.error(f"[AUTOCUT] guild={config.guild_id} skipped, bad schedule or timezone {config.timezone!r}: {e}")
            continue
        if not due:
            continue
        config.is_frozen = True
        manager.store.save_guild(config)
        closed = manager.close_all(config.guild_id, now)
        log.info(f"[AUTOCUT] guild={config.guild_id} frozen, closed {len(closed)} sessions")
        results.append(CutoffResult(config=config, closed=closed))
    return results
