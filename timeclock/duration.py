# timeclock/duration.py
import datetime as dt

from timeclock.models import WorkSession
from timeclock.time_utils import ms_between, now_utc


def calculate_duration(session: WorkSession, reference_time: dt.datetime | None = None) -> int:
    """Effective worked milliseconds of a session.

    Closed sessions are measured up to ``end_time``; open ones up to
    ``reference_time`` (now by default). A pause still in progress on an open
    session counts against the elapsed time even though it has not been folded
    into ``total_paused_ms`` yet. The manual adjustment is always applied, so
    the result can be negative.
    """
    reference_time = reference_time or now_utc()
    end_point = session.end_time if session.end_time is not None else reference_time
    raw_elapsed = ms_between(session.start_time, end_point)

    live_pause_ms = 0
    if session.is_open and session.is_paused and session.pause_start_time is not None:
        live_pause_ms = ms_between(session.pause_start_time, reference_time)

    return raw_elapsed - session.total_paused_ms - live_pause_ms + session.manual_adjustment_ms
