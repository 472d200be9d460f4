from __future__ import annotations

import datetime as dt

from timeclock.models import WorkSession
from timeclock.reporting import (
    SELF_SERVICE_LABEL,
    history_report,
    payroll_listing,
    payroll_reset,
    render_history,
    total_for,
)

from conftest import ADMIN_ID, GUILD_ID, OTHER_ID, T0, WORKER_ID

MIN = 60000


def _closed(store, user_id, start_min, end_min, started_by=None, adjustment_ms=0, guild_id=GUILD_ID):
    session = WorkSession(
        user_id=user_id,
        guild_id=guild_id,
        started_by=started_by if started_by is not None else user_id,
        start_time=T0 + dt.timedelta(minutes=start_min),
        end_time=T0 + dt.timedelta(minutes=end_min),
        manual_adjustment_ms=adjustment_ms,
    )
    return store.insert(session)


def test_total_for_sums_closed_sessions(store):
    _closed(store, WORKER_ID, 0, 30)
    _closed(store, WORKER_ID, 60, 120)
    _closed(store, OTHER_ID, 0, 500)
    assert total_for(store, GUILD_ID, WORKER_ID) == 90 * MIN


def test_total_for_includes_active_on_request(store):
    _closed(store, WORKER_ID, 0, 30)
    store.insert(WorkSession(user_id=WORKER_ID, guild_id=GUILD_ID, started_by=WORKER_ID,
                             start_time=T0 + dt.timedelta(minutes=100)))
    now = T0 + dt.timedelta(minutes=110)
    assert total_for(store, GUILD_ID, WORKER_ID, now=now) == 30 * MIN
    assert total_for(store, GUILD_ID, WORKER_ID, include_active=True, now=now) == 40 * MIN


def test_total_for_clamps_negative_to_zero(store):
    _closed(store, WORKER_ID, 0, 10, adjustment_ms=-60 * MIN)
    assert total_for(store, GUILD_ID, WORKER_ID) == 0


def test_payroll_listing_sorted_and_filters_zero(store):
    # A: 2h10m across three sessions; B: adjustments cancel everything out
    _closed(store, WORKER_ID, 0, 60)
    _closed(store, WORKER_ID, 120, 170)
    _closed(store, WORKER_ID, 200, 220)
    _closed(store, OTHER_ID, 0, 30, adjustment_ms=-30 * MIN)
    entries = payroll_listing(store, GUILD_ID)
    assert [(e.user_id, e.total_ms, e.sessions) for e in entries] == [(WORKER_ID, 130 * MIN, 3)]


def test_payroll_listing_descending(store):
    _closed(store, WORKER_ID, 0, 10)
    _closed(store, OTHER_ID, 0, 50)
    _closed(store, ADMIN_ID, 0, 30)
    assert [e.user_id for e in payroll_listing(store, GUILD_ID)] == [OTHER_ID, ADMIN_ID, WORKER_ID]


def test_payroll_listing_ignores_open_sessions_and_other_guilds(store):
    store.insert(WorkSession(user_id=WORKER_ID, guild_id=GUILD_ID, started_by=WORKER_ID, start_time=T0))
    _closed(store, OTHER_ID, 0, 10, guild_id=GUILD_ID + 1)
    assert payroll_listing(store, GUILD_ID) == []


def test_payroll_reset_keeps_open_session(store):
    _closed(store, WORKER_ID, 0, 10)
    _closed(store, WORKER_ID, 20, 30)
    open_session = store.insert(WorkSession(user_id=WORKER_ID, guild_id=GUILD_ID,
                                            started_by=WORKER_ID, start_time=T0))
    assert payroll_reset(store, GUILD_ID, WORKER_ID) == 2
    assert store.find_closed(WORKER_ID, GUILD_ID) == []
    assert store.find_open(WORKER_ID, GUILD_ID).id == open_session.id
    assert payroll_reset(store, GUILD_ID, WORKER_ID) == 0


def test_history_report_ordering_labels_and_running_total(store):
    _closed(store, WORKER_ID, 100, 130, started_by=ADMIN_ID)
    _closed(store, WORKER_ID, 0, 60)
    report = history_report(store, GUILD_ID, WORKER_ID, resolve_name=lambda uid: f"user-{uid}")

    assert [r.duration_ms for r in report.rows] == [60 * MIN, 30 * MIN]
    assert [r.started_by_label for r in report.rows] == [SELF_SERVICE_LABEL, f"user-{ADMIN_ID}"]
    assert [r.running_total_ms for r in report.rows] == [60 * MIN, 90 * MIN]
    assert report.total_ms == 90 * MIN


def test_render_history_in_guild_timezone(store):
    _closed(store, WORKER_ID, 0, 90)
    text = render_history(history_report(store, GUILD_ID, WORKER_ID), "America/New_York")
    assert "2024-01-08 04:00" in text
    assert "1h 30m" in text
    assert "Grand total: 1h 30m (1 sessions)" in text
