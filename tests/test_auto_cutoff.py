from __future__ import annotations

import datetime as dt

from timeclock.auto_cutoff import is_cutoff_due, run_auto_cutoff_sweep
from timeclock.models import AutoCut, GuildConfig, WorkSession
from timeclock.time_utils import weekday_index

from conftest import GUILD_ID, OTHER_ID, T0, WORKER_ID

# T0 is Monday 2024-01-08 09:00 UTC -> 04:00 in New York


def _config(day="monday", time="09:00", tz="UTC", frozen=False):
    return GuildConfig(guild_id=GUILD_ID, timezone=tz, auto_cut=AutoCut(day, time), is_frozen=frozen)


def test_due_only_on_exact_minute():
    config = _config()
    assert is_cutoff_due(config, T0)
    assert is_cutoff_due(config, T0 + dt.timedelta(seconds=59))
    assert not is_cutoff_due(config, T0 + dt.timedelta(minutes=1))
    assert not is_cutoff_due(config, T0 - dt.timedelta(minutes=1))
    assert not is_cutoff_due(config, T0 + dt.timedelta(days=1))


def test_due_uses_guild_timezone():
    assert is_cutoff_due(_config(time="04:00", tz="America/New_York"), T0)
    assert not is_cutoff_due(_config(time="09:00", tz="America/New_York"), T0)


def test_spanish_day_names_with_accents():
    assert weekday_index("Miércoles") == 2
    assert weekday_index("sábado") == 5
    assert is_cutoff_due(_config(day="Lunes"), T0)


def test_not_due_when_frozen_or_unset():
    assert not is_cutoff_due(_config(frozen=True), T0)
    assert not is_cutoff_due(GuildConfig(guild_id=GUILD_ID), T0)
    assert not is_cutoff_due(_config(day="someday"), T0)


def test_sweep_freezes_and_closes_once(manager, store, guild, worker, admin, clock):
    guild.auto_cut = AutoCut("monday", "10:00")
    store.save_guild(guild)
    manager.start(GUILD_ID, WORKER_ID, worker)
    manager.start(GUILD_ID, OTHER_ID, admin)
    clock.advance(hours=1)

    results = run_auto_cutoff_sweep(manager)
    assert len(results) == 1
    assert sorted(d for _, d in results[0].closed) == [3600000, 3600000]
    assert store.get_guild(GUILD_ID).is_frozen
    assert store.find_open_by_guild(GUILD_ID) == []

    clock.advance(seconds=30)
    assert run_auto_cutoff_sweep(manager) == []
    assert len(store.find_closed_by_guild(GUILD_ID)) == 2


def test_sweep_skips_guilds_not_due(manager, store, guild, worker, clock):
    guild.auto_cut = AutoCut("tuesday", "09:00")
    store.save_guild(guild)
    manager.start(GUILD_ID, WORKER_ID, worker)
    assert run_auto_cutoff_sweep(manager) == []
    assert store.find_open(WORKER_ID, GUILD_ID) is not None
    assert not store.get_guild(GUILD_ID).is_frozen


def test_bad_timezone_does_not_abort_the_sweep(manager, store, guild, clock):
    guild.auto_cut = AutoCut("monday", "09:00")
    guild.timezone = "Mars/Olympus"
    store.save_guild(guild)
    healthy = GuildConfig(guild_id=GUILD_ID + 1, auto_cut=AutoCut("monday", "09:00"))
    store.save_guild(healthy)
    store.insert(WorkSession(user_id=WORKER_ID, guild_id=GUILD_ID + 1, started_by=WORKER_ID,
                             start_time=T0 - dt.timedelta(hours=2)))

    results = run_auto_cutoff_sweep(manager)
    assert [r.config.guild_id for r in results] == [GUILD_ID + 1]
    assert [d for _, d in results[0].closed] == [2 * 3600000]
    assert store.get_guild(GUILD_ID + 1).is_frozen
    assert not store.get_guild(GUILD_ID).is_frozen
