from __future__ import annotations

import datetime as dt
import json

import pytest

from timeclock.errors import AlreadyActive, StorageError
from timeclock.models import AutoCut, GuildConfig, Mode, UserState, WorkSession
from timeclock.state_store import StateStore

from conftest import GUILD_ID, T0, WORKER_ID


def _open(user_id=WORKER_ID, guild_id=GUILD_ID, start=T0):
    return WorkSession(user_id=user_id, guild_id=guild_id, started_by=user_id, start_time=start)


def test_data_survives_reload(store):
    session = store.insert(_open())
    session.is_paused = True
    session.pause_start_time = T0 + dt.timedelta(minutes=3)
    store.update(session)
    store.save_guild(GuildConfig(guild_id=GUILD_ID, timezone="Europe/Madrid", mode=Mode.SUPERVISOR,
                                 role_permissions=[(1, 2)], auto_cut=AutoCut("lunes", "23:59")))
    store.save_user_state(UserState(user_id=WORKER_ID, guild_id=GUILD_ID, is_banned=True))

    reloaded = StateStore(store.data_file)
    reloaded.load()
    assert reloaded.get(session.id) == session
    config = reloaded.get_guild(GUILD_ID)
    assert config.mode is Mode.SUPERVISOR
    assert config.role_permissions == [(1, 2)]
    assert config.auto_cut == AutoCut("lunes", "23:59")
    assert reloaded.get_user_state(WORKER_ID, GUILD_ID).is_banned


def test_one_open_session_per_user_and_guild(store):
    store.insert(_open())
    with pytest.raises(AlreadyActive):
        store.insert(_open())
    store.insert(_open(guild_id=GUILD_ID + 1))
    store.insert(_open(user_id=WORKER_ID + 1))


def test_find_closed_is_sorted_by_start(store):
    late = _open(start=T0 + dt.timedelta(hours=2))
    late.end_time = late.start_time + dt.timedelta(minutes=5)
    early = _open(start=T0)
    early.end_time = T0 + dt.timedelta(minutes=5)
    store.insert(late)
    store.insert(early)
    assert [s.id for s in store.find_closed(WORKER_ID, GUILD_ID)] == [early.id, late.id]


def test_default_user_state(store):
    state = store.get_user_state(WORKER_ID, GUILD_ID)
    assert not state.is_banned and state.penalty_until is None


def test_corrupt_file_raises_storage_error(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        StateStore(str(path)).load()


def test_failed_write_rolls_back(store, monkeypatch):
    def boom():
        raise StorageError("disk full")

    monkeypatch.setattr(store, "save", boom)
    with pytest.raises(StorageError):
        store.insert(_open())
    assert store.find_open(WORKER_ID, GUILD_ID) is None


def test_file_is_plain_json(store):
    store.insert(_open())
    data = json.loads(open(store.data_file, encoding="utf-8").read())
    assert set(data) == {"sessions", "guilds", "users"}


def test_delete_closed_rolls_back_on_failed_write(store, monkeypatch):
    closed = _open()
    closed.end_time = T0 + dt.timedelta(minutes=10)
    store.insert(closed)

    def boom():
        raise StorageError("disk full")

    monkeypatch.setattr(store, "save", boom)
    with pytest.raises(StorageError):
        store.delete_closed(WORKER_ID, GUILD_ID)
    assert [s.id for s in store.find_closed(WORKER_ID, GUILD_ID)] == [closed.id]


def test_start_notice_id_survives_reload(store):
    session = _open()
    session.start_message_id = 123456789012345678
    store.insert(session)
    reloaded = StateStore(store.data_file)
    reloaded.load()
    assert reloaded.get(session.id).start_message_id == 123456789012345678
