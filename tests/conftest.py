from __future__ import annotations

import datetime as dt

import pytest

from timeclock.models import Actor, GuildConfig, Mode
from timeclock.session_manager import SessionManager
from timeclock.state_store import StateStore

GUILD_ID = 1000
ADMIN_ROLE = 50
OWNER_ID = 1
ADMIN_ID = 2
WORKER_ID = 3
OTHER_ID = 4

T0 = dt.datetime(2024, 1, 8, 9, 0, tzinfo=dt.timezone.utc)  # a Monday


class FakeClock:
    def __init__(self, start: dt.datetime = T0):
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs) -> dt.datetime:
        self.now = self.now + dt.timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store(tmp_path):
    s = StateStore(str(tmp_path / "timeclock.json"))
    s.load()
    return s


@pytest.fixture()
def guild(store):
    config = GuildConfig(
        guild_id=GUILD_ID,
        timezone="UTC",
        mode=Mode.HYBRID,
        admin_roles=[ADMIN_ROLE],
        owner_id=OWNER_ID,
    )
    return store.save_guild(config)


@pytest.fixture()
def manager(store, clock, guild):
    return SessionManager(store, clock=clock)


@pytest.fixture()
def admin():
    return Actor(user_id=ADMIN_ID, role_ids=frozenset({ADMIN_ROLE}))


@pytest.fixture()
def worker():
    return Actor(user_id=WORKER_ID)
