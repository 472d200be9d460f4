from __future__ import annotations

import pytest

from timeclock.cooldown import Cooldown
from timeclock.models import Actor, AutoCut, GuildConfig
from timeclock.session_manager import is_admin

from conftest import GUILD_ID, OWNER_ID


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("monday 09:00", AutoCut("monday", "09:00")),
        ("lunes 9:05", AutoCut("lunes", "09:05")),
        ("  Sábado   23:59 ", AutoCut("Sábado", "23:59")),
    ],
)
def test_auto_cut_parse_accepts(raw, expected):
    assert AutoCut.parse(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["", "monday", "garbage", "someday 10:00", "monday 24:00", "monday 9:60",
     "lunes 23:59 pm", "monday nine"],
)
def test_auto_cut_parse_rejects(raw):
    assert AutoCut.parse(raw) is None


def test_guild_config_ids_from_strings_are_ints():
    config = GuildConfig.from_dict({
        "guild_id": str(GUILD_ID),
        "owner_id": str(OWNER_ID),
        "dash_channel_id": "111",
        "log_channel_id": "222",
        "dash_message_id": "",
    })
    assert config.owner_id == OWNER_ID
    assert (config.dash_channel_id, config.log_channel_id) == (111, 222)
    assert config.dash_message_id is None
    assert is_admin(config, Actor(user_id=OWNER_ID))


class _Clock:
    def __init__(self):
        self.t = 100.0

    def __call__(self):
        return self.t


def test_cooldown_blocks_repeat_presses_per_user():
    clock = _Clock()
    cooldown = Cooldown(3, clock=clock)
    assert not cooldown.hit(1)
    assert cooldown.hit(1)
    assert not cooldown.hit(2)
    clock.t += 2.9
    assert cooldown.hit(1)
    clock.t += 0.2
    assert not cooldown.hit(1)
