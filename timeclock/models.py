# timeclock/models.py
import datetime as dt
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from timeclock.time_utils import iso, parse_iso, weekday_index


def _opt_iso(value: Optional[dt.datetime]) -> Optional[str]:
    return iso(value) if value is not None else None


def _opt_parse(value: Optional[str]) -> Optional[dt.datetime]:
    return parse_iso(value) if value else None


def _opt_int(value) -> Optional[int]:
    return int(value) if value not in (None, "") else None


class Mode(str, Enum):
    SELF_SERVICE = "self"
    SUPERVISOR = "supervisor"
    HYBRID = "hybrid"

    @property
    def allows_self_service(self) -> bool:
        return self in (Mode.SELF_SERVICE, Mode.HYBRID)

    @property
    def allows_supervisor(self) -> bool:
        return self in (Mode.SUPERVISOR, Mode.HYBRID)


@dataclass
class WorkSession:
    user_id: int
    guild_id: int
    started_by: int
    start_time: dt.datetime
    end_time: Optional[dt.datetime] = None
    is_paused: bool = False
    pause_start_time: Optional[dt.datetime] = None
    total_paused_ms: int = 0
    manual_adjustment_ms: int = 0
    start_message_id: Optional[int] = None  # log-channel start notice, removed on close
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def is_self_service(self) -> bool:
        return self.started_by == self.user_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "guild_id": self.guild_id,
            "started_by": self.started_by,
            "start_time": iso(self.start_time),
            "end_time": _opt_iso(self.end_time),
            "is_paused": self.is_paused,
            "pause_start_time": _opt_iso(self.pause_start_time),
            "total_paused_ms": self.total_paused_ms,
            "manual_adjustment_ms": self.manual_adjustment_ms,
            "start_message_id": self.start_message_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkSession":
        return cls(
            id=data["id"],
            user_id=int(data["user_id"]),
            guild_id=int(data["guild_id"]),
            started_by=int(data["started_by"]),
            start_time=parse_iso(data["start_time"]),
            end_time=_opt_parse(data.get("end_time")),
            is_paused=bool(data.get("is_paused", False)),
            pause_start_time=_opt_parse(data.get("pause_start_time")),
            total_paused_ms=int(data.get("total_paused_ms", 0)),
            manual_adjustment_ms=int(data.get("manual_adjustment_ms", 0)),
            start_message_id=_opt_int(data.get("start_message_id")),
        )


@dataclass(frozen=True)
class AutoCut:
    day: str   # weekday name, e.g. "monday" / "lunes"
    time: str  # "HH:MM" in the guild timezone

    @classmethod
    def parse(cls, raw: str) -> Optional["AutoCut"]:
        """`"lunes 9:05"` -> AutoCut("lunes", "09:05"); unknown day or bad time -> None."""
        raw = (raw or "").strip()
        if " " not in raw:
            return None
        day, time = raw.split(None, 1)
        if weekday_index(day) is None:
            return None
        try:
            parsed = dt.datetime.strptime(time.strip(), "%H:%M")
        except ValueError:
            return None
        return cls(day=day, time=parsed.strftime("%H:%M"))


@dataclass
class GuildConfig:
    guild_id: int
    timezone: str = "UTC"
    mode: Mode = Mode.SELF_SERVICE
    admin_roles: List[int] = field(default_factory=list)
    role_permissions: List[Tuple[int, int]] = field(default_factory=list)  # (starter role, target role)
    auto_cut: Optional[AutoCut] = None
    is_frozen: bool = False
    owner_id: Optional[int] = None
    dash_channel_id: Optional[int] = None
    log_channel_id: Optional[int] = None
    dash_message_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guild_id": self.guild_id,
            "timezone": self.timezone,
            "mode": self.mode.value,
            "admin_roles": list(self.admin_roles),
            "role_permissions": [list(rule) for rule in self.role_permissions],
            "auto_cut": {"day": self.auto_cut.day, "time": self.auto_cut.time} if self.auto_cut else None,
            "is_frozen": self.is_frozen,
            "owner_id": self.owner_id,
            "dash_channel_id": self.dash_channel_id,
            "log_channel_id": self.log_channel_id,
            "dash_message_id": self.dash_message_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuildConfig":
        auto_cut = data.get("auto_cut")
        return cls(
            guild_id=int(data["guild_id"]),
            timezone=data.get("timezone", "UTC"),
            mode=Mode(data.get("mode", Mode.SELF_SERVICE.value)),
            admin_roles=[int(r) for r in data.get("admin_roles", [])],
            role_permissions=[(int(a), int(b)) for a, b in data.get("role_permissions", [])],
            auto_cut=AutoCut(**auto_cut) if auto_cut else None,
            is_frozen=bool(data.get("is_frozen", False)),
            owner_id=_opt_int(data.get("owner_id")),
            dash_channel_id=_opt_int(data.get("dash_channel_id")),
            log_channel_id=_opt_int(data.get("log_channel_id")),
            dash_message_id=_opt_int(data.get("dash_message_id")),
        )


@dataclass
class UserState:
    user_id: int
    guild_id: int
    is_banned: bool = False
    penalty_until: Optional[dt.datetime] = None

    def penalty_active(self, now: dt.datetime) -> bool:
        return self.penalty_until is not None and self.penalty_until > now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "guild_id": self.guild_id,
            "is_banned": self.is_banned,
            "penalty_until": _opt_iso(self.penalty_until),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserState":
        return cls(
            user_id=int(data["user_id"]),
            guild_id=int(data["guild_id"]),
            is_banned=bool(data.get("is_banned", False)),
            penalty_until=_opt_parse(data.get("penalty_until")),
        )


@dataclass(frozen=True)
class Actor:
    """The member performing an operation, as seen by the UI layer."""
    user_id: int
    role_ids: FrozenSet[int] = frozenset()
    is_owner: bool = False
