# timeclock/session_manager.py
import datetime as dt
from typing import Callable, Iterable, List, Tuple

from timeclock.duration import calculate_duration
from timeclock.errors import (
    AlreadyActive,
    Banned,
    Frozen,
    GuildNotConfigured,
    InvalidAdjustment,
    InvalidState,
    NotActive,
    PenaltyActive,
    PermissionDenied,
    SessionNotFound,
)
from timeclock.logger import log
from timeclock.models import Actor, GuildConfig, UserState, WorkSession
from timeclock.state_store import StateStore
from timeclock.time_utils import ms_between, now_utc


def is_admin(config: GuildConfig, actor: Actor) -> bool:
    if actor.is_owner or (config.owner_id is not None and actor.user_id == config.owner_id):
        return True
    return any(role in config.admin_roles for role in actor.role_ids)


def can_start_for(config: GuildConfig, starter: Actor, target_role_ids: Iterable[int]) -> bool:
    if is_admin(config, starter):
        return True
    target_roles = set(target_role_ids)
    return any(
        starter_role in starter.role_ids and target_role in target_roles
        for starter_role, target_role in config.role_permissions
    )


class SessionManager:
    """Start/stop/pause/resume and admin corrections over one StateStore.

    All checks happen before the first write and every operation touches a
    single record per write, so a rejected operation leaves the store as it was.
    Callers are expected to serialize operations for the same user.
    """

    def __init__(self, store: StateStore, clock: Callable[[], dt.datetime] = now_utc):
        self.store = store
        self.clock = clock

    # ----- helpers -----

    def _config(self, guild_id: int) -> GuildConfig:
        config = self.store.get_guild(guild_id)
        if config is None:
            raise GuildNotConfigured("This server is not configured yet", {"guild_id": guild_id})
        return config

    def _require_admin(self, config: GuildConfig, actor: Actor):
        if not is_admin(config, actor):
            raise PermissionDenied("Only admins can do this", {"user_id": actor.user_id})

    def _open_session(self, guild_id: int, user_id: int) -> WorkSession:
        session = self.store.find_open(user_id, guild_id)
        if session is None:
            raise NotActive("No open session", {"user_id": user_id, "guild_id": guild_id})
        return session

    @staticmethod
    def _fold_pause(session: WorkSession, now: dt.datetime):
        if session.is_paused and session.pause_start_time is not None:
            session.total_paused_ms += max(0, ms_between(session.pause_start_time, now))
        session.is_paused = False
        session.pause_start_time = None

    def _close(self, session: WorkSession, now: dt.datetime) -> int:
        # A paused session is resumed first so the last pause stays unpaid.
        self._fold_pause(session, now)
        session.end_time = now
        self.store.update(session)
        duration = calculate_duration(session, now)
        log.info(f"[SESSION] closed user={session.user_id} guild={session.guild_id} duration_ms={duration}")
        return duration

    # ----- lifecycle -----

    def start(self, guild_id: int, user_id: int, starter: Actor,
              target_role_ids: Iterable[int] = ()) -> WorkSession:
        config = self._config(guild_id)
        now = self.clock()

        if config.is_frozen:
            raise Frozen("The time clock is closed", {"guild_id": guild_id})

        if starter.user_id == user_id:
            if not config.mode.allows_self_service:
                raise PermissionDenied("Self-service clock-in is disabled", {"mode": config.mode.value})
        else:
            if not config.mode.allows_supervisor:
                raise PermissionDenied("Starting time for others is disabled", {"mode": config.mode.value})
            if not can_start_for(config, starter, target_role_ids):
                raise PermissionDenied(
                    "You cannot start time for this member",
                    {"starter": starter.user_id, "target": user_id},
                )

        user_state = self.store.get_user_state(user_id, guild_id)
        if user_state.is_banned:
            raise Banned("This member is banned from the time clock", {"user_id": user_id})
        if user_state.penalty_active(now):
            raise PenaltyActive(
                "This member is under a penalty",
                until=user_state.penalty_until,
                context={"user_id": user_id},
            )

        if self.store.find_open(user_id, guild_id) is not None:
            raise AlreadyActive("A session is already open", {"user_id": user_id, "guild_id": guild_id})

        session = WorkSession(user_id=user_id, guild_id=guild_id, started_by=starter.user_id, start_time=now)
        self.store.insert(session)
        log.info(f"[SESSION] started user={user_id} guild={guild_id} by={starter.user_id}")
        return session

    def stop(self, guild_id: int, user_id: int) -> Tuple[WorkSession, int]:
        session = self._open_session(guild_id, user_id)
        duration = self._close(session, self.clock())
        return session, duration

    def pause(self, guild_id: int, user_id: int, actor: Actor) -> WorkSession:
        self._require_admin(self._config(guild_id), actor)
        session = self._open_session(guild_id, user_id)
        if session.is_paused:
            raise InvalidState("Session is already paused", {"session_id": session.id})
        session.is_paused = True
        session.pause_start_time = self.clock()
        self.store.update(session)
        log.info(f"[SESSION] paused user={user_id} guild={guild_id} by={actor.user_id}")
        return session

    def resume(self, guild_id: int, user_id: int, actor: Actor) -> WorkSession:
        self._require_admin(self._config(guild_id), actor)
        session = self._open_session(guild_id, user_id)
        if not session.is_paused:
            raise InvalidState("Session is not paused", {"session_id": session.id})
        self._fold_pause(session, self.clock())
        self.store.update(session)
        log.info(f"[SESSION] resumed user={user_id} guild={guild_id} paused_ms={session.total_paused_ms}")
        return session

    def force_close(self, guild_id: int, user_id: int, actor: Actor) -> Tuple[WorkSession, int]:
        self._require_admin(self._config(guild_id), actor)
        session = self._open_session(guild_id, user_id)
        duration = self._close(session, self.clock())
        return session, duration

    def cancel(self, guild_id: int, user_id: int, actor: Actor) -> WorkSession:
        self._require_admin(self._config(guild_id), actor)
        session = self._open_session(guild_id, user_id)
        self.store.delete(session.id)
        log.info(f"[SESSION] cancelled user={user_id} guild={guild_id} by={actor.user_id}")
        return session

    def transfer(self, guild_id: int, user_id: int, new_started_by: int,
                 actor: Actor) -> Tuple[WorkSession, WorkSession]:
        self._require_admin(self._config(guild_id), actor)
        old = self._open_session(guild_id, user_id)
        now = self.clock()
        self._close(old, now)
        new = WorkSession(user_id=user_id, guild_id=guild_id, started_by=new_started_by, start_time=now)
        self.store.insert(new)
        log.info(f"[SESSION] transferred user={user_id} guild={guild_id} "
                 f"from={old.started_by} to={new_started_by}")
        return old, new

    def adjust_history(self, guild_id: int, user_id: int, minutes, sign: str,
                       actor: Actor) -> WorkSession:
        self._require_admin(self._config(guild_id), actor)
        try:
            amount = int(str(minutes).strip())
        except (TypeError, ValueError):
            raise InvalidAdjustment("Minutes must be a whole number", {"minutes": minutes})
        if amount <= 0:
            raise InvalidAdjustment("Minutes must be greater than zero", {"minutes": minutes})
        if sign not in ("+", "-"):
            raise InvalidAdjustment("Sign must be + or -", {"sign": sign})

        closed = self.store.find_closed(user_id, guild_id)
        if not closed:
            raise SessionNotFound("No closed session to adjust", {"user_id": user_id, "guild_id": guild_id})
        latest = max(closed, key=lambda s: s.end_time)
        delta = amount * 60000 * (1 if sign == "+" else -1)
        latest.manual_adjustment_ms += delta
        self.store.update(latest)
        log.info(f"[SESSION] adjusted session={latest.id} user={user_id} delta_ms={delta}")
        return latest

    def close_all(self, guild_id: int, now: dt.datetime | None = None) -> List[Tuple[WorkSession, int]]:
        now = now or self.clock()
        return [(s, self._close(s, now)) for s in self.store.find_open_by_guild(guild_id)]

    # ----- guild / member administration -----

    def set_frozen(self, guild_id: int, frozen: bool, actor: Actor) -> GuildConfig:
        config = self._config(guild_id)
        self._require_admin(config, actor)
        config.is_frozen = frozen
        self.store.save_guild(config)
        log.info(f"[SESSION] guild={guild_id} frozen={frozen} by={actor.user_id}")
        return config

    def set_banned(self, guild_id: int, user_id: int, banned: bool, actor: Actor) -> UserState:
        self._require_admin(self._config(guild_id), actor)
        user_state = self.store.get_user_state(user_id, guild_id)
        user_state.is_banned = banned
        return self.store.save_user_state(user_state)

    def set_penalty(self, guild_id: int, user_id: int, until: dt.datetime | None,
                    actor: Actor) -> UserState:
        self._require_admin(self._config(guild_id), actor)
        user_state = self.store.get_user_state(user_id, guild_id)
        user_state.penalty_until = until
        return self.store.save_user_state(user_state)
