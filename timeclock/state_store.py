# timeclock/state_store.py
import os
import json
from typing import Dict, Any, Iterator, List, Optional

from timeclock.errors import AlreadyActive, StorageError
from timeclock.logger import log
from timeclock.models import GuildConfig, UserState, WorkSession


def _user_key(user_id: int, guild_id: int) -> str:
    return f"{guild_id}:{user_id}"


class StateStore:
    """JSON file holding sessions, guild configs and user states.

    The whole document is kept in memory and rewritten on every mutation.
    Writes go to a temp file that replaces the data file, and a failed write
    rolls the in-memory change back, so a record is never half-applied.
    """

    def __init__(self, data_file: str):
        self.data_file = data_file
        self.state: Dict[str, Dict[str, Any]] = {
            "sessions": {},  # session id -> WorkSession dict
            "guilds": {},    # guild id(str) -> GuildConfig dict
            "users": {},     # "guild:user" -> UserState dict
        }

    def load(self):
        if not os.path.exists(self.data_file):
            log.info(f"[STORE] {self.data_file} not found, starting empty")
            return
        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Could not read {self.data_file}: {e}", {"path": self.data_file}) from e
        self.state["sessions"] = data.get("sessions", {})
        self.state["guilds"] = data.get("guilds", {})
        self.state["users"] = data.get("users", {})
        log.info(f"[STORE] loaded {len(self.state['sessions'])} sessions from {self.data_file}")

    def save(self):
        tmp_path = f"{self.data_file}.tmp"
        try:
            directory = os.path.dirname(self.data_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self.state, f, ensure_ascii=False)
            os.replace(tmp_path, self.data_file)
        except OSError as e:
            raise StorageError(f"Could not write {self.data_file}: {e}", {"path": self.data_file}) from e

    def _commit(self, section: str, key: str, value: Optional[Dict[str, Any]]):
        """Set (or delete, for None) one record and persist, undoing it if the write fails."""
        table = self.state[section]
        previous = table.get(key)
        if value is None:
            table.pop(key, None)
        else:
            table[key] = value
        try:
            self.save()
        except StorageError:
            if previous is None:
                table.pop(key, None)
            else:
                table[key] = previous
            raise

    # ----- sessions -----

    def _sessions(self) -> Iterator[WorkSession]:
        for raw in self.state["sessions"].values():
            yield WorkSession.from_dict(raw)

    def insert(self, session: WorkSession) -> WorkSession:
        if session.is_open and self.find_open(session.user_id, session.guild_id) is not None:
            raise AlreadyActive(
                "User already has an open session",
                {"user_id": session.user_id, "guild_id": session.guild_id},
            )
        self._commit("sessions", session.id, session.to_dict())
        return session

    def get(self, session_id: str) -> Optional[WorkSession]:
        raw = self.state["sessions"].get(session_id)
        return WorkSession.from_dict(raw) if raw else None

    def find_open(self, user_id: int, guild_id: int) -> Optional[WorkSession]:
        for s in self._sessions():
            if s.user_id == user_id and s.guild_id == guild_id and s.is_open:
                return s
        return None

    def find_open_by_guild(self, guild_id: int) -> List[WorkSession]:
        found = [s for s in self._sessions() if s.guild_id == guild_id and s.is_open]
        return sorted(found, key=lambda s: s.start_time)

    def find_closed(self, user_id: int, guild_id: int) -> List[WorkSession]:
        found = [
            s for s in self._sessions()
            if s.user_id == user_id and s.guild_id == guild_id and not s.is_open
        ]
        return sorted(found, key=lambda s: s.start_time)

    def find_closed_by_guild(self, guild_id: int) -> List[WorkSession]:
        found = [s for s in self._sessions() if s.guild_id == guild_id and not s.is_open]
        return sorted(found, key=lambda s: s.start_time)

    def update(self, session: WorkSession) -> WorkSession:
        if session.id not in self.state["sessions"]:
            raise StorageError(f"Session {session.id} does not exist", {"session_id": session.id})
        self._commit("sessions", session.id, session.to_dict())
        return session

    def delete(self, session_id: str) -> bool:
        if session_id not in self.state["sessions"]:
            return False
        self._commit("sessions", session_id, None)
        return True

    def delete_closed(self, user_id: int, guild_id: int) -> int:
        sessions = self.state["sessions"]
        doomed = [s.id for s in self.find_closed(user_id, guild_id)]
        if not doomed:
            return 0
        removed = {sid: sessions.pop(sid) for sid in doomed}
        try:
            self.save()
        except StorageError:
            sessions.update(removed)
            raise
        log.info(f"[STORE] deleted {len(doomed)} closed sessions of user={user_id} guild={guild_id}")
        return len(doomed)

    # ----- guild configs -----

    def get_guild(self, guild_id: int) -> Optional[GuildConfig]:
        raw = self.state["guilds"].get(str(guild_id))
        return GuildConfig.from_dict(raw) if raw else None

    def save_guild(self, config: GuildConfig) -> GuildConfig:
        self._commit("guilds", str(config.guild_id), config.to_dict())
        return config

    def delete_guild(self, guild_id: int) -> bool:
        if str(guild_id) not in self.state["guilds"]:
            return False
        self._commit("guilds", str(guild_id), None)
        return True

    def iter_guilds(self) -> Iterator[GuildConfig]:
        for raw in list(self.state["guilds"].values()):
            yield GuildConfig.from_dict(raw)

    # ----- user states -----

    def get_user_state(self, user_id: int, guild_id: int) -> UserState:
        raw = self.state["users"].get(_user_key(user_id, guild_id))
        return UserState.from_dict(raw) if raw else UserState(user_id=user_id, guild_id=guild_id)

    def save_user_state(self, user_state: UserState) -> UserState:
        self._commit("users", _user_key(user_state.user_id, user_state.guild_id), user_state.to_dict())
        return user_state
