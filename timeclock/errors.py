# timeclock/errors.py
import datetime as dt
from typing import Any, Dict, Optional


class TimeClockError(Exception):
    """Base error for every rejected time clock operation."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class AlreadyActive(TimeClockError):
    pass


class NotActive(TimeClockError):
    pass


class InvalidState(TimeClockError):
    """Pause on a paused session, resume on a running one."""


class Frozen(TimeClockError):
    pass


class Banned(TimeClockError):
    pass


class PenaltyActive(TimeClockError):
    def __init__(self, message: str, until: dt.datetime, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.until = until


class PermissionDenied(TimeClockError):
    pass


class SessionNotFound(TimeClockError):
    pass


class InvalidAdjustment(TimeClockError):
    pass


class GuildNotConfigured(TimeClockError):
    pass


class StorageError(TimeClockError):
    """Reading or writing the data file failed; the operation was not applied."""
