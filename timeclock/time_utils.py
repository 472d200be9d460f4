# timeclock/time_utils.py
import datetime as dt
import unicodedata
from zoneinfo import ZoneInfo

UTC = dt.timezone.utc
ONE_MS = dt.timedelta(milliseconds=1)

# weekday name -> weekday() index (English and Spanish, accents ignored)
WEEKDAYS = {
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3,
    "friday": 4, "saturday": 5, "sunday": 6,
    "lunes": 0, "martes": 1, "miercoles": 2, "jueves": 3,
    "viernes": 4, "sabado": 5, "domingo": 6,
}


def now_utc() -> dt.datetime:
    return dt.datetime.now(tz=UTC)


def iso(dtobj: dt.datetime) -> str:
    return dtobj.astimezone(UTC).isoformat()


def parse_iso(s: str) -> dt.datetime:
    value = dt.datetime.fromisoformat(s)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def ms_between(start: dt.datetime, end: dt.datetime) -> int:
    """Exact whole milliseconds from start to end (negative if end is earlier)."""
    return (end - start) // ONE_MS


def local_now(tz_name: str, now: dt.datetime | None = None) -> dt.datetime:
    return (now or now_utc()).astimezone(ZoneInfo(tz_name))


def normalize_day(name: str) -> str:
    stripped = unicodedata.normalize("NFD", name.strip().lower())
    return "".join(c for c in stripped if unicodedata.category(c) != "Mn")


def weekday_index(name: str) -> int | None:
    return WEEKDAYS.get(normalize_day(name))


def format_duration(ms: int) -> str:
    """`3h 25m` style, like the dashboard shows it."""
    sign = "-" if ms < 0 else ""
    minutes = abs(ms) // 60000
    return f"{sign}{minutes // 60}h {minutes % 60}m"
