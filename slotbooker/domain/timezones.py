"""
Conversions between local wall-clock times and absolute instants.

Every instant handled by the engine is a pendulum ``DateTime`` in UTC. Local
reasoning (weekly rules, date overrides, the guest's calendar date) happens
only through the functions in this module, which look up the zone's real
offset for the date in question instead of assuming a fixed one.

Ambiguous wall-clock times
--------------------------
A local time that falls into a spring-forward gap or a fall-back overlap
has no single natural instant. Such times are resolved with the offset that
is in force at local midnight of the same calendar day:

- fall-back overlap (e.g. 01:30 on the night clocks go back) resolves to
  the first occurrence;
- spring-forward gap (e.g. 02:30 on the night clocks go forward) keeps the
  pre-transition offset and therefore lands just after the gap (03:30).

Unambiguous local times always use the zone's actual offset at that instant.
"""

import re
from datetime import date, datetime, time
from enum import Enum

import pendulum
from pendulum import DateTime, Timezone

from .exceptions import ValidationError

ISO_FORMAT = "YYYY-MM-DD[T]HH:mm:ss[Z]"

_LOCAL_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_OFFSET_SUFFIX = re.compile(r"(Z|[+-]\d{2}(?::?\d{2})?)$", re.IGNORECASE)


class DayOfWeek(str, Enum):
    """The seven canonical weekday values used by weekly rules."""
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        """Weekday of a calendar date (0=Monday in ``date.weekday``)."""
        return list(cls)[value.weekday()]


def get_timezone(name: str) -> Timezone:
    """
    Resolve an IANA timezone name.

    Raises:
        ValidationError: If the name is empty or unknown
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Timezone must be a non-empty IANA name")

    try:
        return pendulum.timezone(name.strip())
    except (ValueError, KeyError, OSError) as exc:
        raise ValidationError(f"Unknown timezone: '{name}'") from exc


def parse_local_time(value: str | time) -> time:
    """Parse a local wall-clock time given as ``HH:MM`` or ``HH:MM:SS``."""
    if isinstance(value, time):
        return value.replace(tzinfo=None)

    match = _LOCAL_TIME_PATTERN.match(str(value).strip())
    if not match:
        raise ValidationError(f"Invalid local time '{value}', expected HH:MM")

    hour, minute, second = match.groups()
    return time(int(hour), int(minute), int(second or 0))


def parse_date(value: str | date) -> date:
    """Parse a ``YYYY-MM-DD`` calendar date."""
    if isinstance(value, datetime):
        raise ValidationError("Expected a calendar date, got a datetime")
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not _DATE_PATTERN.match(text):
        raise ValidationError(f"Date must be in YYYY-MM-DD format, got '{value}'")

    try:
        parsed = pendulum.from_format(text, "YYYY-MM-DD")
    except ValueError as exc:
        raise ValidationError(f"Invalid calendar date: '{value}'") from exc

    return date(parsed.year, parsed.month, parsed.day)


def parse_instant(value: str | datetime) -> DateTime:
    """
    Parse an ISO-8601 instant carrying an explicit UTC offset.

    Naive values are rejected: an instant without an offset cannot be placed
    on the timeline without guessing.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValidationError(f"Instant must carry a UTC offset: {value}")
        return pendulum.instance(value).in_timezone("UTC")

    text = str(value).strip()
    if not _OFFSET_SUFFIX.search(text):
        raise ValidationError(f"Instant must carry a UTC offset: '{value}'")

    try:
        parsed = pendulum.parse(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid ISO-8601 instant: '{value}'") from exc

    if not isinstance(parsed, DateTime):
        raise ValidationError(f"Invalid ISO-8601 instant: '{value}'")

    return parsed.in_timezone("UTC")


def local_to_instant(day: date, local_time: str | time, zone: str) -> DateTime:
    """
    Convert a wall-clock time on a calendar date in ``zone`` to a UTC instant.

    Args:
        day: Local calendar date
        local_time: ``HH:MM`` string or ``time``
        zone: IANA timezone name

    Returns:
        Pendulum DateTime in UTC
    """
    tz = get_timezone(zone)
    wall = datetime.combine(day, parse_local_time(local_time))

    offset = wall.replace(tzinfo=tz, fold=0).utcoffset()
    if offset != wall.replace(tzinfo=tz, fold=1).utcoffset():
        # Gap or overlap: fall back to the offset at local midnight.
        offset = datetime.combine(day, time(0, 0), tzinfo=tz).utcoffset()

    return pendulum.instance(wall - offset, tz="UTC")


def calendar_date(instant: datetime, zone: str) -> date:
    """Calendar date of ``instant`` as seen from ``zone``."""
    local = pendulum.instance(instant).in_timezone(get_timezone(zone))
    return date(local.year, local.month, local.day)


def day_of_week(instant: datetime, zone: str) -> DayOfWeek:
    """Weekday of ``instant`` as seen from ``zone``."""
    return DayOfWeek.from_date(calendar_date(instant, zone))


def start_of_day_utc(day: date) -> DateTime:
    """Midnight UTC at the beginning of ``day``."""
    return pendulum.datetime(day.year, day.month, day.day, tz="UTC")


def to_iso(instant: datetime) -> str:
    """Format an instant as UTC ISO-8601 (``2024-11-25T09:00:00Z``)."""
    return pendulum.instance(instant).in_timezone("UTC").format(ISO_FORMAT)
