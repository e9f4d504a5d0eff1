# instant.py
"""
Instant: immutable, timezone-labelled point in time with an optional duration.

Calendar fields are the wall-clock fields of the labelled zone and the
timestamp is those fields read as if they were UTC. Arithmetic is therefore
purely calendrical (no DST jumps); real zone rules are only consulted by
to_timezone().

Public API:
  - Instant(timestamp, timezone=None, duration=0)
  - Instant.from_fields(year, month, day, hour, minute, second, millisecond, timezone=None, duration=0)
  - Instant.from_json(data) / Instant.to_json()
  - Instant.from_datetime(dt, duration=0) / Instant.to_datetime()
  - compare(a, b) -> -1 | 0 | 1   (stream ordering key)
  - is_leap_year(year), month_length(month, year), ordered_weekdays(week_start)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta

from .exceptions import InvalidDateError, TimezoneMismatchError

WEEKDAYS = ["MO", "TU", "WE", "TH", "FR", "SA", "SU"]  # datetime.weekday() order

UNITS = ("year", "month", "week", "day", "hour", "minute", "second", "millisecond")

_EPOCH = datetime(1970, 1, 1)
_ONE_MS = timedelta(milliseconds=1)

FIXED_UNIT_MS = {
    "week": 7 * 24 * 60 * 60 * 1000,
    "day": 24 * 60 * 60 * 1000,
    "hour": 60 * 60 * 1000,
    "minute": 60 * 1000,
    "second": 1000,
    "millisecond": 1,
}

# wall-clock fields reset by granularity(unit)
_START_OF = {
    "year": dict(month=1, day=1, hour=0, minute=0, second=0, microsecond=0),
    "month": dict(day=1, hour=0, minute=0, second=0, microsecond=0),
    "day": dict(hour=0, minute=0, second=0, microsecond=0),
    "hour": dict(minute=0, second=0, microsecond=0),
    "minute": dict(second=0, microsecond=0),
    "second": dict(microsecond=0),
}

# wall-clock fields filled by end_granularity(unit); "month" depends on the month length
_END_OF = {
    "year": dict(month=12, day=31, hour=23, minute=59, second=59, microsecond=999000),
    "day": dict(hour=23, minute=59, second=59, microsecond=999000),
    "hour": dict(minute=59, second=59, microsecond=999000),
    "minute": dict(second=59, microsecond=999000),
    "second": dict(microsecond=999000),
}

def is_leap_year(year: int) -> bool:
    return year % 400 == 0 or (year % 4 == 0 and year % 100 != 0)

def month_length(month: int, year: int) -> int:
    if month == 2:
        return 29 if is_leap_year(year) else 28
    return 30 if month in (4, 6, 9, 11) else 31

def ordered_weekdays(week_start: str = "MO") -> List[str]:
    i = WEEKDAYS.index(week_start)
    return WEEKDAYS[i:] + WEEKDAYS[:i]

def _check_unit(unit: str) -> None:
    if unit not in UNITS:
        raise ValueError(f"Unknown unit: {unit!r}")

def _tzinfo(label: Optional[str]):
    if label is None:
        return None
    if label == "UTC":
        return dt_timezone.utc
    try:
        return ZoneInfo(label)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidDateError(f"Unknown timezone: {label!r}") from e

@dataclass(frozen=True, eq=False, repr=False)
class Instant:
    timestamp: int                  # wall-clock milliseconds since 1970-01-01T00:00
    timezone: Optional[str] = None  # "UTC", None (floating local time) or an IANA name
    duration: int = 0               # milliseconds, 0 = no duration
    _wall: datetime = field(init=False, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.timestamp, bool) or not isinstance(self.timestamp, int):
            raise InvalidDateError(f"Invalid timestamp: {self.timestamp!r}")
        if isinstance(self.duration, bool) or not isinstance(self.duration, int) or self.duration < 0:
            raise InvalidDateError(f"Duration must be a non-negative integer, got {self.duration!r}")
        if self.timezone is not None and not isinstance(self.timezone, str):
            raise InvalidDateError(f"Invalid timezone label: {self.timezone!r}")
        try:
            wall = _EPOCH + timedelta(milliseconds=self.timestamp)
        except OverflowError as e:
            raise InvalidDateError(f"Timestamp out of range: {self.timestamp}") from e
        object.__setattr__(self, "_wall", wall)

    # ---- construction ----

    @classmethod
    def from_fields(
        cls,
        year: int,
        month: int = 1,
        day: int = 1,
        hour: int = 0,
        minute: int = 0,
        second: int = 0,
        millisecond: int = 0,
        timezone: Optional[str] = None,
        duration: int = 0,
    ) -> "Instant":
        if not 0 <= millisecond <= 999:
            raise InvalidDateError(f"Invalid millisecond: {millisecond!r}")
        try:
            wall = datetime(year, month, day, hour, minute, second, millisecond * 1000)
        except (TypeError, ValueError) as e:
            raise InvalidDateError(f"Invalid date {year}-{month}-{day}: {e}") from e
        return cls((wall - _EPOCH) // _ONE_MS, timezone, duration)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Instant":
        return cls.from_fields(
            data["year"],
            data["month"],
            data["day"],
            data.get("hour", 0),
            data.get("minute", 0),
            data.get("second", 0),
            data.get("millisecond", 0),
            timezone=data.get("timezone"),
            duration=data.get("duration") or 0,
        )

    @classmethod
    def from_datetime(cls, dt: datetime, duration: int = 0) -> "Instant":
        """Naive datetimes become floating instants, aware ones keep their zone key.

        Aware datetimes whose tzinfo has no IANA key (fixed offsets) are converted to UTC.
        """
        label = None
        if dt.tzinfo is not None:
            label = getattr(dt.tzinfo, "key", None)
            if label is None:
                if dt.utcoffset() != timedelta(0):
                    dt = dt.astimezone(dt_timezone.utc)
                label = "UTC"
        wall = dt.replace(tzinfo=None, microsecond=dt.microsecond // 1000 * 1000)
        return cls((wall - _EPOCH) // _ONE_MS, label, duration)

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timezone": self.timezone,
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "hour": self.hour,
            "minute": self.minute,
            "second": self.second,
            "millisecond": self.millisecond,
        }
        if self.duration:
            data["duration"] = self.duration
        return data

    def to_datetime(self) -> datetime:
        return self._wall.replace(tzinfo=_tzinfo(self.timezone))

    def isoformat(self) -> str:
        return self._wall.isoformat(timespec="milliseconds")

    def __str__(self) -> str:
        return self.isoformat()

    def __repr__(self) -> str:
        extra = f", duration={self.duration}" if self.duration else ""
        return f"Instant({self.isoformat()}, timezone={self.timezone!r}{extra})"

    # ---- fields ----

    @property
    def year(self) -> int:
        return self._wall.year

    @property
    def month(self) -> int:
        return self._wall.month

    @property
    def day(self) -> int:
        return self._wall.day

    @property
    def hour(self) -> int:
        return self._wall.hour

    @property
    def minute(self) -> int:
        return self._wall.minute

    @property
    def second(self) -> int:
        return self._wall.second

    @property
    def millisecond(self) -> int:
        return self._wall.microsecond // 1000

    @property
    def weekday(self) -> str:
        return WEEKDAYS[self._wall.weekday()]

    @property
    def end(self) -> Optional["Instant"]:
        if not self.duration:
            return None
        return Instant(self.timestamp + self.duration, self.timezone)

    # ---- arithmetic ----

    def _derive(self, change: Callable[[datetime], datetime]) -> "Instant":
        try:
            wall = change(self._wall)
        except (OverflowError, ValueError) as e:
            raise InvalidDateError(f"{e} (from {self.isoformat()})") from e
        return Instant((wall - _EPOCH) // _ONE_MS, self.timezone, self.duration)

    def add(self, amount: int, unit: str) -> "Instant":
        _check_unit(unit)
        if unit == "year":
            return self._derive(lambda w: w + relativedelta(years=amount))
        if unit == "month":
            return self._derive(lambda w: w + relativedelta(months=amount))
        return self._derive(lambda w: w + timedelta(milliseconds=amount * FIXED_UNIT_MS[unit]))

    def subtract(self, amount: int, unit: str) -> "Instant":
        return self.add(-amount, unit)

    def set(self, unit: str, value: Any) -> "Instant":
        """Return a copy with one field replaced.

        "year" and "month" clamp the day to the target month's last day;
        "day", "hour", "minute", "second" reject impossible values;
        "duration" and "timezone" replace the value without touching the wall clock.
        """
        if unit == "duration":
            return Instant(self.timestamp, self.timezone, value)
        if unit == "timezone":
            return Instant(self.timestamp, value, self.duration)
        if unit == "year":
            return self._derive(lambda w: w + relativedelta(year=value))
        if unit == "month":
            if not 1 <= value <= 12:
                raise InvalidDateError(f"Invalid month: {value!r}")
            return self._derive(lambda w: w + relativedelta(month=value))
        if unit == "millisecond":
            if not 0 <= value <= 999:
                raise InvalidDateError(f"Invalid millisecond: {value!r}")
            return self._derive(lambda w: w.replace(microsecond=value * 1000))
        if unit in ("day", "hour", "minute", "second"):
            return self._derive(lambda w: w.replace(**{unit: value}))
        raise ValueError(f"Unknown field: {unit!r}")

    def granularity(self, unit: str, week_start: str = "MO") -> "Instant":
        """First millisecond of the unit containing this instant."""
        _check_unit(unit)
        if unit == "millisecond":
            return self
        if unit == "week":
            offset = ordered_weekdays(week_start).index(self.weekday)
            return self.granularity("day").subtract(offset, "day")
        return self._derive(lambda w: w.replace(**_START_OF[unit]))

    def end_granularity(self, unit: str, week_start: str = "MO") -> "Instant":
        """Last millisecond of the unit containing this instant."""
        _check_unit(unit)
        if unit == "millisecond":
            return self
        if unit == "week":
            return self.granularity("week", week_start).add(6, "day").end_granularity("day")
        if unit == "month":
            return self._derive(
                lambda w: w.replace(
                    day=month_length(w.month, w.year), hour=23, minute=59, second=59, microsecond=999000
                )
            )
        return self._derive(lambda w: w.replace(**_END_OF[unit]))

    def to_timezone(self, label: Optional[str]) -> "Instant":
        """Same moment, expressed in another zone."""
        if label == self.timezone:
            return self
        source = self.to_datetime()
        target = _tzinfo(label)
        # astimezone() treats a naive datetime as system local time
        moved = source.astimezone(target) if target is not None else source.astimezone()
        wall = moved.replace(tzinfo=None)
        return Instant((wall - _EPOCH) // _ONE_MS, label, self.duration)

    # ---- comparison ----

    def _check_comparable(self, other: "Instant") -> None:
        if not isinstance(other, Instant):
            raise TypeError(f"Cannot compare Instant with {type(other).__name__}")
        if other.timezone != self.timezone:
            raise TimezoneMismatchError(
                f"Cannot compare instants in different timezones: {self.timezone!r} and {other.timezone!r}"
            )

    def is_before(self, other: "Instant") -> bool:
        self._check_comparable(other)
        return self.timestamp < other.timestamp

    def is_after(self, other: "Instant") -> bool:
        self._check_comparable(other)
        return self.timestamp > other.timestamp

    def is_before_or_equal(self, other: "Instant") -> bool:
        self._check_comparable(other)
        return self.timestamp <= other.timestamp

    def is_after_or_equal(self, other: "Instant") -> bool:
        self._check_comparable(other)
        return self.timestamp >= other.timestamp

    def is_equal(self, other: "Instant") -> bool:
        self._check_comparable(other)
        return self.timestamp == other.timestamp

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Instant):
            return NotImplemented
        self._check_comparable(other)
        return self.timestamp == other.timestamp and self.duration == other.duration

    def __hash__(self) -> int:
        return hash((self.timestamp, self.timezone, self.duration))

    def __lt__(self, other: "Instant") -> bool:
        self._check_comparable(other)
        return (self.timestamp, self.duration) < (other.timestamp, other.duration)

    def __le__(self, other: "Instant") -> bool:
        self._check_comparable(other)
        return (self.timestamp, self.duration) <= (other.timestamp, other.duration)

    def __gt__(self, other: "Instant") -> bool:
        self._check_comparable(other)
        return (self.timestamp, self.duration) > (other.timestamp, other.duration)

    def __ge__(self, other: "Instant") -> bool:
        self._check_comparable(other)
        return (self.timestamp, self.duration) >= (other.timestamp, other.duration)

def compare(a: Instant, b: Instant) -> int:
    """Stream ordering: timestamp first, duration only when both instants carry one."""
    if a.is_before(b):
        return -1
    if a.is_after(b):
        return 1
    if a.duration and b.duration and a.duration != b.duration:
        return -1 if a.duration < b.duration else 1
    return 0
