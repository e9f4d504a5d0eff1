# options.py
"""
Rule options -> validated, defaulted NormalizedRuleOptions

Public API:
  - FREQUENCIES, FREQUENCY_UNIT
  - RuleOptions(start=..., frequency=..., ...)      raw values, kept as given
  - RuleOptions.from_mapping(mapping) -> RuleOptions
  - coerce_rule_options(options) -> RuleOptions
  - normalize_rule_options(options, config=DEFAULT_CONFIG) -> NormalizedRuleOptions

Notes:
- Every error is an InvalidRuleError raised here, before any traversal starts.
- Implicit constraints (start's day, hour, minute, ...) are filled in so the
  pipeline only ever evaluates explicit lists.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from dateutil.rrule import weekday as rrule_weekday

from .config import DEFAULT_CONFIG, EngineConfig
from .exceptions import InvalidRuleError
from .instant import Instant, WEEKDAYS

FREQUENCIES = ("YEARLY", "MONTHLY", "WEEKLY", "DAILY", "HOURLY", "MINUTELY", "SECONDLY")

FREQUENCY_UNIT = {
    "YEARLY": "year",
    "MONTHLY": "month",
    "WEEKLY": "week",
    "DAILY": "day",
    "HOURLY": "hour",
    "MINUTELY": "minute",
    "SECONDLY": "second",
}

# "MO" or ("MO", 3) for the third Monday
DayOfWeek = Union[str, Tuple[str, int]]

_UNSUPPORTED = {
    "by_week_of_year": "week-of-year numbering",
    "by_week_of_month": "week-of-month numbering",
    "by_day_of_year": "year-day indexing",
    "by_set_position": "set positions",
}

@dataclass(frozen=True)
class RuleOptions:
    start: Union[Instant, datetime, None] = None
    frequency: Optional[str] = None
    interval: Optional[int] = None
    end: Union[Instant, datetime, None] = None
    count: Optional[int] = None
    week_start: Optional[str] = None
    duration: Optional[int] = None          # ms applied to every occurrence
    by_month_of_year: Optional[Sequence[int]] = None
    by_day_of_month: Optional[Sequence[int]] = None
    by_day_of_week: Optional[Sequence[Any]] = None
    by_hour_of_day: Optional[Sequence[int]] = None
    by_minute_of_hour: Optional[Sequence[int]] = None
    by_second_of_minute: Optional[Sequence[int]] = None
    by_millisecond_of_second: Optional[Sequence[int]] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "RuleOptions":
        known = {f.name for f in fields(cls)}
        for key in mapping:
            if key in _UNSUPPORTED:
                raise InvalidRuleError(f'"{key}" is not supported ({_UNSUPPORTED[key]})')
            if key not in known:
                raise InvalidRuleError(f"Unknown rule option: {key!r}")
        return cls(**mapping)

    def to_dict(self) -> Dict[str, Any]:
        """Raw option values that were actually provided."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

@dataclass(frozen=True)
class NormalizedRuleOptions:
    start: Instant
    frequency: str
    interval: int = 1
    end: Optional[Instant] = None
    count: Optional[int] = None
    week_start: str = "MO"
    duration: int = 0
    # empty tuple = no constraint on that field
    by_month_of_year: Tuple[int, ...] = ()
    by_day_of_month: Tuple[int, ...] = ()
    by_day_of_week: Tuple[DayOfWeek, ...] = ()
    by_hour_of_day: Tuple[int, ...] = ()
    by_minute_of_hour: Tuple[int, ...] = ()
    by_second_of_minute: Tuple[int, ...] = ()
    by_millisecond_of_second: Tuple[int, ...] = ()

def coerce_rule_options(options: Union[RuleOptions, Mapping[str, Any]]) -> RuleOptions:
    if isinstance(options, RuleOptions):
        return options
    if isinstance(options, Mapping):
        return RuleOptions.from_mapping(options)
    raise InvalidRuleError(f"Rule options must be a mapping or RuleOptions, got {type(options).__name__}")

def _instant(name: str, value: Any) -> Instant:
    if isinstance(value, Instant):
        return value
    if isinstance(value, datetime):
        return Instant.from_datetime(value)
    raise InvalidRuleError(f'"{name}" must be an Instant or a datetime, got {value!r}')

def _positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidRuleError(f'"{name}" must be a positive integer, got {value!r}')
    return value

def _int_list(name: str, values: Any, low: int, high: int, allow_zero: bool = True) -> Tuple[int, ...]:
    if values is None:
        return ()
    if isinstance(values, int) and not isinstance(values, bool):
        values = [values]
    values = list(values)
    if not values:
        raise InvalidRuleError(f'"{name}" expects a non-empty list')
    for v in values:
        if isinstance(v, bool) or not isinstance(v, int) or not low <= v <= high or (not allow_zero and v == 0):
            what = "non-zero integers" if not allow_zero else "integers"
            raise InvalidRuleError(f'"{name}" values must be {what} between {low} and {high}, got {v!r}')
    return tuple(sorted(set(values)))

def _weekday_code(value: Any) -> str:
    code = value.upper() if isinstance(value, str) else None
    if code not in WEEKDAYS:
        raise InvalidRuleError(f"Invalid weekday: {value!r} (expected one of {', '.join(WEEKDAYS)})")
    return code

def _day_of_week(entry: Any) -> DayOfWeek:
    if isinstance(entry, rrule_weekday):
        code = WEEKDAYS[entry.weekday]
        return code if entry.n is None else (code, entry.n)
    if isinstance(entry, str):
        return _weekday_code(entry)
    if isinstance(entry, (tuple, list)) and len(entry) == 2:
        code, n = entry
        if isinstance(n, bool) or not isinstance(n, int):
            raise InvalidRuleError(f'"by_day_of_week" ordinal must be an integer, got {n!r}')
        return (_weekday_code(code), n)
    raise InvalidRuleError(f'Invalid "by_day_of_week" entry: {entry!r}')

def _days_of_week(values: Any, frequency: str, month_scoped: bool) -> Tuple[DayOfWeek, ...]:
    if values is None:
        return ()
    if isinstance(values, (str, rrule_weekday)):
        values = [values]
    entries = [_day_of_week(v) for v in values]
    if not entries:
        raise InvalidRuleError('"by_day_of_week" expects a non-empty list')

    limit = 5 if month_scoped else 53
    out = []
    for entry in entries:
        if isinstance(entry, tuple):
            if frequency not in ("MONTHLY", "YEARLY"):
                raise InvalidRuleError(
                    '"by_day_of_week" can only include an ordinal when "frequency" is "MONTHLY" or "YEARLY"'
                )
            if entry[1] == 0 or abs(entry[1]) > limit:
                raise InvalidRuleError(
                    f'"by_day_of_week" ordinal must be non-zero and between -{limit} and {limit}, got {entry[1]}'
                )
        if entry not in out:
            out.append(entry)
    return tuple(out)

def _coarser(frequency: str, than: str) -> bool:
    return FREQUENCIES.index(frequency) < FREQUENCIES.index(than)

def normalize_rule_options(
    options: Union[RuleOptions, Mapping[str, Any]],
    config: EngineConfig = DEFAULT_CONFIG,
) -> NormalizedRuleOptions:
    raw = coerce_rule_options(options)

    if raw.start is None:
        raise InvalidRuleError('"start" is required')
    start = _instant("start", raw.start)

    frequency = raw.frequency.upper() if isinstance(raw.frequency, str) else raw.frequency
    if frequency not in FREQUENCIES:
        raise InvalidRuleError(f'"frequency" must be one of {", ".join(FREQUENCIES)}, got {raw.frequency!r}')

    interval = 1 if raw.interval is None else _positive_int("interval", raw.interval)

    if raw.end is not None and raw.count is not None:
        raise InvalidRuleError('"end" and "count" cannot both be present')
    end = None
    if raw.end is not None:
        end = _instant("end", raw.end)
        if end.timezone != start.timezone:
            raise InvalidRuleError(
                f'"end" timezone {end.timezone!r} does not match "start" timezone {start.timezone!r}'
            )
    count = None if raw.count is None else _positive_int("count", raw.count)

    duration = start.duration if raw.duration is None else raw.duration
    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
        raise InvalidRuleError(f'"duration" must be a non-negative integer, got {raw.duration!r}')
    start = start.set("duration", duration)
    if end is not None:
        end = end.set("duration", 0)

    week_start = _weekday_code(raw.week_start or config.default_week_start)

    months = _int_list("by_month_of_year", raw.by_month_of_year, 1, 12)

    if raw.by_day_of_month is not None and frequency == "WEEKLY":
        raise InvalidRuleError('when "frequency" is "WEEKLY", "by_day_of_month" cannot be present')
    days_of_month = _int_list("by_day_of_month", raw.by_day_of_month, -31, 31, allow_zero=False)

    month_scoped = frequency == "MONTHLY" or (frequency == "YEARLY" and bool(months))
    days_of_week = _days_of_week(raw.by_day_of_week, frequency, month_scoped)

    hours = _int_list("by_hour_of_day", raw.by_hour_of_day, 0, 23)
    minutes = _int_list("by_minute_of_hour", raw.by_minute_of_hour, 0, 59)
    seconds = _int_list("by_second_of_minute", raw.by_second_of_minute, 0, 59)
    milliseconds = _int_list("by_millisecond_of_second", raw.by_millisecond_of_second, 0, 999)

    # ---- implicit constraints taken from start ----
    if frequency == "YEARLY" and not (months or days_of_month or days_of_week):
        months = (start.month,)
    if frequency in ("YEARLY", "MONTHLY") and not (days_of_month or days_of_week):
        days_of_month = (start.day,)
    if frequency == "WEEKLY" and not days_of_week:
        days_of_week = (start.weekday,)
    if not hours and _coarser(frequency, "HOURLY"):
        hours = (start.hour,)
    if not minutes and _coarser(frequency, "MINUTELY"):
        minutes = (start.minute,)
    if not seconds and _coarser(frequency, "SECONDLY"):
        seconds = (start.second,)
    if not milliseconds:
        milliseconds = (start.millisecond,)

    return NormalizedRuleOptions(
        start=start,
        frequency=frequency,
        interval=interval,
        end=end,
        count=count,
        week_start=week_start,
        duration=duration,
        by_month_of_year=months,
        by_day_of_month=days_of_month,
        by_day_of_week=days_of_week,
        by_hour_of_day=hours,
        by_minute_of_hour=minutes,
        by_second_of_minute=seconds,
        by_millisecond_of_second=milliseconds,
    )
