# dates.py
"""
Dates: an explicit set of instants as an occurrence source

Public API:
  - Dates(dates=(), timezone=<first date's timezone>, duration=None, data=None)
      .dates
      .add(date) / .remove(date) / .filter(fn) / .set(prop, value) -> Dates
      + everything from OccurrenceGenerator
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional

from .exceptions import ArgumentError
from .generator import DateInput, GeneratorKind, OccurrenceGenerator, OccurrenceRun, RunArgs, precedes
from .instant import Instant

_FIRST_DATE_TIMEZONE = object()

class Dates(OccurrenceGenerator):
    kind = GeneratorKind.DATES
    is_infinite = False

    def __init__(
        self,
        dates: Iterable[DateInput] = (),
        timezone: Any = _FIRST_DATE_TIMEZONE,
        duration: Optional[int] = None,
        data: Any = None,
    ) -> None:
        instants = [d if isinstance(d, Instant) else Instant.from_datetime(d) for d in dates]
        if timezone is _FIRST_DATE_TIMEZONE:
            timezone = instants[0].timezone if instants else None
        self.timezone = timezone
        self.duration = duration
        self.data = data
        # duration only fills in dates that have none of their own
        self.dates = tuple(
            (d if d.duration or not duration else d.set("duration", duration)).to_timezone(timezone)
            for d in instants
        )
        self.has_duration = all(d.duration for d in self.dates)

    def __repr__(self) -> str:
        return f"Dates({len(self.dates)} dates, timezone={self.timezone!r})"

    def __len__(self) -> int:
        return len(self.dates)

    def _copy(self, dates: Iterable[Instant], **changes: Any) -> "Dates":
        kwargs = dict(timezone=self.timezone, duration=self.duration, data=self.data)
        kwargs.update(changes)
        return Dates(dates, **kwargs)

    def add(self, date: DateInput) -> "Dates":
        return self._copy(self.dates + (self.normalize_date(date),))

    def remove(self, date: DateInput) -> "Dates":
        """Drop every date equal to the given one (timestamp match)."""
        date = self.normalize_date(date)
        return self._copy(d for d in self.dates if not d.is_equal(date))

    def filter(self, fn: Callable[[Instant], bool]) -> "Dates":
        return self._copy(d for d in self.dates if fn(d))

    def set(self, prop: str, value: Any) -> "Dates":
        if prop == "timezone":
            if value == self.timezone:
                return self
            return self._copy(self.dates, timezone=value)
        if prop == "dates":
            return self._copy(value)
        if prop == "duration":
            return self._copy((d.set("duration", 0) for d in self.dates), duration=value)
        if prop == "data":
            return self._copy(self.dates, data=value)
        raise ArgumentError(f"Unknown dates property: {prop!r}")

    def set_timezone(self, timezone: Optional[str]) -> "Dates":
        return self.set("timezone", timezone)

    def _run(self, args: RunArgs) -> OccurrenceRun:
        dates: List[Instant] = sorted(self.dates, key=lambda d: (d.timestamp, d.duration))
        if args.start is not None:
            dates = [d for d in dates if d.is_after_or_equal(args.start)]
        if args.end is not None:
            dates = [d for d in dates if d.is_before_or_equal(args.end)]
        if args.reverse:
            dates.reverse()

        index = emitted = 0
        while index < len(dates):
            if args.take is not None and emitted >= args.take:
                return
            emitted += 1
            hint = yield dates[index]
            index += 1
            if hint is not None:
                while index < len(dates) and precedes(dates[index], hint, args.reverse):
                    index += 1
