# generator.py
"""
Occurrence generator contract

Every source (Rule, Dates, operators) implements ``_run(args)`` as a Python
generator: it yields Instants in traversal order and accepts, through
``send()``, an optional skip-ahead hint. A hint asks the source to drop
whatever is ordered before it (after it, in reverse). Sources may ignore the
hint but must never emit out of order.

Public API:
  - RunArgs(start=None, end=None, take=None, reverse=False)
  - GeneratorKind
  - OccurrenceGenerator
      .occurrences(start=None, end=None, take=None, reverse=False) -> OccurrenceIterator
      .collections(granularity="INSTANTANEOUSLY", week_start=None, increment_linearly=False, ...)
      .first_date / .last_date
      .occurs_on(date) / .occurs_on(weekday=, after=, before=, exclude_ends=)
      .occurs_between(start, end) / .occurs_after(date) / .occurs_before(date)
      .pipe(*operators) -> OccurrenceStream
  - OccurrenceIterator (pull iterator + skip_to advise call)
  - Cursor (generator node used by operators)
  - Collection, CollectionIterator
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Generator, Iterator, List, Optional, Tuple, Union

from dateutil.rrule import weekday as rrule_weekday

from .exceptions import ArgumentError
from .instant import WEEKDAYS, Instant
from .options import FREQUENCIES, FREQUENCY_UNIT

DateInput = Union[Instant, datetime]

# yields Instants, receives skip-ahead hints
OccurrenceRun = Generator[Instant, Optional[Instant], None]

COLLECTION_GRANULARITIES = ("INSTANTANEOUSLY",) + FREQUENCIES

# weekday alignment of the Gregorian calendar repeats every 400 years
WEEKDAY_CYCLE_YEARS = 400

class GeneratorKind(enum.Enum):
    RULE = "rule"
    DATES = "dates"
    OPERATOR = "operator"

@dataclass(frozen=True)
class RunArgs:
    start: Optional[Instant] = None
    end: Optional[Instant] = None
    take: Optional[int] = None
    reverse: bool = False

def precedes(a: Instant, b: Instant, reverse: bool) -> bool:
    """True when a comes strictly before b in traversal order (timestamps only)."""
    return a.is_after(b) if reverse else a.is_before(b)

def _weekday(value: Any) -> str:
    if isinstance(value, rrule_weekday):
        return WEEKDAYS[value.weekday]
    code = value.upper() if isinstance(value, str) else None
    if code not in WEEKDAYS:
        raise ArgumentError(f"Invalid weekday: {value!r} (expected one of {', '.join(WEEKDAYS)})")
    return code

class OccurrenceGenerator:
    kind: GeneratorKind
    timezone: Optional[str] = None
    is_infinite: bool = False
    has_duration: bool = False

    def _run(self, args: RunArgs) -> OccurrenceRun:
        raise NotImplementedError

    def set_timezone(self, timezone: Optional[str]) -> "OccurrenceGenerator":
        raise NotImplementedError

    def normalize_date(self, value: DateInput) -> Instant:
        if isinstance(value, Instant):
            return value.to_timezone(self.timezone)
        if isinstance(value, datetime):
            return Instant.from_datetime(value).to_timezone(self.timezone)
        raise ArgumentError(f"Expected an Instant or a datetime, got {value!r}")

    def _run_args(
        self,
        start: Optional[DateInput],
        end: Optional[DateInput],
        take: Optional[int],
        reverse: bool,
    ) -> RunArgs:
        if take is not None and (isinstance(take, bool) or not isinstance(take, int) or take < 0):
            raise ArgumentError(f'"take" must be a non-negative integer, got {take!r}')
        if reverse and end is None and self.is_infinite:
            raise ArgumentError('When iterating an infinite source in reverse, "end" must be provided')
        return RunArgs(
            start=None if start is None else self.normalize_date(start),
            end=None if end is None else self.normalize_date(end),
            take=take,
            reverse=reverse,
        )

    def occurrences(
        self,
        start: Optional[DateInput] = None,
        end: Optional[DateInput] = None,
        take: Optional[int] = None,
        reverse: bool = False,
    ) -> "OccurrenceIterator":
        return OccurrenceIterator(self, self._run_args(start, end, take, reverse))

    def collections(
        self,
        granularity: str = "INSTANTANEOUSLY",
        week_start: Optional[str] = None,
        increment_linearly: bool = False,
        start: Optional[DateInput] = None,
        end: Optional[DateInput] = None,
        take: Optional[int] = None,
    ) -> "CollectionIterator":
        args = self._run_args(start, end, take, False)
        return CollectionIterator(self, granularity, week_start, increment_linearly, args)

    @property
    def first_date(self) -> Optional[Instant]:
        return next(self.occurrences(take=1), None)

    @property
    def last_date(self) -> Optional[Instant]:
        if self.is_infinite:
            return None
        return next(self.occurrences(reverse=True, take=1), None)

    def occurs_on(
        self,
        date: Optional[DateInput] = None,
        *,
        weekday: Any = None,
        after: Optional[DateInput] = None,
        before: Optional[DateInput] = None,
        exclude_ends: bool = False,
    ) -> bool:
        """Does an occurrence equal ``date``, or fall on ``weekday``?

        The weekday form may be limited with ``after`` / ``before`` (inclusive;
        with ``exclude_ends`` the day of each bound is left out). Without
        ``before``, an infinite source is searched for one weekday cycle of the
        calendar past its first occurrence.
        """
        if (date is None) == (weekday is None):
            raise ArgumentError('occurs_on() takes exactly one of "date" or "weekday"')
        if date is not None:
            date = self.normalize_date(date)
            return any(d.is_equal(date) for d in self.occurrences(start=date, end=date))

        code = _weekday(weekday)
        after = None if after is None else self.normalize_date(after)
        before = None if before is None else self.normalize_date(before)
        if exclude_ends:
            after = None if after is None else after.add(1, "day")
            before = None if before is None else before.subtract(1, "day")
        if after is not None and before is not None and after.is_after(before):
            return False
        if before is None and self.is_infinite:
            first = next(self.occurrences(start=after, take=1), None)
            if first is None:
                return False
            before = first.add(WEEKDAY_CYCLE_YEARS, "year")
        return any(d.weekday == code for d in self.occurrences(start=after, end=before))

    def occurs_between(self, start: DateInput, end: DateInput, exclude_ends: bool = False) -> bool:
        start, end = self.normalize_date(start), self.normalize_date(end)
        for date in self.occurrences(start=start, end=end):
            if exclude_ends and (date.is_equal(start) or date.is_equal(end)):
                continue
            return True
        return False

    def occurs_after(self, date: DateInput, exclude_start: bool = False) -> bool:
        date = self.normalize_date(date)
        for found in self.occurrences(start=date):
            if exclude_start and found.is_equal(date):
                continue
            return True
        return False

    def occurs_before(self, date: DateInput, exclude_start: bool = False) -> bool:
        date = self.normalize_date(date)
        for found in self.occurrences(end=date, reverse=True):
            if exclude_start and found.is_equal(date):
                continue
            return True
        return False

    def pipe(self, *operators):
        """Start an OccurrenceStream whose first stage is a union with this source."""
        from .operators import OccurrenceStream, add

        return OccurrenceStream([add(self), *operators], timezone=self.timezone)

class OccurrenceIterator:
    """One traversal: pull with next(), advise with skip_to()."""

    def __init__(self, source: OccurrenceGenerator, args: RunArgs) -> None:
        self.source = source
        self.args = args
        self._run: Optional[OccurrenceRun] = None
        self._hint: Optional[Instant] = None

    def __iter__(self) -> "OccurrenceIterator":
        return self

    def __next__(self) -> Instant:
        if self._run is None:
            if self._hint is not None:
                self.args = self._narrowed(self._hint)
                self._hint = None
            self._run = self.source._run(self.args)
            return next(self._run)
        hint, self._hint = self._hint, None
        return self._run.send(hint)

    def _narrowed(self, hint: Instant) -> RunArgs:
        # a hint given before the first pull is just a tighter bound
        if self.args.reverse:
            if self.args.end is None or hint.is_before(self.args.end):
                return replace(self.args, end=hint)
        elif self.args.start is None or hint.is_after(self.args.start):
            return replace(self.args, start=hint)
        return self.args

    def skip_to(self, date: DateInput) -> None:
        self._hint = self.source.normalize_date(date)

    def to_list(self) -> List[Instant]:
        return list(self)

class Cursor:
    """Generator node: one upstream traversal plus the value it has pending."""

    def __init__(self, source: OccurrenceGenerator, args: RunArgs) -> None:
        self.reverse = args.reverse
        self.value: Optional[Instant] = None
        self._run = source._run(args)
        try:
            self.value = next(self._run)
        except StopIteration:
            self.value = None

    @property
    def done(self) -> bool:
        return self.value is None

    def _send(self, hint: Optional[Instant]) -> None:
        try:
            self.value = self._run.send(hint)
        except StopIteration:
            self.value = None

    def pick(self, skip_to: Optional[Instant] = None) -> None:
        """Drop the pending value and pull the next one."""
        if self.done:
            return
        self._send(skip_to)
        if skip_to is not None:
            self.skip_to(skip_to)

    def skip_to(self, date: Instant) -> None:
        """Drop pending values ordered before date."""
        while not self.done and precedes(self.value, date, self.reverse):
            self._send(date)

@dataclass(frozen=True)
class Collection:
    dates: Tuple[Instant, ...]
    granularity: str
    period_start: Instant
    period_end: Instant

class CollectionIterator:
    """Groups a source's occurrences into calendar periods.

    "INSTANTANEOUSLY" puts every occurrence in its own collection. Other
    granularities collect every occurrence of one year, month, week, ...;
    with increment_linearly=True empty periods in between are yielded too.
    """

    def __init__(
        self,
        source: OccurrenceGenerator,
        granularity: str,
        week_start: Optional[str],
        increment_linearly: bool,
        args: RunArgs,
    ) -> None:
        if granularity not in COLLECTION_GRANULARITIES:
            raise ArgumentError(f"Unknown collection granularity: {granularity!r}")
        if increment_linearly and granularity == "INSTANTANEOUSLY":
            raise ArgumentError('"increment_linearly" needs a granularity other than "INSTANTANEOUSLY"')
        self.source = source
        self.granularity = granularity
        self.week_start = week_start or "MO"
        self.increment_linearly = increment_linearly
        self.args = args

    def _period(self, date: Instant) -> Tuple[Instant, Instant]:
        unit = FREQUENCY_UNIT[self.granularity]
        first = date.set("duration", 0).granularity(unit, self.week_start)
        return first, first.end_granularity(unit, self.week_start)

    def __iter__(self) -> Iterator[Collection]:
        occurrences = self.source.occurrences(start=self.args.start, end=self.args.end)
        take = self.args.take
        emitted = 0

        if self.granularity == "INSTANTANEOUSLY":
            for date in occurrences:
                if take is not None and emitted >= take:
                    return
                emitted += 1
                yield Collection((date,), self.granularity, date, date)
            return

        unit = FREQUENCY_UNIT[self.granularity]
        period: Optional[Tuple[Instant, Instant]] = None
        dates: List[Instant] = []
        for date in occurrences:
            if period is None:
                seed = self.args.start if self.increment_linearly and self.args.start else date
                period = self._period(seed)
            while date.is_after(period[1]):
                if dates or self.increment_linearly:
                    if take is not None and emitted >= take:
                        return
                    emitted += 1
                    yield Collection(tuple(dates), self.granularity, *period)
                dates = []
                if self.increment_linearly:
                    period = self._period(period[0].add(1, unit))
                else:
                    period = self._period(date)
            dates.append(date)

        if period is not None and dates and (take is None or emitted < take):
            yield Collection(tuple(dates), self.granularity, *period)

    def to_list(self) -> List[Collection]:
        return list(self)
