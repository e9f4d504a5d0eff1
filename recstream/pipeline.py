# pipeline.py
"""
Constraint pipeline: candidate Instant -> nearest Instant satisfying every by-unit constraint

Depends on:
  - options.py (NormalizedRuleOptions)

Public API:
  - VALID, Repair(date), Reject(unit)          stage results
  - build_stages(options, reverse=False) -> List[Stage]
  - Pipeline(options, reverse=False, bound=None, max_iterations=50).first_valid(candidate)

Notes:
- Stages run coarse -> fine: frequency/interval, month, day-of-month, day-of-week,
  hour, minute, second, millisecond. Each one only reads the field it owns.
- A repair is computed analytically (never by stepping one unit at a time). After a
  repair or a reject the loop restarts at the first stage.
- Reverse mode mirrors every rule: repairs go to the latest instant <= candidate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from .exceptions import PipelineError
from .instant import FIXED_UNIT_MS, WEEKDAYS, Instant, month_length
from .options import FREQUENCY_UNIT, NormalizedRuleOptions

_LOGGER = logging.getLogger(__name__)

@dataclass(frozen=True)
class Valid:
    pass

@dataclass(frozen=True)
class Repair:
    date: Instant   # next candidate worth trying

@dataclass(frozen=True)
class Reject:
    unit: str       # nothing left in the current unit, move to the next one

VALID = Valid()

StageResult = Union[Valid, Repair, Reject]

class Stage:
    def __init__(self, options: NormalizedRuleOptions, reverse: bool = False) -> None:
        self.options = options
        self.reverse = reverse

    def evaluate(self, date: Instant) -> StageResult:
        return self._backward(date) if self.reverse else self._forward(date)

    def _forward(self, date: Instant) -> StageResult:
        raise NotImplementedError

    def _backward(self, date: Instant) -> StageResult:
        raise NotImplementedError

# ---- frequency / interval ----

class FrequencyStage(Stage):
    """Keeps candidates inside the active interval windows, counted from the start."""

    def __init__(self, options: NormalizedRuleOptions, reverse: bool = False) -> None:
        super().__init__(options, reverse)
        self.unit = FREQUENCY_UNIT[options.frequency]
        self.anchor = options.start.granularity(self.unit, options.week_start)

    def _index(self, date: Instant) -> int:
        if self.unit == "year":
            return date.year - self.anchor.year
        if self.unit == "month":
            return (date.year - self.anchor.year) * 12 + date.month - self.anchor.month
        window = date.granularity(self.unit, self.options.week_start)
        return (window.timestamp - self.anchor.timestamp) // FIXED_UNIT_MS[self.unit]

    def _forward(self, date: Instant) -> StageResult:
        index = self._index(date)
        missed = index % self.options.interval
        if not missed:
            return VALID
        return Repair(self.anchor.add(index + self.options.interval - missed, self.unit))

    def _backward(self, date: Instant) -> StageResult:
        index = self._index(date)
        missed = index % self.options.interval
        if not missed:
            return VALID
        window = self.anchor.add(index - missed, self.unit)
        return Repair(window.end_granularity(self.unit, self.options.week_start))

# ---- calendar days ----

class MonthOfYearStage(Stage):
    def _forward(self, date: Instant) -> StageResult:
        months = self.options.by_month_of_year
        for month in months:
            if month < date.month:
                continue
            if month == date.month:
                return VALID
            return Repair(date.granularity("year").set("month", month))
        return Repair(date.granularity("year").add(1, "year").set("month", months[0]))

    def _backward(self, date: Instant) -> StageResult:
        months = self.options.by_month_of_year
        for month in reversed(months):
            if month > date.month:
                continue
            if month == date.month:
                return VALID
            return Repair(date.granularity("year").set("month", month).end_granularity("month"))
        previous_year = date.granularity("year").subtract(1, "year")
        return Repair(previous_year.set("month", months[-1]).end_granularity("month"))

class DayOfMonthStage(Stage):
    """Negative days count from the end of the month (-1 = last day)."""

    def _days(self, date: Instant) -> List[int]:
        length = month_length(date.month, date.year)
        days = set()
        for day in self.options.by_day_of_month:
            resolved = day if day > 0 else length + day + 1
            if 1 <= resolved <= length:
                days.add(resolved)
        return sorted(days)

    def _forward(self, date: Instant) -> StageResult:
        for day in self._days(date):
            if day < date.day:
                continue
            if day == date.day:
                return VALID
            return Repair(date.granularity("month").set("day", day))
        return Reject("month")

    def _backward(self, date: Instant) -> StageResult:
        for day in reversed(self._days(date)):
            if day > date.day:
                continue
            if day == date.day:
                return VALID
            return Repair(date.set("day", day).end_granularity("day"))
        return Reject("month")

class DayOfWeekStage(Stage):
    """Weekday constraint.

    Ordinals ("3rd Monday") count within the month for MONTHLY rules and YEARLY
    rules that also constrain the month, and within the year for other YEARLY
    rules. Other frequencies only accept plain weekdays, matched without a window.
    """

    def __init__(self, options: NormalizedRuleOptions, reverse: bool = False) -> None:
        super().__init__(options, reverse)
        self.window: Optional[str] = None
        if options.frequency == "YEARLY" and not options.by_month_of_year:
            self.window = "year"
        elif options.frequency in ("YEARLY", "MONTHLY"):
            self.window = "month"

    def _nth(self, day: Instant, code: str, n: int) -> Optional[Instant]:
        first = day.granularity(self.window)
        last = day.end_granularity(self.window).granularity("day")
        target = WEEKDAYS.index(code)
        if n > 0:
            found = first.add((target - WEEKDAYS.index(first.weekday)) % 7 + (n - 1) * 7, "day")
        else:
            found = last.subtract((WEEKDAYS.index(last.weekday) - target) % 7 + (-n - 1) * 7, "day")
        if found.is_before(first) or found.is_after(last):
            return None
        return found

    def _forward(self, date: Instant) -> StageResult:
        today = date.granularity("day")
        best = None
        for entry in self.options.by_day_of_week:
            if isinstance(entry, tuple):
                found = self._nth(today, *entry)
                if found is None or found.is_before(today):
                    continue
            else:
                found = today.add((WEEKDAYS.index(entry) - WEEKDAYS.index(today.weekday)) % 7, "day")
                if self.window and found.is_after(today.end_granularity(self.window)):
                    continue
            if best is None or found.is_before(best):
                best = found

        if best is None:
            return Reject(self.window)
        if best.is_equal(today):
            return VALID
        return Repair(best)

    def _backward(self, date: Instant) -> StageResult:
        today = date.granularity("day")
        best = None
        for entry in self.options.by_day_of_week:
            if isinstance(entry, tuple):
                found = self._nth(today, *entry)
                if found is None or found.is_after(today):
                    continue
            else:
                found = today.subtract((WEEKDAYS.index(today.weekday) - WEEKDAYS.index(entry)) % 7, "day")
                if self.window and found.is_before(today.granularity(self.window)):
                    continue
            if best is None or found.is_after(best):
                best = found

        if best is None:
            return Reject(self.window)
        if best.is_equal(today):
            return VALID
        return Repair(best.end_granularity("day"))

# ---- time of day ----

class _TimeStage(Stage):
    unit = ""      # Instant field checked by the stage
    parent = ""    # unit to roll over into when no value is left
    option = ""

    def _forward(self, date: Instant) -> StageResult:
        values: Tuple[int, ...] = getattr(self.options, self.option)
        current = getattr(date, self.unit)
        for value in values:
            if value < current:
                continue
            if value == current:
                return VALID
            return Repair(date.set(self.unit, value).granularity(self.unit))
        following = date.granularity(self.parent).add(1, self.parent)
        return Repair(following.set(self.unit, values[0]))

    def _backward(self, date: Instant) -> StageResult:
        values: Tuple[int, ...] = getattr(self.options, self.option)
        current = getattr(date, self.unit)
        for value in reversed(values):
            if value > current:
                continue
            if value == current:
                return VALID
            return Repair(date.set(self.unit, value).end_granularity(self.unit))
        preceding = date.granularity(self.parent).subtract(1, "millisecond")
        return Repair(preceding.set(self.unit, values[-1]).end_granularity(self.unit))

class HourStage(_TimeStage):
    unit, parent, option = "hour", "day", "by_hour_of_day"

class MinuteStage(_TimeStage):
    unit, parent, option = "minute", "hour", "by_minute_of_hour"

class SecondStage(_TimeStage):
    unit, parent, option = "second", "minute", "by_second_of_minute"

class MillisecondStage(_TimeStage):
    unit, parent, option = "millisecond", "second", "by_millisecond_of_second"

def build_stages(options: NormalizedRuleOptions, reverse: bool = False) -> List[Stage]:
    stages: List[Stage] = [FrequencyStage(options, reverse)]
    if options.by_month_of_year:
        stages.append(MonthOfYearStage(options, reverse))
    if options.by_day_of_month:
        stages.append(DayOfMonthStage(options, reverse))
    if options.by_day_of_week:
        stages.append(DayOfWeekStage(options, reverse))
    for stage_cls in (HourStage, MinuteStage, SecondStage, MillisecondStage):
        if getattr(options, stage_cls.option):
            stages.append(stage_cls(options, reverse))
    return stages

class Pipeline:
    def __init__(
        self,
        options: NormalizedRuleOptions,
        reverse: bool = False,
        bound: Optional[Instant] = None,
        max_iterations: int = 50,
    ) -> None:
        self.options = options
        self.reverse = reverse
        self.bound = bound    # last acceptable instant (first acceptable one in reverse)
        self.max_iterations = max_iterations
        self.stages = build_stages(options, reverse)

    def _past_bound(self, date: Instant) -> bool:
        if self.bound is None:
            return False
        return date.is_before(self.bound) if self.reverse else date.is_after(self.bound)

    def _evaluate(self, date: Instant) -> StageResult:
        for stage in self.stages:
            result = stage.evaluate(date)
            if not isinstance(result, Valid):
                return result
        return VALID

    def _ascend(self, date: Instant, unit: str) -> Instant:
        if self.reverse:
            return date.granularity(unit).subtract(1, "millisecond")
        return date.granularity(unit).add(1, unit)

    def first_valid(self, candidate: Instant) -> Optional[Instant]:
        """Nearest valid instant at or after candidate (at or before, in reverse).

        Returns None once the search passes the bound.
        """
        date = candidate
        failures = 0
        while not self._past_bound(date):
            result = self._evaluate(date)
            if isinstance(result, Valid):
                return date

            failures += 1
            if failures >= self.max_iterations:
                _LOGGER.debug("No valid occurrence after %d repairs (%s)", failures, self.options.frequency)
                raise PipelineError(
                    f"Failed to find a single matching occurrence in {self.max_iterations} iterations. "
                    f"Last iterated date: {date.isoformat()}"
                )
            date = result.date if isinstance(result, Repair) else self._ascend(date, result.unit)
        return None
