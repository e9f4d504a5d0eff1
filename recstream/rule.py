# rule.py
"""
Rule: one recurrence rule as a lazy, ordered occurrence source

Depends on:
  - options.py (validation + implicit constraints)
  - pipeline.py (constraint stages)

Public API:
  - Rule(options, timezone=<start's timezone>, data=None, config=DEFAULT_CONFIG)
      .options       raw RuleOptions, as given
      .normalized    NormalizedRuleOptions
      .set(prop, value) -> Rule
      + everything from OccurrenceGenerator (occurrences, collections, occurs_on, pipe, ...)

Notes:
- Occurrences are computed in the start's timezone and converted to the rule's
  timezone on the way out.
- "count" is always counted from the rule start, even when a later "start"
  bound is given to occurrences().
"""

from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Any, Mapping, Optional, Union

from .config import DEFAULT_CONFIG, EngineConfig
from .exceptions import ArgumentError
from .generator import GeneratorKind, OccurrenceGenerator, OccurrenceRun, RunArgs
from .instant import Instant
from .options import RuleOptions, coerce_rule_options, normalize_rule_options
from .pipeline import Pipeline

_LOGGER = logging.getLogger(__name__)

_START_TIMEZONE = object()  # Rule(timezone=...) default: keep the start's label

def _earliest(a: Optional[Instant], b: Optional[Instant]) -> Optional[Instant]:
    if a is None or b is None:
        return a if b is None else b
    return a if a.is_before_or_equal(b) else b

def _latest(a: Optional[Instant], b: Optional[Instant]) -> Optional[Instant]:
    if a is None or b is None:
        return a if b is None else b
    return a if a.is_after_or_equal(b) else b

class Rule(OccurrenceGenerator):
    kind = GeneratorKind.RULE

    def __init__(
        self,
        options: Union[RuleOptions, Mapping[str, Any]],
        timezone: Any = _START_TIMEZONE,
        data: Any = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self.options = coerce_rule_options(options)
        self.normalized = normalize_rule_options(self.options, config)
        self.config = config
        self.data = data

        start = self.normalized.start
        self.timezone = start.timezone if timezone is _START_TIMEZONE else timezone
        start.to_timezone(self.timezone)  # unknown zone names fail here, not mid-traversal

        self.duration = self.normalized.duration
        self.has_duration = bool(self.duration)
        self.is_infinite = self.normalized.end is None and self.normalized.count is None

    def __repr__(self) -> str:
        return f"Rule({self.normalized.frequency}, start={self.normalized.start!r}, timezone={self.timezone!r})"

    def set(self, prop: str, value: Any) -> "Rule":
        if prop == "timezone":
            if value == self.timezone:
                return self
            return Rule(self.options, timezone=value, data=self.data, config=self.config)
        if prop == "options":
            return Rule(value, data=self.data, config=self.config)
        if prop == "data":
            return Rule(self.options, timezone=self.timezone, data=value, config=self.config)
        if prop in {f.name for f in fields(RuleOptions)}:
            options = replace(self.options, **{prop: value})
            return Rule(options, timezone=self.timezone, data=self.data, config=self.config)
        raise ArgumentError(f"Unknown rule property: {prop!r}")

    def set_timezone(self, timezone: Optional[str]) -> "Rule":
        return self.set("timezone", timezone)

    # ---- traversal ----

    def _internal(self, date: Instant) -> Instant:
        """Bring a caller instant into the pipeline's zone, with the rule's duration."""
        return date.to_timezone(self.normalized.start.timezone).set("duration", self.duration)

    def _output(self, date: Instant) -> Instant:
        return date.to_timezone(self.timezone)

    def _pipeline(self, reverse: bool = False, bound: Optional[Instant] = None) -> Pipeline:
        return Pipeline(self.normalized, reverse=reverse, bound=bound, max_iterations=self.config.max_repair_iterations)

    def _run(self, args: RunArgs) -> OccurrenceRun:
        start = None if args.start is None else self._internal(args.start)
        end = None if args.end is None else self._internal(args.end)
        _LOGGER.debug("Iterating %r (start=%s, end=%s, reverse=%s)", self, start, end, args.reverse)
        if args.reverse:
            return self._run_backward(start, end, args.take)
        return self._run_forward(start, end, args.take)

    def _run_forward(self, start: Optional[Instant], end: Optional[Instant], take: Optional[int]) -> OccurrenceRun:
        opts = self.normalized
        pipeline = self._pipeline(bound=_earliest(opts.end, end))

        candidate = opts.start
        floor = None  # occurrences before this are counted but not emitted
        if start is not None and start.is_after(candidate):
            if opts.count is None:
                candidate = start
            else:
                floor = start

        produced = emitted = 0
        date = pipeline.first_valid(candidate)
        while date is not None:
            if opts.count is not None:
                if produced >= opts.count:
                    return
                produced += 1

            if floor is None or not date.is_before(floor):
                if take is not None and emitted >= take:
                    return
                emitted += 1
                hint = yield self._output(date)
                if hint is not None:
                    hint = self._internal(hint)
                    if hint.is_after(date):
                        if opts.count is None:
                            date = pipeline.first_valid(hint)
                            continue
                        floor = hint

            date = pipeline.first_valid(date.add(1, "millisecond"))

    def _last_counted(self) -> Optional[Instant]:
        pipeline = self._pipeline()
        last = None
        candidate = self.normalized.start
        for _ in range(self.normalized.count):
            date = pipeline.first_valid(candidate)
            if date is None:
                break
            last = date
            candidate = date.add(1, "millisecond")
        return last

    def _run_backward(self, start: Optional[Instant], end: Optional[Instant], take: Optional[int]) -> OccurrenceRun:
        opts = self.normalized
        upper = _earliest(opts.end, end)
        if opts.count is not None:
            last = self._last_counted()
            if last is None:
                return
            upper = _earliest(upper, last)
        if upper is None:
            raise ArgumentError('When iterating an infinite rule in reverse, "end" must be provided')

        pipeline = self._pipeline(reverse=True, bound=_latest(opts.start, start))
        emitted = 0
        date = pipeline.first_valid(upper.set("duration", self.duration))
        while date is not None:
            if take is not None and emitted >= take:
                return
            emitted += 1
            hint = yield self._output(date)
            if hint is not None:
                hint = self._internal(hint)
                if hint.is_before(date):
                    date = pipeline.first_valid(hint)
                    continue
            date = pipeline.first_valid(date.subtract(1, "millisecond"))
