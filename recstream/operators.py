# operators.py
"""
Stream operators: occurrence sources built on other occurrence sources

Public API:
  - add(*streams)                                   union, duplicates kept
  - subtract(*streams)                              base minus values equal to any stream value
  - intersection(*streams, max_failed_iterations=None, config=DEFAULT_CONFIG)
  - unique()                                        collapse adjacent equal values
  - merge_duration(max_duration)                    merge overlapping intervals
  - split_duration(split_fn, max_duration)          split intervals longer than max_duration
  - OperatorConfig(timezone=None, base=None)
  - OccurrenceStream(operators, timezone=None)

Notes:
- Each factory returns a callable (OperatorConfig) -> Operator. OccurrenceStream
  calls them in order, handing every operator the previous one as its base.
- Bounds and take come from occurrences(); upstream traversals get the same
  bounds (widened by max_duration for the duration operators) and no take.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .exceptions import ArgumentError, IntersectionError, MaxDurationExceededError
from .generator import Cursor, GeneratorKind, OccurrenceGenerator, OccurrenceRun, RunArgs, precedes
from .instant import Instant, compare

_LOGGER = logging.getLogger(__name__)

@dataclass(frozen=True)
class OperatorConfig:
    timezone: Optional[str] = None
    base: Optional[OccurrenceGenerator] = None  # output of the previous pipeline stage

def _upstream(args: RunArgs) -> RunArgs:
    return replace(args, take=None)

def _ordered_before(a: Instant, b: Instant, reverse: bool) -> bool:
    order = compare(a, b)
    return order > 0 if reverse else order < 0

def _positive_ms(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ArgumentError(f'"{name}" must be a positive number of milliseconds, got {value!r}')
    return value

class Operator(OccurrenceGenerator):
    kind = GeneratorKind.OPERATOR

    def __init__(self, streams: Sequence[OccurrenceGenerator], config: OperatorConfig) -> None:
        self.timezone = config.timezone
        self.base = None if config.base is None else config.base.set_timezone(config.timezone)
        self.streams: Tuple[OccurrenceGenerator, ...] = tuple(s.set_timezone(config.timezone) for s in streams)
        self.config = replace(config, base=self.base)
        inputs = self._inputs()
        self.is_infinite = self._infinite(inputs)
        self.has_duration = bool(inputs) and all(s.has_duration for s in inputs)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base={self.base!r}, streams={list(self.streams)!r})"

    def _inputs(self) -> List[OccurrenceGenerator]:
        return ([self.base] if self.base is not None else []) + list(self.streams)

    def _infinite(self, inputs: List[OccurrenceGenerator]) -> bool:
        return any(s.is_infinite for s in inputs)

    def _rebuild(self, config: OperatorConfig) -> "Operator":
        return type(self)(self.streams, config)

    def set_timezone(self, timezone: Optional[str]) -> "Operator":
        if timezone == self.timezone:
            return self
        return self._rebuild(replace(self.config, timezone=timezone))

class AddOperator(Operator):
    def _run(self, args: RunArgs) -> OccurrenceRun:
        cursors = [Cursor(s, _upstream(args)) for s in self._inputs()]
        emitted = 0
        while args.take is None or emitted < args.take:
            best = None
            for cursor in cursors:
                if cursor.done:
                    continue
                if best is None or _ordered_before(cursor.value, best.value, args.reverse):
                    best = cursor
            if best is None:
                return
            emitted += 1
            hint = yield best.value
            best.pick()
            if hint is not None:
                for cursor in cursors:
                    cursor.skip_to(hint)

class SubtractOperator(Operator):
    def _infinite(self, inputs: List[OccurrenceGenerator]) -> bool:
        return self.base is not None and self.base.is_infinite

    def _run(self, args: RunArgs) -> OccurrenceRun:
        if self.base is None:
            return
        base = Cursor(self.base, _upstream(args))
        if base.done:
            return
        excluded_args = _upstream(args)
        if args.reverse and args.end is None:
            # infinite exclusions can only be walked backwards from a known end
            excluded_args = replace(excluded_args, end=base.value)
        excluded = Cursor(AddOperator(self.streams, OperatorConfig(self.timezone)), excluded_args)
        emitted = 0
        while not base.done:
            excluded.skip_to(base.value)
            while not excluded.done and _ordered_before(excluded.value, base.value, args.reverse):
                excluded.pick()
            if not excluded.done and compare(excluded.value, base.value) == 0:
                base.pick()
                continue
            if args.take is not None and emitted >= args.take:
                return
            emitted += 1
            hint = yield base.value
            base.pick(hint)

class IntersectionOperator(Operator):
    def __init__(
        self,
        streams: Sequence[OccurrenceGenerator],
        config: OperatorConfig,
        max_failed_iterations: Optional[int] = None,
        engine_config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        if max_failed_iterations is None:
            max_failed_iterations = engine_config.max_failed_intersections
        if isinstance(max_failed_iterations, bool) or not isinstance(max_failed_iterations, int) or max_failed_iterations < 1:
            raise ArgumentError(f'"max_failed_iterations" must be a positive integer, got {max_failed_iterations!r}')
        self.max_failed_iterations = max_failed_iterations
        super().__init__(streams, config)

    def _infinite(self, inputs: List[OccurrenceGenerator]) -> bool:
        return bool(inputs) and all(s.is_infinite for s in inputs)

    def _rebuild(self, config: OperatorConfig) -> "IntersectionOperator":
        return IntersectionOperator(self.streams, config, self.max_failed_iterations)

    def _cursors(self, inputs: List[OccurrenceGenerator], args: RunArgs) -> Optional[List[Cursor]]:
        upstream = _upstream(args)
        if not (args.reverse and args.end is None):
            return [Cursor(s, upstream) for s in inputs]

        # reverse without an end: finite inputs go first and bound the infinite ones
        opened = {i: Cursor(s, upstream) for i, s in enumerate(inputs) if not s.is_infinite}
        if any(c.done for c in opened.values()):
            return None
        end = None
        for cursor in opened.values():
            if end is None or cursor.value.is_before(end):
                end = cursor.value
        bounded = replace(upstream, end=end)
        return [opened[i] if i in opened else Cursor(s, bounded) for i, s in enumerate(inputs)]

    def _run(self, args: RunArgs) -> OccurrenceRun:
        inputs = self._inputs()
        if not inputs:
            return
        cursors = self._cursors(inputs, args)
        if cursors is None:
            return
        emitted = 0
        failed = 0
        while not any(c.done for c in cursors):
            target = cursors[0].value
            for cursor in cursors[1:]:
                if precedes(target, cursor.value, args.reverse):
                    target = cursor.value

            if not all(c.value.is_equal(target) for c in cursors):
                failed += 1
                if failed >= self.max_failed_iterations:
                    _LOGGER.debug("Intersection inputs did not realign, last target %s", target)
                    raise IntersectionError(
                        f"Failed to find a single intersecting occurrence in {self.max_failed_iterations} "
                        f"iterations. Last iterated date: {target.isoformat()}"
                    )
                for cursor in cursors:
                    cursor.skip_to(target)
                continue

            failed = 0
            matches = []
            for cursor in cursors:
                while not cursor.done and cursor.value.is_equal(target):
                    matches.append(cursor.value)
                    cursor.pick()
            matches.sort(key=lambda d: d.duration, reverse=args.reverse)

            hint = None
            for value in matches:
                if hint is not None and precedes(value, hint, args.reverse):
                    continue
                if args.take is not None and emitted >= args.take:
                    return
                emitted += 1
                sent = yield value
                if sent is not None:
                    hint = sent
            if hint is not None:
                for cursor in cursors:
                    cursor.skip_to(hint)

class UniqueOperator(Operator):
    def _infinite(self, inputs: List[OccurrenceGenerator]) -> bool:
        return self.base is not None and self.base.is_infinite

    def _run(self, args: RunArgs) -> OccurrenceRun:
        if self.base is None:
            return
        cursor = Cursor(self.base, _upstream(args))
        emitted = 0
        while not cursor.done:
            if args.take is not None and emitted >= args.take:
                return
            value = cursor.value
            emitted += 1
            hint = yield value
            cursor.pick(hint)
            while not cursor.done and compare(cursor.value, value) == 0:
                cursor.pick()

class _DurationOperator(Operator):
    """Shared checks of merge_duration / split_duration."""

    def __init__(self, streams: Sequence[OccurrenceGenerator], config: OperatorConfig, max_duration: int) -> None:
        self.max_duration = _positive_ms("max_duration", max_duration)
        super().__init__(streams, config)
        if self.base is None or not self.base.has_duration:
            raise ArgumentError(f"{type(self).__name__} needs a base stream whose occurrences have a duration")

    def _infinite(self, inputs: List[OccurrenceGenerator]) -> bool:
        return self.base is not None and self.base.is_infinite

    def _check(self, start: Instant, duration: int, what: str) -> None:
        if duration > self.max_duration:
            _LOGGER.debug("%s interval at %s is %d ms long", what, start, duration)
            raise MaxDurationExceededError(
                f"{what} interval starting {start.isoformat()} lasts {duration} ms, "
                f"more than the maximum of {self.max_duration} ms"
            )

    def _widened(self, args: RunArgs, end: bool) -> RunArgs:
        return RunArgs(
            start=None if args.start is None else args.start.subtract(self.max_duration, "millisecond"),
            end=None if args.end is None or not end else args.end.add(self.max_duration, "millisecond"),
            reverse=args.reverse,
        )

    def _wanted(self, value: Instant, args: RunArgs, floor: Optional[Instant]) -> bool:
        """Interval overlaps [start, end] and is not before the last skip hint."""
        if args.end is not None and value.is_after(args.end):
            return False
        if args.start is not None and value.timestamp + value.duration < args.start.timestamp:
            return False
        return floor is None or not precedes(value, floor, args.reverse)

class MergeDurationOperator(_DurationOperator):
    def _rebuild(self, config: OperatorConfig) -> "MergeDurationOperator":
        return MergeDurationOperator(self.streams, config, self.max_duration)

    def _run(self, args: RunArgs) -> OccurrenceRun:
        if args.reverse:
            yield from self._run_backward(args)
            return

        cursor = Cursor(self.base, self._widened(args, end=True))
        emitted = 0
        floor = None
        while not cursor.done:
            first = cursor.value
            end_ts = first.timestamp + first.duration
            cursor.pick()
            while not cursor.done and cursor.value.timestamp <= end_ts:
                end_ts = max(end_ts, cursor.value.timestamp + cursor.value.duration)
                cursor.pick()
            self._check(first, end_ts - first.timestamp, "Merged")
            merged = first.set("duration", end_ts - first.timestamp)

            if args.end is not None and merged.is_after(args.end):
                return
            if not self._wanted(merged, args, floor):
                continue
            if args.take is not None and emitted >= args.take:
                return
            emitted += 1
            hint = yield merged
            if hint is not None:
                floor = hint
                cursor.skip_to(hint.subtract(self.max_duration, "millisecond"))

    def _run_backward(self, args: RunArgs) -> OccurrenceRun:
        cursor = Cursor(self.base, self._widened(args, end=True))
        # merged intervals still open to growth, latest start first
        pending: List[Tuple[Instant, int]] = []
        emitted = 0
        floor = None
        while pending or not cursor.done:
            while pending and (cursor.done or cursor.value.timestamp + self.max_duration < pending[0][0].timestamp):
                start, end_ts = pending.pop(0)
                merged = start.set("duration", end_ts - start.timestamp)
                if not self._wanted(merged, args, floor):
                    continue
                if args.take is not None and emitted >= args.take:
                    return
                emitted += 1
                hint = yield merged
                if hint is not None:
                    floor = hint
            if cursor.done:
                continue

            value = cursor.value
            cursor.pick()
            end_ts = value.timestamp + value.duration
            while pending and pending[-1][0].timestamp <= end_ts:
                end_ts = max(end_ts, pending.pop()[1])
            self._check(value, end_ts - value.timestamp, "Merged")
            pending.append((value, end_ts))

class SplitDurationOperator(_DurationOperator):
    def __init__(
        self,
        streams: Sequence[OccurrenceGenerator],
        config: OperatorConfig,
        split_fn: Callable[[Instant], Iterable[Instant]],
        max_duration: int,
    ) -> None:
        self.split_fn = split_fn
        super().__init__(streams, config, max_duration)

    def _rebuild(self, config: OperatorConfig) -> "SplitDurationOperator":
        return SplitDurationOperator(self.streams, config, self.split_fn, self.max_duration)

    def _reach(self, source: Instant, reverse: bool) -> Instant:
        """Bound on where a piece of source can start: its end in reverse, its start otherwise."""
        return source.add(source.duration, "millisecond") if reverse else source

    def _pieces(self, source: Instant) -> List[Instant]:
        """Split source until every piece fits in max_duration."""
        if source.duration <= self.max_duration:
            return [source]
        pieces = []
        for piece in self.split_fn(source):
            if piece.duration >= source.duration:
                _LOGGER.debug("split_fn made no progress on %s", source)
                raise MaxDurationExceededError(
                    f"Split interval starting {source.isoformat()} lasts {source.duration} ms, "
                    f"more than the maximum of {self.max_duration} ms, and split_fn did not shorten it"
                )
            pieces.extend(self._pieces(piece))
        return pieces

    def _run(self, args: RunArgs) -> OccurrenceRun:
        cursor = Cursor(self.base, self._widened(args, end=False))
        # pieces are assumed to start within their source interval
        sign = -1 if args.reverse else 1
        heap: List[Tuple[Tuple[int, int], int, Instant]] = []
        counter = 0
        emitted = 0
        last = None
        floor = None
        while True:
            while not cursor.done and (
                not heap or not precedes(heap[0][2], self._reach(cursor.value, args.reverse), args.reverse)
            ):
                source = cursor.value
                cursor.pick()
                for piece in self._pieces(source):
                    if last is not None and precedes(piece, last, args.reverse):
                        raise ArgumentError(
                            f"split_fn produced {piece.isoformat()} after {last.isoformat()} was already emitted"
                        )
                    heapq.heappush(heap, ((sign * piece.timestamp, sign * piece.duration), counter, piece))
                    counter += 1
            if not heap:
                return

            piece = heapq.heappop(heap)[2]
            if not self._wanted(piece, args, floor):
                if not args.reverse and args.end is not None and piece.is_after(args.end):
                    return
                continue
            if args.take is not None and emitted >= args.take:
                return
            emitted += 1
            last = piece
            hint = yield piece
            if hint is not None:
                floor = hint

class OccurrenceStream(OccurrenceGenerator):
    """A pipeline of operators run as one occurrence source."""

    kind = GeneratorKind.OPERATOR

    def __init__(self, operators: Sequence[Callable[[OperatorConfig], Operator]], timezone: Optional[str] = None) -> None:
        self.operators = tuple(operators)
        self.timezone = timezone
        last: Optional[Operator] = None
        for build in self.operators:
            last = build(OperatorConfig(timezone=timezone, base=last))
        self.last_operator = last
        self.is_infinite = last is not None and last.is_infinite
        self.has_duration = last is not None and last.has_duration

    def __repr__(self) -> str:
        return f"OccurrenceStream({self.last_operator!r})"

    def set_timezone(self, timezone: Optional[str]) -> "OccurrenceStream":
        if timezone == self.timezone:
            return self
        return OccurrenceStream(self.operators, timezone=timezone)

    def _run(self, args: RunArgs) -> OccurrenceRun:
        if self.last_operator is None:
            return
        yield from self.last_operator._run(args)

# ---- factories ----

OperatorFactory = Callable[[OperatorConfig], Operator]

def add(*streams: OccurrenceGenerator) -> OperatorFactory:
    def build(config: OperatorConfig) -> Operator:
        return AddOperator(streams, config)
    return build

def subtract(*streams: OccurrenceGenerator) -> OperatorFactory:
    def build(config: OperatorConfig) -> Operator:
        return SubtractOperator(streams, config)
    return build

def intersection(
    *streams: OccurrenceGenerator,
    max_failed_iterations: Optional[int] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> OperatorFactory:
    def build(operator_config: OperatorConfig) -> Operator:
        return IntersectionOperator(streams, operator_config, max_failed_iterations, engine_config=config)
    return build

def unique() -> OperatorFactory:
    def build(config: OperatorConfig) -> Operator:
        return UniqueOperator((), config)
    return build

def merge_duration(max_duration: int) -> OperatorFactory:
    def build(config: OperatorConfig) -> Operator:
        return MergeDurationOperator((), config, max_duration)
    return build

def split_duration(split_fn: Callable[[Instant], Iterable[Instant]], max_duration: int) -> OperatorFactory:
    def build(config: OperatorConfig) -> Operator:
        return SplitDurationOperator((), config, split_fn, max_duration)
    return build
