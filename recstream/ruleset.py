# ruleset.py
"""
Recurrence set: inclusion/exclusion rules and dates combined in RFC 5545 order

Public API:
  - build_ruleset(rrules=(), exrules=(), rdates=(), exdates=(), timezone=...) -> OccurrenceStream

Precedence:
  union(rrules) -> subtract(exrules) -> add(rdates) -> subtract(exdates) -> unique()

So an exrule never removes an rdate, while an exdate removes both rule
occurrences and rdates.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence, Union

from .dates import Dates
from .generator import DateInput
from .operators import OccurrenceStream, Operator, add, subtract, unique
from .rule import Rule

OccurrenceSource = Union[Rule, Dates, Operator, OccurrenceStream]

_INFER = object()

def _as_dates(value: Union[Dates, Iterable[DateInput], None], timezone: Optional[str]) -> Dates:
    if value is None:
        return Dates(timezone=timezone)
    if isinstance(value, Dates):
        return value
    return Dates(value, timezone=timezone)

def build_ruleset(
    rrules: Sequence[OccurrenceSource] = (),
    exrules: Sequence[OccurrenceSource] = (),
    rdates: Union[Dates, Iterable[DateInput], None] = (),
    exdates: Union[Dates, Iterable[DateInput], None] = (),
    timezone: Any = _INFER,
) -> OccurrenceStream:
    if timezone is _INFER:
        timezone = rrules[0].timezone if rrules else None
        if not rrules and isinstance(rdates, Dates):
            timezone = rdates.timezone

    return OccurrenceStream(
        [
            add(*rrules),
            subtract(*exrules),
            add(_as_dates(rdates, timezone)),
            subtract(_as_dates(exdates, timezone)),
            unique(),
        ],
        timezone=timezone,
    )
