from datetime import datetime
from typing import List

import pytest

from recstream import Dates, Instant, OccurrenceStream, Rule, add, build_ruleset, unique

TZ = "UTC"
HOUR = 60 * 60 * 1000


def _at(*fields: int, duration: int = 0) -> Instant:
    return Instant.from_fields(*fields, timezone=TZ, duration=duration)


def _iso(dates) -> List[str]:
    return [d.isoformat() for d in dates]


TEN_DAYS = Rule({"start": _at(2019, 1, 1, 9), "frequency": "DAILY", "count": 10})
WEEKENDS = Rule({"start": _at(2019, 1, 1, 9), "frequency": "WEEKLY", "by_day_of_week": ["SA", "SU"]})

EXPECTED = [
    "2019-01-01T09:00:00.000",
    "2019-01-03T09:00:00.000",
    "2019-01-04T09:00:00.000",
    "2019-01-05T09:00:00.000",
    "2019-01-07T09:00:00.000",
    "2019-01-08T09:00:00.000",
    "2019-01-09T09:00:00.000",
    "2019-01-10T09:00:00.000",
]


def _ruleset() -> OccurrenceStream:
    return build_ruleset(
        rrules=[TEN_DAYS],
        exrules=[WEEKENDS],
        rdates=[_at(2019, 1, 5, 9), _at(2019, 1, 20, 12)],
        exdates=[_at(2019, 1, 2, 9), _at(2019, 1, 20, 12)],
    )


def test_exrules_do_not_remove_rdates() -> None:
    ruleset = _ruleset()
    assert ruleset.timezone == TZ
    assert not ruleset.is_infinite
    assert _iso(ruleset.occurrences()) == EXPECTED


def test_ruleset_in_reverse() -> None:
    assert _iso(_ruleset().occurrences(reverse=True)) == EXPECTED[::-1]
    assert _ruleset().last_date == _at(2019, 1, 10, 9)


def test_rdates_accept_datetimes() -> None:
    floating = Rule({"start": datetime(2019, 1, 1, 9), "frequency": "DAILY", "count": 3})
    ruleset = build_ruleset(rrules=[floating], rdates=[datetime(2019, 1, 15, 9)])
    assert ruleset.timezone is None
    assert [d.to_datetime().day for d in ruleset.occurrences()] == [1, 2, 3, 15]


def test_ruleset_without_rules_uses_the_rdates_zone() -> None:
    ruleset = build_ruleset(rdates=Dates([_at(2019, 1, 1), _at(2019, 1, 1)]))
    assert ruleset.timezone == TZ
    assert _iso(ruleset.occurrences()) == ["2019-01-01T00:00:00.000"]


def test_duplicates_from_several_rules_collapse() -> None:
    ruleset = build_ruleset(rrules=[TEN_DAYS, TEN_DAYS.set("count", 3)])
    assert len(list(ruleset.occurrences())) == 10


def test_exdate_without_duration_removes_an_occurrence_with_one() -> None:
    meetings = TEN_DAYS.set("duration", HOUR)
    ruleset = build_ruleset(rrules=[meetings], exdates=[_at(2019, 1, 1, 9)])
    first = ruleset.first_date
    assert first == _at(2019, 1, 2, 9, duration=HOUR)


@pytest.mark.parametrize("take", [0, 1, 3, 20], ids=lambda t: f"take-{t}")
def test_take_is_a_prefix_of_an_ordered_unique_sequence(take: int) -> None:
    stream = OccurrenceStream([add(_ruleset(), TEN_DAYS, WEEKENDS), unique(), unique()], timezone=TZ)
    everything = list(stream.occurrences(end=_at(2019, 2, 1)))
    timestamps = [d.timestamp for d in everything]
    assert timestamps == sorted(set(timestamps))
    assert list(stream.occurrences(end=_at(2019, 2, 1), take=take)) == everything[:take]
