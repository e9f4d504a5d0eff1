from datetime import datetime

import pytest
from dateutil.rrule import FR, MO

from recstream import EngineConfig, Instant, InvalidRuleError, RuleOptions, normalize_rule_options

START = Instant.from_fields(2019, 1, 1, 2, 3, 4, 5, timezone="UTC")

INVALID_OPTIONS = [
    ("missing start", {"frequency": "DAILY"}, '"start" is required'),
    ("unknown frequency", {"start": START, "frequency": "FORTNIGHTLY"}, '"frequency"'),
    ("zero interval", {"start": START, "frequency": "DAILY", "interval": 0}, '"interval"'),
    ("zero count", {"start": START, "frequency": "DAILY", "count": 0}, '"count"'),
    ("end and count", {"start": START, "frequency": "DAILY", "count": 2, "end": START}, "cannot both"),
    (
        "end in another zone",
        {"start": START, "frequency": "DAILY", "end": Instant.from_fields(2019, 2, 1)},
        "timezone",
    ),
    ("negative duration", {"start": START, "frequency": "DAILY", "duration": -1}, '"duration"'),
    (
        "weekly day of month",
        {"start": START, "frequency": "WEEKLY", "by_day_of_month": [1]},
        'when "frequency" is "WEEKLY", "by_day_of_month" cannot be present',
    ),
    ("day of month zero", {"start": START, "frequency": "MONTHLY", "by_day_of_month": [0]}, "by_day_of_month"),
    ("day of month 32", {"start": START, "frequency": "MONTHLY", "by_day_of_month": [32]}, "by_day_of_month"),
    ("day of month -32", {"start": START, "frequency": "MONTHLY", "by_day_of_month": [-32]}, "by_day_of_month"),
    ("month 13", {"start": START, "frequency": "YEARLY", "by_month_of_year": [13]}, "by_month_of_year"),
    ("empty months", {"start": START, "frequency": "YEARLY", "by_month_of_year": []}, "non-empty"),
    ("hour 24", {"start": START, "frequency": "DAILY", "by_hour_of_day": [24]}, "by_hour_of_day"),
    ("minute 60", {"start": START, "frequency": "DAILY", "by_minute_of_hour": [60]}, "by_minute_of_hour"),
    ("ms 1000", {"start": START, "frequency": "DAILY", "by_millisecond_of_second": [1000]}, "by_millisecond"),
    ("bad weekday", {"start": START, "frequency": "WEEKLY", "by_day_of_week": ["XX"]}, "Invalid weekday"),
    ("daily ordinal", {"start": START, "frequency": "DAILY", "by_day_of_week": [("MO", 1)]}, "ordinal"),
    ("ordinal zero", {"start": START, "frequency": "MONTHLY", "by_day_of_week": [("MO", 0)]}, "ordinal"),
    ("monthly ordinal 6", {"start": START, "frequency": "MONTHLY", "by_day_of_week": [("MO", 6)]}, "ordinal"),
    (
        "yearly month-scoped ordinal 6",
        {"start": START, "frequency": "YEARLY", "by_month_of_year": [3], "by_day_of_week": [("MO", 6)]},
        "ordinal",
    ),
    ("week of year", {"start": START, "frequency": "YEARLY", "by_week_of_year": [1]}, "not supported"),
    ("set position", {"start": START, "frequency": "MONTHLY", "by_set_position": [1]}, "not supported"),
    ("unknown key", {"start": START, "frequency": "DAILY", "foo": 1}, "Unknown rule option"),
]

# (id, extra options, field, expected)
DEFAULT_CASES = [
    ("yearly month", {"frequency": "YEARLY"}, "by_month_of_year", (1,)),
    ("yearly day", {"frequency": "YEARLY"}, "by_day_of_month", (1,)),
    ("yearly weekday has no day", {"frequency": "YEARLY", "by_day_of_week": ["MO"]}, "by_day_of_month", ()),
    ("yearly weekday has no month", {"frequency": "YEARLY", "by_day_of_week": ["MO"]}, "by_month_of_year", ()),
    ("monthly day", {"frequency": "MONTHLY"}, "by_day_of_month", (1,)),
    ("monthly months untouched", {"frequency": "MONTHLY"}, "by_month_of_year", ()),
    ("weekly weekday", {"frequency": "WEEKLY"}, "by_day_of_week", ("TU",)),
    ("daily hour", {"frequency": "DAILY"}, "by_hour_of_day", (2,)),
    ("hourly hour", {"frequency": "HOURLY"}, "by_hour_of_day", ()),
    ("hourly minute", {"frequency": "HOURLY"}, "by_minute_of_hour", (3,)),
    ("minutely minute", {"frequency": "MINUTELY"}, "by_minute_of_hour", ()),
    ("minutely second", {"frequency": "MINUTELY"}, "by_second_of_minute", (4,)),
    ("secondly second", {"frequency": "SECONDLY"}, "by_second_of_minute", ()),
    ("secondly millisecond", {"frequency": "SECONDLY"}, "by_millisecond_of_second", (5,)),
    ("explicit hours kept", {"frequency": "DAILY", "by_hour_of_day": [17, 9, 9]}, "by_hour_of_day", (9, 17)),
    ("days sorted", {"frequency": "MONTHLY", "by_day_of_month": [15, 1, -1, 15]}, "by_day_of_month", (-1, 1, 15)),
    ("week start", {"frequency": "WEEKLY"}, "week_start", "MO"),
    ("interval", {"frequency": "WEEKLY"}, "interval", 1),
]


@pytest.mark.parametrize("options, message", [c[1:] for c in INVALID_OPTIONS], ids=[c[0] for c in INVALID_OPTIONS])
def test_invalid_options(options, message: str) -> None:
    with pytest.raises(InvalidRuleError, match=message):
        normalize_rule_options(options)


@pytest.mark.parametrize("extra, field, expected", [c[1:] for c in DEFAULT_CASES], ids=[c[0] for c in DEFAULT_CASES])
def test_implicit_constraints(extra, field: str, expected) -> None:
    normalized = normalize_rule_options({"start": START, **extra})
    assert getattr(normalized, field) == expected


def test_invalid_rule_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        normalize_rule_options({"start": START})


def test_weekdays_accept_dateutil_and_pairs() -> None:
    normalized = normalize_rule_options(
        {"start": START, "frequency": "MONTHLY", "by_day_of_week": [MO(+3), FR, ("we", -1), "su", "SU"]}
    )
    assert normalized.by_day_of_week == (("MO", 3), "FR", ("WE", -1), "SU")


def test_year_scoped_ordinals_go_up_to_53() -> None:
    normalized = normalize_rule_options({"start": START, "frequency": "YEARLY", "by_day_of_week": [("MO", -53)]})
    assert normalized.by_day_of_week == (("MO", -53),)


def test_datetimes_are_accepted() -> None:
    normalized = normalize_rule_options(
        {"start": datetime(2019, 1, 1, 9), "end": datetime(2019, 2, 1), "frequency": "daily"}
    )
    assert normalized.frequency == "DAILY"
    assert normalized.start.timezone is None
    assert normalized.end.isoformat() == "2019-02-01T00:00:00.000"


def test_duration_is_applied_to_start() -> None:
    normalized = normalize_rule_options({"start": START, "frequency": "DAILY", "duration": 3600000})
    assert normalized.duration == 3600000
    assert normalized.start.duration == 3600000

    inherited = normalize_rule_options({"start": START.set("duration", 60000), "frequency": "DAILY"})
    assert inherited.duration == 60000


def test_week_start_defaults_from_config() -> None:
    config = EngineConfig(default_week_start="SU")
    assert normalize_rule_options({"start": START, "frequency": "WEEKLY"}, config).week_start == "SU"
    explicit = normalize_rule_options({"start": START, "frequency": "WEEKLY", "week_start": "WE"}, config)
    assert explicit.week_start == "WE"


def test_raw_options_are_kept_as_given() -> None:
    options = RuleOptions.from_mapping({"start": START, "frequency": "DAILY", "by_hour_of_day": [9]})
    assert options.to_dict() == {"start": START, "frequency": "DAILY", "by_hour_of_day": [9]}
    assert normalize_rule_options(options).by_hour_of_day == (9,)


def test_config_from_settings() -> None:
    class Settings:
        max_repair_iterations = "10"
        default_week_start = "su"

    config = EngineConfig.from_settings(Settings())
    assert config == EngineConfig(max_repair_iterations=10, max_failed_intersections=50, default_week_start="SU")
