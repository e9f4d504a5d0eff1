from .config import DEFAULT_CONFIG, EngineConfig
from .dates import Dates
from .exceptions import (
    ArgumentError,
    IntersectionError,
    InvalidDateError,
    InvalidRuleError,
    MaxDurationExceededError,
    NonConvergenceError,
    PipelineError,
    RecstreamError,
    TimezoneMismatchError,
)
from .generator import Collection, GeneratorKind, OccurrenceGenerator, OccurrenceIterator
from .instant import Instant, compare, is_leap_year, month_length
from .operators import (
    OccurrenceStream,
    add,
    intersection,
    merge_duration,
    split_duration,
    subtract,
    unique,
)
from .options import NormalizedRuleOptions, RuleOptions, normalize_rule_options
from .rule import Rule
from .ruleset import build_ruleset

__all__ = [
    "ArgumentError",
    "Collection",
    "DEFAULT_CONFIG",
    "Dates",
    "EngineConfig",
    "GeneratorKind",
    "Instant",
    "IntersectionError",
    "InvalidDateError",
    "InvalidRuleError",
    "MaxDurationExceededError",
    "NonConvergenceError",
    "NormalizedRuleOptions",
    "OccurrenceGenerator",
    "OccurrenceIterator",
    "OccurrenceStream",
    "PipelineError",
    "RecstreamError",
    "Rule",
    "RuleOptions",
    "TimezoneMismatchError",
    "add",
    "build_ruleset",
    "compare",
    "intersection",
    "is_leap_year",
    "merge_duration",
    "month_length",
    "normalize_rule_options",
    "split_duration",
    "subtract",
    "unique",
]
