# exceptions.py
"""
Error taxonomy.

Public API:
  - RecstreamError            root of every error raised by the package
  - InvalidRuleError          bad rule options (raised at construction)
  - ArgumentError             bad traversal / operator arguments
  - InvalidDateError          impossible calendar date or duration
  - TimezoneMismatchError     comparing instants with different timezone labels
  - NonConvergenceError       fatal, non-retryable traversal failures:
      PipelineError, IntersectionError, MaxDurationExceededError
"""

from __future__ import annotations

class RecstreamError(Exception):
    pass

class InvalidRuleError(RecstreamError, ValueError):
    pass

class ArgumentError(RecstreamError, ValueError):
    pass

class InvalidDateError(RecstreamError, ValueError):
    pass

class TimezoneMismatchError(RecstreamError, TypeError):
    pass

class NonConvergenceError(RecstreamError, RuntimeError):
    pass

class PipelineError(NonConvergenceError):
    """The constraint pipeline ran out of repair iterations."""

class IntersectionError(NonConvergenceError):
    """Intersection inputs failed to realign within the retry bound."""

class MaxDurationExceededError(NonConvergenceError):
    """A merged or split interval is longer than the operator allows."""
