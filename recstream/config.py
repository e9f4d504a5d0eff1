# config.py
"""
Engine defaults.

Public API:
  - EngineConfig(max_repair_iterations=50, max_failed_intersections=50, default_week_start="MO")
  - EngineConfig.from_settings(settings) -> EngineConfig
  - DEFAULT_CONFIG
"""

from __future__ import annotations

from dataclasses import dataclass

@dataclass(frozen=True)
class EngineConfig:
    max_repair_iterations: int = 50      # consecutive pipeline repairs before PipelineError
    max_failed_intersections: int = 50   # consecutive misalignments before IntersectionError
    default_week_start: str = "MO"

    @classmethod
    def from_settings(cls, settings) -> "EngineConfig":
        """Build a config from any object exposing some of the field names as attributes."""
        defaults = cls()
        return cls(
            max_repair_iterations=int(getattr(settings, "max_repair_iterations", defaults.max_repair_iterations)),
            max_failed_intersections=int(getattr(settings, "max_failed_intersections", defaults.max_failed_intersections)),
            default_week_start=str(getattr(settings, "default_week_start", defaults.default_week_start)).upper(),
        )

DEFAULT_CONFIG = EngineConfig()
