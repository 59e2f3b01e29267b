from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from .constraints import ConstraintWeights

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class SolverSettings:
    # Total wall-clock budget of one solve, construction included
    time_limit_seconds: float = 30.0
    # Budget of the CP-SAT construction phase
    construction_time_limit_seconds: float = 10.0
    # Stop the local search after this long without a new best (None = never)
    unimproved_seconds_limit: Optional[float] = None
    step_limit: Optional[int] = None
    late_acceptance_size: int = 400
    random_seed: Optional[int] = None
    num_search_workers: Optional[int] = None  # CP-SAT workers; None = cpu count
    max_concurrent_jobs: int = 4
    solution_ttl_seconds: float = 30 * 60
    sweep_interval_seconds: float = 5 * 60
    weights: ConstraintWeights = field(default_factory=ConstraintWeights)

    @classmethod
    def from_env(cls, prefix: str = "TIMETABLER_") -> "SolverSettings":
        """Defaults overridden by e.g. TIMETABLER_TIME_LIMIT_SECONDS=60."""
        settings = cls()

        def read(name: str, cast):
            raw = os.getenv(prefix + name.upper())
            if raw is None or raw.strip() == "":
                return getattr(settings, name)
            return cast(raw)

        settings.time_limit_seconds = read("time_limit_seconds", float)
        settings.construction_time_limit_seconds = read("construction_time_limit_seconds", float)
        settings.unimproved_seconds_limit = read("unimproved_seconds_limit", float)
        settings.step_limit = read("step_limit", int)
        settings.late_acceptance_size = read("late_acceptance_size", int)
        settings.random_seed = read("random_seed", int)
        settings.num_search_workers = read("num_search_workers", int)
        settings.max_concurrent_jobs = read("max_concurrent_jobs", int)
        settings.solution_ttl_seconds = read("solution_ttl_seconds", float)
        settings.sweep_interval_seconds = read("sweep_interval_seconds", float)
        level = os.getenv(prefix + "MAX_HOURS_LEVEL")
        if level:
            settings.weights = ConstraintWeights(max_hours_level=level.strip().lower())
        return settings


def configure_logging(level: Optional[str] = None) -> None:
    level_name = (level or os.getenv("TIMETABLER_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
