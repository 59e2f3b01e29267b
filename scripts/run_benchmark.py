#!/usr/bin/env python3
"""Batch runner for the timetable optimizer.

This script runs the optimizer on generated sample schools of several
sizes and random seeds, and writes quantitative evaluation results to CSV.
"""

from __future__ import annotations

import argparse
import csv
from pathlib import Path
from typing import Any, Dict, List

from timetabler.config import SolverSettings, configure_logging
from timetabler.constraints import (
    CLASS_GAP,
    SUBJECT_DISTRIBUTION,
    TEACHER_AVAILABILITY,
    TEACHER_GAP,
    TEACHER_PREFERRED_SLOTS,
    TEACHER_QUALIFICATION,
    explain,
    summarize,
)
from timetabler.mapper import to_solution
from timetabler.sample_data import generate_school
from timetabler.solver import TimetableOptimizer

PROJECT_ROOT = Path(__file__).resolve().parents[1]

# instance name -> number of classes
SIZES = {"small": 4, "medium": 8, "large": 12}


# ---------- Benchmark Runner ----------

def run_benchmark(
    sizes: List[str],
    seed_count: int,
    time_limit: float,
    output: Path,
) -> None:
    records: List[Dict[str, Any]] = []

    print("Running benchmark (single-threaded, reproducible).")

    for size in sizes:
        if size not in SIZES:
            raise ValueError(f"Unknown instance size '{size}', expected one of {sorted(SIZES)}")
        snapshot = generate_school(term_id=size, n_classes=SIZES[size], seed=0)
        problem = to_solution(snapshot)

        meta = {
            "instance": size,
            "n_classes": len(problem.school_classes),
            "n_teachers": len(problem.teachers),
            "n_rooms": len(problem.rooms),
            "n_time_slots": len(problem.time_slots),
            "n_lessons": len(problem.lessons),
        }

        for seed in range(seed_count):
            settings = SolverSettings(
                time_limit_seconds=time_limit,
                construction_time_limit_seconds=time_limit / 2,
                random_seed=seed,
            )
            result = TimetableOptimizer(settings).solve(problem)
            score = result.solution.score
            penalties = summarize(explain(result.solution, settings.weights))

            def p(name: str) -> int:
                entry = penalties.get(name)
                return entry.hard + entry.soft if entry is not None else 0

            record = {
                **meta,
                "seed": seed,
                "feasible": score.is_feasible,
                "hard_score": score.hard,
                "soft_score": score.soft,
                "wall_time_s": result.stats.get("wall_time_s"),
                "steps": result.stats.get("steps"),
                "construction_feasible": result.stats.get("construction_feasible"),

                # ---- constraint components (flat, explicit) ----
                "penalty_teacher_gap": p(TEACHER_GAP),
                "penalty_class_gap": p(CLASS_GAP),
                "penalty_subject_distribution": p(SUBJECT_DISTRIBUTION),
                "penalty_availability": p(TEACHER_AVAILABILITY),
                "penalty_unqualified": p(TEACHER_QUALIFICATION),
                "reward_preferred": p(TEACHER_PREFERRED_SLOTS),
            }

            records.append(record)

            print(f"[{size}] seed={seed}: score={score} steps={record['steps']:.0f}")

    # ---------- Write CSV ----------

    fieldnames = [
        "instance",
        "seed",
        "feasible",
        "hard_score",
        "soft_score",
        "wall_time_s",
        "steps",
        "construction_feasible",
        "n_classes",
        "n_teachers",
        "n_rooms",
        "n_time_slots",
        "n_lessons",
        "penalty_teacher_gap",
        "penalty_class_gap",
        "penalty_subject_distribution",
        "penalty_availability",
        "penalty_unqualified",
        "reward_preferred",
    ]

    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w", newline="", encoding="utf-8") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
        writer.writeheader()
        for record in records:
            writer.writerow(record)

    print(f"Wrote benchmark results to {output}")


# ---------- CLI ----------

def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    parser.add_argument("--sizes", nargs="+", default=list(SIZES), choices=list(SIZES))
    parser.add_argument("--seed-count", type=int, default=10)
    parser.add_argument("--time-limit", type=float, default=20.0)
    parser.add_argument(
        "--output",
        type=Path,
        default=PROJECT_ROOT / "results.csv",
    )
    parser.add_argument("--log-level", default="WARNING")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging(args.log_level)
    run_benchmark(
        sizes=args.sizes,
        seed_count=args.seed_count,
        time_limit=args.time_limit,
        output=args.output,
    )


if __name__ == "__main__":
    main()
