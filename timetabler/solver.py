"""Timetable optimizer: CP-SAT construction followed by late-acceptance local search.

Phase 1 builds a CP-SAT model with one boolean per allowed
(lesson, time slot, room) triple and every hard rule the search can
influence. Each solution CP-SAT reports is copied into the working
Solution and published if it beats the best so far. If CP-SAT finds
nothing in its budget (over-subscribed instances are infeasible as a
model), a greedy first-fit construction takes over so the local search
always starts from a complete assignment.

Phase 2 perturbs the assignment with change and swap moves, scored by
delta through ``ScoreDirector``, and accepts by late acceptance. It stops on
the time budget, the step or unimproved-time limits, or a stop request.
"""

from __future__ import annotations

import logging
import os
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ortools.sat.python import cp_model

from .config import SolverSettings
from .constraints import ScoreDirector, day_periods_of
from .domain import HardSoftScore, Lesson, Room, Solution, TimeSlot, WeekPattern

logger = logging.getLogger(__name__)

# lesson index -> (slot index, room index)
Placement = Dict[int, Tuple[int, int]]


@dataclass
class OptimizerResult:
    solution: Solution
    terminated_early: bool
    stats: Dict[str, float] = field(default_factory=dict)


@dataclass
class _ValueRange:
    """Time slots and rooms a lesson may take without breaking a lesson-local hard rule."""

    slots: List[int]
    rooms: List[int]


def _value_ranges(lessons: List[Lesson], slots: List[TimeSlot], rooms: List[Room]) -> List[_ValueRange]:
    ranges = []
    for lesson in lessons:
        ok_slots = [i for i, ts in enumerate(slots) if not lesson.teacher.is_blocked_at(ts)]
        students = lesson.school_class.student_count
        ok_rooms = [
            i
            for i, room in enumerate(rooms)
            if lesson.subject.allows_room(room)
            and (room.capacity is None or students is None or room.capacity >= students)
        ]
        # No legal value: let the lesson take any value and carry the hard penalty
        ranges.append(
            _ValueRange(
                slots=ok_slots or list(range(len(slots))),
                rooms=ok_rooms or list(range(len(rooms))),
            )
        )
    return ranges


class _ImprovingSolutionCallback(cp_model.CpSolverSolutionCallback):
    """Hands every CP-SAT solution back to the optimizer; honours stop requests."""

    def __init__(
        self,
        variables: Dict[Tuple[int, int, int], cp_model.IntVar],
        on_solution: Callable[[Placement], None],
        stop_event: threading.Event,
    ):
        cp_model.CpSolverSolutionCallback.__init__(self)
        self._variables = variables
        self._on_solution = on_solution
        self._stop_event = stop_event
        self.solution_count = 0

    def on_solution_callback(self) -> None:
        self.solution_count += 1
        placement: Placement = {}
        for (l_idx, s_idx, r_idx), var in self._variables.items():
            if self.Value(var):
                placement[l_idx] = (s_idx, r_idx)
        self._on_solution(placement)
        if self._stop_event.is_set():
            self.StopSearch()


class TimetableOptimizer:
    def __init__(
        self,
        settings: Optional[SolverSettings] = None,
        on_best_solution: Optional[Callable[[Solution], None]] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.settings = settings if settings is not None else SolverSettings()
        self._on_best_solution = on_best_solution if on_best_solution is not None else (lambda solution: None)
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self._rng = random.Random(self.settings.random_seed)
        self._cp_solver: Optional[cp_model.CpSolver] = None
        self._cp_lock = threading.Lock()

        # set up per solve
        self._working: Optional[Solution] = None
        self._director: Optional[ScoreDirector] = None
        self._slots: List[TimeSlot] = []
        self._rooms: List[Room] = []
        self._ranges: List[_ValueRange] = []
        self._best: Optional[Solution] = None
        self._last_improvement = 0.0

    # ---------- public ----------

    def request_stop(self) -> None:
        """Cooperative stop: the search exits at its next step boundary."""
        self.stop_event.set()
        with self._cp_lock:
            if self._cp_solver is not None:
                self._cp_solver.stop_search()

    def solve(self, problem: Solution) -> OptimizerResult:
        """Optimize a private copy of ``problem``; ``problem`` itself is left untouched."""
        started = time.monotonic()
        deadline = started + self.settings.time_limit_seconds
        self._working = problem.clone()
        self._slots = self._working.assignable_time_slots()
        self._rooms = list(self._working.rooms)
        self._director = ScoreDirector(self._working, self.settings.weights)
        self._ranges = _value_ranges(self._working.lessons, self._slots, self._rooms)
        self._best = None
        self._last_improvement = started

        stats: Dict[str, float] = {"lessons": float(len(self._working.lessons))}
        if not self._slots or not self._rooms:
            logger.warning(
                "Term %s has %d assignable slots and %d rooms; nothing to optimize",
                problem.term_id,
                len(self._slots),
                len(self._rooms),
            )
            self._offer_best()
        else:
            stats.update(self._construct(deadline))
            stats.update(self._local_search(deadline))

        assert self._best is not None
        # the final best is published once more on termination
        self._on_best_solution(self._best.clone())
        stats["wall_time_s"] = time.monotonic() - started
        return OptimizerResult(self._best, self.stop_event.is_set(), stats)

    # ---------- publishing ----------

    def _offer_best(self) -> bool:
        """Snapshot the working solution if it beats the best so far."""
        score = self._director.score
        if self._best is not None and score <= self._best.score:
            return False
        snapshot = self._working.clone()
        snapshot.score = score
        self._best = snapshot
        self._last_improvement = time.monotonic()
        logger.debug("Term %s new best score %s", snapshot.term_id, score)
        self._on_best_solution(snapshot.clone())
        return True

    # ---------- phase 1: construction ----------

    def _construct(self, deadline: float) -> Dict[str, float]:
        budget = min(self.settings.construction_time_limit_seconds, deadline - time.monotonic())
        status_name = "SKIPPED"
        solutions = 0
        if budget > 0 and not self.stop_event.is_set():
            status_name, solutions = self._construct_with_cp_sat(budget)
        if not self._working.is_fully_assigned and not self.stop_event.is_set():
            logger.info(
                "CP-SAT construction for term %s ended %s without a full assignment; using first fit",
                self._working.term_id,
                status_name,
            )
            self._construct_first_fit()
        self._offer_best()
        return {
            "construction_solutions": float(solutions),
            "construction_feasible": float(status_name in ("OPTIMAL", "FEASIBLE")),
        }

    def _construct_with_cp_sat(self, budget: float) -> Tuple[str, int]:
        lessons = self._working.lessons
        model = cp_model.CpModel()

        # x[(l, s, r)] == 1 iff lesson l is held at slot s in room r
        x: Dict[Tuple[int, int, int], cp_model.IntVar] = {}
        # Buckets of literals per (resource, slot, week side). A lesson occupies
        # week side "A" if its pattern is EVERY or A, side "B" if EVERY or B;
        # at most one lesson per bucket rules out every overlapping clash.
        buckets: Dict[Tuple[str, str, int, str], List[cp_model.IntVar]] = {}

        def sides(pattern: WeekPattern) -> Tuple[str, ...]:
            if pattern is WeekPattern.EVERY:
                return ("A", "B")
            return (pattern.value,)

        for l_idx, lesson in enumerate(lessons):
            value_range = self._ranges[l_idx]
            choices = []
            for s_idx in value_range.slots:
                for r_idx in value_range.rooms:
                    var = model.NewBoolVar(f"x_l{l_idx}_s{s_idx}_r{r_idx}")
                    x[(l_idx, s_idx, r_idx)] = var
                    choices.append(var)
                    for side in sides(lesson.week_pattern):
                        buckets.setdefault(("teacher", lesson.teacher.id, s_idx, side), []).append(var)
                        buckets.setdefault(("class", lesson.school_class.id, s_idx, side), []).append(var)
                        buckets.setdefault(("room", self._rooms[r_idx].id, s_idx, side), []).append(var)
            model.AddExactlyOne(choices)

        for literals in buckets.values():
            if len(literals) > 1:
                model.AddAtMostOne(literals)

        # Lesson-local soft rewards go into the objective; pairwise soft rules
        # (gaps, subject spread) are left to the local search.
        weights = self.settings.weights
        day_periods = day_periods_of(self._slots)
        reward_terms = []
        for (l_idx, s_idx, r_idx), var in x.items():
            lesson, slot = lessons[l_idx], self._slots[s_idx]
            reward = 0
            if lesson.teacher.prefers_slot(slot):
                reward += weights.preferred_slot
            if (
                lesson.school_class.class_teacher_id == lesson.teacher.id
                and day_periods.get(slot.day_of_week, [None])[0] == slot.period
            ):
                reward += weights.class_teacher_first_period
            if reward:
                reward_terms.append(reward * var)
        if reward_terms:
            model.Maximize(sum(reward_terms))

        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = budget
        # one worker keeps a seeded run repeatable
        if self.settings.random_seed is not None:
            solver.parameters.random_seed = self.settings.random_seed
            solver.parameters.num_workers = 1
        else:
            workers = self.settings.num_search_workers or os.cpu_count() or 1
            solver.parameters.num_workers = max(1, workers)

        callback = _ImprovingSolutionCallback(x, self._apply_placement, self.stop_event)
        with self._cp_lock:
            if self.stop_event.is_set():
                return "SKIPPED", 0
            self._cp_solver = solver
        try:
            status = solver.Solve(model, callback)
        finally:
            with self._cp_lock:
                self._cp_solver = None
        status_name = solver.StatusName(status)
        logger.info(
            "CP-SAT construction for term %s: %s after %.2fs (%d solutions, %d variables)",
            self._working.term_id,
            status_name,
            solver.WallTime(),
            callback.solution_count,
            len(x),
        )
        return status_name, callback.solution_count

    def _apply_placement(self, placement: Placement) -> None:
        for l_idx, (s_idx, r_idx) in placement.items():
            self._director.assign(self._working.lessons[l_idx], self._slots[s_idx], self._rooms[r_idx])
        self._offer_best()

    def _construct_first_fit(self) -> None:
        """Place unassigned lessons, most constrained first, at their cheapest value."""
        director = self._director
        lessons = self._working.lessons
        order = sorted(
            (i for i, lesson in enumerate(lessons) if not lesson.is_assigned),
            key=lambda i: len(self._ranges[i].slots) * len(self._ranges[i].rooms),
        )
        for l_idx in order:
            lesson = lessons[l_idx]
            value_range = self._ranges[l_idx]
            best_value: Optional[Tuple[TimeSlot, Room]] = None
            best_score: Optional[HardSoftScore] = None
            for s_idx in value_range.slots:
                for r_idx in value_range.rooms:
                    slot, room = self._slots[s_idx], self._rooms[r_idx]
                    score = director.assign(lesson, slot, room)
                    if best_score is None or score > best_score:
                        best_value, best_score = (slot, room), score
            director.assign(lesson, *best_value)

    # ---------- phase 2: local search ----------

    def _local_search(self, deadline: float) -> Dict[str, float]:
        lessons = self._working.lessons
        director = self._director
        size = max(1, self.settings.late_acceptance_size)
        history: List[HardSoftScore] = [director.score] * size
        step = 0
        accepted = 0
        while not self._should_terminate(step, deadline):
            if not lessons:
                break
            undo = self._random_move(lessons)
            if undo is None:
                step += 1
                continue
            before = undo[0]
            current = director.score
            index = step % size
            if current >= history[index] or current >= before:
                accepted += 1
                if current > self._best.score:
                    self._offer_best()
            else:
                for lesson, slot, room in reversed(undo[1]):
                    director.assign(lesson, slot, room)
            history[index] = director.score
            step += 1
        logger.info(
            "Local search for term %s finished after %d steps (%d accepted), best %s",
            self._working.term_id,
            step,
            accepted,
            self._best.score,
        )
        return {"steps": float(step), "accepted_moves": float(accepted)}

    def _should_terminate(self, step: int, deadline: float) -> bool:
        if self.stop_event.is_set():
            return True
        now = time.monotonic()
        if now >= deadline:
            return True
        if self.settings.step_limit is not None and step >= self.settings.step_limit:
            return True
        limit = self.settings.unimproved_seconds_limit
        return limit is not None and now - self._last_improvement >= limit

    def _random_move(
        self, lessons: List[Lesson]
    ) -> Optional[Tuple[HardSoftScore, List[Tuple[Lesson, Optional[TimeSlot], Optional[Room]]]]]:
        """Apply a random change or swap move; returns (score before, undo list)."""
        rng = self._rng
        director = self._director
        before = director.score
        if len(lessons) > 1 and rng.random() < 0.3:
            first, second = rng.sample(lessons, 2)
            if first.time_slot is None or second.time_slot is None or first.time_slot == second.time_slot:
                return None
            undo = [(first, first.time_slot, first.room), (second, second.time_slot, second.room)]
            director.swap_slots(first, second)
            return before, undo

        l_idx = rng.randrange(len(lessons))
        lesson = lessons[l_idx]
        value_range = self._ranges[l_idx]
        slot, room = lesson.time_slot, lesson.room
        # < 0.2 moves both variables, < 0.5 the slot only, otherwise the room only
        kind = rng.random()
        if kind < 0.5 or slot is None:
            slot = self._slots[rng.choice(value_range.slots)]
        if kind < 0.2 or kind >= 0.5 or room is None:
            room = self._rooms[rng.choice(value_range.rooms)]
        if slot == lesson.time_slot and room == lesson.room:
            return None
        undo = [(lesson, lesson.time_slot, lesson.room)]
        director.assign(lesson, slot, room)
        return before, undo
