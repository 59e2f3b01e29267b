"""Runs one background optimization per problem id and tracks its lifecycle.

Job states::

    NOT_SOLVING -> SOLVING -> SOLVED | TERMINATED_EARLY | FAILED
         ^                                |
         +-------------- apply -----------+

Every transition for a problem id happens under that id's lock, so a start
and an apply for the same term cannot interleave. Workers never take the
lock while searching; they publish into the SolutionCache, whose
per-key publish is atomic and never replaces a better score.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Hashable, Iterator, Optional

from .cache import SolutionCache
from .config import SolverSettings
from .domain import HardSoftScore, Solution
from .errors import ConflictError, InvalidInputError, NotAvailableError, OptimizerFailure
from .mapper import extract_assignments
from .repository import LessonAssignment
from .solver import TimetableOptimizer

logger = logging.getLogger(__name__)

WriteBack = Callable[[Dict[str, LessonAssignment]], None]


class SolverState(str, Enum):
    NOT_SOLVING = "NOT_SOLVING"
    SOLVING = "SOLVING"
    SOLVED = "SOLVED"
    TERMINATED_EARLY = "TERMINATED_EARLY"
    FAILED = "FAILED"


@dataclass(frozen=True)
class JobStatus:
    problem_id: Hashable
    state: SolverState
    score: Optional[HardSoftScore] = None
    error: Optional[str] = None


@dataclass
class SolverJob:
    problem_id: Hashable
    state: SolverState
    optimizer: TimetableOptimizer
    future: Optional[Future] = None
    error: Optional[str] = None


class SolverManager:
    def __init__(
        self,
        settings: Optional[SolverSettings] = None,
        cache: Optional[SolutionCache] = None,
        optimizer_factory: Optional[Callable[..., TimetableOptimizer]] = None,
    ):
        self.settings = settings if settings is not None else SolverSettings()
        if cache is None:
            cache = SolutionCache(ttl_seconds=self.settings.solution_ttl_seconds)
        self.cache = cache
        self._optimizer_factory = optimizer_factory if optimizer_factory is not None else TimetableOptimizer
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self.settings.max_concurrent_jobs),
            thread_name_prefix="timetable-solver",
        )
        self._table_lock = threading.Lock()
        self._jobs: Dict[Hashable, SolverJob] = {}
        self._locks: Dict[Hashable, threading.RLock] = {}

    def _lock_for(self, problem_id: Hashable) -> threading.RLock:
        with self._table_lock:
            return self._locks.setdefault(problem_id, threading.RLock())

    @contextmanager
    def _locked(self, problem_id: Hashable) -> Iterator[None]:
        """Hold the lock of ``problem_id``; retries if apply dropped it while we waited."""
        while True:
            lock = self._lock_for(problem_id)
            with lock:
                with self._table_lock:
                    current = self._locks.get(problem_id) is lock
                if current:
                    yield
                    return

    def _job(self, problem_id: Hashable) -> Optional[SolverJob]:
        with self._table_lock:
            return self._jobs.get(problem_id)

    # ---------- job control ----------

    def start_solving(self, problem_id: Hashable, problem: Solution) -> JobStatus:
        with self._locked(problem_id):
            job = self._job(problem_id)
            if job is not None and job.state is SolverState.SOLVING:
                raise ConflictError(f"Solver is already running for {problem_id}")
            if not problem.lessons:
                raise InvalidInputError(f"No lessons to solve for {problem_id}")

            self.cache.clear(problem_id)
            optimizer = self._optimizer_factory(
                settings=self.settings,
                on_best_solution=lambda snapshot: self.cache.publish(problem_id, snapshot),
                stop_event=threading.Event(),
            )
            job = SolverJob(problem_id=problem_id, state=SolverState.SOLVING, optimizer=optimizer)
            with self._table_lock:
                self._jobs[problem_id] = job
            job.future = self._executor.submit(self._run, job, problem)
            logger.info("Started solving %s (%d lessons)", problem_id, len(problem.lessons))
            return JobStatus(problem_id, SolverState.SOLVING)

    def _run(self, job: SolverJob, problem: Solution) -> None:
        problem_id = job.problem_id
        try:
            result = job.optimizer.solve(problem)
        except Exception as exc:
            # keep the pool alive; the failure becomes the job's terminal state
            failure = OptimizerFailure(f"Optimizer failed for {problem_id}: {exc}")
            logger.exception("%s", failure)
            with self._locked(problem_id):
                job.state = SolverState.FAILED
                job.error = str(failure)
            return
        with self._locked(problem_id):
            job.state = SolverState.TERMINATED_EARLY if result.terminated_early else SolverState.SOLVED
        logger.info(
            "Solving %s finished: %s, score %s, %.0f steps in %.2fs",
            problem_id,
            job.state.value,
            result.solution.score,
            result.stats.get("steps", 0.0),
            result.stats.get("wall_time_s", 0.0),
        )

    def get_status(self, problem_id: Hashable) -> JobStatus:
        with self._locked(problem_id):
            job = self._job(problem_id)
            best = self.cache.get(problem_id)
            score = best.score if best is not None else None
            if job is None:
                return JobStatus(problem_id, SolverState.NOT_SOLVING, score)
            return JobStatus(problem_id, job.state, score, job.error)

    def is_solving(self, problem_id: Hashable) -> bool:
        job = self._job(problem_id)
        return job is not None and job.state is SolverState.SOLVING

    def stop_solving(self, problem_id: Hashable) -> None:
        """Ask the worker to stop; it exits at its next step, not necessarily before this returns."""
        with self._locked(problem_id):
            job = self._job(problem_id)
            if job is None or job.state is not SolverState.SOLVING:
                return
            logger.info("Stop requested for %s", problem_id)
            job.optimizer.request_stop()

    def get_solution(self, problem_id: Hashable) -> Solution:
        solution = self.cache.get(problem_id)
        if solution is None:
            raise NotAvailableError(f"No solution available for {problem_id}")
        return solution

    def apply_solution(self, problem_id: Hashable, write_back: WriteBack) -> Dict[str, LessonAssignment]:
        """Hand the cached best assignments to ``write_back`` and forget the job.

        The cache entry is only discarded once ``write_back`` returns; if it
        raises, the solution stays cached and the error propagates.
        """
        with self._locked(problem_id):
            job = self._job(problem_id)
            if job is not None and job.state is SolverState.SOLVING:
                raise ConflictError("Cannot apply solution while solver is still running")
            solution = self.cache.get(problem_id)
            if solution is None:
                raise NotAvailableError(f"No solution available to apply for {problem_id}")

            assignments = extract_assignments(solution)
            write_back(assignments)

            self.cache.clear(problem_id)
            with self._table_lock:
                self._jobs.pop(problem_id, None)
                self._locks.pop(problem_id, None)
            logger.info("Applied %d lesson assignments for %s", len(assignments), problem_id)
            return assignments

    def wait(self, problem_id: Hashable, timeout: Optional[float] = None) -> JobStatus:
        """Block until the current job of ``problem_id`` has finished."""
        job = self._job(problem_id)
        if job is not None and job.future is not None:
            try:
                job.future.result(timeout=timeout)
            except FutureTimeoutError:
                pass
        return self.get_status(problem_id)

    # ---------- lifecycle ----------

    def start_sweeper(self) -> None:
        self.cache.start_sweeper(self.settings.sweep_interval_seconds)

    def shutdown(self, wait: bool = True) -> None:
        with self._table_lock:
            jobs = list(self._jobs.values())
        for job in jobs:
            if job.state is SolverState.SOLVING:
                job.optimizer.request_stop()
        self._executor.shutdown(wait=wait, cancel_futures=True)
        self.cache.stop_sweeper()
