"""Term-scoped job control surface over a repository and a SolverManager."""

from __future__ import annotations

from typing import Dict, List, Optional

from .config import SolverSettings
from .constraints import ConstraintMatch, explain
from .domain import Solution
from .errors import ConflictError, NotFoundError
from .manager import JobStatus, SolverManager
from .mapper import to_solution
from .repository import LessonAssignment, TimetableRepository


class TimetableSolverService:
    def __init__(
        self,
        repository: TimetableRepository,
        manager: Optional[SolverManager] = None,
        settings: Optional[SolverSettings] = None,
    ):
        self.repository = repository
        if settings is None:
            settings = manager.settings if manager is not None else SolverSettings()
        self.settings = settings
        self.manager = manager if manager is not None else SolverManager(self.settings)

    def _require_term(self, term_id: str) -> None:
        if not self.repository.term_exists(term_id):
            raise NotFoundError("Term", term_id)

    def load_problem(self, term_id: str) -> Solution:
        self._require_term(term_id)
        return to_solution(self.repository.load_snapshot(term_id))

    def start_solving(self, term_id: str) -> JobStatus:
        self._require_term(term_id)
        # cheap early exit; the manager re-checks under the term's lock
        if self.manager.is_solving(term_id):
            raise ConflictError(f"Solver is already running for term: {term_id}")
        return self.manager.start_solving(term_id, self.load_problem(term_id))

    def get_status(self, term_id: str) -> JobStatus:
        self._require_term(term_id)
        return self.manager.get_status(term_id)

    def stop_solving(self, term_id: str) -> None:
        self._require_term(term_id)
        self.manager.stop_solving(term_id)

    def get_solution(self, term_id: str) -> Solution:
        self._require_term(term_id)
        return self.manager.get_solution(term_id)

    def explain_solution(self, solution: Solution) -> List[ConstraintMatch]:
        return explain(solution, self.settings.weights)

    def apply_solution(self, term_id: str) -> Dict[str, LessonAssignment]:
        self._require_term(term_id)
        return self.manager.apply_solution(
            term_id, lambda assignments: self.repository.save_assignments(term_id, assignments)
        )

    def shutdown(self) -> None:
        self.manager.shutdown()
