import pytest

from timetabler.errors import ConflictError, NotFoundError
from timetabler.manager import SolverState
from timetabler.repository import InMemoryTimetableRepository
from timetabler.sample_data import generate_school
from timetabler.service import TimetableSolverService


@pytest.fixture
def service(fast_settings):
    service = TimetableSolverService(
        InMemoryTimetableRepository([generate_school(term_id="term-1", n_classes=2, seed=9)]),
        settings=fast_settings,
    )
    yield service
    service.shutdown()


def test_load_problem_maps_the_term(service) -> None:
    problem = service.load_problem("term-1")
    assert problem.term_id == "term-1"
    assert problem.lessons
    assert "old-lab" not in {r.id for r in problem.rooms}
    assert "teacher-retired" not in {t.id for t in problem.teachers}


def test_unknown_term(service) -> None:
    with pytest.raises(NotFoundError):
        service.start_solving("nope")
    with pytest.raises(NotFoundError):
        service.get_status("nope")


def test_full_cycle(service) -> None:
    assert service.start_solving("term-1").state is SolverState.SOLVING
    with pytest.raises(ConflictError):
        service.start_solving("term-1")

    status = service.manager.wait("term-1", timeout=30)
    assert status.state is SolverState.SOLVED
    solution = service.get_solution("term-1")
    assert solution.score.is_feasible
    assert all(m.score.hard == 0 for m in service.explain_solution(solution))

    applied = service.apply_solution("term-1")
    saved = {l.id: (l.time_slot_id, l.room_id) for l in service.repository.lessons("term-1")}
    assert saved == {lesson_id: (a.time_slot_id, a.room_id) for lesson_id, a in applied.items()}
