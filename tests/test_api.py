import time

import pytest
from fastapi.testclient import TestClient

from timetabler.main import create_app
from timetabler.manager import SolverState
from timetabler.repository import InMemoryTimetableRepository, ProblemSnapshot
from timetabler.sample_data import generate_school
from timetabler.service import TimetableSolverService

TERM = "term-1"
BASE = f"/terms/{TERM}/solver"


@pytest.fixture
def repository():
    return InMemoryTimetableRepository(
        [generate_school(term_id=TERM, n_classes=2, seed=4), ProblemSnapshot(term_id="empty-term")]
    )


@pytest.fixture
def client(repository, fast_settings):
    service = TimetableSolverService(repository, settings=fast_settings)
    with TestClient(create_app(service)) as client:
        yield client


def wait_until_done(client, base=BASE, timeout=30.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"{base}/status").json()
        if body["status"] != SolverState.SOLVING.value:
            return body
        time.sleep(0.1)
    raise AssertionError("solver did not finish in time")


def test_root_and_health(client) -> None:
    assert client.get("/").json() == {"message": "Timetable Solver API"}
    assert client.get("/health").status_code == 200


def test_example_uses_camel_case(client) -> None:
    body = client.get("/example").json()
    assert body["termId"] == "demo-term"
    assert "timeSlots" in body


@pytest.mark.parametrize(
    "method, action",
    [("post", "solve"), ("get", "status"), ("post", "stop"), ("get", "solution"), ("post", "apply")],
)
def test_unknown_term_is_404(client, method, action) -> None:
    response = getattr(client, method)(f"/terms/nope/solver/{action}")
    assert response.status_code == 404
    assert "Term not found" in response.json()["detail"]


def test_status_before_solving(client) -> None:
    body = client.get(f"{BASE}/status").json()
    assert body["status"] == "NOT_SOLVING"
    assert body["score"] is None


def test_solution_before_solving_is_400(client) -> None:
    assert client.get(f"{BASE}/solution").status_code == 400
    assert client.post(f"{BASE}/apply").status_code == 400


def test_term_without_lessons_is_400(client) -> None:
    assert client.post("/terms/empty-term/solver/solve").status_code == 400


def test_solve_then_apply(client, repository) -> None:
    started = client.post(f"{BASE}/solve")
    assert started.status_code == 202
    assert started.json()["status"] == "SOLVING"
    assert client.post(f"{BASE}/solve").status_code == 409
    assert client.post(f"{BASE}/apply").status_code == 409

    done = wait_until_done(client)
    assert done["status"] == "SOLVED"
    assert done["hard_violations"] == 0

    solution = client.get(f"{BASE}/solution")
    assert solution.status_code == 200
    body = solution.json()
    assert body["score"].startswith("0hard/")
    assert len(body["assignments"]) == len(repository.lessons(TERM))
    assert all(a["time_slot_id"] and a["room_id"] for a in body["assignments"])
    assert all(v["score"].startswith("0hard/") for v in body["violations"])

    assert client.post(f"{BASE}/apply").status_code == 204
    saved = repository.lessons(TERM)
    assert all(l.time_slot_id is not None and l.room_id is not None for l in saved)
    assert client.get(f"{BASE}/status").json()["status"] == "NOT_SOLVING"
    assert client.get(f"{BASE}/solution").status_code == 400


def test_stop_ends_the_job_early(client) -> None:
    assert client.post(f"{BASE}/solve").status_code == 202
    assert client.post(f"{BASE}/stop").status_code == 204
    done = wait_until_done(client)
    assert done["status"] in ("TERMINATED_EARLY", "SOLVED")
    # stopping an idle job is harmless
    assert client.post(f"{BASE}/stop").status_code == 204


def test_logging_is_configured_at_startup_only_on_request(repository, fast_settings, monkeypatch) -> None:
    import timetabler.main as main_module

    calls = []
    monkeypatch.setattr(main_module, "configure_logging", lambda *args: calls.append(args))

    quiet = create_app(TimetableSolverService(repository, settings=fast_settings))
    with TestClient(quiet):
        pass
    assert calls == []

    app = create_app(TimetableSolverService(repository, settings=fast_settings), setup_logging=True)
    assert calls == []
    with TestClient(app):
        assert len(calls) == 1
