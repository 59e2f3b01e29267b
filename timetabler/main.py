import os
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import SolverSettings, configure_logging
from .constraints import ConstraintMatch
from .domain import HardSoftScore, Lesson, Solution, WeekPattern
from .errors import TimetablerError
from .manager import JobStatus, SolverState
from .repository import InMemoryTimetableRepository
from .sample_data import generate_school
from .service import TimetableSolverService


# Pydantic models for responses
class SolverJobResponse(BaseModel):
    term_id: str
    status: SolverState
    score: Optional[str] = None  # e.g. "0hard/-5soft"
    hard_violations: Optional[int] = None
    soft_penalties: Optional[int] = None
    error: Optional[str] = None


class LessonAssignmentResponse(BaseModel):
    lesson_id: str
    school_class_id: str
    school_class_name: str
    teacher_id: str
    teacher_name: str
    subject_id: str
    subject_name: str
    time_slot_id: Optional[str] = None
    day_of_week: Optional[int] = None
    period: Optional[int] = None
    room_id: Optional[str] = None
    room_name: Optional[str] = None
    week_pattern: WeekPattern


class ConstraintViolationResponse(BaseModel):
    constraint_name: str
    score: str  # e.g. "-1hard/0soft"
    affected_lesson_ids: List[str]


class TimetableSolutionResponse(BaseModel):
    term_id: str
    score: Optional[str] = None
    hard_violations: Optional[int] = None
    soft_penalties: Optional[int] = None
    assignments: List[LessonAssignmentResponse]
    violations: List[ConstraintViolationResponse]


def _score_fields(score: Optional[HardSoftScore]) -> dict:
    if score is None:
        return {"score": None, "hard_violations": None, "soft_penalties": None}
    return {"score": str(score), "hard_violations": abs(score.hard), "soft_penalties": abs(score.soft)}


def to_job_response(job: JobStatus) -> SolverJobResponse:
    return SolverJobResponse(term_id=str(job.problem_id), status=job.state, error=job.error, **_score_fields(job.score))


def to_assignment_response(lesson: Lesson) -> LessonAssignmentResponse:
    slot, room = lesson.time_slot, lesson.room
    return LessonAssignmentResponse(
        lesson_id=lesson.id,
        school_class_id=lesson.school_class.id,
        school_class_name=lesson.school_class.name,
        teacher_id=lesson.teacher.id,
        teacher_name=lesson.teacher.name,
        subject_id=lesson.subject.id,
        subject_name=lesson.subject.name,
        time_slot_id=slot.id if slot else None,
        day_of_week=slot.day_of_week if slot else None,
        period=slot.period if slot else None,
        room_id=room.id if room else None,
        room_name=room.name if room else None,
        week_pattern=lesson.week_pattern,
    )


def to_solution_response(solution: Solution, matches: List[ConstraintMatch]) -> TimetableSolutionResponse:
    # only penalties are violations; rewards (preferred slots etc.) are left out
    violations = [
        ConstraintViolationResponse(
            constraint_name=m.constraint_name,
            score=str(m.score),
            affected_lesson_ids=list(m.lesson_ids),
        )
        for m in matches
        if m.score.hard < 0 or m.score.soft < 0
    ]
    return TimetableSolutionResponse(
        term_id=solution.term_id,
        assignments=[to_assignment_response(lesson) for lesson in solution.lessons],
        violations=violations,
        **_score_fields(solution.score),
    )


def get_service(request: Request) -> TimetableSolverService:
    return request.app.state.service


def create_app(service: Optional[TimetableSolverService] = None, setup_logging: bool = False) -> FastAPI:
    if service is None:
        settings = SolverSettings.from_env()
        service = TimetableSolverService(InMemoryTimetableRepository([generate_school()]), settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if setup_logging:
            configure_logging()
        service.manager.start_sweeper()
        yield
        service.shutdown()

    app = FastAPI(title="Timetable Solver API", lifespan=lifespan)
    app.state.service = service

    # CORS setup (simplified for dev)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # allows all origins in dev
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TimetablerError)
    async def timetabler_error_handler(request: Request, exc: TimetablerError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.get("/")
    async def read_root():
        return {"message": "Timetable Solver API"}

    @app.get("/health")
    def health():
        return {"status": "ok"}

    prefix = "/terms/{term_id}/solver"

    @app.post(prefix + "/solve", status_code=status.HTTP_202_ACCEPTED, response_model=SolverJobResponse)
    def start_solving(term_id: str, service: TimetableSolverService = Depends(get_service)):
        return to_job_response(service.start_solving(term_id))

    @app.get(prefix + "/status", response_model=SolverJobResponse)
    def get_status(term_id: str, service: TimetableSolverService = Depends(get_service)):
        return to_job_response(service.get_status(term_id))

    @app.post(prefix + "/stop", status_code=status.HTTP_204_NO_CONTENT)
    def stop_solving(term_id: str, service: TimetableSolverService = Depends(get_service)):
        service.stop_solving(term_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get(prefix + "/solution", response_model=TimetableSolutionResponse)
    def get_solution(term_id: str, service: TimetableSolverService = Depends(get_service)):
        solution = service.get_solution(term_id)
        return to_solution_response(solution, service.explain_solution(solution))

    @app.post(prefix + "/apply", status_code=status.HTTP_204_NO_CONTENT)
    def apply_solution(term_id: str, service: TimetableSolverService = Depends(get_service)):
        service.apply_solution(term_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/example")
    async def example_problem():
        return generate_school().model_dump(mode="json", by_alias=True)

    return app


def build_default_app() -> FastAPI:
    return create_app(setup_logging=True)


app = build_default_app()


def run() -> None:
    """Serve the demo app, same as `uvicorn timetabler.main:app`."""
    uvicorn.run(
        "timetabler.main:app",
        host=os.getenv("TIMETABLER_HOST", "127.0.0.1"),
        port=int(os.getenv("TIMETABLER_PORT", "8000")),
    )
