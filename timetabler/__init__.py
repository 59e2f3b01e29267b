"""School timetable scheduling: constraint scoring, background solving and a FastAPI surface."""

from .domain import HardSoftScore, Lesson, Room, SchoolClass, Solution, Subject, Teacher, TimeSlot, WeekPattern
from .manager import JobStatus, SolverManager, SolverState
from .service import TimetableSolverService

__all__ = [
    "HardSoftScore",
    "JobStatus",
    "Lesson",
    "Room",
    "SchoolClass",
    "Solution",
    "SolverManager",
    "SolverState",
    "Subject",
    "Teacher",
    "TimeSlot",
    "TimetableSolverService",
    "WeekPattern",
]
