"""Collaborator contract: read-only term snapshots in, assignment batches out.

Persistence lives outside this package. Whatever stores schools, teachers
and lessons hands the solver a ``ProblemSnapshot`` per term and accepts the
solved ``LessonAssignment`` map back in a single all-or-nothing call.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import time
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .domain import WeekPattern
from .errors import NotFoundError


class AvailabilityType(str, Enum):
    AVAILABLE = "AVAILABLE"
    BLOCKED = "BLOCKED"
    PREFERRED = "PREFERRED"


class Record(BaseModel):
    # accept both camelCase (wire) and snake_case (python) field names
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimeSlotRecord(Record):
    id: str
    day_of_week: int = Field(ge=0, le=4)
    period: int
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_break: bool = False


class RoomRecord(Record):
    id: str
    name: str
    capacity: Optional[int] = None
    # schema-less: JSON text, a list, or a comma separated string
    features: Any = None
    active: bool = True


class AvailabilityRecord(Record):
    term_id: Optional[str] = None  # None applies to every term
    day_of_week: int
    period: int
    type: AvailabilityType


class QualificationRecord(Record):
    subject_id: str
    can_teach_grades: Optional[List[int]] = None


class TeacherRecord(Record):
    id: str
    name: str
    abbreviation: str = ""
    max_hours_per_week: int = 28
    active: bool = True
    availabilities: List[AvailabilityRecord] = Field(default_factory=list)
    qualifications: List[QualificationRecord] = Field(default_factory=list)


class SchoolClassRecord(Record):
    id: str
    name: str
    grade_level: int
    student_count: Optional[int] = None
    class_teacher_id: Optional[str] = None
    active: bool = True


class SubjectRecord(Record):
    id: str
    name: str
    abbreviation: str = ""


class RoomSuitabilityRecord(Record):
    room_id: str
    subject_id: str
    required: bool = False


class LessonRecord(Record):
    id: str
    class_id: str
    teacher_id: str
    subject_id: str
    week_pattern: WeekPattern = WeekPattern.EVERY
    time_slot_id: Optional[str] = None
    room_id: Optional[str] = None


class ProblemSnapshot(Record):
    term_id: str
    time_slots: List[TimeSlotRecord] = Field(default_factory=list)
    rooms: List[RoomRecord] = Field(default_factory=list)
    teachers: List[TeacherRecord] = Field(default_factory=list)
    school_classes: List[SchoolClassRecord] = Field(default_factory=list)
    subjects: List[SubjectRecord] = Field(default_factory=list)
    room_suitabilities: List[RoomSuitabilityRecord] = Field(default_factory=list)
    lessons: List[LessonRecord] = Field(default_factory=list)


@dataclass(frozen=True)
class LessonAssignment:
    """Write-back form of one solved lesson; either id may be None."""

    time_slot_id: Optional[str]
    room_id: Optional[str]


class TimetableRepository(Protocol):
    def term_exists(self, term_id: str) -> bool: ...

    def load_snapshot(self, term_id: str) -> ProblemSnapshot: ...

    def save_assignments(self, term_id: str, assignments: Dict[str, LessonAssignment]) -> None:
        """Persist every assignment or none of them."""
        ...


class InMemoryTimetableRepository:
    """Dictionary-backed repository used by the demo app, benchmarks and tests."""

    def __init__(self, snapshots: Optional[List[ProblemSnapshot]] = None):
        self._lock = threading.Lock()
        self._snapshots: Dict[str, ProblemSnapshot] = {}
        for snapshot in snapshots or []:
            self.add_term(snapshot)

    def add_term(self, snapshot: ProblemSnapshot) -> None:
        with self._lock:
            self._snapshots[snapshot.term_id] = snapshot.model_copy(deep=True)

    def term_exists(self, term_id: str) -> bool:
        with self._lock:
            return term_id in self._snapshots

    def load_snapshot(self, term_id: str) -> ProblemSnapshot:
        with self._lock:
            snapshot = self._snapshots.get(term_id)
            if snapshot is None:
                raise NotFoundError("Term", term_id)
            return snapshot.model_copy(deep=True)

    def lessons(self, term_id: str) -> List[LessonRecord]:
        return self.load_snapshot(term_id).lessons

    def save_assignments(self, term_id: str, assignments: Dict[str, LessonAssignment]) -> None:
        with self._lock:
            snapshot = self._snapshots.get(term_id)
            if snapshot is None:
                raise NotFoundError("Term", term_id)
            lesson_ids = {lesson.id for lesson in snapshot.lessons}
            slot_ids = {ts.id for ts in snapshot.time_slots}
            room_ids = {room.id for room in snapshot.rooms}
            # validate the whole batch before touching anything
            for lesson_id, assignment in assignments.items():
                if lesson_id not in lesson_ids:
                    raise NotFoundError("Lesson", lesson_id)
                if assignment.time_slot_id is not None and assignment.time_slot_id not in slot_ids:
                    raise NotFoundError("TimeSlot", assignment.time_slot_id)
                if assignment.room_id is not None and assignment.room_id not in room_ids:
                    raise NotFoundError("Room", assignment.room_id)

            updated = []
            for lesson in snapshot.lessons:
                assignment = assignments.get(lesson.id)
                if assignment is None:
                    updated.append(lesson)
                else:
                    updated.append(
                        lesson.model_copy(
                            update={"time_slot_id": assignment.time_slot_id, "room_id": assignment.room_id}
                        )
                    )
            self._snapshots[term_id] = snapshot.model_copy(update={"lessons": updated})
