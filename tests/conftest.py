from typing import List, Optional

import pytest

from timetabler.config import SolverSettings
from timetabler.domain import Lesson, Room, SchoolClass, Solution, Subject, Teacher, TimeSlot, WeekPattern


def grid(days: int = 5, periods: int = 6) -> List[TimeSlot]:
    return [
        TimeSlot(id=f"ts-{d}-{p}", day_of_week=d, period=p)
        for d in range(days)
        for p in range(1, periods + 1)
    ]


def teacher(tid: str, subjects=("maths",), grades=(1,), **kwargs) -> Teacher:
    return Teacher(
        id=tid,
        name=tid.title(),
        qualifications={s: frozenset(grades) for s in subjects},
        **kwargs,
    )


def lesson(
    lid: str,
    school_class: SchoolClass,
    t: Teacher,
    subject: Subject,
    pattern: WeekPattern = WeekPattern.EVERY,
    slot: Optional[TimeSlot] = None,
    room: Optional[Room] = None,
) -> Lesson:
    return Lesson(lid, school_class, t, subject, pattern, slot, room)


def solution_of(lessons: List[Lesson], time_slots=None, rooms=None) -> Solution:
    time_slots = time_slots if time_slots is not None else grid()
    rooms = rooms if rooms is not None else sorted({l.room for l in lessons if l.room}, key=lambda r: r.id)
    return Solution(
        term_id="term",
        time_slots=time_slots,
        rooms=rooms,
        teachers=sorted({l.teacher for l in lessons}, key=lambda t: t.id),
        school_classes=sorted({l.school_class for l in lessons}, key=lambda c: c.id),
        subjects=sorted({l.subject for l in lessons}, key=lambda s: s.id),
        lessons=lessons,
    )


@pytest.fixture
def maths() -> Subject:
    return Subject(id="maths", name="Mathematics", abbreviation="MA")


@pytest.fixture
def class_1a() -> SchoolClass:
    return SchoolClass(id="class-1a", name="1a", grade_level=1, student_count=25)


@pytest.fixture
def room_101() -> Room:
    return Room(id="room-101", name="Room 101", capacity=30)


@pytest.fixture
def fast_settings() -> SolverSettings:
    return SolverSettings(
        time_limit_seconds=3.0,
        construction_time_limit_seconds=2.0,
        random_seed=7,
        max_concurrent_jobs=2,
    )
