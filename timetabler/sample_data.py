"""Deterministic sample schools for the demo app, benchmarks and tests."""

from __future__ import annotations

import random
from datetime import time
from typing import Dict, List, Optional, Tuple

from .domain import WeekPattern
from .repository import (
    AvailabilityRecord,
    AvailabilityType,
    LessonRecord,
    ProblemSnapshot,
    QualificationRecord,
    RoomRecord,
    RoomSuitabilityRecord,
    SchoolClassRecord,
    SubjectRecord,
    TeacherRecord,
    TimeSlotRecord,
)

# (id, name, abbreviation, weekly hours per class)
SUBJECTS: List[Tuple[str, str, str, int]] = [
    ("german", "German", "DE", 5),
    ("maths", "Mathematics", "MA", 5),
    ("science", "Science", "SC", 3),
    ("pe", "Physical Education", "PE", 2),
    ("art", "Art", "AR", 1),
    ("music", "Music", "MU", 1),
]
# taught by the class teacher; the rest go to one specialist each
CLASS_TEACHER_SUBJECTS = ("german", "maths", "science")


def time_grid(days: int = 5, periods: int = 6, break_after: Optional[int] = 2) -> List[TimeSlotRecord]:
    """Weekly grid of 45 minute periods; one break slot per day after ``break_after``."""
    slots: List[TimeSlotRecord] = []
    for day in range(days):
        minute = 8 * 60
        number = 1
        for p in range(1, periods + 1):
            slots.append(
                TimeSlotRecord(
                    id=f"ts-{day}-{number}",
                    day_of_week=day,
                    period=number,
                    start_time=time(minute // 60, minute % 60),
                    end_time=time((minute + 45) // 60, (minute + 45) % 60),
                )
            )
            minute += 45
            number += 1
            if break_after is not None and p == break_after:
                slots.append(
                    TimeSlotRecord(
                        id=f"ts-{day}-{number}",
                        day_of_week=day,
                        period=number,
                        start_time=time(minute // 60, minute % 60),
                        end_time=time((minute + 20) // 60, (minute + 20) % 60),
                        is_break=True,
                    )
                )
                minute += 20
                number += 1
    return slots


def generate_school(
    term_id: str = "demo-term",
    n_classes: int = 4,
    days: int = 5,
    periods: int = 6,
    seed: int = 0,
    availability_density: float = 0.05,
) -> ProblemSnapshot:
    """A primary school with ``n_classes`` classes over grades 1-4.

    Every class has a class teacher for German, Maths and Science and shares
    specialists for PE (gym only), Art and Music. Art and Music alternate on
    A/B weeks in the same slot where the solver finds it useful.
    """
    rng = random.Random(seed)
    slots = time_grid(days, periods)
    teaching = [ts for ts in slots if not ts.is_break]
    grades = sorted({1 + (i % 4) for i in range(n_classes)})

    rooms = [
        RoomRecord(id=f"room-{i + 1}", name=f"Room {101 + i}", capacity=28, features='["projector"]')
        for i in range(n_classes)
    ]
    rooms.append(RoomRecord(id="gym", name="Gym", capacity=60, features=["sports"]))
    rooms.append(RoomRecord(id="old-lab", name="Old Lab", capacity=20, active=False))

    subjects = [SubjectRecord(id=sid, name=name, abbreviation=abbr) for sid, name, abbr, _ in SUBJECTS]
    suitabilities = [RoomSuitabilityRecord(room_id="gym", subject_id="pe", required=True)]

    def random_availability(teacher_term: Optional[str]) -> List[AvailabilityRecord]:
        records = []
        for ts in teaching:
            roll = rng.random()
            if roll < availability_density:
                kind = AvailabilityType.BLOCKED
            elif roll < 2 * availability_density:
                kind = AvailabilityType.PREFERRED
            else:
                continue
            records.append(
                AvailabilityRecord(term_id=teacher_term, day_of_week=ts.day_of_week, period=ts.period, type=kind)
            )
        return records

    teachers: List[TeacherRecord] = []
    classes: List[SchoolClassRecord] = []
    for i in range(n_classes):
        grade = 1 + (i % 4)
        class_name = f"{grade}{'abcdefgh'[i // 4 % 8]}"
        teacher_id = f"teacher-{class_name}"
        teachers.append(
            TeacherRecord(
                id=teacher_id,
                name=f"Class Teacher {class_name}",
                abbreviation=f"K{class_name.upper()}",
                availabilities=random_availability(rng.choice([None, term_id])),
                qualifications=[
                    QualificationRecord(subject_id=sid, can_teach_grades=[grade]) for sid in CLASS_TEACHER_SUBJECTS
                ],
            )
        )
        classes.append(
            SchoolClassRecord(
                id=f"class-{class_name}",
                name=class_name,
                grade_level=grade,
                student_count=rng.randint(18, 27),
                class_teacher_id=teacher_id,
            )
        )

    specialists: Dict[str, str] = {}
    for sid, name, abbr, _ in SUBJECTS:
        if sid in CLASS_TEACHER_SUBJECTS:
            continue
        teacher_id = f"teacher-{sid}"
        specialists[sid] = teacher_id
        teachers.append(
            TeacherRecord(
                id=teacher_id,
                name=f"{name} Teacher",
                abbreviation=abbr,
                availabilities=random_availability(None),
                qualifications=[QualificationRecord(subject_id=sid, can_teach_grades=grades)],
            )
        )
    teachers.append(TeacherRecord(id="teacher-retired", name="Retired Teacher", abbreviation="RT", active=False))

    lessons: List[LessonRecord] = []
    for school_class in classes:
        for sid, _, _, hours in SUBJECTS:
            teacher_id = school_class.class_teacher_id if sid in CLASS_TEACHER_SUBJECTS else specialists[sid]
            if sid in ("art", "music"):
                # alternating weeks: Art in A weeks, Music in B weeks
                pattern = WeekPattern.A if sid == "art" else WeekPattern.B
                hours = 1
            else:
                pattern = WeekPattern.EVERY
            for h in range(hours):
                lessons.append(
                    LessonRecord(
                        id=f"lesson-{school_class.name}-{sid}-{h + 1}",
                        class_id=school_class.id,
                        teacher_id=teacher_id,
                        subject_id=sid,
                        week_pattern=pattern,
                    )
                )

    return ProblemSnapshot(
        term_id=term_id,
        time_slots=slots,
        rooms=rooms,
        teachers=teachers,
        school_classes=classes,
        subjects=subjects,
        room_suitabilities=suitabilities,
        lessons=lessons,
    )
