"""Converts between collaborator snapshots and the planning domain."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, FrozenSet, Set

from .domain import Lesson, Room, SchoolClass, Solution, Subject, Teacher, TimeSlot, day_period_key
from .repository import (
    AvailabilityType,
    LessonAssignment,
    ProblemSnapshot,
    RoomRecord,
    SchoolClassRecord,
    SubjectRecord,
    TeacherRecord,
    TimeSlotRecord,
)

logger = logging.getLogger(__name__)


def parse_features(raw: Any) -> FrozenSet[str]:
    """Room features arrive as JSON text, a list, a comma separated string or nothing."""
    if raw is None:
        return frozenset()
    if isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset(str(f).strip() for f in raw if str(f).strip())
    if isinstance(raw, str):
        text = raw.strip()
        if not text or text == "[]":
            return frozenset()
        if text.startswith("["):
            try:
                return parse_features(json.loads(text))
            except json.JSONDecodeError:
                logger.warning("Ignoring unparseable room features: %r", raw)
                return frozenset()
        return frozenset(part.strip() for part in text.split(",") if part.strip())
    logger.warning("Ignoring room features of unsupported type %s", type(raw).__name__)
    return frozenset()


def to_time_slot(record: TimeSlotRecord) -> TimeSlot:
    return TimeSlot(
        id=record.id,
        day_of_week=record.day_of_week,
        period=record.period,
        start_time=record.start_time,
        end_time=record.end_time,
        is_break=record.is_break,
    )


def to_room(record: RoomRecord) -> Room:
    return Room(id=record.id, name=record.name, capacity=record.capacity, features=parse_features(record.features))


def to_teacher(record: TeacherRecord, term_id: str) -> Teacher:
    blocked: Set[str] = set()
    preferred: Set[str] = set()
    for avail in record.availabilities:
        # global entries (no term) and entries for this term both apply
        if avail.term_id is not None and avail.term_id != term_id:
            continue
        key = day_period_key(avail.day_of_week, avail.period)
        if avail.type is AvailabilityType.BLOCKED:
            blocked.add(key)
        elif avail.type is AvailabilityType.PREFERRED:
            preferred.add(key)

    qualifications: Dict[str, FrozenSet[int]] = {}
    for qual in record.qualifications:
        grades = frozenset(qual.can_teach_grades or ())
        qualifications[qual.subject_id] = qualifications.get(qual.subject_id, frozenset()) | grades

    return Teacher(
        id=record.id,
        name=record.name,
        abbreviation=record.abbreviation,
        max_hours_per_week=record.max_hours_per_week,
        blocked_slots=frozenset(blocked),
        preferred_slots=frozenset(preferred),
        qualifications=qualifications,
    )


def to_school_class(record: SchoolClassRecord) -> SchoolClass:
    return SchoolClass(
        id=record.id,
        name=record.name,
        grade_level=record.grade_level,
        student_count=record.student_count,
        class_teacher_id=record.class_teacher_id,
    )


def to_subject(record: SubjectRecord, required_room_ids: FrozenSet[str]) -> Subject:
    return Subject(
        id=record.id,
        name=record.name,
        abbreviation=record.abbreviation,
        required_room_ids=required_room_ids,
    )


def to_solution(snapshot: ProblemSnapshot) -> Solution:
    """Build the planning Solution for one term from its snapshot."""
    term_id = snapshot.term_id
    time_slots = [to_time_slot(ts) for ts in snapshot.time_slots if not ts.is_break]
    rooms = [to_room(r) for r in snapshot.rooms if r.active]
    teachers = [to_teacher(t, term_id) for t in snapshot.teachers if t.active]
    school_classes = [to_school_class(c) for c in snapshot.school_classes if c.active]

    required: Dict[str, Set[str]] = {}
    for link in snapshot.room_suitabilities:
        if link.required:
            required.setdefault(link.subject_id, set()).add(link.room_id)
    subjects = [to_subject(s, frozenset(required.get(s.id, ()))) for s in snapshot.subjects]

    slot_map = {ts.id: ts for ts in time_slots}
    room_map = {r.id: r for r in rooms}
    teacher_map = {t.id: t for t in teachers}
    class_map = {c.id: c for c in school_classes}
    subject_map = {s.id: s for s in subjects}

    lessons = []
    for record in snapshot.lessons:
        school_class = class_map.get(record.class_id)
        teacher = teacher_map.get(record.teacher_id)
        subject = subject_map.get(record.subject_id)
        if school_class is None or teacher is None or subject is None:
            logger.warning(
                "Skipping lesson %s of term %s: inactive or unknown class/teacher/subject",
                record.id,
                term_id,
            )
            continue
        lessons.append(
            Lesson(
                id=record.id,
                school_class=school_class,
                teacher=teacher,
                subject=subject,
                week_pattern=record.week_pattern,
                # stale references to breaks or inactive rooms start unassigned
                time_slot=slot_map.get(record.time_slot_id) if record.time_slot_id else None,
                room=room_map.get(record.room_id) if record.room_id else None,
            )
        )

    return Solution(
        term_id=term_id,
        time_slots=time_slots,
        rooms=rooms,
        teachers=teachers,
        school_classes=school_classes,
        subjects=subjects,
        lessons=lessons,
    )


def extract_assignments(solution: Solution) -> Dict[str, LessonAssignment]:
    """lesson id -> (time slot id, room id) for write-back."""
    return {
        lesson.id: LessonAssignment(
            time_slot_id=lesson.time_slot.id if lesson.time_slot is not None else None,
            room_id=lesson.room.id if lesson.room is not None else None,
        )
        for lesson in solution.lessons
    }
