"""Planning domain for the timetable solver.

Problem facts (time slots, rooms, teachers, classes, subjects) are frozen
dataclasses that compare and hash by ``id`` only, so two records with the
same identifier are the same entity even when other fields differ. Lessons
are the planning entities: class, teacher, subject and week pattern are
fixed, while ``time_slot`` and ``room`` are the decision variables the
solver moves around.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional


class WeekPattern(str, Enum):
    EVERY = "EVERY"
    A = "A"
    B = "B"

    def overlaps(self, other: "WeekPattern") -> bool:
        # EVERY occurs in both weeks; A and B never share a week
        if self is WeekPattern.EVERY or other is WeekPattern.EVERY:
            return True
        return self is other


@dataclass(frozen=True, order=True)
class HardSoftScore:
    """Two-level score compared hard-first, then soft. Higher is better."""

    hard: int = 0
    soft: int = 0

    def __add__(self, other: "HardSoftScore") -> "HardSoftScore":
        return HardSoftScore(self.hard + other.hard, self.soft + other.soft)

    def __sub__(self, other: "HardSoftScore") -> "HardSoftScore":
        return HardSoftScore(self.hard - other.hard, self.soft - other.soft)

    def __neg__(self) -> "HardSoftScore":
        return HardSoftScore(-self.hard, -self.soft)

    @property
    def is_feasible(self) -> bool:
        return self.hard >= 0

    def __str__(self) -> str:
        return f"{self.hard}hard/{self.soft}soft"

    @classmethod
    def parse(cls, text: str) -> "HardSoftScore":
        hard_part, soft_part = text.split("/")
        return cls(int(hard_part[: -len("hard")]), int(soft_part[: -len("soft")]))


ZERO_SCORE = HardSoftScore(0, 0)


# ---------- Problem facts ----------


def day_period_key(day_of_week: int, period: int) -> str:
    return f"{day_of_week}-{period}"


@dataclass(frozen=True)
class TimeSlot:
    id: str
    day_of_week: int = field(compare=False)
    period: int = field(compare=False)
    start_time: Optional[time] = field(default=None, compare=False)
    end_time: Optional[time] = field(default=None, compare=False)
    is_break: bool = field(default=False, compare=False)

    @property
    def day_period_key(self) -> str:
        return day_period_key(self.day_of_week, self.period)

    def __str__(self) -> str:
        return self.day_period_key


@dataclass(frozen=True)
class Room:
    id: str
    name: str = field(compare=False)
    capacity: Optional[int] = field(default=None, compare=False)
    features: FrozenSet[str] = field(default=frozenset(), compare=False)

    def has_features(self, required: Optional[Iterable[str]]) -> bool:
        if not required:
            return True
        return self.features.issuperset(required)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Teacher:
    id: str
    name: str = field(compare=False)
    abbreviation: str = field(default="", compare=False)
    max_hours_per_week: int = field(default=28, compare=False)
    # "day-period" keys, see day_period_key()
    blocked_slots: FrozenSet[str] = field(default=frozenset(), compare=False)
    preferred_slots: FrozenSet[str] = field(default=frozenset(), compare=False)
    # subject id -> grade levels the teacher may teach it at
    qualifications: Dict[str, FrozenSet[int]] = field(default_factory=dict, compare=False)

    def is_blocked_at(self, time_slot: Optional[TimeSlot]) -> bool:
        return time_slot is not None and time_slot.day_period_key in self.blocked_slots

    def prefers_slot(self, time_slot: Optional[TimeSlot]) -> bool:
        return time_slot is not None and time_slot.day_period_key in self.preferred_slots

    def is_qualified_for(self, subject_id: str, grade_level: int) -> bool:
        return grade_level in self.qualifications.get(subject_id, frozenset())

    def __str__(self) -> str:
        return self.abbreviation or self.name


@dataclass(frozen=True)
class SchoolClass:
    id: str
    name: str = field(compare=False)
    grade_level: int = field(compare=False)
    student_count: Optional[int] = field(default=None, compare=False)
    class_teacher_id: Optional[str] = field(default=None, compare=False)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Subject:
    id: str
    name: str = field(compare=False)
    abbreviation: str = field(default="", compare=False)
    # Rooms linked with a required suitability; empty means any room will do.
    required_room_ids: FrozenSet[str] = field(default=frozenset(), compare=False)

    def allows_room(self, room: Optional[Room]) -> bool:
        if room is None or not self.required_room_ids:
            return True
        return room.id in self.required_room_ids

    def __str__(self) -> str:
        return self.abbreviation or self.name


# ---------- Planning entity ----------


class Lesson:
    """A weekly lesson; the solver assigns its time slot and room."""

    __slots__ = ("_id", "_school_class", "_teacher", "_subject", "_week_pattern", "time_slot", "room")

    def __init__(
        self,
        id: str,
        school_class: SchoolClass,
        teacher: Teacher,
        subject: Subject,
        week_pattern: WeekPattern = WeekPattern.EVERY,
        time_slot: Optional[TimeSlot] = None,
        room: Optional[Room] = None,
    ):
        self._id = id
        self._school_class = school_class
        self._teacher = teacher
        self._subject = subject
        self._week_pattern = WeekPattern(week_pattern)
        self.time_slot = time_slot
        self.room = room

    @property
    def id(self) -> str:
        return self._id

    @property
    def school_class(self) -> SchoolClass:
        return self._school_class

    @property
    def teacher(self) -> Teacher:
        return self._teacher

    @property
    def subject(self) -> Subject:
        return self._subject

    @property
    def week_pattern(self) -> WeekPattern:
        return self._week_pattern

    @property
    def is_assigned(self) -> bool:
        return self.time_slot is not None and self.room is not None

    def week_patterns_overlap(self, other: "Lesson") -> bool:
        return self._week_pattern.overlaps(other._week_pattern)

    def copy(self) -> "Lesson":
        return Lesson(
            self._id,
            self._school_class,
            self._teacher,
            self._subject,
            self._week_pattern,
            self.time_slot,
            self.room,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Lesson):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return (
            f"Lesson({self._id!r}, {self._school_class}, {self._subject}, {self._teacher}, "
            f"{self._week_pattern.value}, slot={self.time_slot}, room={self.room})"
        )


# ---------- Solution ----------


@dataclass
class Solution:
    """One term's timetable: shared facts, the lesson list and its score."""

    term_id: str
    time_slots: List[TimeSlot]
    rooms: List[Room]
    teachers: List[Teacher]
    school_classes: List[SchoolClass]
    subjects: List[Subject]
    lessons: List[Lesson]
    score: Optional[HardSoftScore] = None

    def assignable_time_slots(self) -> List[TimeSlot]:
        return [ts for ts in self.time_slots if not ts.is_break]

    def lesson_by_id(self) -> Dict[str, Lesson]:
        return {lesson.id: lesson for lesson in self.lessons}

    @property
    def is_fully_assigned(self) -> bool:
        return all(lesson.is_assigned for lesson in self.lessons)

    def clone(self) -> "Solution":
        # facts are immutable and shared; only lessons carry solver state
        return Solution(
            term_id=self.term_id,
            time_slots=self.time_slots,
            rooms=self.rooms,
            teachers=self.teachers,
            school_classes=self.school_classes,
            subjects=self.subjects,
            lessons=[lesson.copy() for lesson in self.lessons],
            score=self.score,
        )
