"""Hard and soft timetabling constraints.

Two evaluators share the same rule set:

* ``explain`` / ``calculate_score`` walk a whole Solution and list every
  constraint match. Simple and slow, used for reporting and for checking
  the incremental scorer.
* ``ScoreDirector`` keeps per-resource buckets and updates the score by
  delta when a single lesson moves. The local search runs on it.

Hard constraints (default weight 1 per violation):
  - Every lesson has both a time slot and a room
  - Teacher, room and class conflicts between week-overlapping lessons
  - Teacher blocked at the assigned slot
  - Teacher qualified for subject at the class grade level
  - Room capacity fits the class size
  - Room is one of the subject's required rooms, if it has any

Soft constraints:
  - Reward lessons at the teacher's preferred slots
  - Penalize idle periods inside a teacher's or a class's day
  - Penalize the same subject twice on a day for a class
  - Reward the class teacher taking the first period of the day
  - Penalize lessons beyond a teacher's weekly hour budget
"""

from __future__ import annotations

import bisect
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import DefaultDict, Dict, Iterable, List, Optional, Tuple

from .domain import HardSoftScore, Lesson, Room, Solution, TimeSlot, ZERO_SCORE

TEACHER_CONFLICT = "Teacher conflict"
ROOM_CONFLICT = "Room conflict"
CLASS_CONFLICT = "Class conflict"
TEACHER_AVAILABILITY = "Teacher availability"
TEACHER_QUALIFICATION = "Teacher qualification"
ROOM_CAPACITY = "Room capacity"
ROOM_SUITABILITY = "Room suitability"
TEACHER_PREFERRED_SLOTS = "Teacher preferred slots"
TEACHER_GAP = "Teacher gap"
CLASS_GAP = "Class gap"
SUBJECT_DISTRIBUTION = "Subject distribution"
CLASS_TEACHER_FIRST_PERIOD = "Class teacher first period"
TEACHER_WEEKLY_HOURS = "Teacher weekly hours"
UNASSIGNED_LESSON = "Unassigned lesson"


@dataclass
class ConstraintWeights:
    # hard
    unassigned_lesson: int = 1
    teacher_conflict: int = 1
    room_conflict: int = 1
    class_conflict: int = 1
    teacher_blocked: int = 1
    teacher_qualification: int = 1
    room_capacity: int = 1
    room_suitability: int = 1
    # soft
    preferred_slot: int = 1
    teacher_gap: int = 1
    class_gap: int = 1
    subject_distribution: int = 2
    class_teacher_first_period: int = 1
    max_hours_per_week: int = 1
    max_hours_level: str = "soft"  # "soft" or "hard"

    def __post_init__(self) -> None:
        if self.max_hours_level not in ("soft", "hard"):
            raise ValueError(f"max_hours_level must be 'soft' or 'hard', got {self.max_hours_level!r}")

    def weekly_hours_penalty(self, excess: int) -> HardSoftScore:
        amount = -excess * self.max_hours_per_week
        if self.max_hours_level == "hard":
            return HardSoftScore(amount, 0)
        return HardSoftScore(0, amount)


@dataclass(frozen=True)
class ConstraintMatch:
    constraint_name: str
    score: HardSoftScore
    lesson_ids: Tuple[str, ...]


def hard(amount: int) -> HardSoftScore:
    return HardSoftScore(amount, 0)


def soft(amount: int) -> HardSoftScore:
    return HardSoftScore(0, amount)


def day_periods_of(time_slots: Iterable[TimeSlot]) -> Dict[int, List[int]]:
    """Sorted assignable periods per day."""
    periods: DefaultDict[int, set] = defaultdict(set)
    for ts in time_slots:
        if not ts.is_break:
            periods[ts.day_of_week].add(ts.period)
    return {day: sorted(ps) for day, ps in periods.items()}


def idle_periods(occupied: Iterable[int], day_periods: List[int]) -> int:
    """Assignable periods left empty between the first and last occupied one."""
    distinct = set(occupied)
    if len(distinct) < 2:
        return 0
    lo, hi = min(distinct), max(distinct)
    inside = bisect.bisect_left(day_periods, hi) - bisect.bisect_right(day_periods, lo)
    return max(0, inside - (len(distinct) - 2))


# ---------- Rules on a single lesson ----------


def _unqualified(lesson: Lesson) -> bool:
    return not lesson.teacher.is_qualified_for(lesson.subject.id, lesson.school_class.grade_level)


def _over_capacity(lesson: Lesson) -> bool:
    room: Optional[Room] = lesson.room
    students = lesson.school_class.student_count
    if room is None or room.capacity is None or students is None:
        return False
    return room.capacity < students


def _is_first_period(time_slot: TimeSlot, day_periods: Dict[int, List[int]]) -> bool:
    periods = day_periods.get(time_slot.day_of_week)
    return bool(periods) and time_slot.period == periods[0]


def _placed_unary_matches(
    lesson: Lesson, weights: ConstraintWeights, day_periods: Dict[int, List[int]]
) -> List[Tuple[str, HardSoftScore]]:
    """Single-lesson rules that depend on the decision variables."""
    matches: List[Tuple[str, HardSoftScore]] = []
    slot = lesson.time_slot
    assert slot is not None
    if lesson.teacher.is_blocked_at(slot):
        matches.append((TEACHER_AVAILABILITY, hard(-weights.teacher_blocked)))
    if _over_capacity(lesson):
        matches.append((ROOM_CAPACITY, hard(-weights.room_capacity)))
    if not lesson.subject.allows_room(lesson.room):
        matches.append((ROOM_SUITABILITY, hard(-weights.room_suitability)))
    if lesson.teacher.prefers_slot(slot):
        matches.append((TEACHER_PREFERRED_SLOTS, soft(weights.preferred_slot)))
    class_teacher_id = lesson.school_class.class_teacher_id
    if (
        class_teacher_id is not None
        and lesson.teacher.id == class_teacher_id
        and _is_first_period(slot, day_periods)
    ):
        matches.append((CLASS_TEACHER_FIRST_PERIOD, soft(weights.class_teacher_first_period)))
    return matches


def _placed_unary_score(
    lesson: Lesson, weights: ConstraintWeights, day_periods: Dict[int, List[int]]
) -> HardSoftScore:
    total = ZERO_SCORE
    for _, score in _placed_unary_matches(lesson, weights, day_periods):
        total = total + score
    return total


# ---------- Full evaluation ----------


def _pair_matches(groups: Dict[tuple, List[Lesson]], name: str, penalty: HardSoftScore) -> List[ConstraintMatch]:
    matches = []
    for members in groups.values():
        for i, first in enumerate(members):
            for second in members[i + 1:]:
                if first.week_patterns_overlap(second):
                    matches.append(ConstraintMatch(name, penalty, (first.id, second.id)))
    return matches


def explain(solution: Solution, weights: Optional[ConstraintWeights] = None) -> List[ConstraintMatch]:
    """List every constraint match of ``solution``."""
    weights = weights if weights is not None else ConstraintWeights()
    day_periods = day_periods_of(solution.time_slots)
    matches: List[ConstraintMatch] = []

    for lesson in solution.lessons:
        if _unqualified(lesson):
            matches.append(
                ConstraintMatch(TEACHER_QUALIFICATION, hard(-weights.teacher_qualification), (lesson.id,))
            )
        if not lesson.is_assigned:
            matches.append(ConstraintMatch(UNASSIGNED_LESSON, hard(-weights.unassigned_lesson), (lesson.id,)))

    placed = [lesson for lesson in solution.lessons if lesson.is_assigned]
    by_teacher_slot: DefaultDict[tuple, List[Lesson]] = defaultdict(list)
    by_room_slot: DefaultDict[tuple, List[Lesson]] = defaultdict(list)
    by_class_slot: DefaultDict[tuple, List[Lesson]] = defaultdict(list)
    by_class_subject_day: DefaultDict[tuple, List[Lesson]] = defaultdict(list)
    teacher_days: DefaultDict[tuple, List[Lesson]] = defaultdict(list)
    class_days: DefaultDict[tuple, List[Lesson]] = defaultdict(list)
    teacher_load: DefaultDict[str, List[Lesson]] = defaultdict(list)

    for lesson in placed:
        slot, room = lesson.time_slot, lesson.room
        by_teacher_slot[(lesson.teacher.id, slot.id)].append(lesson)
        by_room_slot[(room.id, slot.id)].append(lesson)
        by_class_slot[(lesson.school_class.id, slot.id)].append(lesson)
        by_class_subject_day[(lesson.school_class.id, lesson.subject.id, slot.day_of_week)].append(lesson)
        teacher_days[(lesson.teacher.id, slot.day_of_week)].append(lesson)
        class_days[(lesson.school_class.id, slot.day_of_week)].append(lesson)
        teacher_load[lesson.teacher.id].append(lesson)
        for name, score in _placed_unary_matches(lesson, weights, day_periods):
            matches.append(ConstraintMatch(name, score, (lesson.id,)))

    matches += _pair_matches(by_teacher_slot, TEACHER_CONFLICT, hard(-weights.teacher_conflict))
    matches += _pair_matches(by_room_slot, ROOM_CONFLICT, hard(-weights.room_conflict))
    matches += _pair_matches(by_class_slot, CLASS_CONFLICT, hard(-weights.class_conflict))
    matches += _pair_matches(by_class_subject_day, SUBJECT_DISTRIBUTION, soft(-weights.subject_distribution))

    for name, weight, groups in (
        (TEACHER_GAP, weights.teacher_gap, teacher_days),
        (CLASS_GAP, weights.class_gap, class_days),
    ):
        for (_, day), members in groups.items():
            gaps = idle_periods((m.time_slot.period for m in members), day_periods.get(day, []))
            if gaps:
                matches.append(ConstraintMatch(name, soft(-gaps * weight), tuple(m.id for m in members)))

    for members in teacher_load.values():
        excess = len(members) - members[0].teacher.max_hours_per_week
        if excess > 0:
            matches.append(
                ConstraintMatch(
                    TEACHER_WEEKLY_HOURS,
                    weights.weekly_hours_penalty(excess),
                    tuple(m.id for m in members),
                )
            )
    return matches


def calculate_score(solution: Solution, weights: Optional[ConstraintWeights] = None) -> HardSoftScore:
    total = ZERO_SCORE
    for match in explain(solution, weights):
        total = total + match.score
    return total


def summarize(matches: Iterable[ConstraintMatch]) -> Dict[str, HardSoftScore]:
    """Total score impact per constraint name."""
    totals: Dict[str, HardSoftScore] = {}
    for match in matches:
        totals[match.constraint_name] = totals.get(match.constraint_name, ZERO_SCORE) + match.score
    return totals


# ---------- Incremental evaluation ----------


class ScoreDirector:
    """Keeps the score of a working Solution up to date as lessons move.

    Every change goes through ``assign``: the lesson's contribution is
    retracted, its variables are changed, and the new contribution is
    inserted. Only buckets touching the lesson are visited.
    """

    def __init__(self, solution: Solution, weights: Optional[ConstraintWeights] = None):
        self.solution = solution
        self.weights = weights if weights is not None else ConstraintWeights()
        self._day_periods = day_periods_of(solution.time_slots)
        self._teacher_slot: DefaultDict[tuple, List[Lesson]] = defaultdict(list)
        self._room_slot: DefaultDict[tuple, List[Lesson]] = defaultdict(list)
        self._class_slot: DefaultDict[tuple, List[Lesson]] = defaultdict(list)
        self._class_subject_day: DefaultDict[tuple, List[Lesson]] = defaultdict(list)
        self._teacher_day: DefaultDict[tuple, Counter] = defaultdict(Counter)
        self._class_day: DefaultDict[tuple, Counter] = defaultdict(Counter)
        self._teacher_load: Counter = Counter()
        self._score = ZERO_SCORE
        self._unassigned_penalty = hard(-self.weights.unassigned_lesson)
        for lesson in solution.lessons:
            if _unqualified(lesson):
                self._score += hard(-self.weights.teacher_qualification)
            if lesson.is_assigned:
                self._insert(lesson)
            else:
                self._score += self._unassigned_penalty

    @property
    def score(self) -> HardSoftScore:
        return self._score

    def explain(self) -> List[ConstraintMatch]:
        return explain(self.solution, self.weights)

    def assign(self, lesson: Lesson, time_slot: Optional[TimeSlot], room: Optional[Room]) -> HardSoftScore:
        if lesson.is_assigned:
            self._retract(lesson)
        else:
            self._score -= self._unassigned_penalty
        lesson.time_slot = time_slot
        lesson.room = room
        if lesson.is_assigned:
            self._insert(lesson)
        else:
            self._score += self._unassigned_penalty
        return self._score

    def swap_slots(self, first: Lesson, second: Lesson) -> HardSoftScore:
        first_slot, second_slot = first.time_slot, second.time_slot
        self.assign(first, second_slot, first.room)
        return self.assign(second, first_slot, second.room)

    # -- bucket bookkeeping --

    def _insert(self, lesson: Lesson) -> None:
        self._score += self._pair_delta(lesson) + self._group_delta(lesson, +1)
        self._score += _placed_unary_score(lesson, self.weights, self._day_periods)
        for bucket in self._buckets(lesson):
            bucket.append(lesson)

    def _retract(self, lesson: Lesson) -> None:
        for bucket in self._buckets(lesson):
            bucket.remove(lesson)
        self._score -= self._pair_delta(lesson)
        self._score += self._group_delta(lesson, -1)
        self._score -= _placed_unary_score(lesson, self.weights, self._day_periods)

    def _buckets(self, lesson: Lesson) -> Tuple[List[Lesson], ...]:
        slot, room = lesson.time_slot, lesson.room
        return (
            self._teacher_slot[(lesson.teacher.id, slot.id)],
            self._room_slot[(room.id, slot.id)],
            self._class_slot[(lesson.school_class.id, slot.id)],
            self._class_subject_day[(lesson.school_class.id, lesson.subject.id, slot.day_of_week)],
        )

    def _pair_delta(self, lesson: Lesson) -> HardSoftScore:
        # penalty of pairs formed between ``lesson`` and the lessons already bucketed
        w = self.weights
        teacher_b, room_b, class_b, subject_b = self._buckets(lesson)
        return (
            hard(-w.teacher_conflict * self._overlapping(lesson, teacher_b))
            + hard(-w.room_conflict * self._overlapping(lesson, room_b))
            + hard(-w.class_conflict * self._overlapping(lesson, class_b))
            + soft(-w.subject_distribution * self._overlapping(lesson, subject_b))
        )

    @staticmethod
    def _overlapping(lesson: Lesson, bucket: List[Lesson]) -> int:
        return sum(1 for other in bucket if other is not lesson and lesson.week_patterns_overlap(other))

    def _group_delta(self, lesson: Lesson, sign: int) -> HardSoftScore:
        """Score change of the gap and weekly-hour groups when ``lesson`` enters (+1) or leaves (-1)."""
        w = self.weights
        slot = lesson.time_slot
        day_periods = self._day_periods.get(slot.day_of_week, [])
        delta = ZERO_SCORE
        for counter, weight in (
            (self._teacher_day[(lesson.teacher.id, slot.day_of_week)], w.teacher_gap),
            (self._class_day[(lesson.school_class.id, slot.day_of_week)], w.class_gap),
        ):
            before = idle_periods(+counter, day_periods)
            counter[slot.period] += sign
            after = idle_periods(+counter, day_periods)
            delta += soft(-(after - before) * weight)

        teacher = lesson.teacher
        before_excess = max(0, self._teacher_load[teacher.id] - teacher.max_hours_per_week)
        self._teacher_load[teacher.id] += sign
        after_excess = max(0, self._teacher_load[teacher.id] - teacher.max_hours_per_week)
        if after_excess != before_excess:
            delta += w.weekly_hours_penalty(after_excess - before_excess)
        return delta
