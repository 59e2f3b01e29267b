from datetime import time

import pytest

from timetabler.domain import HardSoftScore, Lesson, Room, SchoolClass, Subject, Teacher, TimeSlot, WeekPattern

from conftest import lesson, solution_of, teacher


@pytest.mark.parametrize(
    "first, second, expected",
    [
        (WeekPattern.EVERY, WeekPattern.EVERY, True),
        (WeekPattern.EVERY, WeekPattern.A, True),
        (WeekPattern.EVERY, WeekPattern.B, True),
        (WeekPattern.A, WeekPattern.A, True),
        (WeekPattern.B, WeekPattern.B, True),
        (WeekPattern.A, WeekPattern.B, False),
    ],
)
def test_week_pattern_overlap_is_symmetric(first, second, expected) -> None:
    assert first.overlaps(second) is expected
    assert second.overlaps(first) is expected


def test_lessons_overlap_by_week_pattern(class_1a, maths) -> None:
    t = teacher("teacher-a")
    a = lesson("l1", class_1a, t, maths, WeekPattern.A)
    b = lesson("l2", class_1a, t, maths, WeekPattern.B)
    every = lesson("l3", class_1a, t, maths)
    assert not a.week_patterns_overlap(b)
    assert a.week_patterns_overlap(every)
    assert every.week_patterns_overlap(b)


def test_facts_compare_by_id_only() -> None:
    assert TimeSlot("ts-1", 0, 1) == TimeSlot("ts-1", 3, 4, start_time=time(8, 0))
    assert Room("r", "Room", capacity=10) == Room("r", "Renamed", capacity=99)
    assert hash(Teacher("t", "A")) == hash(Teacher("t", "B", max_hours_per_week=3))
    assert SchoolClass("c", "1a", 1) != SchoolClass("d", "1a", 1)
    assert len({Subject("s", "Maths"), Subject("s", "Mathematics")}) == 1


def test_lesson_identity_and_read_only_facts(class_1a, maths) -> None:
    t = teacher("teacher-a")
    first = lesson("l1", class_1a, t, maths)
    second = lesson("l1", class_1a, teacher("teacher-b"), maths)
    assert first == second
    assert hash(first) == hash(second)
    with pytest.raises(AttributeError):
        first.teacher = teacher("teacher-c")
    with pytest.raises(AttributeError):
        first.week_pattern = WeekPattern.A


def test_lesson_is_assigned_needs_both_variables(class_1a, maths, room_101) -> None:
    l = lesson("l1", class_1a, teacher("t"), maths)
    assert not l.is_assigned
    l.time_slot = TimeSlot("ts", 0, 1)
    assert not l.is_assigned
    l.room = room_101
    assert l.is_assigned


def test_teacher_predicates() -> None:
    t = Teacher(
        id="t",
        name="T",
        blocked_slots=frozenset({"0-1"}),
        preferred_slots=frozenset({"2-3"}),
        qualifications={"maths": frozenset({1, 2})},
    )
    assert t.is_blocked_at(TimeSlot("a", 0, 1))
    assert not t.is_blocked_at(TimeSlot("b", 0, 2))
    assert not t.is_blocked_at(None)
    assert t.prefers_slot(TimeSlot("c", 2, 3))
    assert t.is_qualified_for("maths", 2)
    assert not t.is_qualified_for("maths", 3)
    assert not t.is_qualified_for("german", 1)


def test_room_features_and_subject_rooms() -> None:
    room = Room("lab", "Lab", features=frozenset({"sinks", "projector"}))
    assert room.has_features(set())
    assert room.has_features(None)
    assert room.has_features({"sinks"})
    assert not room.has_features({"sinks", "fume hood"})

    chemistry = Subject("chem", "Chemistry", required_room_ids=frozenset({"lab"}))
    assert chemistry.allows_room(room)
    assert not chemistry.allows_room(Room("r1", "Room 1"))
    assert Subject("art", "Art").allows_room(Room("r1", "Room 1"))


def test_score_ordering_and_format() -> None:
    assert HardSoftScore(0, -100) > HardSoftScore(-1, 0)
    assert HardSoftScore(0, -5) < HardSoftScore(0, -4)
    assert HardSoftScore(-2, 3) + HardSoftScore(1, -1) == HardSoftScore(-1, 2)
    assert str(HardSoftScore(0, -5)) == "0hard/-5soft"
    assert HardSoftScore.parse("-3hard/-12soft") == HardSoftScore(-3, -12)
    assert HardSoftScore(0, -9).is_feasible
    assert not HardSoftScore(-1, 0).is_feasible


def test_clone_copies_lessons_and_shares_facts(class_1a, maths, room_101) -> None:
    l = lesson("l1", class_1a, teacher("t"), maths, room=room_101)
    original = solution_of([l])
    copy = original.clone()
    copy.lessons[0].room = None
    assert original.lessons[0].room == room_101
    assert copy.time_slots is original.time_slots
    assert copy.lessons[0].teacher is original.lessons[0].teacher


def test_assignable_time_slots_skip_breaks() -> None:
    slots = [TimeSlot("a", 0, 1), TimeSlot("b", 0, 2, is_break=True), TimeSlot("c", 0, 3)]
    solution = solution_of([], time_slots=slots)
    assert [ts.id for ts in solution.assignable_time_slots()] == ["a", "c"]


def test_lesson_constructor_accepts_pattern_text(class_1a, maths) -> None:
    l = Lesson("l1", class_1a, teacher("t"), maths, "B")
    assert l.week_pattern is WeekPattern.B
