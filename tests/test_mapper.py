from datetime import time

import pytest

from timetabler.domain import WeekPattern
from timetabler.errors import NotFoundError
from timetabler.mapper import extract_assignments, parse_features, to_solution, to_teacher
from timetabler.repository import (
    AvailabilityRecord,
    AvailabilityType,
    InMemoryTimetableRepository,
    LessonAssignment,
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


def snapshot() -> ProblemSnapshot:
    return ProblemSnapshot(
        term_id="term-1",
        time_slots=[
            TimeSlotRecord(id="ts-1", day_of_week=0, period=1, start_time=time(8, 0), end_time=time(8, 45)),
            TimeSlotRecord(id="ts-brk", day_of_week=0, period=2, is_break=True),
            TimeSlotRecord(id="ts-3", day_of_week=0, period=3),
        ],
        rooms=[
            RoomRecord(id="r1", name="Room 1", capacity=30, features='["projector", "sinks"]'),
            RoomRecord(id="gym", name="Gym", capacity=60, features="sports, mats"),
            RoomRecord(id="old", name="Old", active=False),
        ],
        teachers=[
            TeacherRecord(
                id="t1",
                name="Ada",
                abbreviation="AD",
                availabilities=[
                    AvailabilityRecord(term_id=None, day_of_week=0, period=1, type=AvailabilityType.BLOCKED),
                    AvailabilityRecord(term_id="term-1", day_of_week=0, period=3, type=AvailabilityType.PREFERRED),
                    AvailabilityRecord(term_id="term-2", day_of_week=1, period=1, type=AvailabilityType.BLOCKED),
                    AvailabilityRecord(term_id=None, day_of_week=2, period=2, type=AvailabilityType.AVAILABLE),
                ],
                qualifications=[
                    QualificationRecord(subject_id="maths", can_teach_grades=[1, 2]),
                    QualificationRecord(subject_id="pe", can_teach_grades=None),
                ],
            ),
            TeacherRecord(id="t-gone", name="Gone", active=False),
        ],
        school_classes=[
            SchoolClassRecord(id="c1", name="1a", grade_level=1, student_count=22, class_teacher_id="t1"),
            SchoolClassRecord(id="c-old", name="9z", grade_level=9, active=False),
        ],
        subjects=[SubjectRecord(id="maths", name="Maths"), SubjectRecord(id="pe", name="PE")],
        room_suitabilities=[
            RoomSuitabilityRecord(room_id="gym", subject_id="pe", required=True),
            RoomSuitabilityRecord(room_id="r1", subject_id="maths", required=False),
        ],
        lessons=[
            LessonRecord(id="l1", class_id="c1", teacher_id="t1", subject_id="maths"),
            LessonRecord(
                id="l2", class_id="c1", teacher_id="t1", subject_id="pe", week_pattern=WeekPattern.A,
                time_slot_id="ts-3", room_id="gym",
            ),
            LessonRecord(id="l3", class_id="c1", teacher_id="t-gone", subject_id="maths"),
            LessonRecord(id="l4", class_id="c-old", teacher_id="t1", subject_id="maths"),
            LessonRecord(id="l5", class_id="c1", teacher_id="t1", subject_id="maths", time_slot_id="ts-brk", room_id="old"),
        ],
    )


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, set()),
        ("", set()),
        ("[]", set()),
        ('["projector", "sinks"]', {"projector", "sinks"}),
        ("projector, sinks", {"projector", "sinks"}),
        (["projector", " "], {"projector"}),
        ("[not json", set()),
        (42, set()),
    ],
)
def test_parse_features(raw, expected) -> None:
    assert parse_features(raw) == expected


def test_breaks_and_inactive_records_are_filtered() -> None:
    solution = to_solution(snapshot())
    assert [ts.id for ts in solution.time_slots] == ["ts-1", "ts-3"]
    assert [r.id for r in solution.rooms] == ["r1", "gym"]
    assert [t.id for t in solution.teachers] == ["t1"]
    assert [c.id for c in solution.school_classes] == ["c1"]


def test_lessons_with_inactive_references_are_skipped(caplog) -> None:
    solution = to_solution(snapshot())
    assert [l.id for l in solution.lessons] == ["l1", "l2", "l5"]
    assert "Skipping lesson l3" in caplog.text


def test_teacher_availability_and_qualifications() -> None:
    t = to_solution(snapshot()).teachers[0]
    assert t.blocked_slots == {"0-1"}
    assert t.preferred_slots == {"0-3"}
    assert t.is_qualified_for("maths", 2)
    assert not t.is_qualified_for("pe", 1)


def test_availability_for_other_term_is_ignored() -> None:
    record = snapshot().teachers[0]
    assert to_teacher(record, "term-2").blocked_slots == {"0-1", "1-1"}
    assert to_teacher(record, "term-2").preferred_slots == set()


def test_room_features_and_required_rooms() -> None:
    solution = to_solution(snapshot())
    rooms = {r.id: r for r in solution.rooms}
    assert rooms["r1"].features == {"projector", "sinks"}
    assert rooms["gym"].features == {"sports", "mats"}
    subjects = {s.id: s for s in solution.subjects}
    assert subjects["pe"].required_room_ids == {"gym"}
    # a non-required link does not restrict the subject
    assert subjects["maths"].required_room_ids == set()


def test_existing_assignments_are_kept_when_still_valid() -> None:
    lessons = to_solution(snapshot()).lesson_by_id()
    assert lessons["l2"].time_slot.id == "ts-3"
    assert lessons["l2"].room.id == "gym"
    assert lessons["l2"].week_pattern is WeekPattern.A
    assert lessons["l5"].time_slot is None
    assert lessons["l5"].room is None


def test_extract_assignments() -> None:
    assignments = extract_assignments(to_solution(snapshot()))
    assert assignments["l1"] == LessonAssignment(None, None)
    assert assignments["l2"] == LessonAssignment("ts-3", "gym")


def test_camel_case_payload_is_accepted() -> None:
    record = TimeSlotRecord.model_validate({"id": "ts", "dayOfWeek": 2, "period": 4, "isBreak": True})
    assert record.day_of_week == 2
    assert record.is_break


def test_repository_round_trip() -> None:
    repository = InMemoryTimetableRepository([snapshot()])
    solution = to_solution(repository.load_snapshot("term-1"))
    lessons = solution.lesson_by_id()
    lessons["l1"].time_slot = solution.time_slots[1]
    lessons["l1"].room = solution.rooms[0]

    repository.save_assignments("term-1", extract_assignments(solution))

    saved = {l.id: l for l in repository.lessons("term-1")}
    assert (saved["l1"].time_slot_id, saved["l1"].room_id) == ("ts-3", "r1")
    assert (saved["l2"].time_slot_id, saved["l2"].room_id) == ("ts-3", "gym")
    # skipped lessons are left alone
    assert saved["l3"].time_slot_id is None


def test_repository_rejects_whole_batch_on_unknown_reference() -> None:
    repository = InMemoryTimetableRepository([snapshot()])
    with pytest.raises(NotFoundError):
        repository.save_assignments(
            "term-1",
            {"l1": LessonAssignment("ts-1", "r1"), "l-missing": LessonAssignment("ts-1", "r1")},
        )
    with pytest.raises(NotFoundError):
        repository.save_assignments("term-1", {"l1": LessonAssignment("ts-1", "r1"), "l2": LessonAssignment("nope", None)})
    assert {l.id: l.time_slot_id for l in repository.lessons("term-1")}["l1"] is None


def test_repository_unknown_term() -> None:
    repository = InMemoryTimetableRepository()
    assert not repository.term_exists("nope")
    with pytest.raises(NotFoundError):
        repository.load_snapshot("nope")


def test_snapshots_are_isolated_from_callers() -> None:
    data = snapshot()
    repository = InMemoryTimetableRepository([data])
    data.lessons.clear()
    loaded = repository.load_snapshot("term-1")
    loaded.lessons.clear()
    assert len(repository.lessons("term-1")) == 5
