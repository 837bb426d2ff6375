import pytest

from app.exceptions import NotFound, StateConflict, ValidationError
from app.models.enums import EntryStatus, FinalResult, OverallStatus, RoundStatus
from app.services import drive_service, progress_service, round_service, shortlist_processor
from app.services.progress_service import check_invariants, entry_for


def _progress(db, drive, student_id):
    db.expire_all()
    return progress_service.get_progress(db, student_id, drive.id)


def test_complete_first_round_advances_shortlisted_and_rejects_rest(db, two_round_drive):
    drive, round_1, _ = two_round_drive

    result = shortlist_processor.complete_round(db, round_1.id, {"A", "B"})

    assert result["shortlisted_count"] == 2
    assert result["rejected_count"] == 1
    for student_id in ("A", "B"):
        progress = _progress(db, drive, student_id)
        assert progress.current_round == 2
        assert progress.overall_status == OverallStatus.ACTIVE
        assert progress.final_result is None
        assert entry_for(progress, 1).status == EntryStatus.SHORTLISTED
        assert entry_for(progress, 1).evaluated_at is not None
        next_entry = entry_for(progress, 2)
        assert next_entry.status == EntryStatus.PENDING
        assert next_entry.round_name == "Technical Interview"

    rejected = _progress(db, drive, "C")
    assert rejected.overall_status == OverallStatus.REJECTED
    assert rejected.final_result == FinalResult.REJECTED
    assert entry_for(rejected, 1).status == EntryStatus.REJECTED
    assert entry_for(rejected, 2) is None
    assert rejected.current_round == 1

    db.refresh(round_1)
    assert round_1.status == RoundStatus.COMPLETED


def test_complete_final_round_places_shortlisted(db, two_round_drive):
    drive, round_1, round_2 = two_round_drive
    shortlist_processor.complete_round(db, round_1.id, ["A", "B"])
    round_service.start_round(db, round_2.id)

    result = shortlist_processor.complete_round(db, round_2.id, ["A"])

    assert result == {
        "shortlisted_count": 1,
        "rejected_count": 1,
        "shortlisted": ["A"],
        "rejected": ["B"],
    }
    placed = _progress(db, drive, "A")
    assert placed.overall_status == OverallStatus.PLACED
    assert placed.final_result == FinalResult.SELECTED
    assert placed.current_round == 2
    assert len(placed.round_progress) == 2

    rejected = _progress(db, drive, "B")
    assert rejected.overall_status == OverallStatus.REJECTED
    assert rejected.final_result == FinalResult.REJECTED

    for student_id in ("A", "B", "C"):
        assert check_invariants(_progress(db, drive, student_id), drive.total_rounds) == []


def test_empty_shortlist_rejects_whole_round(db, make_drive, make_round):
    drive = make_drive(total_rounds=2)
    round_1 = make_round(drive, 1)
    progress_service.enroll_students(db, drive.id, ["D", "E"])
    round_service.start_round(db, round_1.id)

    result = shortlist_processor.complete_round(db, round_1.id, set())

    assert result["shortlisted_count"] == 0
    assert result["rejected_count"] == 2
    for student_id in ("D", "E"):
        assert _progress(db, drive, student_id).overall_status == OverallStatus.REJECTED


def test_second_completion_fails_and_changes_nothing(db, two_round_drive, snapshot):
    drive, round_1, _ = two_round_drive
    shortlist_processor.complete_round(db, round_1.id, ["A", "B"])
    before = snapshot(drive.id)

    with pytest.raises(StateConflict):
        shortlist_processor.complete_round(db, round_1.id, ["A"])

    assert snapshot(drive.id) == before


def test_completing_a_round_that_never_started_fails(db, make_drive, make_round):
    drive = make_drive()
    round_1 = make_round(drive, 1)
    progress_service.enroll_students(db, drive.id, ["A"])

    with pytest.raises(StateConflict):
        shortlist_processor.complete_round(db, round_1.id, ["A"])

    db.refresh(round_1)
    assert round_1.status == RoundStatus.SCHEDULED


def test_unknown_round_raises_not_found(db):
    with pytest.raises(NotFound):
        shortlist_processor.complete_round(db, 999, [])


def test_shortlist_naming_student_outside_round_is_rejected_atomically(db, two_round_drive, snapshot):
    drive, round_1, _ = two_round_drive
    before = snapshot(drive.id)

    with pytest.raises(ValidationError) as exc_info:
        shortlist_processor.complete_round(db, round_1.id, ["A", "Z"])

    assert "Z" in str(exc_info.value)
    assert snapshot(drive.id) == before
    db.refresh(round_1)
    assert round_1.status == RoundStatus.IN_PROGRESS


def test_every_student_in_round_gets_exactly_one_outcome(db, make_drive, make_round):
    drive = make_drive(total_rounds=3)
    round_1 = make_round(drive, 1)
    students = [f"S{i}" for i in range(10)]
    progress_service.enroll_students(db, drive.id, students)
    round_service.start_round(db, round_1.id)

    result = shortlist_processor.complete_round(db, round_1.id, students[:4])

    assert result["shortlisted_count"] + result["rejected_count"] == len(students)
    assert set(result["shortlisted"]).isdisjoint(result["rejected"])
    for student_id in students:
        progress = _progress(db, drive, student_id)
        round_numbers = [e.round_number for e in progress.round_progress]
        assert round_numbers.count(1) == 1
        assert check_invariants(progress, drive.total_rounds) == []


def test_marks_set_percentage_and_average(db, two_round_drive):
    drive, round_1, _ = two_round_drive

    shortlist_processor.complete_round(db, round_1.id, ["A"], marks={"A": 80, "B": 40})

    passed = _progress(db, drive, "A")
    first = entry_for(passed, 1)
    assert first.marks_obtained == 80
    assert first.max_marks == 100
    assert first.percentage == pytest.approx(80.0)
    # the pending round 2 entry is not part of the average
    assert passed.average_percentage == pytest.approx(80.0)
    assert passed.total_marks == pytest.approx(80.0)

    failed = _progress(db, drive, "B")
    assert failed.average_percentage == pytest.approx(40.0)
    assert _progress(db, drive, "C").average_percentage == 0.0


def test_marks_out_of_range_abort_completion(db, two_round_drive, snapshot):
    drive, round_1, _ = two_round_drive
    before = snapshot(drive.id)

    with pytest.raises(ValidationError):
        shortlist_processor.complete_round(db, round_1.id, ["A"], marks={"A": 150})

    assert snapshot(drive.id) == before


def test_stray_entry_for_next_round_aborts_completion(db, two_round_drive, snapshot):
    drive, round_1, _ = two_round_drive
    progress = _progress(db, drive, "A")
    progress.round_progress.append(progress_service.build_entry(2))
    db.commit()
    before = snapshot(drive.id)

    with pytest.raises(StateConflict):
        shortlist_processor.complete_round(db, round_1.id, ["A", "B"])

    assert snapshot(drive.id) == before
    db.refresh(round_1)
    assert round_1.status == RoundStatus.IN_PROGRESS


# ============ PARTIAL ACTIONS ============

def test_partial_shortlist_marks_without_advancing(db, two_round_drive):
    drive, round_1, _ = two_round_drive

    assert shortlist_processor.shortlist_students(db, round_1.id, ["A"]) == 1

    progress = _progress(db, drive, "A")
    assert entry_for(progress, 1).status == EntryStatus.SHORTLISTED
    assert entry_for(progress, 2) is None
    assert progress.current_round == 1
    assert progress.overall_status == OverallStatus.ACTIVE


def test_partial_shortlist_is_idempotent(db, two_round_drive, snapshot):
    drive, round_1, _ = two_round_drive
    shortlist_processor.shortlist_students(db, round_1.id, ["A", "B"])
    before = snapshot(drive.id)

    assert shortlist_processor.shortlist_students(db, round_1.id, ["A", "B"]) == 2
    assert snapshot(drive.id) == before


def test_provisional_shortlist_advances_on_completion(db, two_round_drive):
    drive, round_1, _ = two_round_drive
    shortlist_processor.shortlist_students(db, round_1.id, ["B"])

    result = shortlist_processor.complete_round(db, round_1.id, ["A"])

    assert sorted(result["shortlisted"]) == ["A", "B"]
    assert result["rejected"] == ["C"]
    assert _progress(db, drive, "B").current_round == 2


def test_partial_reject_is_terminal(db, two_round_drive):
    drive, round_1, _ = two_round_drive

    assert shortlist_processor.reject_students(db, round_1.id, ["C"]) == 1
    progress = _progress(db, drive, "C")
    assert progress.overall_status == OverallStatus.REJECTED
    assert progress.final_result == FinalResult.REJECTED

    with pytest.raises(StateConflict):
        shortlist_processor.shortlist_students(db, round_1.id, ["C"])
    with pytest.raises(StateConflict):
        shortlist_processor.complete_round(db, round_1.id, ["A", "C"])

    result = shortlist_processor.complete_round(db, round_1.id, ["A"])
    assert sorted(result["rejected"]) == ["B", "C"]


def test_partial_reject_twice_is_safe(db, two_round_drive, snapshot):
    drive, round_1, _ = two_round_drive
    shortlist_processor.reject_students(db, round_1.id, ["C"])
    before = snapshot(drive.id)

    shortlist_processor.reject_students(db, round_1.id, ["C"])

    assert snapshot(drive.id) == before


def test_partial_actions_require_selection(db, two_round_drive):
    _, round_1, _ = two_round_drive

    with pytest.raises(ValidationError):
        shortlist_processor.shortlist_students(db, round_1.id, [])
    with pytest.raises(ValidationError):
        shortlist_processor.reject_students(db, round_1.id, ["  "])
    with pytest.raises(ValidationError):
        shortlist_processor.shortlist_students(db, round_1.id, ["nobody"])


def test_partial_actions_require_running_round(db, two_round_drive):
    _, round_1, round_2 = two_round_drive

    with pytest.raises(StateConflict):
        shortlist_processor.shortlist_students(db, round_2.id, ["A"])

    shortlist_processor.complete_round(db, round_1.id, ["A"])
    with pytest.raises(StateConflict):
        shortlist_processor.reject_students(db, round_1.id, ["A"])


def test_feedback_is_stored_on_the_round_entry(db, two_round_drive):
    drive, round_1, _ = two_round_drive

    shortlist_processor.complete_round(
        db, round_1.id, ["A"], feedback={"A": "  Strong problem solving ", "C": "Missed the cutoff"}
    )

    assert entry_for(_progress(db, drive, "A"), 1).feedback == "Strong problem solving"
    assert entry_for(_progress(db, drive, "C"), 1).feedback == "Missed the cutoff"
    assert entry_for(_progress(db, drive, "B"), 1).feedback == ""
    # the next round starts without comments
    assert entry_for(_progress(db, drive, "A"), 2).feedback == ""


def test_feedback_for_student_outside_round_aborts_completion(db, two_round_drive, snapshot):
    drive, round_1, _ = two_round_drive
    before = snapshot(drive.id)

    with pytest.raises(ValidationError) as exc_info:
        shortlist_processor.complete_round(db, round_1.id, ["A"], feedback={"Z": "Not here"})

    assert "Z" in str(exc_info.value)
    assert snapshot(drive.id) == before


def test_round_of_closed_drive_cannot_be_decided(db, two_round_drive, snapshot):
    drive, round_1, _ = two_round_drive
    drive_service.update_drive(db, drive.id, status="cancelled")
    before = snapshot(drive.id)

    with pytest.raises(StateConflict):
        shortlist_processor.complete_round(db, round_1.id, ["A"])
    with pytest.raises(StateConflict):
        shortlist_processor.shortlist_students(db, round_1.id, ["A"])
    with pytest.raises(StateConflict):
        shortlist_processor.reject_students(db, round_1.id, ["B"])

    assert snapshot(drive.id) == before
    db.refresh(round_1)
    assert round_1.status == RoundStatus.IN_PROGRESS
