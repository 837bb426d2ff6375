"""
Progression store.

Creates and reads StudentRoundProgress records and holds the rules every
record must satisfy:

1. An entry for round N > 1 exists only if round N-1 is shortlisted.
2. A rejected entry is terminal: nothing follows it and the record is
   rejected.
3. A record is placed exactly when the drive's final round is
   shortlisted.
4. At most one entry per round number.
5. current_round is the number of the latest entry.

Writers call check_invariants() before committing; a non-empty result
aborts the whole operation.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.exceptions import NotFound, StateConflict, ValidationError
from app.models.enums import (
    EntryStatus, FinalResult, OverallStatus, RoundStatus
)
from app.models.student_progress import RoundProgressEntry, StudentRoundProgress
from app.services.drive_service import get_drive
from app.services.round_service import CLOSED_DRIVE_STATUSES, get_round_by_number

logger = logging.getLogger(__name__)

DEFAULT_MAX_MARKS = 100


def normalize_student_ids(student_ids: Optional[Iterable[str]]) -> list[str]:
    """Strip, drop blanks and de-duplicate while keeping caller order."""
    seen = set()
    result = []
    for student_id in student_ids or []:
        value = str(student_id).strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def default_round_name(round_number: int) -> str:
    return f"Round {round_number}"


def build_entry(round_number: int, placement_round=None) -> RoundProgressEntry:
    """Pending entry for `round_number`, named after its round when one is defined."""
    if placement_round is not None:
        round_name = placement_round.round_name
        max_marks = placement_round.max_marks or DEFAULT_MAX_MARKS
    else:
        round_name = default_round_name(round_number)
        max_marks = DEFAULT_MAX_MARKS

    return RoundProgressEntry(
        round_number=round_number,
        round_name=round_name,
        status=EntryStatus.PENDING,
        marks_obtained=0.0,
        max_marks=float(max_marks),
        percentage=0.0,
        feedback=""
    )


# ============ ENROLLMENT ============

def enroll_students(db: Session, drive_id: int, student_ids: Iterable[str]) -> dict:
    """
    Enroll students into round 1 of a drive.

    Each new student gets a progress record with one pending round-1
    entry. Students already enrolled are skipped.

    Returns:
        dict: {"enrolled": [...], "skipped": [...]}

    Raises:
        ValidationError: No student ids given
        StateConflict: Drive is closed, or round 1 is already decided
    """
    drive = get_drive(db, drive_id)
    ids = normalize_student_ids(student_ids)

    if not ids:
        raise ValidationError("At least one student ID is required")
    if drive.status in CLOSED_DRIVE_STATUSES:
        raise StateConflict(f"Cannot enroll students into a {drive.status.value} drive")

    first_round = get_round_by_number(db, drive_id, 1)
    if first_round and first_round.status in (RoundStatus.COMPLETED, RoundStatus.CANCELLED):
        raise StateConflict("Round 1 is already closed; no new students can be enrolled")

    existing_ids = {
        row.student_id
        for row in db.query(StudentRoundProgress.student_id).filter(
            StudentRoundProgress.drive_id == drive_id,
            StudentRoundProgress.student_id.in_(ids)
        ).all()
    }

    enrolled = []
    for student_id in ids:
        if student_id in existing_ids:
            continue
        progress = StudentRoundProgress(
            student_id=student_id,
            drive_id=drive_id,
            current_round=1,
            overall_status=OverallStatus.ACTIVE,
            final_result=None,
            round_progress=[build_entry(1, first_round)]
        )
        db.add(progress)
        enrolled.append(student_id)

    try:
        db.commit()
    except IntegrityError:
        # Another request enrolled one of these students first
        db.rollback()
        raise StateConflict("Enrollment conflicted with a concurrent update; retry the request")

    skipped = [student_id for student_id in ids if student_id in existing_ids]
    logger.info("Enrolled %s students into drive %s (%s already enrolled)", len(enrolled), drive_id, len(skipped))
    return {"enrolled": enrolled, "skipped": skipped}


# ============ READS ============

def get_progress(db: Session, student_id: str, drive_id: int) -> StudentRoundProgress:
    """Progress record of one student in one drive, or NotFound."""
    progress = (
        db.query(StudentRoundProgress)
        .options(selectinload(StudentRoundProgress.round_progress))
        .filter(
            StudentRoundProgress.student_id == student_id,
            StudentRoundProgress.drive_id == drive_id
        )
        .first()
    )
    if not progress:
        raise NotFound("No progress found for this placement drive")
    return progress


def list_student_progress(db: Session, student_id: str) -> list[StudentRoundProgress]:
    """Every drive progress record of a student, most recent first."""
    return (
        db.query(StudentRoundProgress)
        .options(
            selectinload(StudentRoundProgress.round_progress),
            selectinload(StudentRoundProgress.drive)
        )
        .filter(StudentRoundProgress.student_id == student_id)
        .order_by(StudentRoundProgress.created_at.desc(), StudentRoundProgress.id.desc())
        .all()
    )


# ============ INVARIANTS ============

def entry_for(progress: StudentRoundProgress, round_number: int) -> Optional[RoundProgressEntry]:
    for entry in progress.round_progress:
        if entry.round_number == round_number:
            return entry
    return None


def passes_progression(progress: StudentRoundProgress, round_number: int) -> bool:
    """True when the record may legitimately hold an entry for `round_number`."""
    if round_number <= 1:
        return True
    previous = entry_for(progress, round_number - 1)
    return previous is not None and previous.status == EntryStatus.SHORTLISTED


def check_invariants(progress: StudentRoundProgress, total_rounds: int, settled: bool = True) -> list[str]:
    """
    Return every progression rule the record currently breaks.

    `settled=False` allows the latest entry to be provisionally
    shortlisted while its round is still open.
    """
    violations = []
    entries = sorted(progress.round_progress, key=lambda e: e.round_number)
    numbers = [entry.round_number for entry in entries]

    duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
    for number in duplicates:
        violations.append(f"duplicate entries for round {number}")

    for entry in entries:
        if not passes_progression(progress, entry.round_number):
            violations.append(f"round {entry.round_number} entry without a shortlist in round {entry.round_number - 1}")

    rejected = [entry for entry in entries if entry.status == EntryStatus.REJECTED]
    if rejected:
        first_rejected = rejected[0].round_number
        if any(n > first_rejected for n in numbers):
            violations.append(f"entries exist after rejection in round {first_rejected}")
        if progress.overall_status != OverallStatus.REJECTED or progress.final_result != FinalResult.REJECTED:
            violations.append("rejected entry on a record that is not rejected")

    final_entry = entry_for(progress, total_rounds)
    placed_by_entries = (
        final_entry is not None
        and final_entry.status == EntryStatus.SHORTLISTED
        and not rejected
    )
    if progress.overall_status == OverallStatus.PLACED:
        if not placed_by_entries:
            violations.append("placed without a shortlist in the final round")
        if progress.final_result != FinalResult.SELECTED:
            violations.append("placed record without a selected final result")
    elif placed_by_entries and settled:
        violations.append("shortlisted in the final round but not placed")

    if progress.overall_status == OverallStatus.ACTIVE and progress.final_result is not None:
        violations.append("active record with a final result")

    if entries:
        latest = entries[-1]
        if progress.current_round != latest.round_number:
            violations.append(
                f"current round {progress.current_round} does not match latest entry {latest.round_number}"
            )
        if (
            settled
            and latest.status == EntryStatus.SHORTLISTED
            and latest.round_number < total_rounds
        ):
            violations.append(f"shortlisted in round {latest.round_number} without advancing")

    return violations


def assert_invariants(progress: StudentRoundProgress, total_rounds: int, settled: bool = True) -> None:
    violations = check_invariants(progress, total_rounds, settled=settled)
    if violations:
        raise StateConflict(
            f"Progress of student {progress.student_id} would become inconsistent: " + "; ".join(violations)
        )


# ============ SCORES ============

def average_percentage(progress: StudentRoundProgress) -> float:
    """Mean percentage over evaluated (non-pending) entries; 0.0 when none."""
    evaluated = [e.percentage or 0.0 for e in progress.round_progress if e.status != EntryStatus.PENDING]
    if not evaluated:
        return 0.0
    return sum(evaluated) / len(evaluated)


def recompute_scores(progress: StudentRoundProgress) -> None:
    evaluated = [e for e in progress.round_progress if e.status != EntryStatus.PENDING]
    progress.total_marks = sum(e.marks_obtained or 0.0 for e in evaluated)
    progress.average_percentage = average_percentage(progress)
