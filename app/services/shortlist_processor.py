"""
Shortlist/reject processor - the only writer of round outcomes.

complete_round() closes an in-progress round: every student in it ends
up either shortlisted (advanced to the next round, or placed after the
final round) or rejected, and the round is marked completed. The whole
thing is one transaction.

shortlist_students() / reject_students() are the partial variants used
while a round is still running. They only mark the students named;
advancement to the next round happens at completion.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import StateConflict, ValidationError
from app.models.enums import (
    EntryStatus, FinalResult, OverallStatus, RoundStatus
)
from app.models.placement_round import PlacementRound
from app.services.progress_service import (
    assert_invariants, build_entry, entry_for, normalize_student_ids, recompute_scores
)
from app.services.progression_query import get_students_in_round
from app.services.round_service import CLOSED_DRIVE_STATUSES, get_round, get_round_by_number
from app.time_utils import now_tz

logger = logging.getLogger(__name__)


def _lock_running_round(db: Session, round_id: int, action: str) -> PlacementRound:
    placement_round = get_round(db, round_id, lock=True)
    if placement_round.status != RoundStatus.IN_PROGRESS:
        raise StateConflict(
            f"Cannot {action} round {placement_round.round_number}: status is "
            f"'{placement_round.status.value}', expected 'in_progress'"
        )
    if placement_round.drive.status in CLOSED_DRIVE_STATUSES:
        raise StateConflict(
            f"Cannot {action} round {placement_round.round_number}: the drive is "
            f"{placement_round.drive.status.value}"
        )
    return placement_round


def _unknown_students_error(unknown: list[str], round_number: int) -> ValidationError:
    return ValidationError(
        f"Students not found in round {round_number}: {', '.join(unknown)}"
    )


def _normalize_marks(marks: Optional[dict], placement_round: PlacementRound) -> dict:
    normalized = {}
    max_marks = placement_round.max_marks or 0
    for student_id, value in (marks or {}).items():
        if value is None:
            continue
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Marks for student {student_id} must be a number")
        if value < 0 or value > max_marks:
            raise ValidationError(
                f"Marks for student {student_id} must be between 0 and {max_marks}"
            )
        normalized[str(student_id).strip()] = value
    return normalized


def _normalize_feedback(feedback: Optional[dict]) -> dict:
    normalized = {}
    for student_id, text in (feedback or {}).items():
        if text is None:
            continue
        normalized[str(student_id).strip()] = str(text).strip()
    return normalized


def _record_marks(entry, marks_obtained: float, placement_round: PlacementRound) -> None:
    entry.marks_obtained = marks_obtained
    entry.max_marks = float(placement_round.max_marks)
    entry.percentage = (marks_obtained / placement_round.max_marks) * 100


def _mark_shortlisted(entry, now) -> None:
    if entry.status != EntryStatus.SHORTLISTED:
        entry.status = EntryStatus.SHORTLISTED
        entry.evaluated_at = now


def _mark_rejected(progress, entry, now) -> None:
    if entry.status != EntryStatus.REJECTED:
        entry.status = EntryStatus.REJECTED
        entry.evaluated_at = now
    progress.overall_status = OverallStatus.REJECTED
    progress.final_result = FinalResult.REJECTED


def _advance(progress, round_number: int, is_final: bool, next_round: Optional[PlacementRound]) -> None:
    if is_final:
        progress.overall_status = OverallStatus.PLACED
        progress.final_result = FinalResult.SELECTED
        return

    if entry_for(progress, round_number + 1) is not None:
        raise StateConflict(
            f"Student {progress.student_id} already holds an entry for round {round_number + 1}"
        )
    progress.round_progress.append(build_entry(round_number + 1, next_round))
    progress.current_round = round_number + 1


# ============ ROUND COMPLETION ============

def complete_round(
    db: Session,
    round_id: int,
    shortlisted_student_ids: Iterable[str],
    marks: dict = None,
    feedback: dict = None
) -> dict:
    """
    Close an in-progress round and decide every student in it.

    Students named in `shortlisted_student_ids`, plus any already
    shortlisted in this round through shortlist_students(), advance:
    to a new pending entry for the next round, or to placed when this is
    the drive's final round. Everyone else in the round is rejected.
    An empty shortlist is valid and rejects the whole round.

    Args:
        db: Database session
        round_id: Round to complete
        shortlisted_student_ids: Students who pass this round
        marks: Optional {student_id: marks_obtained} for students in the round
        feedback: Optional {student_id: text} stored on this round's entry

    Returns:
        dict: shortlisted_count, rejected_count and the two id lists

    Raises:
        NotFound: Unknown round
        StateConflict: Round not in progress (including already completed),
            a rejected student named in the shortlist, or a write that
            would break progression rules
        ValidationError: Shortlist, marks or feedback naming students not
            in the round
    """
    try:
        placement_round = _lock_running_round(db, round_id, "complete")
        drive = placement_round.drive
        round_number = placement_round.round_number

        requested = normalize_student_ids(shortlisted_student_ids)
        marks_by_student = _normalize_marks(marks, placement_round)
        feedback_by_student = _normalize_feedback(feedback)

        students = get_students_in_round(db, drive.id, round_number, lock=True)
        by_student = {progress.student_id: progress for progress in students}

        unknown = [sid for sid in requested if sid not in by_student]
        for named in (marks_by_student, feedback_by_student):
            unknown += [sid for sid in named if sid not in by_student and sid not in unknown]
        if unknown:
            raise _unknown_students_error(unknown, round_number)

        requested_set = set(requested)
        shortlisted, remainder = [], []
        for progress in students:
            entry = entry_for(progress, round_number)
            if progress.student_id in requested_set:
                if entry.status == EntryStatus.REJECTED:
                    raise StateConflict(
                        f"Student {progress.student_id} was already rejected in round {round_number}"
                    )
                shortlisted.append(progress)
            elif entry.status == EntryStatus.SHORTLISTED:
                shortlisted.append(progress)
            else:
                remainder.append(progress)

        is_final = drive.is_final_round(round_number)
        next_round = None if is_final else get_round_by_number(db, drive.id, round_number + 1)
        now = now_tz()

        for progress in shortlisted:
            _mark_shortlisted(entry_for(progress, round_number), now)
            _advance(progress, round_number, is_final, next_round)

        for progress in remainder:
            _mark_rejected(progress, entry_for(progress, round_number), now)

        for progress in students:
            if progress.student_id in marks_by_student:
                _record_marks(entry_for(progress, round_number), marks_by_student[progress.student_id], placement_round)
            if progress.student_id in feedback_by_student:
                entry_for(progress, round_number).feedback = feedback_by_student[progress.student_id]
            recompute_scores(progress)
            assert_invariants(progress, drive.total_rounds)

        placement_round.status = RoundStatus.COMPLETED
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Round %s completion hit a storage constraint; rolled back", round_id)
        raise StateConflict("Round completion conflicted with existing progress entries")
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Completed round %s (#%s) of drive %s: %s shortlisted, %s rejected",
        round_id, round_number, drive.id, len(shortlisted), len(remainder)
    )
    return {
        "shortlisted_count": len(shortlisted),
        "rejected_count": len(remainder),
        "shortlisted": [progress.student_id for progress in shortlisted],
        "rejected": [progress.student_id for progress in remainder]
    }


# ============ PARTIAL ACTIONS ============

def _apply_partial(db: Session, round_id: int, student_ids: Iterable[str], target: EntryStatus) -> int:
    action = "shortlist students in" if target == EntryStatus.SHORTLISTED else "reject students in"
    try:
        placement_round = _lock_running_round(db, round_id, action)
        drive = placement_round.drive
        round_number = placement_round.round_number

        ids = normalize_student_ids(student_ids)
        if not ids:
            raise ValidationError("Please select at least one student")

        students = get_students_in_round(db, drive.id, round_number, lock=True)
        by_student = {progress.student_id: progress for progress in students}
        unknown = [sid for sid in ids if sid not in by_student]
        if unknown:
            raise _unknown_students_error(unknown, round_number)

        now = now_tz()
        for student_id in ids:
            progress = by_student[student_id]
            entry = entry_for(progress, round_number)
            if target == EntryStatus.SHORTLISTED:
                if entry.status == EntryStatus.REJECTED:
                    raise StateConflict(
                        f"Student {student_id} was already rejected in round {round_number}"
                    )
                _mark_shortlisted(entry, now)
            else:
                _mark_rejected(progress, entry, now)
            recompute_scores(progress)
            assert_invariants(progress, drive.total_rounds, settled=False)

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Marked %s students %s in round %s of drive %s", len(ids), target.value, round_number, drive.id)
    return len(ids)


def shortlist_students(db: Session, round_id: int, student_ids: Iterable[str]) -> int:
    """
    Provisionally shortlist students while the round is running.

    Re-shortlisting is a no-op. Returns the number of students now
    shortlisted by this request.
    """
    return _apply_partial(db, round_id, student_ids, EntryStatus.SHORTLISTED)


def reject_students(db: Session, round_id: int, student_ids: Iterable[str]) -> int:
    """Reject students in a running round; rejection is final for the drive."""
    return _apply_partial(db, round_id, student_ids, EntryStatus.REJECTED)
