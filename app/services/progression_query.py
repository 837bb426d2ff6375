"""
Read side of the progression store.

"Who is in round N" is answered from the entries themselves, not from
current_round, and the progression rule is re-applied on every read:
a student only counts for round N > 1 when they were shortlisted in
round N-1, whatever stray entries the store may hold.
"""

from collections import defaultdict
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from app.exceptions import ValidationError
from app.models.enums import EntryStatus
from app.models.student_progress import RoundProgressEntry, StudentRoundProgress
from app.services.drive_service import get_drive
from app.services.progress_service import entry_for, passes_progression
from app.services.round_service import get_round


def _parse_entry_status(value) -> Optional[EntryStatus]:
    if value is None:
        return None
    try:
        return EntryStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid round status filter: {value}")


def get_students_in_round(
    db: Session,
    drive_id: int,
    round_number: int,
    status: str = None,
    lock: bool = False
) -> list[StudentRoundProgress]:
    """
    Students enrolled in `round_number` of a drive.

    Args:
        db: Database session
        drive_id: Drive to look in
        round_number: Round to list
        status: Optional filter on the student's entry for this round
            (pending, shortlisted, rejected)
        lock: Select the progress rows FOR UPDATE (used by writers)

    Returns:
        Progress records ordered by enrollment
    """
    entry_status = _parse_entry_status(status)

    query = (
        db.query(StudentRoundProgress)
        .join(RoundProgressEntry, RoundProgressEntry.progress_id == StudentRoundProgress.id)
        .options(selectinload(StudentRoundProgress.round_progress))
        .filter(
            StudentRoundProgress.drive_id == drive_id,
            RoundProgressEntry.round_number == round_number
        )
        .order_by(StudentRoundProgress.created_at, StudentRoundProgress.id)
    )
    if lock:
        query = query.with_for_update(of=StudentRoundProgress)

    students = []
    for progress in query.all():
        if not passes_progression(progress, round_number):
            continue
        if entry_status is not None and entry_for(progress, round_number).status != entry_status:
            continue
        students.append(progress)
    return students


def group_students_by_round(db: Session, drive_id: int) -> dict[int, list[StudentRoundProgress]]:
    """
    Every student of a drive grouped under each round they legitimately
    reached, for the "all rounds" admin view.
    """
    get_drive(db, drive_id)

    records = (
        db.query(StudentRoundProgress)
        .options(selectinload(StudentRoundProgress.round_progress))
        .filter(StudentRoundProgress.drive_id == drive_id)
        .order_by(StudentRoundProgress.created_at, StudentRoundProgress.id)
        .all()
    )

    grouped = defaultdict(list)
    for progress in records:
        for entry in progress.round_progress:
            if passes_progression(progress, entry.round_number):
                grouped[entry.round_number].append(progress)
    return dict(sorted(grouped.items()))


def get_round_detail(db: Session, round_id: int) -> dict:
    """
    A round together with the students enrolled in it, highest marks
    first for this round.
    """
    placement_round = get_round(db, round_id)
    students = get_students_in_round(db, placement_round.drive_id, placement_round.round_number)
    students.sort(
        key=lambda progress: entry_for(progress, placement_round.round_number).marks_obtained or 0.0,
        reverse=True
    )
    return {"placement_round": placement_round, "student_progress": students}
