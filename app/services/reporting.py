"""
Dashboard aggregates derived from the progression store.
"""

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.enums import EntryStatus, OverallStatus
from app.models.student_progress import StudentRoundProgress
from app.services.drive_service import get_drive
from app.services.progress_service import entry_for
from app.services.progression_query import get_students_in_round


def drive_summary(db: Session, drive_id: int) -> dict:
    """Number of students per overall status in a drive."""
    get_drive(db, drive_id)

    rows = db.query(
        StudentRoundProgress.overall_status,
        func.count(StudentRoundProgress.id)
    ).filter(
        StudentRoundProgress.drive_id == drive_id
    ).group_by(StudentRoundProgress.overall_status).all()

    counts = {status: 0 for status in OverallStatus}
    for status, count in rows:
        counts[OverallStatus(status)] = count

    return {
        "drive_id": drive_id,
        "total": sum(counts.values()),
        "active": counts[OverallStatus.ACTIVE],
        "placed": counts[OverallStatus.PLACED],
        "rejected": counts[OverallStatus.REJECTED]
    }


def round_summary(db: Session, drive_id: int, round_number: int) -> dict:
    """
    Outcome counts for the students enrolled in one round.

    Uses the same progression-filtered population as the round listing,
    so stray entries never inflate the numbers.
    """
    get_drive(db, drive_id)
    students = get_students_in_round(db, drive_id, round_number)

    counts = {status: 0 for status in EntryStatus}
    for progress in students:
        counts[entry_for(progress, round_number).status] += 1

    return {
        "drive_id": drive_id,
        "round_number": round_number,
        "enrolled": len(students),
        "shortlisted": counts[EntryStatus.SHORTLISTED],
        "rejected": counts[EntryStatus.REJECTED],
        "pending": counts[EntryStatus.PENDING]
    }
