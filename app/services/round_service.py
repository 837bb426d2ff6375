"""
Round registry.

Owns round numbering, edits to scheduled rounds and the
scheduled -> in_progress transition.
Completion lives in shortlist_processor because it writes across the
round and every student progress record in it.
"""

import logging
from datetime import datetime, time
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import NotFound, StateConflict, ValidationError
from app.models.enums import DriveStatus, RoundStatus, RoundType
from app.models.placement_round import PlacementRound
from app.services.drive_service import get_drive

logger = logging.getLogger(__name__)

# Drives in these states no longer run rounds
CLOSED_DRIVE_STATUSES = (DriveStatus.COMPLETED, DriveStatus.CANCELLED)


def _parse_round_type(value) -> RoundType:
    if value is None:
        raise ValidationError("Round type is required")
    try:
        return RoundType(value)
    except ValueError:
        raise ValidationError(f"Invalid round type: {value}")


def _as_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _check_marks(max_marks, passing_marks) -> None:
    if max_marks is not None and max_marks <= 0:
        raise ValidationError("Max marks must be greater than 0")
    if passing_marks is not None and max_marks is not None and passing_marks > max_marks:
        raise ValidationError("Passing marks cannot exceed max marks")


def _check_schedule_window(drive, scheduled_at: Optional[datetime]) -> None:
    if scheduled_at is None:
        return
    scheduled_day = scheduled_at.date()
    if scheduled_day < drive.start_date or scheduled_day > drive.end_date:
        raise ValidationError("Round scheduled date must be within the drive start and end dates")


def _check_schedule_order(db: Session, placement_round: PlacementRound, scheduled_at: Optional[datetime]) -> None:
    """Keep the round between its neighbours: not before the previous round, strictly before the next."""
    if scheduled_at is None:
        return

    previous = db.query(PlacementRound).filter(
        PlacementRound.drive_id == placement_round.drive_id,
        PlacementRound.round_number < placement_round.round_number
    ).order_by(PlacementRound.round_number.desc()).first()
    following = db.query(PlacementRound).filter(
        PlacementRound.drive_id == placement_round.drive_id,
        PlacementRound.round_number > placement_round.round_number
    ).order_by(PlacementRound.round_number).first()

    if previous and previous.scheduled_date and scheduled_at < previous.scheduled_date:
        raise ValidationError(
            f"Round {placement_round.round_number} must be scheduled after Round {previous.round_number}"
        )
    if following and following.scheduled_date and not scheduled_at < following.scheduled_date:
        raise ValidationError(
            f"Round {placement_round.round_number} must be scheduled before Round {following.round_number}"
        )


def _duplicate_message(round_number: int) -> str:
    return (
        f"Round {round_number} already exists for this placement drive. "
        "Please use a different round number."
    )


def next_round_number(db: Session, drive_id: int) -> int:
    """Conventional number for the next round: max existing + 1."""
    current_max = db.query(func.max(PlacementRound.round_number)).filter(
        PlacementRound.drive_id == drive_id
    ).scalar()
    return (current_max or 0) + 1


def create_round(
    db: Session,
    drive_id: int,
    round_name: str,
    round_type: str,
    description: str,
    round_number: int = None,
    instructions: str = "",
    duration: int = 60,
    max_marks: int = 100,
    passing_marks: int = 50,
    scheduled_date: datetime = None,
    scheduled_time: str = None,
    venue: str = ""
) -> PlacementRound:
    """
    Attach a round to a drive.

    When `round_number` is omitted the next sequential number is used.
    Gaps are accepted; only duplicates and numbers outside
    1..total_rounds are refused.

    Raises:
        NotFound: Unknown drive
        ValidationError: Duplicate or out-of-range number, blank name,
            bad marks or a schedule outside the drive window
    """
    drive = get_drive(db, drive_id)

    if round_number is None:
        round_number = next_round_number(db, drive_id)

    if round_number < 1:
        raise ValidationError("Round number must be 1 or greater")
    if round_number > drive.total_rounds:
        raise ValidationError(
            f"This drive allows a maximum of {drive.total_rounds} rounds. "
            f"Round {round_number} cannot be added."
        )

    round_name = (round_name or "").strip()
    if not round_name:
        raise ValidationError("Round name is required")
    description = (description or "").strip()
    if not description:
        raise ValidationError("Round description is required")

    parsed_type = _parse_round_type(round_type)

    _check_marks(max_marks, passing_marks)

    scheduled_at = _as_datetime(scheduled_date)
    _check_schedule_window(drive, scheduled_at)

    existing = db.query(PlacementRound).filter(
        PlacementRound.drive_id == drive_id,
        PlacementRound.round_number == round_number
    ).first()
    if existing:
        raise ValidationError(_duplicate_message(round_number))

    placement_round = PlacementRound(
        drive_id=drive_id,
        round_number=round_number,
        round_name=round_name,
        round_type=parsed_type,
        description=description,
        instructions=instructions or "",
        duration=duration,
        max_marks=max_marks,
        passing_marks=passing_marks,
        scheduled_date=scheduled_at,
        scheduled_time=scheduled_time,
        venue=venue or "",
        status=RoundStatus.SCHEDULED
    )

    db.add(placement_round)

    try:
        db.commit()
    except IntegrityError:
        # Race condition - another admin created the same number
        db.rollback()
        raise ValidationError(_duplicate_message(round_number))

    db.refresh(placement_round)
    logger.info("Created round %s (#%s) for drive %s", placement_round.id, round_number, drive_id)
    return placement_round


UPDATABLE_FIELDS = (
    "round_name", "round_type", "description", "instructions", "duration",
    "max_marks", "passing_marks", "scheduled_date", "scheduled_time", "venue"
)


def update_round(db: Session, round_id: int, **fields) -> PlacementRound:
    """
    Edit a round that has not started yet.

    Only non-None values are applied. The round number and drive are
    fixed. A new schedule must stay inside the drive window and keep the
    round after the previous round and before the next one.

    Raises:
        NotFound: Unknown round
        StateConflict: Round already started
        ValidationError: Blank name/description, bad marks or schedule
    """
    placement_round = get_round(db, round_id, lock=True)

    if placement_round.status != RoundStatus.SCHEDULED:
        db.rollback()
        raise StateConflict("Only scheduled rounds can be edited")

    unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
    if unknown:
        db.rollback()
        raise ValidationError(f"Cannot update round field(s): {', '.join(unknown)}")

    changes = {key: value for key, value in fields.items() if value is not None}

    try:
        for key in ("round_name", "description"):
            if key in changes:
                changes[key] = str(changes[key]).strip()
                if not changes[key]:
                    label = "Round name" if key == "round_name" else "Round description"
                    raise ValidationError(f"{label} is required")

        if "round_type" in changes:
            changes["round_type"] = _parse_round_type(changes["round_type"])

        _check_marks(
            changes.get("max_marks", placement_round.max_marks),
            changes.get("passing_marks", placement_round.passing_marks)
        )

        if "scheduled_date" in changes:
            changes["scheduled_date"] = _as_datetime(changes["scheduled_date"])
            _check_schedule_window(placement_round.drive, changes["scheduled_date"])
            _check_schedule_order(db, placement_round, changes["scheduled_date"])
    except ValidationError:
        db.rollback()
        raise

    for key, value in changes.items():
        setattr(placement_round, key, value)

    db.commit()
    db.refresh(placement_round)

    logger.info("Updated round %s (#%s) of drive %s", round_id, placement_round.round_number, placement_round.drive_id)
    return placement_round


def get_round(db: Session, round_id: int, lock: bool = False) -> PlacementRound:
    """
    Get a round by ID or raise NotFound.

    With `lock=True` the row is selected FOR UPDATE so concurrent state
    transitions on the same round serialize.
    """
    query = db.query(PlacementRound).filter(PlacementRound.id == round_id)
    if lock:
        query = query.with_for_update()
    placement_round = query.first()

    if not placement_round:
        raise NotFound(f"Placement round with ID {round_id} not found")
    return placement_round


def get_round_by_number(db: Session, drive_id: int, round_number: int) -> Optional[PlacementRound]:
    return db.query(PlacementRound).filter(
        PlacementRound.drive_id == drive_id,
        PlacementRound.round_number == round_number
    ).first()


def list_rounds(db: Session, drive_id: int) -> list[PlacementRound]:
    """All rounds of a drive ordered by round number."""
    get_drive(db, drive_id)
    return db.query(PlacementRound).filter(
        PlacementRound.drive_id == drive_id
    ).order_by(PlacementRound.round_number).all()


def start_round(db: Session, round_id: int) -> PlacementRound:
    """
    Move a round from scheduled to in_progress.

    Rounds run one at a time and in order: round N only starts once
    round N-1 is completed, so everyone shortlisted into round N is
    already in place when it opens.

    Raises:
        NotFound: Unknown round
        StateConflict: Round is not scheduled, its drive is closed, or
            the previous round is missing or not completed
    """
    placement_round = get_round(db, round_id, lock=True)
    round_number = placement_round.round_number

    conflict = None
    if placement_round.status != RoundStatus.SCHEDULED:
        conflict = (
            f"Round {round_number} cannot be started from status "
            f"'{placement_round.status.value}'"
        )
    elif placement_round.drive.status in CLOSED_DRIVE_STATUSES:
        conflict = f"Cannot start a round of a {placement_round.drive.status.value} drive"
    elif round_number > 1:
        previous = get_round_by_number(db, placement_round.drive_id, round_number - 1)
        if previous is None:
            conflict = f"Round {round_number - 1} must be created and completed before round {round_number} starts"
        elif previous.status != RoundStatus.COMPLETED:
            conflict = (
                f"Round {round_number - 1} must be completed before round {round_number} starts "
                f"(status is '{previous.status.value}')"
            )

    if conflict:
        db.rollback()
        logger.warning("Refused to start round %s: %s", round_id, conflict)
        raise StateConflict(conflict)

    placement_round.status = RoundStatus.IN_PROGRESS
    db.commit()
    db.refresh(placement_round)

    logger.info("Started round %s (#%s) of drive %s", round_id, placement_round.round_number, placement_round.drive_id)
    return placement_round


def delete_round(db: Session, round_id: int) -> None:
    """
    Delete a round definition that has not started yet.

    Student entries are left untouched; a replacement round with the same
    number picks them up.
    """
    placement_round = get_round(db, round_id, lock=True)

    if placement_round.status != RoundStatus.SCHEDULED:
        db.rollback()
        raise StateConflict("Only scheduled rounds can be deleted")

    drive_id = placement_round.drive_id
    db.delete(placement_round)
    db.commit()
    logger.info("Deleted round %s from drive %s", round_id, drive_id)
