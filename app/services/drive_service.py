"""
Drive registry.

CRUD for placement drives plus the aggregated detail read used by the
admin dashboard:
- create_drive / update_drive / delete_drive
- get_drive / get_drive_detail
- list_drives / count_drives for the paginated listing
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from app.exceptions import NotFound, StateConflict, ValidationError
from app.models.enums import DriveStatus
from app.models.placement_drive import PlacementDrive
from app.models.student_progress import StudentRoundProgress

logger = logging.getLogger(__name__)

# Statuses a drive may be created in
INITIAL_STATUSES = (DriveStatus.DRAFT, DriveStatus.ACTIVE)

# Drives only move forward; completed and cancelled are final
STATUS_TRANSITIONS = {
    DriveStatus.DRAFT: (DriveStatus.ACTIVE, DriveStatus.CANCELLED),
    DriveStatus.ACTIVE: (DriveStatus.COMPLETED, DriveStatus.CANCELLED),
    DriveStatus.COMPLETED: (),
    DriveStatus.CANCELLED: (),
}


def _normalize_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def _parse_status(value) -> DriveStatus:
    try:
        return DriveStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid drive status: {value}")


def _check_dates(start_date: date, end_date: date) -> None:
    if start_date is None or end_date is None:
        raise ValidationError("Start date and end date are required")
    if end_date < start_date:
        raise ValidationError("Drive end date cannot be before its start date")


# ============ WRITE OPERATIONS ============

def create_drive(
    db: Session,
    company_id: str,
    title: str,
    description: str,
    start_date: date,
    end_date: date,
    total_rounds: int = 1,
    status: str = DriveStatus.DRAFT,
    created_by: str = None
) -> PlacementDrive:
    """
    Create a new placement drive.

    Args:
        db: Database session
        company_id: Identifier of the recruiting company
        title: Drive title
        description: Drive description
        start_date: First day of the drive
        end_date: Last day of the drive
        total_rounds: Number of rounds, fixed for the life of the drive
        status: "draft" (default) or "active"
        created_by: Identifier of the admin creating the drive

    Raises:
        ValidationError: Missing company/title/description, bad dates,
            total_rounds < 1 or an unsupported initial status
    """
    company_id = _normalize_text(company_id)
    title = _normalize_text(title)
    description = _normalize_text(description)

    if not company_id:
        raise ValidationError("Company is required")
    if not title:
        raise ValidationError("Title is required")
    if not description:
        raise ValidationError("Description is required")
    if total_rounds is None or total_rounds < 1:
        raise ValidationError("Total rounds must be 1 or greater")
    _check_dates(start_date, end_date)

    drive_status = _parse_status(status)
    if drive_status not in INITIAL_STATUSES:
        raise ValidationError("A new drive must start as draft or active")

    drive = PlacementDrive(
        company_id=company_id,
        title=title,
        description=description,
        start_date=start_date,
        end_date=end_date,
        total_rounds=total_rounds,
        status=drive_status,
        created_by=_normalize_text(created_by)
    )

    db.add(drive)
    db.commit()
    db.refresh(drive)

    logger.info("Created drive %s for company %s with %s rounds", drive.id, company_id, total_rounds)
    return drive


def update_drive(db: Session, drive_id: int, **fields) -> PlacementDrive:
    """
    Update editable drive fields (title, description, dates, status).

    Only non-None values are applied. The round count is fixed at
    creation and cannot be changed here. Status only moves forward:
    draft -> active -> completed, with cancelled reachable from draft
    or active.
    """
    drive = get_drive(db, drive_id)

    if fields.get("total_rounds") is not None and fields["total_rounds"] != drive.total_rounds:
        raise ValidationError("Total rounds cannot be changed after the drive is created")

    if "title" in fields and fields["title"] is not None:
        title = _normalize_text(fields["title"])
        if not title:
            raise ValidationError("Title is required")
        drive.title = title

    if "description" in fields and fields["description"] is not None:
        description = _normalize_text(fields["description"])
        if not description:
            raise ValidationError("Description is required")
        drive.description = description

    start_date = fields.get("start_date") or drive.start_date
    end_date = fields.get("end_date") or drive.end_date
    _check_dates(start_date, end_date)
    drive.start_date = start_date
    drive.end_date = end_date

    if fields.get("status") is not None:
        new_status = _parse_status(fields["status"])
        if new_status != drive.status and new_status not in STATUS_TRANSITIONS[drive.status]:
            db.rollback()
            raise StateConflict(
                f"Cannot move a drive from '{drive.status.value}' to '{new_status.value}'"
            )
        drive.status = new_status

    db.commit()
    db.refresh(drive)

    logger.info("Updated drive %s", drive.id)
    return drive


def delete_drive(db: Session, drive_id: int) -> None:
    """
    Delete a drive together with its rounds and all progress records.

    Irreversible.
    """
    drive = get_drive(db, drive_id)
    db.delete(drive)
    db.commit()
    logger.info("Deleted drive %s and its rounds/progress records", drive_id)


# ============ READ OPERATIONS ============

def get_drive(db: Session, drive_id: int) -> PlacementDrive:
    """Get a single drive by ID or raise NotFound."""
    drive = db.query(PlacementDrive).filter(
        PlacementDrive.id == drive_id
    ).first()

    if not drive:
        raise NotFound(f"Placement drive with ID {drive_id} not found")
    return drive


def get_drive_detail(db: Session, drive_id: int) -> dict:
    """
    Aggregated dashboard read: the drive, its rounds and every student
    progress record.

    Progress records are ordered furthest-progressed first, then by
    average percentage.
    """
    drive = get_drive(db, drive_id)

    student_progress = (
        db.query(StudentRoundProgress)
        .options(selectinload(StudentRoundProgress.round_progress))
        .filter(StudentRoundProgress.drive_id == drive_id)
        .order_by(
            StudentRoundProgress.current_round.desc(),
            StudentRoundProgress.average_percentage.desc(),
            StudentRoundProgress.id
        )
        .all()
    )

    return {
        "placement_drive": drive,
        "rounds": list(drive.rounds),
        "student_progress": student_progress
    }


def _filtered_query(query, status: str = None, company_id: str = None):
    if status:
        query = query.filter(PlacementDrive.status == _parse_status(status))
    if company_id:
        query = query.filter(PlacementDrive.company_id == company_id)
    return query


def list_drives(
    db: Session,
    skip: int = 0,
    limit: int = 10,
    status: str = None,
    company_id: str = None
) -> list[PlacementDrive]:
    """
    Get placement drives with optional filtering, newest first.

    Args:
        db: Database session
        skip: Offset for pagination
        limit: Max results
        status: Filter by drive status
        company_id: Filter by company
    """
    query = _filtered_query(db.query(PlacementDrive), status, company_id)
    query = query.order_by(PlacementDrive.created_at.desc(), PlacementDrive.id.desc())
    return query.offset(skip).limit(limit).all()


def count_drives(db: Session, status: str = None, company_id: str = None) -> int:
    """Get total count of drives for pagination."""
    return _filtered_query(db.query(PlacementDrive), status, company_id).count()
