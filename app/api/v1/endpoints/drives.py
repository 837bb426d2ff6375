"""
Admin API endpoints for placement drives.

Drive CRUD, enrollment, the per-round student listings and the
dashboard counters.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.database import get_db
from app.api.v1.schemas import (
    DriveCreate, DriveUpdate, DriveResponse, DrivesListResponse, DriveDetailResponse,
    RoundResponse, StudentProgressResponse, StudentSelection, EnrollResponse,
    StudentsInRoundResponse, StudentsByRoundResponse, DriveSummaryResponse,
    RoundSummaryResponse, MessageResponse
)
from app.services import drive_service, progress_service, progression_query, reporting


router = APIRouter(prefix="/drives", tags=["Placement Drives"])


# ============ DRIVE CRUD ============

@router.post("", response_model=DriveResponse, status_code=201)
def create_drive(data: DriveCreate, db: Session = Depends(get_db)):
    """
    Create a placement drive.

    **Returns:**
    - 201: The new drive (status draft unless "active" was requested)
    - 400: Missing company/title/description, totalRounds < 1 or bad dates
    """
    return drive_service.create_drive(
        db=db,
        company_id=data.company_id,
        title=data.title,
        description=data.description,
        start_date=data.start_date,
        end_date=data.end_date,
        total_rounds=data.total_rounds,
        status=data.status,
        created_by=data.created_by
    )


@router.get("", response_model=DrivesListResponse)
def list_drives(
    skip: int = Query(0, ge=0, description="Offset for pagination"),
    limit: int = Query(10, ge=1, le=100, description="Max results"),
    status: Optional[str] = Query(None, description="Filter by status: draft, active, completed, cancelled"),
    company: Optional[str] = Query(None, description="Filter by company ID"),
    db: Session = Depends(get_db)
):
    """
    List placement drives, newest first.

    **Example:**
    ```
    GET /api/v1/drives?status=active&company=acme
    ```
    """
    drives = drive_service.list_drives(db=db, skip=skip, limit=limit, status=status, company_id=company)
    total = drive_service.count_drives(db=db, status=status, company_id=company)

    return DrivesListResponse(
        total=total,
        skip=skip,
        limit=limit,
        drives=[DriveResponse.model_validate(drive) for drive in drives]
    )


@router.get("/{drive_id}", response_model=DriveDetailResponse)
def get_drive(drive_id: int, db: Session = Depends(get_db)):
    """
    Drive detail for the admin dashboard: the drive, its rounds and every
    student progress record.

    **Returns:**
    - 200: Drive, rounds and studentProgress
    - 404: Drive not found
    """
    detail = drive_service.get_drive_detail(db, drive_id)

    return DriveDetailResponse(
        placement_drive=DriveResponse.model_validate(detail["placement_drive"]),
        rounds=[RoundResponse.model_validate(r) for r in detail["rounds"]],
        student_progress=[StudentProgressResponse.model_validate(p) for p in detail["student_progress"]]
    )


@router.put("/{drive_id}", response_model=DriveResponse)
def update_drive(drive_id: int, data: DriveUpdate, db: Session = Depends(get_db)):
    """Update title, description, dates or status of a drive."""
    return drive_service.update_drive(db, drive_id, **data.model_dump(exclude_unset=True))


@router.delete("/{drive_id}", response_model=MessageResponse)
def delete_drive(drive_id: int, db: Session = Depends(get_db)):
    """Delete a drive with all of its rounds and student progress. Irreversible."""
    drive_service.delete_drive(db, drive_id)
    return MessageResponse(message="Placement drive deleted successfully")


# ============ ENROLLMENT & ROUND POPULATIONS ============

@router.post("/{drive_id}/enroll", response_model=EnrollResponse, status_code=201)
def enroll_students(drive_id: int, data: StudentSelection, db: Session = Depends(get_db)):
    """
    Enroll students into round 1 of the drive.

    Students who are already enrolled are reported under `skipped`.
    """
    result = progress_service.enroll_students(db, drive_id, data.student_ids)
    return EnrollResponse(**result)


@router.get("/{drive_id}/rounds/{round_number}/students", response_model=StudentsInRoundResponse)
def get_students_in_round(
    drive_id: int,
    round_number: int,
    status: Optional[str] = Query(None, description="Filter by this round's outcome: pending, shortlisted, rejected"),
    db: Session = Depends(get_db)
):
    """
    Students enrolled in a round.

    For rounds after the first only students shortlisted in the previous
    round are listed.
    """
    drive_service.get_drive(db, drive_id)
    students = progression_query.get_students_in_round(db, drive_id, round_number, status=status)

    return StudentsInRoundResponse(
        drive_id=drive_id,
        round_number=round_number,
        count=len(students),
        students=[StudentProgressResponse.model_validate(p) for p in students]
    )


@router.get("/{drive_id}/students-by-round", response_model=StudentsByRoundResponse)
def get_students_by_round(drive_id: int, db: Session = Depends(get_db)):
    """Every student grouped under each round they reached."""
    grouped = progression_query.group_students_by_round(db, drive_id)

    return StudentsByRoundResponse(
        drive_id=drive_id,
        rounds={
            round_number: [StudentProgressResponse.model_validate(p) for p in records]
            for round_number, records in grouped.items()
        }
    )


# ============ DASHBOARD COUNTERS ============

@router.get("/{drive_id}/summary", response_model=DriveSummaryResponse)
def get_drive_summary(drive_id: int, db: Session = Depends(get_db)):
    """Active / placed / rejected counts for a drive."""
    return DriveSummaryResponse(**reporting.drive_summary(db, drive_id))


@router.get("/{drive_id}/rounds/{round_number}/summary", response_model=RoundSummaryResponse)
def get_round_summary(drive_id: int, round_number: int, db: Session = Depends(get_db)):
    """Enrolled / shortlisted / rejected / pending counts for one round."""
    return RoundSummaryResponse(**reporting.round_summary(db, drive_id, round_number))
