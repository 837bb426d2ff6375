"""
Admin API endpoints for placement rounds.

Round lifecycle:
    scheduled --start--> in_progress --complete--> completed

While a round is in progress students can be shortlisted or rejected in
batches; completing the round decides everyone left.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.api.v1.schemas import (
    RoundCreate, RoundUpdate, RoundResponse, RoundDetailResponse, StudentSelection,
    UpdatedCountResponse, CompleteRoundRequest, CompleteRoundResponse, MessageResponse,
    StudentProgressResponse
)
from app.services import progression_query, round_service, shortlist_processor


router = APIRouter(prefix="/rounds", tags=["Placement Rounds"])


@router.post("", response_model=RoundResponse, status_code=201)
def create_round(data: RoundCreate, db: Session = Depends(get_db)):
    """
    Attach a round to a drive.

    `roundNumber` defaults to the next sequential number.

    **Returns:**
    - 201: The scheduled round
    - 400: Duplicate or out-of-range round number, missing fields
    - 404: Drive not found
    """
    return round_service.create_round(
        db=db,
        drive_id=data.drive_id,
        round_number=data.round_number,
        round_name=data.round_name,
        round_type=data.round_type,
        description=data.description,
        instructions=data.instructions,
        duration=data.duration,
        max_marks=data.max_marks,
        passing_marks=data.passing_marks,
        scheduled_date=data.scheduled_date,
        scheduled_time=data.scheduled_time,
        venue=data.venue
    )


@router.get("/drive/{drive_id}", response_model=list[RoundResponse])
def list_rounds(drive_id: int, db: Session = Depends(get_db)):
    """All rounds of a drive ordered by round number."""
    return round_service.list_rounds(db, drive_id)


@router.get("/{round_id}", response_model=RoundDetailResponse)
def get_round(round_id: int, db: Session = Depends(get_db)):
    """
    A round with the students enrolled in it, highest marks first.

    **Returns:**
    - 200: placementRound and studentProgress
    - 404: Round not found
    """
    detail = progression_query.get_round_detail(db, round_id)

    return RoundDetailResponse(
        placement_round=RoundResponse.model_validate(detail["placement_round"]),
        student_progress=[StudentProgressResponse.model_validate(p) for p in detail["student_progress"]]
    )


@router.put("/{round_id}", response_model=RoundResponse)
def update_round(round_id: int, data: RoundUpdate, db: Session = Depends(get_db)):
    """
    Edit a scheduled round.

    **Returns:**
    - 200: Updated round
    - 400: Bad marks, or a date outside the drive window or out of order
      with the neighbouring rounds
    - 409: Round already started
    """
    return round_service.update_round(db, round_id, **data.model_dump(exclude_unset=True))


@router.delete("/{round_id}", response_model=MessageResponse)
def delete_round(round_id: int, db: Session = Depends(get_db)):
    """Delete a round that has not been started."""
    round_service.delete_round(db, round_id)
    return MessageResponse(message="Placement round deleted successfully")


@router.patch("/{round_id}/start", response_model=RoundResponse)
def start_round(round_id: int, db: Session = Depends(get_db)):
    """
    Start a scheduled round.

    **Returns:**
    - 200: Round with status in_progress
    - 409: Round is not scheduled, its drive is closed, or the previous
      round has not been completed
    """
    return round_service.start_round(db, round_id)


@router.post("/{round_id}/shortlist", response_model=UpdatedCountResponse)
def shortlist_selected(round_id: int, data: StudentSelection, db: Session = Depends(get_db)):
    """Shortlist the selected students now; they advance when the round completes."""
    count = shortlist_processor.shortlist_students(db, round_id, data.student_ids)
    return UpdatedCountResponse(updated_count=count)


@router.post("/{round_id}/reject", response_model=UpdatedCountResponse)
def reject_selected(round_id: int, data: StudentSelection, db: Session = Depends(get_db)):
    """Reject the selected students now. Rejection ends their drive."""
    count = shortlist_processor.reject_students(db, round_id, data.student_ids)
    return UpdatedCountResponse(updated_count=count)


@router.patch("/{round_id}/complete", response_model=CompleteRoundResponse)
def complete_round(round_id: int, data: CompleteRoundRequest, db: Session = Depends(get_db)):
    """
    Complete an in-progress round.

    Students in `shortlistedStudentIds` (and anyone shortlisted earlier in
    this round) advance; every other student in the round is rejected.
    Optional `marks` and `feedback` map student IDs to marks obtained and
    evaluator comments for this round.

    **Returns:**
    - 200: shortlistedCount and rejectedCount
    - 400: Shortlist names students who are not in the round
    - 409: Round is not in progress (e.g. already completed) or its drive is closed
    """
    result = shortlist_processor.complete_round(
        db,
        round_id,
        data.shortlisted_student_ids,
        marks=data.marks,
        feedback=data.feedback
    )
    return CompleteRoundResponse(**result)
