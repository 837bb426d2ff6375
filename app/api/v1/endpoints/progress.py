"""
Student-facing progress endpoints.

The student ID comes from the auth layer in front of this service.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.api.v1.schemas import StudentDriveProgressResponse, StudentProgressResponse
from app.services import progress_service


router = APIRouter(prefix="/progress", tags=["Student Progress"])


@router.get("/students/{student_id}", response_model=list[StudentDriveProgressResponse])
def get_all_student_progress(student_id: str, db: Session = Depends(get_db)):
    """A student's progress in every drive they are enrolled in."""
    return progress_service.list_student_progress(db, student_id)


@router.get("/students/{student_id}/drives/{drive_id}", response_model=StudentProgressResponse)
def get_student_progress(student_id: str, drive_id: int, db: Session = Depends(get_db)):
    """
    A student's progress in one drive.

    **Returns:**
    - 200: Progress record with roundProgress entries
    - 404: Student is not enrolled in the drive
    """
    return progress_service.get_progress(db, student_id, drive_id)
