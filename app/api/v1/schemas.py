"""
Request/response schemas shared by the v1 endpoints.

Payloads use camelCase field names (roundProgress, roundNumber,
overallStatus...) which existing admin and student clients depend on.
Requests also accept snake_case.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.models.enums import (
    DriveStatus, EntryStatus, FinalResult, OverallStatus, RoundStatus, RoundType
)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )


# ============ DRIVES ============

class DriveCreate(CamelModel):
    """Required fields are checked by the drive service so errors read the same everywhere."""
    company_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_rounds: int = 1
    status: str = DriveStatus.DRAFT.value
    created_by: Optional[str] = None


class DriveUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_rounds: Optional[int] = None
    status: Optional[str] = None


class DriveResponse(CamelModel):
    id: int
    company_id: str
    title: str
    description: str
    start_date: date
    end_date: date
    total_rounds: int
    status: DriveStatus
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class DrivesListResponse(CamelModel):
    """Paginated list of placement drives."""
    total: int
    skip: int
    limit: int
    drives: list[DriveResponse]


# ============ ROUNDS ============

class RoundCreate(CamelModel):
    drive_id: int
    round_number: Optional[int] = None  # defaults to the next sequential number
    round_name: Optional[str] = None
    round_type: Optional[str] = None
    description: Optional[str] = None
    instructions: str = ""
    duration: int = 60
    max_marks: int = 100
    passing_marks: int = 50
    scheduled_date: Optional[datetime] = None
    scheduled_time: Optional[str] = None
    venue: str = ""


class RoundUpdate(CamelModel):
    """Round number and drive are fixed; everything else is editable before the round starts."""
    round_name: Optional[str] = None
    round_type: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    duration: Optional[int] = None
    max_marks: Optional[int] = None
    passing_marks: Optional[int] = None
    scheduled_date: Optional[datetime] = None
    scheduled_time: Optional[str] = None
    venue: Optional[str] = None


class RoundResponse(CamelModel):
    id: int
    drive_id: int
    round_number: int
    round_name: str
    round_type: RoundType
    description: str
    instructions: Optional[str] = None
    duration: Optional[int] = None
    max_marks: Optional[int] = None
    passing_marks: Optional[int] = None
    scheduled_date: Optional[datetime] = None
    scheduled_time: Optional[str] = None
    venue: Optional[str] = None
    status: RoundStatus
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class StudentSelection(CamelModel):
    student_ids: list[str] = []


class UpdatedCountResponse(CamelModel):
    updated_count: int


class CompleteRoundRequest(CamelModel):
    shortlisted_student_ids: list[str] = []
    marks: Optional[dict[str, float]] = None
    feedback: Optional[dict[str, str]] = None


class CompleteRoundResponse(CamelModel):
    shortlisted_count: int
    rejected_count: int
    shortlisted: list[str]
    rejected: list[str]


# ============ PROGRESS ============

class RoundProgressEntryResponse(CamelModel):
    round_number: int
    round_name: str
    status: EntryStatus
    marks_obtained: float
    max_marks: float
    percentage: float
    feedback: Optional[str] = None
    evaluated_at: Optional[datetime] = None


class StudentProgressResponse(CamelModel):
    id: int
    student_id: str
    drive_id: int
    current_round: int
    overall_status: OverallStatus
    final_result: Optional[FinalResult] = None
    round_progress: list[RoundProgressEntryResponse]
    total_marks: float
    average_percentage: float
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class StudentDriveProgressResponse(StudentProgressResponse):
    """Student self view: the progress record plus the drive it belongs to."""
    drive: DriveResponse


class DriveDetailResponse(CamelModel):
    placement_drive: DriveResponse
    rounds: list[RoundResponse]
    student_progress: list[StudentProgressResponse]


class RoundDetailResponse(CamelModel):
    """A round and the students enrolled in it."""
    placement_round: RoundResponse
    student_progress: list[StudentProgressResponse]


class EnrollResponse(CamelModel):
    enrolled: list[str]
    skipped: list[str]


class StudentsInRoundResponse(CamelModel):
    drive_id: int
    round_number: int
    count: int
    students: list[StudentProgressResponse]


class StudentsByRoundResponse(CamelModel):
    drive_id: int
    rounds: dict[int, list[StudentProgressResponse]]


# ============ REPORTING ============

class DriveSummaryResponse(CamelModel):
    drive_id: int
    total: int
    active: int
    placed: int
    rejected: int


class RoundSummaryResponse(CamelModel):
    drive_id: int
    round_number: int
    enrolled: int
    shortlisted: int
    rejected: int
    pending: int


class MessageResponse(CamelModel):
    message: str
