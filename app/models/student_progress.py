"""
Progression store models.

StudentRoundProgress is the system of record for one student in one
drive. Its `round_progress` entries form an ordered list with at most
one entry per round number, enforced by a unique constraint.
"""

from sqlalchemy import (
    Column, Integer, String, Float, Text, DateTime,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.enums import (
    EntryStatus, FinalResult, OverallStatus, enum_column_type
)


class StudentRoundProgress(Base):
    """Per-student, per-drive record of round-by-round outcomes."""
    __tablename__ = "student_round_progress"

    id = Column(Integer, primary_key=True)
    student_id = Column(String(64), nullable=False, index=True)
    drive_id = Column(Integer, ForeignKey("placement_drives.id", ondelete="CASCADE"), nullable=False)

    current_round = Column(Integer, nullable=False, default=1)
    overall_status = Column(enum_column_type(OverallStatus), nullable=False, default=OverallStatus.ACTIVE)
    final_result = Column(enum_column_type(FinalResult), nullable=True)  # NULL = not decided

    total_marks = Column(Float, nullable=False, default=0.0)
    average_percentage = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime, server_default=func.now())
    last_updated = Column(DateTime, server_default=func.now(), onupdate=func.now())

    drive = relationship("PlacementDrive", back_populates="student_progress")
    round_progress = relationship(
        "RoundProgressEntry",
        back_populates="progress",
        cascade="all, delete-orphan",
        order_by="RoundProgressEntry.round_number",
    )

    __table_args__ = (
        UniqueConstraint("student_id", "drive_id", name="uq_progress_student_drive"),
        Index("ix_progress_drive_round", "drive_id", "current_round"),
        Index("ix_progress_overall_status", "overall_status"),
    )

    def __repr__(self):
        return (
            f"<StudentRoundProgress(student={self.student_id}, drive={self.drive_id}, "
            f"round={self.current_round}, status={self.overall_status})>"
        )

    @property
    def is_terminal(self) -> bool:
        return self.overall_status in (OverallStatus.PLACED, OverallStatus.REJECTED)


class RoundProgressEntry(Base):
    """Outcome of a student in one round of a drive."""
    __tablename__ = "round_progress_entries"

    id = Column(Integer, primary_key=True)
    progress_id = Column(
        Integer,
        ForeignKey("student_round_progress.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    round_number = Column(Integer, nullable=False)
    round_name = Column(String(255), nullable=False)
    status = Column(enum_column_type(EntryStatus), nullable=False, default=EntryStatus.PENDING)

    marks_obtained = Column(Float, nullable=False, default=0.0)
    max_marks = Column(Float, nullable=False, default=100.0)
    percentage = Column(Float, nullable=False, default=0.0)
    feedback = Column(Text, default="")
    evaluated_at = Column(DateTime(timezone=True))

    progress = relationship("StudentRoundProgress", back_populates="round_progress")

    __table_args__ = (
        UniqueConstraint("progress_id", "round_number", name="uq_entry_progress_round"),
    )

    def __repr__(self):
        return f"<RoundProgressEntry(round={self.round_number}, status={self.status})>"
