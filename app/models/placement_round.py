"""
PlacementRound model - one evaluation stage of a drive.
"""

from sqlalchemy import (
    Column, Integer, String, Text, DateTime,
    ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.enums import RoundStatus, RoundType, enum_column_type


class PlacementRound(Base):
    """
    A numbered round within a drive.

    Round numbers are unique per drive at the storage layer. Status only
    changes through start (round service) and completion (shortlist
    processor).
    """
    __tablename__ = "placement_rounds"

    id = Column(Integer, primary_key=True)
    drive_id = Column(Integer, ForeignKey("placement_drives.id", ondelete="CASCADE"), nullable=False, index=True)

    round_number = Column(Integer, nullable=False)
    round_name = Column(String(255), nullable=False)
    round_type = Column(enum_column_type(RoundType), nullable=False)
    description = Column(Text, nullable=False)
    instructions = Column(Text, default="")

    # ============ EVALUATION ============
    duration = Column(Integer, default=60)  # minutes
    max_marks = Column(Integer, default=100)
    passing_marks = Column(Integer, default=50)

    # ============ SCHEDULE ============
    scheduled_date = Column(DateTime)
    scheduled_time = Column(String(20))  # e.g. "10:00 AM"
    venue = Column(String(255), default="")

    status = Column(enum_column_type(RoundStatus), nullable=False, default=RoundStatus.SCHEDULED)

    created_at = Column(DateTime, server_default=func.now())
    last_updated = Column(DateTime, server_default=func.now(), onupdate=func.now())

    drive = relationship("PlacementDrive", back_populates="rounds")

    __table_args__ = (
        UniqueConstraint("drive_id", "round_number", name="uq_round_drive_number"),
    )

    def __repr__(self):
        return f"<PlacementRound(id={self.id}, drive={self.drive_id}, number={self.round_number}, status={self.status})>"
