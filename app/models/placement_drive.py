"""
PlacementDrive model - one company's recruitment process.

A drive owns its rounds and every student progress record; deleting
the drive removes both.
"""

from sqlalchemy import (
    Column, Integer, String, Date, Text,
    DateTime, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.enums import DriveStatus, enum_column_type


class PlacementDrive(Base):
    """
    Recruitment drive for a single company.

    `total_rounds` is fixed when the drive is created; the drive's final
    round is the round whose number equals it.
    """
    __tablename__ = "placement_drives"

    id = Column(Integer, primary_key=True)

    # ============ COMPANY & DESCRIPTION ============
    company_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)

    # ============ SCHEDULE ============
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # ============ ROUND STRUCTURE & STATUS ============
    total_rounds = Column(Integer, nullable=False, default=1)
    status = Column(enum_column_type(DriveStatus), nullable=False, default=DriveStatus.DRAFT)

    # ============ INTERNAL TRACKING ============
    created_by = Column(String(64))  # Admin identifier from the auth layer
    created_at = Column(DateTime, server_default=func.now())
    last_updated = Column(DateTime, server_default=func.now(), onupdate=func.now())

    rounds = relationship(
        "PlacementRound",
        back_populates="drive",
        cascade="all, delete-orphan",
        order_by="PlacementRound.round_number",
    )
    student_progress = relationship(
        "StudentRoundProgress",
        back_populates="drive",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_drives_company_status", "company_id", "status"),
        Index("ix_drives_dates", "start_date", "end_date"),
    )

    def __repr__(self):
        return f"<PlacementDrive(id={self.id}, company={self.company_id}, title={self.title})>"

    def is_final_round(self, round_number: int) -> bool:
        return round_number >= self.total_rounds
