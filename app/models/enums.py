"""
Closed value sets for drive, round and progression state.

Values are stored as their lowercase strings and are part of the
wire format, so existing clients keep working.
"""

import enum

from sqlalchemy import Enum


class DriveStatus(str, enum.Enum):
    """Lifecycle of a placement drive."""
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RoundType(str, enum.Enum):
    """Kind of evaluation a round performs."""
    APTITUDE = "aptitude"
    CODING = "coding"
    TECHNICAL = "technical"
    HR = "hr"
    GROUP_DISCUSSION = "group_discussion"
    PRESENTATION = "presentation"
    OTHER = "other"


class RoundStatus(str, enum.Enum):
    """Lifecycle of a single round."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EntryStatus(str, enum.Enum):
    """Outcome of one student in one round."""
    PENDING = "pending"
    SHORTLISTED = "shortlisted"
    REJECTED = "rejected"


class OverallStatus(str, enum.Enum):
    """Where a student stands in the whole drive."""
    ACTIVE = "active"
    PLACED = "placed"
    REJECTED = "rejected"


class FinalResult(str, enum.Enum):
    """Final drive outcome; NULL in the database means not decided yet."""
    SELECTED = "selected"
    REJECTED = "rejected"


def enum_column_type(enum_cls) -> Enum:
    """Store an enum by value in a plain VARCHAR column."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
