"""
SQLAlchemy models for the placement rounds engine.

This package contains:
- PlacementDrive: A company's recruitment drive
- PlacementRound: Numbered evaluation stages of a drive
- StudentRoundProgress / RoundProgressEntry: Per-student progression store

Companies and students are referenced by opaque identifiers owned by
other services.
"""

from app.models.placement_drive import PlacementDrive
from app.models.placement_round import PlacementRound
from app.models.student_progress import StudentRoundProgress, RoundProgressEntry

__all__ = ["PlacementDrive", "PlacementRound", "StudentRoundProgress", "RoundProgressEntry"]
