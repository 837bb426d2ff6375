"""
Domain errors raised by the service layer.

Each error carries the HTTP status it is rendered with; main.py installs
a single handler that turns them into {"detail": message} responses.
"""


class PlacementError(Exception):
    """Base class for all engine errors."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PlacementError):
    """User-correctable input problem (missing fields, empty selections...)."""
    status_code = 400


class NotFound(PlacementError):
    """Unknown drive, round or progress record."""
    status_code = 404


class StateConflict(PlacementError):
    """Illegal lifecycle transition or a write that would break progression rules."""
    status_code = 409
