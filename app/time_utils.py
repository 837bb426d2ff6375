from datetime import datetime
from zoneinfo import ZoneInfo

from app.config import APP_TIMEZONE


def now_tz() -> datetime:
    """Current time in the configured application timezone."""
    return datetime.now(ZoneInfo(APP_TIMEZONE))
