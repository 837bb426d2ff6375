import logging

from app.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging once at application startup."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
