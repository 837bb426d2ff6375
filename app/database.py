from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from app.config import DATABASE_URL, SQL_ECHO

# SQLite connections are shared across the threadpool FastAPI runs sync routes in
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# Create engine with connection pooling
engine = create_engine(
    DATABASE_URL,
    echo=SQL_ECHO,
    pool_pre_ping=True,  # Verify connections before use
    connect_args=connect_args
)

# Session factory for request-scoped sessions
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def get_db():
    """
    FastAPI dependency yielding one session per request.

    Services commit or roll back themselves; the session is always
    closed when the request ends. Tests override this dependency to
    point at an in-memory database.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
