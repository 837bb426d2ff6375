import os

# Keep the application engine off any real database during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.models import PlacementDrive, PlacementRound, StudentRoundProgress, RoundProgressEntry  # noqa: F401
from app.services import drive_service, progress_service, round_service


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_drive(db):
    def _make(total_rounds=2, **overrides):
        fields = {
            "company_id": "acme",
            "title": "Acme SDE Drive",
            "description": "Software engineer hiring for the 2026 batch",
            "start_date": date(2026, 1, 1),
            "end_date": date(2026, 3, 31),
            "total_rounds": total_rounds,
            "status": "active",
        }
        fields.update(overrides)
        return drive_service.create_drive(db, **fields)
    return _make


@pytest.fixture
def make_round(db):
    def _make(drive, round_number=None, **overrides):
        fields = {
            "round_name": f"Round {round_number}" if round_number else "Next round",
            "round_type": "technical",
            "description": "Technical interview",
            "scheduled_date": datetime(2026, 1, 15, 10, 0),
        }
        fields.update(overrides)
        return round_service.create_round(db, drive.id, round_number=round_number, **fields)
    return _make


@pytest.fixture
def two_round_drive(db, make_drive, make_round):
    """Scenario setup: 2-round drive, students A, B, C enrolled, round 1 running."""
    drive = make_drive(total_rounds=2)
    round_1 = make_round(drive, 1, round_name="Aptitude", round_type="aptitude")
    round_2 = make_round(drive, 2, round_name="Technical Interview")
    progress_service.enroll_students(db, drive.id, ["A", "B", "C"])
    round_service.start_round(db, round_1.id)
    return drive, round_1, round_2


@pytest.fixture
def snapshot(db):
    """Comparable view of every progress record in a drive."""
    def _snapshot(drive_id):
        db.expire_all()
        records = db.query(StudentRoundProgress).filter(
            StudentRoundProgress.drive_id == drive_id
        ).order_by(StudentRoundProgress.student_id).all()
        return [
            (
                p.student_id,
                p.current_round,
                p.overall_status,
                p.final_result,
                [(e.round_number, e.status) for e in p.round_progress],
            )
            for p in records
        ]
    return _snapshot
