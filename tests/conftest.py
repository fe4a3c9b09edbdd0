"""
Shared pytest fixtures.

Uses a throwaway SQLite database so no Postgres is required for tests.
Tables are recreated for every test; seed helpers live here so each test
states exactly the rows it needs.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_carewatch.db")

from datetime import date, datetime, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from carewatch.db.base import Base, get_db  # noqa: E402
from carewatch.main import app  # noqa: E402
from carewatch.models import (  # noqa: E402
    InterventionRecord,
    LogEvent,
    Patient,
    Reviewer,
    ReviewerRole,
    RiskLevel,
)
from carewatch.services.stores import InterventionStore, LogStore  # noqa: E402

SQLITE_URL = "sqlite:///./test_carewatch.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

CENTER_ID = 1
OTHER_CENTER_ID = 2


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

def add_reviewer(db, name="Admin Park", role=ReviewerRole.center_admin, center_id=CENTER_ID):
    reviewer = Reviewer(name=name, role=role, center_id=center_id)
    db.add(reviewer)
    db.commit()
    db.refresh(reviewer)
    return reviewer


def add_patient(db, name="Kim Minji", counselor_id=10, center_id=CENTER_ID):
    patient = Patient(name=name, counselor_id=counselor_id, center_id=center_id)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


def add_event(
    db,
    patient,
    log_date=None,
    intensity=5,
    is_emergency=False,
    keywords=None,
    is_reviewed=False,
    created_at=None,
):
    event = LogEvent(
        patient_id=patient.id,
        counselor_id=patient.counselor_id,
        log_date=log_date or datetime.now(tz=timezone.utc).date(),
        emotion="anxious",
        trigger="school",
        intensity=intensity,
        is_emergency=is_emergency,
        is_reviewed=is_reviewed,
        detected_keywords=keywords or [],
    )
    if created_at is not None:
        event.created_at = created_at
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def add_intervention(db, event, risk_level=RiskLevel.MODERATE, created_at=None, center_id=CENTER_ID):
    record = InterventionRecord(
        center_id=center_id,
        patient_id=event.patient_id,
        counselor_id=event.counselor_id,
        related_log_event_id=event.id,
        risk_level=risk_level,
    )
    record.actions_taken = []
    if created_at is not None:
        record.created_at = created_at
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def today() -> date:
    return datetime.now(tz=timezone.utc).date()


# ---------------------------------------------------------------------------
# Failure injection
# ---------------------------------------------------------------------------

class FailingLogStore(LogStore):
    def set_reviewed(self, event_id):
        raise OperationalError("UPDATE log_events", {}, Exception("connection lost"))


class FailingInterventionStore(InterventionStore):
    def insert(self, record):
        raise OperationalError("INSERT INTO intervention_records", {}, Exception("connection lost"))


class FlakyReadLogStore(LogStore):
    """Serves the first `healthy_reads` lookups, then fails every read."""

    def __init__(self, db, healthy_reads=1):
        super().__init__(db)
        self.healthy_reads = healthy_reads

    def get_event(self, event_id):
        if self.healthy_reads <= 0:
            raise OperationalError("SELECT log_events", {}, Exception("connection lost"))
        self.healthy_reads -= 1
        return super().get_event(event_id)
