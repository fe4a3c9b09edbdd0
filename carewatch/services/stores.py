"""
Store adapters over a SQLAlchemy session.

LogStore           list_events / get_event / set_reviewed
InterventionStore  list_for_center / list_for_event / insert   (no updater)
PatientDirectory   get_patients_by_center / get_patient

Each write commits on its own. Failures surface as SQLAlchemyError; the
Lifecycle Coordinator rolls back and translates them.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from carewatch.models.intervention import InterventionRecord
from carewatch.models.log_event import LogEvent
from carewatch.models.patient import Patient


class LogStore:
    def __init__(self, db: Session):
        self.db = db

    def get_event(self, event_id: int) -> Optional[LogEvent]:
        return self.db.get(LogEvent, event_id)

    def list_events(
        self,
        patient_ids: Iterable[int],
        start: date,
        end: date,
    ) -> list[LogEvent]:
        """Events for the given patients with start <= log_date <= end, newest first."""
        ids = list(patient_ids)
        if not ids:
            return []
        return (
            self.db.query(LogEvent)
            .filter(
                LogEvent.patient_id.in_(ids),
                LogEvent.log_date >= start,
                LogEvent.log_date <= end,
            )
            .order_by(LogEvent.created_at.desc(), LogEvent.id.desc())
            .all()
        )

    def set_reviewed(self, event_id: int) -> None:
        # Only ever writes True
        self.db.execute(
            update(LogEvent)
            .where(LogEvent.id == event_id)
            .values(is_reviewed=True)
        )
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()


class InterventionStore:
    def __init__(self, db: Session):
        self.db = db

    def list_for_center(self, center_id: int, created_after: datetime) -> list[InterventionRecord]:
        return (
            self.db.query(InterventionRecord)
            .filter(
                InterventionRecord.center_id == center_id,
                InterventionRecord.created_at >= created_after,
            )
            .order_by(InterventionRecord.created_at.desc(), InterventionRecord.id.desc())
            .all()
        )

    def list_for_event(self, event_id: int) -> list[InterventionRecord]:
        return (
            self.db.query(InterventionRecord)
            .filter(InterventionRecord.related_log_event_id == event_id)
            .order_by(InterventionRecord.created_at.desc(), InterventionRecord.id.desc())
            .all()
        )

    def insert(self, record: InterventionRecord) -> InterventionRecord:
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def rollback(self) -> None:
        self.db.rollback()


class PatientDirectory:
    def __init__(self, db: Session):
        self.db = db

    def get_patients_by_center(self, center_id: int) -> list[Patient]:
        return (
            self.db.query(Patient)
            .filter(Patient.center_id == center_id)
            .order_by(Patient.id)
            .all()
        )

    def get_patient(self, patient_id: int) -> Optional[Patient]:
        return self.db.get(Patient, patient_id)


@dataclass
class Stores:
    logs: LogStore
    interventions: InterventionStore
    patients: PatientDirectory


def build_stores(db: Session) -> Stores:
    return Stores(
        logs=LogStore(db),
        interventions=InterventionStore(db),
        patients=PatientDirectory(db),
    )
