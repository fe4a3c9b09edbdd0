"""
Lifecycle Coordinator: the only code that changes triage state.

Per-event state over (reviewed, has_intervention)
-------------------------------------------------
  OPEN            (False, False)  new risk-worthy event
  REVIEWED        (True,  False)  mark_reviewed alone
  CASCADE_PENDING (False, True)   intervention saved, review flag write failed
  ADDRESSED       (True,  True)   record_intervention completed both steps

`reviewed` never goes back to False: LogStore.set_reviewed only writes True.

record_intervention is two commits, not one transaction:
  1. insert the InterventionRecord      (failure -> WriteFailure, nothing saved)
  2. mark_reviewed(event)               (failure -> PartialCascadeFailure)
Step 2 is not retried automatically. Submitting again for an event that
already has an intervention is allowed and appends another record.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from carewatch.core.errors import (
    InterventionTargetError,
    LogEventNotFoundError,
    MissingCenterError,
    PartialCascadeFailure,
    WriteFailure,
)
from carewatch.models.intervention import ACTION_LABELS, ActionCode, InterventionRecord, RiskLevel
from carewatch.models.log_event import LogEvent
from carewatch.services.stores import InterventionStore, LogStore, PatientDirectory

logger = logging.getLogger(__name__)


class LifecycleState(str, enum.Enum):
    OPEN = "open"
    REVIEWED = "reviewed"
    CASCADE_PENDING = "cascade_pending"
    ADDRESSED = "addressed"


def lifecycle_state(event: LogEvent, has_intervention: bool) -> LifecycleState:
    if event.is_reviewed:
        return LifecycleState.ADDRESSED if has_intervention else LifecycleState.REVIEWED
    return LifecycleState.CASCADE_PENDING if has_intervention else LifecycleState.OPEN


@dataclass
class ActionInput:
    """Lightweight DTO so the service layer stays schema-agnostic."""
    code: ActionCode
    label: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass
class InterventionOutcome:
    intervention: InterventionRecord
    event: LogEvent


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _normalize_actions(actions: Iterable[ActionInput]) -> list[dict[str, Any]]:
    stamped = _now()
    return [
        {
            "code": ActionCode(a.code).value,
            "label": a.label or ACTION_LABELS[ActionCode(a.code)],
            "timestamp": (a.timestamp or stamped).isoformat(),
        }
        for a in actions
    ]


def load_visible_event(
    log_store: LogStore,
    patients: PatientDirectory,
    event_id: int,
    center_id: Optional[int],
    counselor_id: Optional[int] = None,
) -> LogEvent:
    """
    Fetch an event the caller may act on. Events of another center, or of a
    patient outside the counselor's caseload, look missing.
    """
    event = log_store.get_event(event_id)
    if event is None:
        raise LogEventNotFoundError(event_id)
    if center_id is not None or counselor_id is not None:
        patient = patients.get_patient(event.patient_id)
        if patient is None:
            raise LogEventNotFoundError(event_id)
        if center_id is not None and patient.center_id != center_id:
            raise LogEventNotFoundError(event_id)
        if counselor_id is not None and patient.counselor_id != counselor_id:
            raise LogEventNotFoundError(event_id)
    return event


def _load_for_write(
    log_store: LogStore,
    patients: PatientDirectory,
    event_id: int,
    center_id: Optional[int],
    counselor_id: Optional[int],
) -> LogEvent:
    try:
        return load_visible_event(log_store, patients, event_id, center_id, counselor_id)
    except SQLAlchemyError as exc:
        log_store.rollback()
        logger.warning(
            "LOG_EVENT_LOAD_FAILED",
            extra={"event_id": event_id, "error": type(exc).__name__},
        )
        raise WriteFailure(
            message=f"Could not load log event {event_id}.",
            operation="load_event",
            cause=exc,
            details={"event_id": event_id},
        ) from exc


# ---------------------------------------------------------------------------
# Public - mark reviewed
# ---------------------------------------------------------------------------

def mark_reviewed(
    log_store: LogStore,
    patients: PatientDirectory,
    event_id: int,
    center_id: Optional[int] = None,
    counselor_id: Optional[int] = None,
) -> LogEvent:
    """
    Set is_reviewed = True. Idempotent: an already-reviewed event returns
    without touching the store.

    On a store error (read or write) the session is rolled back, so the
    event reads back with its last persisted value, and WriteFailure is raised.
    """
    event = _load_for_write(log_store, patients, event_id, center_id, counselor_id)
    if event.is_reviewed:
        return event

    try:
        log_store.set_reviewed(event_id)
    except SQLAlchemyError as exc:
        log_store.rollback()
        logger.warning(
            "MARK_REVIEWED_FAILED",
            extra={"event_id": event_id, "error": type(exc).__name__},
        )
        raise WriteFailure(
            message=f"Could not mark log event {event_id} reviewed.",
            operation="set_reviewed",
            cause=exc,
            details={"event_id": event_id},
        ) from exc

    logger.info("LOG_EVENT_REVIEWED", extra={"event_id": event_id})
    return event


# ---------------------------------------------------------------------------
# Public - record intervention
# ---------------------------------------------------------------------------

def record_intervention(
    log_store: LogStore,
    intervention_store: InterventionStore,
    patients: PatientDirectory,
    event_id: int,
    patient_id: int,
    center_id: Optional[int],
    risk_level: RiskLevel,
    actions_taken: Iterable[ActionInput] = (),
    note: Optional[str] = None,
    counselor_id: Optional[int] = None,
) -> InterventionOutcome:
    """Insert an intervention for `event_id`, then cascade mark_reviewed."""
    if center_id is None:
        raise MissingCenterError(event_id)

    event = _load_for_write(log_store, patients, event_id, center_id, counselor_id)
    if event.patient_id != patient_id:
        raise InterventionTargetError(event_id, patient_id, event.patient_id)

    record = InterventionRecord(
        center_id=center_id,
        patient_id=patient_id,
        counselor_id=event.counselor_id,
        related_log_event_id=event_id,
        risk_level=RiskLevel(risk_level),
        note=note or None,
    )
    record.actions_taken = _normalize_actions(actions_taken)

    # Step 1
    try:
        patient = patients.get_patient(patient_id)
        if patient is not None:
            record.counselor_id = patient.counselor_id
        record = intervention_store.insert(record)
        record_id = record.id
    except SQLAlchemyError as exc:
        intervention_store.rollback()
        logger.warning(
            "INTERVENTION_INSERT_FAILED",
            extra={"event_id": event_id, "error": type(exc).__name__},
        )
        raise WriteFailure(
            message=f"Could not save the intervention for log event {event_id}.",
            operation="insert_intervention",
            cause=exc,
            details={"event_id": event_id},
        ) from exc

    logger.info(
        "INTERVENTION_RECORDED",
        extra={
            "intervention_id": record_id,
            "event_id": event_id,
            "risk_level": RiskLevel(risk_level).value,
        },
    )

    # Step 2: the record is committed, so every failure from here on is partial
    try:
        event = mark_reviewed(log_store, patients, event_id, center_id, counselor_id)
    except (WriteFailure, SQLAlchemyError) as exc:
        logger.error(
            "INTERVENTION_CASCADE_INCOMPLETE",
            extra={"intervention_id": record_id, "event_id": event_id},
        )
        raise PartialCascadeFailure(
            event_id=event_id,
            intervention_id=record_id,
            cause=exc.cause if isinstance(exc, WriteFailure) else exc,
        ) from exc

    return InterventionOutcome(intervention=record, event=event)
