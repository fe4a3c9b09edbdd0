"""
Triage Assembler: joins log events, patients and interventions into the
ranked risk inbox.

Public API
----------
assemble(events, patients_by_id, interventions_by_event_id, search_text, policy)
                                        -> list[TriageItem]   (pure)
summarize(items)                        -> TriageSummary      (pure)
index_interventions(records)            -> dict[int, list[InterventionRecord]]
latest_intervention(records)            -> InterventionRecord | None
suggested_risk_level(event)             -> RiskLevel
load_inbox(stores, scope, days, search_text, policy, today)
                                        -> InboxResult        (reads only)

Nothing here writes, and nothing is cached between calls: every inbox
refresh re-reads the stores and re-assembles from scratch.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Mapping, Optional, Sequence

from carewatch.core.errors import MalformedLogEventError
from carewatch.models.intervention import InterventionRecord, RiskLevel
from carewatch.models.log_event import LogEvent
from carewatch.models.patient import Patient
from carewatch.services.classifier import (
    ClassifierPolicy,
    ReasonCode,
    classify,
)
from carewatch.services.scorer import score
from carewatch.services.stores import Stores

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class TriageItem:
    """One inbox row. Derived on every pass, never persisted."""
    patient: Patient
    log_event: LogEvent
    reasons: frozenset[ReasonCode]
    priority_score: int
    latest_intervention: Optional[InterventionRecord] = None
    intervention_count: int = 0

    @property
    def has_intervention(self) -> bool:
        return self.latest_intervention is not None


@dataclass
class TriageSummary:
    total: int
    unreviewed_count: int
    needs_intervention_count: int
    emergency_count: int


@dataclass
class ReviewScope:
    """Which patients a reviewer may see: a whole center, or one counselor's caseload."""
    center_id: int
    counselor_id: Optional[int] = None


@dataclass
class InboxResult:
    start: date
    end: date
    items: list[TriageItem] = field(default_factory=list)
    summary: TriageSummary = field(
        default_factory=lambda: TriageSummary(0, 0, 0, 0)
    )


# ---------------------------------------------------------------------------
# Intervention projections
# ---------------------------------------------------------------------------

def _created_key(record: InterventionRecord) -> tuple:
    created = record.created_at
    if created is not None and created.tzinfo is not None:
        created = created.astimezone(timezone.utc).replace(tzinfo=None)
    return (created or datetime.min, record.id or 0)


def latest_intervention(records: Iterable[InterventionRecord]) -> Optional[InterventionRecord]:
    """Last-write-wins by created_at; equal timestamps fall back to the higher id."""
    records = list(records)
    if not records:
        return None
    return max(records, key=_created_key)


def index_interventions(
    records: Iterable[InterventionRecord],
) -> dict[int, list[InterventionRecord]]:
    """Group records by related log event. Ad-hoc records (no event) are skipped."""
    index: dict[int, list[InterventionRecord]] = defaultdict(list)
    for record in records:
        if record.related_log_event_id is not None:
            index[record.related_log_event_id].append(record)
    return dict(index)


def suggested_risk_level(event: LogEvent) -> RiskLevel:
    """Default risk level offered on the intervention form."""
    intensity = event.intensity if isinstance(event.intensity, int) else 0
    if event.is_emergency:
        return RiskLevel.HIGH
    if intensity >= 9:
        return RiskLevel.HIGH
    if intensity >= 8:
        return RiskLevel.MODERATE
    if event.detected_keywords:
        return RiskLevel.MODERATE
    return RiskLevel.LOW


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def _matches(patient: Patient, needle: str) -> bool:
    return needle in (patient.name or "").casefold()


def assemble(
    events: Sequence[LogEvent],
    patients_by_id: Mapping[int, Patient],
    interventions_by_event_id: Mapping[int, Sequence[InterventionRecord]],
    search_text: Optional[str] = None,
    policy: ClassifierPolicy = ClassifierPolicy(),
) -> list[TriageItem]:
    """
    Build the ranked inbox from already-fetched data.

    Events whose patient is unknown are dropped silently (stale or foreign
    data). Events the classifier rejects as malformed are dropped with a
    warning so one bad record cannot blank the inbox. The sort is stable:
    equal scores keep the input order of `events`.
    """
    windows: dict[int, list[LogEvent]] = defaultdict(list)
    for event in events:
        windows[event.patient_id].append(event)

    needle = (search_text or "").strip().casefold()
    items: list[TriageItem] = []

    for event in events:
        patient = patients_by_id.get(event.patient_id)
        if patient is None:
            logger.debug(
                "TRIAGE_PATIENT_UNRESOLVED",
                extra={"event_id": event.id, "patient_id": event.patient_id},
            )
            continue

        try:
            result = classify(event, window=windows[event.patient_id], policy=policy)
        except MalformedLogEventError as exc:
            logger.warning(
                "TRIAGE_EVENT_MALFORMED",
                extra={"event_id": exc.event_id, "reason": exc.reason},
            )
            continue
        if not result.is_risk_worthy:
            continue

        history = interventions_by_event_id.get(event.id, ())
        latest = latest_intervention(history)

        if needle and not _matches(patient, needle):
            continue

        items.append(TriageItem(
            patient=patient,
            log_event=event,
            reasons=result.reasons,
            priority_score=score(event, result.reasons, latest is not None),
            latest_intervention=latest,
            intervention_count=len(history),
        ))

    return sorted(items, key=lambda item: -item.priority_score)


def summarize(items: Sequence[TriageItem]) -> TriageSummary:
    return TriageSummary(
        total=len(items),
        unreviewed_count=sum(1 for i in items if not i.log_event.is_reviewed),
        needs_intervention_count=sum(1 for i in items if not i.has_intervention),
        emergency_count=sum(1 for i in items if i.log_event.is_emergency),
    )


# ---------------------------------------------------------------------------
# Store-backed read pass
# ---------------------------------------------------------------------------

def _today() -> date:
    return datetime.now(tz=timezone.utc).date()


def load_inbox(
    stores: Stores,
    scope: ReviewScope,
    days: int,
    search_text: Optional[str] = None,
    policy: ClassifierPolicy = ClassifierPolicy(),
    today: Optional[date] = None,
) -> InboxResult:
    """
    Read patients, events (log_date in [today - days, today]) and
    interventions (created in the last `days` days) for a scope, then
    assemble them.
    """
    end = today or _today()
    start = end - timedelta(days=days)
    created_after = datetime.combine(start, datetime.min.time(), tzinfo=timezone.utc)

    patients = stores.patients.get_patients_by_center(scope.center_id)
    if scope.counselor_id is not None:
        patients = [p for p in patients if p.counselor_id == scope.counselor_id]
    patients_by_id = {p.id: p for p in patients}

    events = stores.logs.list_events(patients_by_id.keys(), start, end)
    records = stores.interventions.list_for_center(scope.center_id, created_after)

    items = assemble(
        events,
        patients_by_id,
        index_interventions(records),
        search_text=search_text,
        policy=policy,
    )
    logger.info(
        "TRIAGE_INBOX_ASSEMBLED",
        extra={
            "center_id": scope.center_id,
            "counselor_id": scope.counselor_id,
            "days": days,
            "events": len(events),
            "items": len(items),
        },
    )
    return InboxResult(start=start, end=end, items=items, summary=summarize(items))
