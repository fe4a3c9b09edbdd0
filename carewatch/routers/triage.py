"""
Triage router.

GET  /triage/inbox                         - ranked risk inbox + summary counts
POST /triage/events/{event_id}/review      - mark a log event reviewed
POST /triage/events/{event_id}/interventions - record an intervention (+ cascade)
GET  /triage/events/{event_id}/interventions - full intervention history
GET  /triage/action-presets                - action catalogue for the form
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from carewatch.core.config import settings
from carewatch.core.errors import CenterAccessError, ReviewerRequiredError
from carewatch.db.base import get_db
from carewatch.models.intervention import ACTION_LABELS, InterventionRecord
from carewatch.models.log_event import LogEvent
from carewatch.models.patient import Patient
from carewatch.models.reviewer import Reviewer, ReviewerRole
from carewatch.schemas.common import ErrorResponse
from carewatch.schemas.records import (
    ActionTakenOut,
    InterventionOut,
    LogEventOut,
    PatientOut,
)
from carewatch.schemas.triage import (
    ActionPresetOut,
    InboxResponse,
    InboxSummary,
    InterventionCreatedResponse,
    InterventionHistoryResponse,
    InterventionRequest,
    ReviewResponse,
    TriageItemOut,
)
from carewatch.services.classifier import ClassifierPolicy
from carewatch.services.lifecycle import (
    ActionInput,
    lifecycle_state,
    load_visible_event,
    mark_reviewed,
    record_intervention,
)
from carewatch.services.stores import Stores, build_stores
from carewatch.services.triage import (
    ReviewScope,
    TriageItem,
    load_inbox,
    suggested_risk_level,
)

router = APIRouter(prefix="/triage", tags=["triage"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_stores(db: Session = Depends(get_db)) -> Stores:
    return build_stores(db)


def get_reviewer(
    x_reviewer_id: Optional[int] = Header(default=None, alias="X-Reviewer-Id"),
    db: Session = Depends(get_db),
) -> Reviewer:
    if x_reviewer_id is None:
        raise ReviewerRequiredError()
    reviewer = db.get(Reviewer, x_reviewer_id)
    if reviewer is None:
        raise ReviewerRequiredError(x_reviewer_id)
    return reviewer


def _center_of(reviewer: Reviewer) -> int:
    if reviewer.center_id is None:
        raise CenterAccessError(reviewer.id)
    return reviewer.center_id


def _caseload_of(reviewer: Reviewer) -> Optional[int]:
    """Counselor id to restrict to, or None for a center admin."""
    return None if reviewer.role == ReviewerRole.center_admin else reviewer.id


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _ev(v) -> str:
    """Extract bare string value from a str-enum or plain str."""
    return v.value if hasattr(v, "value") else str(v)


def _patient_to_response(p: Patient) -> PatientOut:
    return PatientOut(
        id=p.id,
        name=p.name,
        counselor_id=p.counselor_id,
        center_id=p.center_id,
        current_risk_level=p.current_risk_level,
        next_session_date=str(p.next_session_date) if p.next_session_date else None,
    )


def _event_to_response(e: LogEvent) -> LogEventOut:
    return LogEventOut(
        id=e.id,
        patient_id=e.patient_id,
        log_date=str(e.log_date),
        emotion=e.emotion,
        trigger=e.trigger,
        intensity=e.intensity,
        sleep_hours=e.sleep_hours,
        took_medication=e.took_medication,
        memo=e.memo,
        detected_keywords=e.detected_keywords,
        is_emergency=bool(e.is_emergency),
        is_reviewed=bool(e.is_reviewed),
        created_at=e.created_at.isoformat() if e.created_at else "",
    )


def _intervention_to_response(r: InterventionRecord) -> InterventionOut:
    return InterventionOut(
        id=r.id,
        center_id=r.center_id,
        patient_id=r.patient_id,
        counselor_id=r.counselor_id,
        related_log_event_id=r.related_log_event_id,
        risk_level=_ev(r.risk_level),
        actions_taken=[
            ActionTakenOut(
                code=str(a.get("code", "")),
                label=str(a.get("label", "")),
                timestamp=str(a.get("timestamp", "")),
            )
            for a in r.actions_taken
            if isinstance(a, dict)
        ],
        note=r.note,
        created_at=r.created_at.isoformat() if r.created_at else "",
    )


def _item_to_response(item: TriageItem) -> TriageItemOut:
    latest = item.latest_intervention
    return TriageItemOut(
        patient=_patient_to_response(item.patient),
        log_event=_event_to_response(item.log_event),
        reasons=sorted(_ev(r) for r in item.reasons),
        priority_score=item.priority_score,
        has_intervention=item.has_intervention,
        intervention_count=item.intervention_count,
        latest_intervention=_intervention_to_response(latest) if latest else None,
        lifecycle_state=lifecycle_state(item.log_event, item.has_intervention).value,
        suggested_risk_level=suggested_risk_level(item.log_event).value,
    )


# ---------------------------------------------------------------------------
# GET /triage/inbox
# ---------------------------------------------------------------------------

@router.get(
    "/inbox",
    response_model=InboxResponse,
    summary="Ranked risk inbox for the reviewer's center",
    responses={
        401: {"model": ErrorResponse, "description": "Missing or unknown reviewer."},
        403: {"model": ErrorResponse, "description": "Reviewer is not linked to a center."},
    },
)
def inbox(
    days: int = Query(
        default=settings.TRIAGE_LOOKBACK_DAYS,
        ge=1,
        le=90,
        description="Lookback window in days (log dates from today - days to today).",
    ),
    q: Optional[str] = Query(
        default=None,
        max_length=100,
        description="Case-insensitive substring filter on patient name.",
        examples=["kim"],
    ),
    deviation: Optional[bool] = Query(
        default=None,
        description=(
            "Also flag events at least the configured margin above the patient's "
            "mean intensity in the window. Defaults to server configuration."
        ),
    ),
    reviewer: Reviewer = Depends(get_reviewer),
    stores: Stores = Depends(get_stores),
):
    """
    Return risk-worthy log events, highest priority first.

    ### Risk reasons
    | Reason | Trigger |
    |---|---|
    | `EMERGENCY`      | patient pressed the help button |
    | `KEYWORDS`       | at least one detected keyword |
    | `HIGH_INTENSITY` | intensity ≥ 8 |
    | `DEVIATION`      | intensity ≥ window mean + margin (opt-in) |

    ### Priority score
    +100 emergency, +40 intensity/deviation, +20 keywords,
    +15 unreviewed, +10 no intervention. Ties keep newest-first order.

    Center admins see every patient of the center; counselors see their own.
    The list is recomputed on every call.
    """
    center_id = _center_of(reviewer)
    scope = ReviewScope(
        center_id=center_id,
        counselor_id=_caseload_of(reviewer),
    )
    policy = ClassifierPolicy(
        high_intensity_threshold=settings.TRIAGE_HIGH_INTENSITY_THRESHOLD,
        deviation_enabled=settings.TRIAGE_DEVIATION_ENABLED if deviation is None else deviation,
        deviation_margin=settings.TRIAGE_DEVIATION_MARGIN,
    )
    result = load_inbox(stores, scope, days=days, search_text=q, policy=policy)
    return InboxResponse(
        start=str(result.start),
        end=str(result.end),
        search=q.strip() if q and q.strip() else None,
        summary=InboxSummary(
            total=result.summary.total,
            unreviewed_count=result.summary.unreviewed_count,
            needs_intervention_count=result.summary.needs_intervention_count,
            emergency_count=result.summary.emergency_count,
        ),
        items=[_item_to_response(i) for i in result.items],
    )


# ---------------------------------------------------------------------------
# POST /triage/events/{event_id}/review
# ---------------------------------------------------------------------------

@router.post(
    "/events/{event_id}/review",
    response_model=ReviewResponse,
    summary="Mark a log event reviewed (idempotent)",
    responses={
        404: {"model": ErrorResponse, "description": "Unknown event, other center or other caseload."},
        503: {"model": ErrorResponse, "description": "Store write failed; retry."},
    },
)
def review_event(
    event_id: int,
    reviewer: Reviewer = Depends(get_reviewer),
    stores: Stores = Depends(get_stores),
):
    """
    Set `is_reviewed = true`. Calling it again is a no-op.
    A reviewed event never goes back to unreviewed.
    """
    event = mark_reviewed(
        stores.logs,
        stores.patients,
        event_id,
        _center_of(reviewer),
        _caseload_of(reviewer),
    )
    return ReviewResponse(event_id=event.id, is_reviewed=bool(event.is_reviewed))


# ---------------------------------------------------------------------------
# POST /triage/events/{event_id}/interventions
# ---------------------------------------------------------------------------

@router.post(
    "/events/{event_id}/interventions",
    response_model=InterventionCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record an intervention and mark the event reviewed",
    responses={
        404: {"model": ErrorResponse, "description": "Unknown event, other center or other caseload."},
        409: {"model": ErrorResponse, "description": "Reviewer has no center."},
        422: {"model": ErrorResponse, "description": "Validation error or patient mismatch."},
        502: {"model": ErrorResponse, "description": "Saved, but review flag not set."},
        503: {"model": ErrorResponse, "description": "Nothing saved; retry."},
    },
)
def create_intervention(
    event_id: int,
    payload: InterventionRequest,
    reviewer: Reviewer = Depends(get_reviewer),
    stores: Stores = Depends(get_stores),
):
    """
    Two sequential writes:
    1. Insert an intervention record referencing the event.
    2. Mark the event reviewed.

    If (1) fails nothing is saved (**503**, retry). If (2) fails the record
    is kept and **502 PARTIAL_CASCADE_FAILURE** is returned so the reviewer
    can confirm the review by hand. Submitting again for the same event is
    allowed and appends another record.
    """
    outcome = record_intervention(
        stores.logs,
        stores.interventions,
        stores.patients,
        event_id=event_id,
        patient_id=payload.patient_id,
        center_id=reviewer.center_id,
        risk_level=payload.risk_level,
        actions_taken=[
            ActionInput(code=a.code, label=a.label, timestamp=a.timestamp)
            for a in payload.actions_taken
        ],
        note=payload.note,
        counselor_id=_caseload_of(reviewer),
    )
    return InterventionCreatedResponse(
        intervention=_intervention_to_response(outcome.intervention),
        event_id=outcome.event.id,
        is_reviewed=bool(outcome.event.is_reviewed),
    )


# ---------------------------------------------------------------------------
# GET /triage/events/{event_id}/interventions
# ---------------------------------------------------------------------------

@router.get(
    "/events/{event_id}/interventions",
    response_model=InterventionHistoryResponse,
    summary="Every intervention recorded for a log event (newest first)",
    responses={
        404: {"model": ErrorResponse, "description": "Unknown event, other center or other caseload."},
    },
)
def intervention_history(
    event_id: int,
    reviewer: Reviewer = Depends(get_reviewer),
    stores: Stores = Depends(get_stores),
):
    """The inbox shows only the latest record; this is the full audit trail."""
    load_visible_event(
        stores.logs, stores.patients, event_id, _center_of(reviewer), _caseload_of(reviewer)
    )

    records = stores.interventions.list_for_event(event_id)
    return InterventionHistoryResponse(
        event_id=event_id,
        total=len(records),
        items=[_intervention_to_response(r) for r in records],
    )


# ---------------------------------------------------------------------------
# GET /triage/action-presets
# ---------------------------------------------------------------------------

@router.get(
    "/action-presets",
    response_model=list[ActionPresetOut],
    summary="Action codes accepted in actions_taken",
)
def action_presets():
    return [
        ActionPresetOut(code=code.value, label=label)
        for code, label in ACTION_LABELS.items()
    ]
