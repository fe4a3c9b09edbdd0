"""
Triage request / response schemas.

Inbox:         GET  /triage/inbox                        → InboxResponse
Review:        POST /triage/events/{id}/review           → ReviewResponse
Intervention:  POST /triage/events/{id}/interventions    → InterventionRequest → InterventionCreatedResponse
History:       GET  /triage/events/{id}/interventions    → InterventionHistoryResponse
Presets:       GET  /triage/action-presets               → list[ActionPresetOut]
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from carewatch.models.intervention import ActionCode, RiskLevel
from carewatch.schemas.records import InterventionOut, LogEventOut, PatientOut

NOTE_MAX_LENGTH = 4_000
ACTIONS_MAX_ITEMS = 20


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------

class TriageItemOut(BaseModel):
    patient: PatientOut
    log_event: LogEventOut
    reasons: list[str] = Field(description="Matched reason codes, sorted.")
    priority_score: int = Field(description="Higher is more urgent.")
    has_intervention: bool
    intervention_count: int = Field(description="All records referencing this event.")
    latest_intervention: Optional[InterventionOut] = Field(
        default=None,
        description="Most recently created intervention for this event.",
    )
    lifecycle_state: str = Field(
        description='"open" | "reviewed" | "cascade_pending" | "addressed"'
    )
    suggested_risk_level: str = Field(
        description="Default risk level offered on the intervention form."
    )


class InboxSummary(BaseModel):
    total: int
    unreviewed_count: int
    needs_intervention_count: int
    emergency_count: int


class InboxResponse(BaseModel):
    start: str = Field(description="First log date (inclusive) of the window.")
    end: str = Field(description="Last log date (inclusive) of the window.")
    search: Optional[str] = None
    summary: InboxSummary
    items: list[TriageItemOut]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

class ReviewResponse(BaseModel):
    event_id: int
    is_reviewed: bool


class ActionTakenIn(BaseModel):
    """One action from the preset catalogue."""
    model_config = ConfigDict(use_enum_values=True)

    code: ActionCode
    label: Optional[str] = Field(
        default=None, max_length=200,
        description="Overrides the preset label when given.",
    )
    timestamp: Optional[datetime] = Field(
        default=None, description="When the action happened. Defaults to submission time."
    )


class InterventionRequest(BaseModel):
    """A reviewer's documented response to a log event."""
    model_config = ConfigDict(use_enum_values=True)

    patient_id: int = Field(description="Must be the patient who submitted the log event.")
    risk_level: RiskLevel = Field(examples=["HIGH"])
    actions_taken: list[ActionTakenIn] = Field(
        default_factory=list,
        max_length=ACTIONS_MAX_ITEMS,
        description="Actions taken, in the order they happened.",
    )
    note: Optional[str] = Field(default=None, max_length=NOTE_MAX_LENGTH)

    @field_validator("note", mode="before")
    @classmethod
    def strip_note(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class InterventionCreatedResponse(BaseModel):
    intervention: InterventionOut
    event_id: int
    is_reviewed: bool


class InterventionHistoryResponse(BaseModel):
    event_id: int
    total: int
    items: list[InterventionOut] = Field(description="Newest first.")


class ActionPresetOut(BaseModel):
    code: str
    label: str
