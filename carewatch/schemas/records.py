"""
Typed output schemas for the stored records embedded in triage responses.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class PatientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    counselor_id: int
    center_id: Optional[int] = None
    current_risk_level: Optional[str] = Field(
        default=None, description="Advisory label kept by staff; not used for scoring."
    )
    next_session_date: Optional[str] = None


class LogEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    log_date: str
    emotion: Optional[str] = None
    trigger: Optional[str] = None
    intensity: Optional[int] = None
    sleep_hours: Optional[float] = None
    took_medication: Optional[bool] = None
    memo: Optional[str] = None
    detected_keywords: list[str] = Field(default_factory=list)
    is_emergency: bool
    is_reviewed: bool
    created_at: str


class ActionTakenOut(BaseModel):
    code: str
    label: str
    timestamp: str


class InterventionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    center_id: int
    patient_id: int
    counselor_id: Optional[int] = None
    related_log_event_id: Optional[int] = None
    risk_level: str
    actions_taken: list[ActionTakenOut] = Field(default_factory=list)
    note: Optional[str] = None
    created_at: str
