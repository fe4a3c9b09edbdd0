"""
InterventionRecord: one documented clinical action.

Append-only audit trail: no code path updates or deletes a row.
Several records may point at the same log event; the triage inbox shows
the newest one and the history endpoint shows all of them.

actions_taken: JSON-encoded list of {code, label, timestamp} stored as Text.
"""
from __future__ import annotations

import enum
import json
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Integer, Text, DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column

from carewatch.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    IMMINENT = "IMMINENT"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MODERATE, RiskLevel.HIGH, RiskLevel.IMMINENT]


class ActionCode(str, enum.Enum):
    CONTACT_ATTEMPT = "CONTACT_ATTEMPT"
    SAFETY_PLAN = "SAFETY_PLAN"
    EMERGENCY_REFERRAL = "EMERGENCY_REFERRAL"
    GUARDIAN_CONTACT = "GUARDIAN_CONTACT"
    SESSION_RESCHEDULE = "SESSION_RESCHEDULE"
    SUPERVISION = "SUPERVISION"
    NO_ACTION = "NO_ACTION"


ACTION_LABELS: dict[ActionCode, str] = {
    ActionCode.CONTACT_ATTEMPT: "Contact attempted",
    ActionCode.SAFETY_PLAN: "Safety plan reviewed",
    ActionCode.EMERGENCY_REFERRAL: "Referred to emergency services / crisis line",
    ActionCode.GUARDIAN_CONTACT: "Guardian informed / contacted",
    ActionCode.SESSION_RESCHEDULE: "Session rescheduled",
    ActionCode.SUPERVISION: "Reported to supervisor",
    ActionCode.NO_ACTION: "No intervention needed (recorded)",
}


class InterventionRecord(Base):
    __tablename__ = "intervention_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    center_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    patient_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    counselor_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    related_log_event_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True,
        comment="NULL for ad-hoc interventions not tied to a log event",
    )
    risk_level: Mapped[str] = mapped_column(
        Enum(RiskLevel, name="risk_level_enum"), nullable=False
    )
    actions_taken_json: Mapped[str] = mapped_column(
        "actions_taken", Text, nullable=False, default="[]"
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(),
        nullable=False, index=True,
    )

    @property
    def actions_taken(self) -> list[dict[str, Any]]:
        try:
            value = json.loads(self.actions_taken_json or "[]")
        except (ValueError, TypeError):
            return []
        return value if isinstance(value, list) else []

    @actions_taken.setter
    def actions_taken(self, actions: list[dict[str, Any]]) -> None:
        self.actions_taken_json = json.dumps(actions or [], default=str)
