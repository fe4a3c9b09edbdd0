"""
LogEvent: one patient self-report for one calendar day.

Written once by the patient intake flow. The triage engine only ever
flips `is_reviewed` from False to True.

detected_keywords: JSON-encoded list of strings stored as Text.
"""
from __future__ import annotations

import json
from datetime import datetime, date, timezone

from sqlalchemy import (
    Integer, String, Text, Boolean, Float, DateTime, Date, func, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from carewatch.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class LogEvent(Base):
    __tablename__ = "log_events"
    __table_args__ = (
        UniqueConstraint("patient_id", "log_date", name="uq_log_event_patient_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    patient_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    counselor_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    log_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    emotion: Mapped[str | None] = mapped_column(String(64), nullable=True)
    trigger: Mapped[str | None] = mapped_column(String(128), nullable=True)
    intensity: Mapped[int] = mapped_column(Integer, nullable=False)
    sleep_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    took_medication: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    detected_keywords_json: Mapped[str | None] = mapped_column(
        "detected_keywords", Text, nullable=True,
        comment="JSON-encoded list of keywords flagged by the intake scanner",
    )
    is_emergency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_reviewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    @property
    def detected_keywords(self) -> list[str]:
        if not self.detected_keywords_json:
            return []
        try:
            value = json.loads(self.detected_keywords_json)
        except (ValueError, TypeError):
            return []
        return [str(k) for k in value] if isinstance(value, list) else []

    @detected_keywords.setter
    def detected_keywords(self, keywords: list[str] | None) -> None:
        self.detected_keywords_json = json.dumps(sorted(set(keywords))) if keywords else None
