from datetime import datetime, date
from sqlalchemy import Integer, String, DateTime, Date, func
from sqlalchemy.orm import Mapped, mapped_column

from carewatch.db.base import Base


class Patient(Base):
    """Directory record. Read-only from the triage engine's point of view."""

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    counselor_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    center_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    current_risk_level: Mapped[str | None] = mapped_column(
        String(16), nullable=True,
        comment="Advisory label maintained by staff; not used for scoring.",
    )
    next_session_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
