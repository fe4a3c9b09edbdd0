"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

patients, reviewers, log_events, intervention_records.
intervention_records is append-only: center_id NOT NULL, no update path.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- patients ---
    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("counselor_id", sa.Integer(), nullable=False),
        sa.Column("center_id", sa.Integer(), nullable=True),
        sa.Column("current_risk_level", sa.String(16), nullable=True),
        sa.Column("next_session_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_patients_id", "patients", ["id"])
    op.create_index("ix_patients_counselor_id", "patients", ["counselor_id"])
    op.create_index("ix_patients_center_id", "patients", ["center_id"])

    # --- reviewers ---
    op.create_table(
        "reviewers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column(
            "role",
            sa.Enum("counselor", "center_admin", name="reviewer_role_enum"),
            nullable=False,
        ),
        sa.Column("center_id", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reviewers_id", "reviewers", ["id"])
    op.create_index("ix_reviewers_center_id", "reviewers", ["center_id"])

    # --- log_events ---
    op.create_table(
        "log_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("counselor_id", sa.Integer(), nullable=True),
        sa.Column("log_date", sa.Date(), nullable=False),
        sa.Column("emotion", sa.String(64), nullable=True),
        sa.Column("trigger", sa.String(128), nullable=True),
        sa.Column("intensity", sa.Integer(), nullable=False),
        sa.Column("sleep_hours", sa.Float(), nullable=True),
        sa.Column("took_medication", sa.Boolean(), nullable=True),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("detected_keywords", sa.Text(), nullable=True),
        sa.Column("is_emergency", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_reviewed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("patient_id", "log_date", name="uq_log_event_patient_date"),
    )
    op.create_index("ix_log_events_id", "log_events", ["id"])
    op.create_index("ix_log_events_patient_id", "log_events", ["patient_id"])
    op.create_index("ix_log_events_log_date", "log_events", ["log_date"])

    # --- intervention_records ---
    op.create_table(
        "intervention_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("center_id", sa.Integer(), nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("counselor_id", sa.Integer(), nullable=True),
        sa.Column("related_log_event_id", sa.Integer(), nullable=True),
        sa.Column(
            "risk_level",
            sa.Enum("LOW", "MODERATE", "HIGH", "IMMINENT", name="risk_level_enum"),
            nullable=False,
        ),
        sa.Column("actions_taken", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_intervention_records_id", "intervention_records", ["id"])
    op.create_index("ix_intervention_records_center_id", "intervention_records", ["center_id"])
    op.create_index("ix_intervention_records_patient_id", "intervention_records", ["patient_id"])
    op.create_index(
        "ix_intervention_records_related_log_event_id",
        "intervention_records",
        ["related_log_event_id"],
    )
    op.create_index("ix_intervention_records_created_at", "intervention_records", ["created_at"])


def downgrade() -> None:
    op.drop_table("intervention_records")
    op.drop_table("log_events")
    op.drop_table("reviewers")
    op.drop_table("patients")

    op.execute("DROP TYPE IF EXISTS risk_level_enum")
    op.execute("DROP TYPE IF EXISTS reviewer_role_enum")
