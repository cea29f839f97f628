from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_01"
down_revision: str | Sequence[str] | None = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create judges, applications, review locks, scores, conflicts and audit logs."""

    op.create_table(
        "judges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("display_name", sa.String(), nullable=False, server_default=""),
        sa.Column("expertise_sectors", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("max_applications", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_name", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("sector", sa.String(), nullable=False),
        sa.Column("workflow_stage", sa.String(), nullable=False, server_default="submitted"),
        sa.Column("business_description", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_applications_sector", "applications", ["sector"])
    op.create_index("ix_applications_workflow_stage", "applications", ["workflow_stage"])

    op.create_table(
        "review_locks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("application_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("judge_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("lock_type", sa.String(length=32), nullable=False, server_default="review"),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_review_locks_session_id", "review_locks", ["session_id"])
    op.create_index("ix_review_locks_expires_at", "review_locks", ["expires_at"])
    op.create_index("ix_review_locks_judge_expires", "review_locks", ["judge_id", "expires_at"])

    op.create_table(
        "scores",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "application_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("applications.id"),
            nullable=False,
        ),
        sa.Column("judge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("judges.id"), nullable=False),
        sa.Column("scoring_round", sa.String(length=32), nullable=False, server_default="first_round"),
        sa.Column("innovation_differentiation", sa.Integer(), nullable=False),
        sa.Column("market_traction_growth", sa.Integer(), nullable=False),
        sa.Column("impact_job_creation", sa.Integer(), nullable=False),
        sa.Column("financial_health_governance", sa.Integer(), nullable=False),
        sa.Column("inclusion_sustainability", sa.Integer(), nullable=False),
        sa.Column("scalability_award_use", sa.Integer(), nullable=False),
        sa.Column("total_score", sa.Integer(), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("scored_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "application_id",
            "judge_id",
            "scoring_round",
            name="uq_scores_application_judge_round",
        ),
    )
    op.create_index("ix_scores_application_id", "scores", ["application_id"])
    op.create_index("ix_scores_judge_id", "scores", ["judge_id"])

    op.create_table(
        "conflict_declarations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "application_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("applications.id"),
            nullable=False,
        ),
        sa.Column("judge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("judges.id"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("declared_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "application_id",
            "judge_id",
            name="uq_conflict_declarations_application_judge",
        ),
    )
    op.create_index("ix_conflict_declarations_application_id", "conflict_declarations", ["application_id"])
    op.create_index("ix_conflict_declarations_judge_id", "conflict_declarations", ["judge_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("target_type", sa.String(), nullable=True),
        sa.Column("target_id", sa.String(length=64), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_user_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_conflict_declarations_judge_id", table_name="conflict_declarations")
    op.drop_index("ix_conflict_declarations_application_id", table_name="conflict_declarations")
    op.drop_table("conflict_declarations")
    op.drop_index("ix_scores_judge_id", table_name="scores")
    op.drop_index("ix_scores_application_id", table_name="scores")
    op.drop_table("scores")
    op.drop_index("ix_review_locks_judge_expires", table_name="review_locks")
    op.drop_index("ix_review_locks_expires_at", table_name="review_locks")
    op.drop_index("ix_review_locks_session_id", table_name="review_locks")
    op.drop_table("review_locks")
    op.drop_index("ix_applications_workflow_stage", table_name="applications")
    op.drop_index("ix_applications_sector", table_name="applications")
    op.drop_table("applications")
    op.drop_table("judges")
