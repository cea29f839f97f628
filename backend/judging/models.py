import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Judge(Base):
    __tablename__ = "judges"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), unique=True, nullable=False)
    display_name = Column(String, nullable=False, default="")
    expertise_sectors = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    max_applications = Column(Integer, nullable=False, default=10)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    scores = relationship("Score", back_populates="judge")
    conflict_declarations = relationship("ConflictDeclaration", back_populates="judge")


class Application(Base):
    __tablename__ = "applications"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_name = Column(String, nullable=False)
    category = Column(String, nullable=True)
    sector = Column(String, nullable=False, index=True)
    workflow_stage = Column(String, nullable=False, default="submitted", index=True)
    business_description = Column(Text, nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    scores = relationship("Score", back_populates="application")


class ReviewLock(Base):
    """One row per application; a row whose expires_at has passed is logically free."""

    __tablename__ = "review_locks"
    __table_args__ = (
        sa.Index("ix_review_locks_judge_expires", "judge_id", "expires_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(String(64), unique=True, nullable=False)
    judge_id = Column(String(64), nullable=False)
    user_id = Column(String(64), nullable=False)
    session_id = Column(String(64), nullable=False, index=True)
    lock_type = Column(String(32), nullable=False, default="review")
    acquired_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=False)


class Score(Base):
    __tablename__ = "scores"
    __table_args__ = (
        sa.UniqueConstraint(
            "application_id",
            "judge_id",
            "scoring_round",
            name="uq_scores_application_judge_round",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("applications.id"), nullable=False, index=True)
    judge_id = Column(UUID(as_uuid=True), ForeignKey("judges.id"), nullable=False, index=True)
    scoring_round = Column(String(32), nullable=False, default="first_round")
    innovation_differentiation = Column(Integer, nullable=False)
    market_traction_growth = Column(Integer, nullable=False)
    impact_job_creation = Column(Integer, nullable=False)
    financial_health_governance = Column(Integer, nullable=False)
    inclusion_sustainability = Column(Integer, nullable=False)
    scalability_award_use = Column(Integer, nullable=False)
    total_score = Column(Integer, nullable=False)
    comments = Column(Text, nullable=True)
    scored_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    application = relationship("Application", back_populates="scores")
    judge = relationship("Judge", back_populates="scores")


class ConflictDeclaration(Base):
    __tablename__ = "conflict_declarations"
    __table_args__ = (
        sa.UniqueConstraint(
            "application_id",
            "judge_id",
            name="uq_conflict_declarations_application_judge",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("applications.id"), nullable=False, index=True)
    judge_id = Column(UUID(as_uuid=True), ForeignKey("judges.id"), nullable=False, index=True)
    reason = Column(Text, nullable=True)
    declared_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    judge = relationship("Judge", back_populates="conflict_declarations")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(String(64))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_now)
