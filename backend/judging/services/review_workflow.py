"""Lock-gated review workflow: start, view, score or declare a conflict."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..sectors import REVIEWABLE_STAGES
from .review_locks import LockDenied, LockGrant, OwnershipCheck, ReviewLockManager

# purpose: sequence the lock-guarded steps a judge takes on one application
# status: active
# depends_on: backend.judging.services.review_locks, backend.judging.models.Score

logger = logging.getLogger(__name__)

ANONYMIZED_NAME = "[ANONYMIZED]"

SCORE_CRITERIA: tuple[str, ...] = (
    "innovation_differentiation",
    "market_traction_growth",
    "impact_job_creation",
    "financial_health_governance",
    "inclusion_sustainability",
    "scalability_award_use",
)

_IDENTIFYING_DETAIL_KEYS = frozenset(
    {
        "applicant_name",
        "first_name",
        "last_name",
        "email",
        "phone",
        "phone_number",
        "address",
        "website",
        "registration_number",
        "owner",
    }
)


class ReviewWorkflowError(RuntimeError):
    """Base error for review workflow transitions."""


class ApplicationNotFound(ReviewWorkflowError):
    """Raised when the application does not exist."""


class ApplicationUnavailable(ReviewWorkflowError):
    """Raised when the application is not in a reviewable stage."""


class ConflictOfInterest(ReviewWorkflowError):
    """Raised when the judge declared a conflict on the application."""


class NotLockOwner(ReviewWorkflowError):
    """Raised when the judge does not hold the review lock."""


class LockExpired(ReviewWorkflowError):
    """Raised when the judge's lock lapsed before the mutating call."""


class DuplicateScore(ReviewWorkflowError):
    """Raised when the judge already scored this application in this round."""


class ConflictAlreadyDeclared(ReviewWorkflowError):
    """Raised when the judge already declared a conflict on this application."""


@dataclass(frozen=True)
class ReviewSession:
    grant: LockGrant | None
    denial: LockDenied | None
    application: schemas.ApplicationReviewView | None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def anonymize_application(application: models.Application) -> schemas.ApplicationReviewView:
    """Strip applicant identity before handing the application to a judge."""

    details = {
        key: value
        for key, value in (application.details or {}).items()
        if key not in _IDENTIFYING_DETAIL_KEYS
    }
    return schemas.ApplicationReviewView(
        id=application.id,
        business_name=ANONYMIZED_NAME,
        category=application.category,
        sector=application.sector,
        workflow_stage=application.workflow_stage,
        business_description=application.business_description,
        details=details,
        created_at=application.created_at,
    )


def _load_application(db: Session, application_id: UUID) -> models.Application:
    application = db.get(models.Application, application_id)
    if not application:
        raise ApplicationNotFound(f"application {application_id} not found")
    return application


def _has_conflict(db: Session, application_id: UUID, judge: models.Judge) -> bool:
    return (
        db.query(models.ConflictDeclaration)
        .filter(models.ConflictDeclaration.application_id == application_id)
        .filter(models.ConflictDeclaration.judge_id == judge.id)
        .first()
        is not None
    )


def guard_review_access(db: Session, application_id: UUID, judge: models.Judge) -> models.Application:
    """Refuse judges who may not work on the application at all, lock or no lock."""

    application = _load_application(db, application_id)
    if application.workflow_stage not in REVIEWABLE_STAGES:
        raise ApplicationUnavailable("Application is not available for review")
    if _has_conflict(db, application_id, judge):
        raise ConflictOfInterest("You declared a conflict of interest on this application")
    return application


def _require_lock(manager: ReviewLockManager, application_id: UUID, judge: models.Judge) -> None:
    check = manager.verify_ownership(str(application_id), str(judge.id))
    if check is OwnershipCheck.EXPIRED:
        raise LockExpired("Your review session has expired. Please start a new review.")
    if check is OwnershipCheck.NOT_OWNER:
        raise NotLockOwner("You must have an active lock on this application")


def start_review(
    db: Session,
    manager: ReviewLockManager,
    application_id: UUID,
    judge: models.Judge,
    *,
    lock_type: str = "review",
    duration_minutes: int | None = None,
) -> ReviewSession:
    """Acquire the review lock and return the anonymized application on success."""

    application = guard_review_access(db, application_id, judge)

    outcome = manager.acquire(
        str(application_id),
        str(judge.id),
        str(judge.user_id),
        lock_type=lock_type,
        duration_minutes=duration_minutes,
    )
    if not outcome.granted:
        return ReviewSession(grant=None, denial=outcome, application=None)

    if application.workflow_stage == "submitted":
        application.workflow_stage = "under_review"
        db.flush()
    return ReviewSession(grant=outcome, denial=None, application=anonymize_application(application))


def load_review(
    db: Session,
    manager: ReviewLockManager,
    application_id: UUID,
    judge: models.Judge,
) -> schemas.ApplicationReviewView:
    application = guard_review_access(db, application_id, judge)
    _require_lock(manager, application_id, judge)
    return anonymize_application(application)


def submit_score(
    db: Session,
    manager: ReviewLockManager,
    application_id: UUID,
    judge: models.Judge,
    payload: schemas.ScoreCreate,
) -> models.Score:
    """Record the judge's score exactly once and release their lock."""

    guard_review_access(db, application_id, judge)
    _require_lock(manager, application_id, judge)

    existing = (
        db.query(models.Score)
        .filter(models.Score.application_id == application_id)
        .filter(models.Score.judge_id == judge.id)
        .filter(models.Score.scoring_round == payload.scoring_round)
        .first()
    )
    if existing:
        raise DuplicateScore("Score already submitted for this application and round")

    criteria = {name: getattr(payload, name) for name in SCORE_CRITERIA}
    score = models.Score(
        application_id=application_id,
        judge_id=judge.id,
        scoring_round=payload.scoring_round,
        total_score=sum(criteria.values()),
        comments=payload.comments,
        scored_at=_utcnow(),
        **criteria,
    )
    db.add(score)
    try:
        db.flush()
    except IntegrityError as exc:
        raise DuplicateScore("Score already submitted for this application and round") from exc
    db.refresh(score)

    manager.release(str(application_id), str(judge.id))
    logger.info("judge %s scored application %s (%s)", judge.id, application_id, payload.scoring_round)
    return score


def declare_conflict(
    db: Session,
    manager: ReviewLockManager,
    application_id: UUID,
    judge: models.Judge,
    reason: str | None = None,
) -> models.ConflictDeclaration:
    """Record a conflict of interest and give the application back."""

    application = _load_application(db, application_id)
    if application.workflow_stage not in REVIEWABLE_STAGES:
        raise ApplicationUnavailable("Application is not available for review")
    if _has_conflict(db, application_id, judge):
        raise ConflictAlreadyDeclared("Conflict already declared for this application")
    _require_lock(manager, application_id, judge)

    declaration = models.ConflictDeclaration(
        application_id=application_id,
        judge_id=judge.id,
        reason=reason,
        declared_at=_utcnow(),
    )
    db.add(declaration)
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConflictAlreadyDeclared("Conflict already declared for this application") from exc
    db.refresh(declaration)

    manager.release(str(application_id), str(judge.id))
    logger.info("judge %s declared a conflict on application %s", judge.id, application_id)
    return declaration
