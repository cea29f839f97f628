"""Lock-gated review, scoring and conflict routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, pubsub, schemas
from ..auth import get_current_judge
from ..database import get_db
from ..services import review_workflow
from ..services.lock_store import LockStoreUnavailable
from ..services.review_locks import InvalidLockRequest, ReviewLockManager
from .review_locks import get_lock_manager, lock_event, record_audit, store_unavailable

# purpose: walk a judge from lock acquisition to a recorded score or conflict
# status: active
# depends_on: backend.judging.services.review_workflow

router = APIRouter(prefix="/api/applications", tags=["reviews"])

_STATUS_FOR_ERROR: dict[type[Exception], int] = {
    review_workflow.ApplicationNotFound: status.HTTP_404_NOT_FOUND,
    review_workflow.ApplicationUnavailable: status.HTTP_400_BAD_REQUEST,
    review_workflow.ConflictOfInterest: status.HTTP_403_FORBIDDEN,
    review_workflow.NotLockOwner: status.HTTP_403_FORBIDDEN,
    review_workflow.LockExpired: status.HTTP_410_GONE,
    review_workflow.DuplicateScore: status.HTTP_409_CONFLICT,
    review_workflow.ConflictAlreadyDeclared: status.HTTP_409_CONFLICT,
    InvalidLockRequest: status.HTTP_400_BAD_REQUEST,
}


def _translate(db: Session, exc: Exception) -> HTTPException:
    db.rollback()
    if isinstance(exc, LockStoreUnavailable):
        return store_unavailable()
    return HTTPException(status_code=_STATUS_FOR_ERROR[type(exc)], detail=str(exc))


@router.post("/{application_id}/review/start", response_model=schemas.ReviewStartOut)
async def start_review(
    application_id: UUID,
    payload: schemas.ReviewStartRequest | None = None,
    db: Session = Depends(get_db),
    judge: models.Judge = Depends(get_current_judge),
    manager: ReviewLockManager = Depends(get_lock_manager),
):
    payload = payload or schemas.ReviewStartRequest()
    try:
        session = review_workflow.start_review(
            db,
            manager,
            application_id,
            judge,
            lock_type=payload.lock_type,
            duration_minutes=payload.lock_duration,
        )
        db.commit()
    except (review_workflow.ReviewWorkflowError, InvalidLockRequest, LockStoreUnavailable) as exc:
        raise _translate(db, exc) from exc

    if session.denial is not None:
        denied = schemas.LockDeniedOut(
            error=session.denial.error,
            locked_by=session.denial.locked_by,
            expires_at=session.denial.expires_at,
            time_remaining=session.denial.time_remaining,
        )
        raise HTTPException(status_code=status.HTTP_423_LOCKED, detail=denied.model_dump(mode="json"))

    record_audit(
        db,
        judge,
        "review.started",
        application_id,
        {"expires_at": session.grant.expires_at.isoformat()},
    )
    await pubsub.publish_lock_event(
        str(application_id),
        lock_event("lock_acquired", application_id, judge, expires_at=session.grant.expires_at),
    )
    return schemas.ReviewStartOut(
        lock=schemas.LockGrantOut.model_validate(session.grant),
        application=session.application,
    )


@router.get("/{application_id}/review", response_model=schemas.ApplicationReviewView)
def get_review(
    application_id: UUID,
    db: Session = Depends(get_db),
    judge: models.Judge = Depends(get_current_judge),
    manager: ReviewLockManager = Depends(get_lock_manager),
):
    try:
        view = review_workflow.load_review(db, manager, application_id, judge)
        db.commit()
    except (review_workflow.ReviewWorkflowError, LockStoreUnavailable) as exc:
        raise _translate(db, exc) from exc
    return view


@router.post(
    "/{application_id}/score",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.ScoreOut,
)
async def submit_score(
    application_id: UUID,
    payload: schemas.ScoreCreate,
    db: Session = Depends(get_db),
    judge: models.Judge = Depends(get_current_judge),
    manager: ReviewLockManager = Depends(get_lock_manager),
):
    try:
        score = review_workflow.submit_score(db, manager, application_id, judge, payload)
        db.commit()
        db.refresh(score)
        out = schemas.ScoreOut.model_validate(score)
    except (review_workflow.ReviewWorkflowError, LockStoreUnavailable) as exc:
        raise _translate(db, exc) from exc

    record_audit(
        db,
        judge,
        "review.scored",
        application_id,
        {"scoring_round": out.scoring_round, "total_score": out.total_score},
    )
    await pubsub.publish_lock_event(
        str(application_id), lock_event("lock_released", application_id, judge, reason="scored")
    )
    return out


@router.post(
    "/{application_id}/conflict",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.ConflictOut,
)
async def declare_conflict(
    application_id: UUID,
    payload: schemas.ConflictCreate,
    db: Session = Depends(get_db),
    judge: models.Judge = Depends(get_current_judge),
    manager: ReviewLockManager = Depends(get_lock_manager),
):
    try:
        declaration = review_workflow.declare_conflict(
            db, manager, application_id, judge, payload.reason
        )
        db.commit()
        db.refresh(declaration)
        out = schemas.ConflictOut.model_validate(declaration)
    except (review_workflow.ReviewWorkflowError, LockStoreUnavailable) as exc:
        raise _translate(db, exc) from exc

    record_audit(db, judge, "review.conflict_declared", application_id)
    await pubsub.publish_lock_event(
        str(application_id),
        lock_event("lock_released", application_id, judge, reason="conflict_declared"),
    )
    return out
