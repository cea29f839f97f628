"""Review lock API routes."""

from __future__ import annotations

import logging
import os
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import audit, models, pubsub, schemas
from ..auth import get_current_judge
from ..database import get_db
from ..services import review_workflow
from ..services.lock_store import LockStoreUnavailable, SqlLockStore
from ..services.review_locks import (
    InvalidLockRequest,
    LockHandle,
    LockNotHeld,
    ReviewLockManager,
)

# purpose: expose acquire, release, extend and inspection of per-application review locks
# status: active
# depends_on: backend.judging.services.review_locks

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
testing = os.getenv("TESTING") == "1"

STORE_RETRY_AFTER_SECONDS = "5"


def rate_limit(limit: str):
    if testing:
        def wrapper(func):
            return func
        return wrapper
    return limiter.limit(limit)


def get_lock_manager(db: Session = Depends(get_db)) -> ReviewLockManager:
    return ReviewLockManager(SqlLockStore(db))


def store_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Review lock service temporarily unavailable",
        headers={"Retry-After": STORE_RETRY_AFTER_SECONDS},
    )


def record_audit(
    db: Session,
    judge: models.Judge,
    action: str,
    application_id: UUID,
    details: dict | None = None,
) -> None:
    """Write the audit row without undoing a lock change that is already committed."""

    try:
        audit.log_action(db, judge.user_id, action, "application", application_id, details)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("audit %s for application %s not recorded: %s", action, application_id, exc)


def lock_event(event_type: str, application_id: UUID, judge: models.Judge, **extra) -> dict:
    return {
        "type": event_type,
        "application_id": str(application_id),
        "judge_id": str(judge.id),
        **extra,
    }


router = APIRouter(prefix="/api", tags=["review-locks"])


@router.post("/applications/{application_id}/lock", response_model=schemas.LockGrantOut)
@rate_limit("30/minute")
async def acquire_lock(
    request: Request,
    application_id: UUID,
    payload: schemas.LockAcquireRequest | None = None,
    db: Session = Depends(get_db),
    judge: models.Judge = Depends(get_current_judge),
    manager: ReviewLockManager = Depends(get_lock_manager),
):
    payload = payload or schemas.LockAcquireRequest()
    try:
        review_workflow.guard_review_access(db, application_id, judge)
    except review_workflow.ApplicationNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except review_workflow.ApplicationUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except review_workflow.ConflictOfInterest as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    try:
        outcome = manager.acquire(
            str(application_id),
            str(judge.id),
            str(judge.user_id),
            lock_type=payload.lock_type,
            duration_minutes=payload.lock_duration,
        )
        db.commit()
    except InvalidLockRequest as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except LockStoreUnavailable as exc:
        db.rollback()
        raise store_unavailable() from exc

    if not outcome.granted:
        denied = schemas.LockDeniedOut(
            error=outcome.error,
            locked_by=outcome.locked_by,
            expires_at=outcome.expires_at,
            time_remaining=outcome.time_remaining,
        )
        raise HTTPException(status_code=status.HTTP_423_LOCKED, detail=denied.model_dump(mode="json"))

    record_audit(
        db,
        judge,
        "review_lock.acquired",
        application_id,
        {"lock_type": payload.lock_type, "expires_at": outcome.expires_at.isoformat()},
    )
    await pubsub.publish_lock_event(
        str(application_id),
        lock_event("lock_acquired", application_id, judge, expires_at=outcome.expires_at),
    )
    return schemas.LockGrantOut.model_validate(outcome)


@router.delete("/applications/{application_id}/lock", response_model=schemas.LockReleaseOut)
async def release_lock(
    application_id: UUID,
    db: Session = Depends(get_db),
    judge: models.Judge = Depends(get_current_judge),
    manager: ReviewLockManager = Depends(get_lock_manager),
):
    try:
        released = manager.release(str(application_id), str(judge.id))
        db.commit()
    except LockStoreUnavailable as exc:
        db.rollback()
        raise store_unavailable() from exc
    if released:
        record_audit(db, judge, "review_lock.released", application_id)
        await pubsub.publish_lock_event(
            str(application_id), lock_event("lock_released", application_id, judge)
        )
    return schemas.LockReleaseOut(application_id=str(application_id), released=released)


@router.put("/applications/{application_id}/lock/extend", response_model=schemas.LockGrantOut)
async def extend_lock(
    application_id: UUID,
    payload: schemas.LockExtendRequest | None = None,
    db: Session = Depends(get_db),
    judge: models.Judge = Depends(get_current_judge),
    manager: ReviewLockManager = Depends(get_lock_manager),
):
    payload = payload or schemas.LockExtendRequest()
    try:
        grant = manager.extend(LockHandle(str(application_id), str(judge.id)), payload.extend_by)
        db.commit()
    except InvalidLockRequest as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except LockNotHeld as exc:
        db.rollback()
        code = status.HTTP_410_GONE if exc.expired else status.HTTP_404_NOT_FOUND
        raise HTTPException(status_code=code, detail=str(exc)) from exc
    except LockStoreUnavailable as exc:
        db.rollback()
        raise store_unavailable() from exc

    record_audit(
        db,
        judge,
        "review_lock.extended",
        application_id,
        {"expires_at": grant.expires_at.isoformat()},
    )
    await pubsub.publish_lock_event(
        str(application_id),
        lock_event("lock_extended", application_id, judge, expires_at=grant.expires_at),
    )
    return schemas.LockGrantOut.model_validate(grant)


@router.get("/applications/{application_id}/lock/status", response_model=schemas.LockStatusOut)
def lock_status(
    application_id: UUID,
    judge: models.Judge = Depends(get_current_judge),
    manager: ReviewLockManager = Depends(get_lock_manager),
):
    try:
        current = manager.check_status(str(application_id))
    except LockStoreUnavailable as exc:
        raise store_unavailable() from exc
    out = schemas.LockStatusOut.model_validate(current)
    return out.model_copy(update={"judge_has_lock": current.is_locked and current.judge_id == str(judge.id)})


@router.get("/judges/{judge_id}/locks/active", response_model=list[schemas.LockStatusOut])
def active_locks(
    judge_id: UUID,
    judge: models.Judge = Depends(get_current_judge),
    manager: ReviewLockManager = Depends(get_lock_manager),
):
    if judge_id != judge.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    try:
        held = manager.list_active_locks(str(judge_id))
    except LockStoreUnavailable as exc:
        raise store_unavailable() from exc
    return [
        schemas.LockStatusOut.model_validate(lock).model_copy(update={"judge_has_lock": True})
        for lock in held
    ]
