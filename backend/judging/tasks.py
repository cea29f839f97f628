import os
from datetime import timedelta

from celery import Celery
from celery.utils.log import get_task_logger

from .database import SessionLocal
from .services.lock_store import SqlLockStore
from .services.review_locks import ReviewLockManager

logger = get_task_logger(__name__)

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
LOCK_SWEEP_MINUTES = int(os.getenv("LOCK_SWEEP_MINUTES", "5"))

celery_app = Celery("judging", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

celery_app.conf.beat_schedule = {
    "sweep-expired-review-locks": {
        "task": "judging.tasks.sweep_expired_review_locks",
        "schedule": timedelta(minutes=LOCK_SWEEP_MINUTES),
    },
}


@celery_app.task(name="judging.tasks.sweep_expired_review_locks")
def sweep_expired_review_locks():
    db = SessionLocal()
    try:
        removed = ReviewLockManager(SqlLockStore(db)).cleanup_expired()
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
    logger.info("expired review lock sweep removed %s rows", removed)
    return removed

