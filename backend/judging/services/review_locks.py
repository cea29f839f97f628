"""Time-bounded review locks that keep two judges off the same application."""

from __future__ import annotations

import enum
import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .lock_store import (
    LockRecord,
    LockStore,
    LockStoreUnavailable,
    ReviewLockError,
)

# purpose: grant, extend, inspect and expire per-application review locks
# status: active
# depends_on: backend.judging.services.lock_store

logger = logging.getLogger(__name__)

_UTC_NOW = datetime.now


def _utcnow() -> datetime:
    return _UTC_NOW(timezone.utc)


LOCK_MIN_MINUTES = int(os.getenv("LOCK_MIN_MINUTES", "1"))
LOCK_MAX_MINUTES = int(os.getenv("LOCK_MAX_MINUTES", "240"))
LOCK_DEFAULT_MINUTES = int(os.getenv("LOCK_DEFAULT_MINUTES", "60"))
LOCK_EXTEND_DEFAULT_MINUTES = int(os.getenv("LOCK_EXTEND_DEFAULT_MINUTES", "30"))

LOCK_TYPES = frozenset({"review", "scoring", "final_review"})

_CLAIM_ATTEMPTS = 3

__all__ = [
    "InvalidLockRequest",
    "LockDenied",
    "LockGrant",
    "LockHandle",
    "LockNotHeld",
    "LockStatus",
    "LockStoreUnavailable",
    "OwnershipCheck",
    "ReviewLockError",
    "ReviewLockManager",
    "minutes_remaining",
]


class InvalidLockRequest(ReviewLockError):
    """Raised when identifiers or durations are unusable; nothing was touched."""


class LockNotHeld(ReviewLockError):
    """Raised when the caller no longer holds the lock it is operating on."""

    def __init__(self, message: str, *, expired: bool = False) -> None:
        super().__init__(message)
        self.expired = expired


class OwnershipCheck(str, enum.Enum):
    OK = "ok"
    EXPIRED = "expired"
    NOT_OWNER = "not_owner"


@dataclass(frozen=True)
class LockHandle:
    application_id: str
    judge_id: str
    session_id: str | None = None


@dataclass(frozen=True)
class LockGrant:
    lock: LockRecord
    expires_at: datetime
    time_remaining: int

    granted = True

    @property
    def handle(self) -> LockHandle:
        return LockHandle(self.lock.application_id, self.lock.judge_id, self.lock.session_id)


@dataclass(frozen=True)
class LockDenied:
    application_id: str
    locked_by: str | None
    judge_id: str | None
    expires_at: datetime | None
    time_remaining: int
    error: str = "Application is currently being reviewed by another judge"

    granted = False


@dataclass(frozen=True)
class LockStatus:
    application_id: str
    is_locked: bool
    locked_by: str | None = None
    judge_id: str | None = None
    lock_type: str | None = None
    acquired_at: datetime | None = None
    expires_at: datetime | None = None
    last_activity_at: datetime | None = None
    time_remaining: int = 0

    @classmethod
    def from_record(cls, record: LockRecord, now: datetime) -> "LockStatus":
        return cls(
            application_id=record.application_id,
            is_locked=True,
            locked_by=record.user_id,
            judge_id=record.judge_id,
            lock_type=record.lock_type,
            acquired_at=record.acquired_at,
            expires_at=record.expires_at,
            last_activity_at=record.last_activity_at,
            time_remaining=minutes_remaining(record.expires_at, now),
        )


def minutes_remaining(expires_at: datetime, now: datetime) -> int:
    """Whole minutes left before ``expires_at``, never negative."""

    seconds = (expires_at - now).total_seconds()
    return max(0, int(seconds // 60))


def _require_id(value: object, name: str) -> str:
    normalized = str(value).strip() if value is not None else ""
    if not normalized:
        raise InvalidLockRequest(f"{name} is required")
    return normalized


class ReviewLockManager:
    """Coordinates review locks over an atomic :class:`LockStore`.

    Usage:
        manager = ReviewLockManager(SqlLockStore(db))
        outcome = manager.acquire(application_id, judge_id, user_id)
        if outcome.granted:
            ...

    Denial is a returned value, not an exception. Store faults surface as
    :class:`LockStoreUnavailable` and are never retried here.
    """

    def __init__(
        self,
        store: LockStore,
        *,
        min_minutes: int = LOCK_MIN_MINUTES,
        max_minutes: int = LOCK_MAX_MINUTES,
        default_minutes: int = LOCK_DEFAULT_MINUTES,
    ) -> None:
        if min_minutes < 1 or max_minutes < min_minutes:
            raise ValueError(f"invalid lock bounds [{min_minutes}, {max_minutes}]")
        self._store = store
        self._min_minutes = min_minutes
        self._max_minutes = max_minutes
        self._default_minutes = self._clamp(default_minutes)

    def _clamp(self, minutes: int) -> int:
        return max(self._min_minutes, min(self._max_minutes, minutes))

    def _duration(self, minutes: object, default: int) -> int:
        if minutes is None:
            return self._clamp(default)
        if isinstance(minutes, bool) or not isinstance(minutes, int):
            raise InvalidLockRequest("duration must be a whole number of minutes")
        if minutes <= 0:
            raise InvalidLockRequest("duration must be positive")
        return self._clamp(minutes)

    def acquire(
        self,
        application_id: str,
        judge_id: str,
        user_id: str,
        lock_type: str = "review",
        session_id: str | None = None,
        duration_minutes: int | None = None,
    ) -> LockGrant | LockDenied:
        """Claim the application for ``judge_id``.

        A lock already held by the same judge is refreshed with the new
        session id and a fresh TTL.
        """

        application_key = _require_id(application_id, "application_id")
        judge_key = _require_id(judge_id, "judge_id")
        user_key = _require_id(user_id, "user_id")
        if lock_type not in LOCK_TYPES:
            raise InvalidLockRequest(f"unknown lock type {lock_type!r}")
        minutes = self._duration(duration_minutes, self._default_minutes)
        session_key = session_id or secrets.token_hex(16)

        current: LockRecord | None = None
        for _ in range(_CLAIM_ATTEMPTS):
            now = _utcnow()
            record = LockRecord(
                application_id=application_key,
                judge_id=judge_key,
                user_id=user_key,
                session_id=session_key,
                lock_type=lock_type,
                acquired_at=now,
                expires_at=now + timedelta(minutes=minutes),
                last_activity_at=now,
            )
            if self._store.claim(record, now):
                logger.info(
                    "application %s locked by judge %s for %s minutes",
                    application_key,
                    judge_key,
                    minutes,
                )
                return LockGrant(
                    lock=record,
                    expires_at=record.expires_at,
                    time_remaining=minutes_remaining(record.expires_at, now),
                )
            current = self._store.get(application_key)
            if current is not None and current.is_held(now) and current.judge_id != judge_key:
                break
            # holder released or lapsed between the claim and the read

        now = _utcnow()
        logger.warning(
            "judge %s denied lock on application %s held by judge %s",
            judge_key,
            application_key,
            current.judge_id if current else None,
        )
        if current is None:
            return LockDenied(
                application_id=application_key,
                locked_by=None,
                judge_id=None,
                expires_at=None,
                time_remaining=0,
            )
        return LockDenied(
            application_id=application_key,
            locked_by=current.user_id,
            judge_id=current.judge_id,
            expires_at=current.expires_at,
            time_remaining=minutes_remaining(current.expires_at, now),
        )

    def release(self, application_id: str, judge_id: str) -> bool:
        """Drop the judge's lock if they hold one. Releasing anything else is a no-op."""

        application_key = str(application_id or "").strip()
        judge_key = str(judge_id or "").strip()
        if not application_key or not judge_key:
            return False
        released = self._store.delete_held_by(application_key, judge_key)
        if released:
            logger.info("application %s lock released by judge %s", application_key, judge_key)
        return released

    def extend(self, handle: LockHandle, additional_minutes: int | None = None) -> LockGrant:
        application_key = _require_id(handle.application_id, "application_id")
        judge_key = _require_id(handle.judge_id, "judge_id")
        minutes = self._duration(additional_minutes, LOCK_EXTEND_DEFAULT_MINUTES)

        now = _utcnow()
        current = self._store.get(application_key)
        if current is None or current.judge_id != judge_key:
            raise LockNotHeld("No active lock found for this application")
        if not current.is_held(now):
            raise LockNotHeld("Application lock has expired. Please acquire a new lock.", expired=True)
        if handle.session_id is not None and current.session_id != handle.session_id:
            raise LockNotHeld("Lock is held by a different session of this judge")

        updated = self._store.extend_held_by(
            application_key,
            judge_key,
            handle.session_id,
            current.expires_at,
            current.expires_at + timedelta(minutes=minutes),
            now,
        )
        if updated is None:
            raise LockNotHeld(
                "Application lock changed while extending",
                expired=not current.is_held(_utcnow()),
            )
        logger.info(
            "application %s lock extended by %s minutes for judge %s",
            application_key,
            minutes,
            judge_key,
        )
        return LockGrant(
            lock=updated,
            expires_at=updated.expires_at,
            time_remaining=minutes_remaining(updated.expires_at, now),
        )

    def check_status(self, application_id: str) -> LockStatus:
        application_key = _require_id(application_id, "application_id")
        now = _utcnow()
        record = self._store.get(application_key)
        if record is None or not record.is_held(now):
            return LockStatus(application_id=application_key, is_locked=False)
        return LockStatus.from_record(record, now)

    def verify_ownership(self, application_id: str, judge_id: str) -> OwnershipCheck:
        """Guard for mutating review calls; re-reads expiry at call time."""

        application_key = _require_id(application_id, "application_id")
        judge_key = _require_id(judge_id, "judge_id")
        now = _utcnow()
        record = self._store.get(application_key)
        if record is None or record.judge_id != judge_key:
            return OwnershipCheck.NOT_OWNER
        if not record.is_held(now):
            return OwnershipCheck.EXPIRED
        if not self._store.touch_held_by(application_key, judge_key, now):
            # the row moved between the read and the touch
            current = self._store.get(application_key)
            if current is None or current.judge_id != judge_key:
                return OwnershipCheck.NOT_OWNER
            return OwnershipCheck.EXPIRED
        return OwnershipCheck.OK

    def cleanup_expired(self) -> int:
        removed = self._store.delete_expired(_utcnow())
        if removed:
            logger.info("cleaned up %s expired review locks", removed)
        return removed

    def list_active_locks(self, judge_id: str) -> list[LockStatus]:
        judge_key = _require_id(judge_id, "judge_id")
        now = _utcnow()
        return [LockStatus.from_record(record, now) for record in self._store.list_held_by(judge_key, now)]
