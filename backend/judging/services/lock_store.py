"""Storage backends for review locks.

Every method is a single atomic step against the backing store. The lock
manager never performs a read followed by a dependent write; it asks the
store to claim, extend or delete under a condition and inspects the outcome.
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterator, Protocol

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from .. import models

# purpose: isolate the compare-and-set primitives the review lock manager relies on
# status: active
# depends_on: backend.judging.models.ReviewLock

logger = logging.getLogger(__name__)


class ReviewLockError(RuntimeError):
    """Base error for review lock coordination."""


class LockStoreUnavailable(ReviewLockError):
    """Raised when the lock store cannot be reached; callers may retry later."""


@dataclass(frozen=True)
class LockRecord:
    application_id: str
    judge_id: str
    user_id: str
    session_id: str
    lock_type: str
    acquired_at: datetime
    expires_at: datetime
    last_activity_at: datetime

    def is_held(self, now: datetime) -> bool:
        return now < self.expires_at


class LockStore(Protocol):
    def get(self, application_id: str) -> LockRecord | None: ...

    def claim(self, record: LockRecord, now: datetime) -> bool:
        """Write ``record`` if the key is free, expired, or already owned by the claimant."""
        ...

    def delete_held_by(self, application_id: str, judge_id: str) -> bool: ...

    def extend_held_by(
        self,
        application_id: str,
        judge_id: str,
        session_id: str | None,
        current_expires_at: datetime,
        expires_at: datetime,
        now: datetime,
    ) -> LockRecord | None: ...

    def touch_held_by(self, application_id: str, judge_id: str, now: datetime) -> bool: ...

    def delete_expired(self, now: datetime) -> int: ...

    def list_held_by(self, judge_id: str, now: datetime) -> list[LockRecord]: ...


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored value is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InMemoryLockStore:
    """Process-local lock table guarded by a single mutex."""

    def __init__(self) -> None:
        self._locks: dict[str, LockRecord] = {}
        self._mutex = threading.Lock()

    def get(self, application_id: str) -> LockRecord | None:
        with self._mutex:
            return self._locks.get(application_id)

    def claim(self, record: LockRecord, now: datetime) -> bool:
        with self._mutex:
            current = self._locks.get(record.application_id)
            if current is not None and current.is_held(now) and current.judge_id != record.judge_id:
                return False
            self._locks[record.application_id] = record
            return True

    def delete_held_by(self, application_id: str, judge_id: str) -> bool:
        with self._mutex:
            current = self._locks.get(application_id)
            if current is None or current.judge_id != judge_id:
                return False
            del self._locks[application_id]
            return True

    def extend_held_by(
        self,
        application_id: str,
        judge_id: str,
        session_id: str | None,
        current_expires_at: datetime,
        expires_at: datetime,
        now: datetime,
    ) -> LockRecord | None:
        with self._mutex:
            current = self._locks.get(application_id)
            if current is None or current.judge_id != judge_id or not current.is_held(now):
                return None
            if current.expires_at != current_expires_at:
                return None
            if session_id is not None and current.session_id != session_id:
                return None
            updated = replace(current, expires_at=expires_at, last_activity_at=now)
            self._locks[application_id] = updated
            return updated

    def touch_held_by(self, application_id: str, judge_id: str, now: datetime) -> bool:
        with self._mutex:
            current = self._locks.get(application_id)
            if current is None or current.judge_id != judge_id or not current.is_held(now):
                return False
            self._locks[application_id] = replace(current, last_activity_at=now)
            return True

    def delete_expired(self, now: datetime) -> int:
        with self._mutex:
            expired = [key for key, record in self._locks.items() if not record.is_held(now)]
            for key in expired:
                del self._locks[key]
            return len(expired)

    def list_held_by(self, judge_id: str, now: datetime) -> list[LockRecord]:
        with self._mutex:
            held = [
                record
                for record in self._locks.values()
                if record.judge_id == judge_id and record.is_held(now)
            ]
        return sorted(held, key=lambda record: (record.expires_at, record.application_id))


_locks = models.ReviewLock.__table__


@contextmanager
def _store_faults(operation: str) -> Iterator[None]:
    try:
        yield
    except DBAPIError as exc:
        logger.error("review lock store failed during %s: %s", operation, exc)
        raise LockStoreUnavailable(f"lock store unavailable during {operation}") from exc


def _to_record(row: sa.RowMapping) -> LockRecord:
    return LockRecord(
        application_id=row["application_id"],
        judge_id=row["judge_id"],
        user_id=row["user_id"],
        session_id=row["session_id"],
        lock_type=row["lock_type"],
        acquired_at=as_utc(row["acquired_at"]),
        expires_at=as_utc(row["expires_at"]),
        last_activity_at=as_utc(row["last_activity_at"]),
    )


class SqlLockStore:
    """Lock table backed by the ``review_locks`` relation.

    Statements run inside the caller's session; the caller owns commit and
    rollback. Claims use ``INSERT ... ON CONFLICT DO UPDATE ... WHERE`` on
    PostgreSQL and SQLite, and a conditional update plus a savepointed insert
    against the unique ``application_id`` constraint elsewhere.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, application_id: str) -> LockRecord | None:
        with _store_faults("get"):
            row = (
                self._db.execute(sa.select(_locks).where(_locks.c.application_id == application_id))
                .mappings()
                .first()
            )
        return _to_record(row) if row else None

    def claim(self, record: LockRecord, now: datetime) -> bool:
        values = {
            "judge_id": record.judge_id,
            "user_id": record.user_id,
            "session_id": record.session_id,
            "lock_type": record.lock_type,
            "acquired_at": record.acquired_at,
            "expires_at": record.expires_at,
            "last_activity_at": record.last_activity_at,
        }
        claimable = sa.or_(_locks.c.expires_at <= now, _locks.c.judge_id == record.judge_id)
        dialect = self._db.get_bind().dialect.name
        with _store_faults("claim"):
            if dialect in ("postgresql", "sqlite"):
                insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
                stmt = insert(_locks).values(
                    id=uuid.uuid4(), application_id=record.application_id, **values
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[_locks.c.application_id],
                    set_={key: stmt.excluded[key] for key in values},
                    where=claimable,
                )
                return self._db.execute(stmt).rowcount == 1

            updated = self._db.execute(
                sa.update(_locks)
                .where(_locks.c.application_id == record.application_id)
                .where(claimable)
                .values(**values)
            )
            if updated.rowcount == 1:
                return True
            try:
                with self._db.begin_nested():
                    self._db.execute(
                        sa.insert(_locks).values(
                            id=uuid.uuid4(), application_id=record.application_id, **values
                        )
                    )
            except IntegrityError:
                return False
            return True

    def delete_held_by(self, application_id: str, judge_id: str) -> bool:
        with _store_faults("delete"):
            result = self._db.execute(
                sa.delete(_locks)
                .where(_locks.c.application_id == application_id)
                .where(_locks.c.judge_id == judge_id)
            )
        return result.rowcount > 0

    def extend_held_by(
        self,
        application_id: str,
        judge_id: str,
        session_id: str | None,
        current_expires_at: datetime,
        expires_at: datetime,
        now: datetime,
    ) -> LockRecord | None:
        stmt = (
            sa.update(_locks)
            .where(_locks.c.application_id == application_id)
            .where(_locks.c.judge_id == judge_id)
            .where(_locks.c.expires_at > now)
            .where(_locks.c.expires_at == current_expires_at)
            .values(expires_at=expires_at, last_activity_at=now)
        )
        if session_id is not None:
            stmt = stmt.where(_locks.c.session_id == session_id)
        with _store_faults("extend"):
            if self._db.execute(stmt).rowcount != 1:
                return None
        return self.get(application_id)

    def touch_held_by(self, application_id: str, judge_id: str, now: datetime) -> bool:
        with _store_faults("touch"):
            result = self._db.execute(
                sa.update(_locks)
                .where(_locks.c.application_id == application_id)
                .where(_locks.c.judge_id == judge_id)
                .where(_locks.c.expires_at > now)
                .values(last_activity_at=now)
            )
        return result.rowcount == 1

    def delete_expired(self, now: datetime) -> int:
        with _store_faults("cleanup"):
            result = self._db.execute(sa.delete(_locks).where(_locks.c.expires_at <= now))
        return result.rowcount

    def list_held_by(self, judge_id: str, now: datetime) -> list[LockRecord]:
        with _store_faults("list"):
            rows = (
                self._db.execute(
                    sa.select(_locks)
                    .where(_locks.c.judge_id == judge_id)
                    .where(_locks.c.expires_at > now)
                    .order_by(_locks.c.expires_at.asc(), _locks.c.application_id.asc())
                )
                .mappings()
                .all()
            )
        return [_to_record(row) for row in rows]
