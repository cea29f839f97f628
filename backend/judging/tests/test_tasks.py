import json
from datetime import datetime, timedelta, timezone

from typer.testing import CliRunner

from judging import tasks
from judging.cli.coordination import app as cli_app, preview_distribution
from judging.services.lock_store import LockRecord, SqlLockStore
from .conftest import TestingSessionLocal, make_application, make_judge


def _insert_lock(application_id, expires_in_minutes):
    now = datetime.now(timezone.utc)
    session = TestingSessionLocal()
    try:
        SqlLockStore(session).claim(
            LockRecord(
                application_id=application_id,
                judge_id="judge-a",
                user_id="user-a",
                session_id="s-1",
                lock_type="review",
                acquired_at=now - timedelta(minutes=120),
                expires_at=now + timedelta(minutes=expires_in_minutes),
                last_activity_at=now - timedelta(minutes=120),
            ),
            now - timedelta(minutes=120),
        )
        session.commit()
    finally:
        session.close()


def test_sweep_task_runs_eagerly_and_removes_expired_rows():
    _insert_lock("app-expired", -5)
    _insert_lock("app-live", 30)

    assert tasks.celery_app.conf.task_always_eager
    result = tasks.sweep_expired_review_locks.delay()

    assert result.get() == 1
    session = TestingSessionLocal()
    try:
        assert SqlLockStore(session).get("app-expired") is None
        assert SqlLockStore(session).get("app-live") is not None
    finally:
        session.close()


def test_beat_schedule_includes_lock_sweep():
    entry = tasks.celery_app.conf.beat_schedule["sweep-expired-review-locks"]
    assert entry["task"] == "judging.tasks.sweep_expired_review_locks"
    assert entry["schedule"] == timedelta(minutes=tasks.LOCK_SWEEP_MINUTES)


def test_preview_distribution_summary(db):
    make_judge(db, expertise=["fashion"], order=0)
    make_judge(db, expertise=["agribusiness"], order=1)
    for index in range(5):
        make_application(db, order=index)

    summary = preview_distribution()

    assert [entry["assigned"] for entry in summary["judges"]] == [3, 2]
    assert [entry["target"] for entry in summary["judges"]] == [3, 2]
    assert summary["total_applications"] == 5
    assert summary["uncovered_sectors"] == []


def test_cli_commands():
    runner = CliRunner()

    no_judges = runner.invoke(cli_app, ["preview-distribution"])
    assert no_judges.exit_code == 1

    _insert_lock("app-expired", -1)
    swept = runner.invoke(cli_app, ["sweep-locks"])
    assert swept.exit_code == 0
    assert json.loads(swept.stdout) == {"removed": 1}
