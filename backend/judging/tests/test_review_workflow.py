from datetime import datetime, timedelta, timezone

from judging import audit, models
from judging.services import review_locks
from judging.services.lock_store import LockRecord, SqlLockStore
from .conftest import judge_headers, make_application, make_judge

SCORE = {
    "innovation_differentiation": 15,
    "market_traction_growth": 12,
    "impact_job_creation": 20,
    "financial_health_governance": 10,
    "inclusion_sustainability": 8,
    "scalability_award_use": 7,
    "comments": "Strong traction in regional markets.",
}


def test_review_start_anonymizes_and_marks_under_review(client, db):
    judge = make_judge(db, expertise=["fashion"])
    application = make_application(
        db,
        details={"email": "founder@example.com", "phone": "555-0100", "employees": 12},
    )

    resp = client.post(
        f"/api/applications/{application.id}/review/start",
        json={"lock_duration": 30},
        headers=judge_headers(judge),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["application"]["business_name"] == "[ANONYMIZED]"
    assert body["application"]["details"] == {"employees": 12}
    assert body["application"]["workflow_stage"] == "under_review"
    assert body["lock"]["lock"]["judge_id"] == str(judge.id)

    db.expire_all()
    assert db.get(models.Application, application.id).workflow_stage == "under_review"

    view = client.get(f"/api/applications/{application.id}/review", headers=judge_headers(judge))
    assert view.status_code == 200
    assert view.json()["business_name"] == "[ANONYMIZED]"


def test_review_start_rejections(client, db):
    holder = make_judge(db, order=0)
    other = make_judge(db, order=1)
    application = make_application(db)
    closed = make_application(db, order=1, stage="shortlisted")

    assert (
        client.post(f"/api/applications/{closed.id}/review/start", headers=judge_headers(holder)).status_code
        == 400
    )
    missing = client.post(
        "/api/applications/00000000-0000-0000-0000-000000000000/review/start",
        headers=judge_headers(holder),
    )
    assert missing.status_code == 404

    assert (
        client.post(f"/api/applications/{application.id}/review/start", headers=judge_headers(holder)).status_code
        == 200
    )
    contended = client.post(
        f"/api/applications/{application.id}/review/start", headers=judge_headers(other)
    )
    assert contended.status_code == 423
    assert contended.json()["detail"]["locked_by"] == str(holder.user_id)


def test_score_once_and_release(client, db):
    judge = make_judge(db)
    other = make_judge(db, order=1)
    application = make_application(db)
    headers = judge_headers(judge)
    base = f"/api/applications/{application.id}"

    assert client.post(f"{base}/score", json=SCORE, headers=headers).status_code == 403

    client.post(f"{base}/review/start", headers=headers)
    scored = client.post(f"{base}/score", json=SCORE, headers=headers)

    assert scored.status_code == 201
    body = scored.json()
    assert body["total_score"] == 72
    assert body["scoring_round"] == "first_round"
    assert body["lock_released"] is True
    assert client.get(f"{base}/lock/status", headers=headers).json()["is_locked"] is False

    client.post(f"{base}/lock", headers=headers)
    duplicate = client.post(f"{base}/score", json=SCORE, headers=headers)
    assert duplicate.status_code == 409
    assert client.get(f"{base}/lock/status", headers=headers).json()["judge_has_lock"] is True

    client.delete(f"{base}/lock", headers=headers)
    assert client.post(f"{base}/review/start", headers=judge_headers(other)).status_code == 200

    assert audit.actions_for_target(db, "application", application.id) == [
        "review.started",
        "review.scored",
        "review_lock.acquired",
        "review_lock.released",
        "review.started",
    ]


def test_score_validation(client, db):
    judge = make_judge(db)
    application = make_application(db)
    headers = judge_headers(judge)
    client.post(f"/api/applications/{application.id}/review/start", headers=headers)

    too_high = dict(SCORE, impact_job_creation=26)
    resp = client.post(f"/api/applications/{application.id}/score", json=too_high, headers=headers)
    assert resp.status_code == 422

    bad_round = dict(SCORE, scoring_round="third_round")
    resp = client.post(f"/api/applications/{application.id}/score", json=bad_round, headers=headers)
    assert resp.status_code == 422


def test_score_after_lock_lapses_is_gone(client, db, monkeypatch):
    judge = make_judge(db)
    application = make_application(db)
    headers = judge_headers(judge)
    start = datetime.now(timezone.utc)

    monkeypatch.setattr(review_locks, "_UTC_NOW", lambda tz=None: start)
    client.post(
        f"/api/applications/{application.id}/review/start",
        json={"lock_duration": 10},
        headers=headers,
    )
    monkeypatch.setattr(review_locks, "_UTC_NOW", lambda tz=None: start + timedelta(minutes=11))

    resp = client.post(f"/api/applications/{application.id}/score", json=SCORE, headers=headers)
    assert resp.status_code == 410
    view = client.get(f"/api/applications/{application.id}/review", headers=headers)
    assert view.status_code == 410
    assert db.query(models.Score).count() == 0


def test_conflict_declaration_releases_and_excludes(client, db):
    judge = make_judge(db, expertise=["fashion"])
    other = make_judge(db, expertise=["fashion"], order=1)
    application = make_application(db)
    headers = judge_headers(judge)
    base = f"/api/applications/{application.id}"

    client.post(f"{base}/review/start", headers=headers)
    declared = client.post(f"{base}/conflict", json={"reason": "Former employer"}, headers=headers)

    assert declared.status_code == 201
    assert declared.json()["reason"] == "Former employer"
    assert client.get(f"{base}/lock/status", headers=headers).json()["is_locked"] is False

    refused = client.post(f"{base}/review/start", headers=headers)
    assert refused.status_code == 403

    assignments = client.get(f"/api/judges/{judge.id}/assignments", headers=headers).json()
    assert str(application.id) not in assignments["application_ids"]
    other_assignments = client.get(
        f"/api/judges/{other.id}/assignments", headers=judge_headers(other)
    ).json()
    assert other_assignments["application_ids"] == [str(application.id)]


def _hold_lock(db, application, judge, minutes=30):
    now = datetime.now(timezone.utc)
    SqlLockStore(db).claim(
        LockRecord(
            application_id=str(application.id),
            judge_id=str(judge.id),
            user_id=str(judge.user_id),
            session_id="held-directly",
            lock_type="review",
            acquired_at=now,
            expires_at=now + timedelta(minutes=minutes),
            last_activity_at=now,
        ),
        now,
    )
    db.commit()


def test_declared_conflict_shuts_the_judge_out(client, db):
    judge = make_judge(db)
    application = make_application(db)
    headers = judge_headers(judge)
    base = f"/api/applications/{application.id}"

    client.post(f"{base}/review/start", headers=headers)
    assert client.post(f"{base}/conflict", json={"reason": "Relative"}, headers=headers).status_code == 201

    direct_lock = client.post(f"{base}/lock", headers=headers)
    assert direct_lock.status_code == 403
    assert client.get(f"{base}/lock/status", headers=headers).json()["is_locked"] is False

    # a lock row left over from before the declaration grants nothing
    _hold_lock(db, application, judge)
    assert client.post(f"{base}/score", json=SCORE, headers=headers).status_code == 403
    assert client.get(f"{base}/review", headers=headers).status_code == 403
    assert client.post(f"{base}/conflict", json={}, headers=headers).status_code == 409
    assert db.query(models.Score).count() == 0


def test_closed_application_cannot_be_locked_or_scored(client, db):
    judge = make_judge(db)
    application = make_application(db, stage="rejected")
    headers = judge_headers(judge)
    base = f"/api/applications/{application.id}"

    assert client.post(f"{base}/lock", headers=headers).status_code == 400

    _hold_lock(db, application, judge)
    assert client.post(f"{base}/score", json=SCORE, headers=headers).status_code == 400
    assert client.post(f"{base}/conflict", json={}, headers=headers).status_code == 400
    assert client.get(f"{base}/review", headers=headers).status_code == 400
    assert db.query(models.Score).count() == 0
    assert db.query(models.ConflictDeclaration).count() == 0


def test_direct_lock_on_missing_application_is_404(client, db):
    judge = make_judge(db)
    resp = client.post(
        "/api/applications/00000000-0000-0000-0000-000000000000/lock",
        headers=judge_headers(judge),
    )
    assert resp.status_code == 404
