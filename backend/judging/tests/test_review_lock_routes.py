from datetime import datetime, timedelta, timezone
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from judging import audit
from judging.services import review_locks
from judging.services.lock_store import LockStoreUnavailable, SqlLockStore
from .conftest import judge_headers, make_application, make_judge


def test_lock_lifecycle(client, db):
    judge = make_judge(db, expertise=["fashion"])
    application = make_application(db)
    headers = judge_headers(judge)
    url = f"/api/applications/{application.id}/lock"

    acquired = client.post(url, json={"lock_duration": 45}, headers=headers)
    assert acquired.status_code == 200
    body = acquired.json()
    assert body["time_remaining"] in (44, 45)
    assert body["lock"]["judge_id"] == str(judge.id)
    assert body["lock"]["lock_type"] == "review"

    status_resp = client.get(f"{url}/status", headers=headers)
    assert status_resp.status_code == 200
    assert status_resp.json()["is_locked"] is True
    assert status_resp.json()["judge_has_lock"] is True

    active = client.get(f"/api/judges/{judge.id}/locks/active", headers=headers)
    assert [lock["application_id"] for lock in active.json()] == [str(application.id)]

    released = client.delete(url, headers=headers)
    assert released.json() == {"application_id": str(application.id), "released": True}
    again = client.delete(url, headers=headers)
    assert again.status_code == 200
    assert again.json()["released"] is False

    assert audit.actions_for_target(db, "application", application.id) == [
        "review_lock.acquired",
        "review_lock.released",
    ]


def test_contended_lock_returns_423(client, db):
    holder = make_judge(db, order=0)
    other = make_judge(db, order=1)
    application = make_application(db)
    url = f"/api/applications/{application.id}/lock"

    assert client.post(url, headers=judge_headers(holder)).status_code == 200
    denied = client.post(url, headers=judge_headers(other))

    assert denied.status_code == 423
    detail = denied.json()["detail"]
    assert detail["error"] == "Application is currently being reviewed by another judge"
    assert detail["locked_by"] == str(holder.user_id)
    assert detail["time_remaining"] > 0

    seen_by_other = client.get(f"{url}/status", headers=judge_headers(other)).json()
    assert seen_by_other["is_locked"] is True
    assert seen_by_other["judge_has_lock"] is False


def test_invalid_duration_returns_400(client, db):
    judge = make_judge(db)
    application = make_application(db)

    resp = client.post(
        f"/api/applications/{application.id}/lock",
        json={"lock_duration": -1},
        headers=judge_headers(judge),
    )
    assert resp.status_code == 400

    bad_type = client.post(
        f"/api/applications/{application.id}/lock",
        json={"lock_type": "siesta"},
        headers=judge_headers(judge),
    )
    assert bad_type.status_code == 400


def test_extend_not_held_and_expired(client, db, monkeypatch):
    judge = make_judge(db)
    application = make_application(db)
    headers = judge_headers(judge)
    url = f"/api/applications/{application.id}/lock"

    assert client.put(f"{url}/extend", json={"extend_by": 10}, headers=headers).status_code == 404

    start = datetime.now(timezone.utc)
    monkeypatch.setattr(review_locks, "_UTC_NOW", lambda tz=None: start)
    client.post(url, json={"lock_duration": 5}, headers=headers)

    extended = client.put(f"{url}/extend", json={"extend_by": 10}, headers=headers)
    assert extended.status_code == 200
    assert extended.json()["time_remaining"] == 15

    monkeypatch.setattr(review_locks, "_UTC_NOW", lambda tz=None: start + timedelta(minutes=16))
    lapsed = client.put(f"{url}/extend", headers=headers)
    assert lapsed.status_code == 410

    status_resp = client.get(f"{url}/status", headers=headers).json()
    assert status_resp["is_locked"] is False


def test_store_outage_returns_503(client, db, monkeypatch):
    judge = make_judge(db)
    application = make_application(db)

    def unavailable(self, application_id):
        raise LockStoreUnavailable("lock store unavailable during get")

    monkeypatch.setattr(SqlLockStore, "get", unavailable)
    resp = client.get(f"/api/applications/{application.id}/lock/status", headers=judge_headers(judge))

    assert resp.status_code == 503
    assert resp.headers["retry-after"] == "5"


def test_other_judges_locks_are_private(client, db):
    judge = make_judge(db, order=0)
    other = make_judge(db, order=1)

    resp = client.get(f"/api/judges/{other.id}/locks/active", headers=judge_headers(judge))
    assert resp.status_code == 403


def test_identity_headers_are_required(client, db):
    application = make_application(db)
    inactive = make_judge(db, is_active=False)
    url = f"/api/applications/{application.id}/lock"

    assert client.post(url).status_code == 401
    unknown = {"X-Judge-Id": str(uuid4()), "X-User-Id": str(uuid4())}
    assert client.post(url, headers=unknown).status_code == 403
    assert client.post(url, headers=judge_headers(inactive)).status_code == 403
    mismatched = {"X-Judge-Id": str(inactive.id), "X-User-Id": str(uuid4())}
    assert client.post(url, headers=mismatched).status_code == 403


def test_metrics_endpoint(client):
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "request_count" in resp.text


def test_audit_failure_does_not_undo_a_granted_lock(client, db, monkeypatch, caplog):
    judge = make_judge(db)
    application = make_application(db)
    headers = judge_headers(judge)

    def broken_audit(*args, **kwargs):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))

    monkeypatch.setattr(audit, "log_action", broken_audit)
    resp = client.post(f"/api/applications/{application.id}/lock", headers=headers)

    assert resp.status_code == 200
    status_resp = client.get(f"/api/applications/{application.id}/lock/status", headers=headers).json()
    assert status_resp["judge_has_lock"] is True
    assert "audit review_lock.acquired" in caplog.text
