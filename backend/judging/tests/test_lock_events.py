import json

from .conftest import judge_headers, make_application, make_judge


def test_websocket_receives_lock_events(client, db):
    judge = make_judge(db)
    application = make_application(db)
    headers = judge_headers(judge)
    url = f"/api/applications/{application.id}/lock"

    with client.websocket_connect(f"/ws/applications/{application.id}") as websocket:
        client.post(url, headers=headers)
        acquired = json.loads(websocket.receive_text())
        assert acquired["type"] == "lock_acquired"
        assert acquired["application_id"] == str(application.id)
        assert acquired["judge_id"] == str(judge.id)

        client.put(f"{url}/extend", json={"extend_by": 15}, headers=headers)
        assert json.loads(websocket.receive_text())["type"] == "lock_extended"

        client.delete(url, headers=headers)
        assert json.loads(websocket.receive_text())["type"] == "lock_released"
