from __future__ import annotations

import time
from typing import Any

from fastapi.testclient import TestClient


def _wait_for(client: TestClient, sid: str, screen: str, *, timeout_s: float = 2.0) -> dict[str, Any]:
    """Poll until timer-driven transitions land on `screen`."""

    deadline = time.monotonic() + timeout_s
    while True:
        snap = client.get(f"/session/{sid}").json()
        if snap["screen"] == screen or time.monotonic() > deadline:
            return snap
        time.sleep(0.01)


def _new_session(client: TestClient) -> str:
    resp = client.post("/session")
    assert resp.status_code == 201
    snap = resp.json()
    assert snap["screen"] == "home"
    assert snap["view"] == "home"
    return snap["session_id"]


def test_healthcheck_and_info(client_and_redis) -> None:
    client, _ = client_and_redis
    assert client.get("/healthcheck").json() == {"status": "ok"}
    assert client.get("/info").json()["name"] == "stepwise"


def test_homework_game_flow(client_and_redis) -> None:
    client, _ = client_and_redis
    sid = _new_session(client)

    snap = client.post(f"/session/{sid}/homework", json={"text": "2+2", "mode": "game"}).json()
    assert snap["screen"] == "selecting"
    assert [i["item_id"] for i in snap["items"]] == ["q1", "p1"]
    assert snap["items"][1]["summary"] == "Contains 2 parts: Part q2, Part q3"

    snap = client.post(f"/session/{sid}/select", json={"item_id": "q1"}).json()
    assert snap["screen"] == "game"
    assert snap["game"]["step_question"] == "What is 2+2?"
    assert snap["game"]["progress"] == 0

    snap = client.post(f"/session/{sid}/answer", json={"index": 1}).json()
    assert snap["game"]["selected_answer_index"] == 1 or snap["screen"] == "complete"

    snap = _wait_for(client, sid, "complete")
    assert snap["screen"] == "complete"
    assert snap["completed_question_ids"] == ["q1"]
    assert snap["last_game_result"]["key_skill"] == "Arithmetic"

    snap = client.post(f"/session/{sid}/continue").json()
    assert snap["screen"] == "selecting"
    assert snap["items"][0]["completed"] is True


def test_no_input_is_an_error_view_not_an_http_error(client_and_redis) -> None:
    client, _ = client_and_redis
    sid = _new_session(client)

    resp = client.post(f"/session/{sid}/homework", json={"text": ""})
    assert resp.status_code == 200
    assert resp.json()["view"] == "error"
    assert resp.json()["screen"] == "home"


def test_error_mapping(client_and_redis) -> None:
    client, _ = client_and_redis
    sid = _new_session(client)

    assert client.get("/session/00000000-0000-0000-0000-000000000000").status_code == 404
    assert client.post(f"/session/{sid}/answer", json={"index": 0}).status_code == 409
    assert client.post(f"/session/{sid}/answer", json={"index": -1}).status_code == 422
    assert client.post(f"/session/{sid}/homework", json={"image_base64": "***"}).status_code == 422

    client.post(f"/session/{sid}/homework", json={"text": "2+2"})
    assert client.post(f"/session/{sid}/select", json={"item_id": "nope"}).status_code == 422


def test_pack_failure_returns_to_selection(client_and_redis, generator) -> None:
    client, _ = client_and_redis
    generator.fail_texts = {"solve q2"}
    sid = _new_session(client)
    client.post(f"/session/{sid}/homework", json={"text": "2+2"})

    snap = client.post(f"/session/{sid}/select", json={"item_id": "p1"}).json()
    assert snap["screen"] == "selecting"
    assert snap["view"] == "error"
    assert snap["error"] == 'Failed to generate game for "Part q2"'
    assert snap["game"] is None


def test_topic_flow(client_and_redis) -> None:
    client, _ = client_and_redis
    sid = _new_session(client)

    assert client.post(f"/session/{sid}/topic/start").json()["screen"] == "topic_intake"
    snap = client.post(f"/session/{sid}/topic/pain-point", json={"pain_point": "fractions"}).json()
    assert [o["id"] for o in snap["curriculum"]] == ["o1", "o2", "o3"]

    for oid in ("o1", "o2", "o3"):
        snap = client.post(f"/session/{sid}/topic/objective", json={"objective_id": oid}).json()
        assert snap["lesson"]["challenge"]
        snap = client.post(f"/session/{sid}/topic/challenge", json={"answer": "1"}).json()

    assert snap["screen"] == "topic_quiz"
    assert snap["completed_objective_ids"] == ["o1", "o2", "o3"]
    assert snap["game"]["step_question"] == "Q1"

    snap = client.post(f"/session/{sid}/topic/quiz/finish").json()
    assert snap["screen"] == "home"


def test_lesson_back(client_and_redis) -> None:
    client, _ = client_and_redis
    sid = _new_session(client)
    client.post(f"/session/{sid}/topic/start")
    client.post(f"/session/{sid}/topic/pain-point", json={"pain_point": "fractions"})
    client.post(f"/session/{sid}/topic/objective", json={"objective_id": "o1"})

    snap = client.post(f"/session/{sid}/topic/lesson/back").json()
    assert snap["screen"] == "topic_curriculum"
    assert snap["current_objective"] is None


def test_end_session_and_events(client_and_redis) -> None:
    client, _ = client_and_redis
    sid = _new_session(client)

    assert client.delete(f"/session/{sid}").status_code == 204
    assert client.get(f"/session/{sid}").status_code == 404
    assert client.delete(f"/session/{sid}").status_code == 404

    deadline = time.monotonic() + 2.0
    names: list[str] = []
    while time.monotonic() < deadline:
        names = [e["event_name"] for e in client.get("/events").json()["events"]]
        if "session_end" in names:
            break
        time.sleep(0.01)
    assert names[:2] == ["session_end", "session_start"]


def _camel_keys(obj: Any) -> list[str]:
    if isinstance(obj, dict):
        found = [k for k in obj if k != k.lower()]
        for v in obj.values():
            found += _camel_keys(v)
        return found
    if isinstance(obj, list):
        return [k for v in obj for k in _camel_keys(v)]
    return []


def test_snapshots_are_snake_case(client_and_redis) -> None:
    client, _ = client_and_redis
    sid = _new_session(client)
    client.post(f"/session/{sid}/homework", json={"text": "2+2"})
    snap = client.post(f"/session/{sid}/select", json={"item_id": "q1"}).json()
    assert "selected_is_correct" in snap["game"]
    assert _camel_keys(snap) == []

    client.post(f"/session/{sid}/answer", json={"index": 1})
    snap = _wait_for(client, sid, "complete")
    assert set(snap["last_game_result"]) == {"key_skill", "solved_steps"}
    assert _camel_keys(snap) == []

    client.post(f"/session/{sid}/continue")
    client.post(f"/session/{sid}/home")
    client.post(f"/session/{sid}/topic/start")
    client.post(f"/session/{sid}/topic/pain-point", json={"pain_point": "fractions"})
    snap = client.post(f"/session/{sid}/topic/objective", json={"objective_id": "o1"}).json()
    assert set(snap["lesson"]) == {"lesson", "visual", "challenge"}
    assert _camel_keys(snap) == []


def test_quiz_snapshot_carries_only_a_summary(client_and_redis) -> None:
    client, _ = client_and_redis
    sid = _new_session(client)
    client.post(f"/session/{sid}/topic/start")
    client.post(f"/session/{sid}/topic/pain-point", json={"pain_point": "fractions"})
    for oid in ("o1", "o2", "o3"):
        client.post(f"/session/{sid}/topic/objective", json={"objective_id": oid})
        snap = client.post(f"/session/{sid}/topic/challenge", json={"answer": "1"}).json()

    assert snap["screen"] == "topic_quiz"
    assert snap["mastery_quiz"] == {"title": "Mastery Quiz", "question_count": 2}
