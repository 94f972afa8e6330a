import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from mockinterview.api import ws_interview
from mockinterview.main import app
from mockinterview.results.store import InMemoryResultsStore
from mockinterview.session.registry import session_registry


class FakeWebSocket:
    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.sent = []

    async def send_text(self, payload: str):
        await asyncio.sleep(0)
        self.sent.append(payload)


def _receive_until(ws, message_type: str, limit: int = 50, **expected) -> dict:
    for _ in range(limit):
        message = ws.receive_json()
        if message.get("type") != message_type:
            continue
        if all(message.get(key) == value for key, value in expected.items()):
            return message
    raise AssertionError(f"no {message_type} message within {limit} frames")


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(ws_interview, "results_store", InMemoryResultsStore())
    return TestClient(app)


def _summary(completed: int = 4, total: int = 4, violations: int = 0) -> dict:
    return {
        "answers": [
            {"question_id": index + 1, "question_index": index, "reason": "stopped", "elapsed_seconds": 10}
            for index in range(completed)
        ],
        "violations": [
            {"kind": "tab_hidden", "question_index": 0, "sequence": index}
            for index in range(violations)
        ],
        "completed_questions": completed,
        "total_questions": total,
    }


@pytest.mark.asyncio
async def test_outbox_drains_in_emit_order():
    ws = FakeWebSocket()
    outbox: asyncio.Queue = asyncio.Queue()
    for index in range(20):
        outbox.put_nowait({"type": "state", "index": index})
    outbox.put_nowait(None)

    await ws_interview._drain_outbox(ws, outbox)

    assert [json.loads(item)["index"] for item in ws.sent] == list(range(20))


@pytest.mark.asyncio
async def test_outbox_skips_frames_after_socket_closed():
    ws = FakeWebSocket()
    ws.client_state = WebSocketState.DISCONNECTED
    outbox: asyncio.Queue = asyncio.Queue()
    outbox.put_nowait({"type": "state"})
    outbox.put_nowait(None)

    await ws_interview._drain_outbox(ws, outbox)

    assert ws.sent == []


def test_parse_message_rejects_oversized_and_non_objects():
    with pytest.raises(ValueError):
        ws_interview._parse_message("x" * (ws_interview.WS_MAX_TEXT_BYTES + 1))
    with pytest.raises(ValueError):
        ws_interview._parse_message("[1, 2]")
    with pytest.raises(ValueError):
        ws_interview._parse_message("not json")
    assert ws_interview._parse_message('{"type": "ping"}') == {"type": "ping"}


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_questions_listed_in_order(client):
    response = client.get("/api/interview/questions")
    assert response.status_code == 200
    questions = response.json()
    assert [item["id"] for item in questions] == [1, 2, 3, 4]
    assert questions[0]["time_limit_seconds"] == 120
    assert questions[0]["time_limit_display"] == "2:00"
    assert questions[1]["time_limit_display"] == "1:30"


def test_score_endpoint_applies_violation_penalty(client):
    response = client.post("/api/interview/score", json={"summary": _summary(violations=2)})
    assert response.status_code == 200
    report = response.json()
    assert report["completion_rate"] == 100
    assert report["communication_score"] == 55
    assert 75 <= report["technical_score"] <= 94
    assert report["band"] in {"Excellent", "Good", "Needs Improvement"}
    assert report["tones"]["communication"] == "destructive"


def test_score_endpoint_rejects_inconsistent_summary(client):
    response = client.post("/api/interview/score", json={"summary": _summary(completed=3, total=2)})
    assert response.status_code == 400

    response = client.post("/api/interview/score", json={"summary": _summary(completed=0, total=0)})
    assert response.status_code == 422


def test_unknown_result_is_404(client):
    response = client.get("/api/interview/results/does-not-exist")
    assert response.status_code == 404


def test_stored_result_report_is_recomputed_on_read(client):
    ws_interview.results_store.save_result(
        "stored-session",
        {
            "candidate": {"candidate_name": "Grace"},
            "end_reason": "ended_by_candidate",
            "summary": _summary(completed=1, total=4, violations=1),
        },
    )

    response = client.get("/api/interview/results/stored-session")
    assert response.status_code == 200
    body = response.json()
    assert body["live"] is False
    assert body["summary"]["completed_questions"] == 1
    assert body["report"]["completion_rate"] == 25
    assert body["report"]["communication_score"] == 65


def test_metrics_snapshot(client):
    response = client.get("/api/metrics")
    assert response.status_code == 200
    body = response.json()
    assert "sessions_started" in body
    assert "sessions_live" in body
    assert "avg_answer_duration_sec" in body


def test_websocket_requires_candidate(client):
    with client.websocket_connect("/ws/interview") as ws:
        message = ws.receive_json()
    assert message["type"] == "error"
    assert message["code"] == "missing_candidate"


def test_websocket_full_interview(client):
    with client.websocket_connect("/ws/interview?candidate_name=Ada&job_role=Backend") as ws:
        state = _receive_until(ws, "state")
        session_id = state["session_id"]
        assert state["phase"] == "awaiting_start"
        assert state["total_questions"] == 4

        for index in range(4):
            ws.send_json({"type": "start_answer"})
            recording = _receive_until(ws, "state", recording=True)
            assert recording["current_question_index"] == index

            ws.send_json({"type": "stop_answer"})
            stopped = _receive_until(ws, "state", can_advance=True)
            assert stopped["recording"] is False

            ws.send_json({"type": "next_question"})

        results = _receive_until(ws, "results")
        assert results["session_id"] == session_id
        assert results["summary"]["completed_questions"] == 4
        assert results["report"]["completion_rate"] == 100
        assert results["report"]["communication_score"] == 75

        response = client.get(f"/api/interview/results/{session_id}")
        assert response.status_code == 200
        assert response.json()["summary"]["completed_questions"] == 4


def test_websocket_reports_bad_actions_without_closing(client):
    with client.websocket_connect("/ws/interview?candidate_name=Ada") as ws:
        _receive_until(ws, "state")

        ws.send_json({"type": "next_question"})
        error = _receive_until(ws, "error")
        assert error["code"] == "invalid_transition"
        assert error["action"] == "next_question"

        ws.send_text("not json")
        error = _receive_until(ws, "error")
        assert error["code"] == "bad_message"

        ws.send_json({"type": "dance"})
        error = _receive_until(ws, "error")
        assert error["code"] == "bad_message"

        ws.send_json({"type": "ping"})
        assert _receive_until(ws, "pong") == {"type": "pong"}

        ws.send_json({"type": "end_interview"})
        results = _receive_until(ws, "results")
        assert results["end_reason"] == "ended_by_candidate"
        assert results["summary"]["completed_questions"] == 0


def test_websocket_answers_binary_frame_and_keeps_session(client):
    with client.websocket_connect("/ws/interview?candidate_name=Ada") as ws:
        _receive_until(ws, "state")

        ws.send_bytes(b"\x00\x01")
        error = _receive_until(ws, "error")
        assert error["code"] == "bad_message"

        ws.send_json({"type": "ping"})
        assert _receive_until(ws, "pong") == {"type": "pong"}

        ws.send_json({"type": "start_answer"})
        assert _receive_until(ws, "state", recording=True)["current_question_index"] == 0


def test_websocket_session_ids_are_minted_by_server(client):
    with client.websocket_connect("/ws/interview?candidate_name=Bea&session_id=shared") as ws_b:
        b_id = _receive_until(ws_b, "state")["session_id"]

        with client.websocket_connect("/ws/interview?candidate_name=Ada&session_id=shared") as ws_a:
            a_id = _receive_until(ws_a, "state")["session_id"]

        assert "shared" not in {a_id, b_id}
        assert a_id != b_id

        ws_b.send_json({"type": "ping"})
        assert _receive_until(ws_b, "pong") == {"type": "pong"}
        entry = session_registry.get(b_id)
        assert entry is not None
        assert entry.connected is True


def test_stored_result_keeps_its_technical_score(client):
    ws_interview.results_store.save_result(
        "pinned-session",
        {
            "candidate": {"candidate_name": "Grace"},
            "end_reason": "completed",
            "summary": _summary(),
            "technical_score": 90,
        },
    )

    first = client.get("/api/interview/results/pinned-session").json()["report"]
    second = client.get("/api/interview/results/pinned-session").json()["report"]

    assert first["technical_score"] == 90
    assert first == second
    assert first["overall_score"] == 88
    assert first["band"] == "Excellent"


def test_recent_results_listed_newest_first(client):
    ws_interview.results_store.save_result(
        "older",
        {"candidate": {"candidate_name": "Grace", "job_role": "SRE"}, "summary": _summary(1, 4), "saved_at": 1.0},
    )
    ws_interview.results_store.save_result(
        "newer",
        {"candidate": {"candidate_name": "Alan"}, "end_reason": "completed", "summary": _summary(), "saved_at": 2.0},
    )

    response = client.get("/api/interview/results")
    assert response.status_code == 200
    rows = response.json()
    assert [row["session_id"] for row in rows] == ["newer", "older"]
    assert rows[1]["job_role"] == "SRE"
    assert rows[1]["completed_questions"] == 1
    assert rows[0]["total_questions"] == 4
