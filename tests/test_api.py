from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from boutique_trainer import main
from boutique_trainer.components.backends import MockBackend

from conftest import ScriptedBackend, PERSONA_JSON


START_BODY = {
    "persona": "高净值顾客",
    "scenario": "首次触达",
    "difficulty": "基础",
    "brand": "Gucci",
    "userId": "emp-1",
    "chapterId": "ch-1",
}


@pytest.fixture
def stt():
    stt = MagicMock()
    stt.service_url = "http://stt.test"
    stt.transcribe = AsyncMock(return_value="这款有小号吗？")
    stt.close = AsyncMock()
    return stt


@pytest.fixture
def client(tmp_path, monkeypatch, stt):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setattr(main.llm, "backend", MockBackend())
    monkeypatch.setattr(main, "stt", stt)
    monkeypatch.setattr(main.orchestrator, "stt", stt)
    with TestClient(main.app) as client:
        yield client


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["database"]["initialized"] is True
    assert health["stt"]["service_url"] == "http://stt.test"


def test_full_training_flow(client):
    started = client.post("/api/sessions", json=START_BODY)
    assert started.status_code == 200
    session_id = started.json()["session_id"]
    assert started.json()["first_message"] == "你好，我想看看你们的经典款手袋。"
    assert started.json()["config"]["persona_id"] == "HNWI"

    # the offline backend buys on the sixth salesperson turn
    for turn in range(1, 7):
        response = client.post(f"/api/sessions/{session_id}/messages", json={"text": f"第 {turn} 句介绍"})
        assert response.status_code == 200
    body = response.json()
    assert body["state"] == "PURCHASED"
    assert body["ended"] is True
    assert body["evaluation"]["overallScore"] == 78
    record_id = body["record_id"]
    assert body["persist_error"] is None

    snapshot = client.get(f"/api/sessions/{session_id}").json()
    assert snapshot["status"] == "ENDED"
    assert len(snapshot["messages"]) == 13

    record = client.get(f"/api/records/{record_id}").json()
    assert record["evaluation"]["dimensions"]["emotionalConnection"] == 82
    assert record["chapter_id"] == "ch-1"
    assert len(record["messages"]) == 13

    history = client.get("/api/users/emp-1/sessions").json()["sessions"]
    assert [h["id"] for h in history] == [record_id]

    report = client.get("/api/users/emp-1/report").json()
    assert report["session_count"] == 1
    assert report["avg_score"] == 78

    html = client.get("/api/users/emp-1/report.html")
    assert html.status_code == 200
    assert html.headers["content-type"].startswith("text/html")
    assert "能力报告" in html.text

    # ended sessions accept no more turns
    assert client.post(f"/api/sessions/{session_id}/messages", json={"text": "还在吗"}).status_code == 409
    assert client.post(f"/api/sessions/{session_id}/end").status_code == 409


def test_invalid_config_returns_422(client):
    response = client.post("/api/sessions", json={"persona": "HNWI", "brand": "Gucci"})
    assert response.status_code == 422
    assert response.json()["detail"]["missing"] == ["scenario", "difficulty"]


def test_unknown_session_returns_404(client):
    assert client.get("/api/sessions/nope").status_code == 404
    assert client.post("/api/sessions/nope/messages", json={"text": "您好"}).status_code == 404
    assert client.delete("/api/sessions/nope").status_code == 404
    assert client.get("/api/records/999").status_code == 404


def test_completion_failure_returns_502(client, monkeypatch):
    from boutique_trainer.components.errors import LLMRequestError

    monkeypatch.setattr(main.llm, "backend", ScriptedBackend([PERSONA_JSON, LLMRequestError("timeout")]))
    session_id = client.post("/api/sessions", json=START_BODY).json()["session_id"]

    response = client.post(f"/api/sessions/{session_id}/messages", json={"text": "您好"})
    assert response.status_code == 502
    assert len(client.get(f"/api/sessions/{session_id}").json()["messages"]) == 1


def test_manual_end_and_discard(client):
    session_id = client.post("/api/sessions", json=dict(START_BODY, userId=None)).json()["session_id"]
    client.post(f"/api/sessions/{session_id}/messages", json={"text": "您好，欢迎光临"})

    ended = client.post(f"/api/sessions/{session_id}/end").json()
    assert ended["evaluation"]["overallScore"] == 78
    assert ended["record_id"] is None

    assert client.delete(f"/api/sessions/{session_id}").json()["discarded"] is True
    assert client.get(f"/api/sessions/{session_id}").status_code == 404


def test_voice_turn_and_transcribe_proxy(client, stt):
    session_id = client.post("/api/sessions", json=START_BODY).json()["session_id"]

    response = client.post(f"/api/sessions/{session_id}/voice", json={"audioBase64": "data:audio/webm;base64,QUJD"})
    assert response.status_code == 200
    assert response.json()["transcription"] == "这款有小号吗？"

    assert client.post("/api/transcribe", json={"audioBase64": "QUJD"}).json() == {"text": "这款有小号吗？"}

    stt.transcribe.return_value = ""
    response = client.post(f"/api/sessions/{session_id}/voice", json={"audioBase64": "QUJD"})
    assert response.status_code == 422


def test_empty_report(client):
    report = client.get("/api/users/nobody/report").json()
    assert report["session_count"] == 0
