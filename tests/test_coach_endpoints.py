import pathlib
import sys

import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from goal_coach.agent.intent_parser import DELETE_MARKER  # noqa: E402
from goal_coach.config import get_settings  # noqa: E402
from goal_coach.main import app  # noqa: E402
from goal_coach.orchestrator.store import coach_store  # noqa: E402


client = TestClient(app)
HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture(autouse=True)
def fresh_store(monkeypatch):
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    get_settings.cache_clear()
    coach_store.reset()
    yield
    coach_store.reset()
    get_settings.cache_clear()


def create_goal(title, **extra):
    res = client.post("/goals", json={"title": title, **extra}, headers=HEADERS)
    assert res.status_code == 201
    return res.json()


def chat(message, conversation_id=None):
    body = {"message": message}
    if conversation_id:
        body["conversationId"] = conversation_id
    res = client.post("/coach/chat", json=body, headers=HEADERS)
    assert res.status_code == 200
    return res.json()


def test_health_endpoint():
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_requests_require_user_header():
    assert client.get("/coach/summary").status_code == 401
    assert client.get("/goals").status_code == 401


def test_goal_routes_and_not_found_shape():
    goal = create_goal("Learn Spanish", tags=["language"])
    res = client.post(f"/goals/{goal['id']}/progress", json={"value": 35, "note": "Unit 2"}, headers=HEADERS)
    assert res.status_code == 200
    assert res.json()["current_progress"] == 35

    res = client.post(f"/goals/{goal['id']}/milestones", json={"title": "Finish unit 3"}, headers=HEADERS)
    milestone = res.json()["milestones"][0]
    res = client.post(f"/goals/{goal['id']}/milestones/{milestone['id']}/complete", headers=HEADERS)
    assert res.json()["milestones"][0]["completed"] is True

    res = client.get("/goals/missing", headers=HEADERS)
    assert res.status_code == 404
    assert res.json() == {"error": "Goal not found", "kind": "NOT_FOUND"}

    other = client.get(f"/goals/{goal['id']}", headers={"X-User-Id": "user-2"})
    assert other.status_code == 404


def test_insight_lifecycle():
    assert client.get("/coach/insight", headers=HEADERS).status_code == 204
    generated = client.post("/coach/insight/generate", headers=HEADERS)
    assert generated.status_code == 200
    cached = client.get("/coach/insight", headers=HEADERS)
    assert cached.status_code == 200
    assert cached.json()["id"] == generated.json()["id"]
    assert cached.json()["summary"]["meta"]["source"] == "rules"


def test_summary_compute_and_intent_parse_are_stateless():
    res = client.post("/coach/summary/compute", json={"goals": []}, headers=HEADERS)
    assert res.status_code == 200
    assert len(res.json()["nextActions"]) == 3

    res = client.post(
        "/coach/intent/parse",
        json={"message": "create a goal called Learn Spanish in 30 days"},
        headers=HEADERS,
    )
    assert res.status_code == 200
    [proposal] = res.json()["proposals"]
    assert proposal["type"] == "create_goal"
    assert proposal["payload"]["title"] == "Learn Spanish"
    assert coach_store.proposals == {}


def test_chat_create_then_execute_once():
    reply = chat("create a goal called Learn Spanish in 30 days")
    assert reply["conversation"]["title"] == "create a goal called Learn Spanish in 30 days"
    [proposal] = reply["proposedActions"]
    assert proposal["status"] == "pending"
    assert "Create goal: Learn Spanish" in reply["assistantMessage"]["content"]

    url = f"/coach/chat/actions/{proposal['id']}/execute"
    first = client.post(url, json={}, headers=HEADERS)
    assert first.status_code == 200
    assert first.json()["resultType"] == "goal_created"
    second = client.post(url, json={}, headers=HEADERS)
    assert second.status_code == 409
    assert second.json()["kind"] == "CONFLICT"

    goals = client.get("/goals", headers=HEADERS).json()
    assert [goal["title"] for goal in goals] == ["Learn Spanish"]


def test_chat_delete_clarify_confirm_and_undo():
    spanish = create_goal("Learn Spanish")
    create_goal("Read more books")

    first = chat("delete goal")
    assert first["proposedActions"] == []
    assert DELETE_MARKER in first["assistantMessage"]["content"]

    conversation_id = first["conversation"]["id"]
    second = chat('"Learn Spanish"', conversation_id)
    [proposal] = second["proposedActions"]
    assert proposal["type"] == "delete_goal"
    assert proposal["riskLevel"] == "high"

    url = f"/coach/chat/actions/{proposal['id']}"
    refused = client.post(f"{url}/execute", json={}, headers=HEADERS)
    assert refused.status_code == 400
    assert refused.json() == {"error": "Please type DELETE to confirm.", "kind": "BAD_REQUEST"}

    deleted = client.post(f"{url}/execute", json={"confirmText": "DELETE"}, headers=HEADERS)
    assert deleted.status_code == 200
    assert deleted.json()["resultType"] == "goal_deleted"
    assert deleted.json()["undoExpiresAt"]
    assert client.get(f"/goals/{spanish['id']}", headers=HEADERS).json()["status"] == "ARCHIVED"

    undone = client.post(f"{url}/undo", headers=HEADERS)
    assert undone.status_code == 200
    assert undone.json()["goal"]["status"] == "ACTIVE"
    assert client.post(f"{url}/undo", headers=HEADERS).status_code == 409

    messages = client.get(f"/coach/conversations/{conversation_id}/messages", headers=HEADERS).json()
    assert [message["role"] for message in messages] == ["user", "assistant", "user", "assistant"]
    assert messages[3]["proposedActions"][0]["status"] == "cancelled"


def test_chat_without_intent_uses_rules_reply():
    create_goal("Learn Spanish")
    reply = chat("How should I plan my week?")
    assert reply["proposedActions"] == []
    assert reply["assistantMessage"]["content"].startswith("Focus this week on:")

    conversations = client.get("/coach/conversations", headers=HEADERS).json()
    assert [item["id"] for item in conversations] == [reply["conversation"]["id"]]


def test_chat_rejects_unknown_conversation():
    res = client.post("/coach/chat", json={"message": "hello", "conversationId": "nope"}, headers=HEADERS)
    assert res.status_code == 404
    assert res.json()["kind"] == "NOT_FOUND"


def test_complete_action_and_completion_rate():
    goal = create_goal("Learn Spanish")
    insight = client.post("/coach/insight/generate", headers=HEADERS).json()
    res = client.post(f"/coach/actions/{goal['id']}/complete", json={"insightId": insight["id"]}, headers=HEADERS)
    assert res.status_code == 204

    rate = client.get("/coach/completion-rate", headers=HEADERS).json()
    assert rate == {"windowDays": 7, "suggestedActions": 3, "completedActions": 1, "rate": 33}
    assert client.get("/coach/completion-rate?windowDays=31", headers=HEADERS).status_code == 422
