import pytest
from fastapi.testclient import TestClient

from support_flow.main import app

ENV_VARS = ("OPENAI_API_KEY", "FLOW_API_KEY", "HELPDESK_URL", "USE_LLM_PHRASING")


@pytest.fixture
def client(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def secured_client(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("FLOW_API_KEY", "secret")
    with TestClient(app) as test_client:
        yield test_client


def test_health_and_categories(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "x-request-id" in response.headers

    categories = client.get("/categories").json()
    assert len(categories) == 9
    assert categories[0]["category"] == "ORDER_STATUS"


def test_guided_conversation_over_http(client):
    start = client.post("/chat/start", json={"mode": "SYSTEM_INITIATED", "category": "ACCOUNT_ACCESS"})
    assert start.status_code == 200
    body = start.json()
    assert body["question"]["id"] == "account_1"
    session_id = body["session_id"]

    client.post("/chat/message", json={"session_id": session_id, "message": "Forgot password"})
    final = client.post("/chat/message", json={"session_id": session_id, "message": "no"}).json()
    assert final["state"] == "RESOLVED"
    assert final["resolution"]["kind"] == "SELF_SERVICE"

    progress = client.get(f"/chat/session/{session_id}/progress").json()
    assert progress["percentage"] == 100

    closed = client.post("/chat/message", json={"session_id": session_id, "message": "hi"})
    assert closed.status_code == 409

    snapshot = client.get(f"/chat/session/{session_id}").json()
    assert snapshot["resolved"] is True
    assert snapshot["answers"] == {"account_1": "Forgot password", "account_2": "no"}


def test_free_text_falls_back_to_keywords(client):
    body = client.post(
        "/chat/start",
        json={"mode": "USER_INITIATED", "initial_message": "I forgot my password and my account is locked"},
    ).json()
    assert body["category"] == "ACCOUNT_ACCESS"
    assert body["state"] == "AWAITING_ANSWER"


def test_unknown_session_is_404(client):
    response = client.post("/chat/message", json={"session_id": "missing", "message": "hi"})
    assert response.status_code == 404
    assert client.get("/chat/session/missing").status_code == 404
    assert client.get("/chat/session/missing/progress").status_code == 404


def test_unknown_category_is_400(client):
    response = client.post("/chat/start", json={"mode": "SYSTEM_INITIATED", "category": "GARDENING"})
    assert response.status_code == 400


def test_delete_session(client):
    session_id = client.post("/chat/start", json={"mode": "SYSTEM_INITIATED"}).json()["session_id"]
    assert client.delete(f"/chat/session/{session_id}").json() == {"deleted": True}
    assert client.delete(f"/chat/session/{session_id}").json() == {"deleted": False}


def test_api_key_required_when_configured(secured_client):
    assert secured_client.post("/chat/start", json={}).status_code == 401
    response = secured_client.post("/chat/start", json={}, headers={"x-api-key": "secret"})
    assert response.status_code == 200
    assert secured_client.get("/health").status_code == 200


class RecordingHelpdesk:
    def __init__(self):
        self.submitted = []

    def submit(self, session, resolution):
        self.submitted.append(resolution.escalation.ticket_number)
        return True


def test_escalation_hands_off_as_background_task(client):
    helpdesk = RecordingHelpdesk()
    client.app.state.engine.helpdesk = helpdesk
    start = client.post("/chat/start", json={"mode": "SYSTEM_INITIATED", "category": "DELIVERY_PROBLEM"}).json()
    session_id = start["session_id"]
    client.post("/chat/message", json={"session_id": session_id, "message": "Package is delayed"})
    final = client.post("/chat/message", json={"session_id": session_id, "message": "More than 5 days"}).json()
    assert final["resolution"]["kind"] == "ESCALATE_AGENT"
    assert helpdesk.submitted == [final["resolution"]["escalation"]["ticket_number"]]
