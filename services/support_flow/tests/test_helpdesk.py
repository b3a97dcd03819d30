import requests

from support_flow.helpdesk import HelpdeskClient, ticket_description
from support_flow.models import (
    ConversationMode,
    ConversationSession,
    EscalationDetails,
    IssueCategory,
    Message,
    Resolution,
    ResolutionKind,
)


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")


class FakePost:
    def __init__(self, statuses):
        self.statuses = list(statuses)
        self.calls = []

    def __call__(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        status = self.statuses.pop(0)
        if status is None:
            raise requests.ConnectionError("refused")
        return FakeResponse(status)


def _session():
    return ConversationSession(
        session_id="abc",
        mode=ConversationMode.SYSTEM_INITIATED,
        category=IssueCategory.DELIVERY_PROBLEM,
        answers={"delivery_1": "Package is lost/missing", "delivery_5": "2025-01-02"},
        history=[
            Message(role="user", content="my parcel never came"),
            Message(role="system", content="internal note"),
            Message(role="assistant", content="Sorry to hear that"),
        ],
    )


def _resolution():
    return Resolution(
        kind=ResolutionKind.ESCALATE_SPECIALIST,
        message="I've created a support ticket for you. Our team will help resolve this issue.",
        escalation=EscalationDetails(
            team="Specialist Team",
            priority="high",
            estimated_response_time="3-5 business days",
            ticket_number="TKT-20250101-0000BEEF",
            reason="Lost package requires carrier claim and replacement processing",
        ),
        path_id="delivery_lost",
        category=IssueCategory.DELIVERY_PROBLEM,
    )


def test_ticket_description_sections():
    text = ticket_description(_session(), _resolution())
    assert "### Issue Summary" in text
    assert "- Category: Delivery Problem" in text
    assert "- delivery_1: Package is lost/missing" in text
    assert "- Customer: my parcel never came" in text
    assert "internal note" not in text
    assert "- Session ID: abc" in text


def test_submit_without_url_only_logs():
    post = FakePost([])
    client = HelpdeskClient(url="", post=post)
    assert client.submit(_session(), _resolution()) is False
    assert post.calls == []


def test_submit_retries_then_succeeds():
    post = FakePost([None, 503, 201])
    sleeps = []
    client = HelpdeskClient(url="http://helpdesk/tickets", api_key="k", post=post, sleep=sleeps.append)
    assert client.submit(_session(), _resolution()) is True
    assert len(post.calls) == 3
    assert sleeps == [1.0, 1.0]
    call = post.calls[-1]
    assert call["headers"]["x-api-key"] == "k"
    assert call["json"]["ticket_number"] == "TKT-20250101-0000BEEF"
    assert call["json"]["priority"] == "high"


def test_submit_gives_up_quietly():
    post = FakePost([500, 500, 500])
    client = HelpdeskClient(url="http://helpdesk/tickets", post=post, sleep=lambda _: None)
    assert client.submit(_session(), _resolution()) is False
    assert len(post.calls) == 3


def test_non_escalations_are_not_forwarded():
    post = FakePost([])
    client = HelpdeskClient(url="http://helpdesk/tickets", post=post)
    resolution = Resolution(kind=ResolutionKind.SELF_SERVICE, message="steps", steps=("one",))
    assert client.submit(_session(), resolution) is False
    assert post.calls == []
