from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import requests

from .catalog import display_name
from .models import ConversationSession, Resolution

logger = logging.getLogger("support_flow.helpdesk")


def ticket_description(session: ConversationSession, resolution: Resolution) -> str:
    # Markdown sections keep the ticket scannable in the helpdesk UI.
    details = resolution.escalation
    category = resolution.category or session.category
    lines = [
        "### Issue Summary",
        f"- Category: {display_name(category) if category else 'Not classified'}",
        f"- Resolution path: {resolution.path_id or 'n/a'}",
        f"- Reason: {(details.reason if details else None) or 'Not provided'}",
        "",
        "### Collected Answers",
    ]
    if session.answers:
        lines.extend(f"- {question_id}: {answer}" for question_id, answer in session.answers.items())
    else:
        lines.append("- None")

    lines.append("")
    lines.append("### Conversation Transcript")
    for item in session.history[-12:]:
        if item.role == "system":
            continue
        role = "Customer" if item.role == "user" else "Assistant"
        lines.append(f"- {role}: {item.content.strip()}")

    confidence = f"{session.confidence:.2f}" if session.confidence is not None else "n/a"
    lines.extend(
        [
            "",
            "### System Metadata",
            f"- Session ID: {session.session_id}",
            f"- Mode: {session.mode.value}",
            f"- Classification confidence: {confidence}",
            f"- Created at: {session.created_at.isoformat()}",
        ]
    )
    return "\n".join(lines)


class HelpdeskClient:
    """Forwards escalation tickets to an external helpdesk webhook.

    The ticket number minted by the engine stays authoritative: a failed
    hand-off is logged and never reaches the customer.
    """

    def __init__(
        self,
        url: str = "",
        api_key: str = "",
        timeout: float = 30,
        attempts: int = 3,
        retry_delay: float = 1.0,
        post: Callable[..., Any] = requests.post,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.attempts = attempts
        self.retry_delay = retry_delay
        self._post = post
        self._sleep = sleep

    def build_payload(self, session: ConversationSession, resolution: Resolution) -> dict[str, Any]:
        details = resolution.escalation
        if details is None:
            raise ValueError("Only escalations can be forwarded to the helpdesk")
        category = resolution.category or session.category
        return {
            "ticket_number": details.ticket_number,
            "subject": f"[{details.ticket_number}] {display_name(category) if category else 'Support request'}",
            "team": details.team,
            "priority": details.priority,
            "estimated_response_time": details.estimated_response_time,
            "description": ticket_description(session, resolution),
            "session_id": session.session_id,
        }

    def submit(self, session: ConversationSession, resolution: Resolution) -> bool:
        if resolution.escalation is None:
            return False
        payload = self.build_payload(session, resolution)
        if not self.url:
            logger.info(
                "Helpdesk not configured, ticket=%s kept locally session_id=%s",
                payload["ticket_number"],
                session.session_id,
            )
            return False

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key

        # Retry briefly to smooth transient network errors.
        for attempt in range(self.attempts):
            try:
                response = self._post(self.url, headers=headers, json=payload, timeout=self.timeout)
                response.raise_for_status()
                logger.info("Helpdesk accepted ticket=%s", payload["ticket_number"])
                return True
            except requests.RequestException as exc:
                if attempt < self.attempts - 1:
                    self._sleep(self.retry_delay)
                    continue
                logger.warning("Helpdesk hand-off failed after retries ticket=%s: %s", payload["ticket_number"], exc)
        return False
