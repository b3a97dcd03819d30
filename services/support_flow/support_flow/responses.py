from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .catalog import MAIN_MENU, MenuGroup, category_info, display_name
from .errors import AdapterUnavailable
from .models import ConversationMode, EscalationDetails, IssueCategory, Question, QuestionType, Resolution, ResolutionKind, Tone
from .openai_client import OpenAIClient
from .prompts import build_phrasing_system_prompt, build_phrasing_user_prompt, fill_template

logger = logging.getLogger("support_flow.responses")

GREETINGS: dict[ConversationMode, str] = {
    ConversationMode.SYSTEM_INITIATED: (
        "Hello! I'm your ShopEase support assistant. "
        "I'm here to help resolve any issues you might have. What brings you here today?"
    ),
    ConversationMode.USER_INITIATED: (
        "Hello! I understand you're experiencing an issue. "
        "I'm here to help. Could you tell me more about what's happening?"
    ),
}

CLASSIFICATION_CONFIRMATION = "It sounds like you're having an issue with {category}. Is that correct?"
CONFIRMATION_REMINDER = "Please answer yes or no"
CLARIFICATION_REQUEST = (
    "I want to make sure I understand your issue correctly. "
    "Could you provide a bit more detail about what's happening?"
)
CLARIFICATION_EXHAUSTED = "I wasn't able to match your issue to one of our categories, so I'll collect the details for our support team."
VALIDATION_ERROR = "I noticed an issue with your response: {error}. Could you please try again?"
FIRST_QUESTION_INTRO = "Let me ask you a few questions to help resolve this."
NEXT_QUESTION_INTRO = "Next question:"
MENU_FOOTER = "Please select the number that best matches your issue, or describe your problem in your own words."
SUBMENU_INTRO = "Which of these best describes your issue?"

RESOLUTION_INTRO: dict[ResolutionKind, str] = {
    ResolutionKind.SELF_SERVICE: "Good news! You can resolve this yourself. Here's what you need to do:",
    ResolutionKind.AUTOMATED_ACTION: "I can help you with that right away. Here's what will happen:",
    ResolutionKind.INFORMATION_PROVIDED: "Here's the information you need:",
    ResolutionKind.ESCALATE_AGENT: "I'll need to connect you with one of our support agents who can help you better.",
    ResolutionKind.ESCALATE_SPECIALIST: "This requires our specialist team. I'm creating a priority ticket for you.",
}

ESCALATION_MESSAGE = (
    "I've created ticket #{ticket_number} for you. Our {team} team will contact you within "
    "{estimated_time}. You'll receive an email confirmation shortly."
)

CLOSING = {
    "resolved": "Is there anything else I can help you with today?",
    "escalated": "Our team will take it from here. Is there anything else I can assist you with in the meantime?",
    "goodbye": "Thank you for contacting ShopEase support. Have a great day!",
}

_TYPE_HINTS: dict[QuestionType, str] = {
    QuestionType.SINGLE_CHOICE: "Please select one of the following options:",
    QuestionType.MULTIPLE_CHOICE: "You can select multiple options (separate with commas):",
    QuestionType.YES_NO: "Please answer: Yes or No",
    QuestionType.DATE: "Please provide a date (e.g., 2025-12-25)",
    QuestionType.ORDER_ID: "Format: ORD-XXXXX (e.g., ORD-12345)",
}


def format_question(question: Question) -> str:
    formatted = question.text
    hint = _TYPE_HINTS.get(question.type)
    if hint:
        formatted += f"\n\n{hint}"
    if question.type in (QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE):
        for index, option in enumerate(question.options, start=1):
            formatted += f"\n{index}. {option}"
    return formatted


def format_resolution(resolution: Resolution) -> str:
    lines = [resolution.message, ""]
    if resolution.steps:
        lines.extend(f"{index}. {step}" for index, step in enumerate(resolution.steps, start=1))
        lines.append("")
    details = resolution.escalation
    if details is not None:
        lines.append(f"Ticket Number: {details.ticket_number}")
        lines.append(f"Team: {details.team}")
        lines.append(f"Priority: {details.priority.upper()}")
        lines.append(f"Estimated Response Time: {details.estimated_response_time}")
    elif resolution.reference_number:
        lines.append(f"Reference Number: {resolution.reference_number}")
    return "\n".join(lines).strip()


def format_menu(groups: tuple[MenuGroup, ...] = MAIN_MENU) -> str:
    lines = ["I can help you with:", ""]
    lines.extend(f"{index}. {group.label} - {group.description}" for index, group in enumerate(groups, start=1))
    lines.extend(["", MENU_FOOTER])
    return "\n".join(lines)


def format_submenu(group: MenuGroup) -> str:
    lines = [SUBMENU_INTRO, ""]
    for index, category in enumerate(group.categories, start=1):
        info = category_info(category)
        lines.append(f"{index}. {info.display_name} - {info.description}")
    return "\n".join(lines)


class ResponsePhraser:
    """Renders assistant text from fixed templates, optionally reworded by the LLM.

    The wording never feeds back into control flow. When phrasing is disabled
    or the provider fails, templates are filled literally.
    """

    def __init__(self, client: OpenAIClient | None = None, enabled: bool = False):
        self.client = client
        self.enabled = enabled

    def phrase(self, template: str, context: Mapping[str, Any] | None = None, tone: Tone = "professional") -> str:
        context = context or {}
        if not self.enabled or self.client is None or not self.client.available:
            return fill_template(template, context)
        try:
            parsed = self.client.chat_json(
                build_phrasing_system_prompt(tone),
                build_phrasing_user_prompt(template, context),
                temperature=0.3,
            )
        except AdapterUnavailable as exc:
            logger.warning("LLM phrasing failed, using template: %s", exc)
            return fill_template(template, context)
        answer = str(parsed.get("answer", "")).strip()
        return answer or fill_template(template, context)

    def greeting(self, mode: ConversationMode) -> str:
        return self.phrase(GREETINGS[mode], {"mode": mode.value}, "friendly")

    def menu(self) -> str:
        return format_menu()

    def submenu(self, group: MenuGroup) -> str:
        return format_submenu(group)

    def confirmation(self, category: IssueCategory) -> str:
        info = category_info(category)
        context = {"category": info.display_name, "description": info.description}
        return self.phrase(CLASSIFICATION_CONFIRMATION, context, "friendly")

    def clarification_request(self) -> str:
        return self.phrase(CLARIFICATION_REQUEST, {}, "friendly")

    def clarification_exhausted(self) -> str:
        return self.phrase(CLARIFICATION_EXHAUSTED, {}, "apologetic")

    def question(self, question: Question, first: bool = False) -> str:
        intro = FIRST_QUESTION_INTRO if first else NEXT_QUESTION_INTRO
        # Option lists and format hints are shown verbatim so numbered replies stay valid.
        lead = self.phrase(intro, {"question_type": question.type.value}, "professional")
        return f"{lead}\n\n{format_question(question)}"

    def validation_error(self, error: str) -> str:
        return self.phrase(VALIDATION_ERROR, {"error": error}, "friendly")

    def escalation(self, details: EscalationDetails) -> str:
        context = {
            "ticket_number": details.ticket_number,
            "team": details.team,
            "estimated_time": details.estimated_response_time,
        }
        return self.phrase(ESCALATION_MESSAGE, context, "apologetic")

    def closing(self, resolution: Resolution | None) -> str:
        if resolution is None:
            key = "goodbye"
        elif resolution.is_escalation:
            key = "escalated"
        else:
            key = "resolved"
        return self.phrase(CLOSING[key], {}, "friendly")

    def resolution(self, resolution: Resolution) -> str:
        tone: Tone = "apologetic" if resolution.is_escalation else "professional"
        context = {
            "category": display_name(resolution.category) if resolution.category else None,
            "resolution_type": resolution.kind.value,
        }
        parts = [self.phrase(RESOLUTION_INTRO[resolution.kind], context, tone), format_resolution(resolution)]
        if resolution.escalation is not None:
            parts.append(self.escalation(resolution.escalation))
        parts.append(self.closing(resolution))
        return "\n\n".join(parts)
