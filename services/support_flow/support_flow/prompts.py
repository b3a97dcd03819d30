from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from .catalog import CATEGORIES
from .models import IssueCategory, Message, Tone

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

TONE_GUIDANCE: dict[str, str] = {
    "professional": "Use a professional, courteous tone.",
    "friendly": "Use a warm, friendly tone while staying concise.",
    "apologetic": "Acknowledge the inconvenience and apologise sincerely before giving the details.",
    "informative": "Be clear and factual. Lead with the information the customer needs.",
}


def fill_template(template: str, context: Mapping[str, Any]) -> str:
    """Replaces {key} tokens with context values; unknown tokens are left as written."""

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in context and context[key] is not None:
            return str(context[key])
        return match.group(0)

    return _PLACEHOLDER.sub(_sub, template)


def build_classification_system_prompt(excluded: Iterable[IssueCategory] = ()) -> str:
    skip = set(excluded)
    lines = []
    for info in CATEGORIES.values():
        if info.category in skip:
            continue
        examples = "; ".join(info.examples[:3])
        lines.append(f"- {info.category.value}: {info.description} (e.g. {examples})")
    categories_block = "\n".join(lines)
    prompt = (
        "You are the intake classifier for the ShopEase customer support assistant. "
        "Pick exactly ONE category for the customer's issue from this list:\n"
        f"{categories_block}\n\n"
        "Use ONLY the category names listed above. If nothing fits, use OTHER. "
        "Return a JSON object with keys: category, confidence (0-1), reasoning."
    )
    if skip:
        rejected = ", ".join(sorted(category.value for category in skip))
        prompt += f" The customer already rejected: {rejected}. Do not return those."
    return prompt


def build_classification_user_prompt(message: str, history: list[Message] | None = None) -> str:
    history_block = ""
    if history:
        lines = []
        for item in history[-10:]:
            content = item.content.strip()
            if content:
                lines.append(f"{item.role}: {content}")
        if lines:
            history_block = "Conversation History:\n" + "\n".join(lines) + "\n\n"
    return f"{history_block}Customer message:\n{message}\n\nRespond with JSON only."


def build_phrasing_system_prompt(tone: Tone) -> str:
    guidance = TONE_GUIDANCE.get(tone, TONE_GUIDANCE["professional"])
    return (
        "You rewrite customer support replies for the ShopEase support assistant. "
        f"TONE: {tone}. GUIDANCE: {guidance} "
        "Keep every fact, number, ticket and reference from the template. "
        "Do not add offers, channels or promises that are not in the template. "
        'Return a JSON object with key: answer.'
    )


def build_phrasing_user_prompt(template: str, context: Mapping[str, Any]) -> str:
    context_lines = [f"{key}: {value}" for key, value in context.items() if value is not None]
    context_block = "\n".join(context_lines) if context_lines else "(none)"
    return (
        "Template:\n"
        f"{template}\n\n"
        "CONTEXT:\n"
        f"{context_block}\n\n"
        "Respond with JSON only."
    )
