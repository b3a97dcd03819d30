from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal, Protocol

from .catalog import CATEGORIES, display_name, parse_category
from .confidence import ConfidenceLevel, clamp, confidence_level, keyword_confidence
from .errors import AdapterUnavailable
from .models import IssueCategory, Message
from .openai_client import OpenAIClient, _safe_float
from .prompts import build_classification_system_prompt, build_classification_user_prompt

logger = logging.getLogger("support_flow.classification")


@dataclass(frozen=True)
class Classification:
    category: IssueCategory
    confidence: float
    reasoning: str = ""
    source: Literal["llm", "keyword"] = "keyword"

    @property
    def level(self) -> ConfidenceLevel:
        return confidence_level(self.confidence)


class Classifier(Protocol):
    def classify(
        self,
        message: str,
        history: list[Message] | None = None,
        excluded: Iterable[IssueCategory] = (),
    ) -> Classification: ...


def rejection_note(category: IssueCategory) -> str:
    return (
        f"Previous classification as {display_name(category)} was incorrect. "
        "User is clarifying their issue."
    )


class KeywordClassifier:
    """Counts catalog keyword hits; the category with most hits wins, first declared on ties."""

    def classify(
        self,
        message: str,
        history: list[Message] | None = None,
        excluded: Iterable[IssueCategory] = (),
    ) -> Classification:
        text = message.lower()
        skip = set(excluded)
        best: IssueCategory | None = None
        best_hits = 0
        for info in CATEGORIES.values():
            if info.category in skip:
                continue
            hits = sum(1 for keyword in info.keywords if keyword in text)
            if hits > best_hits:
                best, best_hits = info.category, hits

        if best is None:
            return Classification(
                category=IssueCategory.OTHER,
                confidence=keyword_confidence(0),
                reasoning="No category keywords matched",
                source="keyword",
            )
        return Classification(
            category=best,
            confidence=keyword_confidence(best_hits),
            reasoning=f"Matched {best_hits} keyword(s) for {display_name(best)}",
            source="keyword",
        )


class LLMClassifier:
    def __init__(self, client: OpenAIClient, fallback: Classifier | None = None):
        self.client = client
        self.fallback = fallback or KeywordClassifier()

    def classify(
        self,
        message: str,
        history: list[Message] | None = None,
        excluded: Iterable[IssueCategory] = (),
    ) -> Classification:
        skip = tuple(excluded)
        if not self.client.available:
            return self.fallback.classify(message, history, skip)

        system_prompt = build_classification_system_prompt(skip)
        user_prompt = build_classification_user_prompt(message, history)
        try:
            parsed = self.client.chat_json(system_prompt, user_prompt, temperature=0.1)
        except AdapterUnavailable as exc:
            logger.warning("LLM classification failed, using keyword fallback: %s", exc)
            return self.fallback.classify(message, history, skip)

        category = parse_category(str(parsed.get("category", "")))
        confidence = _safe_float(parsed.get("confidence"))
        if category is None or category in skip or confidence is None:
            logger.warning("LLM classification rejected: %s", parsed)
            return self.fallback.classify(message, history, skip)

        return Classification(
            category=category,
            confidence=clamp(confidence),
            reasoning=str(parsed.get("reasoning", "")).strip(),
            source="llm",
        )
