from __future__ import annotations

import re
from dataclasses import dataclass

from .models import Question, QuestionType, RuleKind, ValidationRule

ANSWER_REQUIRED = "Answer required"
DEFAULT_MAX_ANSWER_CHARS = 1000

_YES = frozenset({"yes", "y", "true"})
_NO = frozenset({"no", "n", "false"})


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: str | None = None


VALID = ValidationResult(valid=True)


def _rule_passes(rule: ValidationRule, answer: str) -> bool:
    if rule.kind == RuleKind.REQUIRED:
        return bool(answer.strip())
    if rule.kind == RuleKind.PATTERN:
        return re.search(str(rule.value), answer) is not None
    if rule.kind == RuleKind.MIN_LENGTH:
        return len(answer) >= int(rule.value or 0)
    if rule.kind == RuleKind.MAX_LENGTH:
        return len(answer) <= int(rule.value or 0)
    if rule.kind == RuleKind.CUSTOM:
        return rule.predicate is None or bool(rule.predicate(answer))
    raise ValueError(f"Unhandled validation rule kind: {rule.kind}")


def validate(question: Question, answer: str, max_chars: int = DEFAULT_MAX_ANSWER_CHARS) -> ValidationResult:
    if not answer or not answer.strip():
        return ValidationResult(valid=False, error=ANSWER_REQUIRED)
    if len(answer) > max_chars:
        return ValidationResult(valid=False, error=f"Answer is too long (maximum {max_chars} characters)")
    for rule in question.rules:
        if not _rule_passes(rule, answer):
            return ValidationResult(valid=False, error=rule.message)
    return VALID


def _choice(question: Question, value: str) -> str:
    if value.isdigit() and question.options:
        index = int(value) - 1
        if 0 <= index < len(question.options):
            return question.options[index]
        return value
    lowered = value.lower()
    for option in question.options:
        if option.lower() == lowered:
            return option
    return value


def parse_yes_no(value: str) -> str | None:
    lowered = value.strip().lower()
    if lowered in _YES:
        return "yes"
    if lowered in _NO:
        return "no"
    return None


def normalize(question: Question, answer: str) -> str:
    trimmed = answer.strip()
    if question.type == QuestionType.YES_NO:
        # Unrecognized replies pass through and end the branch at resolution.
        return parse_yes_no(trimmed) or trimmed
    if question.type == QuestionType.SINGLE_CHOICE:
        return _choice(question, trimmed)
    if question.type == QuestionType.MULTIPLE_CHOICE:
        parts = [part.strip() for part in trimmed.split(",") if part.strip()]
        return ", ".join(_choice(question, part) for part in parts)
    if question.type == QuestionType.ORDER_ID:
        return trimmed.upper()
    return trimmed
