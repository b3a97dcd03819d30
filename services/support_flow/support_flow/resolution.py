from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from uuid import uuid4

from .errors import ConfigurationError, UnknownCategory
from .models import (
    ConditionOperator,
    EscalationDetails,
    IssueCategory,
    Priority,
    Resolution,
    ResolutionCondition,
    ResolutionKind,
    ResolutionPath,
    utcnow,
)
from .prompts import fill_template
from .resolution_paths import RESOLUTION_PATHS

logger = logging.getLogger("support_flow.resolution")

RESOLUTION_MESSAGES: dict[ResolutionKind, str] = {
    ResolutionKind.SELF_SERVICE: "You can resolve this issue yourself by following these steps:",
    ResolutionKind.AUTOMATED_ACTION: "I'll take care of this for you. Here's what will happen:",
    ResolutionKind.INFORMATION_PROVIDED: "Here's the information you need:",
    ResolutionKind.ESCALATE_AGENT: "I've created a support ticket for you. Our team will help resolve this issue.",
    ResolutionKind.ESCALATE_SPECIALIST: "I've created a support ticket for you. Our team will help resolve this issue.",
}

TEAM_BY_PRIORITY: dict[str, str] = {
    "urgent": "Priority Support Team",
    "high": "Specialist Team",
    "medium": "Customer Support Team",
    "low": "General Support Team",
}

# kind -> (priority, default response time)
_ESCALATION_DEFAULTS: dict[ResolutionKind, tuple[Priority, str]] = {
    ResolutionKind.ESCALATE_AGENT: ("medium", "24 hours"),
    ResolutionKind.ESCALATE_SPECIALIST: ("high", "48 hours"),
}


def _equals(answer: str, expected: str | tuple[str, ...]) -> bool:
    return answer == expected


def _contains(answer: str, expected: str | tuple[str, ...]) -> bool:
    return isinstance(expected, str) and expected in answer


def _one_of(answer: str, expected: str | tuple[str, ...]) -> bool:
    return isinstance(expected, tuple) and answer in expected


def _never(answer: str, expected: str | tuple[str, ...]) -> bool:
    # Numeric comparisons are reserved; nothing in the table can satisfy them yet.
    return False


_EVALUATORS: dict[ConditionOperator, Callable[[str, str | tuple[str, ...]], bool]] = {
    ConditionOperator.EQUALS: _equals,
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.ONE_OF: _one_of,
    ConditionOperator.GREATER_THAN: _never,
    ConditionOperator.LESS_THAN: _never,
}

_missing = set(ConditionOperator) - set(_EVALUATORS)
if _missing:
    raise ConfigurationError(f"No evaluator for operators {sorted(op.value for op in _missing)}")


def condition_holds(condition: ResolutionCondition, answers: Mapping[str, str]) -> bool:
    answer = answers.get(condition.question_id)
    if not answer:
        return False
    return _EVALUATORS[condition.operator](answer, condition.expected)


def path_matches(path: ResolutionPath, answers: Mapping[str, str]) -> bool:
    return all(condition_holds(condition, answers) for condition in path.conditions)


def find_resolution_path(
    category: IssueCategory,
    answers: Mapping[str, str],
    table: Mapping[IssueCategory, tuple[ResolutionPath, ...]] | None = None,
) -> ResolutionPath:
    paths = (table if table is not None else RESOLUTION_PATHS).get(category)
    if not paths:
        raise UnknownCategory(f"No resolution paths for {category}")
    for path in paths:
        if path_matches(path, answers):
            return path
    return paths[-1]


def new_ticket_number(now: datetime | None = None) -> str:
    stamp = (now or utcnow()).strftime("%Y%m%d")
    return f"TKT-{stamp}-{uuid4().hex[:8].upper()}"


def new_reference_number() -> str:
    return f"REF-{uuid4().hex[:8].upper()}"


def team_for_priority(priority: str) -> str:
    return TEAM_BY_PRIORITY.get(priority, TEAM_BY_PRIORITY["medium"])


def build_resolution(
    path: ResolutionPath,
    answers: Mapping[str, str],
    category: IssueCategory | None = None,
    ticket_factory: Callable[[], str] = new_ticket_number,
    reference_factory: Callable[[], str] = new_reference_number,
) -> Resolution:
    kind = path.kind
    steps = path.steps
    if kind == ResolutionKind.INFORMATION_PROVIDED:
        steps = tuple(fill_template(step, answers) for step in steps)

    escalation = None
    reference_number = None
    if kind in _ESCALATION_DEFAULTS:
        priority, default_time = _ESCALATION_DEFAULTS[kind]
        escalation = EscalationDetails(
            team=team_for_priority(priority),
            priority=priority,
            estimated_response_time=path.estimated_time or default_time,
            ticket_number=ticket_factory(),
            reason=path.escalation_reason,
        )
    elif kind == ResolutionKind.AUTOMATED_ACTION:
        reference_number = reference_factory()

    resolution = Resolution(
        kind=kind,
        message=RESOLUTION_MESSAGES[kind],
        steps=steps,
        escalation=escalation,
        reference_number=reference_number,
        path_id=path.id,
        category=category or path.category,
        estimated_time=path.estimated_time,
    )
    logger.info("Resolved via path=%s kind=%s", path.id, kind.value)
    return resolution


def resolve(
    category: IssueCategory,
    answers: Mapping[str, str],
    table: Mapping[IssueCategory, tuple[ResolutionPath, ...]] | None = None,
) -> Resolution:
    """Pick the first matching path for the answers and build its resolution."""
    path = find_resolution_path(category, answers, table)
    resolution = build_resolution(path, answers, category)
    if not validate_resolution(resolution):
        logger.warning("Incomplete resolution built from path=%s", path.id)
    return resolution


def validate_resolution(resolution: Resolution) -> bool:
    if not resolution.message:
        return False
    if resolution.kind in (ResolutionKind.SELF_SERVICE, ResolutionKind.AUTOMATED_ACTION):
        if not resolution.steps:
            return False
    if resolution.kind == ResolutionKind.AUTOMATED_ACTION and not resolution.reference_number:
        return False
    if resolution.is_escalation:
        details = resolution.escalation
        if details is None:
            return False
        return bool(details.team and details.ticket_number and details.estimated_response_time)
    return True
