from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IssueCategory(str, Enum):
    ORDER_STATUS = "ORDER_STATUS"
    DELIVERY_PROBLEM = "DELIVERY_PROBLEM"
    PAYMENT_ISSUE = "PAYMENT_ISSUE"
    REFUND_REQUEST = "REFUND_REQUEST"
    PRODUCT_DEFECT = "PRODUCT_DEFECT"
    ACCOUNT_ACCESS = "ACCOUNT_ACCESS"
    BILLING_INQUIRY = "BILLING_INQUIRY"
    CANCELLATION = "CANCELLATION"
    OTHER = "OTHER"


class QuestionType(str, Enum):
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TEXT_INPUT = "TEXT_INPUT"
    YES_NO = "YES_NO"
    DATE = "DATE"
    ORDER_ID = "ORDER_ID"


class RuleKind(str, Enum):
    REQUIRED = "required"
    PATTERN = "pattern"
    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    CUSTOM = "custom"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    ONE_OF = "one_of"
    # Reserved for numeric comparisons; evaluated as failing.
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class ResolutionKind(str, Enum):
    SELF_SERVICE = "SELF_SERVICE"
    AUTOMATED_ACTION = "AUTOMATED_ACTION"
    INFORMATION_PROVIDED = "INFORMATION_PROVIDED"
    ESCALATE_AGENT = "ESCALATE_AGENT"
    ESCALATE_SPECIALIST = "ESCALATE_SPECIALIST"


ESCALATION_KINDS = frozenset({ResolutionKind.ESCALATE_AGENT, ResolutionKind.ESCALATE_SPECIALIST})


class ConversationMode(str, Enum):
    SYSTEM_INITIATED = "SYSTEM_INITIATED"
    USER_INITIATED = "USER_INITIATED"


class ConversationState(str, Enum):
    AWAITING_CATEGORY = "AWAITING_CATEGORY"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    AWAITING_ANSWER = "AWAITING_ANSWER"
    RESOLVED = "RESOLVED"


Priority = Literal["low", "medium", "high", "urgent"]
Tone = Literal["professional", "friendly", "apologetic", "informative"]


# Static configuration: frozen dataclasses, defined once at import.


@dataclass(frozen=True)
class ValidationRule:
    kind: RuleKind
    message: str
    value: str | int | None = None
    predicate: Callable[[str], bool] | None = None


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    type: QuestionType
    options: tuple[str, ...] = ()
    next_question_map: dict[str, str] = field(default_factory=dict)
    rules: tuple[ValidationRule, ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.next_question_map


@dataclass(frozen=True)
class QuestionTree:
    category: IssueCategory
    root_question_id: str
    questions: dict[str, Question]


@dataclass(frozen=True)
class ResolutionCondition:
    question_id: str
    expected: str | tuple[str, ...]
    operator: ConditionOperator = ConditionOperator.EQUALS


@dataclass(frozen=True)
class ResolutionPath:
    id: str
    category: IssueCategory
    kind: ResolutionKind
    conditions: tuple[ResolutionCondition, ...] = ()
    steps: tuple[str, ...] = ()
    escalation_reason: str | None = None
    estimated_time: str | None = None
    requires_data: tuple[str, ...] = ()


# Runtime state: pydantic models so they serialize straight into API responses.


class Message(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] | None = None


class EscalationDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    team: str
    priority: Priority
    estimated_response_time: str
    ticket_number: str
    reason: str | None = None


class Resolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ResolutionKind
    message: str
    steps: tuple[str, ...] = ()
    escalation: EscalationDetails | None = None
    reference_number: str | None = None
    path_id: str | None = None
    category: IssueCategory | None = None
    estimated_time: str | None = None

    @property
    def is_escalation(self) -> bool:
        return self.kind in ESCALATION_KINDS


class ConversationSession(BaseModel):
    session_id: str
    mode: ConversationMode
    state: ConversationState = ConversationState.AWAITING_CATEGORY
    category: IssueCategory | None = None
    confidence: float | None = None
    answers: dict[str, str] = Field(default_factory=dict)
    history: list[Message] = Field(default_factory=list)
    current_question_id: str | None = None
    rejected_categories: list[IssueCategory] = Field(default_factory=list)
    clarification_attempts: int = 0
    menu_group: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    resolved: bool = False
    resolution: Resolution | None = None


class QuestionView(BaseModel):
    id: str
    text: str
    type: QuestionType
    options: list[str] = Field(default_factory=list)

    @classmethod
    def from_question(cls, question: Question) -> "QuestionView":
        return cls(id=question.id, text=question.text, type=question.type, options=list(question.options))


class Progress(BaseModel):
    answered: int
    total: int
    percentage: int


class TurnResult(BaseModel):
    session_id: str
    state: ConversationState
    message: str
    question: QuestionView | None = None
    resolution: Resolution | None = None
    error: str | None = None
    category: IssueCategory | None = None
    confidence: float | None = None
    progress: Progress | None = None
