from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .catalog import MAIN_MENU, display_name, menu_group, parse_category
from .classification import Classifier, KeywordClassifier, rejection_note
from .config import Settings
from .errors import ConversationClosed, SessionNotFound, UnknownCategory, UnknownQuestion
from .helpdesk import HelpdeskClient
from .models import (
    ConversationMode,
    ConversationSession,
    ConversationState,
    IssueCategory,
    Progress,
    Question,
    QuestionView,
    ResolutionPath,
    TurnResult,
)
from .questions import QuestionTreeRegistry
from .resolution import resolve
from .resolution_paths import RESOLUTION_PATHS, validate_paths
from .responses import CONFIRMATION_REMINDER, ResponsePhraser, format_question
from .sessions import SessionStore
from .validation import ANSWER_REQUIRED, normalize, parse_yes_no, validate

logger = logging.getLogger("support_flow.engine")

# Schedules a call without waiting for it, e.g. BackgroundTasks.add_task.
Dispatch = Callable[..., Any]


def run_in_background(func: Callable[..., Any], *args: Any) -> None:
    threading.Thread(target=func, args=args, name="helpdesk-handoff", daemon=True).start()


def _pick(text: str, labels: Sequence[str]) -> int | None:
    """Index of a 1-based numeric choice or a case-insensitive label match."""
    cleaned = text.strip()
    if cleaned.isdigit():
        index = int(cleaned) - 1
        return index if 0 <= index < len(labels) else None
    lowered = cleaned.lower()
    for index, label in enumerate(labels):
        if label.lower() == lowered:
            return index
    return None


class ConversationEngine:
    def __init__(
        self,
        store: SessionStore,
        registry: QuestionTreeRegistry | None = None,
        classifier: Classifier | None = None,
        phraser: ResponsePhraser | None = None,
        helpdesk: HelpdeskClient | None = None,
        settings: Settings | None = None,
        paths: Mapping[IssueCategory, tuple[ResolutionPath, ...]] | None = None,
        dispatch: Dispatch = run_in_background,
    ):
        self.store = store
        self.registry = registry or QuestionTreeRegistry()
        self.paths = dict(paths if paths is not None else RESOLUTION_PATHS)
        validate_paths(self.paths, {category: self.registry.tree(category) for category in IssueCategory})
        self.classifier = classifier or KeywordClassifier()
        self.phraser = phraser or ResponsePhraser()
        self.helpdesk = helpdesk or HelpdeskClient()
        self.settings = settings or Settings()
        self.dispatch = dispatch

    # Public operations

    def start(
        self,
        mode: ConversationMode,
        category: IssueCategory | str | None = None,
        initial_message: str | None = None,
    ) -> TurnResult:
        selected = self._coerce_category(category)
        text = self._clip(initial_message.strip()) if initial_message else ""
        session = self.store.create(mode, text or None)
        logger.info("Started session_id=%s mode=%s", session.session_id, mode.value)

        greeting = self.phraser.greeting(mode)
        if selected is not None:
            return self._enter_tree(session, selected, confidence=1.0, lead=greeting)
        if text:
            return self._select_category(session, text)
        if mode == ConversationMode.SYSTEM_INITIATED:
            return self._reply(session, f"{greeting}\n\n{self.phraser.menu()}")
        return self._reply(session, greeting)

    def handle_message(self, session_id: str, text: str, defer: Dispatch | None = None) -> TurnResult:
        """Runs one turn. Escalation hand-offs go through ``defer`` (or the
        engine's dispatcher) and never hold up the reply."""
        session = self._session(session_id)
        if session.resolved or session.state == ConversationState.RESOLVED:
            raise ConversationClosed(session_id)

        text = text or ""
        if text.strip():
            session = self._require(
                self.store.append_message(session_id, "user", self._clip(text.strip())), session_id
            )

        if session.state == ConversationState.AWAITING_ANSWER:
            return self._answer(session, text, defer or self.dispatch)
        if session.state == ConversationState.AWAITING_CONFIRMATION:
            return self._confirm(session, text)
        return self._select_category(session, text)

    def progress(self, session_id: str) -> Progress:
        return self._progress(self._session(session_id))

    def session(self, session_id: str) -> ConversationSession:
        return self._session(session_id)

    def end(self, session_id: str) -> bool:
        return self.store.delete(session_id)

    # Category selection

    def _select_category(self, session: ConversationSession, text: str) -> TurnResult:
        cleaned = text.strip()
        if not cleaned:
            prompt = self.phraser.menu() if session.mode == ConversationMode.SYSTEM_INITIATED else self.phraser.clarification_request()
            return self._reply(session, prompt, error=ANSWER_REQUIRED)

        if session.mode == ConversationMode.SYSTEM_INITIATED:
            group = menu_group(session.menu_group) if session.menu_group else None
            if group is not None:
                index = _pick(cleaned, [display_name(category) for category in group.categories])
                if index is not None:
                    return self._enter_tree(session, group.categories[index], confidence=1.0)
            else:
                index = _pick(cleaned, [item.label for item in MAIN_MENU])
                if index is not None:
                    chosen = MAIN_MENU[index]
                    if len(chosen.categories) == 1:
                        return self._enter_tree(session, chosen.categories[0], confidence=1.0)
                    session = self._update(session, menu_group=chosen.id)
                    return self._reply(session, self.phraser.submenu(chosen))

            category = parse_category(cleaned)
            if category is not None:
                return self._enter_tree(session, category, confidence=1.0)

        # Anything else is treated as a free-text description of the issue.
        return self._classify(session, cleaned)

    def _classify(self, session: ConversationSession, text: str) -> TurnResult:
        result = self.classifier.classify(text, session.history, tuple(session.rejected_categories))
        logger.info(
            "Classified session_id=%s category=%s confidence=%.2f source=%s",
            session.session_id,
            result.category.value,
            result.confidence,
            result.source,
        )
        if result.confidence >= self.settings.conf_high:
            return self._enter_tree(session, result.category, confidence=result.confidence)
        if result.confidence >= self.settings.conf_medium:
            session = self._update(
                session,
                category=result.category,
                confidence=result.confidence,
                state=ConversationState.AWAITING_CONFIRMATION,
                menu_group=None,
            )
            return self._reply(session, self.phraser.confirmation(result.category))
        if result.category != IssueCategory.OTHER and result.category not in session.rejected_categories:
            session = self._reject(session, result.category)
        return self._clarify(session)

    def _clarify(self, session: ConversationSession) -> TurnResult:
        if session.clarification_attempts >= self.settings.max_clarifications:
            logger.info("Clarification limit reached session_id=%s, routing to OTHER", session.session_id)
            return self._enter_tree(
                session,
                IssueCategory.OTHER,
                confidence=None,
                lead=self.phraser.clarification_exhausted(),
            )
        session = self._update(
            session,
            state=ConversationState.AWAITING_CATEGORY,
            category=None,
            confidence=None,
            menu_group=None,
            clarification_attempts=session.clarification_attempts + 1,
        )
        return self._reply(session, self.phraser.clarification_request())

    def _confirm(self, session: ConversationSession, text: str) -> TurnResult:
        category = session.category
        if category is None:
            session = self._update(session, state=ConversationState.AWAITING_CATEGORY)
            return self._select_category(session, text)

        decision = parse_yes_no(text)
        if decision == "yes":
            return self._enter_tree(session, category, confidence=session.confidence)
        if decision == "no":
            logger.info("Category rejected session_id=%s category=%s", session.session_id, category.value)
            return self._clarify(self._reject(session, category))

        message = f"{self.phraser.validation_error(CONFIRMATION_REMINDER)}\n\n{self.phraser.confirmation(category)}"
        return self._reply(session, message, error=CONFIRMATION_REMINDER)

    def _reject(self, session: ConversationSession, category: IssueCategory) -> ConversationSession:
        # Later classification calls exclude this category and see the note in history.
        self._require(
            self.store.append_message(session.session_id, "system", rejection_note(category)),
            session.session_id,
        )
        return self._update(
            session,
            rejected_categories=[*session.rejected_categories, category],
            category=None,
            confidence=None,
        )

    # Tree navigation

    def _enter_tree(
        self,
        session: ConversationSession,
        category: IssueCategory,
        confidence: float | None,
        lead: str | None = None,
    ) -> TurnResult:
        question = self.registry.first_question(category)
        session = self._update(
            session,
            category=category,
            confidence=confidence,
            state=ConversationState.AWAITING_ANSWER,
            current_question_id=question.id,
            answers={},
            menu_group=None,
        )
        logger.info("Entered tree session_id=%s category=%s", session.session_id, category.value)
        text = self.phraser.question(question, first=True)
        if lead:
            text = f"{lead}\n\n{text}"
        return self._reply(session, text, question=question)

    def _answer(self, session: ConversationSession, text: str, defer: Dispatch) -> TurnResult:
        category = session.category
        question = (
            self.registry.question(category, session.current_question_id)
            if category is not None and session.current_question_id
            else None
        )
        if question is None:
            raise UnknownQuestion(f"Session {session.session_id} has no pending question")

        result = validate(question, text, self.settings.max_answer_chars)
        if not result.valid:
            message = f"{self.phraser.validation_error(result.error or ANSWER_REQUIRED)}\n\n{format_question(question)}"
            return self._reply(session, message, question=question, error=result.error)

        answer = normalize(question, text)
        session = self._require(
            self.store.record_answer(session.session_id, question.id, answer), session.session_id
        )
        next_id = self.registry.next_question_id(category, question.id, answer)
        next_question = self.registry.question(category, next_id) if next_id else None
        if next_question is None:
            return self._resolve(session, defer)

        session = self._update(session, current_question_id=next_question.id)
        return self._reply(session, self.phraser.question(next_question), question=next_question)

    def _resolve(self, session: ConversationSession, defer: Dispatch) -> TurnResult:
        category = session.category or IssueCategory.OTHER
        resolution = resolve(category, session.answers, self.paths)

        sid = session.session_id
        self._require(self.store.resolve(sid, resolution), sid)
        session = self._update(session, state=ConversationState.RESOLVED, current_question_id=None)
        logger.info("Resolved session_id=%s path=%s kind=%s", sid, resolution.path_id, resolution.kind.value)
        reply = self._reply(session, self.phraser.resolution(resolution))
        if resolution.is_escalation:
            defer(self.helpdesk.submit, session, resolution)
        return reply

    # Helpers

    def _reply(
        self,
        session: ConversationSession,
        message: str,
        question: Question | None = None,
        error: str | None = None,
    ) -> TurnResult:
        metadata: dict[str, Any] = {"state": session.state.value}
        if question is not None:
            metadata["question_id"] = question.id
        if error:
            metadata["error"] = error
        session = self._require(
            self.store.append_message(session.session_id, "assistant", message, metadata), session.session_id
        )
        return TurnResult(
            session_id=session.session_id,
            state=session.state,
            message=message,
            question=QuestionView.from_question(question) if question is not None else None,
            resolution=session.resolution,
            error=error,
            category=session.category,
            confidence=session.confidence,
            progress=self._progress(session) if session.category is not None else None,
        )

    def _progress(self, session: ConversationSession) -> Progress:
        if session.category is None:
            return Progress(answered=0, total=0, percentage=0)
        questions = self.registry.tree(session.category).questions
        answered = sum(1 for question_id in session.answers if question_id in questions)
        total = self.registry.max_depth(session.category)
        if session.resolved:
            percentage = 100
        else:
            percentage = min(100, round(answered * 100 / total)) if total else 0
        return Progress(answered=answered, total=total, percentage=percentage)

    def _update(self, session: ConversationSession, **fields: Any) -> ConversationSession:
        return self._require(self.store.update(session.session_id, **fields), session.session_id)

    def _session(self, session_id: str) -> ConversationSession:
        return self._require(self.store.get(session_id), session_id)

    @staticmethod
    def _require(session: ConversationSession | None, session_id: str) -> ConversationSession:
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def _clip(self, text: str) -> str:
        limit = self.settings.max_answer_chars
        if len(text) > limit:
            logger.warning("Message truncated from %s to %s chars", len(text), limit)
            return text[:limit]
        return text

    @staticmethod
    def _coerce_category(category: IssueCategory | str | None) -> IssueCategory | None:
        if category is None or isinstance(category, IssueCategory):
            return category
        parsed = parse_category(category)
        if parsed is None:
            raise UnknownCategory(f"Unknown category: {category}")
        return parsed
