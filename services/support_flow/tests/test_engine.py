import threading
import time

import pytest

from support_flow.classification import Classification
from support_flow.config import Settings
from support_flow.engine import ConversationEngine
from support_flow.errors import ConversationClosed, SessionNotFound, UnknownCategory
from support_flow.models import ConversationMode, ConversationState, IssueCategory, ResolutionKind, ResolutionPath
from support_flow.resolution_paths import RESOLUTION_PATHS
from support_flow.sessions import InMemorySessionStore

GUIDED = ConversationMode.SYSTEM_INITIATED
FREE_TEXT = ConversationMode.USER_INITIATED


class FakeClassifier:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def classify(self, message, history=None, excluded=()):
        self.calls.append({"message": message, "excluded": tuple(excluded), "history": list(history or [])})
        category, confidence = self.results.pop(0)
        return Classification(category=category, confidence=confidence, reasoning="fake", source="llm")


class RecordingHelpdesk:
    def __init__(self):
        self.submitted = []

    def submit(self, session, resolution):
        self.submitted.append((session.session_id, resolution.escalation.ticket_number))
        return True


class StalledHelpdesk:
    """Blocks inside submit until released, like a webhook that never answers."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.finished = threading.Event()

    def submit(self, session, resolution):
        self.entered.set()
        self.release.wait(5)
        self.finished.set()
        return False


class DeferredJobs:
    def __init__(self):
        self.jobs = []

    def __call__(self, func, *args):
        self.jobs.append((func, args))

    def run(self):
        for func, args in self.jobs:
            func(*args)


def _run_now(func, *args):
    func(*args)


def _engine(classifier=None, helpdesk=None, dispatch=_run_now, paths=None, **settings):
    store = InMemorySessionStore()
    return ConversationEngine(
        store=store,
        classifier=classifier or FakeClassifier(),
        helpdesk=helpdesk or RecordingHelpdesk(),
        settings=Settings(**settings),
        paths=paths,
        dispatch=dispatch,
    )


def _escalate_delivery(engine):
    turn = engine.start(GUIDED, category=IssueCategory.DELIVERY_PROBLEM)
    engine.handle_message(turn.session_id, "Package is delayed")
    return turn.session_id


def test_delivery_delay_escalates_to_agent():
    helpdesk = RecordingHelpdesk()
    engine = _engine(helpdesk=helpdesk)
    turn = engine.start(GUIDED, category=IssueCategory.DELIVERY_PROBLEM)
    assert turn.state == ConversationState.AWAITING_ANSWER
    assert turn.question.id == "delivery_1"

    turn = engine.handle_message(turn.session_id, "Package is delayed")
    assert turn.question.id == "delivery_2"
    assert turn.progress.answered == 1

    turn = engine.handle_message(turn.session_id, "More than 5 days")
    assert turn.state == ConversationState.RESOLVED
    assert turn.resolution.kind == ResolutionKind.ESCALATE_AGENT
    assert turn.resolution.path_id == "delivery_delayed_major"
    assert turn.resolution.escalation.ticket_number in turn.message
    assert helpdesk.submitted == [(turn.session_id, turn.resolution.escalation.ticket_number)]
    assert turn.progress.percentage == 100


def test_handoff_is_deferred_until_after_the_reply():
    helpdesk = RecordingHelpdesk()
    engine = _engine(helpdesk=helpdesk)
    session_id = _escalate_delivery(engine)
    defer = DeferredJobs()

    turn = engine.handle_message(session_id, "More than 5 days", defer=defer)
    assert turn.state == ConversationState.RESOLVED
    assert helpdesk.submitted == []
    assert len(defer.jobs) == 1

    defer.run()
    assert helpdesk.submitted == [(session_id, turn.resolution.escalation.ticket_number)]


def test_stalled_helpdesk_does_not_hold_up_resolution():
    helpdesk = StalledHelpdesk()
    engine = ConversationEngine(store=InMemorySessionStore(), classifier=FakeClassifier(), helpdesk=helpdesk)
    session_id = _escalate_delivery(engine)

    started = time.monotonic()
    turn = engine.handle_message(session_id, "More than 5 days")
    elapsed = time.monotonic() - started

    assert turn.state == ConversationState.RESOLVED
    assert turn.resolution.kind == ResolutionKind.ESCALATE_AGENT
    assert helpdesk.entered.wait(2)
    assert not helpdesk.finished.is_set()
    assert elapsed < 1
    helpdesk.release.set()
    assert helpdesk.finished.wait(2)


def test_self_service_resolution_schedules_no_handoff():
    defer = DeferredJobs()
    engine = _engine()
    turn = engine.start(GUIDED, category=IssueCategory.ACCOUNT_ACCESS)
    engine.handle_message(turn.session_id, "Forgot password", defer=defer)
    turn = engine.handle_message(turn.session_id, "no", defer=defer)
    assert turn.resolution.kind == ResolutionKind.SELF_SERVICE
    assert defer.jobs == []


def test_engine_resolves_against_its_own_path_table():
    paths = dict(RESOLUTION_PATHS)
    paths[IssueCategory.OTHER] = (
        ResolutionPath(
            id="other_help_centre",
            category=IssueCategory.OTHER,
            kind=ResolutionKind.INFORMATION_PROVIDED,
            steps=("Browse the help centre for: {other_1}",),
        ),
    )
    helpdesk = RecordingHelpdesk()
    engine = _engine(helpdesk=helpdesk, paths=paths)
    turn = engine.start(GUIDED, category=IssueCategory.OTHER)
    turn = engine.handle_message(turn.session_id, "Gift card balance question")
    assert turn.resolution.path_id == "other_help_centre"
    assert turn.resolution.steps == ("Browse the help centre for: Gift card balance question",)
    assert helpdesk.submitted == []


def test_forgot_password_is_self_service():
    engine = _engine()
    turn = engine.start(GUIDED, category="ACCOUNT_ACCESS")
    turn = engine.handle_message(turn.session_id, "1")
    assert turn.question.id == "account_2"
    turn = engine.handle_message(turn.session_id, "no")
    assert turn.resolution.kind == ResolutionKind.SELF_SERVICE
    assert turn.resolution.steps


def test_invalid_answer_leaves_answers_unchanged():
    engine = _engine()
    turn = engine.start(GUIDED, category=IssueCategory.ORDER_STATUS)
    turn = engine.handle_message(turn.session_id, "yes")
    assert turn.question.id == "order_status_2"

    turn = engine.handle_message(turn.session_id, "not a number")
    assert turn.error == "Order number must be in format ORD-XXXXX"
    assert turn.question.id == "order_status_2"
    assert turn.state == ConversationState.AWAITING_ANSWER
    assert engine.session(turn.session_id).answers == {"order_status_1": "yes"}

    turn = engine.handle_message(turn.session_id, "ORD-12345")
    assert turn.resolution.kind == ResolutionKind.INFORMATION_PROVIDED
    assert "ORD-12345" in turn.message


def test_low_confidence_requests_clarification():
    classifier = FakeClassifier((IssueCategory.PAYMENT_ISSUE, 0.45))
    engine = _engine(classifier)
    turn = engine.start(FREE_TEXT, initial_message="something is off")
    assert turn.state == ConversationState.AWAITING_CATEGORY
    assert turn.question is None
    assert "more detail" in turn.message
    session = engine.session(turn.session_id)
    assert session.current_question_id is None
    assert session.clarification_attempts == 1


def test_low_confidence_guess_is_excluded_on_retry():
    classifier = FakeClassifier((IssueCategory.PAYMENT_ISSUE, 0.45), (IssueCategory.PAYMENT_ISSUE, 0.45))
    engine = _engine(classifier)
    turn = engine.start(FREE_TEXT, initial_message="something is off with my money")
    turn = engine.handle_message(turn.session_id, "still something off")

    assert classifier.calls[0]["excluded"] == ()
    assert classifier.calls[1]["excluded"] == (IssueCategory.PAYMENT_ISSUE,)
    assert any(m.role == "system" and "Payment Issue" in m.content for m in classifier.calls[1]["history"])
    session = engine.session(turn.session_id)
    assert session.rejected_categories == [IssueCategory.PAYMENT_ISSUE]
    assert session.clarification_attempts == 2


def test_low_confidence_other_is_never_excluded():
    classifier = FakeClassifier((IssueCategory.OTHER, 0.4), (IssueCategory.OTHER, 0.4))
    engine = _engine(classifier)
    turn = engine.start(FREE_TEXT, initial_message="hmm")
    engine.handle_message(turn.session_id, "hmm again")
    assert classifier.calls[1]["excluded"] == ()
    assert engine.session(turn.session_id).rejected_categories == []


def test_high_confidence_enters_tree():
    engine = _engine(FakeClassifier((IssueCategory.CANCELLATION, 0.92)))
    turn = engine.start(FREE_TEXT, initial_message="cancel my order please")
    assert turn.state == ConversationState.AWAITING_ANSWER
    assert turn.category == IssueCategory.CANCELLATION
    assert turn.question.id == "cancel_1"


def test_medium_confidence_confirmation_yes():
    engine = _engine(FakeClassifier((IssueCategory.REFUND_REQUEST, 0.6)))
    turn = engine.start(FREE_TEXT, initial_message="money back?")
    assert turn.state == ConversationState.AWAITING_CONFIRMATION
    assert "Refund Request" in turn.message

    turn = engine.handle_message(turn.session_id, "maybe")
    assert turn.state == ConversationState.AWAITING_CONFIRMATION
    assert turn.error

    turn = engine.handle_message(turn.session_id, "Yes")
    assert turn.state == ConversationState.AWAITING_ANSWER
    assert turn.question.id == "refund_1"


def test_rejected_category_is_excluded_on_reclassification():
    classifier = FakeClassifier((IssueCategory.REFUND_REQUEST, 0.6), (IssueCategory.PAYMENT_ISSUE, 0.9))
    engine = _engine(classifier)
    turn = engine.start(FREE_TEXT, initial_message="money problem")
    turn = engine.handle_message(turn.session_id, "no")
    assert turn.state == ConversationState.AWAITING_CATEGORY

    turn = engine.handle_message(turn.session_id, "I was charged twice for one order")
    assert turn.category == IssueCategory.PAYMENT_ISSUE
    assert classifier.calls[1]["excluded"] == (IssueCategory.REFUND_REQUEST,)
    assert any(m.role == "system" and "Refund Request" in m.content for m in classifier.calls[1]["history"])


def test_clarification_is_bounded():
    classifier = FakeClassifier(*[(IssueCategory.OTHER, 0.3)] * 3)
    engine = _engine(classifier, max_clarifications=2)
    turn = engine.start(FREE_TEXT, initial_message="hmm")
    turn = engine.handle_message(turn.session_id, "still hmm")
    assert turn.state == ConversationState.AWAITING_CATEGORY
    turn = engine.handle_message(turn.session_id, "no idea")
    assert turn.state == ConversationState.AWAITING_ANSWER
    assert turn.category == IssueCategory.OTHER
    assert turn.question.id == "other_1"

    turn = engine.handle_message(turn.session_id, "The gift card I bought never showed up in my account")
    assert turn.resolution.path_id == "other_escalate"


def test_guided_menu_and_submenu():
    engine = _engine()
    turn = engine.start(GUIDED)
    assert turn.state == ConversationState.AWAITING_CATEGORY
    assert "1. Orders & Delivery" in turn.message

    turn = engine.handle_message(turn.session_id, "2")
    assert turn.state == ConversationState.AWAITING_CATEGORY
    assert "Billing Inquiry" in turn.message

    turn = engine.handle_message(turn.session_id, "3")
    assert turn.category == IssueCategory.BILLING_INQUIRY
    turn = engine.handle_message(turn.session_id, "Invoice copy")
    assert turn.resolution.path_id == "billing_invoice"


def test_single_category_group_enters_tree():
    engine = _engine()
    turn = engine.start(GUIDED)
    turn = engine.handle_message(turn.session_id, "account & access")
    assert turn.question.id == "account_1"


def test_closed_and_unknown_sessions():
    engine = _engine()
    turn = engine.start(GUIDED, category=IssueCategory.BILLING_INQUIRY)
    turn = engine.handle_message(turn.session_id, "Charge details")
    assert turn.state == ConversationState.RESOLVED
    with pytest.raises(ConversationClosed):
        engine.handle_message(turn.session_id, "hello again")
    with pytest.raises(SessionNotFound):
        engine.handle_message("missing", "hi")
    with pytest.raises(SessionNotFound):
        engine.progress("missing")


def test_unknown_category_rejected():
    engine = _engine()
    with pytest.raises(UnknownCategory):
        engine.start(GUIDED, category="GARDENING")


def test_history_records_every_turn():
    engine = _engine()
    turn = engine.start(GUIDED, category=IssueCategory.CANCELLATION)
    engine.handle_message(turn.session_id, "no")
    history = engine.session(turn.session_id).history
    assert [m.role for m in history] == ["assistant", "user", "assistant"]
    assert history[0].metadata["question_id"] == "cancel_1"


def test_progress_report():
    engine = _engine()
    turn = engine.start(GUIDED, category=IssueCategory.DELIVERY_PROBLEM)
    progress = engine.progress(turn.session_id)
    assert (progress.answered, progress.total, progress.percentage) == (0, 3, 0)
    engine.handle_message(turn.session_id, "Package delivered to wrong address")
    engine.handle_message(turn.session_id, "yes")
    progress = engine.progress(turn.session_id)
    assert (progress.answered, progress.total, progress.percentage) == (2, 3, 67)


def test_guided_start_with_menu_choice():
    engine = _engine()
    turn = engine.start(GUIDED, initial_message="1")
    assert turn.state == ConversationState.AWAITING_CATEGORY
    assert "Order Status" in turn.message
    turn = engine.handle_message(turn.session_id, "order cancellation")
    assert turn.question.id == "cancel_1"
