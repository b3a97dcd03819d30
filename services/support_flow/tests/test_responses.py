from support_flow.errors import AdapterUnavailable
from support_flow.models import ConversationMode, EscalationDetails, IssueCategory, Resolution, ResolutionKind
from support_flow.prompts import fill_template
from support_flow.questions import QUESTION_TREES
from support_flow.responses import ResponsePhraser, format_question, format_resolution


class FakeChat:
    def __init__(self, reply=None, error=None):
        self.available = True
        self.reply = reply
        self.error = error

    def chat_json(self, system_prompt, user_prompt, temperature=0.2):
        if self.error:
            raise self.error
        return self.reply


def _escalation():
    return Resolution(
        kind=ResolutionKind.ESCALATE_AGENT,
        message="I've created a support ticket for you. Our team will help resolve this issue.",
        escalation=EscalationDetails(
            team="Customer Support Team",
            priority="medium",
            estimated_response_time="24 hours",
            ticket_number="TKT-20250101-ABCDEF12",
        ),
        category=IssueCategory.DELIVERY_PROBLEM,
    )


def test_fill_template():
    assert fill_template("Ticket #{ticket} for {team}", {"ticket": "T-1", "team": "Support"}) == "Ticket #T-1 for Support"
    assert fill_template("Hello {name}", {}) == "Hello {name}"


def test_phrase_falls_back_to_template_when_disabled():
    phraser = ResponsePhraser(FakeChat(reply={"answer": "reworded"}), enabled=False)
    assert phraser.phrase("Hi {name}", {"name": "Sam"}) == "Hi Sam"


def test_phrase_uses_llm_when_enabled():
    phraser = ResponsePhraser(FakeChat(reply={"answer": "Hey Sam!"}), enabled=True)
    assert phraser.phrase("Hi {name}", {"name": "Sam"}, "friendly") == "Hey Sam!"


def test_phrase_falls_back_on_failure():
    phraser = ResponsePhraser(FakeChat(error=AdapterUnavailable("down")), enabled=True)
    assert phraser.phrase("Hi {name}", {"name": "Sam"}) == "Hi Sam"
    phraser = ResponsePhraser(FakeChat(reply={"answer": ""}), enabled=True)
    assert phraser.phrase("Hi {name}", {"name": "Sam"}) == "Hi Sam"


def test_format_single_choice_question():
    question = QUESTION_TREES[IssueCategory.DELIVERY_PROBLEM].questions["delivery_2"]
    text = format_question(question)
    assert text.startswith(question.text)
    assert "Please select one of the following options:" in text
    assert "\n1. 1-2 days" in text
    assert "\n3. More than 5 days" in text


def test_format_yes_no_and_order_id_hints():
    tree = QUESTION_TREES[IssueCategory.ORDER_STATUS].questions
    assert "Please answer: Yes or No" in format_question(tree["order_status_1"])
    assert "ORD-12345" in format_question(tree["order_status_2"])


def test_format_resolution_with_ticket():
    text = format_resolution(_escalation())
    assert "Ticket Number: TKT-20250101-ABCDEF12" in text
    assert "Priority: MEDIUM" in text
    assert "Reference Number" not in text


def test_format_resolution_with_reference():
    resolution = Resolution(
        kind=ResolutionKind.AUTOMATED_ACTION,
        message="I'll take care of this for you. Here's what will happen:",
        steps=("Your order has been cancelled",),
        reference_number="REF-0A1B2C3D",
    )
    text = format_resolution(resolution)
    assert "1. Your order has been cancelled" in text
    assert text.endswith("Reference Number: REF-0A1B2C3D")


def test_escalation_resolution_text():
    text = ResponsePhraser().resolution(_escalation())
    assert "ticket #TKT-20250101-ABCDEF12" in text
    assert "Customer Support Team" in text
    assert "Our team will take it from here" in text


def test_greetings_and_confirmation():
    phraser = ResponsePhraser()
    assert "ShopEase" in phraser.greeting(ConversationMode.SYSTEM_INITIATED)
    assert "tell me more" in phraser.greeting(ConversationMode.USER_INITIATED)
    assert phraser.confirmation(IssueCategory.REFUND_REQUEST) == (
        "It sounds like you're having an issue with Refund Request. Is that correct?"
    )
    assert phraser.validation_error("Answer required") == (
        "I noticed an issue with your response: Answer required. Could you please try again?"
    )
