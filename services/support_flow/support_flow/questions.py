from __future__ import annotations

import logging
from collections.abc import Mapping

from .errors import ConfigurationError
from .models import IssueCategory, Question, QuestionTree, QuestionType, RuleKind, ValidationRule

logger = logging.getLogger("support_flow.questions")

ORDER_ID_PATTERN = r"^ORD-[0-9]{5}$"
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
YES_NO_KEYS = frozenset({"yes", "no"})


def required(message: str) -> ValidationRule:
    return ValidationRule(kind=RuleKind.REQUIRED, message=message)


def pattern(regex: str, message: str) -> ValidationRule:
    return ValidationRule(kind=RuleKind.PATTERN, message=message, value=regex)


def min_length(size: int, message: str) -> ValidationRule:
    return ValidationRule(kind=RuleKind.MIN_LENGTH, message=message, value=size)


def max_length(size: int, message: str) -> ValidationRule:
    return ValidationRule(kind=RuleKind.MAX_LENGTH, message=message, value=size)


def _tree(category: IssueCategory, root: str, *questions: Question) -> QuestionTree:
    return QuestionTree(category=category, root_question_id=root, questions={q.id: q for q in questions})


ORDER_STATUS_TREE = _tree(
    IssueCategory.ORDER_STATUS,
    "order_status_1",
    Question(
        id="order_status_1",
        text="Do you have your order number?",
        type=QuestionType.YES_NO,
        next_question_map={"yes": "order_status_2", "no": "order_status_3"},
    ),
    Question(
        id="order_status_2",
        text="Please provide your order number (format: ORD-XXXXX)",
        type=QuestionType.ORDER_ID,
        rules=(
            required("Order number is required"),
            pattern(ORDER_ID_PATTERN, "Order number must be in format ORD-XXXXX"),
        ),
    ),
    Question(
        id="order_status_3",
        text="Can you provide the email address used for the order?",
        type=QuestionType.TEXT_INPUT,
        rules=(
            required("Email address is required"),
            pattern(EMAIL_PATTERN, "Please provide a valid email address"),
        ),
    ),
)

DELIVERY_PROBLEM_TREE = _tree(
    IssueCategory.DELIVERY_PROBLEM,
    "delivery_1",
    Question(
        id="delivery_1",
        text="What type of delivery problem are you experiencing?",
        type=QuestionType.SINGLE_CHOICE,
        options=(
            "Package is delayed",
            "Package delivered to wrong address",
            "Package is damaged",
            "Package is lost/missing",
            "Other delivery issue",
        ),
        next_question_map={
            "Package is delayed": "delivery_2",
            "Package delivered to wrong address": "delivery_3",
            "Package is damaged": "delivery_4",
            "Package is lost/missing": "delivery_5",
            "Other delivery issue": "delivery_6",
        },
    ),
    Question(
        id="delivery_2",
        text="How many days past the expected delivery date is your package?",
        type=QuestionType.SINGLE_CHOICE,
        options=("1-2 days", "3-5 days", "More than 5 days"),
    ),
    Question(
        id="delivery_3",
        text="Do you know where the package was delivered?",
        type=QuestionType.YES_NO,
        next_question_map={"yes": "delivery_3a", "no": "delivery_3b"},
    ),
    Question(
        id="delivery_3a",
        text="Please describe the location where it was delivered",
        type=QuestionType.TEXT_INPUT,
    ),
    Question(
        id="delivery_3b",
        text="Have you checked with neighbors or building management?",
        type=QuestionType.YES_NO,
    ),
    Question(
        id="delivery_4",
        text="Can you describe the damage to the package?",
        type=QuestionType.TEXT_INPUT,
        rules=(
            required("Please describe the damage"),
            min_length(10, "Please provide more details (at least 10 characters)"),
        ),
    ),
    Question(
        id="delivery_5",
        text="When was the package supposed to be delivered?",
        type=QuestionType.DATE,
    ),
    Question(
        id="delivery_6",
        text="Please describe your delivery issue",
        type=QuestionType.TEXT_INPUT,
        rules=(required("Please describe the issue"),),
    ),
)

PAYMENT_ISSUE_TREE = _tree(
    IssueCategory.PAYMENT_ISSUE,
    "payment_1",
    Question(
        id="payment_1",
        text="What payment issue are you experiencing?",
        type=QuestionType.SINGLE_CHOICE,
        options=(
            "Payment was declined",
            "Charged incorrect amount",
            "Charged multiple times",
            "Payment method not accepted",
            "Other payment issue",
        ),
        next_question_map={
            "Payment was declined": "payment_2",
            "Charged incorrect amount": "payment_3",
            "Charged multiple times": "payment_4",
            "Payment method not accepted": "payment_5",
            "Other payment issue": "payment_6",
        },
    ),
    Question(
        id="payment_2",
        text="Have you verified that your payment method has sufficient funds?",
        type=QuestionType.YES_NO,
    ),
    Question(
        id="payment_3",
        text="What amount were you charged, and what amount did you expect?",
        type=QuestionType.TEXT_INPUT,
        rules=(required("Please provide both amounts"),),
    ),
    Question(
        id="payment_4",
        text="How many times were you charged?",
        type=QuestionType.SINGLE_CHOICE,
        options=("2 times", "3 times", "More than 3 times"),
    ),
    Question(
        id="payment_5",
        text="Which payment method are you trying to use?",
        type=QuestionType.SINGLE_CHOICE,
        options=("Credit Card", "Debit Card", "PayPal", "Other"),
    ),
    Question(
        id="payment_6",
        text="Please describe your payment issue",
        type=QuestionType.TEXT_INPUT,
        rules=(required("Please describe the issue"),),
    ),
)

REFUND_REQUEST_TREE = _tree(
    IssueCategory.REFUND_REQUEST,
    "refund_1",
    Question(
        id="refund_1",
        text="What is the reason for your refund request?",
        type=QuestionType.SINGLE_CHOICE,
        options=(
            "Product defective or damaged",
            "Wrong item received",
            "Changed my mind",
            "Better price elsewhere",
            "Other reason",
        ),
        next_question_map={
            "Product defective or damaged": "refund_2",
            "Wrong item received": "refund_3",
            "Changed my mind": "refund_4",
            "Better price elsewhere": "refund_4",
            "Other reason": "refund_5",
        },
    ),
    Question(
        id="refund_2",
        text="Have you already returned the item?",
        type=QuestionType.YES_NO,
        next_question_map={"yes": "refund_2a", "no": "refund_2b"},
    ),
    Question(
        id="refund_2a",
        text="Please provide the return tracking number",
        type=QuestionType.TEXT_INPUT,
        rules=(required("Tracking number is required"),),
    ),
    Question(
        id="refund_2b",
        text="Would you like instructions on how to return the item?",
        type=QuestionType.YES_NO,
    ),
    Question(
        id="refund_3",
        text="What item did you receive instead?",
        type=QuestionType.TEXT_INPUT,
        rules=(required("Please describe what you received"),),
    ),
    Question(
        id="refund_4",
        text="Is the item still in its original packaging and unused?",
        type=QuestionType.YES_NO,
    ),
    Question(
        id="refund_5",
        text="Please explain your reason for the refund",
        type=QuestionType.TEXT_INPUT,
        rules=(
            required("Please provide a reason"),
            min_length(10, "Please provide more details"),
        ),
    ),
)

_DEFECT_TYPES = (
    "Product is broken or damaged",
    "Product does not work as expected",
    "Missing parts or accessories",
    "Wrong product received",
    "Product different from description",
)

PRODUCT_DEFECT_TREE = _tree(
    IssueCategory.PRODUCT_DEFECT,
    "defect_1",
    Question(
        id="defect_1",
        text="What type of defect or issue does the product have?",
        type=QuestionType.SINGLE_CHOICE,
        options=_DEFECT_TYPES,
        next_question_map={option: "defect_2" for option in _DEFECT_TYPES},
    ),
    Question(
        id="defect_2",
        text="When did you first notice the defect?",
        type=QuestionType.SINGLE_CHOICE,
        options=("Upon delivery", "Within first week", "After 1-2 weeks", "After more than 2 weeks"),
    ),
)

ACCOUNT_ACCESS_TREE = _tree(
    IssueCategory.ACCOUNT_ACCESS,
    "account_1",
    Question(
        id="account_1",
        text="What account issue are you experiencing?",
        type=QuestionType.SINGLE_CHOICE,
        options=(
            "Forgot password",
            "Account locked",
            "Cannot receive verification email",
            "Username issues",
            "Other account issue",
        ),
        next_question_map={
            "Forgot password": "account_2",
            "Account locked": "account_3",
            "Cannot receive verification email": "account_4",
            "Username issues": "account_5",
            "Other account issue": "account_6",
        },
    ),
    Question(
        id="account_2",
        text='Have you tried using the "Forgot Password" link on the login page?',
        type=QuestionType.YES_NO,
    ),
    Question(
        id="account_3",
        text="Do you know why your account was locked?",
        type=QuestionType.YES_NO,
    ),
    Question(
        id="account_4",
        text="Have you checked your spam/junk folder?",
        type=QuestionType.YES_NO,
    ),
    Question(
        id="account_5",
        text="Please describe the username issue",
        type=QuestionType.TEXT_INPUT,
    ),
    Question(
        id="account_6",
        text="Please describe your account issue",
        type=QuestionType.TEXT_INPUT,
        rules=(required("Please describe the issue"),),
    ),
)

BILLING_INQUIRY_TREE = _tree(
    IssueCategory.BILLING_INQUIRY,
    "billing_1",
    Question(
        id="billing_1",
        text="What billing information do you need?",
        type=QuestionType.SINGLE_CHOICE,
        options=("Invoice copy", "Billing statement", "Charge details", "Other"),
    ),
)

CANCELLATION_TREE = _tree(
    IssueCategory.CANCELLATION,
    "cancel_1",
    Question(
        id="cancel_1",
        text="Has your order already shipped?",
        type=QuestionType.YES_NO,
        next_question_map={"yes": "cancel_2", "no": "cancel_3"},
    ),
    Question(
        id="cancel_2",
        text="Since your order has shipped, would you like to refuse delivery or return it after receiving?",
        type=QuestionType.SINGLE_CHOICE,
        options=("Refuse delivery", "Return after receiving", "Keep the order"),
    ),
    Question(
        id="cancel_3",
        text="Your order can be cancelled. Would you like to proceed with cancellation?",
        type=QuestionType.YES_NO,
    ),
)

OTHER_TREE = _tree(
    IssueCategory.OTHER,
    "other_1",
    Question(
        id="other_1",
        text="Please describe your issue in detail",
        type=QuestionType.TEXT_INPUT,
        rules=(
            required("Please describe your issue"),
            min_length(20, "Please provide more details (at least 20 characters)"),
        ),
    ),
)

QUESTION_TREES: dict[IssueCategory, QuestionTree] = {
    tree.category: tree
    for tree in (
        ORDER_STATUS_TREE,
        DELIVERY_PROBLEM_TREE,
        PAYMENT_ISSUE_TREE,
        REFUND_REQUEST_TREE,
        PRODUCT_DEFECT_TREE,
        ACCOUNT_ACCESS_TREE,
        BILLING_INQUIRY_TREE,
        CANCELLATION_TREE,
        OTHER_TREE,
    )
}


def validate_tree(tree: QuestionTree) -> None:
    name = tree.category.value
    questions = tree.questions
    if tree.root_question_id not in questions:
        raise ConfigurationError(f"{name}: root question '{tree.root_question_id}' does not exist")

    for key, question in questions.items():
        if key != question.id:
            raise ConfigurationError(f"{name}: question registered as '{key}' has id '{question.id}'")
        for answer, target in question.next_question_map.items():
            if target not in questions:
                raise ConfigurationError(f"{name}: '{question.id}' --{answer}--> '{target}' does not exist")
        if question.type == QuestionType.YES_NO:
            unexpected = set(question.next_question_map) - YES_NO_KEYS
            if unexpected:
                raise ConfigurationError(f"{name}: yes/no question '{question.id}' branches on {sorted(unexpected)}")
        elif question.type == QuestionType.SINGLE_CHOICE and question.next_question_map:
            unexpected = set(question.next_question_map) - set(question.options)
            if unexpected:
                raise ConfigurationError(f"{name}: '{question.id}' branches on non-options {sorted(unexpected)}")

    # Iterative DFS: grey nodes are on the current path, so meeting one again is a cycle.
    visited: set[str] = set()
    on_path: set[str] = set()
    stack: list[tuple[str, bool]] = [(tree.root_question_id, False)]
    while stack:
        node, leaving = stack.pop()
        if leaving:
            on_path.discard(node)
            continue
        if node in on_path:
            raise ConfigurationError(f"{name}: cycle through question '{node}'")
        if node in visited:
            continue
        visited.add(node)
        on_path.add(node)
        stack.append((node, True))
        for target in questions[node].next_question_map.values():
            if target in on_path:
                raise ConfigurationError(f"{name}: cycle through question '{target}'")
            stack.append((target, False))

    orphans = set(questions) - visited
    if orphans:
        raise ConfigurationError(f"{name}: unreachable questions {sorted(orphans)}")


def validate_trees(trees: Mapping[IssueCategory, QuestionTree]) -> None:
    missing = [category.value for category in IssueCategory if category not in trees]
    if missing:
        raise ConfigurationError(f"No question tree registered for {missing}")

    owners: dict[str, IssueCategory] = {}
    for category, tree in trees.items():
        if tree.category != category:
            raise ConfigurationError(f"Tree for {category.value} declares category {tree.category.value}")
        validate_tree(tree)
        for question_id in tree.questions:
            if question_id in owners:
                raise ConfigurationError(
                    f"Question id '{question_id}' shared by {owners[question_id].value} and {category.value}"
                )
            owners[question_id] = category


class QuestionTreeRegistry:
    def __init__(self, trees: Mapping[IssueCategory, QuestionTree] | None = None):
        self._trees = dict(trees if trees is not None else QUESTION_TREES)
        validate_trees(self._trees)
        self._depths = {category: self._longest_path(tree) for category, tree in self._trees.items()}
        logger.info("Loaded %s question trees", len(self._trees))

    def tree(self, category: IssueCategory) -> QuestionTree:
        try:
            return self._trees[category]
        except KeyError:
            raise ConfigurationError(f"No question tree registered for {category}") from None

    def first_question(self, category: IssueCategory) -> Question:
        tree = self.tree(category)
        return tree.questions[tree.root_question_id]

    def question(self, category: IssueCategory, question_id: str) -> Question | None:
        tree = self._trees.get(category)
        if tree is None:
            return None
        return tree.questions.get(question_id)

    def next_question_id(self, category: IssueCategory, current_question_id: str, answer: str) -> str | None:
        question = self.question(category, current_question_id)
        if question is None:
            return None
        return question.next_question_map.get(answer)

    def max_depth(self, category: IssueCategory) -> int:
        return self._depths[category]

    def categories(self) -> list[IssueCategory]:
        return list(self._trees)

    @staticmethod
    def _longest_path(tree: QuestionTree) -> int:
        # Trees are validated acyclic, so plain recursion terminates.
        memo: dict[str, int] = {}

        def depth(question_id: str) -> int:
            if question_id not in memo:
                targets = tree.questions[question_id].next_question_map.values()
                memo[question_id] = 1 + max((depth(t) for t in targets), default=0)
            return memo[question_id]

        return depth(tree.root_question_id)
