from __future__ import annotations

from collections.abc import Mapping

from .errors import ConfigurationError
from .models import ConditionOperator, IssueCategory, QuestionTree, ResolutionCondition, ResolutionKind, ResolutionPath

EQ = ConditionOperator.EQUALS
CONTAINS = ConditionOperator.CONTAINS
ONE_OF = ConditionOperator.ONE_OF

Kind = ResolutionKind


def _when(question_id: str, expected: str | tuple[str, ...], operator: ConditionOperator = EQ) -> ResolutionCondition:
    return ResolutionCondition(question_id=question_id, expected=expected, operator=operator)


def _fallback(category: IssueCategory, path_id: str, reason: str, estimated_time: str = "24-48 hours") -> ResolutionPath:
    return ResolutionPath(
        id=path_id,
        category=category,
        kind=Kind.ESCALATE_AGENT,
        escalation_reason=reason,
        estimated_time=estimated_time,
    )


_C = IssueCategory

ORDER_STATUS_PATHS = (
    ResolutionPath(
        id="order_status_found",
        category=_C.ORDER_STATUS,
        kind=Kind.INFORMATION_PROVIDED,
        conditions=(_when("order_status_2", "", CONTAINS),),
        steps=(
            "We located order {order_status_2} in our system",
            "Live tracking for {order_status_2} is available on your Orders page",
            "You will receive an email update each time the shipment status changes",
        ),
        requires_data=("orderId",),
        estimated_time="Immediate",
    ),
    ResolutionPath(
        id="order_status_email_lookup",
        category=_C.ORDER_STATUS,
        kind=Kind.INFORMATION_PROVIDED,
        conditions=(_when("order_status_3", "", CONTAINS),),
        steps=(
            "We have sent the status of recent orders to {order_status_3}",
            "Sign in with {order_status_3} to see live tracking on your Orders page",
        ),
        requires_data=("email",),
        estimated_time="Immediate",
    ),
    _fallback(_C.ORDER_STATUS, "order_status_general_escalate", "Order could not be identified - requires manual lookup", "24 hours"),
)

DELIVERY_PROBLEM_PATHS = (
    ResolutionPath(
        id="delivery_delayed_minor",
        category=_C.DELIVERY_PROBLEM,
        kind=Kind.INFORMATION_PROVIDED,
        conditions=(_when("delivery_1", "Package is delayed"), _when("delivery_2", "1-2 days")),
        steps=(
            "Check tracking information for latest updates",
            "Delivery delays of 1-2 days are common due to weather or high volume",
            "Your package should arrive within the next 24-48 hours",
        ),
        estimated_time="24-48 hours",
    ),
    ResolutionPath(
        id="delivery_delayed_major",
        category=_C.DELIVERY_PROBLEM,
        kind=Kind.ESCALATE_AGENT,
        conditions=(
            _when("delivery_1", "Package is delayed"),
            _when("delivery_2", ("3-5 days", "More than 5 days"), ONE_OF),
        ),
        escalation_reason="Significant delivery delay requires investigation",
        estimated_time="24 hours for agent response",
    ),
    ResolutionPath(
        id="delivery_wrong_address",
        category=_C.DELIVERY_PROBLEM,
        kind=Kind.ESCALATE_AGENT,
        conditions=(_when("delivery_1", "Package delivered to wrong address"),),
        escalation_reason="Wrong address delivery requires carrier investigation",
        estimated_time="24-48 hours for resolution",
    ),
    ResolutionPath(
        id="delivery_damaged",
        category=_C.DELIVERY_PROBLEM,
        kind=Kind.ESCALATE_AGENT,
        conditions=(_when("delivery_1", "Package is damaged"),),
        escalation_reason="Damaged package requires inspection and potential replacement",
        estimated_time="48 hours for resolution",
    ),
    ResolutionPath(
        id="delivery_lost",
        category=_C.DELIVERY_PROBLEM,
        kind=Kind.ESCALATE_SPECIALIST,
        conditions=(_when("delivery_1", "Package is lost/missing"),),
        escalation_reason="Lost package requires carrier claim and replacement processing",
        estimated_time="3-5 business days",
    ),
    _fallback(_C.DELIVERY_PROBLEM, "delivery_general_escalate", "Delivery issue requires investigation"),
)

PAYMENT_ISSUE_PATHS = (
    ResolutionPath(
        id="payment_declined_self_service",
        category=_C.PAYMENT_ISSUE,
        kind=Kind.SELF_SERVICE,
        conditions=(_when("payment_1", "Payment was declined"), _when("payment_2", "no")),
        steps=(
            "Verify your payment method has sufficient funds",
            "Check with your bank that the card is not blocked",
            "Ensure billing address matches your bank records",
            "Try a different payment method if issue persists",
        ),
        estimated_time="Immediate",
    ),
    ResolutionPath(
        id="payment_declined_escalate",
        category=_C.PAYMENT_ISSUE,
        kind=Kind.ESCALATE_AGENT,
        conditions=(_when("payment_1", "Payment was declined"), _when("payment_2", "yes")),
        escalation_reason="Payment declined despite sufficient funds - requires investigation",
        estimated_time="24 hours",
    ),
    ResolutionPath(
        id="payment_wrong_amount",
        category=_C.PAYMENT_ISSUE,
        kind=Kind.ESCALATE_AGENT,
        conditions=(_when("payment_1", "Charged incorrect amount"),),
        escalation_reason="Incorrect charge amount requires billing review",
        estimated_time="24-48 hours",
    ),
    ResolutionPath(
        id="payment_multiple_charges",
        category=_C.PAYMENT_ISSUE,
        kind=Kind.ESCALATE_SPECIALIST,
        conditions=(_when("payment_1", "Charged multiple times"),),
        escalation_reason="Multiple charges require immediate refund processing",
        estimated_time="24 hours for refund initiation",
    ),
    _fallback(_C.PAYMENT_ISSUE, "payment_general_escalate", "Payment issue requires billing review"),
)

REFUND_REQUEST_PATHS = (
    ResolutionPath(
        id="refund_defective_returned",
        category=_C.REFUND_REQUEST,
        kind=Kind.AUTOMATED_ACTION,
        conditions=(_when("refund_1", "Product defective or damaged"), _when("refund_2", "yes")),
        steps=(
            "Refund will be processed once return is received",
            "Expected processing time: 3-5 business days after receipt",
            "Refund will be issued to original payment method",
        ),
        requires_data=("returnTrackingNumber",),
        estimated_time="3-5 business days after return receipt",
    ),
    ResolutionPath(
        id="refund_defective_not_returned",
        category=_C.REFUND_REQUEST,
        kind=Kind.SELF_SERVICE,
        conditions=(
            _when("refund_1", "Product defective or damaged"),
            _when("refund_2", "no"),
            _when("refund_2b", "yes"),
        ),
        steps=(
            "Print the prepaid return label from your order page",
            "Package the item securely in original packaging if possible",
            "Attach the label and drop off at any carrier location",
            "Refund will be processed 3-5 days after we receive the return",
        ),
        estimated_time="7-10 business days total",
    ),
    ResolutionPath(
        id="refund_changed_mind_eligible",
        category=_C.REFUND_REQUEST,
        kind=Kind.SELF_SERVICE,
        conditions=(
            _when("refund_1", ("Changed my mind", "Better price elsewhere"), ONE_OF),
            _when("refund_4", "yes"),
        ),
        steps=(
            "You can return the item within 30 days of purchase",
            "Item must be unused and in original packaging",
            "Print return label from your order page",
            "Refund will be processed minus original shipping cost",
        ),
        estimated_time="7-10 business days",
    ),
    ResolutionPath(
        id="refund_changed_mind_ineligible",
        category=_C.REFUND_REQUEST,
        kind=Kind.ESCALATE_AGENT,
        conditions=(
            _when("refund_1", ("Changed my mind", "Better price elsewhere"), ONE_OF),
            _when("refund_4", "no"),
        ),
        escalation_reason="Item not in original condition - requires case-by-case review",
        estimated_time="24-48 hours",
    ),
    _fallback(_C.REFUND_REQUEST, "refund_general_escalate", "Refund request requires manual review"),
)

PRODUCT_DEFECT_PATHS = (
    ResolutionPath(
        id="defect_immediate",
        category=_C.PRODUCT_DEFECT,
        kind=Kind.ESCALATE_AGENT,
        conditions=(_when("defect_2", "Upon delivery"),),
        escalation_reason="Defect upon delivery - eligible for immediate replacement",
        estimated_time="24 hours for replacement processing",
    ),
    ResolutionPath(
        id="defect_warranty",
        category=_C.PRODUCT_DEFECT,
        kind=Kind.ESCALATE_AGENT,
        conditions=(_when("defect_2", ("Within first week", "After 1-2 weeks"), ONE_OF),),
        escalation_reason="Product defect within warranty period",
        estimated_time="48 hours for resolution",
    ),
    ResolutionPath(
        id="defect_late",
        category=_C.PRODUCT_DEFECT,
        kind=Kind.ESCALATE_SPECIALIST,
        conditions=(_when("defect_2", "After more than 2 weeks"),),
        escalation_reason="Late defect report - requires warranty verification",
        estimated_time="3-5 business days",
    ),
    _fallback(_C.PRODUCT_DEFECT, "defect_general_escalate", "Product issue requires quality review"),
)

ACCOUNT_ACCESS_PATHS = (
    ResolutionPath(
        id="account_password_self_service",
        category=_C.ACCOUNT_ACCESS,
        kind=Kind.SELF_SERVICE,
        conditions=(_when("account_1", "Forgot password"), _when("account_2", "no")),
        steps=(
            "Go to the login page",
            'Click "Forgot Password" link',
            "Enter your email address",
            "Check your email for reset link (check spam folder)",
            "Follow the link to create a new password",
        ),
        estimated_time="Immediate",
    ),
    ResolutionPath(
        id="account_password_escalate",
        category=_C.ACCOUNT_ACCESS,
        kind=Kind.ESCALATE_AGENT,
        conditions=(_when("account_1", "Forgot password"), _when("account_2", "yes")),
        escalation_reason="Password reset not working - requires manual intervention",
        estimated_time="2-4 hours",
    ),
    ResolutionPath(
        id="account_locked",
        category=_C.ACCOUNT_ACCESS,
        kind=Kind.ESCALATE_AGENT,
        conditions=(_when("account_1", "Account locked"),),
        escalation_reason="Account locked - requires security review and unlock",
        estimated_time="4-6 hours",
    ),
    ResolutionPath(
        id="account_email_issue",
        category=_C.ACCOUNT_ACCESS,
        kind=Kind.SELF_SERVICE,
        conditions=(_when("account_1", "Cannot receive verification email"), _when("account_4", "no")),
        steps=(
            "Check your spam/junk folder",
            "Add noreply@shopease.com to your contacts",
            "Check if your email provider is blocking our emails",
            "Try requesting a new verification email",
        ),
        estimated_time="Immediate",
    ),
    _fallback(_C.ACCOUNT_ACCESS, "account_general_escalate", "Account issue requires manual verification", "4-6 hours"),
)

BILLING_INQUIRY_PATHS = (
    ResolutionPath(
        id="billing_invoice",
        category=_C.BILLING_INQUIRY,
        kind=Kind.SELF_SERVICE,
        conditions=(_when("billing_1", "Invoice copy"),),
        steps=(
            "Log in to your account",
            "Go to Order History",
            "Click on the order you need an invoice for",
            'Click "Download Invoice" button',
            "Invoice will be downloaded as PDF",
        ),
        estimated_time="Immediate",
    ),
    ResolutionPath(
        id="billing_other",
        category=_C.BILLING_INQUIRY,
        kind=Kind.ESCALATE_AGENT,
        conditions=(_when("billing_1", ("Billing statement", "Charge details", "Other"), ONE_OF),),
        escalation_reason="Billing inquiry requires detailed account review",
        estimated_time="24 hours",
    ),
    _fallback(_C.BILLING_INQUIRY, "billing_general_escalate", "Billing inquiry requires detailed account review", "24 hours"),
)

CANCELLATION_PATHS = (
    ResolutionPath(
        id="cancel_not_shipped",
        category=_C.CANCELLATION,
        kind=Kind.AUTOMATED_ACTION,
        conditions=(_when("cancel_1", "no"), _when("cancel_3", "yes")),
        steps=(
            "Your order has been cancelled",
            "Refund will be processed within 3-5 business days",
            "You will receive a confirmation email shortly",
        ),
        estimated_time="3-5 business days for refund",
    ),
    ResolutionPath(
        id="cancel_not_shipped_kept",
        category=_C.CANCELLATION,
        kind=Kind.INFORMATION_PROVIDED,
        conditions=(_when("cancel_1", "no"), _when("cancel_3", "no")),
        steps=(
            "Your order has not been cancelled and will ship as planned",
            "You can cancel from your Orders page any time before it ships",
        ),
        estimated_time="Immediate",
    ),
    ResolutionPath(
        id="cancel_shipped_refuse",
        category=_C.CANCELLATION,
        kind=Kind.SELF_SERVICE,
        conditions=(_when("cancel_1", "yes"), _when("cancel_2", "Refuse delivery")),
        steps=(
            "When the carrier attempts delivery, refuse to accept the package",
            "The package will be returned to us automatically",
            "Refund will be processed once we receive the return",
            "Expected timeline: 7-10 business days",
        ),
        estimated_time="7-10 business days",
    ),
    ResolutionPath(
        id="cancel_shipped_return",
        category=_C.CANCELLATION,
        kind=Kind.SELF_SERVICE,
        conditions=(_when("cancel_1", "yes"), _when("cancel_2", "Return after receiving")),
        steps=(
            "Accept the delivery when it arrives",
            "Initiate a return from your order page",
            "Print the prepaid return label",
            "Ship the item back to us",
            "Refund will be processed after we receive it",
        ),
        estimated_time="10-14 business days",
    ),
    ResolutionPath(
        id="cancel_shipped_keep",
        category=_C.CANCELLATION,
        kind=Kind.INFORMATION_PROVIDED,
        conditions=(_when("cancel_1", "yes"), _when("cancel_2", "Keep the order")),
        steps=(
            "No changes have been made to your order",
            "Tracking updates will continue to arrive by email",
        ),
        estimated_time="Immediate",
    ),
    _fallback(_C.CANCELLATION, "cancel_general_escalate", "Cancellation request requires manual handling", "24 hours"),
)

OTHER_PATHS = (
    _fallback(_C.OTHER, "other_escalate", "Issue does not fit predefined categories - requires human review"),
)

RESOLUTION_PATHS: dict[IssueCategory, tuple[ResolutionPath, ...]] = {
    _C.ORDER_STATUS: ORDER_STATUS_PATHS,
    _C.DELIVERY_PROBLEM: DELIVERY_PROBLEM_PATHS,
    _C.PAYMENT_ISSUE: PAYMENT_ISSUE_PATHS,
    _C.REFUND_REQUEST: REFUND_REQUEST_PATHS,
    _C.PRODUCT_DEFECT: PRODUCT_DEFECT_PATHS,
    _C.ACCOUNT_ACCESS: ACCOUNT_ACCESS_PATHS,
    _C.BILLING_INQUIRY: BILLING_INQUIRY_PATHS,
    _C.CANCELLATION: CANCELLATION_PATHS,
    _C.OTHER: OTHER_PATHS,
}


def validate_paths(
    table: Mapping[IssueCategory, tuple[ResolutionPath, ...]],
    trees: Mapping[IssueCategory, QuestionTree],
) -> None:
    seen_ids: set[str] = set()
    for category in IssueCategory:
        paths = table.get(category)
        if not paths:
            raise ConfigurationError(f"No resolution paths registered for {category.value}")
        if paths[-1].conditions:
            raise ConfigurationError(f"{category.value}: last path '{paths[-1].id}' must have no conditions")
        questions = trees[category].questions
        for path in paths:
            if path.category != category:
                raise ConfigurationError(f"Path '{path.id}' listed under {category.value} declares {path.category.value}")
            if path.id in seen_ids:
                raise ConfigurationError(f"Duplicate resolution path id '{path.id}'")
            seen_ids.add(path.id)
            for condition in path.conditions:
                if condition.question_id not in questions:
                    raise ConfigurationError(f"Path '{path.id}' references unknown question '{condition.question_id}'")
                expects_set = condition.operator == ConditionOperator.ONE_OF
                if expects_set != isinstance(condition.expected, tuple):
                    raise ConfigurationError(
                        f"Path '{path.id}': operator {condition.operator.value} got {type(condition.expected).__name__}"
                    )
