from __future__ import annotations

from dataclasses import dataclass

from .models import IssueCategory, Priority


@dataclass(frozen=True)
class CategoryInfo:
    category: IssueCategory
    display_name: str
    description: str
    keywords: tuple[str, ...]
    examples: tuple[str, ...]
    priority: Priority


CATEGORIES: dict[IssueCategory, CategoryInfo] = {
    info.category: info
    for info in (
        CategoryInfo(
            category=IssueCategory.ORDER_STATUS,
            display_name="Order Status",
            description="Questions about order tracking, shipping status, or delivery timeline",
            keywords=(
                "order",
                "tracking",
                "shipped",
                "delivery",
                "status",
                "where is",
                "when will",
                "arrive",
                "eta",
                "tracking number",
                "package",
            ),
            examples=(
                "Where is my order?",
                "When will my package arrive?",
                "Can I track my order?",
                "What is the status of order #12345?",
            ),
            priority="medium",
        ),
        CategoryInfo(
            category=IssueCategory.DELIVERY_PROBLEM,
            display_name="Delivery Problem",
            description="Issues with delivery such as delays, wrong address, or failed delivery",
            keywords=(
                "delivery",
                "delayed",
                "late",
                "wrong address",
                "not delivered",
                "missing",
                "lost",
                "damaged",
                "failed delivery",
                "courier",
            ),
            examples=(
                "My package is delayed",
                "Delivery to wrong address",
                "Package not delivered",
                "My order is lost",
            ),
            priority="high",
        ),
        CategoryInfo(
            category=IssueCategory.PAYMENT_ISSUE,
            display_name="Payment Issue",
            description="Problems with payment processing, charges, or payment methods",
            keywords=(
                "payment",
                "charged",
                "credit card",
                "declined",
                "failed",
                "double charged",
                "billing",
                "transaction",
                "pay",
                "charge",
            ),
            examples=(
                "My payment was declined",
                "I was charged twice",
                "Payment not going through",
                "Wrong amount charged",
            ),
            priority="high",
        ),
        CategoryInfo(
            category=IssueCategory.REFUND_REQUEST,
            display_name="Refund Request",
            description="Requests for refunds or questions about refund status",
            keywords=(
                "refund",
                "money back",
                "return",
                "reimbursement",
                "refund status",
                "when will i get",
                "refund policy",
                "get my money",
            ),
            examples=(
                "I want a refund",
                "When will I get my refund?",
                "How do I request a refund?",
                "Refund not received",
            ),
            priority="high",
        ),
        CategoryInfo(
            category=IssueCategory.PRODUCT_DEFECT,
            display_name="Product Defect",
            description="Issues with product quality, defects, or wrong item received",
            keywords=(
                "defective",
                "broken",
                "damaged",
                "wrong item",
                "not working",
                "faulty",
                "quality",
                "defect",
                "incorrect",
                "different",
            ),
            examples=(
                "Product is defective",
                "Received wrong item",
                "Item is broken",
                "Product not as described",
            ),
            priority="high",
        ),
        CategoryInfo(
            category=IssueCategory.ACCOUNT_ACCESS,
            display_name="Account Access",
            description="Problems accessing account, login issues, or password reset",
            keywords=(
                "login",
                "password",
                "account",
                "access",
                "locked",
                "reset",
                "forgot password",
                "cant login",
                "sign in",
                "username",
            ),
            examples=(
                "Cannot login to my account",
                "Forgot my password",
                "Account is locked",
                "Need to reset password",
            ),
            priority="medium",
        ),
        CategoryInfo(
            category=IssueCategory.BILLING_INQUIRY,
            display_name="Billing Inquiry",
            description="Questions about invoices, billing statements, or charges",
            keywords=(
                "invoice",
                "bill",
                "statement",
                "receipt",
                "billing",
                "charge details",
                "invoice copy",
                "billing history",
            ),
            examples=(
                "Need a copy of my invoice",
                "Question about my bill",
                "Billing statement incorrect",
                "Where is my receipt?",
            ),
            priority="low",
        ),
        CategoryInfo(
            category=IssueCategory.CANCELLATION,
            display_name="Order Cancellation",
            description="Requests to cancel orders or questions about cancellation",
            keywords=(
                "cancel",
                "cancellation",
                "cancel order",
                "dont want",
                "stop order",
                "cancel my order",
                "cancel subscription",
            ),
            examples=(
                "I want to cancel my order",
                "How do I cancel?",
                "Can I cancel my order?",
                "Need to cancel order #12345",
            ),
            priority="high",
        ),
        CategoryInfo(
            category=IssueCategory.OTHER,
            display_name="Other",
            description="Issues that do not fit into predefined categories",
            keywords=("other", "general", "question", "help", "support", "inquiry"),
            examples=(
                "General question",
                "Need help with something else",
                "Other issue",
            ),
            priority="medium",
        ),
    )
}


@dataclass(frozen=True)
class MenuGroup:
    id: str
    label: str
    description: str
    categories: tuple[IssueCategory, ...]


# Top-level choices offered when a guided conversation starts without a category.
MAIN_MENU: tuple[MenuGroup, ...] = (
    MenuGroup(
        id="orders",
        label="Orders & Delivery",
        description="Track orders, delivery issues, or shipping questions",
        categories=(IssueCategory.ORDER_STATUS, IssueCategory.DELIVERY_PROBLEM, IssueCategory.CANCELLATION),
    ),
    MenuGroup(
        id="payments",
        label="Payments & Refunds",
        description="Payment issues, refunds, or billing questions",
        categories=(IssueCategory.PAYMENT_ISSUE, IssueCategory.REFUND_REQUEST, IssueCategory.BILLING_INQUIRY),
    ),
    MenuGroup(
        id="products",
        label="Products & Quality",
        description="Product defects, wrong items, or quality concerns",
        categories=(IssueCategory.PRODUCT_DEFECT,),
    ),
    MenuGroup(
        id="account",
        label="Account & Access",
        description="Login issues, password reset, or account problems",
        categories=(IssueCategory.ACCOUNT_ACCESS,),
    ),
    MenuGroup(
        id="other",
        label="Something Else",
        description="Other questions or issues",
        categories=(IssueCategory.OTHER,),
    ),
)


def category_info(category: IssueCategory) -> CategoryInfo:
    return CATEGORIES[category]


def display_name(category: IssueCategory) -> str:
    return CATEGORIES[category].display_name


def menu_group(group_id: str) -> MenuGroup | None:
    for group in MAIN_MENU:
        if group.id == group_id:
            return group
    return None


def parse_category(value: str) -> IssueCategory | None:
    """Accepts an enum name ("ORDER_STATUS") or a display name ("Order Status")."""
    cleaned = value.strip()
    try:
        return IssueCategory(cleaned.upper())
    except ValueError:
        pass
    lowered = cleaned.lower()
    for info in CATEGORIES.values():
        if info.display_name.lower() == lowered:
            return info.category
    return None
