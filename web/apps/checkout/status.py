"""Display lookups for viewing an order.

Order and payment statuses are written by the back office; anything this
module does not know is still shown, capitalized as-is.
"""

from datetime import datetime
from typing import List, Optional

from .domain import Order, PaymentMethod, parse_timestamp

STATUS_TONES = {
    "pending": "warning",
    "processing": "info",
    "shipped": "info",
    "delivered": "success",
    "completed": "success",
    "cancelled": "danger",
}

PAYMENT_METHOD_TEXT = {
    PaymentMethod.CREDIT_CARD.value: "Credit / Debit Card",
    PaymentMethod.CASH_ON_DELIVERY.value: "Cash on Delivery",
}

TIMELINE_STEPS = (
    ("pending", "Order Placed"),
    ("processing", "Processing"),
    ("shipped", "Shipped"),
    ("delivered", "Delivered"),
)


def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:]


def status_label(status: str) -> str:
    return _capitalize(status or "")


def status_tone(status: str) -> str:
    return STATUS_TONES.get(status, "neutral")


def payment_status_label(payment_status: str) -> str:
    return _capitalize(payment_status or "")


def payment_method_text(payment_method: Optional[str]) -> str:
    if not payment_method:
        return "Not specified"
    if payment_method in PAYMENT_METHOD_TEXT:
        return PAYMENT_METHOD_TEXT[payment_method]
    return " ".join(_capitalize(w) for w in payment_method.replace("_", " ").split(" "))


def format_long_date(value) -> str:
    """``2025-03-05`` -> ``March 5, 2025``."""
    dt = value if isinstance(value, datetime) else parse_timestamp(value)
    return f"{dt:%B} {dt.day}, {dt.year}"


def delivery_date_text(order: Order) -> str:
    if order.delivery_date:
        return format_long_date(order.delivery_date)
    return "Not specified"


def status_timeline(order: Order) -> List[dict]:
    """Timeline steps with the current one marked.

    Statuses outside the timeline (cancelled, returned, ...) pin the
    timeline to its first step.
    """
    statuses = [s for s, _ in TIMELINE_STEPS]
    current = statuses.index(order.status) if order.status in statuses else 0
    steps = []
    for index, (status, label) in enumerate(TIMELINE_STEPS):
        step = {
            "status": status,
            "label": label,
            "complete": index < current,
            "current": index == current,
        }
        if index == 0 and order.created_at:
            step["date"] = format_long_date(order.created_at)
        steps.append(step)
    return steps


def order_display(order: Order) -> dict:
    """Every derived display field of the order details page."""
    return {
        "status_label": status_label(order.status),
        "status_tone": status_tone(order.status),
        "payment_method_text": payment_method_text(order.payment_method),
        "payment_status_label": payment_status_label(order.payment_status),
        "delivery_date_text": delivery_date_text(order),
        "timeline": status_timeline(order),
    }
