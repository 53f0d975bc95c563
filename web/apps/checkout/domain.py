"""Domain types, ports and errors for the storefront checkout.

The records in this module mirror rows of the hosted database tables
(``shipping_addresses``, ``coupons``, ``orders``, ``order_items``) one to
one. They carry no persistence logic: reading and writing rows goes through
the ``TablePort`` protocol, implemented over HTTP in ``tables`` and in
memory in ``adapters``.
"""

from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Protocol

from django.utils.dateparse import parse_date, parse_datetime


# ---- Enums ----
class PaymentMethod(str, Enum):
    """Payment methods offered at checkout."""

    CREDIT_CARD = "credit_card"
    CASH_ON_DELIVERY = "cash_on_delivery"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderStatus(str, Enum):
    """Order lifecycle values.

    Checkout only ever writes ``PENDING``; every other transition is made by
    the back office against the hosted database.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    COMPLETED = "completed"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


# ---- Errors ----
class CheckoutValidationError(ValueError):
    """The checkout form is incomplete; ``str(err)`` is shown to the shopper."""


class CouponRejected(ValueError):
    """A coupon could not be applied; ``str(err)`` is shown to the shopper."""


class ReviewNotAllowed(ValueError):
    """The shopper may not review this product."""


class OrderNotFound(LookupError):
    pass


class TableError(Exception):
    """A hosted table call failed.

    Attributes:
        message: Error message reported by the table API (or transport).
        code: Database/API error code when provided (e.g. ``23505``).
        status: HTTP status code of the failed call, if any.
    """

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class RowNotFound(TableError):
    """A single-row select matched no row."""


class TableUnavailable(TableError):
    """The table API could not be reached (transport error, 5xx, open circuit)."""


def _dec(value: Any) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO date or timestamp column into an aware datetime (UTC if naive)."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value)
        dt = parse_datetime(text)
        if dt is None:
            day = parse_date(text)
            if day is None:
                raise ValueError(f"Invalid timestamp: {text!r}")
            dt = datetime.combine(day, time.min)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class CartItem:
    """A cart line as presented at checkout.

    Attributes:
        product_id: Product being bought.
        name: Product display name, copied into the order item.
        price: Unit price after any sale applied by the cart.
        quantity: Units bought (at least 1).
        id: Cart row id, when the line comes from ``cart_items``.
        variation_id: Selected variation, if any.
        variation_name: Display name of the variation, if any.
    """

    product_id: str
    name: str
    price: Decimal
    quantity: int
    id: Optional[str] = None
    variation_id: Optional[str] = None
    variation_name: Optional[str] = None
    image: Optional[str] = None

    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class ShippingAddress:
    id: str
    user_id: str
    name: str
    street: str
    city: str
    state: str
    zipcode: str
    country: str
    is_default: bool = False

    @classmethod
    def from_row(cls, row: dict) -> "ShippingAddress":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=row.get("name") or "",
            street=row.get("street") or "",
            city=row.get("city") or "",
            state=row.get("state") or "",
            zipcode=row.get("zipcode") or "",
            country=row.get("country") or "",
            is_default=bool(row.get("is_default", False)),
        )

    def snapshot(self) -> dict:
        """Address fields copied onto the order row."""
        return {
            "name": self.name,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zipcode": self.zipcode,
            "country": self.country,
        }


@dataclass
class CardDetails:
    card_number: str = ""
    card_name: str = ""
    expiry_date: str = ""
    cvv: str = ""

    def masked(self) -> str:
        digits = self.card_number.replace(" ", "")
        return f"**** {digits[-4:]}" if digits else ""


@dataclass(frozen=True)
class Coupon:
    """A row of the ``coupons`` table."""

    id: Optional[str]
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    is_active: bool = True
    minimum_purchase: Optional[Decimal] = None
    expiry_date: Optional[datetime] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "Coupon":
        minimum = row.get("minimum_purchase")
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            code=row["code"],
            discount_type=DiscountType(row["discount_type"]),
            discount_value=_dec(row.get("discount_value")),
            is_active=bool(row.get("is_active", False)),
            minimum_purchase=_dec(minimum) if minimum not in (None, "") else None,
            expiry_date=parse_timestamp(row.get("expiry_date")),
            created_at=row.get("created_at"),
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_date is not None and self.expiry_date < now


@dataclass
class CheckoutForm:
    """Everything the shopper chose on the checkout page."""

    user_id: str
    items: List[CartItem]
    address_id: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD
    card: CardDetails = field(default_factory=CardDetails)
    delivery_date: str = ""
    delivery_time: str = ""
    gift_wrapping: bool = False
    gift_note: str = ""
    special_instructions: str = ""
    express_shipping: bool = False
    coupon_code: Optional[str] = None


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    product_name: str
    quantity: int
    price: Decimal
    variation_id: Optional[str] = None
    variation_name: Optional[str] = None
    id: Optional[str] = None
    order_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "OrderItem":
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            order_id=str(row["order_id"]) if row.get("order_id") is not None else None,
            product_id=str(row["product_id"]),
            product_name=row.get("product_name") or "",
            variation_id=row.get("variation_id"),
            variation_name=row.get("variation_name"),
            quantity=int(row.get("quantity") or 0),
            price=_dec(row.get("price")),
        )


@dataclass
class Order:
    """An ``orders`` row together with its ``order_items``.

    ``status`` and ``payment_status`` are kept as raw strings because the
    back office may write values this service does not know about.
    """

    id: str
    user_id: str
    status: str
    total: Decimal
    payment_method: Optional[str]
    payment_status: str
    shipping_address: Optional[dict] = None
    delivery_date: Optional[str] = None
    delivery_time: Optional[str] = None
    gift_wrapping: bool = False
    gift_note: Optional[str] = None
    special_instructions: Optional[str] = None
    express_shipping: bool = False
    shipping_fee: Decimal = Decimal("0")
    gift_wrapping_fee: Decimal = Decimal("0")
    coupon_code: Optional[str] = None
    coupon_discount: Decimal = Decimal("0")
    created_at: Optional[str] = None
    items: List[OrderItem] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict, items: Optional[List[dict]] = None) -> "Order":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            status=row.get("status") or OrderStatus.PENDING.value,
            total=_dec(row.get("total")),
            payment_method=row.get("payment_method"),
            payment_status=row.get("payment_status") or PaymentStatus.PENDING.value,
            shipping_address=row.get("shipping_address"),
            delivery_date=row.get("delivery_date"),
            delivery_time=row.get("delivery_time"),
            gift_wrapping=bool(row.get("gift_wrapping", False)),
            gift_note=row.get("gift_note"),
            special_instructions=row.get("special_instructions"),
            express_shipping=bool(row.get("express_shipping", False)),
            shipping_fee=_dec(row.get("shipping_fee")),
            gift_wrapping_fee=_dec(row.get("gift_wrapping_fee")),
            coupon_code=row.get("coupon_code"),
            coupon_discount=_dec(row.get("coupon_discount")),
            created_at=row.get("created_at"),
            items=[OrderItem.from_row(r) for r in (items or [])],
        )

    def has_product(self, product_id: str) -> bool:
        return any(i.product_id == product_id for i in self.items)


# ---- Ports (DIP) ----
class TablePort(Protocol):
    """Port for the hosted relational table API.

    Filters are equality filters (``{"user_id": uid}``). ``order`` uses the
    ``column.asc`` / ``column.desc`` notation, comma separated for several
    columns. Failures raise ``TableError``; a ``single`` select matching no
    row raises ``RowNotFound``.
    """

    def select(
        self,
        table: str,
        *,
        filters: Optional[dict] = None,
        order: Optional[str] = None,
        single: bool = False,
    ) -> Any:
        """Return the matching rows, or the one matching row when ``single``."""
        raise NotImplementedError()

    def insert(self, table: str, rows: "dict | List[dict]") -> List[dict]:
        """Insert one or many rows and return them as stored."""
        raise NotImplementedError()

    def update(self, table: str, values: dict, *, filters: dict) -> List[dict]:
        """Update the matching rows and return them as stored."""
        raise NotImplementedError()

    def delete(self, table: str, *, filters: dict) -> None:
        raise NotImplementedError()


# ---- Validation ----
def validate_checkout(form: CheckoutForm) -> None:
    """Check the form the way the checkout page does before submitting.

    The first failing rule wins.

    Raises:
        CheckoutValidationError: With the message to show the shopper.
    """
    if not form.items:
        raise CheckoutValidationError("Your cart is empty")

    if not form.address_id:
        raise CheckoutValidationError("Please select a shipping address")

    if form.payment_method == PaymentMethod.CREDIT_CARD:
        card = form.card
        if not card.card_number or len(card.card_number.replace(" ", "")) < 16:
            raise CheckoutValidationError("Please enter a valid card number")
        if not card.card_name:
            raise CheckoutValidationError("Please enter the cardholder name")
        if not card.expiry_date or len(card.expiry_date) < 5:
            raise CheckoutValidationError("Please enter a valid expiry date")
        if not card.cvv or len(card.cvv) < 3:
            raise CheckoutValidationError("Please enter a valid CVV code")

    if not form.delivery_date:
        raise CheckoutValidationError("Please select a delivery date")
    if not form.delivery_time:
        raise CheckoutValidationError("Please select a delivery time")
