"""Price arithmetic for checkout.

All amounts are ``Decimal`` values rounded half-up to cents. Fees are
store-wide constants; the coupon discount is computed against the cart
subtotal.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from .domain import CartItem, Coupon, DiscountType

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

EXPRESS_SHIPPING_FEE = Decimal("15.99")
STANDARD_SHIPPING_FEE = Decimal("7.99")
FREE_SHIPPING_THRESHOLD = Decimal("100")
GIFT_WRAPPING_FEE = Decimal("5.99")


def to_money(value: Any) -> Decimal:
    """Coerce a number (or numeric string) to a cents-rounded Decimal."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(value: Any) -> str:
    """Render an amount the way the storefront shows prices (``$1,234.50``)."""
    return f"${to_money(value):,.2f}"


def subtotal(items: Iterable[CartItem]) -> Decimal:
    return to_money(sum((i.line_total() for i in items), Decimal("0")))


def shipping_fee(order_subtotal: Decimal, express: bool) -> Decimal:
    """Express costs a flat fee; standard shipping is free above the threshold."""
    if express:
        return EXPRESS_SHIPPING_FEE
    return ZERO if order_subtotal > FREE_SHIPPING_THRESHOLD else STANDARD_SHIPPING_FEE


def gift_wrapping_fee(gift_wrapping: bool) -> Decimal:
    return GIFT_WRAPPING_FEE if gift_wrapping else ZERO


def coupon_discount(coupon: Coupon, order_total: Decimal) -> Decimal:
    """Discount granted by ``coupon`` on ``order_total``.

    Percentage coupons take that share of the total; fixed coupons take
    their value. The discount never exceeds the total it applies to.
    """
    order_total = to_money(order_total)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        amount = order_total * coupon.discount_value / Decimal("100")
    else:
        amount = coupon.discount_value
    return min(to_money(amount), order_total)


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    shipping_fee: Decimal
    gift_wrapping_fee: Decimal
    discount: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "shipping_fee": self.shipping_fee,
            "gift_wrapping_fee": self.gift_wrapping_fee,
            "discount": self.discount,
            "total": self.total,
        }


def breakdown(
    items: Iterable[CartItem],
    *,
    express_shipping: bool = False,
    gift_wrapping: bool = False,
    discount: Optional[Decimal] = None,
) -> PriceBreakdown:
    """Compute every derived amount shown on the checkout page.

    An empty cart totals zero whatever the options. Otherwise the total is
    subtotal plus shipping plus gift wrapping minus the discount, and is
    never negative.
    """
    items = list(items)
    sub = subtotal(items)
    ship = shipping_fee(sub, express_shipping)
    wrap = gift_wrapping_fee(gift_wrapping)
    disc = to_money(discount)
    if not items:
        total = ZERO
    else:
        total = max(to_money(sub + ship + wrap - disc), ZERO)
    return PriceBreakdown(subtotal=sub, shipping_fee=ship, gift_wrapping_fee=wrap, discount=disc, total=total)
