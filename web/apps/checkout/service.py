"""Checkout domain service.

``CheckoutService`` orchestrates the checkout steps over the table port:
load the shopper's addresses, price the cart, apply a coupon, and submit
the order (order row, then its items, then clearing the cart). It does no
HTTP handling of its own; views map its errors to responses.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .coupons import CouponResult, normalize_code, verify_coupon
from .delivery import check_delivery_choice
from .domain import (
    CheckoutForm,
    CheckoutValidationError,
    CouponRejected,
    Order,
    OrderNotFound,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
    TableError,
    TablePort,
    validate_checkout,
)
from .pricing import ZERO, PriceBreakdown, breakdown, subtotal
from .repository import AddressRepository, CartRepository, OrderRepository

logger = logging.getLogger("checkout.service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutService:
    """Domain service for the checkout flow.

    Args:
        tables: Port to the hosted tables.
        clock: Returns the current aware datetime; injected by tests.
    """

    def __init__(self, tables: TablePort, clock: Optional[Callable[[], datetime]] = None):
        self.tables = tables
        self.clock = clock or _utcnow
        self.addresses = AddressRepository(tables)
        self.orders = OrderRepository(tables)
        self.cart = CartRepository(tables)

    # ---- Addresses ----
    def load_addresses(self, user_id: str) -> Tuple[List[ShippingAddress], Optional[str]]:
        """Return the user's addresses and the one to preselect.

        The default address is preselected, else the first one, else none.
        """
        addresses = self.addresses.list_for_user(user_id)
        default = next((a for a in addresses if a.is_default), None)
        if default is not None:
            return addresses, default.id
        return addresses, (addresses[0].id if addresses else None)

    # ---- Coupons ----
    def apply_coupon(self, code: str, order_subtotal) -> CouponResult:
        """Verify ``code`` against the subtotal; only a positive discount applies.

        Raises:
            CouponRejected: With the message to show when it does not apply.
        """
        result = verify_coupon(self.tables, code, order_subtotal, now=self.clock())
        if not result.valid:
            raise CouponRejected(result.message)
        if not result.discount or result.discount <= ZERO:
            raise CouponRejected("This coupon does not apply to your order")
        return result

    # ---- Pricing ----
    def quote(self, form: CheckoutForm) -> Tuple[PriceBreakdown, Optional[CouponResult]]:
        """Price the form. An inapplicable coupon is reported, not applied."""
        result = None
        discount = ZERO
        if form.coupon_code:
            result = verify_coupon(self.tables, form.coupon_code, subtotal(form.items), now=self.clock())
            if result.valid and result.discount:
                discount = result.discount
        prices = breakdown(
            form.items,
            express_shipping=form.express_shipping,
            gift_wrapping=form.gift_wrapping,
            discount=discount,
        )
        return prices, result

    # ---- Orders ----
    def submit_order(self, form: CheckoutForm) -> Order:
        """Validate the form and create the order.

        Steps: validate the form and delivery slot, resolve the selected
        address among the user's, re-verify the coupon against the current
        subtotal, insert the order row, insert its items, clear the cart.
        If inserting the items fails the order row is deleted again before
        the error propagates.

        Returns:
            The created Order, with its items.

        Raises:
            CheckoutValidationError: When the form is incomplete.
            CouponRejected: When the coupon no longer applies.
            TableError: When a hosted table call fails.
        """
        validate_checkout(form)
        now = self.clock()
        problem = check_delivery_choice(form.delivery_date, form.delivery_time, now)
        if problem:
            raise CheckoutValidationError(problem)

        addresses, _ = self.load_addresses(form.user_id)
        address = next((a for a in addresses if a.id == form.address_id), None)
        if address is None:
            raise CheckoutValidationError("Please select a shipping address")

        discount = ZERO
        coupon_code = None
        if form.coupon_code:
            applied = self.apply_coupon(form.coupon_code, subtotal(form.items))
            discount = applied.discount
            coupon_code = normalize_code(form.coupon_code)

        prices = breakdown(
            form.items,
            express_shipping=form.express_shipping,
            gift_wrapping=form.gift_wrapping,
            discount=discount,
        )
        payment_status = (
            PaymentStatus.PENDING if form.payment_method == PaymentMethod.CASH_ON_DELIVERY else PaymentStatus.PAID
        )
        row = {
            "user_id": form.user_id,
            "total": float(prices.total),
            "status": OrderStatus.PENDING.value,
            "shipping_address": address.snapshot(),
            "payment_method": form.payment_method.value,
            "payment_status": payment_status.value,
            "delivery_date": form.delivery_date,
            "delivery_time": form.delivery_time,
            "gift_wrapping": form.gift_wrapping,
            "gift_note": form.gift_note,
            "special_instructions": form.special_instructions,
            "express_shipping": form.express_shipping,
            "shipping_fee": float(prices.shipping_fee),
            "gift_wrapping_fee": float(prices.gift_wrapping_fee),
            "coupon_code": coupon_code,
            "coupon_discount": float(prices.discount),
        }

        created = self.orders.create(row)
        order_id = str(created["id"])
        try:
            item_rows = self.orders.add_items(order_id, form.items)
        except Exception:
            logger.exception("order items insert failed, removing order", extra={"order_id": order_id})
            try:
                self.orders.delete(order_id)
            except TableError:
                logger.exception("order cleanup failed", extra={"order_id": order_id})
            raise

        try:
            self.cart.clear(form.user_id)
        except TableError:
            # the order stands even when the cart cannot be emptied
            logger.exception("cart clear failed after order", extra={"order_id": order_id})
        logger.info(
            "order submitted",
            extra={
                "order_id": order_id,
                "total": str(prices.total),
                "payment_method": form.payment_method.value,
                "card": form.card.masked() if form.payment_method == PaymentMethod.CREDIT_CARD else None,
            },
        )
        return Order.from_row({**row, **created}, item_rows)

    def get_order(self, user_id: str, order_id: str) -> Order:
        order = self.orders.get_for_user(user_id, order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order
