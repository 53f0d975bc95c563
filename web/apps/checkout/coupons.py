"""Coupon verification against the ``coupons`` table."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .domain import Coupon, RowNotFound, TablePort, TableError, TableUnavailable
from .pricing import coupon_discount, format_money, to_money
from .repository import COUPONS_TABLE

logger = logging.getLogger("checkout.coupons")


@dataclass(frozen=True)
class CouponResult:
    """Outcome of a coupon check.

    Attributes:
        valid: Whether the coupon may be applied.
        message: Text shown to the shopper either way.
        discount: Discount on the given order total (``None`` when no total
            was given or the coupon is invalid).
        coupon: The coupon row when it was found.
    """

    valid: bool
    message: str
    discount: Optional[Decimal] = None
    coupon: Optional[Coupon] = None


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def verify_coupon(
    tables: TablePort,
    code: str,
    order_total: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> CouponResult:
    """Check a coupon code and compute its discount.

    Checks run in order: the code exists, the coupon is active, it has not
    expired, and the order total reaches its minimum purchase (only when a
    total is given). Lookup failures are reported as an invalid result,
    never raised.

    Args:
        tables: Table port used to read the ``coupons`` table.
        code: Code as typed by the shopper; trimmed and upper-cased.
        order_total: Amount the discount applies to, usually the subtotal.
        now: Reference time for the expiry check (defaults to UTC now).

    Returns:
        CouponResult describing the outcome.
    """
    normalized = normalize_code(code)
    if not normalized:
        return CouponResult(False, "Please enter a coupon code")

    now = now or datetime.now(timezone.utc)
    try:
        row = tables.select(COUPONS_TABLE, filters={"code": normalized}, single=True)
        coupon = Coupon.from_row(row)
    except RowNotFound:
        return CouponResult(False, "Invalid coupon code")
    except TableUnavailable:
        logger.exception("coupon lookup failed", extra={"coupon_code": normalized})
        return CouponResult(False, "Error verifying coupon")
    except TableError as e:
        logger.warning("coupon lookup rejected", extra={"coupon_code": normalized, "error": e.message})
        return CouponResult(False, "Invalid coupon code")
    except (KeyError, ValueError):
        logger.exception("malformed coupon row", extra={"coupon_code": normalized})
        return CouponResult(False, "Error verifying coupon")

    if not coupon.is_active:
        return CouponResult(False, "This coupon is inactive", coupon=coupon)

    if coupon.is_expired(now):
        return CouponResult(False, "This coupon has expired", coupon=coupon)

    if order_total is not None and coupon.minimum_purchase and to_money(order_total) < coupon.minimum_purchase:
        return CouponResult(
            False,
            f"This coupon requires a minimum purchase of {format_money(coupon.minimum_purchase)}",
            coupon=coupon,
        )

    discount = coupon_discount(coupon, order_total) if order_total is not None else None
    return CouponResult(True, "Coupon applied successfully", discount=discount, coupon=coupon)
