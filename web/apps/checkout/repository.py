"""Repositories over the hosted tables.

Each repository maps rows of one table to domain records and back. They
hold no state besides the table port, so the domain service can be wired
with the HTTP client or the in-memory tables alike.
"""

from typing import List, Optional

from .domain import (
    CartItem,
    Coupon,
    Order,
    RowNotFound,
    ShippingAddress,
    TableError,
    TablePort,
)
from .pricing import to_money

ADDRESSES_TABLE = "shipping_addresses"
CART_TABLE = "cart_items"
COUPONS_TABLE = "coupons"
ORDERS_TABLE = "orders"
ORDER_ITEMS_TABLE = "order_items"
REVIEWS_TABLE = "reviews"

# unique_violation, as reported by the database behind the table API
UNIQUE_VIOLATION = "23505"


class AddressRepository:
    def __init__(self, tables: TablePort):
        self.tables = tables

    def list_for_user(self, user_id: str) -> List[ShippingAddress]:
        """Addresses of ``user_id``, the default one first."""
        rows = self.tables.select(ADDRESSES_TABLE, filters={"user_id": user_id}, order="is_default.desc")
        return [ShippingAddress.from_row(r) for r in rows or []]


class CartRepository:
    def __init__(self, tables: TablePort):
        self.tables = tables

    def clear(self, user_id: str) -> None:
        self.tables.delete(CART_TABLE, filters={"user_id": user_id})


class OrderRepository:
    """Writes and reads ``orders`` and ``order_items`` rows."""

    def __init__(self, tables: TablePort):
        self.tables = tables

    def create(self, row: dict) -> dict:
        """Insert an order row and return it as stored (with its id).

        Raises:
            TableError: When the insert returns no row.
        """
        created = self.tables.insert(ORDERS_TABLE, row)
        if not created:
            raise TableError("Failed to create order")
        return created[0]

    def add_items(self, order_id: str, items: List[CartItem]) -> List[dict]:
        """Insert one ``order_items`` row per cart line; no call for an empty list."""
        rows = [
            {
                "order_id": order_id,
                "product_id": i.product_id,
                "product_name": i.name,
                "variation_id": i.variation_id or None,
                "variation_name": i.variation_name or None,
                "quantity": i.quantity,
                "price": float(to_money(i.price)),
            }
            for i in items
        ]
        if not rows:
            return []
        return self.tables.insert(ORDER_ITEMS_TABLE, rows)

    def delete(self, order_id: str) -> None:
        self.tables.delete(ORDERS_TABLE, filters={"id": order_id})

    def get_for_user(self, user_id: str, order_id: str) -> Optional[Order]:
        """Order ``order_id`` with its items, or None when the user does not own it."""
        try:
            row = self.tables.select(ORDERS_TABLE, filters={"id": order_id, "user_id": user_id}, single=True)
        except RowNotFound:
            return None
        items = self.tables.select(ORDER_ITEMS_TABLE, filters={"order_id": order_id})
        return Order.from_row(row, items or [])


def _is_duplicate(e: TableError) -> bool:
    return e.code == UNIQUE_VIOLATION or "duplicate" in (e.message or "")


def _duplicate_code(values: dict) -> ValueError:
    code = values.get("code")
    if code:
        return ValueError(f'Coupon code "{code}" already exists.')
    return ValueError("Coupon code already exists.")


class CouponRepository:
    """Back-office management of the ``coupons`` table."""

    def __init__(self, tables: TablePort):
        self.tables = tables

    def list(self) -> List[Coupon]:
        rows = self.tables.select(COUPONS_TABLE, order="created_at.desc")
        return [Coupon.from_row(r) for r in rows or []]

    def create(self, values: dict) -> Coupon:
        """Create a coupon.

        Raises:
            ValueError: When the code is already taken.
            TableError: For any other table failure.
        """
        try:
            rows = self.tables.insert(COUPONS_TABLE, values)
        except TableError as e:
            if _is_duplicate(e):
                raise _duplicate_code(values) from e
            raise
        return Coupon.from_row(rows[0])

    def get(self, coupon_id: str) -> Coupon:
        """Raises ``RowNotFound`` when no coupon has this id."""
        return Coupon.from_row(self.tables.select(COUPONS_TABLE, filters={"id": coupon_id}, single=True))

    def update(self, coupon_id: str, values: dict) -> Coupon:
        """Update a coupon.

        Raises:
            ValueError: When the update collides with another coupon's code.
            RowNotFound: When no coupon has this id.
        """
        try:
            rows = self.tables.update(COUPONS_TABLE, values, filters={"id": coupon_id})
        except TableError as e:
            if _is_duplicate(e):
                raise _duplicate_code(values) from e
            raise
        if not rows:
            raise RowNotFound("Coupon not found", code="PGRST116", status=404)
        return Coupon.from_row(rows[0])

    def set_active(self, coupon_id: str, is_active: bool) -> Coupon:
        return self.update(coupon_id, {"is_active": is_active})

    def delete(self, coupon_id: str) -> None:
        self.tables.delete(COUPONS_TABLE, filters={"id": coupon_id})


class ReviewRepository:
    def __init__(self, tables: TablePort):
        self.tables = tables

    def list_for_user(self, user_id: str) -> List[dict]:
        return self.tables.select(REVIEWS_TABLE, filters={"user_id": user_id}) or []

    def create(self, row: dict) -> dict:
        rows = self.tables.insert(REVIEWS_TABLE, row)
        return rows[0] if rows else row
