"""Product reviews left from an order's details page."""

from datetime import datetime, timezone
from typing import Callable, Optional, Set

from .domain import Order, OrderStatus, ReviewNotAllowed, TablePort
from .repository import ReviewRepository

REVIEWABLE_STATUSES = {OrderStatus.COMPLETED.value, OrderStatus.DELIVERED.value}


class ReviewService:
    def __init__(self, tables: TablePort, clock: Optional[Callable[[], datetime]] = None):
        self.reviews = ReviewRepository(tables)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def reviewed_product_ids(self, user_id: str) -> Set[str]:
        return {str(r["product_id"]) for r in self.reviews.list_for_user(user_id)}

    def submit(self, order: Order, user_id: str, username: Optional[str], product_id: str, rating: int, text: str) -> dict:
        """Review a product bought in ``order``.

        Only the order's owner may review, only once the order is completed
        or delivered, only products in the order, and once per product.

        Raises:
            ReviewNotAllowed: With the message to show the shopper.
        """
        if order.user_id != user_id or order.status not in REVIEWABLE_STATUSES:
            raise ReviewNotAllowed("You can only review products from your completed orders")
        if not order.has_product(product_id):
            raise ReviewNotAllowed("You can only review products you have purchased")
        if product_id in self.reviewed_product_ids(user_id):
            raise ReviewNotAllowed("You have already reviewed this product")

        return self.reviews.create({
            "product_id": product_id,
            "user_id": user_id,
            "username": username or "Anonymous",
            "rating": rating,
            "text": text,
            "created_at": self.clock().isoformat(),
        })
