"""HTTP views for the checkout app.

Views are kept small: they validate requests (via Pydantic), map them to
domain records, delegate to the services obtained from ``providers`` and
turn the outcome into a response. Table failures never leak their details:
they are logged and answered with the generic message for the step.

Idempotency: when an ``Idempotency-Key`` header is sent with an order
submission, the first request is processed and its response stored;
retries with the same payload get the stored response back (with an
``Idempotent-Replay: true`` header). Reusing the key with a different
payload returns HTTP 409.
"""

import logging

from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny, BasePermission, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .delivery import (
    available_delivery_dates,
    available_delivery_times,
    default_delivery_date,
    default_delivery_time,
)
from .domain import (
    CheckoutValidationError,
    Coupon,
    CouponRejected,
    Order,
    OrderNotFound,
    PaymentMethod,
    ReviewNotAllowed,
    RowNotFound,
    TableError,
)
from .idempotency import finalize, get_or_create_idempotent
from .pricing import to_money
from .providers import get_checkout_service, get_review_service, get_tables
from .repository import CouponRepository
from .schemas import CheckoutIn, CouponCheckIn, CouponIn, CouponPatchIn, QuoteIn, ReviewIn
from .status import order_display

logger = logging.getLogger("checkout.views")

SUBMIT_FAILED = "Failed to submit order. Please try again."
ADDRESSES_FAILED = "Failed to load addresses. Please try again."
ORDER_FAILED = "Failed to load order details. Please try again."


def _money(value) -> str:
    return str(to_money(value))


def _validation_detail(e: ValidationError) -> str:
    errors = e.errors()
    if not errors:
        return str(e)
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return f"{loc}: {first.get('msg')}" if loc else first.get("msg", str(e))


def order_body(order: Order) -> dict:
    """Response body for an order, with its items and display fields."""
    return {
        "id": order.id,
        "status": order.status,
        "total": _money(order.total),
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "shipping_address": order.shipping_address,
        "delivery_date": order.delivery_date,
        "delivery_time": order.delivery_time,
        "gift_wrapping": order.gift_wrapping,
        "gift_note": order.gift_note,
        "special_instructions": order.special_instructions,
        "express_shipping": order.express_shipping,
        "shipping_fee": _money(order.shipping_fee),
        "gift_wrapping_fee": _money(order.gift_wrapping_fee),
        "coupon_code": order.coupon_code,
        "coupon_discount": _money(order.coupon_discount),
        "created_at": order.created_at,
        "items": [
            {
                "id": i.id,
                "product_id": i.product_id,
                "product_name": i.product_name,
                "variation_id": i.variation_id,
                "variation_name": i.variation_name,
                "quantity": i.quantity,
                "price": _money(i.price),
            }
            for i in order.items
        ],
        "display": order_display(order),
    }


class CheckoutPingView(APIView):
    """Liveness endpoint for the checkout module."""

    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        return Response({"ok": True})


class CheckoutOptionsView(APIView):
    """Everything the checkout page offers before the shopper chooses.

    Returns the shopper's addresses with the preselected one, the delivery
    dates and slots with their defaults, and the payment methods.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout_read"

    def get(self, request):
        service = get_checkout_service(request.user.access_token)
        try:
            addresses, selected = service.load_addresses(request.user.id)
        except TableError:
            logger.exception("loading addresses failed")
            return Response({"detail": ADDRESSES_FAILED}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        now = service.clock()
        default_date = default_delivery_date(now.date())
        return Response(
            {
                "addresses": [
                    {
                        "id": a.id,
                        "name": a.name,
                        "street": a.street,
                        "city": a.city,
                        "state": a.state,
                        "zipcode": a.zipcode,
                        "country": a.country,
                        "is_default": a.is_default,
                    }
                    for a in addresses
                ],
                "selected_address_id": selected,
                "delivery_dates": available_delivery_dates(now.date()),
                "delivery_times": available_delivery_times(default_date, now),
                "default_delivery_date": default_date,
                "default_delivery_time": default_delivery_time(),
                "payment_methods": [m.value for m in PaymentMethod],
            }
        )


class QuoteView(APIView):
    """Price breakdown for a cart and its options."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout_read"

    def post(self, request):
        try:
            dto = QuoteIn.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": _validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)

        service = get_checkout_service(request.user.access_token)
        form = CheckoutIn(**dto.model_dump()).to_form(request.user.id)
        prices, coupon = service.quote(form)
        body = {k: _money(v) for k, v in prices.as_dict().items()}
        if coupon is not None:
            body["coupon"] = {"valid": coupon.valid, "message": coupon.message}
        return Response(body)


class CouponView(APIView):
    """Verify a coupon code against the cart subtotal."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "coupon_verify"

    def post(self, request):
        try:
            dto = CouponCheckIn.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": _validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)
        if not dto.code.strip():
            return Response({"detail": "Please enter a coupon code"}, status=status.HTTP_400_BAD_REQUEST)

        service = get_checkout_service(request.user.access_token)
        try:
            result = service.apply_coupon(dto.code, dto.subtotal)
        except CouponRejected as e:
            return Response({"detail": str(e)}, status=status.HTTP_422_UNPROCESSABLE_ENTITY)
        return Response(
            {
                "valid": True,
                "code": result.coupon.code,
                "message": result.message,
                "discount": _money(result.discount),
            }
        )


class OrdersCollectionView(APIView):
    """Submit an order.

    Responses:
        - 201 with the created order.
        - 200 with the stored body when an idempotent retry is replayed.
        - 400 with the validation message for an incomplete form.
        - 409 ``IDEMPOTENCY_CONFLICT`` / ``IDEMPOTENCY_IN_PROGRESS``.
        - 422 when the coupon no longer applies.
        - 503 with the generic message when a table call fails.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout_submit"

    def post(self, request):
        idem_key = request.headers.get("Idempotency-Key")
        user = request.user

        try:
            dto = CheckoutIn.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": _validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)

        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, user.id, request.data)
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                if not rec.response_status:
                    return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        service = get_checkout_service(user.access_token)
        order_id = None
        try:
            order = service.submit_order(dto.to_form(user.id))
        except CheckoutValidationError as e:
            status_code, body = status.HTTP_400_BAD_REQUEST, {"detail": str(e)}
        except CouponRejected as e:
            status_code, body = status.HTTP_422_UNPROCESSABLE_ENTITY, {"detail": str(e)}
        except TableError:
            logger.exception("order submission failed")
            status_code, body = status.HTTP_503_SERVICE_UNAVAILABLE, {"detail": SUBMIT_FAILED}
        except Exception:
            # any outcome must be stored, or the key stays in progress
            logger.exception("order submission failed unexpectedly")
            status_code, body = status.HTTP_503_SERVICE_UNAVAILABLE, {"detail": SUBMIT_FAILED}
        else:
            order_id = order.id
            status_code, body = status.HTTP_201_CREATED, order_body(order)

        if rec:
            finalize(rec, status_code, body, order_id=order_id)
        return Response(body, status=status_code)


class OrderDetailView(APIView):
    """One of the shopper's orders, for the confirmation and details pages."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout_read"

    def get(self, request, oid: str):
        service = get_checkout_service(request.user.access_token)
        try:
            order = service.get_order(request.user.id, str(oid))
        except OrderNotFound:
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        except TableError:
            logger.exception("loading order failed", extra={"order_id": str(oid)})
            return Response({"detail": ORDER_FAILED}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        body = order_body(order)
        try:
            reviewed = get_review_service(request.user.access_token).reviewed_product_ids(request.user.id)
        except TableError:
            # the order is still shown, without review markers
            logger.exception("loading reviews failed", extra={"order_id": str(oid)})
            return Response(body)
        for item in body["items"]:
            item["reviewed"] = item["product_id"] in reviewed
        return Response(body)


class OrderReviewView(APIView):
    """Review a product of a completed order."""

    def post(self, request, oid: str):
        try:
            dto = ReviewIn.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": _validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)

        user = request.user
        try:
            order = get_checkout_service(user.access_token).get_order(user.id, str(oid))
            review = get_review_service(user.access_token).submit(
                order, user.id, user.full_name, dto.product_id, dto.rating, dto.text
            )
        except OrderNotFound:
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        except ReviewNotAllowed as e:
            return Response({"detail": str(e)}, status=status.HTTP_403_FORBIDDEN)
        except TableError:
            logger.exception("review submission failed", extra={"order_id": str(oid)})
            return Response({"detail": "Failed to submit review"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(review, status=status.HTTP_201_CREATED)


# ---------------- Back-office coupons ---------------- #

class IsStoreAdmin(BasePermission):
    """Only shoppers whose hosted profile carries the admin role."""

    message = "Admin access required."

    def has_permission(self, request, view):
        return bool(getattr(request.user, "is_authenticated", False) and getattr(request.user, "is_admin", False))


def coupon_body(coupon: Coupon) -> dict:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "discount_type": coupon.discount_type,
        "discount_value": _money(coupon.discount_value),
        "minimum_purchase": _money(coupon.minimum_purchase) if coupon.minimum_purchase is not None else None,
        "expiry_date": coupon.expiry_date.isoformat() if coupon.expiry_date else None,
        "is_active": coupon.is_active,
    }


class CouponsAdminView(APIView):
    """List coupons (newest first) and create new ones."""

    permission_classes = [IsAuthenticated, IsStoreAdmin]

    def get(self, request):
        try:
            coupons = CouponRepository(get_tables(request.user.access_token)).list()
        except TableError:
            logger.exception("loading coupons failed")
            return Response({"detail": "Failed to load coupons"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response([coupon_body(c) for c in coupons])

    def post(self, request):
        try:
            dto = CouponIn.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": _validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)
        try:
            coupon = CouponRepository(get_tables(request.user.access_token)).create(dto.to_row())
        except ValueError as e:
            return Response({"detail": str(e)}, status=status.HTTP_409_CONFLICT)
        except TableError:
            logger.exception("creating coupon failed", extra={"code": dto.code})
            return Response({"detail": "Failed to save coupon"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        logger.info("coupon created", extra={"code": coupon.code})
        return Response(coupon_body(coupon), status=status.HTTP_201_CREATED)


class CouponAdminDetailView(APIView):
    """Edit or delete one coupon. The code itself is immutable."""

    permission_classes = [IsAuthenticated, IsStoreAdmin]

    def patch(self, request, cid: str):
        try:
            dto = CouponPatchIn.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": _validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)
        values = dto.to_row()
        if not values:
            return Response({"detail": "Nothing to update"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            coupon = CouponRepository(get_tables(request.user.access_token)).update(str(cid), values)
        except RowNotFound:
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        except ValueError as e:
            return Response({"detail": str(e)}, status=status.HTTP_409_CONFLICT)
        except TableError:
            logger.exception("updating coupon failed", extra={"coupon_id": str(cid)})
            return Response({"detail": "Failed to save coupon"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(coupon_body(coupon))

    def delete(self, request, cid: str):
        try:
            CouponRepository(get_tables(request.user.access_token)).delete(str(cid))
        except TableError:
            logger.exception("deleting coupon failed", extra={"coupon_id": str(cid)})
            return Response({"detail": "Failed to delete coupon"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        logger.info("coupon deleted", extra={"coupon_id": str(cid)})
        return Response(status=status.HTTP_204_NO_CONTENT)


class CouponToggleView(APIView):
    permission_classes = [IsAuthenticated, IsStoreAdmin]

    def post(self, request, cid: str):
        repo = CouponRepository(get_tables(request.user.access_token))
        try:
            current = repo.get(str(cid))
            coupon = repo.set_active(current.id, not current.is_active)
        except RowNotFound:
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        except TableError:
            logger.exception("toggling coupon failed", extra={"coupon_id": str(cid)})
            return Response({"detail": "Failed to update coupon status"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(coupon_body(coupon))
