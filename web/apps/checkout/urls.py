from django.urls import path

from .views import (
    CheckoutOptionsView,
    CheckoutPingView,
    CouponView,
    OrderDetailView,
    OrderReviewView,
    OrdersCollectionView,
    QuoteView,
)

app_name = "checkout"

urlpatterns = [
    path("ping/", CheckoutPingView.as_view(), name="ping"),
    path("options/", CheckoutOptionsView.as_view(), name="options"),
    path("quote/", QuoteView.as_view(), name="quote"),
    path("coupon/", CouponView.as_view(), name="coupon"),
    path("orders/", OrdersCollectionView.as_view(), name="orders-collection"),  # POST submit
    path("orders/<str:oid>/", OrderDetailView.as_view(), name="orders-detail"),
    path("orders/<str:oid>/reviews/", OrderReviewView.as_view(), name="orders-reviews"),
]
