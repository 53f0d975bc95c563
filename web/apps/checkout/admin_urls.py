from django.urls import path

from .views import CouponAdminDetailView, CouponsAdminView, CouponToggleView

app_name = "coupons"

urlpatterns = [
    path("", CouponsAdminView.as_view(), name="coupons-collection"),  # GET list / POST create
    path("<str:cid>/", CouponAdminDetailView.as_view(), name="coupons-detail"),
    path("<str:cid>/toggle/", CouponToggleView.as_view(), name="coupons-toggle"),
]
