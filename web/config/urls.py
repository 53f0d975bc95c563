from django.urls import include, path

urlpatterns = [
    path("api/checkout/", include("apps.checkout.urls")),
    path("api/coupons/", include("apps.checkout.admin_urls")),
    path("", include("apps.monitoring.urls")),
]
