from django.urls import include, path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain-pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("", include("apps.catalog.urls")),
    path("", include("apps.donations.urls")),
    path("", include("apps.cart.urls")),
    path("", include("apps.coupons.urls")),
    path("", include("apps.orders.urls")),
    path("", include("apps.ledger.urls")),
    path("", include("apps.siteconfig.urls")),
]
