from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.coupons.views import CouponValidateView, CouponViewSet

router = DefaultRouter()
router.register("admin/coupons", CouponViewSet, basename="admin-coupon")

urlpatterns = [
    path("coupons/validate/", CouponValidateView.as_view(), name="coupon-validate"),
]
urlpatterns += router.urls
