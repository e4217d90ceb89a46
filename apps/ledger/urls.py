from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.ledger.views import EarningsView, TransactionViewSet, WithdrawalViewSet

router = DefaultRouter()
router.register("transactions", TransactionViewSet, basename="transaction")
router.register("seller/withdrawals", WithdrawalViewSet, basename="withdrawal")

urlpatterns = [
    path("seller/earnings/", EarningsView.as_view(), name="seller-earnings"),
    *router.urls,
]
