from django.urls import path

from apps.siteconfig.views import CommissionRateView

urlpatterns = [
    path("admin/settings/commission-rate/", CommissionRateView.as_view(), name="commission-rate"),
]
