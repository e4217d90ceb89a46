from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.donations.views import AdminDonationViewSet, DonationViewSet, ProjectDonationView

router = DefaultRouter()
router.register("donations", DonationViewSet, basename="donation")
router.register("admin/donations", AdminDonationViewSet, basename="admin-donation")

urlpatterns = [
    path("projects/<uuid:project_id>/donations/", ProjectDonationView.as_view(), name="project-donations"),
]
urlpatterns += router.urls
