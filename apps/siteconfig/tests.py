from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.siteconfig.models import Setting
from apps.siteconfig.services import COMMISSION_RATE_KEY, get_commission_rate

User = get_user_model()


class CommissionRateServiceTests(TestCase):
    @override_settings(MARKETPLACE_DEFAULT_COMMISSION_RATE=Decimal("12.5"))
    def test_default_applies_without_stored_row(self):
        self.assertEqual(get_commission_rate(), Decimal("12.5"))

    def test_garbage_value_is_an_error(self):
        Setting.objects.create(key=COMMISSION_RATE_KEY, value="fifteen")

        with self.assertRaises(ValueError):
            get_commission_rate()


class CommissionRateApiTests(APITestCase):
    def setUp(self):
        User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        User.objects.create_user(username="buyer", password="buyer123", role="BUYER")

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_admin_reads_and_updates_rate(self):
        self.auth_as("admin", "admin123")

        current = self.client.get("/api/v1/admin/settings/commission-rate/")
        updated = self.client.put("/api/v1/admin/settings/commission-rate/", {"commission_rate": "22.50"}, format="json")

        self.assertEqual(current.data["commission_rate"], "15.00")
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(get_commission_rate(), Decimal("22.50"))
        audit = AuditLog.objects.get(action="settings.commission_rate.update")
        self.assertEqual(audit.payload, {"previous": "15", "new": "22.50"})

    def test_rate_must_be_a_percentage(self):
        self.auth_as("admin", "admin123")

        response = self.client.put("/api/v1/admin/settings/commission-rate/", {"commission_rate": "150"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("commission_rate", response.data["fields"])

    def test_buyer_cannot_change_rate(self):
        self.auth_as("buyer", "buyer123")

        response = self.client.put("/api/v1/admin/settings/commission-rate/", {"commission_rate": "1"}, format="json")

        self.assertEqual(response.status_code, 403)
