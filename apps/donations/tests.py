from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.exceptions import ImproperlyConfigured
from django.db import DatabaseError, connection
from django.test import SimpleTestCase
from django.test.utils import CaptureQueriesContext
from rest_framework.test import APITestCase

from apps.catalog.models import Project, ProjectStatus
from apps.common.exceptions import ConflictError
from apps.coupons.models import Coupon, CouponStatus
from apps.donations.incentives import incentive_percentage
from apps.donations.models import DonationStatus, ProjectDonation
from apps.donations.services import approve_donation
from apps.ledger.models import Transaction, TransactionType

User = get_user_model()


class IncentivePercentageTests(SimpleTestCase):
    def test_ten_percent_per_thousand_capped_at_fifty(self):
        cases = [
            ("0", 0),
            ("500", 0),
            ("999.99", 0),
            ("1000", 10),
            ("1200", 10),
            ("1999.99", 10),
            ("2000", 20),
            ("2500", 20),
            ("4999", 40),
            ("5000", 50),
            ("25000", 50),
        ]
        for total, expected in cases:
            with self.subTest(total=total):
                self.assertEqual(incentive_percentage(Decimal(total)), expected)


class DonationApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.owner = User.objects.create_user(username="owner", password="owner123", role="SELLER")
        self.donor = User.objects.create_user(
            username="donor", password="donor123", role="BUYER", balance=Decimal("1500.00")
        )
        self.platform = User.objects.create_user(username="platform", role="ADMIN", is_active=False)
        self.project = Project.objects.create(
            owner=self.owner, title="Clean Water", slug="clean-water", price=Decimal("100.00"), status=ProjectStatus.ACTIVE
        )
        self.url = f"/api/v1/projects/{self.project.id}/donations/"

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def donate(self, amount, payment_method="credit_card", **extra):
        return self.client.post(self.url, {"amount": amount, "payment_method": payment_method, **extra}, format="json")

    def active_incentives(self):
        return Coupon.objects.filter(code__startswith=f"DONATE-{self.project.id}-{self.donor.id}-".upper(), status=CouponStatus.ACTIVE)

    def test_balance_donation_debits_immediately(self):
        self.auth_as("donor", "donor123")

        response = self.donate("1000.00", "balance")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["donation"]["status"], DonationStatus.PENDING_APPROVAL)
        self.assertTrue(response.data["donation"]["transaction_id"].startswith("DON-BAL-"))
        self.assertEqual(response.data["status"], DonationStatus.PENDING_APPROVAL)
        self.assertEqual(response.data["donation_id"], response.data["donation"]["id"])
        self.assertEqual(response.data["transaction_id"], response.data["donation"]["transaction_id"])
        self.assertEqual(response.data["discount_coupon"]["discount_value"], "10.00")
        self.donor.refresh_from_db()
        self.assertEqual(self.donor.balance, Decimal("500.00"))
        self.owner.refresh_from_db()
        self.assertEqual(self.owner.balance, Decimal("0.00"))
        self.assertTrue(Transaction.objects.filter(user=self.donor, type=TransactionType.DONATION).exists())

    def test_balance_donation_with_insufficient_funds_is_rejected(self):
        self.auth_as("donor", "donor123")

        response = self.donate("2000.00", "balance")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "insufficient_balance")
        self.assertFalse(ProjectDonation.objects.exists())
        self.donor.refresh_from_db()
        self.assertEqual(self.donor.balance, Decimal("1500.00"))

    def test_guest_donation_is_pending_and_anonymous(self):
        response = self.donate("50.00", None, anonymous=False)

        self.assertEqual(response.status_code, 201)
        donation = ProjectDonation.objects.get(pk=response.data["donation"]["id"])
        self.assertEqual(donation.status, DonationStatus.PENDING)
        self.assertTrue(donation.is_anonymous)
        self.assertIsNone(donation.donor)
        self.assertIsNone(response.data["discount_coupon"])

    def test_guest_card_donation_awaits_approval(self):
        response = self.donate("50.00", "guest_card")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["donation"]["status"], DonationStatus.PENDING_APPROVAL)
        self.assertTrue(response.data["donation"]["transaction_id"].startswith("DON-CC-"))
        self.assertTrue(response.data["donation"]["is_anonymous"])

    def test_guest_cannot_donate_from_balance(self):
        response = self.donate("50.00", "balance")

        self.assertEqual(response.status_code, 401)
        self.assertFalse(ProjectDonation.objects.exists())

    def test_non_positive_amount_is_rejected(self):
        for amount in ("0", "-5"):
            response = self.donate(amount)
            self.assertEqual(response.status_code, 400)
            self.assertIn("amount", response.data["fields"])

    def test_unknown_project_is_not_found(self):
        response = self.client.post(
            "/api/v1/projects/00000000-0000-0000-0000-000000000000/donations/",
            {"amount": "10.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 404)

    def test_approval_splits_thirty_seventy_once(self):
        self.auth_as("donor", "donor123")
        donation_id = self.donate("1000.00").data["donation"]["id"]

        self.auth_as("admin", "admin123")
        response = self.client.post(f"/api/v1/admin/donations/{donation_id}/approve/", {}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], DonationStatus.COMPLETED)
        self.assertEqual(response.data["admin_commission"], "300.00")
        self.assertEqual(response.data["project_owner_amount"], "700.00")
        self.platform.refresh_from_db()
        self.owner.refresh_from_db()
        self.project.refresh_from_db()
        self.assertEqual(self.platform.balance, Decimal("300.00"))
        self.assertEqual(self.owner.balance, Decimal("700.00"))
        self.assertEqual(self.project.donation_received, Decimal("1000.00"))

        again = self.client.post(f"/api/v1/admin/donations/{donation_id}/approve/", {}, format="json")

        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data["code"], "already_approved")
        self.platform.refresh_from_db()
        self.owner.refresh_from_db()
        self.project.refresh_from_db()
        self.assertEqual(self.platform.balance, Decimal("300.00"))
        self.assertEqual(self.owner.balance, Decimal("700.00"))
        self.assertEqual(self.project.donation_received, Decimal("1000.00"))

    def test_approval_split_conserves_odd_cents(self):
        self.auth_as("donor", "donor123")
        donation_id = self.donate("33.33").data["donation"]["id"]

        self.auth_as("admin", "admin123")
        self.client.post(f"/api/v1/admin/donations/{donation_id}/approve/", {}, format="json")

        self.platform.refresh_from_db()
        self.owner.refresh_from_db()
        self.assertEqual(self.platform.balance, Decimal("10.00"))
        self.assertEqual(self.owner.balance, Decimal("23.33"))

    def test_unpaid_donation_cannot_be_approved(self):
        donation_id = self.donate("50.00", None).data["donation"]["id"]
        self.auth_as("admin", "admin123")

        response = self.client.post(f"/api/v1/admin/donations/{donation_id}/approve/", {}, format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(ProjectDonation.objects.get(pk=donation_id).status, DonationStatus.PENDING)

    def test_buyer_cannot_approve(self):
        self.auth_as("donor", "donor123")
        donation_id = self.donate("50.00").data["donation"]["id"]

        response = self.client.post(f"/api/v1/admin/donations/{donation_id}/approve/", {}, format="json")

        self.assertEqual(response.status_code, 403)

    def test_missing_platform_account_blocks_approval(self):
        self.auth_as("donor", "donor123")
        donation_id = self.donate("100.00").data["donation"]["id"]
        self.platform.delete()

        with self.assertRaises(ImproperlyConfigured):
            approve_donation(donation_id=donation_id, actor=self.admin)

        self.assertEqual(ProjectDonation.objects.get(pk=donation_id).status, DonationStatus.PENDING_APPROVAL)

    def test_incentive_only_ratchets_upwards(self):
        self.auth_as("donor", "donor123")

        first = self.donate("1000.00").data["discount_coupon"]
        second = self.donate("500.00").data["discount_coupon"]
        third = self.donate("600.00").data["discount_coupon"]

        self.assertEqual(first["discount_value"], "10.00")
        self.assertEqual(second["id"], first["id"])
        self.assertEqual(third["discount_value"], "20.00")
        self.assertNotEqual(third["id"], first["id"])
        self.assertEqual(list(self.active_incentives().values_list("id", flat=True)), [Coupon.objects.get(pk=third["id"]).id])
        self.assertEqual(Coupon.objects.get(pk=first["id"]).status, CouponStatus.INACTIVE)

        coupon = Coupon.objects.get(pk=third["id"])
        self.assertEqual(coupon.usage_limit, 1)
        self.assertTrue(coupon.one_time_use)
        self.assertEqual(coupon.project_id, self.project.id)
        self.assertGreater((coupon.expires_at - coupon.start_date).days, 360)

    def test_incentive_is_capped(self):
        self.auth_as("donor", "donor123")

        coupon = self.donate("9000.00").data["discount_coupon"]

        self.assertEqual(coupon["discount_value"], "50.00")

    def test_small_donation_earns_no_incentive(self):
        self.auth_as("donor", "donor123")

        response = self.donate("999.99")

        self.assertIsNone(response.data["discount_coupon"])
        self.assertFalse(self.active_incentives().exists())

    def test_incentive_failure_does_not_fail_donation(self):
        self.auth_as("donor", "donor123")

        with patch.object(Coupon.objects, "create", side_effect=DatabaseError("coupons table unavailable")):
            with self.assertLogs("apps.donations.incentives", level="ERROR"):
                response = self.donate("1000.00")

        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.data["discount_coupon"])
        self.assertTrue(ProjectDonation.objects.filter(pk=response.data["donation"]["id"]).exists())

    def test_complete_payment_moves_pending_donation_forward(self):
        self.auth_as("donor", "donor123")
        donation_id = self.donate("1200.00", "none").data["donation"]["id"]
        self.assertEqual(ProjectDonation.objects.get(pk=donation_id).status, DonationStatus.PENDING)

        response = self.client.post(
            f"/api/v1/donations/{donation_id}/complete-payment/", {"payment_method": "credit_card"}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["donation"]["status"], DonationStatus.PENDING_APPROVAL)
        self.assertTrue(response.data["donation"]["transaction_id"].startswith("DON-CC-"))
        self.assertEqual(response.data["discount_coupon"]["discount_value"], "10.00")

        again = self.client.post(f"/api/v1/donations/{donation_id}/complete-payment/", {}, format="json")
        self.assertEqual(again.status_code, 409)

    def test_public_list_hides_anonymous_donors_and_unpaid_donations(self):
        self.auth_as("donor", "donor123")
        self.donate("10.00", anonymous=True)
        self.donate("20.00")
        self.client.credentials()
        self.donate("30.00", None)

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        names = sorted((row["amount"], row["donor_name"]) for row in response.data["results"])
        self.assertEqual(names, [("10.00", "Anonymous"), ("20.00", "donor")])

    def test_my_donations_include_active_incentive(self):
        self.auth_as("donor", "donor123")
        self.donate("1000.00")
        User.objects.create_user(username="someone", password="someone123", role="BUYER")
        self.auth_as("someone", "someone123")
        self.donate("5.00")

        self.auth_as("donor", "donor123")
        response = self.client.get("/api/v1/donations/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["discount_coupon"]["discount_value"], "10.00")

    def test_admin_lists_all_donations(self):
        self.donate("5.00", None)
        self.auth_as("donor", "donor123")
        self.donate("7.00")

        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/admin/donations/?status=pending_approval")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["donor_username"], "donor")

    def test_incentive_follows_cumulative_totals(self):
        self.auth_as("donor", "donor123")

        percentages = []
        for amount in ("500.00", "700.00", "1300.00"):
            coupon = self.donate(amount).data["discount_coupon"]
            percentages.append(coupon["discount_value"] if coupon else None)
            self.assertLessEqual(self.active_incentives().count(), 1)

        self.assertEqual(percentages, [None, "10.00", "20.00"])

    def test_my_donations_fetch_incentives_in_one_query(self):
        second = Project.objects.create(
            owner=self.owner, title="Seed Bank", slug="seed-bank", price=Decimal("50.00"), status=ProjectStatus.ACTIVE
        )
        self.auth_as("donor", "donor123")
        self.donate("600.00")
        self.donate("600.00")
        self.client.post(
            f"/api/v1/projects/{second.id}/donations/", {"amount": "2000.00", "payment_method": "credit_card"}, format="json"
        )
        self.donate("10.00")

        with CaptureQueriesContext(connection) as queries:
            response = self.client.get("/api/v1/donations/")

        coupon_queries = [query for query in queries.captured_queries if "coupons_coupon" in query["sql"]]
        self.assertEqual(len(coupon_queries), 1)
        discounts = {row["project"]: (row["discount_coupon"] or {}).get("discount_value") for row in response.data["results"]}
        self.assertEqual(discounts, {self.project.id: "10.00", second.id: "20.00"})

    def test_concurrent_approval_loses_the_conditional_update(self):
        self.auth_as("donor", "donor123")
        donation_id = self.donate("1000.00").data["donation"]["id"]
        platform = self.platform

        def approved_elsewhere():
            # Another admin completes the row after the stale read.
            ProjectDonation.objects.filter(pk=donation_id).update(status=DonationStatus.COMPLETED)
            return platform

        with patch("apps.donations.services.get_platform_account", side_effect=approved_elsewhere):
            with self.assertRaises(ConflictError) as caught:
                approve_donation(donation_id=donation_id, actor=self.admin)

        self.assertEqual(caught.exception.code, "already_approved")
        self.platform.refresh_from_db()
        self.owner.refresh_from_db()
        self.project.refresh_from_db()
        self.assertEqual((self.platform.balance, self.owner.balance), (Decimal("0"), Decimal("0")))
        self.assertEqual(self.project.donation_received, Decimal("0"))
        self.assertFalse(Transaction.objects.filter(reference_type="donation", type=TransactionType.COMMISSION).exists())
