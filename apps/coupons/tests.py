from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Project, ProjectStatus
from apps.common.exceptions import ConflictError
from apps.coupons.models import Coupon, CouponStatus, DiscountType
from apps.coupons.services import find_redeemable_coupon, redeem_coupon
from apps.orders.models import Order

User = get_user_model()


class CouponRedemptionTests(TestCase):
    def test_interleaved_redemptions_never_exceed_usage_limit(self):
        Coupon.objects.create(code="FLASH", discount_type=DiscountType.FIXED, discount_value=Decimal("5"), usage_limit=3)

        # Five checkouts all read the coupon as redeemable before any of them redeems it.
        snapshots = [find_redeemable_coupon("flash") for _ in range(5)]
        self.assertTrue(all(snapshot is not None for snapshot in snapshots))

        redeemed, rejected = 0, 0
        for snapshot in snapshots:
            try:
                redeem_coupon(snapshot)
                redeemed += 1
            except ConflictError as exc:
                self.assertEqual(exc.code, "coupon_exhausted")
                rejected += 1

        self.assertEqual((redeemed, rejected), (3, 2))
        self.assertEqual(Coupon.objects.get(code="FLASH").usage_count, 3)
        self.assertIsNone(find_redeemable_coupon("FLASH"))

    def test_unlimited_coupon_keeps_counting(self):
        coupon = Coupon.objects.create(code="OPEN", discount_type=DiscountType.FIXED, discount_value=Decimal("5"))
        for _ in range(4):
            redeem_coupon(coupon)

        coupon.refresh_from_db()
        self.assertEqual(coupon.usage_count, 4)

    def test_inactive_or_out_of_window_coupons_are_not_redeemable(self):
        now = timezone.now()
        Coupon.objects.create(
            code="OFF", discount_type=DiscountType.FIXED, discount_value=Decimal("5"), status=CouponStatus.INACTIVE
        )
        Coupon.objects.create(
            code="OLD", discount_type=DiscountType.FIXED, discount_value=Decimal("5"), expires_at=now - timedelta(days=1)
        )
        Coupon.objects.create(
            code="SOON", discount_type=DiscountType.FIXED, discount_value=Decimal("5"), start_date=now + timedelta(days=1)
        )

        for code in ("OFF", "OLD", "SOON", "MISSING", ""):
            self.assertIsNone(find_redeemable_coupon(code))

    def test_code_is_stored_upper_case(self):
        coupon = Coupon.objects.create(code="  spring24 ", discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("5"))

        self.assertEqual(coupon.code, "SPRING24")


class CouponApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.buyer = User.objects.create_user(username="buyer", password="buyer123", role="BUYER")
        self.seller = User.objects.create_user(username="seller", password="seller123", role="SELLER")
        self.project = Project.objects.create(
            owner=self.seller, title="Solar Kit", slug="solar-kit", price=Decimal("920.00"), status=ProjectStatus.ACTIVE
        )
        self.other_project = Project.objects.create(
            owner=self.seller, title="Wind Kit", slug="wind-kit", price=Decimal("500.00"), status=ProjectStatus.ACTIVE
        )

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_validate_returns_discount(self):
        Coupon.objects.create(code="SAVE10", discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("10"))
        self.auth_as("buyer", "buyer123")

        response = self.client.post("/api/v1/coupons/validate/", {"code": "save10"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["valid"])
        self.assertEqual(response.data["discount_type"], "percentage")
        self.assertEqual(response.data["discount_value"], "10.00")

    def test_validate_unknown_or_expired_code(self):
        Coupon.objects.create(
            code="GONE",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("10"),
            expires_at=timezone.now() - timedelta(minutes=1),
        )
        self.auth_as("buyer", "buyer123")

        for code in ("GONE", "NEVER"):
            response = self.client.post("/api/v1/coupons/validate/", {"code": code}, format="json")
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.data["code"], "coupon_not_found")

    def test_validate_rejects_used_one_time_coupon(self):
        Coupon.objects.create(code="ONCE", discount_type=DiscountType.FIXED, discount_value=Decimal("10"), one_time_use=True)
        Order.objects.create(
            order_number="ORD-1-AAAAAAAAA",
            buyer=self.buyer,
            total_amount=Decimal("100.00"),
            discount_amount=Decimal("10.00"),
            final_amount=Decimal("90.00"),
            coupon_code="ONCE",
        )
        self.auth_as("buyer", "buyer123")

        response = self.client.post("/api/v1/coupons/validate/", {"code": "once"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "coupon_already_used")

    def test_validate_rejects_coupon_for_another_project(self):
        Coupon.objects.create(
            code="SOLAR", discount_type=DiscountType.FIXED, discount_value=Decimal("10"), project=self.project
        )
        self.auth_as("buyer", "buyer123")

        mismatch = self.client.post(
            "/api/v1/coupons/validate/",
            {"code": "SOLAR", "project_id": str(self.other_project.id)},
            format="json",
        )
        match = self.client.post(
            "/api/v1/coupons/validate/",
            {"code": "SOLAR", "project_id": str(self.project.id)},
            format="json",
        )

        self.assertEqual(mismatch.status_code, 400)
        self.assertEqual(mismatch.data["code"], "coupon_project_mismatch")
        self.assertEqual(match.status_code, 200)

    def test_validate_requires_authentication(self):
        response = self.client.post("/api/v1/coupons/validate/", {"code": "X"}, format="json")

        self.assertEqual(response.status_code, 401)

    def test_admin_crud_is_audited(self):
        self.auth_as("admin", "admin123")
        created = self.client.post(
            "/api/v1/admin/coupons/",
            {"code": "welcome", "discount_type": "fixed", "discount_value": "25.00", "usage_limit": 100},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.data["code"], "WELCOME")

        duplicate = self.client.post(
            "/api/v1/admin/coupons/",
            {"code": "WELCOME", "discount_type": "fixed", "discount_value": "5.00"},
            format="json",
        )
        self.assertEqual(duplicate.status_code, 400)
        self.assertIn("code", duplicate.data["fields"])

        updated = self.client.patch(
            f"/api/v1/admin/coupons/{created.data['id']}/", {"status": "inactive"}, format="json"
        )
        self.assertEqual(updated.status_code, 200)
        deleted = self.client.delete(f"/api/v1/admin/coupons/{created.data['id']}/")
        self.assertEqual(deleted.status_code, 204)

        actions = set(AuditLog.objects.filter(entity_type="coupon").values_list("action", flat=True))
        self.assertEqual(actions, {"coupon.create", "coupon.update", "coupon.delete"})

    def test_admin_rejects_invalid_percentage(self):
        self.auth_as("admin", "admin123")

        response = self.client.post(
            "/api/v1/admin/coupons/",
            {"code": "HUGE", "discount_type": "percentage", "discount_value": "150"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("discount_value", response.data["fields"])

    def test_buyer_cannot_manage_coupons(self):
        self.auth_as("buyer", "buyer123")

        response = self.client.post(
            "/api/v1/admin/coupons/",
            {"code": "FREE", "discount_type": "fixed", "discount_value": "5.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 403)
