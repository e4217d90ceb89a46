import re
from decimal import Decimal
from fractions import Fraction
from types import SimpleNamespace
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, override_settings
from hypothesis import given, settings as hypothesis_settings, strategies as st
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.cart.models import CartLine
from apps.catalog.models import Project, ProjectStatus
from apps.common.exceptions import ConflictError, CouponError
from apps.common.money import quantize_money
from apps.coupons.models import Coupon, DiscountType
from apps.ledger.models import Transaction, TransactionStatus, TransactionType
from apps.orders.commission import split_commission, split_share
from apps.orders.models import Order, OrderStatus, PaymentStatus
from apps.orders.services import _locked_order as locked_order, complete_order
from apps.orders.pricing import PricedLine, compute_discount, price_lines
from apps.siteconfig.services import set_commission_rate

User = get_user_model()

money = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2, allow_nan=False, allow_infinity=False)
rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=2, allow_nan=False, allow_infinity=False)


def make_coupon(discount_type, value, min_amount=None, max_amount=None, project_id=None):
    return SimpleNamespace(
        code="TEST",
        discount_type=discount_type,
        discount_value=Decimal(value),
        min_amount=min_amount,
        max_amount=max_amount,
        project_id=project_id,
    )


class CommissionSplitterTests(SimpleTestCase):
    def test_worked_example(self):
        breakdown = split_commission(Decimal("920.00"), Decimal("15"), Decimal("18")).as_dict()

        self.assertEqual(breakdown["amount_without_tax"], "779.66")
        self.assertEqual(breakdown["tax_amount"], "140.34")
        self.assertEqual(breakdown["commission_amount"], "116.95")
        self.assertEqual(breakdown["seller_amount"], "662.71")
        self.assertEqual(breakdown["admin_commission"], breakdown["commission_amount"])

    @given(final_amount=money, commission_rate=rates, tax_rate=st.decimals(min_value=0, max_value=50, places=2))
    def test_parts_add_back_to_the_whole(self, final_amount, commission_rate, tax_rate):
        breakdown = split_commission(final_amount, commission_rate, tax_rate)

        self.assertEqual(breakdown.amount_without_tax + breakdown.tax_amount, Fraction(final_amount))
        self.assertEqual(breakdown.commission_amount + breakdown.seller_amount, breakdown.amount_without_tax)
        rounded_sum = quantize_money(breakdown.commission_amount) + quantize_money(breakdown.seller_amount)
        self.assertLessEqual(abs(rounded_sum - quantize_money(breakdown.amount_without_tax)), Decimal("0.01"))

    @override_settings(MARKETPLACE_TAX_RATE=Decimal("20"))
    def test_tax_rate_defaults_to_configured_rate(self):
        breakdown = split_commission(Decimal("120.00"), Decimal("10"))

        self.assertEqual(breakdown.tax_rate, Fraction(20))
        self.assertEqual(breakdown.amount_without_tax, Fraction(100))
        self.assertEqual(breakdown.seller_amount, Fraction(90))

    def test_split_share_rejects_out_of_range_rate(self):
        with self.assertRaises(ValueError):
            split_share(Decimal("100"), Decimal("101"))

    def test_negative_amount_rejected(self):
        with self.assertRaises(ValueError):
            split_commission(Decimal("-1"), Decimal("15"))


class PricingTests(SimpleTestCase):
    @given(
        subtotal=money,
        percentage=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100"), places=2),
        ratio=st.decimals(min_value=Decimal("0"), max_value=Decimal("1"), places=2),
    )
    def test_percentage_discount_is_capped_by_max_amount(self, subtotal, percentage, ratio):
        uncapped = quantize_money(subtotal * percentage / Decimal("100"))
        max_amount = quantize_money(uncapped * ratio)
        coupon = make_coupon(DiscountType.PERCENTAGE, percentage, max_amount=max_amount)

        self.assertEqual(compute_discount(coupon, subtotal), max_amount)

    @given(unit_price=money, quantity=st.integers(min_value=1, max_value=20), fixed=money)
    @hypothesis_settings(max_examples=50)
    def test_final_amount_is_never_negative(self, unit_price, quantity, fixed):
        quote = price_lines(
            [PricedLine(project_id=1, unit_price=unit_price, quantity=quantity)],
            make_coupon(DiscountType.FIXED, fixed),
        )

        self.assertGreaterEqual(quote.final_amount, Decimal("0"))
        self.assertEqual(quote.final_amount, quote.subtotal - quote.discount_amount)

    def test_fixed_discount_larger_than_subtotal_is_clamped(self):
        quote = price_lines(
            [PricedLine(project_id=1, unit_price=Decimal("40.00"), quantity=1)],
            make_coupon(DiscountType.FIXED, "100"),
        )

        self.assertEqual(quote.discount_amount, Decimal("40.00"))
        self.assertEqual(quote.final_amount, Decimal("0.00"))

    def test_min_amount_is_enforced(self):
        with self.assertRaises(CouponError) as ctx:
            price_lines(
                [PricedLine(project_id=1, unit_price=Decimal("99.99"), quantity=1)],
                make_coupon(DiscountType.PERCENTAGE, "10", min_amount=Decimal("100")),
            )
        self.assertEqual(ctx.exception.code, "coupon_min_amount")

    def test_project_scoped_coupon_discounts_only_its_lines(self):
        lines = [
            PricedLine(project_id=1, unit_price=Decimal("100.00"), quantity=2),
            PricedLine(project_id=2, unit_price=Decimal("300.00"), quantity=1),
        ]
        quote = price_lines(lines, make_coupon(DiscountType.PERCENTAGE, "50", project_id=1))

        self.assertEqual(quote.subtotal, Decimal("500.00"))
        self.assertEqual(quote.discount_amount, Decimal("100.00"))
        self.assertEqual(quote.final_amount, Decimal("400.00"))

    def test_project_scoped_coupon_requires_the_project_in_cart(self):
        with self.assertRaises(CouponError) as ctx:
            price_lines(
                [PricedLine(project_id=2, unit_price=Decimal("100.00"), quantity=1)],
                make_coupon(DiscountType.FIXED, "10", project_id=1),
            )
        self.assertEqual(ctx.exception.code, "coupon_project_mismatch")

    def test_capped_percentage_example(self):
        quote = price_lines(
            [PricedLine(project_id=1, unit_price=Decimal("1000.00"), quantity=1)],
            make_coupon(DiscountType.PERCENTAGE, "10", max_amount=Decimal("80")),
        )

        self.assertEqual(quote.discount_amount, Decimal("80.00"))
        self.assertEqual(quote.final_amount, Decimal("920.00"))

    def test_no_coupon_means_no_discount(self):
        quote = price_lines([PricedLine(project_id=1, unit_price=Decimal("12.50"), quantity=3)])

        self.assertEqual(quote.subtotal, Decimal("37.50"))
        self.assertEqual(quote.discount_amount, Decimal("0.00"))
        self.assertIsNone(quote.coupon)


class OrderFlowTests(APITestCase):
    billing_info = {"name": "Ayse Yilmaz", "email": "ayse@example.com", "address": "Moda Cd. 1, Istanbul"}

    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.seller = User.objects.create_user(username="seller", password="seller123", role="SELLER")
        self.buyer = User.objects.create_user(username="buyer", password="buyer123", role="BUYER")
        self.other_buyer = User.objects.create_user(username="buyer2", password="buyer123", role="BUYER")
        self.platform = User.objects.create_user(username="platform", role="ADMIN", is_active=False)
        self.project = Project.objects.create(
            owner=self.seller,
            title="Solar Kit",
            slug="solar-kit",
            price=Decimal("920.00"),
            status=ProjectStatus.ACTIVE,
        )

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def add_to_cart(self, project=None, quantity=1):
        response = self.client.post(
            "/api/v1/cart/",
            {"project": str((project or self.project).id), "quantity": quantity},
            format="json",
        )
        self.assertIn(response.status_code, (200, 201))

    def checkout(self, **extra):
        return self.client.post("/api/v1/orders/", {"billing_info": self.billing_info, **extra}, format="json")

    def place_order(self, **extra):
        self.auth_as("buyer", "buyer123")
        self.add_to_cart()
        response = self.checkout(**extra)
        self.assertEqual(response.status_code, 201)
        return Order.objects.get(pk=response.data["id"])

    def test_checkout_pins_rate_redeems_coupon_and_clears_cart(self):
        set_commission_rate(rate=Decimal("20"), actor=self.admin)
        coupon = Coupon.objects.create(
            code="save10",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("10"),
            usage_limit=5,
        )

        self.auth_as("buyer", "buyer123")
        self.add_to_cart()
        response = self.checkout(coupon_code="save10")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["total_amount"], "920.00")
        self.assertEqual(response.data["discount_amount"], "92.00")
        self.assertEqual(response.data["final_amount"], "828.00")
        self.assertEqual(response.data["coupon_code"], "SAVE10")
        self.assertEqual(len(response.data["items"]), 1)
        self.assertRegex(response.data["order_number"], r"^ORD-\d{13}-[A-Z0-9]{9}$")

        order = Order.objects.get(pk=response.data["id"])
        self.assertEqual(order.commission_rate, Decimal("20.00"))
        self.assertEqual(order.order_status, OrderStatus.PENDING)
        self.assertFalse(CartLine.objects.filter(user=self.buyer).exists())
        coupon.refresh_from_db()
        self.assertEqual(coupon.usage_count, 1)

        purchase = Transaction.objects.get(order=order)
        self.assertEqual(purchase.type, TransactionType.PURCHASE)
        self.assertEqual(purchase.status, TransactionStatus.PENDING)
        self.assertEqual(purchase.amount, Decimal("828.00"))
        self.assertTrue(AuditLog.objects.filter(action="order.create", entity_id=str(order.id)).exists())

    def test_empty_cart_is_rejected(self):
        self.auth_as("buyer", "buyer123")
        response = self.checkout()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "empty_cart")

    def test_missing_billing_info_is_rejected(self):
        self.auth_as("buyer", "buyer123")
        self.add_to_cart()
        response = self.client.post("/api/v1/orders/", {}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("billing_info", response.data["fields"])

    def test_unknown_coupon_is_rejected_and_cart_kept(self):
        self.auth_as("buyer", "buyer123")
        self.add_to_cart()
        response = self.checkout(coupon_code="NOPE")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_coupon")
        self.assertFalse(Order.objects.exists())
        self.assertTrue(CartLine.objects.filter(user=self.buyer).exists())

    @override_settings(MARKETPLACE_REJECT_INVALID_COUPONS=False)
    def test_unknown_coupon_is_ignored_when_rejection_disabled(self):
        self.auth_as("buyer", "buyer123")
        self.add_to_cart()
        response = self.checkout(coupon_code="NOPE")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["discount_amount"], "0.00")
        self.assertIsNone(response.data["coupon_code"])

    def test_failed_coupon_redemption_rolls_back_whole_checkout(self):
        Coupon.objects.create(code="LAST", discount_type=DiscountType.FIXED, discount_value=Decimal("20"), usage_limit=1)
        self.auth_as("buyer", "buyer123")
        self.add_to_cart()

        with patch(
            "apps.orders.services.redeem_coupon",
            side_effect=ConflictError("Coupon usage limit has been reached.", code="coupon_exhausted"),
        ):
            response = self.checkout(coupon_code="LAST")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "coupon_exhausted")
        self.assertFalse(Order.objects.exists())
        self.assertFalse(Transaction.objects.exists())
        self.assertEqual(CartLine.objects.filter(user=self.buyer).count(), 1)

    def test_one_time_coupon_cannot_be_used_twice(self):
        Coupon.objects.create(code="ONCE", discount_type=DiscountType.FIXED, discount_value=Decimal("20"), one_time_use=True)
        self.place_order(coupon_code="ONCE")

        self.add_to_cart()
        response = self.checkout(coupon_code="once")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "coupon_already_used")

    def test_unavailable_project_in_cart_blocks_checkout(self):
        self.auth_as("buyer", "buyer123")
        self.add_to_cart()
        Project.objects.filter(pk=self.project.pk).update(status=ProjectStatus.INACTIVE)

        response = self.checkout()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "project_unavailable")

    def test_pay_moves_order_to_processing(self):
        order = self.place_order()

        response = self.client.post(f"/api/v1/orders/{order.id}/pay/", {"payment_method": "credit_card"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["transaction_id"].startswith("TXN-"))
        order.refresh_from_db()
        self.assertEqual(order.payment_status, PaymentStatus.PAID)
        self.assertEqual(order.order_status, OrderStatus.PROCESSING)
        purchase = Transaction.objects.get(order=order, type=TransactionType.PURCHASE)
        self.assertEqual(purchase.status, TransactionStatus.COMPLETED)
        self.assertEqual(purchase.transaction_id, response.data["transaction_id"])

        again = self.client.post(f"/api/v1/orders/{order.id}/pay/", {}, format="json")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data["code"], "already_paid")

        status_response = self.client.get(f"/api/v1/orders/{order.id}/payment-status/")
        self.assertEqual(status_response.data, {"payment_status": "paid", "order_status": "processing"})

    def test_cancel_pending_order_writes_no_refund(self):
        order = self.place_order()

        response = self.client.post(f"/api/v1/orders/{order.id}/cancel/", {}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["order_status"], OrderStatus.CANCELLED)
        self.assertEqual(response.data["payment_status"], PaymentStatus.PENDING)
        self.assertFalse(Transaction.objects.filter(type=TransactionType.REFUND).exists())

    def test_cancel_paid_order_initiates_refund(self):
        order = self.place_order()
        self.client.post(f"/api/v1/orders/{order.id}/pay/", {}, format="json")

        response = self.client.post(f"/api/v1/orders/{order.id}/cancel/", {}, format="json")

        self.assertEqual(response.status_code, 200)
        order.refresh_from_db()
        self.assertEqual(order.order_status, OrderStatus.CANCELLED)
        self.assertEqual(order.payment_status, PaymentStatus.REFUND_INITIATED)
        refund = Transaction.objects.get(order=order, type=TransactionType.REFUND)
        self.assertEqual(refund.status, TransactionStatus.PENDING)
        self.assertEqual(refund.amount, order.final_amount)

        again = self.client.post(f"/api/v1/orders/{order.id}/cancel/", {}, format="json")
        self.assertEqual(again.status_code, 409)

    def test_buyer_cannot_touch_another_buyers_order(self):
        order = self.place_order()
        self.auth_as("buyer2", "buyer123")

        self.assertEqual(self.client.get(f"/api/v1/orders/{order.id}/").status_code, 404)
        response = self.client.post(f"/api/v1/orders/{order.id}/cancel/", {}, format="json")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "not_found")

    def test_buyer_cannot_use_admin_order_endpoints(self):
        order = self.place_order()

        self.assertEqual(self.client.get("/api/v1/admin/orders/").status_code, 403)
        response = self.client.put(f"/api/v1/admin/orders/{order.id}/status/", {"order_status": "completed"}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_price_breakdown_uses_rate_pinned_at_checkout(self):
        order = self.place_order()

        self.auth_as("admin", "admin123")
        update = self.client.put("/api/v1/admin/settings/commission-rate/", {"commission_rate": "30"}, format="json")
        self.assertEqual(update.status_code, 200)

        response = self.client.get(f"/api/v1/admin/orders/{order.id}/")

        self.assertEqual(response.status_code, 200)
        breakdown = response.data["price_breakdown"]
        self.assertEqual(breakdown["subtotal"], "920.00")
        self.assertEqual(breakdown["discount"], "0.00")
        self.assertEqual(breakdown["commission_rate"], "15")
        self.assertEqual(breakdown["tax_rate"], "18")
        self.assertEqual(breakdown["amount_without_tax"], "779.66")
        self.assertEqual(breakdown["tax_amount"], "140.34")
        self.assertEqual(breakdown["commission_amount"], "116.95")
        self.assertEqual(breakdown["seller_amount"], "662.71")
        self.assertEqual(breakdown["total"], "920.00")

    def test_order_without_pinned_rate_falls_back_to_current_setting(self):
        order = self.place_order()
        Order.objects.filter(pk=order.pk).update(commission_rate=None)
        set_commission_rate(rate=Decimal("10"), actor=self.admin)

        self.auth_as("admin", "admin123")
        with self.assertLogs("apps.orders.commission", level="WARNING"):
            response = self.client.get(f"/api/v1/admin/orders/{order.id}/")

        self.assertEqual(response.data["price_breakdown"]["commission_rate"], "10")

    def test_admin_status_override_is_audited_and_logged(self):
        order = self.place_order()
        self.auth_as("admin", "admin123")

        with self.assertLogs("apps.orders.services", level="WARNING") as logs:
            response = self.client.put(
                f"/api/v1/admin/orders/{order.id}/status/",
                {"order_status": "completed"},
                format="json",
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["order_status"], OrderStatus.COMPLETED)
        self.assertTrue(any(order.order_number in line for line in logs.output))
        audit = AuditLog.objects.get(action="order.status_override", entity_id=str(order.id))
        self.assertEqual(audit.payload["previous"]["order_status"], "pending")
        self.assertEqual(audit.payload["current"]["order_status"], "completed")

        invalid = self.client.put(f"/api/v1/admin/orders/{order.id}/status/", {"order_status": "shipped"}, format="json")
        self.assertEqual(invalid.status_code, 400)
        empty = self.client.put(f"/api/v1/admin/orders/{order.id}/status/", {}, format="json")
        self.assertEqual(empty.status_code, 400)

    def test_complete_settles_seller_and_platform(self):
        order = self.place_order()
        self.client.post(f"/api/v1/orders/{order.id}/pay/", {}, format="json")

        self.auth_as("admin", "admin123")
        response = self.client.post(f"/api/v1/admin/orders/{order.id}/complete/", {}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["order_status"], OrderStatus.COMPLETED)
        self.seller.refresh_from_db()
        self.platform.refresh_from_db()
        self.assertEqual(self.seller.balance, Decimal("662.71"))
        self.assertEqual(self.platform.balance, Decimal("116.95"))
        sale = Transaction.objects.get(order=order, type=TransactionType.SALE)
        commission = Transaction.objects.get(order=order, type=TransactionType.COMMISSION)
        self.assertEqual((sale.user, sale.amount, sale.status), (self.seller, Decimal("662.71"), "completed"))
        self.assertEqual((commission.user, commission.amount), (self.platform, Decimal("116.95")))

        again = self.client.post(f"/api/v1/admin/orders/{order.id}/complete/", {}, format="json")
        self.assertEqual(again.status_code, 409)
        self.seller.refresh_from_db()
        self.assertEqual(self.seller.balance, Decimal("662.71"))

    def test_complete_splits_by_seller_share(self):
        other_seller = User.objects.create_user(username="seller2", password="seller123", role="SELLER")
        second = Project.objects.create(
            owner=other_seller,
            title="Wind Kit",
            slug="wind-kit",
            price=Decimal("500.00"),
            discount_price=Decimal("460.00"),
            status=ProjectStatus.APPROVED,
        )
        self.auth_as("buyer", "buyer123")
        self.add_to_cart()
        self.add_to_cart(second, quantity=2)
        created = self.checkout()
        self.assertEqual(created.data["total_amount"], "1840.00")
        self.client.post(f"/api/v1/orders/{created.data['id']}/pay/", {}, format="json")

        self.auth_as("admin", "admin123")
        self.client.post(f"/api/v1/admin/orders/{created.data['id']}/complete/", {}, format="json")

        self.seller.refresh_from_db()
        other_seller.refresh_from_db()
        self.assertEqual(self.seller.balance, Decimal("662.71"))
        self.assertEqual(other_seller.balance, Decimal("662.71"))
        self.platform.refresh_from_db()
        self.assertEqual(self.platform.balance, Decimal("233.90"))

    def test_unpaid_order_cannot_be_completed(self):
        order = self.place_order()
        self.auth_as("admin", "admin123")

        response = self.client.post(f"/api/v1/admin/orders/{order.id}/complete/", {}, format="json")

        self.assertEqual(response.status_code, 409)
        order.refresh_from_db()
        self.assertEqual(order.order_status, OrderStatus.PENDING)

    def test_completed_order_cannot_be_cancelled(self):
        order = self.place_order()
        self.client.post(f"/api/v1/orders/{order.id}/pay/", {}, format="json")
        self.auth_as("admin", "admin123")
        self.client.post(f"/api/v1/admin/orders/{order.id}/complete/", {}, format="json")

        self.auth_as("buyer", "buyer123")
        response = self.client.post(f"/api/v1/orders/{order.id}/cancel/", {}, format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "invalid_state")

    def test_buyer_lists_only_own_orders(self):
        self.place_order()
        self.auth_as("buyer2", "buyer123")
        self.add_to_cart()
        self.checkout()

        response = self.client.get("/api/v1/orders/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertTrue(re.match(r"^ORD-", response.data["results"][0]["order_number"]))

    def test_capped_coupon_checkout_matches_worked_example(self):
        Project.objects.filter(pk=self.project.pk).update(price=Decimal("1000.00"))
        Coupon.objects.create(
            code="TEN",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("10"),
            max_amount=Decimal("80"),
        )
        order = self.place_order(coupon_code="TEN")
        self.assertEqual((order.discount_amount, order.final_amount), (Decimal("80.00"), Decimal("920.00")))

        self.auth_as("admin", "admin123")
        breakdown = self.client.get(f"/api/v1/admin/orders/{order.id}/").data["price_breakdown"]

        self.assertEqual(breakdown["subtotal_after_discount"], "920.00")
        self.assertEqual(breakdown["seller_amount"], "662.71")
        self.assertEqual(breakdown["admin_commission"], "116.95")

    def test_coupon_below_min_amount_rejects_checkout(self):
        Coupon.objects.create(
            code="BIGSPENDER",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("50"),
            min_amount=Decimal("1000"),
        )
        self.auth_as("buyer", "buyer123")
        self.add_to_cart()

        response = self.checkout(coupon_code="BIGSPENDER")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "coupon_min_amount")
        self.assertEqual(Coupon.objects.get(code="BIGSPENDER").usage_count, 0)
        self.assertTrue(CartLine.objects.filter(user=self.buyer).exists())

    def test_reopened_order_is_not_settled_twice(self):
        order = self.place_order()
        self.client.post(f"/api/v1/orders/{order.id}/pay/", {}, format="json")
        self.auth_as("admin", "admin123")
        self.client.post(f"/api/v1/admin/orders/{order.id}/complete/", {}, format="json")

        reopened = self.client.patch(
            f"/api/v1/admin/orders/{order.id}/status/", {"order_status": OrderStatus.PROCESSING}, format="json"
        )
        self.assertEqual(reopened.status_code, 200)
        again = self.client.post(f"/api/v1/admin/orders/{order.id}/complete/", {}, format="json")

        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data["code"], "already_settled")
        self.seller.refresh_from_db()
        self.platform.refresh_from_db()
        self.assertEqual(self.seller.balance, Decimal("662.71"))
        self.assertEqual(self.platform.balance, Decimal("116.95"))
        self.assertEqual(Transaction.objects.filter(order=order, type=TransactionType.SALE).count(), 1)

    def test_concurrent_completion_loses_the_conditional_update(self):
        order = self.place_order()
        self.client.post(f"/api/v1/orders/{order.id}/pay/", {}, format="json")

        def completed_elsewhere(order_id, **filters):
            # The stale row is read before another admin flips it.
            stale = locked_order(order_id, **filters)
            Order.objects.filter(pk=order_id).update(order_status=OrderStatus.COMPLETED)
            return stale

        with patch("apps.orders.services._locked_order", side_effect=completed_elsewhere):
            with self.assertRaises(ConflictError):
                complete_order(order_id=order.id, actor=self.admin)

        self.seller.refresh_from_db()
        self.platform.refresh_from_db()
        self.assertEqual((self.seller.balance, self.platform.balance), (Decimal("0"), Decimal("0")))
        self.assertFalse(Transaction.objects.filter(order=order, type=TransactionType.SALE).exists())
