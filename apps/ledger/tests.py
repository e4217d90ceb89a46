from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ImproperlyConfigured
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase

from apps.audit.models import AuditLog
from apps.catalog.models import Project, ProjectStatus
from apps.common.exceptions import InsufficientBalanceError, NotFoundError
from apps.ledger.models import Transaction, TransactionStatus, TransactionType
from apps.ledger.services import credit_balance, debit_balance, get_platform_account, record_transaction
from apps.orders.models import Order, OrderItem, OrderStatus, PaymentStatus

User = get_user_model()


class BalanceServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="wallet", password="wallet123", balance=Decimal("100.00"))

    def test_credit_and_debit(self):
        credit_balance(user_id=self.user.pk, amount=Decimal("0.505"))
        debit_balance(user_id=self.user.pk, amount=Decimal("50"))

        self.user.refresh_from_db()
        self.assertEqual(self.user.balance, Decimal("50.51"))

    def test_debit_never_overdraws(self):
        with self.assertRaises(InsufficientBalanceError):
            debit_balance(user_id=self.user.pk, amount=Decimal("100.01"))

        self.user.refresh_from_db()
        self.assertEqual(self.user.balance, Decimal("100.00"))

    def test_unknown_user(self):
        with self.assertRaises(NotFoundError):
            credit_balance(user_id=999999, amount=Decimal("1"))
        with self.assertRaises(NotFoundError):
            debit_balance(user_id=999999, amount=Decimal("1"))

    def test_invalid_amounts(self):
        with self.assertRaises(ValueError):
            credit_balance(user_id=self.user.pk, amount=Decimal("-1"))
        with self.assertRaises(ValueError):
            debit_balance(user_id=self.user.pk, amount=Decimal("0"))

    @override_settings(MARKETPLACE_PLATFORM_ACCOUNT="treasury")
    def test_platform_account_must_exist(self):
        with self.assertRaises(ImproperlyConfigured):
            get_platform_account()

        User.objects.create_user(username="treasury")
        self.assertEqual(get_platform_account().username, "treasury")


class TransactionApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.buyer = User.objects.create_user(username="buyer", password="buyer123", role="BUYER")
        self.seller = User.objects.create_user(username="seller", password="seller123", role="SELLER")
        record_transaction(user=self.buyer, type=TransactionType.PURCHASE, amount=Decimal("10"), currency="TRY")
        record_transaction(
            user=self.seller,
            type=TransactionType.SALE,
            amount=Decimal("8"),
            currency="TRY",
            status=TransactionStatus.COMPLETED,
        )

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_users_see_only_their_transactions(self):
        self.auth_as("buyer", "buyer123")

        response = self.client.get("/api/v1/transactions/")

        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["type"], TransactionType.PURCHASE)
        self.assertEqual(response.data["results"][0]["amount"], "10.00")

    def test_admin_sees_and_filters_all(self):
        self.auth_as("admin", "admin123")

        everything = self.client.get("/api/v1/transactions/")
        sales = self.client.get("/api/v1/transactions/?type=sale")

        self.assertEqual(everything.data["count"], 2)
        self.assertEqual(sales.data["count"], 1)
        self.assertEqual(sales.data["results"][0]["username"], "seller")


class PayoutApiTests(APITestCase):
    def setUp(self):
        self.seller = User.objects.create_user(
            username="seller", password="seller123", role="SELLER", balance=Decimal("700.00")
        )
        self.buyer = User.objects.create_user(username="buyer", password="buyer123", role="BUYER")
        record_transaction(
            user=self.seller,
            type=TransactionType.SALE,
            amount=Decimal("662.71"),
            currency="TRY",
            status=TransactionStatus.COMPLETED,
        )
        project = Project.objects.create(
            owner=self.seller, title="Solar Kit", slug="solar-kit", price=Decimal("920.00"), status=ProjectStatus.ACTIVE
        )
        order = Order.objects.create(
            order_number="ORD-1-AAAAAAAAA",
            buyer=self.buyer,
            total_amount=Decimal("920.00"),
            final_amount=Decimal("920.00"),
            commission_rate=Decimal("15"),
            payment_status=PaymentStatus.PAID,
            order_status=OrderStatus.PROCESSING,
        )
        OrderItem.objects.create(
            order=order, project=project, title=project.title, price=project.price, quantity=1, subtotal=project.price
        )

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_earnings_summary(self):
        self.auth_as("seller", "seller123")

        response = self.client.get("/api/v1/seller/earnings/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            {key: response.data[key] for key in ("total", "available", "pending", "withdrawn")},
            {"total": "662.71", "available": "700.00", "pending": "662.71", "withdrawn": "0.00"},
        )

    def test_withdrawal_reserves_balance_and_queues_payout(self):
        self.auth_as("seller", "seller123")

        response = self.client.post("/api/v1/seller/withdrawals/", {"amount": "200.00"}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["type"], TransactionType.PAYOUT)
        self.assertEqual(response.data["status"], TransactionStatus.PENDING)
        self.assertTrue(response.data["transaction_id"].startswith("WD-"))
        self.seller.refresh_from_db()
        self.assertEqual(self.seller.balance, Decimal("500.00"))
        self.assertTrue(AuditLog.objects.filter(action="payout.request", entity_id=str(response.data["id"])).exists())

        earnings = self.client.get("/api/v1/seller/earnings/")
        self.assertEqual((earnings.data["available"], earnings.data["withdrawn"]), ("500.00", "200.00"))
        listed = self.client.get("/api/v1/seller/withdrawals/")
        self.assertEqual(listed.data["count"], 1)

    def test_withdrawal_above_balance_is_rejected(self):
        self.auth_as("seller", "seller123")

        response = self.client.post("/api/v1/seller/withdrawals/", {"amount": "700.01"}, format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "insufficient_balance")
        self.seller.refresh_from_db()
        self.assertEqual(self.seller.balance, Decimal("700.00"))
        self.assertFalse(Transaction.objects.filter(type=TransactionType.PAYOUT).exists())

    def test_non_positive_withdrawal_is_rejected(self):
        self.auth_as("seller", "seller123")

        response = self.client.post("/api/v1/seller/withdrawals/", {"amount": "0"}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_buyers_have_no_payouts(self):
        self.auth_as("buyer", "buyer123")

        self.assertEqual(self.client.get("/api/v1/seller/earnings/").status_code, 403)
        self.assertEqual(self.client.post("/api/v1/seller/withdrawals/", {"amount": "1"}, format="json").status_code, 403)
