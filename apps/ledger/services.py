import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.db.models import F, Sum

from apps.common.exceptions import InsufficientBalanceError, NotFoundError
from apps.audit.services import record_audit
from apps.common.money import ZERO, quantize_money
from apps.common.references import generate_reference
from apps.ledger.models import Transaction, TransactionStatus, TransactionType

logger = logging.getLogger(__name__)


def record_transaction(
    *,
    user,
    type,
    amount,
    currency,
    status=TransactionStatus.PENDING,
    order=None,
    reference_type="",
    reference_id="",
    payment_gateway="",
    transaction_id="",
    description="",
):
    return Transaction.objects.create(
        user=user,
        order=order,
        type=type,
        amount=quantize_money(amount),
        currency=currency,
        status=status,
        payment_gateway=payment_gateway or "",
        transaction_id=transaction_id or "",
        reference_type=reference_type,
        reference_id=str(reference_id),
        description=description,
    )


def credit_balance(*, user_id, amount):
    amount = quantize_money(amount)
    if amount < 0:
        raise ValueError("Credit amount must not be negative.")
    updated = get_user_model().objects.filter(pk=user_id).update(balance=F("balance") + amount)
    if updated != 1:
        raise NotFoundError(f"User {user_id} does not exist.")
    return amount


def debit_balance(*, user_id, amount):
    """Take ``amount`` from the user's balance in one conditional UPDATE."""
    amount = quantize_money(amount)
    if amount <= 0:
        raise ValueError("Debit amount must be greater than 0.")
    User = get_user_model()
    updated = User.objects.filter(pk=user_id, balance__gte=amount).update(balance=F("balance") - amount)
    if updated == 1:
        return amount
    if not User.objects.filter(pk=user_id).exists():
        raise NotFoundError(f"User {user_id} does not exist.")
    raise InsufficientBalanceError("Insufficient balance.")


def get_platform_account():
    username = settings.MARKETPLACE_PLATFORM_ACCOUNT
    try:
        return get_user_model().objects.get(username=username)
    except get_user_model().DoesNotExist as exc:
        logger.error("Platform ledger account %r is missing", username)
        raise ImproperlyConfigured(
            f"Platform ledger account {username!r} does not exist; run `manage.py seed_platform_account`."
        ) from exc


def _pending_sale_earnings(user):
    from apps.orders.commission import seller_settlements
    from apps.orders.models import Order, OrderStatus, PaymentStatus

    orders = (
        Order.objects.filter(
            payment_status=PaymentStatus.PAID,
            order_status=OrderStatus.PROCESSING,
            items__project__owner=user,
        )
        .distinct()
        .prefetch_related("items__project__owner")
    )
    pending = 0
    for order in orders:
        for seller, breakdown in seller_settlements(order, order.items.all()):
            if seller.pk == user.pk:
                pending += breakdown.seller_amount
    return quantize_money(pending)


def earnings_summary(user):
    """Seller money overview.

    ``total`` is what completed orders paid out, ``pending`` the seller share
    of paid orders not yet completed, ``withdrawn`` every payout requested and
    ``available`` the current ledger balance.
    """
    sales = Transaction.objects.filter(user=user, type=TransactionType.SALE, status=TransactionStatus.COMPLETED)
    payouts = Transaction.objects.filter(user=user, type=TransactionType.PAYOUT)
    balance = get_user_model().objects.values_list("balance", flat=True).get(pk=user.pk)
    return {
        "total": quantize_money(sales.aggregate(total=Sum("amount"))["total"] or ZERO),
        "available": quantize_money(balance),
        "pending": _pending_sale_earnings(user),
        "withdrawn": quantize_money(payouts.aggregate(total=Sum("amount"))["total"] or ZERO),
        "currency": settings.MARKETPLACE_DEFAULT_CURRENCY,
    }


def request_withdrawal(*, user, amount):
    """Reserve ``amount`` from the balance and queue a pending payout."""
    with transaction.atomic():
        amount = debit_balance(user_id=user.pk, amount=amount)
        payout = record_transaction(
            user=user,
            type=TransactionType.PAYOUT,
            amount=amount,
            currency=settings.MARKETPLACE_DEFAULT_CURRENCY,
            status=TransactionStatus.PENDING,
            transaction_id=generate_reference("WD"),
            reference_type="withdrawal",
            description="Withdrawal request",
        )
        record_audit(
            actor=user,
            action="payout.request",
            entity_type="transaction",
            entity_id=payout.id,
            payload={"amount": str(amount)},
        )

    logger.info("User %s requested a withdrawal of %s %s", user.pk, amount, payout.currency)
    return payout
