import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.audit.services import record_audit
from apps.cart.models import CartLine
from apps.common.exceptions import ConflictError, CouponError, DomainValidationError, NotFoundError
from apps.common.money import quantize_money
from apps.common.references import generate_reference
from apps.coupons.services import find_redeemable_coupon, has_used_coupon, redeem_coupon
from apps.ledger.models import Transaction, TransactionStatus, TransactionType
from apps.ledger.services import credit_balance, get_platform_account, record_transaction
from apps.orders.commission import seller_settlements
from apps.orders.models import CANCELLABLE_STATUSES, Order, OrderItem, OrderStatus, PaymentStatus
from apps.orders.pricing import PricedLine, price_lines
from apps.siteconfig.services import get_commission_rate

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5


def _insert_order(**fields):
    for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
        order_number = generate_reference("ORD")
        try:
            with transaction.atomic():
                return Order.objects.create(order_number=order_number, **fields)
        except IntegrityError:
            if attempt == ORDER_NUMBER_ATTEMPTS or not Order.objects.filter(order_number=order_number).exists():
                raise
            logger.warning("Order number %s collided, retrying (%s/%s)", order_number, attempt, ORDER_NUMBER_ATTEMPTS)


def _resolve_checkout_coupon(buyer, coupon_code):
    if not coupon_code:
        return None
    coupon = find_redeemable_coupon(coupon_code, lock=True)
    if coupon is None:
        if settings.MARKETPLACE_REJECT_INVALID_COUPONS:
            raise CouponError("Invalid or expired coupon.")
        logger.info("Ignoring unknown or expired coupon %r at checkout", coupon_code)
        return None
    if coupon.one_time_use and has_used_coupon(buyer, coupon.code):
        raise CouponError("This coupon has already been used.", code="coupon_already_used")
    return coupon


def create_order(*, buyer, billing_info, coupon_code=None, payment_method="credit_card"):
    """Turn the buyer's cart into a pending order.

    Pricing, the commission rate snapshot, the coupon usage increment, the
    cart purge and the pending purchase transaction all happen in one
    database transaction: either the whole order exists or nothing changed.
    """
    with transaction.atomic():
        lines = list(
            CartLine.objects.select_for_update(of=("self",))
            .select_related("project")
            .filter(user=buyer)
            .order_by("created_at")
        )
        if not lines:
            raise DomainValidationError("Your cart is empty.", code="empty_cart")
        unavailable = [line.project.title for line in lines if not line.project.is_purchasable]
        if unavailable:
            raise DomainValidationError(
                "Some projects in your cart are no longer available.",
                code="project_unavailable",
                fields={"projects": unavailable},
            )

        coupon = _resolve_checkout_coupon(buyer, coupon_code)
        quote = price_lines(
            [PricedLine(project_id=line.project_id, unit_price=line.unit_price, quantity=line.quantity) for line in lines],
            coupon,
        )
        currency = lines[0].project.currency or settings.MARKETPLACE_DEFAULT_CURRENCY

        order = _insert_order(
            buyer=buyer,
            total_amount=quote.subtotal,
            discount_amount=quote.discount_amount,
            final_amount=quote.final_amount,
            currency=currency,
            coupon_code=quote.coupon.code if quote.coupon else None,
            payment_method=payment_method or "credit_card",
            commission_rate=get_commission_rate(),
            billing_info=billing_info,
        )
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    project=line.project,
                    title=line.project.title,
                    price=line.unit_price,
                    quantity=line.quantity,
                    subtotal=quantize_money(line.line_total),
                )
                for line in lines
            ]
        )

        if quote.coupon is not None:
            redeem_coupon(quote.coupon)

        CartLine.objects.filter(pk__in=[line.pk for line in lines]).delete()

        record_transaction(
            user=buyer,
            order=order,
            type=TransactionType.PURCHASE,
            amount=order.final_amount,
            currency=order.currency,
            payment_gateway=order.payment_method,
            reference_type="order",
            reference_id=order.id,
            description=f"Order {order.order_number}",
        )
        record_audit(
            actor=buyer,
            action="order.create",
            entity_type="order",
            entity_id=order.id,
            payload={
                "order_number": order.order_number,
                "final_amount": str(order.final_amount),
                "coupon_code": order.coupon_code,
                "commission_rate": str(order.commission_rate),
            },
        )

    logger.info("Order %s created for user %s (final %s %s)", order.order_number, buyer.pk, order.final_amount, order.currency)
    return order


def _locked_order(order_id, **filters):
    order = Order.objects.select_for_update().filter(pk=order_id, **filters).first()
    if order is None:
        raise NotFoundError("Order not found.")
    return order


def pay_order(*, order_id, buyer, payment_method=None, transaction_id=None):
    """Record the external payment confirmation of a pending order."""
    with transaction.atomic():
        order = _locked_order(order_id, buyer=buyer)
        if order.payment_status == PaymentStatus.PAID:
            raise ConflictError("This order has already been paid.", code="already_paid")
        if order.order_status != OrderStatus.PENDING:
            raise ConflictError("Only pending orders can be paid.")

        transaction_id = transaction_id or generate_reference("TXN")
        order.payment_method = payment_method or order.payment_method
        order.payment_status = PaymentStatus.PAID
        order.order_status = OrderStatus.PROCESSING
        order.paid_at = timezone.now()
        order.save(update_fields=["payment_method", "payment_status", "order_status", "paid_at", "updated_at"])

        Transaction.objects.filter(order=order, type=TransactionType.PURCHASE).update(
            status=TransactionStatus.COMPLETED,
            transaction_id=transaction_id,
            payment_gateway=order.payment_method,
            updated_at=timezone.now(),
        )
        record_audit(
            actor=buyer,
            action="order.pay",
            entity_type="order",
            entity_id=order.id,
            payload={"transaction_id": transaction_id, "payment_method": order.payment_method},
        )

    logger.info("Order %s paid via %s (%s)", order.order_number, order.payment_method, transaction_id)
    return order, transaction_id


def cancel_order(*, order_id, buyer):
    with transaction.atomic():
        order = _locked_order(order_id, buyer=buyer)
        if order.order_status not in CANCELLABLE_STATUSES:
            raise ConflictError("This order can no longer be cancelled.")

        was_paid = order.payment_status == PaymentStatus.PAID
        order.order_status = OrderStatus.CANCELLED
        order.cancelled_at = timezone.now()
        update_fields = ["order_status", "cancelled_at", "updated_at"]
        if was_paid:
            order.payment_status = PaymentStatus.REFUND_INITIATED
            update_fields.append("payment_status")
        order.save(update_fields=update_fields)

        if was_paid:
            record_transaction(
                user=buyer,
                order=order,
                type=TransactionType.REFUND,
                amount=order.final_amount,
                currency=order.currency,
                reference_type="order",
                reference_id=order.id,
                description=f"Refund for order {order.order_number}",
            )
        record_audit(
            actor=buyer,
            action="order.cancel",
            entity_type="order",
            entity_id=order.id,
            payload={"refund_initiated": was_paid},
        )

    logger.info("Order %s cancelled by user %s (refund initiated: %s)", order.order_number, buyer.pk, was_paid)
    return order


def override_order_status(*, order_id, actor, order_status=None, payment_status=None):
    """Admin escape hatch: set either status directly, bypassing the state machine."""
    if order_status is None and payment_status is None:
        raise DomainValidationError("Provide order_status or payment_status.")

    with transaction.atomic():
        order = _locked_order(order_id)
        previous = {"order_status": order.order_status, "payment_status": order.payment_status}
        update_fields = ["updated_at"]
        if order_status is not None:
            order.order_status = order_status
            update_fields.append("order_status")
        if payment_status is not None:
            order.payment_status = payment_status
            update_fields.append("payment_status")
        order.save(update_fields=update_fields)
        current = {"order_status": order.order_status, "payment_status": order.payment_status}
        record_audit(
            actor=actor,
            action="order.status_override",
            entity_type="order",
            entity_id=order.id,
            payload={"previous": previous, "current": current},
        )

    logger.warning(
        "Order %s status overridden by %s: %s -> %s",
        order.order_number,
        getattr(actor, "username", actor),
        previous,
        current,
    )
    return order


def complete_order(*, order_id, actor):
    """Mark a paid, processing order completed and pay out its sellers."""
    with transaction.atomic():
        order = _locked_order(order_id)
        if order.payment_status != PaymentStatus.PAID:
            raise ConflictError("Only paid orders can be completed.")
        already_settled = order.transactions.filter(type__in=[TransactionType.SALE, TransactionType.COMMISSION]).exists()
        if order.completed_at is not None or already_settled:
            raise ConflictError("This order has already been settled.", code="already_settled")

        completed_at = timezone.now()
        updated = Order.objects.filter(pk=order.pk, order_status=OrderStatus.PROCESSING).update(
            order_status=OrderStatus.COMPLETED,
            completed_at=completed_at,
            updated_at=completed_at,
        )
        if updated != 1:
            raise ConflictError("Only processing orders can be completed.")

        platform = get_platform_account()
        items = list(order.items.select_related("project__owner"))
        payouts = []
        for seller, breakdown in seller_settlements(order, items):
            seller_amount = credit_balance(user_id=seller.pk, amount=breakdown.seller_amount)
            commission_amount = credit_balance(user_id=platform.pk, amount=breakdown.commission_amount)
            record_transaction(
                user=seller,
                order=order,
                type=TransactionType.SALE,
                amount=seller_amount,
                currency=order.currency,
                status=TransactionStatus.COMPLETED,
                reference_type="order",
                reference_id=order.id,
                description=f"Sale earnings for order {order.order_number}",
            )
            record_transaction(
                user=platform,
                order=order,
                type=TransactionType.COMMISSION,
                amount=commission_amount,
                currency=order.currency,
                status=TransactionStatus.COMPLETED,
                reference_type="order",
                reference_id=order.id,
                description=f"Commission for order {order.order_number} (seller {seller.username})",
            )
            payouts.append({"seller": seller.pk, "seller_amount": str(seller_amount), "commission": str(commission_amount)})

        record_audit(
            actor=actor,
            action="order.complete",
            entity_type="order",
            entity_id=order.id,
            payload={"payouts": payouts},
        )

    order.refresh_from_db()
    logger.info("Order %s completed; %s seller payout(s)", order.order_number, len(payouts))
    return order
