"""Tax-inclusive decomposition and revenue splitting.

All intermediate values are exact ``Fraction`` objects, so the parts of a
breakdown always add back to the whole; rounding to cents happens only in
``as_dict``. The same ``split_share`` helper splits approved donations.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction

from django.conf import settings

from apps.common.money import quantize_money, to_fraction

logger = logging.getLogger(__name__)


def split_share(amount, rate):
    """Split ``amount`` into (``rate`` percent, the rest)."""
    amount = to_fraction(amount)
    rate = to_fraction(rate)
    if rate < 0 or rate > 100:
        raise ValueError("Rate must be between 0 and 100.")
    share = amount * rate / 100
    return share, amount - share


@dataclass(frozen=True)
class CommissionBreakdown:
    final_amount: Fraction
    tax_rate: Fraction
    commission_rate: Fraction
    amount_without_tax: Fraction
    tax_amount: Fraction
    commission_amount: Fraction
    seller_amount: Fraction

    @property
    def admin_commission(self):
        return self.commission_amount

    def as_dict(self):
        return {
            "tax_rate": str(Decimal(self.tax_rate.numerator) / Decimal(self.tax_rate.denominator)),
            "commission_rate": str(Decimal(self.commission_rate.numerator) / Decimal(self.commission_rate.denominator)),
            "amount_without_tax": str(quantize_money(self.amount_without_tax)),
            "tax_amount": str(quantize_money(self.tax_amount)),
            "commission_amount": str(quantize_money(self.commission_amount)),
            "admin_commission": str(quantize_money(self.admin_commission)),
            "seller_amount": str(quantize_money(self.seller_amount)),
        }


def split_commission(final_amount, commission_rate, tax_rate=None):
    final_amount = to_fraction(final_amount)
    tax_rate = to_fraction(settings.MARKETPLACE_TAX_RATE if tax_rate is None else tax_rate)
    if final_amount < 0:
        raise ValueError("Amount must not be negative.")
    if tax_rate < 0:
        raise ValueError("Tax rate must not be negative.")

    amount_without_tax = final_amount / (1 + tax_rate / 100)
    commission_amount, seller_amount = split_share(amount_without_tax, commission_rate)
    return CommissionBreakdown(
        final_amount=final_amount,
        tax_rate=tax_rate,
        commission_rate=to_fraction(commission_rate),
        amount_without_tax=amount_without_tax,
        tax_amount=final_amount - amount_without_tax,
        commission_amount=commission_amount,
        seller_amount=seller_amount,
    )


def resolve_commission_rate(order):
    if order.commission_rate is not None:
        return order.commission_rate

    from apps.siteconfig.services import get_commission_rate

    rate = get_commission_rate()
    logger.warning("Order %s has no pinned commission rate; using current setting %s", order.order_number, rate)
    return rate


def order_breakdown(order):
    return split_commission(order.final_amount, resolve_commission_rate(order))


def price_breakdown(order):
    breakdown = order_breakdown(order)
    return {
        "subtotal": str(quantize_money(order.total_amount)),
        "discount": str(quantize_money(order.discount_amount)),
        "subtotal_after_discount": str(quantize_money(order.final_amount)),
        **breakdown.as_dict(),
        "total": str(quantize_money(order.final_amount)),
    }


def seller_settlements(order, items):
    """Per-seller breakdowns of an order, shares weighted by item subtotal."""
    rate = resolve_commission_rate(order)
    total = to_fraction(order.total_amount)
    final = to_fraction(order.final_amount)
    subtotals = {}
    sellers = {}
    for item in items:
        owner = item.project.owner
        sellers[owner.pk] = owner
        subtotals[owner.pk] = subtotals.get(owner.pk, Fraction(0)) + to_fraction(item.subtotal)

    settlements = []
    for owner_id, seller_subtotal in subtotals.items():
        seller_final = final * seller_subtotal / total if total else Fraction(0)
        settlements.append((sellers[owner_id], split_commission(seller_final, rate)))
    return settlements
