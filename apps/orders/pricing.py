"""Cart pricing: subtotal, coupon discount and final amount.

Functions here only do arithmetic over the values they are given; coupon
lookup and redemption live in ``apps.coupons.services``.
"""
from dataclasses import dataclass
from decimal import Decimal

from apps.common.exceptions import CouponError
from apps.common.money import ZERO, quantize_money
from apps.coupons.models import DiscountType


@dataclass(frozen=True)
class PricedLine:
    project_id: object
    unit_price: Decimal
    quantity: int

    @property
    def subtotal(self):
        return quantize_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class PriceQuote:
    subtotal: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    coupon: object = None


def compute_discount(coupon, base_amount):
    """Discount a coupon grants on ``base_amount``, never more than the base itself."""
    base_amount = quantize_money(base_amount)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = quantize_money(base_amount * coupon.discount_value / Decimal("100"))
        if coupon.max_amount is not None:
            discount = min(discount, quantize_money(coupon.max_amount))
    else:
        discount = quantize_money(coupon.discount_value)
    return max(ZERO, min(discount, base_amount))


def price_lines(lines, coupon=None):
    subtotal = quantize_money(sum((line.subtotal for line in lines), Decimal("0")))
    if coupon is None:
        return PriceQuote(subtotal=subtotal, discount_amount=ZERO, final_amount=subtotal)

    if coupon.min_amount is not None and subtotal < coupon.min_amount:
        raise CouponError(
            f"This coupon requires a minimum purchase of {quantize_money(coupon.min_amount)}.",
            code="coupon_min_amount",
        )

    base_amount = subtotal
    if coupon.project_id is not None:
        base_amount = sum((line.subtotal for line in lines if line.project_id == coupon.project_id), ZERO)
        if not base_amount:
            raise CouponError("This coupon is not valid for the items in your cart.", code="coupon_project_mismatch")

    discount = compute_discount(coupon, base_amount)
    final_amount = max(ZERO, subtotal - discount)
    return PriceQuote(subtotal=subtotal, discount_amount=discount, final_amount=final_amount, coupon=coupon)
