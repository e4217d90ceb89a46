import logging

from django.db.models import F, Q
from django.utils import timezone

from apps.common.exceptions import ConflictError, CouponError, NotFoundError
from apps.coupons.models import Coupon, CouponStatus, normalize_code

logger = logging.getLogger(__name__)


def redeemable_coupons(now=None):
    """Active coupons inside their window that still have uses left."""
    now = now or timezone.now()
    return Coupon.objects.filter(
        Q(status=CouponStatus.ACTIVE),
        Q(start_date__isnull=True) | Q(start_date__lte=now),
        Q(expires_at__isnull=True) | Q(expires_at__gt=now),
        Q(usage_limit__isnull=True) | Q(usage_count__lt=F("usage_limit")),
    )


def find_redeemable_coupon(code, *, lock=False):
    code = normalize_code(code)
    if not code:
        return None
    queryset = redeemable_coupons()
    if lock:
        queryset = queryset.select_for_update()
    return queryset.filter(code=code).first()


def has_used_coupon(user, code):
    from apps.orders.models import Order

    return Order.objects.filter(buyer=user, coupon_code__iexact=normalize_code(code)).exists()


def validate_coupon(*, code, user, project=None):
    """Coupon check used by the validate endpoint; raises on any ineligibility."""
    coupon = find_redeemable_coupon(code)
    if coupon is None:
        raise NotFoundError("Invalid or expired coupon.", code="coupon_not_found")
    if coupon.one_time_use and has_used_coupon(user, coupon.code):
        raise CouponError("This coupon has already been used.", code="coupon_already_used")
    if coupon.project_id and project is not None and coupon.project_id != project.pk:
        raise CouponError("This coupon is not valid for the selected project.", code="coupon_project_mismatch")
    return coupon


def redeem_coupon(coupon):
    """Increment ``usage_count`` only while it is still below ``usage_limit``.

    Two checkouts that both read a coupon as redeemable cannot both pass this
    UPDATE once the limit is reached; the loser gets a ConflictError and its
    transaction rolls back.
    """
    updated = (
        Coupon.objects.filter(pk=coupon.pk, status=CouponStatus.ACTIVE)
        .filter(Q(usage_limit__isnull=True) | Q(usage_count__lt=F("usage_limit")))
        .update(usage_count=F("usage_count") + 1)
    )
    if updated != 1:
        logger.info("Coupon %s could not be redeemed: usage limit reached or inactive", coupon.code)
        raise ConflictError("Coupon usage limit has been reached.", code="coupon_exhausted")
    coupon.refresh_from_db(fields=["usage_count"])
    return coupon
