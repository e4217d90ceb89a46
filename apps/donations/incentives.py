"""Discount coupons rewarding cumulative donations to a project.

Each donor/project pair holds at most one active incentive coupon. Its code is
``DONATE-<project id>-<donor id>-<epoch ms><suffix>``, so the pair is found
by code prefix. A recalculation only ever replaces the coupon with a strictly
better one.
"""
import logging
import time
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction
from django.db.models import Q, Sum
from django.utils import timezone
from django.utils.crypto import get_random_string

from apps.audit.services import record_audit
from apps.coupons.models import Coupon, CouponStatus, DiscountType, normalize_code
from apps.coupons.services import redeemable_coupons
from apps.donations.models import COUNTED_STATUSES, ProjectDonation

logger = logging.getLogger(__name__)

INCENTIVE_VALIDITY = timedelta(days=365)
CODE_SUFFIX_CHARS = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def incentive_percentage(total_donated):
    """``per_step`` percent for every full ``step`` donated, capped."""
    total_donated = Decimal(total_donated)
    if total_donated <= 0:
        return 0
    step = settings.MARKETPLACE_DONATION_DISCOUNT_STEP
    percentage = int(total_donated // step) * settings.MARKETPLACE_DONATION_DISCOUNT_PER_STEP
    return min(percentage, settings.MARKETPLACE_DONATION_DISCOUNT_CAP)


def incentive_code_prefix(donor, project):
    return normalize_code(f"DONATE-{project.pk}-{donor.pk}-")


def total_donated(donor, project):
    result = ProjectDonation.objects.filter(donor=donor, project=project, status__in=COUNTED_STATUSES).aggregate(
        total=Sum("amount")
    )
    return result["total"] or Decimal("0")


def active_incentive_coupon(donor, project):
    return (
        redeemable_coupons()
        .filter(code__startswith=incentive_code_prefix(donor, project))
        .order_by("-discount_value", "-created_at")
        .first()
    )


def active_incentive_coupons(donor, projects):
    """Best active incentive coupon per project, fetched in one query."""
    prefixes = {incentive_code_prefix(donor, project): project.pk for project in projects}
    if not prefixes:
        return {}
    matches = Q()
    for prefix in prefixes:
        matches |= Q(code__startswith=prefix)
    best = {}
    for coupon in redeemable_coupons().filter(matches).order_by("-discount_value", "-created_at"):
        project_pk = next(pk for prefix, pk in prefixes.items() if coupon.code.startswith(prefix))
        best.setdefault(project_pk, coupon)
    return best


def _issue_incentive_coupon(donor, project):
    # Serialises concurrent recalculations for the same donor.
    get_user_model().objects.select_for_update().filter(pk=donor.pk).first()

    percentage = incentive_percentage(total_donated(donor, project))
    if percentage <= 0:
        return None

    current = active_incentive_coupon(donor, project)
    if current is not None and current.discount_value >= percentage:
        return current

    prefix = incentive_code_prefix(donor, project)
    Coupon.objects.filter(code__startswith=prefix, status=CouponStatus.ACTIVE).update(
        status=CouponStatus.INACTIVE,
        updated_at=timezone.now(),
    )
    now = timezone.now()
    coupon = Coupon.objects.create(
        code=f"{prefix}{int(time.time() * 1000)}{get_random_string(4, CODE_SUFFIX_CHARS)}",
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal(percentage),
        usage_limit=1,
        one_time_use=True,
        project=project,
        start_date=now,
        expires_at=now + INCENTIVE_VALIDITY,
        status=CouponStatus.ACTIVE,
        description=f"{percentage}% donor reward for {project.title}"[:255],
    )
    record_audit(
        actor=donor,
        action="donation.incentive.issue",
        entity_type="coupon",
        entity_id=coupon.id,
        payload={"project": str(project.pk), "percentage": percentage, "replaced": str(current.pk) if current else None},
    )
    logger.info("Issued %s%% incentive coupon %s to user %s", percentage, coupon.code, donor.pk)
    return coupon


def refresh_incentive_coupon(*, donor, project):
    """Recalculate the donor's reward; database failures here never fail the donation."""
    if donor is None:
        return None
    try:
        with transaction.atomic():
            return _issue_incentive_coupon(donor, project)
    except DatabaseError:
        logger.exception("Incentive coupon issuance failed for user %s on project %s", donor.pk, project.pk)
        return None
