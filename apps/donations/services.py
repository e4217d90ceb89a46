import logging

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.audit.services import record_audit
from apps.catalog.models import Project
from apps.common.exceptions import AuthenticationRequiredError, ConflictError, NotFoundError
from apps.common.money import quantize_money
from apps.common.references import generate_reference
from apps.donations.incentives import refresh_incentive_coupon
from apps.donations.models import DonationStatus, ProjectDonation
from apps.ledger.models import TransactionStatus, TransactionType
from apps.ledger.services import credit_balance, debit_balance, get_platform_account, record_transaction
from apps.orders.commission import split_share

logger = logging.getLogger(__name__)

CARD_METHODS = {"credit_card", "guest_card"}
GUEST_METHODS = {"", "none", "guest"}


def _record_balance_payment(donation, donor):
    debit_balance(user_id=donor.pk, amount=donation.amount)
    record_transaction(
        user=donor,
        type=TransactionType.DONATION,
        amount=donation.amount,
        currency=donation.currency,
        status=TransactionStatus.COMPLETED,
        payment_gateway="balance",
        transaction_id=donation.transaction_id,
        reference_type="donation",
        reference_id=donation.id,
        description=f"Donation to {donation.project.title}",
    )


def submit_donation(*, project, donor, amount, payment_method=None, is_anonymous=False, message=""):
    """Record a donation and route it by payment method.

    Returns ``(donation, coupon)`` where ``coupon`` is the donor's current
    incentive coupon, if any.
    """
    method = (payment_method or "").strip().lower()
    if method == "balance" and donor is None:
        raise AuthenticationRequiredError("Sign in to donate from your balance.")

    if method == "balance":
        status, reference = DonationStatus.PENDING_APPROVAL, generate_reference("DON-BAL")
    elif method in CARD_METHODS:
        status, reference = DonationStatus.PENDING_APPROVAL, generate_reference("DON-CC")
    elif method not in GUEST_METHODS:
        status, reference = DonationStatus.PENDING_APPROVAL, generate_reference("DON")
    else:
        status, reference = DonationStatus.PENDING, ""
        is_anonymous = True
    if donor is None:
        is_anonymous = True

    coupon = None
    with transaction.atomic():
        donation = ProjectDonation.objects.create(
            project=project,
            donor=donor,
            amount=quantize_money(amount),
            currency=project.currency or settings.MARKETPLACE_DEFAULT_CURRENCY,
            is_anonymous=is_anonymous,
            message=message or "",
            payment_method=method or "guest",
            transaction_id=reference,
            status=status,
        )
        if method == "balance":
            _record_balance_payment(donation, donor)

        record_audit(
            actor=donor,
            action="donation.submit",
            entity_type="donation",
            entity_id=donation.id,
            payload={"amount": str(donation.amount), "payment_method": donation.payment_method, "status": status},
        )
        if status == DonationStatus.PENDING_APPROVAL:
            coupon = refresh_incentive_coupon(donor=donor, project=project)

    logger.info(
        "Donation %s of %s %s to project %s submitted (%s)",
        donation.id,
        donation.amount,
        donation.currency,
        project.pk,
        status,
    )
    return donation, coupon


def complete_donation_payment(*, donation_id, donor, payment_method=None):
    """Capture payment for the donor's own ``pending`` donation."""
    with transaction.atomic():
        donation = (
            ProjectDonation.objects.select_for_update()
            .select_related("project")
            .filter(pk=donation_id, donor=donor)
            .first()
        )
        if donation is None:
            raise NotFoundError("Donation not found.")
        if donation.status != DonationStatus.PENDING:
            raise ConflictError("This donation has already been paid.", code="already_paid")

        method = (payment_method or "").strip().lower() or "manual"
        prefix = {"balance": "DON-BAL"}.get(method, "DON-CC" if method in CARD_METHODS else "DON")
        donation.payment_method = method
        donation.transaction_id = generate_reference(prefix)
        donation.status = DonationStatus.PENDING_APPROVAL
        donation.save(update_fields=["payment_method", "transaction_id", "status", "updated_at"])
        if method == "balance":
            _record_balance_payment(donation, donor)

        record_audit(
            actor=donor,
            action="donation.complete_payment",
            entity_type="donation",
            entity_id=donation.id,
            payload={"payment_method": method, "transaction_id": donation.transaction_id},
        )
        coupon = refresh_incentive_coupon(donor=donor, project=donation.project)

    logger.info("Donation %s payment captured via %s", donation.id, donation.payment_method)
    return donation, coupon


def approve_donation(*, donation_id, actor):
    """Split an approved donation between the platform and the project owner.

    Only ``pending_approval`` donations can be approved; the status flip is a
    conditional UPDATE so two concurrent approvals cannot both pay out. The
    returned donation carries ``admin_commission`` and ``project_owner_amount``.
    """
    with transaction.atomic():
        donation = ProjectDonation.objects.select_related("project__owner").filter(pk=donation_id).first()
        if donation is None:
            raise NotFoundError("Donation not found.")
        if donation.status == DonationStatus.COMPLETED:
            raise ConflictError("This donation has already been approved.", code="already_approved")
        if donation.status != DonationStatus.PENDING_APPROVAL:
            raise ConflictError("This donation has not been paid yet.")

        platform = get_platform_account()
        approved_at = timezone.now()
        updated = ProjectDonation.objects.filter(pk=donation.pk, status=DonationStatus.PENDING_APPROVAL).update(
            status=DonationStatus.COMPLETED,
            approved_at=approved_at,
            approved_by=actor,
            updated_at=approved_at,
        )
        if updated != 1:
            raise ConflictError("This donation has already been approved.", code="already_approved")

        platform_share, _ = split_share(donation.amount, settings.MARKETPLACE_DONATION_PLATFORM_SHARE)
        platform_amount = quantize_money(platform_share)
        owner_amount = donation.amount - platform_amount
        owner = donation.project.owner

        credit_balance(user_id=platform.pk, amount=platform_amount)
        credit_balance(user_id=owner.pk, amount=owner_amount)
        record_transaction(
            user=platform,
            type=TransactionType.COMMISSION,
            amount=platform_amount,
            currency=donation.currency,
            status=TransactionStatus.COMPLETED,
            reference_type="donation",
            reference_id=donation.id,
            description=f"Platform share of donation to {donation.project.title}",
        )
        record_transaction(
            user=owner,
            type=TransactionType.DONATION,
            amount=owner_amount,
            currency=donation.currency,
            status=TransactionStatus.COMPLETED,
            reference_type="donation",
            reference_id=donation.id,
            description=f"Donation received for {donation.project.title}",
        )
        Project.objects.filter(pk=donation.project_id).update(donation_received=F("donation_received") + donation.amount)

        record_audit(
            actor=actor,
            action="donation.approve",
            entity_type="donation",
            entity_id=donation.id,
            payload={"platform_amount": str(platform_amount), "owner_amount": str(owner_amount)},
        )

    donation.refresh_from_db()
    donation.admin_commission = platform_amount
    donation.project_owner_amount = owner_amount
    logger.info(
        "Donation %s approved: platform %s, owner %s %s",
        donation.id,
        platform_amount,
        owner_amount,
        donation.currency,
    )
    return donation
