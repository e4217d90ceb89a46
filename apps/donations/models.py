import uuid

from django.conf import settings
from django.db import models


class DonationStatus(models.TextChoices):
    PENDING = "pending", "Pending payment"
    PENDING_APPROVAL = "pending_approval", "Pending approval"
    COMPLETED = "completed", "Completed"


# Donations that count towards a donor's incentive total.
COUNTED_STATUSES = (DonationStatus.PENDING_APPROVAL, DonationStatus.COMPLETED)


class ProjectDonation(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    project = models.ForeignKey("catalog.Project", on_delete=models.PROTECT, related_name="donations")
    donor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="donations",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="TRY")
    is_anonymous = models.BooleanField(default=False)
    message = models.TextField(blank=True)
    payment_method = models.CharField(max_length=32, blank=True)
    transaction_id = models.CharField(max_length=120, blank=True)
    status = models.CharField(max_length=20, choices=DonationStatus.choices, default=DonationStatus.PENDING)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["project", "donor", "status"], name="donation_project_donor_idx"),
            models.Index(fields=["status", "created_at"], name="donation_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount__gt=0), name="donation_amount_gt_zero"),
        ]

    @property
    def donor_name(self):
        if self.is_anonymous or self.donor_id is None:
            return "Anonymous"
        return self.donor.username

    def __str__(self):
        return f"{self.amount} {self.currency} -> {self.project_id}"
