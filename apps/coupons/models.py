import uuid

from django.core.exceptions import ValidationError
from django.db import models


def normalize_code(value):
    return str(value or "").strip().upper()


class DiscountType(models.TextChoices):
    PERCENTAGE = "percentage", "Percentage"
    FIXED = "fixed", "Fixed amount"


class CouponStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class Coupon(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=120, unique=True)
    discount_type = models.CharField(max_length=16, choices=DiscountType.choices)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2)
    min_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    max_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    usage_count = models.PositiveIntegerField(default=0)
    one_time_use = models.BooleanField(default=False)
    project = models.ForeignKey("catalog.Project", on_delete=models.CASCADE, null=True, blank=True, related_name="coupons")
    start_date = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=CouponStatus.choices, default=CouponStatus.ACTIVE)
    description = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "expires_at"], name="coupon_status_expires_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(discount_value__gt=0), name="coupon_discount_value_gt_zero"),
            models.CheckConstraint(
                condition=models.Q(usage_limit__isnull=True) | models.Q(usage_count__lte=models.F("usage_limit")),
                name="coupon_usage_within_limit",
            ),
        ]

    def clean(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValidationError("A percentage discount cannot exceed 100.")
        if self.start_date and self.expires_at and self.start_date >= self.expires_at:
            raise ValidationError("start_date must be before expires_at.")

    def save(self, *args, **kwargs):
        self.code = normalize_code(self.code)
        super().save(*args, **kwargs)

    def __str__(self):
        return self.code
