import uuid

from django.conf import settings
from django.db import models


class ProjectStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    PENDING = "pending", "Pending review"
    APPROVED = "approved", "Approved"
    ACTIVE = "active", "Active"
    REJECTED = "rejected", "Rejected"
    INACTIVE = "inactive", "Inactive"


PURCHASABLE_STATUSES = (ProjectStatus.APPROVED, ProjectStatus.ACTIVE)


class Project(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="projects")
    title = models.CharField(max_length=255, db_index=True)
    slug = models.SlugField(max_length=255, unique=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    discount_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, default="TRY")
    status = models.CharField(max_length=16, choices=ProjectStatus.choices, default=ProjectStatus.PENDING, db_index=True)
    donation_received = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(condition=models.Q(price__gte=0), name="project_price_gte_zero"),
            models.CheckConstraint(
                condition=models.Q(discount_price__isnull=True) | models.Q(discount_price__gte=0),
                name="project_discount_price_gte_zero",
            ),
        ]

    @property
    def unit_price(self):
        if self.discount_price:
            return self.discount_price
        return self.price

    @property
    def is_purchasable(self):
        return self.status in PURCHASABLE_STATUSES

    def __str__(self):
        return self.title
