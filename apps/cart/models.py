import uuid

from django.conf import settings
from django.db import models


class CartLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="cart_lines")
    project = models.ForeignKey("catalog.Project", on_delete=models.CASCADE, related_name="cart_lines")
    quantity = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["user", "project"], name="cartline_unique_user_project"),
            models.CheckConstraint(condition=models.Q(quantity__gte=1), name="cartline_quantity_gte_one"),
        ]

    @property
    def unit_price(self):
        return self.project.unit_price

    @property
    def line_total(self):
        return self.unit_price * self.quantity
