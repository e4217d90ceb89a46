from decimal import Decimal

from django.db import transaction
from django.db.models import F

from apps.cart.models import CartLine
from apps.common.exceptions import DomainValidationError
from apps.common.money import quantize_money


def add_to_cart(*, user, project, quantity=1):
    if quantity < 1:
        raise DomainValidationError("Quantity must be at least 1.", fields={"quantity": ["Must be at least 1."]})
    if not project.is_purchasable:
        raise DomainValidationError("This project cannot be added to the cart.", code="project_unavailable")

    with transaction.atomic():
        line, created = CartLine.objects.get_or_create(user=user, project=project, defaults={"quantity": quantity})
        if not created:
            CartLine.objects.filter(pk=line.pk).update(quantity=F("quantity") + quantity)
            line.refresh_from_db(fields=["quantity", "updated_at"])
    return line, created


def cart_total(lines):
    return quantize_money(sum((line.line_total for line in lines), Decimal("0")))
