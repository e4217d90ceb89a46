from decimal import Decimal, InvalidOperation

from django.conf import settings

from apps.audit.services import record_audit
from apps.common.exceptions import DomainValidationError
from apps.siteconfig.models import Setting, SettingType

COMMISSION_RATE_KEY = "commission_rate"


def get_commission_rate():
    """Current platform commission percentage.

    Read once when an order is created and pinned onto it; later reads only
    serve orders that predate the pinned column.
    """
    row = Setting.objects.filter(key=COMMISSION_RATE_KEY).only("value").first()
    if row is None:
        return settings.MARKETPLACE_DEFAULT_COMMISSION_RATE
    try:
        return Decimal(row.value)
    except InvalidOperation as exc:
        raise ValueError(f"Stored commission rate is not a number: {row.value!r}") from exc


def set_commission_rate(*, rate, actor):
    rate = Decimal(rate)
    if rate < 0 or rate > 100:
        raise DomainValidationError("Commission rate must be between 0 and 100.", fields={"commission_rate": ["Must be between 0 and 100."]})
    previous = get_commission_rate()
    Setting.objects.update_or_create(
        key=COMMISSION_RATE_KEY,
        defaults={"value": str(rate), "value_type": SettingType.NUMBER, "group": "financial"},
    )
    record_audit(
        actor=actor,
        action="settings.commission_rate.update",
        entity_type="setting",
        entity_id=COMMISSION_RATE_KEY,
        payload={"previous": str(previous), "new": str(rate)},
    )
    return rate
