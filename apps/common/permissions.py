from rest_framework.permissions import BasePermission

from apps.accounts.models import UserRole

CUSTOMER_CAPABILITIES = {
    "catalog.view",
    "cart.manage",
    "orders.view.own",
    "orders.create",
    "orders.cancel.own",
    "orders.pay.own",
    "coupons.validate",
    "donations.view.own",
    "donations.pay.own",
    "ledger.view.own",
}

ROLE_CAPABILITIES = {
    UserRole.ADMIN: CUSTOMER_CAPABILITIES
    | {
        "orders.manage",
        "coupons.manage",
        "donations.approve",
        "donations.manage",
        "ledger.manage",
        "payouts.manage.own",
        "settings.manage",
    },
    UserRole.SELLER: CUSTOMER_CAPABILITIES | {"payouts.manage.own"},
    UserRole.BUYER: set(CUSTOMER_CAPABILITIES),
}


def resolve_role(user):
    group_names = set(user.groups.values_list("name", flat=True))
    for role in (UserRole.ADMIN, UserRole.SELLER, UserRole.BUYER):
        if role in group_names:
            return role
    return getattr(user, "role", UserRole.BUYER)


def has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    return capability in ROLE_CAPABILITIES.get(resolve_role(user), set())


class RolePermission(BasePermission):
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability_map = getattr(view, "capability_map", {})
        action = getattr(view, "action", None) or request.method.lower()
        required = capability_map.get(action) or capability_map.get(request.method.lower()) or set()
        if not required:
            return True

        user_caps = ROLE_CAPABILITIES.get(resolve_role(request.user), set())
        return all(cap in user_caps for cap in required)
