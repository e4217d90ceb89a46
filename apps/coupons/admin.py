from django.contrib import admin

from apps.coupons.models import Coupon


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "discount_type", "discount_value", "usage_count", "usage_limit", "project", "status", "expires_at")
    list_filter = ("status", "discount_type", "one_time_use")
    search_fields = ("code", "description")
    readonly_fields = ("usage_count",)
    autocomplete_fields = ("project",)
