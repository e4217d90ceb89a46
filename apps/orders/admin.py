from django.contrib import admin

from apps.orders.models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("project", "title", "price", "quantity", "subtotal")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "buyer", "final_amount", "currency", "payment_status", "order_status", "created_at")
    list_filter = ("payment_status", "order_status", "currency")
    search_fields = ("order_number", "buyer__username", "buyer__email", "coupon_code")
    readonly_fields = ("order_number", "total_amount", "discount_amount", "final_amount", "commission_rate", "created_at")
    inlines = [OrderItemInline]
