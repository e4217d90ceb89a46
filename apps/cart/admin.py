from django.contrib import admin

from apps.cart.models import CartLine


@admin.register(CartLine)
class CartLineAdmin(admin.ModelAdmin):
    list_display = ("user", "project", "quantity", "created_at")
    search_fields = ("user__username", "project__title")
    autocomplete_fields = ("user", "project")
