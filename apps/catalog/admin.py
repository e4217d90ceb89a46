from django.contrib import admin

from apps.catalog.models import Project


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ("title", "owner", "price", "discount_price", "currency", "status", "donation_received", "created_at")
    list_filter = ("status", "currency")
    search_fields = ("title", "slug", "owner__username")
    prepopulated_fields = {"slug": ("title",)}
    readonly_fields = ("donation_received",)
    autocomplete_fields = ("owner",)
