from django.contrib import admin

from apps.donations.models import ProjectDonation


@admin.register(ProjectDonation)
class ProjectDonationAdmin(admin.ModelAdmin):
    list_display = ("id", "project", "donor", "amount", "currency", "payment_method", "status", "created_at")
    list_filter = ("status", "payment_method", "is_anonymous")
    search_fields = ("transaction_id", "donor__username", "project__title")
    readonly_fields = ("transaction_id", "approved_at", "approved_by", "created_at")
