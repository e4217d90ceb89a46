from django.contrib import admin

from apps.ledger.models import Transaction


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = (
        "user",
        "type",
        "amount",
        "currency",
        "status",
        "order",
        "reference_type",
        "reference_id",
        "created_at",
    )
    search_fields = ("user__username", "transaction_id", "reference_type", "reference_id", "description")
    list_filter = ("type", "status", "currency")
