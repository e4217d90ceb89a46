from decimal import Decimal

from rest_framework import serializers

from apps.ledger.models import Transaction


class TransactionSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.username", read_only=True)
    order_number = serializers.CharField(source="order.order_number", read_only=True, default=None)

    class Meta:
        model = Transaction
        fields = [
            "id",
            "user",
            "username",
            "order",
            "order_number",
            "type",
            "amount",
            "currency",
            "status",
            "payment_gateway",
            "transaction_id",
            "reference_type",
            "reference_id",
            "description",
            "created_at",
        ]
        read_only_fields = fields


class EarningsSerializer(serializers.Serializer):
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    available = serializers.DecimalField(max_digits=12, decimal_places=2)
    pending = serializers.DecimalField(max_digits=12, decimal_places=2)
    withdrawn = serializers.DecimalField(max_digits=12, decimal_places=2)
    currency = serializers.CharField()


class WithdrawalRequestSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
