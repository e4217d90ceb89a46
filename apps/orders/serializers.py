from rest_framework import serializers

from apps.ledger.serializers import TransactionSerializer
from apps.orders.commission import price_breakdown
from apps.orders.models import Order, OrderItem, OrderStatus, PaymentStatus


class BillingInfoSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=40, required=False, allow_blank=True)
    address = serializers.CharField(max_length=500)
    city = serializers.CharField(max_length=120, required=False, allow_blank=True)
    country = serializers.CharField(max_length=120, required=False, allow_blank=True)
    tax_number = serializers.CharField(max_length=40, required=False, allow_blank=True)


class OrderCreateSerializer(serializers.Serializer):
    billing_info = BillingInfoSerializer()
    coupon_code = serializers.CharField(max_length=120, required=False, allow_blank=True, allow_null=True)
    payment_method = serializers.CharField(max_length=32, required=False, default="credit_card")


class OrderPaySerializer(serializers.Serializer):
    payment_method = serializers.CharField(max_length=32, required=False)
    transaction_id = serializers.CharField(max_length=120, required=False)


class OrderStatusOverrideSerializer(serializers.Serializer):
    order_status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide order_status or payment_status.")
        return attrs


class OrderItemSerializer(serializers.ModelSerializer):
    project_slug = serializers.CharField(source="project.slug", read_only=True)

    class Meta:
        model = OrderItem
        fields = ["id", "project", "project_slug", "title", "price", "quantity", "subtotal"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    transaction = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "total_amount",
            "discount_amount",
            "final_amount",
            "currency",
            "coupon_code",
            "payment_method",
            "payment_status",
            "order_status",
            "billing_info",
            "items",
            "transaction",
            "paid_at",
            "cancelled_at",
            "completed_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_transaction(self, obj):
        latest = obj.transactions.order_by("-created_at").first()
        if latest is None:
            return None
        return TransactionSerializer(latest).data


class OrderListSerializer(serializers.ModelSerializer):
    item_count = serializers.IntegerField(source="items.count", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "final_amount",
            "currency",
            "payment_status",
            "order_status",
            "item_count",
            "created_at",
        ]
        read_only_fields = fields


class AdminOrderSerializer(OrderSerializer):
    buyer_username = serializers.CharField(source="buyer.username", read_only=True)
    buyer_email = serializers.CharField(source="buyer.email", read_only=True)
    transactions = TransactionSerializer(many=True, read_only=True)
    price_breakdown = serializers.SerializerMethodField()

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + [
            "buyer",
            "buyer_username",
            "buyer_email",
            "commission_rate",
            "transactions",
            "price_breakdown",
        ]
        read_only_fields = fields

    def get_price_breakdown(self, obj):
        return price_breakdown(obj)
