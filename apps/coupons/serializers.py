from rest_framework import serializers

from apps.catalog.models import Project
from apps.coupons.models import Coupon, DiscountType, normalize_code


class CouponSerializer(serializers.ModelSerializer):
    class Meta:
        model = Coupon
        fields = [
            "id",
            "code",
            "discount_type",
            "discount_value",
            "min_amount",
            "max_amount",
            "usage_limit",
            "usage_count",
            "one_time_use",
            "project",
            "start_date",
            "expires_at",
            "status",
            "description",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "usage_count", "created_at", "updated_at"]

    def validate_code(self, value):
        code = normalize_code(value)
        if not code:
            raise serializers.ValidationError("Coupon code is required.")
        queryset = Coupon.objects.filter(code=code)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("A coupon with this code already exists.")
        return code

    def validate(self, attrs):
        discount_type = attrs.get("discount_type", getattr(self.instance, "discount_type", None))
        discount_value = attrs.get("discount_value", getattr(self.instance, "discount_value", None))
        if discount_value is not None and discount_value <= 0:
            raise serializers.ValidationError({"discount_value": "The discount must be greater than 0."})
        if discount_type == DiscountType.PERCENTAGE and discount_value is not None and discount_value > 100:
            raise serializers.ValidationError({"discount_value": "A percentage discount cannot exceed 100."})
        start_date = attrs.get("start_date", getattr(self.instance, "start_date", None))
        expires_at = attrs.get("expires_at", getattr(self.instance, "expires_at", None))
        if start_date and expires_at and start_date >= expires_at:
            raise serializers.ValidationError({"expires_at": "The expiry must be after the start date."})
        return attrs


class CouponValidateSerializer(serializers.Serializer):
    code = serializers.CharField()
    project_id = serializers.PrimaryKeyRelatedField(
        source="project",
        queryset=Project.objects.all(),
        required=False,
        allow_null=True,
    )
