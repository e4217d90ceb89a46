from decimal import Decimal

from rest_framework import serializers

from apps.coupons.serializers import CouponSerializer
from apps.donations.incentives import active_incentive_coupon
from apps.donations.models import ProjectDonation


class DonationSubmitSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    payment_method = serializers.CharField(max_length=32, required=False, allow_blank=True, allow_null=True)
    anonymous = serializers.BooleanField(required=False, default=False)
    message = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class DonationPaymentSerializer(serializers.Serializer):
    payment_method = serializers.CharField(max_length=32, required=False, allow_blank=True)


class DonationSerializer(serializers.ModelSerializer):
    project_title = serializers.CharField(source="project.title", read_only=True)

    class Meta:
        model = ProjectDonation
        fields = [
            "id",
            "project",
            "project_title",
            "amount",
            "currency",
            "is_anonymous",
            "message",
            "payment_method",
            "transaction_id",
            "status",
            "approved_at",
            "created_at",
        ]
        read_only_fields = fields


class MyDonationSerializer(DonationSerializer):
    discount_coupon = serializers.SerializerMethodField()

    class Meta(DonationSerializer.Meta):
        fields = DonationSerializer.Meta.fields + ["discount_coupon"]
        read_only_fields = fields

    def get_discount_coupon(self, obj):
        prefetched = self.context.get("incentive_coupons")
        if prefetched is not None:
            coupon = prefetched.get(obj.project_id)
        else:
            coupon = active_incentive_coupon(obj.donor, obj.project)
        if coupon is None:
            return None
        return CouponSerializer(coupon).data


class AdminDonationSerializer(DonationSerializer):
    donor_username = serializers.CharField(source="donor.username", read_only=True, default=None)
    approved_by_username = serializers.CharField(source="approved_by.username", read_only=True, default=None)

    class Meta(DonationSerializer.Meta):
        fields = DonationSerializer.Meta.fields + ["donor", "donor_username", "approved_by_username"]
        read_only_fields = fields


class PublicDonationSerializer(serializers.ModelSerializer):
    donor_name = serializers.CharField(read_only=True)

    class Meta:
        model = ProjectDonation
        fields = ["id", "donor_name", "amount", "currency", "message", "status", "created_at"]
        read_only_fields = fields
