from rest_framework import serializers

from apps.catalog.models import Project


class ProjectSerializer(serializers.ModelSerializer):
    owner_username = serializers.CharField(source="owner.username", read_only=True)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Project
        fields = [
            "id",
            "title",
            "slug",
            "owner",
            "owner_username",
            "price",
            "discount_price",
            "unit_price",
            "currency",
            "status",
            "donation_received",
            "created_at",
        ]
        read_only_fields = fields
