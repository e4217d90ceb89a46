from rest_framework import viewsets
from rest_framework.generics import GenericAPIView
from rest_framework.response import Response

from apps.audit.services import record_audit
from apps.common.permissions import RolePermission
from apps.coupons.models import Coupon
from apps.coupons.serializers import CouponSerializer, CouponValidateSerializer
from apps.coupons.services import validate_coupon


class CouponValidateView(GenericAPIView):
    serializer_class = CouponValidateSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["coupons.validate"]}

    def post(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        coupon = validate_coupon(
            code=serializer.validated_data["code"],
            user=request.user,
            project=serializer.validated_data.get("project"),
        )
        return Response(
            {
                "valid": True,
                "discount_type": coupon.discount_type,
                "discount_value": str(coupon.discount_value),
                "coupon": CouponSerializer(coupon).data,
            }
        )


class CouponViewSet(viewsets.ModelViewSet):
    queryset = Coupon.objects.select_related("project").order_by("-created_at")
    serializer_class = CouponSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["coupons.manage"],
        "retrieve": ["coupons.manage"],
        "create": ["coupons.manage"],
        "update": ["coupons.manage"],
        "partial_update": ["coupons.manage"],
        "destroy": ["coupons.manage"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        status_param = self.request.query_params.get("status")
        query = self.request.query_params.get("q")
        if status_param:
            queryset = queryset.filter(status=status_param)
        if query:
            queryset = queryset.filter(code__icontains=query.strip())
        return queryset

    def perform_create(self, serializer):
        coupon = serializer.save()
        record_audit(
            actor=self.request.user,
            action="coupon.create",
            entity_type="coupon",
            entity_id=coupon.id,
            payload={"code": coupon.code},
        )

    def perform_update(self, serializer):
        coupon = serializer.save()
        record_audit(
            actor=self.request.user,
            action="coupon.update",
            entity_type="coupon",
            entity_id=coupon.id,
            payload={"fields": sorted(serializer.validated_data.keys())},
        )

    def perform_destroy(self, instance):
        record_audit(
            actor=self.request.user,
            action="coupon.delete",
            entity_type="coupon",
            entity_id=instance.id,
            payload={"code": instance.code},
        )
        instance.delete()
