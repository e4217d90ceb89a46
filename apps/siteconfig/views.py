from rest_framework.generics import GenericAPIView
from rest_framework.response import Response

from apps.common.permissions import RolePermission
from apps.siteconfig.serializers import CommissionRateSerializer
from apps.siteconfig.services import get_commission_rate, set_commission_rate


class CommissionRateView(GenericAPIView):
    serializer_class = CommissionRateSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "get": ["settings.manage"],
        "put": ["settings.manage"],
    }

    def get(self, request):
        return Response(self.get_serializer({"commission_rate": get_commission_rate()}).data)

    def put(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        rate = set_commission_rate(rate=serializer.validated_data["commission_rate"], actor=request.user)
        return Response(self.get_serializer({"commission_rate": rate}).data)
