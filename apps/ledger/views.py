from rest_framework import mixins, status, viewsets
from rest_framework.generics import GenericAPIView
from rest_framework.response import Response

from apps.common.permissions import RolePermission, has_capability
from apps.ledger.models import Transaction, TransactionType
from apps.ledger.serializers import EarningsSerializer, TransactionSerializer, WithdrawalRequestSerializer
from apps.ledger.services import earnings_summary, request_withdrawal


class TransactionViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = TransactionSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["ledger.view.own"],
        "retrieve": ["ledger.view.own"],
    }

    def get_queryset(self):
        queryset = Transaction.objects.select_related("user", "order").order_by("-created_at")
        if not has_capability(self.request.user, "ledger.manage"):
            return queryset.filter(user=self.request.user)

        user_id = self.request.query_params.get("user")
        type_param = self.request.query_params.get("type")
        if user_id:
            queryset = queryset.filter(user_id=user_id)
        if type_param:
            queryset = queryset.filter(type=type_param)
        return queryset


class EarningsView(GenericAPIView):
    serializer_class = EarningsSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["payouts.manage.own"]}

    def get(self, request):
        return Response(self.get_serializer(earnings_summary(request.user)).data)


class WithdrawalViewSet(mixins.ListModelMixin, mixins.CreateModelMixin, viewsets.GenericViewSet):
    serializer_class = TransactionSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["payouts.manage.own"],
        "create": ["payouts.manage.own"],
    }

    def get_queryset(self):
        return Transaction.objects.select_related("user", "order").filter(
            user=self.request.user, type=TransactionType.PAYOUT
        ).order_by("-created_at")

    def create(self, request, *args, **kwargs):
        serializer = WithdrawalRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payout = request_withdrawal(user=request.user, amount=serializer.validated_data["amount"])
        return Response(TransactionSerializer(payout).data, status=status.HTTP_201_CREATED)
