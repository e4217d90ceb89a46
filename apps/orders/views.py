from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.common.permissions import RolePermission
from apps.orders.models import Order
from apps.orders.serializers import (
    AdminOrderSerializer,
    OrderCreateSerializer,
    OrderListSerializer,
    OrderPaySerializer,
    OrderSerializer,
    OrderStatusOverrideSerializer,
)
from apps.orders.services import cancel_order, complete_order, create_order, override_order_status, pay_order

UUID_PATTERN = "[0-9a-fA-F-]{36}"


class OrderViewSet(viewsets.ModelViewSet):
    serializer_class = OrderSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "head", "options"]
    capability_map = {
        "list": ["orders.view.own"],
        "retrieve": ["orders.view.own"],
        "create": ["orders.create"],
        "cancel": ["orders.cancel.own"],
        "pay": ["orders.pay.own"],
        "payment_status": ["orders.view.own"],
    }

    def get_queryset(self):
        queryset = Order.objects.filter(buyer=self.request.user).prefetch_related("items__project")
        status_param = self.request.query_params.get("status")
        if status_param:
            queryset = queryset.filter(order_status=status_param)
        return queryset.order_by("-created_at")

    def get_serializer_class(self):
        if self.action == "list":
            return OrderListSerializer
        return OrderSerializer

    def create(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = create_order(
            buyer=request.user,
            billing_info=serializer.validated_data["billing_info"],
            coupon_code=serializer.validated_data.get("coupon_code"),
            payment_method=serializer.validated_data["payment_method"],
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        order = cancel_order(order_id=pk, buyer=request.user)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def pay(self, request, pk=None):
        serializer = OrderPaySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order, transaction_id = pay_order(
            order_id=pk,
            buyer=request.user,
            payment_method=serializer.validated_data.get("payment_method"),
            transaction_id=serializer.validated_data.get("transaction_id"),
        )
        return Response(
            {
                "transaction_id": transaction_id,
                "payment_method": order.payment_method,
                "amount": str(order.final_amount),
                "currency": order.currency,
                "order": OrderSerializer(order).data,
            }
        )

    @action(detail=True, methods=["get"], url_path="payment-status")
    def payment_status(self, request, pk=None):
        order = self.get_object()
        return Response({"payment_status": order.payment_status, "order_status": order.order_status})


class AdminOrderViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = AdminOrderSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["orders.manage"],
        "retrieve": ["orders.manage"],
        "set_status": ["orders.manage"],
        "complete": ["orders.manage"],
    }

    def get_queryset(self):
        queryset = Order.objects.select_related("buyer").prefetch_related("items__project", "transactions__user")
        order_status = self.request.query_params.get("order_status")
        payment_status = self.request.query_params.get("payment_status")
        query = self.request.query_params.get("q")
        if order_status:
            queryset = queryset.filter(order_status=order_status)
        if payment_status:
            queryset = queryset.filter(payment_status=payment_status)
        if query:
            queryset = queryset.filter(order_number__icontains=query.strip())
        return queryset.order_by("-created_at")

    def get_serializer_class(self):
        if self.action == "list":
            return OrderListSerializer
        return AdminOrderSerializer

    @action(detail=True, methods=["put", "patch"], url_path="status")
    def set_status(self, request, pk=None):
        serializer = OrderStatusOverrideSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = override_order_status(order_id=pk, actor=request.user, **serializer.validated_data)
        return Response(AdminOrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):
        order = complete_order(order_id=pk, actor=request.user)
        return Response(AdminOrderSerializer(order).data)
