from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.cart.models import CartLine
from apps.cart.serializers import CartAddSerializer, CartLineSerializer, CartQuantitySerializer
from apps.cart.services import add_to_cart, cart_total
from apps.common.permissions import RolePermission


class CartViewSet(viewsets.ModelViewSet):
    serializer_class = CartLineSerializer
    permission_classes = [RolePermission]
    pagination_class = None
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]
    capability_map = {
        "list": ["cart.manage"],
        "retrieve": ["cart.manage"],
        "create": ["cart.manage"],
        "partial_update": ["cart.manage"],
        "destroy": ["cart.manage"],
        "clear": ["cart.manage"],
    }

    def get_queryset(self):
        return CartLine.objects.select_related("project").filter(user=self.request.user).order_by("created_at")

    def list(self, request, *args, **kwargs):
        lines = list(self.get_queryset())
        return Response({"items": self.get_serializer(lines, many=True).data, "total": str(cart_total(lines))})

    def create(self, request, *args, **kwargs):
        serializer = CartAddSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        line, created = add_to_cart(
            user=request.user,
            project=serializer.validated_data["project"],
            quantity=serializer.validated_data["quantity"],
        )
        return Response(
            self.get_serializer(line).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def partial_update(self, request, *args, **kwargs):
        line = self.get_object()
        serializer = CartQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        line.quantity = serializer.validated_data["quantity"]
        line.save(update_fields=["quantity", "updated_at"])
        return Response(self.get_serializer(line).data)

    @action(detail=False, methods=["delete"])
    def clear(self, request):
        self.get_queryset().delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
