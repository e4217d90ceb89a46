from django.db.models import Q
from rest_framework import viewsets
from rest_framework.permissions import AllowAny

from apps.catalog.models import PURCHASABLE_STATUSES, Project
from apps.catalog.serializers import ProjectSerializer


class ProjectViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = ProjectSerializer
    permission_classes = [AllowAny]
    lookup_field = "slug"

    def get_queryset(self):
        queryset = Project.objects.select_related("owner").filter(status__in=PURCHASABLE_STATUSES)
        query = self.request.query_params.get("q")
        if query:
            queryset = queryset.filter(Q(title__icontains=query.strip()) | Q(slug__icontains=query.strip()))
        return queryset.order_by("-created_at")
