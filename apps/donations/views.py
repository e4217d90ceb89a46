from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from apps.catalog.models import Project
from apps.common.permissions import RolePermission
from apps.coupons.serializers import CouponSerializer
from apps.donations.incentives import active_incentive_coupons
from apps.donations.models import COUNTED_STATUSES, ProjectDonation
from apps.donations.serializers import (
    AdminDonationSerializer,
    DonationPaymentSerializer,
    DonationSerializer,
    DonationSubmitSerializer,
    MyDonationSerializer,
    PublicDonationSerializer,
)
from apps.donations.services import approve_donation, complete_donation_payment, submit_donation

UUID_PATTERN = "[0-9a-fA-F-]{36}"


def _donation_result(donation, coupon):
    return {
        "donation_id": str(donation.id),
        "status": donation.status,
        "transaction_id": donation.transaction_id,
        "donation": DonationSerializer(donation).data,
        "discount_coupon": CouponSerializer(coupon).data if coupon is not None else None,
    }


class ProjectDonationView(GenericAPIView):
    """Public donation wall of a project; anyone may donate, guests anonymously."""

    permission_classes = [AllowAny]
    serializer_class = PublicDonationSerializer

    def get_project(self):
        return get_object_or_404(Project, pk=self.kwargs["project_id"])

    def get(self, request, project_id):
        project = self.get_project()
        queryset = (
            ProjectDonation.objects.select_related("donor")
            .filter(project=project, status__in=COUNTED_STATUSES)
            .order_by("-created_at")
        )
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(queryset, many=True).data)

    def post(self, request, project_id):
        project = self.get_project()
        serializer = DonationSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        donor = request.user if request.user.is_authenticated else None
        donation, coupon = submit_donation(
            project=project,
            donor=donor,
            amount=serializer.validated_data["amount"],
            payment_method=serializer.validated_data.get("payment_method"),
            is_anonymous=serializer.validated_data["anonymous"],
            message=serializer.validated_data.get("message", ""),
        )
        return Response(_donation_result(donation, coupon), status=status.HTTP_201_CREATED)


class DonationViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = MyDonationSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["donations.view.own"],
        "retrieve": ["donations.view.own"],
        "complete_payment": ["donations.pay.own"],
    }

    def get_queryset(self):
        return ProjectDonation.objects.select_related("project", "donor").filter(donor=self.request.user).order_by("-created_at")

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        donations = page if page is not None else list(queryset)
        projects = {donation.project_id: donation.project for donation in donations}.values()
        context = {**self.get_serializer_context(), "incentive_coupons": active_incentive_coupons(request.user, projects)}
        serializer = self.get_serializer_class()(donations, many=True, context=context)
        if page is not None:
            return self.get_paginated_response(serializer.data)
        return Response(serializer.data)

    @action(detail=True, methods=["post"], url_path="complete-payment")
    def complete_payment(self, request, pk=None):
        serializer = DonationPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        donation, coupon = complete_donation_payment(
            donation_id=pk,
            donor=request.user,
            payment_method=serializer.validated_data.get("payment_method"),
        )
        return Response(_donation_result(donation, coupon))


class AdminDonationViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = AdminDonationSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["donations.manage"],
        "retrieve": ["donations.manage"],
        "approve": ["donations.approve"],
    }

    def get_queryset(self):
        queryset = ProjectDonation.objects.select_related("project", "donor", "approved_by").order_by("-created_at")
        status_param = self.request.query_params.get("status")
        project_id = self.request.query_params.get("project")
        if status_param:
            queryset = queryset.filter(status=status_param)
        if project_id:
            queryset = queryset.filter(project_id=project_id)
        return queryset

    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        donation = approve_donation(donation_id=pk, actor=request.user)
        return Response(
            {
                **self.get_serializer(donation).data,
                "admin_commission": str(donation.admin_commission),
                "project_owner_amount": str(donation.project_owner_amount),
            }
        )
