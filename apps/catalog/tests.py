from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.catalog.models import Project, ProjectStatus

User = get_user_model()


class ProjectCatalogTests(APITestCase):
    def setUp(self):
        self.seller = User.objects.create_user(username="seller", password="seller123", role="SELLER")
        Project.objects.create(
            owner=self.seller, title="Solar Kit", slug="solar-kit", price=Decimal("920.00"), status=ProjectStatus.ACTIVE
        )
        Project.objects.create(
            owner=self.seller,
            title="Wind Kit",
            slug="wind-kit",
            price=Decimal("500.00"),
            discount_price=Decimal("450.00"),
            status=ProjectStatus.APPROVED,
        )
        Project.objects.create(
            owner=self.seller, title="Hidden Draft", slug="hidden-draft", price=Decimal("1.00"), status=ProjectStatus.DRAFT
        )

    def test_listing_is_public_and_only_shows_purchasable_projects(self):
        response = self.client.get("/api/v1/projects/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(sorted(row["slug"] for row in response.data["results"]), ["solar-kit", "wind-kit"])

    def test_search_and_detail_by_slug(self):
        search = self.client.get("/api/v1/projects/?q=wind")
        detail = self.client.get("/api/v1/projects/wind-kit/")
        hidden = self.client.get("/api/v1/projects/hidden-draft/")

        self.assertEqual(search.data["count"], 1)
        self.assertEqual(detail.data["unit_price"], "450.00")
        self.assertEqual(detail.data["owner_username"], "seller")
        self.assertEqual(hidden.status_code, 404)
