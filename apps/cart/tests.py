from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.cart.models import CartLine
from apps.catalog.models import Project, ProjectStatus

User = get_user_model()


class CartApiTests(APITestCase):
    def setUp(self):
        self.seller = User.objects.create_user(username="seller", password="seller123", role="SELLER")
        self.buyer = User.objects.create_user(username="buyer", password="buyer123", role="BUYER")
        self.project = Project.objects.create(
            owner=self.seller,
            title="Solar Kit",
            slug="solar-kit",
            price=Decimal("1000.00"),
            discount_price=Decimal("920.00"),
            status=ProjectStatus.ACTIVE,
        )
        self.draft = Project.objects.create(
            owner=self.seller, title="Draft", slug="draft", price=Decimal("10.00"), status=ProjectStatus.DRAFT
        )
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": "buyer", "password": "buyer123"},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_add_then_increment_line(self):
        first = self.client.post("/api/v1/cart/", {"project": str(self.project.id)}, format="json")
        second = self.client.post("/api/v1/cart/", {"project": str(self.project.id), "quantity": 2}, format="json")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.data["quantity"], 3)
        self.assertEqual(CartLine.objects.filter(user=self.buyer).count(), 1)

        listing = self.client.get("/api/v1/cart/")
        self.assertEqual(listing.data["total"], "2760.00")
        self.assertEqual(listing.data["items"][0]["unit_price"], "920.00")

    def test_quantity_must_be_positive(self):
        response = self.client.post("/api/v1/cart/", {"project": str(self.project.id), "quantity": 0}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("quantity", response.data["fields"])

    def test_unpublished_project_cannot_be_added(self):
        response = self.client.post("/api/v1/cart/", {"project": str(self.draft.id)}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "project_unavailable")

    def test_update_remove_and_clear(self):
        line_id = self.client.post("/api/v1/cart/", {"project": str(self.project.id)}, format="json").data["id"]

        updated = self.client.patch(f"/api/v1/cart/{line_id}/", {"quantity": 4}, format="json")
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.data["quantity"], 4)
        invalid = self.client.patch(f"/api/v1/cart/{line_id}/", {"quantity": 0}, format="json")
        self.assertEqual(invalid.status_code, 400)

        removed = self.client.delete(f"/api/v1/cart/{line_id}/")
        self.assertEqual(removed.status_code, 204)

        self.client.post("/api/v1/cart/", {"project": str(self.project.id)}, format="json")
        cleared = self.client.delete("/api/v1/cart/clear/")
        self.assertEqual(cleared.status_code, 204)
        self.assertFalse(CartLine.objects.filter(user=self.buyer).exists())

    def test_cart_is_private(self):
        other = User.objects.create_user(username="other", password="other123", role="BUYER")
        line = CartLine.objects.create(user=other, project=self.project, quantity=1)

        self.assertEqual(self.client.get("/api/v1/cart/").data["items"], [])
        self.assertEqual(self.client.delete(f"/api/v1/cart/{line.id}/").status_code, 404)
