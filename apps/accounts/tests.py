from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.test import TestCase, override_settings

from apps.accounts.models import UserRole

User = get_user_model()


class AccountCommandTests(TestCase):
    def test_seed_roles_is_idempotent(self):
        call_command("seed_roles", stdout=StringIO())
        call_command("seed_roles", stdout=StringIO())

        self.assertEqual(sorted(Group.objects.values_list("name", flat=True)), sorted(UserRole.values))

    @override_settings(MARKETPLACE_PLATFORM_ACCOUNT="house")
    def test_seed_platform_account_creates_locked_user(self):
        out = StringIO()
        call_command("seed_platform_account", stdout=out)
        call_command("seed_platform_account", stdout=out)

        account = User.objects.get(username="house")
        self.assertFalse(account.is_active)
        self.assertFalse(account.has_usable_password())
        self.assertEqual(account.role, UserRole.ADMIN)
        self.assertIn("house: exists", out.getvalue())

    def test_new_users_default_to_buyer_with_empty_balance(self):
        user = User.objects.create_user(username="fresh", password="fresh123")

        self.assertEqual(user.role, UserRole.BUYER)
        self.assertEqual(user.balance, 0)

    def test_seed_roles_syncs_group_membership_with_role(self):
        seller = User.objects.create_user(username="maker", password="maker123", role=UserRole.SELLER)
        call_command("seed_roles", stdout=StringIO())
        seller.groups.add(Group.objects.get(name=UserRole.BUYER))

        out = StringIO()
        call_command("seed_roles", "--sync-users", stdout=out)

        self.assertEqual(list(seller.groups.values_list("name", flat=True)), [UserRole.SELLER])
        self.assertIn("synced 1 users", out.getvalue())
