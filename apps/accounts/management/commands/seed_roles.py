from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from apps.accounts.models import UserRole


class Command(BaseCommand):
    help = "Create the ADMIN/SELLER/BUYER groups and optionally put every user in the group of their role"

    def add_arguments(self, parser):
        parser.add_argument("--sync-users", action="store_true", help="Align group membership with User.role")

    def handle(self, *args, **options):
        groups = {}
        for role in UserRole.values:
            groups[role], created = Group.objects.get_or_create(name=role)
            self.stdout.write(self.style.SUCCESS(f"{role}: {'created' if created else 'exists'}"))

        if not options["sync_users"]:
            return

        role_groups = list(groups.values())
        synced = 0
        for user in get_user_model().objects.filter(is_active=True).iterator():
            user.groups.remove(*[group for group in role_groups if group.name != user.role])
            if user.role in groups:
                user.groups.add(groups[user.role])
            synced += 1
        self.stdout.write(self.style.SUCCESS(f"synced {synced} users"))
