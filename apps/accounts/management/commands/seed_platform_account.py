from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from apps.accounts.models import UserRole


class Command(BaseCommand):
    help = "Create the platform ledger account that receives commissions"

    def handle(self, *args, **options):
        User = get_user_model()
        username = settings.MARKETPLACE_PLATFORM_ACCOUNT
        user, created = User.objects.get_or_create(
            username=username,
            defaults={"role": UserRole.ADMIN, "is_active": False},
        )
        if created:
            user.set_unusable_password()
            user.save(update_fields=["password"])
        action = "created" if created else "exists"
        self.stdout.write(self.style.SUCCESS(f"{user.username}: {action}"))
