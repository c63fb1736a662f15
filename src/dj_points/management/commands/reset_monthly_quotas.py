from __future__ import annotations

from django.core.management.base import BaseCommand
from django.utils import timezone

from dj_points.models import Account
from dj_points.services.quota import start_of_month
from dj_points.utils import get_quota_service


class Command(BaseCommand):
    help = "Reset monthly cheer usage for accounts not yet reset this month."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true")

    def handle(self, *args, **options):
        if options["dry_run"]:
            due = Account.objects.filter(
                last_monthly_reset__lt=start_of_month(timezone.now())
            ).count()
            self.stdout.write(f"DRY-RUN accounts due for reset: {due}")
            return

        count = get_quota_service().reset_all()
        self.stdout.write(f"Reset monthly cheer usage: {count} account(s)")
