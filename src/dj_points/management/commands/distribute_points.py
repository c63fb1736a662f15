from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from dj_points.utils import get_distribution_service


class Command(BaseCommand):
    help = "Credit the periodic points allowance to every active user."

    def add_arguments(self, parser):
        parser.add_argument("--points", type=int, help="Points per user; defaults to settings.")
        parser.add_argument("--batch-size", type=int)

    def handle(self, *args, **options):
        points = options.get("points")
        if points is not None and points <= 0:
            raise CommandError("--points must be positive.")
        batch_size = options.get("batch_size")
        if batch_size is not None and batch_size <= 0:
            raise CommandError("--batch-size must be positive.")

        result = get_distribution_service().distribute(
            points=points, batch_size=batch_size
        )
        for error in result.errors:
            self.stderr.write(error)
        self.stdout.write(
            f"Distributed points: {result.users_updated} user(s), {len(result.errors)} error(s)"
        )
