"""
Django app configuration for dj_points.
"""

from django.apps import AppConfig
from django.contrib.auth import get_user_model
from django.db.models.signals import post_save


def _open_account(sender, instance, created, raw=False, **kwargs):
    """Open a points account for every new user."""
    if not created or raw:
        return
    from .conf import points_settings
    from .utils import get_ledger_service

    if points_settings.AUTO_CREATE_ACCOUNTS:
        get_ledger_service().get_or_create_account(instance)


class DjPointsConfig(AppConfig):
    """Configuration for the points ledger application."""

    name = "dj_points"
    verbose_name = "Points Ledger"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        """Import signals when the app is ready."""
        from . import signals  # noqa: F401

        post_save.connect(
            _open_account,
            sender=get_user_model(),
            dispatch_uid="dj_points.open_account.post_save",
        )
