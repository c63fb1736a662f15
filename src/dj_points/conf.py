"""
Configuration settings for dj_points.

Settings can be overridden in your Django settings.py using the DJ_POINTS dictionary.
"""

from dataclasses import dataclass
from typing import Any

from django.conf import settings as django_settings
from django.core.exceptions import ImproperlyConfigured


@dataclass
class PointsSettings:
    """Settings container for dj_points configuration."""

    # Monthly cheer allowance given to new accounts
    DEFAULT_MONTHLY_TRANSFER_LIMIT: int = 100

    # Largest amount a single cheer may carry
    MAX_TRANSFER_AMOUNT: int = 100

    # Status given to orders at checkout: "pending" or "completed"
    CHECKOUT_ORDER_STATUS: str = "pending"

    # Attempts made on lock/serialization conflicts before giving up
    CONFLICT_RETRY_ATTEMPTS: int = 3

    # Upper bound for list_transactions page size
    MAX_PAGE_SIZE: int = 100

    # Create an Account whenever a user is created
    AUTO_CREATE_ACCOUNTS: bool = True

    # Scheduled distribution
    DISTRIBUTION_POINTS_PER_CYCLE: int = 5
    DISTRIBUTION_BATCH_SIZE: int = 20

    # Swappable service classes - use dotted path strings
    LEDGER_SERVICE_CLASS: str = "dj_points.services.common.LedgerService"
    QUOTA_SERVICE_CLASS: str = "dj_points.services.quota.QuotaService"
    TRANSFER_SERVICE_CLASS: str = "dj_points.services.transfer.TransferService"
    CATALOG_SERVICE_CLASS: str = "dj_points.services.catalog.CatalogService"
    CHECKOUT_SERVICE_CLASS: str = "dj_points.services.checkout.CheckoutService"
    DISTRIBUTION_SERVICE_CLASS: str = (
        "dj_points.services.distribution.DistributionService"
    )

    def __init__(self):
        """Initialize settings from Django settings if available."""
        user_settings = getattr(django_settings, "DJ_POINTS", {})

        for key in self.__class__.__dataclass_fields__:
            if key in user_settings:
                setattr(self, key, user_settings[key])
            else:
                setattr(self, key, getattr(self.__class__, key))

        self._validate_settings()

    def _validate_settings(self):
        """
        Validate user-provided settings and raise ImproperlyConfigured for invalid values.
        """
        positive_ints = [
            "DEFAULT_MONTHLY_TRANSFER_LIMIT",
            "MAX_TRANSFER_AMOUNT",
            "CONFLICT_RETRY_ATTEMPTS",
            "MAX_PAGE_SIZE",
            "DISTRIBUTION_POINTS_PER_CYCLE",
            "DISTRIBUTION_BATCH_SIZE",
        ]
        for name in positive_ints:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ImproperlyConfigured(
                    f"DJ_POINTS['{name}'] must be a positive integer. Got: {value}"
                )

        if self.CHECKOUT_ORDER_STATUS not in ("pending", "completed"):
            raise ImproperlyConfigured(
                "DJ_POINTS['CHECKOUT_ORDER_STATUS'] must be 'pending' or 'completed'. "
                f"Got: {self.CHECKOUT_ORDER_STATUS}"
            )

        if not isinstance(self.AUTO_CREATE_ACCOUNTS, bool):
            raise ImproperlyConfigured(
                "DJ_POINTS['AUTO_CREATE_ACCOUNTS'] must be a boolean. "
                f"Got: {self.AUTO_CREATE_ACCOUNTS}"
            )

        service_classes = [
            "LEDGER_SERVICE_CLASS",
            "QUOTA_SERVICE_CLASS",
            "TRANSFER_SERVICE_CLASS",
            "CATALOG_SERVICE_CLASS",
            "CHECKOUT_SERVICE_CLASS",
            "DISTRIBUTION_SERVICE_CLASS",
        ]
        for name in service_classes:
            value = getattr(self, name)
            if not isinstance(value, str) or "." not in value:
                raise ImproperlyConfigured(
                    f"DJ_POINTS['{name}'] must be a valid dotted path string. "
                    f"Got: {value}"
                )

    def __getattr__(self, name: str) -> Any:
        """Fallback for attribute access."""
        raise AttributeError(f"'{type(self).__name__}' has no setting '{name}'")


# Singleton instance for import convenience
points_settings = PointsSettings()
