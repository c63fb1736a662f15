from django.utils.module_loading import import_string

from .conf import points_settings


def get_ledger_service():
    """
    Returns the configured LedgerService class.
    Override via settings: DJ_POINTS['LEDGER_SERVICE_CLASS']
    Example:
        LedgerService = get_ledger_service()
        LedgerService.credit(user, 10)
    """
    return import_string(points_settings.LEDGER_SERVICE_CLASS)


def get_quota_service():
    """
    Returns the configured QuotaService class.
    Override via settings: DJ_POINTS['QUOTA_SERVICE_CLASS']
    """
    return import_string(points_settings.QUOTA_SERVICE_CLASS)


def get_transfer_service():
    """
    Returns the configured TransferService class.
    Override via settings: DJ_POINTS['TRANSFER_SERVICE_CLASS']
    """
    return import_string(points_settings.TRANSFER_SERVICE_CLASS)


def get_catalog_service():
    """
    Returns the configured CatalogService class.
    Override via settings: DJ_POINTS['CATALOG_SERVICE_CLASS']
    """
    return import_string(points_settings.CATALOG_SERVICE_CLASS)


def get_checkout_service():
    """
    Returns the configured CheckoutService class.
    Override via settings: DJ_POINTS['CHECKOUT_SERVICE_CLASS']
    """
    return import_string(points_settings.CHECKOUT_SERVICE_CLASS)


def get_distribution_service():
    """
    Returns the configured DistributionService class.
    Override via settings: DJ_POINTS['DISTRIBUTION_SERVICE_CLASS']
    """
    return import_string(points_settings.DISTRIBUTION_SERVICE_CLASS)
