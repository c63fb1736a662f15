from .catalog import CatalogService
from .checkout import CheckoutResult, CheckoutService
from .common import LedgerService, storage_operation
from .distribution import DistributionResult, DistributionService
from .quota import QuotaResult, QuotaService, QuotaStatus
from .transfer import TransferResult, TransferService

__all__ = [
    "CatalogService",
    "CheckoutResult",
    "CheckoutService",
    "DistributionResult",
    "DistributionService",
    "LedgerService",
    "QuotaResult",
    "QuotaService",
    "QuotaStatus",
    "TransferResult",
    "TransferService",
    "storage_operation",
]
