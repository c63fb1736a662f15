# dj_points/services/quota.py
import logging
from dataclasses import dataclass
from datetime import datetime

from django.db import transaction
from django.utils import timezone

from ..exceptions import InvalidRequest
from ..models import Account
from .common import LedgerService, storage_operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaResult:
    allowed: bool
    remaining: int


@dataclass(frozen=True)
class QuotaStatus:
    limit: int
    used: int
    remaining: int
    last_reset: datetime


def start_of_month(now):
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class QuotaService:
    """
    Monthly cheer allowance per account.

    Usage resets lazily the first time an account is touched in a new
    calendar month, and in bulk via ``reset_all`` from a scheduled job.
    """

    @staticmethod
    def consume_locked(account, amount, now=None):
        """
        Check-and-consume against an account locked by the caller.

        The month rollover reset is written together with the consumption,
        or alone when the request is refused.
        """
        now = now or timezone.now()
        update_fields = []

        if account.needs_monthly_reset(now):
            account.monthly_transfer_used = 0
            account.last_monthly_reset = now
            update_fields += ["monthly_transfer_used", "last_monthly_reset"]

        if account.monthly_transfer_used + amount > account.monthly_transfer_limit:
            if update_fields:
                account.save(update_fields=update_fields + ["updated_at"])
            return QuotaResult(
                allowed=False,
                remaining=account.monthly_transfer_limit - account.monthly_transfer_used,
            )

        account.monthly_transfer_used += amount
        if "monthly_transfer_used" not in update_fields:
            update_fields.append("monthly_transfer_used")
        account.save(update_fields=update_fields + ["updated_at"])

        return QuotaResult(
            allowed=True,
            remaining=account.monthly_transfer_limit - account.monthly_transfer_used,
        )

    @classmethod
    @storage_operation
    def check_and_consume(cls, user, amount):
        """
        Atomically reserve ``amount`` of the user's monthly cheer allowance.
        """
        amount = LedgerService.verify_amount(amount)

        with transaction.atomic():
            account = LedgerService.lock_account(user)
            return cls.consume_locked(account, amount)

    @staticmethod
    def get_status(user, now=None):
        """Read-only view of the user's quota for the current month."""
        now = now or timezone.now()
        account = LedgerService.get_account(user)
        used = 0 if account.needs_monthly_reset(now) else account.monthly_transfer_used
        return QuotaStatus(
            limit=account.monthly_transfer_limit,
            used=used,
            remaining=max(account.monthly_transfer_limit - used, 0),
            last_reset=account.last_monthly_reset,
        )

    @classmethod
    @storage_operation
    def set_limit(cls, user, limit):
        """Change the monthly limit. It cannot drop below what was already used."""
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise InvalidRequest("Monthly limit must be a non-negative integer.")

        with transaction.atomic():
            account = LedgerService.lock_account(user)
            if account.needs_monthly_reset():
                account.monthly_transfer_used = 0
                account.last_monthly_reset = timezone.now()
            if limit < account.monthly_transfer_used:
                raise InvalidRequest(
                    f"Limit {limit} is below points already cheered this month "
                    f"({account.monthly_transfer_used})."
                )
            account.monthly_transfer_limit = limit
            account.save(
                update_fields=[
                    "monthly_transfer_limit",
                    "monthly_transfer_used",
                    "last_monthly_reset",
                    "updated_at",
                ]
            )
            return account

    @staticmethod
    @storage_operation
    def reset_all(now=None):
        """
        Reset usage of every account not yet reset this month.
        Returns the number of accounts reset.
        """
        now = now or timezone.now()
        count = Account.objects.filter(
            last_monthly_reset__lt=start_of_month(now)
        ).update(monthly_transfer_used=0, last_monthly_reset=now)
        logger.info("Reset monthly cheer usage for %d accounts", count)
        return count
