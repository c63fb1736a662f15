# dj_points/services/common.py
import functools
import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import DatabaseError, OperationalError, transaction
from django.db.models import Q, Sum

from ..conf import points_settings
from ..exceptions import (
    AmountInvalid,
    ConflictRetryable,
    InsufficientFunds,
    InvalidRequest,
    NotFound,
    StorageFailure,
)
from ..models import Account, Transaction
from ..signals import account_created, balance_changed, transaction_created

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
# ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK
CONFLICT_MYSQL_CODES = {1205, 1213}
CONFLICT_MESSAGES = (
    "database is locked",
    "deadlock",
    "could not serialize",
    "lock wait timeout",
)


def is_conflict(exc):
    """Return True when a database error is a lock or serialization conflict."""
    cause = exc.__cause__
    sqlstate = getattr(cause, "pgcode", None) or getattr(cause, "sqlstate", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True
    args = getattr(cause, "args", None) or exc.args
    if args and args[0] in CONFLICT_MYSQL_CODES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in CONFLICT_MESSAGES)


def coerce_pk(model, value, label=None):
    """
    Convert ``value`` (an instance or a raw identifier) to ``model``'s primary
    key type. Malformed identifiers raise InvalidRequest.
    """
    raw = getattr(value, "pk", value)
    try:
        pk = model._meta.pk.to_python(raw)
    except ValidationError:
        pk = None
    if pk is None:
        label = label or model._meta.verbose_name
        raise InvalidRequest(f"Invalid {label} id: {raw!r}")
    return pk


def storage_operation(func):
    """
    Map database errors raised by a ledger operation onto the points error
    taxonomy.

    Conflicts are retried up to ``CONFLICT_RETRY_ATTEMPTS`` times when the
    operation owns its transaction. Inside an outer atomic block the conflict
    is raised as ``ConflictRetryable`` so the owner of the transaction can
    retry it as a whole.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        attempts = points_settings.CONFLICT_RETRY_ATTEMPTS
        for attempt in range(1, attempts + 1):
            nested = transaction.get_connection().in_atomic_block
            try:
                return func(*args, **kwargs)
            except ConflictRetryable:
                if nested:
                    raise
                error = None
            except OperationalError as exc:
                if not is_conflict(exc):
                    raise StorageFailure(f"Storage error: {exc}") from exc
                if nested:
                    raise ConflictRetryable(f"Storage conflict: {exc}") from exc
                error = exc
            except DatabaseError as exc:
                raise StorageFailure(f"Storage error: {exc}") from exc

            if attempt < attempts:
                logger.warning(
                    "Conflict in %s (attempt %d/%d), retrying",
                    func.__qualname__,
                    attempt,
                    attempts,
                )

        raise StorageFailure(
            f"{func.__qualname__} failed after {attempts} conflicting attempts."
        ) from error

    return wrapper


class LedgerService:
    @staticmethod
    def verify_amount(amount):
        """
        Ensures amount is a positive whole number of points.
        """
        if isinstance(amount, bool):
            raise AmountInvalid("Amount must be a whole number of points.")
        try:
            # Convert via string so 10.5 or "1e3" are rejected, not truncated
            value = int(str(amount))
        except (TypeError, ValueError):
            raise AmountInvalid("Amount must be a whole number of points.") from None

        if value <= 0:
            raise AmountInvalid("Amount must be positive.")
        return value

    @staticmethod
    def get_account(user):
        try:
            return Account.objects.get(user_id=coerce_pk(get_user_model(), user, "user"))
        except Account.DoesNotExist:
            raise NotFound(
                f"No points account for user {getattr(user, 'pk', user)}."
            ) from None

    @classmethod
    def get_balance(cls, user):
        """Return the user's account as currently stored."""
        return cls.get_account(user)

    @classmethod
    @storage_operation
    def get_or_create_account(cls, user):
        account, created = Account.objects.get_or_create(user=user)
        if created:
            logger.info("Opened points account for user %s", user.pk)
            account_created.send(sender=cls, account=account, user=user)
        return account

    @staticmethod
    def lock_account(user):
        """
        Fetch the user's account with a row lock.
        Must be called inside ``transaction.atomic()``.
        """
        try:
            return Account.objects.select_for_update().get(
                user_id=coerce_pk(get_user_model(), user, "user")
            )
        except Account.DoesNotExist:
            raise NotFound(
                f"No points account for user {getattr(user, 'pk', user)}."
            ) from None

    @classmethod
    def credit_locked(
        cls,
        account,
        amount,
        kind,
        description="",
        metadata=None,
        message="",
        counterparty=None,
    ):
        """
        Credit an account already locked by the caller's atomic block.
        """
        if kind not in Transaction.CREDIT_KINDS:
            raise InvalidRequest(f"'{kind}' is not a credit kind.")

        txn = Transaction.objects.create(
            account=account,
            counterparty=counterparty,
            kind=kind,
            amount=amount,
            description=description or kind,
            message=message or "",
            metadata=metadata or {},
        )

        account.available_points += amount
        account.total_earned += amount
        account.last_transaction_at = txn.created_at
        account.save(
            update_fields=[
                "available_points",
                "total_earned",
                "last_transaction_at",
                "updated_at",
            ]
        )

        balance_changed.send(sender=cls, account=account, transaction=txn)
        transaction_created.send(sender=cls, transaction=txn)
        return txn

    @classmethod
    def debit_locked(
        cls,
        account,
        amount,
        kind,
        description="",
        metadata=None,
        message="",
        counterparty=None,
    ):
        """
        Debit an account already locked by the caller's atomic block.
        Checks the balance against the locked row.
        """
        if kind not in Transaction.DEBIT_KINDS:
            raise InvalidRequest(f"'{kind}' is not a debit kind.")

        if account.available_points < amount:
            raise InsufficientFunds(
                f"Insufficient points. Available: {account.available_points}, "
                f"Required: {amount}"
            )

        txn = Transaction.objects.create(
            account=account,
            counterparty=counterparty,
            kind=kind,
            amount=amount,
            description=description or kind,
            message=message or "",
            metadata=metadata or {},
        )

        account.available_points -= amount
        account.total_spent += amount
        account.last_transaction_at = txn.created_at
        account.save(
            update_fields=[
                "available_points",
                "total_spent",
                "last_transaction_at",
                "updated_at",
            ]
        )

        balance_changed.send(sender=cls, account=account, transaction=txn)
        transaction_created.send(sender=cls, transaction=txn)
        return txn

    @classmethod
    @storage_operation
    def credit(
        cls,
        user,
        amount,
        kind=Transaction.KIND_EARNED,
        description="",
        metadata=None,
        message="",
    ):
        """
        Adds points to the user's account and records one ledger entry.
        """
        amount = cls.verify_amount(amount)

        with transaction.atomic():
            account = cls.lock_account(user)
            return cls.credit_locked(
                account, amount, kind, description, metadata, message
            )

    @classmethod
    @storage_operation
    def debit(
        cls,
        user,
        amount,
        kind=Transaction.KIND_SPENT,
        description="",
        metadata=None,
        message="",
    ):
        """
        Takes points from the user's account and records one ledger entry.
        Raises InsufficientFunds when the balance does not cover the amount.
        """
        amount = cls.verify_amount(amount)

        with transaction.atomic():
            account = cls.lock_account(user)
            return cls.debit_locked(
                account, amount, kind, description, metadata, message
            )

    @classmethod
    def list_transactions(cls, user, kind=None, page=1, limit=20):
        """
        Ledger entries of the user's account, newest first.

        A cheer appears once per side: the sender sees the ``given`` entry and
        the recipient the ``received`` one.
        """
        if kind is not None and kind not in dict(Transaction.KIND_CHOICES):
            raise InvalidRequest(f"Unknown transaction kind '{kind}'.")
        if not isinstance(page, int) or page < 1:
            raise InvalidRequest("Page must be a positive integer.")
        if not isinstance(limit, int) or not 1 <= limit <= points_settings.MAX_PAGE_SIZE:
            raise InvalidRequest(
                f"Limit must be between 1 and {points_settings.MAX_PAGE_SIZE}."
            )

        account = cls.get_account(user)
        queryset = (
            Transaction.objects.for_account(account)
            .select_related("counterparty__user")
            .newest_first()
        )
        if kind is not None:
            queryset = queryset.of_kind(kind)

        offset = (page - 1) * limit
        return list(queryset[offset : offset + limit])

    @classmethod
    def admin_adjust(
        cls, user, amount, reason, kind=Transaction.KIND_ADMIN_GRANT, admin=None
    ):
        """
        Grant or deduct points on behalf of an administrator.
        Authorization is checked by the caller.
        """
        metadata = {"reason": reason or ""}
        if admin is not None:
            metadata["admin_id"] = admin.pk

        if kind == Transaction.KIND_ADMIN_GRANT:
            txn = cls.credit(
                user, amount, kind, reason or "Admin grant", metadata=metadata
            )
        elif kind == Transaction.KIND_ADMIN_DEDUCT:
            txn = cls.debit(
                user, amount, kind, reason or "Admin deduction", metadata=metadata
            )
        else:
            raise InvalidRequest("Admin adjustments must be admin_grant or admin_deduct.")

        logger.info(
            "Admin %s applied %s of %s points to user %s",
            metadata.get("admin_id"),
            kind,
            txn.amount,
            user.pk,
        )
        return txn

    @staticmethod
    def ledger_totals(account):
        """Sum of credit and debit entries for an account."""
        totals = Transaction.objects.for_account(account).aggregate(
            credits=Sum("amount", filter=Q(kind__in=Transaction.CREDIT_KINDS)),
            debits=Sum("amount", filter=Q(kind__in=Transaction.DEBIT_KINDS)),
        )
        return totals["credits"] or 0, totals["debits"] or 0

    @classmethod
    def verify_reconciliation(cls, account):
        """
        True when the stored balance matches both the lifetime counters and
        the account's ledger.
        """
        account.refresh_from_db()
        credits, debits = cls.ledger_totals(account)
        return (
            account.available_points == account.total_earned - account.total_spent
            and account.available_points == credits - debits
            and account.total_earned == credits
            and account.total_spent == debits
        )
