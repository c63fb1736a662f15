# dj_points/services/transfer.py
import logging
import uuid
from dataclasses import dataclass

from django.contrib.auth import get_user_model
from django.db import transaction

from ..conf import points_settings
from ..exceptions import InvalidRequest, NotFound, QuotaExceeded
from ..models import Account, Transaction
from ..signals import transfer_completed
from .common import LedgerService, coerce_pk, storage_operation
from .quota import QuotaService

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000


@dataclass(frozen=True)
class TransferResult:
    given: Transaction
    received: Transaction
    sender_account: Account
    recipient_account: Account
    quota_remaining: int


class TransferService:
    """
    Peer-to-peer cheers.

    A cheer consumes the sender's monthly quota, debits the sender and credits
    the recipient, all under row locks inside one atomic block.
    """

    @staticmethod
    def _resolve_recipient(recipient):
        User = get_user_model()
        pk = coerce_pk(User, recipient, "recipient")
        user = User.objects.filter(pk=pk).first()
        if user is None or not getattr(user, "is_active", True):
            raise NotFound("Recipient not found or inactive.")
        return user

    @staticmethod
    def _lock_pair(sender, recipient):
        """Lock both accounts, always in primary key order."""
        accounts = {
            account.user_id: account
            for account in Account.objects.select_for_update()
            .filter(user_id__in=[sender.pk, recipient.pk])
            .order_by("pk")
        }
        if sender.pk not in accounts:
            raise NotFound(f"No points account for user {sender.pk}.")
        if recipient.pk not in accounts:
            raise NotFound("Recipient has no points account.")
        return accounts[sender.pk], accounts[recipient.pk]

    @classmethod
    @storage_operation
    def transfer(cls, sender, recipient, amount, message=""):
        """
        Cheer ``amount`` points from ``sender`` to ``recipient``.

        ``recipient`` may be a user instance or its primary key.
        """
        recipient_pk = getattr(recipient, "pk", recipient)
        if recipient_pk is not None and str(recipient_pk) == str(sender.pk):
            raise InvalidRequest("Cannot send points to yourself.")

        amount = LedgerService.verify_amount(amount)
        if amount > points_settings.MAX_TRANSFER_AMOUNT:
            raise InvalidRequest(
                f"A single cheer cannot exceed {points_settings.MAX_TRANSFER_AMOUNT} points."
            )

        message = (message or "").strip()
        if len(message) > MAX_MESSAGE_LENGTH:
            raise InvalidRequest(
                f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters."
            )

        recipient = cls._resolve_recipient(recipient)
        transfer_id = str(uuid.uuid4())

        with transaction.atomic():
            sender_account, recipient_account = cls._lock_pair(sender, recipient)

            quota = QuotaService.consume_locked(sender_account, amount)
            if not quota.allowed:
                raise QuotaExceeded(
                    "Monthly cheer limit exceeded. You can send "
                    f"{quota.remaining} more points this month.",
                    remaining=quota.remaining,
                )

            given = LedgerService.debit_locked(
                sender_account,
                amount,
                Transaction.KIND_GIVEN,
                description="Cheered user",
                metadata={
                    "transfer_id": transfer_id,
                    "transaction_type": "cheer",
                    "recipient_id": recipient.pk,
                },
                message=message,
                counterparty=recipient_account,
            )
            received = LedgerService.credit_locked(
                recipient_account,
                amount,
                Transaction.KIND_RECEIVED,
                description="Received cheer",
                metadata={
                    "transfer_id": transfer_id,
                    "transaction_type": "cheer",
                    "sender_id": sender.pk,
                },
                message=message,
                counterparty=sender_account,
            )

            transfer_completed.send(sender=cls, given=given, received=received)

        logger.info(
            "Cheer %s: user %s sent %s points to user %s",
            transfer_id,
            sender.pk,
            amount,
            recipient.pk,
        )
        return TransferResult(
            given=given,
            received=received,
            sender_account=sender_account,
            recipient_account=recipient_account,
            quota_remaining=quota.remaining,
        )
