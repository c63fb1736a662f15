"""
Unit tests for TransferService.

Tests for cheers between users: validation, quota enforcement and the two
ledger entries written per cheer.
"""

import pytest

from dj_points.exceptions import (
    AmountInvalid,
    InsufficientFunds,
    InvalidRequest,
    NotFound,
    QuotaExceeded,
)
from dj_points.models import Account, Transaction
from dj_points.services import LedgerService, QuotaService, TransferService


@pytest.mark.django_db()
class TestTransfer:
    """Tests for successful cheers."""

    def test_transfer_moves_points(self, user_with_points, user_factory, assert_reconciled):
        sender = user_with_points(100)
        recipient = user_factory()

        result = TransferService.transfer(sender, recipient, 30, "nice work")

        assert result.sender_account.available_points == 70
        assert result.recipient_account.available_points == 30
        assert result.quota_remaining == 70
        assert LedgerService.get_balance(sender).available_points == 70
        assert LedgerService.get_balance(recipient).available_points == 30
        assert_reconciled(sender, recipient)

    def test_transfer_writes_linked_entries(self, user_with_points, user_factory):
        sender = user_with_points(100)
        recipient = user_factory()

        result = TransferService.transfer(sender, recipient, 30, "nice work")
        given, received = result.given, result.received

        assert given.kind == Transaction.KIND_GIVEN
        assert received.kind == Transaction.KIND_RECEIVED
        assert given.amount == received.amount == 30
        assert given.message == received.message == "nice work"
        assert given.metadata["transfer_id"] == received.metadata["transfer_id"]
        assert given.counterparty == result.recipient_account
        assert received.counterparty == result.sender_account
        assert given.from_account == received.from_account == result.sender_account
        assert given.to_account == received.to_account == result.recipient_account

    def test_transfer_updates_counters(self, user_with_points, user_factory):
        sender = user_with_points(100)
        recipient = user_factory()

        TransferService.transfer(sender, recipient, 25)

        sender_account = LedgerService.get_balance(sender)
        recipient_account = LedgerService.get_balance(recipient)
        assert sender_account.total_spent == 25
        assert sender_account.monthly_transfer_used == 25
        assert recipient_account.total_earned == 25
        assert recipient_account.monthly_transfer_used == 0

    def test_transfer_to_recipient_pk(self, user_with_points, user_factory):
        sender = user_with_points(50)
        recipient = user_factory()

        TransferService.transfer(sender, recipient.pk, 10)

        assert LedgerService.get_balance(recipient).available_points == 10

    def test_transfer_message_is_stripped(self, user_with_points, user_factory):
        sender = user_with_points(50)
        result = TransferService.transfer(sender, user_factory(), 5, "  thanks!  ")
        assert result.given.message == "thanks!"

    def test_transfer_max_amount(self, user_with_points, user_factory):
        sender = user_with_points(200)
        result = TransferService.transfer(sender, user_factory(), 100)
        assert result.quota_remaining == 0


@pytest.mark.django_db()
class TestTransferValidation:
    """Tests for rejected cheers. None of them may change any state."""

    def test_self_transfer(self, user_with_points):
        sender = user_with_points(100)

        with pytest.raises(InvalidRequest, match="yourself"):
            TransferService.transfer(sender, sender, 10)

        assert LedgerService.get_balance(sender).available_points == 100

    def test_self_transfer_by_pk(self, user_with_points):
        sender = user_with_points(100)
        with pytest.raises(InvalidRequest):
            TransferService.transfer(sender, str(sender.pk), 10)

    @pytest.mark.parametrize("amount", [0, -5, 2.5])
    def test_invalid_amount(self, user_with_points, user_factory, amount):
        sender = user_with_points(100)
        with pytest.raises(AmountInvalid):
            TransferService.transfer(sender, user_factory(), amount)

    def test_amount_above_single_transfer_cap(self, user_with_points, user_factory):
        sender = user_with_points(500)
        with pytest.raises(InvalidRequest):
            TransferService.transfer(sender, user_factory(), 101)

    def test_message_too_long(self, user_with_points, user_factory):
        sender = user_with_points(100)
        with pytest.raises(InvalidRequest):
            TransferService.transfer(sender, user_factory(), 5, "x" * 1001)

    def test_inactive_recipient(self, user_with_points, user_factory):
        sender = user_with_points(100)
        recipient = user_factory(is_active=False)

        with pytest.raises(NotFound):
            TransferService.transfer(sender, recipient, 10)

        assert LedgerService.get_balance(sender).available_points == 100
        assert LedgerService.get_balance(sender).monthly_transfer_used == 0

    def test_unknown_recipient(self, user_with_points):
        sender = user_with_points(100)
        with pytest.raises(NotFound):
            TransferService.transfer(sender, 987654, 10)

    def test_recipient_without_account(self, user_with_points, user_factory):
        sender = user_with_points(100)
        recipient = user_factory()
        Account.objects.filter(user=recipient).delete()

        with pytest.raises(NotFound):
            TransferService.transfer(sender, recipient, 10)

        assert LedgerService.get_balance(sender).available_points == 100

    def test_quota_exceeded(self, user_with_points, user_factory):
        sender = user_with_points(100)
        recipient = user_factory()
        Account.objects.filter(user=sender).update(monthly_transfer_used=95)
        entries_before = Transaction.objects.count()

        with pytest.raises(QuotaExceeded) as exc_info:
            TransferService.transfer(sender, recipient, 10)

        assert exc_info.value.remaining == 5
        sender_account = LedgerService.get_balance(sender)
        assert sender_account.available_points == 100
        assert sender_account.monthly_transfer_used == 95
        assert LedgerService.get_balance(recipient).available_points == 0
        assert Transaction.objects.count() == entries_before

    def test_insufficient_funds_does_not_consume_quota(self, user_with_points, user_factory):
        sender = user_with_points(10)
        recipient = user_factory()

        with pytest.raises(InsufficientFunds):
            TransferService.transfer(sender, recipient, 20)

        sender_account = LedgerService.get_balance(sender)
        assert sender_account.available_points == 10
        assert sender_account.monthly_transfer_used == 0
        assert LedgerService.get_balance(recipient).available_points == 0


@pytest.mark.django_db()
class TestTransferQuotaSequence:
    def test_quota_admits_exactly_the_limit(self, user_with_points, user_factory):
        """With a limit of 50, one hundred 1-point cheers let exactly 50 through."""
        sender = user_with_points(200)
        recipient = user_factory()
        QuotaService.set_limit(sender, 50)

        succeeded = 0
        refused = 0
        for _ in range(100):
            try:
                TransferService.transfer(sender, recipient, 1)
                succeeded += 1
            except QuotaExceeded:
                refused += 1

        assert succeeded == 50
        assert refused == 50
        assert LedgerService.get_balance(sender).monthly_transfer_used == 50
        assert LedgerService.get_balance(recipient).available_points == 50


@pytest.mark.django_db()
class TestRecipientIdentifiers:
    def test_malformed_recipient_id(self, user_with_points):
        sender = user_with_points(100)

        with pytest.raises(InvalidRequest):
            TransferService.transfer(sender, "not-a-user", 5)

        account = LedgerService.get_balance(sender)
        assert account.available_points == 100
        assert account.monthly_transfer_used == 0

    def test_recipient_pk_as_string(self, user_with_points, user_factory):
        sender = user_with_points(100)
        recipient = user_factory()

        TransferService.transfer(sender, str(recipient.pk), 5)

        assert LedgerService.get_balance(recipient).available_points == 5
