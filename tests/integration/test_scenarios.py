"""
Integration tests for end-to-end points flows.

Each test walks a user journey across several services and checks the
ledger afterwards.
"""

import pytest

from dj_points.exceptions import InsufficientFunds, OutOfStock, QuotaExceeded
from dj_points.models import Account, Order, Product, Transaction
from dj_points.services import (
    CheckoutService,
    LedgerService,
    TransferService,
)


@pytest.mark.django_db()
@pytest.mark.integration()
class TestCheerFlow:
    def test_successful_cheer(self, user_with_points, user_factory, assert_reconciled):
        alice = user_with_points(100)
        bob = user_factory()

        TransferService.transfer(alice, bob, 30, "nice work")

        alice_account = LedgerService.get_balance(alice)
        bob_account = LedgerService.get_balance(bob)
        assert alice_account.available_points == 70
        assert alice_account.total_spent == 30
        assert alice_account.monthly_transfer_used == 30
        assert bob_account.available_points == 30
        assert bob_account.total_earned == 30

        given = Transaction.objects.get(kind=Transaction.KIND_GIVEN)
        received = Transaction.objects.get(kind=Transaction.KIND_RECEIVED)
        assert given.account == alice_account
        assert received.account == bob_account
        assert given.amount == received.amount == 30
        assert_reconciled(alice, bob)

    def test_quota_refusal(self, user_with_points, user_factory):
        alice = user_with_points(100)
        bob = user_factory()
        Account.objects.filter(user=alice).update(monthly_transfer_used=95)

        with pytest.raises(QuotaExceeded) as exc_info:
            TransferService.transfer(alice, bob, 10)

        assert exc_info.value.remaining == 5
        assert LedgerService.get_balance(alice).available_points == 100
        assert LedgerService.get_balance(alice).monthly_transfer_used == 95
        assert not Transaction.objects.filter(
            kind__in=Transaction.TRANSFER_KINDS
        ).exists()

    def test_cheered_points_can_be_spent(self, user_with_points, user_factory, product):
        alice = user_with_points(100)
        bob = user_factory()
        TransferService.transfer(alice, bob, 40)

        result = CheckoutService.checkout(bob, [(product, 2)])

        assert result.new_balance == 0
        kinds = [t.kind for t in LedgerService.list_transactions(bob)]
        assert kinds == [Transaction.KIND_SPENT, Transaction.KIND_RECEIVED]


@pytest.mark.django_db()
@pytest.mark.integration()
class TestCheckoutFlow:
    def test_out_of_stock_changes_nothing(self, user_with_points, product_factory):
        user = user_with_points(100)
        product = product_factory(points_cost=10, inventory=2)

        with pytest.raises(OutOfStock):
            CheckoutService.checkout(user, [{"product_id": product.pk, "quantity": 3}])

        assert Product.objects.get(pk=product.pk).inventory == 2
        assert LedgerService.get_balance(user).available_points == 100
        assert not Transaction.objects.filter(kind=Transaction.KIND_SPENT).exists()

    def test_insufficient_funds_changes_nothing(self, user_with_points, product_factory):
        user = user_with_points(15)
        product = product_factory(points_cost=20, inventory=5)

        with pytest.raises(InsufficientFunds):
            CheckoutService.checkout(user, [{"product_id": product.pk, "quantity": 1}])

        assert Product.objects.get(pk=product.pk).inventory == 5
        assert LedgerService.get_balance(user).available_points == 15
        assert not Order.objects.exists()

    def test_approved_cancellation_restores_everything(
        self, user_with_points, product_factory, admin_user, assert_reconciled
    ):
        user = user_with_points(100)
        product = product_factory(points_cost=20, inventory=5)

        order = CheckoutService.checkout(user, [(product, 2)]).order
        order = CheckoutService.complete_order(order)
        CheckoutService.request_cancellation(order, "Arrived damaged")
        order = CheckoutService.resolve_cancellation(
            order, approve=True, admin_note="Refund issued", admin=admin_user
        )

        assert order.status == Order.STATUS_CANCELLED
        assert Product.objects.get(pk=product.pk).inventory == 5

        account = LedgerService.get_balance(user)
        assert account.available_points == 100
        assert account.total_spent == 40
        assert account.total_earned == 140

        refund = Transaction.objects.get(kind=Transaction.KIND_REFUND)
        assert refund.amount == 40
        assert_reconciled(user)

    def test_pending_order_cancelled_directly(self, user_with_points, product_factory):
        user = user_with_points(100)
        product = product_factory(points_cost=25, inventory=4)
        order = CheckoutService.checkout(user, [(product, 4)]).order
        assert Product.objects.get(pk=product.pk).inventory == 0

        CheckoutService.cancel_order(order)

        assert Product.objects.get(pk=product.pk).inventory == 4
        assert LedgerService.get_balance(user).available_points == 100
