"""
Pytest configuration and fixtures for dj_points tests.
"""

import uuid

import pytest

# ============================================================================
# User Fixtures
# ============================================================================


@pytest.fixture()
def user_factory(db):
    """Factory for creating test users. Accounts are opened on save."""
    from tests.test_app.models import User

    def create_user(username=None, **kwargs):
        if username is None:
            username = f"user_{uuid.uuid4().hex[:8]}"
        return User.objects.create_user(
            username=username,
            email=f"{username}@example.com",
            password="testpass123",
            **kwargs,
        )

    return create_user


@pytest.fixture()
def user(user_factory):
    """Create a single test user."""
    return user_factory()


@pytest.fixture()
def admin_user(user_factory):
    return user_factory(is_staff=True)


@pytest.fixture()
def user_with_points(user_factory):
    """Create a test user with an initial balance."""

    def create_user_with_points(amount=100, **kwargs):
        from dj_points.services import LedgerService

        user = user_factory(**kwargs)
        LedgerService.credit(user, amount, description="Test fixture")
        return user

    return create_user_with_points


@pytest.fixture()
def account(user):
    """The points account of the default test user."""
    return user.points_account


@pytest.fixture()
def funded_account(account):
    """An account holding 100 points."""
    from dj_points.services import LedgerService

    LedgerService.credit(account.user, 100)
    account.refresh_from_db()
    return account


# ============================================================================
# Product Fixtures
# ============================================================================


@pytest.fixture()
def product_factory(db):
    """Factory for creating catalog products."""
    from dj_points.models import Product

    def create_product(name=None, points_cost=20, inventory=10, **kwargs):
        if name is None:
            name = f"Product_{uuid.uuid4().hex[:8]}"
        kwargs.setdefault("category", "office")
        return Product.objects.create(
            name=name, points_cost=points_cost, inventory=inventory, **kwargs
        )

    return create_product


@pytest.fixture()
def product(product_factory):
    """A simple product priced at 20 points with 10 in stock."""
    return product_factory()


# ============================================================================
# Order Fixtures
# ============================================================================


@pytest.fixture()
def order_factory(user_with_points, product_factory):
    """Factory placing an order through the checkout engine."""
    from dj_points.services import CheckoutService

    def create_order(user=None, items=None):
        if user is None:
            user = user_with_points(500)
        if items is None:
            items = [{"product_id": product_factory().pk, "quantity": 1}]
        return CheckoutService.checkout(user, items).order

    return create_order


@pytest.fixture()
def completed_order(order_factory):
    from dj_points.services import CheckoutService

    return CheckoutService.complete_order(order_factory())


# ============================================================================
# Signal Testing Fixtures
# ============================================================================


@pytest.fixture()
def signal_receiver():
    """Helper fixture for testing signals."""

    class SignalReceiver:
        def __init__(self):
            self.calls = []
            self.last_sender = None
            self.last_kwargs = None

        def __call__(self, sender, **kwargs):
            self.calls.append((sender, kwargs))
            self.last_sender = sender
            self.last_kwargs = kwargs

        @property
        def call_count(self):
            return len(self.calls)

        @property
        def was_called(self):
            return len(self.calls) > 0

    return SignalReceiver()


# ============================================================================
# Invariant Helpers
# ============================================================================


@pytest.fixture()
def assert_reconciled():
    """Assert the reconciliation invariant for one or more users."""
    from dj_points.services import LedgerService

    def check(*users):
        for user in users:
            account = LedgerService.get_balance(user)
            assert LedgerService.verify_reconciliation(account), (
                f"Ledger does not reconcile for user {user.pk}"
            )

    return check
