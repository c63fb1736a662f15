# dj_points/abstract_models.py
"""
Abstract base models for dj-points.

These abstract models contain the fields and logic for accounts, ledger
transactions, catalog products and orders. Foreign keys between the models
are declared on the concrete classes in ``dj_points.models``.

Usage:
    from dj_points.abstract_models import AbstractProduct

    class BrandedProduct(AbstractProduct):
        brand = models.CharField(max_length=100)

        class Meta(AbstractProduct.Meta):
            abstract = False
"""
import uuid

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .conf import points_settings
from .exceptions import TransactionImmutable
from .managers import (
    AccountManager,
    OrderManager,
    ProductManager,
    TransactionManager,
)


def default_monthly_transfer_limit():
    return points_settings.DEFAULT_MONTHLY_TRANSFER_LIMIT


def generate_order_number():
    stamp = timezone.now().strftime("%Y%m%d%H%M%S")
    return f"ORD-{stamp}-{uuid.uuid4().hex[:6].upper()}"


class AbstractAccount(models.Model):
    """
    A user's point balance and monthly cheer quota state.

    ``available_points`` is a cached balance; the ledger of transactions is
    the source of truth and ``available_points == total_earned - total_spent``
    holds at every commit.
    """

    uuid = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)

    available_points = models.PositiveIntegerField(default=0)
    total_earned = models.PositiveIntegerField(default=0)
    total_spent = models.PositiveIntegerField(default=0)

    monthly_transfer_limit = models.PositiveIntegerField(
        default=default_monthly_transfer_limit
    )
    monthly_transfer_used = models.PositiveIntegerField(default=0)
    last_monthly_reset = models.DateTimeField(default=timezone.now)

    last_transaction_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = AccountManager()

    class Meta:
        abstract = True
        verbose_name = _("Points account")
        verbose_name_plural = _("Points accounts")
        constraints = [
            models.CheckConstraint(
                condition=Q(available_points=F("total_earned") - F("total_spent")),
                name="%(app_label)s_%(class)s_reconciled",
            ),
            models.CheckConstraint(
                condition=Q(monthly_transfer_used__lte=F("monthly_transfer_limit")),
                name="%(app_label)s_%(class)s_quota_within_limit",
            ),
        ]

    def __str__(self):
        return f"Account {self.user_id} ({self.available_points})"

    @property
    def monthly_transfer_remaining(self):
        return max(self.monthly_transfer_limit - self.monthly_transfer_used, 0)

    def needs_monthly_reset(self, now=None):
        now = now or timezone.now()
        last = self.last_monthly_reset
        return last is None or (last.year, last.month) != (now.year, now.month)


class AbstractTransaction(models.Model):
    """
    One immutable ledger entry affecting exactly one account.

    The ``kind`` decides the direction of the entry: credit kinds add to
    ``account``, debit kinds take from it. ``counterparty`` is the other side
    of a cheer, when there is one.
    """

    KIND_EARNED = "earned"
    KIND_SPENT = "spent"
    KIND_GIVEN = "given"
    KIND_RECEIVED = "received"
    KIND_ADMIN_GRANT = "admin_grant"
    KIND_ADMIN_DEDUCT = "admin_deduct"
    KIND_REFUND = "refund"

    KIND_CHOICES = (
        (KIND_EARNED, _("Earned")),
        (KIND_SPENT, _("Spent")),
        (KIND_GIVEN, _("Given")),
        (KIND_RECEIVED, _("Received")),
        (KIND_ADMIN_GRANT, _("Admin grant")),
        (KIND_ADMIN_DEDUCT, _("Admin deduct")),
        (KIND_REFUND, _("Refund")),
    )

    CREDIT_KINDS = (KIND_EARNED, KIND_RECEIVED, KIND_ADMIN_GRANT, KIND_REFUND)
    DEBIT_KINDS = (KIND_SPENT, KIND_GIVEN, KIND_ADMIN_DEDUCT)
    TRANSFER_KINDS = (KIND_GIVEN, KIND_RECEIVED)

    uuid = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    amount = models.PositiveIntegerField()
    description = models.CharField(max_length=500)
    message = models.TextField(max_length=1000, blank=True, default="")
    metadata = models.JSONField(blank=True, default=dict)

    created_at = models.DateTimeField(auto_now_add=True)

    objects = TransactionManager()

    class Meta:
        abstract = True
        ordering = ("-created_at", "-pk")

    def __str__(self):
        return f"{self.kind} {self.amount}"

    @property
    def is_credit(self):
        return self.kind in self.CREDIT_KINDS

    @property
    def signed_amount(self):
        return self.amount if self.is_credit else -self.amount

    @property
    def from_account(self):
        return self.counterparty if self.is_credit else self.account

    @property
    def to_account(self):
        return self.account if self.is_credit else self.counterparty

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise TransactionImmutable("Ledger transactions cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TransactionImmutable("Ledger transactions cannot be deleted.")


class AbstractProduct(models.Model):
    """
    Catalog entry purchasable with points.
    Products are never deleted, only deactivated.
    """

    CATEGORY_CHOICES = (
        ("apparel", _("Apparel")),
        ("accessories", _("Accessories")),
        ("electronics", _("Electronics")),
        ("office", _("Office")),
        ("giftcards", _("Gift cards")),
        ("experiences", _("Experiences")),
        ("food", _("Food")),
        ("books", _("Books")),
    )

    uuid = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    name = models.CharField(max_length=100)
    description = models.TextField(max_length=1000, blank=True, default="")
    points_cost = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    inventory = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    rating = models.DecimalField(
        max_digits=2,
        decimal_places=1,
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(5)],
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProductManager()

    class Meta:
        abstract = True
        constraints = [
            models.CheckConstraint(
                condition=Q(points_cost__gte=1),
                name="%(app_label)s_%(class)s_cost_positive",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.points_cost} pts)"


class AbstractOrder(models.Model):
    """
    One checkout. Items live in ``OrderItem`` rows; the cancellation request
    workflow is embedded on the order itself.
    """

    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"
    STATUS_REFUNDED = "refunded"

    STATUS_CHOICES = (
        (STATUS_PENDING, _("Pending")),
        (STATUS_COMPLETED, _("Completed")),
        (STATUS_CANCELLED, _("Cancelled")),
        (STATUS_REFUNDED, _("Refunded")),
    )

    CANCELLATION_NONE = ""
    CANCELLATION_PENDING = "pending"
    CANCELLATION_APPROVED = "approved"
    CANCELLATION_DENIED = "denied"

    CANCELLATION_CHOICES = (
        (CANCELLATION_NONE, _("None")),
        (CANCELLATION_PENDING, _("Pending")),
        (CANCELLATION_APPROVED, _("Approved")),
        (CANCELLATION_DENIED, _("Denied")),
    )

    uuid = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    order_number = models.CharField(
        max_length=40, unique=True, default=generate_order_number, editable=False
    )
    total_points = models.PositiveIntegerField()
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING
    )
    processed_at = models.DateTimeField(null=True, blank=True)

    cancellation_status = models.CharField(
        max_length=20, choices=CANCELLATION_CHOICES, blank=True, default=""
    )
    cancellation_requested_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=500, blank=True, default="")
    cancellation_admin_note = models.CharField(max_length=1000, blank=True, default="")
    cancellation_processed_at = models.DateTimeField(null=True, blank=True)

    metadata = models.JSONField(blank=True, default=dict)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = OrderManager()

    class Meta:
        abstract = True

    def __str__(self):
        return f"{self.order_number} ({self.status})"

    @property
    def has_cancellation_request(self):
        return self.cancellation_status != self.CANCELLATION_NONE
