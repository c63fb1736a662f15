from django.conf import settings
from django.db import models
from django.db.models import Q

from .abstract_models import (
    AbstractAccount,
    AbstractOrder,
    AbstractProduct,
    AbstractTransaction,
)


class Account(AbstractAccount):
    """
    Concrete Account model, one per user.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="points_account_record",
    )

    class Meta(AbstractAccount.Meta):
        indexes = [
            models.Index(fields=["-available_points"], name="account_available_idx"),
            models.Index(fields=["last_monthly_reset"], name="account_reset_idx"),
        ]


class Transaction(AbstractTransaction):
    """
    Concrete ledger Transaction model.
    """

    # The account whose balance this entry changed
    account = models.ForeignKey(
        Account, on_delete=models.PROTECT, related_name="transactions"
    )

    # The other side of a cheer
    counterparty = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="counterparty_transactions",
        null=True,
        blank=True,
    )

    class Meta(AbstractTransaction.Meta):
        indexes = [
            models.Index(fields=["account", "-created_at"], name="txn_account_created_idx"),
            models.Index(
                fields=["counterparty", "-created_at"], name="txn_counterparty_created_idx"
            ),
            models.Index(fields=["kind", "-created_at"], name="txn_kind_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="txn_amount_positive",
            ),
            models.CheckConstraint(
                condition=~Q(kind__in=AbstractTransaction.TRANSFER_KINDS)
                | Q(counterparty__isnull=False),
                name="txn_transfer_has_counterparty",
            ),
        ]


class Product(AbstractProduct):
    """
    Concrete catalog Product model.
    """

    class Meta(AbstractProduct.Meta):
        indexes = [
            models.Index(fields=["category", "is_active"], name="product_category_idx"),
            models.Index(fields=["points_cost"], name="product_cost_idx"),
        ]


class Order(AbstractOrder):
    """
    Concrete Order model.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="point_orders"
    )

    # The spend entry that paid for this order
    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.PROTECT,
        related_name="orders",
        null=True,
        blank=True,
    )

    cancellation_processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )

    class Meta(AbstractOrder.Meta):
        ordering = ("-created_at", "-pk")
        indexes = [
            models.Index(fields=["user", "-created_at"], name="order_user_created_idx"),
            models.Index(fields=["status", "-created_at"], name="order_status_created_idx"),
        ]


class OrderItem(models.Model):
    """A product line of an order, priced at checkout time."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="+")
    quantity = models.PositiveIntegerField()
    points_cost_per_item = models.PositiveIntegerField()
    total_points = models.PositiveIntegerField()

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gte=1),
                name="order_item_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.quantity} x {self.product_id}"
