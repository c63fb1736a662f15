from django.db import models
from django.db.models import Q


class AccountManager(models.Manager):
    def for_user(self, user):
        """Return the user's account or None."""
        return self.filter(user=user).first()

    def locked(self, pk):
        """Fetch an account with a row lock. Must be called inside an atomic block."""
        return self.select_for_update().get(pk=pk)


class TransactionQuerySet(models.QuerySet):
    def for_account(self, account):
        return self.filter(account=account)

    def involving(self, account):
        """Entries where the account is either party."""
        return self.filter(Q(account=account) | Q(counterparty=account))

    def of_kind(self, kind):
        return self.filter(kind=kind)

    def credits(self):
        return self.filter(kind__in=self.model.CREDIT_KINDS)

    def debits(self):
        return self.filter(kind__in=self.model.DEBIT_KINDS)

    def newest_first(self):
        return self.order_by("-created_at", "-pk")


TransactionManager = models.Manager.from_queryset(TransactionQuerySet)


class ProductQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def in_stock(self):
        return self.filter(inventory__gt=0)


ProductManager = models.Manager.from_queryset(ProductQuerySet)


class OrderQuerySet(models.QuerySet):
    def for_user(self, user):
        return self.filter(user=user)

    def awaiting_cancellation_decision(self):
        return self.filter(cancellation_status="pending")


OrderManager = models.Manager.from_queryset(OrderQuerySet)
