# dj_points/services/catalog.py
import logging

from django.db.models import F, Q

from ..exceptions import InvalidRequest, NotFound
from ..models import Product
from .common import LedgerService, coerce_pk, storage_operation

logger = logging.getLogger(__name__)


class CatalogService:
    """
    Product lookup and inventory counters.

    ``reserve`` and ``release`` are single conditional UPDATE statements, so
    two concurrent reservations on one product serialize on the row and can
    never push inventory below zero.
    """

    @staticmethod
    def get_active(
        category=None, min_cost=None, max_cost=None, is_active=True, search=None
    ):
        if min_cost is not None and max_cost is not None and min_cost > max_cost:
            raise InvalidRequest("min_cost cannot be greater than max_cost.")

        queryset = Product.objects.all()
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active)
        if category:
            valid = dict(Product.CATEGORY_CHOICES)
            if category not in valid:
                raise InvalidRequest(f"Unknown category '{category}'.")
            queryset = queryset.filter(category=category)
        if min_cost is not None:
            queryset = queryset.filter(points_cost__gte=min_cost)
        if max_cost is not None:
            queryset = queryset.filter(points_cost__lte=max_cost)
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) | Q(description__icontains=search)
            )
        return queryset.order_by("points_cost", "name")

    @staticmethod
    def get_product(product_id, active_only=False):
        queryset = Product.objects.all()
        if active_only:
            queryset = queryset.active()
        product = queryset.filter(pk=coerce_pk(Product, product_id)).first()
        if product is None:
            raise NotFound(f"Product not found or inactive: {product_id}")
        return product

    @staticmethod
    @storage_operation
    def reserve(product, quantity):
        """
        Decrement inventory by ``quantity`` if enough stock is left.
        Returns False, without touching the row, otherwise.
        """
        quantity = LedgerService.verify_amount(quantity)
        updated = Product.objects.filter(
            pk=coerce_pk(Product, product),
            is_active=True,
            inventory__gte=quantity,
        ).update(inventory=F("inventory") - quantity)
        return updated == 1

    @staticmethod
    @storage_operation
    def release(product, quantity):
        """Put ``quantity`` units back into inventory."""
        quantity = LedgerService.verify_amount(quantity)
        updated = Product.objects.filter(pk=coerce_pk(Product, product)).update(
            inventory=F("inventory") + quantity
        )
        if updated != 1:
            raise NotFound(f"Product not found: {product}")

    @classmethod
    @storage_operation
    def restock(cls, product, quantity):
        cls.release(product, quantity)
        logger.info("Restocked product %s with %s units", product.pk, quantity)
        product.refresh_from_db(fields=["inventory"])
        return product

    @staticmethod
    @storage_operation
    def deactivate(product):
        Product.objects.filter(pk=product.pk).update(is_active=False)
        product.refresh_from_db(fields=["is_active"])
        logger.info("Deactivated product %s", product.pk)
        return product
