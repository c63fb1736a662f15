# dj_points/services/checkout.py
import logging
from dataclasses import dataclass

from django.db import transaction
from django.utils import timezone

from ..conf import points_settings
from ..exceptions import AmountInvalid, InvalidRequest, NotFound, OutOfStock
from ..models import Order, OrderItem, Product, Transaction
from ..signals import cancellation_requested, order_cancelled, order_placed
from .catalog import CatalogService
from .common import LedgerService, coerce_pk, storage_operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    new_balance: int
    transaction: Transaction


class CheckoutService:
    """
    Multi-item purchases paid with points.

    Reservation, debit and order creation share one atomic block: any error
    after a reservation rolls the block back, which puts the reserved
    inventory back. Lock order is account, then products in primary key order.
    """

    @staticmethod
    def _normalize_items(items):
        """
        Accept ``{"product_id": ..., "quantity": ...}`` mappings (``product``
        may hold an instance) or ``(product, quantity)`` pairs. Lines for the
        same product are merged.
        """
        if not items:
            raise InvalidRequest("Items cannot be empty.")

        lines = {}
        for item in items:
            if isinstance(item, dict):
                product = item.get("product_id", item.get("product"))
                quantity = item.get("quantity")
            else:
                try:
                    product, quantity = item
                except (TypeError, ValueError):
                    raise InvalidRequest(
                        "Each item must have a product and a quantity."
                    ) from None

            product_id = coerce_pk(Product, product, "product")
            try:
                quantity = LedgerService.verify_amount(quantity)
            except AmountInvalid:
                raise InvalidRequest(
                    f"Quantity for product {product_id} must be a positive integer."
                ) from None

            lines[product_id] = lines.get(product_id, 0) + quantity
        return lines

    @staticmethod
    def _resolve_products(lines):
        products = Product.objects.active().in_bulk(list(lines))
        missing = [str(pk) for pk in lines if pk not in products]
        if missing:
            raise NotFound(f"Product not found or inactive: {', '.join(missing)}")
        return products

    @staticmethod
    def get_order(order):
        if isinstance(order, Order):
            return order
        found = Order.objects.filter(pk=coerce_pk(Order, order)).first()
        if found is None:
            raise NotFound(f"Order not found: {order}")
        return found

    @staticmethod
    def _lock_order(order):
        return Order.objects.select_for_update().get(pk=order.pk)

    @classmethod
    @storage_operation
    def checkout(cls, user, items):
        """
        Buy ``items`` with the user's points.
        Returns the order and the balance left after paying.
        """
        lines = cls._normalize_items(items)
        products = cls._resolve_products(lines)

        priced = []
        total_points = 0
        for product_id in sorted(lines):
            product = products[product_id]
            quantity = lines[product_id]
            line_total = product.points_cost * quantity
            total_points += line_total
            priced.append((product, quantity, line_total))

        with transaction.atomic():
            account = LedgerService.lock_account(user)

            # Rolling back this block releases reservations made before a failure
            for product, quantity, _ in priced:
                if not CatalogService.reserve(product, quantity):
                    product.refresh_from_db(fields=["inventory", "is_active"])
                    raise OutOfStock(
                        f"Insufficient stock for {product.name}. "
                        f"Available: {product.inventory}, Requested: {quantity}",
                        product_id=product.pk,
                        available=product.inventory,
                    )

            status = points_settings.CHECKOUT_ORDER_STATUS
            order = Order.objects.create(
                user=user,
                total_points=total_points,
                status=status,
                processed_at=timezone.now() if status == Order.STATUS_COMPLETED else None,
                metadata={"payment_method": "points"},
            )
            OrderItem.objects.bulk_create(
                [
                    OrderItem(
                        order=order,
                        product=product,
                        quantity=quantity,
                        points_cost_per_item=product.points_cost,
                        total_points=line_total,
                    )
                    for product, quantity, line_total in priced
                ]
            )

            txn = LedgerService.debit_locked(
                account,
                total_points,
                Transaction.KIND_SPENT,
                description=(
                    f"Purchase order {order.order_number} - {len(priced)} item(s)"
                ),
                metadata={
                    "order_id": order.pk,
                    "order_number": order.order_number,
                    "item_count": len(priced),
                    "transaction_type": "checkout",
                },
            )
            order.transaction = txn
            order.save(update_fields=["transaction", "updated_at"])

            order_placed.send(sender=cls, order=order, transaction=txn)

        logger.info(
            "Checkout %s: user %s spent %s points on %d item(s)",
            order.order_number,
            user.pk,
            total_points,
            len(priced),
        )
        return CheckoutResult(
            order=order, new_balance=account.available_points, transaction=txn
        )

    @classmethod
    def _refund_locked(cls, order, refund_reason, status=Order.STATUS_CANCELLED):
        """
        Release inventory, refund the order total and close the order.
        ``order`` must already be locked by the caller.
        """
        account = LedgerService.lock_account(order.user)

        for item in order.items.order_by("product_id"):
            CatalogService.release(item.product_id, item.quantity)

        txn = LedgerService.credit_locked(
            account,
            order.total_points,
            Transaction.KIND_REFUND,
            description=f"Refund for cancelled order {order.order_number}",
            metadata={
                "order_id": order.pk,
                "order_number": order.order_number,
                "refund_reason": refund_reason,
            },
        )

        order.status = status
        order.processed_at = timezone.now()
        order.save(update_fields=["status", "processed_at", "updated_at"])

        order_cancelled.send(sender=cls, order=order, transaction=txn)
        logger.info(
            "Order %s %s, refunded %s points (%s)",
            order.order_number,
            status,
            order.total_points,
            refund_reason,
        )
        return txn

    @classmethod
    @storage_operation
    def cancel_order(cls, order, reason=""):
        """
        Cancel an order on behalf of its owner.

        Pending orders are cancelled and refunded at once. Completed orders
        get a cancellation request for an administrator to resolve.
        """
        order = cls.get_order(order)

        with transaction.atomic():
            locked = cls._lock_order(order)
            if locked.status == Order.STATUS_COMPLETED:
                return cls._file_request(locked, reason)
            if locked.status != Order.STATUS_PENDING:
                raise InvalidRequest(
                    f"Order {locked.order_number} is {locked.status} and cannot be cancelled."
                )
            cls._refund_locked(locked, "Order cancelled by user")
            return locked

    @classmethod
    def _file_request(cls, order, reason):
        if order.has_cancellation_request:
            raise InvalidRequest(
                "Cancellation request already submitted for this order."
            )

        order.cancellation_status = Order.CANCELLATION_PENDING
        order.cancellation_requested_at = timezone.now()
        order.cancellation_reason = (reason or "").strip()[:500]
        order.save(
            update_fields=[
                "cancellation_status",
                "cancellation_requested_at",
                "cancellation_reason",
                "updated_at",
            ]
        )
        cancellation_requested.send(sender=cls, order=order)
        logger.info("Cancellation requested for order %s", order.order_number)
        return order

    @classmethod
    @storage_operation
    def request_cancellation(cls, order, reason=""):
        """File a cancellation request for a completed order."""
        order = cls.get_order(order)

        with transaction.atomic():
            locked = cls._lock_order(order)
            if locked.status != Order.STATUS_COMPLETED:
                raise InvalidRequest(
                    "Only completed orders take cancellation requests; "
                    "pending orders can be cancelled directly."
                )
            return cls._file_request(locked, reason)

    @classmethod
    @storage_operation
    def resolve_cancellation(cls, order, approve, admin_note="", admin=None):
        """
        Approve or deny a pending cancellation request.
        Approval cancels and refunds the order in the same transaction.
        """
        order = cls.get_order(order)

        with transaction.atomic():
            locked = cls._lock_order(order)
            if locked.cancellation_status != Order.CANCELLATION_PENDING:
                raise InvalidRequest(
                    "No pending cancellation request found for this order."
                )

            locked.cancellation_status = (
                Order.CANCELLATION_APPROVED if approve else Order.CANCELLATION_DENIED
            )
            locked.cancellation_admin_note = (admin_note or "").strip()[:1000]
            locked.cancellation_processed_at = timezone.now()
            locked.cancellation_processed_by = admin
            locked.save(
                update_fields=[
                    "cancellation_status",
                    "cancellation_admin_note",
                    "cancellation_processed_at",
                    "cancellation_processed_by",
                    "updated_at",
                ]
            )

            if approve:
                cls._refund_locked(locked, "Admin approved cancellation request")
            else:
                logger.info(
                    "Cancellation request for order %s denied", locked.order_number
                )
            return locked

    @classmethod
    @storage_operation
    def refund_order(cls, order, admin_note="", admin=None):
        """Refund a completed order without a request from its owner."""
        order = cls.get_order(order)

        with transaction.atomic():
            locked = cls._lock_order(order)
            if locked.status != Order.STATUS_COMPLETED:
                raise InvalidRequest("Only completed orders can be refunded.")
            if locked.cancellation_status == Order.CANCELLATION_PENDING:
                locked.cancellation_status = Order.CANCELLATION_APPROVED
                locked.cancellation_admin_note = (admin_note or "").strip()[:1000]
                locked.cancellation_processed_at = timezone.now()
                locked.cancellation_processed_by = admin
                locked.save(
                    update_fields=[
                        "cancellation_status",
                        "cancellation_admin_note",
                        "cancellation_processed_at",
                        "cancellation_processed_by",
                        "updated_at",
                    ]
                )
            cls._refund_locked(
                locked, admin_note or "Refunded by admin", status=Order.STATUS_REFUNDED
            )
            return locked

    @classmethod
    @storage_operation
    def complete_order(cls, order):
        """Mark a pending order as fulfilled."""
        order = cls.get_order(order)

        with transaction.atomic():
            locked = cls._lock_order(order)
            if locked.status != Order.STATUS_PENDING:
                raise InvalidRequest("Only pending orders can be completed.")
            locked.status = Order.STATUS_COMPLETED
            locked.processed_at = timezone.now()
            locked.save(update_fields=["status", "processed_at", "updated_at"])
            return locked

    @staticmethod
    def list_orders(user, status=None):
        if status is not None and status not in dict(Order.STATUS_CHOICES):
            raise InvalidRequest(f"Unknown order status '{status}'.")
        queryset = Order.objects.for_user(user).prefetch_related("items__product")
        if status is not None:
            queryset = queryset.filter(status=status)
        return queryset
