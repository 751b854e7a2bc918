"""
Order Models

Orders are placed and fulfilled outside the after-sales engine. The engine
reads them: ownership, order type, line items and the status history that
records when the order was delivered.
"""

from django.db import models, transaction
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal
import uuid
import logging

from core.exceptions import InvalidStateError

logger = logging.getLogger(__name__)


class OrderStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    CONFIRMED = 'confirmed', 'Confirmed'
    PROCESSING = 'processing', 'Processing'
    SHIPPED = 'shipped', 'Shipped'
    DELIVERED = 'delivered', 'Delivered'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    REFUNDED = 'refunded', 'Refunded'


class OrderType(models.TextChoices):
    READY_STOCK = 'ready_stock', 'Ready Stock'
    PRE_ORDER = 'pre_order', 'Pre-Order'
    PRESCRIPTION = 'prescription', 'Prescription'


ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: [OrderStatus.CONFIRMED, OrderStatus.CANCELLED],
    OrderStatus.CONFIRMED: [OrderStatus.PROCESSING, OrderStatus.CANCELLED],
    OrderStatus.PROCESSING: [OrderStatus.SHIPPED, OrderStatus.CANCELLED],
    OrderStatus.SHIPPED: [OrderStatus.DELIVERED],
    OrderStatus.DELIVERED: [OrderStatus.COMPLETED, OrderStatus.REFUNDED],
    OrderStatus.COMPLETED: [OrderStatus.REFUNDED],
    OrderStatus.CANCELLED: [],  # Terminal state
    OrderStatus.REFUNDED: [],  # Terminal state
}

# Orders a customer may raise an after-sales claim against
AFTER_SALES_ELIGIBLE_STATUSES = (OrderStatus.DELIVERED, OrderStatus.COMPLETED)


class Order(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=20, unique=True, editable=False)

    customer = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='orders'
    )

    order_type = models.CharField(
        max_length=20,
        choices=OrderType.choices,
        default=OrderType.READY_STOCK
    )
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        db_index=True
    )

    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    shipping_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['customer', '-created_at'], name='orders_customer_created_idx'),
            models.Index(fields=['status', '-created_at'], name='orders_status_created_idx'),
        ]

    def __str__(self):
        return f"Order {self.order_number}"

    def save(self, *args, **kwargs):
        if not self.order_number:
            self.order_number = self._generate_order_number()
        super().save(*args, **kwargs)

    def _generate_order_number(self):
        """Generate unique order number: ORD-YYYYMMDD-XXXXX"""
        from django.utils.crypto import get_random_string
        date_part = timezone.now().strftime('%Y%m%d')
        random_part = get_random_string(5, allowed_chars='0123456789')
        return f"ORD-{date_part}-{random_part}"

    def get_delivered_at(self):
        """
        Timestamp of the most recent transition into Delivered, or None
        when the status history has no such entry.
        """
        entry = (
            self.status_history
            .filter(to_status=OrderStatus.DELIVERED)
            .order_by('-created_at')
            .first()
        )
        return entry.created_at if entry else None

    @transaction.atomic
    def transition_to(self, new_status, changed_by=None, notes=''):
        """
        Move the order to a new status and append a status history entry.

        Atomicity: locks the order row so the history always matches the
        sequence of committed statuses.
        """
        locked = Order.objects.select_for_update().get(pk=self.pk)

        allowed = ORDER_STATUS_TRANSITIONS.get(locked.status, [])
        if new_status not in allowed:
            raise InvalidStateError(
                f"Cannot change order status from '{locked.get_status_display()}' "
                f"to '{OrderStatus(new_status).label}'."
            )

        previous_status = locked.status
        locked.status = new_status
        locked.save(update_fields=['status', 'updated_at'])

        history = OrderStatusHistory.objects.create(
            order=locked,
            from_status=previous_status,
            to_status=new_status,
            changed_by=changed_by,
            notes=notes,
        )

        self.status = locked.status
        logger.info(f"Order {self.order_number} moved {previous_status} -> {new_status}")
        return history


class OrderItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='items'
    )
    product_variant = models.ForeignKey(
        'inventory.ProductVariant',
        on_delete=models.PROTECT,
        related_name='order_items'
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    class Meta:
        db_table = 'order_items'
        ordering = ['order', 'id']

    def __str__(self):
        return f"{self.quantity} x {self.product_variant_id} on {self.order_id}"

    @property
    def line_total(self):
        return self.unit_price * self.quantity


class OrderStatusHistory(models.Model):
    """Append-only audit trail of order status changes."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='status_history'
    )
    from_status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True
    )
    to_status = models.CharField(max_length=20, choices=OrderStatus.choices)
    changed_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'order_status_history'
        ordering = ['-created_at']
        verbose_name_plural = 'Order status history'
        indexes = [
            models.Index(fields=['order', 'to_status', '-created_at'], name='order_hist_order_status_idx'),
        ]

    def __str__(self):
        return f"{self.order_id}: {self.from_status} -> {self.to_status}"
