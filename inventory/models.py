"""
Inventory Models

Stock is tracked per product variant. Quantities change only through
Stock.add_stock / Stock.remove_stock, each of which appends an
InventoryTransaction so the ledger always explains the current counts.
"""

from django.db import models
from django.db.models import F, Q
from django.core.validators import MinValueValidator
from django.utils import timezone
import uuid
import logging

from core.exceptions import InsufficientStock

logger = logging.getLogger(__name__)


class TransactionType(models.TextChoices):
    INBOUND = 'inbound', 'Inbound'
    OUTBOUND = 'outbound', 'Outbound'
    ADJUSTMENT = 'adjustment', 'Adjustment'


class ReferenceType(models.TextChoices):
    ORDER = 'order', 'Order'
    RETURN = 'return', 'Return'
    SUPPLIER = 'supplier', 'Supplier'
    ADJUSTMENT = 'adjustment', 'Adjustment'


class TransactionStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class ProductVariant(models.Model):
    """A sellable frame/lens variant (colour, size) identified by SKU."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sku = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    color = models.CharField(max_length=50, blank=True)
    size = models.CharField(max_length=50, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'product_variants'
        ordering = ['sku']

    def __str__(self):
        return f"{self.sku} - {self.name}"


class Stock(models.Model):
    """
    On-hand and reserved counters for one product variant.

    quantity_available is derived and never stored.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product_variant = models.OneToOneField(
        ProductVariant,
        on_delete=models.CASCADE,
        related_name='stock'
    )
    quantity_on_hand = models.PositiveIntegerField(default=0)
    quantity_reserved = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    class Meta:
        db_table = 'stocks'
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity_reserved__lte=F('quantity_on_hand')),
                name='stock_reserved_lte_on_hand',
            ),
        ]

    def __str__(self):
        return f"{self.product_variant_id}: {self.quantity_on_hand} on hand, {self.quantity_reserved} reserved"

    @property
    def quantity_available(self):
        return self.quantity_on_hand - self.quantity_reserved

    def add_stock(self, quantity, reference_type, reference_id=None, notes='', recorded_by=None):
        """
        Increase on-hand stock and append an Inbound transaction.

        ATOMICITY: This method should be called within a transaction on a row
        loaded with select_for_update().
        """
        if quantity <= 0:
            raise ValueError("Quantity must be positive")

        self.quantity_on_hand += quantity
        self.updated_by = recorded_by
        self.save(update_fields=['quantity_on_hand', 'updated_by', 'updated_at'])

        movement = InventoryTransaction.objects.create(
            product_variant_id=self.product_variant_id,
            user=recorded_by,
            transaction_type=TransactionType.INBOUND,
            quantity=quantity,
            balance_after=self.quantity_on_hand,
            reference_type=reference_type,
            reference_id=reference_id,
            status=TransactionStatus.COMPLETED,
            notes=notes,
        )

        logger.info(
            f"Stock +{quantity} for variant {self.product_variant_id} "
            f"(on hand {self.quantity_on_hand}, ref {reference_type}:{reference_id})"
        )
        return movement

    def remove_stock(self, quantity, reference_type, reference_id=None, notes='', recorded_by=None):
        """
        Decrease on-hand stock and append an Outbound transaction.

        ATOMICITY: This method should be called within a transaction on a row
        loaded with select_for_update().

        Raises:
            ValueError: If quantity is not positive
            InsufficientStock: If quantity exceeds available stock
        """
        if quantity <= 0:
            raise ValueError("Quantity must be positive")

        if quantity > self.quantity_available:
            raise InsufficientStock(
                f"Insufficient stock for variant '{self.product_variant_id}'. "
                f"Available: {self.quantity_available}, Requested: {quantity}."
            )

        self.quantity_on_hand -= quantity
        self.updated_by = recorded_by
        self.save(update_fields=['quantity_on_hand', 'updated_by', 'updated_at'])

        movement = InventoryTransaction.objects.create(
            product_variant_id=self.product_variant_id,
            user=recorded_by,
            transaction_type=TransactionType.OUTBOUND,
            quantity=quantity,
            balance_after=self.quantity_on_hand,
            reference_type=reference_type,
            reference_id=reference_id,
            status=TransactionStatus.COMPLETED,
            notes=notes,
        )

        logger.info(
            f"Stock -{quantity} for variant {self.product_variant_id} "
            f"(on hand {self.quantity_on_hand}, ref {reference_type}:{reference_id})"
        )
        return movement


class InventoryTransaction(models.Model):
    """Append-only audit row for every stock movement."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product_variant = models.ForeignKey(
        ProductVariant,
        on_delete=models.PROTECT,
        related_name='inventory_transactions'
    )
    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='inventory_transactions'
    )
    transaction_type = models.CharField(max_length=20, choices=TransactionType.choices)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    balance_after = models.PositiveIntegerField(
        help_text='On-hand quantity after this movement'
    )
    reference_type = models.CharField(max_length=20, choices=ReferenceType.choices)
    reference_id = models.UUIDField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.COMPLETED
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'inventory_transactions'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['product_variant', '-created_at'], name='inv_txn_variant_created_idx'),
            models.Index(fields=['reference_type', 'reference_id'], name='inv_txn_reference_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name='inventory_txn_quantity_positive',
            ),
        ]

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.quantity} of {self.product_variant_id}"
