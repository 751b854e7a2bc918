"""
Payment and Refund Models

The engine only records ledger rows; no payment gateway is called.

Refund cap invariant:
    sum(refund.amount where status != rejected) <= payment.amount

Payment.refunded_total holds that sum. It is only changed by the refund
ledger while the payment row is locked, and a check constraint keeps it
within the payment amount, so two transactions racing to refund the same
payment always serialize on (and conflict over) the same row.
"""

from django.db import models, transaction
from django.db.models import F, Q, Sum
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal
import uuid
import logging

from core.exceptions import InvalidStateError

logger = logging.getLogger(__name__)


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'
    FAILED = 'failed', 'Failed'
    REFUNDED = 'refunded', 'Refunded'


class PaymentMethod(models.TextChoices):
    CASH_ON_DELIVERY = 'cod', 'Cash on Delivery'
    BANK_TRANSFER = 'bank_transfer', 'Bank Transfer'
    CARD = 'card', 'Card'
    E_WALLET = 'e_wallet', 'E-Wallet'


class RefundStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    COMPLETED = 'completed', 'Completed'
    REJECTED = 'rejected', 'Rejected'


REFUND_STATUS_TRANSITIONS = {
    RefundStatus.PENDING: [RefundStatus.APPROVED, RefundStatus.REJECTED],
    RefundStatus.APPROVED: [RefundStatus.COMPLETED, RefundStatus.REJECTED],
    RefundStatus.COMPLETED: [],  # Terminal state
    RefundStatus.REJECTED: [],  # Terminal state
}

# Fields that may not change once a payment has completed
IMMUTABLE_PAYMENT_FIELDS = ('order_id', 'amount', 'payment_method', 'transaction_reference', 'paid_at')


class Payment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.PROTECT,
        related_name='payments'
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CARD
    )
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    refunded_total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text='Sum of non-rejected refunds against this payment'
    )
    transaction_reference = models.CharField(max_length=100, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['order', 'status', '-paid_at'], name='payments_order_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(refunded_total__gte=0) & Q(refunded_total__lte=F('amount')),
                name='payment_refunds_within_amount',
            ),
        ]

    def __str__(self):
        return f"Payment {self.id} ({self.get_status_display()}) {self.amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            self._guard_completed_payment()
        super().save(*args, **kwargs)

    def _guard_completed_payment(self):
        stored = Payment.objects.filter(pk=self.pk).values('status', *IMMUTABLE_PAYMENT_FIELDS).first()
        if not stored or stored['status'] not in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            return
        changed = [f for f in IMMUTABLE_PAYMENT_FIELDS if stored[f] != getattr(self, f)]
        if changed:
            raise InvalidStateError(
                f"Completed payments are immutable (attempted change: {', '.join(changed)})."
            )

    @property
    def refundable_balance(self):
        return self.amount - self.refunded_total

    def calculate_refunded_total(self):
        """Recompute the non-rejected refund sum from the refund rows."""
        total = self.refunds.exclude(status=RefundStatus.REJECTED).aggregate(
            total=Sum('amount')
        )['total']
        return total or Decimal('0.00')


class Refund(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    payment = models.ForeignKey(
        Payment,
        on_delete=models.PROTECT,
        related_name='refunds'
    )
    ticket = models.ForeignKey(
        'after_sales.AfterSalesTicket',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='refunds'
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    reason = models.TextField(blank=True)
    status = models.CharField(
        max_length=20,
        choices=RefundStatus.choices,
        default=RefundStatus.PENDING,
        db_index=True
    )
    requested_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    processed_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'refunds'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['payment', 'status'], name='refunds_payment_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='refund_amount_positive',
            ),
        ]

    def __str__(self):
        return f"Refund {self.id} ({self.get_status_display()}) {self.amount}"

    @transaction.atomic
    def transition_to(self, new_status, processed_by=None):
        """
        Move the refund through its own sub-states.

        Atomicity: the payment is locked before the refund, the same order the
        engine uses, and a rejection releases the amount from the refund cap.
        """
        payment = Payment.objects.select_for_update().get(pk=self.payment_id)
        locked_self = Refund.objects.select_for_update().get(pk=self.pk)

        allowed = REFUND_STATUS_TRANSITIONS.get(locked_self.status, [])
        if new_status not in allowed:
            raise InvalidStateError(
                f"Cannot change refund status from '{locked_self.get_status_display()}' "
                f"to '{RefundStatus(new_status).label}'."
            )

        previous_status = locked_self.status
        locked_self.status = new_status
        locked_self.processed_by = processed_by
        locked_self.processed_at = timezone.now()
        locked_self.save(update_fields=['status', 'processed_by', 'processed_at', 'updated_at'])

        if new_status == RefundStatus.REJECTED:
            payment.refunded_total -= locked_self.amount
            payment.save(update_fields=['refunded_total', 'updated_at'])

        self.status = locked_self.status
        self.processed_by = locked_self.processed_by
        self.processed_at = locked_self.processed_at

        logger.info(f"Refund {self.id} moved {previous_status} -> {new_status}")
        return self
