"""
Refund ledger operations.

Both functions must run inside a transaction; the payment row stays locked
until that transaction ends.
"""

from rest_framework import status
import logging

from core.exceptions import PaymentNotFound, RefundCapExceeded

from .models import Payment, PaymentStatus, Refund, RefundStatus

logger = logging.getLogger(__name__)


def lock_latest_completed_payment(order):
    """
    Lock and return the order's most recent completed payment.

    Raises:
        PaymentNotFound if the order has no completed payment
    """
    payment = (
        Payment.objects.select_for_update()
        .filter(order=order, status=PaymentStatus.COMPLETED)
        .order_by('-paid_at', '-created_at')
        .first()
    )
    if payment is None:
        raise PaymentNotFound()
    return payment


def open_refund(payment, amount, reason='', ticket=None, requested_by=None,
                cap_status_code=status.HTTP_409_CONFLICT):
    """
    Record a Pending refund against a locked payment.

    Args:
        payment: Payment returned by lock_latest_completed_payment
        amount: Refund amount (Decimal, > 0)
        reason: Free-text reason copied onto the refund
        ticket: After-sales ticket the refund belongs to
        requested_by: User recording the refund
        cap_status_code: HTTP status reported when the cap would be exceeded

    Raises:
        RefundCapExceeded if existing + requested refunds exceed the payment
    """
    requested_total = payment.refunded_total + amount
    if requested_total > payment.amount:
        raise RefundCapExceeded(
            f"Cumulative refund amount ({requested_total:.2f}) exceeds "
            f"original payment ({payment.amount:.2f}).",
            status_code=cap_status_code,
        )

    refund = Refund.objects.create(
        payment=payment,
        ticket=ticket,
        amount=amount,
        reason=reason,
        status=RefundStatus.PENDING,
        requested_by=requested_by,
    )

    payment.refunded_total = requested_total
    payment.save(update_fields=['refunded_total', 'updated_at'])

    logger.info(
        f"Refund {refund.id} opened for payment {payment.id}: {amount} "
        f"(refunded total {payment.refunded_total} of {payment.amount})"
    )
    return refund
