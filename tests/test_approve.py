"""
Approve command tests: resolution compatibility, RefundOnly refunds and the refund cap.

Run with: pytest tests/test_approve.py -v
"""

import pytest
import uuid
from decimal import Decimal

from after_sales.commands import ApproveTicket
from after_sales.engine import execute
from after_sales.models import ClaimType, ResolutionType, TicketAuditLog, TicketStatus
from core.exceptions import InvalidStateError, NotFoundError, PaymentNotFound, RefundCapExceeded
from payments.models import Payment, PaymentStatus, Refund, RefundStatus


def approve(ticket, resolution_type, actor, **kwargs):
    return execute(ApproveTicket(ticket_id=ticket.id, resolution_type=resolution_type, **kwargs), actor=actor)


@pytest.mark.django_db
class TestApprovePhysicalResolutions:

    def test_return_moves_to_in_progress(self, submit, customer, order, policies, sales_staff):
        ticket = submit(customer, order, ClaimType.RETURN)

        ticket = approve(ticket, ResolutionType.RETURN_AND_REFUND, sales_staff, notes='Send it back')

        assert ticket.status == TicketStatus.IN_PROGRESS
        assert ticket.resolution_type == ResolutionType.RETURN_AND_REFUND
        assert ticket.assigned_to == sales_staff
        assert ticket.staff_notes == 'Send it back'
        assert ticket.resolved_at is None
        assert not Refund.objects.exists()

    @pytest.mark.parametrize('resolution_type', [
        ResolutionType.WARRANTY_REPAIR, ResolutionType.WARRANTY_REPLACE,
    ])
    def test_warranty_moves_to_in_progress(self, submit, customer, order, policies, sales_staff,
                                           resolution_type):
        ticket = submit(customer, order, ClaimType.WARRANTY)

        ticket = approve(ticket, resolution_type, sales_staff)

        assert ticket.status == TicketStatus.IN_PROGRESS
        assert ticket.resolution_type == resolution_type

    def test_blank_notes_stored_as_null(self, submit, customer, order, policies, sales_staff):
        ticket = submit(customer, order, ClaimType.RETURN)

        ticket = approve(ticket, ResolutionType.RETURN_AND_REFUND, sales_staff, notes='')

        assert ticket.staff_notes is None


@pytest.mark.django_db
class TestApproveRefundOnly:

    def test_refund_only_resolves_with_pending_refund(self, submit, customer, order, payment,
                                                      policies, sales_staff):
        ticket = submit(customer, order, ClaimType.REFUND, reason='Lens coating peeling')

        ticket = approve(ticket, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('40.00'))

        assert ticket.status == TicketStatus.RESOLVED
        assert ticket.resolved_at is not None
        assert ticket.refund_amount == Decimal('40.00')

        refund = Refund.objects.get(ticket=ticket)
        assert refund.status == RefundStatus.PENDING
        assert refund.amount == Decimal('40.00')
        assert refund.payment == payment
        assert refund.reason == 'Lens coating peeling'

        payment.refresh_from_db()
        assert payment.refunded_total == Decimal('40.00')

    def test_refund_uses_latest_completed_payment(self, submit, make_payment, customer, order,
                                                  policies, sales_staff):
        make_payment(order, '100.00', status=PaymentStatus.FAILED)
        latest = make_payment(order, '100.00')
        ticket = submit(customer, order, ClaimType.REFUND)

        approve(ticket, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('10.00'))

        assert Refund.objects.get().payment == latest

    def test_missing_refund_amount_is_invalid(self, submit, customer, order, payment, policies,
                                              sales_staff):
        ticket = submit(customer, order, ClaimType.REFUND)

        with pytest.raises(InvalidStateError) as exc_info:
            approve(ticket, ResolutionType.REFUND_ONLY, sales_staff)

        assert exc_info.value.status_code == 400
        assert str(exc_info.value.detail) == (
            'Refund amount is required and must be greater than zero for RefundOnly resolution.'
        )
        ticket.refresh_from_db()
        assert ticket.status == TicketStatus.PENDING

    def test_no_completed_payment(self, submit, customer, order, policies, sales_staff):
        ticket = submit(customer, order, ClaimType.REFUND)

        with pytest.raises(PaymentNotFound) as exc_info:
            approve(ticket, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('10.00'))

        assert exc_info.value.status_code == 400
        assert str(exc_info.value.detail) == (
            'No completed payment found for this order. Cannot process refund.'
        )

    def test_refund_cap_exceeded_is_bad_request(self, submit, customer, order, payment, policies,
                                                sales_staff):
        first = submit(customer, order, ClaimType.REFUND)
        approve(first, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('70.00'))
        second = submit(customer, order, ClaimType.REFUND)

        with pytest.raises(RefundCapExceeded) as exc_info:
            approve(second, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('40.00'))

        assert exc_info.value.status_code == 400
        assert str(exc_info.value.detail) == (
            'Cumulative refund amount (110.00) exceeds original payment (100.00).'
        )
        second.refresh_from_db()
        assert second.status == TicketStatus.PENDING
        assert second.resolution_type is None
        payment.refresh_from_db()
        assert payment.refunded_total == Decimal('70.00')
        assert Refund.objects.count() == 1

    def test_refund_up_to_the_cap_is_allowed(self, submit, customer, order, payment, policies,
                                             sales_staff):
        first = submit(customer, order, ClaimType.REFUND)
        approve(first, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('70.00'))
        second = submit(customer, order, ClaimType.REFUND)

        approve(second, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('30.00'))

        payment.refresh_from_db()
        assert payment.refunded_total == payment.amount

    def test_rejected_refund_frees_the_cap(self, submit, customer, order, payment, policies,
                                           sales_staff, manager):
        first = submit(customer, order, ClaimType.REFUND)
        approve(first, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('90.00'))
        Refund.objects.get(ticket=first).transition_to(RefundStatus.REJECTED, processed_by=manager)
        second = submit(customer, order, ClaimType.REFUND)

        approve(second, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('90.00'))

        payment.refresh_from_db()
        assert payment.refunded_total == Decimal('90.00')
        assert payment.calculate_refunded_total() == Decimal('90.00')


@pytest.mark.django_db
class TestApproveFailures:

    def test_unknown_ticket_is_not_found(self, sales_staff):
        with pytest.raises(NotFoundError) as exc_info:
            execute(ApproveTicket(ticket_id=uuid.uuid4(), resolution_type=ResolutionType.REFUND_ONLY),
                    actor=sales_staff)

        assert str(exc_info.value.detail) == 'Ticket not found.'

    def test_incompatible_resolution_is_rejected_before_mutation(self, submit, customer, order,
                                                                 payment, policies, sales_staff):
        ticket = submit(customer, order, ClaimType.WARRANTY)

        with pytest.raises(InvalidStateError) as exc_info:
            approve(ticket, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('10.00'))

        assert str(exc_info.value.detail) == (
            "Resolution type 'Refund Only' is not valid for ticket type 'Warranty'."
        )
        ticket.refresh_from_db()
        assert ticket.status == TicketStatus.PENDING
        assert ticket.resolution_type is None
        assert not Refund.objects.exists()

    def test_unknown_resolution_value_is_rejected_before_mutation(self, submit, customer, order,
                                                                  policies, sales_staff):
        ticket = submit(customer, order, ClaimType.RETURN)

        with pytest.raises(InvalidStateError) as exc_info:
            approve(ticket, 'store_credit', sales_staff)

        assert str(exc_info.value.detail) == (
            "Resolution type 'store_credit' is not valid for ticket type 'Return'."
        )
        ticket.refresh_from_db()
        assert ticket.status == TicketStatus.PENDING
        assert ticket.resolution_type is None

    def test_cannot_approve_twice(self, submit, customer, order, policies, sales_staff):
        ticket = submit(customer, order, ClaimType.RETURN)
        approve(ticket, ResolutionType.RETURN_AND_REFUND, sales_staff)

        with pytest.raises(InvalidStateError) as exc_info:
            approve(ticket, ResolutionType.RETURN_AND_REFUND, sales_staff)

        assert str(exc_info.value.detail) == "Cannot approve a ticket with status 'In Progress'."

    def test_failed_approve_leaves_no_audit_entry(self, submit, customer, order, policies, sales_staff):
        ticket = submit(customer, order, ClaimType.REFUND)

        with pytest.raises(PaymentNotFound):
            approve(ticket, ResolutionType.REFUND_ONLY, sales_staff, refund_amount=Decimal('5.00'))

        assert list(TicketAuditLog.objects.filter(ticket=ticket).values_list('operation', flat=True)) == [
            'submit'
        ]
        assert Payment.objects.count() == 0
