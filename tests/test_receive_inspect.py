"""
Receive and Inspect command tests: gating, stock conservation and refunds.

Run with: pytest tests/test_receive_inspect.py -v
"""

import pytest
import uuid
from decimal import Decimal

from after_sales.commands import InspectTicket, ReceiveGoods
from after_sales.engine import execute
from after_sales.models import (
    AfterSalesTicket,
    ClaimType,
    ResolutionType,
    TicketAuditLog,
    TicketStatus,
)
from core.exceptions import (
    InsufficientStock,
    InvalidStateError,
    NotFoundError,
    PaymentNotFound,
    RefundCapExceeded,
    StockRecordMissing,
)
from inventory.models import InventoryTransaction, ReferenceType, Stock, TransactionType
from payments.models import Refund, RefundStatus


def inspect(ticket, actor, is_accepted=True, notes='Checked on the bench'):
    return execute(InspectTicket(ticket_id=ticket.id, is_accepted=is_accepted, notes=notes), actor=actor)


def on_hand(variant):
    return Stock.objects.get(product_variant=variant).quantity_on_hand


# =============================================================================
# RECEIVE
# =============================================================================

@pytest.mark.django_db
class TestReceiveGoods:

    def test_receive_stamps_received_at(self, approved_ticket, customer, order, ops_staff):
        ticket = approved_ticket(customer, order, ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND,
                                 ops_staff, received=False)

        ticket = execute(ReceiveGoods(ticket_id=ticket.id), actor=ops_staff)

        assert ticket.received_at is not None
        assert ticket.status == TicketStatus.IN_PROGRESS
        assert TicketAuditLog.objects.filter(ticket=ticket, operation='receive').count() == 1

    def test_receive_twice_fails_second_time(self, approved_ticket, customer, order, ops_staff):
        ticket = approved_ticket(customer, order, ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND,
                                 ops_staff, received=False)
        first = execute(ReceiveGoods(ticket_id=ticket.id), actor=ops_staff)

        with pytest.raises(InvalidStateError) as exc_info:
            execute(ReceiveGoods(ticket_id=ticket.id), actor=ops_staff)

        assert str(exc_info.value.detail) == 'Goods have already been marked as received for this ticket.'
        ticket.refresh_from_db()
        assert ticket.received_at == first.received_at

    def test_receive_on_pending_ticket(self, submit, customer, order, policies, ops_staff):
        ticket = submit(customer, order, ClaimType.RETURN)

        with pytest.raises(InvalidStateError) as exc_info:
            execute(ReceiveGoods(ticket_id=ticket.id), actor=ops_staff)

        assert str(exc_info.value.detail) == "Cannot mark receipt on a ticket with status 'Pending'."

    def test_receive_on_refund_only_resolution(self, submit, customer, order, policies, ops_staff):
        ticket = submit(customer, order, ClaimType.REFUND)
        AfterSalesTicket.objects.filter(pk=ticket.pk).update(
            status=TicketStatus.IN_PROGRESS, resolution_type=ResolutionType.REFUND_ONLY
        )

        with pytest.raises(InvalidStateError) as exc_info:
            execute(ReceiveGoods(ticket_id=ticket.id), actor=ops_staff)

        assert str(exc_info.value.detail) == 'This ticket does not require physical goods return.'

    def test_unknown_ticket(self, ops_staff):
        with pytest.raises(NotFoundError):
            execute(ReceiveGoods(ticket_id=uuid.uuid4()), actor=ops_staff)


# =============================================================================
# INSPECT GATING
# =============================================================================

@pytest.mark.django_db
class TestInspectGating:

    @pytest.mark.parametrize('claim_type, resolution_type', [
        (ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND),
        (ClaimType.WARRANTY, ResolutionType.WARRANTY_REPAIR),
        (ClaimType.WARRANTY, ResolutionType.WARRANTY_REPLACE),
    ])
    def test_inspect_before_receive_fails(self, approved_ticket, customer, order, payment,
                                          ops_staff, claim_type, resolution_type):
        ticket = approved_ticket(customer, order, claim_type, resolution_type, ops_staff, received=False)

        with pytest.raises(InvalidStateError) as exc_info:
            inspect(ticket, ops_staff)

        assert str(exc_info.value.detail) == 'Goods must be marked as received before inspection.'
        assert not InventoryTransaction.objects.exists()

    def test_inspect_pending_ticket(self, submit, customer, order, policies, ops_staff):
        ticket = submit(customer, order, ClaimType.RETURN)

        with pytest.raises(InvalidStateError) as exc_info:
            inspect(ticket, ops_staff)

        assert str(exc_info.value.detail) == "Cannot inspect a ticket with status 'Pending'."

    def test_inspect_refund_only_resolution(self, submit, customer, order, policies, ops_staff):
        ticket = submit(customer, order, ClaimType.REFUND)
        AfterSalesTicket.objects.filter(pk=ticket.pk).update(
            status=TicketStatus.IN_PROGRESS,
            resolution_type=ResolutionType.REFUND_ONLY,
            received_at=ticket.created_at,
        )

        with pytest.raises(InvalidStateError) as exc_info:
            inspect(ticket, ops_staff)

        assert str(exc_info.value.detail) == 'This ticket does not require physical inspection.'

    def test_unknown_ticket(self, ops_staff):
        with pytest.raises(NotFoundError):
            execute(InspectTicket(ticket_id=uuid.uuid4(), is_accepted=True, notes='x'), actor=ops_staff)


# =============================================================================
# RETURN AND REFUND
# =============================================================================

@pytest.mark.django_db
class TestInspectReturnAndRefund:

    def test_accept_restocks_and_opens_refund(self, approved_ticket, make_order, make_payment,
                                              customer, variant, variant_2, ops_staff):
        order = make_order(customer, [(variant, 2, '100.00'), (variant_2, 1, '50.00')])
        payment = make_payment(order, '250.00')
        ticket = approved_ticket(customer, order, ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND,
                                 ops_staff)

        ticket = inspect(ticket, ops_staff)

        assert ticket.status == TicketStatus.RESOLVED
        assert ticket.resolved_at is not None
        assert ticket.staff_notes == 'Checked on the bench'
        assert ticket.refund_amount == Decimal('250.00')

        assert on_hand(variant) == 12
        assert on_hand(variant_2) == 11
        movements = InventoryTransaction.objects.filter(reference_id=ticket.id)
        assert movements.count() == 2
        assert set(movements.values_list('transaction_type', flat=True)) == {TransactionType.INBOUND}
        assert set(movements.values_list('reference_type', flat=True)) == {ReferenceType.RETURN}
        assert movements.get(product_variant=variant).quantity == 2

        refund = Refund.objects.get(ticket=ticket)
        assert refund.amount == Decimal('250.00')
        assert refund.status == RefundStatus.PENDING
        payment.refresh_from_db()
        assert payment.refunded_total == Decimal('250.00')

    def test_lines_sharing_a_variant_restock_as_one_movement(self, approved_ticket, make_order, make_payment,
                                                             customer, variant, ops_staff):
        order = make_order(customer, [(variant, 2, '100.00'), (variant, 1, '80.00')])
        make_payment(order, '280.00')
        ticket = approved_ticket(customer, order, ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND,
                                 ops_staff)

        ticket = inspect(ticket, ops_staff)

        assert on_hand(variant) == 13
        movement = InventoryTransaction.objects.get(reference_id=ticket.id, product_variant=variant)
        assert movement.transaction_type == TransactionType.INBOUND
        assert movement.quantity == 3
        assert movement.balance_after == 13
        assert ticket.refund_amount == Decimal('280.00')

    def test_single_item_claim_only_touches_that_item(self, approved_ticket, make_order, make_payment,
                                                      customer, variant, variant_2, ops_staff):
        order = make_order(customer, [(variant, 2, '100.00'), (variant_2, 1, '50.00')])
        make_payment(order, '250.00')
        item = order.items.get(product_variant=variant_2)
        ticket = approved_ticket(customer, order, ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND,
                                 ops_staff, order_item_id=item.id)

        ticket = inspect(ticket, ops_staff)

        assert on_hand(variant) == 10
        assert on_hand(variant_2) == 11
        assert ticket.refund_amount == Decimal('50.00')

    def test_explicit_ticket_amount_wins_over_line_totals(self, approved_ticket, customer, order,
                                                          payment, ops_staff):
        ticket = approved_ticket(customer, order, ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND,
                                 ops_staff, refund_amount=Decimal('35.00'))

        inspect(ticket, ops_staff)

        assert Refund.objects.get(ticket=ticket).amount == Decimal('35.00')

    def test_refund_cap_exceeded_is_conflict_and_rolls_back_stock(self, approved_ticket, customer,
                                                                   order, payment, variant, ops_staff):
        ticket = approved_ticket(customer, order, ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND,
                                 ops_staff, refund_amount=Decimal('150.00'))

        with pytest.raises(RefundCapExceeded) as exc_info:
            inspect(ticket, ops_staff)

        assert exc_info.value.status_code == 409
        assert str(exc_info.value.detail) == (
            'Cumulative refund amount (150.00) exceeds original payment (100.00).'
        )
        assert on_hand(variant) == 10
        assert not InventoryTransaction.objects.exists()
        ticket.refresh_from_db()
        assert ticket.status == TicketStatus.IN_PROGRESS

    def test_missing_payment_rolls_back_stock(self, approved_ticket, customer, order, variant, ops_staff):
        ticket = approved_ticket(customer, order, ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND,
                                 ops_staff)

        with pytest.raises(PaymentNotFound):
            inspect(ticket, ops_staff)

        assert on_hand(variant) == 10
        assert not InventoryTransaction.objects.exists()

    def test_missing_stock_record_is_conflict(self, approved_ticket, make_order, make_payment,
                                              make_variant, customer, ops_staff):
        unstocked = make_variant('FRM-NOSTOCK', with_stock=False)
        order = make_order(customer, [(unstocked, 1, '100.00')])
        make_payment(order, '100.00')
        ticket = approved_ticket(customer, order, ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND,
                                 ops_staff)

        with pytest.raises(StockRecordMissing) as exc_info:
            inspect(ticket, ops_staff)

        assert exc_info.value.status_code == 409
        assert str(exc_info.value.detail) == f"Stock record not found for variant '{unstocked.id}'."
        assert not Refund.objects.exists()

    def test_reject_on_inspection_has_no_side_effects(self, approved_ticket, customer, order, payment,
                                                      variant, ops_staff):
        ticket = approved_ticket(customer, order, ClaimType.RETURN, ResolutionType.RETURN_AND_REFUND,
                                 ops_staff)

        ticket = inspect(ticket, ops_staff, is_accepted=False, notes='Frame damaged by customer')

        assert ticket.status == TicketStatus.REJECTED
        assert ticket.staff_notes == 'Frame damaged by customer'
        assert ticket.resolved_at is not None
        assert on_hand(variant) == 10
        assert not Refund.objects.exists()


# =============================================================================
# WARRANTY
# =============================================================================

@pytest.mark.django_db
class TestInspectWarranty:

    def test_replace_ships_from_stock(self, approved_ticket, make_order, customer, variant, ops_staff):
        order = make_order(customer, [(variant, 2, '120.00')])
        ticket = approved_ticket(customer, order, ClaimType.WARRANTY, ResolutionType.WARRANTY_REPLACE,
                                 ops_staff)

        ticket = inspect(ticket, ops_staff)

        assert ticket.status == TicketStatus.RESOLVED
        assert on_hand(variant) == 8
        movement = InventoryTransaction.objects.get(reference_id=ticket.id)
        assert movement.transaction_type == TransactionType.OUTBOUND
        assert movement.quantity == 2
        assert movement.balance_after == 8
        assert not Refund.objects.exists()

    def test_lines_sharing_a_variant_ship_as_one_movement(self, approved_ticket, make_order, customer,
                                                          variant, ops_staff):
        order = make_order(customer, [(variant, 1, '120.00'), (variant, 2, '110.00')])
        ticket = approved_ticket(customer, order, ClaimType.WARRANTY, ResolutionType.WARRANTY_REPLACE,
                                 ops_staff)

        ticket = inspect(ticket, ops_staff)

        assert on_hand(variant) == 7
        movement = InventoryTransaction.objects.get(reference_id=ticket.id)
        assert movement.transaction_type == TransactionType.OUTBOUND
        assert movement.quantity == 3
        log = TicketAuditLog.objects.get(ticket=ticket, operation='inspect')
        assert log.details['stock_movements'] == [
            {'variant': str(variant.id), 'quantity': -3, 'transaction': str(movement.id)}
        ]

    def test_replace_with_insufficient_stock_changes_nothing(self, approved_ticket, make_order,
                                                             make_variant, customer, ops_staff):
        """Available 1, order line wants 2."""
        scarce = make_variant('FRM-SCARCE', on_hand=1)
        order = make_order(customer, [(scarce, 2, '120.00')])
        ticket = approved_ticket(customer, order, ClaimType.WARRANTY, ResolutionType.WARRANTY_REPLACE,
                                 ops_staff)

        with pytest.raises(InsufficientStock) as exc_info:
            inspect(ticket, ops_staff)

        assert exc_info.value.status_code == 409
        assert str(exc_info.value.detail) == (
            f"Insufficient stock to fulfill warranty replacement for variant '{scarce.id}'. "
            f"Available: 1, Required: 2."
        )
        assert on_hand(scarce) == 1
        assert not InventoryTransaction.objects.exists()
        ticket.refresh_from_db()
        assert ticket.status == TicketStatus.IN_PROGRESS

    def test_reserved_units_are_not_available(self, approved_ticket, make_order, make_variant,
                                              customer, ops_staff):
        reserved = make_variant('FRM-RESERVED', on_hand=3, reserved=2)
        order = make_order(customer, [(reserved, 2, '120.00')])
        ticket = approved_ticket(customer, order, ClaimType.WARRANTY, ResolutionType.WARRANTY_REPLACE,
                                 ops_staff)

        with pytest.raises(InsufficientStock):
            inspect(ticket, ops_staff)

        assert on_hand(reserved) == 3

    def test_repair_resolves_without_stock_change(self, approved_ticket, customer, order, variant,
                                                  ops_staff):
        ticket = approved_ticket(customer, order, ClaimType.WARRANTY, ResolutionType.WARRANTY_REPAIR,
                                 ops_staff)

        ticket = inspect(ticket, ops_staff)

        assert ticket.status == TicketStatus.RESOLVED
        assert on_hand(variant) == 10
        assert not InventoryTransaction.objects.exists()
        assert not Refund.objects.exists()

    def test_inspect_is_audited_with_stock_movements(self, approved_ticket, customer, order, ops_staff):
        ticket = approved_ticket(customer, order, ClaimType.WARRANTY, ResolutionType.WARRANTY_REPLACE,
                                 ops_staff)

        inspect(ticket, ops_staff)

        log = TicketAuditLog.objects.get(ticket=ticket, operation='inspect')
        assert log.previous_state['status'] == TicketStatus.IN_PROGRESS
        assert log.new_state['status'] == TicketStatus.RESOLVED
        assert log.details['accepted'] is True
        assert log.details['stock_movements'][0]['quantity'] == -1
