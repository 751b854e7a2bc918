"""
After-sales resolution engine.

Usage:
    from after_sales.engine import execute
    from after_sales.commands import ApproveTicket

    ticket = execute(ApproveTicket(ticket_id=..., resolution_type='refund_only',
                                   refund_amount=Decimal('50.00')), actor=request.user)

Every command is one transaction (see transactions.py) that either commits
all of its effects (ticket, stock, refund, audit rows) or none of them.
The returned ticket is re-read after commit with its detail relations.
"""

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
import logging

from core.exceptions import DuplicateOpenTicket, InvalidStateError, NotFoundError
from orders.models import AFTER_SALES_ELIGIBLE_STATUSES, Order, OrderItem
from payments.ledger import lock_latest_completed_payment, open_refund
from rest_framework import status

from .commands import ApproveTicket, InspectTicket, ReceiveGoods, RejectTicket, SubmitTicket
from .dispatcher import dispatch_resolution
from .models import (
    AfterSalesTicket,
    ResolutionType,
    TicketAttachment,
    TicketAuditLog,
    TicketStatus,
)
from .policy import evaluate_claim, load_active_policy
from .state_machine import apply_transition, ensure_compatible
from .transactions import IsolationLevel, check_cancelled, transactional

logger = logging.getLogger(__name__)


def _blank_to_none(value):
    if value is None or not str(value).strip():
        return None
    return value


def _lock_ticket(ticket_id):
    ticket = AfterSalesTicket.objects.select_for_update().filter(pk=ticket_id).first()
    if ticket is None:
        raise NotFoundError('Ticket not found.')
    return ticket


def _snapshot(ticket):
    return {
        'status': ticket.status,
        'resolution_type': ticket.resolution_type,
        'refund_amount': str(ticket.refund_amount) if ticket.refund_amount is not None else None,
        'received_at': ticket.received_at.isoformat() if ticket.received_at else None,
    }


def _notify_when_terminal(ticket):
    if not ticket.is_terminal or not settings.AFTER_SALES_NOTIFICATIONS_ENABLED:
        return
    from .tasks import notify_ticket_status_changed

    ticket_id = str(ticket.id)
    transaction.on_commit(lambda: notify_ticket_status_changed.delay(ticket_id))


def _open_duplicate_exists(order, order_item, claim_type):
    return AfterSalesTicket.objects.open().filter(
        order=order,
        order_item=order_item,
        claim_type=claim_type,
    ).exists()


# ==============================================================================
# COMMAND HANDLERS
# ==============================================================================

@transactional(isolation=IsolationLevel.READ_COMMITTED)
def submit_ticket(command: SubmitTicket, actor, cancel=None):
    # Submits for the same order queue here, so the duplicate check sees committed tickets
    order = Order.objects.select_for_update().filter(
        pk=command.order_id,
        customer=actor,
        status__in=AFTER_SALES_ELIGIBLE_STATUSES,
    ).first()
    if order is None:
        raise NotFoundError('Order not found or is not eligible for after-sales request.')

    order_item = None
    if command.order_item_id:
        order_item = OrderItem.objects.filter(pk=command.order_item_id, order=order).first()
        if order_item is None:
            raise InvalidStateError('The specified order item does not belong to this order.')

    now = timezone.now()
    policy = load_active_policy(command.claim_type, now)
    violation = evaluate_claim(policy, command.claim_type, order, order.get_delivered_at(), now)

    if _open_duplicate_exists(order, order_item, command.claim_type):
        raise DuplicateOpenTicket()

    ticket = AfterSalesTicket(
        order=order,
        order_item=order_item,
        customer=actor,
        claim_type=command.claim_type,
        status=TicketStatus.REJECTED if violation else TicketStatus.PENDING,
        reason=command.reason,
        requested_action=_blank_to_none(command.requested_action),
        refund_amount=command.refund_amount,
        evidence_required=policy.evidence_required,
        policy_violation=violation,
        created_at=now,
    )
    try:
        with transaction.atomic():
            ticket.save(force_insert=True)
    except IntegrityError as e:
        # A concurrent submit won the race for the open-ticket slot
        if _open_duplicate_exists(order, order_item, command.claim_type):
            raise DuplicateOpenTicket() from e
        raise

    TicketAttachment.objects.bulk_create([
        TicketAttachment(
            ticket=ticket,
            file_name=attachment.file_name,
            file_url=attachment.file_url,
            file_extension=_blank_to_none(attachment.file_extension),
        )
        for attachment in command.attachments
    ])

    TicketAuditLog.log(
        operation='submit',
        ticket=ticket,
        user=actor,
        new_state=_snapshot(ticket),
        details={
            'policy': str(policy.id),
            'policy_violation': violation,
            'attachments': len(command.attachments),
        },
    )

    if violation:
        logger.warning(f"Ticket {ticket.id} auto-rejected for order {order.order_number}: {violation}")
    else:
        logger.info(f"Ticket {ticket.id} submitted by {actor} for order {order.order_number}")
    _notify_when_terminal(ticket)
    return ticket.id


@transactional(isolation=IsolationLevel.SERIALIZABLE)
def approve_ticket(command: ApproveTicket, actor, cancel=None):
    ticket = _lock_ticket(command.ticket_id)
    if ticket.status != TicketStatus.PENDING:
        raise InvalidStateError(f"Cannot approve a ticket with status '{ticket.get_status_display()}'.")

    ensure_compatible(ticket.claim_type, command.resolution_type)

    previous_state = _snapshot(ticket)
    details = {}
    now = timezone.now()

    ticket.assigned_to = actor
    ticket.resolution_type = command.resolution_type
    ticket.staff_notes = _blank_to_none(command.notes)

    if command.resolution_type == ResolutionType.REFUND_ONLY:
        amount = command.refund_amount
        if amount is None or amount <= 0:
            raise InvalidStateError(
                'Refund amount is required and must be greater than zero for RefundOnly resolution.'
            )
        payment = lock_latest_completed_payment(ticket.order)
        refund = open_refund(
            payment,
            amount,
            reason=ticket.reason,
            ticket=ticket,
            requested_by=actor,
            cap_status_code=status.HTTP_400_BAD_REQUEST,
        )
        ticket.refund_amount = amount
        ticket.resolved_at = now
        apply_transition(ticket, TicketStatus.RESOLVED)
        details = {'refund': str(refund.id), 'refund_amount': str(amount), 'payment': str(payment.id)}
    else:
        apply_transition(ticket, TicketStatus.IN_PROGRESS)

    check_cancelled(cancel)
    ticket.save()

    TicketAuditLog.log(
        operation='approve',
        ticket=ticket,
        user=actor,
        previous_state=previous_state,
        new_state=_snapshot(ticket),
        details=details,
    )
    logger.info(
        f"Ticket {ticket.id} approved by {actor} as {ticket.resolution_type} -> {ticket.status}"
    )
    _notify_when_terminal(ticket)
    return ticket.id


@transactional(isolation=IsolationLevel.READ_COMMITTED)
def receive_goods(command: ReceiveGoods, actor, cancel=None):
    ticket = _lock_ticket(command.ticket_id)
    if ticket.status != TicketStatus.IN_PROGRESS:
        raise InvalidStateError(
            f"Cannot mark receipt on a ticket with status '{ticket.get_status_display()}'."
        )
    if not ticket.requires_physical_handling:
        raise InvalidStateError('This ticket does not require physical goods return.')
    if ticket.received_at is not None:
        raise InvalidStateError('Goods have already been marked as received for this ticket.')

    previous_state = _snapshot(ticket)
    ticket.received_at = timezone.now()
    ticket.save(update_fields=['received_at', 'updated_at'])

    TicketAuditLog.log(
        operation='receive',
        ticket=ticket,
        user=actor,
        previous_state=previous_state,
        new_state=_snapshot(ticket),
    )
    logger.info(f"Goods for ticket {ticket.id} received by {actor}")
    return ticket.id


@transactional(isolation=IsolationLevel.REPEATABLE_READ)
def inspect_ticket(command: InspectTicket, actor, cancel=None):
    ticket = _lock_ticket(command.ticket_id)
    if ticket.status != TicketStatus.IN_PROGRESS:
        raise InvalidStateError(f"Cannot inspect a ticket with status '{ticket.get_status_display()}'.")
    if ticket.received_at is None:
        raise InvalidStateError('Goods must be marked as received before inspection.')
    if not ticket.requires_physical_handling:
        raise InvalidStateError('This ticket does not require physical inspection.')

    previous_state = _snapshot(ticket)
    now = timezone.now()
    details = {'accepted': command.is_accepted}

    if command.is_accepted:
        items = ticket.scoped_items()
        if not items:
            raise InvalidStateError('No order items found for this ticket.')
        details.update(dispatch_resolution(ticket, items, actor))
        apply_transition(ticket, TicketStatus.RESOLVED)
    else:
        # Goods are not returnable to saleable stock; no ledger effects
        apply_transition(ticket, TicketStatus.REJECTED)

    ticket.staff_notes = command.notes
    ticket.resolved_at = now

    check_cancelled(cancel)
    ticket.save()

    TicketAuditLog.log(
        operation='inspect',
        ticket=ticket,
        user=actor,
        previous_state=previous_state,
        new_state=_snapshot(ticket),
        details=details,
    )
    logger.info(
        f"Ticket {ticket.id} inspected by {actor}: "
        f"{'accepted' if command.is_accepted else 'rejected'} -> {ticket.status}"
    )
    _notify_when_terminal(ticket)
    return ticket.id


@transactional(isolation=IsolationLevel.READ_COMMITTED)
def reject_ticket(command: RejectTicket, actor, cancel=None):
    ticket = _lock_ticket(command.ticket_id)
    if ticket.status not in (TicketStatus.PENDING, TicketStatus.IN_PROGRESS):
        raise InvalidStateError(f"Cannot reject a ticket with status '{ticket.get_status_display()}'.")

    previous_state = _snapshot(ticket)
    apply_transition(ticket, TicketStatus.REJECTED)
    ticket.staff_notes = command.reason
    ticket.assigned_to = actor
    ticket.resolved_at = timezone.now()
    ticket.save(update_fields=['status', 'staff_notes', 'assigned_to', 'resolved_at', 'updated_at'])

    TicketAuditLog.log(
        operation='reject',
        ticket=ticket,
        user=actor,
        previous_state=previous_state,
        new_state=_snapshot(ticket),
        details={'reason': command.reason},
    )
    logger.info(f"Ticket {ticket.id} rejected by {actor}")
    _notify_when_terminal(ticket)
    return ticket.id


COMMAND_HANDLERS = {
    SubmitTicket: submit_ticket,
    ApproveTicket: approve_ticket,
    ReceiveGoods: receive_goods,
    InspectTicket: inspect_ticket,
    RejectTicket: reject_ticket,
}


def execute(command, actor, cancel=None) -> AfterSalesTicket:
    """
    Run an after-sales command and return the ticket in detail form.

    Args:
        command: One of the dataclasses in after_sales.commands
        actor: The acting user
        cancel: Optional token with is_set(); when set before commit the
            transaction is rolled back and OperationCancelled raised

    Raises:
        NotFoundError, InvalidStateError, ConflictError, ServiceUnavailableError
    """
    handler = COMMAND_HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"Unsupported after-sales command: {type(command).__name__}")

    ticket_id = handler(command, actor, cancel=cancel)
    return AfterSalesTicket.objects.with_detail().get(pk=ticket_id)
