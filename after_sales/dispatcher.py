"""
Resolution dispatcher.

Applies the stock and refund side effects of an accepted inspection. Runs
inside the Inspect transaction with the ticket already locked; stock rows
are locked before the payment row.
"""

from collections import OrderedDict
from decimal import Decimal
import logging

from core.exceptions import InsufficientStock, InvalidStateError
from inventory.ledger import lock_stock_rows
from inventory.models import ReferenceType
from payments.ledger import lock_latest_completed_payment, open_refund

from .models import ResolutionType

logger = logging.getLogger(__name__)


def _quantities_by_variant(items):
    quantities = OrderedDict()
    for item in items:
        quantities[item.product_variant_id] = quantities.get(item.product_variant_id, 0) + item.quantity
    return quantities


def restock_and_refund(ticket, items, actor):
    """Put returned goods back on hand, then open a refund against the order's payment."""
    stocks = lock_stock_rows([item.product_variant_id for item in items])

    # One Inbound movement per variant, however many lines carry it
    stock_movements = []
    for variant_id, quantity in _quantities_by_variant(items).items():
        movement = stocks[variant_id].add_stock(
            quantity,
            reference_type=ReferenceType.RETURN,
            reference_id=ticket.id,
            notes=f"Return accepted from ticket #{ticket.id}",
            recorded_by=actor,
        )
        stock_movements.append(
            {'variant': str(variant_id), 'quantity': quantity, 'transaction': str(movement.id)}
        )

    amount = ticket.refund_amount or sum((item.line_total for item in items), Decimal('0.00'))
    details = {'stock_movements': stock_movements}

    payment = lock_latest_completed_payment(ticket.order)
    if amount <= 0:
        # Nothing was paid for the scoped items
        logger.info(f"Ticket {ticket.id}: scoped items total 0, no refund opened")
        return details

    refund = open_refund(
        payment,
        amount,
        reason=ticket.reason,
        ticket=ticket,
        requested_by=actor,
    )
    ticket.refund_amount = amount
    details.update({'refund': str(refund.id), 'refund_amount': str(amount), 'payment': str(payment.id)})
    return details


def ship_replacement(ticket, items, actor):
    """Send replacement units out of stock. Refuses the whole ticket if any variant is short."""
    stocks = lock_stock_rows([item.product_variant_id for item in items])

    quantities = _quantities_by_variant(items)
    for variant_id, required in quantities.items():
        available = stocks[variant_id].quantity_available
        if available < required:
            raise InsufficientStock(
                f"Insufficient stock to fulfill warranty replacement for variant '{variant_id}'. "
                f"Available: {available}, Required: {required}."
            )

    stock_movements = []
    for variant_id, quantity in quantities.items():
        movement = stocks[variant_id].remove_stock(
            quantity,
            reference_type=ReferenceType.RETURN,
            reference_id=ticket.id,
            notes=f"Warranty replacement dispatched for ticket #{ticket.id}",
            recorded_by=actor,
        )
        stock_movements.append(
            {'variant': str(variant_id), 'quantity': -quantity, 'transaction': str(movement.id)}
        )

    return {'stock_movements': stock_movements}


def repair(ticket, items, actor):
    """Repairs are handled off-system; the ticket simply resolves."""
    return {}


RESOLUTION_HANDLERS = {
    ResolutionType.RETURN_AND_REFUND: restock_and_refund,
    ResolutionType.WARRANTY_REPLACE: ship_replacement,
    ResolutionType.WARRANTY_REPAIR: repair,
}


def dispatch_resolution(ticket, items, actor):
    """
    Run the side effects for the ticket's resolution type.

    Returns:
        dict of audit details (stock movements, refund id and amount)
    """
    handler = RESOLUTION_HANDLERS.get(ticket.resolution_type)
    if handler is None:
        raise InvalidStateError('This ticket does not require physical inspection.')
    return handler(ticket, items, actor)
