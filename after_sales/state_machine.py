"""
Ticket state machine and resolution compatibility.

All command handlers move tickets through apply_transition(), so the
terminal-state rule and the claim/resolution matrix live in one place.
"""

from typing import Dict, List

from core.exceptions import InvalidStateError

from .models import (
    ClaimType,
    ResolutionType,
    TicketStatus,
    RESOLUTION_COMPATIBILITY,
)


class TicketTransitionError(Exception):
    """
    Raised when code attempts a transition the state machine forbids.

    Handlers check preconditions first and raise user-facing errors, so this
    only fires on a programming error.
    """
    pass


TICKET_STATUS_TRANSITIONS: Dict[str, List[str]] = {
    TicketStatus.PENDING: [TicketStatus.RESOLVED, TicketStatus.IN_PROGRESS, TicketStatus.REJECTED],
    TicketStatus.IN_PROGRESS: [TicketStatus.RESOLVED, TicketStatus.REJECTED],
    TicketStatus.RESOLVED: [],  # Terminal state
    TicketStatus.REJECTED: [],  # Terminal state
    TicketStatus.CLOSED: [],  # Terminal state
}


def validate_ticket_transition(current_status: str, new_status: str) -> bool:
    """
    Validate that a ticket status transition is allowed.

    Unlike other status fields, staying in place is not a valid transition:
    every command that reaches this point must move the ticket, or leave the
    status untouched without calling it.

    Raises:
        TicketTransitionError if the transition is not in the table
    """
    valid_transitions = TICKET_STATUS_TRANSITIONS.get(current_status, [])

    if new_status not in valid_transitions:
        raise TicketTransitionError(
            f"Invalid ticket status transition: {current_status} -> {new_status}. "
            f"Valid transitions from '{current_status}': {[str(s) for s in valid_transitions]}"
        )

    return True


def apply_transition(ticket, new_status):
    """Validate and set the new status on a locked ticket. Returns the previous status."""
    previous_status = ticket.status
    validate_ticket_transition(previous_status, new_status)
    ticket.status = new_status
    return previous_status


def is_compatible(claim_type: str, resolution_type: str) -> bool:
    return resolution_type in RESOLUTION_COMPATIBILITY.get(claim_type, ())


def _label(choices, value):
    """Display label for a choice value, or the raw value when it is not a member."""
    try:
        return choices(value).label
    except ValueError:
        return value


def ensure_compatible(claim_type: str, resolution_type: str):
    """
    Raises:
        InvalidStateError naming both values when the pair is not allowed
    """
    if not is_compatible(claim_type, resolution_type):
        raise InvalidStateError(
            f"Resolution type '{_label(ResolutionType, resolution_type)}' is not valid "
            f"for ticket type '{_label(ClaimType, claim_type)}'."
        )
