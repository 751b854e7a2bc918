"""
The five after-sales commands.

Each command is an immutable request object; after_sales.engine dispatches
it to its handler.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID


@dataclass(frozen=True)
class AttachmentInput:
    file_name: str
    file_url: str
    file_extension: Optional[str] = None


@dataclass(frozen=True)
class SubmitTicket:
    """Customer opens a claim against one of their delivered orders."""
    order_id: UUID
    claim_type: str
    reason: str
    order_item_id: Optional[UUID] = None
    requested_action: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    attachments: Tuple[AttachmentInput, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ApproveTicket:
    """Sales staff choose how a pending ticket is resolved."""
    ticket_id: UUID
    resolution_type: str
    notes: Optional[str] = None
    refund_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class ReceiveGoods:
    """Operations staff confirm the returned goods arrived."""
    ticket_id: UUID


@dataclass(frozen=True)
class InspectTicket:
    """Operations staff accept or reject received goods."""
    ticket_id: UUID
    is_accepted: bool
    notes: str


@dataclass(frozen=True)
class RejectTicket:
    """Staff close a pending or in-progress ticket without side effects."""
    ticket_id: UUID
    reason: str
