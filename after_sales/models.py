"""
After-Sales Models

Customers raise return, warranty and refund claims against delivered orders.
Each claim becomes an AfterSalesTicket that staff move through a small state
machine (see state_machine.py) until it reaches a terminal state.

Lifecycle:
1. Customer submits a claim, checked against the active PolicyConfiguration
   (a policy violation still creates the ticket, already Rejected)
2. Sales staff approve with a resolution type, or reject
3. RefundOnly resolves immediately with a Pending refund
4. Other resolutions wait for operations staff to receive and inspect goods
5. Inspection accepts (stock and refund side effects) or rejects

ATOMICITY:
- Every mutation goes through after_sales.engine inside one transaction
- Ticket, stock and payment rows are locked with select_for_update()
- Database constraints back up the compatibility matrix and the
  one-open-ticket-per-claim rule
- TicketAuditLog records every command in the same transaction
"""

from django.db import models, transaction
from django.db.models import F, Q, Prefetch
from django.db.models.functions import Coalesce
from django.utils import timezone
from decimal import Decimal
import uuid
import logging

from core.exceptions import InvalidStateError

logger = logging.getLogger(__name__)


class ClaimType(models.TextChoices):
    RETURN = 'return', 'Return'
    WARRANTY = 'warranty', 'Warranty'
    REFUND = 'refund', 'Refund'


class TicketStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    IN_PROGRESS = 'in_progress', 'In Progress'
    RESOLVED = 'resolved', 'Resolved'
    REJECTED = 'rejected', 'Rejected'
    CLOSED = 'closed', 'Closed'


class ResolutionType(models.TextChoices):
    REFUND_ONLY = 'refund_only', 'Refund Only'
    RETURN_AND_REFUND = 'return_and_refund', 'Return and Refund'
    WARRANTY_REPAIR = 'warranty_repair', 'Warranty Repair'
    WARRANTY_REPLACE = 'warranty_replace', 'Warranty Replace'


OPEN_TICKET_STATUSES = (TicketStatus.PENDING, TicketStatus.IN_PROGRESS)
TERMINAL_TICKET_STATUSES = (TicketStatus.RESOLVED, TicketStatus.REJECTED, TicketStatus.CLOSED)

# Resolution types a staff member may choose for each claim type
RESOLUTION_COMPATIBILITY = {
    ClaimType.REFUND: (ResolutionType.REFUND_ONLY,),
    ClaimType.RETURN: (ResolutionType.RETURN_AND_REFUND,),
    ClaimType.WARRANTY: (ResolutionType.WARRANTY_REPAIR, ResolutionType.WARRANTY_REPLACE),
}

# Resolutions that need the goods back before inspection
PHYSICAL_RESOLUTIONS = (
    ResolutionType.RETURN_AND_REFUND,
    ResolutionType.WARRANTY_REPAIR,
    ResolutionType.WARRANTY_REPLACE,
)


# ==============================================================================
# POLICY CONFIGURATION
# ==============================================================================

class PolicyConfigurationQuerySet(models.QuerySet):
    def live(self):
        return self.filter(is_active=True, is_deleted=False)

    def effective_at(self, claim_type, at):
        return self.live().filter(
            Q(effective_to__isnull=True) | Q(effective_to__gte=at),
            claim_type=claim_type,
            effective_from__lte=at,
        )


class PolicyConfiguration(models.Model):
    """
    Eligibility rules for one claim type.

    At most one active, non-deleted row exists per claim type. A superseded
    row (deactivated with an effective_to stamp) is kept for audit and may
    only be soft-deleted afterwards.
    """
    SOFT_DELETE_FIELDS = frozenset({'is_deleted', 'deleted_at', 'deleted_by', 'updated_at'})

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    claim_type = models.CharField(max_length=20, choices=ClaimType.choices, db_index=True)
    policy_name = models.CharField(max_length=200)

    return_window_days = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text='Days after delivery during which returns are accepted'
    )
    warranty_months = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text='Months after delivery covered by warranty'
    )
    refund_allowed = models.BooleanField(default=True)
    customized_lens_refundable = models.BooleanField(
        default=False,
        help_text='Whether prescription (customised) orders can be refunded'
    )
    evidence_required = models.BooleanField(default=True)
    min_order_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True
    )

    is_active = models.BooleanField(default=True)
    effective_from = models.DateTimeField(default=timezone.now)
    effective_to = models.DateTimeField(null=True, blank=True)

    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    created_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PolicyConfigurationQuerySet.as_manager()

    class Meta:
        db_table = 'policy_configurations'
        ordering = ['claim_type', '-effective_from']
        constraints = [
            models.UniqueConstraint(
                fields=['claim_type'],
                condition=Q(is_active=True, is_deleted=False),
                name='one_active_policy_per_claim_type',
            ),
            models.CheckConstraint(
                condition=(
                    (~Q(claim_type='return') & Q(return_window_days__isnull=True)) |
                    (Q(claim_type='return') & Q(return_window_days__isnull=False))
                ),
                name='policy_return_window_matches_type',
            ),
            models.CheckConstraint(
                condition=(
                    (~Q(claim_type='warranty') & Q(warranty_months__isnull=True)) |
                    (Q(claim_type='warranty') & Q(warranty_months__isnull=False))
                ),
                name='policy_warranty_months_matches_type',
            ),
            models.CheckConstraint(
                condition=Q(effective_to__isnull=True) | Q(effective_to__gte=F('effective_from')),
                name='policy_effective_range_valid',
            ),
        ]

    def __str__(self):
        return f"{self.policy_name} ({self.get_claim_type_display()})"

    @property
    def is_superseded(self):
        return not self.is_active and self.effective_to is not None

    def save(self, *args, **kwargs):
        if not self._state.adding:
            self._guard_superseded(kwargs.get('update_fields'))
        super().save(*args, **kwargs)

    def _guard_superseded(self, update_fields):
        stored = PolicyConfiguration.objects.filter(pk=self.pk).values('is_active', 'effective_to').first()
        if not stored or stored['is_active'] or stored['effective_to'] is None:
            return
        if update_fields is None or not set(update_fields) <= self.SOFT_DELETE_FIELDS:
            raise InvalidStateError('Superseded policy configurations are immutable.')

    @classmethod
    @transaction.atomic
    def supersede(cls, claim_type, created_by=None, **values):
        """
        Replace the active policy for a claim type.

        The current row is locked, deactivated and stamped with effective_to
        before the replacement is inserted, so readers always see exactly
        one active row.
        """
        now = timezone.now()
        current = list(cls.objects.select_for_update().live().filter(claim_type=claim_type))
        for policy in current:
            policy.is_active = False
            policy.effective_to = now
            policy.save(update_fields=['is_active', 'effective_to', 'updated_at'])

        values.setdefault('effective_from', now)
        replacement = cls.objects.create(claim_type=claim_type, created_by=created_by, **values)
        logger.info(
            f"Policy {replacement.id} now active for {claim_type} "
            f"(superseded {[str(p.id) for p in current]})"
        )
        return replacement

    def soft_delete(self, user=None):
        self.is_deleted = True
        self.deleted_at = timezone.now()
        self.deleted_by = user
        self.save(update_fields=['is_deleted', 'deleted_at', 'deleted_by', 'updated_at'])
        logger.info(f"Policy {self.id} soft-deleted by {user}")


# ==============================================================================
# TICKETS
# ==============================================================================

def _compatible_resolution_q():
    condition = Q(resolution_type__isnull=True)
    for claim_type, resolutions in RESOLUTION_COMPATIBILITY.items():
        condition |= Q(claim_type=claim_type.value, resolution_type__in=[r.value for r in resolutions])
    return condition


class AfterSalesTicketQuerySet(models.QuerySet):
    def open(self):
        return self.filter(status__in=OPEN_TICKET_STATUSES)

    def for_customer(self, user):
        return self.filter(customer=user)

    def with_summary(self):
        return self.select_related('order', 'customer')

    def with_detail(self):
        from orders.models import OrderItem

        return self.select_related(
            'order', 'order_item', 'order_item__product_variant', 'customer', 'assigned_to'
        ).prefetch_related(
            'attachments',
            Prefetch('order__items', queryset=OrderItem.objects.select_related('product_variant')),
        )

    def operations_queue(self):
        """In-progress tickets that need goods handled, un-received first."""
        return self.filter(
            status=TicketStatus.IN_PROGRESS,
            resolution_type__in=PHYSICAL_RESOLUTIONS,
        ).order_by(F('received_at').asc(nulls_first=True), '-created_at')


class AfterSalesTicket(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Relationships
    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.PROTECT,
        related_name='after_sales_tickets'
    )
    order_item = models.ForeignKey(
        'orders.OrderItem',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='after_sales_tickets',
        help_text='Null for a claim on the whole order'
    )
    customer = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='after_sales_tickets'
    )
    assigned_to = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_after_sales_tickets'
    )

    # Claim
    claim_type = models.CharField(max_length=20, choices=ClaimType.choices)
    status = models.CharField(
        max_length=20,
        choices=TicketStatus.choices,
        default=TicketStatus.PENDING
    )
    reason = models.TextField()
    requested_action = models.CharField(max_length=500, null=True, blank=True)
    refund_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True
    )
    evidence_required = models.BooleanField(default=True)
    policy_violation = models.TextField(null=True, blank=True)

    # Resolution
    resolution_type = models.CharField(
        max_length=30,
        choices=ResolutionType.choices,
        null=True,
        blank=True
    )
    staff_notes = models.TextField(null=True, blank=True)
    received_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = AfterSalesTicketQuerySet.as_manager()

    class Meta:
        db_table = 'after_sales_tickets'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['customer', '-created_at'], name='ticket_customer_created_idx'),
            models.Index(fields=['status', '-created_at'], name='ticket_status_created_idx'),
            models.Index(fields=['order', 'claim_type'], name='ticket_order_claim_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=_compatible_resolution_q(),
                name='ticket_resolution_matches_claim',
            ),
            models.CheckConstraint(
                condition=~Q(status='pending') | Q(resolution_type__isnull=True),
                name='ticket_pending_has_no_resolution',
            ),
            models.CheckConstraint(
                condition=Q(refund_amount__isnull=True) | Q(refund_amount__gt=Decimal('0')),
                name='ticket_refund_amount_positive',
            ),
            # A whole-order claim keys on the order id so it cannot be opened twice either
            models.UniqueConstraint(
                F('order'),
                Coalesce('order_item', 'order', output_field=models.UUIDField()),
                F('claim_type'),
                condition=Q(status__in=['pending', 'in_progress']),
                name='one_open_ticket_per_claim',
            ),
        ]

    def __str__(self):
        return f"{self.get_claim_type_display()} ticket {self.id} ({self.get_status_display()})"

    @property
    def is_terminal(self):
        return self.status in TERMINAL_TICKET_STATUSES

    @property
    def requires_physical_handling(self):
        return self.resolution_type in PHYSICAL_RESOLUTIONS

    def scoped_items(self):
        """The referenced order item, or every item of the order for an order-wide claim."""
        from orders.models import OrderItem

        if self.order_item_id:
            return list(OrderItem.objects.select_related('product_variant').filter(pk=self.order_item_id))
        return list(
            OrderItem.objects.select_related('product_variant')
            .filter(order_id=self.order_id)
            .order_by('product_variant_id')
        )


class TicketAttachment(models.Model):
    """Evidence file uploaded with a claim (stored elsewhere, referenced by URL)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    ticket = models.ForeignKey(
        AfterSalesTicket,
        on_delete=models.CASCADE,
        related_name='attachments'
    )
    file_name = models.CharField(max_length=255)
    file_url = models.CharField(max_length=1000)
    file_extension = models.CharField(max_length=20, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'after_sales_ticket_attachments'
        ordering = ['created_at']

    def __str__(self):
        return self.file_name


class TicketAuditLog(models.Model):
    """
    Audit log for after-sales commands.

    Written inside the command's transaction, so a rolled-back command
    leaves no entry.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    operation = models.CharField(
        max_length=50,
        db_index=True,
        help_text='e.g., submit, approve, receive, inspect, reject'
    )
    ticket = models.ForeignKey(
        AfterSalesTicket,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    previous_state = models.JSONField(default=dict, blank=True)
    new_state = models.JSONField(default=dict, blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'after_sales_audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['ticket', '-created_at'], name='ticket_audit_ticket_idx'),
            models.Index(fields=['operation', '-created_at'], name='ticket_audit_operation_idx'),
        ]

    def __str__(self):
        return f"{self.operation} on {self.ticket_id} at {self.created_at}"

    @classmethod
    def log(cls, operation, ticket=None, user=None, previous_state=None,
            new_state=None, details=None):
        return cls.objects.create(
            operation=operation,
            ticket=ticket,
            user=user,
            previous_state=previous_state or {},
            new_state=new_state or {},
            details=details or {},
        )
