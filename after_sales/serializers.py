"""
Serializers for the after-sales API.

Input serializers validate request bodies and build engine commands; output
serializers render the list and detail projections of a ticket.
"""

from decimal import Decimal

from rest_framework import serializers

from orders.models import OrderItem

from .commands import (
    ApproveTicket,
    AttachmentInput,
    InspectTicket,
    RejectTicket,
    SubmitTicket,
)
from .models import AfterSalesTicket, ClaimType, ResolutionType, TicketAttachment


def _blank_to_none(value):
    if value is None:
        return None
    value = value.strip()
    return value or None


# ==============================================================================
# INPUT
# ==============================================================================

class AttachmentInputSerializer(serializers.Serializer):
    file_name = serializers.CharField(max_length=255)
    file_url = serializers.CharField(max_length=1000)
    file_extension = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)


class SubmitTicketSerializer(serializers.Serializer):
    """Customer claim against one of their delivered orders."""

    order_id = serializers.UUIDField()
    order_item_id = serializers.UUIDField(required=False, allow_null=True)
    claim_type = serializers.ChoiceField(choices=ClaimType.choices)
    reason = serializers.CharField(max_length=1000)
    requested_action = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)
    refund_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        allow_null=True,
        min_value=Decimal('0.01'),
    )
    attachments = AttachmentInputSerializer(many=True, required=False)

    def to_command(self):
        data = self.validated_data
        return SubmitTicket(
            order_id=data['order_id'],
            claim_type=data['claim_type'],
            reason=data['reason'],
            order_item_id=data.get('order_item_id'),
            requested_action=_blank_to_none(data.get('requested_action')),
            refund_amount=data.get('refund_amount'),
            attachments=tuple(
                AttachmentInput(
                    file_name=attachment['file_name'],
                    file_url=attachment['file_url'],
                    file_extension=_blank_to_none(attachment.get('file_extension')),
                )
                for attachment in data.get('attachments', [])
            ),
        )


class ApproveTicketSerializer(serializers.Serializer):
    resolution_type = serializers.ChoiceField(choices=ResolutionType.choices)
    notes = serializers.CharField(max_length=2000, required=False, allow_blank=True, allow_null=True)
    refund_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        allow_null=True,
        min_value=Decimal('0.01'),
    )

    def to_command(self, ticket_id):
        data = self.validated_data
        return ApproveTicket(
            ticket_id=ticket_id,
            resolution_type=data['resolution_type'],
            notes=_blank_to_none(data.get('notes')),
            refund_amount=data.get('refund_amount'),
        )


class InspectTicketSerializer(serializers.Serializer):
    is_accepted = serializers.BooleanField()
    notes = serializers.CharField(max_length=1000)

    def to_command(self, ticket_id):
        return InspectTicket(
            ticket_id=ticket_id,
            is_accepted=self.validated_data['is_accepted'],
            notes=self.validated_data['notes'],
        )


class RejectTicketSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000)

    def to_command(self, ticket_id):
        return RejectTicket(ticket_id=ticket_id, reason=self.validated_data['reason'])


# ==============================================================================
# OUTPUT
# ==============================================================================

class TicketAttachmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = TicketAttachment
        fields = ['id', 'file_name', 'file_url', 'file_extension', 'created_at']
        read_only_fields = fields


class OrderItemSummarySerializer(serializers.ModelSerializer):
    sku = serializers.CharField(source='product_variant.sku', read_only=True)
    variant_name = serializers.CharField(source='product_variant.name', read_only=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'product_variant', 'sku', 'variant_name', 'quantity', 'unit_price', 'line_total']
        read_only_fields = fields


class TicketListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for ticket lists."""

    order_number = serializers.CharField(source='order.order_number', read_only=True)
    claim_type_display = serializers.CharField(source='get_claim_type_display', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = AfterSalesTicket
        fields = [
            'id', 'order', 'order_number', 'order_item', 'claim_type', 'claim_type_display',
            'status', 'status_display', 'resolution_type', 'reason', 'refund_amount',
            'received_at', 'resolved_at', 'created_at'
        ]
        read_only_fields = fields


class StaffTicketListSerializer(TicketListSerializer):
    customer_email = serializers.EmailField(source='customer.email', read_only=True)

    class Meta(TicketListSerializer.Meta):
        fields = TicketListSerializer.Meta.fields + ['customer_email']
        read_only_fields = fields


class TicketDetailSerializer(serializers.ModelSerializer):
    """Full ticket view returned by every command and the detail endpoints."""

    order_number = serializers.CharField(source='order.order_number', read_only=True)
    claim_type_display = serializers.CharField(source='get_claim_type_display', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    resolution_type_display = serializers.CharField(source='get_resolution_type_display', read_only=True)
    customer_email = serializers.EmailField(source='customer.email', read_only=True)
    assigned_to_email = serializers.SerializerMethodField()
    attachments = TicketAttachmentSerializer(many=True, read_only=True)
    order_items = serializers.SerializerMethodField()

    class Meta:
        model = AfterSalesTicket
        fields = [
            'id', 'order', 'order_number', 'order_item', 'customer', 'customer_email',
            'claim_type', 'claim_type_display', 'status', 'status_display',
            'resolution_type', 'resolution_type_display', 'reason', 'requested_action',
            'refund_amount', 'evidence_required', 'policy_violation', 'staff_notes',
            'assigned_to', 'assigned_to_email', 'received_at', 'resolved_at',
            'created_at', 'updated_at', 'attachments', 'order_items'
        ]
        read_only_fields = fields

    def get_assigned_to_email(self, obj):
        return obj.assigned_to.email if obj.assigned_to else None

    def get_order_items(self, obj):
        """The referenced item, or every item of the order for an order-wide claim."""
        if obj.order_item_id:
            items = [obj.order_item]
        else:
            items = obj.order.items.all()
        return OrderItemSummarySerializer(items, many=True).data
