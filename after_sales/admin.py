from django.contrib import admin

from .models import AfterSalesTicket, PolicyConfiguration, TicketAttachment, TicketAuditLog


class TicketAttachmentInline(admin.TabularInline):
    model = TicketAttachment
    extra = 0
    readonly_fields = ('file_name', 'file_url', 'file_extension', 'created_at')
    can_delete = False


class TicketAuditLogInline(admin.TabularInline):
    model = TicketAuditLog
    extra = 0
    fields = ('operation', 'user', 'previous_state', 'new_state', 'details', 'created_at')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(AfterSalesTicket)
class AfterSalesTicketAdmin(admin.ModelAdmin):
    list_display = (
        'id', 'order', 'customer', 'claim_type', 'status', 'resolution_type',
        'refund_amount', 'received_at', 'created_at'
    )
    list_filter = ('status', 'claim_type', 'resolution_type', 'created_at')
    search_fields = ('order__order_number', 'customer__email', 'reason')
    # Status and side effects only change through after_sales.engine
    readonly_fields = (
        'order', 'order_item', 'customer', 'claim_type', 'status', 'resolution_type',
        'refund_amount', 'policy_violation', 'evidence_required', 'received_at',
        'resolved_at', 'created_at', 'updated_at'
    )
    inlines = [TicketAttachmentInline, TicketAuditLogInline]


@admin.register(PolicyConfiguration)
class PolicyConfigurationAdmin(admin.ModelAdmin):
    list_display = (
        'policy_name', 'claim_type', 'return_window_days', 'warranty_months',
        'refund_allowed', 'is_active', 'effective_from', 'effective_to', 'is_deleted'
    )
    list_filter = ('claim_type', 'is_active', 'is_deleted')
    readonly_fields = ('effective_to', 'is_deleted', 'deleted_at', 'deleted_by', 'created_by', 'created_at', 'updated_at')
    actions = ['soft_delete_policies']

    def save_model(self, request, obj, form, change):
        if not change:
            obj.created_by = request.user
        super().save_model(request, obj, form, change)

    @admin.action(description='Soft-delete selected policies')
    def soft_delete_policies(self, request, queryset):
        for policy in queryset:
            policy.soft_delete(user=request.user)


@admin.register(TicketAuditLog)
class TicketAuditLogAdmin(admin.ModelAdmin):
    list_display = ('operation', 'ticket', 'user', 'created_at')
    list_filter = ('operation', 'created_at')
    search_fields = ('ticket__id', 'user__email')
    readonly_fields = ('operation', 'ticket', 'user', 'previous_state', 'new_state', 'details', 'created_at')

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
