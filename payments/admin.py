from django.contrib import admin

from .models import Payment, Refund


class RefundInline(admin.TabularInline):
    model = Refund
    extra = 0
    fields = ('amount', 'status', 'ticket', 'reason', 'created_at')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'order', 'payment_method', 'status', 'amount', 'refunded_total', 'paid_at')
    list_filter = ('status', 'payment_method')
    search_fields = ('order__order_number', 'transaction_reference')
    readonly_fields = ('refunded_total', 'created_at', 'updated_at')
    inlines = [RefundInline]


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = ('id', 'payment', 'ticket', 'amount', 'status', 'processed_at', 'created_at')
    list_filter = ('status',)
    search_fields = ('payment__order__order_number', 'reason')
    # Amount and payment are fixed once recorded; status moves via Refund.transition_to
    readonly_fields = (
        'payment', 'ticket', 'amount', 'status', 'requested_by',
        'processed_by', 'processed_at', 'created_at', 'updated_at'
    )
    actions = ['approve_refunds', 'reject_refunds']

    @admin.action(description='Approve selected refunds')
    def approve_refunds(self, request, queryset):
        for refund in queryset:
            refund.transition_to('approved', processed_by=request.user)

    @admin.action(description='Reject selected refunds')
    def reject_refunds(self, request, queryset):
        for refund in queryset:
            refund.transition_to('rejected', processed_by=request.user)
