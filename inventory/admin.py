from django.contrib import admin

from .models import ProductVariant, Stock, InventoryTransaction


@admin.register(ProductVariant)
class ProductVariantAdmin(admin.ModelAdmin):
    list_display = ('sku', 'name', 'color', 'size', 'is_active')
    list_filter = ('is_active',)
    search_fields = ('sku', 'name')


@admin.register(Stock)
class StockAdmin(admin.ModelAdmin):
    list_display = ('product_variant', 'quantity_on_hand', 'quantity_reserved', 'available', 'updated_at')
    search_fields = ('product_variant__sku', 'product_variant__name')
    # Quantities only move through the ledger
    readonly_fields = ('quantity_on_hand', 'quantity_reserved', 'updated_at', 'updated_by')

    @admin.display(description='Available')
    def available(self, obj):
        return obj.quantity_available


@admin.register(InventoryTransaction)
class InventoryTransactionAdmin(admin.ModelAdmin):
    list_display = (
        'created_at', 'product_variant', 'transaction_type', 'quantity',
        'balance_after', 'reference_type', 'reference_id', 'status'
    )
    list_filter = ('transaction_type', 'reference_type', 'status')
    search_fields = ('product_variant__sku', 'reference_id', 'notes')
    readonly_fields = [f.name for f in InventoryTransaction._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
