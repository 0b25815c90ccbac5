from django.contrib import admin
from .models import WarehouseStock, Batch, InventoryTransaction, StockAdjustment


@admin.register(WarehouseStock)
class WarehouseStockAdmin(admin.ModelAdmin):
    list_display = ['product', 'warehouse', 'quantity', 'reserved_quantity', 'updated_at']
    list_filter = ['warehouse']
    search_fields = ['product__name', 'product__sku']
    readonly_fields = ['quantity', 'updated_at']


@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    list_display = ['batch_number', 'product', 'warehouse', 'expiry_date', 'quantity', 'remaining_quantity', 'status']
    list_filter = ['status', 'warehouse']
    search_fields = ['batch_number', 'product__name', 'product__sku']
    date_hierarchy = 'expiry_date'


@admin.register(InventoryTransaction)
class InventoryTransactionAdmin(admin.ModelAdmin):
    list_display = ['product', 'warehouse', 'transaction_type', 'quantity', 'reference_type', 'reference_id', 'user', 'created_at']
    list_filter = ['transaction_type', 'warehouse', 'created_at']
    search_fields = ['product__name', 'product__sku', 'reference_id']
    ordering = ['-created_at']


@admin.register(StockAdjustment)
class StockAdjustmentAdmin(admin.ModelAdmin):
    list_display = ['adjustment_number', 'product', 'warehouse', 'adjustment_type', 'previous_quantity',
                    'adjusted_quantity', 'difference', 'reason', 'adjusted_by', 'created_at']
    list_filter = ['adjustment_type', 'reason', 'created_at']
    search_fields = ['adjustment_number', 'product__name']
