from django.contrib import admin
from .models import PurchaseOrder, PurchaseOrderItem, PurchaseReceipt, SupplierPayment


class PurchaseOrderItemInline(admin.TabularInline):
    model = PurchaseOrderItem
    extra = 0
    fields = ['product', 'quantity', 'unit_price', 'total', 'received_quantity', 'batch_number', 'expiry_date']


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    list_display = ['po_number', 'supplier', 'order_date', 'status', 'total_amount', 'received_amount',
                    'amount_paid', 'payment_status']
    list_filter = ['status', 'payment_status', 'order_date']
    search_fields = ['po_number', 'supplier__name', 'notes']
    ordering = ['-order_date', '-id']
    inlines = [PurchaseOrderItemInline]
    readonly_fields = ['created_at', 'updated_at']


@admin.register(PurchaseReceipt)
class PurchaseReceiptAdmin(admin.ModelAdmin):
    list_display = ['receipt_number', 'purchase_order', 'receipt_date', 'amount']
    search_fields = ['receipt_number', 'purchase_order__po_number']


@admin.register(SupplierPayment)
class SupplierPaymentAdmin(admin.ModelAdmin):
    list_display = ['payment_number', 'supplier', 'purchase_order', 'amount', 'payment_date', 'payment_method']
    list_filter = ['payment_method']
    search_fields = ['payment_number', 'supplier__name', 'reference']
