from django.contrib import admin
from .models import Invoice, InvoiceItem, CustomerPayment, PaymentAllocation, Refund, Quotation, QuotationItem


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    readonly_fields = ['product', 'quantity', 'unit_price', 'unit_cost', 'discount', 'total', 'refunded_quantity']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'customer', 'invoice_date', 'grand_total', 'amount_paid', 'payment_status']
    list_filter = ['payment_status', 'invoice_date']
    search_fields = ['invoice_number', 'customer__name']
    inlines = [InvoiceItemInline]


class PaymentAllocationInline(admin.TabularInline):
    model = PaymentAllocation
    extra = 0


@admin.register(CustomerPayment)
class CustomerPaymentAdmin(admin.ModelAdmin):
    list_display = ['payment_number', 'customer', 'amount', 'payment_date', 'payment_method', 'status']
    list_filter = ['payment_method', 'status']
    search_fields = ['payment_number', 'customer__name', 'reference']
    inlines = [PaymentAllocationInline]


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = ['refund_number', 'invoice', 'amount', 'cash_amount', 'refund_date']
    search_fields = ['refund_number', 'invoice__invoice_number']


class QuotationItemInline(admin.TabularInline):
    model = QuotationItem
    extra = 0


@admin.register(Quotation)
class QuotationAdmin(admin.ModelAdmin):
    list_display = ['quotation_number', 'customer', 'issue_date', 'valid_until', 'grand_total', 'status']
    list_filter = ['status']
    search_fields = ['quotation_number', 'customer__name']
    inlines = [QuotationItemInline]
