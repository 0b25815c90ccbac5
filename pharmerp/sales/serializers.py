from decimal import Decimal

from rest_framework import serializers
from pharmerp.catalog.models import Product
from pharmerp.locations.models import Warehouse
from pharmerp.parties.models import Customer
from .models import (
    Invoice, InvoiceItem, CustomerPayment, PaymentAllocation, Refund, RefundItem,
    Quotation, QuotationItem, QuotationPackagingItem, PAYMENT_METHOD_CHOICES,
)

QTY_MIN = Decimal('0.01')
MONEY_MIN = Decimal('0.00')


class InvoiceItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)

    class Meta:
        model = InvoiceItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'quantity', 'unit_price', 'unit_cost',
                  'discount', 'total', 'refunded_quantity']


class PaymentAllocationSerializer(serializers.ModelSerializer):
    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True)
    payment_number = serializers.CharField(source='payment.payment_number', read_only=True)
    payment_date = serializers.DateField(source='payment.payment_date', read_only=True)

    class Meta:
        model = PaymentAllocation
        fields = ['id', 'payment', 'payment_number', 'payment_date', 'invoice', 'invoice_number', 'amount']


class RefundItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='invoice_item.product.name', read_only=True)

    class Meta:
        model = RefundItem
        fields = ['id', 'invoice_item', 'product_name', 'quantity', 'unit_cost', 'restocked']


class RefundSerializer(serializers.ModelSerializer):
    items = RefundItemSerializer(many=True, read_only=True)
    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True)
    customer_name = serializers.CharField(source='invoice.customer.name', read_only=True)
    journal_entry_number = serializers.CharField(source='journal_entry.entry_number', read_only=True, allow_null=True)

    class Meta:
        model = Refund
        fields = ['id', 'refund_number', 'invoice', 'invoice_number', 'customer_name', 'amount', 'receivable_amount',
                  'cash_amount', 'payment_method', 'reason', 'refund_date', 'notes', 'journal_entry',
                  'journal_entry_number', 'items', 'created_at']


class InvoiceListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    balance_due = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta:
        model = Invoice
        fields = ['id', 'invoice_number', 'customer', 'customer_name', 'invoice_date', 'due_date', 'grand_total',
                  'amount_paid', 'refunded_amount', 'balance_due', 'payment_status', 'is_overdue', 'created_at']


class InvoiceSerializer(serializers.ModelSerializer):
    items = InvoiceItemSerializer(many=True, read_only=True)
    allocations = PaymentAllocationSerializer(many=True, read_only=True)
    refunds = RefundSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    user_name = serializers.CharField(source='user.username', read_only=True, allow_null=True)
    quotation_number = serializers.CharField(source='quotation.quotation_number', read_only=True, allow_null=True)
    journal_entry_number = serializers.CharField(source='journal_entry.entry_number', read_only=True, allow_null=True)
    balance_due = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'customer', 'customer_name', 'user', 'user_name', 'quotation', 'quotation_number',
            'warehouse', 'invoice_date', 'due_date', 'subtotal', 'discount_amount', 'additional_charges', 'tax_rate',
            'tax_amount', 'grand_total', 'amount_paid', 'refunded_amount', 'balance_due', 'payment_method',
            'payment_terms', 'payment_status', 'is_overdue', 'notes', 'journal_entry', 'journal_entry_number',
            'voided_at', 'items', 'allocations', 'refunds', 'created_at', 'updated_at'
        ]


class InvoiceItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=QTY_MIN)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=MONEY_MIN, required=False,
                                          allow_null=True)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=MONEY_MIN, default=MONEY_MIN)


class InvoiceCreateSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    items = InvoiceItemInputSerializer(many=True, allow_empty=False)
    invoice_date = serializers.DateField(required=False)
    payment_terms = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    discount_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=MONEY_MIN, default=MONEY_MIN)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=MONEY_MIN, max_value=Decimal('100'),
                                        required=False, allow_null=True)
    amount_paid = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=MONEY_MIN, default=MONEY_MIN)
    payment_method = serializers.ChoiceField(choices=Invoice.INVOICE_PAYMENT_METHOD_CHOICES, default='credit')
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.filter(is_active=True), required=False,
                                                   allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, data):
        if data.get('amount_paid') and data.get('payment_method') == 'credit':
            data['payment_method'] = 'cash'
        return data


class InvoiceUpdateSerializer(serializers.ModelSerializer):
    """Only descriptive fields may change after an invoice is issued"""

    class Meta:
        model = Invoice
        fields = ['due_date', 'notes']


class InvoiceVoidSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class AllocationInputSerializer(serializers.Serializer):
    invoice = serializers.PrimaryKeyRelatedField(queryset=Invoice.objects.all())
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))


class CustomerPaymentSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    allocations = PaymentAllocationSerializer(many=True, read_only=True)
    unapplied_amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    journal_entry_number = serializers.CharField(source='journal_entry.entry_number', read_only=True, allow_null=True)

    class Meta:
        model = CustomerPayment
        fields = ['id', 'payment_number', 'customer', 'customer_name', 'amount', 'payment_date', 'payment_method',
                  'reference', 'notes', 'status', 'unapplied_amount', 'allocations', 'journal_entry',
                  'journal_entry_number', 'created_at']


class CustomerPaymentCreateSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    payment_date = serializers.DateField(required=False)
    payment_method = serializers.ChoiceField(choices=PAYMENT_METHOD_CHOICES, default='cash')
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    allocations = AllocationInputSerializer(many=True, required=False)


class RefundItemInputSerializer(serializers.Serializer):
    invoice_item = serializers.PrimaryKeyRelatedField(queryset=InvoiceItem.objects.select_related('product'))
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=QTY_MIN)
    restock = serializers.BooleanField(default=True)


class RefundCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    reason = serializers.CharField()
    refund_date = serializers.DateField(required=False)
    payment_method = serializers.ChoiceField(choices=PAYMENT_METHOD_CHOICES, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    items = RefundItemInputSerializer(many=True, required=False)


# Quotations
class QuotationItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = QuotationItem
        fields = ['id', 'product', 'product_name', 'description', 'quantity', 'unit_price', 'discount', 'total']


class QuotationPackagingItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuotationPackagingItem
        fields = ['id', 'item_type', 'description', 'quantity', 'unit_price', 'total', 'notes']


class QuotationListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = Quotation
        fields = ['id', 'quotation_number', 'customer', 'customer_name', 'issue_date', 'valid_until', 'grand_total',
                  'status', 'is_expired', 'converted_invoice', 'created_at']


class QuotationSerializer(serializers.ModelSerializer):
    items = QuotationItemSerializer(many=True, read_only=True)
    packaging_items = QuotationPackagingItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    converted_invoice_number = serializers.CharField(source='converted_invoice.invoice_number', read_only=True,
                                                     allow_null=True)
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = Quotation
        fields = [
            'id', 'quotation_number', 'customer', 'customer_name', 'user', 'issue_date', 'valid_until', 'subtotal',
            'packaging_total', 'transportation_fees', 'tax_rate', 'tax_amount', 'grand_total', 'status',
            'is_expired', 'notes', 'terms_and_conditions', 'converted_invoice', 'converted_invoice_number',
            'items', 'packaging_items', 'created_at', 'updated_at'
        ]


class QuotationItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=QTY_MIN)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=MONEY_MIN, required=False,
                                          allow_null=True)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=MONEY_MIN, default=MONEY_MIN)


class PackagingItemInputSerializer(serializers.Serializer):
    item_type = serializers.ChoiceField(choices=QuotationPackagingItem.TYPE_CHOICES, default='container')
    description = serializers.CharField(max_length=255)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=QTY_MIN)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=MONEY_MIN)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class QuotationWriteSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    issue_date = serializers.DateField(required=False)
    valid_until = serializers.DateField(required=False, allow_null=True)
    transportation_fees = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=MONEY_MIN,
                                                   default=MONEY_MIN)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=MONEY_MIN, max_value=Decimal('100'),
                                        required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    terms_and_conditions = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=['draft', 'pending'], default='draft')
    items = QuotationItemInputSerializer(many=True, allow_empty=False)
    packaging_items = PackagingItemInputSerializer(many=True, required=False)


class QuotationStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['pending', 'approved', 'rejected', 'expired'])


class QuotationConvertSerializer(serializers.Serializer):
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.filter(is_active=True), required=False,
                                                   allow_null=True)
    invoice_date = serializers.DateField(required=False)
    payment_terms = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    amount_paid = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=MONEY_MIN, default=MONEY_MIN)
    payment_method = serializers.ChoiceField(choices=Invoice.INVOICE_PAYMENT_METHOD_CHOICES, default='credit')
