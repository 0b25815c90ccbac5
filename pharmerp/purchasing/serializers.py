from decimal import Decimal

from rest_framework import serializers
from pharmerp.catalog.models import Product
from pharmerp.locations.models import Warehouse
from pharmerp.parties.models import Supplier
from pharmerp.sales.models import PAYMENT_METHOD_CHOICES
from .models import PurchaseOrder, PurchaseOrderItem, PurchaseReceipt, SupplierPayment

MONEY_MIN = Decimal('0.00')


class PurchaseOrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    outstanding_quantity = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = PurchaseOrderItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'quantity', 'unit_price', 'total',
                  'received_quantity', 'outstanding_quantity', 'batch_number', 'expiry_date']


class PurchaseReceiptSerializer(serializers.ModelSerializer):
    journal_entry_number = serializers.CharField(source='journal_entry.entry_number', read_only=True, allow_null=True)

    class Meta:
        model = PurchaseReceipt
        fields = ['id', 'receipt_number', 'purchase_order', 'receipt_date', 'goods_value', 'transportation_cost',
                  'amount', 'lines', 'notes', 'journal_entry', 'journal_entry_number', 'created_at']


class SupplierPaymentSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    po_number = serializers.CharField(source='purchase_order.po_number', read_only=True)
    journal_entry_number = serializers.CharField(source='journal_entry.entry_number', read_only=True, allow_null=True)

    class Meta:
        model = SupplierPayment
        fields = ['id', 'payment_number', 'purchase_order', 'po_number', 'supplier', 'supplier_name', 'amount',
                  'payment_date', 'payment_method', 'reference', 'notes', 'journal_entry', 'journal_entry_number',
                  'created_at']


class PurchaseOrderListSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    outstanding_payable = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = PurchaseOrder
        fields = ['id', 'po_number', 'supplier', 'supplier_name', 'order_date', 'expected_delivery_date', 'status',
                  'total_amount', 'received_amount', 'amount_paid', 'outstanding_payable', 'payment_status',
                  'created_at']


class PurchaseOrderSerializer(serializers.ModelSerializer):
    items = PurchaseOrderItemSerializer(many=True, read_only=True)
    receipts = PurchaseReceiptSerializer(many=True, read_only=True)
    payments = SupplierPaymentSerializer(many=True, read_only=True)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)
    user_name = serializers.CharField(source='user.username', read_only=True, allow_null=True)
    outstanding_payable = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = PurchaseOrder
        fields = [
            'id', 'po_number', 'supplier', 'supplier_name', 'user', 'user_name', 'warehouse', 'warehouse_name',
            'order_date', 'expected_delivery_date', 'status', 'subtotal', 'transportation_type',
            'transportation_cost', 'total_amount', 'received_amount', 'amount_paid', 'outstanding_payable',
            'payment_status', 'notes', 'items', 'receipts', 'payments', 'created_at', 'updated_at'
        ]


class PurchaseOrderItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=MONEY_MIN, required=False,
                                          allow_null=True)
    batch_number = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    expiry_date = serializers.DateField(required=False, allow_null=True)


class PurchaseOrderWriteSerializer(serializers.Serializer):
    supplier = serializers.PrimaryKeyRelatedField(queryset=Supplier.objects.filter(is_active=True))
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.filter(is_active=True))
    order_date = serializers.DateField(required=False)
    expected_delivery_date = serializers.DateField(required=False, allow_null=True)
    transportation_type = serializers.ChoiceField(choices=PurchaseOrder.TRANSPORTATION_CHOICES, default='none')
    transportation_cost = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=MONEY_MIN,
                                                   default=MONEY_MIN)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=['draft', 'pending'], default='draft')
    items = PurchaseOrderItemInputSerializer(many=True, allow_empty=False)

    def validate(self, data):
        expected = data.get('expected_delivery_date')
        order_date = data.get('order_date')
        if expected and order_date and expected < order_date:
            raise serializers.ValidationError({'expected_delivery_date': 'Cannot be before the order date.'})
        return data


class ReceiveLineSerializer(serializers.Serializer):
    item = serializers.PrimaryKeyRelatedField(queryset=PurchaseOrderItem.objects.all())
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    batch_number = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    expiry_date = serializers.DateField(required=False, allow_null=True)


class ReceiveSerializer(serializers.Serializer):
    lines = ReceiveLineSerializer(many=True, allow_empty=False)
    receipt_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class SupplierPaymentCreateSerializer(serializers.Serializer):
    purchase_order = serializers.PrimaryKeyRelatedField(queryset=PurchaseOrder.objects.all())
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    payment_date = serializers.DateField(required=False)
    payment_method = serializers.ChoiceField(choices=PAYMENT_METHOD_CHOICES, default='bank_transfer')
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
