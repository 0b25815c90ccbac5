from decimal import Decimal

from rest_framework import serializers
from pharmerp.catalog.models import Product
from pharmerp.locations.models import Warehouse
from pharmerp.parties.models import Customer
from .models import Order, OrderItem, OrderFee


class OrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'material_type', 'quantity', 'unit_cost', 'subtotal']


class OrderFeeSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderFee
        fields = ['id', 'fee_label', 'amount']


class OrderListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True, allow_null=True)
    target_product_name = serializers.CharField(source='target_product.name', read_only=True, allow_null=True)

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'order_type', 'customer', 'customer_name', 'target_product',
                  'target_product_name', 'status', 'total_cost', 'selling_price', 'revenue', 'profit', 'created_at']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    fees = OrderFeeSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True, allow_null=True)
    user_name = serializers.CharField(source='user.username', read_only=True, allow_null=True)
    target_product_name = serializers.CharField(source='target_product.name', read_only=True, allow_null=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True, allow_null=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'order_type', 'customer', 'customer_name', 'user', 'user_name', 'warehouse',
            'warehouse_name', 'description', 'status', 'target_product', 'target_product_name',
            'expected_output_quantity', 'batch_number', 'refining_steps', 'profit_margin_percentage', 'tax_rate',
            'raw_materials_cost', 'packaging_cost', 'additional_fees', 'total_cost', 'selling_price', 'tax_amount',
            'revenue', 'profit', 'items', 'fees', 'completed_at', 'cancelled_at', 'created_at', 'updated_at'
        ]


class OrderCreateSerializer(serializers.Serializer):
    """
    Materials, packaging and fees are passed through as given (lists or JSON
    strings); the order service parses and validates them.
    """
    order_type = serializers.ChoiceField(choices=Order.TYPE_CHOICES)
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.filter(is_active=True), required=False,
                                                   allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    materials = serializers.JSONField(required=False)
    packaging = serializers.JSONField(required=False)
    fees = serializers.JSONField(required=False)
    transportation_cost = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.00'),
                                                   required=False)
    target_product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), required=False,
                                                        allow_null=True)
    expected_output_quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'),
                                                        required=False, allow_null=True)
    batch_number = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    refining_steps = serializers.JSONField(required=False)
    profit_margin_percentage = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=Decimal('0.00'),
                                                        required=False)

    def validate_refining_steps(self, value):
        if value is not None and not isinstance(value, list):
            raise serializers.ValidationError('Refining steps must be a list.')
        return value


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)


class ProfitMarginSerializer(serializers.Serializer):
    profit_margin_percentage = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=Decimal('0.00'))
