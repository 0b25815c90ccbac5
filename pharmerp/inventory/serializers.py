from decimal import Decimal
from rest_framework import serializers
from pharmerp.catalog.utils import expiry_status, days_until_expiry
from .models import WarehouseStock, Batch, InventoryTransaction, StockAdjustment


class WarehouseStockSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    sku = serializers.CharField(source='product.sku', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)
    available_quantity = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = WarehouseStock
        fields = ['id', 'product', 'product_name', 'sku', 'warehouse', 'warehouse_name', 'quantity',
                  'reserved_quantity', 'available_quantity', 'updated_at']


class BatchSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True, default=None)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True, default=None)
    expiry_status = serializers.SerializerMethodField()
    days_until_expiry = serializers.SerializerMethodField()

    class Meta:
        model = Batch
        fields = ['id', 'batch_number', 'product', 'product_name', 'warehouse', 'warehouse_name', 'supplier',
                  'supplier_name', 'manufacture_date', 'expiry_date', 'quantity', 'remaining_quantity',
                  'unit_cost', 'status', 'notes', 'expiry_status', 'days_until_expiry', 'created_at', 'updated_at']
        read_only_fields = ['quantity', 'remaining_quantity', 'created_at', 'updated_at']

    def get_expiry_status(self, obj):
        return expiry_status(obj.expiry_date)

    def get_days_until_expiry(self, obj):
        return days_until_expiry(obj.expiry_date)


class BatchReceiveSerializer(serializers.Serializer):
    """Input for receiving a new batch into stock"""
    batch_number = serializers.CharField(max_length=100)
    product = serializers.IntegerField()
    warehouse = serializers.IntegerField(required=False, allow_null=True)
    supplier = serializers.IntegerField(required=False, allow_null=True)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    unit_cost = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=Decimal('0'))
    manufacture_date = serializers.DateField(required=False, allow_null=True)
    expiry_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        manufactured, expires = attrs.get('manufacture_date'), attrs.get('expiry_date')
        if manufactured and expires and expires <= manufactured:
            raise serializers.ValidationError({'expiry_date': 'Expiry date must be after the manufacture date.'})
        if Batch.objects.filter(batch_number=attrs['batch_number']).exists():
            raise serializers.ValidationError({'batch_number': 'Batch number already exists.'})
        return attrs


class InventoryTransactionSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)
    batch_number = serializers.CharField(source='batch.batch_number', read_only=True, default=None)
    username = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = InventoryTransaction
        fields = ['id', 'product', 'product_name', 'warehouse', 'warehouse_name', 'batch', 'batch_number',
                  'transaction_type', 'quantity', 'unit_cost', 'reference_type', 'reference_id', 'notes',
                  'user', 'username', 'created_at']


class StockAdjustmentSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)
    adjusted_by_name = serializers.CharField(source='adjusted_by.username', read_only=True, default=None)

    class Meta:
        model = StockAdjustment
        fields = ['id', 'adjustment_number', 'product', 'product_name', 'warehouse', 'warehouse_name',
                  'adjustment_type', 'previous_quantity', 'adjusted_quantity', 'difference', 'reason',
                  'notes', 'adjusted_by', 'adjusted_by_name', 'created_at']


class StockAdjustmentCreateSerializer(serializers.Serializer):
    product = serializers.IntegerField()
    warehouse = serializers.IntegerField()
    adjustment_type = serializers.ChoiceField(choices=StockAdjustment.ADJUSTMENT_TYPE_CHOICES)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    reason = serializers.ChoiceField(choices=StockAdjustment.REASON_CHOICES)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class StockTransferSerializer(serializers.Serializer):
    product = serializers.IntegerField()
    from_warehouse = serializers.IntegerField()
    to_warehouse = serializers.IntegerField()
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs['from_warehouse'] == attrs['to_warehouse']:
            raise serializers.ValidationError({'to_warehouse': 'Source and destination warehouses must differ.'})
        return attrs
