from rest_framework import serializers
from pharmerp.core.preferences import get_expiry_warning_days
from .models import ProductCategory, Product
from .utils import stock_status, expiry_status, days_until_expiry


class ProductCategorySerializer(serializers.ModelSerializer):
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = ProductCategory
        fields = ['id', 'name', 'description', 'product_count', 'created_at', 'updated_at']

    def get_product_count(self, obj):
        annotated = getattr(obj, 'product_count', None)
        if annotated is not None:
            return annotated
        return obj.products.count()


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    stock_status = serializers.SerializerMethodField()
    expiry_status = serializers.SerializerMethodField()
    days_until_expiry = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ['id', 'name', 'drug_name', 'category', 'category_name', 'description', 'sku', 'barcode',
                  'cost_price', 'selling_price', 'quantity', 'unit_of_measure', 'low_stock_threshold',
                  'expiry_date', 'status', 'product_type', 'manufacturer', 'location', 'shelf', 'grade',
                  'stock_status', 'expiry_status', 'days_until_expiry', 'created_at', 'updated_at']
        # Quantity only moves through inventory transactions
        read_only_fields = ['quantity', 'created_at', 'updated_at']

    def get_stock_status(self, obj):
        return stock_status(obj.quantity, obj.low_stock_threshold)

    def get_expiry_status(self, obj):
        warning_days = self.context.get('expiry_warning_days')
        if warning_days is None:
            warning_days = get_expiry_warning_days()
            self.context['expiry_warning_days'] = warning_days
        return expiry_status(obj.expiry_date, warning_days)

    def get_days_until_expiry(self, obj):
        return days_until_expiry(obj.expiry_date)

    def validate_cost_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Cost price cannot be negative.')
        return value

    def validate_selling_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Selling price cannot be negative.')
        return value

    def validate_low_stock_threshold(self, value):
        if value < 0:
            raise serializers.ValidationError('Low stock threshold cannot be negative.')
        return value

    def validate_sku(self, value):
        return value.strip().upper()
