from rest_framework import serializers
from .models import Customer, Supplier


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = [
            'id', 'name', 'email', 'phone', 'address', 'city', 'state', 'zip_code', 'company',
            'position', 'sector', 'tax_number', 'credit_limit', 'total_purchases', 'is_active',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['total_purchases', 'created_at', 'updated_at']

    def validate_credit_limit(self, value):
        if value < 0:
            raise serializers.ValidationError('Credit limit cannot be negative.')
        return value


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = [
            'id', 'name', 'contact_person', 'email', 'phone', 'address', 'city', 'state', 'zip_code',
            'materials', 'supplier_type', 'eta_number', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_at', 'updated_at']
