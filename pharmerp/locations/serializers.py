from rest_framework import serializers
from .models import Warehouse, WarehouseLocation


class WarehouseSerializer(serializers.ModelSerializer):
    manager_name = serializers.CharField(source='manager.username', read_only=True, default=None)

    class Meta:
        model = Warehouse
        fields = ['id', 'name', 'code', 'address', 'phone', 'manager', 'manager_name', 'is_active',
                  'created_at', 'updated_at']

    def validate_code(self, value):
        return value.strip().upper()


class WarehouseLocationSerializer(serializers.ModelSerializer):
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)
    location_code = serializers.CharField(max_length=50, required=False, allow_blank=True)

    class Meta:
        model = WarehouseLocation
        fields = ['id', 'warehouse', 'warehouse_name', 'location_code', 'aisle', 'rack', 'shelf', 'bin',
                  'max_capacity', 'temperature_controlled', 'is_active', 'created_at', 'updated_at']

    def validate(self, attrs):
        code = attrs.get('location_code')
        if code:
            queryset = WarehouseLocation.objects.filter(location_code=code)
            if self.instance:
                queryset = queryset.exclude(pk=self.instance.pk)
            if queryset.exists():
                raise serializers.ValidationError({'location_code': 'Location code already exists.'})
        return attrs
