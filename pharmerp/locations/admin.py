from django.contrib import admin
from .models import Warehouse, WarehouseLocation


class WarehouseLocationInline(admin.TabularInline):
    model = WarehouseLocation
    extra = 0


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'manager', 'is_active', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name', 'code']
    ordering = ['name']
    inlines = [WarehouseLocationInline]


@admin.register(WarehouseLocation)
class WarehouseLocationAdmin(admin.ModelAdmin):
    list_display = ['location_code', 'warehouse', 'aisle', 'rack', 'shelf', 'bin', 'temperature_controlled', 'is_active']
    list_filter = ['warehouse', 'temperature_controlled', 'is_active']
    search_fields = ['location_code']
