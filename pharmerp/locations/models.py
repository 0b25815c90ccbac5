from django.db import models
from decimal import Decimal


class Warehouse(models.Model):
    """Warehouses holding stock"""
    name = models.CharField(max_length=200)
    code = models.CharField(max_length=50, unique=True)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    manager = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='managed_warehouses')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.code})"

    @classmethod
    def get_default(cls):
        """First active warehouse, creating the main warehouse when none exists"""
        warehouse = cls.objects.filter(is_active=True).order_by('id').first()
        if warehouse is None:
            warehouse, _ = cls.objects.get_or_create(code='MAIN', defaults={'name': 'Main Warehouse'})
        return warehouse

    class Meta:
        db_table = 'warehouses'
        ordering = ['name']


class WarehouseLocation(models.Model):
    """Storage position inside a warehouse (aisle / rack / shelf / bin)"""
    warehouse = models.ForeignKey(Warehouse, on_delete=models.CASCADE, related_name='locations')
    location_code = models.CharField(max_length=50, unique=True)
    aisle = models.CharField(max_length=20, blank=True)
    rack = models.CharField(max_length=20, blank=True)
    shelf = models.CharField(max_length=20, blank=True)
    bin = models.CharField(max_length=20, blank=True)
    max_capacity = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    temperature_controlled = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.location_code

    def save(self, *args, **kwargs):
        if not self.location_code:
            parts = [self.warehouse.code, self.aisle, self.rack, self.shelf, self.bin]
            self.location_code = '-'.join(p for p in parts if p)
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'warehouse_locations'
        ordering = ['warehouse', 'location_code']
