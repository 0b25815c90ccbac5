from django.db import models
from decimal import Decimal
from pharmerp.catalog.models import Product
from pharmerp.locations.models import Warehouse


class WarehouseStock(models.Model):
    """On-hand and reserved quantity of a product in a warehouse"""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='stock_entries')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.CASCADE, related_name='stock_entries')
    quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    reserved_quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product.name} @ {self.warehouse.code}: {self.quantity}"

    @property
    def available_quantity(self):
        return self.quantity - self.reserved_quantity

    class Meta:
        db_table = 'warehouse_inventory'
        unique_together = [['product', 'warehouse']]
        indexes = [
            models.Index(fields=['product', 'warehouse'], name='idx_stock_product_warehouse'),
        ]


class Batch(models.Model):
    """Received lot of a product with manufacture and expiry dates"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('expired', 'Expired'),
        ('recalled', 'Recalled'),
        ('quarantine', 'Quarantine'),
    ]

    batch_number = models.CharField(max_length=100, unique=True)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='batches')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='batches', null=True, blank=True)
    supplier = models.ForeignKey('parties.Supplier', on_delete=models.SET_NULL, null=True, blank=True, related_name='batches')
    manufacture_date = models.DateField(null=True, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    remaining_quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.batch_number

    class Meta:
        db_table = 'batches'
        ordering = ['expiry_date', 'id']
        indexes = [
            models.Index(fields=['product', 'status'], name='idx_batch_product_status'),
            models.Index(fields=['expiry_date'], name='idx_batch_expiry'),
        ]


class InventoryTransaction(models.Model):
    """Signed stock movement of one product in one warehouse"""
    TRANSACTION_TYPE_CHOICES = [
        ('purchase', 'Purchase'),
        ('sale', 'Sale'),
        ('adjustment', 'Adjustment'),
        ('return', 'Return'),
        ('transfer_in', 'Transfer In'),
        ('transfer_out', 'Transfer Out'),
        ('production_consume', 'Production Consumption'),
        ('production_output', 'Production Output'),
    ]

    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='inventory_transactions')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='transactions')
    batch = models.ForeignKey(Batch, on_delete=models.SET_NULL, null=True, blank=True, related_name='transactions')
    transaction_type = models.CharField(max_length=30, choices=TRANSACTION_TYPE_CHOICES)
    quantity = models.DecimalField(max_digits=12, decimal_places=2, help_text="Positive for stock in, negative for stock out")
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    reference_type = models.CharField(max_length=50, blank=True)
    reference_id = models.CharField(max_length=50, blank=True)
    notes = models.TextField(blank=True)
    user = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='inventory_transactions')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.transaction_type} {self.quantity} x {self.product_id}"

    class Meta:
        db_table = 'inventory_transactions'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['product', '-created_at'], name='idx_invtxn_product_created'),
            models.Index(fields=['reference_type', 'reference_id'], name='idx_invtxn_reference'),
        ]


class StockAdjustment(models.Model):
    """Manual stock correction with before/after quantities"""
    ADJUSTMENT_TYPE_CHOICES = [
        ('increase', 'Increase'),
        ('decrease', 'Decrease'),
        ('recount', 'Physical Recount'),
    ]
    REASON_CHOICES = [
        ('damaged', 'Damaged'),
        ('expired', 'Expired'),
        ('found', 'Found'),
        ('theft', 'Theft'),
        ('recount', 'Physical Count'),
        ('correction', 'Correction'),
        ('other', 'Other'),
    ]

    adjustment_number = models.CharField(max_length=50, unique=True)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='adjustments')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='adjustments')
    adjustment_type = models.CharField(max_length=20, choices=ADJUSTMENT_TYPE_CHOICES)
    previous_quantity = models.DecimalField(max_digits=12, decimal_places=2)
    adjusted_quantity = models.DecimalField(max_digits=12, decimal_places=2)
    difference = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=30, choices=REASON_CHOICES)
    notes = models.TextField(blank=True)
    adjusted_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, related_name='stock_adjustments')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.adjustment_number

    class Meta:
        db_table = 'inventory_adjustments'
        ordering = ['-created_at', '-id']
