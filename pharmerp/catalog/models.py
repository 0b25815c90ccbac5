from django.db import models
from decimal import Decimal


class ProductCategory(models.Model):
    """Product categories"""
    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'product_categories'
        verbose_name_plural = 'product categories'
        ordering = ['name']


class Product(models.Model):
    """Product master"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('expired', 'Expired'),
        ('out_of_stock', 'Out of Stock'),
    ]
    PRODUCT_TYPE_CHOICES = [
        ('raw', 'Raw Material'),
        ('semi-raw', 'Semi-Raw Material'),
        ('finished', 'Finished Product'),
    ]
    GRADE_CHOICES = [
        ('P', 'Pharmaceutical'),
        ('F', 'Food'),
        ('T', 'Technical'),
    ]

    name = models.CharField(max_length=200, db_index=True)
    drug_name = models.CharField(max_length=200, blank=True)
    category = models.ForeignKey(ProductCategory, on_delete=models.PROTECT, null=True, blank=True, related_name='products')
    description = models.TextField(blank=True)
    sku = models.CharField(max_length=100, unique=True)
    barcode = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    selling_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'),
                                   help_text="On-hand quantity across all warehouses")
    unit_of_measure = models.CharField(max_length=20, default='PCS')
    low_stock_threshold = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('10.00'))
    expiry_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    product_type = models.CharField(max_length=20, choices=PRODUCT_TYPE_CHOICES, default='finished')
    manufacturer = models.CharField(max_length=200, blank=True)
    location = models.CharField(max_length=100, blank=True)
    shelf = models.CharField(max_length=50, blank=True)
    grade = models.CharField(max_length=1, choices=GRADE_CHOICES, default='P')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.sku})"

    @property
    def stock_value(self):
        return self.quantity * self.cost_price

    class Meta:
        db_table = 'products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['status'], name='idx_product_status'),
            models.Index(fields=['expiry_date'], name='idx_product_expiry'),
            models.Index(fields=['product_type'], name='idx_product_type'),
        ]
