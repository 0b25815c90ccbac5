from django.db import models
from decimal import Decimal
from pharmerp.catalog.models import Product
from pharmerp.parties.models import Customer
from pharmerp.locations.models import Warehouse
from pharmerp.core.models import User

ZERO = Decimal('0.00')


class Order(models.Model):
    """Production and refining orders that turn stocked materials into product"""
    TYPE_CHOICES = [
        ('production', 'Production'),
        ('refining', 'Refining'),
    ]
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    order_number = models.CharField(max_length=50, unique=True)
    order_type = models.CharField(max_length=20, choices=TYPE_CHOICES, db_index=True)
    customer = models.ForeignKey(Customer, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    target_product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True,
                                       related_name='output_orders')
    expected_output_quantity = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    batch_number = models.CharField(max_length=100, blank=True)
    refining_steps = models.JSONField(default=list, blank=True)
    profit_margin_percentage = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal('20.00'))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('14.00'))
    raw_materials_cost = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    packaging_cost = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    additional_fees = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    total_cost = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    selling_price = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    revenue = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    profit = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.order_number

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']


class OrderItem(models.Model):
    """Raw material or packaging consumed by an order"""
    MATERIAL_TYPE_CHOICES = [
        ('raw', 'Raw Material'),
        ('packaging', 'Packaging'),
    ]

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')
    material_type = models.CharField(max_length=20, choices=MATERIAL_TYPE_CHOICES, default='raw')
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        db_table = 'order_items'
        ordering = ['id']


class OrderFee(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='fees')
    fee_label = models.CharField(max_length=100)
    amount = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        db_table = 'order_fees'
        ordering = ['id']
