from django.db import models
from django.utils import timezone
from decimal import Decimal
from pharmerp.catalog.models import Product
from pharmerp.parties.models import Supplier
from pharmerp.locations.models import Warehouse
from pharmerp.core.models import User
from pharmerp.sales.models import PAYMENT_METHOD_CHOICES

ZERO = Decimal('0.00')


class PurchaseOrder(models.Model):
    """Purchase order placed with a supplier"""
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('partially_received', 'Partially Received'),
        ('received', 'Received'),
        ('cancelled', 'Cancelled'),
    ]
    PAYMENT_STATUS_CHOICES = [
        ('unpaid', 'Unpaid'),
        ('partial', 'Partially Paid'),
        ('paid', 'Paid'),
    ]
    TRANSPORTATION_CHOICES = [
        ('none', 'None'),
        ('road', 'Road'),
        ('sea', 'Sea'),
        ('air', 'Air'),
        ('courier', 'Courier'),
    ]

    po_number = models.CharField(max_length=50, unique=True)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='purchase_orders')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='purchase_orders')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='purchase_orders')
    order_date = models.DateField(default=timezone.localdate, db_index=True)
    expected_delivery_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft', db_index=True)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    transportation_type = models.CharField(max_length=20, choices=TRANSPORTATION_CHOICES, default='none')
    transportation_cost = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    received_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO,
                                          help_text="Value of goods received, including capitalised transport")
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='unpaid')
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.po_number

    def get_subtotal(self):
        """Sum of line totals"""
        return sum((item.total for item in self.items.all()), ZERO)

    @property
    def outstanding_payable(self):
        return max(self.received_amount - self.amount_paid, ZERO)

    def refresh_payment_status(self):
        if self.amount_paid <= 0:
            self.payment_status = 'unpaid'
        elif self.amount_paid >= self.total_amount:
            self.payment_status = 'paid'
        else:
            self.payment_status = 'partial'
        return self.payment_status

    class Meta:
        db_table = 'purchase_orders'
        ordering = ['-order_date', '-id']
        indexes = [
            models.Index(fields=['supplier', 'status'], name='idx_po_supplier_status'),
        ]


class PurchaseOrderItem(models.Model):
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='purchase_order_items')
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=14, decimal_places=2)
    received_quantity = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    batch_number = models.CharField(max_length=100, blank=True)
    expiry_date = models.DateField(null=True, blank=True)

    @property
    def outstanding_quantity(self):
        return max(self.quantity - self.received_quantity, ZERO)

    class Meta:
        db_table = 'purchase_order_items'
        ordering = ['id']


class PurchaseReceipt(models.Model):
    """One delivery received against a purchase order"""
    receipt_number = models.CharField(max_length=50, unique=True)
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='receipts')
    receipt_date = models.DateField(default=timezone.localdate)
    goods_value = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    transportation_cost = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    lines = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='purchase_receipts')
    journal_entry = models.ForeignKey('accounting.JournalEntry', on_delete=models.SET_NULL, null=True, blank=True,
                                      related_name='purchase_receipts')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.receipt_number

    class Meta:
        db_table = 'purchase_receipts'
        ordering = ['-receipt_date', '-id']


class SupplierPayment(models.Model):
    payment_number = models.CharField(max_length=50, unique=True)
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.PROTECT, related_name='payments')
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    payment_date = models.DateField(default=timezone.localdate, db_index=True)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='bank_transfer')
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='supplier_payments')
    journal_entry = models.ForeignKey('accounting.JournalEntry', on_delete=models.SET_NULL, null=True, blank=True,
                                      related_name='supplier_payments')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.payment_number

    class Meta:
        db_table = 'supplier_payments'
        ordering = ['-payment_date', '-id']
