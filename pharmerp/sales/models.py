from django.db import models
from django.utils import timezone
from decimal import Decimal
from pharmerp.catalog.models import Product
from pharmerp.parties.models import Customer
from pharmerp.locations.models import Warehouse
from pharmerp.core.models import User

ZERO = Decimal('0.00')

PAYMENT_METHOD_CHOICES = [
    ('cash', 'Cash'),
    ('cheque', 'Cheque'),
    ('bank_transfer', 'Bank Transfer'),
    ('credit_card', 'Credit Card'),
    ('other', 'Other'),
]


class Quotation(models.Model):
    """Price quotations sent to customers"""
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('expired', 'Expired'),
        ('converted', 'Converted'),
    ]

    quotation_number = models.CharField(max_length=50, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='quotations')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='quotations')
    issue_date = models.DateField(default=timezone.localdate)
    valid_until = models.DateField(null=True, blank=True)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    packaging_total = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    transportation_fees = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('14.00'))
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    grand_total = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')
    notes = models.TextField(blank=True)
    terms_and_conditions = models.TextField(blank=True)
    converted_invoice = models.OneToOneField('Invoice', on_delete=models.SET_NULL, null=True, blank=True,
                                             related_name='converted_from')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.quotation_number

    @property
    def is_expired(self):
        return bool(self.valid_until and self.valid_until < timezone.localdate())

    class Meta:
        db_table = 'quotations'
        ordering = ['-issue_date', '-id']


class QuotationItem(models.Model):
    quotation = models.ForeignKey(Quotation, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='quotation_items')
    description = models.CharField(max_length=255, blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        db_table = 'quotation_items'
        ordering = ['id']


class QuotationPackagingItem(models.Model):
    """Containers, labels and other packaging quoted alongside the products"""
    TYPE_CHOICES = [
        ('container', 'Container'),
        ('label', 'Label'),
        ('box', 'Box'),
        ('other', 'Other'),
    ]

    quotation = models.ForeignKey(Quotation, on_delete=models.CASCADE, related_name='packaging_items')
    item_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='container')
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=14, decimal_places=2)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = 'quotation_packaging_items'
        ordering = ['id']


class Invoice(models.Model):
    """Sales invoices"""
    PAYMENT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('partial', 'Partially Paid'),
        ('paid', 'Paid'),
        ('refunded', 'Refunded'),
        ('void', 'Void'),
    ]
    INVOICE_PAYMENT_METHOD_CHOICES = PAYMENT_METHOD_CHOICES + [('credit', 'On Account')]

    invoice_number = models.CharField(max_length=50, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='invoices')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices')
    quotation = models.ForeignKey(Quotation, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices')
    invoice_date = models.DateField(default=timezone.localdate, db_index=True)
    due_date = models.DateField(null=True, blank=True)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    additional_charges = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO,
                                             help_text="Packaging and transportation carried over from a quotation")
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('14.00'))
    tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    grand_total = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    refunded_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    payment_method = models.CharField(max_length=20, choices=INVOICE_PAYMENT_METHOD_CHOICES, default='credit')
    payment_terms = models.PositiveIntegerField(default=0, help_text="Days until payment is due")
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='pending', db_index=True)
    notes = models.TextField(blank=True)
    journal_entry = models.ForeignKey('accounting.JournalEntry', on_delete=models.SET_NULL, null=True, blank=True,
                                      related_name='invoices')
    voided_at = models.DateTimeField(null=True, blank=True)
    voided_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='voided_invoices')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.invoice_number

    @property
    def net_total(self):
        return self.grand_total - self.refunded_amount

    @property
    def balance_due(self):
        if self.payment_status == 'void':
            return ZERO
        return max(self.net_total - self.amount_paid, ZERO)

    @property
    def is_overdue(self):
        return bool(
            self.due_date
            and self.due_date < timezone.localdate()
            and self.payment_status in ('pending', 'partial')
        )

    def refresh_payment_status(self):
        """Derive payment_status from paid and refunded amounts (void is terminal)"""
        if self.payment_status == 'void':
            return self.payment_status
        if self.grand_total > 0 and self.refunded_amount >= self.grand_total:
            self.payment_status = 'refunded'
        elif self.amount_paid >= self.net_total:
            self.payment_status = 'paid'
        elif self.amount_paid > 0:
            self.payment_status = 'partial'
        else:
            self.payment_status = 'pending'
        return self.payment_status

    class Meta:
        db_table = 'invoices'
        ordering = ['-invoice_date', '-id']
        indexes = [
            models.Index(fields=['customer', 'payment_status'], name='idx_invoice_customer_payment'),
        ]


class InvoiceItem(models.Model):
    """Invoice lines. unit_cost is the product cost at the time of sale."""
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='invoice_items')
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=14, decimal_places=2)
    refunded_quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    @property
    def refundable_quantity(self):
        return self.quantity - self.refunded_quantity

    class Meta:
        db_table = 'invoice_items'
        ordering = ['id']
        indexes = [
            models.Index(fields=['invoice', 'product'], name='idx_invitem_inv_product'),
        ]


class CustomerPayment(models.Model):
    """Money received from a customer, applied to one or more invoices"""
    STATUS_CHOICES = [
        ('completed', 'Completed'),
        ('void', 'Void'),
    ]

    payment_number = models.CharField(max_length=50, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    payment_date = models.DateField(default=timezone.localdate)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cash')
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='completed')
    journal_entry = models.ForeignKey('accounting.JournalEntry', on_delete=models.SET_NULL, null=True, blank=True,
                                      related_name='customer_payments')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='customer_payments')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.payment_number

    @property
    def allocated_amount(self):
        return sum((a.amount for a in self.allocations.all()), ZERO)

    @property
    def unapplied_amount(self):
        return self.amount - self.allocated_amount

    class Meta:
        db_table = 'customer_payments'
        ordering = ['-payment_date', '-id']


class PaymentAllocation(models.Model):
    payment = models.ForeignKey(CustomerPayment, on_delete=models.CASCADE, related_name='allocations')
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='allocations')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'payment_allocations'
        ordering = ['id']


class Refund(models.Model):
    """
    Refund against an invoice.

    receivable_amount is the part that cancelled an open balance; cash_amount
    is the part paid back to the customer.
    """
    refund_number = models.CharField(max_length=50, unique=True)
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='refunds')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    receivable_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    cash_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cash')
    reason = models.TextField()
    refund_date = models.DateField(default=timezone.localdate)
    notes = models.TextField(blank=True)
    journal_entry = models.ForeignKey('accounting.JournalEntry', on_delete=models.SET_NULL, null=True, blank=True,
                                      related_name='refunds')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='refunds')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.refund_number

    class Meta:
        db_table = 'refunds'
        ordering = ['-refund_date', '-id']


class RefundItem(models.Model):
    refund = models.ForeignKey(Refund, on_delete=models.CASCADE, related_name='items')
    invoice_item = models.ForeignKey(InvoiceItem, on_delete=models.PROTECT, related_name='refund_items')
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    restocked = models.BooleanField(default=True)

    class Meta:
        db_table = 'refund_items'
