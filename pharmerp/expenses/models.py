from django.db import models
from django.utils import timezone
from decimal import Decimal
from pharmerp.accounting.chart import EXPENSE_LABEL_ACCOUNTS
from pharmerp.core.models import User
from pharmerp.sales.models import PAYMENT_METHOD_CHOICES

EXPENSE_LABEL_CHOICES = [(label, label) for label in EXPENSE_LABEL_ACCOUNTS]


class ExpenseCategory(models.Model):
    """Grouping for expenses, optionally pinned to a specific expense account"""
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    account = models.ForeignKey('accounting.Account', on_delete=models.SET_NULL, null=True, blank=True,
                                related_name='expense_categories')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'expense_categories'
        ordering = ['name']
        verbose_name_plural = 'expense categories'


class Expense(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    description = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    category = models.ForeignKey(ExpenseCategory, on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name='expenses')
    account_category = models.CharField(max_length=50, choices=EXPENSE_LABEL_CHOICES, default='Other')
    expense_date = models.DateField(default=timezone.localdate, db_index=True)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cash')
    cost_center = models.CharField(max_length=100, blank=True)
    vendor = models.CharField(max_length=200, blank=True)
    receipt_path = models.CharField(max_length=500, blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='expenses')
    approved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='approved_expenses')
    approved_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)
    journal_entry = models.ForeignKey('accounting.JournalEntry', on_delete=models.SET_NULL, null=True, blank=True,
                                      related_name='expenses')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.description} ({self.amount})"

    class Meta:
        db_table = 'expenses'
        ordering = ['-expense_date', '-id']
        indexes = [
            models.Index(fields=['status', 'expense_date'], name='idx_expense_status_date'),
        ]
