from django.db import models
from django.conf import settings
from decimal import Decimal


class Account(models.Model):
    """Chart of accounts entry. balance is sum(debit) - sum(credit) of posted lines."""
    TYPE_CHOICES = [
        ('Asset', 'Asset'),
        ('Liability', 'Liability'),
        ('Equity', 'Equity'),
        ('Revenue', 'Revenue'),
        ('Expense', 'Expense'),
    ]
    DEBIT_NORMAL_TYPES = ('Asset', 'Expense')

    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=200, unique=True)
    account_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    subtype = models.CharField(max_length=100, blank=True)
    description = models.TextField(blank=True)
    parent = models.ForeignKey('self', on_delete=models.PROTECT, null=True, blank=True, related_name='children')
    is_active = models.BooleanField(default=True)
    balance = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.code} - {self.name}"

    @property
    def is_debit_normal(self):
        return self.account_type in self.DEBIT_NORMAL_TYPES

    @property
    def natural_balance(self):
        """Balance expressed on the account's normal side"""
        return self.balance if self.is_debit_normal else -self.balance

    class Meta:
        db_table = 'accounts'
        ordering = ['code']


class JournalEntry(models.Model):
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('posted', 'Posted'),
        ('reversed', 'Reversed'),
    ]

    entry_number = models.CharField(max_length=50, unique=True)
    entry_date = models.DateField(db_index=True)
    reference = models.CharField(max_length=100, blank=True)
    memo = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='posted')
    total_debit = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))
    total_credit = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))
    source_type = models.CharField(max_length=50, blank=True, db_index=True)
    source_id = models.CharField(max_length=50, blank=True)
    reversal_of = models.ForeignKey('self', on_delete=models.PROTECT, null=True, blank=True, related_name='reversals')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                             related_name='journal_entries')
    posted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.entry_number} ({self.entry_date})"

    @property
    def is_balanced(self):
        return self.total_debit == self.total_credit

    class Meta:
        db_table = 'journal_entries'
        ordering = ['-entry_date', '-id']
        indexes = [
            models.Index(fields=['source_type', 'source_id'], name='idx_journal_source'),
            models.Index(fields=['status', 'entry_date'], name='idx_journal_status_date'),
        ]


class JournalEntryLine(models.Model):
    entry = models.ForeignKey(JournalEntry, on_delete=models.CASCADE, related_name='lines')
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name='lines')
    description = models.CharField(max_length=255, blank=True)
    debit = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))
    credit = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))
    position = models.PositiveIntegerField(default=0)

    def __str__(self):
        return f"{self.entry.entry_number} {self.account.code} Dr {self.debit} Cr {self.credit}"

    class Meta:
        db_table = 'journal_entry_lines'
        ordering = ['entry_id', 'position']


class AccountingPeriod(models.Model):
    STATUS_CHOICES = [
        ('open', 'Open'),
        ('closed', 'Closed'),
    ]

    name = models.CharField(max_length=100, unique=True)
    start_date = models.DateField()
    end_date = models.DateField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='open')
    closed_at = models.DateTimeField(null=True, blank=True)
    closed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name='closed_periods')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} ({self.start_date} - {self.end_date})"

    class Meta:
        db_table = 'accounting_periods'
        ordering = ['-start_date']
