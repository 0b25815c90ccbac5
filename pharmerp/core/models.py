from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Extended user model with role and account status"""
    ROLE_CHOICES = [
        ('admin', 'Administrator'),
        ('manager', 'Manager'),
        ('accountant', 'Accountant'),
        ('sales_rep', 'Sales Representative'),
        ('inventory_manager', 'Inventory Manager'),
        ('staff', 'Staff'),
    ]
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('suspended', 'Suspended'),
    ]

    phone = models.CharField(max_length=20, blank=True, null=True)
    role = models.CharField(max_length=30, choices=ROLE_CHOICES, default='staff')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'

    @property
    def is_admin_role(self):
        return self.is_superuser or self.role == 'admin'


class UserPermission(models.Model):
    """Explicit grant or denial of a module for a single user"""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='module_permissions')
    module_name = models.CharField(max_length=50)
    access_granted = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        state = 'granted' if self.access_granted else 'denied'
        return f"{self.user.username}: {self.module_name} ({state})"

    class Meta:
        db_table = 'user_permissions'
        unique_together = [['user', 'module_name']]


class SystemPreference(models.Model):
    """Runtime business preference stored as JSON"""
    CATEGORY_CHOICES = [
        ('company', 'Company'),
        ('financial', 'Financial'),
        ('inventory', 'Inventory'),
        ('notifications', 'Notifications'),
        ('user_management', 'User Management'),
    ]
    DATA_TYPE_CHOICES = [
        ('string', 'String'),
        ('number', 'Number'),
        ('boolean', 'Boolean'),
        ('json', 'JSON'),
        ('select', 'Select'),
    ]

    key = models.CharField(max_length=100, unique=True)
    value = models.JSONField(null=True, blank=True)
    category = models.CharField(max_length=30, choices=CATEGORY_CHOICES, default='company')
    label = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    data_type = models.CharField(max_length=20, choices=DATA_TYPE_CHOICES, default='string')
    options = models.JSONField(null=True, blank=True, help_text="Allowed values for select preferences")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    class Meta:
        db_table = 'system_preferences'
        ordering = ['category', 'key']


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('login', 'Login'),
        ('login_failed', 'Login Failed'),
        ('status_change', 'Status Change'),
        ('permission_change', 'Permission Change'),
        ('stock_adjust', 'Stock Adjustment'),
        ('stock_transfer', 'Stock Transfer'),
        ('invoice_create', 'Invoice Created'),
        ('invoice_void', 'Invoice Void'),
        ('payment_add', 'Payment Added'),
        ('refund', 'Refund'),
        ('quotation_convert', 'Quotation Converted'),
        ('order_status', 'Order Status Changed'),
        ('purchase_receive', 'Purchase Received'),
        ('expense_approve', 'Expense Approved'),
        ('expense_reject', 'Expense Rejected'),
        ('journal_post', 'Journal Entry Posted'),
        ('journal_reverse', 'Journal Entry Reversed'),
        ('period_close', 'Period Closed'),
        ('period_reopen', 'Period Reopened'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., product name, invoice number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., invoice number, journal entry number)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_audit_created'),
            models.Index(fields=['action'], name='idx_audit_action'),
            models.Index(fields=['model_name'], name='idx_audit_model'),
            models.Index(fields=['object_reference'], name='idx_audit_reference'),
        ]


class DocumentSequence(models.Model):
    """Running counter behind human-readable document numbers"""
    doc_type = models.CharField(max_length=30)
    period = models.CharField(max_length=20, blank=True, default='')
    current_value = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.doc_type}:{self.period or '-'}={self.current_value}"

    class Meta:
        db_table = 'document_sequences'
        unique_together = [['doc_type', 'period']]
