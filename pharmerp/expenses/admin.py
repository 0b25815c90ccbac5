from django.contrib import admin
from .models import Expense, ExpenseCategory


@admin.register(ExpenseCategory)
class ExpenseCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'account', 'is_active']
    search_fields = ['name']


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ['description', 'amount', 'category', 'account_category', 'expense_date', 'status']
    list_filter = ['status', 'account_category', 'payment_method']
    search_fields = ['description', 'vendor']
    readonly_fields = ['journal_entry', 'approved_by', 'approved_at', 'created_at', 'updated_at']
