from django.contrib import admin
from .models import Account, JournalEntry, JournalEntryLine, AccountingPeriod


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'account_type', 'subtype', 'balance', 'is_active']
    list_filter = ['account_type', 'is_active']
    search_fields = ['code', 'name']
    readonly_fields = ['balance']


class JournalEntryLineInline(admin.TabularInline):
    model = JournalEntryLine
    extra = 0
    readonly_fields = ['account', 'description', 'debit', 'credit', 'position']
    can_delete = False


@admin.register(JournalEntry)
class JournalEntryAdmin(admin.ModelAdmin):
    list_display = ['entry_number', 'entry_date', 'status', 'total_debit', 'source_type', 'source_id', 'user']
    list_filter = ['status', 'source_type', 'entry_date']
    search_fields = ['entry_number', 'reference', 'memo']
    readonly_fields = ['entry_number', 'total_debit', 'total_credit', 'posted_at']
    inlines = [JournalEntryLineInline]


@admin.register(AccountingPeriod)
class AccountingPeriodAdmin(admin.ModelAdmin):
    list_display = ['name', 'start_date', 'end_date', 'status', 'closed_at']
    list_filter = ['status']
