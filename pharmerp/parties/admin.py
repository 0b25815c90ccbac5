from django.contrib import admin
from .models import Customer, Supplier


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['name', 'company', 'phone', 'email', 'credit_limit', 'total_purchases', 'is_active']
    list_filter = ['is_active', 'sector']
    search_fields = ['name', 'company', 'phone', 'email', 'tax_number']


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ['name', 'contact_person', 'phone', 'supplier_type', 'is_active']
    list_filter = ['supplier_type', 'is_active']
    search_fields = ['name', 'contact_person', 'phone', 'email', 'materials']
