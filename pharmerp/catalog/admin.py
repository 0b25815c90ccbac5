from django.contrib import admin
from .models import ProductCategory, Product


@admin.register(ProductCategory)
class ProductCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'description', 'created_at']
    search_fields = ['name']
    ordering = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'category', 'quantity', 'low_stock_threshold', 'selling_price',
                    'expiry_date', 'status', 'product_type', 'grade']
    list_filter = ['status', 'product_type', 'grade', 'category']
    search_fields = ['name', 'drug_name', 'sku', 'barcode', 'manufacturer']
    ordering = ['name']
    readonly_fields = ['quantity', 'created_at', 'updated_at']
