from django.contrib import admin
from .models import Order, OrderItem, OrderFee


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


class OrderFeeInline(admin.TabularInline):
    model = OrderFee
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'order_type', 'customer', 'status', 'total_cost', 'revenue', 'created_at']
    list_filter = ['order_type', 'status']
    search_fields = ['order_number', 'customer__name', 'batch_number']
    inlines = [OrderItemInline, OrderFeeInline]
