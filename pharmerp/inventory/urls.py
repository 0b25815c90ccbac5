from django.urls import path
from .views import (
    stock_list,
    batch_list_create, batch_detail,
    transaction_list,
    adjustment_list_create, transfer_create,
    inventory_summary, warehouse_breakdown,
)

urlpatterns = [
    # Stock endpoints
    path('inventory/stock/', stock_list, name='stock-list'),
    path('inventory/summary/', inventory_summary, name='inventory-summary'),
    path('inventory/warehouse-breakdown/', warehouse_breakdown, name='inventory-warehouse-breakdown'),

    # Batch endpoints
    path('inventory/batches/', batch_list_create, name='batch-list-create'),
    path('inventory/batches/<int:pk>/', batch_detail, name='batch-detail'),

    # Movements
    path('inventory/transactions/', transaction_list, name='inventory-transaction-list'),
    path('inventory/adjustments/', adjustment_list_create, name='stock-adjustment-list-create'),
    path('inventory/transfers/', transfer_create, name='stock-transfer-create'),
]
