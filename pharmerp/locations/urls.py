from django.urls import path
from .views import (
    warehouse_list_create, warehouse_detail, warehouse_stock,
    location_list_create, location_detail,
)

urlpatterns = [
    # Warehouse endpoints
    path('warehouses/', warehouse_list_create, name='warehouse-list-create'),
    path('warehouses/<int:pk>/', warehouse_detail, name='warehouse-detail'),
    path('warehouses/<int:pk>/stock/', warehouse_stock, name='warehouse-stock'),

    # Storage location endpoints
    path('warehouse-locations/', location_list_create, name='warehouse-location-list-create'),
    path('warehouse-locations/<int:pk>/', location_detail, name='warehouse-location-detail'),
]
