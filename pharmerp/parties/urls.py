from django.urls import path
from .views import (
    customer_list_create, customer_detail, customer_profile, customer_statement,
    supplier_list_create, supplier_detail, supplier_profile,
)

urlpatterns = [
    # Customer endpoints
    path('customers/', customer_list_create, name='customer-list-create'),
    path('customers/<int:pk>/', customer_detail, name='customer-detail'),
    path('customers/<int:pk>/profile/', customer_profile, name='customer-profile'),
    path('customers/<int:pk>/statement/', customer_statement, name='customer-statement'),

    # Supplier endpoints
    path('suppliers/', supplier_list_create, name='supplier-list-create'),
    path('suppliers/<int:pk>/', supplier_detail, name='supplier-detail'),
    path('suppliers/<int:pk>/profile/', supplier_profile, name='supplier-profile'),
]
