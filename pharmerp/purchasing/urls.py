from django.urls import path
from .views import (
    purchase_order_list_create, purchase_order_detail, purchase_order_approve, purchase_order_cancel,
    purchase_order_receive, supplier_payment_list_create, supplier_payment_detail,
)

urlpatterns = [
    # Purchase orders
    path('purchase-orders/', purchase_order_list_create, name='purchase-order-list-create'),
    path('purchase-orders/<int:pk>/', purchase_order_detail, name='purchase-order-detail'),
    path('purchase-orders/<int:pk>/approve/', purchase_order_approve, name='purchase-order-approve'),
    path('purchase-orders/<int:pk>/cancel/', purchase_order_cancel, name='purchase-order-cancel'),
    path('purchase-orders/<int:pk>/receive/', purchase_order_receive, name='purchase-order-receive'),

    # Supplier payments
    path('supplier-payments/', supplier_payment_list_create, name='supplier-payment-list-create'),
    path('supplier-payments/<int:pk>/', supplier_payment_detail, name='supplier-payment-detail'),
]
