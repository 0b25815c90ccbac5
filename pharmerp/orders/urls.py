from django.urls import path
from .views import order_list_create, order_detail, order_status, order_profit_margin, order_summary

urlpatterns = [
    path('orders/', order_list_create, name='order-list-create'),
    path('orders/summary/', order_summary, name='order-summary'),
    path('orders/<int:pk>/', order_detail, name='order-detail'),
    path('orders/<int:pk>/status/', order_status, name='order-status'),
    path('orders/<int:pk>/profit-margin/', order_profit_margin, name='order-profit-margin'),
]
