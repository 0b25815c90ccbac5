from django.urls import path
from . import views

urlpatterns = [
    path('reports/dashboard/', views.dashboard_summary, name='dashboard-summary'),
    path('reports/sales-summary/', views.sales_summary, name='sales-summary'),
    path('reports/top-products/', views.top_products, name='top-products'),
    path('reports/inventory-summary/', views.inventory_summary, name='report-inventory-summary'),
    path('reports/customers/', views.customer_summary, name='customer-summary'),
    path('reports/expenses/', views.expense_summary, name='expense-summary'),
    path('reports/stock-ordering/', views.stock_ordering_report, name='stock-ordering-report'),
]
