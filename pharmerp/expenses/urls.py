from django.urls import path
from .views import (
    expense_list_create, expense_detail, expense_approve, expense_reject,
    category_list_create, category_detail,
)

urlpatterns = [
    path('expenses/', expense_list_create, name='expense-list-create'),
    path('expenses/categories/', category_list_create, name='expense-category-list-create'),
    path('expenses/categories/<int:pk>/', category_detail, name='expense-category-detail'),
    path('expenses/<int:pk>/', expense_detail, name='expense-detail'),
    path('expenses/<int:pk>/approve/', expense_approve, name='expense-approve'),
    path('expenses/<int:pk>/reject/', expense_reject, name='expense-reject'),
]
