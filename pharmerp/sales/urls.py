from django.urls import path
from .views import (
    invoice_list_create, invoice_detail, invoice_void, invoice_refunds, refund_list,
    payment_list_create, payment_detail,
    quotation_list_create, quotation_detail, quotation_status, quotation_convert,
)

urlpatterns = [
    # Invoice endpoints
    path('invoices/', invoice_list_create, name='invoice-list-create'),
    path('invoices/<int:pk>/', invoice_detail, name='invoice-detail'),
    path('invoices/<int:pk>/void/', invoice_void, name='invoice-void'),
    path('invoices/<int:pk>/refunds/', invoice_refunds, name='invoice-refunds'),
    path('refunds/', refund_list, name='refund-list'),

    # Customer payments
    path('payments/', payment_list_create, name='payment-list-create'),
    path('payments/<int:pk>/', payment_detail, name='payment-detail'),

    # Quotations
    path('quotations/', quotation_list_create, name='quotation-list-create'),
    path('quotations/<int:pk>/', quotation_detail, name='quotation-detail'),
    path('quotations/<int:pk>/status/', quotation_status, name='quotation-status'),
    path('quotations/<int:pk>/convert/', quotation_convert, name='quotation-convert'),
]
