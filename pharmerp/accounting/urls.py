from django.urls import path
from . import views

urlpatterns = [
    # Chart of accounts
    path('accounting/accounts/', views.account_list_create, name='account-list-create'),
    path('accounting/accounts/<int:pk>/', views.account_detail, name='account-detail'),
    path('accounting/seed-accounts/', views.seed_accounts, name='account-seed'),

    # Journal entries
    path('accounting/journal-entries/', views.journal_entry_list_create, name='journal-entry-list-create'),
    path('accounting/journal-entries/<int:pk>/', views.journal_entry_detail, name='journal-entry-detail'),
    path('accounting/journal-entries/<int:pk>/post/', views.journal_entry_post, name='journal-entry-post'),
    path('accounting/journal-entries/<int:pk>/reverse/', views.journal_entry_reverse, name='journal-entry-reverse'),

    # Periods
    path('accounting/periods/', views.period_list_create, name='period-list-create'),
    path('accounting/periods/<int:pk>/close/', views.period_close, name='period-close'),
    path('accounting/periods/<int:pk>/reopen/', views.period_reopen, name='period-reopen'),

    # Reports
    path('accounting/reports/trial-balance/', views.trial_balance, name='trial-balance'),
    path('accounting/reports/profit-loss/', views.profit_and_loss, name='profit-loss'),
    path('accounting/reports/balance-sheet/', views.balance_sheet, name='balance-sheet'),
    path('accounting/reports/general-ledger/<int:account_id>/', views.general_ledger, name='general-ledger'),
    path('accounting/reports/cash-flow/', views.cash_flow, name='cash-flow'),
    path('accounting/reports/receivables-aging/', views.receivables_aging, name='receivables-aging'),
    path('accounting/reports/customer-balances/', views.customer_balances, name='customer-balances'),
    path('accounting/reports/financial-summary/', views.financial_summary, name='financial-summary'),
]
