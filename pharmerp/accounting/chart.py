"""Default chart of accounts and well-known account codes"""
import logging

from django.db import transaction

from .models import Account

logger = logging.getLogger(__name__)

CASH = '1000'
BANK = '1100'
ACCOUNTS_RECEIVABLE = '1200'
INVENTORY = '1300'
ACCOUNTS_PAYABLE = '2000'
VAT_PAYABLE = '2300'
RETAINED_EARNINGS = '3100'
SALES_REVENUE = '4000'
COST_OF_GOODS_SOLD = '5000'
OFFICE_EXPENSES = '6100'
UTILITIES = '6200'
RENT_EXPENSE = '6300'
MARKETING_EXPENSES = '6400'
TRAVEL_EXPENSES = '6500'

CASH_ACCOUNT_CODES = (CASH, BANK)

DEFAULT_ACCOUNTS = [
    # Assets
    (CASH, 'Cash', 'Asset', 'Current Asset', 'Cash on hand'),
    (BANK, 'Bank Account', 'Asset', 'Current Asset', 'Primary bank account'),
    (ACCOUNTS_RECEIVABLE, 'Accounts Receivable', 'Asset', 'Current Asset', 'Money owed by customers'),
    (INVENTORY, 'Inventory', 'Asset', 'Current Asset', 'Product inventory at cost'),
    # Liabilities
    (ACCOUNTS_PAYABLE, 'Accounts Payable', 'Liability', 'Current Liability', 'Money owed to suppliers'),
    ('2100', 'Notes Payable', 'Liability', 'Current Liability', 'Short-term debt'),
    ('2200', 'Tax Payable', 'Liability', 'Current Liability', 'Taxes owed to government'),
    (VAT_PAYABLE, 'VAT Payable', 'Liability', 'Current Liability', 'VAT owed to tax authority'),
    # Equity
    ('3000', 'Owner Equity', 'Equity', 'Owner Capital', 'Owner investment in business'),
    (RETAINED_EARNINGS, 'Retained Earnings', 'Equity', 'Retained Earnings', 'Accumulated profits'),
    # Revenue
    (SALES_REVENUE, 'Sales Revenue', 'Revenue', 'Operating Revenue', 'Primary sales income'),
    ('4100', 'Service Revenue', 'Revenue', 'Operating Revenue', 'Production and refining services'),
    # Cost of sales
    (COST_OF_GOODS_SOLD, 'Cost of Goods Sold', 'Expense', 'Cost of Sales', 'Direct cost of products sold'),
    ('5100', 'Product Costs', 'Expense', 'Cost of Sales', 'Direct product costs'),
    # Operating expenses
    (OFFICE_EXPENSES, 'Office Expenses', 'Expense', 'Operating Expense', 'General office and administrative expenses'),
    (UTILITIES, 'Utilities', 'Expense', 'Operating Expense', 'Electricity, water, internet'),
    (RENT_EXPENSE, 'Rent Expense', 'Expense', 'Operating Expense', 'Office and warehouse rent'),
    (MARKETING_EXPENSES, 'Marketing Expenses', 'Expense', 'Operating Expense', 'Advertising and promotion costs'),
    (TRAVEL_EXPENSES, 'Travel Expenses', 'Expense', 'Operating Expense', 'Business travel costs'),
]

# Expense label -> account code
EXPENSE_LABEL_ACCOUNTS = {
    'Office Supplies': OFFICE_EXPENSES,
    'Utilities': UTILITIES,
    'Travel': TRAVEL_EXPENSES,
    'Marketing': MARKETING_EXPENSES,
    'Equipment': OFFICE_EXPENSES,
    'Rent': RENT_EXPENSE,
    'Insurance': OFFICE_EXPENSES,
    'Professional Services': OFFICE_EXPENSES,
    'Other': OFFICE_EXPENSES,
}

COST_OF_SALES_SUBTYPE = 'Cost of Sales'


@transaction.atomic
def seed_chart_of_accounts():
    """Create any missing default accounts. Returns the list of created accounts."""
    created = []
    for code, name, account_type, subtype, description in DEFAULT_ACCOUNTS:
        if Account.objects.filter(code=code).exists() or Account.objects.filter(name=name).exists():
            continue
        created.append(Account.objects.create(
            code=code,
            name=name,
            account_type=account_type,
            subtype=subtype,
            description=description,
        ))
    logger.info(f"Chart of accounts seeded: {len(created)} accounts created")
    return created


def cash_account_code(payment_method):
    """Cash payments settle into Cash, everything else into the bank account"""
    return CASH if (payment_method or 'cash').lower() == 'cash' else BANK
