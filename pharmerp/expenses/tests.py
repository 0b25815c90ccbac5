"""
Test suite for Expenses module
Tests: Expense approval and posting, rejection, deletion reversal and the sync command
"""
from decimal import Decimal
from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.accounting import chart
from pharmerp.accounting.models import Account, JournalEntry
from pharmerp.expenses.models import Expense, ExpenseCategory
from pharmerp.expenses import services
from pharmerp.expenses.services import ExpenseError


def balance(code):
    return Account.objects.get(code=code).balance


class ExpenseServiceTests(TestCase):
    """Test the approval workflow and account resolution"""

    def setUp(self):
        TestDataFactory.seed_accounts()
        self.user = TestDataFactory.create_user()

    def make_expense(self, **kwargs):
        params = {'description': 'Electricity bill', 'amount': Decimal('250.00'), 'account_category': 'Utilities'}
        params.update(kwargs)
        return Expense.objects.create(user=self.user, **params)

    def test_label_maps_to_account(self):
        self.assertEqual(services.resolve_expense_account(self.make_expense()).code, chart.UTILITIES)
        self.assertEqual(services.resolve_expense_account(self.make_expense(account_category='Other')).code,
                         chart.OFFICE_EXPENSES)

    def test_category_account_wins(self):
        rent = Account.objects.get(code=chart.RENT_EXPENSE)
        category = ExpenseCategory.objects.create(name='Warehouse lease', account=rent)
        expense = self.make_expense(category=category)
        self.assertEqual(services.resolve_expense_account(expense), rent)

    def test_approve_posts_entry(self):
        expense = services.approve_expense(self.make_expense(), user=self.user)
        self.assertEqual(expense.status, 'approved')
        self.assertEqual(expense.approved_by, self.user)
        self.assertIsNotNone(expense.journal_entry)
        self.assertEqual(balance(chart.UTILITIES), Decimal('250.00'))
        self.assertEqual(balance(chart.CASH), Decimal('-250.00'))

    def test_bank_payment_method(self):
        services.approve_expense(self.make_expense(payment_method='bank_transfer'))
        self.assertEqual(balance(chart.BANK), Decimal('-250.00'))

    def test_approve_twice(self):
        expense = services.approve_expense(self.make_expense())
        with self.assertRaises(ExpenseError):
            services.approve_expense(expense)

    def test_reject(self):
        expense = services.reject_expense(self.make_expense(), reason='No receipt')
        self.assertEqual(expense.status, 'rejected')
        self.assertEqual(expense.rejection_reason, 'No receipt')
        with self.assertRaises(ExpenseError):
            services.approve_expense(expense)
        self.assertEqual(JournalEntry.objects.count(), 0)

    def test_delete_approved_reverses(self):
        expense = services.approve_expense(self.make_expense())
        entry = expense.journal_entry
        reversal = services.delete_expense(expense)

        self.assertIsNotNone(reversal)
        entry.refresh_from_db()
        self.assertEqual(entry.status, 'reversed')
        self.assertEqual(balance(chart.UTILITIES), Decimal('0.00'))
        self.assertEqual(balance(chart.CASH), Decimal('0.00'))
        self.assertFalse(Expense.objects.filter(pk=expense.pk).exists())

    def test_delete_pending_posts_nothing(self):
        self.assertIsNone(services.delete_expense(self.make_expense()))


class SyncExpensesCommandTests(TestCase):
    """Test posting approved expenses that have no journal entry"""

    def setUp(self):
        cache.clear()
        TestDataFactory.seed_accounts()
        self.expense = Expense.objects.create(description='Taxi', amount=Decimal('40.00'),
                                              account_category='Travel', status='approved')

    def test_dry_run_writes_nothing(self):
        out = StringIO()
        call_command('sync_expenses_to_accounting', '--dry-run', stdout=out)
        self.assertIn('DRY RUN', out.getvalue())
        self.assertEqual(JournalEntry.objects.count(), 0)

    def test_sync_posts_missing_entries(self):
        out = StringIO()
        call_command('sync_expenses_to_accounting', stdout=out)
        self.expense.refresh_from_db()
        self.assertIsNotNone(self.expense.journal_entry)
        self.assertEqual(balance(chart.TRAVEL_EXPENSES), Decimal('40.00'))

        out = StringIO()
        call_command('sync_expenses_to_accounting', stdout=out)
        self.assertIn('already has a journal entry', out.getvalue())
        self.assertEqual(JournalEntry.objects.count(), 1)


class ExpenseAPITests(TestCase):
    """Test expense endpoints"""

    def setUp(self):
        cache.clear()
        TestDataFactory.seed_accounts()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_and_approve(self):
        data = {'description': 'Flyers', 'amount': '120.00', 'account_category': 'Marketing'}
        response = self.client.post('/api/v1/expenses/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')

        expense_id = response.data['id']
        response = self.client.post(f'/api/v1/expenses/{expense_id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(response.data['journal_entry_number'])
        self.assertEqual(balance(chart.MARKETING_EXPENSES), Decimal('120.00'))

        response = self.client.patch(f'/api/v1/expenses/{expense_id}/', {'amount': '10'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_zero_amount_rejected(self):
        response = self.client.post('/api/v1/expenses/', {'description': 'Nothing', 'amount': '0'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reject_endpoint(self):
        expense = Expense.objects.create(description='Lunch', amount=Decimal('30'))
        response = self.client.post(f'/api/v1/expenses/{expense.id}/reject/', {'reason': 'Personal'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'rejected')

        response = self.client.get('/api/v1/expenses/?status=rejected')
        self.assertEqual(response.data['count'], 1)

    def test_category_must_use_expense_account(self):
        cash = Account.objects.get(code=chart.CASH)
        response = self.client.post('/api/v1/expenses/categories/', {'name': 'Petty', 'account': cash.id},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        rent = Account.objects.get(code=chart.RENT_EXPENSE)
        response = self.client.post('/api/v1/expenses/categories/', {'name': 'Lease', 'account': rent.id},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['account_code'], chart.RENT_EXPENSE)

    def test_category_with_expenses_cannot_be_deleted(self):
        category = ExpenseCategory.objects.create(name='Fuel')
        Expense.objects.create(description='Diesel', amount=Decimal('50'), category=category)
        response = self.client.delete(f'/api/v1/expenses/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_sales_rep_forbidden(self):
        rep = TestDataFactory.create_user(role='sales_rep')
        self.client.authenticate_user(rep)
        response = self.client.get('/api/v1/expenses/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
