"""
Test suite for Accounting module
Tests: Journal entry engine, reversals, periods, balance rebuild, financial statements and endpoints
"""
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.accounting import chart, statements
from pharmerp.accounting.models import Account, JournalEntry, AccountingPeriod
from pharmerp.sales import services as sales_services
from pharmerp.accounting.posting import (
    PostingError, create_journal_entry, post_draft_entry, reverse_journal_entry, rebuild_account_balances,
)


def balance(code):
    return Account.objects.get(code=code).balance


def entry(*pairs, **kwargs):
    """entry(('1000', '1000'), ('3000', '-1000')): positive amounts debit, negative credit"""
    lines = []
    for code, amount in pairs:
        amount = Decimal(amount)
        if amount > 0:
            lines.append({'account': code, 'debit': amount, 'credit': 0})
        else:
            lines.append({'account': code, 'debit': 0, 'credit': -amount})
    kwargs.setdefault('entry_date', timezone.localdate())
    return create_journal_entry(lines=lines, **kwargs)


class JournalEngineTests(TestCase):
    """Test validation and balance effects of journal entries"""

    def setUp(self):
        cache.clear()
        TestDataFactory.seed_accounts()

    def test_posted_entry_moves_balances(self):
        je = entry((chart.CASH, '1000'), ('3000', '-1000'), memo='Capital')
        self.assertEqual(je.entry_number, f"JE-{timezone.localdate():%Y%m}-0001")
        self.assertEqual(je.status, 'posted')
        self.assertTrue(je.is_balanced)
        self.assertEqual(balance(chart.CASH), Decimal('1000.00'))
        self.assertEqual(balance('3000'), Decimal('-1000.00'))
        self.assertEqual(Account.objects.get(code='3000').natural_balance, Decimal('1000.00'))

    def test_unbalanced_entry_rejected(self):
        with self.assertRaises(PostingError):
            entry((chart.CASH, '100'), ('3000', '-90'))
        self.assertEqual(JournalEntry.objects.count(), 0)

    def test_line_needs_one_side(self):
        with self.assertRaises(PostingError):
            create_journal_entry(timezone.localdate(), [
                {'account': chart.CASH, 'debit': 10, 'credit': 10},
                {'account': '3000', 'debit': 0, 'credit': 0},
            ])

    def test_single_line_rejected(self):
        with self.assertRaises(PostingError):
            create_journal_entry(timezone.localdate(), [{'account': chart.CASH, 'debit': 10}])

    def test_inactive_account_rejected(self):
        Account.objects.filter(code='2100').update(is_active=False)
        with self.assertRaises(PostingError):
            entry((chart.CASH, '10'), ('2100', '-10'))

    def test_unknown_account_rejected(self):
        with self.assertRaises(PostingError):
            entry((chart.CASH, '10'), ('9999', '-10'))

    def test_one_live_entry_per_source(self):
        entry((chart.CASH, '10'), ('3000', '-10'), source_type='expense', source_id=7)
        with self.assertRaises(PostingError):
            entry((chart.CASH, '10'), ('3000', '-10'), source_type='expense', source_id=7)

    def test_draft_does_not_touch_balances(self):
        draft = entry((chart.CASH, '100'), ('3000', '-60'), status='draft')
        self.assertEqual(draft.status, 'draft')
        self.assertEqual(balance(chart.CASH), Decimal('0.00'))
        with self.assertRaises(PostingError):
            post_draft_entry(draft)

    def test_post_balanced_draft(self):
        draft = entry((chart.CASH, '100'), ('3000', '-100'), status='draft')
        posted = post_draft_entry(draft)
        self.assertEqual(posted.status, 'posted')
        self.assertIsNotNone(posted.posted_at)
        self.assertEqual(balance(chart.CASH), Decimal('100.00'))

    def test_reversal(self):
        original = entry((chart.CASH, '250'), ('3000', '-250'))
        reversal = reverse_journal_entry(original, memo='Posted twice')

        original.refresh_from_db()
        self.assertEqual(original.status, 'reversed')
        self.assertEqual(reversal.reversal_of, original)
        self.assertEqual(reversal.source_type, 'reversal')
        self.assertEqual(balance(chart.CASH), Decimal('0.00'))
        self.assertEqual(balance('3000'), Decimal('0.00'))

        with self.assertRaises(PostingError):
            reverse_journal_entry(original)

    def test_closed_period_blocks_posting(self):
        today = timezone.localdate()
        AccountingPeriod.objects.create(name='Current', start_date=today - timedelta(days=1),
                                        end_date=today + timedelta(days=1), status='closed')
        with self.assertRaises(PostingError):
            entry((chart.CASH, '10'), ('3000', '-10'))
        entry((chart.CASH, '10'), ('3000', '-10'), entry_date=today - timedelta(days=30))

    def test_rebuild_balances(self):
        entry((chart.CASH, '500'), ('3000', '-500'))
        Account.objects.filter(code=chart.CASH).update(balance=Decimal('123.00'))

        changed = rebuild_account_balances()
        self.assertEqual([(a.code, old, new) for a, old, new in changed],
                         [(chart.CASH, Decimal('123.00'), Decimal('500.00'))])
        self.assertEqual(balance(chart.CASH), Decimal('500.00'))

        out = StringIO()
        call_command('rebuild_account_balances', stdout=out)
        self.assertIn('consistent', out.getvalue())

    def test_seed_chart_is_idempotent(self):
        self.assertEqual(len(TestDataFactory.seed_accounts()), 0)
        out = StringIO()
        call_command('seed_chart_of_accounts', stdout=out)
        self.assertEqual(Account.objects.filter(code=chart.CASH).count(), 1)


class FinancialStatementTests(TestCase):
    """Test statements built from a small set of postings"""

    def setUp(self):
        cache.clear()
        TestDataFactory.seed_accounts()
        entry((chart.CASH, '1000'), ('3000', '-1000'), memo='Capital')
        entry((chart.INVENTORY, '200'), (chart.ACCOUNTS_PAYABLE, '-200'), memo='Stock purchase')
        entry((chart.ACCOUNTS_RECEIVABLE, '114'), (chart.SALES_REVENUE, '-100'), (chart.VAT_PAYABLE, '-14'),
              (chart.COST_OF_GOODS_SOLD, '60'), (chart.INVENTORY, '-60'), memo='Sale')
        entry((chart.RENT_EXPENSE, '30'), (chart.CASH, '-30'), memo='Rent')

    def test_trial_balance(self):
        report = statements.trial_balance()
        self.assertTrue(report['is_balanced'])
        self.assertEqual(report['total_debit'], 1314.0)
        self.assertEqual(report['total_credit'], 1314.0)
        cash = next(row for row in report['accounts'] if row['code'] == chart.CASH)
        self.assertEqual(cash['debit_balance'], 970.0)

    def test_profit_and_loss(self):
        report = statements.profit_and_loss()
        self.assertEqual(report['total_revenue'], 100.0)
        self.assertEqual(report['total_cost_of_sales'], 60.0)
        self.assertEqual(report['gross_profit'], 40.0)
        self.assertEqual(report['gross_margin'], 40.0)
        self.assertEqual(report['total_operating_expenses'], 30.0)
        self.assertEqual(report['net_income'], 10.0)
        self.assertEqual(report['net_margin'], 10.0)

    def test_balance_sheet(self):
        report = statements.balance_sheet()
        self.assertTrue(report['is_balanced'])
        self.assertEqual(report['total_assets'], 1224.0)
        self.assertEqual(report['total_liabilities'], 214.0)
        self.assertEqual(report['current_earnings'], 10.0)
        self.assertEqual(report['total_equity'], 1010.0)

    def test_general_ledger(self):
        cash = Account.objects.get(code=chart.CASH)
        report = statements.general_ledger(cash)
        self.assertEqual(len(report['lines']), 2)
        self.assertEqual(report['lines'][0]['balance'], 1000.0)
        self.assertEqual(report['closing_balance'], 970.0)

    def test_cash_flow(self):
        report = statements.cash_flow()
        self.assertEqual(report['total_inflow'], 1000.0)
        self.assertEqual(report['total_outflow'], 30.0)
        self.assertEqual(report['closing_cash'], 970.0)
        self.assertEqual(report['activities'][0]['source_type'], 'manual')

    def test_financial_summary(self):
        report = statements.financial_summary()
        self.assertEqual(report['cash_balance'], 970.0)
        self.assertEqual(report['inventory_value'], 140.0)
        self.assertEqual(report['accounts_payable'], 200.0)
        self.assertEqual(report['vat_payable'], 14.0)


class ReceivablesAgingTests(TestCase):
    """Test aging buckets and as-of balances"""

    def setUp(self):
        cache.clear()
        TestDataFactory.seed_accounts()
        self.today = timezone.localdate()
        self.customer = TestDataFactory.create_customer(name='Nile Pharmacy')
        self.product = TestDataFactory.create_product(cost_price=Decimal('10.00'), selling_price=Decimal('15.00'))
        TestDataFactory.stock_product(self.product, TestDataFactory.create_warehouse(), 100)

    def sell(self, days_overdue, **kwargs):
        return sales_services.create_invoice(
            customer=self.customer,
            items=[{'product': self.product, 'quantity': Decimal('1')}],
            invoice_date=self.today - timedelta(days=days_overdue),
            payment_terms=0,
            tax_rate=Decimal('0'),
            **kwargs
        )

    def test_bucket_boundaries(self):
        expected = {
            -5: 'current', 0: 'current', 1: '1_30', 30: '1_30', 31: '31_60', 60: '31_60',
            61: '61_90', 90: '61_90', 91: 'over_90', 400: 'over_90',
        }
        for days, bucket in expected.items():
            self.assertEqual(statements._aging_bucket(days), bucket, days)

    def test_open_invoices_bucketed_and_settled_ones_left_out(self):
        for days in (0, 30, 31, 61, 91):
            self.sell(days)
        self.sell(45, amount_paid=Decimal('15'), payment_method='cash')
        sales_services.void_invoice(self.sell(10))

        aging = statements.receivables_aging()
        self.assertEqual(aging['totals'], {'current': 15.0, '1_30': 15.0, '31_60': 15.0, '61_90': 15.0,
                                           'over_90': 15.0})
        self.assertEqual(aging['total_outstanding'], 75.0)
        self.assertEqual(len(aging['customers']), 1)
        self.assertEqual(len(aging['customers'][0]['invoices']), 5)

    def test_later_payments_ignored_for_past_date(self):
        invoice = self.sell(40)
        sales_services.record_payment(self.customer, Decimal('15'), payment_date=self.today)
        invoice.refresh_from_db()
        self.assertEqual(invoice.payment_status, 'paid')

        past = statements.receivables_aging(as_of=self.today - timedelta(days=1))
        self.assertEqual(past['totals']['31_60'], 15.0)
        self.assertEqual(past['total_outstanding'], 15.0)

        current = statements.receivables_aging(as_of=self.today)
        self.assertEqual(current['total_outstanding'], 0.0)


class AccountingAPITests(TestCase):
    """Test accounting endpoints"""

    def setUp(self):
        cache.clear()
        TestDataFactory.seed_accounts()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.cash = Account.objects.get(code=chart.CASH)
        self.equity = Account.objects.get(code='3000')

    def lines(self, debit, credit=None):
        credit = debit if credit is None else credit
        return [
            {'account': self.cash.id, 'debit': debit},
            {'account': self.equity.id, 'credit': credit},
        ]

    def test_account_crud(self):
        data = {'code': '6600', 'name': 'Bank Charges', 'account_type': 'Expense', 'subtype': 'Operating Expense'}
        response = self.client.post('/api/v1/accounting/accounts/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.post('/api/v1/accounting/accounts/', dict(data, name='Other'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get('/api/v1/accounting/accounts/?type=Expense&search=charges')
        self.assertEqual(len(response.data), 1)

        account_id = Account.objects.get(code='6600').id
        response = self.client.delete(f'/api/v1/accounting/accounts/{account_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_account_with_lines_is_protected(self):
        entry((chart.CASH, '10'), ('3000', '-10'))
        response = self.client.patch(f'/api/v1/accounting/accounts/{self.cash.id}/', {'code': '1001'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(f'/api/v1/accounting/accounts/{self.cash.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_seed_endpoint(self):
        response = self.client.post('/api/v1/accounting/seed-accounts/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['created'], 0)

    def test_manual_entry_and_reversal(self):
        data = {'entry_date': timezone.localdate().isoformat(), 'memo': 'Capital', 'lines': self.lines('500')}
        response = self.client.post('/api/v1/accounting/journal-entries/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'posted')
        entry_id = response.data['id']

        response = self.client.get('/api/v1/accounting/journal-entries/?source_type=manual')
        self.assertEqual(response.data['count'], 1)

        response = self.client.delete(f'/api/v1/accounting/journal-entries/{entry_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/v1/accounting/journal-entries/{entry_id}/reverse/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['reversal_of'], entry_id)
        self.assertEqual(balance(chart.CASH), Decimal('0.00'))

    def test_unbalanced_entry_rejected(self):
        data = {'entry_date': timezone.localdate().isoformat(), 'lines': self.lines('500', '400')}
        response = self.client.post('/api/v1/accounting/journal-entries/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_draft_workflow(self):
        data = {'entry_date': timezone.localdate().isoformat(), 'status': 'draft', 'lines': self.lines('50', '40')}
        response = self.client.post('/api/v1/accounting/journal-entries/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        entry_id = response.data['id']

        response = self.client.post(f'/api/v1/accounting/journal-entries/{entry_id}/post/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.delete(f'/api/v1/accounting/journal-entries/{entry_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_period_close_and_reopen(self):
        today = timezone.localdate()
        data = {'name': 'This month', 'start_date': (today - timedelta(days=5)).isoformat(),
                'end_date': (today + timedelta(days=5)).isoformat()}
        response = self.client.post('/api/v1/accounting/periods/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        period_id = response.data['id']

        overlap = {'name': 'Overlap', 'start_date': today.isoformat(),
                   'end_date': (today + timedelta(days=40)).isoformat()}
        response = self.client.post('/api/v1/accounting/periods/', overlap, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        draft = entry((chart.CASH, '10'), ('3000', '-5'), status='draft')
        response = self.client.post(f'/api/v1/accounting/periods/{period_id}/close/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        draft.delete()

        response = self.client.post(f'/api/v1/accounting/periods/{period_id}/close/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'closed')

        data = {'entry_date': today.isoformat(), 'lines': self.lines('10')}
        response = self.client.post('/api/v1/accounting/journal-entries/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/v1/accounting/periods/{period_id}/reopen/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'open')

    def test_report_endpoints(self):
        entry((chart.CASH, '100'), ('3000', '-100'))
        for url in (
            '/api/v1/accounting/reports/trial-balance/',
            '/api/v1/accounting/reports/profit-loss/',
            '/api/v1/accounting/reports/balance-sheet/',
            f'/api/v1/accounting/reports/general-ledger/{self.cash.id}/',
            '/api/v1/accounting/reports/cash-flow/',
            '/api/v1/accounting/reports/receivables-aging/',
            '/api/v1/accounting/reports/customer-balances/',
            '/api/v1/accounting/reports/financial-summary/',
        ):
            response = self.client.get(url)
            self.assertEqual(response.status_code, status.HTTP_200_OK, url)

        response = self.client.get('/api/v1/accounting/reports/balance-sheet/?as_of=yesterday')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_sales_rep_forbidden(self):
        rep = TestDataFactory.create_user(role='sales_rep')
        self.client.authenticate_user(rep)
        response = self.client.get('/api/v1/accounting/accounts/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
