"""
Test suite for Sales module
Tests: Invoice totals and posting, voiding, payments, refunds, quotations and sales endpoints
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.accounting import chart
from pharmerp.accounting.models import Account, JournalEntry
from pharmerp.inventory.models import Batch
from pharmerp.inventory.services import InsufficientStockError
from pharmerp.sales.models import Invoice, CustomerPayment, Quotation
from pharmerp.sales import services
from pharmerp.sales.services import SalesError, InvalidTransitionError, PaymentAllocationError


def balance(code):
    return Account.objects.get(code=code).balance


class SalesTestMixin:
    """Seeded chart, a stocked product and a customer"""

    def setUp(self):
        cache.clear()
        TestDataFactory.seed_accounts()
        self.user = TestDataFactory.create_user()
        self.warehouse = TestDataFactory.create_warehouse()
        self.customer = TestDataFactory.create_customer()
        self.product = TestDataFactory.create_product(cost_price=Decimal('10.00'), selling_price=Decimal('15.00'))
        TestDataFactory.stock_product(self.product, self.warehouse, 100)

    def make_invoice(self, quantity=2, **kwargs):
        return services.create_invoice(
            customer=self.customer,
            items=[{'product': self.product, 'quantity': Decimal(str(quantity))}],
            user=self.user,
            tax_rate=Decimal('14'),
            **kwargs
        )


class InvoiceTotalsTests(TestCase):

    def test_calculate_totals(self):
        totals = services.calculate_totals(
            [{'quantity': Decimal('2'), 'unit_price': Decimal('15'), 'discount': Decimal('0')}],
            tax_rate=Decimal('14'),
            discount_amount=Decimal('5'),
            additional_charges=Decimal('10'),
        )
        self.assertEqual(totals['subtotal'], Decimal('30.00'))
        self.assertEqual(totals['taxable'], Decimal('35.00'))
        self.assertEqual(totals['tax_amount'], Decimal('4.90'))
        self.assertEqual(totals['grand_total'], Decimal('39.90'))

    def test_discount_above_subtotal(self):
        with self.assertRaises(SalesError):
            services.calculate_totals([{'quantity': 1, 'unit_price': 10}], tax_rate=14, discount_amount=20)

    def test_line_discount_above_amount(self):
        with self.assertRaises(SalesError):
            services.line_total(1, 10, discount=15)


class InvoiceServiceTests(SalesTestMixin, TestCase):
    """Test invoice creation and voiding"""

    def test_create_invoice_posts_and_issues_stock(self):
        invoice = self.make_invoice()

        self.assertTrue(invoice.invoice_number.startswith('INV-'))
        self.assertEqual(invoice.grand_total, Decimal('34.20'))
        self.assertEqual(invoice.tax_amount, Decimal('4.20'))
        self.assertEqual(invoice.payment_status, 'pending')

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('98.00'))

        entry = invoice.journal_entry
        self.assertEqual(entry.status, 'posted')
        self.assertEqual(entry.total_debit, entry.total_credit)
        self.assertEqual(balance(chart.ACCOUNTS_RECEIVABLE), Decimal('34.20'))
        self.assertEqual(balance(chart.SALES_REVENUE), Decimal('-30.00'))
        self.assertEqual(balance(chart.VAT_PAYABLE), Decimal('-4.20'))
        self.assertEqual(balance(chart.COST_OF_GOODS_SOLD), Decimal('20.00'))
        self.assertEqual(balance(chart.INVENTORY), Decimal('-20.00'))

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.total_purchases, Decimal('34.20'))

    def test_paid_at_sale(self):
        invoice = self.make_invoice(amount_paid=Decimal('34.20'), payment_method='cash')
        self.assertEqual(invoice.payment_status, 'paid')
        self.assertEqual(invoice.balance_due, Decimal('0'))
        self.assertEqual(balance(chart.CASH), Decimal('34.20'))
        self.assertEqual(balance(chart.ACCOUNTS_RECEIVABLE), Decimal('0.00'))

    def test_insufficient_stock_creates_nothing(self):
        with self.assertRaises(InsufficientStockError):
            self.make_invoice(quantity=150)
        self.assertEqual(Invoice.objects.count(), 0)
        self.assertEqual(JournalEntry.objects.count(), 0)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('100.00'))

    def test_overpayment_rejected(self):
        with self.assertRaises(SalesError):
            self.make_invoice(amount_paid=Decimal('50'), payment_method='cash')

    def test_due_date_from_payment_terms(self):
        invoice = self.make_invoice(payment_terms=30)
        self.assertEqual(invoice.due_date, invoice.invoice_date + timedelta(days=30))

    def test_void_restores_stock_and_reverses_entry(self):
        invoice = self.make_invoice()
        services.void_invoice(invoice, user=self.user, reason='entered twice')

        invoice.refresh_from_db()
        self.assertEqual(invoice.payment_status, 'void')
        self.assertEqual(invoice.balance_due, Decimal('0'))
        self.assertEqual(invoice.journal_entry.status, 'reversed')
        self.assertEqual(balance(chart.ACCOUNTS_RECEIVABLE), Decimal('0.00'))
        self.assertEqual(balance(chart.SALES_REVENUE), Decimal('0.00'))

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('100.00'))

        with self.assertRaises(InvalidTransitionError):
            services.void_invoice(invoice)

    def test_void_returns_stock_to_batch(self):
        batched = TestDataFactory.create_product(cost_price=Decimal('10.00'), selling_price=Decimal('15.00'))
        TestDataFactory.stock_product(batched, self.warehouse, 10, batch_number='B1')
        invoice = services.create_invoice(customer=self.customer, items=[{'product': batched, 'quantity': Decimal('4')}],
                                          tax_rate=Decimal('14'))
        self.assertEqual(Batch.objects.get(batch_number='B1').remaining_quantity, Decimal('6.00'))

        services.void_invoice(invoice)

        self.assertEqual(Batch.objects.get(batch_number='B1').remaining_quantity, Decimal('10.00'))
        batched.refresh_from_db()
        self.assertEqual(batched.quantity, Decimal('10.00'))

    def test_cannot_void_paid_invoice(self):
        invoice = self.make_invoice(amount_paid=Decimal('10'), payment_method='cash')
        with self.assertRaises(SalesError):
            services.void_invoice(invoice)


class PaymentServiceTests(SalesTestMixin, TestCase):
    """Test payment recording and allocation"""

    def test_oldest_invoice_paid_first(self):
        first = self.make_invoice()
        second = self.make_invoice()

        payment = services.record_payment(self.customer, Decimal('50'), payment_method='bank_transfer', user=self.user)

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.payment_status, 'paid')
        self.assertEqual(second.payment_status, 'partial')
        self.assertEqual(second.balance_due, Decimal('18.40'))
        self.assertEqual(payment.unapplied_amount, Decimal('0.00'))
        self.assertEqual(balance(chart.BANK), Decimal('50.00'))

    def test_overpayment_stays_as_credit(self):
        self.make_invoice()
        payment = services.record_payment(self.customer, Decimal('100'))
        self.assertEqual(payment.unapplied_amount, Decimal('65.80'))
        self.assertEqual(balance(chart.ACCOUNTS_RECEIVABLE), Decimal('-65.80'))

    def test_explicit_allocation(self):
        first = self.make_invoice()
        second = self.make_invoice()
        services.record_payment(self.customer, Decimal('20'), allocations=[(second, Decimal('20'))])
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.amount_paid, Decimal('0.00'))
        self.assertEqual(second.amount_paid, Decimal('20.00'))

    def test_allocation_above_balance(self):
        invoice = self.make_invoice()
        with self.assertRaises(PaymentAllocationError):
            services.record_payment(self.customer, Decimal('40'), allocations=[(invoice, Decimal('40'))])
        self.assertEqual(CustomerPayment.objects.count(), 0)

    def test_repeated_allocations_are_summed(self):
        invoice = self.make_invoice()
        with self.assertRaises(PaymentAllocationError):
            services.record_payment(self.customer, Decimal('40'),
                                    allocations=[(invoice, Decimal('20')), (invoice, Decimal('20'))])
        self.assertEqual(CustomerPayment.objects.count(), 0)

        payment = services.record_payment(self.customer, Decimal('20'),
                                          allocations=[(invoice, Decimal('12')), (invoice, Decimal('8'))])
        self.assertEqual(payment.allocations.count(), 1)
        self.assertEqual(payment.allocations.get().amount, Decimal('20.00'))
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, Decimal('20.00'))
        self.assertEqual(invoice.balance_due, Decimal('14.20'))

    def test_allocation_to_other_customer_invoice(self):
        invoice = self.make_invoice()
        other = TestDataFactory.create_customer()
        with self.assertRaises(PaymentAllocationError):
            services.record_payment(other, Decimal('10'), allocations=[(invoice, Decimal('10'))])

    def test_non_positive_amount(self):
        with self.assertRaises(PaymentAllocationError):
            services.record_payment(self.customer, Decimal('0'))


class RefundServiceTests(SalesTestMixin, TestCase):
    """Test refunds against open and paid invoices"""

    def test_refund_on_open_invoice_reduces_receivable(self):
        invoice = self.make_invoice()
        item = invoice.items.get()

        refund = services.create_refund(invoice, Decimal('17.10'), 'damaged box',
                                        items=[{'invoice_item': item, 'quantity': Decimal('1')}], user=self.user)

        self.assertEqual(refund.receivable_amount, Decimal('17.10'))
        self.assertEqual(refund.cash_amount, Decimal('0.00'))
        invoice.refresh_from_db()
        self.assertEqual(invoice.refunded_amount, Decimal('17.10'))
        self.assertEqual(invoice.balance_due, Decimal('17.10'))
        self.assertEqual(balance(chart.ACCOUNTS_RECEIVABLE), Decimal('17.10'))
        self.assertEqual(balance(chart.VAT_PAYABLE), Decimal('-2.10'))
        self.assertEqual(balance(chart.SALES_REVENUE), Decimal('-15.00'))
        self.assertEqual(balance(chart.COST_OF_GOODS_SOLD), Decimal('10.00'))

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('99.00'))
        item.refresh_from_db()
        self.assertEqual(item.refundable_quantity, Decimal('1.00'))

    def test_full_refund_of_paid_invoice_pays_out_cash(self):
        invoice = self.make_invoice(amount_paid=Decimal('34.20'), payment_method='cash')
        refund = services.create_refund(invoice, Decimal('34.20'), 'recalled batch')

        self.assertEqual(refund.cash_amount, Decimal('34.20'))
        invoice.refresh_from_db()
        self.assertEqual(invoice.payment_status, 'refunded')
        self.assertEqual(balance(chart.CASH), Decimal('0.00'))

        with self.assertRaises(SalesError):
            services.create_refund(invoice, Decimal('1'), 'again')

    def test_refund_above_net_total(self):
        invoice = self.make_invoice()
        with self.assertRaises(SalesError):
            services.create_refund(invoice, Decimal('40'), 'too much')

    def test_refund_quantity_above_sold(self):
        invoice = self.make_invoice()
        item = invoice.items.get()
        with self.assertRaises(SalesError):
            services.create_refund(invoice, Decimal('10'), 'too many',
                                   items=[{'invoice_item': item, 'quantity': Decimal('3')}])

    def test_repeated_refund_items_are_summed(self):
        invoice = self.make_invoice()
        item = invoice.items.get()
        with self.assertRaises(SalesError):
            services.create_refund(invoice, Decimal('30'), 'duplicate lines',
                                   items=[{'invoice_item': item, 'quantity': Decimal('2')},
                                          {'invoice_item': item, 'quantity': Decimal('2')}])
        item.refresh_from_db()
        self.assertEqual(item.refunded_quantity, Decimal('0.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('98.00'))


class QuotationServiceTests(SalesTestMixin, TestCase):
    """Test quotation lifecycle and conversion"""

    def make_quotation(self, **kwargs):
        return services.create_quotation(
            customer=self.customer,
            items=[{'product': self.product, 'quantity': Decimal('2')}],
            packaging_items=[{'description': 'Drums', 'quantity': Decimal('2'), 'unit_price': Decimal('5')}],
            transportation_fees=Decimal('10'),
            tax_rate=Decimal('14'),
            user=self.user,
            **kwargs
        )

    def test_quotation_totals(self):
        quotation = self.make_quotation()
        self.assertTrue(quotation.quotation_number.startswith('QUO-'))
        self.assertEqual(quotation.subtotal, Decimal('30.00'))
        self.assertEqual(quotation.packaging_total, Decimal('10.00'))
        self.assertEqual(quotation.tax_amount, Decimal('7.00'))
        self.assertEqual(quotation.grand_total, Decimal('57.00'))

    def test_status_transitions(self):
        quotation = self.make_quotation()
        with self.assertRaises(InvalidTransitionError):
            services.change_quotation_status(quotation, 'approved')
        services.change_quotation_status(quotation, 'pending')
        services.change_quotation_status(quotation, 'approved')
        self.assertEqual(quotation.status, 'approved')

    def test_draft_cannot_be_converted(self):
        quotation = self.make_quotation()
        with self.assertRaises(InvalidTransitionError):
            services.convert_quotation(quotation)

    def test_convert_carries_charges(self):
        quotation = self.make_quotation(status='pending')
        invoice = services.convert_quotation(quotation, user=self.user)

        self.assertEqual(invoice.grand_total, Decimal('57.00'))
        self.assertEqual(invoice.additional_charges, Decimal('20.00'))
        self.assertEqual(invoice.quotation_id, quotation.id)
        quotation.refresh_from_db()
        self.assertEqual(quotation.status, 'converted')
        self.assertEqual(quotation.converted_invoice, invoice)
        self.assertEqual(balance(chart.SALES_REVENUE), Decimal('-50.00'))

        with self.assertRaises(SalesError):
            services.update_quotation(quotation, notes='late change')

    def test_expired_quotation_cannot_be_converted(self):
        today = timezone.localdate()
        quotation = self.make_quotation(status='pending', issue_date=today - timedelta(days=10),
                                        valid_until=today - timedelta(days=1))
        with self.assertRaises(SalesError):
            services.convert_quotation(quotation)

        self.assertEqual(services.expire_quotations(), 1)
        quotation.refresh_from_db()
        self.assertEqual(quotation.status, 'expired')

    def test_update_replaces_lines(self):
        quotation = self.make_quotation()
        quotation = services.update_quotation(
            quotation, items=[{'product': self.product, 'quantity': Decimal('4')}], packaging_items=[],
            transportation_fees=Decimal('0'),
        )
        self.assertEqual(quotation.subtotal, Decimal('60.00'))
        self.assertEqual(quotation.grand_total, Decimal('68.40'))
        self.assertEqual(quotation.packaging_items.count(), 0)


class SalesAPITests(SalesTestMixin, TestCase):
    """Test sales endpoints"""

    def setUp(self):
        super().setUp()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def invoice_payload(self, quantity='2', **extra):
        data = {
            'customer': self.customer.id,
            'items': [{'product': self.product.id, 'quantity': quantity}],
            'tax_rate': '14',
        }
        data.update(extra)
        return data

    def test_create_invoice(self):
        response = self.client.post('/api/v1/invoices/', self.invoice_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['grand_total']), Decimal('34.20'))
        self.assertEqual(len(response.data['items']), 1)
        self.assertIsNotNone(response.data['journal_entry_number'])

    def test_create_invoice_paid_defaults_to_cash(self):
        response = self.client.post('/api/v1/invoices/', self.invoice_payload(amount_paid='34.20'), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['payment_status'], 'paid')
        self.assertEqual(response.data['payment_method'], 'cash')

    def test_create_invoice_insufficient_stock(self):
        response = self.client.post('/api/v1/invoices/', self.invoice_payload(quantity='500'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INSUFFICIENT_STOCK')
        self.assertEqual(response.data['available'], 100.0)

    def test_create_invoice_without_items(self):
        response = self.client.post('/api/v1/invoices/', self.invoice_payload(items=[]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_and_filter_invoices(self):
        self.make_invoice()
        self.make_invoice(amount_paid=Decimal('34.20'), payment_method='cash')
        response = self.client.get('/api/v1/invoices/?payment_status=paid')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_void_endpoint(self):
        invoice = self.make_invoice()
        response = self.client.post(f'/api/v1/invoices/{invoice.id}/void/', {'reason': 'duplicate'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['payment_status'], 'void')

    def test_payment_endpoint_with_allocations(self):
        invoice = self.make_invoice()
        data = {
            'customer': self.customer.id,
            'amount': '30',
            'payment_method': 'cheque',
            'allocations': [{'invoice': invoice.id, 'amount': '20'}],
        }
        response = self.client.post('/api/v1/payments/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['unapplied_amount']), Decimal('10.00'))
        invoice.refresh_from_db()
        self.assertEqual(invoice.payment_status, 'partial')

    def test_refund_endpoint(self):
        invoice = self.make_invoice()
        item = invoice.items.get()
        data = {
            'amount': '17.10',
            'reason': 'customer return',
            'items': [{'invoice_item': item.id, 'quantity': '1', 'restock': False}],
        }
        response = self.client.post(f'/api/v1/invoices/{invoice.id}/refunds/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data['items'][0]['restocked'])
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('98.00'))

        response = self.client.get('/api/v1/refunds/')
        self.assertEqual(response.data['count'], 1)

    def test_quotation_flow(self):
        data = {
            'customer': self.customer.id,
            'items': [{'product': self.product.id, 'quantity': '3'}],
            'tax_rate': '14',
        }
        response = self.client.post('/api/v1/quotations/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        quotation_id = response.data['id']

        response = self.client.patch(f'/api/v1/quotations/{quotation_id}/status/', {'status': 'approved'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INVALID_TRANSITION')
        self.assertEqual(response.data['current_status'], 'draft')

        self.client.patch(f'/api/v1/quotations/{quotation_id}/status/', {'status': 'pending'}, format='json')
        response = self.client.post(f'/api/v1/quotations/{quotation_id}/convert/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['grand_total']), Decimal('51.30'))
        self.assertEqual(Quotation.objects.get(pk=quotation_id).status, 'converted')

    def test_only_draft_quotation_deleted(self):
        quotation = services.create_quotation(self.customer, [{'product': self.product, 'quantity': 1}],
                                              status='pending')
        response = self.client.delete(f'/api/v1/quotations/{quotation.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_inventory_role_cannot_sell(self):
        clerk = TestDataFactory.create_user(role='inventory_manager')
        self.client.authenticate_user(clerk)
        response = self.client.post('/api/v1/invoices/', self.invoice_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
