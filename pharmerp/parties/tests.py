"""
Test suite for Parties module
Tests: Customer and supplier CRUD, customer profile and statement
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.parties.models import Customer, Supplier
from pharmerp.sales import services as sales_services


class CustomerAPITests(TestCase):
    """Test customer endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_customer(self):
        data = {'name': 'Nile Pharmacy', 'phone': '0123456789', 'sector': 'Retail'}
        response = self.client.post('/api/v1/customers/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['total_purchases']), Decimal('0.00'))

    def test_negative_credit_limit(self):
        data = {'name': 'Bad Credit', 'credit_limit': '-10'}
        response = self.client.post('/api/v1/customers/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_search_customers(self):
        TestDataFactory.create_customer(name='Delta Clinic')
        TestDataFactory.create_customer(name='Cairo Hospital')
        response = self.client.get('/api/v1/customers/?search=delta')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_delete_unused_customer(self):
        customer = TestDataFactory.create_customer()
        response = self.client.delete(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Customer.objects.filter(id=customer.id).exists())


class CustomerAccountTests(TestCase):
    """Test profile and statement built from sales documents"""

    def setUp(self):
        cache.clear()
        TestDataFactory.seed_accounts()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()
        warehouse = TestDataFactory.create_warehouse()
        self.product = TestDataFactory.create_product(cost_price=Decimal('10'), selling_price=Decimal('15'))
        TestDataFactory.stock_product(self.product, warehouse, 20)
        self.invoice = sales_services.create_invoice(
            customer=self.customer,
            items=[{'product': self.product, 'quantity': Decimal('2')}],
            tax_rate=Decimal('14'),
            user=self.user,
        )

    def test_customer_with_invoices_cannot_be_deleted(self):
        response = self.client.delete(f'/api/v1/customers/{self.customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_statement_running_balance(self):
        sales_services.record_payment(self.customer, Decimal('20'), user=self.user)

        response = self.client.get(f'/api/v1/customers/{self.customer.id}/statement/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        entries = response.data['entries']
        self.assertEqual([e['type'] for e in entries], ['invoice', 'payment'])
        self.assertEqual(entries[0]['balance'], 34.2)
        self.assertEqual(response.data['closing_balance'], 14.2)

    def test_statement_refund_payout(self):
        sales_services.record_payment(self.customer, Decimal('34.20'), user=self.user)
        sales_services.create_refund(self.invoice, Decimal('10'), 'short expiry', user=self.user)

        response = self.client.get(f'/api/v1/customers/{self.customer.id}/statement/')
        types = [e['type'] for e in response.data['entries']]
        self.assertEqual(types, ['invoice', 'payment', 'refund', 'refund_payout'])
        self.assertEqual(response.data['closing_balance'], 0.0)

    def test_profile(self):
        response = self.client.get(f'/api/v1/customers/{self.customer.id}/profile/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['invoice_count'], 1)
        self.assertEqual(response.data['outstanding_balance'], 34.2)
        self.assertEqual(len(response.data['recent_invoices']), 1)


class SupplierAPITests(TestCase):
    """Test supplier endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_and_filter_suppliers(self):
        data = {'name': 'Alpha Chemicals', 'supplier_type': 'international', 'materials': 'citric acid'}
        response = self.client.post('/api/v1/suppliers/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get('/api/v1/suppliers/?search=citric')
        self.assertEqual(response.data['count'], 1)

    def test_profile_without_orders(self):
        supplier = TestDataFactory.create_supplier()
        response = self.client.get(f'/api/v1/suppliers/{supplier.id}/profile/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['purchase_order_count'], 0)
        self.assertEqual(response.data['outstanding_payable'], 0.0)

    def test_delete_supplier(self):
        supplier = TestDataFactory.create_supplier()
        response = self.client.delete(f'/api/v1/suppliers/{supplier.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Supplier.objects.filter(id=supplier.id).exists())

    def test_sales_rep_cannot_see_suppliers(self):
        rep = TestDataFactory.create_user(role='sales_rep')
        self.client.authenticate_user(rep)
        response = self.client.get('/api/v1/suppliers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
