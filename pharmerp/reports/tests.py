"""
Test suite for Reports module
Tests: Dashboard KPIs, sales, product, inventory, customer, expense and stock ordering reports
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.expenses.models import Expense
from pharmerp.expenses.services import approve_expense
from pharmerp.purchasing.services import create_purchase_order
from pharmerp.sales import services as sales_services


class ReportsAPITests(TestCase):
    """One invoice, one approved expense and a low stock product"""

    def setUp(self):
        cache.clear()
        TestDataFactory.seed_accounts()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

        warehouse = TestDataFactory.create_warehouse()
        self.customer = TestDataFactory.create_customer(name='Zamalek Pharmacy')
        self.product = TestDataFactory.create_product(name='Amoxicillin 500mg', cost_price=Decimal('10.00'),
                                                      selling_price=Decimal('15.00'))
        TestDataFactory.stock_product(self.product, warehouse, 100)
        self.low = TestDataFactory.create_product(name='Gauze roll', cost_price=Decimal('2.00'),
                                                  low_stock_threshold=Decimal('10'))
        TestDataFactory.stock_product(self.low, warehouse, 4)

        sales_services.create_invoice(
            customer=self.customer,
            items=[{'product': self.product, 'quantity': Decimal('2')}],
            tax_rate=Decimal('14'),
            user=self.user,
        )
        expense = Expense.objects.create(description='Shop rent', amount=Decimal('50.00'), account_category='Rent')
        approve_expense(expense, user=self.user)
        Expense.objects.create(description='Courier', amount=Decimal('8.00'))
        cache.clear()

    def test_dashboard(self):
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data
        self.assertEqual(data['total_revenue'], 30.0)
        self.assertEqual(data['total_expenses'], 70.0)
        self.assertEqual(data['net_profit'], -40.0)
        self.assertEqual(data['sales_total'], 34.2)
        self.assertEqual(data['invoice_count'], 1)
        self.assertEqual(data['outstanding_receivables'], 34.2)
        self.assertEqual(data['low_stock_count'], 1)
        self.assertEqual(data['pending_expenses'], 1)
        self.assertEqual(len(data['monthly_sales']), 6)
        self.assertEqual(data['monthly_sales'][-1]['sales'], 34.2)

    def test_dashboard_bad_date(self):
        response = self.client.get('/api/v1/reports/dashboard/?date_from=01-01-2024')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_sales_summary(self):
        response = self.client.get('/api/v1/reports/sales-summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['gross_sales'], 34.2)
        self.assertEqual(response.data['tax'], 4.2)
        self.assertEqual(response.data['net_sales'], 34.2)
        self.assertEqual(response.data['by_payment_status'], {'pending': 1})
        self.assertEqual(len(response.data['daily']), 1)

    def test_top_products(self):
        response = self.client.get('/api/v1/reports/top-products/?limit=5')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['product_name'], 'Amoxicillin 500mg')
        self.assertEqual(response.data[0]['quantity_sold'], 2.0)
        self.assertEqual(response.data[0]['gross_profit'], 10.0)

    def test_inventory_summary(self):
        response = self.client.get('/api/v1/reports/inventory-summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_products'], 2)
        self.assertEqual(response.data['total_quantity'], 102.0)
        self.assertEqual(response.data['total_cost_value'], 988.0)
        self.assertEqual(response.data['stock_levels']['critical'], 1)

    def test_customer_summary(self):
        response = self.client.get('/api/v1/reports/customers/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['customers_with_purchases'], 1)
        self.assertEqual(response.data['top_customers'][0]['customer_name'], 'Zamalek Pharmacy')
        self.assertEqual(response.data['top_customers'][0]['net_sales'], 34.2)

    def test_expense_summary(self):
        response = self.client.get('/api/v1/reports/expenses/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_approved'], 50.0)
        self.assertEqual(response.data['pending_count'], 1)
        self.assertEqual(response.data['pending_total'], 8.0)
        self.assertEqual(response.data['by_category'][0]['category'], 'Rent')

    def test_stock_ordering(self):
        supplier = TestDataFactory.create_supplier(name='Cotton Co')
        create_purchase_order(supplier, TestDataFactory.create_warehouse(),
                              items=[{'product': self.low, 'quantity': 20, 'unit_price': Decimal('1.50')}])

        response = self.client.get('/api/v1/reports/stock-ordering/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        row = response.data['results'][0]
        self.assertEqual(row['suggested_reorder_quantity'], 16.0)
        self.assertEqual(row['last_supplier_name'], 'Cotton Co')
        self.assertEqual(row['estimated_cost'], 24.0)
        self.assertEqual(response.data['estimated_total_cost'], 24.0)

    def test_staff_sees_dashboard_only(self):
        staff = TestDataFactory.create_user(role='staff')
        self.client.authenticate_user(staff)
        self.assertEqual(self.client.get('/api/v1/reports/dashboard/').status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get('/api/v1/reports/sales-summary/').status_code, status.HTTP_403_FORBIDDEN)
