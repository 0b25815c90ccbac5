"""
Test suite for Orders module
Tests: Order pricing, material consumption, status changes and order endpoints
"""
import json
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.inventory.services import InsufficientStockError
from pharmerp.orders.calculator import calculate_order_financials
from pharmerp.orders.models import Order
from pharmerp.orders import services
from pharmerp.orders.services import OrderError, InvalidTransitionError, parse_material_list, parse_fee_list


class OrderCalculatorTests(TestCase):
    """Test order pricing"""

    def test_financials(self):
        figures = calculate_order_financials(100, 20, 30, profit_margin_percentage=20, tax_rate=14)
        self.assertEqual(figures['subtotal'], Decimal('120.00'))
        self.assertEqual(figures['total_cost'], Decimal('150.00'))
        self.assertEqual(figures['selling_price'], Decimal('180.00'))
        self.assertEqual(figures['tax_amount'], Decimal('25.20'))
        self.assertEqual(figures['revenue'], Decimal('205.20'))
        self.assertEqual(figures['profit'], Decimal('30.00'))

    def test_zero_margin(self):
        figures = calculate_order_financials(50, 0, 0, profit_margin_percentage=0, tax_rate=0)
        self.assertEqual(figures['selling_price'], Decimal('50.00'))
        self.assertEqual(figures['profit'], Decimal('0.00'))

    def test_negative_values_rejected(self):
        with self.assertRaises(ValueError):
            calculate_order_financials(-1, 0)
        with self.assertRaises(ValueError):
            calculate_order_financials(10, 0, profit_margin_percentage=-5)


class MaterialParsingTests(TestCase):

    def test_json_string(self):
        lines = parse_material_list('[{"product": "3", "quantity": "2.5"}]')
        self.assertEqual(lines, [{'product_id': 3, 'quantity': Decimal('2.5'), 'unit_cost': None}])

    def test_invalid_json(self):
        with self.assertRaises(OrderError):
            parse_material_list('not json')

    def test_missing_product(self):
        with self.assertRaises(OrderError):
            parse_material_list([{'quantity': 1}])

    def test_non_positive_quantity(self):
        with self.assertRaises(OrderError):
            parse_material_list([{'product': 1, 'quantity': 0}])

    def test_non_finite_numbers(self):
        for entry in ({'product': 1, 'quantity': 'NaN'},
                      {'product': 1, 'quantity': 'Infinity'},
                      {'product': 1, 'quantity': 2, 'unit_cost': 'NaN'}):
            with self.assertRaises(OrderError):
                parse_material_list([entry])
        with self.assertRaises(OrderError):
            parse_fee_list([{'label': 'Labour', 'amount': 'NaN'}])


class OrderServiceTests(TestCase):
    """Test order creation and status workflow"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.warehouse = TestDataFactory.create_warehouse()
        self.raw = TestDataFactory.create_product(name='Citric acid', cost_price=Decimal('5.00'))
        self.bottle = TestDataFactory.create_product(name='Bottle 1L', cost_price=Decimal('2.00'))
        self.output = TestDataFactory.create_product(name='Syrup 1L', cost_price=Decimal('0'))
        TestDataFactory.stock_product(self.raw, self.warehouse, 100)
        TestDataFactory.stock_product(self.bottle, self.warehouse, 50)

    def make_order(self, **kwargs):
        params = {
            'order_type': 'production',
            'materials': [{'product': self.raw.id, 'quantity': '10'}],
            'packaging': [{'product': self.bottle.id, 'quantity': '5'}],
            'fees': [{'label': 'Labour', 'amount': '15'}],
            'transportation_cost': Decimal('5'),
            'user': self.user,
            'warehouse': self.warehouse,
        }
        params.update(kwargs)
        return services.create_order(**params)

    def test_create_order_prices_and_consumes(self):
        order = self.make_order()

        self.assertEqual(order.order_number, f"ORD-PRODUCTION-{timezone.localdate():%Y}-001")
        self.assertEqual(order.raw_materials_cost, Decimal('50.00'))
        self.assertEqual(order.packaging_cost, Decimal('10.00'))
        self.assertEqual(order.additional_fees, Decimal('20.00'))
        self.assertEqual(order.total_cost, Decimal('80.00'))
        self.assertEqual(order.selling_price, Decimal('96.00'))
        self.assertEqual(order.tax_amount, Decimal('13.44'))
        self.assertEqual(order.revenue, Decimal('109.44'))
        self.assertEqual(order.profit, Decimal('16.00'))
        self.assertEqual(order.fees.count(), 2)

        self.raw.refresh_from_db()
        self.bottle.refresh_from_db()
        self.assertEqual(self.raw.quantity, Decimal('90.00'))
        self.assertEqual(self.bottle.quantity, Decimal('45.00'))

    def test_shortfall_creates_nothing(self):
        with self.assertRaises(InsufficientStockError):
            self.make_order(materials=[{'product': self.raw.id, 'quantity': '500'}])
        self.assertEqual(Order.objects.count(), 0)
        self.bottle.refresh_from_db()
        self.assertEqual(self.bottle.quantity, Decimal('50.00'))

    def test_unknown_product(self):
        with self.assertRaises(OrderError):
            self.make_order(materials=[{'product': 999999, 'quantity': '1'}])

    def test_refining_needs_target(self):
        with self.assertRaises(OrderError):
            self.make_order(order_type='refining')

    def test_cancel_restores_materials(self):
        order = self.make_order()
        services.change_order_status(order, 'cancelled', user=self.user)
        order.refresh_from_db()
        self.assertEqual(order.status, 'cancelled')
        self.assertIsNotNone(order.cancelled_at)
        self.raw.refresh_from_db()
        self.assertEqual(self.raw.quantity, Decimal('100.00'))

        with self.assertRaises(InvalidTransitionError):
            services.change_order_status(order, 'in_progress')

    def test_complete_receives_output(self):
        order = self.make_order(target_product=self.output, expected_output_quantity=Decimal('8'))
        with self.assertRaises(InvalidTransitionError):
            services.change_order_status(order, 'completed')

        services.change_order_status(order, 'in_progress')
        services.change_order_status(order, 'completed', user=self.user)

        self.output.refresh_from_db()
        self.assertEqual(self.output.quantity, Decimal('8.00'))
        txn = self.output.inventory_transactions.get()
        self.assertEqual(txn.transaction_type, 'production_output')
        self.assertEqual(txn.unit_cost, Decimal('10.00'))

    def test_update_profit_margin(self):
        order = self.make_order()
        services.update_profit_margin(order, Decimal('50'))
        order.refresh_from_db()
        self.assertEqual(order.selling_price, Decimal('120.00'))
        self.assertEqual(order.tax_amount, Decimal('16.80'))
        self.assertEqual(order.profit, Decimal('40.00'))


class OrderAPITests(TestCase):
    """Test order endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.warehouse = TestDataFactory.create_warehouse()
        self.raw = TestDataFactory.create_product(cost_price=Decimal('5.00'))
        TestDataFactory.stock_product(self.raw, self.warehouse, 100)

    def test_create_order_with_json_materials(self):
        data = {
            'order_type': 'production',
            'materials': json.dumps([{'product_id': self.raw.id, 'quantity': 4}]),
            'warehouse': self.warehouse.id,
        }
        response = self.client.post('/api/v1/orders/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['total_cost']), Decimal('20.00'))
        self.assertEqual(Decimal(response.data['revenue']), Decimal('27.36'))

    def test_create_order_rejects_bad_materials(self):
        data = {'order_type': 'production', 'materials': '[{"product": '}
        response = self.client.post('/api/v1/orders/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 0)

    def test_create_order_rejects_infinite_quantity(self):
        data = {'order_type': 'production', 'materials': [{'product': self.raw.id, 'quantity': 'Infinity'}]}
        response = self.client.post('/api/v1/orders/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 0)

    def test_create_order_insufficient_stock(self):
        data = {'order_type': 'production', 'materials': [{'product': self.raw.id, 'quantity': 1000}]}
        response = self.client.post('/api/v1/orders/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INSUFFICIENT_STOCK')

    def test_status_and_margin_endpoints(self):
        order = services.create_order('production', materials=[{'product': self.raw.id, 'quantity': 2}])

        response = self.client.patch(f'/api/v1/orders/{order.id}/status/', {'status': 'completed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INVALID_TRANSITION')

        response = self.client.patch(f'/api/v1/orders/{order.id}/status/', {'status': 'in_progress'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.patch(f'/api/v1/orders/{order.id}/profit-margin/',
                                     {'profit_margin_percentage': '0'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['profit']), Decimal('0.00'))

    def test_summary(self):
        order = services.create_order('production', materials=[{'product': self.raw.id, 'quantity': 2}])
        services.change_order_status(order, 'in_progress')
        services.change_order_status(order, 'completed')
        services.create_order('refining', materials=[{'product': self.raw.id, 'quantity': 1}],
                              target_product=self.raw)

        response = self.client.get('/api/v1/orders/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_orders'], 2)
        self.assertEqual(response.data['by_type'], {'production': 1, 'refining': 1})
        self.assertEqual(response.data['by_status']['completed'], 1)
        self.assertEqual(response.data['completed']['total_cost'], 10.0)

        response = self.client.get('/api/v1/orders/?order_type=refining')
        self.assertEqual(response.data['count'], 1)
