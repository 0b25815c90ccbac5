"""
Test suite for Catalog module
Tests: Categories, product CRUD, opening stock, low stock and expiry listings
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.catalog.models import Product, ProductCategory
from pharmerp.catalog.utils import stock_status, expiry_status, suggested_reorder_quantity
from pharmerp.inventory.models import InventoryTransaction


class StockClassificationTests(TestCase):
    """Test stock level and expiry helpers"""

    def test_stock_status_levels(self):
        self.assertEqual(stock_status(0, 10), 'out_of_stock')
        self.assertEqual(stock_status(5, 10), 'critical')
        self.assertEqual(stock_status(8, 10), 'low')
        self.assertEqual(stock_status(10, 10), 'low')
        self.assertEqual(stock_status(11, 10), 'normal')

    def test_expiry_status(self):
        today = timezone.localdate()
        self.assertEqual(expiry_status(None), 'no_expiry')
        self.assertEqual(expiry_status(today - timedelta(days=1)), 'expired')
        self.assertEqual(expiry_status(today + timedelta(days=3)), 'critical')
        self.assertEqual(expiry_status(today + timedelta(days=20), warning_days=30), 'warning')
        self.assertEqual(expiry_status(today + timedelta(days=90), warning_days=30), 'normal')

    def test_suggested_reorder_quantity(self):
        self.assertEqual(suggested_reorder_quantity(Decimal('4'), Decimal('10')), Decimal('16'))
        self.assertEqual(suggested_reorder_quantity(Decimal('30'), Decimal('10')), Decimal('0'))


class CategoryAPITests(TestCase):
    """Test category endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_and_list_categories(self):
        response = self.client.post('/api/v1/categories/', {'name': 'Antibiotics'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = [c['name'] for c in response.data]
        self.assertIn('Antibiotics', names)

    def test_cannot_delete_category_with_products(self):
        category = TestDataFactory.create_category()
        TestDataFactory.create_product(category=category)
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(ProductCategory.objects.filter(id=category.id).exists())

    def test_delete_empty_category(self):
        category = TestDataFactory.create_category()
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)


class ProductAPITests(TestCase):
    """Test product endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.warehouse = TestDataFactory.create_warehouse()

    def test_create_product(self):
        data = {
            'name': 'Paracetamol 500mg',
            'sku': 'para-500',
            'cost_price': '2.50',
            'selling_price': '4.00',
        }
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sku'], 'PARA-500')
        self.assertEqual(Decimal(response.data['quantity']), Decimal('0.00'))

    def test_create_product_with_opening_stock(self):
        data = {
            'name': 'Amoxicillin 250mg',
            'sku': 'AMOX-250',
            'cost_price': '5.00',
            'selling_price': '8.00',
            'initial_quantity': '40',
            'warehouse': self.warehouse.id,
        }
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['quantity']), Decimal('40.00'))

        txn = InventoryTransaction.objects.get(product_id=response.data['id'])
        self.assertEqual(txn.reference_type, 'opening_stock')
        self.assertEqual(txn.warehouse, self.warehouse)

    def test_create_product_negative_opening_stock(self):
        data = {'name': 'Bad', 'sku': 'BAD-1', 'initial_quantity': '-5'}
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Product.objects.filter(sku='BAD-1').exists())

    def test_create_product_negative_price(self):
        data = {'name': 'Bad price', 'sku': 'BAD-2', 'cost_price': '-1'}
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('cost_price', response.data)

    def test_quantity_is_read_only(self):
        product = TestDataFactory.create_product()
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'quantity': '999'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.quantity, Decimal('0.00'))

    def test_search_products(self):
        TestDataFactory.create_product(name='Vitamin C Tablets')
        TestDataFactory.create_product(name='Ibuprofen Gel')
        response = self.client.get('/api/v1/products/?search=vitamin tablets')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['name'], 'Vitamin C Tablets')

    def test_cannot_delete_product_with_stock(self):
        product = TestDataFactory.create_product()
        TestDataFactory.stock_product(product, self.warehouse, 5)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_product_without_stock(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(id=product.id).exists())

    def test_low_stock_listing(self):
        low = TestDataFactory.create_product(name='Low item', low_stock_threshold=Decimal('10'))
        TestDataFactory.stock_product(low, self.warehouse, 4)
        healthy = TestDataFactory.create_product(name='Healthy item', low_stock_threshold=Decimal('10'))
        TestDataFactory.stock_product(healthy, self.warehouse, 50)

        response = self.client.get('/api/v1/products/low-stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [r['id'] for r in response.data['results']]
        self.assertIn(low.id, ids)
        self.assertNotIn(healthy.id, ids)
        row = next(r for r in response.data['results'] if r['id'] == low.id)
        self.assertEqual(row['stock_status'], 'critical')
        self.assertEqual(row['suggested_reorder_quantity'], 16.0)

    def test_expiring_listing(self):
        today = timezone.localdate()
        soon = TestDataFactory.create_product(expiry_date=today + timedelta(days=5))
        later = TestDataFactory.create_product(expiry_date=today + timedelta(days=200))

        response = self.client.get('/api/v1/products/expiring/?days=30')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [r['id'] for r in response.data['products']]
        self.assertIn(soon.id, ids)
        self.assertNotIn(later.id, ids)
        self.assertEqual(response.data['critical_count'], 1)

    def test_expiring_invalid_days(self):
        response = self.client.get('/api/v1/products/expiring/?days=abc')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_product_activity(self):
        product = TestDataFactory.create_product()
        TestDataFactory.stock_product(product, self.warehouse, 12)
        response = self.client.get(f'/api/v1/products/{product.id}/activity/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['transactions']), 1)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
