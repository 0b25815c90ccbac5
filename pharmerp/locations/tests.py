"""
Test suite for Locations module
Tests: Warehouse CRUD, default warehouse, stock per warehouse and storage locations
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.inventory.services import issue_stock
from pharmerp.locations.models import Warehouse, WarehouseLocation


class WarehouseModelTests(TestCase):

    def test_get_default_creates_main_warehouse(self):
        warehouse = Warehouse.get_default()
        self.assertEqual(warehouse.code, 'MAIN')
        self.assertEqual(Warehouse.get_default(), warehouse)

    def test_get_default_prefers_existing_active(self):
        existing = TestDataFactory.create_warehouse()
        self.assertEqual(Warehouse.get_default(), existing)

    def test_location_code_generated(self):
        warehouse = TestDataFactory.create_warehouse(code='WH1')
        location = WarehouseLocation.objects.create(warehouse=warehouse, aisle='A', rack='02', shelf='3')
        self.assertEqual(location.location_code, 'WH1-A-02-3')


class WarehouseAPITests(TestCase):
    """Test warehouse endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_warehouse_uppercases_code(self):
        response = self.client.post('/api/v1/warehouses/', {'name': 'Alexandria Store', 'code': ' alx '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['code'], 'ALX')

    def test_warehouse_stock(self):
        warehouse = TestDataFactory.create_warehouse()
        product = TestDataFactory.create_product(cost_price=Decimal('4.00'))
        TestDataFactory.stock_product(product, warehouse, 25)

        response = self.client.get(f'/api/v1/warehouses/{warehouse.id}/stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_products'], 1)
        self.assertEqual(response.data['total_value'], 100.0)

    def test_cannot_delete_warehouse_with_stock(self):
        warehouse = TestDataFactory.create_warehouse()
        product = TestDataFactory.create_product()
        TestDataFactory.stock_product(product, warehouse, 5)
        response = self.client.delete(f'/api/v1/warehouses/{warehouse.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_emptied_warehouse_is_retired(self):
        warehouse = TestDataFactory.create_warehouse()
        product = TestDataFactory.create_product()
        TestDataFactory.stock_product(product, warehouse, 5)
        issue_stock(product, Decimal('5'), warehouse=warehouse)

        response = self.client.delete(f'/api/v1/warehouses/{warehouse.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_active'])
        self.assertTrue(Warehouse.objects.filter(id=warehouse.id).exists())

    def test_delete_unused_warehouse(self):
        warehouse = TestDataFactory.create_warehouse()
        response = self.client.delete(f'/api/v1/warehouses/{warehouse.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_create_location(self):
        warehouse = TestDataFactory.create_warehouse(code='WH2')
        data = {'warehouse': warehouse.id, 'aisle': 'B', 'rack': '1', 'temperature_controlled': True}
        response = self.client.post('/api/v1/warehouse-locations/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['location_code'], 'WH2-B-1')

        duplicate = self.client.post('/api/v1/warehouse-locations/',
                                     {'warehouse': warehouse.id, 'location_code': 'WH2-B-1'}, format='json')
        self.assertEqual(duplicate.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get(f'/api/v1/warehouse-locations/?warehouse={warehouse.id}')
        self.assertEqual(len(response.data), 1)
