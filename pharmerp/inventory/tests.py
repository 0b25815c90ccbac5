"""
Test suite for Inventory module
Tests: Stock services, batches, adjustments, transfers and inventory endpoints
"""
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.inventory.models import WarehouseStock, Batch, InventoryTransaction, StockAdjustment
from pharmerp.inventory.services import (
    receive_stock, issue_stock, adjust_stock, transfer_stock, restore_issued_stock,
    check_availability, available_quantity, StockError, InsufficientStockError,
)


class StockServiceTests(TestCase):
    """Test stock movement services"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.warehouse = TestDataFactory.create_warehouse()
        self.product = TestDataFactory.create_product(cost_price=Decimal('10.00'))

    def test_receive_updates_stock_and_product(self):
        receive_stock(self.product, self.warehouse, Decimal('25'), user=self.user)
        stock = WarehouseStock.objects.get(product=self.product, warehouse=self.warehouse)
        self.assertEqual(stock.quantity, Decimal('25.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('25.00'))
        self.assertEqual(InventoryTransaction.objects.filter(product=self.product).count(), 1)

    def test_receive_rejects_non_positive_quantity(self):
        with self.assertRaises(StockError):
            receive_stock(self.product, self.warehouse, Decimal('0'))

    def test_receive_into_batch(self):
        expiry = timezone.localdate() + timedelta(days=365)
        txn = receive_stock(self.product, self.warehouse, Decimal('10'), batch_number='LOT-1', expiry_date=expiry)
        self.assertIsNotNone(txn.batch)
        self.assertEqual(txn.batch.remaining_quantity, Decimal('10.00'))
        self.assertEqual(txn.batch.expiry_date, expiry)

    def test_issue_consumes_earliest_expiry_batch_first(self):
        today = timezone.localdate()
        receive_stock(self.product, self.warehouse, Decimal('10'), batch_number='LATE',
                      expiry_date=today + timedelta(days=300))
        receive_stock(self.product, self.warehouse, Decimal('10'), batch_number='EARLY',
                      expiry_date=today + timedelta(days=30))

        issue_stock(self.product, Decimal('12'), reference_type='invoice', reference_id='INV-1')

        self.assertEqual(Batch.objects.get(batch_number='EARLY').remaining_quantity, Decimal('0.00'))
        self.assertEqual(Batch.objects.get(batch_number='LATE').remaining_quantity, Decimal('8.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('8.00'))

    def test_issue_insufficient_stock(self):
        receive_stock(self.product, self.warehouse, Decimal('3'))
        with self.assertRaises(InsufficientStockError) as ctx:
            issue_stock(self.product, Decimal('5'))
        self.assertEqual(ctx.exception.available, Decimal('3'))
        self.assertEqual(ctx.exception.to_dict()['code'], 'INSUFFICIENT_STOCK')
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('3.00'))

    def test_issue_spreads_across_warehouses(self):
        second = TestDataFactory.create_warehouse()
        receive_stock(self.product, self.warehouse, Decimal('4'))
        receive_stock(self.product, second, Decimal('6'))

        transactions = issue_stock(self.product, Decimal('7'))
        self.assertEqual(len(transactions), 2)
        self.assertEqual(sum(t.quantity for t in transactions), Decimal('-7'))
        self.assertEqual(available_quantity(self.product), Decimal('3.00'))

    def test_product_goes_out_of_stock_and_back(self):
        receive_stock(self.product, self.warehouse, Decimal('2'))
        issue_stock(self.product, Decimal('2'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.status, 'out_of_stock')

        receive_stock(self.product, self.warehouse, Decimal('1'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.status, 'active')

    def test_check_availability_sums_repeated_lines(self):
        receive_stock(self.product, self.warehouse, Decimal('5'))
        check_availability([(self.product, Decimal('2')), (self.product, Decimal('3'))])
        with self.assertRaises(InsufficientStockError):
            check_availability([(self.product, Decimal('3')), (self.product, Decimal('3'))])

    def test_restore_issued_stock(self):
        receive_stock(self.product, self.warehouse, Decimal('10'))
        issue_stock(self.product, Decimal('6'), reference_type='order', reference_id='ORD-1')
        restored = restore_issued_stock('order', 'ORD-1', notes='cancelled')
        self.assertEqual(len(restored), 1)
        self.assertEqual(restored[0].transaction_type, 'return')
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('10.00'))

    def test_restore_returns_stock_to_its_batches(self):
        today = timezone.localdate()
        receive_stock(self.product, self.warehouse, Decimal('5'), batch_number='EARLY',
                      expiry_date=today + timedelta(days=30))
        receive_stock(self.product, self.warehouse, Decimal('10'), batch_number='LATE',
                      expiry_date=today + timedelta(days=300))
        receive_stock(self.product, self.warehouse, Decimal('3'))

        issued = issue_stock(self.product, Decimal('17'), reference_type='invoice', reference_id='INV-9')
        self.assertEqual([t.batch.batch_number if t.batch else None for t in issued], ['EARLY', 'LATE', None])
        self.assertEqual(sum(t.quantity for t in issued), Decimal('-17'))

        restored = restore_issued_stock('invoice', 'INV-9', notes='voided')
        self.assertEqual(len(restored), 3)
        self.assertEqual(Batch.objects.get(batch_number='EARLY').remaining_quantity, Decimal('5.00'))
        self.assertEqual(Batch.objects.get(batch_number='LATE').remaining_quantity, Decimal('10.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('18.00'))

        # restored units are issued from the earliest batch again
        issue_stock(self.product, Decimal('4'))
        self.assertEqual(Batch.objects.get(batch_number='EARLY').remaining_quantity, Decimal('1.00'))

    def test_non_finite_quantity_rejected(self):
        with self.assertRaises(StockError):
            receive_stock(self.product, self.warehouse, Decimal('NaN'))
        with self.assertRaises(StockError):
            receive_stock(self.product, self.warehouse, 'Infinity')

    def test_adjust_recount(self):
        receive_stock(self.product, self.warehouse, Decimal('10'))
        adjustment = adjust_stock(self.product, self.warehouse, 'recount', Decimal('7'), 'recount', user=self.user)
        self.assertEqual(adjustment.previous_quantity, Decimal('10.00'))
        self.assertEqual(adjustment.difference, Decimal('-3.00'))
        self.assertTrue(adjustment.adjustment_number.startswith('ADJ-'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('7.00'))

    def test_adjust_decrease_below_zero(self):
        receive_stock(self.product, self.warehouse, Decimal('2'))
        with self.assertRaises(InsufficientStockError):
            adjust_stock(self.product, self.warehouse, 'decrease', Decimal('5'), 'damaged')

    def test_transfer_moves_batches(self):
        destination = TestDataFactory.create_warehouse(code='WH-DEST')
        receive_stock(self.product, self.warehouse, Decimal('10'), batch_number='B-1',
                      expiry_date=timezone.localdate() + timedelta(days=90))

        transfer_stock(self.product, self.warehouse, destination, Decimal('4'))

        self.assertEqual(WarehouseStock.objects.get(product=self.product, warehouse=destination).quantity,
                         Decimal('4.00'))
        moved = Batch.objects.get(batch_number='B-1-WH-DEST')
        self.assertEqual(moved.remaining_quantity, Decimal('4.00'))
        self.assertEqual(Batch.objects.get(batch_number='B-1').remaining_quantity, Decimal('6.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('10.00'))

    def test_transfer_to_same_warehouse(self):
        receive_stock(self.product, self.warehouse, Decimal('10'))
        with self.assertRaises(StockError):
            transfer_stock(self.product, self.warehouse, self.warehouse, Decimal('1'))


class InventoryAPITests(TestCase):
    """Test inventory endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.warehouse = TestDataFactory.create_warehouse()
        self.product = TestDataFactory.create_product()

    def test_receive_batch(self):
        data = {
            'batch_number': 'LOT-2025-01',
            'product': self.product.id,
            'warehouse': self.warehouse.id,
            'quantity': '30',
            'unit_cost': '9.50',
            'expiry_date': (timezone.localdate() + timedelta(days=400)).isoformat(),
        }
        response = self.client.post('/api/v1/inventory/batches/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['remaining_quantity']), Decimal('30.00'))

        duplicate = self.client.post('/api/v1/inventory/batches/', data, format='json')
        self.assertEqual(duplicate.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('batch_number', duplicate.data)

    def test_batch_expiry_before_manufacture(self):
        today = timezone.localdate()
        data = {
            'batch_number': 'LOT-BAD',
            'product': self.product.id,
            'quantity': '5',
            'manufacture_date': today.isoformat(),
            'expiry_date': (today - timedelta(days=1)).isoformat(),
        }
        response = self.client.post('/api/v1/inventory/batches/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_quarantine_batch(self):
        TestDataFactory.stock_product(self.product, self.warehouse, 5, batch_number='LOT-Q')
        batch = Batch.objects.get(batch_number='LOT-Q')
        response = self.client.patch(f'/api/v1/inventory/batches/{batch.id}/', {'status': 'quarantine'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        batch.refresh_from_db()
        self.assertEqual(batch.status, 'quarantine')

    def test_stock_adjustment_endpoint(self):
        TestDataFactory.stock_product(self.product, self.warehouse, 10)
        data = {
            'product': self.product.id,
            'warehouse': self.warehouse.id,
            'adjustment_type': 'decrease',
            'quantity': '3',
            'reason': 'damaged',
        }
        response = self.client.post('/api/v1/inventory/adjustments/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(StockAdjustment.objects.count(), 1)

    def test_stock_adjustment_insufficient(self):
        data = {
            'product': self.product.id,
            'warehouse': self.warehouse.id,
            'adjustment_type': 'decrease',
            'quantity': '3',
            'reason': 'damaged',
        }
        response = self.client.post('/api/v1/inventory/adjustments/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INSUFFICIENT_STOCK')

    def test_transfer_endpoint(self):
        destination = TestDataFactory.create_warehouse()
        TestDataFactory.stock_product(self.product, self.warehouse, 10)
        data = {
            'product': self.product.id,
            'from_warehouse': self.warehouse.id,
            'to_warehouse': destination.id,
            'quantity': '4',
        }
        response = self.client.post('/api/v1/inventory/transfers/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['transfer_in']['quantity']), Decimal('4.00'))

    def test_transaction_history_filter(self):
        TestDataFactory.stock_product(self.product, self.warehouse, 10)
        response = self.client.get(f'/api/v1/inventory/transactions/?product={self.product.id}&type=adjustment')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_summary_and_breakdown(self):
        TestDataFactory.stock_product(self.product, self.warehouse, 10)
        response = self.client.get('/api/v1/inventory/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_quantity'], 10.0)
        self.assertEqual(response.data['total_cost_value'], 100.0)

        response = self.client.get('/api/v1/inventory/warehouse-breakdown/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        row = next(r for r in response.data if r['id'] == self.warehouse.id)
        self.assertEqual(row['product_count'], 1)

    def test_staff_role_cannot_access_inventory(self):
        staff = TestDataFactory.create_user(role='staff')
        self.client.authenticate_user(staff)
        response = self.client.get('/api/v1/inventory/stock/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
