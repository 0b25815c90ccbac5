"""
Test suite for Purchasing module
Tests: Purchase order lifecycle, goods receipt, payable posting and supplier payments
"""
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.accounting import chart
from pharmerp.accounting.models import Account
from pharmerp.inventory.models import Batch
from pharmerp.purchasing.models import PurchaseOrder
from pharmerp.purchasing import services
from pharmerp.purchasing.services import PurchasingError, InvalidTransitionError


def balance(code):
    return Account.objects.get(code=code).balance


class PurchasingTestMixin:

    def setUp(self):
        TestDataFactory.seed_accounts()
        self.user = TestDataFactory.create_user()
        self.supplier = TestDataFactory.create_supplier()
        self.warehouse = TestDataFactory.create_warehouse()
        self.product = TestDataFactory.create_product(cost_price=Decimal('8.00'))

    def make_order(self, quantity=10, transportation_cost=Decimal('20.00'), **kwargs):
        return services.create_purchase_order(
            supplier=self.supplier,
            warehouse=self.warehouse,
            items=[{'product': self.product, 'quantity': quantity}],
            transportation_type='road' if transportation_cost else 'none',
            transportation_cost=transportation_cost,
            user=self.user,
            **kwargs
        )


class PurchaseOrderServiceTests(PurchasingTestMixin, TestCase):
    """Test purchase order creation, approval and receipt"""

    def test_create_purchase_order(self):
        purchase_order = self.make_order()
        self.assertEqual(purchase_order.po_number, f"PO-{timezone.localdate():%Y}-00001")
        self.assertEqual(purchase_order.status, 'draft')
        self.assertEqual(purchase_order.subtotal, Decimal('80.00'))
        self.assertEqual(purchase_order.total_amount, Decimal('100.00'))
        self.assertEqual(purchase_order.items.get().unit_price, Decimal('8.00'))

    def test_empty_order_rejected(self):
        with self.assertRaises(PurchasingError):
            services.create_purchase_order(self.supplier, self.warehouse, items=[])

    def test_update_replaces_lines(self):
        purchase_order = self.make_order()
        services.update_purchase_order(
            purchase_order,
            items=[{'product': self.product, 'quantity': 5, 'unit_price': Decimal('9.00')}],
            status='pending',
        )
        purchase_order.refresh_from_db()
        self.assertEqual(purchase_order.status, 'pending')
        self.assertEqual(purchase_order.subtotal, Decimal('45.00'))
        self.assertEqual(purchase_order.total_amount, Decimal('65.00'))

    def test_receive_requires_approval(self):
        purchase_order = self.make_order()
        item = purchase_order.items.get()
        with self.assertRaises(PurchasingError):
            services.receive_purchase_order(purchase_order, [{'item': item, 'quantity': 1}])

    def test_partial_then_full_receipt(self):
        purchase_order = services.approve_purchase_order(self.make_order())
        item = purchase_order.items.get()

        first = services.receive_purchase_order(purchase_order, [{'item': item, 'quantity': 4}], user=self.user)
        self.assertEqual(first.goods_value, Decimal('32.00'))
        self.assertEqual(first.transportation_cost, Decimal('20.00'))
        self.assertEqual(first.amount, Decimal('52.00'))
        self.assertEqual(balance(chart.INVENTORY), Decimal('52.00'))
        self.assertEqual(balance(chart.ACCOUNTS_PAYABLE), Decimal('-52.00'))

        purchase_order.refresh_from_db()
        self.assertEqual(purchase_order.status, 'partially_received')

        second = services.receive_purchase_order(purchase_order, [{'item': item, 'quantity': 6}])
        self.assertEqual(second.transportation_cost, Decimal('0.00'))
        self.assertEqual(second.amount, Decimal('48.00'))

        purchase_order.refresh_from_db()
        self.assertEqual(purchase_order.status, 'received')
        self.assertEqual(purchase_order.received_amount, Decimal('100.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, Decimal('10.00'))

    def test_over_receipt_rejected(self):
        purchase_order = services.approve_purchase_order(self.make_order())
        item = purchase_order.items.get()
        with self.assertRaises(PurchasingError):
            services.receive_purchase_order(purchase_order, [{'item': item, 'quantity': 11}])
        self.assertFalse(purchase_order.receipts.exists())

    def test_receipt_creates_batch(self):
        purchase_order = services.approve_purchase_order(self.make_order())
        item = purchase_order.items.get()
        expiry = timezone.localdate() + timedelta(days=365)
        services.receive_purchase_order(
            purchase_order, [{'item': item, 'quantity': 10, 'batch_number': 'LOT-77', 'expiry_date': expiry}])

        batch = Batch.objects.get(batch_number='LOT-77')
        self.assertEqual(batch.remaining_quantity, Decimal('10.00'))
        self.assertEqual(batch.supplier, self.supplier)
        self.assertEqual(batch.expiry_date, expiry)

    def test_cancel_rules(self):
        draft = self.make_order()
        services.cancel_purchase_order(draft)
        draft.refresh_from_db()
        self.assertEqual(draft.status, 'cancelled')

        received = services.approve_purchase_order(self.make_order())
        services.receive_purchase_order(received, [{'item': received.items.get(), 'quantity': 1}])
        with self.assertRaises(InvalidTransitionError):
            services.cancel_purchase_order(received)

    def test_cannot_approve_twice(self):
        purchase_order = services.approve_purchase_order(self.make_order())
        with self.assertRaises(InvalidTransitionError):
            services.approve_purchase_order(purchase_order)


class SupplierPaymentServiceTests(PurchasingTestMixin, TestCase):
    """Test supplier payments against the received payable"""

    def setUp(self):
        super().setUp()
        self.purchase_order = services.approve_purchase_order(self.make_order())
        services.receive_purchase_order(self.purchase_order, [{'item': self.purchase_order.items.get(), 'quantity': 10}])

    def test_partial_payment(self):
        payment = services.record_supplier_payment(self.purchase_order, Decimal('60'), payment_method='cash')
        self.assertTrue(payment.payment_number.startswith('SPAY-'))

        self.purchase_order.refresh_from_db()
        self.assertEqual(self.purchase_order.payment_status, 'partial')
        self.assertEqual(self.purchase_order.outstanding_payable, Decimal('40.00'))
        self.assertEqual(balance(chart.ACCOUNTS_PAYABLE), Decimal('-40.00'))
        self.assertEqual(balance(chart.CASH), Decimal('-60.00'))

    def test_full_payment(self):
        services.record_supplier_payment(self.purchase_order, Decimal('100'))
        self.purchase_order.refresh_from_db()
        self.assertEqual(self.purchase_order.payment_status, 'paid')
        self.assertEqual(balance(chart.BANK), Decimal('-100.00'))

    def test_payment_above_payable(self):
        services.record_supplier_payment(self.purchase_order, Decimal('60'))
        with self.assertRaises(PurchasingError):
            services.record_supplier_payment(self.purchase_order, Decimal('50'))

    def test_payment_before_receipt(self):
        unreceived = services.approve_purchase_order(self.make_order())
        with self.assertRaises(PurchasingError):
            services.record_supplier_payment(unreceived, Decimal('1'))


class PurchasingAPITests(PurchasingTestMixin, TestCase):
    """Test purchase order and supplier payment endpoints"""

    def setUp(self):
        super().setUp()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_purchase_order(self):
        data = {
            'supplier': self.supplier.id,
            'warehouse': self.warehouse.id,
            'transportation_type': 'air',
            'transportation_cost': '15.00',
            'items': [{'product': self.product.id, 'quantity': '3', 'unit_price': '7.50'}],
        }
        response = self.client.post('/api/v1/purchase-orders/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('37.50'))
        self.assertEqual(len(response.data['items']), 1)

    def test_delivery_before_order_date(self):
        today = timezone.localdate()
        data = {
            'supplier': self.supplier.id,
            'warehouse': self.warehouse.id,
            'order_date': today.isoformat(),
            'expected_delivery_date': (today - timedelta(days=1)).isoformat(),
            'items': [{'product': self.product.id, 'quantity': '1'}],
        }
        response = self.client.post('/api/v1/purchase-orders/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_drafts_can_be_deleted(self):
        purchase_order = services.approve_purchase_order(self.make_order())
        response = self.client.delete(f'/api/v1/purchase-orders/{purchase_order.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        draft = self.make_order()
        response = self.client.delete(f'/api/v1/purchase-orders/{draft.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(PurchaseOrder.objects.filter(id=draft.id).exists())

    def test_approve_receive_and_pay(self):
        purchase_order = self.make_order(transportation_cost=Decimal('0'))
        response = self.client.post(f'/api/v1/purchase-orders/{purchase_order.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'approved')

        item = purchase_order.items.get()
        response = self.client.post(f'/api/v1/purchase-orders/{purchase_order.id}/receive/',
                                    {'lines': [{'item': item.id, 'quantity': '10'}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['receipt']['amount']), Decimal('80.00'))
        self.assertEqual(response.data['purchase_order']['status'], 'received')

        response = self.client.post('/api/v1/supplier-payments/',
                                    {'purchase_order': purchase_order.id, 'amount': '90'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post('/api/v1/supplier-payments/',
                                    {'purchase_order': purchase_order.id, 'amount': '80'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get('/api/v1/purchase-orders/?payment_status=paid')
        self.assertEqual(response.data['count'], 1)

    def test_cancel_after_receipt_reports_transition(self):
        purchase_order = services.approve_purchase_order(self.make_order())
        services.receive_purchase_order(purchase_order, [{'item': purchase_order.items.get(), 'quantity': 2}])
        response = self.client.post(f'/api/v1/purchase-orders/{purchase_order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INVALID_TRANSITION')

    def test_sales_rep_forbidden(self):
        rep = TestDataFactory.create_user(role='sales_rep')
        self.client.authenticate_user(rep)
        response = self.client.get('/api/v1/purchase-orders/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
