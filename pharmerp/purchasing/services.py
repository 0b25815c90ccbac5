"""
Purchase order workflows.

Receipts bring stock (and batches) into the order's warehouse and post the
received value to Accounts Payable. Supplier payments settle that payable
and can never exceed what has been received but not yet paid.
"""
import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from pharmerp.accounting import posting
from pharmerp.core.numbering import next_document_number, year_period
from pharmerp.core.utils import money
from pharmerp.inventory.services import receive_stock
from .models import PurchaseOrder, PurchaseOrderItem, PurchaseReceipt, SupplierPayment

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')

EDITABLE_STATUSES = ('draft', 'pending')
APPROVABLE_STATUSES = ('draft', 'pending')
RECEIVABLE_STATUSES = ('approved', 'partially_received')


class PurchasingError(ValueError):
    """Business rule violation in a purchasing workflow"""


class InvalidTransitionError(PurchasingError):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change purchase order status from {current} to {target}.")


def _build_items(items):
    if not items:
        raise PurchasingError('A purchase order needs at least one item.')
    built = []
    for item in items:
        quantity = Decimal(str(item['quantity']))
        if quantity <= 0:
            raise PurchasingError(f"Quantity for {item['product'].name} must be greater than zero.")
        unit_price = item.get('unit_price')
        unit_price = money(item['product'].cost_price if unit_price is None else unit_price)
        built.append({
            'product': item['product'],
            'quantity': quantity,
            'unit_price': unit_price,
            'total': money(quantity * unit_price),
            'batch_number': item.get('batch_number') or '',
            'expiry_date': item.get('expiry_date'),
        })
    return built


def _save_items(purchase_order, built):
    purchase_order.items.all().delete()
    PurchaseOrderItem.objects.bulk_create([
        PurchaseOrderItem(purchase_order=purchase_order, **line) for line in built
    ])
    purchase_order.subtotal = sum((line['total'] for line in built), ZERO)
    purchase_order.total_amount = purchase_order.subtotal + purchase_order.transportation_cost


@transaction.atomic
def create_purchase_order(supplier, warehouse, items, user=None, order_date=None, expected_delivery_date=None,
                          transportation_type='none', transportation_cost=ZERO, notes='', status='draft'):
    """items: dicts with product, quantity, optional unit_price, batch_number, expiry_date"""
    if status not in EDITABLE_STATUSES:
        raise PurchasingError('New purchase orders start as draft or pending.')
    built = _build_items(items)
    order_date = order_date or timezone.localdate()

    purchase_order = PurchaseOrder.objects.create(
        po_number=next_document_number('purchase_order', prefix='PO', period=year_period(order_date)),
        supplier=supplier,
        user=user,
        warehouse=warehouse,
        order_date=order_date,
        expected_delivery_date=expected_delivery_date,
        status=status,
        transportation_type=transportation_type or 'none',
        transportation_cost=money(transportation_cost),
        notes=notes or '',
    )
    _save_items(purchase_order, built)
    purchase_order.save(update_fields=['subtotal', 'total_amount', 'updated_at'])
    logger.info(f"Created purchase order {purchase_order.po_number} for {supplier.name}: {purchase_order.total_amount}")
    return purchase_order


@transaction.atomic
def update_purchase_order(purchase_order, items=None, **fields):
    """Edit header fields and optionally replace the lines of a draft or pending order"""
    purchase_order = PurchaseOrder.objects.select_for_update().get(pk=purchase_order.pk)
    if purchase_order.status not in EDITABLE_STATUSES:
        raise PurchasingError(f"Purchase orders in status {purchase_order.status} cannot be edited.")

    new_status = fields.pop('status', None)
    if new_status and new_status != purchase_order.status:
        if new_status not in EDITABLE_STATUSES:
            raise InvalidTransitionError(purchase_order.status, new_status)
        purchase_order.status = new_status

    for field in ('supplier', 'warehouse', 'order_date', 'expected_delivery_date', 'transportation_type', 'notes'):
        if field in fields:
            setattr(purchase_order, field, fields[field])
    if 'transportation_cost' in fields:
        purchase_order.transportation_cost = money(fields['transportation_cost'])

    if items is not None:
        _save_items(purchase_order, _build_items(items))
    else:
        purchase_order.total_amount = purchase_order.subtotal + purchase_order.transportation_cost
    purchase_order.save()
    return purchase_order


@transaction.atomic
def approve_purchase_order(purchase_order, user=None):
    purchase_order = PurchaseOrder.objects.select_for_update().get(pk=purchase_order.pk)
    if purchase_order.status not in APPROVABLE_STATUSES:
        raise InvalidTransitionError(purchase_order.status, 'approved')
    purchase_order.status = 'approved'
    purchase_order.save(update_fields=['status', 'updated_at'])
    logger.info(f"Purchase order {purchase_order.po_number} approved")
    return purchase_order


@transaction.atomic
def cancel_purchase_order(purchase_order, user=None):
    """Cancel an order that has not received anything yet"""
    purchase_order = PurchaseOrder.objects.select_for_update().get(pk=purchase_order.pk)
    if purchase_order.status in ('received', 'cancelled', 'partially_received') or purchase_order.receipts.exists():
        raise InvalidTransitionError(purchase_order.status, 'cancelled')
    purchase_order.status = 'cancelled'
    purchase_order.save(update_fields=['status', 'updated_at'])
    logger.info(f"Purchase order {purchase_order.po_number} cancelled")
    return purchase_order


@transaction.atomic
def receive_purchase_order(purchase_order, lines, user=None, receipt_date=None, notes=''):
    """
    Receive goods against an approved purchase order.

    lines: dicts with item (PurchaseOrderItem), quantity and optional
    batch_number / expiry_date overriding the ones on the order line.
    The order's transportation cost is capitalised into the first receipt.
    """
    purchase_order = PurchaseOrder.objects.select_for_update().select_related('supplier', 'warehouse').get(
        pk=purchase_order.pk)
    if purchase_order.status not in RECEIVABLE_STATUSES:
        raise PurchasingError(f"Purchase orders in status {purchase_order.status} cannot be received.")
    if not lines:
        raise PurchasingError('Nothing to receive.')

    items = {item.pk: item for item in purchase_order.items.select_for_update().select_related('product')}
    requested = {}
    for line in lines:
        item = line['item']
        if item.pk not in items:
            raise PurchasingError(f"Item #{item.pk} does not belong to {purchase_order.po_number}.")
        quantity = Decimal(str(line['quantity']))
        if quantity <= 0:
            raise PurchasingError('Received quantity must be greater than zero.')
        requested[item.pk] = requested.get(item.pk, ZERO) + quantity
        if requested[item.pk] > items[item.pk].outstanding_quantity:
            raise PurchasingError(
                f"Cannot receive {requested[item.pk]} of {items[item.pk].product.name}: "
                f"only {items[item.pk].outstanding_quantity} outstanding."
            )

    receipt_date = receipt_date or timezone.localdate()
    first_receipt = not purchase_order.receipts.exists()
    receipt = PurchaseReceipt.objects.create(
        receipt_number=next_document_number('purchase_receipt', prefix='GRN', width=6),
        purchase_order=purchase_order,
        receipt_date=receipt_date,
        notes=notes or '',
        user=user,
    )

    goods_value = ZERO
    received_lines = []
    for line in lines:
        item = items[line['item'].pk]
        quantity = Decimal(str(line['quantity']))
        batch_number = line.get('batch_number') or item.batch_number or None
        expiry_date = line.get('expiry_date') or item.expiry_date
        receive_stock(
            item.product,
            purchase_order.warehouse,
            quantity,
            unit_cost=item.unit_price,
            transaction_type='purchase',
            reference_type='purchase_order',
            reference_id=purchase_order.po_number,
            notes=f"Receipt {receipt.receipt_number}",
            user=user,
            batch_number=batch_number,
            expiry_date=expiry_date,
            supplier=purchase_order.supplier,
        )
        item.received_quantity += quantity
        if batch_number:
            item.batch_number = batch_number
        item.expiry_date = expiry_date
        item.save(update_fields=['received_quantity', 'batch_number', 'expiry_date'])

        value = money(quantity * item.unit_price)
        goods_value += value
        received_lines.append({'item': item.pk, 'product': item.product_id, 'quantity': str(quantity),
                               'value': str(value), 'batch_number': batch_number or ''})

    transport = purchase_order.transportation_cost if first_receipt else ZERO
    receipt.goods_value = goods_value
    receipt.transportation_cost = transport
    receipt.amount = goods_value + transport
    receipt.lines = received_lines
    receipt.journal_entry = posting.post_purchase_receipt(
        purchase_order, receipt.amount, receipt.id, entry_date=receipt_date, user=user)
    receipt.save(update_fields=['goods_value', 'transportation_cost', 'amount', 'lines', 'journal_entry'])

    purchase_order.received_amount += receipt.amount
    fully_received = all(item.received_quantity >= item.quantity for item in items.values())
    purchase_order.status = 'received' if fully_received else 'partially_received'
    purchase_order.save(update_fields=['received_amount', 'status', 'updated_at'])

    logger.info(f"Received {receipt.receipt_number} on {purchase_order.po_number}: {receipt.amount}")
    return receipt


@transaction.atomic
def record_supplier_payment(purchase_order, amount, payment_method='bank_transfer', payment_date=None,
                            reference='', notes='', user=None):
    """Pay a supplier against received goods; never more than the outstanding payable"""
    purchase_order = PurchaseOrder.objects.select_for_update().select_related('supplier').get(pk=purchase_order.pk)
    amount = money(amount)
    if amount <= 0:
        raise PurchasingError('Payment amount must be greater than zero.')
    if purchase_order.status == 'cancelled':
        raise PurchasingError('Cannot pay a cancelled purchase order.')
    if amount > purchase_order.outstanding_payable:
        raise PurchasingError(
            f"Payment of {amount} exceeds the outstanding payable of {purchase_order.outstanding_payable} "
            f"on {purchase_order.po_number}."
        )

    payment = SupplierPayment.objects.create(
        payment_number=next_document_number('supplier_payment', prefix='SPAY', width=6),
        purchase_order=purchase_order,
        supplier=purchase_order.supplier,
        amount=amount,
        payment_date=payment_date or timezone.localdate(),
        payment_method=payment_method,
        reference=reference or '',
        notes=notes or '',
        user=user,
    )
    payment.journal_entry = posting.post_supplier_payment(payment, user=user)
    payment.save(update_fields=['journal_entry'])

    purchase_order.amount_paid += amount
    purchase_order.refresh_payment_status()
    purchase_order.save(update_fields=['amount_paid', 'payment_status', 'updated_at'])
    logger.info(f"Supplier payment {payment.payment_number} of {amount} on {purchase_order.po_number}")
    return payment
