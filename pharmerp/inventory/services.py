"""
Stock movement services.

Every change to on-hand quantity goes through these functions. Each writes
WarehouseStock, the product's aggregate quantity, batch remainders and one
InventoryTransaction per warehouse touched, inside a single transaction.
"""
import logging
from collections import OrderedDict
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Sum, F

from pharmerp.catalog.models import Product
from pharmerp.core.numbering import next_document_number
from .models import WarehouseStock, Batch, InventoryTransaction, StockAdjustment

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


class StockError(ValueError):
    """Invalid stock operation"""


class InsufficientStockError(StockError):
    """Requested quantity exceeds available stock"""

    def __init__(self, product, required, available):
        self.product = product
        self.required = Decimal(str(required))
        self.available = Decimal(str(available))
        super().__init__(
            f"Insufficient stock for {product.name}: required {self.required}, available {self.available}"
        )

    def to_dict(self):
        return {
            'error': str(self),
            'code': 'INSUFFICIENT_STOCK',
            'product': self.product.id,
            'product_name': self.product.name,
            'required': float(self.required),
            'available': float(self.available),
        }


def _qty(value):
    try:
        quantity = Decimal(str(value))
    except InvalidOperation:
        raise StockError(f"Invalid quantity: {value!r}")
    if not quantity.is_finite() or quantity <= 0:
        raise StockError('Quantity must be greater than zero.')
    return quantity


def _lock_stock(product, warehouse):
    stock, _ = WarehouseStock.objects.select_for_update().get_or_create(product=product, warehouse=warehouse)
    return stock


def _sync_product_quantity(product):
    """Recompute the product's aggregate quantity and stock-driven status"""
    total = WarehouseStock.objects.filter(product=product).aggregate(total=Sum('quantity'))['total'] or ZERO
    current_status = Product.objects.filter(pk=product.pk).values_list('status', flat=True).first()
    new_status = current_status
    if total <= 0 and current_status == 'active':
        new_status = 'out_of_stock'
    elif total > 0 and current_status == 'out_of_stock':
        new_status = 'active'
    Product.objects.filter(pk=product.pk).update(quantity=total, status=new_status)
    product.quantity = total
    product.status = new_status
    return total


def available_quantity(product, warehouse=None):
    """Quantity not yet reserved, across all warehouses or in one"""
    stocks = WarehouseStock.objects.filter(product=product)
    if warehouse is not None:
        stocks = stocks.filter(warehouse=warehouse)
    totals = stocks.aggregate(quantity=Sum('quantity'), reserved=Sum('reserved_quantity'))
    return (totals['quantity'] or ZERO) - (totals['reserved'] or ZERO)


def check_availability(lines, warehouse=None):
    """
    Validate that every (product, quantity) line can be issued.

    Quantities of repeated products are summed. Raises InsufficientStockError
    for the first product that is short.
    """
    required = OrderedDict()
    for product, quantity in lines:
        entry = required.setdefault(product.pk, [product, ZERO])
        entry[1] += Decimal(str(quantity))

    for product, quantity in required.values():
        available = available_quantity(product, warehouse)
        if available < quantity:
            raise InsufficientStockError(product, quantity, available)


def _consume_batches(product, warehouse, quantity):
    """Deduct from usable batches earliest-expiry first; returns consumed (batch, qty) pairs"""
    consumed = []
    remaining = quantity
    batches = Batch.objects.select_for_update().filter(
        product=product,
        warehouse=warehouse,
        status='active',
        remaining_quantity__gt=0,
    ).order_by(F('expiry_date').asc(nulls_last=True), 'id')
    for batch in batches:
        if remaining <= 0:
            break
        take = min(batch.remaining_quantity, remaining)
        batch.remaining_quantity -= take
        batch.save(update_fields=['remaining_quantity', 'updated_at'])
        consumed.append((batch, take))
        remaining -= take
    return consumed


def _receive_batch(product, warehouse, quantity, batch_number, expiry_date=None,
                   manufacture_date=None, supplier=None, unit_cost=ZERO):
    batch, created = Batch.objects.select_for_update().get_or_create(
        batch_number=batch_number,
        defaults={
            'product': product,
            'warehouse': warehouse,
            'supplier': supplier,
            'expiry_date': expiry_date,
            'manufacture_date': manufacture_date,
            'unit_cost': unit_cost,
        },
    )
    if not created and (batch.product_id != product.pk or batch.warehouse_id != warehouse.pk):
        raise StockError(f"Batch {batch_number} belongs to another product or warehouse.")
    batch.quantity += quantity
    batch.remaining_quantity += quantity
    batch.save(update_fields=['quantity', 'remaining_quantity', 'updated_at'])
    return batch


@transaction.atomic
def receive_stock(product, warehouse, quantity, unit_cost=None, transaction_type='purchase',
                  reference_type='', reference_id='', notes='', user=None, batch_number=None,
                  expiry_date=None, manufacture_date=None, supplier=None):
    """Add stock to a warehouse, optionally into a batch"""
    quantity = _qty(quantity)
    unit_cost = Decimal(str(unit_cost)) if unit_cost is not None else product.cost_price

    stock = _lock_stock(product, warehouse)
    stock.quantity += quantity
    stock.save(update_fields=['quantity', 'updated_at'])

    batch = None
    if batch_number:
        batch = _receive_batch(product, warehouse, quantity, batch_number, expiry_date,
                               manufacture_date, supplier, unit_cost)

    txn = InventoryTransaction.objects.create(
        product=product,
        warehouse=warehouse,
        batch=batch,
        transaction_type=transaction_type,
        quantity=quantity,
        unit_cost=unit_cost,
        reference_type=reference_type,
        reference_id=str(reference_id or ''),
        notes=notes,
        user=user,
    )
    _sync_product_quantity(product)
    logger.info(f"Received {quantity} of {product.sku} into {warehouse.code} ({transaction_type} {reference_type}:{reference_id})")
    return txn


@transaction.atomic
def issue_stock(product, quantity, transaction_type='sale', warehouse=None, reference_type='',
                reference_id='', notes='', user=None):
    """
    Remove stock, spreading the quantity across warehouses in order.

    Raises InsufficientStockError when the available quantity (on hand minus
    reserved) is short. Returns the created transactions.
    """
    quantity = _qty(quantity)

    stocks = WarehouseStock.objects.select_for_update().select_related('warehouse').filter(product=product)
    if warehouse is not None:
        stocks = stocks.filter(warehouse=warehouse)
    stocks = list(stocks.order_by('warehouse_id'))

    available = sum((s.quantity - s.reserved_quantity for s in stocks), ZERO)
    if available < quantity:
        raise InsufficientStockError(product, quantity, available)

    transactions = []
    remaining = quantity
    for stock in stocks:
        if remaining <= 0:
            break
        take = min(stock.quantity - stock.reserved_quantity, remaining)
        if take <= 0:
            continue
        stock.quantity -= take
        stock.save(update_fields=['quantity', 'updated_at'])
        # one transaction per batch drawn, plus one for stock held outside batches
        portions = _consume_batches(product, stock.warehouse, take)
        unbatched = take - sum((moved for _, moved in portions), ZERO)
        if unbatched > 0:
            portions.append((None, unbatched))
        for batch, moved in portions:
            transactions.append(InventoryTransaction.objects.create(
                product=product,
                warehouse=stock.warehouse,
                batch=batch,
                transaction_type=transaction_type,
                quantity=-moved,
                unit_cost=product.cost_price,
                reference_type=reference_type,
                reference_id=str(reference_id or ''),
                notes=notes,
                user=user,
            ))
        remaining -= take

    _sync_product_quantity(product)
    logger.info(f"Issued {quantity} of {product.sku} ({transaction_type} {reference_type}:{reference_id})")
    return transactions


@transaction.atomic
def adjust_stock(product, warehouse, adjustment_type, quantity, reason, notes='', user=None):
    """
    Correct stock in one warehouse.

    increase/decrease move by ``quantity``; recount sets the counted quantity.
    """
    quantity = Decimal(str(quantity))
    stock = _lock_stock(product, warehouse)
    previous = stock.quantity

    if adjustment_type == 'increase':
        new_quantity = previous + _qty(quantity)
    elif adjustment_type == 'decrease':
        new_quantity = previous - _qty(quantity)
        if new_quantity < 0:
            raise InsufficientStockError(product, quantity, previous)
    elif adjustment_type == 'recount':
        if quantity < 0:
            raise StockError('Counted quantity cannot be negative.')
        new_quantity = quantity
    else:
        raise StockError(f"Unknown adjustment type: {adjustment_type}")

    if new_quantity < stock.reserved_quantity:
        raise StockError('Adjusted quantity would fall below the reserved quantity.')

    difference = new_quantity - previous
    stock.quantity = new_quantity
    stock.save(update_fields=['quantity', 'updated_at'])

    adjustment = StockAdjustment.objects.create(
        adjustment_number=next_document_number('adjustment', prefix='ADJ', width=6),
        product=product,
        warehouse=warehouse,
        adjustment_type=adjustment_type,
        previous_quantity=previous,
        adjusted_quantity=new_quantity,
        difference=difference,
        reason=reason,
        notes=notes,
        adjusted_by=user,
    )

    if difference != 0:
        if difference < 0:
            _consume_batches(product, warehouse, -difference)
        InventoryTransaction.objects.create(
            product=product,
            warehouse=warehouse,
            transaction_type='adjustment',
            quantity=difference,
            unit_cost=product.cost_price,
            reference_type='adjustment',
            reference_id=adjustment.adjustment_number,
            notes=notes or reason,
            user=user,
        )

    _sync_product_quantity(product)
    logger.info(f"Adjusted {product.sku} in {warehouse.code}: {previous} -> {new_quantity} ({reason})")
    return adjustment


@transaction.atomic
def transfer_stock(product, from_warehouse, to_warehouse, quantity, notes='', user=None):
    """Move stock between warehouses, carrying batch expiry along"""
    quantity = _qty(quantity)
    if from_warehouse.pk == to_warehouse.pk:
        raise StockError('Source and destination warehouses must differ.')

    source = _lock_stock(product, from_warehouse)
    available = source.quantity - source.reserved_quantity
    if available < quantity:
        raise InsufficientStockError(product, quantity, available)

    destination = _lock_stock(product, to_warehouse)
    source.quantity -= quantity
    source.save(update_fields=['quantity', 'updated_at'])
    destination.quantity += quantity
    destination.save(update_fields=['quantity', 'updated_at'])

    for batch, moved in _consume_batches(product, from_warehouse, quantity):
        _receive_batch(product, to_warehouse, moved, f"{batch.batch_number}-{to_warehouse.code}",
                       batch.expiry_date, batch.manufacture_date, batch.supplier, batch.unit_cost)

    reference = f"{from_warehouse.code}->{to_warehouse.code}"
    out_txn = InventoryTransaction.objects.create(
        product=product, warehouse=from_warehouse, transaction_type='transfer_out',
        quantity=-quantity, unit_cost=product.cost_price, reference_type='transfer',
        reference_id=reference, notes=notes, user=user,
    )
    in_txn = InventoryTransaction.objects.create(
        product=product, warehouse=to_warehouse, transaction_type='transfer_in',
        quantity=quantity, unit_cost=product.cost_price, reference_type='transfer',
        reference_id=reference, notes=notes, user=user,
    )
    _sync_product_quantity(product)
    logger.info(f"Transferred {quantity} of {product.sku} {reference}")
    return out_txn, in_txn


@transaction.atomic
def restore_issued_stock(reference_type, reference_id, transaction_type='return', notes='', user=None):
    """
    Put back everything issued for a document, into the warehouses and
    batches it left.

    Used when a sale is voided or an order is cancelled.
    """
    issued = InventoryTransaction.objects.select_related('product', 'warehouse', 'batch').filter(
        reference_type=reference_type,
        reference_id=str(reference_id),
        quantity__lt=0,
    )
    restored = []
    for txn in issued.order_by('id'):
        txn_in = receive_stock(
            product=txn.product,
            warehouse=txn.warehouse,
            quantity=-txn.quantity,
            unit_cost=txn.unit_cost,
            transaction_type=transaction_type,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            user=user,
        )
        if txn.batch is not None:
            Batch.objects.filter(pk=txn.batch_id).update(
                remaining_quantity=F('remaining_quantity') - txn.quantity)
            txn_in.batch = txn.batch
            txn_in.save(update_fields=['batch'])
        restored.append(txn_in)
    return restored
