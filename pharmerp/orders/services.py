"""
Production and refining order workflows.

Creating an order consumes its materials from stock immediately. Cancelling
puts them back; completing receives the finished output into stock at the
order's cost.
"""
import json
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.utils import timezone

from pharmerp.catalog.models import Product
from pharmerp.core.numbering import next_document_number, year_period
from pharmerp.core.preferences import get_vat_rate
from pharmerp.core.utils import money
from pharmerp.inventory.services import check_availability, issue_stock, receive_stock, restore_issued_stock
from pharmerp.locations.models import Warehouse
from .calculator import calculate_order_financials, DEFAULT_PROFIT_MARGIN
from .models import Order, OrderItem, OrderFee

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')

ORDER_TRANSITIONS = {
    'pending': {'in_progress', 'cancelled'},
    'in_progress': {'completed', 'cancelled'},
}


class OrderError(ValueError):
    """Business rule violation in an order workflow"""


class InvalidTransitionError(OrderError):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change order status from {current} to {target}.")


def parse_material_list(value, field='materials'):
    """
    Accept a list of material dicts or a JSON string holding one.

    Each entry needs a product (id) and quantity; unit_cost is optional.
    Malformed input raises OrderError.
    """
    if value in (None, ''):
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise OrderError(f"{field} must be a list or a JSON array.")
    if not isinstance(value, list):
        raise OrderError(f"{field} must be a list or a JSON array.")

    parsed = []
    for index, entry in enumerate(value, start=1):
        if not isinstance(entry, dict):
            raise OrderError(f"{field} entry {index} must be an object.")
        product_id = entry.get('product', entry.get('product_id'))
        if not product_id:
            raise OrderError(f"{field} entry {index} has no product.")
        try:
            product_id = int(product_id)
            quantity = Decimal(str(entry.get('quantity')))
            unit_cost = entry.get('unit_cost')
            unit_cost = None if unit_cost in (None, '') else Decimal(str(unit_cost))
        except (InvalidOperation, TypeError, ValueError):
            raise OrderError(f"{field} entry {index} has an invalid number.")
        if not quantity.is_finite() or (unit_cost is not None and not unit_cost.is_finite()):
            raise OrderError(f"{field} entry {index} has an invalid number.")
        if quantity <= 0:
            raise OrderError(f"{field} entry {index} quantity must be greater than zero.")
        if unit_cost is not None and unit_cost < 0:
            raise OrderError(f"{field} entry {index} unit cost cannot be negative.")
        parsed.append({'product_id': product_id, 'quantity': quantity, 'unit_cost': unit_cost})
    return parsed


def parse_fee_list(value):
    """Fees as a list (or JSON string) of {label, amount}"""
    if value in (None, ''):
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise OrderError('fees must be a list or a JSON array.')
    if not isinstance(value, list):
        raise OrderError('fees must be a list or a JSON array.')

    fees = []
    for index, entry in enumerate(value, start=1):
        if not isinstance(entry, dict):
            raise OrderError(f"Fee {index} must be an object.")
        try:
            amount = money(entry.get('amount'))
        except ValueError:
            raise OrderError(f"Fee {index} has an invalid amount.")
        if amount < 0:
            raise OrderError(f"Fee {index} amount cannot be negative.")
        fees.append({'label': str(entry.get('label') or entry.get('fee_label') or 'Fee')[:100], 'amount': amount})
    return fees


def _resolve_products(lines):
    ids = {line['product_id'] for line in lines}
    products = Product.objects.in_bulk(ids)
    missing = [str(pk) for pk in ids if products.get(pk) is None]
    if missing:
        raise OrderError(f"Unknown product(s): {', '.join(sorted(missing))}")
    for line in lines:
        line['product'] = products[line['product_id']]
        if line['unit_cost'] is None:
            line['unit_cost'] = line['product'].cost_price
        line['subtotal'] = money(line['quantity'] * line['unit_cost'])
    return lines


def _apply_financials(order):
    figures = calculate_order_financials(
        order.raw_materials_cost,
        order.packaging_cost,
        order.additional_fees,
        order.profit_margin_percentage,
        order.tax_rate,
    )
    for field in ('total_cost', 'selling_price', 'tax_amount', 'revenue', 'profit'):
        setattr(order, field, figures[field])
    return figures


def next_order_number(order_type):
    return next_document_number(f"order_{order_type}", prefix=f"ORD-{order_type.upper()}",
                                period=year_period(), width=3)


@transaction.atomic
def create_order(order_type, materials=None, packaging=None, fees=None, customer=None, user=None,
                 warehouse=None, description='', target_product=None, expected_output_quantity=None,
                 batch_number='', refining_steps=None, profit_margin_percentage=None,
                 transportation_cost=ZERO):
    """
    Create an order and consume its materials.

    Stock for every material and packaging line is checked before any is
    issued, so a shortfall leaves nothing behind.
    """
    if order_type not in dict(Order.TYPE_CHOICES):
        raise OrderError(f"Unknown order type: {order_type}")

    raw_lines = _resolve_products(parse_material_list(materials, 'materials'))
    packaging_lines = _resolve_products(parse_material_list(packaging, 'packaging'))
    fee_lines = parse_fee_list(fees)
    if transportation_cost and money(transportation_cost) > 0:
        fee_lines.append({'label': 'Transportation', 'amount': money(transportation_cost)})
    if not raw_lines and not packaging_lines:
        raise OrderError('An order needs at least one material.')
    if order_type == 'refining' and target_product is None:
        raise OrderError('Refining orders need a target product.')
    if expected_output_quantity is not None and Decimal(str(expected_output_quantity)) <= 0:
        raise OrderError('Expected output quantity must be greater than zero.')

    all_lines = [('raw', line) for line in raw_lines] + [('packaging', line) for line in packaging_lines]
    check_availability([(line['product'], line['quantity']) for _, line in all_lines], warehouse)

    order = Order(
        order_number=next_order_number(order_type),
        order_type=order_type,
        customer=customer,
        user=user,
        warehouse=warehouse,
        description=description or '',
        target_product=target_product,
        expected_output_quantity=expected_output_quantity,
        batch_number=batch_number or '',
        refining_steps=refining_steps or [],
        profit_margin_percentage=DEFAULT_PROFIT_MARGIN if profit_margin_percentage is None else profit_margin_percentage,
        tax_rate=get_vat_rate(),
        raw_materials_cost=sum((line['subtotal'] for line in raw_lines), ZERO),
        packaging_cost=sum((line['subtotal'] for line in packaging_lines), ZERO),
        additional_fees=sum((fee['amount'] for fee in fee_lines), ZERO),
    )
    try:
        _apply_financials(order)
    except ValueError as exc:
        raise OrderError(str(exc))
    order.save()

    for material_type, line in all_lines:
        OrderItem.objects.create(
            order=order,
            product=line['product'],
            material_type=material_type,
            quantity=line['quantity'],
            unit_cost=line['unit_cost'],
            subtotal=line['subtotal'],
        )
        issue_stock(
            line['product'],
            line['quantity'],
            transaction_type='production_consume',
            warehouse=warehouse,
            reference_type='order',
            reference_id=order.order_number,
            notes=f"Consumed by {order.order_number}",
            user=user,
        )
    OrderFee.objects.bulk_create([OrderFee(order=order, fee_label=f['label'], amount=f['amount']) for f in fee_lines])

    logger.info(f"Created {order_type} order {order.order_number}: cost {order.total_cost}, revenue {order.revenue}")
    return order


def _output_warehouse(order):
    return order.warehouse if order.warehouse_id else Warehouse.get_default()


@transaction.atomic
def change_order_status(order, new_status, user=None):
    """Move an order through its status machine and apply the stock effects"""
    order = Order.objects.select_for_update().get(pk=order.pk)
    if new_status not in ORDER_TRANSITIONS.get(order.status, set()):
        raise InvalidTransitionError(order.status, new_status)

    previous = order.status
    order.status = new_status
    if new_status == 'cancelled':
        restore_issued_stock('order', order.order_number, transaction_type='return',
                             notes=f"Order {order.order_number} cancelled", user=user)
        order.cancelled_at = timezone.now()
    elif new_status == 'completed':
        if order.target_product_id and order.expected_output_quantity:
            quantity = order.expected_output_quantity
            receive_stock(
                order.target_product,
                _output_warehouse(order),
                quantity,
                unit_cost=money(order.total_cost / quantity),
                transaction_type='production_output',
                reference_type='order',
                reference_id=order.order_number,
                notes=f"Output of {order.order_number}",
                user=user,
                batch_number=order.batch_number or None,
            )
        order.completed_at = timezone.now()
    order.save()
    logger.info(f"Order {order.order_number} status {previous} -> {new_status}")
    return order


@transaction.atomic
def update_profit_margin(order, profit_margin_percentage):
    """Recalculate selling price, tax, revenue and profit for a new margin"""
    if order.status == 'cancelled':
        raise OrderError('Cancelled orders cannot be repriced.')
    order.profit_margin_percentage = Decimal(str(profit_margin_percentage))
    try:
        _apply_financials(order)
    except ValueError as exc:
        raise OrderError(str(exc))
    order.save(update_fields=['profit_margin_percentage', 'total_cost', 'selling_price', 'tax_amount', 'revenue',
                              'profit', 'updated_at'])
    return order
