"""Pricing for production and refining orders"""
from decimal import Decimal

from pharmerp.core.utils import money

DEFAULT_PROFIT_MARGIN = Decimal('20')
DEFAULT_ORDER_TAX_RATE = Decimal('14')


def _dec(value):
    return Decimal(str(value or 0))


def calculate_order_financials(raw_materials_cost, packaging_cost, additional_fees=0,
                               profit_margin_percentage=DEFAULT_PROFIT_MARGIN, tax_rate=DEFAULT_ORDER_TAX_RATE):
    """
    Derive cost, price and profit for an order.

    subtotal = raw + packaging; total_cost = subtotal + fees;
    selling_price = total_cost * (1 + margin / 100);
    tax = selling_price * tax_rate / 100; revenue = selling_price + tax;
    profit = selling_price - total_cost.

    Intermediate values keep full precision; each returned value is rounded
    half-up to two places.
    """
    raw = _dec(raw_materials_cost)
    packaging = _dec(packaging_cost)
    fees = _dec(additional_fees)
    margin = _dec(profit_margin_percentage)

    if min(raw, packaging, fees) < 0:
        raise ValueError('Costs cannot be negative.')
    if margin < 0:
        raise ValueError('Profit margin cannot be negative.')

    subtotal = raw + packaging
    total_cost = subtotal + fees
    selling_price = total_cost * (1 + margin / 100)
    tax_amount = selling_price * _dec(tax_rate) / 100
    revenue = selling_price + tax_amount
    profit = selling_price - total_cost

    return {
        'raw_materials_cost': money(raw),
        'packaging_cost': money(packaging),
        'additional_fees': money(fees),
        'subtotal': money(subtotal),
        'total_cost': money(total_cost),
        'profit_margin_percentage': money(margin),
        'selling_price': money(selling_price),
        'tax_amount': money(tax_amount),
        'revenue': money(revenue),
        'profit': money(profit),
    }
