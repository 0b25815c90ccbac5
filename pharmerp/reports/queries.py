"""
Report and dashboard queries.

Each function returns plain JSON-ready data (floats, ISO dates) so results
can be cached as-is. Cached entries are dropped by the cache signals when
invoices, payments, expenses, orders or stock change.
"""
import logging
from datetime import date
from decimal import Decimal

from django.db.models import Sum, Count, F, Q, DecimalField, ExpressionWrapper
from django.db.models.functions import TruncMonth
from django.utils import timezone

from pharmerp.accounting import statements
from pharmerp.catalog.models import Product
from pharmerp.catalog.utils import stock_status, low_stock_q, expiring_q, suggested_reorder_quantity
from pharmerp.core.cache_utils import (
    cached_query, DASHBOARD_CACHE_TTL, DASHBOARD_PREFIX, REPORTS_CACHE_TTL, REPORTS_PREFIX,
)
from pharmerp.core.preferences import get_expiry_warning_days
from pharmerp.expenses.models import Expense
from pharmerp.orders.models import Order
from pharmerp.parties.models import Customer
from pharmerp.purchasing.models import PurchaseOrderItem
from pharmerp.sales.models import Invoice, InvoiceItem

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
MONEY_FIELD = DecimalField(max_digits=18, decimal_places=2)


def _f(value):
    return float(value or 0)


def _live_invoices(date_from=None, date_to=None):
    invoices = Invoice.objects.exclude(payment_status='void')
    if date_from:
        invoices = invoices.filter(invoice_date__gte=date_from)
    if date_to:
        invoices = invoices.filter(invoice_date__lte=date_to)
    return invoices


def _balance_due_expr():
    return ExpressionWrapper(F('grand_total') - F('refunded_amount') - F('amount_paid'), output_field=MONEY_FIELD)


def _month_starts(today, months):
    """First day of each of the last `months` months, oldest first"""
    starts = []
    year, month = today.year, today.month
    for _ in range(months):
        starts.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


@cached_query(cache_ttl=DASHBOARD_CACHE_TTL, key_prefix=DASHBOARD_PREFIX)
def dashboard_summary(date_from, date_to):
    """Headline KPIs for the dashboard"""
    today = timezone.localdate()
    pnl = statements.profit_and_loss(date_from, date_to)

    invoices = _live_invoices(date_from, date_to)
    sales = invoices.aggregate(count=Count('id'), total=Sum('grand_total'), refunded=Sum('refunded_amount'))
    outstanding = Invoice.objects.filter(payment_status__in=['pending', 'partial']).aggregate(
        total=Sum(_balance_due_expr()))['total']
    overdue = Invoice.objects.filter(payment_status__in=['pending', 'partial'], due_date__lt=today)

    products = Product.objects.exclude(status='inactive')
    months = _month_starts(today, 6)
    monthly = {
        row['month']: row for row in _live_invoices(date_from=months[0])
        .annotate(month=TruncMonth('invoice_date'))
        .values('month')
        .annotate(total=Sum('grand_total'), refunded=Sum('refunded_amount'), count=Count('id'))
    }

    def month_row(start):
        row = monthly.get(start, {})
        return {
            'month': start.strftime('%Y-%m'),
            'sales': _f((row.get('total') or ZERO) - (row.get('refunded') or ZERO)),
            'invoice_count': row.get('count', 0),
        }

    return {
        'date_from': date_from.isoformat(),
        'date_to': date_to.isoformat(),
        'total_revenue': pnl['total_revenue'],
        'total_expenses': pnl['total_cost_of_sales'] + pnl['total_operating_expenses'],
        'net_profit': pnl['net_income'],
        'sales_total': _f((sales['total'] or ZERO) - (sales['refunded'] or ZERO)),
        'invoice_count': sales['count'],
        'outstanding_receivables': _f(outstanding),
        'overdue_invoices': overdue.count(),
        'total_products': products.count(),
        'total_customers': Customer.objects.filter(is_active=True).count(),
        'low_stock_count': products.filter(low_stock_q()).count(),
        'expiring_count': products.filter(expiring_q(get_expiry_warning_days(), today=today)).count(),
        'pending_orders': Order.objects.filter(status__in=['pending', 'in_progress']).count(),
        'pending_expenses': Expense.objects.filter(status='pending').count(),
        'monthly_sales': [month_row(start) for start in months],
    }


@cached_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix=REPORTS_PREFIX)
def sales_summary(date_from, date_to):
    """Invoice totals for a period with a daily breakdown"""
    invoices = _live_invoices(date_from, date_to)
    totals = invoices.aggregate(
        count=Count('id'),
        subtotal=Sum('subtotal'),
        discount=Sum('discount_amount'),
        tax=Sum('tax_amount'),
        total=Sum('grand_total'),
        paid=Sum('amount_paid'),
        refunded=Sum('refunded_amount'),
    )
    by_status = {row['payment_status']: row['count']
                 for row in invoices.values('payment_status').annotate(count=Count('id'))}
    daily = (
        invoices.values('invoice_date')
        .annotate(count=Count('id'), total=Sum('grand_total'), paid=Sum('amount_paid'))
        .order_by('invoice_date')
    )
    count = totals['count'] or 0
    net_sales = (totals['total'] or ZERO) - (totals['refunded'] or ZERO)

    return {
        'date_from': date_from.isoformat(),
        'date_to': date_to.isoformat(),
        'invoice_count': count,
        'subtotal': _f(totals['subtotal']),
        'discount': _f(totals['discount']),
        'tax': _f(totals['tax']),
        'gross_sales': _f(totals['total']),
        'refunds': _f(totals['refunded']),
        'net_sales': _f(net_sales),
        'collected': _f(totals['paid']),
        'average_invoice': _f(net_sales / count) if count else 0.0,
        'by_payment_status': by_status,
        'daily': [{
            'date': row['invoice_date'].isoformat(),
            'invoice_count': row['count'],
            'total': _f(row['total']),
            'collected': _f(row['paid']),
        } for row in daily],
    }


@cached_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix=REPORTS_PREFIX)
def top_products(date_from, date_to, limit=10):
    """Best selling products by revenue, net of refunded quantities"""
    net_qty = ExpressionWrapper(F('quantity') - F('refunded_quantity'), output_field=MONEY_FIELD)
    items = InvoiceItem.objects.filter(
        invoice__invoice_date__gte=date_from,
        invoice__invoice_date__lte=date_to,
    ).exclude(invoice__payment_status='void')
    rows = (
        items.values('product_id', 'product__name', 'product__sku')
        .annotate(
            quantity=Sum(net_qty),
            revenue=Sum('total'),
            cost=Sum(ExpressionWrapper(F('quantity') * F('unit_cost'), output_field=MONEY_FIELD)),
            invoice_count=Count('invoice', distinct=True),
        )
        .order_by('-revenue')[:limit]
    )
    return [{
        'product_id': row['product_id'],
        'product_name': row['product__name'],
        'sku': row['product__sku'],
        'quantity_sold': _f(row['quantity']),
        'revenue': _f(row['revenue']),
        'gross_profit': _f((row['revenue'] or ZERO) - (row['cost'] or ZERO)),
        'invoice_count': row['invoice_count'],
    } for row in rows]


@cached_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix=REPORTS_PREFIX)
def inventory_summary():
    """Stock value at cost and retail, per category, with stock level counts"""
    products = Product.objects.exclude(status='inactive')
    cost_expr = ExpressionWrapper(F('quantity') * F('cost_price'), output_field=MONEY_FIELD)
    retail_expr = ExpressionWrapper(F('quantity') * F('selling_price'), output_field=MONEY_FIELD)

    totals = products.aggregate(quantity=Sum('quantity'), cost=Sum(cost_expr), retail=Sum(retail_expr))
    categories = (
        products.values('category_id', 'category__name')
        .annotate(product_count=Count('id'), quantity=Sum('quantity'), cost=Sum(cost_expr), retail=Sum(retail_expr))
        .order_by('category__name')
    )

    levels = {'out_of_stock': 0, 'critical': 0, 'low': 0, 'normal': 0}
    for qty, threshold in products.values_list('quantity', 'low_stock_threshold'):
        levels[stock_status(qty, threshold)] += 1
    statuses = {row['status']: row['count'] for row in
                Product.objects.values('status').annotate(count=Count('id'))}

    return {
        'total_products': products.count(),
        'total_quantity': _f(totals['quantity']),
        'total_cost_value': _f(totals['cost']),
        'total_retail_value': _f(totals['retail']),
        'potential_margin': _f((totals['retail'] or ZERO) - (totals['cost'] or ZERO)),
        'stock_levels': levels,
        'product_status': {key: statuses.get(key, 0) for key, _ in Product.STATUS_CHOICES},
        'categories': [{
            'category_id': row['category_id'],
            'category_name': row['category__name'] or 'Uncategorized',
            'product_count': row['product_count'],
            'quantity': _f(row['quantity']),
            'cost_value': _f(row['cost']),
            'retail_value': _f(row['retail']),
        } for row in categories],
    }


@cached_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix=REPORTS_PREFIX)
def customer_summary(date_from, date_to, limit=10):
    """Customer counts and the top customers by net sales in the period"""
    in_period = Q(invoices__invoice_date__gte=date_from, invoices__invoice_date__lte=date_to) & \
        ~Q(invoices__payment_status='void')
    customers = Customer.objects.annotate(
        invoice_count=Count('invoices', filter=in_period),
        sales=Sum('invoices__grand_total', filter=in_period),
        refunded=Sum('invoices__refunded_amount', filter=in_period),
    )
    top = customers.filter(invoice_count__gt=0).order_by('-sales')[:limit]
    outstanding = Invoice.objects.filter(payment_status__in=['pending', 'partial']).aggregate(
        total=Sum(_balance_due_expr()))['total']

    return {
        'total_customers': Customer.objects.count(),
        'active_customers': Customer.objects.filter(is_active=True).count(),
        'new_customers': Customer.objects.filter(created_at__date__gte=date_from,
                                                 created_at__date__lte=date_to).count(),
        'customers_with_purchases': customers.filter(invoice_count__gt=0).count(),
        'outstanding_receivables': _f(outstanding),
        'top_customers': [{
            'customer_id': c.id,
            'customer_name': c.name,
            'company': c.company,
            'invoice_count': c.invoice_count,
            'net_sales': _f((c.sales or ZERO) - (c.refunded or ZERO)),
        } for c in top],
    }


@cached_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix=REPORTS_PREFIX)
def expense_summary(date_from, date_to):
    """Approved expenses by category label and by month, plus pending totals"""
    expenses = Expense.objects.filter(expense_date__gte=date_from, expense_date__lte=date_to)
    approved = expenses.filter(status='approved')
    by_category = approved.values('account_category').annotate(count=Count('id'), total=Sum('amount')) \
        .order_by('-total')
    by_month = approved.annotate(month=TruncMonth('expense_date')).values('month') \
        .annotate(count=Count('id'), total=Sum('amount')).order_by('month')
    pending = expenses.filter(status='pending').aggregate(count=Count('id'), total=Sum('amount'))

    return {
        'date_from': date_from.isoformat(),
        'date_to': date_to.isoformat(),
        'total_approved': _f(approved.aggregate(total=Sum('amount'))['total']),
        'approved_count': approved.count(),
        'pending_count': pending['count'],
        'pending_total': _f(pending['total']),
        'by_category': [{'category': row['account_category'], 'count': row['count'], 'total': _f(row['total'])}
                        for row in by_category],
        'by_month': [{'month': row['month'].strftime('%Y-%m'), 'count': row['count'], 'total': _f(row['total'])}
                     for row in by_month],
    }


def stock_ordering(category=None):
    """Low stock products with a suggested reorder quantity and their last supplier"""
    products = Product.objects.select_related('category').filter(low_stock_q()).exclude(status='inactive')
    if category:
        products = products.filter(category_id=category)

    rows = []
    for product in products.order_by('quantity', 'name'):
        last_line = (PurchaseOrderItem.objects.select_related('purchase_order__supplier')
                     .filter(product=product).exclude(purchase_order__status='cancelled')
                     .order_by('-purchase_order__order_date', '-id').first())
        suggested = suggested_reorder_quantity(product.quantity, product.low_stock_threshold)
        unit_cost = last_line.unit_price if last_line else product.cost_price
        rows.append({
            'product_id': product.id,
            'product_name': product.name,
            'sku': product.sku,
            'category': product.category.name if product.category else None,
            'quantity': _f(product.quantity),
            'low_stock_threshold': _f(product.low_stock_threshold),
            'stock_status': stock_status(product.quantity, product.low_stock_threshold),
            'suggested_reorder_quantity': _f(suggested),
            'estimated_cost': _f(suggested * unit_cost),
            'last_supplier_id': last_line.purchase_order.supplier_id if last_line else None,
            'last_supplier_name': last_line.purchase_order.supplier.name if last_line else None,
            'last_unit_price': _f(last_line.unit_price) if last_line else None,
        })
    return rows
