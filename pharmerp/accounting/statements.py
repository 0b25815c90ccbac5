"""
Financial statements computed from posted journal lines.

All amounts are returned as floats, rounded to two places, ready to be
serialized. Results are cached under the statements namespace, which is
invalidated whenever journal entries or sales documents change.
"""
import logging
from collections import OrderedDict
from decimal import Decimal

from django.db.models import Sum, Q
from django.utils import timezone

from pharmerp.core.cache_utils import cached_query, STATEMENTS_CACHE_TTL, STATEMENTS_PREFIX
from pharmerp.core.utils import money
from . import chart
from .models import Account, JournalEntryLine
from .posting import POSTED_STATUSES

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
BALANCE_TOLERANCE = Decimal('0.01')

AGING_BUCKETS = ['current', '1_30', '31_60', '61_90', 'over_90']

CASH_FLOW_LABELS = {
    'invoice': 'Sales invoices',
    'customer_payment': 'Customer payments',
    'refund': 'Customer refunds',
    'expense': 'Expenses',
    'supplier_payment': 'Supplier payments',
    'purchase_receipt': 'Purchase receipts',
    'reversal': 'Reversals',
    '': 'Manual entries',
}


def _f(value):
    return float(money(value))


def posted_lines(date_from=None, date_to=None):
    lines = JournalEntryLine.objects.filter(entry__status__in=POSTED_STATUSES)
    if date_from:
        lines = lines.filter(entry__entry_date__gte=date_from)
    if date_to:
        lines = lines.filter(entry__entry_date__lte=date_to)
    return lines


def account_totals(date_from=None, date_to=None, account_type=None):
    """{account_id: (debit, credit)} of posted lines in the range"""
    lines = posted_lines(date_from, date_to)
    if account_type:
        lines = lines.filter(account__account_type=account_type)
    return {
        row['account_id']: (row['debit'] or ZERO, row['credit'] or ZERO)
        for row in lines.values('account_id').annotate(debit=Sum('debit'), credit=Sum('credit'))
    }


def _natural(account, debit, credit):
    return debit - credit if account.is_debit_normal else credit - debit


@cached_query(cache_ttl=STATEMENTS_CACHE_TTL, key_prefix=STATEMENTS_PREFIX)
def trial_balance(date_from=None, date_to=None, account_type=None):
    totals = account_totals(date_from, date_to, account_type)
    accounts = Account.objects.filter(Q(id__in=list(totals)) | Q(is_active=True))
    if account_type:
        accounts = accounts.filter(account_type=account_type)

    rows = []
    total_debit = total_credit = ZERO
    for account in accounts.order_by('code'):
        debit, credit = totals.get(account.id, (ZERO, ZERO))
        net = debit - credit
        debit_balance = net if net > 0 else ZERO
        credit_balance = -net if net < 0 else ZERO
        total_debit += debit_balance
        total_credit += credit_balance
        rows.append({
            'account_id': account.id,
            'code': account.code,
            'name': account.name,
            'type': account.account_type,
            'total_debit': _f(debit),
            'total_credit': _f(credit),
            'debit_balance': _f(debit_balance),
            'credit_balance': _f(credit_balance),
        })

    difference = total_debit - total_credit
    return {
        'date_from': date_from,
        'date_to': date_to,
        'accounts': rows,
        'total_debit': _f(total_debit),
        'total_credit': _f(total_credit),
        'difference': _f(difference),
        'is_balanced': abs(difference) <= BALANCE_TOLERANCE,
    }


@cached_query(cache_ttl=STATEMENTS_CACHE_TTL, key_prefix=STATEMENTS_PREFIX)
def profit_and_loss(date_from=None, date_to=None):
    totals = account_totals(date_from, date_to)
    accounts = Account.objects.filter(id__in=list(totals), account_type__in=['Revenue', 'Expense'])

    revenue, cost_of_sales, operating = [], [], []
    total_revenue = total_cost = total_operating = ZERO
    for account in accounts.order_by('code'):
        debit, credit = totals[account.id]
        amount = _natural(account, debit, credit)
        row = {'account_id': account.id, 'code': account.code, 'name': account.name, 'amount': _f(amount)}
        if account.account_type == 'Revenue':
            revenue.append(row)
            total_revenue += amount
        elif account.subtype == chart.COST_OF_SALES_SUBTYPE:
            cost_of_sales.append(row)
            total_cost += amount
        else:
            operating.append(row)
            total_operating += amount

    gross_profit = total_revenue - total_cost
    net_income = gross_profit - total_operating

    def margin(value):
        if total_revenue == 0:
            return 0.0
        return float(money(value / total_revenue * 100))

    return {
        'date_from': date_from,
        'date_to': date_to,
        'revenue': revenue,
        'total_revenue': _f(total_revenue),
        'cost_of_sales': cost_of_sales,
        'total_cost_of_sales': _f(total_cost),
        'gross_profit': _f(gross_profit),
        'gross_margin': margin(gross_profit),
        'operating_expenses': operating,
        'total_operating_expenses': _f(total_operating),
        'net_income': _f(net_income),
        'net_margin': margin(net_income),
    }


@cached_query(cache_ttl=STATEMENTS_CACHE_TTL, key_prefix=STATEMENTS_PREFIX)
def balance_sheet(as_of=None):
    as_of = as_of or timezone.localdate()
    totals = account_totals(date_to=as_of)
    sections = OrderedDict((('Asset', []), ('Liability', []), ('Equity', [])))
    section_totals = {key: ZERO for key in sections}
    current_earnings = ZERO

    for account in Account.objects.filter(id__in=list(totals)).order_by('code'):
        debit, credit = totals[account.id]
        amount = _natural(account, debit, credit)
        if account.account_type in sections:
            sections[account.account_type].append({
                'account_id': account.id, 'code': account.code, 'name': account.name, 'amount': _f(amount),
            })
            section_totals[account.account_type] += amount
        elif account.account_type == 'Revenue':
            current_earnings += amount
        else:
            current_earnings -= amount

    total_assets = section_totals['Asset']
    total_liabilities = section_totals['Liability']
    total_equity = section_totals['Equity'] + current_earnings
    difference = total_assets - (total_liabilities + total_equity)
    return {
        'as_of': as_of,
        'assets': sections['Asset'],
        'liabilities': sections['Liability'],
        'equity': sections['Equity'],
        'current_earnings': _f(current_earnings),
        'total_assets': _f(total_assets),
        'total_liabilities': _f(total_liabilities),
        'total_equity': _f(total_equity),
        'total_liabilities_and_equity': _f(total_liabilities + total_equity),
        'is_balanced': abs(difference) <= BALANCE_TOLERANCE,
    }


def general_ledger(account, date_from=None, date_to=None):
    """Lines of one account with opening and running balance on its normal side"""
    opening = ZERO
    if date_from:
        before = posted_lines().filter(account=account, entry__entry_date__lt=date_from).aggregate(
            debit=Sum('debit'), credit=Sum('credit'))
        opening = _natural(account, before['debit'] or ZERO, before['credit'] or ZERO)

    lines = posted_lines(date_from, date_to).filter(account=account).select_related('entry').order_by(
        'entry__entry_date', 'entry_id', 'position')

    running = opening
    total_debit = total_credit = ZERO
    rows = []
    for line in lines:
        running += _natural(account, line.debit, line.credit)
        total_debit += line.debit
        total_credit += line.credit
        rows.append({
            'entry_id': line.entry_id,
            'entry_number': line.entry.entry_number,
            'entry_date': line.entry.entry_date,
            'reference': line.entry.reference,
            'description': line.description or line.entry.memo,
            'debit': _f(line.debit),
            'credit': _f(line.credit),
            'balance': _f(running),
        })

    return {
        'account': {'id': account.id, 'code': account.code, 'name': account.name, 'type': account.account_type},
        'date_from': date_from,
        'date_to': date_to,
        'opening_balance': _f(opening),
        'lines': rows,
        'total_debit': _f(total_debit),
        'total_credit': _f(total_credit),
        'closing_balance': _f(running),
    }


@cached_query(cache_ttl=STATEMENTS_CACHE_TTL, key_prefix=STATEMENTS_PREFIX)
def cash_flow(date_from=None, date_to=None):
    """Movements on cash and bank accounts grouped by the document that caused them"""
    cash_lines = JournalEntryLine.objects.filter(
        entry__status__in=POSTED_STATUSES, account__code__in=chart.CASH_ACCOUNT_CODES)

    opening = ZERO
    if date_from:
        before = cash_lines.filter(entry__entry_date__lt=date_from).aggregate(debit=Sum('debit'), credit=Sum('credit'))
        opening = (before['debit'] or ZERO) - (before['credit'] or ZERO)

    in_range = cash_lines
    if date_from:
        in_range = in_range.filter(entry__entry_date__gte=date_from)
    if date_to:
        in_range = in_range.filter(entry__entry_date__lte=date_to)

    groups = []
    total_in = total_out = ZERO
    for row in in_range.values('entry__source_type').annotate(debit=Sum('debit'), credit=Sum('credit')).order_by(
            'entry__source_type'):
        inflow = row['debit'] or ZERO
        outflow = row['credit'] or ZERO
        total_in += inflow
        total_out += outflow
        source_type = row['entry__source_type'] or ''
        groups.append({
            'source_type': source_type or 'manual',
            'label': CASH_FLOW_LABELS.get(source_type, source_type.replace('_', ' ').title()),
            'inflow': _f(inflow),
            'outflow': _f(outflow),
            'net': _f(inflow - outflow),
        })

    net_change = total_in - total_out
    return {
        'date_from': date_from,
        'date_to': date_to,
        'opening_cash': _f(opening),
        'activities': groups,
        'total_inflow': _f(total_in),
        'total_outflow': _f(total_out),
        'net_change': _f(net_change),
        'closing_cash': _f(opening + net_change),
    }


def _aging_bucket(days_overdue):
    if days_overdue <= 0:
        return 'current'
    if days_overdue <= 30:
        return '1_30'
    if days_overdue <= 60:
        return '31_60'
    if days_overdue <= 90:
        return '61_90'
    return 'over_90'


def _balance_due_as_of(invoice, as_of):
    """Invoice balance counting only payments and refunds dated on or before as_of"""
    refunds = [r for r in invoice.refunds.all() if r.refund_date <= as_of]
    net_total = invoice.grand_total - sum((r.amount for r in refunds), ZERO)
    paid = sum((a.amount for a in invoice.allocations.all() if a.payment.payment_date <= as_of), ZERO)
    paid -= sum((r.cash_amount for r in refunds), ZERO)
    return max(net_total - paid, ZERO)


@cached_query(cache_ttl=STATEMENTS_CACHE_TTL, key_prefix=STATEMENTS_PREFIX)
def receivables_aging(as_of=None):
    """
    Open receivables bucketed by days past due.

    Balances are rebuilt as of the given date, so payments and refunds made
    later do not count. Voided invoices are left out.
    """
    from pharmerp.sales.models import Invoice

    as_of = as_of or timezone.localdate()
    invoices = Invoice.objects.filter(invoice_date__lte=as_of).exclude(payment_status='void').select_related(
        'customer').prefetch_related('allocations__payment', 'refunds').order_by('due_date', 'id')

    customers = OrderedDict()
    totals = {bucket: ZERO for bucket in AGING_BUCKETS}
    for invoice in invoices:
        due = _balance_due_as_of(invoice, as_of)
        if due <= 0:
            continue
        due_date = invoice.due_date or invoice.invoice_date
        bucket = _aging_bucket((as_of - due_date).days)
        row = customers.setdefault(invoice.customer_id, {
            'customer_id': invoice.customer_id,
            'customer_name': invoice.customer.name,
            'buckets': {b: ZERO for b in AGING_BUCKETS},
            'invoices': [],
        })
        row['buckets'][bucket] += due
        row['invoices'].append({
            'invoice_id': invoice.id,
            'invoice_number': invoice.invoice_number,
            'due_date': due_date,
            'balance_due': _f(due),
            'bucket': bucket,
        })
        totals[bucket] += due

    rows = []
    for row in customers.values():
        total = sum(row['buckets'].values(), ZERO)
        row['total'] = _f(total)
        row['buckets'] = {b: _f(v) for b, v in row['buckets'].items()}
        rows.append(row)
    rows.sort(key=lambda r: r['total'], reverse=True)

    return {
        'as_of': as_of,
        'customers': rows,
        'totals': {b: _f(v) for b, v in totals.items()},
        'total_outstanding': _f(sum(totals.values(), ZERO)),
    }


@cached_query(cache_ttl=STATEMENTS_CACHE_TTL, key_prefix=STATEMENTS_PREFIX)
def customer_balances():
    from pharmerp.parties.models import Customer

    rows = []
    for customer in Customer.objects.prefetch_related('invoices', 'payments').order_by('name'):
        invoices = [inv for inv in customer.invoices.all() if inv.payment_status != 'void']
        payments = [p for p in customer.payments.all() if p.status == 'completed']
        invoiced = sum((inv.grand_total for inv in invoices), ZERO)
        refunded = sum((inv.refunded_amount for inv in invoices), ZERO)
        outstanding = sum((inv.balance_due for inv in invoices), ZERO)
        credit = sum((p.unapplied_amount for p in payments), ZERO)
        if not invoices and not payments:
            continue
        rows.append({
            'customer_id': customer.id,
            'customer_name': customer.name,
            'invoice_count': len(invoices),
            'total_invoiced': _f(invoiced),
            'total_paid': _f(sum((p.amount for p in payments), ZERO)),
            'total_refunded': _f(refunded),
            'outstanding': _f(outstanding),
            'unapplied_credit': _f(credit),
            'net_balance': _f(outstanding - credit),
        })
    return rows


@cached_query(cache_ttl=STATEMENTS_CACHE_TTL, key_prefix=STATEMENTS_PREFIX)
def financial_summary(date_from=None, date_to=None):
    pnl = profit_and_loss(date_from, date_to)
    balances = dict(Account.objects.filter(code__in=[
        chart.CASH, chart.BANK, chart.ACCOUNTS_RECEIVABLE, chart.INVENTORY,
        chart.ACCOUNTS_PAYABLE, chart.VAT_PAYABLE,
    ]).values_list('code', 'balance'))

    def balance(code, credit_normal=False):
        value = balances.get(code, ZERO)
        return _f(-value if credit_normal else value)

    return {
        'date_from': date_from,
        'date_to': date_to,
        'total_revenue': pnl['total_revenue'],
        'total_cost_of_sales': pnl['total_cost_of_sales'],
        'gross_profit': pnl['gross_profit'],
        'total_operating_expenses': pnl['total_operating_expenses'],
        'net_income': pnl['net_income'],
        'net_margin': pnl['net_margin'],
        'cash_balance': balance(chart.CASH),
        'bank_balance': balance(chart.BANK),
        'accounts_receivable': balance(chart.ACCOUNTS_RECEIVABLE),
        'inventory_value': balance(chart.INVENTORY),
        'accounts_payable': balance(chart.ACCOUNTS_PAYABLE, credit_normal=True),
        'vat_payable': balance(chart.VAT_PAYABLE, credit_normal=True),
    }
