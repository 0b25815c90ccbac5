"""
Journal entry engine and business postings.

create_journal_entry() is the single choke point that writes ledger rows:
it validates the lines, numbers the entry, stores it and moves account
balances in one transaction. The post_* helpers below only map business
documents (invoices, payments, refunds, expenses, purchase receipts) to
debit/credit lines and call the engine.
"""
import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from pharmerp.core.numbering import next_document_number, month_period
from pharmerp.core.utils import money
from . import chart
from .models import Account, JournalEntry, JournalEntryLine, AccountingPeriod

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')

# Entries whose lines count towards balances. A reversed entry keeps its
# lines; the mirror entry cancels them out.
POSTED_STATUSES = ('posted', 'reversed')


class PostingError(ValueError):
    """Raised when a journal entry cannot be recorded"""


def get_account(code):
    try:
        return Account.objects.get(code=code)
    except Account.DoesNotExist:
        raise PostingError(f"Account {code} not found. Seed the chart of accounts first.")


def _resolve_account(account):
    if isinstance(account, Account):
        return account
    if isinstance(account, int):
        try:
            return Account.objects.get(pk=account)
        except Account.DoesNotExist:
            raise PostingError(f"Account #{account} not found.")
    return get_account(str(account))


def _normalize_lines(lines):
    """Validate line shapes and return [(account, debit, credit, description)]"""
    if not lines or len(lines) < 2:
        raise PostingError('A journal entry needs at least two lines.')

    normalized = []
    for index, line in enumerate(lines, start=1):
        try:
            debit = money(line.get('debit'))
            credit = money(line.get('credit'))
        except ValueError as exc:
            raise PostingError(f"Line {index}: {exc}")
        if debit < 0 or credit < 0:
            raise PostingError(f"Line {index}: amounts cannot be negative.")
        if (debit > 0) == (credit > 0):
            raise PostingError(f"Line {index}: exactly one of debit or credit must be positive.")

        account = _resolve_account(line.get('account'))
        if not account.is_active:
            raise PostingError(f"Account {account.code} is inactive.")
        normalized.append((account, debit, credit, (line.get('description') or '')[:255]))
    return normalized


def _totals(normalized):
    total_debit = sum((d for _, d, _, _ in normalized), ZERO)
    total_credit = sum((c for _, _, c, _ in normalized), ZERO)
    return total_debit, total_credit


def _check_balanced(total_debit, total_credit):
    if total_debit != total_credit:
        raise PostingError(f"Entry is not balanced: debit {total_debit} != credit {total_credit}.")
    if total_debit <= 0:
        raise PostingError('Entry total must be greater than zero.')


def closed_period_for(entry_date):
    return AccountingPeriod.objects.filter(
        status='closed', start_date__lte=entry_date, end_date__gte=entry_date
    ).first()


def _check_period_open(entry_date):
    period = closed_period_for(entry_date)
    if period:
        raise PostingError(f"Accounting period {period.name} is closed.")


def _apply_balances(entry, sign=1):
    for line in entry.lines.all():
        delta = (line.debit - line.credit) * sign
        Account.objects.filter(pk=line.account_id).update(balance=F('balance') + delta)


def find_source_entry(source_type, source_id):
    """The live (not reversed) entry recorded for a business document, if any"""
    return JournalEntry.objects.filter(
        source_type=source_type, source_id=str(source_id), status__in=['draft', 'posted']
    ).first()


@transaction.atomic
def create_journal_entry(entry_date, lines, memo='', reference='', source_type='', source_id='',
                         user=None, status='posted', reversal_of=None):
    """
    Record a journal entry.

    lines: iterable of dicts with ``account`` (Account, id or code),
    ``debit``, ``credit`` and optional ``description``. Drafts are stored
    without touching balances and may be unbalanced; posted entries must
    balance, fall in an open period and be the only live entry for their
    (source_type, source_id).
    """
    if status not in ('draft', 'posted'):
        raise PostingError(f"Cannot create an entry with status {status}.")

    normalized = _normalize_lines(list(lines))
    total_debit, total_credit = _totals(normalized)

    if status == 'posted':
        _check_balanced(total_debit, total_credit)
        _check_period_open(entry_date)

    if source_type and source_id != '' and source_id is not None:
        if find_source_entry(source_type, source_id):
            raise PostingError(f"A journal entry already exists for {source_type} {source_id}.")

    entry = JournalEntry.objects.create(
        entry_number=next_document_number('journal_entry', prefix='JE', period=month_period(entry_date), width=4),
        entry_date=entry_date,
        reference=reference or '',
        memo=memo or '',
        status=status,
        total_debit=total_debit,
        total_credit=total_credit,
        source_type=source_type or '',
        source_id=str(source_id) if source_id is not None else '',
        reversal_of=reversal_of,
        user=user if user is not None and user.is_authenticated else None,
        posted_at=timezone.now() if status == 'posted' else None,
    )
    JournalEntryLine.objects.bulk_create([
        JournalEntryLine(entry=entry, account=account, debit=debit, credit=credit,
                         description=description, position=position)
        for position, (account, debit, credit, description) in enumerate(normalized)
    ])

    if status == 'posted':
        _apply_balances(entry)
        logger.info(f"Posted journal entry {entry.entry_number} ({entry.source_type or 'manual'}) "
                    f"for {total_debit}")
    return entry


@transaction.atomic
def post_draft_entry(entry, user=None):
    """Post a draft entry, applying the same checks as a direct posting"""
    entry = JournalEntry.objects.select_for_update().get(pk=entry.pk)
    if entry.status != 'draft':
        raise PostingError(f"Only draft entries can be posted (entry is {entry.status}).")

    lines = [{'account': line.account, 'debit': line.debit, 'credit': line.credit}
             for line in entry.lines.select_related('account')]
    normalized = _normalize_lines(lines)
    total_debit, total_credit = _totals(normalized)
    _check_balanced(total_debit, total_credit)
    _check_period_open(entry.entry_date)

    entry.status = 'posted'
    entry.total_debit = total_debit
    entry.total_credit = total_credit
    entry.posted_at = timezone.now()
    if entry.user is None and user is not None and user.is_authenticated:
        entry.user = user
    entry.save()
    _apply_balances(entry)
    logger.info(f"Posted draft journal entry {entry.entry_number}")
    return entry


@transaction.atomic
def reverse_journal_entry(entry, reversal_date=None, memo='', user=None):
    """Create the mirror of a posted entry and mark the original reversed"""
    entry = JournalEntry.objects.select_for_update().get(pk=entry.pk)
    if entry.status != 'posted':
        raise PostingError(f"Only posted entries can be reversed (entry is {entry.status}).")

    lines = [{
        'account': line.account,
        'debit': line.credit,
        'credit': line.debit,
        'description': f"Reversal: {line.description}"[:255] if line.description else 'Reversal',
    } for line in entry.lines.select_related('account')]

    reversal = create_journal_entry(
        entry_date=reversal_date or timezone.localdate(),
        lines=lines,
        memo=memo or f"Reversal of {entry.entry_number}",
        reference=entry.entry_number,
        source_type='reversal',
        source_id=entry.id,
        user=user,
        reversal_of=entry,
    )
    entry.status = 'reversed'
    entry.save(update_fields=['status', 'updated_at'])
    logger.info(f"Reversed journal entry {entry.entry_number} with {reversal.entry_number}")
    return reversal


def reverse_source_entry(source_type, source_id, memo='', user=None):
    """Reverse the live posted entry of a business document; returns the reversal or None"""
    entry = JournalEntry.objects.filter(
        source_type=source_type, source_id=str(source_id), status='posted'
    ).first()
    if entry is None:
        return None
    return reverse_journal_entry(entry, memo=memo, user=user)


@transaction.atomic
def rebuild_account_balances():
    """Recompute every account balance from posted lines. Returns [(account, old, new)] for changed ones."""
    sums = {
        row['account_id']: (row['debit'] or ZERO) - (row['credit'] or ZERO)
        for row in JournalEntryLine.objects.filter(entry__status__in=POSTED_STATUSES)
        .values('account_id').annotate(debit=Sum('debit'), credit=Sum('credit'))
    }
    changed = []
    for account in Account.objects.select_for_update():
        new_balance = money(sums.get(account.id, ZERO))
        if account.balance != new_balance:
            changed.append((account, account.balance, new_balance))
            account.balance = new_balance
            account.save(update_fields=['balance', 'updated_at'])
    return changed


# Business postings

def _line(code, debit=ZERO, credit=ZERO, description=''):
    return {'account': get_account(code), 'debit': debit, 'credit': credit, 'description': description}


def _drop_empty(lines):
    return [line for line in lines if money(line['debit']) > 0 or money(line['credit']) > 0]


def post_invoice(invoice, cost_amount, user=None):
    """
    Dr Accounts Receivable grand total; Cr Sales Revenue taxable amount;
    Cr VAT Payable tax; Dr Cost of Goods Sold / Cr Inventory at cost.
    """
    taxable = money(invoice.subtotal - invoice.discount_amount + invoice.additional_charges)
    cost_amount = money(cost_amount)
    label = f"Invoice {invoice.invoice_number}"
    lines = _drop_empty([
        _line(chart.ACCOUNTS_RECEIVABLE, debit=invoice.grand_total, description=label),
        _line(chart.SALES_REVENUE, credit=taxable, description=label),
        _line(chart.VAT_PAYABLE, credit=invoice.tax_amount, description=f"VAT on {invoice.invoice_number}"),
        _line(chart.COST_OF_GOODS_SOLD, debit=cost_amount, description=f"Cost of {invoice.invoice_number}"),
        _line(chart.INVENTORY, credit=cost_amount, description=f"Cost of {invoice.invoice_number}"),
    ])
    if len(lines) < 2:
        return None
    return create_journal_entry(
        entry_date=invoice.invoice_date,
        lines=lines,
        memo=f"Sales invoice {invoice.invoice_number} - {invoice.customer.name}",
        reference=invoice.invoice_number,
        source_type='invoice',
        source_id=invoice.id,
        user=user,
    )


def post_customer_payment(payment, user=None):
    """Dr Cash/Bank; Cr Accounts Receivable"""
    label = f"Payment {payment.payment_number}"
    return create_journal_entry(
        entry_date=payment.payment_date,
        lines=[
            _line(chart.cash_account_code(payment.payment_method), debit=payment.amount, description=label),
            _line(chart.ACCOUNTS_RECEIVABLE, credit=payment.amount, description=label),
        ],
        memo=f"Customer payment {payment.payment_number} - {payment.customer.name}",
        reference=payment.reference or payment.payment_number,
        source_type='customer_payment',
        source_id=payment.id,
        user=user,
    )


def post_refund(refund, restocked_cost=ZERO, user=None):
    """
    Dr Sales Revenue and VAT Payable for the refunded share; Cr Accounts
    Receivable for the part still owed and Cash/Bank for the part paid back.
    Restocked goods move from Cost of Goods Sold back to Inventory.
    """
    invoice = refund.invoice
    tax_share = ZERO
    if invoice.grand_total > 0 and invoice.tax_amount > 0:
        tax_share = money(refund.amount * invoice.tax_amount / invoice.grand_total)
    revenue_share = money(refund.amount - tax_share)
    restocked_cost = money(restocked_cost)
    label = f"Refund {refund.refund_number}"

    lines = _drop_empty([
        _line(chart.SALES_REVENUE, debit=revenue_share, description=label),
        _line(chart.VAT_PAYABLE, debit=tax_share, description=f"VAT on {refund.refund_number}"),
        _line(chart.ACCOUNTS_RECEIVABLE, credit=refund.receivable_amount, description=label),
        _line(chart.cash_account_code(refund.payment_method), credit=refund.cash_amount, description=label),
        _line(chart.INVENTORY, debit=restocked_cost, description=f"Restock {refund.refund_number}"),
        _line(chart.COST_OF_GOODS_SOLD, credit=restocked_cost, description=f"Restock {refund.refund_number}"),
    ])
    return create_journal_entry(
        entry_date=refund.refund_date,
        lines=lines,
        memo=f"Refund {refund.refund_number} on {invoice.invoice_number}",
        reference=refund.refund_number,
        source_type='refund',
        source_id=refund.id,
        user=user,
    )


def post_expense(expense, expense_account, user=None):
    """Dr expense account; Cr Cash/Bank"""
    label = expense.description[:200]
    return create_journal_entry(
        entry_date=expense.expense_date,
        lines=[
            {'account': expense_account, 'debit': expense.amount, 'credit': ZERO, 'description': label},
            _line(chart.cash_account_code(expense.payment_method), credit=expense.amount, description=label),
        ],
        memo=f"Expense: {label}",
        reference=expense.vendor or '',
        source_type='expense',
        source_id=expense.id,
        user=user,
    )


def post_purchase_receipt(purchase_order, amount, receipt_key, entry_date=None, user=None):
    """Dr Inventory; Cr Accounts Payable for the value received"""
    label = f"Receipt on {purchase_order.po_number}"
    return create_journal_entry(
        entry_date=entry_date or timezone.localdate(),
        lines=[
            _line(chart.INVENTORY, debit=amount, description=label),
            _line(chart.ACCOUNTS_PAYABLE, credit=amount, description=label),
        ],
        memo=f"Goods received from {purchase_order.supplier.name} ({purchase_order.po_number})",
        reference=purchase_order.po_number,
        source_type='purchase_receipt',
        source_id=receipt_key,
        user=user,
    )


def post_supplier_payment(payment, user=None):
    """Dr Accounts Payable; Cr Cash/Bank"""
    label = f"Supplier payment {payment.payment_number}"
    return create_journal_entry(
        entry_date=payment.payment_date,
        lines=[
            _line(chart.ACCOUNTS_PAYABLE, debit=payment.amount, description=label),
            _line(chart.cash_account_code(payment.payment_method), credit=payment.amount, description=label),
        ],
        memo=f"Payment to {payment.supplier.name} for {payment.purchase_order.po_number}",
        reference=payment.reference or payment.payment_number,
        source_type='supplier_payment',
        source_id=payment.id,
        user=user,
    )
