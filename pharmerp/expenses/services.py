"""Expense approval workflow and its journal postings"""
import logging

from django.db import transaction
from django.utils import timezone

from pharmerp.accounting import chart, posting
from .models import Expense

logger = logging.getLogger(__name__)


class ExpenseError(ValueError):
    """Business rule violation in the expense workflow"""


def resolve_expense_account(expense):
    """
    The account an expense is charged to.

    A category pinned to an active account wins; otherwise the expense's
    label (or its category name) is mapped through the chart, falling back
    to Office Expenses.
    """
    category = expense.category
    if category is not None and category.account_id and category.account.is_active:
        return category.account
    code = chart.EXPENSE_LABEL_ACCOUNTS.get(expense.account_category)
    if code is None and category is not None:
        code = chart.EXPENSE_LABEL_ACCOUNTS.get(category.name)
    return posting.get_account(code or chart.OFFICE_EXPENSES)


def _post(expense, user=None):
    entry = posting.post_expense(expense, resolve_expense_account(expense), user=user)
    expense.journal_entry = entry
    return entry


@transaction.atomic
def approve_expense(expense, user=None):
    expense = Expense.objects.select_for_update().select_related('category__account').get(pk=expense.pk)
    if expense.status != 'pending':
        raise ExpenseError(f"Only pending expenses can be approved (expense is {expense.status}).")
    _post(expense, user=user)
    expense.status = 'approved'
    expense.approved_by = user if user is not None and user.is_authenticated else None
    expense.approved_at = timezone.now()
    expense.save(update_fields=['status', 'approved_by', 'approved_at', 'journal_entry', 'updated_at'])
    logger.info(f"Expense #{expense.id} approved and posted as {expense.journal_entry.entry_number}")
    return expense


@transaction.atomic
def reject_expense(expense, reason='', user=None):
    expense = Expense.objects.select_for_update().get(pk=expense.pk)
    if expense.status != 'pending':
        raise ExpenseError(f"Only pending expenses can be rejected (expense is {expense.status}).")
    expense.status = 'rejected'
    expense.rejection_reason = reason or ''
    expense.save(update_fields=['status', 'rejection_reason', 'updated_at'])
    logger.info(f"Expense #{expense.id} rejected")
    return expense


@transaction.atomic
def delete_expense(expense, user=None):
    """Delete an expense; an approved one has its journal entry reversed first"""
    reversal = None
    if expense.status == 'approved':
        reversal = posting.reverse_source_entry(
            'expense', expense.id, memo=f"Expense deleted: {expense.description}"[:255], user=user)
    expense_id = expense.id
    expense.delete()
    logger.info(f"Expense #{expense_id} deleted" + (f", reversed by {reversal.entry_number}" if reversal else ''))
    return reversal


def sync_approved_expenses(dry_run=False, user=None):
    """
    Post entries for approved expenses that have none.

    An existing live entry for the expense is linked instead of posting a
    second one. Returns [(expense, entry or None, message)].
    """
    results = []
    missing = Expense.objects.filter(status='approved', journal_entry__isnull=True).select_related('category__account')
    for expense in missing.order_by('expense_date', 'id'):
        existing = posting.find_source_entry('expense', expense.id)
        if existing is not None:
            if not dry_run:
                Expense.objects.filter(pk=expense.pk).update(journal_entry=existing)
            results.append((expense, existing, f"linked existing entry {existing.entry_number}"))
            continue
        account = resolve_expense_account(expense)
        if dry_run:
            results.append((expense, None, f"would post to {account.code} {account.name}"))
            continue
        try:
            with transaction.atomic():
                entry = _post(expense, user=user)
                expense.save(update_fields=['journal_entry', 'updated_at'])
        except posting.PostingError as exc:
            logger.warning(f"Could not post expense #{expense.id}: {exc}")
            results.append((expense, None, f"failed: {exc}"))
            continue
        results.append((expense, entry, f"posted {entry.entry_number}"))
    return results
