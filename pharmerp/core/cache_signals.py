"""
Cache invalidation signals
Automatically invalidate cache when data changes
"""
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_financial_caches, invalidate_namespace, REPORTS_PREFIX, DASHBOARD_PREFIX

logger = logging.getLogger(__name__)

_thread_locals = threading.local()

FINANCIAL_MODELS = {
    'Invoice', 'InvoiceItem', 'CustomerPayment', 'Refund', 'Expense',
    'JournalEntry', 'Account', 'PurchaseOrder', 'SupplierPayment', 'Order',
}
STOCK_MODELS = {
    'Product', 'ProductCategory', 'WarehouseStock', 'Batch', 'StockAdjustment',
    'Customer',
}


@contextmanager
def suspend_cache_signals():
    """
    Temporarily suspend cache invalidation signals for bulk operations.
    Invalidate manually after the block.
    """
    previous = is_suspended()
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = previous


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def _invalidate_for(model_name):
    if model_name in FINANCIAL_MODELS:
        invalidate_financial_caches()
    else:
        invalidate_namespace(REPORTS_PREFIX)
        invalidate_namespace(DASHBOARD_PREFIX)


@receiver([post_save, post_delete])
def invalidate_report_caches(sender, instance, **kwargs):
    """Invalidate dashboard and report caches when business data changes"""
    if is_suspended():
        return

    model_name = sender.__name__
    if model_name not in FINANCIAL_MODELS and model_name not in STOCK_MODELS:
        return
    _invalidate_for(model_name)
    # again once committed: readers may have cached pre-commit figures meanwhile
    transaction.on_commit(lambda: _invalidate_for(model_name))


@receiver([post_save, post_delete])
def invalidate_preference_cache(sender, instance, **kwargs):
    """Drop the cached value of a changed preference"""
    if sender.__name__ != 'SystemPreference':
        return
    from .preferences import clear_preference_cache
    clear_preference_cache(instance.key)
