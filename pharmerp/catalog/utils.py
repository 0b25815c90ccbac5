"""Stock level and expiry classification for products"""
from datetime import timedelta
from decimal import Decimal

from django.db.models import F, Q
from django.utils import timezone

CRITICAL_EXPIRY_DAYS = 7


def stock_status(quantity, threshold):
    """
    Classify a stock level.

    out_of_stock at zero, critical at or below half the threshold, low at or
    below the threshold, normal otherwise.
    """
    quantity = Decimal(str(quantity or 0))
    threshold = Decimal(str(threshold or 0))
    if quantity <= 0:
        return 'out_of_stock'
    if quantity <= threshold * Decimal('0.5'):
        return 'critical'
    if quantity <= threshold:
        return 'low'
    return 'normal'


def expiry_status(expiry_date, warning_days=30, today=None):
    """Classify an expiry date relative to today"""
    if not expiry_date:
        return 'no_expiry'
    today = today or timezone.localdate()
    days_left = (expiry_date - today).days
    if days_left < 0:
        return 'expired'
    if days_left <= CRITICAL_EXPIRY_DAYS:
        return 'critical'
    if days_left <= warning_days:
        return 'warning'
    return 'normal'


def days_until_expiry(expiry_date, today=None):
    if not expiry_date:
        return None
    today = today or timezone.localdate()
    return (expiry_date - today).days


def low_stock_q():
    """Products at or below their low stock threshold"""
    return Q(quantity__lte=F('low_stock_threshold'))


def expiring_q(days, today=None):
    """Products expiring within `days` days, including already expired ones"""
    today = today or timezone.localdate()
    return Q(expiry_date__isnull=False, expiry_date__lte=today + timedelta(days=days))


def suggested_reorder_quantity(quantity, threshold):
    """Quantity that brings stock back to twice the threshold"""
    suggestion = Decimal(str(threshold)) * 2 - Decimal(str(quantity))
    return max(suggestion, Decimal('0'))
