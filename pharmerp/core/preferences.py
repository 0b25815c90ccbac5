"""Runtime preferences backed by the SystemPreference table"""
import logging
from decimal import Decimal

from django.conf import settings
from django.core.cache import cache

from .models import SystemPreference

logger = logging.getLogger(__name__)

PREFERENCE_CACHE_TTL = 300

DEFAULT_PREFERENCES = [
    {
        'key': 'company.name',
        'value': 'PharmERP Distribution',
        'category': 'company',
        'label': 'Company name',
        'data_type': 'string',
    },
    {
        'key': 'company.tax_number',
        'value': '',
        'category': 'company',
        'label': 'Company tax registration number',
        'data_type': 'string',
    },
    {
        'key': 'financial.vat_rate',
        'value': settings.PHARMERP_DEFAULT_VAT_RATE,
        'category': 'financial',
        'label': 'Default VAT rate (%)',
        'data_type': 'number',
    },
    {
        'key': 'financial.currency',
        'value': settings.PHARMERP_CURRENCY,
        'category': 'financial',
        'label': 'Currency',
        'data_type': 'select',
        'options': ['EGP', 'USD', 'EUR'],
    },
    {
        'key': 'financial.payment_terms_days',
        'value': 0,
        'category': 'financial',
        'label': 'Default invoice payment terms (days)',
        'data_type': 'number',
    },
    {
        'key': 'inventory.low_stock_threshold',
        'value': settings.PHARMERP_DEFAULT_LOW_STOCK_THRESHOLD,
        'category': 'inventory',
        'label': 'Default low stock threshold',
        'data_type': 'number',
    },
    {
        'key': 'inventory.expiry_warning_days',
        'value': settings.PHARMERP_EXPIRY_WARNING_DAYS,
        'category': 'inventory',
        'label': 'Days before expiry to warn',
        'data_type': 'number',
    },
    {
        'key': 'notifications.low_stock_alerts',
        'value': True,
        'category': 'notifications',
        'label': 'Alert on low stock',
        'data_type': 'boolean',
    },
]


def _cache_key(key):
    return f"preference:{key}"


def get_preference(key, default=None):
    """Return a preference value, or default when it is not stored"""
    cache_key = _cache_key(key)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached['value']

    pref = SystemPreference.objects.filter(key=key).first()
    value = pref.value if pref is not None else default
    cache.set(cache_key, {'value': value}, PREFERENCE_CACHE_TTL)
    return value


def clear_preference_cache(key):
    cache.delete(_cache_key(key))


def get_vat_rate():
    return Decimal(str(get_preference('financial.vat_rate', settings.PHARMERP_DEFAULT_VAT_RATE)))


def get_expiry_warning_days():
    return int(get_preference('inventory.expiry_warning_days', settings.PHARMERP_EXPIRY_WARNING_DAYS))


def seed_default_preferences(overwrite=False):
    """Install default preferences; returns (created, updated) counts"""
    created = updated = 0
    for default in DEFAULT_PREFERENCES:
        defaults = {k: v for k, v in default.items() if k != 'key'}
        pref, was_created = SystemPreference.objects.get_or_create(key=default['key'], defaults=defaults)
        if was_created:
            created += 1
        elif overwrite:
            for field, value in defaults.items():
                setattr(pref, field, value)
            pref.save()
            updated += 1
        clear_preference_cache(default['key'])
    logger.info(f"Seeded preferences: {created} created, {updated} updated")
    return created, updated
