"""
Sequential document numbers.

Each (doc_type, period) pair owns a counter row that is locked while it is
incremented, so concurrent requests never hand out the same number.
"""
from django.db import transaction
from django.utils import timezone

from .models import DocumentSequence


@transaction.atomic
def next_document_number(doc_type, prefix=None, period='', width=5):
    """
    Return the next number for a document type.

    Format is ``{prefix}-{period}-{sequence}``, or ``{prefix}-{sequence}``
    when no period is given. Example: PO-2025-00001, INV-000001.
    """
    seq, _ = DocumentSequence.objects.select_for_update().get_or_create(
        doc_type=doc_type,
        period=period,
        defaults={'current_value': 0},
    )
    seq.current_value += 1
    seq.save(update_fields=['current_value', 'updated_at'])

    pre = prefix or doc_type.upper()
    if period:
        return f"{pre}-{period}-{seq.current_value:0{width}d}"
    return f"{pre}-{seq.current_value:0{width}d}"


def year_period(on_date=None):
    on_date = on_date or timezone.localdate()
    return f"{on_date:%Y}"


def month_period(on_date=None):
    on_date = on_date or timezone.localdate()
    return f"{on_date:%Y%m}"
