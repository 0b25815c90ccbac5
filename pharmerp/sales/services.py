"""
Sales workflows: invoices, customer payments, refunds and quotations.

Every workflow runs in a single transaction. Stock is validated for all
lines before anything is written, and journal entries are posted through
the accounting engine, so a failure anywhere leaves no partial document,
stock movement or ledger row behind.
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from pharmerp.accounting import posting
from pharmerp.core.numbering import next_document_number, year_period
from pharmerp.core.preferences import get_preference, get_vat_rate
from pharmerp.core.utils import money
from pharmerp.inventory.services import check_availability, issue_stock, receive_stock, restore_issued_stock
from pharmerp.locations.models import Warehouse
from pharmerp.parties.models import Customer
from .models import (
    Invoice, InvoiceItem, CustomerPayment, PaymentAllocation, Refund, RefundItem,
    Quotation, QuotationItem, QuotationPackagingItem,
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')

QUOTATION_TRANSITIONS = {
    'draft': {'pending'},
    'pending': {'approved', 'rejected', 'expired'},
    'approved': {'expired'},
}
CONVERTIBLE_QUOTATION_STATUSES = ('pending', 'approved')
EDITABLE_QUOTATION_STATUSES = ('draft', 'pending')


class SalesError(ValueError):
    """Business rule violation in a sales workflow"""


class InvalidTransitionError(SalesError):
    def __init__(self, current, target, document='document'):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change {document} status from {current} to {target}.")


class PaymentAllocationError(SalesError):
    pass


def line_total(quantity, unit_price, discount=ZERO):
    total = money(Decimal(str(quantity)) * Decimal(str(unit_price))) - money(discount)
    if total < 0:
        raise SalesError('Line discount cannot exceed the line amount.')
    return total


def calculate_totals(lines, tax_rate, discount_amount=ZERO, additional_charges=ZERO):
    """
    Totals for invoice or quotation lines.

    lines: iterable of dicts with quantity, unit_price and discount.
    taxable = subtotal - discount_amount + additional_charges;
    tax = taxable * tax_rate / 100; grand_total = taxable + tax.
    """
    subtotal = sum((line_total(l['quantity'], l['unit_price'], l.get('discount', ZERO)) for l in lines), ZERO)
    discount_amount = money(discount_amount)
    if discount_amount < 0 or discount_amount > subtotal:
        raise SalesError('Discount must be between zero and the subtotal.')
    taxable = subtotal - discount_amount + money(additional_charges)
    tax_amount = money(taxable * Decimal(str(tax_rate)) / 100)
    return {
        'subtotal': subtotal,
        'discount_amount': discount_amount,
        'taxable': taxable,
        'tax_amount': tax_amount,
        'grand_total': taxable + tax_amount,
    }


def _settlement_method(payment_method):
    return 'cash' if payment_method in (None, '', 'credit') else payment_method


# Invoices

@transaction.atomic
def create_invoice(customer, items, user=None, invoice_date=None, payment_terms=None, discount_amount=ZERO,
                   tax_rate=None, amount_paid=ZERO, payment_method='credit', warehouse=None, notes='',
                   quotation=None, additional_charges=ZERO):
    """
    Create an invoice, issue its stock and post it.

    items: list of dicts with ``product`` (Product), ``quantity`` and
    optional ``unit_price`` (defaults to the selling price) and ``discount``.
    """
    if not items:
        raise SalesError('An invoice needs at least one item.')

    lines = []
    for item in items:
        quantity = Decimal(str(item['quantity']))
        if quantity <= 0:
            raise SalesError(f"Quantity for {item['product'].name} must be greater than zero.")
        unit_price = item.get('unit_price')
        lines.append({
            'product': item['product'],
            'quantity': quantity,
            'unit_price': money(item['product'].selling_price if unit_price is None else unit_price),
            'discount': money(item.get('discount') or ZERO),
        })

    check_availability([(l['product'], l['quantity']) for l in lines], warehouse)

    invoice_date = invoice_date or timezone.localdate()
    tax_rate = get_vat_rate() if tax_rate is None else Decimal(str(tax_rate))
    if payment_terms is None:
        payment_terms = int(get_preference('financial.payment_terms_days', 0))
    totals = calculate_totals(lines, tax_rate, discount_amount, additional_charges)

    amount_paid = money(amount_paid)
    if amount_paid < 0 or amount_paid > totals['grand_total']:
        raise SalesError('Amount paid must be between zero and the invoice total.')

    invoice = Invoice.objects.create(
        invoice_number=next_document_number('invoice', prefix='INV', width=6),
        customer=customer,
        user=user,
        quotation=quotation,
        warehouse=warehouse,
        invoice_date=invoice_date,
        due_date=invoice_date + timedelta(days=payment_terms),
        subtotal=totals['subtotal'],
        discount_amount=totals['discount_amount'],
        additional_charges=money(additional_charges),
        tax_rate=tax_rate,
        tax_amount=totals['tax_amount'],
        grand_total=totals['grand_total'],
        payment_method=payment_method or 'credit',
        payment_terms=payment_terms,
        notes=notes or '',
    )

    cost_amount = ZERO
    for line in lines:
        product = line['product']
        InvoiceItem.objects.create(
            invoice=invoice,
            product=product,
            quantity=line['quantity'],
            unit_price=line['unit_price'],
            unit_cost=product.cost_price,
            discount=line['discount'],
            total=line_total(line['quantity'], line['unit_price'], line['discount']),
        )
        issue_stock(product, line['quantity'], transaction_type='sale', warehouse=warehouse,
                    reference_type='invoice', reference_id=invoice.invoice_number,
                    notes=f"Invoice {invoice.invoice_number}", user=user)
        cost_amount += money(line['quantity'] * product.cost_price)

    invoice.journal_entry = posting.post_invoice(invoice, cost_amount, user=user)
    invoice.refresh_payment_status()
    invoice.save(update_fields=['journal_entry', 'payment_status', 'updated_at'])

    Customer.objects.filter(pk=customer.pk).update(total_purchases=F('total_purchases') + invoice.grand_total)

    if amount_paid > 0:
        record_payment(
            customer=customer,
            amount=amount_paid,
            payment_method=_settlement_method(payment_method),
            payment_date=invoice_date,
            reference=invoice.invoice_number,
            allocations=[(invoice, amount_paid)],
            user=user,
        )
        invoice.refresh_from_db()

    logger.info(f"Created invoice {invoice.invoice_number} for {customer.name}: {invoice.grand_total}")
    return invoice


@transaction.atomic
def void_invoice(invoice, user=None, reason=''):
    """Cancel an unpaid invoice: stock goes back and its journal entry is reversed"""
    invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
    if invoice.payment_status == 'void':
        raise InvalidTransitionError('void', 'void', 'invoice')
    if invoice.amount_paid > 0 or invoice.allocations.exists():
        raise SalesError('Cannot void an invoice that has payments.')
    if invoice.refunds.exists():
        raise SalesError('Cannot void an invoice that has refunds.')

    restore_issued_stock('invoice', invoice.invoice_number, transaction_type='return',
                         notes=f"Invoice {invoice.invoice_number} voided", user=user)
    posting.reverse_source_entry('invoice', invoice.id, memo=f"Void invoice {invoice.invoice_number}", user=user)
    Customer.objects.filter(pk=invoice.customer_id).update(total_purchases=F('total_purchases') - invoice.grand_total)

    invoice.payment_status = 'void'
    invoice.voided_at = timezone.now()
    invoice.voided_by = user
    if reason:
        invoice.notes = f"{invoice.notes}\nVoided: {reason}".strip()
    invoice.save()
    logger.info(f"Voided invoice {invoice.invoice_number}")
    return invoice


# Payments

def open_invoices(customer):
    return Invoice.objects.select_for_update().filter(
        customer=customer, payment_status__in=['pending', 'partial']
    ).order_by('invoice_date', 'id')


@transaction.atomic
def record_payment(customer, amount, payment_method='cash', payment_date=None, reference='', notes='',
                   allocations=None, user=None):
    """
    Record a customer payment and apply it to invoices.

    allocations: optional list of (invoice, amount). Without it the payment
    is applied to the oldest open invoices first. Whatever is not applied
    stays on the payment as customer credit.
    """
    amount = money(amount)
    if amount <= 0:
        raise PaymentAllocationError('Payment amount must be greater than zero.')

    if allocations:
        locked = {inv.pk: inv for inv in open_invoices(customer).filter(pk__in=[inv.pk for inv, _ in allocations])}
        # repeated entries for one invoice are merged into a single allocation
        merged = {}
        for invoice, alloc_amount in allocations:
            alloc_amount = money(alloc_amount)
            target = locked.get(invoice.pk)
            if target is None:
                raise PaymentAllocationError(f"Invoice {invoice.invoice_number} is not an open invoice of this customer.")
            if alloc_amount <= 0:
                raise PaymentAllocationError('Allocation amounts must be greater than zero.')
            merged[target.pk] = merged.get(target.pk, ZERO) + alloc_amount
            if merged[target.pk] > target.balance_due:
                raise PaymentAllocationError(
                    f"Allocations of {merged[target.pk]} exceed the balance due {target.balance_due} "
                    f"on {target.invoice_number}.")
        planned = [(locked[pk], total) for pk, total in merged.items()]
        if sum((a for _, a in planned), ZERO) > amount:
            raise PaymentAllocationError('Allocations exceed the payment amount.')
    else:
        planned = []
        remaining = amount
        for invoice in open_invoices(customer):
            if remaining <= 0:
                break
            applied = min(invoice.balance_due, remaining)
            if applied > 0:
                planned.append((invoice, applied))
                remaining -= applied

    payment = CustomerPayment.objects.create(
        payment_number=next_document_number('customer_payment', prefix='PAY', width=6),
        customer=customer,
        amount=amount,
        payment_date=payment_date or timezone.localdate(),
        payment_method=payment_method,
        reference=reference or '',
        notes=notes or '',
        user=user,
    )
    for invoice, alloc_amount in planned:
        PaymentAllocation.objects.create(payment=payment, invoice=invoice, amount=alloc_amount)
        invoice.amount_paid += alloc_amount
        invoice.refresh_payment_status()
        invoice.save(update_fields=['amount_paid', 'payment_status', 'updated_at'])

    payment.journal_entry = posting.post_customer_payment(payment, user=user)
    payment.save(update_fields=['journal_entry'])
    logger.info(f"Recorded payment {payment.payment_number} from {customer.name}: {amount} "
                f"({len(planned)} invoices)")
    return payment


# Refunds

@transaction.atomic
def create_refund(invoice, amount, reason, refund_date=None, items=None, payment_method=None, notes='', user=None):
    """
    Refund part or all of an invoice.

    items: optional list of dicts with ``invoice_item``, ``quantity`` and
    ``restock`` (default True); restocked goods go back to inventory at
    their sale-time cost.
    """
    invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
    if invoice.payment_status in ('void', 'refunded'):
        raise SalesError(f"Cannot refund an invoice that is {invoice.payment_status}.")

    amount = money(amount)
    if amount <= 0:
        raise SalesError('Refund amount must be greater than zero.')
    if amount > invoice.net_total:
        raise SalesError(f"Refund amount exceeds the refundable total {invoice.net_total}.")

    receivable_part = min(amount, invoice.balance_due)
    cash_part = amount - receivable_part
    refund = Refund.objects.create(
        refund_number=next_document_number('refund', prefix='REF', width=6),
        invoice=invoice,
        amount=amount,
        receivable_amount=receivable_part,
        cash_amount=cash_part,
        payment_method=_settlement_method(payment_method or invoice.payment_method),
        reason=reason,
        refund_date=refund_date or timezone.localdate(),
        notes=notes or '',
        user=user,
    )

    restocked_cost = ZERO
    warehouse = invoice.warehouse or Warehouse.get_default()
    requested = {}
    for item in items or []:
        invoice_item = item['invoice_item']
        quantity = Decimal(str(item['quantity']))
        if invoice_item.invoice_id != invoice.id:
            raise SalesError('Refund items must belong to the refunded invoice.')
        if not quantity.is_finite() or quantity <= 0:
            raise SalesError(f"Refund quantity for {invoice_item.product.name} must be greater than zero.")
        requested[invoice_item.pk] = requested.get(invoice_item.pk, ZERO) + quantity
        if requested[invoice_item.pk] > invoice_item.refundable_quantity:
            raise SalesError(f"Refund quantity for {invoice_item.product.name} cannot exceed "
                             f"{invoice_item.refundable_quantity}.")
        restock = item.get('restock', True)
        RefundItem.objects.create(refund=refund, invoice_item=invoice_item, quantity=quantity,
                                  unit_cost=invoice_item.unit_cost, restocked=restock)
        InvoiceItem.objects.filter(pk=invoice_item.pk).update(refunded_quantity=F('refunded_quantity') + quantity)
        if restock:
            receive_stock(invoice_item.product, warehouse, quantity, unit_cost=invoice_item.unit_cost,
                          transaction_type='return', reference_type='refund', reference_id=refund.refund_number,
                          notes=f"Refund on {invoice.invoice_number}", user=user)
            restocked_cost += money(quantity * invoice_item.unit_cost)

    refund.journal_entry = posting.post_refund(refund, restocked_cost=restocked_cost, user=user)
    refund.save(update_fields=['journal_entry'])

    invoice.refunded_amount += amount
    invoice.amount_paid -= cash_part
    invoice.refresh_payment_status()
    invoice.save(update_fields=['refunded_amount', 'amount_paid', 'payment_status', 'updated_at'])
    Customer.objects.filter(pk=invoice.customer_id).update(total_purchases=F('total_purchases') - amount)

    logger.info(f"Refund {refund.refund_number} on {invoice.invoice_number}: {amount} "
                f"(receivable {receivable_part}, paid out {cash_part})")
    return refund


# Quotations

def _quotation_lines(items):
    lines = []
    for item in items:
        quantity = Decimal(str(item['quantity']))
        if quantity <= 0:
            raise SalesError('Quotation quantities must be greater than zero.')
        unit_price = item.get('unit_price')
        lines.append({
            'product': item['product'],
            'description': item.get('description') or '',
            'quantity': quantity,
            'unit_price': money(item['product'].selling_price if unit_price is None else unit_price),
            'discount': money(item.get('discount') or ZERO),
        })
    return lines


def _write_quotation_lines(quotation, items, packaging_items, tax_rate, transportation_fees):
    lines = _quotation_lines(items)
    packaging_total = ZERO
    for pack in packaging_items:
        total = line_total(pack['quantity'], pack['unit_price'])
        QuotationPackagingItem.objects.create(
            quotation=quotation,
            item_type=pack.get('item_type') or 'container',
            description=pack['description'],
            quantity=pack['quantity'],
            unit_price=pack['unit_price'],
            total=total,
            notes=pack.get('notes') or '',
        )
        packaging_total += total

    for line in lines:
        QuotationItem.objects.create(
            quotation=quotation,
            product=line['product'],
            description=line['description'],
            quantity=line['quantity'],
            unit_price=line['unit_price'],
            discount=line['discount'],
            total=line_total(line['quantity'], line['unit_price'], line['discount']),
        )

    totals = calculate_totals(lines, tax_rate, additional_charges=packaging_total + money(transportation_fees))
    quotation.subtotal = totals['subtotal']
    quotation.packaging_total = packaging_total
    quotation.transportation_fees = money(transportation_fees)
    quotation.tax_rate = tax_rate
    quotation.tax_amount = totals['tax_amount']
    quotation.grand_total = totals['grand_total']
    quotation.save()
    return quotation


@transaction.atomic
def create_quotation(customer, items, packaging_items=None, user=None, issue_date=None, valid_until=None,
                     transportation_fees=ZERO, tax_rate=None, notes='', terms_and_conditions='', status='draft'):
    if not items:
        raise SalesError('A quotation needs at least one item.')
    if status not in EDITABLE_QUOTATION_STATUSES:
        raise SalesError('New quotations start as draft or pending.')
    issue_date = issue_date or timezone.localdate()
    if valid_until and valid_until < issue_date:
        raise SalesError('Valid-until date cannot be before the issue date.')

    quotation = Quotation.objects.create(
        quotation_number=next_document_number('quotation', prefix='QUO', period=year_period(issue_date)),
        customer=customer,
        user=user,
        issue_date=issue_date,
        valid_until=valid_until,
        status=status,
        notes=notes or '',
        terms_and_conditions=terms_and_conditions or '',
    )
    tax_rate = get_vat_rate() if tax_rate is None else Decimal(str(tax_rate))
    return _write_quotation_lines(quotation, items, packaging_items or [], tax_rate, transportation_fees)


@transaction.atomic
def update_quotation(quotation, items=None, packaging_items=None, **fields):
    """Edit a draft or pending quotation; passing items or packaging_items replaces those lines"""
    quotation = Quotation.objects.select_for_update().get(pk=quotation.pk)
    if quotation.status not in EDITABLE_QUOTATION_STATUSES:
        raise SalesError(f"A {quotation.status} quotation can no longer be edited.")

    for field in ('customer', 'issue_date', 'valid_until', 'notes', 'terms_and_conditions'):
        if field in fields:
            setattr(quotation, field, fields[field])
    if quotation.valid_until and quotation.valid_until < quotation.issue_date:
        raise SalesError('Valid-until date cannot be before the issue date.')

    tax_rate = Decimal(str(fields['tax_rate'])) if fields.get('tax_rate') is not None else quotation.tax_rate
    transportation_fees = fields.get('transportation_fees', quotation.transportation_fees)

    if items is None:
        items = [{'product': i.product, 'description': i.description, 'quantity': i.quantity,
                  'unit_price': i.unit_price, 'discount': i.discount} for i in quotation.items.all()]
    if packaging_items is None:
        packaging_items = [{'item_type': p.item_type, 'description': p.description, 'quantity': p.quantity,
                            'unit_price': p.unit_price, 'notes': p.notes} for p in quotation.packaging_items.all()]
    if not items:
        raise SalesError('A quotation needs at least one item.')

    quotation.items.all().delete()
    quotation.packaging_items.all().delete()
    return _write_quotation_lines(quotation, items, packaging_items, tax_rate, transportation_fees)


def change_quotation_status(quotation, new_status):
    allowed = QUOTATION_TRANSITIONS.get(quotation.status, set())
    if new_status not in allowed:
        raise InvalidTransitionError(quotation.status, new_status, 'quotation')
    quotation.status = new_status
    quotation.save(update_fields=['status', 'updated_at'])
    return quotation


@transaction.atomic
def convert_quotation(quotation, user=None, warehouse=None, invoice_date=None, payment_terms=None,
                      amount_paid=ZERO, payment_method='credit'):
    """Turn a pending or approved quotation into an invoice with the same lines and totals"""
    quotation = Quotation.objects.select_for_update().get(pk=quotation.pk)
    if quotation.status not in CONVERTIBLE_QUOTATION_STATUSES:
        raise InvalidTransitionError(quotation.status, 'converted', 'quotation')
    if quotation.is_expired:
        raise SalesError(f"Quotation {quotation.quotation_number} expired on {quotation.valid_until}.")

    invoice = create_invoice(
        customer=quotation.customer,
        items=[{'product': item.product, 'quantity': item.quantity, 'unit_price': item.unit_price,
                'discount': item.discount} for item in quotation.items.select_related('product')],
        user=user,
        invoice_date=invoice_date,
        payment_terms=payment_terms,
        tax_rate=quotation.tax_rate,
        amount_paid=amount_paid,
        payment_method=payment_method,
        warehouse=warehouse,
        notes=f"Converted from quotation {quotation.quotation_number}",
        quotation=quotation,
        additional_charges=quotation.packaging_total + quotation.transportation_fees,
    )
    quotation.status = 'converted'
    quotation.converted_invoice = invoice
    quotation.save(update_fields=['status', 'converted_invoice', 'updated_at'])
    logger.info(f"Converted quotation {quotation.quotation_number} into {invoice.invoice_number}")
    return invoice


def expire_quotations(today=None):
    """Mark quotations past their validity date as expired; returns how many changed"""
    today = today or timezone.localdate()
    stale = Quotation.objects.filter(status__in=['draft', 'pending', 'approved'], valid_until__lt=today)
    count = 0
    for quotation in stale:
        quotation.status = 'expired'
        quotation.save(update_fields=['status', 'updated_at'])
        count += 1
    if count:
        logger.info(f"Expired {count} quotations")
    return count
