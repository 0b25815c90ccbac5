import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone

from pharmerp.accounting.posting import PostingError
from pharmerp.core.permissions import module_access
from pharmerp.core.utils import create_audit_log, paginate, parse_date
from pharmerp.inventory.services import StockError, InsufficientStockError
from .models import Invoice, CustomerPayment, Refund, Quotation
from .serializers import (
    InvoiceSerializer, InvoiceListSerializer, InvoiceCreateSerializer, InvoiceUpdateSerializer,
    InvoiceVoidSerializer, CustomerPaymentSerializer, CustomerPaymentCreateSerializer,
    RefundSerializer, RefundCreateSerializer, QuotationSerializer, QuotationListSerializer,
    QuotationWriteSerializer, QuotationStatusSerializer, QuotationConvertSerializer,
)
from . import services
from .services import SalesError, InvalidTransitionError

logger = logging.getLogger(__name__)

SalesAccess = module_access('sales')

BUSINESS_ERRORS = (SalesError, StockError, PostingError)


def business_error_response(exc):
    if isinstance(exc, InsufficientStockError):
        return Response(exc.to_dict(), status=status.HTTP_400_BAD_REQUEST)
    payload = {'error': str(exc)}
    if isinstance(exc, InvalidTransitionError):
        payload.update({'code': 'INVALID_TRANSITION', 'current_status': exc.current, 'requested_status': exc.target})
    return Response(payload, status=status.HTTP_400_BAD_REQUEST)


def _date_filters(request, queryset, field):
    date_from = parse_date(request.query_params.get('date_from'))
    date_to = parse_date(request.query_params.get('date_to'))
    if date_from:
        queryset = queryset.filter(**{f'{field}__gte': date_from})
    if date_to:
        queryset = queryset.filter(**{f'{field}__lte': date_to})
    return queryset


def _bad_date():
    return Response({'error': 'Invalid date format. Use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)


# Invoice views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, SalesAccess])
def invoice_list_create(request):
    """List invoices or create a new one"""
    if request.method == 'GET':
        invoices = Invoice.objects.select_related('customer')
        customer_id = request.query_params.get('customer')
        if customer_id:
            invoices = invoices.filter(customer_id=customer_id)
        payment_status = request.query_params.get('payment_status')
        if payment_status:
            invoices = invoices.filter(payment_status__in=payment_status.split(','))
        search = request.query_params.get('search', '').strip()
        if search:
            invoices = invoices.filter(Q(invoice_number__icontains=search) | Q(customer__name__icontains=search))
        if request.query_params.get('overdue', '').lower() in ('true', '1'):
            invoices = invoices.filter(due_date__lt=timezone.localdate(), payment_status__in=['pending', 'partial'])
        try:
            invoices = _date_filters(request, invoices, 'invoice_date')
        except ValueError:
            return _bad_date()
        return Response(paginate(request, invoices.order_by('-invoice_date', '-id'), InvoiceListSerializer))

    serializer = InvoiceCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        invoice = services.create_invoice(
            customer=data['customer'],
            items=[dict(item) for item in data['items']],
            user=request.user,
            invoice_date=data.get('invoice_date'),
            payment_terms=data.get('payment_terms'),
            discount_amount=data['discount_amount'],
            tax_rate=data.get('tax_rate'),
            amount_paid=data['amount_paid'],
            payment_method=data['payment_method'],
            warehouse=data.get('warehouse'),
            notes=data.get('notes', ''),
        )
    except BUSINESS_ERRORS as exc:
        return business_error_response(exc)

    create_audit_log(request=request, action='invoice_create', model_name='Invoice', object_id=invoice.id,
                     object_name=invoice.customer.name, object_reference=invoice.invoice_number,
                     changes={'grand_total': str(invoice.grand_total), 'amount_paid': str(invoice.amount_paid)})
    return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, SalesAccess])
def invoice_detail(request, pk):
    """Retrieve an invoice or update its due date and notes"""
    invoice = get_object_or_404(
        Invoice.objects.select_related('customer', 'user', 'quotation', 'journal_entry'), pk=pk)

    if request.method == 'GET':
        return Response(InvoiceSerializer(invoice).data)

    if invoice.payment_status == 'void':
        return Response({'error': 'Void invoices cannot be edited.'}, status=status.HTTP_400_BAD_REQUEST)
    serializer = InvoiceUpdateSerializer(invoice, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        create_audit_log(request=request, action='update', model_name='Invoice', object_id=invoice.id,
                         object_reference=invoice.invoice_number,
                         changes={k: str(v) for k, v in serializer.validated_data.items()})
        return Response(InvoiceSerializer(invoice).data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated, SalesAccess])
def invoice_void(request, pk):
    """Void an invoice that has no payments"""
    invoice = get_object_or_404(Invoice, pk=pk)
    serializer = InvoiceVoidSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        invoice = services.void_invoice(invoice, user=request.user, reason=serializer.validated_data['reason'])
    except BUSINESS_ERRORS as exc:
        return business_error_response(exc)

    create_audit_log(request=request, action='invoice_void', model_name='Invoice', object_id=invoice.id,
                     object_reference=invoice.invoice_number,
                     changes={'reason': serializer.validated_data['reason']})
    return Response(InvoiceSerializer(invoice).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, SalesAccess])
def invoice_refunds(request, pk):
    """List or create refunds for an invoice"""
    invoice = get_object_or_404(Invoice.objects.select_related('customer'), pk=pk)

    if request.method == 'GET':
        refunds = invoice.refunds.prefetch_related('items', 'items__invoice_item__product').order_by('refund_date', 'id')
        return Response(RefundSerializer(refunds, many=True).data)

    serializer = RefundCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        refund = services.create_refund(
            invoice=invoice,
            amount=data['amount'],
            reason=data['reason'],
            refund_date=data.get('refund_date'),
            items=[dict(item) for item in data.get('items', [])],
            payment_method=data.get('payment_method'),
            notes=data.get('notes', ''),
            user=request.user,
        )
    except BUSINESS_ERRORS as exc:
        return business_error_response(exc)

    create_audit_log(request=request, action='refund', model_name='Invoice', object_id=invoice.id,
                     object_reference=invoice.invoice_number,
                     changes={'refund': refund.refund_number, 'amount': str(refund.amount)})
    return Response(RefundSerializer(refund).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, SalesAccess])
def refund_list(request):
    refunds = Refund.objects.select_related('invoice', 'invoice__customer', 'journal_entry').prefetch_related('items')
    customer_id = request.query_params.get('customer')
    if customer_id:
        refunds = refunds.filter(invoice__customer_id=customer_id)
    try:
        refunds = _date_filters(request, refunds, 'refund_date')
    except ValueError:
        return _bad_date()
    return Response(paginate(request, refunds.order_by('-refund_date', '-id'), RefundSerializer))


# Customer payments
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, SalesAccess])
def payment_list_create(request):
    """List customer payments or record one"""
    if request.method == 'GET':
        payments = CustomerPayment.objects.select_related('customer', 'journal_entry').prefetch_related(
            'allocations', 'allocations__invoice')
        customer_id = request.query_params.get('customer')
        if customer_id:
            payments = payments.filter(customer_id=customer_id)
        payment_method = request.query_params.get('payment_method')
        if payment_method:
            payments = payments.filter(payment_method=payment_method)
        try:
            payments = _date_filters(request, payments, 'payment_date')
        except ValueError:
            return _bad_date()
        return Response(paginate(request, payments.order_by('-payment_date', '-id'), CustomerPaymentSerializer))

    serializer = CustomerPaymentCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    allocations = [(a['invoice'], a['amount']) for a in data.get('allocations', [])]

    try:
        payment = services.record_payment(
            customer=data['customer'],
            amount=data['amount'],
            payment_method=data['payment_method'],
            payment_date=data.get('payment_date'),
            reference=data.get('reference', ''),
            notes=data.get('notes', ''),
            allocations=allocations or None,
            user=request.user,
        )
    except BUSINESS_ERRORS as exc:
        return business_error_response(exc)

    create_audit_log(request=request, action='payment_add', model_name='CustomerPayment', object_id=payment.id,
                     object_name=payment.customer.name, object_reference=payment.payment_number,
                     changes={'amount': str(payment.amount),
                              'invoices': [a.invoice.invoice_number for a in payment.allocations.all()]})
    return Response(CustomerPaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, SalesAccess])
def payment_detail(request, pk):
    payment = get_object_or_404(CustomerPayment.objects.select_related('customer', 'journal_entry'), pk=pk)
    return Response(CustomerPaymentSerializer(payment).data)


# Quotations
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, SalesAccess])
def quotation_list_create(request):
    """List quotations or create one"""
    if request.method == 'GET':
        quotations = Quotation.objects.select_related('customer')
        status_filter = request.query_params.get('status')
        if status_filter:
            quotations = quotations.filter(status=status_filter)
        customer_id = request.query_params.get('customer')
        if customer_id:
            quotations = quotations.filter(customer_id=customer_id)
        search = request.query_params.get('search', '').strip()
        if search:
            quotations = quotations.filter(Q(quotation_number__icontains=search) |
                                           Q(customer__name__icontains=search))
        try:
            quotations = _date_filters(request, quotations, 'issue_date')
        except ValueError:
            return _bad_date()
        return Response(paginate(request, quotations.order_by('-issue_date', '-id'), QuotationListSerializer))

    serializer = QuotationWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        quotation = services.create_quotation(
            customer=data['customer'],
            items=[dict(item) for item in data['items']],
            packaging_items=[dict(p) for p in data.get('packaging_items', [])],
            user=request.user,
            issue_date=data.get('issue_date'),
            valid_until=data.get('valid_until'),
            transportation_fees=data['transportation_fees'],
            tax_rate=data.get('tax_rate'),
            notes=data.get('notes', ''),
            terms_and_conditions=data.get('terms_and_conditions', ''),
            status=data['status'],
        )
    except BUSINESS_ERRORS as exc:
        return business_error_response(exc)

    create_audit_log(request=request, action='create', model_name='Quotation', object_id=quotation.id,
                     object_name=quotation.customer.name, object_reference=quotation.quotation_number,
                     changes={'grand_total': str(quotation.grand_total)})
    return Response(QuotationSerializer(quotation).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, SalesAccess])
def quotation_detail(request, pk):
    """Retrieve, edit (draft/pending only) or delete (draft only) a quotation"""
    quotation = get_object_or_404(Quotation.objects.select_related('customer', 'converted_invoice'), pk=pk)

    if request.method == 'GET':
        return Response(QuotationSerializer(quotation).data)

    if request.method in ['PUT', 'PATCH']:
        serializer = QuotationWriteSerializer(data=request.data, partial=request.method == 'PATCH')
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = dict(serializer.validated_data)
        items = data.pop('items', None)
        packaging_items = data.pop('packaging_items', None)
        data.pop('status', None)
        try:
            quotation = services.update_quotation(
                quotation,
                items=[dict(i) for i in items] if items is not None else None,
                packaging_items=[dict(p) for p in packaging_items] if packaging_items is not None else None,
                **data
            )
        except BUSINESS_ERRORS as exc:
            return business_error_response(exc)
        create_audit_log(request=request, action='update', model_name='Quotation', object_id=quotation.id,
                         object_reference=quotation.quotation_number,
                         changes={'grand_total': str(quotation.grand_total)})
        return Response(QuotationSerializer(quotation).data)

    # DELETE
    if quotation.status != 'draft':
        return Response({'error': 'Only draft quotations can be deleted.'}, status=status.HTTP_400_BAD_REQUEST)
    quotation_id, number = quotation.id, quotation.quotation_number
    quotation.delete()
    create_audit_log(request=request, action='delete', model_name='Quotation', object_id=quotation_id,
                     object_reference=number)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, SalesAccess])
def quotation_status(request, pk):
    """Move a quotation through draft -> pending -> approved/rejected/expired"""
    quotation = get_object_or_404(Quotation, pk=pk)
    serializer = QuotationStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_status = quotation.status
    try:
        quotation = services.change_quotation_status(quotation, serializer.validated_data['status'])
    except BUSINESS_ERRORS as exc:
        return business_error_response(exc)

    create_audit_log(request=request, action='status_change', model_name='Quotation', object_id=quotation.id,
                     object_reference=quotation.quotation_number,
                     changes={'status': {'old': old_status, 'new': quotation.status}})
    return Response(QuotationSerializer(quotation).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, SalesAccess])
def quotation_convert(request, pk):
    """Create an invoice from a pending or approved quotation"""
    quotation = get_object_or_404(Quotation, pk=pk)
    serializer = QuotationConvertSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        invoice = services.convert_quotation(
            quotation,
            user=request.user,
            warehouse=data.get('warehouse'),
            invoice_date=data.get('invoice_date'),
            payment_terms=data.get('payment_terms'),
            amount_paid=data['amount_paid'],
            payment_method=data['payment_method'],
        )
    except BUSINESS_ERRORS as exc:
        return business_error_response(exc)

    create_audit_log(request=request, action='quotation_convert', model_name='Quotation', object_id=quotation.id,
                     object_reference=quotation.quotation_number, changes={'invoice': invoice.invoice_number})
    return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)
