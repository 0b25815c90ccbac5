import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from django.shortcuts import get_object_or_404

from pharmerp.accounting.posting import PostingError
from pharmerp.core.permissions import module_access
from pharmerp.core.utils import create_audit_log, paginate, parse_date
from pharmerp.inventory.services import StockError
from .models import PurchaseOrder, SupplierPayment
from .serializers import (
    PurchaseOrderSerializer, PurchaseOrderListSerializer, PurchaseOrderWriteSerializer, ReceiveSerializer,
    PurchaseReceiptSerializer, SupplierPaymentSerializer, SupplierPaymentCreateSerializer,
)
from . import services
from .services import PurchasingError, InvalidTransitionError

logger = logging.getLogger(__name__)

ProcurementAccess = module_access('procurement')

BUSINESS_ERRORS = (PurchasingError, StockError, PostingError)


def _error_response(exc):
    payload = {'error': str(exc)}
    if isinstance(exc, InvalidTransitionError):
        payload.update({'code': 'INVALID_TRANSITION', 'current_status': exc.current, 'requested_status': exc.target})
    return Response(payload, status=status.HTTP_400_BAD_REQUEST)


def _bad_date():
    return Response({'error': 'Invalid date format. Use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)


def _po_queryset():
    return PurchaseOrder.objects.select_related('supplier', 'warehouse', 'user').prefetch_related(
        'items__product', 'receipts', 'payments')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, ProcurementAccess])
def purchase_order_list_create(request):
    """List purchase orders or create a new one"""
    if request.method == 'GET':
        queryset = PurchaseOrder.objects.select_related('supplier')

        supplier = request.query_params.get('supplier', None)
        status_filter = request.query_params.get('status', None)
        payment_status = request.query_params.get('payment_status', None)
        search = request.query_params.get('search', '').strip()

        if supplier:
            queryset = queryset.filter(supplier_id=supplier)
        if status_filter:
            queryset = queryset.filter(status__in=status_filter.split(','))
        if payment_status:
            queryset = queryset.filter(payment_status=payment_status)
        if search:
            queryset = queryset.filter(Q(po_number__icontains=search) | Q(supplier__name__icontains=search))
        try:
            date_from = parse_date(request.query_params.get('date_from'))
            date_to = parse_date(request.query_params.get('date_to'))
        except ValueError:
            return _bad_date()
        if date_from:
            queryset = queryset.filter(order_date__gte=date_from)
        if date_to:
            queryset = queryset.filter(order_date__lte=date_to)

        return Response(paginate(request, queryset.order_by('-order_date', '-id'), PurchaseOrderListSerializer,
                                 default_limit=15))

    serializer = PurchaseOrderWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = dict(serializer.validated_data)
    items = [dict(item) for item in data.pop('items')]

    try:
        purchase_order = services.create_purchase_order(items=items, user=request.user, **data)
    except BUSINESS_ERRORS as exc:
        return _error_response(exc)

    create_audit_log(request=request, action='create', model_name='PurchaseOrder', object_id=purchase_order.id,
                     object_name=purchase_order.supplier.name, object_reference=purchase_order.po_number,
                     changes={'total_amount': str(purchase_order.total_amount), 'status': purchase_order.status})
    return Response(PurchaseOrderSerializer(purchase_order).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, ProcurementAccess])
def purchase_order_detail(request, pk):
    """Retrieve, edit (draft/pending only) or delete (draft only) a purchase order"""
    purchase_order = get_object_or_404(_po_queryset(), pk=pk)

    if request.method == 'GET':
        return Response(PurchaseOrderSerializer(purchase_order).data)

    if request.method == 'DELETE':
        if purchase_order.status != 'draft':
            return Response({'error': 'Only draft purchase orders can be deleted. Cancel it instead.'},
                            status=status.HTTP_400_BAD_REQUEST)
        po_number = purchase_order.po_number
        po_id = purchase_order.id
        purchase_order.delete()
        create_audit_log(request=request, action='delete', model_name='PurchaseOrder', object_id=po_id,
                         object_reference=po_number)
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = PurchaseOrderWriteSerializer(data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = dict(serializer.validated_data)
    items = data.pop('items', None)
    if items is not None:
        items = [dict(item) for item in items]

    try:
        purchase_order = services.update_purchase_order(purchase_order, items=items, **data)
    except BUSINESS_ERRORS as exc:
        return _error_response(exc)

    create_audit_log(request=request, action='update', model_name='PurchaseOrder', object_id=purchase_order.id,
                     object_reference=purchase_order.po_number,
                     changes={k: str(v) for k, v in data.items()})
    return Response(PurchaseOrderSerializer(_po_queryset().get(pk=purchase_order.pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, ProcurementAccess])
def purchase_order_approve(request, pk):
    purchase_order = get_object_or_404(PurchaseOrder, pk=pk)
    old_status = purchase_order.status
    try:
        purchase_order = services.approve_purchase_order(purchase_order, user=request.user)
    except BUSINESS_ERRORS as exc:
        return _error_response(exc)
    create_audit_log(request=request, action='status_change', model_name='PurchaseOrder', object_id=purchase_order.id,
                     object_reference=purchase_order.po_number,
                     changes={'status': {'old': old_status, 'new': purchase_order.status}})
    return Response(PurchaseOrderSerializer(_po_queryset().get(pk=purchase_order.pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, ProcurementAccess])
def purchase_order_cancel(request, pk):
    purchase_order = get_object_or_404(PurchaseOrder, pk=pk)
    old_status = purchase_order.status
    try:
        purchase_order = services.cancel_purchase_order(purchase_order, user=request.user)
    except BUSINESS_ERRORS as exc:
        return _error_response(exc)
    create_audit_log(request=request, action='status_change', model_name='PurchaseOrder', object_id=purchase_order.id,
                     object_reference=purchase_order.po_number,
                     changes={'status': {'old': old_status, 'new': purchase_order.status}})
    return Response(PurchaseOrderSerializer(_po_queryset().get(pk=purchase_order.pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, ProcurementAccess])
def purchase_order_receive(request, pk):
    """
    Receive goods against a purchase order.

    Body: {"lines": [{"item": <id>, "quantity": 5, "batch_number": "...",
    "expiry_date": "YYYY-MM-DD"}], "receipt_date": ..., "notes": ...}
    """
    purchase_order = get_object_or_404(PurchaseOrder, pk=pk)
    serializer = ReceiveSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        receipt = services.receive_purchase_order(
            purchase_order,
            lines=[dict(line) for line in data['lines']],
            user=request.user,
            receipt_date=data.get('receipt_date'),
            notes=data.get('notes', ''),
        )
    except BUSINESS_ERRORS as exc:
        return _error_response(exc)

    create_audit_log(request=request, action='purchase_receive', model_name='PurchaseOrder',
                     object_id=purchase_order.id, object_reference=purchase_order.po_number,
                     changes={'receipt_number': receipt.receipt_number, 'amount': str(receipt.amount)})
    return Response({
        'receipt': PurchaseReceiptSerializer(receipt).data,
        'purchase_order': PurchaseOrderSerializer(_po_queryset().get(pk=purchase_order.pk)).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, ProcurementAccess])
def supplier_payment_list_create(request):
    """List supplier payments or pay against a purchase order"""
    if request.method == 'GET':
        payments = SupplierPayment.objects.select_related('supplier', 'purchase_order', 'journal_entry')
        supplier = request.query_params.get('supplier')
        if supplier:
            payments = payments.filter(supplier_id=supplier)
        purchase_order = request.query_params.get('purchase_order')
        if purchase_order:
            payments = payments.filter(purchase_order_id=purchase_order)
        return Response(paginate(request, payments.order_by('-payment_date', '-id'), SupplierPaymentSerializer))

    serializer = SupplierPaymentCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        payment = services.record_supplier_payment(
            data['purchase_order'],
            data['amount'],
            payment_method=data['payment_method'],
            payment_date=data.get('payment_date'),
            reference=data.get('reference', ''),
            notes=data.get('notes', ''),
            user=request.user,
        )
    except BUSINESS_ERRORS as exc:
        return _error_response(exc)

    create_audit_log(request=request, action='payment_add', model_name='SupplierPayment', object_id=payment.id,
                     object_name=payment.supplier.name, object_reference=payment.payment_number,
                     changes={'amount': str(payment.amount), 'purchase_order': payment.purchase_order.po_number})
    return Response(SupplierPaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, ProcurementAccess])
def supplier_payment_detail(request, pk):
    payment = get_object_or_404(SupplierPayment.objects.select_related('supplier', 'purchase_order'), pk=pk)
    return Response(SupplierPaymentSerializer(payment).data)
