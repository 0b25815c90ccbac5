import logging
from decimal import Decimal

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Sum, Count, F, Q, DecimalField, ExpressionWrapper
from django.shortcuts import get_object_or_404

from pharmerp.catalog.models import Product
from pharmerp.catalog.utils import stock_status
from pharmerp.core.permissions import module_access
from pharmerp.core.utils import create_audit_log, paginate
from pharmerp.locations.models import Warehouse
from pharmerp.parties.models import Supplier
from .models import WarehouseStock, Batch, InventoryTransaction, StockAdjustment
from .serializers import (
    WarehouseStockSerializer, BatchSerializer, BatchReceiveSerializer,
    InventoryTransactionSerializer, StockAdjustmentSerializer,
    StockAdjustmentCreateSerializer, StockTransferSerializer,
)
from .services import receive_stock, adjust_stock, transfer_stock, StockError, InsufficientStockError

logger = logging.getLogger(__name__)

InventoryAccess = module_access('inventory')


def stock_error_response(exc):
    if isinstance(exc, InsufficientStockError):
        return Response(exc.to_dict(), status=status.HTTP_400_BAD_REQUEST)
    return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)


# Stock views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated, InventoryAccess])
def stock_list(request):
    """List warehouse stock entries with optional filtering"""
    queryset = WarehouseStock.objects.select_related('product', 'warehouse')
    product_id = request.query_params.get('product')
    warehouse_id = request.query_params.get('warehouse')

    if product_id:
        queryset = queryset.filter(product_id=product_id)
    if warehouse_id:
        queryset = queryset.filter(warehouse_id=warehouse_id)
    if request.query_params.get('in_stock', '').lower() in ('true', '1'):
        queryset = queryset.filter(quantity__gt=0)

    queryset = queryset.order_by('product__name', 'warehouse__name')
    serializer = WarehouseStockSerializer(queryset, many=True)
    return Response(serializer.data)


# Batch views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, InventoryAccess])
def batch_list_create(request):
    """List batches or receive a new batch into stock"""
    if request.method == 'GET':
        batches = Batch.objects.select_related('product', 'warehouse', 'supplier')
        product_id = request.query_params.get('product')
        status_filter = request.query_params.get('status')
        if product_id:
            batches = batches.filter(product_id=product_id)
        if status_filter:
            batches = batches.filter(status=status_filter)
        if request.query_params.get('available', '').lower() in ('true', '1'):
            batches = batches.filter(remaining_quantity__gt=0)
        return Response(paginate(request, batches.order_by('expiry_date', 'id'), BatchSerializer, default_limit=50))

    serializer = BatchReceiveSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    product = get_object_or_404(Product, pk=data['product'])
    warehouse = get_object_or_404(Warehouse, pk=data['warehouse']) if data.get('warehouse') else Warehouse.get_default()
    supplier = get_object_or_404(Supplier, pk=data['supplier']) if data.get('supplier') else None

    try:
        txn = receive_stock(
            product=product,
            warehouse=warehouse,
            quantity=data['quantity'],
            unit_cost=data.get('unit_cost'),
            transaction_type='purchase',
            reference_type='batch',
            reference_id=data['batch_number'],
            notes=data.get('notes', ''),
            user=request.user,
            batch_number=data['batch_number'],
            expiry_date=data.get('expiry_date'),
            manufacture_date=data.get('manufacture_date'),
            supplier=supplier,
        )
    except StockError as exc:
        return stock_error_response(exc)

    create_audit_log(request=request, action='create', model_name='Batch', object_id=txn.batch_id,
                     object_name=product.name, object_reference=data['batch_number'],
                     changes={'quantity': str(data['quantity']), 'warehouse': warehouse.code})
    return Response(BatchSerializer(txn.batch).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, InventoryAccess])
def batch_detail(request, pk):
    """Retrieve a batch or update its status/notes"""
    batch = get_object_or_404(Batch.objects.select_related('product', 'warehouse', 'supplier'), pk=pk)

    if request.method == 'GET':
        return Response(BatchSerializer(batch).data)

    allowed = {k: v for k, v in request.data.items() if k in ('status', 'notes', 'expiry_date', 'manufacture_date')}
    old_status = batch.status
    serializer = BatchSerializer(batch, data=allowed, partial=True)
    if serializer.is_valid():
        serializer.save()
        if old_status != batch.status:
            create_audit_log(request=request, action='status_change', model_name='Batch', object_id=batch.id,
                             object_name=batch.product.name, object_reference=batch.batch_number,
                             changes={'status': {'old': old_status, 'new': batch.status}})
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# Transaction history
@api_view(['GET'])
@permission_classes([IsAuthenticated, InventoryAccess])
def transaction_list(request):
    """Inventory movements, newest first"""
    queryset = InventoryTransaction.objects.select_related('product', 'warehouse', 'batch', 'user')

    for param, field in (('product', 'product_id'), ('warehouse', 'warehouse_id'),
                         ('type', 'transaction_type'), ('reference_type', 'reference_type'),
                         ('reference_id', 'reference_id')):
        value = request.query_params.get(param)
        if value:
            queryset = queryset.filter(**{field: value})

    date_from = request.query_params.get('date_from')
    date_to = request.query_params.get('date_to')
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    return Response(paginate(request, queryset.order_by('-created_at', '-id'), InventoryTransactionSerializer, default_limit=50))


# Adjustments
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, InventoryAccess])
def adjustment_list_create(request):
    """List stock adjustments or record a new one"""
    if request.method == 'GET':
        adjustments = StockAdjustment.objects.select_related('product', 'warehouse', 'adjusted_by')
        product_id = request.query_params.get('product')
        if product_id:
            adjustments = adjustments.filter(product_id=product_id)
        return Response(paginate(request, adjustments.order_by('-created_at', '-id'), StockAdjustmentSerializer))

    serializer = StockAdjustmentCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    product = get_object_or_404(Product, pk=data['product'])
    warehouse = get_object_or_404(Warehouse, pk=data['warehouse'])

    try:
        adjustment = adjust_stock(
            product=product,
            warehouse=warehouse,
            adjustment_type=data['adjustment_type'],
            quantity=data['quantity'],
            reason=data['reason'],
            notes=data.get('notes', ''),
            user=request.user,
        )
    except StockError as exc:
        return stock_error_response(exc)

    create_audit_log(request=request, action='stock_adjust', model_name='Product', object_id=product.id,
                     object_name=product.name, object_reference=adjustment.adjustment_number,
                     changes={'previous': str(adjustment.previous_quantity),
                              'adjusted': str(adjustment.adjusted_quantity),
                              'reason': adjustment.reason})
    return Response(StockAdjustmentSerializer(adjustment).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, InventoryAccess])
def transfer_create(request):
    """Move stock between two warehouses"""
    serializer = StockTransferSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    product = get_object_or_404(Product, pk=data['product'])
    source = get_object_or_404(Warehouse, pk=data['from_warehouse'])
    destination = get_object_or_404(Warehouse, pk=data['to_warehouse'])

    try:
        out_txn, in_txn = transfer_stock(product, source, destination, data['quantity'],
                                         notes=data.get('notes', ''), user=request.user)
    except StockError as exc:
        return stock_error_response(exc)

    create_audit_log(request=request, action='stock_transfer', model_name='Product', object_id=product.id,
                     object_name=product.name, object_reference=out_txn.reference_id,
                     changes={'quantity': str(data['quantity'])})
    return Response({
        'transfer_out': InventoryTransactionSerializer(out_txn).data,
        'transfer_in': InventoryTransactionSerializer(in_txn).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, InventoryAccess])
def inventory_summary(request):
    """Stock totals, value and stock-level counts"""
    products = Product.objects.exclude(status='inactive')
    value_expr = ExpressionWrapper(F('quantity') * F('cost_price'), output_field=DecimalField(max_digits=18, decimal_places=2))
    retail_expr = ExpressionWrapper(F('quantity') * F('selling_price'), output_field=DecimalField(max_digits=18, decimal_places=2))
    totals = products.aggregate(
        total_quantity=Sum('quantity'),
        cost_value=Sum(value_expr),
        retail_value=Sum(retail_expr),
    )

    levels = {'out_of_stock': 0, 'critical': 0, 'low': 0, 'normal': 0}
    for qty, threshold in products.values_list('quantity', 'low_stock_threshold'):
        levels[stock_status(qty, threshold)] += 1

    return Response({
        'total_products': products.count(),
        'total_quantity': float(totals['total_quantity'] or 0),
        'total_cost_value': float(totals['cost_value'] or 0),
        'total_retail_value': float(totals['retail_value'] or 0),
        'stock_levels': levels,
        'active_batches': Batch.objects.filter(status='active', remaining_quantity__gt=0).count(),
        'warehouses': Warehouse.objects.filter(is_active=True).count(),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, InventoryAccess])
def warehouse_breakdown(request):
    """Per-warehouse product count, quantity and value at cost"""
    value_expr = ExpressionWrapper(F('stock_entries__quantity') * F('stock_entries__product__cost_price'),
                                   output_field=DecimalField(max_digits=18, decimal_places=2))
    warehouses = Warehouse.objects.annotate(
        product_count=Count('stock_entries', filter=Q(stock_entries__quantity__gt=0)),
        total_quantity=Sum('stock_entries__quantity'),
        total_value=Sum(value_expr),
    ).order_by('name')

    return Response([{
        'id': w.id,
        'name': w.name,
        'code': w.code,
        'is_active': w.is_active,
        'product_count': w.product_count,
        'total_quantity': float(w.total_quantity or Decimal('0')),
        'total_value': float(w.total_value or Decimal('0')),
    } for w in warehouses])
