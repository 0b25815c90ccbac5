import logging
from decimal import Decimal, InvalidOperation

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.db.models import Count, ProtectedError
from django.shortcuts import get_object_or_404

from pharmerp.core.permissions import module_access
from pharmerp.core.preferences import get_expiry_warning_days
from pharmerp.core.utils import create_audit_log, paginate
from .filters import ProductFilter
from .models import ProductCategory, Product
from .serializers import ProductCategorySerializer, ProductSerializer
from .utils import (
    stock_status, expiry_status, days_until_expiry, low_stock_q, expiring_q,
    suggested_reorder_quantity
)

logger = logging.getLogger(__name__)

CatalogAccess = module_access('catalog')


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, CatalogAccess])
def category_list_create(request):
    """List all product categories or create a new one"""
    if request.method == 'GET':
        categories = ProductCategory.objects.annotate(product_count=Count('products')).order_by('name')
        serializer = ProductCategorySerializer(categories, many=True)
        return Response(serializer.data)
    else:
        serializer = ProductCategorySerializer(data=request.data)
        if serializer.is_valid():
            category = serializer.save()
            create_audit_log(request=request, action='create', model_name='ProductCategory',
                             object_id=category.id, object_name=category.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, CatalogAccess])
def category_detail(request, pk):
    """Retrieve, update or delete a product category"""
    category = get_object_or_404(ProductCategory, pk=pk)

    if request.method == 'GET':
        serializer = ProductCategorySerializer(category)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ProductCategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if category.products.exists():
            return Response(
                {'error': 'Category has products assigned. Reassign them before deleting.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(request=request, action='delete', model_name='ProductCategory',
                         object_id=category.id, object_name=category.name)
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, CatalogAccess])
def product_list_create(request):
    """
    List products with filtering and pagination, or create a product.

    A new product may carry an opening stock via ``initial_quantity`` (and
    optionally ``warehouse``), which is received through inventory.
    """
    if request.method == 'GET':
        queryset = Product.objects.select_related('category').order_by('name', 'id')
        product_filter = ProductFilter(request.query_params, queryset=queryset)
        if not product_filter.is_valid():
            return Response(product_filter.errors, status=status.HTTP_400_BAD_REQUEST)
        return Response(paginate(request, product_filter.qs, ProductSerializer, default_limit=50))

    initial_quantity = request.data.get('initial_quantity')
    warehouse_id = request.data.get('warehouse')
    try:
        initial_quantity = Decimal(str(initial_quantity)) if initial_quantity not in (None, '') else Decimal('0')
    except InvalidOperation:
        return Response({'initial_quantity': ['A valid number is required.']}, status=status.HTTP_400_BAD_REQUEST)
    if initial_quantity < 0:
        return Response({'initial_quantity': ['Cannot be negative.']}, status=status.HTTP_400_BAD_REQUEST)

    serializer = ProductSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    from pharmerp.inventory.services import receive_stock
    from pharmerp.locations.models import Warehouse

    with transaction.atomic():
        product = serializer.save()
        if initial_quantity > 0:
            if warehouse_id:
                warehouse = get_object_or_404(Warehouse, pk=warehouse_id)
            else:
                warehouse = Warehouse.get_default()
            receive_stock(
                product=product,
                warehouse=warehouse,
                quantity=initial_quantity,
                unit_cost=product.cost_price,
                transaction_type='adjustment',
                reference_type='opening_stock',
                reference_id=product.id,
                notes='Opening stock',
                user=request.user,
                expiry_date=product.expiry_date,
            )
            product.refresh_from_db()

    create_audit_log(request=request, action='create', model_name='Product',
                     object_id=product.id, object_name=product.name, object_reference=product.sku)
    return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, CatalogAccess])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product.objects.select_related('category'), pk=pk)

    if request.method == 'GET':
        serializer = ProductSerializer(product)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        old_prices = {'cost_price': str(product.cost_price), 'selling_price': str(product.selling_price)}
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            new_prices = {'cost_price': str(product.cost_price), 'selling_price': str(product.selling_price)}
            create_audit_log(request=request, action='update', model_name='Product',
                             object_id=product.id, object_name=product.name, object_reference=product.sku,
                             changes={'prices': {'old': old_prices, 'new': new_prices}} if old_prices != new_prices else {})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if product.quantity > 0:
            return Response(
                {'error': 'Product still has stock on hand. Adjust stock to zero or mark it inactive.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        try:
            with transaction.atomic():
                product_id, name, sku = product.id, product.name, product.sku
                product.delete()
        except ProtectedError:
            return Response(
                {'error': 'Product is referenced by existing documents. Mark it inactive instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(request=request, action='delete', model_name='Product',
                         object_id=product_id, object_name=name, object_reference=sku)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, CatalogAccess])
def product_low_stock(request):
    """Products at or below their low stock threshold, most urgent first"""
    products = Product.objects.select_related('category').filter(low_stock_q()).exclude(status='inactive')

    results = []
    for product in products:
        level = stock_status(product.quantity, product.low_stock_threshold)
        results.append({
            'id': product.id,
            'name': product.name,
            'sku': product.sku,
            'category_name': product.category.name if product.category else None,
            'quantity': float(product.quantity),
            'low_stock_threshold': float(product.low_stock_threshold),
            'unit_of_measure': product.unit_of_measure,
            'stock_status': level,
            'suggested_reorder_quantity': float(suggested_reorder_quantity(product.quantity, product.low_stock_threshold)),
        })

    priority = {'out_of_stock': 0, 'critical': 1, 'low': 2, 'normal': 3}
    results.sort(key=lambda r: (priority[r['stock_status']], r['quantity'], r['name']))
    return Response({
        'count': len(results),
        'out_of_stock': sum(1 for r in results if r['stock_status'] == 'out_of_stock'),
        'critical': sum(1 for r in results if r['stock_status'] == 'critical'),
        'low': sum(1 for r in results if r['stock_status'] == 'low'),
        'results': results,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, CatalogAccess])
def product_expiring(request):
    """Products and batches expiring within ``days`` days (default from preferences)"""
    warning_days = get_expiry_warning_days()
    try:
        days = int(request.query_params.get('days', warning_days))
    except ValueError:
        return Response({'error': 'days must be an integer'}, status=status.HTTP_400_BAD_REQUEST)

    from pharmerp.inventory.models import Batch

    products = Product.objects.select_related('category').filter(expiring_q(days)).order_by('expiry_date')
    product_rows = [{
        'id': p.id,
        'name': p.name,
        'sku': p.sku,
        'quantity': float(p.quantity),
        'expiry_date': p.expiry_date.isoformat(),
        'days_until_expiry': days_until_expiry(p.expiry_date),
        'expiry_status': expiry_status(p.expiry_date, max(days, warning_days)),
    } for p in products]

    batches = Batch.objects.select_related('product', 'warehouse').filter(
        remaining_quantity__gt=0,
        status__in=['active', 'quarantine'],
    ).filter(expiring_q(days)).order_by('expiry_date')
    batch_rows = [{
        'id': b.id,
        'batch_number': b.batch_number,
        'product': b.product_id,
        'product_name': b.product.name,
        'warehouse_name': b.warehouse.name if b.warehouse else None,
        'remaining_quantity': float(b.remaining_quantity),
        'expiry_date': b.expiry_date.isoformat(),
        'days_until_expiry': days_until_expiry(b.expiry_date),
        'expiry_status': expiry_status(b.expiry_date, max(days, warning_days)),
    } for b in batches]

    return Response({
        'days': days,
        'products': product_rows,
        'batches': batch_rows,
        'expired_count': sum(1 for r in product_rows if r['expiry_status'] == 'expired'),
        'critical_count': sum(1 for r in product_rows if r['expiry_status'] == 'critical'),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, CatalogAccess])
def product_activity(request, pk):
    """Stock movements and sales lines for one product"""
    product = get_object_or_404(Product, pk=pk)

    from pharmerp.inventory.models import InventoryTransaction
    from pharmerp.inventory.serializers import InventoryTransactionSerializer
    from pharmerp.sales.models import InvoiceItem

    transactions = InventoryTransaction.objects.select_related('warehouse', 'user').filter(
        product=product
    ).order_by('-created_at', '-id')[:100]

    sales_lines = InvoiceItem.objects.select_related('invoice', 'invoice__customer').filter(
        product=product
    ).exclude(invoice__payment_status='void').order_by('-invoice__invoice_date', '-id')[:100]

    return Response({
        'product': ProductSerializer(product).data,
        'transactions': InventoryTransactionSerializer(transactions, many=True).data,
        'sales': [{
            'invoice_id': line.invoice_id,
            'invoice_number': line.invoice.invoice_number,
            'invoice_date': line.invoice.invoice_date.isoformat(),
            'customer_name': line.invoice.customer.name if line.invoice.customer else None,
            'quantity': float(line.quantity),
            'unit_price': float(line.unit_price),
            'total': float(line.total),
        } for line in sales_lines],
    })
