import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.db.models import Sum, F, DecimalField, ExpressionWrapper
from decimal import Decimal

from pharmerp.core.permissions import module_access
from pharmerp.core.utils import create_audit_log
from .models import Warehouse, WarehouseLocation
from .serializers import WarehouseSerializer, WarehouseLocationSerializer

logger = logging.getLogger(__name__)

InventoryAccess = module_access('inventory')


# Warehouse views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, InventoryAccess])
def warehouse_list_create(request):
    """List all warehouses or create a new warehouse"""
    if request.method == 'GET':
        warehouses = Warehouse.objects.select_related('manager').order_by('name')
        active = request.query_params.get('active')
        if active is not None:
            warehouses = warehouses.filter(is_active=active.lower() in ('true', '1'))
        serializer = WarehouseSerializer(warehouses, many=True)
        return Response(serializer.data)
    else:
        serializer = WarehouseSerializer(data=request.data)
        if serializer.is_valid():
            warehouse = serializer.save()
            logger.info(f"Warehouse {warehouse.code} created by {request.user.username}")
            create_audit_log(request=request, action='create', model_name='Warehouse',
                             object_id=warehouse.id, object_name=warehouse.name, object_reference=warehouse.code)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, InventoryAccess])
def warehouse_detail(request, pk):
    """Retrieve, update or delete a warehouse"""
    warehouse = get_object_or_404(Warehouse, pk=pk)

    if request.method == 'GET':
        serializer = WarehouseSerializer(warehouse)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = WarehouseSerializer(warehouse, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        held = warehouse.stock_entries.aggregate(total=Sum('quantity'))['total'] or Decimal('0')
        if held > 0:
            return Response(
                {'error': 'Warehouse still holds stock. Transfer it out before deleting.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        if warehouse.transactions.exists():
            # Keep history intact; retire instead of deleting
            warehouse.is_active = False
            warehouse.save(update_fields=['is_active', 'updated_at'])
            return Response(WarehouseSerializer(warehouse).data)
        create_audit_log(request=request, action='delete', model_name='Warehouse',
                         object_id=warehouse.id, object_name=warehouse.name, object_reference=warehouse.code)
        warehouse.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, InventoryAccess])
def warehouse_stock(request, pk):
    """Stock held in one warehouse with value at cost"""
    warehouse = get_object_or_404(Warehouse, pk=pk)
    value_expr = ExpressionWrapper(F('quantity') * F('product__cost_price'),
                                   output_field=DecimalField(max_digits=18, decimal_places=2))
    entries = warehouse.stock_entries.select_related('product').filter(quantity__gt=0).annotate(
        value=value_expr
    ).order_by('product__name')

    items = [{
        'product': entry.product_id,
        'product_name': entry.product.name,
        'sku': entry.product.sku,
        'quantity': float(entry.quantity),
        'reserved_quantity': float(entry.reserved_quantity),
        'available_quantity': float(entry.quantity - entry.reserved_quantity),
        'value': float(entry.value or 0),
    } for entry in entries]

    return Response({
        'warehouse': WarehouseSerializer(warehouse).data,
        'total_products': len(items),
        'total_quantity': float(sum(Decimal(str(i['quantity'])) for i in items)),
        'total_value': float(sum(Decimal(str(i['value'])) for i in items)),
        'items': items,
    })


# Warehouse location views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, InventoryAccess])
def location_list_create(request):
    """List storage locations (optionally for one warehouse) or create one"""
    if request.method == 'GET':
        locations = WarehouseLocation.objects.select_related('warehouse')
        warehouse_id = request.query_params.get('warehouse')
        if warehouse_id:
            locations = locations.filter(warehouse_id=warehouse_id)
        serializer = WarehouseLocationSerializer(locations, many=True)
        return Response(serializer.data)
    else:
        serializer = WarehouseLocationSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, InventoryAccess])
def location_detail(request, pk):
    """Retrieve, update or delete a storage location"""
    location = get_object_or_404(WarehouseLocation, pk=pk)

    if request.method == 'GET':
        return Response(WarehouseLocationSerializer(location).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = WarehouseLocationSerializer(location, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        location.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
