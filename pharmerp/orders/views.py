import logging
from decimal import Decimal

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q, Sum, Count
from django.shortcuts import get_object_or_404

from pharmerp.core.permissions import module_access
from pharmerp.core.utils import create_audit_log, paginate, parse_date
from pharmerp.inventory.services import StockError, InsufficientStockError
from .models import Order
from .serializers import (
    OrderSerializer, OrderListSerializer, OrderCreateSerializer, OrderStatusSerializer, ProfitMarginSerializer,
)
from . import services
from .services import OrderError, InvalidTransitionError

logger = logging.getLogger(__name__)

OrdersAccess = module_access('orders')


def _error_response(exc):
    if isinstance(exc, InsufficientStockError):
        return Response(exc.to_dict(), status=status.HTTP_400_BAD_REQUEST)
    payload = {'error': str(exc)}
    if isinstance(exc, InvalidTransitionError):
        payload.update({'code': 'INVALID_TRANSITION', 'current_status': exc.current, 'requested_status': exc.target})
    return Response(payload, status=status.HTTP_400_BAD_REQUEST)


def _filtered_orders(request):
    orders = Order.objects.select_related('customer', 'target_product')
    order_type = request.query_params.get('order_type') or request.query_params.get('type')
    if order_type:
        orders = orders.filter(order_type=order_type)
    order_status = request.query_params.get('status')
    if order_status:
        orders = orders.filter(status__in=order_status.split(','))
    customer_id = request.query_params.get('customer')
    if customer_id:
        orders = orders.filter(customer_id=customer_id)
    search = request.query_params.get('search', '').strip()
    if search:
        orders = orders.filter(
            Q(order_number__icontains=search) |
            Q(description__icontains=search) |
            Q(customer__name__icontains=search) |
            Q(batch_number__icontains=search)
        )
    date_from = parse_date(request.query_params.get('date_from'))
    date_to = parse_date(request.query_params.get('date_to'))
    if date_from:
        orders = orders.filter(created_at__date__gte=date_from)
    if date_to:
        orders = orders.filter(created_at__date__lte=date_to)
    return orders


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, OrdersAccess])
def order_list_create(request):
    """
    List production/refining orders or create one.

    Filters: order_type, status (comma separated), customer, search,
    date_from, date_to.
    """
    if request.method == 'GET':
        try:
            orders = _filtered_orders(request)
        except ValueError:
            return Response({'error': 'Invalid date format. Use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)
        return Response(paginate(request, orders.order_by('-created_at'), OrderListSerializer))

    serializer = OrderCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        order = services.create_order(
            order_type=data['order_type'],
            materials=data.get('materials'),
            packaging=data.get('packaging'),
            fees=data.get('fees'),
            transportation_cost=data.get('transportation_cost') or Decimal('0.00'),
            customer=data.get('customer'),
            user=request.user,
            warehouse=data.get('warehouse'),
            description=data.get('description', ''),
            target_product=data.get('target_product'),
            expected_output_quantity=data.get('expected_output_quantity'),
            batch_number=data.get('batch_number', ''),
            refining_steps=data.get('refining_steps'),
            profit_margin_percentage=data.get('profit_margin_percentage'),
        )
    except (OrderError, StockError) as exc:
        return _error_response(exc)

    create_audit_log(request=request, action='create', model_name='Order', object_id=order.id,
                     object_name=order.get_order_type_display(), object_reference=order.order_number,
                     changes={'total_cost': str(order.total_cost), 'revenue': str(order.revenue)})
    return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, OrdersAccess])
def order_detail(request, pk):
    order = get_object_or_404(
        Order.objects.select_related('customer', 'user', 'warehouse', 'target_product')
        .prefetch_related('items__product', 'fees'),
        pk=pk,
    )
    return Response(OrderSerializer(order).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, OrdersAccess])
def order_status(request, pk):
    """Advance an order: pending -> in_progress -> completed, or cancel it"""
    order = get_object_or_404(Order, pk=pk)
    serializer = OrderStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_status = order.status
    try:
        order = services.change_order_status(order, serializer.validated_data['status'], user=request.user)
    except (OrderError, StockError) as exc:
        return _error_response(exc)

    create_audit_log(request=request, action='order_status', model_name='Order', object_id=order.id,
                     object_reference=order.order_number,
                     changes={'status': {'old': old_status, 'new': order.status}})
    return Response(OrderSerializer(order).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, OrdersAccess])
def order_profit_margin(request, pk):
    order = get_object_or_404(Order, pk=pk)
    serializer = ProfitMarginSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_margin = order.profit_margin_percentage
    try:
        order = services.update_profit_margin(order, serializer.validated_data['profit_margin_percentage'])
    except OrderError as exc:
        return _error_response(exc)

    create_audit_log(request=request, action='update', model_name='Order', object_id=order.id,
                     object_reference=order.order_number,
                     changes={'profit_margin_percentage': {'old': str(old_margin),
                                                           'new': str(order.profit_margin_percentage)}})
    return Response(OrderSerializer(order).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, OrdersAccess])
def order_summary(request):
    """Counts by type and status plus cost, revenue and profit of completed orders"""
    try:
        orders = _filtered_orders(request)
    except ValueError:
        return Response({'error': 'Invalid date format. Use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)

    by_status = {row['status']: row['count'] for row in orders.values('status').annotate(count=Count('id'))}
    by_type = {row['order_type']: row['count'] for row in orders.values('order_type').annotate(count=Count('id'))}
    completed = orders.filter(status='completed').aggregate(
        total_cost=Sum('total_cost'),
        revenue=Sum('revenue'),
        profit=Sum('profit'),
    )
    return Response({
        'total_orders': sum(by_status.values()),
        'by_status': {key: by_status.get(key, 0) for key, _ in Order.STATUS_CHOICES},
        'by_type': {key: by_type.get(key, 0) for key, _ in Order.TYPE_CHOICES},
        'completed': {
            'total_cost': float(completed['total_cost'] or 0),
            'revenue': float(completed['revenue'] or 0),
            'profit': float(completed['profit'] or 0),
        },
    })
