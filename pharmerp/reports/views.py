import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from pharmerp.core.permissions import module_access
from pharmerp.core.utils import parse_date_range
from . import queries

logger = logging.getLogger(__name__)

DashboardAccess = module_access('dashboard')
ReportsAccess = module_access('reports')


def _bad_date():
    return Response({'error': 'Invalid date format. Use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)


def _limit(request, default=10):
    try:
        return max(1, min(int(request.query_params.get('limit', default)), 100))
    except (TypeError, ValueError):
        return default


@api_view(['GET'])
@permission_classes([IsAuthenticated, DashboardAccess])
def dashboard_summary(request):
    """
    Dashboard KPIs: revenue, expenses and net profit for the period
    (default last 30 days), receivables, stock alerts, pending work and
    the last six months of sales.
    """
    try:
        date_from, date_to = parse_date_range(request, default_days=30)
    except ValueError:
        return _bad_date()
    return Response(queries.dashboard_summary(date_from, date_to))


@api_view(['GET'])
@permission_classes([IsAuthenticated, ReportsAccess])
def sales_summary(request):
    try:
        date_from, date_to = parse_date_range(request, default_days=30)
    except ValueError:
        return _bad_date()
    return Response(queries.sales_summary(date_from, date_to))


@api_view(['GET'])
@permission_classes([IsAuthenticated, ReportsAccess])
def top_products(request):
    try:
        date_from, date_to = parse_date_range(request, default_days=30)
    except ValueError:
        return _bad_date()
    return Response(queries.top_products(date_from, date_to, limit=_limit(request)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, ReportsAccess])
def inventory_summary(request):
    return Response(queries.inventory_summary())


@api_view(['GET'])
@permission_classes([IsAuthenticated, ReportsAccess])
def customer_summary(request):
    try:
        date_from, date_to = parse_date_range(request, default_days=30)
    except ValueError:
        return _bad_date()
    return Response(queries.customer_summary(date_from, date_to, limit=_limit(request)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, ReportsAccess])
def expense_summary(request):
    try:
        date_from, date_to = parse_date_range(request, default_days=30)
    except ValueError:
        return _bad_date()
    return Response(queries.expense_summary(date_from, date_to))


@api_view(['GET'])
@permission_classes([IsAuthenticated, ReportsAccess])
def stock_ordering_report(request):
    """Low stock products with suggested reorder quantities (2 x threshold - quantity)"""
    rows = queries.stock_ordering(category=request.query_params.get('category') or None)
    return Response({
        'count': len(rows),
        'estimated_total_cost': round(sum(row['estimated_cost'] for row in rows), 2),
        'results': rows,
    })
