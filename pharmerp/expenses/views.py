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
from .models import Expense, ExpenseCategory
from .serializers import ExpenseSerializer, ExpenseCategorySerializer, ExpenseRejectSerializer
from . import services
from .services import ExpenseError

logger = logging.getLogger(__name__)

ExpensesAccess = module_access('expenses')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, ExpensesAccess])
def expense_list_create(request):
    """List expenses or record a new (pending) one"""
    if request.method == 'GET':
        expenses = Expense.objects.select_related('category', 'user', 'journal_entry')

        expense_status = request.query_params.get('status')
        category = request.query_params.get('category')
        account_category = request.query_params.get('account_category')
        cost_center = request.query_params.get('cost_center')
        search = request.query_params.get('search', '').strip()

        if expense_status:
            expenses = expenses.filter(status__in=expense_status.split(','))
        if category:
            expenses = expenses.filter(category_id=category)
        if account_category:
            expenses = expenses.filter(account_category=account_category)
        if cost_center:
            expenses = expenses.filter(cost_center=cost_center)
        if search:
            expenses = expenses.filter(
                Q(description__icontains=search) | Q(vendor__icontains=search) | Q(notes__icontains=search)
            )
        try:
            date_from = parse_date(request.query_params.get('date_from'))
            date_to = parse_date(request.query_params.get('date_to'))
        except ValueError:
            return Response({'error': 'Invalid date format. Use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)
        if date_from:
            expenses = expenses.filter(expense_date__gte=date_from)
        if date_to:
            expenses = expenses.filter(expense_date__lte=date_to)

        return Response(paginate(request, expenses.order_by('-expense_date', '-id'), ExpenseSerializer))

    serializer = ExpenseSerializer(data=request.data)
    if serializer.is_valid():
        expense = serializer.save(user=request.user)
        create_audit_log(request=request, action='create', model_name='Expense', object_id=expense.id,
                         object_name=expense.description, changes={'amount': str(expense.amount)})
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, ExpensesAccess])
def expense_detail(request, pk):
    """Retrieve, edit (pending only) or delete an expense"""
    expense = get_object_or_404(Expense.objects.select_related('category', 'journal_entry'), pk=pk)

    if request.method == 'GET':
        return Response(ExpenseSerializer(expense).data)

    if request.method == 'DELETE':
        description = expense.description
        expense_id = expense.id
        try:
            reversal = services.delete_expense(expense, user=request.user)
        except PostingError as exc:
            return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='Expense', object_id=expense_id,
                         object_name=description,
                         changes={'reversal': reversal.entry_number if reversal else None})
        return Response(status=status.HTTP_204_NO_CONTENT)

    if expense.status != 'pending':
        return Response({'error': f'Only pending expenses can be edited (expense is {expense.status}).'},
                        status=status.HTTP_400_BAD_REQUEST)
    serializer = ExpenseSerializer(expense, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        create_audit_log(request=request, action='update', model_name='Expense', object_id=expense.id,
                         object_name=expense.description,
                         changes={k: str(v) for k, v in serializer.validated_data.items()})
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated, ExpensesAccess])
def expense_approve(request, pk):
    """Approve a pending expense and post it: Dr expense account, Cr Cash/Bank"""
    expense = get_object_or_404(Expense, pk=pk)
    try:
        expense = services.approve_expense(expense, user=request.user)
    except (ExpenseError, PostingError) as exc:
        return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='expense_approve', model_name='Expense', object_id=expense.id,
                     object_name=expense.description, object_reference=expense.journal_entry.entry_number,
                     changes={'amount': str(expense.amount)})
    return Response(ExpenseSerializer(expense).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, ExpensesAccess])
def expense_reject(request, pk):
    expense = get_object_or_404(Expense, pk=pk)
    serializer = ExpenseRejectSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        expense = services.reject_expense(expense, reason=serializer.validated_data['reason'], user=request.user)
    except ExpenseError as exc:
        return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='expense_reject', model_name='Expense', object_id=expense.id,
                     object_name=expense.description, changes={'reason': expense.rejection_reason})
    return Response(ExpenseSerializer(expense).data)


# Expense categories
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, ExpensesAccess])
def category_list_create(request):
    if request.method == 'GET':
        categories = ExpenseCategory.objects.select_related('account')
        if request.query_params.get('active', '').lower() in ('true', '1'):
            categories = categories.filter(is_active=True)
        serializer = ExpenseCategorySerializer(categories.order_by('name'), many=True)
        return Response(serializer.data)

    serializer = ExpenseCategorySerializer(data=request.data)
    if serializer.is_valid():
        category = serializer.save()
        create_audit_log(request=request, action='create', model_name='ExpenseCategory', object_id=category.id,
                         object_name=category.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, ExpensesAccess])
def category_detail(request, pk):
    category = get_object_or_404(ExpenseCategory.objects.select_related('account'), pk=pk)

    if request.method == 'GET':
        return Response(ExpenseCategorySerializer(category).data)

    if request.method == 'DELETE':
        if category.expenses.exists():
            return Response({'error': 'Category has expenses. Deactivate it instead.'},
                            status=status.HTTP_400_BAD_REQUEST)
        name = category.name
        category_id = category.id
        category.delete()
        create_audit_log(request=request, action='delete', model_name='ExpenseCategory', object_id=category_id,
                         object_name=name)
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = ExpenseCategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        create_audit_log(request=request, action='update', model_name='ExpenseCategory', object_id=category.id,
                         object_name=category.name,
                         changes={k: str(v) for k, v in serializer.validated_data.items()})
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
