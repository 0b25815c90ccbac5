import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone

from pharmerp.core.permissions import module_access
from pharmerp.core.utils import create_audit_log, paginate, parse_date, parse_date_range
from .chart import seed_chart_of_accounts
from .models import Account, JournalEntry, AccountingPeriod
from .posting import PostingError, create_journal_entry, post_draft_entry, reverse_journal_entry
from .serializers import (
    AccountSerializer, JournalEntrySerializer, JournalEntryListSerializer, JournalEntryCreateSerializer,
    JournalEntryReverseSerializer, AccountingPeriodSerializer,
)
from . import statements

logger = logging.getLogger(__name__)

AccountingAccess = module_access('accounting')


def _bad_date():
    return Response({'error': 'Invalid date format. Use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)


# Chart of accounts
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AccountingAccess])
def account_list_create(request):
    """List accounts or create a new one"""
    if request.method == 'GET':
        accounts = Account.objects.select_related('parent')
        account_type = request.query_params.get('type')
        if account_type:
            accounts = accounts.filter(account_type=account_type)
        active = request.query_params.get('active')
        if active is not None:
            accounts = accounts.filter(is_active=active.lower() in ('true', '1'))
        search = request.query_params.get('search', '').strip()
        if search:
            accounts = accounts.filter(Q(code__icontains=search) | Q(name__icontains=search))
        serializer = AccountSerializer(accounts.order_by('code'), many=True)
        return Response(serializer.data)

    serializer = AccountSerializer(data=request.data)
    if serializer.is_valid():
        account = serializer.save()
        create_audit_log(request=request, action='create', model_name='Account', object_id=account.id,
                         object_name=account.name, object_reference=account.code)
        return Response(AccountSerializer(account).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, AccountingAccess])
def account_detail(request, pk):
    """Retrieve, update or delete an account"""
    account = get_object_or_404(Account, pk=pk)

    if request.method == 'GET':
        return Response(AccountSerializer(account).data)

    if request.method in ['PUT', 'PATCH']:
        serializer = AccountSerializer(account, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Account', object_id=account.id,
                             object_name=account.name, object_reference=account.code,
                             changes={k: str(v) for k, v in serializer.validated_data.items()})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if account.lines.exists():
        return Response({'error': 'Cannot delete an account that has journal lines. Deactivate it instead.'},
                        status=status.HTTP_400_BAD_REQUEST)
    if account.children.exists():
        return Response({'error': 'Cannot delete an account with sub-accounts.'},
                        status=status.HTTP_400_BAD_REQUEST)
    if account.expense_categories.exists():
        return Response({'error': 'Account is used by an expense category.'},
                        status=status.HTTP_400_BAD_REQUEST)
    account_id, account_name, account_code = account.id, account.name, account.code
    account.delete()
    create_audit_log(request=request, action='delete', model_name='Account', object_id=account_id,
                     object_name=account_name, object_reference=account_code)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, AccountingAccess])
def seed_accounts(request):
    """Install the default chart of accounts"""
    created = seed_chart_of_accounts()
    if created:
        create_audit_log(request=request, action='create', model_name='Account', object_id=0,
                         object_name='Default chart of accounts',
                         changes={'created': [a.code for a in created]})
    return Response({
        'created': len(created),
        'accounts': AccountSerializer(Account.objects.order_by('code'), many=True).data,
    }, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


# Journal entries
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AccountingAccess])
def journal_entry_list_create(request):
    """List journal entries or record a manual one"""
    if request.method == 'GET':
        entries = JournalEntry.objects.select_related('user')
        status_filter = request.query_params.get('status')
        if status_filter:
            entries = entries.filter(status=status_filter)
        source_type = request.query_params.get('source_type')
        if source_type:
            entries = entries.filter(source_type='' if source_type == 'manual' else source_type)
        account_id = request.query_params.get('account')
        if account_id:
            entries = entries.filter(lines__account_id=account_id).distinct()
        search = request.query_params.get('search', '').strip()
        if search:
            entries = entries.filter(Q(entry_number__icontains=search) | Q(reference__icontains=search) |
                                     Q(memo__icontains=search))
        try:
            date_from = parse_date(request.query_params.get('date_from'))
            date_to = parse_date(request.query_params.get('date_to'))
        except ValueError:
            return _bad_date()
        if date_from:
            entries = entries.filter(entry_date__gte=date_from)
        if date_to:
            entries = entries.filter(entry_date__lte=date_to)
        return Response(paginate(request, entries.order_by('-entry_date', '-id'), JournalEntryListSerializer,
                                 default_limit=50))

    serializer = JournalEntryCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        entry = create_journal_entry(
            entry_date=data['entry_date'],
            lines=[dict(line) for line in data['lines']],
            memo=data.get('memo', ''),
            reference=data.get('reference', ''),
            user=request.user,
            status=data['status'],
        )
    except PostingError as exc:
        return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='journal_post' if entry.status == 'posted' else 'create',
                     model_name='JournalEntry', object_id=entry.id, object_reference=entry.entry_number,
                     changes={'total': str(entry.total_debit), 'status': entry.status})
    return Response(JournalEntrySerializer(entry).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated, AccountingAccess])
def journal_entry_detail(request, pk):
    """Retrieve a journal entry, or delete it while it is a draft"""
    entry = get_object_or_404(JournalEntry.objects.select_related('user', 'reversal_of'), pk=pk)

    if request.method == 'GET':
        return Response(JournalEntrySerializer(entry).data)

    if entry.status != 'draft':
        return Response({'error': 'Only draft entries can be deleted. Reverse posted entries instead.'},
                        status=status.HTTP_400_BAD_REQUEST)
    entry_id, entry_number = entry.id, entry.entry_number
    entry.delete()
    create_audit_log(request=request, action='delete', model_name='JournalEntry', object_id=entry_id,
                     object_reference=entry_number)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, AccountingAccess])
def journal_entry_post(request, pk):
    """Post a draft entry"""
    entry = get_object_or_404(JournalEntry, pk=pk)
    try:
        entry = post_draft_entry(entry, user=request.user)
    except PostingError as exc:
        return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='journal_post', model_name='JournalEntry', object_id=entry.id,
                     object_reference=entry.entry_number, changes={'total': str(entry.total_debit)})
    return Response(JournalEntrySerializer(entry).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, AccountingAccess])
def journal_entry_reverse(request, pk):
    """Reverse a posted entry"""
    entry = get_object_or_404(JournalEntry, pk=pk)
    serializer = JournalEntryReverseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        reversal = reverse_journal_entry(entry, reversal_date=serializer.validated_data.get('reversal_date'),
                                         memo=serializer.validated_data.get('memo', ''), user=request.user)
    except PostingError as exc:
        return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='journal_reverse', model_name='JournalEntry', object_id=entry.id,
                     object_reference=entry.entry_number, changes={'reversal': reversal.entry_number})
    return Response(JournalEntrySerializer(reversal).data, status=status.HTTP_201_CREATED)


# Accounting periods
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AccountingAccess])
def period_list_create(request):
    """List accounting periods or open a new one"""
    if request.method == 'GET':
        periods = AccountingPeriod.objects.select_related('closed_by').order_by('-start_date')
        return Response(AccountingPeriodSerializer(periods, many=True).data)

    serializer = AccountingPeriodSerializer(data=request.data)
    if serializer.is_valid():
        period = serializer.save()
        create_audit_log(request=request, action='create', model_name='AccountingPeriod', object_id=period.id,
                         object_name=period.name)
        return Response(AccountingPeriodSerializer(period).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated, AccountingAccess])
def period_close(request, pk):
    period = get_object_or_404(AccountingPeriod, pk=pk)
    if period.status == 'closed':
        return Response({'error': 'Period is already closed.'}, status=status.HTTP_400_BAD_REQUEST)
    drafts = JournalEntry.objects.filter(status='draft', entry_date__gte=period.start_date,
                                         entry_date__lte=period.end_date).count()
    if drafts:
        return Response({'error': f'Period has {drafts} draft entries. Post or delete them first.'},
                        status=status.HTTP_400_BAD_REQUEST)
    period.status = 'closed'
    period.closed_at = timezone.now()
    period.closed_by = request.user
    period.save()
    create_audit_log(request=request, action='period_close', model_name='AccountingPeriod', object_id=period.id,
                     object_name=period.name)
    return Response(AccountingPeriodSerializer(period).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, AccountingAccess])
def period_reopen(request, pk):
    period = get_object_or_404(AccountingPeriod, pk=pk)
    if period.status == 'open':
        return Response({'error': 'Period is already open.'}, status=status.HTTP_400_BAD_REQUEST)
    period.status = 'open'
    period.closed_at = None
    period.closed_by = None
    period.save()
    create_audit_log(request=request, action='period_reopen', model_name='AccountingPeriod', object_id=period.id,
                     object_name=period.name)
    return Response(AccountingPeriodSerializer(period).data)


# Reports
@api_view(['GET'])
@permission_classes([IsAuthenticated, AccountingAccess])
def trial_balance(request):
    try:
        date_from = parse_date(request.query_params.get('date_from'))
        date_to = parse_date(request.query_params.get('date_to'))
    except ValueError:
        return _bad_date()
    account_type = request.query_params.get('type') or None
    return Response(statements.trial_balance(date_from=date_from, date_to=date_to, account_type=account_type))


@api_view(['GET'])
@permission_classes([IsAuthenticated, AccountingAccess])
def profit_and_loss(request):
    try:
        date_from, date_to = parse_date_range(request, default_days=30)
    except ValueError:
        return _bad_date()
    return Response(statements.profit_and_loss(date_from=date_from, date_to=date_to))


@api_view(['GET'])
@permission_classes([IsAuthenticated, AccountingAccess])
def balance_sheet(request):
    try:
        as_of = parse_date(request.query_params.get('as_of'), timezone.localdate())
    except ValueError:
        return _bad_date()
    return Response(statements.balance_sheet(as_of=as_of))


@api_view(['GET'])
@permission_classes([IsAuthenticated, AccountingAccess])
def general_ledger(request, account_id):
    account = get_object_or_404(Account, pk=account_id)
    try:
        date_from = parse_date(request.query_params.get('date_from'))
        date_to = parse_date(request.query_params.get('date_to'))
    except ValueError:
        return _bad_date()
    return Response(statements.general_ledger(account, date_from=date_from, date_to=date_to))


@api_view(['GET'])
@permission_classes([IsAuthenticated, AccountingAccess])
def cash_flow(request):
    try:
        date_from, date_to = parse_date_range(request, default_days=30)
    except ValueError:
        return _bad_date()
    return Response(statements.cash_flow(date_from=date_from, date_to=date_to))


@api_view(['GET'])
@permission_classes([IsAuthenticated, AccountingAccess])
def receivables_aging(request):
    try:
        as_of = parse_date(request.query_params.get('as_of'), timezone.localdate())
    except ValueError:
        return _bad_date()
    return Response(statements.receivables_aging(as_of=as_of))


@api_view(['GET'])
@permission_classes([IsAuthenticated, AccountingAccess])
def customer_balances(request):
    return Response(statements.customer_balances())


@api_view(['GET'])
@permission_classes([IsAuthenticated, AccountingAccess])
def financial_summary(request):
    try:
        date_from, date_to = parse_date_range(request, default_days=30)
    except ValueError:
        return _bad_date()
    return Response(statements.financial_summary(date_from=date_from, date_to=date_to))
