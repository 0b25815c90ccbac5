import logging
from decimal import Decimal

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q, Sum, Count
from django.db.models.deletion import ProtectedError
from django.shortcuts import get_object_or_404

from pharmerp.core.permissions import module_access
from pharmerp.core.utils import create_audit_log, paginate
from .models import Customer, Supplier
from .serializers import CustomerSerializer, SupplierSerializer

logger = logging.getLogger(__name__)

CustomerAccess = module_access('customers')
SupplierAccess = module_access('suppliers')

ZERO = Decimal('0')


def _search(queryset, query, fields):
    condition = Q()
    for field in fields:
        condition |= Q(**{f'{field}__icontains': query})
    return queryset.filter(condition)


# Customer views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, CustomerAccess])
def customer_list_create(request):
    """List customers or create a new one"""
    if request.method == 'GET':
        customers = Customer.objects.all()
        search = request.query_params.get('search', '').strip()
        if search:
            customers = _search(customers, search, ('name', 'phone', 'email', 'company', 'tax_number'))
        sector = request.query_params.get('sector')
        if sector:
            customers = customers.filter(sector__iexact=sector)
        if request.query_params.get('active', '').lower() in ('true', '1'):
            customers = customers.filter(is_active=True)
        return Response(paginate(request, customers.order_by('name'), CustomerSerializer, default_limit=50))

    serializer = CustomerSerializer(data=request.data)
    if serializer.is_valid():
        customer = serializer.save()
        create_audit_log(request=request, action='create', model_name='Customer',
                         object_id=customer.id, object_name=customer.name)
        return Response(CustomerSerializer(customer).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, CustomerAccess])
def customer_detail(request, pk):
    """Retrieve, update or delete a customer"""
    customer = get_object_or_404(Customer, pk=pk)

    if request.method == 'GET':
        return Response(CustomerSerializer(customer).data)

    if request.method in ['PUT', 'PATCH']:
        serializer = CustomerSerializer(customer, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Customer',
                             object_id=customer.id, object_name=customer.name,
                             changes={k: str(v) for k, v in serializer.validated_data.items()})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if customer.invoices.exists() or customer.payments.exists():
        return Response(
            {'error': 'Cannot delete a customer with invoices or payments. Deactivate it instead.'},
            status=status.HTTP_400_BAD_REQUEST
        )
    customer_id, customer_name = customer.id, customer.name
    try:
        customer.delete()
    except ProtectedError:
        return Response({'error': 'Customer is referenced by other records.'}, status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='delete', model_name='Customer',
                     object_id=customer_id, object_name=customer_name)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, CustomerAccess])
def customer_profile(request, pk):
    """Customer summary with totals and recent activity"""
    from pharmerp.sales.models import Invoice, CustomerPayment, Refund
    from pharmerp.sales.serializers import InvoiceListSerializer, CustomerPaymentSerializer

    customer = get_object_or_404(Customer, pk=pk)
    invoices = Invoice.objects.filter(customer=customer).exclude(payment_status='void')
    payments = CustomerPayment.objects.filter(customer=customer, status='completed')

    invoice_totals = invoices.aggregate(
        count=Count('id'),
        invoiced=Sum('grand_total'),
        refunded=Sum('refunded_amount'),
    )
    total_paid = payments.aggregate(total=Sum('amount'))['total'] or ZERO
    total_refunded = Refund.objects.filter(invoice__customer=customer).aggregate(total=Sum('amount'))['total'] or ZERO
    outstanding = sum((inv.balance_due for inv in invoices.exclude(payment_status__in=['paid', 'refunded'])), ZERO)
    unapplied = sum((p.unapplied_amount for p in payments), ZERO)

    return Response({
        'customer': CustomerSerializer(customer).data,
        'invoice_count': invoice_totals['count'],
        'total_invoiced': float(invoice_totals['invoiced'] or ZERO),
        'total_paid': float(total_paid),
        'total_refunded': float(total_refunded),
        'outstanding_balance': float(outstanding),
        'unapplied_credit': float(unapplied),
        'overdue_invoices': sum(1 for inv in invoices if inv.is_overdue),
        'recent_invoices': InvoiceListSerializer(invoices.order_by('-invoice_date', '-id')[:10], many=True).data,
        'recent_payments': CustomerPaymentSerializer(payments.order_by('-payment_date', '-id')[:10], many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, CustomerAccess])
def customer_statement(request, pk):
    """Chronological invoices, payments and refunds with a running balance"""
    from pharmerp.sales.models import Invoice, CustomerPayment, Refund

    customer = get_object_or_404(Customer, pk=pk)
    entries = []

    for inv in Invoice.objects.filter(customer=customer).exclude(payment_status='void'):
        entries.append({
            'date': inv.invoice_date,
            'type': 'invoice',
            'reference': inv.invoice_number,
            'description': f"Invoice {inv.invoice_number}",
            'debit': inv.grand_total,
            'credit': ZERO,
            'sort_key': (inv.invoice_date, 0, inv.id),
        })

    for payment in CustomerPayment.objects.filter(customer=customer, status='completed'):
        entries.append({
            'date': payment.payment_date,
            'type': 'payment',
            'reference': payment.payment_number,
            'description': f"Payment ({payment.get_payment_method_display()})",
            'debit': ZERO,
            'credit': payment.amount,
            'sort_key': (payment.payment_date, 1, payment.id),
        })

    for refund in Refund.objects.filter(invoice__customer=customer).select_related('invoice'):
        entries.append({
            'date': refund.refund_date,
            'type': 'refund',
            'reference': refund.refund_number,
            'description': f"Refund on {refund.invoice.invoice_number}",
            'debit': ZERO,
            'credit': refund.amount,
            'sort_key': (refund.refund_date, 2, refund.id),
        })
        if refund.cash_amount > 0:
            entries.append({
                'date': refund.refund_date,
                'type': 'refund_payout',
                'reference': refund.refund_number,
                'description': f"Refund paid out for {refund.invoice.invoice_number}",
                'debit': refund.cash_amount,
                'credit': ZERO,
                'sort_key': (refund.refund_date, 3, refund.id),
            })

    entries.sort(key=lambda e: e['sort_key'])

    running_balance = ZERO
    total_debit = total_credit = ZERO
    statement = []
    for entry in entries:
        running_balance += entry['debit'] - entry['credit']
        total_debit += entry['debit']
        total_credit += entry['credit']
        statement.append({
            'date': entry['date'],
            'type': entry['type'],
            'reference': entry['reference'],
            'description': entry['description'],
            'debit': float(entry['debit']),
            'credit': float(entry['credit']),
            'balance': float(running_balance),
        })

    return Response({
        'customer': {'id': customer.id, 'name': customer.name},
        'entries': statement,
        'total_debit': float(total_debit),
        'total_credit': float(total_credit),
        'closing_balance': float(running_balance),
    })


# Supplier views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, SupplierAccess])
def supplier_list_create(request):
    """List suppliers or create a new one"""
    if request.method == 'GET':
        suppliers = Supplier.objects.all()
        search = request.query_params.get('search', '').strip()
        if search:
            suppliers = _search(suppliers, search, ('name', 'contact_person', 'phone', 'email', 'materials'))
        supplier_type = request.query_params.get('supplier_type')
        if supplier_type:
            suppliers = suppliers.filter(supplier_type=supplier_type)
        return Response(paginate(request, suppliers.order_by('name'), SupplierSerializer, default_limit=50))

    serializer = SupplierSerializer(data=request.data)
    if serializer.is_valid():
        supplier = serializer.save()
        create_audit_log(request=request, action='create', model_name='Supplier',
                         object_id=supplier.id, object_name=supplier.name)
        return Response(SupplierSerializer(supplier).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, SupplierAccess])
def supplier_detail(request, pk):
    """Retrieve, update or delete a supplier"""
    supplier = get_object_or_404(Supplier, pk=pk)

    if request.method == 'GET':
        return Response(SupplierSerializer(supplier).data)

    if request.method in ['PUT', 'PATCH']:
        serializer = SupplierSerializer(supplier, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Supplier',
                             object_id=supplier.id, object_name=supplier.name,
                             changes={k: str(v) for k, v in serializer.validated_data.items()})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    if supplier.purchase_orders.exists():
        return Response(
            {'error': 'Cannot delete a supplier with purchase orders. Deactivate it instead.'},
            status=status.HTTP_400_BAD_REQUEST
        )
    supplier_id, supplier_name = supplier.id, supplier.name
    try:
        supplier.delete()
    except ProtectedError:
        return Response({'error': 'Supplier is referenced by other records.'}, status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='delete', model_name='Supplier',
                     object_id=supplier_id, object_name=supplier_name)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, SupplierAccess])
def supplier_profile(request, pk):
    """Supplier summary with purchase orders and outstanding payable"""
    from pharmerp.purchasing.models import PurchaseOrder, SupplierPayment
    from pharmerp.purchasing.serializers import PurchaseOrderListSerializer

    supplier = get_object_or_404(Supplier, pk=pk)
    orders = PurchaseOrder.objects.filter(supplier=supplier).exclude(status='cancelled')
    totals = orders.aggregate(
        count=Count('id'),
        ordered=Sum('total_amount'),
        received=Sum('received_amount'),
        paid=Sum('amount_paid'),
    )
    received = totals['received'] or ZERO
    paid = totals['paid'] or ZERO

    return Response({
        'supplier': SupplierSerializer(supplier).data,
        'purchase_order_count': totals['count'],
        'total_ordered': float(totals['ordered'] or ZERO),
        'total_received': float(received),
        'total_paid': float(paid),
        'outstanding_payable': float(received - paid),
        'payment_count': SupplierPayment.objects.filter(supplier=supplier).count(),
        'recent_purchase_orders': PurchaseOrderListSerializer(
            orders.order_by('-order_date', '-id')[:10], many=True
        ).data,
    })
