import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404
from django.db.models import Q
from .models import UserPermission, SystemPreference, AuditLog
from .permissions import IsAdminRole, is_admin_user, has_module_access, get_user_modules
from .serializers import (
    UserSerializer, UserCreateSerializer, UserStatusSerializer, UserRoleSerializer,
    UserPermissionSerializer, SystemPreferenceSerializer, AuditLogSerializer
)
from .utils import create_audit_log, paginate

User = get_user_model()
logger = logging.getLogger(__name__)


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if self.user.status != 'active':
            raise AuthenticationFailed(f'User account is {self.user.status}.')
        data['user'] = UserSerializer(self.user).data
        data['modules'] = get_user_modules(self.user)
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = user.role
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer

    def post(self, request, *args, **kwargs):
        username = request.data.get('username', '')
        try:
            response = super().post(request, *args, **kwargs)
        except (AuthenticationFailed, InvalidToken):
            user = User.objects.filter(username=username).first()
            create_audit_log(
                request=request,
                action='login_failed',
                model_name='User',
                object_id=user.id if user else 0,
                object_name=username,
                user=user,
            )
            logger.info(f"Failed login for '{username}'")
            raise
        user = User.objects.filter(username=username).first()
        if user:
            create_audit_log(request=request, action='login', model_name='User',
                             object_id=user.id, object_name=user.username, user=user)
        return response


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that rejects tokens of deleted users"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """User registration endpoint"""
    data = request.data.copy()
    # Self-registration never grants elevated roles
    data['role'] = 'staff'
    serializer = UserCreateSerializer(data=data)
    if serializer.is_valid():
        user = serializer.save()
        token = CustomTokenObtainPairSerializer.get_token(user)
        create_audit_log(request=request, action='create', model_name='User',
                         object_id=user.id, object_name=user.username, user=user)
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with effective module access"""
    user = request.user
    user_data = UserSerializer(user).data
    user_data['is_admin'] = is_admin_user(user)
    user_data['modules'] = get_user_modules(user)
    return Response(user_data)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.all().order_by('username')
        role = request.query_params.get('role')
        status_filter = request.query_params.get('status')
        search = request.query_params.get('search')
        if role:
            users = users.filter(role=role)
        if status_filter:
            users = users.filter(status=status_filter)
        if search:
            users = users.filter(
                Q(username__icontains=search) |
                Q(email__icontains=search) |
                Q(first_name__icontains=search) |
                Q(last_name__icontains=search)
            )
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            create_audit_log(request=request, action='create', model_name='User',
                             object_id=user.id, object_name=user.username)
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        serializer = UserSerializer(user)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='User',
                             object_id=user.id, object_name=user.username,
                             changes={k: v for k, v in request.data.items() if k != 'password'})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account.'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='User',
                         object_id=user.id, object_name=user.username)
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_status_update(request, pk):
    """Activate, deactivate or suspend a user"""
    user = get_object_or_404(User, pk=pk)
    serializer = UserStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    if user.pk == request.user.pk and serializer.validated_data['status'] != 'active':
        return Response({'error': 'You cannot deactivate your own account.'}, status=status.HTTP_400_BAD_REQUEST)

    old_status = user.status
    user.status = serializer.validated_data['status']
    user.is_active = user.status == 'active'
    user.save(update_fields=['status', 'is_active', 'updated_at'])
    create_audit_log(request=request, action='status_change', model_name='User',
                     object_id=user.id, object_name=user.username,
                     changes={'status': {'old': old_status, 'new': user.status}})
    return Response(UserSerializer(user).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_role_update(request, pk):
    """Change a user's role"""
    user = get_object_or_404(User, pk=pk)
    serializer = UserRoleSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_role = user.role
    user.role = serializer.validated_data['role']
    user.save(update_fields=['role', 'updated_at'])
    create_audit_log(request=request, action='permission_change', model_name='User',
                     object_id=user.id, object_name=user.username,
                     changes={'role': {'old': old_role, 'new': user.role}})
    return Response(UserSerializer(user).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_permission_list(request, pk):
    """List a user's module permissions or grant/deny one"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        permissions = user.module_permissions.all().order_by('module_name')
        return Response({
            'permissions': UserPermissionSerializer(permissions, many=True).data,
            'modules': get_user_modules(user),
        })

    serializer = UserPermissionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    permission, created = UserPermission.objects.update_or_create(
        user=user,
        module_name=serializer.validated_data['module_name'],
        defaults={'access_granted': serializer.validated_data.get('access_granted', True)},
    )
    create_audit_log(request=request, action='permission_change', model_name='UserPermission',
                     object_id=permission.id, object_name=user.username,
                     changes={'module': permission.module_name, 'access_granted': permission.access_granted})
    return Response(UserPermissionSerializer(permission).data,
                    status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_permission_delete(request, pk, module_name):
    """Remove an explicit module permission, falling back to role defaults"""
    permission = get_object_or_404(UserPermission, user_id=pk, module_name=module_name)
    create_audit_log(request=request, action='permission_change', model_name='UserPermission',
                     object_id=permission.id, object_name=permission.user.username,
                     changes={'module': module_name, 'removed': True})
    permission.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


# Preference views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def preference_list_create(request):
    """List preferences (optionally by category) or create one"""
    if request.method == 'GET':
        preferences = SystemPreference.objects.all()
        category = request.query_params.get('category')
        if category:
            preferences = preferences.filter(category=category)
        serializer = SystemPreferenceSerializer(preferences, many=True)
        return Response(serializer.data)

    if not has_module_access(request.user, 'settings'):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    serializer = SystemPreferenceSerializer(data=request.data)
    if serializer.is_valid():
        preference = serializer.save()
        create_audit_log(request=request, action='create', model_name='SystemPreference',
                         object_id=preference.id, object_name=preference.key)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def preference_detail(request, key):
    """Retrieve, update or delete a preference by key"""
    preference = get_object_or_404(SystemPreference, key=key)

    if request.method == 'GET':
        return Response(SystemPreferenceSerializer(preference).data)

    if not has_module_access(request.user, 'settings'):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'DELETE':
        create_audit_log(request=request, action='delete', model_name='SystemPreference',
                         object_id=preference.id, object_name=preference.key)
        preference.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    old_value = preference.value
    serializer = SystemPreferenceSerializer(preference, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        create_audit_log(request=request, action='update', model_name='SystemPreference',
                         object_id=preference.id, object_name=preference.key,
                         changes={'value': {'old': old_value, 'new': preference.value}})
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    if not is_admin_user(request.user):
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action')
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model')
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    user_filter = request.query_params.get('user')
    if user_filter:
        queryset = queryset.filter(user_id=user_filter)

    date_from = request.query_params.get('date_from')
    date_to = request.query_params.get('date_to')
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at', '-id')
    return Response(paginate(request, queryset, AuditLogSerializer, default_limit=50))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not is_admin_user(request.user) and audit_log.user_id != request.user.id:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = AuditLogSerializer(audit_log)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def global_search(request):
    """Search products, customers, suppliers and invoices"""
    query = request.query_params.get('q', '').strip()

    if not query:
        return Response({
            'products': [],
            'customers': [],
            'suppliers': [],
            'invoices': [],
        })

    from pharmerp.catalog.filters import ProductFilter
    from pharmerp.catalog.models import Product
    from pharmerp.catalog.serializers import ProductSerializer
    from pharmerp.parties.models import Customer, Supplier
    from pharmerp.parties.serializers import CustomerSerializer, SupplierSerializer
    from pharmerp.sales.models import Invoice
    from pharmerp.sales.serializers import InvoiceListSerializer

    results = {}

    products = ProductFilter({'search': query}, queryset=Product.objects.select_related('category')).qs[:20]
    results['products'] = ProductSerializer(products, many=True).data

    customers = Customer.objects.filter(
        Q(name__icontains=query) |
        Q(phone__icontains=query) |
        Q(email__icontains=query) |
        Q(company__icontains=query)
    )[:20]
    results['customers'] = CustomerSerializer(customers, many=True).data

    suppliers = Supplier.objects.filter(
        Q(name__icontains=query) |
        Q(contact_person__icontains=query) |
        Q(phone__icontains=query) |
        Q(email__icontains=query)
    )[:20]
    results['suppliers'] = SupplierSerializer(suppliers, many=True).data

    invoices = Invoice.objects.select_related('customer').filter(
        Q(invoice_number__icontains=query) |
        Q(customer__name__icontains=query)
    ).order_by('-invoice_date', '-id')[:20]
    results['invoices'] = InvoiceListSerializer(invoices, many=True).data

    return Response(results)
