"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from pharmerp.accounting.chart import seed_chart_of_accounts
from pharmerp.catalog.models import ProductCategory, Product
from pharmerp.locations.models import Warehouse
from pharmerp.parties.models import Customer, Supplier
from pharmerp.inventory.services import receive_stock
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role='admin', is_superuser=False):
        """Create a test user (admin role by default, so every module is open)"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            is_superuser=is_superuser,
        )

    @staticmethod
    def create_warehouse(name=None, code=None):
        """Create a test warehouse"""
        if not name:
            name = f'Warehouse_{TestDataFactory.random_string(6)}'
        if not code:
            code = f'WH_{TestDataFactory.random_string(6).upper()}'
        return Warehouse.objects.create(name=name, code=code, address=f'Test Address {name}', phone='1234567890')

    @staticmethod
    def create_category(name=None):
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return ProductCategory.objects.create(name=name, description=f'Test category {name}')

    @staticmethod
    def create_product(name=None, sku=None, category=None, cost_price=Decimal('10.00'),
                       selling_price=Decimal('15.00'), low_stock_threshold=Decimal('10.00'), **extra):
        """Create a test product with no stock"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU_{TestDataFactory.random_string(8)}'
        return Product.objects.create(
            name=name,
            sku=sku,
            category=category,
            cost_price=cost_price,
            selling_price=selling_price,
            low_stock_threshold=low_stock_threshold,
            **extra
        )

    @staticmethod
    def stock_product(product, warehouse, quantity, unit_cost=None, **kwargs):
        """Receive opening stock for a product"""
        return receive_stock(product, warehouse, Decimal(str(quantity)), unit_cost=unit_cost,
                             transaction_type='adjustment', reference_type='opening', **kwargs)

    @staticmethod
    def create_customer(name=None, phone=None, email=None, **extra):
        """Create a test customer"""
        if not name:
            name = f'Customer_{TestDataFactory.random_string(6)}'
        if not phone:
            phone = f'01{random.randint(100000000, 999999999)}'
        if not email:
            email = f'{name.lower()}@test.com'
        return Customer.objects.create(name=name, phone=phone, email=email, **extra)

    @staticmethod
    def create_supplier(name=None, **extra):
        """Create a test supplier"""
        if not name:
            name = f'Supplier_{TestDataFactory.random_string(6)}'
        return Supplier.objects.create(
            name=name,
            contact_person='Test Contact',
            email=f'{name.lower()}@supplier.test',
            phone=f'02{random.randint(10000000, 99999999)}',
            **extra
        )

    @staticmethod
    def seed_accounts():
        """Create the default chart of accounts"""
        return seed_chart_of_accounts()


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
