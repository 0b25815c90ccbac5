"""
Test suite for Core module
Tests: Authentication, users, module permissions, preferences, numbering and audit logs
"""
from decimal import Decimal

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from pharmerp.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from pharmerp.core.cache_utils import make_cache_key
from pharmerp.core.models import AuditLog, SystemPreference, UserPermission
from pharmerp.core.numbering import next_document_number
from pharmerp.core.permissions import get_user_modules, has_module_access, module_access
from pharmerp.core.preferences import get_vat_rate, get_preference, seed_default_preferences
from pharmerp.core.utils import money
from pharmerp.accounting import chart, statements
from pharmerp.accounting.posting import create_journal_entry


class ModulePermissionTests(TestCase):
    """Test role defaults and explicit module overrides"""

    def test_admin_sees_every_module(self):
        admin = TestDataFactory.create_user()
        self.assertIn('accounting', get_user_modules(admin))
        self.assertIn('settings', get_user_modules(admin))

    def test_staff_defaults_to_dashboard(self):
        staff = TestDataFactory.create_user(role='staff')
        self.assertEqual(get_user_modules(staff), ['dashboard'])
        self.assertFalse(has_module_access(staff, 'sales'))

    def test_explicit_grant_and_denial(self):
        accountant = TestDataFactory.create_user(role='accountant')
        UserPermission.objects.create(user=accountant, module_name='inventory', access_granted=True)
        UserPermission.objects.create(user=accountant, module_name='sales', access_granted=False)
        self.assertTrue(has_module_access(accountant, 'inventory'))
        self.assertFalse(has_module_access(accountant, 'sales'))
        modules = get_user_modules(accountant)
        self.assertIn('inventory', modules)
        self.assertNotIn('sales', modules)

    def test_unknown_module_rejected(self):
        with self.assertRaises(ValueError):
            module_access('payroll')


class DocumentNumberTests(TestCase):
    """Test sequential document numbering"""

    def test_numbers_increment_per_type(self):
        self.assertEqual(next_document_number('invoice', prefix='INV', width=6), 'INV-000001')
        self.assertEqual(next_document_number('invoice', prefix='INV', width=6), 'INV-000002')
        self.assertEqual(next_document_number('payment', prefix='PAY', width=6), 'PAY-000001')

    def test_period_has_its_own_counter(self):
        self.assertEqual(next_document_number('purchase_order', prefix='PO', period='2024'), 'PO-2024-00001')
        self.assertEqual(next_document_number('purchase_order', prefix='PO', period='2025'), 'PO-2025-00001')
        self.assertEqual(next_document_number('purchase_order', prefix='PO', period='2024'), 'PO-2024-00002')


class MoneyTests(TestCase):

    def test_rounds_half_up(self):
        self.assertEqual(money('2.345'), Decimal('2.35'))
        self.assertEqual(money(None), Decimal('0.00'))

    def test_invalid_amount(self):
        with self.assertRaises(ValueError):
            money('abc')

    def test_non_finite_amount(self):
        for value in ('NaN', 'Infinity', '-Infinity'):
            with self.assertRaises(ValueError):
                money(value)


class CacheInvalidationTests(TestCase):
    """Test that business writes invalidate cached statements"""

    def setUp(self):
        cache.clear()
        TestDataFactory.seed_accounts()

    def post_capital(self, amount):
        return create_journal_entry(timezone.localdate(), [
            {'account': chart.CASH, 'debit': amount, 'credit': 0},
            {'account': '3000', 'debit': 0, 'credit': amount},
        ])

    def test_cached_statement_refreshed_after_write(self):
        self.assertEqual(statements.trial_balance()['total_debit'], 0.0)
        self.post_capital(Decimal('10'))
        self.assertEqual(statements.trial_balance()['total_debit'], 10.0)

    def test_invalidation_repeats_on_commit(self):
        with self.captureOnCommitCallbacks() as callbacks:
            self.post_capital(Decimal('10'))
            # figures cached by another reader before the write commits
            cache.set(make_cache_key('statements:trial_balance'), {'total_debit': -1.0}, 60)
            self.assertEqual(statements.trial_balance()['total_debit'], -1.0)

        self.assertTrue(callbacks)
        for callback in callbacks:
            callback()
        self.assertEqual(statements.trial_balance()['total_debit'], 10.0)


class PreferenceTests(TestCase):
    """Test preference storage, caching and endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_vat_rate_default(self):
        self.assertEqual(get_vat_rate(), Decimal('14'))

    def test_seed_preferences_is_idempotent(self):
        created, _ = seed_default_preferences()
        self.assertGreater(created, 0)
        created_again, _ = seed_default_preferences()
        self.assertEqual(created_again, 0)

    def test_seed_command(self):
        call_command('seed_preferences', verbosity=0)
        self.assertTrue(SystemPreference.objects.filter(key='financial.vat_rate').exists())

    def test_update_preference_clears_cache(self):
        seed_default_preferences()
        self.assertEqual(get_vat_rate(), Decimal('14'))

        response = self.client.patch('/api/v1/preferences/financial.vat_rate/', {'value': 10}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(get_vat_rate(), Decimal('10'))

    def test_preference_type_validation(self):
        seed_default_preferences()
        response = self.client.patch('/api/v1/preferences/financial.vat_rate/', {'value': 'ten'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.patch('/api/v1/preferences/financial.currency/', {'value': 'GBP'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_cannot_change_preferences(self):
        seed_default_preferences()
        staff = TestDataFactory.create_user(role='staff')
        self.client.authenticate_user(staff)
        response = self.client.get('/api/v1/preferences/?category=financial')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.patch('/api/v1/preferences/financial.vat_rate/', {'value': 5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(get_preference('financial.vat_rate'), 14)


class AuthAPITests(TestCase):
    """Test registration, login and current user endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register_forces_staff_role(self):
        data = {
            'username': 'newclerk',
            'email': 'clerk@test.com',
            'password': 'Str0ng-Passw0rd!',
            'password_confirm': 'Str0ng-Passw0rd!',
            'role': 'admin',
        }
        response = self.client.post('/api/v1/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['user']['role'], 'staff')
        self.assertIn('access', response.data)

    def test_register_password_mismatch(self):
        data = {
            'username': 'mismatch',
            'password': 'Str0ng-Passw0rd!',
            'password_confirm': 'Other-Passw0rd!',
        }
        response = self.client.post('/api/v1/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_returns_modules_and_audits(self):
        user = TestDataFactory.create_user(username='loginuser', role='sales_rep')
        response = self.client.post('/api/v1/auth/login/',
                                    {'username': 'loginuser', 'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('sales', response.data['modules'])
        self.assertNotIn('accounting', response.data['modules'])
        self.assertTrue(AuditLog.objects.filter(user=user, action='login').exists())

    def test_login_rejects_suspended_user(self):
        user = TestDataFactory.create_user(username='suspended')
        user.status = 'suspended'
        user.save()
        response = self.client.post('/api/v1/auth/login/',
                                    {'username': 'suspended', 'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me(self):
        user = TestDataFactory.create_user(role='accountant')
        self.client.authenticate_user(user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_admin'])
        self.assertIn('accounting', response.data['modules'])


class UserManagementAPITests(TestCase):
    """Test admin user management endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_non_admin_forbidden(self):
        manager = TestDataFactory.create_user(role='manager')
        self.client.authenticate_user(manager)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_change_status(self):
        user = TestDataFactory.create_user(role='staff')
        response = self.client.patch(f'/api/v1/users/{user.id}/status/', {'status': 'suspended'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertEqual(user.status, 'suspended')
        self.assertFalse(user.is_active)

    def test_cannot_deactivate_self(self):
        response = self.client.patch(f'/api/v1/users/{self.admin.id}/status/', {'status': 'inactive'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_change_role(self):
        user = TestDataFactory.create_user(role='staff')
        response = self.client.patch(f'/api/v1/users/{user.id}/role/', {'role': 'accountant'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['role'], 'accountant')
        self.assertTrue(AuditLog.objects.filter(action='permission_change', object_id=str(user.id)).exists())

    def test_grant_and_remove_module_permission(self):
        user = TestDataFactory.create_user(role='staff')
        response = self.client.post(f'/api/v1/users/{user.id}/permissions/',
                                    {'module_name': 'inventory', 'access_granted': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get(f'/api/v1/users/{user.id}/permissions/')
        self.assertIn('inventory', response.data['modules'])

        response = self.client.delete(f'/api/v1/users/{user.id}/permissions/inventory/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(has_module_access(user, 'inventory'))

    def test_unknown_module_permission(self):
        user = TestDataFactory.create_user(role='staff')
        response = self.client.post(f'/api/v1/users/{user.id}/permissions/',
                                    {'module_name': 'payroll'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AuditLogAPITests(TestCase):
    """Test audit log visibility"""

    def setUp(self):
        self.admin = TestDataFactory.create_user()
        self.staff = TestDataFactory.create_user(role='staff')
        AuditLog.objects.create(user=self.admin, action='create', model_name='Product', object_id='1')
        AuditLog.objects.create(user=self.staff, action='update', model_name='Customer', object_id='2')
        self.client = AuthenticatedAPIClient()

    def test_admin_sees_all(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)

        response = self.client.get('/api/v1/audit-logs/?model=Product')
        self.assertEqual(response.data['count'], 1)

    def test_staff_sees_own_only(self):
        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.data['count'], 1)

        other = AuditLog.objects.get(user=self.admin)
        response = self.client.get(f'/api/v1/audit-logs/{other.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class GlobalSearchTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_search_finds_products_and_customers(self):
        TestDataFactory.create_product(name='Omeprazole 20mg')
        TestDataFactory.create_customer(name='Omega Pharmacy')
        response = self.client.get('/api/v1/search/?q=ome')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['products']), 1)
        self.assertEqual(len(response.data['customers']), 1)

    def test_empty_query(self):
        response = self.client.get('/api/v1/search/')
        self.assertEqual(response.data['products'], [])
