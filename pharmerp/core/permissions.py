"""
Module-level access control.

Admins (role or superuser) reach every module. Otherwise an explicit
UserPermission row for the module decides, and the role's default module
list applies when there is none.
"""
from rest_framework.permissions import BasePermission

MODULES = [
    'dashboard',
    'catalog',
    'inventory',
    'customers',
    'suppliers',
    'sales',
    'orders',
    'procurement',
    'expenses',
    'accounting',
    'reports',
    'users',
    'settings',
]

ROLE_DEFAULT_MODULES = {
    'manager': [m for m in MODULES if m not in ('users', 'settings')],
    'accountant': ['dashboard', 'accounting', 'expenses', 'sales', 'customers', 'suppliers', 'reports'],
    'sales_rep': ['dashboard', 'sales', 'customers', 'catalog', 'orders', 'reports'],
    'inventory_manager': ['dashboard', 'catalog', 'inventory', 'procurement', 'suppliers', 'orders'],
    'staff': ['dashboard'],
}


def is_admin_user(user):
    """Check if user is an admin by role or superuser flag"""
    return bool(user and user.is_authenticated and (user.is_superuser or user.role == 'admin'))


def get_user_modules(user):
    """Return the sorted list of modules a user can access"""
    if not user or not user.is_authenticated:
        return []
    if is_admin_user(user):
        return list(MODULES)

    allowed = set(ROLE_DEFAULT_MODULES.get(user.role, []))
    for module_name, granted in user.module_permissions.values_list('module_name', 'access_granted'):
        if granted:
            allowed.add(module_name)
        else:
            allowed.discard(module_name)
    return [m for m in MODULES if m in allowed]


def has_module_access(user, module_name):
    if not user or not user.is_authenticated:
        return False
    if is_admin_user(user):
        return True
    explicit = user.module_permissions.filter(module_name=module_name).first()
    if explicit is not None:
        return explicit.access_granted
    return module_name in ROLE_DEFAULT_MODULES.get(user.role, [])


class HasModuleAccess(BasePermission):
    """Grants access when the user may use ``module_name``"""
    module_name = None
    message = 'You do not have access to this module.'

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if user.status != 'active' or not user.is_active:
            return False
        return has_module_access(user, self.module_name)


class IsAdminRole(BasePermission):
    """Only administrators"""
    message = 'Administrator access required.'

    def has_permission(self, request, view):
        return is_admin_user(request.user)


def module_access(module_name):
    """Build a permission class bound to one module"""
    if module_name not in MODULES:
        raise ValueError(f"Unknown module: {module_name}")
    class_name = ''.join(part.title() for part in module_name.split('_')) + 'ModuleAccess'
    return type(class_name, (HasModuleAccess,), {'module_name': module_name})
