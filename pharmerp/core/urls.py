from django.urls import path
from .views import (
    CustomTokenObtainPairView, CustomTokenRefreshView, register, user_me,
    user_list_create, user_detail, user_status_update, user_role_update,
    user_permission_list, user_permission_delete,
    preference_list_create, preference_detail,
    audit_log_list, audit_log_detail,
    global_search
)

urlpatterns = [
    # Auth endpoints
    path('auth/register/', register, name='register'),
    path('auth/login/', CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', user_me, name='user-me'),

    # User endpoints
    path('users/', user_list_create, name='user-list-create'),
    path('users/<int:pk>/', user_detail, name='user-detail'),
    path('users/<int:pk>/status/', user_status_update, name='user-status'),
    path('users/<int:pk>/role/', user_role_update, name='user-role'),
    path('users/<int:pk>/permissions/', user_permission_list, name='user-permissions'),
    path('users/<int:pk>/permissions/<str:module_name>/', user_permission_delete, name='user-permission-delete'),

    # Preference endpoints
    path('preferences/', preference_list_create, name='preference-list-create'),
    path('preferences/<str:key>/', preference_detail, name='preference-detail'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),
    path('audit-logs/<int:pk>/', audit_log_detail, name='audit-log-detail'),

    # Global search endpoint
    path('search/', global_search, name='global-search'),
]
