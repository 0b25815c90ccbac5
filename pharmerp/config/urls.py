"""
URL configuration for the pharmerp project.

Every app publishes its endpoints under ``api/v1/``.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "PharmERP Administration"
admin.site.site_title = "PharmERP Admin Portal"
admin.site.index_title = "Pharmaceutical Distribution ERP"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('pharmerp.core.urls')),
    path('api/v1/', include('pharmerp.locations.urls')),
    path('api/v1/', include('pharmerp.catalog.urls')),
    path('api/v1/', include('pharmerp.inventory.urls')),
    path('api/v1/', include('pharmerp.parties.urls')),
    path('api/v1/', include('pharmerp.sales.urls')),
    path('api/v1/', include('pharmerp.orders.urls')),
    path('api/v1/', include('pharmerp.purchasing.urls')),
    path('api/v1/', include('pharmerp.expenses.urls')),
    path('api/v1/', include('pharmerp.accounting.urls')),
    path('api/v1/', include('pharmerp.reports.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
]
