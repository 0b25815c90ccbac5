import django_filters
from django.db.models import Q
from .models import Product
from .utils import low_stock_q, expiring_q, stock_status


TRUE_VALUES = ('true', '1', 'yes')


class ProductFilter(django_filters.FilterSet):
    """Filter for Product model using django-filter"""

    # Basic search - searches across name, drug name, SKU, barcode, manufacturer
    search = django_filters.CharFilter(method='filter_search', label='Search')

    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    status = django_filters.CharFilter(field_name='status', lookup_expr='exact')
    product_type = django_filters.CharFilter(field_name='product_type', lookup_expr='exact')
    grade = django_filters.CharFilter(field_name='grade', lookup_expr='exact')
    manufacturer = django_filters.CharFilter(field_name='manufacturer', lookup_expr='icontains')

    # Stock and expiry filters
    low_stock = django_filters.CharFilter(method='filter_low_stock', label='Low Stock')
    stock_level = django_filters.CharFilter(method='filter_stock_level', label='Stock Level')
    expiring_within = django_filters.NumberFilter(method='filter_expiring_within', label='Expiring within (days)')

    class Meta:
        model = Product
        fields = ['search', 'category', 'status', 'product_type', 'grade', 'manufacturer',
                  'low_stock', 'stock_level', 'expiring_within']

    def filter_search(self, queryset, name, value):
        """Search across name, drug name, SKU, barcode and manufacturer.

        Multi-word searches match products whose name contains every word.
        """
        search = (value or '').strip()
        if not search:
            return queryset

        words = search.split()
        name_query = Q()
        for word in words:
            name_query &= Q(name__icontains=word)

        return queryset.filter(
            name_query |
            Q(drug_name__icontains=search) |
            Q(sku__icontains=search) |
            Q(barcode__iexact=search) |
            Q(manufacturer__icontains=search)
        ).distinct()

    def filter_low_stock(self, queryset, name, value):
        if str(value).lower() in TRUE_VALUES:
            return queryset.filter(low_stock_q())
        return queryset

    def filter_stock_level(self, queryset, name, value):
        """Filter by computed stock level (out_of_stock, critical, low, normal)"""
        if not value:
            return queryset
        ids = [
            pk for pk, qty, threshold in queryset.values_list('id', 'quantity', 'low_stock_threshold')
            if stock_status(qty, threshold) == value
        ]
        return queryset.filter(id__in=ids)

    def filter_expiring_within(self, queryset, name, value):
        if value is None:
            return queryset
        return queryset.filter(expiring_q(int(value)))
