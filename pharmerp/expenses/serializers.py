from decimal import Decimal

from rest_framework import serializers
from .models import Expense, ExpenseCategory


class ExpenseCategorySerializer(serializers.ModelSerializer):
    account_code = serializers.CharField(source='account.code', read_only=True, allow_null=True)
    account_name = serializers.CharField(source='account.name', read_only=True, allow_null=True)
    expense_count = serializers.SerializerMethodField()

    class Meta:
        model = ExpenseCategory
        fields = ['id', 'name', 'description', 'account', 'account_code', 'account_name', 'is_active',
                  'expense_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_expense_count(self, obj):
        return obj.expenses.count()

    def validate_account(self, value):
        if value is not None and value.account_type != 'Expense':
            raise serializers.ValidationError('Categories can only be linked to expense accounts.')
        return value


class ExpenseSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True, allow_null=True)
    user_name = serializers.CharField(source='user.username', read_only=True, allow_null=True)
    approved_by_name = serializers.CharField(source='approved_by.username', read_only=True, allow_null=True)
    journal_entry_number = serializers.CharField(source='journal_entry.entry_number', read_only=True, allow_null=True)

    class Meta:
        model = Expense
        fields = [
            'id', 'description', 'amount', 'category', 'category_name', 'account_category', 'expense_date',
            'payment_method', 'cost_center', 'vendor', 'receipt_path', 'notes', 'status', 'user', 'user_name',
            'approved_by', 'approved_by_name', 'approved_at', 'rejection_reason', 'journal_entry',
            'journal_entry_number', 'created_at', 'updated_at'
        ]
        read_only_fields = ['status', 'user', 'approved_by', 'approved_at', 'rejection_reason', 'journal_entry',
                            'created_at', 'updated_at']
        extra_kwargs = {'amount': {'min_value': Decimal('0.01')}}


class ExpenseRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')
