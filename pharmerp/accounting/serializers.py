from decimal import Decimal

from rest_framework import serializers
from .models import Account, JournalEntry, JournalEntryLine, AccountingPeriod


class AccountSerializer(serializers.ModelSerializer):
    parent_code = serializers.CharField(source='parent.code', read_only=True, allow_null=True)
    natural_balance = serializers.DecimalField(max_digits=16, decimal_places=2, read_only=True)
    has_transactions = serializers.SerializerMethodField()

    class Meta:
        model = Account
        fields = [
            'id', 'code', 'name', 'account_type', 'subtype', 'description', 'parent', 'parent_code',
            'is_active', 'balance', 'natural_balance', 'has_transactions', 'created_at', 'updated_at'
        ]
        read_only_fields = ['balance', 'created_at', 'updated_at']

    def get_has_transactions(self, obj):
        return obj.lines.exists()

    def validate(self, data):
        instance = self.instance
        if instance is not None and instance.lines.exists():
            for field in ('code', 'account_type'):
                if field in data and data[field] != getattr(instance, field):
                    raise serializers.ValidationError(
                        {field: 'Cannot change this field on an account that has journal lines.'}
                    )
        parent = data.get('parent')
        if instance is not None and parent is not None and parent.pk == instance.pk:
            raise serializers.ValidationError({'parent': 'An account cannot be its own parent.'})
        return data


class JournalEntryLineSerializer(serializers.ModelSerializer):
    account_code = serializers.CharField(source='account.code', read_only=True)
    account_name = serializers.CharField(source='account.name', read_only=True)

    class Meta:
        model = JournalEntryLine
        fields = ['id', 'account', 'account_code', 'account_name', 'description', 'debit', 'credit', 'position']


class JournalEntrySerializer(serializers.ModelSerializer):
    lines = JournalEntryLineSerializer(many=True, read_only=True)
    user_name = serializers.CharField(source='user.username', read_only=True, allow_null=True)
    reversal_of_number = serializers.CharField(source='reversal_of.entry_number', read_only=True, allow_null=True)

    class Meta:
        model = JournalEntry
        fields = [
            'id', 'entry_number', 'entry_date', 'reference', 'memo', 'status', 'total_debit', 'total_credit',
            'source_type', 'source_id', 'reversal_of', 'reversal_of_number', 'user', 'user_name',
            'posted_at', 'created_at', 'lines'
        ]


class JournalEntryListSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source='user.username', read_only=True, allow_null=True)

    class Meta:
        model = JournalEntry
        fields = [
            'id', 'entry_number', 'entry_date', 'reference', 'memo', 'status', 'total_debit', 'total_credit',
            'source_type', 'source_id', 'user_name', 'created_at'
        ]


class JournalLineInputSerializer(serializers.Serializer):
    account = serializers.PrimaryKeyRelatedField(queryset=Account.objects.all())
    debit = serializers.DecimalField(max_digits=16, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    credit = serializers.DecimalField(max_digits=16, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class JournalEntryCreateSerializer(serializers.Serializer):
    entry_date = serializers.DateField()
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    memo = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=['draft', 'posted'], default='posted')
    lines = JournalLineInputSerializer(many=True)

    def validate_lines(self, value):
        if len(value) < 2:
            raise serializers.ValidationError('At least two lines are required.')
        return value


class JournalEntryReverseSerializer(serializers.Serializer):
    reversal_date = serializers.DateField(required=False)
    memo = serializers.CharField(required=False, allow_blank=True, default='')


class AccountingPeriodSerializer(serializers.ModelSerializer):
    closed_by_name = serializers.CharField(source='closed_by.username', read_only=True, allow_null=True)

    class Meta:
        model = AccountingPeriod
        fields = ['id', 'name', 'start_date', 'end_date', 'status', 'closed_at', 'closed_by', 'closed_by_name',
                  'created_at']
        read_only_fields = ['status', 'closed_at', 'closed_by', 'created_at']

    def validate(self, data):
        start = data.get('start_date', getattr(self.instance, 'start_date', None))
        end = data.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date must be on or after start date.'})

        overlapping = AccountingPeriod.objects.filter(start_date__lte=end, end_date__gte=start)
        if self.instance is not None:
            overlapping = overlapping.exclude(pk=self.instance.pk)
        if overlapping.exists():
            raise serializers.ValidationError('Period overlaps an existing accounting period.')
        return data
