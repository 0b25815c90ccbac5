from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import User, UserPermission, SystemPreference, AuditLog
from .permissions import MODULES


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'full_name', 'phone',
                  'role', 'status', 'is_active', 'is_staff', 'is_superuser', 'last_login',
                  'created_at', 'updated_at']
        read_only_fields = ['is_superuser', 'last_login', 'created_at', 'updated_at']

    def get_full_name(self, obj):
        return obj.get_full_name() or obj.username


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name', 'phone', 'role']

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        user = User.objects.create(**validated_data, is_active=True, status='active')
        user.set_password(password)
        user.save()
        return user


class UserStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=User.STATUS_CHOICES)


class UserRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES)


class UserPermissionSerializer(serializers.ModelSerializer):
    module_name = serializers.ChoiceField(choices=[(m, m) for m in MODULES])

    class Meta:
        model = UserPermission
        fields = ['id', 'user', 'module_name', 'access_granted', 'created_at', 'updated_at']
        read_only_fields = ['user', 'created_at', 'updated_at']


class SystemPreferenceSerializer(serializers.ModelSerializer):
    class Meta:
        model = SystemPreference
        fields = ['id', 'key', 'value', 'category', 'label', 'description', 'data_type', 'options',
                  'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate(self, attrs):
        data_type = attrs.get('data_type', getattr(self.instance, 'data_type', 'string'))
        value = attrs.get('value', getattr(self.instance, 'value', None))
        options = attrs.get('options', getattr(self.instance, 'options', None))
        if value is None:
            return attrs
        if data_type == 'number' and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise serializers.ValidationError({'value': 'A number is required.'})
        if data_type == 'boolean' and not isinstance(value, bool):
            raise serializers.ValidationError({'value': 'A boolean is required.'})
        if data_type == 'string' and not isinstance(value, str):
            raise serializers.ValidationError({'value': 'A string is required.'})
        if data_type == 'select' and options and value not in options:
            raise serializers.ValidationError({'value': f'Must be one of: {", ".join(map(str, options))}'})
        return attrs


class AuditLogSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'username', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'changes', 'ip_address', 'created_at']
