"""
RBAC serializers for REST API endpoints.

Provides serialization for:
- Permissions and the effective permission set of a user
- Roles (read, create, update)
- Resolved memberships
- Channel access grants
"""
import uuid

from rest_framework import serializers
from apps.rbac.models import Permission, Role


class PermissionSerializer(serializers.ModelSerializer):
    """Serializer for Permission model."""

    class Meta:
        model = Permission
        fields = ['id', 'code', 'label', 'description', 'category']
        read_only_fields = fields


class RoleSerializer(serializers.ModelSerializer):
    """Serializer for Role model."""

    permissions = serializers.SerializerMethodField()

    class Meta:
        model = Role
        fields = [
            'id', 'tenant', 'name', 'description', 'level',
            'permissions', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_permissions(self, obj):
        return sorted(obj.permission_codes)


class RoleWriteSerializer(serializers.Serializer):
    """Serializer for creating and updating roles."""

    name = serializers.CharField(max_length=100)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    level = serializers.IntegerField(min_value=1, max_value=10, required=False, default=1)
    permission_codes = serializers.ListField(
        child=serializers.CharField(max_length=100),
        required=False,
        allow_empty=True,
    )

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Role name cannot be empty.")
        return value


class ResolvedMembershipSerializer(serializers.Serializer):
    """Serializer for a membership picked by the resolver."""

    source = serializers.CharField(source='source.value')
    tenant_id = serializers.UUIDField(allow_null=True)
    tenant_name = serializers.SerializerMethodField()
    role_id = serializers.UUIDField(allow_null=True)
    role_name = serializers.SerializerMethodField()
    all_access = serializers.BooleanField(source='is_all_access')

    def get_tenant_name(self, obj):
        names = self.context.get('tenant_names', {})
        return names.get(obj.tenant_id)

    def get_role_name(self, obj):
        return obj.role.name if obj.role is not None else None


class EffectivePermissionsSerializer(serializers.Serializer):
    permissions = serializers.ListField(child=serializers.CharField())
    categories = serializers.ListField(child=serializers.CharField())


class ChannelGrantSerializer(serializers.Serializer):
    """Serializer for a single channel grant or revoke."""

    user_id = serializers.UUIDField()
    channel = serializers.CharField(max_length=100)

    def validate_channel(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Channel name cannot be empty.")
        return value


class ChannelMapSerializer(serializers.Serializer):
    """Serializer for replacing a tenant's whole channel map."""

    channels = serializers.DictField(
        child=serializers.ListField(child=serializers.CharField(max_length=100), allow_empty=True)
    )

    def validate_channels(self, value):
        for user_id in value:
            try:
                uuid.UUID(str(user_id))
            except ValueError:
                raise serializers.ValidationError(f"'{user_id}' is not a valid user id.")
        return value
