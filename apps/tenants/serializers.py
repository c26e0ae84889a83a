"""
Tenant serializers for REST API endpoints.
"""
from rest_framework import serializers
from apps.tenants.models import TenantMerge
from apps.tenants.services.consolidation_service import TenantConsolidationService


class NamePatternSerializer(serializers.Serializer):
    """Validates a case-insensitive tenant name pattern."""

    name_pattern = serializers.CharField(max_length=200)

    def validate_name_pattern(self, value):
        try:
            return TenantConsolidationService.validate_pattern(value)
        except ValueError as e:
            raise serializers.ValidationError(str(e))


class ConsolidateRequestSerializer(NamePatternSerializer):
    """Serializer for a consolidation request."""

    expected_count = serializers.IntegerField(min_value=2, required=False)


class TenantMergeSerializer(serializers.ModelSerializer):
    """Serializer for TenantMerge progress records."""

    migrated_user_count = serializers.SerializerMethodField()

    class Meta:
        model = TenantMerge
        fields = [
            'id', 'run_id', 'surviving_tenant', 'absorbed_tenant', 'status',
            'completed_steps', 'failed_step', 'error_message',
            'migrated_user_count', 'initiated_by', 'created_at', 'completed_at'
        ]
        read_only_fields = fields

    def get_migrated_user_count(self, obj):
        return len(obj.migrated_user_ids)
