"""
Admin API views for technicians.

Provides endpoints for:
- Duplicate tenant diagnosis
- Tenant consolidation
- Tenant deletion
"""
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes
import logging

from apps.core.permissions import IsTechnician
from apps.tenants.serializers import (
    NamePatternSerializer,
    ConsolidateRequestSerializer,
    TenantMergeSerializer,
)
from apps.tenants.models import TenantMerge
from apps.tenants.services import TenantService, TenantConsolidationService

logger = logging.getLogger(__name__)


@extend_schema_view(
    get=extend_schema(
        summary="Diagnose duplicate tenants",
        description="List the tenants whose name matches `name_pattern` (case-insensitive regular "
                    "expression) with their user counts, and which one a consolidation would keep. "
                    "Read only. Requires the technician role.",
        parameters=[
            OpenApiParameter(
                name='name_pattern',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=True,
                description='Case-insensitive regular expression matched against tenant names'
            ),
        ],
        responses={
            200: OpenApiTypes.OBJECT,
            400: OpenApiTypes.OBJECT,
            403: OpenApiTypes.OBJECT,
        },
        tags=['Admin - Tenants']
    )
)
class AdminDuplicateTenantsView(APIView):
    """
    GET /v1/admin/tenants/duplicates?name_pattern=
    """

    permission_classes = [IsAuthenticated, IsTechnician]

    def get(self, request):
        serializer = NamePatternSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        report = TenantConsolidationService.diagnose(serializer.validated_data['name_pattern'])
        return Response(report)


@extend_schema_view(
    post=extend_schema(
        summary="Consolidate duplicate tenants",
        description="Merge the tenants matching `name_pattern` into the earliest-created one. "
                    "Fails with 409 unless exactly `expected_count` tenants match. A failure part "
                    "way through returns 500 with the failed step; running the request again "
                    "resumes from that step. Requires the technician role.",
        request=ConsolidateRequestSerializer,
        responses={
            200: OpenApiTypes.OBJECT,
            403: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
            500: OpenApiTypes.OBJECT,
        },
        examples=[
            OpenApiExample(
                'Success Response',
                value={
                    'success': True,
                    'message': 'Consolidation complete. 3 users migrated from "Acme" to "Acme".',
                    'migrated_user_count': 3,
                    'source': {'id': '123e4567-e89b-12d3-a456-426614174002', 'name': 'Acme'},
                    'destination': {'id': '123e4567-e89b-12d3-a456-426614174001', 'name': 'Acme'},
                    'surviving': {'id': '123e4567-e89b-12d3-a456-426614174001', 'name': 'Acme'},
                    'absorbed': [{'id': '123e4567-e89b-12d3-a456-426614174002', 'name': 'Acme'}],
                    'role_remap_required': [],
                    'resumed': False,
                    'merges': [],
                },
                response_only=True
            )
        ],
        tags=['Admin - Tenants']
    )
)
class AdminConsolidateTenantsView(APIView):
    """
    POST /v1/admin/tenants/consolidate
    """

    permission_classes = [IsAuthenticated, IsTechnician]

    def post(self, request):
        serializer = ConsolidateRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        logger.info(
            "Tenant consolidation requested",
            extra={
                'name_pattern': serializer.validated_data['name_pattern'],
                'initiated_by': str(request.user.pk),
            }
        )

        result = TenantConsolidationService.consolidate_by_name(
            serializer.validated_data['name_pattern'],
            expected_count=serializer.validated_data.get('expected_count'),
            initiated_by=request.user,
        )
        payload = result.to_dict()
        merges = TenantMerge.objects.filter(pk__in=result.merge_ids).order_by('created_at')
        payload['merges'] = TenantMergeSerializer(merges, many=True).data
        return Response(payload, status=status.HTTP_200_OK)


@extend_schema_view(
    delete=extend_schema(
        summary="Delete tenant",
        description="Soft delete a tenant. Refused with 409 while any role of the tenant is still "
                    "assigned to a user. Requires the technician role.",
        responses={
            204: None,
            403: OpenApiTypes.OBJECT,
            404: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        },
        tags=['Admin - Tenants']
    )
)
class AdminTenantDetailView(APIView):
    """
    DELETE /v1/admin/tenants/{tenant_id}
    """

    permission_classes = [IsAuthenticated, IsTechnician]

    def delete(self, request, tenant_id):
        tenant = TenantService.get_tenant(tenant_id)
        TenantService.delete_tenant(tenant, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)
