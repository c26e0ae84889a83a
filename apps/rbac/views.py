"""
RBAC REST API views.

Implements endpoints for:
- Permission catalog listing
- The caller's resolved memberships and a user's effective permissions
- Tenant-scoped role management (list, create, update, delete)
- Channel access grants
"""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from apps.core.exceptions import PermissionDeniedError
from apps.core.permissions import HasTenantAccess
from apps.rbac.channels import channel_access
from apps.rbac.models import Permission, Role
from apps.rbac.services import (
    MembershipResolver, PermissionAggregator, RoleService, TenantAccessGuard,
    get_user_or_404,
)
from apps.rbac.serializers import (
    PermissionSerializer, RoleSerializer, RoleWriteSerializer,
    ResolvedMembershipSerializer, EffectivePermissionsSerializer,
    ChannelGrantSerializer, ChannelMapSerializer,
)
from apps.tenants.models import Tenant
from apps.tenants.services import TenantService


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for list endpoints."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 100


# ===== PERMISSIONS =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Permissions'],
        summary='List permission catalog',
        description='''
List every permission in the global catalog together with the same entries
grouped by category.

Query parameters:
- `category`: only return permissions of this category
        ''',
        parameters=[
            OpenApiParameter('category', OpenApiTypes.STR, description='Filter by category'),
        ],
        responses={200: PermissionSerializer(many=True)},
    )
)
class PermissionListView(APIView):
    """
    GET /v1/permissions

    List all available permissions, flat and grouped by category.
    """

    def get(self, request):
        permissions = Permission.objects.all().order_by('category', 'code')

        category = request.query_params.get('category')
        if category:
            permissions = Permission.objects.by_category(category).order_by('code')

        serializer = PermissionSerializer(permissions, many=True)
        grouped = {}
        for perm in serializer.data:
            grouped.setdefault(perm['category'], []).append(perm)

        return Response({
            'count': len(serializer.data),
            'permissions': serializer.data,
            'permissions_by_category': grouped,
        })


# ===== MEMBERSHIPS =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Memberships'],
        summary='List my memberships',
        description='''
List every tenant membership of the authenticated user, as resolved across
the multi-tenant entries and the legacy single-tenant fields.

`source` is `membership` for multi-tenant entries and `legacy` for the
single-tenant representation.
        ''',
        responses={200: ResolvedMembershipSerializer(many=True)},
        examples=[
            OpenApiExample(
                'Success Response',
                value={
                    'count': 1,
                    'current_tenant_id': '123e4567-e89b-12d3-a456-426614174001',
                    'memberships': [
                        {
                            'source': 'membership',
                            'tenant_id': '123e4567-e89b-12d3-a456-426614174001',
                            'tenant_name': 'Acme Corp',
                            'role_id': '123e4567-e89b-12d3-a456-426614174003',
                            'role_name': 'Manager',
                            'all_access': False,
                        }
                    ]
                },
                response_only=True
            )
        ]
    )
)
class MembershipListView(APIView):
    """
    GET /v1/memberships/me

    Users can always see their own memberships.
    """

    def get(self, request):
        memberships = MembershipResolver.list_memberships(request.user)
        tenant_names = dict(
            Tenant.objects.filter(pk__in=[m.tenant_id for m in memberships]).values_list('id', 'name')
        )

        serializer = ResolvedMembershipSerializer(
            memberships,
            many=True,
            context={'tenant_names': tenant_names}
        )

        current = request.user.current_tenant_id
        return Response({
            'count': len(memberships),
            'current_tenant_id': str(current) if current else None,
            'is_technician': request.user.is_technician,
            'memberships': serializer.data,
        })


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Permissions'],
        summary='Get effective permissions',
        description='''
Effective permission codes and visible categories of a user in a tenant.

Users without a membership in the tenant get the baseline
`VIEW_GENERAL_CATEGORY` permission and `GENERAL` category.

The caller must be able to access `tenant_id`; without `tenant_id` only
the target user (or a technician) may ask.
        ''',
        parameters=[
            OpenApiParameter('tenant_id', OpenApiTypes.UUID, description='Tenant to evaluate; defaults to the user\'s current tenant'),
        ],
        responses={
            200: EffectivePermissionsSerializer,
            403: OpenApiTypes.OBJECT,
            404: OpenApiTypes.OBJECT,
        }
    )
)
class UserEffectivePermissionsView(APIView):
    """
    GET /v1/users/{user_id}/effective-permissions?tenant_id=
    """

    def get(self, request, user_id):
        target = get_user_or_404(user_id)
        tenant_id = request.query_params.get('tenant_id')

        if tenant_id:
            TenantAccessGuard.require_tenant_access(request.user, tenant_id)
        else:
            if target.pk != request.user.pk and not request.user.is_technician:
                raise PermissionDeniedError('Only the user or a technician may view these permissions')
            tenant_id = target.current_tenant_id

        effective = PermissionAggregator.effective_permissions(target, tenant_id)
        data = effective.to_dict()
        data['user_id'] = str(target.pk)
        data['tenant_id'] = str(tenant_id) if tenant_id else None
        return Response(data)


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Memberships'],
        summary='Switch active tenant',
        description='Make the tenant the caller\'s active tenant context.',
        request=None,
        responses={
            200: OpenApiTypes.OBJECT,
            403: OpenApiTypes.OBJECT,
            404: OpenApiTypes.OBJECT,
        }
    )
)
class TenantSwitchView(APIView):
    """
    POST /v1/tenants/{tenant_id}/switch
    """

    permission_classes = [IsAuthenticated, HasTenantAccess]

    def post(self, request, tenant_id):
        tenant = TenantService.switch_tenant(request.user, tenant_id)
        return Response({
            'success': True,
            'current_tenant': {'id': str(tenant.pk), 'name': tenant.name},
        })


# ===== ROLES =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='List tenant roles',
        description='List the roles defined in the tenant, with their permission codes.',
        responses={200: RoleSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Create role',
        description='''
Create a role in the tenant. Names are unique within a tenant.

`permission_codes` must name catalog permissions.
        ''',
        request=RoleWriteSerializer,
        responses={
            201: RoleSerializer,
            400: OpenApiTypes.OBJECT,
            403: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        },
        examples=[
            OpenApiExample(
                'Create Request',
                value={
                    'name': 'Manager',
                    'level': 5,
                    'permission_codes': ['MANAGEMENT_VIEW', 'MANAGE_ROLES']
                },
                request_only=True
            )
        ]
    )
)
class TenantRoleListView(APIView):
    """
    GET/POST /v1/tenants/{tenant_id}/roles
    """

    permission_classes = [IsAuthenticated, HasTenantAccess]
    pagination_class = StandardResultsSetPagination

    def get(self, request, tenant_id):
        tenant = TenantService.get_tenant(tenant_id)
        roles = Role.objects.for_tenant(tenant).prefetch_related('permissions').order_by('-level', 'name')

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(roles, request)
        serializer = RoleSerializer(page if page is not None else roles, many=True)

        if page is not None:
            return paginator.get_paginated_response(serializer.data)

        return Response({
            'count': roles.count(),
            'roles': serializer.data
        })

    def post(self, request, tenant_id):
        tenant = TenantService.get_tenant(tenant_id)

        serializer = RoleWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        role = RoleService.create_role(
            request.user,
            tenant,
            name=serializer.validated_data['name'],
            level=serializer.validated_data['level'],
            description=serializer.validated_data['description'],
            permission_codes=serializer.validated_data.get('permission_codes'),
        )
        return Response(RoleSerializer(role).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    patch=extend_schema(
        tags=['RBAC - Roles'],
        summary='Update role',
        description='Update name, description, level or the full permission list of a role.',
        request=RoleWriteSerializer,
        responses={
            200: RoleSerializer,
            403: OpenApiTypes.OBJECT,
            404: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        }
    ),
    delete=extend_schema(
        tags=['RBAC - Roles'],
        summary='Delete role',
        description='''
Delete a role. Refused with 409 while any membership entry or legacy role
field still references it.
        ''',
        responses={
            204: None,
            403: OpenApiTypes.OBJECT,
            404: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        }
    )
)
class TenantRoleDetailView(APIView):
    """
    PATCH/DELETE /v1/tenants/{tenant_id}/roles/{role_id}
    """

    permission_classes = [IsAuthenticated, HasTenantAccess]

    def patch(self, request, tenant_id, role_id):
        role = get_object_or_404(Role, tenant_id=tenant_id, id=role_id)

        serializer = RoleWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        permission_codes = data.pop('permission_codes', None)

        role = RoleService.update_role(request.user, role, permission_codes=permission_codes, **data)
        return Response(RoleSerializer(role).data)

    def delete(self, request, tenant_id, role_id):
        role = get_object_or_404(Role, tenant_id=tenant_id, id=role_id)
        RoleService.delete_role(request.user, role)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ===== CHANNEL ACCESS =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Channels'],
        summary='List channel grants',
        description='Map of user id to granted channels for the tenant.',
        responses={200: OpenApiTypes.OBJECT},
    ),
    put=extend_schema(
        tags=['RBAC - Channels'],
        summary='Replace channel grants',
        description='''
Replace the tenant's whole channel map. Users missing from `channels` lose
every channel they had.
        ''',
        request=ChannelMapSerializer,
        responses={200: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT},
    )
)
class ChannelAccessView(APIView):
    """
    GET/PUT /v1/channels/{tenant_id}
    """

    permission_classes = [IsAuthenticated, HasTenantAccess]

    @staticmethod
    def _render(mapping):
        return {user_id: sorted(channels) for user_id, channels in sorted(mapping.items())}

    def get(self, request, tenant_id):
        return Response({
            'tenant_id': str(tenant_id),
            'channels': self._render(channel_access.list(tenant_id)),
        })

    def put(self, request, tenant_id):
        serializer = ChannelMapSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        mapping = channel_access.replace(tenant_id, serializer.validated_data['channels'])
        return Response({
            'success': True,
            'tenant_id': str(tenant_id),
            'channels': self._render(mapping),
        })


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Channels'],
        summary='Grant channel',
        description='Grant a channel to a user. Granting an existing channel is a no-op.',
        request=ChannelGrantSerializer,
        responses={200: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample(
                'Success Response',
                value={'success': True, 'current_channels': ['dispatch', 'sales']},
                response_only=True
            )
        ]
    )
)
class ChannelGrantView(APIView):
    """
    POST /v1/channels/{tenant_id}/grant
    """

    permission_classes = [IsAuthenticated, HasTenantAccess]

    def post(self, request, tenant_id):
        serializer = ChannelGrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        current = channel_access.grant(
            tenant_id,
            serializer.validated_data['user_id'],
            serializer.validated_data['channel'],
        )
        return Response({'success': True, 'current_channels': current})


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Channels'],
        summary='Revoke channel',
        description='Revoke a channel from a user. Revoking a missing grant succeeds.',
        request=ChannelGrantSerializer,
        responses={200: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT},
    )
)
class ChannelRevokeView(APIView):
    """
    POST /v1/channels/{tenant_id}/revoke
    """

    permission_classes = [IsAuthenticated, HasTenantAccess]

    def post(self, request, tenant_id):
        serializer = ChannelGrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        current = channel_access.revoke(
            tenant_id,
            serializer.validated_data['user_id'],
            serializer.validated_data['channel'],
        )
        return Response({'success': True, 'current_channels': current})


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Channels'],
        summary='Check channel access',
        description='Whether the user holds the channel in the tenant. Role permissions are not considered.',
        responses={200: OpenApiTypes.OBJECT},
    )
)
class ChannelCheckView(APIView):
    """
    GET /v1/channels/{tenant_id}/check/{user_id}/{channel}
    """

    permission_classes = [IsAuthenticated, HasTenantAccess]

    def get(self, request, tenant_id, user_id, channel):
        return Response({'has_access': channel_access.check(tenant_id, user_id, channel)})
