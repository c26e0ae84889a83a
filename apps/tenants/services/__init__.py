"""
Services for tenant management and consolidation.
"""
from .tenant_service import TenantService
from .consolidation_service import MergeResult, TenantConsolidationService

__all__ = [
    'TenantService',
    'TenantConsolidationService',
    'MergeResult',
]
