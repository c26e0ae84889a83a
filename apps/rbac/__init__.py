"""
RBAC (Role-Based Access Control) application.

Provides multi-tenant access control with:
- Global user identity carrying legacy and multi-tenant memberships
- Per-tenant roles with permission codes and categories
- Membership resolution and effective permission aggregation
- In-memory channel access grants
"""
