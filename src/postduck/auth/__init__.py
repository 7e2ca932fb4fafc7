"""
Postduck Auth Module

Auth sessions, token extraction from login responses and team permissions.

This module provides:
- Global session resolution over a snapshot of stored sessions
- Token extraction from response bodies, headers and cookies
- Role permission checks
"""

from .sessions import is_expired, get_active_session, apply_session_auth, format_time_ago
from .extraction import AuthTokenExtractor, extract_auth_token, get_nested_value
from .permissions import (
    PERMISSIONS,
    ROLES,
    has_permission,
    can_write,
    can_manage,
    can_manage_billing,
    can_execute,
    get_role_display_name,
)

__all__ = [
    'is_expired',
    'get_active_session',
    'apply_session_auth',
    'format_time_ago',
    'AuthTokenExtractor',
    'extract_auth_token',
    'get_nested_value',
    'PERMISSIONS',
    'ROLES',
    'has_permission',
    'can_write',
    'can_manage',
    'can_manage_billing',
    'can_execute',
    'get_role_display_name',
]
