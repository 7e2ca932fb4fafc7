"""
Postduck Team Permissions

Role-to-permission table for team workspaces and the boolean checks the
request pipeline calls into. Local workspaces carry no role and are not
checked here.
"""

from typing import Dict, Optional, Tuple

ROLES = ('SPACE_COMMANDER', 'STAR_NAVIGATOR', 'COSMIC_OBSERVER')

PERMISSIONS: Dict[str, Tuple[str, ...]] = {
    'SPACE_COMMANDER': ('manage:team', 'manage:billing', 'write:all', 'read:all', 'execute:all'),
    'STAR_NAVIGATOR': ('write:all', 'read:all', 'execute:all'),
    'COSMIC_OBSERVER': ('read:all', 'execute:all'),
}

ROLE_DISPLAY_NAMES = {
    'SPACE_COMMANDER': 'Space Commander 🦆🚀',
    'STAR_NAVIGATOR': 'Star Navigator 🦆⭐',
    'COSMIC_OBSERVER': 'Cosmic Observer 🦆🔭',
}


def has_permission(role: Optional[str], permission: str) -> bool:
    """
    Check if a role grants a permission.

    Unknown or empty roles grant nothing.

    Example:
        has_permission('COSMIC_OBSERVER', 'write:all')  # False
    """
    if not role:
        return False
    return permission in PERMISSIONS.get(role, ())


def can_write(role: Optional[str]) -> bool:
    return has_permission(role, 'write:all')


def can_manage(role: Optional[str]) -> bool:
    return has_permission(role, 'manage:team')


def can_manage_billing(role: Optional[str]) -> bool:
    return has_permission(role, 'manage:billing')


def can_execute(role: Optional[str]) -> bool:
    """Every team role may execute requests."""
    return has_permission(role, 'execute:all')


def get_role_display_name(role: str) -> str:
    return ROLE_DISPLAY_NAMES.get(role, role)
