"""
Role Constants Module

Single source of truth for user roles and tenant membership roles.

Usage:
    from app.core.roles import UserRole, MemberRole, normalize_role

Rules:
- Every account is a "user"; "admin" is a platform operator created by script only
- Within a tenant, OWNER and ADMIN members may run administrative actions
  (prospect sweep, explicit prospect conversion)
"""
from enum import Enum


class UserRole(str, Enum):
    """Platform-level roles."""
    USER = "user"
    ADMIN = "admin"


class MemberRole(str, Enum):
    """Roles a user can hold inside a tenant."""
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


# Set of all valid platform roles (lowercase)
VALID_ROLES: set[str] = {role.value for role in UserRole}

# Tenant roles allowed to perform administrative actions
TENANT_ADMIN_ROLES: set[MemberRole] = {MemberRole.OWNER, MemberRole.ADMIN}


def is_valid_role(role: str) -> bool:
    return role in VALID_ROLES


def normalize_role(role: str) -> str:
    """
    Normalize a role string to lowercase.

    Raises:
        ValueError: If the normalized role is not valid
    """
    normalized = role.lower().strip()
    if normalized not in VALID_ROLES:
        raise ValueError(f"Invalid role: {role}. Must be one of: {', '.join(sorted(VALID_ROLES))}")
    return normalized
