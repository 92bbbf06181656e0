# Overview: Actor roles and role gates for administrative operations.

from __future__ import annotations

from .errors import PermissionDenied


ROLE_PLANT_ADMIN = "Plant Admin"
ROLE_ASM = "ASM"
ROLE_EXECUTIVE = "Executive"
ROLE_STORE_ADMIN = "Store Admin"
ROLE_USER = "User"

ALL_ROLES = (ROLE_PLANT_ADMIN, ROLE_ASM, ROLE_EXECUTIVE, ROLE_STORE_ADMIN, ROLE_USER)


def require_role(role: str | None, *allowed: str, action: str = "perform this action") -> None:
    """Fail closed unless role is one of allowed."""
    if role not in allowed:
        raise PermissionDenied(
            f"Permission denied. Role {role!r} cannot {action}.",
            role=role,
            allowed_roles=list(allowed),
        )


def require_plant_admin(role: str | None, action: str = "perform this action") -> None:
    require_role(role, ROLE_PLANT_ADMIN, action=action)
