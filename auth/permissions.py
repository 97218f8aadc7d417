"""Role checks for clinic staff actions."""

from auth.exceptions import PermissionDeniedError
from auth.types import Role
from utils.user_context import get_current_user_role

ALL_STAFF = frozenset(Role)
FRONT_DESK = frozenset({Role.ADMIN, Role.DOCTOR, Role.NURSE, Role.RECEPTIONIST})
BILLING = frozenset({Role.ADMIN, Role.DOCTOR, Role.RECEPTIONIST})
CLINICAL = frozenset({Role.ADMIN, Role.DOCTOR})
ADMIN_ONLY = frozenset({Role.ADMIN})


def require_role(allowed: frozenset[Role], action: str) -> None:
    """
    Raise unless the current user's role is in allowed.

    Raises:
        PermissionDeniedError: Role missing or not allowed
    """
    role = get_current_user_role()
    if role is None or role not in {r.value for r in allowed}:
        raise PermissionDeniedError(role, action)
