"""
Authorization Guard
===================

Two pure checks plus the DRF permission that applies them per request.

is_role_allowed(required_roles, actual_role)
    Route-level role gate. An empty requirement allows any role.

can_mutate(resource_author_id, requester_id, requester_role)
    Resource-level gate for update/delete: the author or an admin.

The session contract consumed here is {id, email, name, role,
email_verified}, read from request.user and its Profile.
"""

from typing import Iterable, Optional

from rest_framework import permissions
from rest_framework.exceptions import PermissionDenied

from .models import Profile

Role = Profile.Role


def is_role_allowed(required_roles: Iterable[str], actual_role: Optional[str]) -> bool:
    required = set(required_roles)
    if not required:
        return True
    return actual_role in required


def can_mutate(resource_author_id: int, requester_id: int, requester_role: Optional[str]) -> bool:
    return resource_author_id == requester_id or requester_role == Role.ADMIN


def get_profile(user) -> Profile:
    """Profile for an authenticated user, created on the fly for legacy rows."""
    try:
        return user.profile
    except Profile.DoesNotExist:
        profile, _ = Profile.objects.get_or_create(user=user)
        return profile


class RoleRequired(permissions.BasePermission):
    """
    Session + role gate.

    - No authenticated user -> False, which DRF turns into a 401
    - Unverified email      -> 403
    - Role not in `roles`   -> 403
    """
    roles: tuple = ()

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        profile = get_profile(user)
        if not profile.email_verified:
            raise PermissionDenied('Forbidden: Email not verified!')

        if not is_role_allowed(self.roles, profile.role):
            raise PermissionDenied(
                "Forbidden: You don't have permissions to access this resource!"
            )
        return True


def require_roles(*roles):
    """Build a RoleRequired subclass bound to `roles`."""
    name = 'Require' + ''.join(role.title() for role in roles)
    return type(name, (RoleRequired,), {'roles': tuple(roles)})


IsAuthor = require_roles(Role.ADMIN, Role.USER)
IsAdmin = require_roles(Role.ADMIN)
