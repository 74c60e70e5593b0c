# accounts/authz.py
"""
Authorization utilities.

Provides:
- ActorContext: Immutable context for the current request
- resolve_actor: Extract actor context from request
- require: Check permissions and raise if not granted

Permissions are checked:
1. SUPER_ADMIN: implicit allow
2. everyone else: codes granted to their role in ROLE_DEFAULTS
"""

from dataclasses import dataclass
from typing import FrozenSet

from django.core.exceptions import PermissionDenied
from rest_framework.exceptions import NotAuthenticated

from accounts.models import User
from accounts.permission_defaults import permissions_for_role
from tenant.models import Tenant

ROLE_RANK = {
    User.Role.VIEWER: 0,
    User.Role.USER: 1,
    User.Role.MANAGER: 2,
    User.Role.ADMIN: 3,
    User.Role.SUPER_ADMIN: 4,
}


@dataclass(frozen=True)
class ActorContext:
    """
    Immutable context for the current actor (user + tenant).

    Passed to commands and policies so they know who is acting and
    which tenant's data they may touch.
    """
    user: User
    tenant: Tenant
    role: str
    perms: FrozenSet[str]

    def has(self, code: str) -> bool:
        if not self.user.is_active:
            return False
        if self.role == User.Role.SUPER_ADMIN:
            return True
        return code in self.perms

    @property
    def is_authenticated(self) -> bool:
        return bool(getattr(self.user, "is_authenticated", False))

    @property
    def is_super_admin(self) -> bool:
        return self.role == User.Role.SUPER_ADMIN

    @property
    def is_admin(self) -> bool:
        return self.role in (User.Role.SUPER_ADMIN, User.Role.ADMIN)

    @property
    def is_manager(self) -> bool:
        return self.role in (User.Role.SUPER_ADMIN, User.Role.ADMIN, User.Role.MANAGER)

    @property
    def rank(self) -> int:
        return ROLE_RANK.get(self.role, 0)


def build_actor(user: User) -> ActorContext:
    return ActorContext(
        user=user,
        tenant=user.tenant,
        role=user.role,
        perms=permissions_for_role(user.role),
    )


def resolve_actor(request) -> ActorContext:
    """
    Extract ActorContext from the current request.

    The user's role is read fresh from the database on every call so
    role changes take effect immediately.

    Raises:
        NotAuthenticated: If user is not authenticated
        PermissionDenied: If the user is inactive or has no active tenant
    """
    user = getattr(request, "user", None)

    if not user or not user.is_authenticated:
        raise NotAuthenticated("Authentication required.")

    try:
        user = User.objects.select_related("tenant", "organization").get(pk=user.pk)
    except User.DoesNotExist:
        raise NotAuthenticated("Authentication required.")

    if not user.is_active or user.deleted_at is not None:
        raise PermissionDenied("Your account is inactive.")

    tenant = user.tenant
    if tenant is None or not tenant.is_accessible:
        raise PermissionDenied("No active tenant for this account.")

    return build_actor(user)


def require(actor: ActorContext, code: str) -> None:
    """
    Require that the actor has a specific permission.

    Example:
        require(actor, "orders.create")
        # If we get here, permission is granted
    """
    if not actor.has(code):
        raise PermissionDenied(f"Permission denied: {code}")


def require_any(actor: ActorContext, *codes: str) -> None:
    """Require that the actor has AT LEAST ONE of the specified permissions."""
    for code in codes:
        if actor.has(code):
            return

    raise PermissionDenied(f"Permission denied: requires one of {', '.join(codes)}")


def check_permission(actor: ActorContext, code: str) -> bool:
    return actor.has(code)


def can_assign_role(actor: ActorContext, role: str) -> bool:
    """Only SUPER_ADMIN may grant a role at or above their own rank."""
    if actor.is_super_admin:
        return True
    return ROLE_RANK.get(role, 0) < actor.rank
