# accounts/commands.py
"""
Command layer for accounts operations.

ALL security-critical mutations MUST go through these commands:
- Registration (tenant + first admin)
- User creation/updates, role changes, deactivation
- Organization tree management

This ensures:
1. Consistent validation
2. Audit trail via events
3. Single point of enforcement
"""

import logging

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone
from django.utils.text import slugify

from accounts.authz import ActorContext, require, can_assign_role
from accounts.models import Organization
from events.emitter import emit_event, emit_event_no_actor
from events.types import EventTypes
from tenant.models import Tenant

logger = logging.getLogger(__name__)

User = get_user_model()


class CommandResult:
    def __init__(self, success: bool, data=None, error: str = None, event=None, events=None):
        self.success = success
        self.data = data
        self.error = error

        # Primary event (optional)
        self.event = event

        # Always a list
        if events is None:
            self.events = ([] if event is None else [event])
        else:
            self.events = list(events)

    @classmethod
    def ok(cls, data=None, event=None, events=None):
        return cls(success=True, data=data, event=event, events=events)

    @classmethod
    def fail(cls, error: str):
        return cls(success=False, error=error)


def unique_tenant_slug(name: str, max_attempts: int = 10):
    base_slug = slugify(name.strip()) or "tenant"
    slug = base_slug
    for attempt in range(max_attempts):
        if not Tenant.objects.filter(slug=slug).exists():
            return slug
        slug = f"{base_slug}-{attempt + 1}"
    return None


# =============================================================================
# Registration (Tenant + admin User atomic creation)
# =============================================================================

@transaction.atomic
def register_signup(
    email: str,
    password: str,
    tenant_name: str,
    first_name: str = "",
    last_name: str = "",
) -> CommandResult:
    """
    Register a new tenant together with its first ADMIN user.

    Returns:
        CommandResult with {"user", "tenant"}
    """
    email = email.lower().strip()
    if User.objects.filter(email=email).exists():
        return CommandResult.fail(f"User with email '{email}' already exists.")

    if not tenant_name or not tenant_name.strip():
        return CommandResult.fail("Tenant name is required.")

    try:
        validate_password(password)
    except DjangoValidationError as e:
        return CommandResult.fail(" ".join(e.messages))

    slug = unique_tenant_slug(tenant_name)
    if slug is None:
        return CommandResult.fail("Could not generate unique tenant slug. Please try a different name.")

    tenant = Tenant.objects.create(name=tenant_name.strip(), slug=slug)
    user = User.objects.create_user(
        email=email,
        password=password,
        first_name=first_name,
        last_name=last_name,
        role=User.Role.ADMIN,
        tenant=tenant,
    )

    event = emit_event_no_actor(
        tenant=tenant,
        user=user,
        event_type=EventTypes.USER_REGISTERED,
        aggregate_type="User",
        aggregate_id=user.public_id,
        data={"email": email, "tenant_slug": slug, "role": user.role},
    )
    logger.info("Tenant registered", extra={"tenant_slug": slug, "email": email})
    return CommandResult.ok(data={"user": user, "tenant": tenant}, event=event)


def record_login(user) -> None:
    user.last_login_at = timezone.now()
    user.save(update_fields=["last_login_at"])


def change_password(actor: ActorContext, current_password: str, new_password: str) -> CommandResult:
    user = actor.user
    if not user.check_password(current_password):
        return CommandResult.fail("Current password is incorrect.")
    try:
        validate_password(new_password, user=user)
    except DjangoValidationError as e:
        return CommandResult.fail(" ".join(e.messages))

    user.set_password(new_password)
    user.save(update_fields=["password"])
    event = emit_event(
        actor,
        EventTypes.USER_PASSWORD_CHANGED,
        "User",
        user.public_id,
        data={"changed_at": timezone.now()},
    )
    return CommandResult.ok(data=user, event=event)


# =============================================================================
# User management
# =============================================================================

def _get_tenant_user(actor: ActorContext, user_id):
    return User.objects.filter(
        tenant=actor.tenant,
        public_id=user_id,
        deleted_at__isnull=True,
    ).first()


def _get_tenant_org(actor: ActorContext, org_id):
    if org_id is None:
        return None
    return Organization.objects.filter(
        tenant=actor.tenant,
        public_id=org_id,
        deleted_at__isnull=True,
    ).first()


@transaction.atomic
def create_user(
    actor: ActorContext,
    email: str,
    password: str,
    first_name: str = "",
    last_name: str = "",
    role: str = User.Role.USER,
    organization_id=None,
) -> CommandResult:
    require(actor, "users.manage")

    if role not in User.Role.values:
        return CommandResult.fail(f"Invalid role: {role}")
    if not can_assign_role(actor, role):
        return CommandResult.fail(f"You cannot create users with role {role}.")

    email = email.lower().strip()
    if User.objects.filter(email=email).exists():
        return CommandResult.fail(f"User with email '{email}' already exists.")

    organization = None
    if organization_id:
        organization = _get_tenant_org(actor, organization_id)
        if organization is None:
            return CommandResult.fail("Organization not found.")

    try:
        validate_password(password)
    except DjangoValidationError as e:
        return CommandResult.fail(" ".join(e.messages))

    user = User.objects.create_user(
        email=email,
        password=password,
        first_name=first_name,
        last_name=last_name,
        role=role,
        tenant=actor.tenant,
        organization=organization,
    )
    event = emit_event(
        actor,
        EventTypes.USER_CREATED,
        "User",
        user.public_id,
        data={"email": email, "role": role},
    )
    return CommandResult.ok(data=user, event=event)


@transaction.atomic
def update_user(actor: ActorContext, user_id, **updates) -> CommandResult:
    require(actor, "users.manage")
    user = _get_tenant_user(actor, user_id)
    if user is None:
        return CommandResult.fail("User not found.")

    changes = {}
    for field in ("first_name", "last_name"):
        if field in updates and updates[field] != getattr(user, field):
            changes[field] = {"old": getattr(user, field), "new": updates[field]}
            setattr(user, field, updates[field])

    if "organization_id" in updates:
        organization = None
        if updates["organization_id"]:
            organization = _get_tenant_org(actor, updates["organization_id"])
            if organization is None:
                return CommandResult.fail("Organization not found.")
        if organization != user.organization:
            changes["organization"] = {
                "old": str(user.organization.public_id) if user.organization else None,
                "new": str(organization.public_id) if organization else None,
            }
            user.organization = organization

    if not changes:
        return CommandResult.ok(data=user)

    user.save()
    event = emit_event(
        actor,
        EventTypes.USER_UPDATED,
        "User",
        user.public_id,
        data={"changes": changes, "updated_at": timezone.now()},
    )
    return CommandResult.ok(data=user, event=event)


@transaction.atomic
def change_user_role(actor: ActorContext, user_id, role: str) -> CommandResult:
    require(actor, "users.manage")
    user = _get_tenant_user(actor, user_id)
    if user is None:
        return CommandResult.fail("User not found.")
    if user.pk == actor.user.pk:
        return CommandResult.fail("You cannot change your own role.")
    if role not in User.Role.values:
        return CommandResult.fail(f"Invalid role: {role}")
    if not can_assign_role(actor, role) or not can_assign_role(actor, user.role):
        return CommandResult.fail(f"You cannot assign role {role} to this user.")
    if user.role == role:
        return CommandResult.ok(data=user)

    old_role = user.role
    user.role = role
    user.save(update_fields=["role"])
    event = emit_event(
        actor,
        EventTypes.USER_ROLE_CHANGED,
        "User",
        user.public_id,
        data={"old_role": old_role, "new_role": role, "changed_at": timezone.now()},
    )
    return CommandResult.ok(data=user, event=event)


@transaction.atomic
def set_user_active(actor: ActorContext, user_id, is_active: bool) -> CommandResult:
    require(actor, "users.manage")
    user = _get_tenant_user(actor, user_id)
    if user is None:
        return CommandResult.fail("User not found.")
    if user.pk == actor.user.pk:
        return CommandResult.fail("You cannot deactivate your own account.")
    if not can_assign_role(actor, user.role):
        return CommandResult.fail("You cannot change the status of this user.")
    if user.is_active == is_active:
        return CommandResult.ok(data=user)

    user.is_active = is_active
    user.save(update_fields=["is_active"])
    event = emit_event(
        actor,
        EventTypes.USER_ACTIVATED if is_active else EventTypes.USER_DEACTIVATED,
        "User",
        user.public_id,
        data={"is_active": is_active, "changed_at": timezone.now()},
    )
    return CommandResult.ok(data=user, event=event)


@transaction.atomic
def delete_user(actor: ActorContext, user_id) -> CommandResult:
    require(actor, "users.manage")
    user = _get_tenant_user(actor, user_id)
    if user is None:
        return CommandResult.fail("User not found.")
    if user.pk == actor.user.pk:
        return CommandResult.fail("You cannot delete your own account.")
    if not can_assign_role(actor, user.role):
        return CommandResult.fail("You cannot delete this user.")

    user.deleted_at = timezone.now()
    user.is_active = False
    user.save(update_fields=["deleted_at", "is_active"])
    event = emit_event(actor, EventTypes.USER_DELETED, "User", user.public_id, data={"email": user.email})
    return CommandResult.ok(data=user, event=event)


# =============================================================================
# Organizations
# =============================================================================

def _org_code_taken(tenant, code: str, exclude_pk=None) -> bool:
    qs = Organization.objects.filter(tenant=tenant, code=code, deleted_at__isnull=True)
    if exclude_pk:
        qs = qs.exclude(pk=exclude_pk)
    return qs.exists()


@transaction.atomic
def create_organization(
    actor: ActorContext,
    name: str,
    code: str,
    description: str = "",
    parent_id=None,
    is_active: bool = True,
    metadata: dict = None,
) -> CommandResult:
    require(actor, "organizations.manage")

    if _org_code_taken(actor.tenant, code):
        return CommandResult.fail(f"Organization with code '{code}' already exists.")

    parent = None
    if parent_id:
        parent = _get_tenant_org(actor, parent_id)
        if parent is None:
            return CommandResult.fail("Parent organization not found.")

    org = Organization.objects.create(
        tenant=actor.tenant,
        name=name,
        code=code,
        description=description,
        parent=parent,
        is_active=is_active,
        metadata=metadata or {},
    )
    event = emit_event(
        actor,
        EventTypes.ORGANIZATION_CREATED,
        "Organization",
        org.public_id,
        data={"name": name, "code": code, "parent": str(parent.public_id) if parent else None},
    )
    return CommandResult.ok(data=org, event=event)


@transaction.atomic
def update_organization(actor: ActorContext, org_id, **updates) -> CommandResult:
    require(actor, "organizations.manage")
    org = _get_tenant_org(actor, org_id)
    if org is None:
        return CommandResult.fail("Organization not found.")

    if "code" in updates and updates["code"] != org.code:
        if _org_code_taken(actor.tenant, updates["code"], exclude_pk=org.pk):
            return CommandResult.fail(f"Organization with code '{updates['code']}' already exists.")

    if "parent_id" in updates:
        parent_id = updates.pop("parent_id")
        if parent_id:
            if str(parent_id) == str(org.public_id):
                return CommandResult.fail("An organization cannot be its own parent.")
            parent = _get_tenant_org(actor, parent_id)
            if parent is None:
                return CommandResult.fail("Parent organization not found.")
            if parent.pk in org.descendant_ids():
                return CommandResult.fail("Cannot set a descendant as the parent (circular reference).")
            org.parent = parent
        else:
            org.parent = None

    changes = {}
    for field in ("name", "code", "description", "is_active", "metadata"):
        if field in updates and updates[field] != getattr(org, field):
            changes[field] = updates[field]
            setattr(org, field, updates[field])

    org.save()
    event = emit_event(
        actor,
        EventTypes.ORGANIZATION_UPDATED,
        "Organization",
        org.public_id,
        data={
            "changes": changes,
            "parent": str(org.parent.public_id) if org.parent else None,
            "updated_at": org.updated_at,
        },
    )
    return CommandResult.ok(data=org, event=event)


@transaction.atomic
def delete_organization(actor: ActorContext, org_id) -> CommandResult:
    require(actor, "organizations.manage")
    org = _get_tenant_org(actor, org_id)
    if org is None:
        return CommandResult.fail("Organization not found.")

    if org.children.filter(deleted_at__isnull=True).exists():
        return CommandResult.fail("Cannot delete an organization that has child organizations.")
    if org.users.filter(deleted_at__isnull=True).exists():
        return CommandResult.fail("Cannot delete an organization that has users.")

    org.deleted_at = timezone.now()
    org.is_active = False
    org.save(update_fields=["deleted_at", "is_active", "updated_at"])
    event = emit_event(
        actor,
        EventTypes.ORGANIZATION_DELETED,
        "Organization",
        org.public_id,
        data={"code": org.code, "deleted_at": org.deleted_at},
    )
    return CommandResult.ok(data=org, event=event)


@transaction.atomic
def restore_organization(actor: ActorContext, org_id) -> CommandResult:
    require(actor, "organizations.manage")
    org = Organization.objects.filter(tenant=actor.tenant, public_id=org_id).first()
    if org is None:
        return CommandResult.fail("Organization not found.")
    if org.deleted_at is None:
        return CommandResult.fail("Organization is not deleted.")
    if _org_code_taken(actor.tenant, org.code, exclude_pk=org.pk):
        return CommandResult.fail(f"Organization with code '{org.code}' already exists.")

    org.deleted_at = None
    org.is_active = True
    org.save(update_fields=["deleted_at", "is_active", "updated_at"])
    event = emit_event(
        actor,
        EventTypes.ORGANIZATION_RESTORED,
        "Organization",
        org.public_id,
        data={"code": org.code, "restored_at": org.updated_at},
    )
    return CommandResult.ok(data=org, event=event)


def organization_hierarchy(tenant, root=None) -> list[dict]:
    """Nested tree of active organizations, from the roots or from ``root``."""
    orgs = list(
        Organization.objects.filter(tenant=tenant, deleted_at__isnull=True).order_by("name")
    )
    children: dict = {}
    for org in orgs:
        children.setdefault(org.parent_id, []).append(org)

    def build(node):
        return {
            "id": str(node.public_id),
            "name": node.name,
            "code": node.code,
            "is_active": node.is_active,
            "children": [build(child) for child in children.get(node.pk, [])],
        }

    if root is not None:
        return [build(root)]
    return [build(org) for org in children.get(None, [])]
