"""
Tenant lifecycle commands (platform operators only).
"""
import logging

from django.db import transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult, unique_tenant_slug
from accounts.middleware import invalidate_tenant_cache
from events.emitter import emit_event_no_actor
from events.types import EventTypes
from tenant.models import Tenant

logger = logging.getLogger(__name__)


@transaction.atomic
def create_tenant(actor: ActorContext, name: str, slug: str = "", config: dict = None,
                  is_active: bool = True) -> CommandResult:
    require(actor, "tenants.manage")

    if slug:
        if Tenant.objects.filter(slug=slug).exists():
            return CommandResult.fail(f"Tenant with slug '{slug}' already exists.")
    else:
        slug = unique_tenant_slug(name)
        if slug is None:
            return CommandResult.fail("Could not generate unique tenant slug.")

    tenant = Tenant.objects.create(name=name, slug=slug, config=config or {}, is_active=is_active)
    event = emit_event_no_actor(
        tenant=tenant,
        user=actor.user,
        event_type=EventTypes.TENANT_CREATED,
        aggregate_type="Tenant",
        aggregate_id=tenant.public_id,
        data={"name": name, "slug": slug},
    )
    logger.info("Tenant created", extra={"tenant_slug": slug})
    return CommandResult.ok(data=tenant, event=event)


@transaction.atomic
def update_tenant(actor: ActorContext, tenant_id, **updates) -> CommandResult:
    require(actor, "tenants.manage")
    tenant = Tenant.objects.filter(public_id=tenant_id, deleted_at__isnull=True).first()
    if tenant is None:
        return CommandResult.fail("Tenant not found.")

    changes = {}
    for field in ("name", "config", "status", "is_active"):
        if field in updates and updates[field] != getattr(tenant, field):
            changes[field] = {"old": getattr(tenant, field), "new": updates[field]}
            setattr(tenant, field, updates[field])

    if not changes:
        return CommandResult.ok(data=tenant)

    tenant.save()
    invalidate_tenant_cache(tenant.pk)
    event = emit_event_no_actor(
        tenant=tenant,
        user=actor.user,
        event_type=EventTypes.TENANT_UPDATED,
        aggregate_type="Tenant",
        aggregate_id=tenant.public_id,
        data={"changes": changes, "updated_at": tenant.updated_at},
    )
    return CommandResult.ok(data=tenant, event=event)


@transaction.atomic
def delete_tenant(actor: ActorContext, tenant_id) -> CommandResult:
    require(actor, "tenants.manage")
    tenant = Tenant.objects.filter(public_id=tenant_id, deleted_at__isnull=True).first()
    if tenant is None:
        return CommandResult.fail("Tenant not found.")
    if tenant.pk == actor.tenant.pk:
        return CommandResult.fail("You cannot delete your own tenant.")

    tenant.deleted_at = timezone.now()
    tenant.is_active = False
    tenant.save(update_fields=["deleted_at", "is_active", "updated_at"])
    invalidate_tenant_cache(tenant.pk)
    event = emit_event_no_actor(
        tenant=tenant,
        user=actor.user,
        event_type=EventTypes.TENANT_DELETED,
        aggregate_type="Tenant",
        aggregate_id=tenant.public_id,
        data={"slug": tenant.slug},
    )
    logger.info("Tenant deleted", extra={"tenant_slug": tenant.slug})
    return CommandResult.ok(data=tenant, event=event)
