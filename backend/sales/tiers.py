# sales/tiers.py
"""
Loyalty discount tiers.

A user holds at most one tier assignment. Spend and order counters on
the assignment are advanced by ``record_purchase`` whenever an order is
placed.
"""
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from catalog.models import quantize
from events.emitter import emit_event
from events.types import EventTypes
from sales.models import DiscountTier, UserDiscountTier

User = get_user_model()

TIER_FIELDS = ("name", "description", "level", "discount_percent", "min_spend", "min_orders", "is_active")


@transaction.atomic
def create_tier(actor: ActorContext, code: str, **fields) -> CommandResult:
    require(actor, "discounts.manage")
    if DiscountTier.objects.filter(tenant=actor.tenant, code=code).exists():
        return CommandResult.fail(f"Discount tier with code '{code}' already exists.")

    tier = DiscountTier.objects.create(
        tenant=actor.tenant,
        code=code,
        **{k: v for k, v in fields.items() if k in TIER_FIELDS},
    )
    event = emit_event(
        actor,
        EventTypes.DISCOUNT_TIER_CREATED,
        "DiscountTier",
        tier.public_id,
        data={"code": code, "level": tier.level, "discount_percent": tier.discount_percent},
    )
    return CommandResult.ok(data=tier, event=event)


@transaction.atomic
def update_tier(actor: ActorContext, tier_id, **updates) -> CommandResult:
    require(actor, "discounts.manage")
    tier = DiscountTier.objects.select_for_update().filter(tenant=actor.tenant, public_id=tier_id).first()
    if tier is None:
        return CommandResult.fail("Discount tier not found.")

    code = updates.pop("code", None)
    if code and code != tier.code:
        if DiscountTier.objects.filter(tenant=actor.tenant, code=code).exclude(pk=tier.pk).exists():
            return CommandResult.fail(f"Discount tier with code '{code}' already exists.")
        tier.code = code

    changed = {k: v for k, v in updates.items() if k in TIER_FIELDS}
    for field, value in changed.items():
        setattr(tier, field, value)
    tier.save()

    event = emit_event(
        actor,
        EventTypes.DISCOUNT_TIER_UPDATED,
        "DiscountTier",
        tier.public_id,
        data={"changes": changed, "updated_at": tier.updated_at.isoformat()},
    )
    return CommandResult.ok(data=tier, event=event)


@transaction.atomic
def delete_tier(actor: ActorContext, tier_id) -> CommandResult:
    require(actor, "discounts.manage")
    tier = DiscountTier.objects.filter(tenant=actor.tenant, public_id=tier_id).first()
    if tier is None:
        return CommandResult.fail("Discount tier not found.")
    if tier.assignments.exists():
        return CommandResult.fail("Cannot delete a tier that is assigned to users.")

    code = tier.code
    tier.delete()
    event = emit_event(actor, EventTypes.DISCOUNT_TIER_DELETED, "DiscountTier", tier_id, data={"code": code})
    return CommandResult.ok(event=event)


@transaction.atomic
def assign_tier(actor: ActorContext, user_id, tier_id, expires_at=None, reason: str = "") -> CommandResult:
    require(actor, "discounts.manage")
    user = User.objects.filter(tenant=actor.tenant, public_id=user_id).first()
    if user is None:
        return CommandResult.fail("User not found.")
    tier = DiscountTier.objects.filter(tenant=actor.tenant, public_id=tier_id, is_active=True).first()
    if tier is None:
        return CommandResult.fail("Discount tier not found.")

    assignment, _ = UserDiscountTier.objects.update_or_create(
        user=user,
        defaults={
            "tier": tier,
            "expires_at": expires_at,
            "assigned_by": actor.user,
            "reason": reason,
        },
    )
    event = emit_event(
        actor,
        EventTypes.DISCOUNT_TIER_ASSIGNED,
        "DiscountTier",
        tier.public_id,
        data={
            "user_id": str(user.public_id),
            "expires_at": expires_at,
            "reason": reason,
            "assigned_at": timezone.now().isoformat(),
        },
    )
    return CommandResult.ok(data=assignment, event=event)


def current_assignment(user) -> UserDiscountTier | None:
    """The user's tier assignment, or None when missing or expired."""
    assignment = UserDiscountTier.objects.select_related("tier").filter(user=user).first()
    if assignment is None:
        return None
    if assignment.expires_at and assignment.expires_at < timezone.now():
        return None
    return assignment


def discount_percent_for(user) -> Decimal:
    assignment = current_assignment(user)
    if assignment is None or not assignment.tier.is_active:
        return Decimal("0")
    return assignment.tier.discount_percent


def tier_savings(user) -> dict:
    """Current tier, lifetime counters and progress to the next tier."""
    assignment = current_assignment(user)
    tiers = DiscountTier.objects.filter(tenant=user.tenant, is_active=True).order_by("level")

    if assignment is None:
        current = None
        next_tier = tiers.first()
        spend = Decimal("0.00")
        orders = 0
        savings = Decimal("0.00")
    else:
        current = assignment.tier
        next_tier = tiers.filter(level__gt=current.level).first()
        spend = assignment.total_spend
        orders = assignment.total_orders
        savings = assignment.total_savings

    progress = None
    if next_tier is not None:
        spend_needed = max(next_tier.min_spend - spend, Decimal("0.00"))
        orders_needed = max(next_tier.min_orders - orders, 0)
        if next_tier.min_spend > 0:
            percent = min(spend / next_tier.min_spend * 100, Decimal("100"))
        else:
            percent = Decimal("100")
        progress = {
            "tier": {"id": str(next_tier.public_id), "code": next_tier.code, "name": next_tier.name},
            "spend_needed": str(quantize(spend_needed)),
            "orders_needed": orders_needed,
            "percent": str(quantize(percent)),
        }

    return {
        "current_tier": None if current is None else {
            "id": str(current.public_id),
            "code": current.code,
            "name": current.name,
            "discount_percent": str(current.discount_percent),
            "expires_at": assignment.expires_at,
        },
        "total_spend": str(spend),
        "total_orders": orders,
        "total_savings": str(savings),
        "next_tier": progress,
    }


def record_purchase(user, amount, savings=Decimal("0.00")) -> None:
    """Advance the user's tier counters; no-op when the user has no tier."""
    UserDiscountTier.objects.filter(user=user).update(
        total_spend=F("total_spend") + amount,
        total_orders=F("total_orders") + 1,
        total_savings=F("total_savings") + savings,
    )
