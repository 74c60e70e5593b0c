# sales/promotions.py
"""
Promotions and coupons.

A code is looked up first as a promotion code, then as a coupon code.
Coupons carry their own limits on top of the promotion they belong to.
"""
import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from catalog.models import quantize
from events.emitter import emit_event
from events.types import EventTypes
from sales.models import Coupon, Promotion, PromotionUsage

logger = logging.getLogger(__name__)

MAX_COUPON_ATTEMPTS = 5


@dataclass
class CodeValidation:
    valid: bool
    message: str = ""
    discount: Decimal = Decimal("0.00")
    promotion: Promotion = None
    coupon: Coupon = None


def _calculate_discount(promotion: Promotion, amount: Decimal) -> Decimal:
    if promotion.discount_type == Promotion.DiscountType.PERCENTAGE:
        discount = amount * promotion.discount_value / Decimal("100")
    else:
        discount = promotion.discount_value
    if promotion.max_discount is not None and discount > promotion.max_discount:
        discount = promotion.max_discount
    return quantize(min(discount, amount))


def _validate_promotion(promotion: Promotion, user, role: str, amount: Decimal, coupon=None) -> CodeValidation:
    now = timezone.now()
    if not promotion.is_active:
        return CodeValidation(False, "Promotion is not active.")
    if promotion.start_date > now:
        return CodeValidation(False, "Promotion has not started yet.")
    if promotion.end_date < now:
        return CodeValidation(False, "Promotion has ended.")
    if promotion.target_roles and role not in promotion.target_roles:
        return CodeValidation(False, "Promotion is not available for your account.")
    if promotion.usage_limit is not None and promotion.usage_count >= promotion.usage_limit:
        return CodeValidation(False, "Promotion usage limit reached.")
    if promotion.per_user_limit is not None:
        used = PromotionUsage.objects.filter(promotion=promotion, user=user).count()
        if used >= promotion.per_user_limit:
            return CodeValidation(False, "You have already used this promotion.")
    if promotion.min_order_amount is not None and amount < promotion.min_order_amount:
        return CodeValidation(False, f"Minimum order amount of {promotion.min_order_amount} required.")

    return CodeValidation(
        True,
        discount=_calculate_discount(promotion, amount),
        promotion=promotion,
        coupon=coupon,
    )


def validate_code(tenant, user, role: str, code: str, amount) -> CodeValidation:
    """Validate a promotion or coupon code against an order amount."""
    code = (code or "").strip()
    amount = Decimal(amount)

    promotion = Promotion.objects.filter(tenant=tenant, code=code).first()
    if promotion is not None:
        return _validate_promotion(promotion, user, role, amount)

    coupon = Coupon.objects.select_related("promotion").filter(tenant=tenant, code=code).first()
    if coupon is None:
        return CodeValidation(False, "Invalid coupon code.")
    if not coupon.is_active:
        return CodeValidation(False, "Coupon is no longer active.")
    if coupon.expires_at and coupon.expires_at < timezone.now():
        return CodeValidation(False, "Coupon has expired.")
    if coupon.usage_count >= coupon.usage_limit:
        return CodeValidation(False, "Coupon usage limit reached.")
    if coupon.assigned_to_id and coupon.assigned_to_id != user.pk:
        return CodeValidation(False, "Coupon is not assigned to you.")

    return _validate_promotion(coupon.promotion, user, role, amount, coupon=coupon)


def record_usage(validation: CodeValidation, user, order, discount_applied) -> PromotionUsage:
    usage = PromotionUsage.objects.create(
        promotion=validation.promotion,
        coupon=validation.coupon,
        user=user,
        order=order,
        discount_applied=discount_applied,
    )
    Promotion.objects.filter(pk=validation.promotion.pk).update(usage_count=F("usage_count") + 1)
    if validation.coupon is not None:
        Coupon.objects.filter(pk=validation.coupon.pk).update(usage_count=F("usage_count") + 1)
    return usage


def available_promotions(tenant, user, role: str) -> list[Promotion]:
    now = timezone.now()
    qs = Promotion.objects.filter(
        tenant=tenant,
        is_active=True,
        start_date__lte=now,
        end_date__gte=now,
    ).filter(Q(usage_limit__isnull=True) | Q(usage_count__lt=F("usage_limit")))

    available = []
    for promotion in qs.order_by("end_date"):
        if promotion.target_roles and role not in promotion.target_roles:
            continue
        if promotion.per_user_limit is not None:
            used = PromotionUsage.objects.filter(promotion=promotion, user=user).count()
            if used >= promotion.per_user_limit:
                continue
        available.append(promotion)
    return available


# =============================================================================
# Admin
# =============================================================================

PROMOTION_FIELDS = (
    "name", "description", "type", "discount_type", "discount_value", "min_order_amount",
    "max_discount", "usage_limit", "per_user_limit", "start_date", "end_date",
    "is_active", "target_roles",
)


@transaction.atomic
def create_promotion(actor: ActorContext, code: str, start_date, end_date, **fields) -> CommandResult:
    require(actor, "promotions.manage")

    if Promotion.objects.filter(tenant=actor.tenant, code=code).exists():
        return CommandResult.fail(f"Promotion with code '{code}' already exists.")
    if end_date <= start_date:
        return CommandResult.fail("End date must be after start date.")

    promotion = Promotion.objects.create(
        tenant=actor.tenant,
        code=code,
        start_date=start_date,
        end_date=end_date,
        created_by=actor.user,
        **{k: v for k, v in fields.items() if k in PROMOTION_FIELDS},
    )
    event = emit_event(
        actor,
        EventTypes.PROMOTION_CREATED,
        "Promotion",
        promotion.public_id,
        data={"code": code, "discount_type": promotion.discount_type, "discount_value": promotion.discount_value},
    )
    return CommandResult.ok(data=promotion, event=event)


@transaction.atomic
def update_promotion(actor: ActorContext, promotion_id, **updates) -> CommandResult:
    require(actor, "promotions.manage")

    promotion = Promotion.objects.select_for_update().filter(tenant=actor.tenant, public_id=promotion_id).first()
    if promotion is None:
        return CommandResult.fail("Promotion not found.")

    code = updates.pop("code", None)
    if code and code != promotion.code:
        if Promotion.objects.filter(tenant=actor.tenant, code=code).exclude(pk=promotion.pk).exists():
            return CommandResult.fail(f"Promotion with code '{code}' already exists.")
        promotion.code = code

    start = updates.get("start_date", promotion.start_date)
    end = updates.get("end_date", promotion.end_date)
    if end <= start:
        return CommandResult.fail("End date must be after start date.")

    changed = {k: v for k, v in updates.items() if k in PROMOTION_FIELDS}
    for field, value in changed.items():
        setattr(promotion, field, value)
    promotion.save()

    event = emit_event(
        actor,
        EventTypes.PROMOTION_UPDATED,
        "Promotion",
        promotion.public_id,
        data={"changes": changed, "updated_at": promotion.updated_at.isoformat()},
    )
    return CommandResult.ok(data=promotion, event=event)


@transaction.atomic
def delete_promotion(actor: ActorContext, promotion_id) -> CommandResult:
    require(actor, "promotions.manage")

    promotion = Promotion.objects.filter(tenant=actor.tenant, public_id=promotion_id).first()
    if promotion is None:
        return CommandResult.fail("Promotion not found.")

    code = promotion.code
    promotion.delete()
    event = emit_event(actor, EventTypes.PROMOTION_DELETED, "Promotion", promotion_id, data={"code": code})
    return CommandResult.ok(event=event)


@transaction.atomic
def generate_coupons(
    actor: ActorContext,
    promotion_id,
    count: int,
    prefix: str = "",
    usage_limit: int = 1,
    expires_at=None,
) -> CommandResult:
    require(actor, "promotions.manage")

    promotion = Promotion.objects.filter(tenant=actor.tenant, public_id=promotion_id).first()
    if promotion is None:
        return CommandResult.fail("Promotion not found.")

    prefix = prefix or promotion.code
    coupons = []
    for _ in range(count):
        for _attempt in range(MAX_COUPON_ATTEMPTS):
            code = f"{prefix}-{secrets.token_hex(4).upper()}"
            if Coupon.objects.filter(tenant=actor.tenant, code=code).exists():
                continue
            try:
                with transaction.atomic():
                    coupon = Coupon.objects.create(
                        tenant=actor.tenant,
                        promotion=promotion,
                        code=code,
                        usage_limit=usage_limit,
                        expires_at=expires_at,
                    )
            except IntegrityError:
                continue
            coupons.append(coupon)
            break
        else:
            return CommandResult.fail("Could not generate unique coupon codes.")

    event = emit_event(
        actor,
        EventTypes.COUPONS_GENERATED,
        "Promotion",
        promotion.public_id,
        data={"count": len(coupons), "codes": [c.code for c in coupons]},
    )
    logger.info("Coupons generated", extra={"promotion": promotion.code, "count": len(coupons)})
    return CommandResult.ok(data=coupons, event=event)


def promotion_analytics(promotion: Promotion, recent: int = 10) -> dict:
    usages = PromotionUsage.objects.filter(promotion=promotion)
    totals = usages.aggregate(
        usage_count=Count("id"),
        total_discount=Sum("discount_applied"),
        unique_users=Count("user", distinct=True),
    )
    recent_usages = usages.select_related("user", "order", "coupon")[:recent]
    return {
        "promotion_id": str(promotion.public_id),
        "code": promotion.code,
        "usage_count": totals["usage_count"],
        "total_discount": str(totals["total_discount"] or Decimal("0.00")),
        "unique_users": totals["unique_users"],
        "recent_usages": [
            {
                "user_email": usage.user.email,
                "order_number": usage.order.order_number if usage.order else None,
                "coupon_code": usage.coupon.code if usage.coupon else None,
                "discount_applied": str(usage.discount_applied),
                "created_at": usage.created_at.isoformat(),
            }
            for usage in recent_usages
        ],
    }
