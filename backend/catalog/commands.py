# catalog/commands.py
"""
Command layer for catalog operations.

Categories and master products are managed by catalog admins
(``catalog.manage``). Tenant access and pricing require
``catalog.grant_access``.
"""
import logging

from django.core.exceptions import PermissionDenied
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.text import slugify

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from catalog.models import Category, MasterProduct, TenantProductAccess
from events.emitter import emit_event
from events.types import EventTypes

logger = logging.getLogger(__name__)


# =============================================================================
# Categories
# =============================================================================

def _unique_category_slug(name: str, exclude_pk=None) -> str:
    base = slugify(name) or "category"
    slug = base
    counter = 1
    qs = Category.objects.all()
    if exclude_pk:
        qs = qs.exclude(pk=exclude_pk)
    while qs.filter(slug=slug).exists():
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def visible_categories(tenant):
    """Global categories plus the tenant's own."""
    return Category.objects.filter(Q(tenant__isnull=True) | Q(tenant=tenant))


def _resolve_parent(actor, parent_id):
    if parent_id is None:
        return None, None
    parent = visible_categories(actor.tenant).filter(public_id=parent_id).first()
    if parent is None:
        return None, "Parent category not found."
    return parent, None


@transaction.atomic
def create_category(
    actor: ActorContext,
    name: str,
    slug: str = "",
    description: str = "",
    parent_id=None,
    sort_order: int = 0,
    is_active: bool = True,
    image_url: str = "",
) -> CommandResult:
    require(actor, "catalog.manage")

    parent, error = _resolve_parent(actor, parent_id)
    if error:
        return CommandResult.fail(error)

    if slug:
        if Category.objects.filter(slug=slug).exists():
            return CommandResult.fail(f"Category with slug '{slug}' already exists.")
    else:
        slug = _unique_category_slug(name)

    category = Category.objects.create(
        tenant=actor.tenant,
        name=name,
        slug=slug,
        description=description,
        parent=parent,
        sort_order=sort_order,
        is_active=is_active,
        image_url=image_url,
    )
    event = emit_event(
        actor,
        EventTypes.CATEGORY_CREATED,
        "Category",
        category.public_id,
        data={"name": name, "slug": slug, "parent_id": str(parent.public_id) if parent else None},
    )
    return CommandResult.ok(data=category, event=event)


@transaction.atomic
def update_category(actor: ActorContext, category_id, **updates) -> CommandResult:
    require(actor, "catalog.manage")

    category = visible_categories(actor.tenant).select_for_update().filter(public_id=category_id).first()
    if category is None:
        return CommandResult.fail("Category not found.")

    if "parent_id" in updates:
        parent_id = updates.pop("parent_id")
        parent, error = _resolve_parent(actor, parent_id)
        if error:
            return CommandResult.fail(error)
        if parent is not None:
            if parent.pk == category.pk:
                return CommandResult.fail("A category cannot be its own parent.")
            if parent.pk in category.descendant_ids():
                return CommandResult.fail("Circular category hierarchy is not allowed.")
        category.parent = parent

    slug = updates.pop("slug", None)
    if slug and slug != category.slug:
        if Category.objects.filter(slug=slug).exclude(pk=category.pk).exists():
            return CommandResult.fail(f"Category with slug '{slug}' already exists.")
        category.slug = slug

    for field in ("name", "description", "sort_order", "is_active", "image_url"):
        if field in updates:
            setattr(category, field, updates[field])
    category.save()

    event = emit_event(
        actor,
        EventTypes.CATEGORY_UPDATED,
        "Category",
        category.public_id,
        data={"slug": category.slug, "updated_at": category.updated_at.isoformat()},
    )
    return CommandResult.ok(data=category, event=event)


@transaction.atomic
def delete_category(actor: ActorContext, category_id) -> CommandResult:
    require(actor, "catalog.manage")

    category = visible_categories(actor.tenant).filter(public_id=category_id, is_active=True).first()
    if category is None:
        return CommandResult.fail("Category not found.")
    if category.children.filter(is_active=True).exists():
        return CommandResult.fail("Cannot delete a category with active subcategories.")

    category.is_active = False
    category.save(update_fields=["is_active", "updated_at"])
    event = emit_event(actor, EventTypes.CATEGORY_DELETED, "Category", category.public_id, data={"slug": category.slug})
    return CommandResult.ok(event=event)


def category_tree(tenant) -> list[dict]:
    categories = list(visible_categories(tenant).filter(is_active=True).order_by("sort_order", "name"))
    by_parent: dict = {}
    for category in categories:
        by_parent.setdefault(category.parent_id, []).append(category)

    def build(category):
        return {
            "id": str(category.public_id),
            "name": category.name,
            "slug": category.slug,
            "sort_order": category.sort_order,
            "image_url": category.image_url,
            "children": [build(child) for child in by_parent.get(category.pk, [])],
        }

    return [build(category) for category in by_parent.get(None, [])]


# =============================================================================
# Master products (platform catalog)
# =============================================================================

PRODUCT_FIELDS = (
    "name", "description", "subcategory", "brand", "manufacturer", "list_price",
    "currency", "uom", "status", "availability", "attributes", "images", "primary_image",
)


@transaction.atomic
def create_master_product(actor: ActorContext, sku: str, category_id=None, **fields) -> CommandResult:
    require(actor, "catalog.manage")

    sku = sku.strip()
    if MasterProduct.objects.filter(sku=sku).exists():
        return CommandResult.fail(f"Product with SKU '{sku}' already exists.")

    category = None
    if category_id:
        category = visible_categories(actor.tenant).filter(public_id=category_id).first()
        if category is None:
            return CommandResult.fail("Category not found.")

    product = MasterProduct.objects.create(
        sku=sku,
        category=category,
        **{k: v for k, v in fields.items() if k in PRODUCT_FIELDS},
    )
    event = emit_event(
        actor,
        EventTypes.PRODUCT_CREATED,
        "MasterProduct",
        product.public_id,
        data={"sku": sku, "name": product.name, "list_price": product.list_price},
    )
    logger.info("Master product created", extra={"sku": sku})
    return CommandResult.ok(data=product, event=event)


@transaction.atomic
def update_master_product(actor: ActorContext, product_id, **updates) -> CommandResult:
    require(actor, "catalog.manage")

    product = MasterProduct.objects.select_for_update().filter(public_id=product_id).first()
    if product is None:
        return CommandResult.fail("Product not found.")

    sku = updates.pop("sku", None)
    if sku and sku != product.sku:
        if MasterProduct.objects.filter(sku=sku).exclude(pk=product.pk).exists():
            return CommandResult.fail(f"Product with SKU '{sku}' already exists.")
        product.sku = sku

    if "category_id" in updates:
        category_id = updates.pop("category_id")
        category = None
        if category_id:
            category = visible_categories(actor.tenant).filter(public_id=category_id).first()
            if category is None:
                return CommandResult.fail("Category not found.")
        product.category = category

    changed = {k: v for k, v in updates.items() if k in PRODUCT_FIELDS}
    for field, value in changed.items():
        setattr(product, field, value)
    product.save()

    event = emit_event(
        actor,
        EventTypes.PRODUCT_UPDATED,
        "MasterProduct",
        product.public_id,
        data={"sku": product.sku, "changes": changed, "updated_at": product.updated_at.isoformat()},
    )
    return CommandResult.ok(data=product, event=event)


@transaction.atomic
def archive_master_product(actor: ActorContext, product_id) -> CommandResult:
    require(actor, "catalog.manage")

    product = MasterProduct.objects.filter(public_id=product_id).first()
    if product is None:
        return CommandResult.fail("Product not found.")
    if product.status == MasterProduct.Status.ARCHIVED:
        return CommandResult.ok(data=product)

    product.status = MasterProduct.Status.ARCHIVED
    product.save(update_fields=["status", "updated_at"])
    event = emit_event(actor, EventTypes.PRODUCT_ARCHIVED, "MasterProduct", product.public_id, data={"sku": product.sku})
    return CommandResult.ok(data=product, event=event)


# =============================================================================
# Tenant access and pricing
# =============================================================================

ACCESS_FIELDS = (
    "is_active", "agreed_price", "discount_percent", "min_quantity",
    "max_quantity", "valid_from", "valid_until",
)


def _validate_access_fields(fields: dict):
    if fields.get("valid_from") and fields.get("valid_until") and fields["valid_from"] >= fields["valid_until"]:
        return "valid_from must be before valid_until."
    if fields.get("max_quantity") is not None and fields["max_quantity"] < fields.get("min_quantity", 1):
        return "max_quantity cannot be below min_quantity."
    return None


@transaction.atomic
def grant_product_access(actor: ActorContext, product_id, **fields) -> CommandResult:
    """Create or update the tenant's access row for a product."""
    require(actor, "catalog.grant_access")

    product = MasterProduct.objects.filter(public_id=product_id).first()
    if product is None:
        return CommandResult.fail("Product not found.")

    fields = {k: v for k, v in fields.items() if k in ACCESS_FIELDS}
    error = _validate_access_fields(fields)
    if error:
        return CommandResult.fail(error)

    fields.setdefault("is_active", True)
    access, created = TenantProductAccess.objects.update_or_create(
        tenant=actor.tenant,
        product=product,
        defaults={**fields, "granted_by": actor.user},
    )
    event = emit_event(
        actor,
        EventTypes.PRODUCT_ACCESS_GRANTED,
        "MasterProduct",
        product.public_id,
        data={
            "sku": product.sku,
            "created": created,
            "access": fields,
            "updated_at": access.updated_at.isoformat(),
        },
    )
    return CommandResult.ok(data=access, event=event)


@transaction.atomic
def set_product_pricing(
    actor: ActorContext,
    product_id,
    agreed_price=None,
    discount_percent=None,
) -> CommandResult:
    require(actor, "catalog.grant_access")

    access = (
        TenantProductAccess.objects
        .select_for_update()
        .select_related("product")
        .filter(tenant=actor.tenant, product__public_id=product_id)
        .first()
    )
    if access is None:
        raise PermissionDenied("Tenant has no access to this product.")

    access.agreed_price = agreed_price
    access.discount_percent = discount_percent
    access.save(update_fields=["agreed_price", "discount_percent", "updated_at"])

    event = emit_event(
        actor,
        EventTypes.PRODUCT_PRICING_SET,
        "MasterProduct",
        access.product.public_id,
        data={
            "agreed_price": agreed_price,
            "discount_percent": discount_percent,
            "updated_at": access.updated_at.isoformat(),
        },
    )
    return CommandResult.ok(data=access, event=event)


@transaction.atomic
def revoke_product_access(actor: ActorContext, product_id) -> CommandResult:
    require(actor, "catalog.grant_access")

    access = TenantProductAccess.objects.filter(tenant=actor.tenant, product__public_id=product_id).first()
    if access is None:
        return CommandResult.fail("Tenant has no access to this product.")

    access.is_active = False
    access.save(update_fields=["is_active", "updated_at"])
    event = emit_event(
        actor,
        EventTypes.PRODUCT_ACCESS_REVOKED,
        "MasterProduct",
        product_id,
        data={"revoked_at": timezone.now().isoformat()},
    )
    return CommandResult.ok(event=event)
