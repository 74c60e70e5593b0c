"""Tenant product access lookups and pricing."""
from decimal import Decimal

from django.db.models import Q, QuerySet
from django.utils import timezone

from catalog.models import MasterProduct, TenantProductAccess


def valid_access_filter(prefix: str = "", at=None) -> Q:
    at = at or timezone.now()
    return (
        Q(**{f"{prefix}is_active": True})
        & (Q(**{f"{prefix}valid_from__isnull": True}) | Q(**{f"{prefix}valid_from__lte": at}))
        & (Q(**{f"{prefix}valid_until__isnull": True}) | Q(**{f"{prefix}valid_until__gte": at}))
    )


def get_access(tenant, product) -> TenantProductAccess | None:
    access = (
        TenantProductAccess.objects
        .select_related("product")
        .filter(tenant=tenant, product=product)
        .first()
    )
    if access is None or not access.is_valid():
        return None
    return access


def has_access(tenant, product) -> bool:
    return get_access(tenant, product) is not None


def accessible_products(tenant) -> QuerySet:
    return MasterProduct.objects.filter(
        valid_access_filter("tenant_access__") & Q(tenant_access__tenant=tenant)
    ).distinct()


def effective_price(tenant, product) -> Decimal:
    """Tenant price for a product; list price when the tenant has no access row."""
    access = get_access(tenant, product)
    if access is None:
        return product.list_price
    return access.effective_price()


def access_map(tenant, products) -> dict:
    """product_id -> valid TenantProductAccess, for serializing product lists."""
    rows = TenantProductAccess.objects.filter(
        valid_access_filter(),
        tenant=tenant,
        product__in=products,
    ).select_related("product")
    return {row.product_id: row for row in rows}
