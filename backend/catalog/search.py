"""Product listing filters, related products and search suggestions."""
from decimal import Decimal, InvalidOperation

from django.db.models import Q, QuerySet

from catalog.access import accessible_products
from catalog.models import Category, MasterProduct

MIN_SUGGESTION_LENGTH = 2


def _decimal(value):
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None


def filter_products(tenant, params) -> QuerySet:
    """
    Apply the catalog list filters from a query-string mapping.

    ``access_only`` defaults to true; pass ``access_only=false`` to browse
    the whole active master catalog.
    """
    if params.get("access_only", "true").lower() == "false":
        qs = MasterProduct.objects.exclude(status=MasterProduct.Status.ARCHIVED)
    else:
        qs = accessible_products(tenant).exclude(status=MasterProduct.Status.ARCHIVED)

    search = params.get("search")
    if search:
        qs = qs.filter(
            Q(name__icontains=search)
            | Q(sku__icontains=search)
            | Q(description__icontains=search)
            | Q(brand__icontains=search)
        )

    if params.get("category"):
        qs = qs.filter(category__slug=params["category"])

    if params.get("category_id"):
        category = Category.objects.filter(public_id=params["category_id"]).first()
        if category is None:
            return qs.none()
        qs = qs.filter(category_id__in=[category.pk, *category.descendant_ids()])

    if params.get("brand"):
        qs = qs.filter(brand__iexact=params["brand"])
    if params.get("availability"):
        qs = qs.filter(availability=params["availability"])

    min_price = _decimal(params.get("min_price"))
    if min_price is not None:
        qs = qs.filter(list_price__gte=min_price)
    max_price = _decimal(params.get("max_price"))
    if max_price is not None:
        qs = qs.filter(list_price__lte=max_price)

    return qs.select_related("category").order_by("name")


def related_products(tenant, product, limit: int = 8) -> list:
    match = Q(brand=product.brand) if product.brand else Q(pk__in=[])
    if product.category_id:
        match |= Q(category_id=product.category_id)
    return list(
        accessible_products(tenant)
        .filter(match)
        .exclude(pk=product.pk)
        .exclude(status=MasterProduct.Status.ARCHIVED)
        .select_related("category")
        .order_by("name")[:limit]
    )


def search_suggestions(tenant, q: str, limit: int = 10) -> dict:
    """Mixed suggestions: half products, a quarter each categories and brands."""
    q = (q or "").strip()
    empty = {"products": [], "categories": [], "brands": []}
    if len(q) < MIN_SUGGESTION_LENGTH:
        return empty

    product_limit = max(limit // 2, 1)
    other_limit = max(limit // 4, 1)

    products = (
        accessible_products(tenant)
        .filter(Q(name__icontains=q) | Q(sku__icontains=q))
        .exclude(status=MasterProduct.Status.ARCHIVED)
        .order_by("name")[:product_limit]
    )
    categories = (
        Category.objects
        .filter(Q(tenant__isnull=True) | Q(tenant=tenant), is_active=True, name__icontains=q)
        .order_by("name")[:other_limit]
    )
    brands = (
        accessible_products(tenant)
        .filter(brand__icontains=q)
        .exclude(brand="")
        .order_by("brand")
        .values_list("brand", flat=True)
        .distinct()[:other_limit]
    )
    return {
        "products": [{"id": str(p.public_id), "sku": p.sku, "name": p.name} for p in products],
        "categories": [{"id": str(c.public_id), "name": c.name, "slug": c.slug} for c in categories],
        "brands": list(brands),
    }
