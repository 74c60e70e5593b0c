"""Offset pagination shared by the list endpoints."""
from django.conf import settings


def page_params(request, default_size: int = None) -> tuple[int, int]:
    """Return (page, page_size) from the query string, clamped to sane bounds."""
    default_size = default_size or settings.REST_FRAMEWORK.get("DEFAULT_PAGE_SIZE", 20)
    try:
        page = max(int(request.query_params.get("page", 1)), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(request.query_params.get("page_size", request.query_params.get("limit", default_size)))
    except (TypeError, ValueError):
        page_size = default_size
    page_size = min(max(page_size, 1), settings.MAX_PAGE_SIZE)
    return page, page_size


def paginate(request, queryset, serializer_class, context: dict = None) -> dict:
    page, page_size = page_params(request)
    total = queryset.count()
    offset = (page - 1) * page_size
    items = queryset[offset:offset + page_size]
    return {
        "page": page,
        "page_size": page_size,
        "total": total,
        "total_pages": (total + page_size - 1) // page_size,
        "results": serializer_class(items, many=True, context=context or {}).data,
    }
