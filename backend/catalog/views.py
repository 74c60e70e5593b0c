# catalog/views.py
from django.http import Http404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor, require
from b2b_backend.pagination import page_params
from catalog.access import access_map, get_access
from catalog.commands import (
    archive_master_product,
    category_tree,
    create_category,
    create_master_product,
    delete_category,
    grant_product_access,
    revoke_product_access,
    set_product_pricing,
    update_category,
    update_master_product,
    visible_categories,
)
from catalog.models import MasterProduct
from catalog.search import filter_products, related_products, search_suggestions
from catalog.serializers import (
    CategoryCreateSerializer,
    CategorySerializer,
    CategoryUpdateSerializer,
    GrantAccessSerializer,
    MasterProductSerializer,
    MasterProductWriteSerializer,
    PricingSerializer,
    ProductAccessSerializer,
)


def _fail(result):
    return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)


def _product_page(request, tenant, qs) -> dict:
    page, page_size = page_params(request)
    total = qs.count()
    items = list(qs[(page - 1) * page_size:page * page_size])
    context = {"access_map": access_map(tenant, items)}
    return {
        "page": page,
        "page_size": page_size,
        "total": total,
        "total_pages": (total + page_size - 1) // page_size,
        "results": MasterProductSerializer(items, many=True, context=context).data,
    }


def _accessible_product(actor, **lookup) -> MasterProduct:
    product = MasterProduct.objects.select_related("category").filter(**lookup).first()
    if product is None or get_access(actor.tenant, product) is None:
        raise Http404("Product not found.")
    return product


# =============================================================================
# Tenant catalog
# =============================================================================

class ProductListView(APIView):
    """
    GET /api/catalog/products/?search=&category=&category_id=&brand=
        &availability=&min_price=&max_price=&access_only=
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "catalog.view")
        qs = filter_products(actor.tenant, request.query_params)
        return Response(_product_page(request, actor.tenant, qs))


class ProductDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "catalog.view")
        product = _accessible_product(actor, public_id=pk)
        context = {"access_map": access_map(actor.tenant, [product])}
        return Response(MasterProductSerializer(product, context=context).data)


class ProductBySkuView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, sku):
        actor = resolve_actor(request)
        require(actor, "catalog.view")
        product = _accessible_product(actor, sku=sku)
        context = {"access_map": access_map(actor.tenant, [product])}
        return Response(MasterProductSerializer(product, context=context).data)


class RelatedProductsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "catalog.view")
        product = _accessible_product(actor, public_id=pk)
        try:
            limit = min(max(int(request.query_params.get("limit", 8)), 1), 50)
        except ValueError:
            limit = 8
        related = related_products(actor.tenant, product, limit)
        context = {"access_map": access_map(actor.tenant, related)}
        return Response(MasterProductSerializer(related, many=True, context=context).data)


class SearchSuggestionsView(APIView):
    """GET /api/catalog/search/suggestions/?q=&limit="""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "catalog.view")
        try:
            limit = min(max(int(request.query_params.get("limit", 10)), 1), 50)
        except ValueError:
            limit = 10
        return Response(search_suggestions(actor.tenant, request.query_params.get("q", ""), limit))


# =============================================================================
# Access and pricing
# =============================================================================

class ProductAccessView(APIView):
    """PUT grants (or updates) access, DELETE revokes it."""
    permission_classes = [IsAuthenticated]

    def put(self, request, pk):
        actor = resolve_actor(request)
        serializer = GrantAccessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = grant_product_access(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ProductAccessSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = revoke_product_access(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProductPricingView(APIView):
    permission_classes = [IsAuthenticated]

    def put(self, request, pk):
        actor = resolve_actor(request)
        serializer = PricingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = set_product_pricing(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(ProductAccessSerializer(result.data).data)


# =============================================================================
# Categories
# =============================================================================

class CategoryListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "catalog.view")
        qs = visible_categories(actor.tenant).filter(is_active=True).select_related("parent")
        return Response(CategorySerializer(qs, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)
        serializer = CategoryCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = create_category(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(CategorySerializer(result.data).data, status=status.HTTP_201_CREATED)


class CategoryTreeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "catalog.view")
        return Response(category_tree(actor.tenant))


class CategoryDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "catalog.view")
        category = visible_categories(actor.tenant).filter(public_id=pk).first()
        if category is None:
            raise Http404("Category not found.")
        return Response(CategorySerializer(category).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = CategoryUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = update_category(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(CategorySerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = delete_category(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CategoryBySlugView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, slug):
        actor = resolve_actor(request)
        require(actor, "catalog.view")
        category = visible_categories(actor.tenant).filter(slug=slug).first()
        if category is None:
            raise Http404("Category not found.")
        return Response(CategorySerializer(category).data)


# =============================================================================
# Master products (catalog admin)
# =============================================================================

class MasterProductListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "catalog.manage")
        params = request.query_params
        qs = MasterProduct.objects.select_related("category").order_by("name")
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        if params.get("search"):
            qs = qs.filter(name__icontains=params["search"]) | qs.filter(sku__icontains=params["search"])
        return Response(_product_page(request, actor.tenant, qs))

    def post(self, request):
        actor = resolve_actor(request)
        serializer = MasterProductWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = create_master_product(actor, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(MasterProductSerializer(result.data).data, status=status.HTTP_201_CREATED)


class MasterProductDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        require(actor, "catalog.manage")
        product = MasterProduct.objects.select_related("category").filter(public_id=pk).first()
        if product is None:
            raise Http404("Product not found.")
        return Response(MasterProductSerializer(product).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = MasterProductWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        result = update_master_product(actor, pk, **serializer.validated_data)
        if not result.success:
            return _fail(result)
        return Response(MasterProductSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        result = archive_master_product(actor, pk)
        if not result.success:
            return _fail(result)
        return Response(status=status.HTTP_204_NO_CONTENT)
