from django.urls import path

from catalog import views

app_name = "catalog"

urlpatterns = [
    path("products/", views.ProductListView.as_view(), name="product-list"),
    path("products/sku/<str:sku>/", views.ProductBySkuView.as_view(), name="product-by-sku"),
    path("products/<uuid:pk>/", views.ProductDetailView.as_view(), name="product-detail"),
    path("products/<uuid:pk>/related/", views.RelatedProductsView.as_view(), name="product-related"),
    path("products/<uuid:pk>/access/", views.ProductAccessView.as_view(), name="product-access"),
    path("products/<uuid:pk>/pricing/", views.ProductPricingView.as_view(), name="product-pricing"),
    path("search/suggestions/", views.SearchSuggestionsView.as_view(), name="search-suggestions"),

    # Categories
    path("categories/", views.CategoryListCreateView.as_view(), name="category-list"),
    path("categories/tree/", views.CategoryTreeView.as_view(), name="category-tree"),
    path("categories/slug/<slug:slug>/", views.CategoryBySlugView.as_view(), name="category-by-slug"),
    path("categories/<uuid:pk>/", views.CategoryDetailView.as_view(), name="category-detail"),

    # Master catalog admin
    path("master-products/", views.MasterProductListCreateView.as_view(), name="master-product-list"),
    path("master-products/<uuid:pk>/", views.MasterProductDetailView.as_view(), name="master-product-detail"),
]
