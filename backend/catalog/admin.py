from django.contrib import admin

from catalog.models import Category, MasterProduct, TenantProductAccess


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "tenant", "parent", "sort_order", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(MasterProduct)
class MasterProductAdmin(admin.ModelAdmin):
    list_display = ("sku", "name", "brand", "list_price", "currency", "status", "availability")
    list_filter = ("status", "availability")
    search_fields = ("sku", "name", "brand")


@admin.register(TenantProductAccess)
class TenantProductAccessAdmin(admin.ModelAdmin):
    list_display = ("tenant", "product", "is_active", "agreed_price", "discount_percent", "valid_until")
    list_filter = ("is_active",)
    raw_id_fields = ("tenant", "product", "granted_by")
