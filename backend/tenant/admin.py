"""
Django Admin registration for Tenant models.
"""
from django.contrib import admin

from tenant.models import Tenant, TenantSequence


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "status", "is_active", "created_at", "deleted_at"]
    list_filter = ["status", "is_active"]
    search_fields = ["name", "slug"]
    readonly_fields = ["public_id", "created_at", "updated_at"]

    fieldsets = (
        (None, {
            "fields": ("name", "slug", "public_id"),
        }),
        ("Status", {
            "fields": ("status", "is_active", "deleted_at"),
        }),
        ("Configuration", {
            "fields": ("config",),
        }),
        ("Timestamps", {
            "fields": ("created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )


@admin.register(TenantSequence)
class TenantSequenceAdmin(admin.ModelAdmin):
    list_display = ["tenant", "name", "next_value"]
    search_fields = ["tenant__slug", "name"]
    raw_id_fields = ["tenant"]
