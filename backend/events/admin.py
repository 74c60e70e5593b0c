# events/admin.py
"""
Django admin configuration for business events.

Events are read-only in admin (they're immutable).
"""

from django.contrib import admin

from .models import BusinessEvent


@admin.register(BusinessEvent)
class BusinessEventAdmin(admin.ModelAdmin):
    list_display = ["event_type", "aggregate_type", "aggregate_id", "caused_by_user", "occurred_at", "tenant"]
    list_filter = ["tenant", "event_type", "aggregate_type"]
    search_fields = ["event_type", "aggregate_id", "caused_by_user__email"]
    date_hierarchy = "occurred_at"
    list_select_related = ["tenant", "caused_by_user"]
    ordering = ["-occurred_at"]
    readonly_fields = [
        "public_id", "tenant", "event_type", "aggregate_type", "aggregate_id",
        "data", "metadata", "caused_by_user", "occurred_at", "recorded_at", "idempotency_key",
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
