from django.contrib import admin

from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "type", "user", "tenant", "is_read", "created_at")
    list_filter = ("type", "is_read")
    search_fields = ("title", "user__email")
    raw_id_fields = ("tenant", "user")
