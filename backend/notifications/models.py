import uuid

from django.conf import settings
from django.db import models


class Notification(models.Model):
    class Type(models.TextChoices):
        INFO = "INFO", "Info"
        WARNING = "WARNING", "Warning"
        SUCCESS = "SUCCESS", "Success"
        ERROR = "ERROR", "Error"
        APPROVAL_REQUIRED = "APPROVAL_REQUIRED", "Approval Required"
        APPROVAL_COMPLETED = "APPROVAL_COMPLETED", "Approval Completed"
        CONTRACT_EXPIRING = "CONTRACT_EXPIRING", "Contract Expiring"
        QUOTE_EXPIRING = "QUOTE_EXPIRING", "Quote Expiring"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    tenant = models.ForeignKey("tenant.Tenant", on_delete=models.CASCADE, related_name="notifications")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notifications")
    type = models.CharField(max_length=30, choices=Type.choices, default=Type.INFO)
    title = models.CharField(max_length=255)
    message = models.TextField()
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "is_read"], name="notification_unread_idx"),
        ]

    def __str__(self):
        return f"{self.type}: {self.title}"
