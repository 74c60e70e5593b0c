"""
Business event log.

Every mutation performed through a command layer emits a BusinessEvent
describing the state change. Events are immutable once created and are
the audit trail exposed at /api/audit/.
"""
import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone


class BusinessEvent(models.Model):
    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)

    # Null for platform-level events (connector registry, scheduled sweeps)
    tenant = models.ForeignKey(
        "tenant.Tenant",
        on_delete=models.CASCADE,
        related_name="events",
        null=True,
        blank=True,
    )
    event_type = models.CharField(max_length=100, db_index=True)
    aggregate_type = models.CharField(max_length=50)
    aggregate_id = models.CharField(max_length=64)

    data = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    caused_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="caused_events",
    )
    occurred_at = models.DateTimeField(default=timezone.now, db_index=True)
    recorded_at = models.DateTimeField(auto_now_add=True)
    idempotency_key = models.CharField(max_length=200)

    class Meta:
        ordering = ["-occurred_at", "-id"]
        indexes = [
            models.Index(fields=["tenant", "aggregate_type", "aggregate_id"], name="event_aggregate_idx"),
            models.Index(fields=["tenant", "event_type"], name="event_type_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "idempotency_key"],
                name="uniq_event_tenant_idempotency_key",
            ),
        ]

    def __str__(self):
        return f"{self.event_type} [{self.aggregate_type}#{self.aggregate_id}] @{self.occurred_at}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Events are immutable and cannot be modified.")
        if not self.idempotency_key or not self.idempotency_key.strip():
            raise ValueError("idempotency_key is required")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Events are immutable and cannot be deleted.")
