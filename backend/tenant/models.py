"""
Tenant models.

A Tenant is the top-level customer account. Every tenant-scoped row
(organizations, users, carts, orders, contracts, quotes...) carries a
foreign key to it and every query in the command/view layer filters on it.
"""
import uuid

from django.db import models


class Tenant(models.Model):
    """Top-level customer account isolating data."""

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        READ_ONLY = "READ_ONLY", "Read Only"
        SUSPENDED = "SUSPENDED", "Suspended"

    public_id = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
        help_text="Public identifier for API exposure.",
    )
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=100, unique=True)
    config = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        help_text="READ_ONLY blocks writes; SUSPENDED blocks all access.",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.slug})"

    @property
    def is_writable(self) -> bool:
        return self.status == self.Status.ACTIVE

    @property
    def is_accessible(self) -> bool:
        return (
            self.is_active
            and self.deleted_at is None
            and self.status != self.Status.SUSPENDED
        )


class TenantSequence(models.Model):
    """Per-tenant counter used for human-readable document numbers."""

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="sequences")
    name = models.CharField(max_length=50)
    next_value = models.PositiveBigIntegerField(default=1)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "name"],
                name="uniq_tenant_sequence_name",
            ),
        ]

    def __str__(self):
        return f"{self.tenant_id}:{self.name}={self.next_value}"
