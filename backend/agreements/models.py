# agreements/models.py
"""
Agreement models.

- Contract / ContractVersion: versioned contracts with a status workflow
- Quote / QuoteLineItem: priced quotes that can become contracts
- ApprovalChain / ApprovalLevel: configurable multi-level approval
- ApprovalRequest / ApprovalStep: a running approval for one entity
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

ZERO = Decimal("0.00")


class Contract(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        PENDING_APPROVAL = "PENDING_APPROVAL", "Pending approval"
        APPROVED = "APPROVED", "Approved"
        ACTIVE = "ACTIVE", "Active"
        EXPIRED = "EXPIRED", "Expired"
        TERMINATED = "TERMINATED", "Terminated"
        CANCELLED = "CANCELLED", "Cancelled"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    tenant = models.ForeignKey("tenant.Tenant", on_delete=models.PROTECT, related_name="contracts")
    organization = models.ForeignKey(
        "accounts.Organization",
        on_delete=models.SET_NULL,
        related_name="contracts",
        null=True,
        blank=True,
    )
    contract_number = models.CharField(max_length=30)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    version = models.PositiveIntegerField(default=1)
    effective_date = models.DateField(null=True, blank=True)
    expiration_date = models.DateField(null=True, blank=True)
    total_value = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, default="USD")
    terms = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="contracts_created",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    expiry_notified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["tenant", "contract_number"], name="uniq_contract_number"),
        ]

    def __str__(self):
        return self.contract_number

    def snapshot(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "effective_date": self.effective_date.isoformat() if self.effective_date else None,
            "expiration_date": self.expiration_date.isoformat() if self.expiration_date else None,
            "total_value": str(self.total_value) if self.total_value is not None else None,
            "currency": self.currency,
            "terms": self.terms,
            "metadata": self.metadata,
            "organization_id": str(self.organization.public_id) if self.organization_id else None,
            "status": self.status,
        }


class ContractVersion(models.Model):
    contract = models.ForeignKey(Contract, on_delete=models.CASCADE, related_name="versions")
    version = models.PositiveIntegerField()
    changes = models.JSONField(default=dict, blank=True)
    snapshot = models.JSONField(default=dict)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-version"]
        constraints = [
            models.UniqueConstraint(fields=["contract", "version"], name="uniq_contract_version"),
        ]


class Quote(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        PENDING_APPROVAL = "PENDING_APPROVAL", "Pending approval"
        APPROVED = "APPROVED", "Approved"
        SENT = "SENT", "Sent"
        ACCEPTED = "ACCEPTED", "Accepted"
        REJECTED = "REJECTED", "Rejected"
        EXPIRED = "EXPIRED", "Expired"
        CONVERTED = "CONVERTED", "Converted"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    tenant = models.ForeignKey("tenant.Tenant", on_delete=models.PROTECT, related_name="quotes")
    quote_number = models.CharField(max_length=30)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    customer_name = models.CharField(max_length=255, blank=True, default="")
    customer_email = models.EmailField(blank=True, default="")
    valid_until = models.DateTimeField(null=True, blank=True)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    discount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    tax = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    currency = models.CharField(max_length=3, default="USD")
    notes = models.TextField(blank=True, default="")
    internal_notes = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    contract = models.ForeignKey(
        Contract,
        on_delete=models.SET_NULL,
        related_name="quotes",
        null=True,
        blank=True,
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="quotes_created",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    responded_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["tenant", "quote_number"], name="uniq_quote_number"),
        ]

    def __str__(self):
        return self.quote_number


class QuoteLineItem(models.Model):
    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, related_name="line_items")
    line_number = models.PositiveIntegerField()
    master_product = models.ForeignKey(
        "catalog.MasterProduct",
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    product_name = models.CharField(max_length=255)
    product_sku = models.CharField(max_length=100, blank=True, default="")
    description = models.TextField(blank=True, default="")
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    discount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)

    class Meta:
        ordering = ["line_number"]


# =============================================================================
# Approval workflows
# =============================================================================

class ApprovalChain(models.Model):
    class EntityType(models.TextChoices):
        CONTRACT = "CONTRACT", "Contract"
        QUOTE = "QUOTE", "Quote"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    tenant = models.ForeignKey("tenant.Tenant", on_delete=models.CASCADE, related_name="approval_chains")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    entity_type = models.CharField(max_length=20, choices=EntityType.choices)
    is_default = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["entity_type", "name"]

    def __str__(self):
        return self.name


class ApprovalLevel(models.Model):
    class ApproverType(models.TextChoices):
        USER = "USER", "Specific user"
        ROLE = "ROLE", "Role"
        MANAGER = "MANAGER", "Manager"
        ORGANIZATION_HEAD = "ORGANIZATION_HEAD", "Organization head"

    chain = models.ForeignKey(ApprovalChain, on_delete=models.CASCADE, related_name="levels")
    level = models.PositiveIntegerField()
    name = models.CharField(max_length=255, blank=True, default="")
    approver_type = models.CharField(max_length=20, choices=ApproverType.choices)
    approver_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    approver_role = models.CharField(max_length=20, blank=True, default="")
    min_approvers = models.PositiveIntegerField(default=1)
    allow_delegation = models.BooleanField(default=False)
    timeout_hours = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["level"]
        constraints = [
            models.UniqueConstraint(fields=["chain", "level"], name="uniq_approval_chain_level"),
        ]

    @property
    def display_name(self) -> str:
        return self.name or f"Level {self.level}"


class ApprovalRequest(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        IN_PROGRESS = "IN_PROGRESS", "In progress"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"
        CANCELLED = "CANCELLED", "Cancelled"

    OPEN_STATUSES = (Status.PENDING, Status.IN_PROGRESS)

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    tenant = models.ForeignKey("tenant.Tenant", on_delete=models.CASCADE, related_name="approval_requests")
    chain = models.ForeignKey(ApprovalChain, on_delete=models.PROTECT, related_name="requests")
    entity_type = models.CharField(max_length=20, choices=ApprovalChain.EntityType.choices)
    entity_id = models.UUIDField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    current_level = models.PositiveIntegerField(default=1)
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="approval_requests",
    )
    comments = models.TextField(blank=True, default="")
    requested_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-requested_at"]
        indexes = [
            models.Index(fields=["tenant", "entity_type", "entity_id"], name="approval_req_entity_idx"),
        ]


class ApprovalStep(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"
        CANCELLED = "CANCELLED", "Cancelled"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    request = models.ForeignKey(ApprovalRequest, on_delete=models.CASCADE, related_name="steps")
    level = models.PositiveIntegerField()
    approver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="approval_steps",
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    comments = models.TextField(blank=True, default="")
    delegated_from = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    expires_at = models.DateTimeField(null=True, blank=True)
    decided_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["level", "created_at"]
