# integrations/models.py
"""
Integration models.

- Connector: platform-wide registry entry with rate limit, circuit
  breaker and health state
- ConnectorConfig: a tenant's settings for one connector
- ConnectorEvent: audit rows for connector lifecycle and tests
- CredentialVault: encrypted secrets referenced by configs
- Transformation: mapping rules between connector payload shapes
- IntegrationMessage: one unit of cross-system work
- DeadLetter: messages that exhausted their retries
"""
import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone


class Connector(models.Model):
    class Type(models.TextChoices):
        ERP = "ERP", "ERP"
        CRM = "CRM", "CRM"
        ECOMMERCE = "ECOMMERCE", "E-commerce"
        PAYMENT = "PAYMENT", "Payment"
        SHIPPING = "SHIPPING", "Shipping"
        INVENTORY = "INVENTORY", "Inventory"
        WEBHOOK = "WEBHOOK", "Webhook"
        API = "API", "API"
        FILE = "FILE", "File"
        CUSTOM = "CUSTOM", "Custom"

    class Direction(models.TextChoices):
        INBOUND = "INBOUND", "Inbound"
        OUTBOUND = "OUTBOUND", "Outbound"
        BIDIRECTIONAL = "BIDIRECTIONAL", "Bidirectional"

    class CircuitState(models.TextChoices):
        CLOSED = "CLOSED", "Closed"
        OPEN = "OPEN", "Open"
        HALF_OPEN = "HALF_OPEN", "Half open"

    class HealthStatus(models.TextChoices):
        HEALTHY = "HEALTHY", "Healthy"
        DEGRADED = "DEGRADED", "Degraded"
        UNHEALTHY = "UNHEALTHY", "Unhealthy"
        UNKNOWN = "UNKNOWN", "Unknown"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    type = models.CharField(max_length=20, choices=Type.choices)
    direction = models.CharField(max_length=20, choices=Direction.choices, default=Direction.BIDIRECTIONAL)
    is_active = models.BooleanField(default=True)
    config = models.JSONField(default=dict, blank=True)
    capabilities = models.JSONField(default=list, blank=True)

    # Rate limiting (fixed window)
    rate_limit = models.PositiveIntegerField(null=True, blank=True)
    rate_limit_window = models.PositiveIntegerField(null=True, blank=True, help_text="Window length in seconds")
    window_start = models.DateTimeField(null=True, blank=True)
    current_count = models.PositiveIntegerField(default=0)

    # Circuit breaker
    circuit_state = models.CharField(max_length=20, choices=CircuitState.choices, default=CircuitState.CLOSED)
    failure_count = models.PositiveIntegerField(default=0)
    failure_threshold = models.PositiveIntegerField(default=5)
    success_count = models.PositiveIntegerField(default=0)
    success_threshold = models.PositiveIntegerField(default=3)
    last_failure_at = models.DateTimeField(null=True, blank=True)
    circuit_opened_at = models.DateTimeField(null=True, blank=True)
    half_open_at = models.DateTimeField(null=True, blank=True)

    # Health
    health_status = models.CharField(max_length=20, choices=HealthStatus.choices, default=HealthStatus.UNKNOWN)
    last_health_check = models.DateTimeField(null=True, blank=True)
    health_details = models.JSONField(default=dict, blank=True)

    # Stats
    total_messages = models.PositiveIntegerField(default=0)
    successful_messages = models.PositiveIntegerField(default=0)
    failed_messages = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.code

    @property
    def success_rate(self) -> float:
        if not self.total_messages:
            return 100.0
        return round(self.successful_messages / self.total_messages * 100, 2)


class CredentialVault(models.Model):
    class Type(models.TextChoices):
        API_KEY = "API_KEY", "API key"
        BASIC_AUTH = "BASIC_AUTH", "Basic auth"
        OAUTH2 = "OAUTH2", "OAuth2"
        BEARER_TOKEN = "BEARER_TOKEN", "Bearer token"
        CLIENT_CREDENTIALS = "CLIENT_CREDENTIALS", "Client credentials"
        CERTIFICATE = "CERTIFICATE", "Certificate"
        SSH_KEY = "SSH_KEY", "SSH key"
        CUSTOM = "CUSTOM", "Custom"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    tenant = models.ForeignKey("tenant.Tenant", on_delete=models.CASCADE, related_name="credentials")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    type = models.CharField(max_length=30, choices=Type.choices)

    # AES-256-GCM ciphertext, scrypt salt and nonce, all base64
    encrypted_data = models.TextField()
    key_id = models.CharField(max_length=64)
    nonce = models.CharField(max_length=32)

    access_policy = models.JSONField(default=dict, blank=True)
    rotation_policy = models.JSONField(default=dict, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    rotated_at = models.DateTimeField(null=True, blank=True)
    last_accessed_at = models.DateTimeField(null=True, blank=True)
    access_count = models.PositiveIntegerField(default=0)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(fields=["tenant", "name"], name="uniq_tenant_credential_name"),
        ]

    def __str__(self):
        return self.name

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= timezone.now()


class ConnectorConfig(models.Model):
    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    tenant = models.ForeignKey("tenant.Tenant", on_delete=models.CASCADE, related_name="connector_configs")
    connector = models.ForeignKey(Connector, on_delete=models.PROTECT, related_name="configs")
    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)
    is_primary = models.BooleanField(default=False)
    config = models.JSONField(default=dict, blank=True)
    credential_vault = models.ForeignKey(
        CredentialVault,
        on_delete=models.PROTECT,
        related_name="configs",
        null=True,
        blank=True,
    )
    enabled_capabilities = models.JSONField(default=list, blank=True)
    last_tested_at = models.DateTimeField(null=True, blank=True)
    last_test_result = models.BooleanField(null=True, blank=True)
    last_test_error = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["connector__code", "name"]

    def __str__(self):
        return f"{self.connector.code}: {self.name}"


class ConnectorEvent(models.Model):
    class Type(models.TextChoices):
        REGISTERED = "REGISTERED", "Registered"
        CONFIGURED = "CONFIGURED", "Configured"
        ENABLED = "ENABLED", "Enabled"
        DISABLED = "DISABLED", "Disabled"
        TESTED = "TESTED", "Tested"
        CONNECTION_SUCCESS = "CONNECTION_SUCCESS", "Connection success"
        CONNECTION_FAILURE = "CONNECTION_FAILURE", "Connection failure"
        CREDENTIAL_ROTATED = "CREDENTIAL_ROTATED", "Credential rotated"
        ERROR = "ERROR", "Error"

    connector = models.ForeignKey(Connector, on_delete=models.CASCADE, related_name="events")
    tenant = models.ForeignKey(
        "tenant.Tenant",
        on_delete=models.CASCADE,
        related_name="connector_events",
        null=True,
        blank=True,
    )
    config = models.ForeignKey(
        ConnectorConfig,
        on_delete=models.SET_NULL,
        related_name="events",
        null=True,
        blank=True,
    )
    event_type = models.CharField(max_length=30, choices=Type.choices)
    message = models.TextField(blank=True, default="")
    details = models.JSONField(default=dict, blank=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]


class Transformation(models.Model):
    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    source_connector = models.CharField(max_length=50)
    target_connector = models.CharField(max_length=50)
    source_type = models.CharField(max_length=100)
    target_type = models.CharField(max_length=100)
    priority = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    source_to_canonical = models.JSONField(default=dict, blank=True)
    canonical_to_target = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-priority", "name"]
        indexes = [
            models.Index(fields=["source_connector", "target_connector", "source_type"], name="transform_route_idx"),
        ]

    def __str__(self):
        return self.name


class IntegrationMessage(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        TRANSFORMING = "TRANSFORMING", "Transforming"
        TRANSFORMED = "TRANSFORMED", "Transformed"
        ROUTING = "ROUTING", "Routing"
        PROCESSING = "PROCESSING", "Processing"
        COMPLETED = "COMPLETED", "Completed"
        FAILED = "FAILED", "Failed"
        RETRYING = "RETRYING", "Retrying"
        DEAD_LETTER = "DEAD_LETTER", "Dead letter"

    class Direction(models.TextChoices):
        INBOUND = "INBOUND", "Inbound"
        OUTBOUND = "OUTBOUND", "Outbound"

    class Priority(models.TextChoices):
        LOW = "LOW", "Low"
        NORMAL = "NORMAL", "Normal"
        HIGH = "HIGH", "High"
        CRITICAL = "CRITICAL", "Critical"

    message_id = models.CharField(max_length=100, unique=True)
    correlation_id = models.CharField(max_length=100, blank=True, default="", db_index=True)
    tenant = models.ForeignKey(
        "tenant.Tenant",
        on_delete=models.CASCADE,
        related_name="integration_messages",
        null=True,
        blank=True,
    )
    source_connector = models.CharField(max_length=50)
    target_connector = models.CharField(max_length=50)
    direction = models.CharField(max_length=10, choices=Direction.choices, default=Direction.OUTBOUND)
    type = models.CharField(max_length=100)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.NORMAL)

    source_payload = models.JSONField(default=dict)
    canonical_payload = models.JSONField(null=True, blank=True)
    target_payload = models.JSONField(null=True, blank=True)
    transformed_at = models.DateTimeField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    retry_count = models.PositiveIntegerField(default=0)
    max_retries = models.PositiveIntegerField(default=3)
    next_retry_at = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True, default="")
    error_details = models.JSONField(null=True, blank=True)
    dlq_reason = models.CharField(max_length=50, blank=True, default="")
    moved_to_dlq_at = models.DateTimeField(null=True, blank=True)

    idempotency_key = models.CharField(max_length=255, blank=True, default="", db_index=True)
    processed_hash = models.CharField(max_length=64, blank=True, default="")

    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-received_at"]
        indexes = [models.Index(fields=["status", "next_retry_at"], name="message_retry_idx")]

    def __str__(self):
        return self.message_id


class DeadLetter(models.Model):
    class Reason(models.TextChoices):
        MAX_RETRIES_EXCEEDED = "MAX_RETRIES_EXCEEDED", "Max retries exceeded"
        TRANSFORMATION_FAILED = "TRANSFORMATION_FAILED", "Transformation failed"
        INVALID_PAYLOAD = "INVALID_PAYLOAD", "Invalid payload"
        SCHEMA_VALIDATION_FAILED = "SCHEMA_VALIDATION_FAILED", "Schema validation failed"
        CONNECTOR_UNAVAILABLE = "CONNECTOR_UNAVAILABLE", "Connector unavailable"

    NON_RETRYABLE = (Reason.INVALID_PAYLOAD, Reason.SCHEMA_VALIDATION_FAILED)

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    tenant = models.ForeignKey(
        "tenant.Tenant",
        on_delete=models.CASCADE,
        related_name="dead_letters",
        null=True,
        blank=True,
    )
    original_message_id = models.CharField(max_length=100, db_index=True)
    connector = models.CharField(max_length=50)
    reason = models.CharField(max_length=50, choices=Reason.choices)
    error_message = models.TextField(blank=True, default="")
    error_stack = models.TextField(blank=True, default="")
    payload = models.JSONField(default=dict)
    metadata = models.JSONField(default=dict, blank=True)
    retryable = models.BooleanField(default=True)
    reprocessed_at = models.DateTimeField(null=True, blank=True)
    reprocessed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.original_message_id} ({self.reason})"
