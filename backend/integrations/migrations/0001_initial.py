import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


def optional_user():
    return models.ForeignKey(
        blank=True,
        null=True,
        on_delete=django.db.models.deletion.SET_NULL,
        related_name="+",
        to=settings.AUTH_USER_MODEL,
    )


def optional_tenant(related_name):
    return models.ForeignKey(
        blank=True,
        null=True,
        on_delete=django.db.models.deletion.CASCADE,
        related_name=related_name,
        to="tenant.tenant",
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("tenant", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Connector",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("code", models.CharField(max_length=50, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("ERP", "ERP"),
                            ("CRM", "CRM"),
                            ("ECOMMERCE", "E-commerce"),
                            ("PAYMENT", "Payment"),
                            ("SHIPPING", "Shipping"),
                            ("INVENTORY", "Inventory"),
                            ("WEBHOOK", "Webhook"),
                            ("API", "API"),
                            ("FILE", "File"),
                            ("CUSTOM", "Custom"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "direction",
                    models.CharField(
                        choices=[("INBOUND", "Inbound"), ("OUTBOUND", "Outbound"), ("BIDIRECTIONAL", "Bidirectional")],
                        default="BIDIRECTIONAL",
                        max_length=20,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("config", models.JSONField(blank=True, default=dict)),
                ("capabilities", models.JSONField(blank=True, default=list)),
                ("rate_limit", models.PositiveIntegerField(blank=True, null=True)),
                ("rate_limit_window", models.PositiveIntegerField(blank=True, help_text="Window length in seconds",
                                                                  null=True)),
                ("window_start", models.DateTimeField(blank=True, null=True)),
                ("current_count", models.PositiveIntegerField(default=0)),
                (
                    "circuit_state",
                    models.CharField(
                        choices=[("CLOSED", "Closed"), ("OPEN", "Open"), ("HALF_OPEN", "Half open")],
                        default="CLOSED",
                        max_length=20,
                    ),
                ),
                ("failure_count", models.PositiveIntegerField(default=0)),
                ("failure_threshold", models.PositiveIntegerField(default=5)),
                ("success_count", models.PositiveIntegerField(default=0)),
                ("success_threshold", models.PositiveIntegerField(default=3)),
                ("last_failure_at", models.DateTimeField(blank=True, null=True)),
                ("circuit_opened_at", models.DateTimeField(blank=True, null=True)),
                ("half_open_at", models.DateTimeField(blank=True, null=True)),
                (
                    "health_status",
                    models.CharField(
                        choices=[
                            ("HEALTHY", "Healthy"),
                            ("DEGRADED", "Degraded"),
                            ("UNHEALTHY", "Unhealthy"),
                            ("UNKNOWN", "Unknown"),
                        ],
                        default="UNKNOWN",
                        max_length=20,
                    ),
                ),
                ("last_health_check", models.DateTimeField(blank=True, null=True)),
                ("health_details", models.JSONField(blank=True, default=dict)),
                ("total_messages", models.PositiveIntegerField(default=0)),
                ("successful_messages", models.PositiveIntegerField(default=0)),
                ("failed_messages", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="CredentialVault",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("API_KEY", "API key"),
                            ("BASIC_AUTH", "Basic auth"),
                            ("OAUTH2", "OAuth2"),
                            ("BEARER_TOKEN", "Bearer token"),
                            ("CLIENT_CREDENTIALS", "Client credentials"),
                            ("CERTIFICATE", "Certificate"),
                            ("SSH_KEY", "SSH key"),
                            ("CUSTOM", "Custom"),
                        ],
                        max_length=30,
                    ),
                ),
                ("encrypted_data", models.TextField()),
                ("key_id", models.CharField(max_length=64)),
                ("nonce", models.CharField(max_length=32)),
                ("access_policy", models.JSONField(blank=True, default=dict)),
                ("rotation_policy", models.JSONField(blank=True, default=dict)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("rotated_at", models.DateTimeField(blank=True, null=True)),
                ("last_accessed_at", models.DateTimeField(blank=True, null=True)),
                ("access_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", optional_user()),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="credentials",
                                             to="tenant.tenant")),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.AddConstraint(
            model_name="credentialvault",
            constraint=models.UniqueConstraint(fields=("tenant", "name"), name="uniq_tenant_credential_name"),
        ),
        migrations.CreateModel(
            name="ConnectorConfig",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("is_primary", models.BooleanField(default=False)),
                ("config", models.JSONField(blank=True, default=dict)),
                ("enabled_capabilities", models.JSONField(blank=True, default=list)),
                ("last_tested_at", models.DateTimeField(blank=True, null=True)),
                ("last_test_result", models.BooleanField(blank=True, null=True)),
                ("last_test_error", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("connector", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="configs",
                                                to="integrations.connector")),
                ("credential_vault", models.ForeignKey(blank=True, null=True,
                                                       on_delete=django.db.models.deletion.PROTECT,
                                                       related_name="configs", to="integrations.credentialvault")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE,
                                             related_name="connector_configs", to="tenant.tenant")),
            ],
            options={
                "ordering": ["connector__code", "name"],
            },
        ),
        migrations.CreateModel(
            name="ConnectorEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("REGISTERED", "Registered"),
                            ("CONFIGURED", "Configured"),
                            ("ENABLED", "Enabled"),
                            ("DISABLED", "Disabled"),
                            ("TESTED", "Tested"),
                            ("CONNECTION_SUCCESS", "Connection success"),
                            ("CONNECTION_FAILURE", "Connection failure"),
                            ("CREDENTIAL_ROTATED", "Credential rotated"),
                            ("ERROR", "Error"),
                        ],
                        max_length=30,
                    ),
                ),
                ("message", models.TextField(blank=True, default="")),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("config", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                                             related_name="events", to="integrations.connectorconfig")),
                ("connector", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="events",
                                                to="integrations.connector")),
                ("tenant", optional_tenant("connector_events")),
                ("user", optional_user()),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Transformation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("source_connector", models.CharField(max_length=50)),
                ("target_connector", models.CharField(max_length=50)),
                ("source_type", models.CharField(max_length=100)),
                ("target_type", models.CharField(max_length=100)),
                ("priority", models.IntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("source_to_canonical", models.JSONField(blank=True, default=dict)),
                ("canonical_to_target", models.JSONField(blank=True, default=dict)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-priority", "name"],
            },
        ),
        migrations.AddIndex(
            model_name="transformation",
            index=models.Index(fields=["source_connector", "target_connector", "source_type"],
                               name="transform_route_idx"),
        ),
        migrations.CreateModel(
            name="IntegrationMessage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("message_id", models.CharField(max_length=100, unique=True)),
                ("correlation_id", models.CharField(blank=True, db_index=True, default="", max_length=100)),
                ("source_connector", models.CharField(max_length=50)),
                ("target_connector", models.CharField(max_length=50)),
                (
                    "direction",
                    models.CharField(
                        choices=[("INBOUND", "Inbound"), ("OUTBOUND", "Outbound")],
                        default="OUTBOUND",
                        max_length=10,
                    ),
                ),
                ("type", models.CharField(max_length=100)),
                (
                    "priority",
                    models.CharField(
                        choices=[("LOW", "Low"), ("NORMAL", "Normal"), ("HIGH", "High"), ("CRITICAL", "Critical")],
                        default="NORMAL",
                        max_length=10,
                    ),
                ),
                ("source_payload", models.JSONField(default=dict)),
                ("canonical_payload", models.JSONField(blank=True, null=True)),
                ("target_payload", models.JSONField(blank=True, null=True)),
                ("transformed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("TRANSFORMING", "Transforming"),
                            ("TRANSFORMED", "Transformed"),
                            ("ROUTING", "Routing"),
                            ("PROCESSING", "Processing"),
                            ("COMPLETED", "Completed"),
                            ("FAILED", "Failed"),
                            ("RETRYING", "Retrying"),
                            ("DEAD_LETTER", "Dead letter"),
                        ],
                        db_index=True,
                        default="PENDING",
                        max_length=20,
                    ),
                ),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("max_retries", models.PositiveIntegerField(default=3)),
                ("next_retry_at", models.DateTimeField(blank=True, null=True)),
                ("last_error", models.TextField(blank=True, default="")),
                ("error_details", models.JSONField(blank=True, null=True)),
                ("dlq_reason", models.CharField(blank=True, default="", max_length=50)),
                ("moved_to_dlq_at", models.DateTimeField(blank=True, null=True)),
                ("idempotency_key", models.CharField(blank=True, db_index=True, default="", max_length=255)),
                ("processed_hash", models.CharField(blank=True, default="", max_length=64)),
                ("received_at", models.DateTimeField(auto_now_add=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("tenant", optional_tenant("integration_messages")),
            ],
            options={
                "ordering": ["-received_at"],
            },
        ),
        migrations.AddIndex(
            model_name="integrationmessage",
            index=models.Index(fields=["status", "next_retry_at"], name="message_retry_idx"),
        ),
        migrations.CreateModel(
            name="DeadLetter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("original_message_id", models.CharField(db_index=True, max_length=100)),
                ("connector", models.CharField(max_length=50)),
                (
                    "reason",
                    models.CharField(
                        choices=[
                            ("MAX_RETRIES_EXCEEDED", "Max retries exceeded"),
                            ("TRANSFORMATION_FAILED", "Transformation failed"),
                            ("INVALID_PAYLOAD", "Invalid payload"),
                            ("SCHEMA_VALIDATION_FAILED", "Schema validation failed"),
                            ("CONNECTOR_UNAVAILABLE", "Connector unavailable"),
                        ],
                        max_length=50,
                    ),
                ),
                ("error_message", models.TextField(blank=True, default="")),
                ("error_stack", models.TextField(blank=True, default="")),
                ("payload", models.JSONField(default=dict)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("retryable", models.BooleanField(default=True)),
                ("reprocessed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("reprocessed_by", optional_user()),
                ("tenant", optional_tenant("dead_letters")),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
