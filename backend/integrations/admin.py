from django.contrib import admin

from integrations.models import (
    Connector,
    ConnectorConfig,
    ConnectorEvent,
    CredentialVault,
    DeadLetter,
    IntegrationMessage,
    Transformation,
)


@admin.register(Connector)
class ConnectorAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "type", "direction", "is_active", "circuit_state", "health_status", "total_messages")
    list_filter = ("type", "is_active", "circuit_state", "health_status")
    search_fields = ("code", "name")
    readonly_fields = (
        "public_id", "circuit_state", "failure_count", "success_count", "last_failure_at",
        "circuit_opened_at", "half_open_at", "window_start", "current_count",
        "total_messages", "successful_messages", "failed_messages", "created_at", "updated_at",
    )


@admin.register(ConnectorConfig)
class ConnectorConfigAdmin(admin.ModelAdmin):
    list_display = ("name", "tenant", "connector", "is_active", "is_primary", "last_test_result")
    list_filter = ("is_active", "is_primary", "connector")
    search_fields = ("name", "tenant__name")


@admin.register(CredentialVault)
class CredentialVaultAdmin(admin.ModelAdmin):
    list_display = ("name", "tenant", "type", "expires_at", "rotated_at", "access_count")
    list_filter = ("type",)
    search_fields = ("name", "tenant__name")
    exclude = ("encrypted_data", "nonce")
    readonly_fields = ("public_id", "key_id", "rotated_at", "last_accessed_at", "access_count", "created_at", "updated_at")


@admin.register(ConnectorEvent)
class ConnectorEventAdmin(admin.ModelAdmin):
    list_display = ("created_at", "connector", "tenant", "event_type", "message")
    list_filter = ("event_type",)


@admin.register(Transformation)
class TransformationAdmin(admin.ModelAdmin):
    list_display = ("name", "source_connector", "target_connector", "source_type", "target_type", "priority", "is_active")
    list_filter = ("is_active", "source_connector", "target_connector")
    search_fields = ("name", "source_type", "target_type")


@admin.register(IntegrationMessage)
class IntegrationMessageAdmin(admin.ModelAdmin):
    list_display = ("message_id", "tenant", "source_connector", "target_connector", "type", "status", "retry_count", "received_at")
    list_filter = ("status", "direction", "priority")
    search_fields = ("message_id", "correlation_id", "idempotency_key")


@admin.register(DeadLetter)
class DeadLetterAdmin(admin.ModelAdmin):
    list_display = ("original_message_id", "tenant", "connector", "reason", "retryable", "reprocessed_at", "created_at")
    list_filter = ("reason", "retryable")
    search_fields = ("original_message_id", "connector")
