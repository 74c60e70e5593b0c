from rest_framework import serializers

from integrations.models import (
    Connector,
    ConnectorConfig,
    ConnectorEvent,
    CredentialVault,
    DeadLetter,
    IntegrationMessage,
    Transformation,
)


# =============================================================================
# Connectors
# =============================================================================

class ConnectorSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    success_rate = serializers.FloatField(read_only=True)

    class Meta:
        model = Connector
        fields = (
            "id", "code", "name", "description", "type", "direction", "is_active",
            "config", "capabilities", "rate_limit", "rate_limit_window",
            "circuit_state", "failure_count", "failure_threshold", "success_threshold",
            "health_status", "last_health_check", "total_messages", "successful_messages",
            "failed_messages", "success_rate", "created_at", "updated_at",
        )


class ConnectorCreateSerializer(serializers.Serializer):
    code = serializers.SlugField(max_length=50)
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    type = serializers.ChoiceField(choices=Connector.Type.choices)
    direction = serializers.ChoiceField(choices=Connector.Direction.choices, default=Connector.Direction.BIDIRECTIONAL)
    is_active = serializers.BooleanField(required=False, default=True)
    config = serializers.JSONField(required=False, default=dict)
    capabilities = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    rate_limit = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    rate_limit_window = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    failure_threshold = serializers.IntegerField(min_value=1, required=False)
    success_threshold = serializers.IntegerField(min_value=1, required=False)

    def validate(self, attrs):
        if bool(attrs.get("rate_limit")) != bool(attrs.get("rate_limit_window")):
            raise serializers.ValidationError("rate_limit and rate_limit_window must be set together.")
        return attrs


class ConnectorUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    type = serializers.ChoiceField(choices=Connector.Type.choices, required=False)
    direction = serializers.ChoiceField(choices=Connector.Direction.choices, required=False)
    config = serializers.JSONField(required=False)
    capabilities = serializers.ListField(child=serializers.CharField(), required=False)
    rate_limit = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    rate_limit_window = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    failure_threshold = serializers.IntegerField(min_value=1, required=False)
    success_threshold = serializers.IntegerField(min_value=1, required=False)


class ActiveSerializer(serializers.Serializer):
    is_active = serializers.BooleanField()


class ConnectorEventSerializer(serializers.ModelSerializer):
    user = serializers.EmailField(source="user.email", read_only=True, default=None)
    config_id = serializers.UUIDField(source="config.public_id", read_only=True, default=None)

    class Meta:
        model = ConnectorEvent
        fields = ("id", "event_type", "message", "details", "config_id", "user", "created_at")


# =============================================================================
# Configs
# =============================================================================

class ConnectorConfigSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    connector = serializers.CharField(source="connector.code", read_only=True)
    connector_id = serializers.UUIDField(source="connector.public_id", read_only=True)
    credential_id = serializers.UUIDField(source="credential_vault.public_id", read_only=True, default=None)

    class Meta:
        model = ConnectorConfig
        fields = (
            "id", "connector", "connector_id", "name", "is_active", "is_primary", "config",
            "credential_id", "enabled_capabilities", "last_tested_at", "last_test_result",
            "last_test_error", "created_at", "updated_at",
        )


class ConnectorConfigCreateSerializer(serializers.Serializer):
    connector_id = serializers.UUIDField()
    name = serializers.CharField(max_length=255)
    config = serializers.JSONField(required=False, default=dict)
    credential_id = serializers.UUIDField(required=False, allow_null=True)
    is_primary = serializers.BooleanField(required=False, default=False)
    is_active = serializers.BooleanField(required=False, default=True)
    enabled_capabilities = serializers.ListField(child=serializers.CharField(), required=False, default=list)


class ConnectorConfigUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    config = serializers.JSONField(required=False)
    credential_id = serializers.UUIDField(required=False, allow_null=True)
    is_primary = serializers.BooleanField(required=False)
    is_active = serializers.BooleanField(required=False)
    enabled_capabilities = serializers.ListField(child=serializers.CharField(), required=False)


class ConnectionTestSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    message = serializers.CharField()
    latency_ms = serializers.FloatField()
    details = serializers.DictField()


# =============================================================================
# Credentials
# =============================================================================

class CredentialSerializer(serializers.ModelSerializer):
    """Metadata only. Ciphertext and nonces never leave the vault."""
    id = serializers.UUIDField(source="public_id", read_only=True)
    created_by = serializers.EmailField(source="created_by.email", read_only=True, default=None)
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = CredentialVault
        fields = (
            "id", "name", "description", "type", "access_policy", "rotation_policy",
            "expires_at", "is_expired", "rotated_at", "last_accessed_at", "access_count",
            "created_by", "created_at", "updated_at",
        )


class CredentialCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    type = serializers.ChoiceField(choices=CredentialVault.Type.choices)
    data = serializers.DictField()
    access_policy = serializers.JSONField(required=False, default=dict)
    rotation_policy = serializers.JSONField(required=False, default=dict)
    expires_at = serializers.DateTimeField(required=False, allow_null=True)

    def validate_data(self, value):
        if not value:
            raise serializers.ValidationError("Credential data cannot be empty.")
        return value


class CredentialUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    access_policy = serializers.JSONField(required=False)
    rotation_policy = serializers.JSONField(required=False)
    expires_at = serializers.DateTimeField(required=False, allow_null=True)


class CredentialRotateSerializer(serializers.Serializer):
    data = serializers.DictField()

    def validate_data(self, value):
        if not value:
            raise serializers.ValidationError("Credential data cannot be empty.")
        return value


# =============================================================================
# Transformations
# =============================================================================

class TransformationSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)

    class Meta:
        model = Transformation
        fields = (
            "id", "name", "description", "source_connector", "target_connector",
            "source_type", "target_type", "priority", "is_active",
            "source_to_canonical", "canonical_to_target", "metadata",
            "created_at", "updated_at",
        )


class TransformationCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    source_connector = serializers.CharField(max_length=50)
    target_connector = serializers.CharField(max_length=50)
    source_type = serializers.CharField(max_length=100)
    target_type = serializers.CharField(max_length=100)
    priority = serializers.IntegerField(required=False, default=0)
    is_active = serializers.BooleanField(required=False, default=True)
    source_to_canonical = serializers.JSONField(required=False, default=dict)
    canonical_to_target = serializers.JSONField(required=False, default=dict)
    metadata = serializers.JSONField(required=False, default=dict)


class TransformationUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    source_connector = serializers.CharField(max_length=50, required=False)
    target_connector = serializers.CharField(max_length=50, required=False)
    source_type = serializers.CharField(max_length=100, required=False)
    target_type = serializers.CharField(max_length=100, required=False)
    priority = serializers.IntegerField(required=False)
    is_active = serializers.BooleanField(required=False)
    source_to_canonical = serializers.JSONField(required=False)
    canonical_to_target = serializers.JSONField(required=False)
    metadata = serializers.JSONField(required=False)


class TransformTestSerializer(serializers.Serializer):
    source_connector = serializers.CharField(max_length=50)
    target_connector = serializers.CharField(max_length=50)
    source_type = serializers.CharField(max_length=100)
    target_type = serializers.CharField(max_length=100, required=False, allow_null=True, default=None)
    payload = serializers.DictField()


# =============================================================================
# Messages and dead letters
# =============================================================================

class IntegrationMessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = IntegrationMessage
        fields = (
            "message_id", "correlation_id", "source_connector", "target_connector",
            "direction", "type", "priority", "status", "source_payload", "canonical_payload",
            "target_payload", "retry_count", "max_retries", "next_retry_at", "last_error",
            "error_details", "dlq_reason", "moved_to_dlq_at", "idempotency_key",
            "received_at", "processed_at", "completed_at", "failed_at", "metadata",
        )


class SendMessageSerializer(serializers.Serializer):
    message_id = serializers.CharField(max_length=100, required=False, allow_blank=True)
    source_connector = serializers.CharField(max_length=50)
    target_connector = serializers.CharField(max_length=50)
    type = serializers.CharField(max_length=100)
    source_payload = serializers.DictField()
    direction = serializers.ChoiceField(choices=IntegrationMessage.Direction.choices,
                                        default=IntegrationMessage.Direction.OUTBOUND)
    priority = serializers.ChoiceField(choices=IntegrationMessage.Priority.choices,
                                       default=IntegrationMessage.Priority.NORMAL)
    correlation_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    idempotency_key = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    max_retries = serializers.IntegerField(min_value=0, max_value=20, required=False, default=3)
    metadata = serializers.JSONField(required=False, default=dict)


class ProcessingResultSerializer(serializers.Serializer):
    message_id = serializers.CharField()
    status = serializers.CharField()
    error = serializers.CharField(allow_null=True)
    retry_scheduled = serializers.BooleanField()
    moved_to_dlq = serializers.BooleanField()
    reset_at = serializers.DateTimeField(allow_null=True)


class DeadLetterSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    reprocessed_by = serializers.EmailField(source="reprocessed_by.email", read_only=True, default=None)

    class Meta:
        model = DeadLetter
        fields = (
            "id", "original_message_id", "connector", "reason", "error_message", "error_stack",
            "payload", "metadata", "retryable", "reprocessed_at", "reprocessed_by", "created_at",
        )


class BulkReprocessSerializer(serializers.Serializer):
    connector = serializers.CharField(max_length=50, required=False, allow_blank=True)
    reason = serializers.ChoiceField(choices=DeadLetter.Reason.choices, required=False)
    limit = serializers.IntegerField(min_value=1, max_value=1000, required=False, default=100)
