from rest_framework import serializers

from agreements.models import (
    ApprovalChain,
    ApprovalLevel,
    ApprovalRequest,
    ApprovalStep,
    Contract,
    ContractVersion,
    Quote,
    QuoteLineItem,
)


# =============================================================================
# Contracts
# =============================================================================

class ContractSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    organization_id = serializers.UUIDField(source="organization.public_id", read_only=True, default=None)
    created_by = serializers.EmailField(source="created_by.email", read_only=True)
    approved_by = serializers.EmailField(source="approved_by.email", read_only=True, default=None)

    class Meta:
        model = Contract
        fields = (
            "id", "contract_number", "title", "description", "status", "version",
            "organization_id", "effective_date", "expiration_date", "total_value",
            "currency", "terms", "metadata", "created_by", "approved_by",
            "created_at", "updated_at", "deleted_at",
        )


class ContractVersionSerializer(serializers.ModelSerializer):
    created_by = serializers.EmailField(source="created_by.email", read_only=True, default=None)

    class Meta:
        model = ContractVersion
        fields = ("version", "changes", "snapshot", "created_by", "created_at")


class ContractCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    organization_id = serializers.UUIDField(required=False, allow_null=True)
    effective_date = serializers.DateField(required=False, allow_null=True)
    expiration_date = serializers.DateField(required=False, allow_null=True)
    total_value = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    currency = serializers.CharField(max_length=3, required=False, default="USD")
    terms = serializers.JSONField(required=False, default=dict)
    metadata = serializers.JSONField(required=False, default=dict)


class ContractUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    organization_id = serializers.UUIDField(required=False, allow_null=True)
    effective_date = serializers.DateField(required=False, allow_null=True)
    expiration_date = serializers.DateField(required=False, allow_null=True)
    total_value = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    currency = serializers.CharField(max_length=3, required=False)
    terms = serializers.JSONField(required=False)
    metadata = serializers.JSONField(required=False)


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


# =============================================================================
# Quotes
# =============================================================================

class QuoteLineItemSerializer(serializers.ModelSerializer):
    master_product_id = serializers.UUIDField(source="master_product.public_id", read_only=True, default=None)

    class Meta:
        model = QuoteLineItem
        fields = (
            "line_number", "master_product_id", "product_name", "product_sku", "description",
            "quantity", "unit_price", "discount_percent", "discount", "total",
        )


class QuoteListSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)

    class Meta:
        model = Quote
        fields = (
            "id", "quote_number", "title", "status", "customer_name", "customer_email",
            "valid_until", "total", "currency", "created_at",
        )


class QuoteSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    contract_id = serializers.UUIDField(source="contract.public_id", read_only=True, default=None)
    created_by = serializers.EmailField(source="created_by.email", read_only=True)
    approved_by = serializers.EmailField(source="approved_by.email", read_only=True, default=None)
    line_items = QuoteLineItemSerializer(many=True, read_only=True)

    class Meta:
        model = Quote
        fields = (
            "id", "quote_number", "title", "description", "status", "customer_name",
            "customer_email", "valid_until", "subtotal", "discount", "discount_percent",
            "tax", "total", "currency", "notes", "internal_notes", "metadata",
            "contract_id", "line_items", "created_by", "approved_by", "approved_at",
            "sent_at", "responded_at", "rejection_reason", "created_at", "updated_at",
        )


class QuoteLineInputSerializer(serializers.Serializer):
    master_product_id = serializers.UUIDField(required=False, allow_null=True)
    product_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    product_sku = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    description = serializers.CharField(required=False, allow_blank=True, default="")
    quantity = serializers.IntegerField(min_value=1, default=1)
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False, allow_null=True)
    discount_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False, allow_null=True,
    )


class QuoteCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    customer_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    customer_email = serializers.EmailField(required=False, allow_blank=True, default="")
    valid_until = serializers.DateTimeField(required=False, allow_null=True)
    discount_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False, allow_null=True,
    )
    currency = serializers.CharField(max_length=3, required=False, default="USD")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    internal_notes = serializers.CharField(required=False, allow_blank=True, default="")
    metadata = serializers.JSONField(required=False, default=dict)
    contract_id = serializers.UUIDField(required=False, allow_null=True)
    line_items = QuoteLineInputSerializer(many=True)


class QuoteUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    customer_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    valid_until = serializers.DateTimeField(required=False, allow_null=True)
    discount_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False, allow_null=True,
    )
    currency = serializers.CharField(max_length=3, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    internal_notes = serializers.CharField(required=False, allow_blank=True)
    metadata = serializers.JSONField(required=False)
    line_items = QuoteLineInputSerializer(many=True, required=False)


# =============================================================================
# Approvals
# =============================================================================

class ApprovalLevelSerializer(serializers.ModelSerializer):
    approver_user_id = serializers.UUIDField(source="approver_user.public_id", read_only=True, default=None)

    class Meta:
        model = ApprovalLevel
        fields = (
            "level", "name", "display_name", "approver_type", "approver_user_id",
            "approver_role", "min_approvers", "allow_delegation", "timeout_hours",
        )


class ApprovalChainSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    levels = ApprovalLevelSerializer(many=True, read_only=True)

    class Meta:
        model = ApprovalChain
        fields = (
            "id", "name", "description", "entity_type", "is_default", "is_active",
            "levels", "created_at", "updated_at",
        )


class ApprovalLevelInputSerializer(serializers.Serializer):
    level = serializers.IntegerField(min_value=1)
    name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    approver_type = serializers.ChoiceField(choices=ApprovalLevel.ApproverType.choices)
    approver_user_id = serializers.UUIDField(required=False, allow_null=True)
    approver_role = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
    min_approvers = serializers.IntegerField(min_value=1, default=1)
    allow_delegation = serializers.BooleanField(default=False)
    timeout_hours = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class ApprovalChainCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    entity_type = serializers.ChoiceField(choices=ApprovalChain.EntityType.choices)
    is_default = serializers.BooleanField(default=False)
    is_active = serializers.BooleanField(default=True)
    levels = ApprovalLevelInputSerializer(many=True)


class ApprovalChainUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    entity_type = serializers.ChoiceField(choices=ApprovalChain.EntityType.choices, required=False)
    is_default = serializers.BooleanField(required=False)
    is_active = serializers.BooleanField(required=False)
    levels = ApprovalLevelInputSerializer(many=True, required=False)


class ApprovalStepSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    approver = serializers.EmailField(source="approver.email", read_only=True)
    delegated_from = serializers.EmailField(source="delegated_from.email", read_only=True, default=None)

    class Meta:
        model = ApprovalStep
        fields = (
            "id", "level", "approver", "status", "comments", "delegated_from",
            "expires_at", "decided_at", "created_at",
        )


class ApprovalRequestSerializer(serializers.ModelSerializer):
    id = serializers.UUIDField(source="public_id", read_only=True)
    chain_id = serializers.UUIDField(source="chain.public_id", read_only=True)
    chain_name = serializers.CharField(source="chain.name", read_only=True)
    requested_by = serializers.EmailField(source="requested_by.email", read_only=True)
    steps = ApprovalStepSerializer(many=True, read_only=True)

    class Meta:
        model = ApprovalRequest
        fields = (
            "id", "chain_id", "chain_name", "entity_type", "entity_id", "status",
            "current_level", "requested_by", "comments", "requested_at",
            "completed_at", "steps",
        )


class SubmitForApprovalSerializer(serializers.Serializer):
    entity_type = serializers.ChoiceField(choices=ApprovalChain.EntityType.choices)
    entity_id = serializers.UUIDField()
    chain_id = serializers.UUIDField(required=False, allow_null=True)
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class StepDecisionSerializer(serializers.Serializer):
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class DelegateSerializer(serializers.Serializer):
    delegate_id = serializers.UUIDField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")
