from django.contrib import admin

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


class ContractVersionInline(admin.TabularInline):
    model = ContractVersion
    extra = 0
    readonly_fields = ("version", "changes", "created_by", "created_at")
    exclude = ("snapshot",)


@admin.register(Contract)
class ContractAdmin(admin.ModelAdmin):
    list_display = ("contract_number", "title", "tenant", "status", "version", "expiration_date")
    list_filter = ("status",)
    search_fields = ("contract_number", "title")
    inlines = [ContractVersionInline]
    raw_id_fields = ("tenant", "organization", "created_by", "approved_by")


class QuoteLineItemInline(admin.TabularInline):
    model = QuoteLineItem
    extra = 0


@admin.register(Quote)
class QuoteAdmin(admin.ModelAdmin):
    list_display = ("quote_number", "title", "tenant", "status", "total", "valid_until")
    list_filter = ("status",)
    search_fields = ("quote_number", "title", "customer_name", "customer_email")
    inlines = [QuoteLineItemInline]
    raw_id_fields = ("tenant", "contract", "created_by", "approved_by")


class ApprovalLevelInline(admin.TabularInline):
    model = ApprovalLevel
    extra = 0
    raw_id_fields = ("approver_user",)


@admin.register(ApprovalChain)
class ApprovalChainAdmin(admin.ModelAdmin):
    list_display = ("name", "tenant", "entity_type", "is_default", "is_active")
    list_filter = ("entity_type", "is_default", "is_active")
    inlines = [ApprovalLevelInline]


class ApprovalStepInline(admin.TabularInline):
    model = ApprovalStep
    extra = 0
    raw_id_fields = ("approver", "delegated_from")


@admin.register(ApprovalRequest)
class ApprovalRequestAdmin(admin.ModelAdmin):
    list_display = ("public_id", "tenant", "entity_type", "status", "current_level", "requested_at")
    list_filter = ("entity_type", "status")
    inlines = [ApprovalStepInline]
    raw_id_fields = ("tenant", "chain", "requested_by")
