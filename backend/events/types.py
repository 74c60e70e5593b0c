# events/types.py
"""
Event type registry.

Naming convention: {aggregate}.{past_tense_verb}
- order.created (not order.create)
- quote.approved (not quote.approve)
"""


class UnknownEventType(ValueError):
    """Raised when emitting an event type that is not registered."""


class EventTypes:
    """Registry of all event types."""

    # Tenants
    TENANT_CREATED = "tenant.created"
    TENANT_UPDATED = "tenant.updated"
    TENANT_DELETED = "tenant.deleted"

    # Users
    USER_REGISTERED = "user.registered"
    USER_CREATED = "user.created"
    USER_UPDATED = "user.updated"
    USER_ROLE_CHANGED = "user.role_changed"
    USER_DEACTIVATED = "user.deactivated"
    USER_ACTIVATED = "user.activated"
    USER_DELETED = "user.deleted"
    USER_PASSWORD_CHANGED = "user.password_changed"

    # Organizations
    ORGANIZATION_CREATED = "organization.created"
    ORGANIZATION_UPDATED = "organization.updated"
    ORGANIZATION_DELETED = "organization.deleted"
    ORGANIZATION_RESTORED = "organization.restored"

    # Catalog
    CATEGORY_CREATED = "category.created"
    CATEGORY_UPDATED = "category.updated"
    CATEGORY_DELETED = "category.deleted"
    PRODUCT_CREATED = "product.created"
    PRODUCT_UPDATED = "product.updated"
    PRODUCT_ARCHIVED = "product.archived"
    PRODUCT_ACCESS_GRANTED = "product.access_granted"
    PRODUCT_ACCESS_REVOKED = "product.access_revoked"
    PRODUCT_PRICING_SET = "product.pricing_set"

    # Orders & payments
    ORDER_CREATED = "order.created"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_REFUNDED = "order.refunded"
    PAYMENT_METHOD_CREATED = "payment_method.created"
    PAYMENT_METHOD_UPDATED = "payment_method.updated"
    PAYMENT_METHOD_DELETED = "payment_method.deleted"
    PAYMENT_COMPLETED = "payment.completed"

    # Promotions & discount tiers
    PROMOTION_CREATED = "promotion.created"
    PROMOTION_UPDATED = "promotion.updated"
    PROMOTION_DELETED = "promotion.deleted"
    COUPONS_GENERATED = "promotion.coupons_generated"
    DISCOUNT_TIER_CREATED = "discount_tier.created"
    DISCOUNT_TIER_UPDATED = "discount_tier.updated"
    DISCOUNT_TIER_DELETED = "discount_tier.deleted"
    DISCOUNT_TIER_ASSIGNED = "discount_tier.assigned"

    # Contracts
    CONTRACT_CREATED = "contract.created"
    CONTRACT_UPDATED = "contract.updated"
    CONTRACT_VERSION_CREATED = "contract.version_created"
    CONTRACT_DELETED = "contract.deleted"
    CONTRACT_RESTORED = "contract.restored"
    CONTRACT_SUBMITTED = "contract.submitted"
    CONTRACT_APPROVED = "contract.approved"
    CONTRACT_REJECTED = "contract.rejected"
    CONTRACT_ACTIVATED = "contract.activated"
    CONTRACT_TERMINATED = "contract.terminated"
    CONTRACT_CANCELLED = "contract.cancelled"
    CONTRACT_EXPIRED = "contract.expired"

    # Quotes
    QUOTE_CREATED = "quote.created"
    QUOTE_UPDATED = "quote.updated"
    QUOTE_DELETED = "quote.deleted"
    QUOTE_SUBMITTED = "quote.submitted"
    QUOTE_APPROVED = "quote.approved"
    QUOTE_REJECTED = "quote.rejected"
    QUOTE_SENT = "quote.sent"
    QUOTE_ACCEPTED = "quote.accepted"
    QUOTE_CUSTOMER_REJECTED = "quote.customer_rejected"
    QUOTE_CONVERTED = "quote.converted"
    QUOTE_EXPIRED = "quote.expired"

    # Approval workflows
    APPROVAL_CHAIN_CREATED = "approval_chain.created"
    APPROVAL_CHAIN_UPDATED = "approval_chain.updated"
    APPROVAL_CHAIN_DELETED = "approval_chain.deleted"
    APPROVAL_REQUESTED = "approval.requested"
    APPROVAL_STEP_APPROVED = "approval.step_approved"
    APPROVAL_STEP_REJECTED = "approval.step_rejected"
    APPROVAL_STEP_DELEGATED = "approval.step_delegated"
    APPROVAL_COMPLETED = "approval.completed"
    APPROVAL_CANCELLED = "approval.cancelled"

    # Integrations
    CONNECTOR_REGISTERED = "connector.registered"
    CONNECTOR_UPDATED = "connector.updated"
    CONNECTOR_DELETED = "connector.deleted"
    CONNECTOR_CIRCUIT_RESET = "connector.circuit_reset"
    CONNECTOR_CONFIGURED = "connector_config.created"
    CONNECTOR_CONFIG_UPDATED = "connector_config.updated"
    CONNECTOR_CONFIG_DELETED = "connector_config.deleted"
    CREDENTIAL_CREATED = "credential.created"
    CREDENTIAL_ROTATED = "credential.rotated"
    CREDENTIAL_DELETED = "credential.deleted"
    DEAD_LETTER_REPROCESSED = "dead_letter.reprocessed"
    TRANSFORMATION_CREATED = "transformation.created"
    TRANSFORMATION_UPDATED = "transformation.updated"
    TRANSFORMATION_DELETED = "transformation.deleted"

    @classmethod
    def all(cls) -> set[str]:
        return {
            value for name, value in vars(cls).items()
            if name.isupper() and isinstance(value, str)
        }


ALL_EVENT_TYPES = EventTypes.all()


def validate_event_type(event_type: str) -> None:
    if event_type not in ALL_EVENT_TYPES:
        raise UnknownEventType(f"Unknown event type: {event_type}")
