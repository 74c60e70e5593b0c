# agreements/policies.py
"""
Workflow policies for contracts and quotes.

Status transitions are enforced here, not in model.save(). Policies
return ``(allowed, reason)`` and never mutate anything.
"""
from decimal import Decimal

from accounts.models import User
from agreements.models import Contract, Quote

CONTRACT_TRANSITIONS = {
    Contract.Status.DRAFT: {Contract.Status.PENDING_APPROVAL, Contract.Status.CANCELLED},
    Contract.Status.PENDING_APPROVAL: {Contract.Status.APPROVED, Contract.Status.DRAFT, Contract.Status.CANCELLED},
    Contract.Status.APPROVED: {Contract.Status.ACTIVE, Contract.Status.DRAFT, Contract.Status.CANCELLED},
    Contract.Status.ACTIVE: {Contract.Status.EXPIRED, Contract.Status.TERMINATED},
    Contract.Status.EXPIRED: set(),
    Contract.Status.TERMINATED: set(),
    Contract.Status.CANCELLED: set(),
}

QUOTE_TRANSITIONS = {
    Quote.Status.DRAFT: {Quote.Status.PENDING_APPROVAL},
    Quote.Status.PENDING_APPROVAL: {Quote.Status.APPROVED, Quote.Status.DRAFT},
    Quote.Status.APPROVED: {Quote.Status.SENT, Quote.Status.DRAFT},
    Quote.Status.SENT: {Quote.Status.ACCEPTED, Quote.Status.REJECTED, Quote.Status.EXPIRED},
    Quote.Status.ACCEPTED: {Quote.Status.CONVERTED},
    Quote.Status.REJECTED: set(),
    Quote.Status.EXPIRED: set(),
    Quote.Status.CONVERTED: set(),
}

# Largest quote total each role may approve; None means unlimited
QUOTE_APPROVAL_THRESHOLDS = {
    User.Role.SUPER_ADMIN: None,
    User.Role.ADMIN: Decimal("100000"),
    User.Role.MANAGER: Decimal("50000"),
    User.Role.USER: Decimal("10000"),
    User.Role.VIEWER: Decimal("0"),
}

CONTRACT_DELETABLE = (Contract.Status.DRAFT, Contract.Status.CANCELLED)
CONTRACT_NOT_CANCELLABLE = (
    Contract.Status.ACTIVE,
    Contract.Status.EXPIRED,
    Contract.Status.TERMINATED,
    Contract.Status.CANCELLED,
)
QUOTE_DELETABLE = (Quote.Status.DRAFT, Quote.Status.REJECTED)
QUOTE_REJECTABLE = (Quote.Status.PENDING_APPROVAL, Quote.Status.APPROVED, Quote.Status.SENT)


def _check(transitions, kind: str, current: str, target: str) -> tuple[bool, str]:
    if target not in transitions.get(current, set()):
        return False, f"Invalid {kind} status transition from {current} to {target}."
    return True, ""


def can_transition_contract(contract, target: str) -> tuple[bool, str]:
    return _check(CONTRACT_TRANSITIONS, "contract", contract.status, target)


def can_transition_quote(quote, target: str) -> tuple[bool, str]:
    return _check(QUOTE_TRANSITIONS, "quote", quote.status, target)


def can_edit_contract(contract) -> tuple[bool, str]:
    if contract.status != Contract.Status.DRAFT:
        return False, f"Cannot update contract in '{contract.status}' status. Only DRAFT contracts can be updated."
    return True, ""


def can_delete_contract(contract) -> tuple[bool, str]:
    if contract.status not in CONTRACT_DELETABLE:
        return False, f"Cannot delete contract in '{contract.status}' status."
    return True, ""


def can_cancel_contract(contract) -> tuple[bool, str]:
    if contract.status in CONTRACT_NOT_CANCELLABLE:
        return False, f"Cannot cancel contract in '{contract.status}' status."
    return can_transition_contract(contract, Contract.Status.CANCELLED)


def can_edit_quote(quote) -> tuple[bool, str]:
    if quote.status != Quote.Status.DRAFT:
        return False, f"Cannot update quote in '{quote.status}' status. Only DRAFT quotes can be updated."
    return True, ""


def can_delete_quote(quote) -> tuple[bool, str]:
    if quote.status not in QUOTE_DELETABLE:
        return False, f"Cannot delete quote in '{quote.status}' status."
    return True, ""


def approval_threshold(role: str):
    return QUOTE_APPROVAL_THRESHOLDS.get(role, Decimal("0"))


def can_approve_quote(actor, quote) -> tuple[bool, str]:
    allowed, reason = can_transition_quote(quote, Quote.Status.APPROVED)
    if not allowed:
        return allowed, reason
    threshold = approval_threshold(actor.role)
    if threshold is not None and quote.total > threshold:
        return False, f"Quote total {quote.total} exceeds your approval limit of {threshold}."
    return True, ""


def can_reject_quote(quote) -> tuple[bool, str]:
    if quote.status not in QUOTE_REJECTABLE:
        return False, f"Cannot reject quote in '{quote.status}' status."
    return True, ""
