# agreements/contracts.py
"""
Contract commands.

Every edit of a DRAFT contract that actually changes something bumps
``version`` and records a ContractVersion holding the field changes and
a full snapshot. Status changes go through ``_transition`` so the
policy check and the ``contract.<action>`` event are never skipped.
"""
import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from accounts.models import Organization
from agreements.models import Contract, ContractVersion
from agreements.policies import (
    can_cancel_contract,
    can_delete_contract,
    can_edit_contract,
    can_transition_contract,
)
from events.emitter import emit_event, emit_event_no_actor
from events.types import EventTypes
from notifications.commands import notify_user
from notifications.models import Notification
from tenant.sequences import next_document_number

logger = logging.getLogger(__name__)

EXPIRY_WARNING_DAYS = 30

VERSIONED_FIELDS = (
    "title", "description", "effective_date", "expiration_date", "total_value",
    "currency", "terms", "metadata", "organization",
)


def _jsonable(value):
    if hasattr(value, "public_id"):
        return str(value.public_id)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if value is not None and not isinstance(value, (str, int, float, bool, dict, list)):
        return str(value)
    return value


def _resolve_organization(actor, organization_id):
    if organization_id is None:
        return None, None
    org = Organization.objects.filter(
        tenant=actor.tenant,
        public_id=organization_id,
        deleted_at__isnull=True,
    ).first()
    if org is None:
        return None, "Organization not found."
    return org, None


def get_contract(actor: ActorContext, contract_id, include_deleted: bool = False, for_update: bool = False):
    qs = Contract.objects.filter(tenant=actor.tenant, public_id=contract_id)
    if not include_deleted:
        qs = qs.filter(deleted_at__isnull=True)
    if for_update:
        qs = qs.select_for_update()
    return qs.select_related("organization", "created_by").first()


def create_contract_record(actor: ActorContext, title: str, **fields) -> Contract:
    """Create a DRAFT contract with its first version. No permission check."""
    contract = Contract.objects.create(
        tenant=actor.tenant,
        contract_number=next_document_number(actor.tenant, "CNT", 4),
        title=title,
        status=Contract.Status.DRAFT,
        version=1,
        created_by=actor.user,
        **fields,
    )
    ContractVersion.objects.create(
        contract=contract,
        version=1,
        changes={},
        snapshot=contract.snapshot(),
        created_by=actor.user,
    )
    return contract


@transaction.atomic
def create_contract(
    actor: ActorContext,
    title: str,
    description: str = "",
    effective_date=None,
    expiration_date=None,
    total_value=None,
    currency: str = "USD",
    terms: dict = None,
    metadata: dict = None,
    organization_id=None,
) -> CommandResult:
    require(actor, "contracts.create")

    organization, error = _resolve_organization(actor, organization_id)
    if error:
        return CommandResult.fail(error)
    if effective_date and expiration_date and expiration_date <= effective_date:
        return CommandResult.fail("Expiration date must be after effective date.")

    contract = create_contract_record(
        actor,
        title,
        description=description,
        effective_date=effective_date,
        expiration_date=expiration_date,
        total_value=total_value,
        currency=currency or "USD",
        terms=terms or {},
        metadata=metadata or {},
        organization=organization,
    )
    event = emit_event(
        actor,
        EventTypes.CONTRACT_CREATED,
        "Contract",
        contract.public_id,
        data={"contract_number": contract.contract_number, "title": title, "total_value": total_value},
    )
    logger.info("Contract created", extra={"contract_number": contract.contract_number})
    return CommandResult.ok(data=contract, event=event)


@transaction.atomic
def update_contract(actor: ActorContext, contract_id, **updates) -> CommandResult:
    require(actor, "contracts.edit")

    contract = get_contract(actor, contract_id, for_update=True)
    if contract is None:
        return CommandResult.fail("Contract not found.")
    allowed, reason = can_edit_contract(contract)
    if not allowed:
        return CommandResult.fail(reason)

    if "organization_id" in updates:
        organization, error = _resolve_organization(actor, updates.pop("organization_id"))
        if error:
            return CommandResult.fail(error)
        updates["organization"] = organization

    changes = {}
    for field in VERSIONED_FIELDS:
        if field not in updates:
            continue
        current, new = getattr(contract, field), updates[field]
        if current != new:
            changes[field] = {"from": _jsonable(current), "to": _jsonable(new)}
            setattr(contract, field, new)

    if contract.effective_date and contract.expiration_date and contract.expiration_date <= contract.effective_date:
        return CommandResult.fail("Expiration date must be after effective date.")

    if not changes:
        return CommandResult.ok(data=contract)

    contract.version += 1
    contract.save()
    ContractVersion.objects.create(
        contract=contract,
        version=contract.version,
        changes=changes,
        snapshot=contract.snapshot(),
        created_by=actor.user,
    )
    event = emit_event(
        actor,
        EventTypes.CONTRACT_VERSION_CREATED,
        "Contract",
        contract.public_id,
        data={"version": contract.version, "changes": changes},
    )
    return CommandResult.ok(data=contract, event=event)


@transaction.atomic
def delete_contract(actor: ActorContext, contract_id) -> CommandResult:
    require(actor, "contracts.edit")

    contract = get_contract(actor, contract_id, for_update=True)
    if contract is None:
        return CommandResult.fail("Contract not found.")
    allowed, reason = can_delete_contract(contract)
    if not allowed:
        return CommandResult.fail(reason)

    contract.deleted_at = timezone.now()
    contract.save(update_fields=["deleted_at", "updated_at"])
    event = emit_event(
        actor,
        EventTypes.CONTRACT_DELETED,
        "Contract",
        contract.public_id,
        data={"contract_number": contract.contract_number, "deleted_at": contract.deleted_at.isoformat()},
    )
    return CommandResult.ok(event=event)


@transaction.atomic
def restore_contract(actor: ActorContext, contract_id) -> CommandResult:
    require(actor, "contracts.edit")

    contract = get_contract(actor, contract_id, include_deleted=True, for_update=True)
    if contract is None:
        return CommandResult.fail("Contract not found.")
    if contract.deleted_at is None:
        return CommandResult.fail("Contract is not deleted.")

    contract.deleted_at = None
    contract.save(update_fields=["deleted_at", "updated_at"])
    event = emit_event(
        actor,
        EventTypes.CONTRACT_RESTORED,
        "Contract",
        contract.public_id,
        data={"contract_number": contract.contract_number, "restored_at": timezone.now().isoformat()},
    )
    return CommandResult.ok(data=contract, event=event)


def _transition(actor, contract, target: str, event_type: str, **extra) -> CommandResult:
    allowed, reason = can_transition_contract(contract, target)
    if not allowed:
        return CommandResult.fail(reason)

    previous = contract.status
    contract.status = target
    if target == Contract.Status.APPROVED:
        contract.approved_by = actor.user
    contract.save()

    event = emit_event(
        actor,
        event_type,
        "Contract",
        contract.public_id,
        data={
            "contract_number": contract.contract_number,
            "from_status": previous,
            "to_status": target,
            "at": timezone.now().isoformat(),
            **extra,
        },
    )
    return CommandResult.ok(data=contract, event=event)


def _locked(actor, contract_id):
    return get_contract(actor, contract_id, for_update=True)


@transaction.atomic
def submit_contract(actor: ActorContext, contract_id) -> CommandResult:
    require(actor, "contracts.submit")
    contract = _locked(actor, contract_id)
    if contract is None:
        return CommandResult.fail("Contract not found.")
    return _transition(actor, contract, Contract.Status.PENDING_APPROVAL, EventTypes.CONTRACT_SUBMITTED)


@transaction.atomic
def approve_contract(actor: ActorContext, contract_id) -> CommandResult:
    require(actor, "contracts.approve")
    contract = _locked(actor, contract_id)
    if contract is None:
        return CommandResult.fail("Contract not found.")
    return _transition(actor, contract, Contract.Status.APPROVED, EventTypes.CONTRACT_APPROVED)


@transaction.atomic
def reject_contract(actor: ActorContext, contract_id, reason: str = "") -> CommandResult:
    require(actor, "contracts.approve")
    contract = _locked(actor, contract_id)
    if contract is None:
        return CommandResult.fail("Contract not found.")
    if contract.status not in (Contract.Status.PENDING_APPROVAL, Contract.Status.APPROVED):
        return CommandResult.fail(f"Cannot reject contract in '{contract.status}' status.")
    return _transition(actor, contract, Contract.Status.DRAFT, EventTypes.CONTRACT_REJECTED, reason=reason)


@transaction.atomic
def activate_contract(actor: ActorContext, contract_id) -> CommandResult:
    require(actor, "contracts.approve")
    contract = _locked(actor, contract_id)
    if contract is None:
        return CommandResult.fail("Contract not found.")
    if contract.effective_date is None:
        return CommandResult.fail("Cannot activate contract without an effective date.")
    return _transition(actor, contract, Contract.Status.ACTIVE, EventTypes.CONTRACT_ACTIVATED)


@transaction.atomic
def terminate_contract(actor: ActorContext, contract_id, reason: str = "") -> CommandResult:
    require(actor, "contracts.terminate")
    contract = _locked(actor, contract_id)
    if contract is None:
        return CommandResult.fail("Contract not found.")
    return _transition(actor, contract, Contract.Status.TERMINATED, EventTypes.CONTRACT_TERMINATED, reason=reason)


@transaction.atomic
def cancel_contract(actor: ActorContext, contract_id, reason: str = "") -> CommandResult:
    require(actor, "contracts.edit")
    contract = _locked(actor, contract_id)
    if contract is None:
        return CommandResult.fail("Contract not found.")
    allowed, message = can_cancel_contract(contract)
    if not allowed:
        return CommandResult.fail(message)
    return _transition(actor, contract, Contract.Status.CANCELLED, EventTypes.CONTRACT_CANCELLED, reason=reason)


# =============================================================================
# Scheduled maintenance
# =============================================================================

def notify_expiring_contracts(today=None) -> int:
    """Warn creators once about contracts expiring within the warning window."""
    today = today or timezone.localdate()
    horizon = today + timedelta(days=EXPIRY_WARNING_DAYS)
    contracts = Contract.objects.filter(
        status=Contract.Status.ACTIVE,
        deleted_at__isnull=True,
        expiration_date__gte=today,
        expiration_date__lte=horizon,
        expiry_notified_at__isnull=True,
    ).select_related("tenant", "created_by")

    count = 0
    for contract in contracts:
        days_left = (contract.expiration_date - today).days
        notify_user(
            contract.tenant,
            contract.created_by,
            Notification.Type.CONTRACT_EXPIRING,
            "Contract expiring soon",
            f"Contract {contract.contract_number} expires in {days_left} day(s).",
            data={"contract_id": str(contract.public_id), "expiration_date": contract.expiration_date.isoformat()},
            send_email=True,
            action_path=f"/contracts/{contract.public_id}",
        )
        contract.expiry_notified_at = timezone.now()
        contract.save(update_fields=["expiry_notified_at"])
        count += 1
    return count


def expire_contracts(today=None) -> int:
    today = today or timezone.localdate()
    expired = Contract.objects.filter(
        status=Contract.Status.ACTIVE,
        deleted_at__isnull=True,
        expiration_date__lt=today,
    ).select_related("tenant", "created_by")

    count = 0
    for contract in expired:
        with transaction.atomic():
            contract.status = Contract.Status.EXPIRED
            contract.save(update_fields=["status", "updated_at"])
            emit_event_no_actor(
                tenant=contract.tenant,
                user=None,
                event_type=EventTypes.CONTRACT_EXPIRED,
                aggregate_type="Contract",
                aggregate_id=contract.public_id,
                data={
                    "contract_number": contract.contract_number,
                    "from_status": Contract.Status.ACTIVE,
                    "to_status": Contract.Status.EXPIRED,
                },
            )
        count += 1
    if count:
        logger.info("Contracts expired", extra={"count": count})
    return count
