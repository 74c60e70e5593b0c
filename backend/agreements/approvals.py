# agreements/approvals.py
"""
Multi-level approval workflows.

An ApprovalChain lists ordered levels. Submitting an entity opens an
ApprovalRequest with one PENDING step per approver of level 1. When a
level collects ``min_approvers`` approvals its remaining steps are
cancelled and the next level opens; a single rejection closes the
whole request.
"""
import logging
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied
from django.db import transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from agreements.models import (
    ApprovalChain,
    ApprovalLevel,
    ApprovalRequest,
    ApprovalStep,
    Contract,
    Quote,
)
from events.emitter import emit_event
from events.types import EventTypes
from notifications.commands import notify_user, notify_users
from notifications.models import Notification

logger = logging.getLogger(__name__)

User = get_user_model()

ENTITY_MODELS = {
    ApprovalChain.EntityType.CONTRACT: Contract,
    ApprovalChain.EntityType.QUOTE: Quote,
}

SUBMIT_PERMISSIONS = {
    ApprovalChain.EntityType.CONTRACT: "contracts.submit",
    ApprovalChain.EntityType.QUOTE: "quotes.submit",
}

LEVEL_FIELDS = (
    "level", "name", "approver_type", "approver_role", "min_approvers",
    "allow_delegation", "timeout_hours",
)


# =============================================================================
# Chains
# =============================================================================

def validate_levels(levels: list[dict]):
    if not levels:
        return "An approval chain needs at least one level."
    numbers = sorted(level["level"] for level in levels)
    if numbers != list(range(1, len(levels) + 1)):
        return "Approval levels must be sequential starting from 1."
    for level in levels:
        kind = level.get("approver_type")
        if kind == ApprovalLevel.ApproverType.USER and not level.get("approver_user_id"):
            return f"Level {level['level']}: approver_user_id is required for USER approvers."
        if kind == ApprovalLevel.ApproverType.ROLE and not level.get("approver_role"):
            return f"Level {level['level']}: approver_role is required for ROLE approvers."
    return None


def _write_levels(actor, chain: ApprovalChain, levels: list[dict]):
    chain.levels.all().delete()
    for raw in levels:
        approver_user = None
        if raw.get("approver_user_id"):
            approver_user = User.objects.filter(tenant=actor.tenant, public_id=raw["approver_user_id"]).first()
            if approver_user is None:
                return f"Level {raw['level']}: approver user not found."
        ApprovalLevel.objects.create(
            chain=chain,
            approver_user=approver_user,
            **{k: v for k, v in raw.items() if k in LEVEL_FIELDS and v is not None},
        )
    return None


def _unset_other_defaults(chain: ApprovalChain):
    if chain.is_default:
        ApprovalChain.objects.filter(
            tenant=chain.tenant,
            entity_type=chain.entity_type,
            is_default=True,
        ).exclude(pk=chain.pk).update(is_default=False)


@transaction.atomic
def create_chain(
    actor: ActorContext,
    name: str,
    entity_type: str,
    levels: list[dict],
    description: str = "",
    is_default: bool = False,
    is_active: bool = True,
) -> CommandResult:
    require(actor, "approvals.manage")

    error = validate_levels(levels)
    if error:
        return CommandResult.fail(error)

    chain = ApprovalChain.objects.create(
        tenant=actor.tenant,
        name=name,
        entity_type=entity_type,
        description=description,
        is_default=is_default,
        is_active=is_active,
    )
    error = _write_levels(actor, chain, levels)
    if error:
        transaction.set_rollback(True)
        return CommandResult.fail(error)
    _unset_other_defaults(chain)

    event = emit_event(
        actor,
        EventTypes.APPROVAL_CHAIN_CREATED,
        "ApprovalChain",
        chain.public_id,
        data={"name": name, "entity_type": entity_type, "levels": len(levels), "is_default": is_default},
    )
    return CommandResult.ok(data=chain, event=event)


@transaction.atomic
def update_chain(actor: ActorContext, chain_id, levels: list[dict] = None, **fields) -> CommandResult:
    require(actor, "approvals.manage")

    chain = ApprovalChain.objects.select_for_update().filter(tenant=actor.tenant, public_id=chain_id).first()
    if chain is None:
        return CommandResult.fail("Approval chain not found.")

    for field in ("name", "description", "entity_type", "is_default", "is_active"):
        if field in fields:
            setattr(chain, field, fields[field])
    chain.save()

    if levels is not None:
        error = validate_levels(levels) or _write_levels(actor, chain, levels)
        if error:
            transaction.set_rollback(True)
            return CommandResult.fail(error)
    _unset_other_defaults(chain)

    event = emit_event(
        actor,
        EventTypes.APPROVAL_CHAIN_UPDATED,
        "ApprovalChain",
        chain.public_id,
        data={"fields": sorted(fields), "levels_replaced": levels is not None, "updated_at": chain.updated_at.isoformat()},
    )
    return CommandResult.ok(data=chain, event=event)


@transaction.atomic
def delete_chain(actor: ActorContext, chain_id) -> CommandResult:
    require(actor, "approvals.manage")

    chain = ApprovalChain.objects.filter(tenant=actor.tenant, public_id=chain_id).first()
    if chain is None:
        return CommandResult.fail("Approval chain not found.")
    if chain.requests.filter(status__in=ApprovalRequest.OPEN_STATUSES).exists():
        return CommandResult.fail("Cannot delete a chain with pending approval requests.")
    if chain.requests.exists():
        chain.is_active = False
        chain.is_default = False
        chain.save(update_fields=["is_active", "is_default", "updated_at"])
    else:
        chain.delete()

    event = emit_event(actor, EventTypes.APPROVAL_CHAIN_DELETED, "ApprovalChain", chain_id, data={"name": chain.name})
    return CommandResult.ok(event=event)


# =============================================================================
# Requests
# =============================================================================

def resolve_approvers(tenant, level: ApprovalLevel) -> list:
    active = User.objects.filter(tenant=tenant, is_active=True, deleted_at__isnull=True)
    kind = level.approver_type
    if kind == ApprovalLevel.ApproverType.USER:
        if level.approver_user_id is None:
            return []
        return list(active.filter(pk=level.approver_user_id))
    if kind == ApprovalLevel.ApproverType.ROLE:
        return list(active.filter(role=level.approver_role))
    if kind == ApprovalLevel.ApproverType.MANAGER:
        return list(active.filter(role__in=[User.Role.MANAGER, User.Role.ADMIN, User.Role.SUPER_ADMIN]))
    if kind == ApprovalLevel.ApproverType.ORGANIZATION_HEAD:
        return list(active.filter(role__in=[User.Role.ADMIN, User.Role.SUPER_ADMIN]))
    return []


def _open_level(request: ApprovalRequest, level: ApprovalLevel, approvers: list) -> list[ApprovalStep]:
    expires_at = None
    if level.timeout_hours:
        expires_at = timezone.now() + timedelta(hours=level.timeout_hours)
    steps = [
        ApprovalStep.objects.create(request=request, level=level.level, approver=approver, expires_at=expires_at)
        for approver in approvers
    ]
    request.current_level = level.level
    request.save(update_fields=["current_level"])
    notify_users(
        request.tenant,
        approvers,
        Notification.Type.APPROVAL_REQUIRED,
        "Approval required",
        f"A {request.entity_type.lower()} is waiting for your approval ({level.display_name}).",
        data={"request_id": str(request.public_id), "entity_type": request.entity_type, "entity_id": str(request.entity_id)},
        send_email=True,
        action_path="/approvals",
    )
    return steps


@transaction.atomic
def submit_for_approval(
    actor: ActorContext,
    entity_type: str,
    entity_id,
    chain_id=None,
    comments: str = "",
) -> CommandResult:
    require(actor, SUBMIT_PERMISSIONS[entity_type])

    model = ENTITY_MODELS[entity_type]
    if not model.objects.filter(tenant=actor.tenant, public_id=entity_id).exists():
        return CommandResult.fail(f"{entity_type.title()} not found.")

    chains = ApprovalChain.objects.filter(tenant=actor.tenant, entity_type=entity_type, is_active=True)
    if chain_id:
        chain = chains.filter(public_id=chain_id).first()
        if chain is None:
            return CommandResult.fail("Approval chain not found.")
    else:
        chain = chains.filter(is_default=True).first()
        if chain is None:
            return CommandResult.fail(f"No default approval chain found for {entity_type}")

    levels = list(chain.levels.order_by("level"))
    if not levels:
        return CommandResult.fail("Approval chain has no levels.")

    if ApprovalRequest.objects.filter(
        tenant=actor.tenant,
        entity_type=entity_type,
        entity_id=entity_id,
        status__in=ApprovalRequest.OPEN_STATUSES,
    ).exists():
        return CommandResult.fail("An approval request is already pending for this entity.")

    approvers = resolve_approvers(actor.tenant, levels[0])
    if not approvers:
        return CommandResult.fail("No approvers found for level 1.")

    request = ApprovalRequest.objects.create(
        tenant=actor.tenant,
        chain=chain,
        entity_type=entity_type,
        entity_id=entity_id,
        status=ApprovalRequest.Status.IN_PROGRESS,
        current_level=1,
        requested_by=actor.user,
        comments=comments,
    )
    _open_level(request, levels[0], approvers)

    event = emit_event(
        actor,
        EventTypes.APPROVAL_REQUESTED,
        "ApprovalRequest",
        request.public_id,
        data={"entity_type": entity_type, "entity_id": str(entity_id), "chain": chain.name, "approvers": len(approvers)},
    )
    return CommandResult.ok(data=request, event=event)


def _own_pending_step(actor: ActorContext, step_id) -> ApprovalStep:
    step = (
        ApprovalStep.objects
        .select_for_update()
        .select_related("request", "request__chain", "request__requested_by", "request__tenant")
        .filter(public_id=step_id, request__tenant=actor.tenant)
        .first()
    )
    if step is None:
        return None
    if step.approver_id != actor.user.pk:
        raise PermissionDenied("This approval step is not assigned to you.")
    return step


def _finish(request: ApprovalRequest, status: str, title: str, message: str, notification_type: str):
    request.status = status
    request.completed_at = timezone.now()
    request.save(update_fields=["status", "completed_at"])
    request.steps.filter(status=ApprovalStep.Status.PENDING).update(status=ApprovalStep.Status.CANCELLED)
    notify_user(
        request.tenant,
        request.requested_by,
        notification_type,
        title,
        message,
        data={"request_id": str(request.public_id), "entity_type": request.entity_type, "entity_id": str(request.entity_id)},
        send_email=True,
        action_path="/approvals",
    )


@transaction.atomic
def approve_step(actor: ActorContext, step_id, comments: str = "") -> CommandResult:
    step = _own_pending_step(actor, step_id)
    if step is None:
        return CommandResult.fail("Approval step not found.")
    if step.status != ApprovalStep.Status.PENDING:
        return CommandResult.fail(f"Step is already {step.status}.")

    request = step.request
    step.status = ApprovalStep.Status.APPROVED
    step.comments = comments
    step.decided_at = timezone.now()
    step.save(update_fields=["status", "comments", "decided_at"])

    level = request.chain.levels.get(level=step.level)
    level_steps = request.steps.filter(level=step.level)
    approved = level_steps.filter(status=ApprovalStep.Status.APPROVED).count()
    required = min(level.min_approvers, level_steps.exclude(status=ApprovalStep.Status.CANCELLED).count())

    events = [emit_event(
        actor,
        EventTypes.APPROVAL_STEP_APPROVED,
        "ApprovalRequest",
        request.public_id,
        data={"step_id": str(step.public_id), "level": step.level, "comments": comments},
    )]

    if approved >= required:
        level_steps.filter(status=ApprovalStep.Status.PENDING).update(status=ApprovalStep.Status.CANCELLED)
        opened = False
        for next_level in request.chain.levels.filter(level__gt=step.level).order_by("level"):
            approvers = resolve_approvers(request.tenant, next_level)
            if approvers:
                _open_level(request, next_level, approvers)
                opened = True
                break
            logger.warning(
                "Skipping approval level with no approvers",
                extra={"request_id": str(request.public_id), "level": next_level.level},
            )
        if not opened:
            _finish(
                request,
                ApprovalRequest.Status.APPROVED,
                "Approval completed",
                f"Your {request.entity_type.lower()} has been approved.",
                Notification.Type.APPROVAL_COMPLETED,
            )
            events.append(emit_event(
                actor,
                EventTypes.APPROVAL_COMPLETED,
                "ApprovalRequest",
                request.public_id,
                data={"entity_type": request.entity_type, "entity_id": str(request.entity_id), "status": request.status},
            ))

    return CommandResult.ok(data=request, event=events[0], events=events)


@transaction.atomic
def reject_step(actor: ActorContext, step_id, comments: str = "") -> CommandResult:
    step = _own_pending_step(actor, step_id)
    if step is None:
        return CommandResult.fail("Approval step not found.")
    if step.status != ApprovalStep.Status.PENDING:
        return CommandResult.fail(f"Step is already {step.status}.")

    step.status = ApprovalStep.Status.REJECTED
    step.comments = comments
    step.decided_at = timezone.now()
    step.save(update_fields=["status", "comments", "decided_at"])

    request = step.request
    _finish(
        request,
        ApprovalRequest.Status.REJECTED,
        "Approval rejected",
        f"Your {request.entity_type.lower()} was rejected" + (f": {comments}" if comments else "."),
        Notification.Type.WARNING,
    )
    event = emit_event(
        actor,
        EventTypes.APPROVAL_STEP_REJECTED,
        "ApprovalRequest",
        request.public_id,
        data={"step_id": str(step.public_id), "level": step.level, "comments": comments},
    )
    return CommandResult.ok(data=request, event=event)


@transaction.atomic
def delegate_step(actor: ActorContext, step_id, delegate_id, reason: str = "") -> CommandResult:
    step = _own_pending_step(actor, step_id)
    if step is None:
        return CommandResult.fail("Approval step not found.")
    if step.status != ApprovalStep.Status.PENDING:
        return CommandResult.fail(f"Step is already {step.status}.")

    request = step.request
    level = request.chain.levels.get(level=step.level)
    if not level.allow_delegation:
        return CommandResult.fail("Delegation is not allowed at this level.")

    delegate = User.objects.filter(
        tenant=actor.tenant,
        public_id=delegate_id,
        is_active=True,
        deleted_at__isnull=True,
    ).first()
    if delegate is None:
        return CommandResult.fail("Delegate not found.")
    if delegate.pk == actor.user.pk:
        return CommandResult.fail("Cannot delegate to yourself.")

    step.status = ApprovalStep.Status.CANCELLED
    step.comments = f"Delegated: {reason}"
    step.decided_at = timezone.now()
    step.save(update_fields=["status", "comments", "decided_at"])

    new_step = ApprovalStep.objects.create(
        request=request,
        level=step.level,
        approver=delegate,
        delegated_from=actor.user,
        expires_at=step.expires_at,
    )
    notify_user(
        request.tenant,
        delegate,
        Notification.Type.APPROVAL_REQUIRED,
        "Approval delegated to you",
        f"{actor.user.full_name or actor.user.email} delegated an approval to you.",
        data={"request_id": str(request.public_id), "step_id": str(new_step.public_id)},
        send_email=True,
        action_path="/approvals",
    )
    event = emit_event(
        actor,
        EventTypes.APPROVAL_STEP_DELEGATED,
        "ApprovalRequest",
        request.public_id,
        data={"step_id": str(step.public_id), "delegate_id": str(delegate.public_id), "reason": reason},
    )
    return CommandResult.ok(data=new_step, event=event)


@transaction.atomic
def cancel_request(actor: ActorContext, request_id) -> CommandResult:
    request = (
        ApprovalRequest.objects
        .select_for_update()
        .filter(tenant=actor.tenant, public_id=request_id)
        .first()
    )
    if request is None:
        return CommandResult.fail("Approval request not found.")
    if request.requested_by_id != actor.user.pk:
        raise PermissionDenied("Only the requester can cancel an approval request.")
    if request.status not in ApprovalRequest.OPEN_STATUSES:
        return CommandResult.fail(f"Cannot cancel a request that is {request.status}.")

    request.status = ApprovalRequest.Status.CANCELLED
    request.completed_at = timezone.now()
    request.save(update_fields=["status", "completed_at"])
    request.steps.filter(status=ApprovalStep.Status.PENDING).update(status=ApprovalStep.Status.CANCELLED)

    event = emit_event(
        actor,
        EventTypes.APPROVAL_CANCELLED,
        "ApprovalRequest",
        request.public_id,
        data={"entity_type": request.entity_type, "entity_id": str(request.entity_id)},
    )
    return CommandResult.ok(data=request, event=event)


def pending_approvals(user) -> list[dict]:
    steps = (
        ApprovalStep.objects
        .filter(
            approver=user,
            status=ApprovalStep.Status.PENDING,
            request__status__in=ApprovalRequest.OPEN_STATUSES,
        )
        .select_related("request", "request__chain", "delegated_from")
        .order_by("created_at")
    )
    level_names = {}
    results = []
    for step in steps:
        key = (step.request.chain_id, step.level)
        if key not in level_names:
            level = ApprovalLevel.objects.filter(chain_id=step.request.chain_id, level=step.level).first()
            level_names[key] = level
        level = level_names[key]
        results.append({
            "id": str(step.request.public_id),
            "step_id": str(step.public_id),
            "entity_type": step.request.entity_type,
            "entity_id": str(step.request.entity_id),
            "level": step.level,
            "level_name": level.display_name if level else f"Level {step.level}",
            "allow_delegation": bool(level and level.allow_delegation),
            "delegated_from": step.delegated_from.email if step.delegated_from else None,
            "requested_at": step.request.requested_at,
            "expires_at": step.expires_at,
        })
    return results
