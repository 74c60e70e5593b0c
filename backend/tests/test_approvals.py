# tests/test_approvals.py
"""
Tests for multi-level approval chains.

Tests cover:
- Chain validation and default-chain handling
- Level progression, min_approvers and skipping empty levels
- Rejection, delegation and cancellation
"""

from datetime import timedelta

import pytest
from django.core.exceptions import PermissionDenied
from django.utils import timezone

from agreements import approvals, contracts
from agreements.models import ApprovalChain, ApprovalRequest, ApprovalStep
from notifications.models import Notification


@pytest.fixture
def contract(manager_actor):
    return contracts.create_contract(manager_actor, title="Framework agreement").data


@pytest.fixture
def chain(manager_actor, admin_user):
    """Two levels: any MANAGER, then the tenant admin by name."""
    result = approvals.create_chain(
        manager_actor,
        name="Contract review",
        entity_type=ApprovalChain.EntityType.CONTRACT,
        is_default=True,
        levels=[
            {"level": 1, "approver_type": "ROLE", "approver_role": "MANAGER", "timeout_hours": 24,
             "allow_delegation": True},
            {"level": 2, "approver_type": "USER", "approver_user_id": admin_user.public_id, "name": "Legal"},
        ],
    )
    assert result.success, result.error
    return result.data


def pending_step(request, user):
    return request.steps.get(approver=user, status=ApprovalStep.Status.PENDING)


# =============================================================================
# Chains
# =============================================================================

@pytest.mark.django_db
class TestChains:

    def test_levels_must_be_sequential(self, manager_actor):
        result = approvals.create_chain(
            manager_actor, name="Bad", entity_type="CONTRACT",
            levels=[{"level": 1, "approver_type": "MANAGER"}, {"level": 3, "approver_type": "MANAGER"}],
        )
        assert not result.success
        assert "sequential" in result.error

    def test_role_level_needs_role(self, manager_actor):
        result = approvals.create_chain(
            manager_actor, name="Bad", entity_type="CONTRACT", levels=[{"level": 1, "approver_type": "ROLE"}],
        )
        assert not result.success

    def test_single_default_per_entity_type(self, manager_actor, chain):
        second = approvals.create_chain(
            manager_actor, name="Fast track", entity_type="CONTRACT", is_default=True,
            levels=[{"level": 1, "approver_type": "MANAGER"}],
        ).data

        chain.refresh_from_db()
        assert not chain.is_default
        assert second.is_default

    def test_buyer_cannot_manage_chains(self, actor):
        with pytest.raises(PermissionDenied):
            approvals.create_chain(actor, name="X", entity_type="QUOTE", levels=[])

    def test_used_chain_is_deactivated_on_delete(self, manager_actor, actor, chain, contract):
        request = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id).data
        assert not approvals.delete_chain(manager_actor, chain.public_id).success

        approvals.cancel_request(actor, request.public_id)
        assert approvals.delete_chain(manager_actor, chain.public_id).success

        chain.refresh_from_db()
        assert not chain.is_active


# =============================================================================
# Requests
# =============================================================================

@pytest.mark.django_db
class TestApprovalFlow:

    def test_submit_opens_first_level(self, actor, manager_user, chain, contract):
        result = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id, comments="please")

        assert result.success
        request = result.data
        assert request.status == ApprovalRequest.Status.IN_PROGRESS
        assert request.current_level == 1
        step = pending_step(request, manager_user)
        assert step.expires_at > timezone.now() + timedelta(hours=23)
        assert Notification.objects.filter(user=manager_user, type=Notification.Type.APPROVAL_REQUIRED).exists()

    def test_no_default_chain(self, actor, contract):
        result = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id)
        assert result.error == "No default approval chain found for CONTRACT"

    def test_one_open_request_per_entity(self, actor, chain, contract):
        approvals.submit_for_approval(actor, "CONTRACT", contract.public_id)
        result = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id)
        assert not result.success

    def test_full_approval(self, actor, user, manager_actor, manager_user, admin_actor, admin_user, chain, contract):
        request = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id).data

        approvals.approve_step(manager_actor, pending_step(request, manager_user).public_id, comments="ok")
        request.refresh_from_db()
        assert request.current_level == 2

        result = approvals.approve_step(admin_actor, pending_step(request, admin_user).public_id)

        assert result.success
        request.refresh_from_db()
        assert request.status == ApprovalRequest.Status.APPROVED
        assert request.completed_at is not None
        assert len(result.events) == 2
        assert Notification.objects.filter(user=user, type=Notification.Type.APPROVAL_COMPLETED).exists()

    def test_only_assigned_approver_may_decide(self, actor, admin_actor, manager_user, chain, contract):
        request = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id).data
        with pytest.raises(PermissionDenied):
            approvals.approve_step(admin_actor, pending_step(request, manager_user).public_id)

    def test_rejection_closes_request(self, actor, manager_actor, manager_user, chain, contract):
        request = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id).data

        approvals.reject_step(manager_actor, pending_step(request, manager_user).public_id, comments="no")

        request.refresh_from_db()
        assert request.status == ApprovalRequest.Status.REJECTED
        assert not request.steps.filter(status=ApprovalStep.Status.PENDING).exists()

    def test_min_approvers_waits_for_quorum(self, actor, tenant, manager_actor, manager_user, admin_user, contract):
        chain = approvals.create_chain(
            manager_actor, name="Quorum", entity_type="CONTRACT", is_default=True,
            levels=[{"level": 1, "approver_type": "MANAGER", "min_approvers": 2}],
        ).data
        request = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id, chain_id=chain.public_id).data

        approvals.approve_step(manager_actor, pending_step(request, manager_user).public_id)

        request.refresh_from_db()
        assert request.status == ApprovalRequest.Status.IN_PROGRESS
        assert pending_step(request, admin_user)

    def test_level_without_approvers_is_skipped(self, actor, manager_actor, manager_user, contract):
        approvals.create_chain(
            manager_actor, name="Skip", entity_type="CONTRACT", is_default=True,
            levels=[
                {"level": 1, "approver_type": "ROLE", "approver_role": "MANAGER"},
                {"level": 2, "approver_type": "ROLE", "approver_role": "VIEWER"},
            ],
        )
        request = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id).data

        approvals.approve_step(manager_actor, pending_step(request, manager_user).public_id)

        request.refresh_from_db()
        assert request.status == ApprovalRequest.Status.APPROVED

    def test_delegation(self, actor, manager_actor, manager_user, admin_user, chain, contract):
        request = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id).data
        step = pending_step(request, manager_user)

        result = approvals.delegate_step(manager_actor, step.public_id, admin_user.public_id, reason="holiday")

        assert result.success
        assert result.data.approver == admin_user
        assert result.data.delegated_from == manager_user
        step.refresh_from_db()
        assert step.status == ApprovalStep.Status.CANCELLED

    def test_cannot_delegate_to_self(self, actor, manager_actor, manager_user, chain, contract):
        request = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id).data
        step = pending_step(request, manager_user)
        result = approvals.delegate_step(manager_actor, step.public_id, manager_user.public_id)
        assert result.error == "Cannot delegate to yourself."

    def test_only_requester_cancels(self, actor, manager_actor, chain, contract):
        request = approvals.submit_for_approval(actor, "CONTRACT", contract.public_id).data
        with pytest.raises(PermissionDenied):
            approvals.cancel_request(manager_actor, request.public_id)

    def test_pending_api(self, client_for, actor, manager_user, chain, contract):
        approvals.submit_for_approval(actor, "CONTRACT", contract.public_id)

        response = client_for(manager_user).get("/api/approvals/pending/")

        assert response.status_code == 200
        rows = response.json()
        assert len(rows) == 1
        assert rows[0]["entity_id"] == str(contract.public_id)
        assert rows[0]["allow_delegation"] is True

    def test_submit_api(self, client_for, user, chain, contract):
        response = client_for(user).post("/api/approvals/requests/", {
            "entity_type": "CONTRACT",
            "entity_id": str(contract.public_id),
        }, format="json")

        assert response.status_code == 201
        assert response.json()["status"] == "IN_PROGRESS"
