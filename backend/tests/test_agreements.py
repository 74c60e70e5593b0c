# tests/test_agreements.py
"""
Tests for contracts and quotes.

Tests cover:
- Contract numbering, versioning on edit and the status workflow
- Soft delete / restore and scheduled expiry
- Quote pricing, approval limits and conversion to a contract
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied
from django.utils import timezone

from agreements import contracts, quotes
from agreements.models import Contract, ContractVersion, Quote
from events.models import BusinessEvent
from events.types import EventTypes
from notifications.models import Notification


@pytest.fixture
def contract(manager_actor):
    result = contracts.create_contract(
        manager_actor,
        title="Supply agreement",
        effective_date=date(2026, 1, 1),
        expiration_date=date(2026, 12, 31),
        total_value=Decimal("50000.00"),
    )
    assert result.success
    return result.data


@pytest.fixture
def quote(actor, product, access):
    """A DRAFT quote: 10 widgets with a 10% line discount, plus a 5% quote discount."""
    result = quotes.create_quote(
        actor,
        title="Q1 widgets",
        customer_name="Initech",
        discount_percent=Decimal("5"),
        line_items=[
            {"master_product_id": product.public_id, "quantity": 10, "discount_percent": Decimal("10")},
            {"product_name": "Installation", "unit_price": Decimal("100.00"), "quantity": 1},
        ],
    )
    assert result.success, result.error
    return result.data


def move_to_sent(manager_actor, actor, quote):
    assert quotes.submit_quote(actor, quote.public_id).success
    assert quotes.approve_quote(manager_actor, quote.public_id).success
    assert quotes.send_quote(actor, quote.public_id).success


# =============================================================================
# Contracts
# =============================================================================

@pytest.mark.django_db
class TestContracts:

    def test_create_contract(self, contract):
        year = timezone.now().year
        assert contract.contract_number == f"CNT-{year}-0001"
        assert contract.status == Contract.Status.DRAFT
        assert contract.version == 1
        assert ContractVersion.objects.filter(contract=contract, version=1).exists()

    def test_buyer_cannot_create_contract(self, actor):
        with pytest.raises(PermissionDenied):
            contracts.create_contract(actor, title="Nope")

    def test_expiration_must_follow_effective(self, manager_actor):
        result = contracts.create_contract(
            manager_actor, title="Bad", effective_date=date(2026, 5, 1), expiration_date=date(2026, 4, 1),
        )
        assert not result.success

    def test_edit_creates_version_with_changes(self, manager_actor, contract):
        result = contracts.update_contract(manager_actor, contract.public_id, title="Supply agreement v2")

        assert result.success
        assert result.data.version == 2
        version = ContractVersion.objects.get(contract=contract, version=2)
        assert version.changes == {"title": {"from": "Supply agreement", "to": "Supply agreement v2"}}
        assert version.snapshot["title"] == "Supply agreement v2"
        assert result.event.event_type == EventTypes.CONTRACT_VERSION_CREATED

    def test_edit_without_changes_keeps_version(self, manager_actor, contract):
        result = contracts.update_contract(manager_actor, contract.public_id, title=contract.title)
        assert result.data.version == 1
        assert result.event is None

    def test_only_draft_is_editable(self, manager_actor, actor, contract):
        contracts.submit_contract(actor, contract.public_id)
        result = contracts.update_contract(manager_actor, contract.public_id, title="Late edit")
        assert not result.success
        assert "Only DRAFT" in result.error

    def test_workflow_to_active_and_terminated(self, admin_actor, manager_actor, actor, contract):
        assert contracts.submit_contract(actor, contract.public_id).success
        approved = contracts.approve_contract(manager_actor, contract.public_id)
        assert approved.data.approved_by == manager_actor.user
        assert contracts.activate_contract(manager_actor, contract.public_id).success

        result = contracts.terminate_contract(admin_actor, contract.public_id, reason="breach")

        assert result.success
        assert result.data.status == Contract.Status.TERMINATED
        assert result.event.data["reason"] == "breach"

    def test_reject_returns_to_draft(self, manager_actor, actor, contract):
        contracts.submit_contract(actor, contract.public_id)
        result = contracts.reject_contract(manager_actor, contract.public_id, reason="fix terms")
        assert result.data.status == Contract.Status.DRAFT

    def test_invalid_transition(self, manager_actor, contract):
        result = contracts.activate_contract(manager_actor, contract.public_id)
        assert not result.success
        assert "Invalid contract status transition" in result.error

    def test_active_contract_cannot_be_cancelled(self, manager_actor, actor, contract):
        contracts.submit_contract(actor, contract.public_id)
        contracts.approve_contract(manager_actor, contract.public_id)
        contracts.activate_contract(manager_actor, contract.public_id)

        result = contracts.cancel_contract(manager_actor, contract.public_id)

        assert not result.success

    def test_soft_delete_and_restore(self, manager_actor, contract):
        assert contracts.delete_contract(manager_actor, contract.public_id).success
        assert contracts.get_contract(manager_actor, contract.public_id) is None

        result = contracts.restore_contract(manager_actor, contract.public_id)

        assert result.success
        assert result.data.deleted_at is None

    def test_expiry_warning_and_expiry(self, manager_actor, manager_user, actor, contract):
        contracts.submit_contract(actor, contract.public_id)
        contracts.approve_contract(manager_actor, contract.public_id)
        contracts.activate_contract(manager_actor, contract.public_id)

        assert contracts.notify_expiring_contracts(today=date(2026, 12, 15)) == 1
        assert contracts.notify_expiring_contracts(today=date(2026, 12, 16)) == 0
        assert Notification.objects.filter(user=manager_user, type=Notification.Type.CONTRACT_EXPIRING).exists()

        assert contracts.expire_contracts(today=date(2027, 1, 1)) == 1
        contract.refresh_from_db()
        assert contract.status == Contract.Status.EXPIRED
        assert BusinessEvent.objects.filter(event_type=EventTypes.CONTRACT_EXPIRED).exists()

    def test_versions_api(self, client_for, manager_user, manager_actor, contract):
        contracts.update_contract(manager_actor, contract.public_id, description="Updated")

        response = client_for(manager_user).get(f"/api/contracts/{contract.public_id}/versions/")

        assert response.status_code == 200
        assert [v["version"] for v in response.json()] == [2, 1]


# =============================================================================
# Quotes
# =============================================================================

@pytest.mark.django_db
class TestQuotes:

    def test_quote_totals(self, quote):
        year = timezone.now().year
        assert quote.quote_number == f"QT-{year}-0001"
        # 1000 + 100 gross; 100 line discount; 5% of 1000 quote discount
        assert quote.subtotal == Decimal("1100.00")
        assert quote.discount == Decimal("150.00")
        assert quote.total == Decimal("950.00")
        assert quote.line_items.count() == 2

    def test_product_without_access_is_forbidden(self, actor, second_product):
        with pytest.raises(PermissionDenied):
            quotes.create_quote(actor, title="X", line_items=[{"master_product_id": second_product.public_id}])

    def test_custom_line_needs_price(self, actor):
        result = quotes.create_quote(actor, title="X", line_items=[{"product_name": "Service"}])
        assert not result.success
        assert "unit_price is required" in result.error

    def test_update_recalculates(self, actor, quote, product):
        result = quotes.update_quote(actor, quote.public_id, discount_percent=None, line_items=[
            {"master_product_id": product.public_id, "quantity": 2},
        ])
        assert result.data.total == Decimal("200.00")

    def test_approval_limit_by_role(self, manager_actor, actor, product, access):
        big = quotes.create_quote(actor, title="Big", line_items=[
            {"master_product_id": product.public_id, "quantity": 600},
        ]).data
        quotes.submit_quote(actor, big.public_id)

        result = quotes.approve_quote(manager_actor, big.public_id)

        assert not result.success
        assert "exceeds your approval limit" in result.error

    def test_internal_reject_returns_to_draft(self, manager_actor, actor, user, quote):
        quotes.submit_quote(actor, quote.public_id)
        result = quotes.reject_quote(manager_actor, quote.public_id, reason="pricing")

        assert result.data.status == Quote.Status.DRAFT
        assert result.data.rejection_reason == "pricing"
        assert Notification.objects.filter(user=user, title="Quote rejected").exists()

    def test_accept_and_convert(self, manager_actor, actor, quote):
        move_to_sent(manager_actor, actor, quote)
        assert quotes.accept_quote(actor, quote.public_id).success

        result = quotes.convert_to_contract(manager_actor, quote.public_id)

        assert result.success
        contract = result.data["contract"]
        assert result.data["quote"].status == Quote.Status.CONVERTED
        assert contract.total_value == Decimal("950.00")
        assert contract.terms["source_quote"] == quote.quote_number
        quote.refresh_from_db()
        assert quote.contract == contract

    def test_only_accepted_quotes_convert(self, manager_actor, quote):
        result = quotes.convert_to_contract(manager_actor, quote.public_id)
        assert not result.success

    def test_customer_decline(self, manager_actor, actor, quote):
        move_to_sent(manager_actor, actor, quote)
        result = quotes.customer_reject_quote(actor, quote.public_id, reason="too expensive")
        assert result.data.status == Quote.Status.REJECTED

    def test_sent_quotes_expire(self, manager_actor, actor, quote):
        quote.valid_until = timezone.now() + timedelta(days=1)
        quote.save()
        move_to_sent(manager_actor, actor, quote)

        assert quotes.expire_quotes(now=timezone.now() + timedelta(days=2)) == 1
        quote.refresh_from_db()
        assert quote.status == Quote.Status.EXPIRED

    def test_create_quote_api(self, client_for, user, product, access):
        response = client_for(user).post("/api/quotes/", {
            "title": "API quote",
            "line_items": [{"master_product_id": str(product.public_id), "quantity": 3}],
        }, format="json")

        assert response.status_code == 201
        assert response.json()["total"] == "300.00"

    def test_other_tenant_cannot_read_quote(self, client_for, other_admin, quote):
        response = client_for(other_admin).get(f"/api/quotes/{quote.public_id}/")
        assert response.status_code == 404
