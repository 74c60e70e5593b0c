# tests/test_vault_transform.py
"""
Tests for the credential vault and payload transformations.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from integrations import commands, transform, vault
from integrations.models import CredentialVault, Transformation

SECRET = {"username": "svc-erp", "password": "hunter22"}


@pytest.fixture
def credential(admin_actor):
    result = commands.create_credential(admin_actor, name="ERP login", type="BASIC_AUTH", data=SECRET)
    assert result.success
    return result.data


# =============================================================================
# Vault
# =============================================================================

@pytest.mark.django_db
class TestVault:

    def test_secret_is_stored_encrypted(self, credential):
        assert "hunter22" not in credential.encrypted_data
        assert vault.decrypt(credential) == SECRET

    def test_each_encryption_uses_fresh_salt_and_nonce(self, tenant):
        first = vault.encrypt(tenant.id, SECRET)
        second = vault.encrypt(tenant.id, SECRET)
        assert first["key_id"] != second["key_id"]
        assert first["nonce"] != second["nonce"]

    def test_ciphertext_is_bound_to_tenant(self, credential, other_tenant):
        credential.tenant_id = other_tenant.id
        with pytest.raises(vault.VaultError):
            vault.decrypt(credential)

    def test_reveal_counts_access(self, credential):
        assert vault.reveal(credential) == SECRET
        credential.refresh_from_db()
        assert credential.access_count == 1
        assert credential.last_accessed_at is not None

    def test_expired_credential_is_denied(self, credential):
        credential.expires_at = timezone.now() - timedelta(seconds=1)
        with pytest.raises(vault.CredentialAccessDenied, match="expired"):
            vault.reveal(credential)

    def test_connector_allow_list(self, credential):
        credential.access_policy = {"allowed_connectors": ["erp"]}
        vault.check_access(credential, connector_code="erp")
        with pytest.raises(vault.CredentialAccessDenied):
            vault.check_access(credential, connector_code="crm")

    def test_user_allow_list(self, credential, admin_user, user):
        credential.access_policy = {"allowed_users": [str(admin_user.public_id)]}
        vault.check_access(credential, user=admin_user)
        with pytest.raises(vault.CredentialAccessDenied):
            vault.check_access(credential, user=user)

    def test_access_limit(self, credential):
        credential.access_policy = {"max_access_count": 1}
        vault.reveal(credential)
        with pytest.raises(vault.CredentialAccessDenied, match="limit"):
            vault.reveal(credential)

    def test_rotation_due(self, credential):
        credential.rotation_policy = {"enabled": True, "interval_days": 30}
        assert not vault.needs_rotation(credential)
        assert vault.needs_rotation(credential, now=timezone.now() + timedelta(days=31))

    def test_rotate_replaces_ciphertext(self, admin_actor, credential):
        old = credential.encrypted_data
        result = commands.rotate_credential(admin_actor, credential.public_id, {"username": "svc", "password": "new"})

        assert result.success
        credential.refresh_from_db()
        assert credential.encrypted_data != old
        assert credential.rotated_at is not None
        assert vault.decrypt(credential)["password"] == "new"

    def test_expiring_credentials(self, tenant, credential):
        credential.expires_at = timezone.now() + timedelta(days=3)
        credential.save()
        assert list(vault.expiring_credentials(tenant)) == [credential]
        assert list(vault.expiring_credentials(tenant, days=1)) == []

    def test_duplicate_name_rejected(self, admin_actor, credential):
        result = commands.create_credential(admin_actor, name="ERP login", type="API_KEY", data={})
        assert not result.success

    def test_used_credential_cannot_be_deleted(self, admin_actor, credential, target_connector):
        commands.create_config(admin_actor, target_connector.public_id, "ERP", credential_id=credential.public_id)
        result = commands.delete_credential(admin_actor, credential.public_id)
        assert not result.success
        assert CredentialVault.objects.filter(pk=credential.pk).exists()


# =============================================================================
# Transformation Rules
# =============================================================================

class TestPaths:

    def test_get_path(self):
        assert transform.get_path({"a": {"b": 1}}, "a.b") == 1
        assert transform.get_path({"a": {}}, "a.b") is transform._MISSING

    def test_set_path_creates_parents(self):
        data = {}
        transform.set_path(data, "order.lines.count", 3)
        assert data == {"order": {"lines": {"count": 3}}}


class TestExpressions:

    def test_concat_mixes_literals_and_fields(self):
        source = {"first": "Ada", "last": "Lovelace"}
        assert transform.evaluate("concat(first, ' ', last)", source, {}) == "Ada Lovelace"

    def test_case_functions(self):
        assert transform.evaluate("uppercase(code)", {"code": "ab"}, {}) == "AB"
        assert transform.evaluate("lowercase(code)", {"code": "AB"}, {}) == "ab"

    def test_falls_back_to_already_mapped_fields(self):
        assert transform.evaluate("uppercase(Name)", {}, {"Name": "x"}) == "X"

    def test_now(self):
        assert transform.evaluate("now()", {}, {}).startswith(str(timezone.now().year))

    def test_unknown_expression(self):
        assert transform.evaluate("eval(1)", {}, {}) is transform._MISSING

    def test_apply_rules_order(self):
        rules = {
            "defaults": {"status": "new", "currency": "USD"},
            "mappings": [{"source": "state", "target": "status"}, {"source": "missing", "target": "gone"}],
            "computed": [{"field": "label", "expression": "concat(status, '-', id)"}],
        }

        result = transform.apply_rules({"state": "paid", "id": 7}, rules)

        assert result == {"status": "paid", "currency": "USD", "label": "paid-7"}


@pytest.mark.django_db
class TestTransformPayload:

    def test_two_stage_transformation(self, order_transformation):
        result = transform.transform_payload("shop", "erp", "ORDER", {"number": "A1", "customer": {"email": "a@b.c"}})

        assert result.success
        assert result.transformation_id == str(order_transformation.public_id)
        assert result.target_payload["Customer"] == "A@B.C"

    def test_highest_priority_wins(self, order_transformation):
        order_transformation.priority = 1
        order_transformation.save()
        Transformation.objects.create(
            name="Fallback", source_connector="shop", target_connector="erp",
            source_type="ORDER", target_type="SALES_ORDER", priority=0,
        )

        result = transform.transform_payload("shop", "erp", "ORDER", {"number": "A1"})

        assert result.target_payload["DocNum"] == "A1"

    def test_inactive_transformation_is_ignored(self, order_transformation):
        order_transformation.is_active = False
        order_transformation.save()
        result = transform.transform_payload("shop", "erp", "ORDER", {})
        assert not result.success
        assert result.errors == ["No transformation found for shop -> erp (ORDER)"]

    def test_transformation_test_command(self, super_admin_actor, order_transformation):
        result = commands.test_transformation(super_admin_actor, "shop", "erp", "ORDER", {"number": "Z9"})
        assert result.success
        assert result.data.target_payload["DocNum"] == "Z9"
