# tests/test_integrations_api.py
"""
API tests for /api/integrations/.

Connector registration is a platform operation; configs, credentials,
messages and the dead letter queue are tenant scoped.
"""

import aiohttp
import pytest
from aioresponses import aioresponses

from integrations import commands
from integrations.connectors.rest import RestConnector
from integrations.models import ConnectorConfig, ConnectorEvent, DeadLetter, IntegrationMessage

BASE = "/api/integrations"


@pytest.fixture
def credential(admin_actor):
    return commands.create_credential(
        admin_actor, name="ERP token", type="BEARER_TOKEN", data={"token": "s3cret"},
    ).data


@pytest.fixture
def config(admin_actor, target_connector, credential):
    result = commands.create_config(
        admin_actor,
        target_connector.public_id,
        "Acme ERP",
        config={
            "base_url": "https://erp.example.test/api",
            "endpoints": {"health": "/ping"},
            "auth": {"type": "bearer"},
        },
        credential_id=credential.public_id,
        is_primary=True,
    )
    assert result.success, result.error
    return result.data


# =============================================================================
# Connectors
# =============================================================================

@pytest.mark.django_db
class TestConnectorApi:

    payload = {"code": "crm", "name": "CRM", "type": "API", "rate_limit": 100, "rate_limit_window": 60}

    def test_super_admin_registers_connector(self, client_for, super_admin):
        response = client_for(super_admin).post(f"{BASE}/connectors/", self.payload, format="json")

        assert response.status_code == 201
        body = response.json()
        assert body["code"] == "crm"
        assert body["circuit_state"] == "CLOSED"

    def test_tenant_admin_cannot_register_connector(self, client_for, admin_user):
        response = client_for(admin_user).post(f"{BASE}/connectors/", self.payload, format="json")
        assert response.status_code == 403

    def test_rate_limit_needs_window(self, client_for, super_admin):
        response = client_for(super_admin).post(
            f"{BASE}/connectors/", {"code": "crm", "name": "CRM", "type": "API", "rate_limit": 5}, format="json",
        )
        assert response.status_code == 400

    def test_list_and_health(self, client_for, manager_user, source_connector, target_connector):
        client = client_for(manager_user)

        listing = client.get(f"{BASE}/connectors/")
        assert listing.status_code == 200
        assert [row["code"] for row in listing.json()["results"]] == ["erp", "shop"]

        health = client.get(f"{BASE}/connectors/{target_connector.public_id}/health/")
        assert health.status_code == 200

    def test_deactivate(self, client_for, super_admin, target_connector):
        response = client_for(super_admin).put(
            f"{BASE}/connectors/{target_connector.public_id}/status/", {"is_active": False}, format="json",
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is False

    def test_unknown_connector(self, client_for, manager_user):
        response = client_for(manager_user).get(f"{BASE}/connectors/00000000-0000-0000-0000-000000000000/")
        assert response.status_code == 404


# =============================================================================
# Configs & Credentials
# =============================================================================

@pytest.mark.django_db
class TestConfigApi:

    def test_create_config(self, client_for, admin_user, target_connector):
        response = client_for(admin_user).post(f"{BASE}/configs/", {
            "connector_id": str(target_connector.public_id),
            "name": "Main ERP",
            "config": {"base_url": "https://erp.example.test"},
            "is_primary": True,
        }, format="json")

        assert response.status_code == 201
        assert response.json()["connector"] == "erp"
        assert ConnectorConfig.objects.get(name="Main ERP").is_primary

    def test_manager_cannot_create_config(self, client_for, manager_user, target_connector):
        response = client_for(manager_user).post(f"{BASE}/configs/", {
            "connector_id": str(target_connector.public_id), "name": "Nope",
        }, format="json")
        assert response.status_code == 403

    def test_configs_are_tenant_scoped(self, client_for, other_admin, config):
        response = client_for(other_admin).get(f"{BASE}/configs/{config.public_id}/")
        assert response.status_code == 404

    def test_connection_test_uses_vault_credentials(self, admin_actor, config):
        with aioresponses() as mocked:
            mocked.get("https://erp.example.test/api/ping", payload={"ok": True})
            result = commands.test_config(admin_actor, config.public_id)

        assert result.success
        assert result.data.success
        config.refresh_from_db()
        assert config.last_test_result is True
        assert ConnectorEvent.objects.filter(config=config, event_type=ConnectorEvent.Type.TESTED).exists()
        config.credential_vault.refresh_from_db()
        assert config.credential_vault.access_count == 1

    def test_connection_test_endpoint_reports_failure(self, client_for, admin_user, config):
        with aioresponses() as mocked:
            mocked.get("https://erp.example.test/api/ping", status=404)
            response = client_for(admin_user).post(f"{BASE}/configs/{config.public_id}/test/")

        assert response.status_code == 200
        assert response.json()["success"] is False
        config.refresh_from_db()
        assert config.last_test_result is False
        assert config.last_test_error

    def test_connection_test_survives_adapter_crash(self, admin_actor, config, monkeypatch):
        async def crash(self):
            raise RuntimeError("adapter crashed")

        monkeypatch.setattr(RestConnector, "test_connection", crash)
        result = commands.test_config(admin_actor, config.public_id)

        assert result.success
        assert result.data.success is False
        assert result.data.details == {"error": "RuntimeError"}
        config.refresh_from_db()
        assert config.last_test_error == "adapter crashed"

    def test_token_endpoint_outage_reports_failure(self, admin_actor, config):
        config.config["auth"] = {"type": "oauth2", "token_url": "https://login.example.test/token",
                                 "client_id": "cid"}
        config.save()

        with aioresponses() as mocked:
            mocked.post("https://login.example.test/token", exception=aiohttp.ClientConnectionError("refused"))
            result = commands.test_config(admin_actor, config.public_id)

        assert result.success
        assert result.data.success is False
        assert "OAuth2 token request failed" in result.data.message


@pytest.mark.django_db
class TestCredentialApi:

    def test_create_returns_metadata_only(self, client_for, admin_user):
        response = client_for(admin_user).post(f"{BASE}/credentials/", {
            "name": "CRM key", "type": "API_KEY", "data": {"api_key": "abc123"},
        }, format="json")

        assert response.status_code == 201
        body = response.json()
        assert "encrypted_data" not in body
        assert "abc123" not in str(body)

    def test_empty_secret_rejected(self, client_for, admin_user):
        response = client_for(admin_user).post(f"{BASE}/credentials/", {
            "name": "Empty", "type": "API_KEY", "data": {},
        }, format="json")
        assert response.status_code == 400

    def test_listing_needs_manage_permission(self, client_for, manager_user, admin_user, credential):
        assert client_for(manager_user).get(f"{BASE}/credentials/").status_code == 403

        response = client_for(admin_user).get(f"{BASE}/credentials/")
        assert response.status_code == 200
        assert [row["name"] for row in response.json()["results"]] == ["ERP token"]

    def test_rotate(self, client_for, admin_user, credential):
        response = client_for(admin_user).post(
            f"{BASE}/credentials/{credential.public_id}/rotate/", {"data": {"token": "n3w"}}, format="json",
        )
        assert response.status_code == 200
        assert response.json()["rotated_at"] is not None


# =============================================================================
# Messages & Dead Letters
# =============================================================================

@pytest.mark.django_db
class TestMessageApi:

    def test_send_message(self, client_for, admin_user, tenant, source_connector, target_connector,
                          order_transformation):
        response = client_for(admin_user).post(f"{BASE}/messages/", {
            "message_id": "api-1",
            "source_connector": "shop",
            "target_connector": "erp",
            "type": "ORDER",
            "source_payload": {"number": "SO-7"},
        }, format="json")

        assert response.status_code == 202
        assert response.json()["status"] == "COMPLETED"
        assert IntegrationMessage.objects.get(message_id="api-1").tenant == tenant

    def test_duplicate_message_id_rejected(self, client_for, admin_user, source_connector, target_connector,
                                           order_transformation):
        client = client_for(admin_user)
        body = {"message_id": "api-1", "source_connector": "shop", "target_connector": "erp",
                "type": "ORDER", "source_payload": {"number": "SO-7"}}
        client.post(f"{BASE}/messages/", body, format="json")

        assert client.post(f"{BASE}/messages/", body, format="json").status_code == 400

    def test_resubmission_with_idempotency_key_is_acknowledged(self, client_for, admin_user, source_connector,
                                                               target_connector, order_transformation):
        client = client_for(admin_user)
        body = {"message_id": "api-1", "source_connector": "shop", "target_connector": "erp",
                "type": "ORDER", "source_payload": {"number": "SO-7"}, "idempotency_key": "so-7"}
        client.post(f"{BASE}/messages/", body, format="json")

        response = client.post(f"{BASE}/messages/", body, format="json")

        assert response.status_code == 202
        assert response.json()["status"] == "COMPLETED"
        assert response.json()["error"] == "Duplicate message - already processed"
        assert IntegrationMessage.objects.filter(message_id="api-1").count() == 1

    def test_list_hides_dead_letters_by_default(self, client_for, admin_actor, admin_user,
                                                source_connector, target_connector, order_transformation):
        commands.send_message(admin_actor, message_id="ok-1", source_connector="shop", target_connector="erp",
                              type="ORDER", source_payload={"number": "1"})
        commands.send_message(admin_actor, message_id="dead-1", source_connector="shop", target_connector="erp",
                              type="INVOICE", source_payload={"number": "2"}, max_retries=0)
        client = client_for(admin_user)

        default = client.get(f"{BASE}/messages/").json()
        assert [row["message_id"] for row in default["results"]] == ["ok-1"]

        everything = client.get(f"{BASE}/messages/?include_dlq=true").json()
        assert everything["total"] == 2

        detail = client.get(f"{BASE}/messages/dead-1/")
        assert detail.json()["status"] == "DEAD_LETTER"


@pytest.mark.django_db
class TestDeadLetterApi:

    @pytest.fixture
    def dead_letter(self, admin_actor, source_connector, target_connector):
        commands.send_message(admin_actor, message_id="dead-1", source_connector="shop", target_connector="erp",
                              type="ORDER", source_payload={"number": "1"}, max_retries=0)
        return DeadLetter.objects.get(original_message_id="dead-1")

    def test_stats(self, client_for, manager_user, dead_letter):
        response = client_for(manager_user).get(f"{BASE}/dead-letters/stats/")

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["by_reason"] == [{"reason": "TRANSFORMATION_FAILED", "count": 1}]

    def test_reprocess_after_fix(self, client_for, admin_user, dead_letter, order_transformation):
        client = client_for(admin_user)

        response = client.post(f"{BASE}/dead-letters/{dead_letter.public_id}/reprocess/")

        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"
        again = client.post(f"{BASE}/dead-letters/{dead_letter.public_id}/reprocess/")
        assert again.status_code == 400

    def test_bulk_reprocess(self, client_for, admin_user, dead_letter, order_transformation):
        response = client_for(admin_user).post(f"{BASE}/dead-letters/reprocess/", {"connector": "erp"}, format="json")

        assert response.status_code == 200
        assert response.json()["successful"] == 1

    def test_other_tenant_sees_nothing(self, client_for, other_admin, dead_letter):
        response = client_for(other_admin).get(f"{BASE}/dead-letters/")
        assert response.json()["total"] == 0
