# tests/test_dynamics_connector.py
"""
Tests for the Dynamics 365 OData connector, with Azure AD and the
Web API mocked by aioresponses.
"""

import asyncio

import pytest
from aioresponses import aioresponses
from yarl import URL

from integrations.connectors import ConnectorError, get_adapter
from integrations.connectors.dynamics import DynamicsConnector, odata_params
from integrations.connectors.rest import RestConnector
from integrations.models import Connector

ORG = "https://acme.crm.dynamics.com"
API = f"{ORG}/api/data/v9.2"
TOKEN_URL = "https://login.microsoftonline.com/aad-tenant/oauth2/v2.0/token"
CREDENTIALS = {"client_id": "app-id", "client_secret": "app-secret", "tenant_id": "aad-tenant"}


def make_adapter(credentials=CREDENTIALS, **config):
    connector = Connector(code="d365", name="Dynamics 365", type=Connector.Type.ERP)
    return DynamicsConnector(
        connector,
        config={"organization_url": ORG, "retry_base_delay": 0, "max_retries": 0, **config},
        credentials=credentials,
    )


def mock_token(mocked):
    mocked.post(TOKEN_URL, payload={"access_token": "aad-token", "expires_in": 3600})


# =============================================================================
# Authentication & Requests
# =============================================================================

class TestDynamicsConnector:

    def test_client_credentials_token_scoped_to_organization(self):
        adapter = make_adapter()
        with aioresponses() as mocked:
            mock_token(mocked)
            mocked.get(f"{API}/WhoAmI", payload={"UserId": "u-1"})
            result = asyncio.run(adapter.test_connection())

            form = mocked.requests[("POST", URL(TOKEN_URL))][0].kwargs["data"]

        assert result.success
        assert form["grant_type"] == "client_credentials"
        assert form["client_id"] == "app-id"
        assert form["scope"] == f"{ORG}/.default"

    def test_missing_tenant_is_reported(self):
        adapter = make_adapter(credentials={"client_id": "app-id"})
        result = asyncio.run(adapter.test_connection())

        assert not result.success
        assert "tenant_id" in result.message

    def test_order_is_posted_to_sales_orders(self):
        adapter = make_adapter()
        with aioresponses() as mocked:
            mock_token(mocked)
            mocked.post(f"{API}/salesorders", status=201, payload={"salesorderid": "so-1"})
            response = asyncio.run(adapter.send({"name": "SO-1001"}, "ORDER"))

            headers = mocked.requests[("POST", URL(f"{API}/salesorders"))][0].kwargs["headers"]

        assert response == {"status": 201, "data": {"salesorderid": "so-1"}}
        assert headers["Authorization"] == "Bearer aad-token"
        assert headers["OData-Version"] == "4.0"
        assert headers["Prefer"] == "return=representation"

    def test_entity_set_override(self):
        adapter = make_adapter(entity_sets={"ORDER": "new_weborders"}, api_version="v9.1")
        with aioresponses() as mocked:
            mock_token(mocked)
            mocked.post(f"{ORG}/api/data/v9.1/new_weborders", status=204)
            assert asyncio.run(adapter.send({}, "ORDER"))["status"] == 204

    def test_unmapped_message_type(self):
        with pytest.raises(ConnectorError, match="No Dynamics 365 entity set"):
            asyncio.run(make_adapter().send({}, "SHIPMENT"))

    def test_odata_error_is_surfaced(self):
        adapter = make_adapter()
        with aioresponses() as mocked:
            mock_token(mocked)
            mocked.post(f"{API}/accounts", status=400,
                        payload={"error": {"code": "0x80040203", "message": "Invalid property 'foo'"}})
            with pytest.raises(ConnectorError) as excinfo:
                asyncio.run(adapter.send({"foo": 1}, "CUSTOMER"))

        assert str(excinfo.value) == "API error 400: 0x80040203: Invalid property 'foo'"
        assert excinfo.value.status_code == 400

    def test_fetch_all_follows_next_link(self):
        adapter = make_adapter(page_size=1)
        with aioresponses() as mocked:
            mock_token(mocked)
            mocked.get(f"{API}/accounts", payload={
                "value": [{"name": "Acme"}],
                "@odata.nextLink": f"{API}/accounts?$skiptoken=2",
            })
            mocked.get(f"{API}/accounts?$skiptoken=2", payload={"value": [{"name": "Globex"}]})

            rows = asyncio.run(adapter.fetch_all("ACCOUNT"))
            headers = mocked.requests[("GET", URL(f"{API}/accounts"))][0].kwargs["headers"]

        assert rows == [{"name": "Acme"}, {"name": "Globex"}]
        assert headers["Prefer"] == "odata.maxpagesize=1"


def test_odata_params():
    params = odata_params(filter="statecode eq 0", select=["name", "accountnumber"], top=10)
    assert params == {"$filter": "statecode eq 0", "$select": "name,accountnumber", "$top": "10"}


# =============================================================================
# Registry
# =============================================================================

class TestAdapterSelection:

    def test_erp_connectors_use_dynamics(self):
        connector = Connector(code="d365", name="Dynamics 365", type=Connector.Type.ERP)
        assert isinstance(get_adapter(connector, {"organization_url": ORG}), DynamicsConnector)

    def test_config_can_name_the_adapter(self):
        erp = Connector(code="erp", name="ERP", type=Connector.Type.ERP)
        api = Connector(code="crm", name="CRM", type=Connector.Type.API, config={"adapter": "dynamics365"})

        assert type(get_adapter(erp, {"adapter": "rest"})) is RestConnector
        assert isinstance(get_adapter(api), DynamicsConnector)

    def test_unknown_adapter_name(self):
        connector = Connector(code="erp", name="ERP", type=Connector.Type.ERP)
        with pytest.raises(ConnectorError, match="Unknown connector adapter"):
            get_adapter(connector, {"adapter": "sap"})
