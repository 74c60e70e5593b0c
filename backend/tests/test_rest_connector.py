# tests/test_rest_connector.py
"""
Tests for the aiohttp REST connector, with HTTP mocked by aioresponses.
"""

import asyncio

import aiohttp
import pytest
from aioresponses import aioresponses
from yarl import URL

from integrations.connectors import (
    ConnectorAuthError,
    ConnectorError,
    ConnectorRateLimited,
    get_adapter,
)
from integrations.connectors.rest import RestConnector
from integrations.models import Connector

BASE = "https://api.example.test/v1"


def make_adapter(credentials=None, **config):
    connector = Connector(code="erp", name="ERP", type=Connector.Type.API)
    return RestConnector(connector, config={"base_url": BASE, "retry_base_delay": 0, **config},
                         credentials=credentials)


def sent_headers(mocked, method, url):
    return mocked.requests[(method, URL(url))][0].kwargs["headers"]


class TestConnectionTest:

    def test_success(self):
        adapter = make_adapter(endpoints={"health": "/health"})
        with aioresponses() as mocked:
            mocked.get(f"{BASE}/health", payload={"ok": True})
            result = asyncio.run(adapter.test_connection())

        assert result.success
        assert result.details == {"status_code": 200}

    def test_not_found_is_reported(self):
        adapter = make_adapter(endpoints={"health": "/health"})
        with aioresponses() as mocked:
            mocked.get(f"{BASE}/health", status=404)
            result = asyncio.run(adapter.test_connection())

        assert not result.success
        assert result.details == {"status_code": 404}

    def test_missing_base_url(self):
        connector = Connector(code="erp", name="ERP", type=Connector.Type.API)
        with pytest.raises(ConnectorError, match="no base_url"):
            RestConnector(connector, config={}).base_url


class TestSend:

    def test_message_type_endpoint(self):
        adapter = make_adapter(endpoints={"ORDER": "/orders"})
        with aioresponses() as mocked:
            mocked.post(f"{BASE}/orders", status=201, payload={"id": 42})
            response = asyncio.run(adapter.send({"DocNum": "1"}, "ORDER"))

        assert response == {"status": 201, "data": {"id": 42}}

    def test_default_send_endpoint(self):
        adapter = make_adapter(endpoints={"send": "/messages"})
        with aioresponses() as mocked:
            mocked.post(f"{BASE}/messages", payload={})
            assert asyncio.run(adapter.send({}, "UNKNOWN"))["status"] == 200

    def test_retries_server_errors(self):
        adapter = make_adapter(max_retries=2)
        with aioresponses() as mocked:
            mocked.post(f"{BASE}/", status=503)
            mocked.post(f"{BASE}/", status=502)
            mocked.post(f"{BASE}/", status=200, payload={"accepted": True})
            response = asyncio.run(adapter.send({"a": 1}))

        assert response["data"] == {"accepted": True}

    def test_gives_up_after_max_retries(self):
        adapter = make_adapter(max_retries=1)
        with aioresponses() as mocked:
            mocked.post(f"{BASE}/", status=500)
            mocked.post(f"{BASE}/", status=500, body="still down")
            with pytest.raises(ConnectorError) as excinfo:
                asyncio.run(adapter.send({}))

        assert excinfo.value.status_code == 500
        assert excinfo.value.response_body == "still down"

    def test_unauthorized(self):
        adapter = make_adapter(max_retries=3)
        with aioresponses() as mocked:
            mocked.post(f"{BASE}/", status=401)
            with pytest.raises(ConnectorAuthError):
                asyncio.run(adapter.send({}))

    def test_rate_limited_uses_retry_after(self):
        adapter = make_adapter(max_retries=0)
        with aioresponses() as mocked:
            mocked.post(f"{BASE}/", status=429, headers={"Retry-After": "12"})
            with pytest.raises(ConnectorRateLimited) as excinfo:
                asyncio.run(adapter.send({}))

        assert excinfo.value.retry_after == 12.0


class TestAuth:

    def test_bearer(self):
        adapter = make_adapter(credentials={"token": "t0k"}, auth={"type": "bearer"})
        with aioresponses() as mocked:
            mocked.post(f"{BASE}/", payload={})
            asyncio.run(adapter.send({}))
            assert sent_headers(mocked, "POST", f"{BASE}/")["Authorization"] == "Bearer t0k"

    def test_api_key_header(self):
        adapter = make_adapter(credentials={"api_key": "k1"}, auth={"type": "api_key", "header_name": "X-Key"})
        with aioresponses() as mocked:
            mocked.post(f"{BASE}/", payload={})
            asyncio.run(adapter.send({}))
            assert sent_headers(mocked, "POST", f"{BASE}/")["X-Key"] == "k1"

    def test_api_key_query(self):
        adapter = make_adapter(credentials={"api_key": "k1"}, auth={"type": "api_key", "location": "query"})
        with aioresponses() as mocked:
            mocked.get(f"{BASE}/items?api_key=k1", payload=[1])
            assert asyncio.run(adapter.fetch("items")) == [1]

    def test_oauth2_token_is_cached(self):
        adapter = make_adapter(
            credentials={"client_id": "cid", "client_secret": "sec"},
            auth={"type": "oauth2", "token_url": "https://auth.example.test/token"},
        )
        with aioresponses() as mocked:
            mocked.post("https://auth.example.test/token", payload={"access_token": "abc", "expires_in": 3600})
            mocked.get(f"{BASE}/items", payload=[1])
            mocked.get(f"{BASE}/items", payload=[2])

            asyncio.run(adapter.fetch("items"))
            asyncio.run(adapter.fetch("items"))

            assert len(mocked.requests[("POST", URL("https://auth.example.test/token"))]) == 1
            assert sent_headers(mocked, "GET", f"{BASE}/items")["Authorization"] == "Bearer abc"

    def test_oauth2_token_failure(self):
        adapter = make_adapter(
            credentials={"client_id": "cid"},
            auth={"type": "oauth2", "token_url": "https://auth.example.test/token"},
        )
        with aioresponses() as mocked:
            mocked.post("https://auth.example.test/token", status=400, body="invalid_client")
            with pytest.raises(ConnectorAuthError, match="token request failed"):
                asyncio.run(adapter.fetch("items"))

    @pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()])
    def test_oauth2_token_endpoint_unreachable(self, error):
        adapter = make_adapter(
            credentials={"client_id": "cid"},
            auth={"type": "oauth2", "token_url": "https://auth.example.test/token"},
        )
        with aioresponses() as mocked:
            mocked.post("https://auth.example.test/token", exception=error)
            with pytest.raises(ConnectorAuthError, match="token request failed"):
                asyncio.run(adapter.fetch("items"))

    def test_oauth2_token_response_not_json(self):
        adapter = make_adapter(
            credentials={"client_id": "cid"},
            auth={"type": "oauth2", "token_url": "https://auth.example.test/token"},
        )
        with aioresponses() as mocked:
            mocked.post("https://auth.example.test/token", body="<html>maintenance</html>")
            with pytest.raises(ConnectorAuthError, match="not JSON"):
                asyncio.run(adapter.fetch("items"))

    def test_unsupported_auth_type(self):
        adapter = make_adapter(auth={"type": "kerberos"})
        with pytest.raises(ConnectorAuthError):
            asyncio.run(adapter.send({}))


class TestPagination:

    def test_offset_pages_until_short_page(self):
        adapter = make_adapter(pagination={"type": "offset", "page_size": 2})
        with aioresponses() as mocked:
            mocked.get(f"{BASE}/items?limit=2&offset=0", payload={"items": [1, 2]})
            mocked.get(f"{BASE}/items?limit=2&offset=2", payload={"items": [3]})
            assert asyncio.run(adapter.fetch_all("items")) == [1, 2, 3]

    def test_page_numbers(self):
        adapter = make_adapter(pagination={"type": "page", "page_size": 1, "max_pages": 2})
        with aioresponses() as mocked:
            mocked.get(f"{BASE}/items?page=1&page_size=1", payload={"results": ["a"]})
            mocked.get(f"{BASE}/items?page=2&page_size=1", payload={"results": ["b"]})
            assert asyncio.run(adapter.fetch_all("items")) == ["a", "b"]

    def test_cursor(self):
        adapter = make_adapter(pagination={"type": "cursor", "items_path": "page.rows", "cursor_path": "page.next"})
        with aioresponses() as mocked:
            mocked.get(f"{BASE}/items", payload={"page": {"rows": [1], "next": "c2"}})
            mocked.get(f"{BASE}/items?cursor=c2", payload={"page": {"rows": [2], "next": None}})
            assert asyncio.run(adapter.fetch_all("items")) == [1, 2]

    def test_link_header(self):
        adapter = make_adapter(pagination={"type": "link"})
        with aioresponses() as mocked:
            mocked.get(f"{BASE}/items", payload={"items": [1]},
                       headers={"Link": f'<{BASE}/items?page=2>; rel="next"'})
            mocked.get(f"{BASE}/items?page=2", payload={"items": [2]},
                       headers={"Link": f'<{BASE}/items?page=1>; rel="prev"'})
            assert asyncio.run(adapter.fetch_all("items")) == [1, 2]


def test_registry_picks_rest_adapter_for_api_connectors():
    connector = Connector(code="x", name="X", type=Connector.Type.API, config={"base_url": BASE, "timeout": 5})
    adapter = get_adapter(connector, config={"timeout": 10})
    assert isinstance(adapter, RestConnector)
    assert adapter.config == {"base_url": BASE, "timeout": 10}
