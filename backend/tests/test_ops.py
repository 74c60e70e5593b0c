# tests/test_ops.py
"""
Tests for the operations surface: health probes, Prometheus metrics,
structured logging and the Postman collection checker.
"""

import json
import logging

import pytest
from aioresponses import aioresponses
from django.core.management import CommandError, call_command

from integrations.models import DeadLetter
from ops.api_health import check_collection, iter_requests, load_variables, substitute
from ops.health import HealthCheck
from ops.logging_config import JsonFormatter, get_logging_config


@pytest.fixture
def no_redis(settings):
    settings.CELERY_BROKER_URL = "memory://"


# =============================================================================
# Health
# =============================================================================

@pytest.mark.django_db
class TestHealth:

    def test_live(self, client):
        response = client.get("/_health/live")
        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_ready(self, client):
        response = client.get("/_health/ready")
        assert response.status_code == 200
        assert response.json()["database"]["status"] == "healthy"

    def test_full_report(self, client, no_redis, tenant):
        response = client.get("/_health/full")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["redis"]["status"] == "skipped"
        assert body["checks"]["tenants"]["active_tenants"] == 1

    def test_users_on_inactive_tenant_degrade(self, no_redis, tenant, user):
        tenant.is_active = False
        tenant.save()

        check = HealthCheck.check_tenants()

        assert check["status"] == "degraded"
        assert check["users_on_inactive_tenants"] == 1
        assert HealthCheck.get_full_health()["status"] == "degraded"

    def test_integration_backlog_threshold(self, settings):
        settings.INTEGRATION_BACKLOG_THRESHOLD = 1
        DeadLetter.objects.create(original_message_id="m-1", connector="erp",
                                  reason=DeadLetter.Reason.CONNECTOR_UNAVAILABLE)

        check = HealthCheck.check_integration_backlog()

        assert check["status"] == "degraded"
        assert check["dead_letters"] == 1


# =============================================================================
# Metrics
# =============================================================================

@pytest.mark.django_db
def test_metrics_endpoint(client, target_connector):
    DeadLetter.objects.create(original_message_id="m-1", connector="erp",
                              reason=DeadLetter.Reason.CONNECTOR_UNAVAILABLE)

    response = client.get("/_metrics/")

    assert response.status_code == 200
    text = response.content.decode()
    assert 'b2b_dead_letters{connector="erp"} 1.0' in text
    assert 'b2b_connector_circuit_state{connector="erp"} 0.0' in text
    assert "b2b_request_duration_seconds" in text


# =============================================================================
# Logging
# =============================================================================

class TestLogging:

    def test_json_in_production(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        config = get_logging_config(debug=False)

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["loggers"]["integrations"]["level"] == "INFO"
        assert config["loggers"]["django.db.backends"]["handlers"] == ["null"]

    def test_console_when_debugging(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        config = get_logging_config(debug=True)

        assert "verbose" in config["formatters"]
        assert config["loggers"]["sales"]["level"] == "DEBUG"

    def test_json_formatter_includes_extras(self):
        record = logging.LogRecord("integrations.hub", logging.INFO, __file__, 10, "Message routed", None, None)
        record.message_id = "msg-1"
        record.connector = object()

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "integrations.hub"
        assert entry["message"] == "Message routed"
        assert entry["extra"]["message_id"] == "msg-1"
        assert isinstance(entry["extra"]["connector"], str)


# =============================================================================
# Postman Collection Checker
# =============================================================================

COLLECTION = {
    "variable": [{"key": "baseUrl", "value": "http://api.local"}],
    "item": [
        {"name": "Health", "request": {"method": "GET", "url": {"raw": "{{baseUrl}}/_health/live"}}},
        {
            "name": "Orders",
            "item": [{
                "name": "List",
                "request": {
                    "method": "get",
                    "url": "{{baseUrl}}/api/orders/",
                    "header": [
                        {"key": "Authorization", "value": "Bearer {{token}}"},
                        {"key": "X-Debug", "value": "1", "disabled": True},
                    ],
                },
            }],
        },
    ],
}


class TestApiHealth:

    def test_variables_layering(self):
        environment = {"values": [{"key": "baseUrl", "value": "http://staging"}, {"key": "x", "enabled": False}]}
        variables = load_variables(COLLECTION, environment, {"token": "t"})
        assert variables == {"baseUrl": "http://staging", "token": "t"}

    def test_unknown_placeholders_are_kept(self):
        assert substitute("{{a}}/{{b}}", {"a": "x"}) == "x/{{b}}"

    def test_folders_are_flattened(self):
        requests = list(iter_requests(COLLECTION["item"], {"baseUrl": "http://api.local", "token": "t"}))

        assert [r.name for r in requests] == ["Health", "Orders / List"]
        assert requests[1].method == "GET"
        assert requests[1].headers == {"Authorization": "Bearer t"}

    def test_check_collection(self):
        with aioresponses() as mocked:
            mocked.get("http://api.local/_health/live", payload={"status": "alive"})
            mocked.get("http://api.local/api/orders/", status=401)
            results = check_collection(COLLECTION)

        assert [r.ok for r in results] == [True, False]
        assert results[1].error == "HTTP 401"

    def test_management_command_fails_on_errors(self, tmp_path):
        path = tmp_path / "collection.json"
        path.write_text(json.dumps(COLLECTION))

        with aioresponses() as mocked:
            mocked.get("http://api.local/_health/live", payload={})
            mocked.get("http://api.local/api/orders/", status=500)
            with pytest.raises(CommandError, match="1 request"):
                call_command("check_api_health", str(path))

    def test_management_command_rejects_bad_var(self, tmp_path):
        path = tmp_path / "collection.json"
        path.write_text(json.dumps(COLLECTION))
        with pytest.raises(CommandError, match="Invalid --var"):
            call_command("check_api_health", str(path), "--var", "nonsense")
