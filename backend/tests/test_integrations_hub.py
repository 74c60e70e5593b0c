# tests/test_integrations_hub.py
"""
Tests for the integration hub.

Tests cover:
- Routing through transformation and delivery
- Idempotency, rate limiting and the circuit breaker
- Retry scheduling, the dead letter queue and reprocessing
- Connector health derivation
"""

from datetime import timedelta

import aiohttp
import pytest
from aioresponses import aioresponses
from django.utils import timezone

from events.models import BusinessEvent
from events.types import EventTypes
from integrations import hub
from integrations.models import Connector, ConnectorConfig, DeadLetter, IntegrationMessage, Transformation

ORDER_PAYLOAD = {"number": "SO-1001", "customer": {"email": "buyer@acme.test"}}

Status = IntegrationMessage.Status


def route(message_id="msg-1", type="ORDER", payload=None, **kwargs):
    return hub.route_message(
        message_id=message_id,
        source_connector="shop",
        target_connector="erp",
        type=type,
        source_payload=payload or ORDER_PAYLOAD,
        **kwargs,
    )


def due_message(message_id, minutes_ago, **fields):
    return IntegrationMessage.objects.create(
        message_id=message_id,
        source_connector="shop",
        target_connector="erp",
        type="ORDER",
        source_payload=ORDER_PAYLOAD,
        status=Status.RETRYING,
        next_retry_at=timezone.now() - timedelta(minutes=minutes_ago),
        **fields,
    )


@pytest.fixture
def erp_config(tenant, target_connector):
    return ConnectorConfig.objects.create(
        tenant=tenant,
        connector=target_connector,
        name="Acme ERP",
        is_primary=True,
        config={
            "base_url": "https://erp.example.test/api",
            "endpoints": {"ORDER": "/sales-orders"},
            "max_retries": 0,
        },
    )


# =============================================================================
# Routing
# =============================================================================

@pytest.mark.django_db
class TestRouting:

    def test_message_is_transformed_and_completed(self, source_connector, target_connector, order_transformation):
        result = route()

        assert result.status == Status.COMPLETED
        message = IntegrationMessage.objects.get(message_id="msg-1")
        assert message.canonical_payload == {"order": {"number": "SO-1001", "customer": "buyer@acme.test"}}
        assert message.target_payload == {"channel": "b2b", "DocNum": "SO-1001", "Customer": "BUYER@ACME.TEST"}
        assert message.completed_at is not None

        target_connector.refresh_from_db()
        assert target_connector.total_messages == 1
        assert target_connector.successful_messages == 1

    def test_delivery_through_primary_config(self, tenant, source_connector, order_transformation, erp_config):
        with aioresponses() as mocked:
            mocked.post("https://erp.example.test/api/sales-orders", status=201, payload={"id": 7})
            result = route(tenant=tenant)

        assert result.status == Status.COMPLETED
        message = IntegrationMessage.objects.get(message_id="msg-1")
        assert message.tenant == tenant
        assert message.metadata["delivery"] == {"status": 201}

    def test_delivery_failure_schedules_retry(self, tenant, source_connector, target_connector,
                                              order_transformation, erp_config):
        with aioresponses() as mocked:
            mocked.post("https://erp.example.test/api/sales-orders", status=500, body="boom")
            result = route(tenant=tenant)

        assert result.status == Status.RETRYING
        assert result.retry_scheduled
        message = IntegrationMessage.objects.get(message_id="msg-1")
        assert message.retry_count == 1
        assert message.next_retry_at > timezone.now()
        assert "API error 500" in message.last_error
        target_connector.refresh_from_db()
        assert target_connector.failure_count == 1

    def test_auth_failure_is_a_delivery_error(self, tenant, source_connector, order_transformation, erp_config):
        with aioresponses() as mocked:
            mocked.post("https://erp.example.test/api/sales-orders", status=401)
            result = route(tenant=tenant)

        assert result.status == Status.RETRYING
        assert "Authentication failed" in result.error

    def test_token_endpoint_outage_schedules_retry(self, tenant, source_connector, target_connector,
                                                   order_transformation, erp_config):
        erp_config.config["auth"] = {"type": "oauth2", "token_url": "https://login.example.test/token",
                                     "client_id": "cid"}
        erp_config.save()

        with aioresponses() as mocked:
            mocked.post("https://login.example.test/token", exception=aiohttp.ClientConnectionError("refused"))
            result = route(tenant=tenant)

        assert result.status == Status.RETRYING
        message = IntegrationMessage.objects.get(message_id="msg-1")
        assert message.status == Status.RETRYING
        assert message.next_retry_at is not None
        assert "OAuth2 token request failed" in message.last_error
        target_connector.refresh_from_db()
        assert target_connector.failure_count == 1

    def test_unexpected_delivery_error_is_handled(self, tenant, source_connector, order_transformation,
                                                  erp_config, monkeypatch):
        def explode(message):
            raise KeyError("delivery")

        monkeypatch.setattr(hub, "deliver", explode)
        result = route(tenant=tenant)

        assert result.status == Status.RETRYING
        message = IntegrationMessage.objects.get(message_id="msg-1")
        assert message.error_details["type"] == "KeyError"


# =============================================================================
# Idempotency & Rate Limits
# =============================================================================

@pytest.mark.django_db
class TestAdmission:

    def test_duplicate_is_not_processed_twice(self, source_connector, target_connector, order_transformation):
        route("msg-1", idempotency_key="order-1001")
        result = route("msg-2", idempotency_key="order-1001")

        assert result.status == Status.COMPLETED
        assert result.error == "Duplicate message - already processed"

    def test_resubmitted_message_id_with_same_key_is_a_duplicate(self, source_connector, target_connector,
                                                                  order_transformation):
        route("msg-1", idempotency_key="order-1001")
        result = route("msg-1", idempotency_key="order-1001")

        assert result.status == Status.COMPLETED
        assert result.error == "Duplicate message - already processed"
        assert IntegrationMessage.objects.count() == 1

    def test_reused_message_id_is_refused(self, source_connector, target_connector, order_transformation):
        route("msg-1")
        result = route("msg-1", payload={"number": "SO-2002"})

        assert result.status == Status.FAILED
        assert result.error == hub.DUPLICATE_MESSAGE_ID
        assert IntegrationMessage.objects.get().source_payload == ORDER_PAYLOAD

    def test_message_id_taken_between_check_and_insert(self, source_connector, target_connector,
                                                       order_transformation, monkeypatch):
        route("msg-1")
        monkeypatch.setattr(hub, "message_id_taken", lambda message_id: False)

        result = route("msg-1", payload={"number": "SO-2002"})

        assert result.status == Status.FAILED
        assert result.error == hub.DUPLICATE_MESSAGE_ID
        assert IntegrationMessage.objects.count() == 1
        assert IntegrationMessage.objects.count() == 1

    def test_same_key_with_new_payload_is_processed(self, source_connector, target_connector, order_transformation):
        route("msg-1", idempotency_key="order-1001")
        route("msg-2", idempotency_key="order-1001", payload={"number": "SO-1002"})
        assert IntegrationMessage.objects.count() == 2

    def test_rate_limit(self, source_connector, target_connector, order_transformation):
        source_connector.rate_limit = 1
        source_connector.rate_limit_window = 60
        source_connector.save()

        assert route("msg-1").status == Status.COMPLETED
        result = route("msg-2")

        assert result.status == Status.FAILED
        assert result.retry_scheduled
        assert result.reset_at > timezone.now()
        assert not IntegrationMessage.objects.filter(message_id="msg-2").exists()

    def test_rate_limit_window_resets(self, source_connector):
        source_connector.rate_limit = 1
        source_connector.rate_limit_window = 60
        source_connector.save()
        now = timezone.now()

        assert hub.check_rate_limit("shop", now=now).allowed
        assert not hub.check_rate_limit("shop", now=now + timedelta(seconds=30)).allowed
        assert hub.check_rate_limit("shop", now=now + timedelta(seconds=61)).allowed

    def test_open_circuit_rejects(self, source_connector, target_connector, order_transformation):
        target_connector.circuit_state = Connector.CircuitState.OPEN
        target_connector.circuit_opened_at = timezone.now()
        target_connector.save()

        result = route()

        assert result.status == Status.RETRYING
        assert result.error == "Circuit breaker is open"
        assert not IntegrationMessage.objects.exists()


# =============================================================================
# Circuit Breaker
# =============================================================================

@pytest.mark.django_db
class TestCircuitBreaker:

    def test_opens_at_failure_threshold(self, target_connector):
        hub.record_failure("erp")
        target_connector.refresh_from_db()
        assert target_connector.circuit_state == Connector.CircuitState.CLOSED

        hub.record_failure("erp")
        target_connector.refresh_from_db()
        assert target_connector.circuit_state == Connector.CircuitState.OPEN
        assert target_connector.circuit_opened_at is not None

    def test_half_open_after_timeout_then_closes(self, target_connector):
        hub.record_failure("erp")
        hub.record_failure("erp")
        target_connector.refresh_from_db()

        assert hub.get_circuit_state("erp") == Connector.CircuitState.OPEN
        later = target_connector.circuit_opened_at + timedelta(seconds=31)
        assert hub.get_circuit_state("erp", now=later) == Connector.CircuitState.HALF_OPEN

        hub.record_success("erp")

        target_connector.refresh_from_db()
        assert target_connector.circuit_state == Connector.CircuitState.CLOSED
        assert target_connector.failure_count == 0

    def test_success_resets_failure_count_when_closed(self, target_connector):
        hub.record_failure("erp")
        hub.record_success("erp")
        target_connector.refresh_from_db()
        assert target_connector.failure_count == 0


# =============================================================================
# Retry & Dead Letters
# =============================================================================

@pytest.mark.django_db
class TestRetryAndDeadLetters:

    def test_missing_transformation_retries(self, source_connector, target_connector):
        result = route(type="INVOICE")

        assert result.status == Status.RETRYING
        message = IntegrationMessage.objects.get(message_id="msg-1")
        assert message.retry_count == 1
        assert "No transformation found" in message.last_error

    def test_exhausted_retries_go_to_dead_letter(self, tenant, source_connector, target_connector):
        result = route(type="INVOICE", tenant=tenant, max_retries=0)

        assert result.status == Status.DEAD_LETTER
        assert result.moved_to_dlq
        entry = DeadLetter.objects.get(original_message_id="msg-1")
        assert entry.reason == DeadLetter.Reason.TRANSFORMATION_FAILED
        assert entry.tenant == tenant
        assert entry.retryable
        assert entry.payload == ORDER_PAYLOAD

    def test_retry_queue_processes_due_messages(self, source_connector, target_connector):
        route(type="INVOICE", max_retries=1)

        assert hub.process_retry_queue(now=timezone.now()) == 0
        processed = hub.process_retry_queue(now=timezone.now() + timedelta(minutes=5))

        assert processed == 1
        message = IntegrationMessage.objects.get(message_id="msg-1")
        assert message.status == Status.DEAD_LETTER

    def test_backoff_grows_and_is_capped(self):
        first = hub.backoff_delay_ms(1)
        assert 1000 <= first <= 1200
        assert 4000 <= hub.backoff_delay_ms(3) <= 4800
        assert 60000 <= hub.backoff_delay_ms(20) <= 72000

    def test_reprocess_after_fix(self, tenant, admin_user, source_connector, target_connector):
        route(type="INVOICE", tenant=tenant, max_retries=0)
        entry = DeadLetter.objects.get()
        Transformation.objects.create(
            name="Invoices", source_connector="shop", target_connector="erp",
            source_type="INVOICE", target_type="AR_INVOICE",
            canonical_to_target={"mappings": [{"source": "number", "target": "InvoiceNo"}]},
        )

        result = hub.reprocess_dead_letter(entry, user=admin_user)

        assert result.status == Status.COMPLETED
        entry.refresh_from_db()
        assert entry.reprocessed_by == admin_user
        assert BusinessEvent.objects.filter(event_type=EventTypes.DEAD_LETTER_REPROCESSED).exists()

    def test_non_retryable_entry_is_refused(self):
        entry = DeadLetter.objects.create(
            original_message_id="bad-1", connector="erp",
            reason=DeadLetter.Reason.INVALID_PAYLOAD, retryable=False,
        )
        result = hub.reprocess_dead_letter(entry)
        assert result.error == "Message is not retryable"

    def test_bulk_reprocess_and_stats(self, source_connector, target_connector):
        route("msg-1", type="INVOICE", max_retries=0)
        route("msg-2", type="INVOICE", payload={"number": "2"}, max_retries=0)
        DeadLetter.objects.create(original_message_id="bad-1", connector="crm",
                                  reason=DeadLetter.Reason.INVALID_PAYLOAD, retryable=False)

        stats = hub.dead_letter_stats()
        assert stats["total"] == 3
        assert stats["retryable"] == 2
        assert stats["non_retryable"] == 1
        assert {"connector": "erp", "count": 2} in stats["by_connector"]

        summary = hub.bulk_reprocess(connector="erp")

        # Still no transformation, so both land back in the queue
        assert summary["total"] == 2
        assert summary["failed"] == 2
        assert hub.dead_letter_stats()["reprocessed"] == 2

    def test_failing_message_does_not_block_the_batch(self, source_connector, target_connector,
                                                      order_transformation, monkeypatch):
        due_message("a", minutes_ago=10)
        due_message("b", minutes_ago=5)
        original = hub.process_message

        def fail_first(message):
            if message.message_id == "a":
                raise RuntimeError("boom")
            return original(message)

        monkeypatch.setattr(hub, "process_message", fail_first)

        assert hub.process_retry_queue() == 2
        a = IntegrationMessage.objects.get(message_id="a")
        assert a.status == Status.RETRYING
        assert a.retry_count == 1
        assert a.last_error == "boom"
        assert IntegrationMessage.objects.get(message_id="b").status == Status.COMPLETED

    def test_message_claimed_by_another_run_is_skipped(self, source_connector, target_connector,
                                                       order_transformation, monkeypatch):
        due_message("a", minutes_ago=10)
        due_message("b", minutes_ago=5)
        original = hub.process_message
        seen = []

        def claim_b_elsewhere(message):
            seen.append(message.message_id)
            IntegrationMessage.objects.filter(message_id="b").update(status=Status.PROCESSING)
            return original(message)

        monkeypatch.setattr(hub, "process_message", claim_b_elsewhere)

        assert hub.process_retry_queue() == 1
        assert seen == ["a"]
        assert IntegrationMessage.objects.get(message_id="b").status == Status.PROCESSING

    def test_claim_succeeds_once(self, source_connector, target_connector):
        message = due_message("a", minutes_ago=1)

        assert hub.claim_for_retry(message)
        assert message.status == Status.TRANSFORMING
        assert not hub.claim_for_retry(IntegrationMessage.objects.get(message_id="a"))


# =============================================================================
# Health
# =============================================================================

@pytest.mark.django_db
class TestHealth:

    @pytest.mark.parametrize("successful, expected", [
        (10, Connector.HealthStatus.HEALTHY),
        (7, Connector.HealthStatus.DEGRADED),
        (3, Connector.HealthStatus.UNHEALTHY),
    ])
    def test_status_from_success_rate(self, target_connector, successful, expected):
        target_connector.total_messages = 10
        target_connector.successful_messages = successful
        assert hub.derive_health_status(target_connector) == expected

    def test_open_circuit_is_unhealthy(self, target_connector):
        target_connector.circuit_state = Connector.CircuitState.OPEN
        assert hub.derive_health_status(target_connector) == Connector.HealthStatus.UNHEALTHY

    def test_perform_health_checks(self, source_connector, target_connector):
        assert hub.perform_health_checks() == 2
        target_connector.refresh_from_db()
        assert target_connector.health_status == Connector.HealthStatus.HEALTHY
        assert target_connector.last_health_check is not None
