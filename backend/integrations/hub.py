# integrations/hub.py
"""
Integration hub.

``route_message`` is the entry point: idempotency, the source
connector's rate limit and the target connector's circuit breaker are
checked before a message is stored and processed. Processing transforms
the payload, delivers it through the target adapter and feeds the
circuit breaker and connector stats. Failures are retried with
exponential backoff until they land in the dead letter queue.
"""
import asyncio
import hashlib
import json
import logging
import random
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import IntegrityError, transaction
from django.db.models import Count, F
from django.utils import timezone

from events.emitter import emit_event_no_actor
from events.types import EventTypes
from integrations import transform
from integrations.connectors import ConnectorError, get_adapter
from integrations.models import Connector, ConnectorConfig, DeadLetter, IntegrationMessage
from integrations.vault import VaultError, reveal

logger = logging.getLogger(__name__)

Status = IntegrationMessage.Status
CircuitState = Connector.CircuitState

DUPLICATE_MESSAGE_ID = "A message with this id already exists."


@dataclass
class ProcessingResult:
    message_id: str
    status: str
    error: str = ""
    retry_scheduled: bool = False
    moved_to_dlq: bool = False
    reset_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: Optional[int]
    reset_at: datetime


def hash_payload(payload: dict) -> str:
    normalized = json.dumps(payload, sort_keys=True, separators=(",", ":"), cls=DjangoJSONEncoder)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


# =============================================================================
# Idempotency and rate limiting
# =============================================================================

def is_duplicate(idempotency_key: str, payload: dict) -> bool:
    if not idempotency_key:
        return False
    return (
        IntegrationMessage.objects
        .filter(idempotency_key=idempotency_key, processed_hash=hash_payload(payload))
        .exclude(status=Status.FAILED)
        .exists()
    )


def message_id_taken(message_id: str) -> bool:
    return IntegrationMessage.objects.filter(message_id=message_id).exists()


@transaction.atomic
def check_rate_limit(connector_code: str, now=None) -> RateLimitResult:
    now = now or timezone.now()
    connector = Connector.objects.select_for_update().filter(code=connector_code).first()
    if connector is None or not connector.rate_limit or not connector.rate_limit_window:
        return RateLimitResult(allowed=True, remaining=None, reset_at=now)

    window = timedelta(seconds=connector.rate_limit_window)
    if connector.window_start is None or now - connector.window_start > window:
        connector.window_start = now
        connector.current_count = 1
        connector.save(update_fields=["window_start", "current_count"])
        return RateLimitResult(allowed=True, remaining=connector.rate_limit - 1, reset_at=now + window)

    reset_at = connector.window_start + window
    if connector.current_count < connector.rate_limit:
        connector.current_count += 1
        connector.save(update_fields=["current_count"])
        return RateLimitResult(allowed=True, remaining=connector.rate_limit - connector.current_count, reset_at=reset_at)

    return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)


def reset_rate_limit(connector: Connector) -> Connector:
    connector.window_start = None
    connector.current_count = 0
    connector.save(update_fields=["window_start", "current_count", "updated_at"])
    return connector


# =============================================================================
# Circuit breaker
# =============================================================================

def transition_circuit(connector: Connector, state: str) -> None:
    now = timezone.now()
    connector.circuit_state = state
    fields = ["circuit_state", "success_count", "updated_at"]
    connector.success_count = 0
    if state == CircuitState.OPEN:
        connector.circuit_opened_at = now
        connector.last_failure_at = now
        fields += ["circuit_opened_at", "last_failure_at"]
        logger.warning("Circuit breaker opened", extra={"connector": connector.code})
    elif state == CircuitState.HALF_OPEN:
        connector.half_open_at = now
        fields.append("half_open_at")
        logger.info("Circuit breaker half-open", extra={"connector": connector.code})
    else:
        connector.failure_count = 0
        connector.circuit_opened_at = None
        connector.half_open_at = None
        fields += ["failure_count", "circuit_opened_at", "half_open_at"]
        logger.info("Circuit breaker closed", extra={"connector": connector.code})
    connector.save(update_fields=fields)


def get_circuit_state(connector_code: str, now=None) -> str:
    connector = Connector.objects.filter(code=connector_code).first()
    if connector is None:
        return CircuitState.CLOSED
    if connector.circuit_state == CircuitState.OPEN and connector.circuit_opened_at:
        now = now or timezone.now()
        timeout = timedelta(seconds=getattr(settings, "INTEGRATION_CIRCUIT_OPEN_SECONDS", 30))
        if now - connector.circuit_opened_at > timeout:
            transition_circuit(connector, CircuitState.HALF_OPEN)
            return CircuitState.HALF_OPEN
    return connector.circuit_state


def record_failure(connector_code: str) -> None:
    connector = Connector.objects.filter(code=connector_code).first()
    if connector is None:
        return
    connector.failure_count += 1
    if connector.failure_count >= connector.failure_threshold:
        connector.save(update_fields=["failure_count"])
        transition_circuit(connector, CircuitState.OPEN)
        return
    connector.success_count = 0
    connector.last_failure_at = timezone.now()
    connector.save(update_fields=["failure_count", "success_count", "last_failure_at", "updated_at"])


def record_success(connector_code: str) -> None:
    connector = Connector.objects.filter(code=connector_code).first()
    if connector is None:
        return
    if connector.circuit_state == CircuitState.HALF_OPEN:
        connector.success_count += 1
        if connector.success_count >= connector.success_threshold:
            transition_circuit(connector, CircuitState.CLOSED)
        else:
            connector.save(update_fields=["success_count", "updated_at"])
    elif connector.circuit_state == CircuitState.CLOSED and connector.failure_count:
        connector.failure_count = 0
        connector.save(update_fields=["failure_count", "updated_at"])


def reset_circuit(connector: Connector) -> Connector:
    transition_circuit(connector, CircuitState.CLOSED)
    return connector


def increment_stats(connector_code: str, success: bool) -> None:
    updates = {"total_messages": F("total_messages") + 1}
    if success:
        updates["successful_messages"] = F("successful_messages") + 1
    else:
        updates["failed_messages"] = F("failed_messages") + 1
    Connector.objects.filter(code=connector_code).update(**updates)


# =============================================================================
# Routing and processing
# =============================================================================

def route_message(
    *,
    message_id: str,
    source_connector: str,
    target_connector: str,
    type: str,
    source_payload: dict,
    tenant=None,
    direction: str = IntegrationMessage.Direction.OUTBOUND,
    priority: str = IntegrationMessage.Priority.NORMAL,
    correlation_id: str = "",
    idempotency_key: str = "",
    max_retries: int = 3,
    metadata: dict = None,
) -> ProcessingResult:
    if is_duplicate(idempotency_key, source_payload):
        logger.debug("Duplicate integration message", extra={"idempotency_key": idempotency_key})
        return ProcessingResult(message_id=message_id, status=Status.COMPLETED,
                                error="Duplicate message - already processed")

    limit = check_rate_limit(source_connector)
    if not limit.allowed:
        logger.warning("Connector rate limit exceeded", extra={"connector": source_connector})
        return ProcessingResult(
            message_id=message_id,
            status=Status.FAILED,
            error=f"Rate limit exceeded. Reset at: {limit.reset_at.isoformat()}",
            retry_scheduled=True,
            reset_at=limit.reset_at,
        )

    if get_circuit_state(target_connector) == CircuitState.OPEN:
        logger.warning("Circuit breaker open", extra={"connector": target_connector})
        return ProcessingResult(message_id=message_id, status=Status.RETRYING,
                                error="Circuit breaker is open", retry_scheduled=True)

    if message_id_taken(message_id):
        return ProcessingResult(message_id=message_id, status=Status.FAILED, error=DUPLICATE_MESSAGE_ID)

    try:
        with transaction.atomic():
            message = IntegrationMessage.objects.create(
                message_id=message_id,
                correlation_id=correlation_id or "",
                tenant=tenant,
                source_connector=source_connector,
                target_connector=target_connector,
                direction=direction,
                type=type,
                priority=priority,
                source_payload=source_payload,
                idempotency_key=idempotency_key or "",
                processed_hash=hash_payload(source_payload),
                max_retries=max_retries,
                metadata=metadata or {},
                status=Status.PENDING,
            )
    except IntegrityError:
        logger.warning("Integration message id taken concurrently", extra={"message_id": message_id})
        return ProcessingResult(message_id=message_id, status=Status.FAILED, error=DUPLICATE_MESSAGE_ID)
    return process_message(message)


def _set(message: IntegrationMessage, **fields) -> None:
    for name, value in fields.items():
        setattr(message, name, value)
    message.save(update_fields=list(fields))


def deliver(message: IntegrationMessage):
    """Send target_payload through the tenant's primary config; None when there is nothing to send to."""
    connector = Connector.objects.filter(code=message.target_connector, is_active=True).first()
    if connector is None or message.tenant_id is None:
        return None
    config = (
        ConnectorConfig.objects
        .filter(tenant_id=message.tenant_id, connector=connector, is_active=True, is_primary=True)
        .select_related("credential_vault")
        .first()
    )
    if config is None:
        return None
    credentials = {}
    if config.credential_vault is not None:
        credentials = reveal(config.credential_vault, connector_code=connector.code)
    adapter = get_adapter(connector, config.config, credentials)
    return asyncio.run(adapter.send(message.target_payload or {}, message.type))


def process_message(message: IntegrationMessage) -> ProcessingResult:
    _set(message, status=Status.TRANSFORMING)

    result = transform.transform_payload(
        message.source_connector,
        message.target_connector,
        message.type,
        message.source_payload,
    )
    if not result.success:
        error = "; ".join(result.errors)
        _set(message, status=Status.FAILED, last_error=error,
             error_details={"transform_errors": result.errors}, failed_at=timezone.now())
        if message.retry_count >= message.max_retries:
            move_to_dead_letter(message, DeadLetter.Reason.TRANSFORMATION_FAILED, error)
            return ProcessingResult(message_id=message.message_id, status=Status.DEAD_LETTER,
                                    error=error, moved_to_dlq=True)
        schedule_retry(message)
        return ProcessingResult(message_id=message.message_id, status=Status.RETRYING,
                                error=error, retry_scheduled=True)

    _set(
        message,
        canonical_payload=result.canonical_payload,
        target_payload=result.target_payload,
        transformed_at=timezone.now(),
        status=Status.ROUTING,
    )
    _set(message, status=Status.PROCESSING)

    try:
        response = deliver(message)
    except (ConnectorError, VaultError) as exc:
        logger.error("Integration delivery failed",
                     extra={"message_id": message.message_id, "connector": message.target_connector, "error": str(exc)})
        return handle_processing_error(message, exc)
    except Exception as exc:
        logger.exception("Unexpected integration delivery error",
                         extra={"message_id": message.message_id, "connector": message.target_connector})
        return handle_processing_error(message, exc)

    now = timezone.now()
    fields = {"status": Status.COMPLETED, "processed_at": now, "completed_at": now}
    if response is not None:
        fields["metadata"] = {**message.metadata, "delivery": {"status": response.get("status")}}
    _set(message, **fields)
    record_success(message.target_connector)
    increment_stats(message.target_connector, True)
    return ProcessingResult(message_id=message.message_id, status=Status.COMPLETED)


def handle_processing_error(message: IntegrationMessage, exc: Exception) -> ProcessingResult:
    record_failure(message.target_connector)
    _set(message, status=Status.FAILED, last_error=str(exc),
         error_details={"type": type(exc).__name__, "error": str(exc)}, failed_at=timezone.now())

    if message.retry_count >= message.max_retries:
        move_to_dead_letter(message, DeadLetter.Reason.MAX_RETRIES_EXCEEDED, str(exc))
        return ProcessingResult(message_id=message.message_id, status=Status.DEAD_LETTER,
                                error=str(exc), moved_to_dlq=True)

    schedule_retry(message)
    return ProcessingResult(message_id=message.message_id, status=Status.RETRYING,
                            error=str(exc), retry_scheduled=True)


# =============================================================================
# Retry
# =============================================================================

def backoff_delay_ms(retry_count: int) -> int:
    config = getattr(settings, "INTEGRATION_RETRY", {})
    base = config.get("BASE_DELAY_MS", 1000)
    multiplier = config.get("MULTIPLIER", 2)
    ceiling = config.get("MAX_DELAY_MS", 60000)
    jitter = config.get("JITTER", 0.2)
    delay = min(base * multiplier ** (retry_count - 1), ceiling)
    return int(delay + delay * jitter * random.random())


def schedule_retry(message: IntegrationMessage) -> None:
    retry_count = message.retry_count + 1
    if retry_count > message.max_retries:
        move_to_dead_letter(message, DeadLetter.Reason.MAX_RETRIES_EXCEEDED, message.last_error or "Unknown error")
        return
    next_retry_at = timezone.now() + timedelta(milliseconds=backoff_delay_ms(retry_count))
    _set(message, status=Status.RETRYING, retry_count=retry_count, next_retry_at=next_retry_at)
    logger.debug("Integration retry scheduled",
                 extra={"message_id": message.message_id, "retry": retry_count, "next_retry_at": next_retry_at.isoformat()})


def claim_for_retry(message: IntegrationMessage) -> bool:
    """Move a due RETRYING message to TRANSFORMING; False when another worker got there first."""
    claimed = (
        IntegrationMessage.objects
        .filter(pk=message.pk, status=Status.RETRYING)
        .update(status=Status.TRANSFORMING)
    )
    if claimed:
        message.status = Status.TRANSFORMING
    return bool(claimed)


def process_retry_queue(now=None) -> int:
    """Process due retries; returns how many messages this run claimed."""
    now = now or timezone.now()
    batch = getattr(settings, "INTEGRATION_RETRY_BATCH_SIZE", 100)
    due = list(
        IntegrationMessage.objects
        .filter(status=Status.RETRYING, next_retry_at__lte=now)
        .order_by("next_retry_at")[:batch]
    )
    processed = 0
    for message in due:
        if not claim_for_retry(message):
            continue
        processed += 1
        try:
            process_message(message)
        except Exception as exc:
            logger.exception("Retry processing failed", extra={"message_id": message.message_id})
            handle_processing_error(message, exc)
    return processed


# =============================================================================
# Dead letter queue
# =============================================================================

def move_to_dead_letter(message: IntegrationMessage, reason: str, error_message: str = "") -> DeadLetter:
    entry = DeadLetter.objects.create(
        tenant_id=message.tenant_id,
        original_message_id=message.message_id,
        connector=message.target_connector,
        reason=reason,
        error_message=error_message or "",
        error_stack=json.dumps(message.error_details) if message.error_details else "",
        payload=message.source_payload,
        metadata=message.metadata or {},
        retryable=reason not in DeadLetter.NON_RETRYABLE,
    )
    _set(message, status=Status.DEAD_LETTER, dlq_reason=reason, moved_to_dlq_at=timezone.now())
    increment_stats(message.target_connector, False)
    logger.warning("Integration message moved to dead letter queue",
                   extra={"message_id": message.message_id, "reason": reason})
    return entry


def reprocess_dead_letter(entry: DeadLetter, user=None) -> ProcessingResult:
    if not entry.retryable:
        return ProcessingResult(message_id=entry.original_message_id, status=Status.FAILED,
                                error="Message is not retryable")

    now = timezone.now()
    entry.reprocessed_at = now
    entry.reprocessed_by = user
    entry.save(update_fields=["reprocessed_at", "reprocessed_by"])

    message = IntegrationMessage.objects.filter(message_id=entry.original_message_id).first()
    if message is None:
        return ProcessingResult(message_id=entry.original_message_id, status=Status.FAILED,
                                error="Original message not found")

    _set(message, status=Status.PENDING, retry_count=0, last_error="", error_details=None,
         dlq_reason="", moved_to_dlq_at=None, next_retry_at=None)
    emit_event_no_actor(
        tenant=entry.tenant,
        user=user,
        event_type=EventTypes.DEAD_LETTER_REPROCESSED,
        aggregate_type="DeadLetter",
        aggregate_id=entry.public_id,
        data={"message_id": entry.original_message_id, "reason": entry.reason, "at": now.isoformat()},
    )
    return process_message(message)


def bulk_reprocess(connector: str = None, reason: str = None, limit: int = 100, user=None, tenant=None) -> dict:
    qs = DeadLetter.objects.filter(retryable=True, reprocessed_at__isnull=True)
    if tenant is not None:
        qs = qs.filter(tenant=tenant)
    if connector:
        qs = qs.filter(connector=connector)
    if reason:
        qs = qs.filter(reason=reason)
    entries = list(qs.order_by("created_at")[:limit])

    summary = {"total": len(entries), "successful": 0, "failed": 0, "errors": []}
    for entry in entries:
        result = reprocess_dead_letter(entry, user=user)
        if result.status == Status.COMPLETED:
            summary["successful"] += 1
        else:
            summary["failed"] += 1
            summary["errors"].append({"id": str(entry.public_id), "error": result.error or "Unknown error"})
    return summary


def dead_letter_stats(tenant=None) -> dict:
    qs = DeadLetter.objects.all()
    if tenant is not None:
        qs = qs.filter(tenant=tenant)
    total = qs.count()
    retryable = qs.filter(retryable=True, reprocessed_at__isnull=True).count()
    reprocessed = qs.filter(reprocessed_at__isnull=False).count()
    open_entries = qs.filter(reprocessed_at__isnull=True)
    return {
        "total": total,
        "retryable": retryable,
        "non_retryable": total - retryable - reprocessed,
        "reprocessed": reprocessed,
        "by_connector": [
            {"connector": row["connector"], "count": row["count"]}
            for row in open_entries.values("connector").annotate(count=Count("id")).order_by("connector")
        ],
        "by_reason": [
            {"reason": row["reason"], "count": row["count"]}
            for row in open_entries.values("reason").annotate(count=Count("id")).order_by("reason")
        ],
    }


# =============================================================================
# Health
# =============================================================================

def connector_health(connector: Connector, details: bool = True) -> dict:
    health = {
        "code": connector.code,
        "name": connector.name,
        "status": connector.health_status,
        "circuit_state": connector.circuit_state,
        "is_active": connector.is_active,
        "last_health_check": connector.last_health_check,
        "metrics": {
            "total_messages": connector.total_messages,
            "successful_messages": connector.successful_messages,
            "failed_messages": connector.failed_messages,
            "success_rate": connector.success_rate,
        },
    }
    if details:
        health["health_details"] = connector.health_details
    return health


def all_connectors_health() -> list[dict]:
    return [connector_health(c, details=False) for c in Connector.objects.filter(is_active=True)]


def derive_health_status(connector: Connector) -> str:
    if connector.circuit_state == CircuitState.OPEN:
        return Connector.HealthStatus.UNHEALTHY
    if connector.circuit_state == CircuitState.HALF_OPEN:
        return Connector.HealthStatus.DEGRADED
    if connector.total_messages:
        rate = connector.successful_messages / connector.total_messages
        if rate < 0.5:
            return Connector.HealthStatus.UNHEALTHY
        if rate < 0.9:
            return Connector.HealthStatus.DEGRADED
    return Connector.HealthStatus.HEALTHY


def perform_health_checks() -> int:
    now = timezone.now()
    connectors = list(Connector.objects.filter(is_active=True))
    for connector in connectors:
        connector.health_status = derive_health_status(connector)
        connector.last_health_check = now
        connector.save(update_fields=["health_status", "last_health_check"])
    return len(connectors)
