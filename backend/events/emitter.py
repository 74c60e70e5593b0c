# events/emitter.py
"""
Event emission functions.

All business events MUST be emitted through these functions to ensure:
1. Event type validation against the registry (events/types.py)
2. Idempotency handling
3. Audit trail (caused_by_user, metadata)
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.db import IntegrityError, transaction
from django.utils import timezone

from events.models import BusinessEvent
from events.types import validate_event_type

logger = logging.getLogger(__name__)


def idempotency_hash(prefix: str, payload: dict) -> str:
    normalized = json.dumps(payload, sort_keys=True, separators=(",", ":"), cls=DjangoJSONEncoder).encode()
    digest = hashlib.sha256(normalized).hexdigest()[:16]
    return f"{prefix}:{digest}"


def _json_safe(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Round-trip through DjangoJSONEncoder so Decimals, UUIDs and datetimes serialize."""
    if not data:
        return {}
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


def _emit_event_core(
    *,
    tenant,
    user,
    event_type: str,
    aggregate_type: str,
    aggregate_id: Any,
    data: Optional[Dict[str, Any]],
    idempotency_key: Optional[str],
    metadata: Optional[Dict[str, Any]],
    occurred_at: Optional[datetime],
) -> BusinessEvent:
    validate_event_type(event_type)

    data = _json_safe(data)
    aggregate_id = str(aggregate_id)
    if not idempotency_key:
        idempotency_key = idempotency_hash(event_type, {
            "aggregate_type": aggregate_type,
            "aggregate_id": aggregate_id,
            "data": data,
        })

    existing = BusinessEvent.objects.filter(tenant=tenant, idempotency_key=idempotency_key).first()
    if existing:
        return existing

    try:
        with transaction.atomic():
            event = BusinessEvent.objects.create(
                tenant=tenant,
                event_type=event_type,
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                data=data,
                metadata=_json_safe(metadata),
                caused_by_user=user,
                occurred_at=occurred_at or timezone.now(),
                idempotency_key=idempotency_key,
            )
    except IntegrityError:
        # Concurrent duplicate: the other writer won
        return BusinessEvent.objects.get(tenant=tenant, idempotency_key=idempotency_key)

    logger.debug(
        "Event emitted",
        extra={"event_type": event_type, "aggregate_type": aggregate_type, "aggregate_id": aggregate_id},
    )
    return event


def emit_event(
    actor,
    event_type: str,
    aggregate_type: str,
    aggregate_id: Any,
    data: Optional[Dict[str, Any]] = None,
    idempotency_key: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> BusinessEvent:
    """
    Emit an event on behalf of an actor.

    The event is scoped to ``actor.tenant`` and attributed to ``actor.user``.
    Re-emitting with the same idempotency key returns the existing event.
    """
    return _emit_event_core(
        tenant=actor.tenant,
        user=actor.user,
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        data=data,
        idempotency_key=idempotency_key,
        metadata=metadata,
        occurred_at=occurred_at,
    )


def emit_event_no_actor(
    tenant,
    user,
    event_type: str,
    aggregate_type: str,
    aggregate_id: Any,
    data: Optional[Dict[str, Any]] = None,
    idempotency_key: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> BusinessEvent:
    """Emit an event outside a request (registration, scheduled tasks)."""
    return _emit_event_core(
        tenant=tenant,
        user=user,
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        data=data,
        idempotency_key=idempotency_key,
        metadata=metadata,
        occurred_at=None,
    )
