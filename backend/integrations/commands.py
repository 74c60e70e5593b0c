# integrations/commands.py
"""
Integration commands.

Connectors and transformations are platform-wide and need
integrations.operate; configs, credentials, messages and dead letters
belong to the actor's tenant and need integrations.manage.
"""
import asyncio
import logging
import uuid

from django.db import transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounts.commands import CommandResult
from events.emitter import emit_event, emit_event_no_actor
from events.types import EventTypes
from integrations import hub, transform, vault
from integrations.connectors import ConnectionTestResult, get_adapter
from integrations.models import (
    Connector,
    ConnectorConfig,
    ConnectorEvent,
    CredentialVault,
    DeadLetter,
    Transformation,
)

logger = logging.getLogger(__name__)

CONNECTOR_FIELDS = (
    "name", "description", "type", "direction", "config", "capabilities", "rate_limit",
    "rate_limit_window", "failure_threshold", "success_threshold",
)
TRANSFORMATION_FIELDS = (
    "name", "description", "source_connector", "target_connector", "source_type", "target_type",
    "priority", "is_active", "source_to_canonical", "canonical_to_target", "metadata",
)


def log_connector_event(connector, event_type: str, message: str = "", details: dict = None,
                        tenant=None, config=None, user=None) -> ConnectorEvent:
    return ConnectorEvent.objects.create(
        connector=connector,
        tenant=tenant,
        config=config,
        event_type=event_type,
        message=message,
        details=details or {},
        user=user,
    )


def _platform_event(actor, event_type, aggregate_type, aggregate_id, data):
    return emit_event_no_actor(
        tenant=None,
        user=actor.user,
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        data={**data, "at": timezone.now().isoformat()},
    )


# =============================================================================
# Connectors
# =============================================================================

@transaction.atomic
def register_connector(actor: ActorContext, code: str, name: str, type: str, is_active: bool = True,
                       **fields) -> CommandResult:
    require(actor, "integrations.operate")

    code = code.strip()
    if Connector.objects.filter(code=code).exists():
        return CommandResult.fail(f"Connector with code '{code}' already exists.")

    connector = Connector.objects.create(
        code=code,
        name=name,
        type=type,
        is_active=is_active,
        **{k: v for k, v in fields.items() if k in CONNECTOR_FIELDS and v is not None},
    )
    log_connector_event(connector, ConnectorEvent.Type.REGISTERED, f"Connector {code} registered", user=actor.user)
    event = _platform_event(actor, EventTypes.CONNECTOR_REGISTERED, "Connector", connector.public_id,
                            {"code": code, "type": type})
    logger.info("Connector registered", extra={"connector": code})
    return CommandResult.ok(data=connector, event=event)


@transaction.atomic
def update_connector(actor: ActorContext, connector_id, **fields) -> CommandResult:
    require(actor, "integrations.operate")

    connector = Connector.objects.select_for_update().filter(public_id=connector_id).first()
    if connector is None:
        return CommandResult.fail("Connector not found.")

    changed = []
    for field in CONNECTOR_FIELDS:
        if field in fields:
            setattr(connector, field, fields[field])
            changed.append(field)
    connector.save()

    event = _platform_event(actor, EventTypes.CONNECTOR_UPDATED, "Connector", connector.public_id,
                            {"code": connector.code, "fields": changed})
    return CommandResult.ok(data=connector, event=event)


@transaction.atomic
def delete_connector(actor: ActorContext, connector_id) -> CommandResult:
    require(actor, "integrations.operate")

    connector = Connector.objects.filter(public_id=connector_id).first()
    if connector is None:
        return CommandResult.fail("Connector not found.")
    if connector.configs.exists():
        return CommandResult.fail("Cannot delete a connector that has configurations.")

    code = connector.code
    connector.delete()
    event = _platform_event(actor, EventTypes.CONNECTOR_DELETED, "Connector", connector_id, {"code": code})
    return CommandResult.ok(event=event)


@transaction.atomic
def set_connector_active(actor: ActorContext, connector_id, is_active: bool) -> CommandResult:
    require(actor, "integrations.operate")

    connector = Connector.objects.filter(public_id=connector_id).first()
    if connector is None:
        return CommandResult.fail("Connector not found.")

    connector.is_active = is_active
    connector.save(update_fields=["is_active", "updated_at"])
    log_connector_event(
        connector,
        ConnectorEvent.Type.ENABLED if is_active else ConnectorEvent.Type.DISABLED,
        f"Connector {connector.code} {'enabled' if is_active else 'disabled'}",
        user=actor.user,
    )
    event = _platform_event(actor, EventTypes.CONNECTOR_UPDATED, "Connector", connector.public_id,
                            {"code": connector.code, "is_active": is_active})
    return CommandResult.ok(data=connector, event=event)


def reset_connector_circuit(actor: ActorContext, connector_id) -> CommandResult:
    require(actor, "integrations.operate")

    connector = Connector.objects.filter(public_id=connector_id).first()
    if connector is None:
        return CommandResult.fail("Connector not found.")
    hub.reset_circuit(connector)
    event = _platform_event(actor, EventTypes.CONNECTOR_CIRCUIT_RESET, "Connector", connector.public_id,
                            {"code": connector.code})
    return CommandResult.ok(data=connector, event=event)


def reset_connector_rate_limit(actor: ActorContext, connector_id) -> CommandResult:
    require(actor, "integrations.operate")

    connector = Connector.objects.filter(public_id=connector_id).first()
    if connector is None:
        return CommandResult.fail("Connector not found.")
    return CommandResult.ok(data=hub.reset_rate_limit(connector))


# =============================================================================
# Tenant configs
# =============================================================================

def _resolve_credential(actor, credential_id):
    if not credential_id:
        return None, None
    credential = CredentialVault.objects.filter(tenant=actor.tenant, public_id=credential_id).first()
    if credential is None:
        return None, "Credential not found."
    return credential, None


def _unset_other_primaries(config: ConnectorConfig) -> None:
    if config.is_primary:
        ConnectorConfig.objects.filter(
            tenant=config.tenant,
            connector=config.connector,
            is_primary=True,
        ).exclude(pk=config.pk).update(is_primary=False)


@transaction.atomic
def create_config(
    actor: ActorContext,
    connector_id,
    name: str,
    config: dict = None,
    credential_id=None,
    is_primary: bool = False,
    is_active: bool = True,
    enabled_capabilities: list = None,
) -> CommandResult:
    require(actor, "integrations.manage")

    connector = Connector.objects.filter(public_id=connector_id).first()
    if connector is None:
        return CommandResult.fail("Connector not found.")
    if not connector.is_active:
        return CommandResult.fail(f"Connector '{connector.code}' is not active.")

    credential, error = _resolve_credential(actor, credential_id)
    if error:
        return CommandResult.fail(error)

    connector_config = ConnectorConfig.objects.create(
        tenant=actor.tenant,
        connector=connector,
        name=name,
        config=config or {},
        credential_vault=credential,
        is_primary=is_primary,
        is_active=is_active,
        enabled_capabilities=enabled_capabilities or [],
    )
    _unset_other_primaries(connector_config)
    log_connector_event(connector, ConnectorEvent.Type.CONFIGURED, f"Configured as '{name}'",
                        tenant=actor.tenant, config=connector_config, user=actor.user)

    event = emit_event(
        actor,
        EventTypes.CONNECTOR_CONFIGURED,
        "ConnectorConfig",
        connector_config.public_id,
        data={"connector": connector.code, "name": name, "is_primary": is_primary},
    )
    return CommandResult.ok(data=connector_config, event=event)


@transaction.atomic
def update_config(actor: ActorContext, config_id, **fields) -> CommandResult:
    require(actor, "integrations.manage")

    connector_config = (
        ConnectorConfig.objects
        .select_for_update()
        .select_related("connector")
        .filter(tenant=actor.tenant, public_id=config_id)
        .first()
    )
    if connector_config is None:
        return CommandResult.fail("Connector config not found.")

    if "credential_id" in fields:
        credential, error = _resolve_credential(actor, fields.pop("credential_id"))
        if error:
            return CommandResult.fail(error)
        connector_config.credential_vault = credential

    for field in ("name", "config", "is_primary", "is_active", "enabled_capabilities"):
        if field in fields:
            setattr(connector_config, field, fields[field])
    connector_config.save()
    _unset_other_primaries(connector_config)

    event = emit_event(
        actor,
        EventTypes.CONNECTOR_CONFIG_UPDATED,
        "ConnectorConfig",
        connector_config.public_id,
        data={"fields": sorted(fields), "updated_at": connector_config.updated_at.isoformat()},
    )
    return CommandResult.ok(data=connector_config, event=event)


@transaction.atomic
def delete_config(actor: ActorContext, config_id) -> CommandResult:
    require(actor, "integrations.manage")

    connector_config = ConnectorConfig.objects.filter(tenant=actor.tenant, public_id=config_id).first()
    if connector_config is None:
        return CommandResult.fail("Connector config not found.")
    name = connector_config.name
    connector_config.delete()

    event = emit_event(actor, EventTypes.CONNECTOR_CONFIG_DELETED, "ConnectorConfig", config_id, data={"name": name})
    return CommandResult.ok(event=event)


def test_config(actor: ActorContext, config_id) -> CommandResult:
    """Run the adapter's connection test and record the outcome."""
    require(actor, "integrations.manage")

    connector_config = (
        ConnectorConfig.objects
        .select_related("connector", "credential_vault")
        .filter(tenant=actor.tenant, public_id=config_id)
        .first()
    )
    if connector_config is None:
        return CommandResult.fail("Connector config not found.")
    connector = connector_config.connector

    try:
        credentials = {}
        if connector_config.credential_vault is not None:
            credentials = vault.reveal(connector_config.credential_vault, connector_code=connector.code, user=actor.user)
    except vault.VaultError as exc:
        log_connector_event(connector, ConnectorEvent.Type.ERROR, str(exc),
                            tenant=actor.tenant, config=connector_config, user=actor.user)
        return CommandResult.fail(str(exc))

    adapter = get_adapter(connector, connector_config.config, credentials)
    try:
        result = asyncio.run(adapter.test_connection())
    except Exception as exc:
        logger.exception("Connection test raised", extra={"connector": connector.code})
        result = ConnectionTestResult(success=False, message=str(exc), details={"error": type(exc).__name__})

    connector_config.last_tested_at = timezone.now()
    connector_config.last_test_result = result.success
    connector_config.last_test_error = "" if result.success else result.message
    connector_config.save(update_fields=["last_tested_at", "last_test_result", "last_test_error", "updated_at"])

    log_connector_event(connector, ConnectorEvent.Type.TESTED, result.message,
                        details={"latency_ms": result.latency_ms, **result.details},
                        tenant=actor.tenant, config=connector_config, user=actor.user)
    log_connector_event(
        connector,
        ConnectorEvent.Type.CONNECTION_SUCCESS if result.success else ConnectorEvent.Type.CONNECTION_FAILURE,
        result.message,
        tenant=actor.tenant,
        config=connector_config,
        user=actor.user,
    )
    return CommandResult.ok(data=result)


# =============================================================================
# Credentials
# =============================================================================

@transaction.atomic
def create_credential(
    actor: ActorContext,
    name: str,
    type: str,
    data: dict,
    description: str = "",
    access_policy: dict = None,
    rotation_policy: dict = None,
    expires_at=None,
) -> CommandResult:
    require(actor, "integrations.manage")

    if CredentialVault.objects.filter(tenant=actor.tenant, name=name).exists():
        return CommandResult.fail(f"Credential '{name}' already exists.")

    credential = CredentialVault.objects.create(
        tenant=actor.tenant,
        name=name,
        type=type,
        description=description,
        access_policy=access_policy or {},
        rotation_policy=rotation_policy or {},
        expires_at=expires_at,
        created_by=actor.user,
        **vault.encrypt(actor.tenant.id, data),
    )
    event = emit_event(
        actor,
        EventTypes.CREDENTIAL_CREATED,
        "CredentialVault",
        credential.public_id,
        data={"name": name, "type": type},
    )
    return CommandResult.ok(data=credential, event=event)


@transaction.atomic
def update_credential(actor: ActorContext, credential_id, **fields) -> CommandResult:
    require(actor, "integrations.manage")

    credential = CredentialVault.objects.filter(tenant=actor.tenant, public_id=credential_id).first()
    if credential is None:
        return CommandResult.fail("Credential not found.")

    if "name" in fields and fields["name"] != credential.name:
        if CredentialVault.objects.filter(tenant=actor.tenant, name=fields["name"]).exists():
            return CommandResult.fail(f"Credential '{fields['name']}' already exists.")
    for field in ("name", "description", "access_policy", "rotation_policy", "expires_at"):
        if field in fields:
            setattr(credential, field, fields[field])
    credential.save()
    return CommandResult.ok(data=credential)


@transaction.atomic
def rotate_credential(actor: ActorContext, credential_id, data: dict) -> CommandResult:
    require(actor, "integrations.manage")

    credential = CredentialVault.objects.select_for_update().filter(tenant=actor.tenant, public_id=credential_id).first()
    if credential is None:
        return CommandResult.fail("Credential not found.")

    for field, value in vault.encrypt(actor.tenant.id, data).items():
        setattr(credential, field, value)
    credential.rotated_at = timezone.now()
    credential.save()

    for connector_config in credential.configs.select_related("connector"):
        log_connector_event(connector_config.connector, ConnectorEvent.Type.CREDENTIAL_ROTATED,
                            f"Credential '{credential.name}' rotated",
                            tenant=actor.tenant, config=connector_config, user=actor.user)

    event = emit_event(
        actor,
        EventTypes.CREDENTIAL_ROTATED,
        "CredentialVault",
        credential.public_id,
        data={"name": credential.name, "rotated_at": credential.rotated_at.isoformat()},
    )
    return CommandResult.ok(data=credential, event=event)


@transaction.atomic
def delete_credential(actor: ActorContext, credential_id) -> CommandResult:
    require(actor, "integrations.manage")

    credential = CredentialVault.objects.filter(tenant=actor.tenant, public_id=credential_id).first()
    if credential is None:
        return CommandResult.fail("Credential not found.")
    if credential.configs.exists():
        return CommandResult.fail("Cannot delete a credential that is used by connector configs.")

    name = credential.name
    credential.delete()
    event = emit_event(actor, EventTypes.CREDENTIAL_DELETED, "CredentialVault", credential_id, data={"name": name})
    return CommandResult.ok(event=event)


# =============================================================================
# Transformations
# =============================================================================

@transaction.atomic
def create_transformation(actor: ActorContext, **fields) -> CommandResult:
    require(actor, "integrations.operate")

    transformation = Transformation.objects.create(
        **{k: v for k, v in fields.items() if k in TRANSFORMATION_FIELDS}
    )
    event = _platform_event(actor, EventTypes.TRANSFORMATION_CREATED, "Transformation", transformation.public_id, {
        "name": transformation.name,
        "source_connector": transformation.source_connector,
        "target_connector": transformation.target_connector,
    })
    return CommandResult.ok(data=transformation, event=event)


@transaction.atomic
def update_transformation(actor: ActorContext, transformation_id, **fields) -> CommandResult:
    require(actor, "integrations.operate")

    transformation = Transformation.objects.filter(public_id=transformation_id).first()
    if transformation is None:
        return CommandResult.fail("Transformation not found.")
    for field in TRANSFORMATION_FIELDS:
        if field in fields:
            setattr(transformation, field, fields[field])
    transformation.save()

    event = _platform_event(actor, EventTypes.TRANSFORMATION_UPDATED, "Transformation", transformation.public_id,
                            {"fields": sorted(fields)})
    return CommandResult.ok(data=transformation, event=event)


@transaction.atomic
def delete_transformation(actor: ActorContext, transformation_id) -> CommandResult:
    require(actor, "integrations.operate")

    transformation = Transformation.objects.filter(public_id=transformation_id).first()
    if transformation is None:
        return CommandResult.fail("Transformation not found.")
    name = transformation.name
    transformation.delete()
    event = _platform_event(actor, EventTypes.TRANSFORMATION_DELETED, "Transformation", transformation_id,
                            {"name": name})
    return CommandResult.ok(event=event)


def test_transformation(actor: ActorContext, source_connector: str, target_connector: str, source_type: str,
                        payload: dict, target_type: str = None) -> CommandResult:
    require(actor, "integrations.view")
    result = transform.transform_payload(source_connector, target_connector, source_type, payload, target_type)
    if not result.success:
        return CommandResult.fail("; ".join(result.errors))
    return CommandResult.ok(data=result)


# =============================================================================
# Messages and dead letters
# =============================================================================

def send_message(actor: ActorContext, **fields) -> CommandResult:
    require(actor, "integrations.manage")
    fields.setdefault("message_id", None)
    if not fields["message_id"]:
        fields["message_id"] = str(uuid.uuid4())
    result = hub.route_message(tenant=actor.tenant, **fields)
    if result.error == hub.DUPLICATE_MESSAGE_ID:
        return CommandResult.fail(result.error)
    return CommandResult.ok(data=result)


def reprocess_dead_letter(actor: ActorContext, entry_id) -> CommandResult:
    require(actor, "integrations.manage")

    entry = DeadLetter.objects.filter(tenant=actor.tenant, public_id=entry_id).first()
    if entry is None:
        return CommandResult.fail("Dead letter entry not found.")
    if entry.reprocessed_at is not None:
        return CommandResult.fail("Dead letter entry was already reprocessed.")
    result = hub.reprocess_dead_letter(entry, user=actor.user)
    if result.error == "Message is not retryable":
        return CommandResult.fail(result.error)
    return CommandResult.ok(data=result)


def bulk_reprocess_dead_letters(actor: ActorContext, connector: str = None, reason: str = None,
                                limit: int = 100) -> CommandResult:
    require(actor, "integrations.manage")
    summary = hub.bulk_reprocess(connector=connector, reason=reason, limit=limit, user=actor.user, tenant=actor.tenant)
    logger.info("Dead letters reprocessed", extra={k: summary[k] for k in ("total", "successful", "failed")})
    return CommandResult.ok(data=summary)
