"""
Adapter lookup by connector type.

A config may name its adapter explicitly with ``"adapter": "<name>"``,
which wins over the connector type.
"""
from integrations.connectors.base import BaseConnector, ConnectorError
from integrations.connectors.dynamics import DynamicsConnector
from integrations.connectors.rest import RestConnector
from integrations.models import Connector

ADAPTERS = {
    Connector.Type.API: RestConnector,
    Connector.Type.WEBHOOK: RestConnector,
    Connector.Type.ERP: DynamicsConnector,
}

NAMED_ADAPTERS = {
    "rest": RestConnector,
    "dynamics365": DynamicsConnector,
}

DEFAULT_ADAPTER = RestConnector


def register_adapter(connector_type: str, adapter_class) -> None:
    ADAPTERS[connector_type] = adapter_class


def get_adapter(connector: Connector, config: dict = None, credentials: dict = None) -> BaseConnector:
    name = (config or {}).get("adapter") or (connector.config or {}).get("adapter")
    if name:
        adapter_class = NAMED_ADAPTERS.get(name)
        if adapter_class is None:
            raise ConnectorError(f"Unknown connector adapter '{name}'.")
    else:
        adapter_class = ADAPTERS.get(connector.type, DEFAULT_ADAPTER)
    return adapter_class(connector, config=config, credentials=credentials)
