from integrations.connectors.base import (
    BaseConnector,
    ConnectionTestResult,
    ConnectorAuthError,
    ConnectorError,
    ConnectorNotFound,
    ConnectorRateLimited,
)
from integrations.connectors.registry import get_adapter

__all__ = [
    "BaseConnector",
    "ConnectionTestResult",
    "ConnectorAuthError",
    "ConnectorError",
    "ConnectorNotFound",
    "ConnectorRateLimited",
    "get_adapter",
]
