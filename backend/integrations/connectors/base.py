"""
Connector adapter interface.

Adapters are async; the hub and commands drive them with ``asyncio.run``
from synchronous Django code.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


class ConnectorError(Exception):
    """Base error raised by connector adapters."""

    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ConnectorAuthError(ConnectorError):
    pass


class ConnectorNotFound(ConnectorError):
    pass


class ConnectorRateLimited(ConnectorError):
    def __init__(self, message: str, retry_after: float = 60):
        super().__init__(message, 429)
        self.retry_after = retry_after


@dataclass
class ConnectionTestResult:
    success: bool
    message: str = ""
    latency_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)


class BaseConnector(ABC):
    """
    One adapter instance per call site.

    ``config`` is the tenant's ConnectorConfig.config merged over the
    connector's defaults; ``credentials`` is the decrypted vault entry.
    """

    def __init__(self, connector, config: Optional[dict] = None, credentials: Optional[dict] = None):
        self.connector = connector
        self.config = {**(connector.config or {}), **(config or {})}
        self.credentials = credentials or {}

    @property
    def code(self) -> str:
        return self.connector.code

    @abstractmethod
    async def test_connection(self) -> ConnectionTestResult:
        ...

    @abstractmethod
    async def send(self, payload: dict, message_type: Optional[str] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def fetch(self, resource: str, params: Optional[dict] = None) -> Union[Dict[str, Any], List[Any]]:
        ...
