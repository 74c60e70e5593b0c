"""
Dynamics 365 (Dataverse Web API) connector.

Speaks OData v4 against ``{organization_url}/api/data/{api_version}`` and
authenticates with an Azure AD client-credentials token scoped to the
organization.

Config keys:

    organization_url    required, e.g. https://acme.crm.dynamics.com
    api_version         v9.2
    tenant_id           Azure AD tenant (credentials may carry it instead)
    authority           https://login.microsoftonline.com
    entity_sets         {"<message type>": "<entity set>"} merged over ENTITY_SETS
    page_size           odata.maxpagesize for fetch_all (100)

Credentials: client_id, client_secret and optionally tenant_id.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from integrations.connectors.base import ConnectorAuthError, ConnectorError, ConnectorRateLimited
from integrations.connectors.rest import RestConnector, RestResponse

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "v9.2"
AZURE_AUTHORITY = "https://login.microsoftonline.com"

ENTITY_SETS = {
    "health": "WhoAmI",
    "ORDER": "salesorders",
    "SALES_ORDER": "salesorders",
    "INVOICE": "invoices",
    "CUSTOMER": "accounts",
    "ACCOUNT": "accounts",
    "PRODUCT": "products",
}


def odata_params(filter: Optional[str] = None, select: Optional[List[str]] = None,
                 expand: Optional[List[str]] = None, orderby: Optional[str] = None,
                 top: Optional[int] = None) -> Dict[str, str]:
    params = {}
    if filter:
        params["$filter"] = filter
    if select:
        params["$select"] = ",".join(select)
    if expand:
        params["$expand"] = ",".join(expand)
    if orderby:
        params["$orderby"] = orderby
    if top:
        params["$top"] = str(top)
    return params


def odata_error_message(body: str) -> str:
    """Pull ``error.code: error.message`` out of an OData error body."""
    try:
        data = json.loads(body or "")
    except ValueError:
        return ""
    error = data.get("error") if isinstance(data, dict) else None
    if not isinstance(error, dict) or not error.get("message"):
        return ""
    if error.get("code"):
        return f"{error['code']}: {error['message']}"
    return error["message"]


class DynamicsConnector(RestConnector):
    default_headers = {
        "OData-MaxVersion": "4.0",
        "OData-Version": "4.0",
        "Prefer": "return=representation",
    }

    @property
    def organization_url(self) -> str:
        url = self.config.get("organization_url")
        if not url:
            raise ConnectorError(f"Connector '{self.code}' has no organization_url configured.")
        return url.rstrip("/")

    @property
    def base_url(self) -> str:
        return f"{self.organization_url}/api/data/{self.config.get('api_version') or DEFAULT_API_VERSION}"

    @property
    def auth_config(self) -> dict:
        tenant_id = self.credentials.get("tenant_id") or self.config.get("tenant_id")
        if not tenant_id:
            raise ConnectorAuthError("Dynamics 365 requires an Azure AD tenant_id.")
        authority = (self.config.get("authority") or AZURE_AUTHORITY).rstrip("/")
        return {
            "type": "oauth2",
            "token_url": f"{authority}/{tenant_id}/oauth2/v2.0/token",
            "scope": f"{self.organization_url}/.default",
        }

    def _endpoint(self, name: str, default: str) -> str:
        entity_sets = {**ENTITY_SETS, **(self.config.get("entity_sets") or {})}
        return (self.config.get("endpoints") or {}).get(name) or entity_sets.get(name, default)

    async def _request(self, session, method: str, path: str,
                       params: Optional[dict] = None, json: Any = None,
                       headers: Optional[dict] = None) -> RestResponse:
        try:
            return await super()._request(session, method, path, params=params, json=json, headers=headers)
        except ConnectorRateLimited:
            raise
        except ConnectorError as exc:
            detail = odata_error_message(exc.response_body)
            if not detail:
                raise
            raise type(exc)(f"{exc}: {detail}", exc.status_code, exc.response_body) from exc

    async def send(self, payload: dict, message_type: Optional[str] = None) -> Dict[str, Any]:
        entity_set = self._endpoint(message_type, None) if message_type else None
        if not entity_set:
            raise ConnectorError(f"No Dynamics 365 entity set mapped for message type '{message_type}'.")
        async with self._session() as session:
            response = await self._request(session, "POST", entity_set, json=payload)
        logger.debug("Dynamics 365 record created", extra={"connector": self.code, "entity_set": entity_set})
        return {"status": response.status, "data": response.data}

    async def fetch_all(self, resource: str, params: Optional[dict] = None) -> List[Any]:
        """Follow @odata.nextLink until the server stops returning one, or max_pages."""
        max_pages = int((self.config.get("pagination") or {}).get("max_pages", 100))
        page_size = int(self.config.get("page_size", 100))
        prefer = {"Prefer": f"odata.maxpagesize={page_size}"}

        results: List[Any] = []
        path, query = self._endpoint(resource, resource), params
        async with self._session() as session:
            for _ in range(max_pages):
                response = await self._request(session, "GET", path, params=query, headers=prefer)
                data = response.data if isinstance(response.data, dict) else {}
                results.extend(data.get("value") or [])
                path, query = data.get("@odata.nextLink"), None
                if not path:
                    break
        return results
