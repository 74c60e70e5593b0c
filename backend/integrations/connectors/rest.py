"""
Generic REST connector built on aiohttp.

Config keys (all optional unless noted):

    base_url            required
    auth                {"type": "none|basic|bearer|api_key|oauth2", ...}
    endpoints           {"health": "/health", "send": "/messages", "<message type>": "/path"}
    headers             extra request headers
    timeout             seconds per request (30)
    max_retries         retries on 429/5xx and network errors (3)
    retry_base_delay    seconds, doubled per attempt (1.0)
    retry_max_delay     seconds (30)
    pagination          {"type": "offset|page|cursor|link", ...}

Credentials supply the secrets the auth type needs: username/password,
token, api_key, or client_id/client_secret for oauth2.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from integrations.connectors.base import (
    BaseConnector,
    ConnectionTestResult,
    ConnectorAuthError,
    ConnectorError,
    ConnectorNotFound,
    ConnectorRateLimited,
)

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)
DEFAULT_ITEM_KEYS = ("items", "data", "results", "value")

# (token_url, client_id) -> (access_token, expires_at monotonic)
_token_cache: Dict[tuple, tuple] = {}


def clear_token_cache() -> None:
    _token_cache.clear()


@dataclass
class RestResponse:
    status: int
    data: Any
    links: Dict[str, str] = field(default_factory=dict)


def _dig(data: Any, path: str):
    for key in path.split("."):
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class RestConnector(BaseConnector):
    default_headers: Dict[str, str] = {}

    @property
    def base_url(self) -> str:
        base_url = self.config.get("base_url")
        if not base_url:
            raise ConnectorError(f"Connector '{self.code}' has no base_url configured.")
        return base_url.rstrip("/")

    @property
    def auth_config(self) -> dict:
        return self.config.get("auth") or {}

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _endpoint(self, name: str, default: str) -> str:
        return (self.config.get("endpoints") or {}).get(name, default)

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    async def _oauth2_token(self, session: aiohttp.ClientSession) -> str:
        auth = self.auth_config
        token_url = auth.get("token_url") or self.credentials.get("token_url")
        client_id = self.credentials.get("client_id") or auth.get("client_id")
        if not token_url or not client_id:
            raise ConnectorAuthError("OAuth2 requires token_url and client_id.")

        cache_key = (token_url, client_id)
        cached = _token_cache.get(cache_key)
        if cached and cached[1] > time.monotonic():
            return cached[0]

        form = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": self.credentials.get("client_secret", ""),
        }
        scope = auth.get("scope") or self.credentials.get("scope")
        if scope:
            form["scope"] = scope

        try:
            async with session.post(token_url, data=form) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise ConnectorAuthError(f"OAuth2 token request failed: {response.status}", response.status, body)
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ConnectorAuthError(f"OAuth2 token request failed: {exc}") from exc
        except ValueError as exc:
            raise ConnectorAuthError("OAuth2 token response was not JSON.") from exc

        token = payload.get("access_token")
        if not token:
            raise ConnectorAuthError("OAuth2 token response had no access_token.")
        expires_in = int(payload.get("expires_in", 3600))
        # Refresh a minute early
        _token_cache[cache_key] = (token, time.monotonic() + max(expires_in - 60, 0))
        return token

    async def _auth(self, session: aiohttp.ClientSession):
        """Return (headers, params, BasicAuth or None) for the configured auth type."""
        auth = self.auth_config
        kind = (auth.get("type") or "none").lower()
        headers, params, basic = {}, {}, None

        if kind == "basic":
            basic = aiohttp.BasicAuth(self.credentials.get("username", ""), self.credentials.get("password", ""))
        elif kind == "bearer":
            headers["Authorization"] = f"Bearer {self.credentials.get('token', '')}"
        elif kind == "api_key":
            key = self.credentials.get("api_key", "")
            if auth.get("location", "header") == "query":
                params[auth.get("param_name", "api_key")] = key
            else:
                headers[auth.get("header_name", "X-API-Key")] = key
        elif kind == "oauth2":
            headers["Authorization"] = f"Bearer {await self._oauth2_token(session)}"
        elif kind != "none":
            raise ConnectorAuthError(f"Unsupported auth type: {kind}")
        return headers, params, basic

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def _delay(self, attempt: int) -> float:
        base = float(self.config.get("retry_base_delay", 1.0))
        return min(base * (2 ** attempt), float(self.config.get("retry_max_delay", 30)))

    async def _request(self, session: aiohttp.ClientSession, method: str, path: str,
                       params: Optional[dict] = None, json: Any = None,
                       headers: Optional[dict] = None) -> RestResponse:
        url = self._url(path)
        max_retries = int(self.config.get("max_retries", 3))
        auth_headers, auth_params, basic = await self._auth(session)
        request_headers = {
            "Accept": "application/json",
            **self.default_headers,
            **(self.config.get("headers") or {}),
            **(headers or {}),
            **auth_headers,
        }
        query = {**auth_params, **(params or {})}

        for attempt in range(max_retries + 1):
            try:
                async with session.request(method, url, headers=request_headers, params=query or None,
                                           json=json, auth=basic) as response:
                    text = await response.text()

                    if response.status < 400:
                        data = None
                        if text:
                            try:
                                data = await response.json(content_type=None)
                            except ValueError:
                                data = text
                        links = {
                            str(rel): str(link.get("url"))
                            for rel, link in response.links.items()
                        }
                        return RestResponse(status=response.status, data=data, links=links)

                    if response.status in (401, 403):
                        raise ConnectorAuthError(f"Authentication failed ({response.status})", response.status, text)
                    if response.status == 404:
                        raise ConnectorNotFound(f"Resource not found: {url}", response.status, text)

                    if response.status in RETRY_STATUSES and attempt < max_retries:
                        delay = self._delay(attempt)
                        if response.status == 429 and response.headers.get("Retry-After", "").isdigit():
                            delay = min(float(response.headers["Retry-After"]), float(self.config.get("retry_max_delay", 30)))
                        logger.warning(
                            "Connector request failed, retrying",
                            extra={"connector": self.code, "status": response.status, "attempt": attempt + 1, "delay": delay},
                        )
                        await asyncio.sleep(delay)
                        continue

                    if response.status == 429:
                        retry_after = response.headers.get("Retry-After", "")
                        raise ConnectorRateLimited(
                            "Rate limit exceeded",
                            retry_after=float(retry_after) if retry_after.isdigit() else 60,
                        )
                    raise ConnectorError(f"API error {response.status}", response.status, text)

            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                if attempt < max_retries:
                    delay = self._delay(attempt)
                    logger.warning(
                        "Connector request error, retrying",
                        extra={"connector": self.code, "error": str(exc), "attempt": attempt + 1},
                    )
                    await asyncio.sleep(delay)
                    continue
                raise ConnectorError(f"Request failed after {max_retries} retries: {exc}") from exc

        raise ConnectorError("Request failed.")

    def _session(self) -> aiohttp.ClientSession:
        timeout = aiohttp.ClientTimeout(total=float(self.config.get("timeout", 30)))
        return aiohttp.ClientSession(timeout=timeout)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def test_connection(self) -> ConnectionTestResult:
        started = time.monotonic()
        try:
            async with self._session() as session:
                response = await self._request(session, "GET", self._endpoint("health", "/"))
        except ConnectorError as exc:
            return ConnectionTestResult(
                success=False,
                message=str(exc),
                latency_ms=round((time.monotonic() - started) * 1000, 2),
                details={"status_code": exc.status_code},
            )
        return ConnectionTestResult(
            success=True,
            message="Connection successful",
            latency_ms=round((time.monotonic() - started) * 1000, 2),
            details={"status_code": response.status},
        )

    async def send(self, payload: dict, message_type: Optional[str] = None) -> Dict[str, Any]:
        path = self._endpoint(message_type, None) if message_type else None
        path = path or self._endpoint("send", "/")
        async with self._session() as session:
            response = await self._request(session, "POST", path, json=payload)
        return {"status": response.status, "data": response.data}

    async def fetch(self, resource: str, params: Optional[dict] = None):
        async with self._session() as session:
            response = await self._request(session, "GET", self._endpoint(resource, resource), params=params)
        return response.data

    def _items(self, data: Any) -> List[Any]:
        items_path = (self.config.get("pagination") or {}).get("items_path")
        if items_path:
            return _dig(data, items_path) or []
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in DEFAULT_ITEM_KEYS:
                if isinstance(data.get(key), list):
                    return data[key]
        return []

    async def fetch_all(self, resource: str, params: Optional[dict] = None) -> List[Any]:
        """Follow pagination until a short or empty page, or max_pages."""
        pagination = self.config.get("pagination") or {}
        kind = pagination.get("type", "offset")
        page_size = int(pagination.get("page_size", 100))
        max_pages = int(pagination.get("max_pages", 100))
        params = dict(params or {})
        path = self._endpoint(resource, resource)

        results: List[Any] = []
        async with self._session() as session:
            offset, page, cursor, next_url = 0, 1, None, None
            for _ in range(max_pages):
                query = dict(params)
                if kind == "offset":
                    query[pagination.get("limit_param", "limit")] = page_size
                    query[pagination.get("offset_param", "offset")] = offset
                elif kind == "page":
                    query[pagination.get("page_size_param", "page_size")] = page_size
                    query[pagination.get("page_param", "page")] = page
                elif kind == "cursor" and cursor:
                    query[pagination.get("cursor_param", "cursor")] = cursor

                if kind == "link" and next_url:
                    response = await self._request(session, "GET", next_url)
                else:
                    response = await self._request(session, "GET", path, params=query)

                items = self._items(response.data)
                results.extend(items)

                if kind == "cursor":
                    cursor = _dig(response.data, pagination.get("cursor_path", "next_cursor"))
                    if not cursor:
                        break
                elif kind == "link":
                    next_url = response.links.get("next")
                    if not next_url:
                        break
                else:
                    if len(items) < page_size:
                        break
                    offset += page_size
                    page += 1
        return results
