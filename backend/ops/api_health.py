"""
Postman collection health checker.

Walks a Postman v2.1 collection, substitutes ``{{variables}}`` from the
collection and an optional environment file, fires every request
concurrently and reports status and latency per request.
"""
import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)

VARIABLE_RE = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")


@dataclass
class CollectionRequest:
    name: str
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


@dataclass
class RequestResult:
    name: str
    method: str
    url: str
    status: Optional[int]
    duration_ms: float
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error and self.status is not None and self.status < 400


def load_variables(collection: dict, environment: Optional[dict] = None,
                   overrides: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Collection variables, then enabled environment values, then overrides."""
    variables = {v["key"]: str(v.get("value", "")) for v in collection.get("variable", []) if "key" in v}
    if environment:
        for entry in environment.get("values", []):
            if entry.get("enabled", True) and "key" in entry:
                variables[entry["key"]] = str(entry.get("value", ""))
    if overrides:
        variables.update(overrides)
    return variables


def substitute(text: str, variables: Dict[str, str]) -> str:
    """Replace ``{{name}}`` placeholders; unknown names are left untouched."""
    if not text:
        return text
    return VARIABLE_RE.sub(lambda m: variables.get(m.group(1), m.group(0)), text)


def _raw_url(url: Any) -> str:
    if isinstance(url, str):
        return url
    if isinstance(url, dict):
        if url.get("raw"):
            return url["raw"]
        host = ".".join(url.get("host", []))
        path = "/".join(url.get("path", []))
        return f"{url.get('protocol', 'http')}://{host}/{path}"
    return ""


def iter_requests(items: List[dict], variables: Dict[str, str], prefix: str = ""):
    """Flatten nested folders into CollectionRequest objects."""
    for item in items:
        name = f"{prefix}{item.get('name', '')}"
        if "item" in item:
            yield from iter_requests(item["item"], variables, prefix=f"{name} / ")
            continue
        request = item.get("request")
        if not request:
            continue
        if isinstance(request, str):
            request = {"method": "GET", "url": request}

        headers = {
            h["key"]: substitute(str(h.get("value", "")), variables)
            for h in request.get("header", [])
            if "key" in h and not h.get("disabled")
        }
        body = None
        body_spec = request.get("body") or {}
        if body_spec.get("mode") == "raw" and body_spec.get("raw"):
            body = substitute(body_spec["raw"], variables)

        yield CollectionRequest(
            name=name,
            method=request.get("method", "GET").upper(),
            url=substitute(_raw_url(request.get("url")), variables),
            headers=headers,
            body=body,
        )


async def _run_one(session: aiohttp.ClientSession, req: CollectionRequest,
                   semaphore: asyncio.Semaphore) -> RequestResult:
    async with semaphore:
        start = time.monotonic()
        try:
            async with session.request(req.method, req.url, headers=req.headers, data=req.body) as response:
                await response.read()
                duration_ms = (time.monotonic() - start) * 1000
                error = f"HTTP {response.status}" if response.status >= 400 else ""
                return RequestResult(req.name, req.method, req.url, response.status, round(duration_ms, 2), error)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            duration_ms = (time.monotonic() - start) * 1000
            return RequestResult(
                req.name, req.method, req.url, None, round(duration_ms, 2),
                error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
            )


async def check_requests(requests: List[CollectionRequest], timeout_seconds: float = 10.0,
                         concurrency: int = 10) -> List[RequestResult]:
    """Run all requests concurrently, bounded by ``concurrency``."""
    semaphore = asyncio.Semaphore(concurrency)
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        return await asyncio.gather(*(_run_one(session, req, semaphore) for req in requests))


def check_collection(collection: dict, environment: Optional[dict] = None,
                     overrides: Optional[Dict[str, str]] = None, **kwargs) -> List[RequestResult]:
    variables = load_variables(collection, environment, overrides)
    requests = list(iter_requests(collection.get("item", []), variables))
    logger.info("Checking API health", extra={"requests": len(requests)})
    return asyncio.run(check_requests(requests, **kwargs))


def load_json(path: str) -> dict:
    with open(path, encoding="utf-8") as f:
        return json.load(f)
