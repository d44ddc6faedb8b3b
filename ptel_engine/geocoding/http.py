"""
Small async HTTP helpers shared by the registry and gazetteer providers.
"""
import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import httpx

from ..exceptions import ProviderError

LOG = logging.getLogger(__name__)

T = TypeVar("T")

# Network hiccups worth another try; HTTP status errors and bad payloads are not.
TRANSIENT_ERRORS = (httpx.TransportError,)

_JSONP = re.compile(r"callback\((.*)\)", re.DOTALL)


def build_client(user_agent: str, timeout_s: float, keepalive: bool = True) -> httpx.AsyncClient:
    """
    keepalive=False keeps no pooled connections, so the client can be reused
    across event loops (one asyncio.run per web request).
    """
    limits = httpx.Limits() if keepalive else httpx.Limits(max_keepalive_connections=0)
    return httpx.AsyncClient(
        timeout=timeout_s,
        headers={
            "User-Agent": user_agent,
            "Accept": "application/json",
        },
        limits=limits,
        follow_redirects=True,
    )


async def get_json(client: httpx.AsyncClient, url: str, params: Optional[Dict[str, Any]] = None,
                   provider: str = "") -> Any:
    response = await client.get(url, params=params)
    response.raise_for_status()
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(provider or url, "response is not valid JSON") from exc


async def get_text(client: httpx.AsyncClient, url: str, params: Optional[Dict[str, Any]] = None) -> str:
    response = await client.get(url, params=params)
    response.raise_for_status()
    return response.text


def extract_jsonp(text: str, provider: str = "") -> Any:
    """
    'callback({...})' -> parsed JSON. Plain JSON bodies are accepted as well.
    """
    match = _JSONP.search(text)
    payload = match.group(1) if match else text
    try:
        return json.loads(payload)
    except ValueError as exc:
        raise ProviderError(provider, "callback payload is not valid JSON") from exc


async def with_retries(call: Callable[[], Awaitable[T]], max_retries: int, base_delay: float,
                       sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep, label: str = "") -> T:
    """
    Await call(), retrying transient transport errors up to max_retries times
    with exponential backoff (base_delay * 2**attempt). The last error propagates.
    """
    attempt = 0
    while True:
        try:
            return await call()
        except TRANSIENT_ERRORS as exc:
            if attempt >= max_retries:
                raise
            delay = base_delay * (2 ** attempt)
            LOG.debug(f"{label or 'request'} failed ({exc!r}); retry {attempt + 1}/{max_retries} in {delay:.2f}s")
            await sleep(delay)
            attempt += 1
