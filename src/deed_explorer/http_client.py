from __future__ import annotations

import asyncio
import json
import logging
import os
import random
from typing import Any, Awaitable, Callable, Optional

import httpx

from deed_explorer.errors import NotFound, ProtocolFailure, TransportFailure


logger = logging.getLogger("deed.http")

RETRY_STATUS = {429, 500, 502, 503, 504}


class RetryConfig:
    def __init__(self, retries=0, base_delay=0.2, factor=2.0, jitter=0.1):
        self.retries = retries
        self.base_delay = base_delay
        self.factor = factor
        self.jitter = jitter


def compute_backoff_delays(
    retries, base_delay=0.2, factor=2.0, jitter=0.1, rand_fn=None
):
    delays = []
    current = base_delay
    rand_fn = rand_fn or random.random
    for _ in range(retries):
        noise = (rand_fn() * 2 - 1) * jitter
        delays.append(max(0.0, current + noise))
        current *= factor
    return delays


def _no_proxy_lookup() -> bool:
    return (
        os.environ.get("NO_PROXY_LOOKUP") == "1"
        or os.environ.get("CI") == "1"
        or os.environ.get("CODESPACES") == "true"
    )


class AsyncHttpClient:
    """JSON GET / HEAD against the static record store.

    Failures surface as NotFound, TransportFailure or ProtocolFailure so the
    caller can decide what to cache.
    """

    def __init__(
        self,
        timeout: float = 10,
        max_bytes: int = 5_000_000,
        retry_config: Optional[RetryConfig] = None,
        user_agent: str = "deed-explorer",
        client: Optional[httpx.AsyncClient] = None,
        sleep_fn: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.retry_config = retry_config or RetryConfig()
        self.user_agent = user_agent
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep_fn or asyncio.sleep

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            trust_env=not _no_proxy_lookup(),
        )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _send(self, method: str, url: str) -> httpx.Response:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
        }
        delays = compute_backoff_delays(
            self.retry_config.retries,
            self.retry_config.base_delay,
            self.retry_config.factor,
            self.retry_config.jitter,
        )
        client = await self._ensure_client()
        last_error: Optional[Exception] = None
        for attempt in range(len(delays) + 1):
            try:
                response = await client.request(method, url, headers=headers)
            except httpx.HTTPError as exc:
                last_error = exc
                if attempt < len(delays):
                    await self._sleep(delays[attempt])
                    continue
                break
            if response.status_code in RETRY_STATUS and attempt < len(delays):
                logger.debug("retrying %s %s after HTTP %s", method, url, response.status_code)
                await self._sleep(delays[attempt])
                continue
            return response
        raise TransportFailure(url, f"{type(last_error).__name__}: {last_error}")

    async def get_json(self, url: str) -> Any:
        response = await self._send("GET", url)
        status = response.status_code
        if status == 404:
            raise NotFound(url)
        if not 200 <= status < 300:
            raise ProtocolFailure(
                url, f"HTTP {status}: {response.reason_phrase}", status=status
            )
        content = response.content
        if len(content) > self.max_bytes:
            raise ProtocolFailure(url, f"body exceeds {self.max_bytes} bytes", status=status)
        try:
            return json.loads(content.decode(response.encoding or "utf-8", errors="replace"))
        except (ValueError, RecursionError) as exc:
            raise ProtocolFailure(url, f"malformed JSON: {exc}", status=status) from exc

    async def head_ok(self, url: str) -> bool:
        """True when a HEAD request answers 2xx; any failure counts as False."""

        try:
            response = await self._send("HEAD", url)
        except TransportFailure as exc:
            logger.debug("HEAD %s failed: %s", url, exc)
            return False
        return 200 <= response.status_code < 300
