"""Single-flight, soft-failing record loader.

Every key walks ``absent -> loading -> cached`` exactly once. The first
caller for a key issues the fetch; callers that arrive while it is running
join the same ``asyncio.Future`` instead of polling, and all of them get the
identical record. A 404 or any fetch failure is cached as the record type's
empty value, so ``load`` only raises when a joined fetch was cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar
from urllib.parse import quote

from deed_explorer.cache import InFlightRegistry, KeyedCache
from deed_explorer.errors import (
    DeedExplorerError,
    LoadAbandoned,
    NotFound,
    ProtocolFailure,
)


logger = logging.getLogger("deed.loader")

V = TypeVar("V")

FetchJson = Callable[[str], Awaitable[Any]]
ErrorHook = Callable[[str, DeedExplorerError], None]


def join_url(base: str, key: str, suffix: str = "") -> str:
    if not base.endswith("/"):
        base = base + "/"
    return f"{base}{quote(key, safe='-_.~')}{suffix}"


class Loader(Generic[V]):
    def __init__(
        self,
        *,
        name: str,
        fetch_json: FetchJson,
        url_for: Callable[[str], str],
        parse: Callable[[Any], V],
        empty: Callable[[], V],
        cache: Optional[KeyedCache[str, V]] = None,
        in_flight: Optional[InFlightRegistry[str, V]] = None,
        on_error: Optional[ErrorHook] = None,
    ):
        self.name = name
        self.fetch_json = fetch_json
        self.url_for = url_for
        self.parse = parse
        self.empty = empty
        self.cache: KeyedCache[str, V] = cache if cache is not None else KeyedCache()
        self.in_flight: InFlightRegistry[str, V] = (
            in_flight if in_flight is not None else InFlightRegistry()
        )
        self.on_error = on_error
        self.fetches = 0
        self.joins = 0
        self.failures = 0

    async def load(self, key: str) -> V:
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        pending = self.in_flight.signal_for(key)
        if pending is not None:
            self.joins += 1
            logger.debug("%s %s: joining in-flight fetch", self.name, key)
            # A cancelled waiter must not cancel the shared fetch.
            return await asyncio.shield(pending)

        signal: "asyncio.Future[V]" = asyncio.get_running_loop().create_future()
        self.in_flight.mark_loading(key, signal)
        try:
            record = self.cache.put(key, await self._fetch(key))
        except BaseException:
            if not signal.done():
                signal.set_exception(LoadAbandoned(key))
                # Retrieve it so an unjoined failure is not reported as lost.
                signal.exception()
            raise
        else:
            signal.set_result(record)
            return record
        finally:
            self.in_flight.clear(key)

    async def _fetch(self, key: str) -> V:
        url = self.url_for(key)
        self.fetches += 1
        try:
            raw = await self.fetch_json(url)
            try:
                return self.parse(raw)
            except (ValueError, TypeError, ArithmeticError, RecursionError) as exc:
                raise ProtocolFailure(url, f"unexpected payload: {exc}") from exc
        except NotFound:
            logger.info("%s %s: no remote record, caching empty", self.name, key)
            return self.empty()
        except DeedExplorerError as exc:
            self.failures += 1
            logger.warning("%s %s: %s; caching empty", self.name, key, exc)
            if self.on_error is not None:
                try:
                    self.on_error(key, exc)
                except Exception:
                    logger.exception("%s %s: error hook failed", self.name, key)
            return self.empty()

    def stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "fetches": self.fetches,
            "joins": self.joins,
            "failures": self.failures,
            "in_flight": len(self.in_flight),
            "cache": self.cache.stats(),
        }
