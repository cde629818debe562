from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from deed_explorer.errors import DeedExplorerError
from deed_explorer.records import EntityMappingTable


logger = logging.getLogger("deed.mapping")


class EntityMapping:
    """Grantee name -> entity filename table, fetched once per process.

    Concurrent resolvers share one load. A failed load leaves an empty table
    marked loaded, so lookups miss fast instead of refetching.
    """

    def __init__(self, *, url: str, fetch_json: Callable[[str], Awaitable[Any]]):
        self.url = url
        self.fetch_json = fetch_json
        self.fetches = 0
        self._table: Optional[EntityMappingTable] = None
        self._loading: "Optional[asyncio.Future[EntityMappingTable]]" = None

    @property
    def loaded(self) -> bool:
        return self._table is not None

    @property
    def size(self) -> int:
        return len(self._table.entries) if self._table is not None else 0

    async def ensure_loaded(self) -> EntityMappingTable:
        if self._table is not None:
            return self._table
        if self._loading is not None:
            return await asyncio.shield(self._loading)

        self._loading = asyncio.get_running_loop().create_future()
        try:
            table = await self._fetch()
        except BaseException:
            # Cancelled mid-load: release joiners and allow a later retry.
            loading, self._loading = self._loading, None
            if not loading.done():
                loading.set_result(EntityMappingTable())
            raise
        self._table = table
        self._loading.set_result(table)
        self._loading = None
        return table

    async def _fetch(self) -> EntityMappingTable:
        self.fetches += 1
        try:
            table = EntityMappingTable.from_json(await self.fetch_json(self.url))
        except (DeedExplorerError, ValueError) as exc:
            logger.error("entity mapping load failed: %s", exc)
            return EntityMappingTable()
        logger.info("loaded entity mapping with %s entries", len(table.entries))
        return table

    async def resolve(self, name: str) -> Optional[str]:
        table = await self.ensure_loaded()
        return table.entries.get(name) or None

    def snapshot(self) -> Dict[str, str]:
        return dict(self._table.entries) if self._table is not None else {}
