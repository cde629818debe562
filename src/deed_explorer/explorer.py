from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from deed_explorer.cache import KeyedCache
from deed_explorer.debounce import DebouncedTrigger
from deed_explorer.errors import DeedExplorerError
from deed_explorer.highlight import (
    HighlightProjector,
    HighlightSelection,
    ParcelDataset,
    UpdateCallback,
)
from deed_explorer.http_client import AsyncHttpClient
from deed_explorer.loader import Loader, join_url
from deed_explorer.mapping import EntityMapping
from deed_explorer.panel import ParcelPanel, build_panel
from deed_explorer.records import EntityData, PinDocuments
from deed_explorer.settings import Settings, get_settings


logger = logging.getLogger("deed.explorer")


class ParcelExplorer:
    """One explorer session: record caches, entity mapping and highlight state.

    Nothing here is module-global; build one per session (or per test).
    """

    def __init__(
        self,
        *,
        settings: Settings,
        http: AsyncHttpClient,
        dataset: Optional[ParcelDataset] = None,
        on_highlight: Optional[UpdateCallback] = None,
    ):
        self.settings = settings
        self.http = http
        self.dataset = dataset if dataset is not None else ParcelDataset()
        self.pins: Loader[PinDocuments] = Loader(
            name="pin",
            fetch_json=http.get_json,
            url_for=lambda pin: join_url(settings.pin_api_url, pin, ".json"),
            parse=PinDocuments.from_json,
            empty=PinDocuments.empty,
            cache=KeyedCache(settings.cache_max_entries),
            on_error=self._pin_error,
        )
        self.entities: Loader[EntityData] = Loader(
            name="entity",
            fetch_json=http.get_json,
            url_for=lambda filename: join_url(settings.entity_api_url, filename),
            parse=EntityData.from_json,
            empty=EntityData.empty,
            cache=KeyedCache(settings.cache_max_entries),
            on_error=self._entity_error,
        )
        self.mapping = EntityMapping(
            url=settings.entity_mapping_url, fetch_json=http.get_json
        )
        self.highlights = HighlightProjector(
            limit=settings.highlight_limit, on_update=on_highlight
        )
        self.clicks = DebouncedTrigger(self._on_click, interval_s=settings.debounce_s)
        self.error_message: Optional[str] = None
        self.selected_pin: Optional[str] = None
        self.panel: Optional[ParcelPanel] = None
        self._exists: Dict[str, bool] = {}

    def _pin_error(self, pin: str, exc: DeedExplorerError) -> None:
        # A fetch for a parcel the user already left must not raise the banner.
        if pin != self.selected_pin:
            return
        self.error_message = f"Error loading documents for parcel {pin}"

    def _entity_error(self, filename: str, exc: DeedExplorerError) -> None:
        self.error_message = f"Error loading entity data ({filename})"

    async def select_parcel(self, pin: str) -> ParcelPanel:
        pin = (pin or "").strip()
        if not pin:
            raise ValueError("pin is required")
        self.selected_pin = pin
        self.error_message = None
        logger.info("loading documents for PIN %s", pin)
        data = await self.pins.load(pin)
        panel = await build_panel(pin, data, self.grantee_exists)
        logger.info("loaded %s documents for PIN %s", len(data.docs), pin)
        if self.selected_pin == pin:
            self.panel = panel
        else:
            logger.info("discarding stale panel for PIN %s", pin)
        return panel

    async def grantee_exists(self, name: str) -> bool:
        filename = await self.mapping.resolve(name)
        if not filename:
            return False
        if filename in self.entities.cache:
            return not self.entities.cache.get(filename).is_empty
        known = self._exists.get(filename)
        if known is not None:
            return known
        ok = await self.http.head_ok(join_url(self.settings.entity_api_url, filename))
        self._exists[filename] = ok
        return ok

    async def load_entity(self, name: str) -> Optional[EntityData]:
        filename = await self.mapping.resolve(name)
        if not filename:
            logger.info("no entity mapping found for grantee %s", name)
            return None
        return await self.entities.load(filename)

    async def select_grantee(
        self,
        name: str,
        origin_pin: str,
        dataset: Optional[ParcelDataset] = None,
    ) -> Optional[HighlightSelection]:
        """Highlight every in-view parcel tied to ``name``; None leaves state alone."""

        entity = await self.load_entity(name)
        if entity is None or entity.is_empty:
            logger.info("no entity data found for grantee %s", name)
            return None
        selection = self.highlights.project(
            origin_pin,
            entity.associated_pins,
            dataset if dataset is not None else self.dataset,
            label=name,
        )
        logger.info(
            "highlighting %s of %s parcels for %s",
            len(selection.keys),
            selection.total_related,
            name,
        )
        return selection

    def clear_selection(self) -> None:
        self.highlights.clear()
        self.selected_pin = None
        self.panel = None
        self.error_message = None

    def click(self, pin: Optional[str]) -> None:
        """Debounced map click; ``None`` means empty map space."""

        self.clicks.trigger(pin)

    async def _on_click(self, pin: Optional[str]) -> Optional[ParcelPanel]:
        if not pin:
            self.clear_selection()
            return None
        return await self.select_parcel(pin)

    def stats(self) -> Dict[str, Any]:
        return {
            "pins": self.pins.stats(),
            "entities": self.entities.stats(),
            "mapping": {
                "loaded": self.mapping.loaded,
                "entries": self.mapping.size,
                "fetches": self.mapping.fetches,
            },
            "debounce": {"fired": self.clicks.fired, "pending": self.clicks.pending},
        }

    async def aclose(self) -> None:
        self.clicks.cancel()
        await self.http.aclose()


def build_explorer(
    settings: Optional[Settings] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    dataset: Optional[ParcelDataset] = None,
    on_highlight: Optional[UpdateCallback] = None,
) -> ParcelExplorer:
    settings = settings or get_settings()
    http = AsyncHttpClient(
        timeout=settings.http_timeout_s,
        user_agent=settings.user_agent,
        client=client,
    )
    if dataset is None and settings.parcel_geojson:
        dataset = ParcelDataset.from_path(Path(settings.parcel_geojson))
    return ParcelExplorer(
        settings=settings, http=http, dataset=dataset, on_highlight=on_highlight
    )
