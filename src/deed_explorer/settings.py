from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


DEFAULT_PIN_API_URL = "https://cdn.deeddish.com/pin/"
DEFAULT_ENTITY_API_URL = "https://cdn.deeddish.com/entity/"
DEFAULT_ENTITY_MAPPING_URL = "https://cdn.deeddish.com/entity_files.json"


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    v = str(raw).strip()
    return v or default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(float(str(raw).strip()))
    except (ValueError, OverflowError):
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        v = float(str(raw).strip())
    except ValueError:
        return default
    return v if v > 0 and v != float("inf") else default


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the explorer.

    Everything comes from DEED_* env vars; unset or malformed values keep the
    defaults so a bare environment talks to the public CDN.
    """

    pin_api_url: str
    entity_api_url: str
    entity_mapping_url: str
    debounce_ms: int
    highlight_limit: int
    http_timeout_s: float
    cache_max_entries: Optional[int]
    user_agent: str
    parcel_geojson: Optional[str]

    @classmethod
    def from_env(cls) -> "Settings":
        max_entries = _env_int("DEED_CACHE_MAX_ENTRIES", None)
        if max_entries is not None and max_entries <= 0:
            max_entries = None
        return cls(
            pin_api_url=_env_str("DEED_PIN_API_URL", DEFAULT_PIN_API_URL),
            entity_api_url=_env_str("DEED_ENTITY_API_URL", DEFAULT_ENTITY_API_URL),
            entity_mapping_url=_env_str(
                "DEED_ENTITY_MAPPING_URL", DEFAULT_ENTITY_MAPPING_URL
            ),
            debounce_ms=max(0, _env_int("DEED_DEBOUNCE_MS", 150) or 0),
            highlight_limit=max(1, _env_int("DEED_HIGHLIGHT_LIMIT", 1000) or 1000),
            http_timeout_s=_env_float("DEED_HTTP_TIMEOUT_S", 10.0),
            cache_max_entries=max_entries,
            user_agent=_env_str("DEED_HTTP_USER_AGENT", "deed-explorer"),
            parcel_geojson=os.getenv("DEED_PARCEL_GEOJSON") or None,
        )

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def reset_settings_cache() -> None:
    """Test helper to force env re-read."""

    get_settings.cache_clear()
