from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from shapely.errors import ShapelyError
from shapely.geometry import shape


logger = logging.getLogger("deed.highlight")

BBox = Tuple[float, float, float, float]

HIGHLIGHT_GEOMETRY_TYPES = {"Polygon", "MultiPolygon"}


class ParcelDataset:
    """Parcel geometries currently in view, keyed by an identifier property.

    A parcel can show up as several features (tile clipping), so each id
    keeps every geometry it was seen with.
    """

    def __init__(self, id_property: str = "name"):
        self.id_property = id_property
        self._geoms: Dict[str, List[Dict[str, Any]]] = {}

    @classmethod
    def from_geojson(cls, fc: Dict[str, Any], id_property: str = "name") -> "ParcelDataset":
        ds = cls(id_property=id_property)
        if not isinstance(fc, dict) or fc.get("type") != "FeatureCollection":
            return ds
        features = fc.get("features")
        if not isinstance(features, list):
            return ds
        for feat in features:
            if isinstance(feat, dict):
                ds.add_feature(feat)
        return ds

    @classmethod
    def from_path(cls, path: Path, id_property: str = "name") -> "ParcelDataset":
        if not path.exists():
            logger.warning("parcel dataset %s does not exist", path)
            return cls(id_property=id_property)
        raw = json.loads(path.read_text(encoding="utf-8"))
        return cls.from_geojson(raw, id_property=id_property)

    def add_feature(self, feature: Dict[str, Any]) -> None:
        props = feature.get("properties") or {}
        pid = props.get(self.id_property)
        if pid is None:
            pid = feature.get("id")
        geom = feature.get("geometry")
        if pid is None or not isinstance(geom, dict):
            return
        self._geoms.setdefault(str(pid), []).append(geom)

    def __contains__(self, key: object) -> bool:
        return key in self._geoms

    def __len__(self) -> int:
        return len(self._geoms)

    def geometries(self, key: str) -> List[Dict[str, Any]]:
        return list(self._geoms.get(key, ()))


def dedupe(keys: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for k in keys:
        if k in seen:
            continue
        seen.add(k)
        out.append(k)
    return out


def enclosing_bbox(geometries: Iterable[Dict[str, Any]]) -> Optional[BBox]:
    """Bounds over the polygonal geometries; None when nothing contributes."""

    min_x = min_y = float("inf")
    max_x = max_y = float("-inf")
    found = False
    for geom in geometries:
        if (geom or {}).get("type") not in HIGHLIGHT_GEOMETRY_TYPES:
            continue
        try:
            shp = shape(geom)
        except (ShapelyError, ValueError, TypeError, AttributeError, IndexError) as exc:
            logger.debug("skipping unreadable geometry: %s", exc)
            continue
        if shp.is_empty:
            continue
        x0, y0, x1, y1 = shp.bounds
        min_x, min_y = min(min_x, x0), min(min_y, y0)
        max_x, max_y = max(max_x, x1), max(max_y, y1)
        found = True
    if not found:
        return None
    return (min_x, min_y, max_x, max_y)


@dataclass(frozen=True)
class HighlightSelection:
    origin: Optional[str] = None
    label: Optional[str] = None
    keys: Tuple[str, ...] = ()
    total_related: int = 0
    in_view: int = 0
    bbox: Optional[BBox] = None

    @property
    def truncated(self) -> bool:
        return len(self.keys) < self.in_view

    @property
    def active(self) -> bool:
        return self.origin is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin,
            "label": self.label,
            "keys": list(self.keys),
            "highlighted": len(self.keys),
            "total_related": self.total_related,
            "in_view": self.in_view,
            "truncated": self.truncated,
            "bbox": list(self.bbox) if self.bbox is not None else None,
        }


UpdateCallback = Callable[[Tuple[str, ...], Optional[BBox]], None]


class HighlightProjector:
    def __init__(self, limit: int = 1000, on_update: Optional[UpdateCallback] = None):
        if limit < 1:
            raise ValueError("highlight limit must be positive")
        self.limit = limit
        self.on_update = on_update
        self._selection = HighlightSelection()

    @property
    def selection(self) -> HighlightSelection:
        return self._selection

    def project(
        self,
        origin: str,
        related: Iterable[str],
        dataset: ParcelDataset,
        label: Optional[str] = None,
    ) -> HighlightSelection:
        unique = dedupe(related)
        present = [k for k in unique if k in dataset]
        keys = tuple(present[: self.limit])
        geoms = [g for k in keys for g in dataset.geometries(k)]
        selection = HighlightSelection(
            origin=origin,
            label=label,
            keys=keys,
            total_related=len(unique),
            in_view=len(present),
            bbox=enclosing_bbox(geoms),
        )
        if len(present) < len(unique):
            logger.info(
                "%s of %s related parcels are not in the current view",
                len(unique) - len(present),
                len(unique),
            )
        if len(present) > self.limit:
            logger.info("highlight capped at %s of %s parcels", self.limit, len(present))
        self._apply(selection)
        return selection

    def clear(self) -> None:
        self._apply(HighlightSelection())

    def _apply(self, selection: HighlightSelection) -> None:
        self._selection = selection
        if self.on_update is not None:
            self.on_update(selection.keys, selection.bbox)
