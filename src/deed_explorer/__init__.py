"""Package initializer for `deed_explorer`."""

from .explorer import ParcelExplorer, build_explorer
from .loader import Loader

__all__ = ["Loader", "ParcelExplorer", "build_explorer"]
