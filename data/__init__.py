"""Data loading utilities for the tile-laying engine."""

from .tile_codes import (
    TileCodeError,
    parse_tile_code,
)

from .loader import (
    MapLoader,
    MapLoadError,
    load_map,
    load_tile_manifest,
    load_default_tiles,
)

__all__ = [
    # Tile codes
    "TileCodeError",
    "parse_tile_code",
    # Loader
    "MapLoader",
    "MapLoadError",
    "load_map",
    "load_tile_manifest",
    "load_default_tiles",
]
