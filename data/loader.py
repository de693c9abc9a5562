"""Map and tile data loader for the tile-laying engine.

Loads and validates maps and tile manifests from JSON files or plain
dictionaries, converting them into HexMap and TileCatalog instances ready
for use by a game.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Union

from core.constants import Layout, TileColor
from core.hexes import Hex, HexMap, parse_coordinates
from core.tile_catalog import TileCatalog

from .tile_codes import TileCodeError, parse_tile_code


def resource_path(relative_path: str) -> Path:
    """
    Get absolute path to a resource, works for dev and PyInstaller exe.
    """
    if hasattr(sys, "_MEIPASS"):
        # PyInstaller bundles resources in a temporary folder
        return Path(sys._MEIPASS) / "data" / relative_path

    # Dev mode: look relative to this file (in the data/ directory)
    return Path(__file__).parent / relative_path


class MapLoadError(Exception):
    """Raised when map or tile loading or validation fails."""
    pass


def _read_json(file_path: Union[str, Path]) -> Any:
    path = Path(file_path)

    if not path.exists():
        raise MapLoadError(f"Data file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise MapLoadError(f"Invalid JSON in data file: {e}")
    except IOError as e:
        raise MapLoadError(f"Error reading data file: {e}")


class MapLoader:
    """Loads and validates maps and tile manifests."""

    def __init__(self, strict: bool = True):
        """Initialize the loader.

        Args:
            strict: If True, every hex must border at least one other hex.
                Set to False for single-hex or fragment maps.
        """
        self.strict = strict

    def load_from_file(self, file_path: Union[str, Path]) -> HexMap:
        """Load a map from a JSON file.

        Args:
            file_path: Path to the JSON map file.

        Returns:
            A HexMap with the printed tiles in place.

        Raises:
            MapLoadError: If the file cannot be read, parsed or validated.
        """
        return self.load_from_dict(_read_json(file_path))

    def load_from_dict(self, data: dict[str, Any]) -> HexMap:
        """Load a map from a dictionary.

        Args:
            data: Dictionary with an optional 'layout' and a 'hexes' list.
                Each hex has an 'id' and optionally 'color' (default white),
                'code', 'tile' (tile name, default the hex id),
                'location_name' and 'assignments'.

        Returns:
            A HexMap with the printed tiles in place.

        Raises:
            MapLoadError: If validation fails.
        """
        self._validate_structure(data)

        try:
            layout = Layout(data.get("layout", Layout.POINTY.value))
        except ValueError:
            raise MapLoadError(
                f"Invalid layout '{data['layout']}'. Valid layouts: flat, pointy"
            )

        hexes = []
        hex_ids = set()
        for hex_data in data["hexes"]:
            hex = self._create_hex(hex_data, layout)
            if hex.id in hex_ids:
                raise MapLoadError(f"Duplicate hex ID: {hex.id}")
            hex_ids.add(hex.id)
            hexes.append(hex)

        hex_map = HexMap(hexes, layout=layout)
        self._validate_map(hex_map)
        return hex_map

    def load_tiles_from_file(self, file_path: Union[str, Path]) -> TileCatalog:
        """Load a tile manifest from a JSON file.

        Raises:
            MapLoadError: If the file cannot be read, parsed or validated.
        """
        return self.load_tiles_from_dict(_read_json(file_path))

    def load_tiles_from_dict(self, data: Union[list, dict[str, Any]]) -> TileCatalog:
        """Load a tile manifest.

        Args:
            data: List of tile entries, or a dictionary with a 'tiles' list.
                Each entry has 'name', 'color', optionally 'code' and either
                'count' (default 1) or 'unlimited'.

        Returns:
            A TileCatalog holding every copy.

        Raises:
            MapLoadError: If validation fails.
        """
        if isinstance(data, dict):
            data = data.get("tiles")
        if not isinstance(data, list):
            raise MapLoadError("Tile manifest must be a list of tiles")

        catalog = TileCatalog()
        names = set()
        for entry in data:
            for field in ("name", "color"):
                if field not in entry:
                    raise MapLoadError(f"Tile missing required field: {field}")
            name = str(entry["name"])
            if name in names:
                raise MapLoadError(f"Duplicate tile: {name}")
            names.add(name)

            unlimited = bool(entry.get("unlimited", False))
            count = 1 if unlimited else entry.get("count", 1)
            if not isinstance(count, int) or count < 1:
                raise MapLoadError(f"Invalid count for tile {name}: {count}")

            for index in range(count):
                catalog.tiles.append(self._create_tile(
                    name, entry["color"], entry.get("code", ""),
                    unlimited=unlimited, index=index,
                ))
        return catalog

    def _validate_structure(self, data: dict[str, Any]) -> None:
        """Validate the basic structure of the map data."""
        if not isinstance(data, dict):
            raise MapLoadError("Map data must be a dictionary")

        if "hexes" not in data:
            raise MapLoadError("Map data missing 'hexes' key")

        if not isinstance(data["hexes"], list):
            raise MapLoadError("'hexes' must be a list")

        if len(data["hexes"]) == 0:
            raise MapLoadError("Map must have at least one hex")

    def _create_hex(self, hex_data: dict[str, Any], layout: Layout) -> Hex:
        """Create a Hex, with its printed tile, from hex data."""
        if "id" not in hex_data:
            raise MapLoadError("Hex missing required field: id")

        hex_id = hex_data["id"]
        try:
            parse_coordinates(hex_id, layout)
        except (TypeError, ValueError):
            raise MapLoadError(f"Invalid hex ID: {hex_id}")

        tile = self._create_tile(
            str(hex_data.get("tile", hex_id)),
            hex_data.get("color", TileColor.WHITE.value),
            hex_data.get("code", ""),
            preprinted=True,
            location_name=hex_data.get("location_name"),
        )
        hex = Hex(hex_id, tile, location_name=hex_data.get("location_name"))
        for assignment in hex_data.get("assignments", []):
            hex.assign(assignment)
        return hex

    @staticmethod
    def _create_tile(name: str, color: str, code: str, **kwargs: Any):
        try:
            return parse_tile_code(name, color, code, **kwargs)
        except TileCodeError as e:
            raise MapLoadError(f"Invalid tile {name}: {e}")

    def _validate_map(self, hex_map: HexMap) -> None:
        """Validate the linked map."""
        for hex in hex_map:
            for border in hex.tile.borders:
                if border.edge not in hex.neighbors:
                    raise MapLoadError(
                        f"Border on edge {border.edge} of {hex.id} has no neighbor"
                    )

        if self.strict and len(hex_map) > 1:
            isolated = sorted(hex.id for hex in hex_map if not hex.neighbors)
            if isolated:
                raise MapLoadError(f"Map has isolated hexes: {isolated}")


def load_map(source: Union[str, Path, dict[str, Any]], strict: bool = True) -> HexMap:
    """Convenience function to load a map from a file or dictionary.

    Args:
        source: Path to the JSON map file, or the map data itself.
        strict: If True, reject isolated hexes.

    Returns:
        A HexMap instance.
    """
    loader = MapLoader(strict=strict)
    if isinstance(source, dict):
        return loader.load_from_dict(source)
    return loader.load_from_file(source)


def load_tile_manifest(source: Union[str, Path, list, dict[str, Any]]) -> TileCatalog:
    """Convenience function to load a tile manifest from a file or data.

    Returns:
        A TileCatalog instance.
    """
    loader = MapLoader()
    if isinstance(source, (list, dict)):
        return loader.load_tiles_from_dict(source)
    return loader.load_tiles_from_file(source)


def load_default_tiles() -> TileCatalog:
    """Load the standard tile manifest.

    Returns:
        A TileCatalog with the standard yellow, green and brown tiles.

    Raises:
        MapLoadError: If the default manifest is missing or invalid.
    """
    return load_tile_manifest(resource_path("default_tiles.json"))
