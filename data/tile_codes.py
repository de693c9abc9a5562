"""Parser for the compact tile definition language.

A tile code is a ';'-separated list of parts, each `kind=key:value,...`:

    city=revenue:30,slots:2;town=revenue:10;junction;
    path=a:0,b:_0,track:narrow;border=edge:1,type:water,cost:40;
    upgrade=cost:80,terrain:mountain|water;label=OO

Path ends are edge numbers, or `_N` for the Nth node (city, town or
junction) in declaration order. Phase-dependent revenue is written as
`revenue:yellow_20|green_30`.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from core.constants import TileColor, Track
from core.tile import Border, City, Junction, Node, Path, TerrainUpgrade, Tile, Town


class TileCodeError(Exception):
    """Raised when a tile code cannot be parsed."""
    pass


def _parse_params(kind: str, text: str) -> dict[str, str]:
    params = {}
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, value = item.partition(":")
        if not sep:
            raise TileCodeError(f"Expected key:value in {kind}, got '{item}'")
        params[key.strip()] = value.strip()
    return params


def _parse_int(kind: str, key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise TileCodeError(f"Invalid {key} '{value}' in {kind}")


def _parse_revenue(kind: str, value: str) -> Union[int, dict[str, int]]:
    if "_" not in value:
        return _parse_int(kind, "revenue", value)
    revenue = {}
    for item in value.split("|"):
        phase, _, amount = item.partition("_")
        revenue[phase] = _parse_int(kind, "revenue", amount)
    return revenue


def _parse_track(value: str) -> Track:
    try:
        return Track(value)
    except ValueError:
        raise TileCodeError(
            f"Invalid track '{value}'. Valid tracks: broad, narrow, dual"
        )


class _TileCodeParser:
    def __init__(self, code: str):
        self.code = code
        self.nodes: list[Node] = []
        self.cities: list[City] = []
        self.towns: list[Town] = []
        self.junction: Optional[Junction] = None
        self.paths: list[Path] = []
        self.borders: list[Border] = []
        self.upgrades: list[TerrainUpgrade] = []
        self.label: Optional[str] = None

    def parse(self) -> dict[str, Any]:
        for part in self.code.split(";"):
            part = part.strip()
            if not part:
                continue
            kind, _, params = part.partition("=")
            handler = getattr(self, f"_parse_{kind.strip()}", None)
            if handler is None:
                raise TileCodeError(f"Unknown tile part '{kind}' in '{self.code}'")
            handler(params.strip())

        return {
            "paths": self.paths,
            "cities": self.cities,
            "towns": self.towns,
            "junction": self.junction,
            "borders": self.borders,
            "upgrades": self.upgrades,
            "label": self.label,
        }

    def _parse_city(self, text: str) -> None:
        params = _parse_params("city", text)
        slots = _parse_int("city", "slots", params.get("slots", "1"))
        if slots < 1:
            raise TileCodeError(f"City needs at least one slot, got {slots}")
        city = City(revenue=_parse_revenue("city", params.get("revenue", "0")), slots=slots)
        self.cities.append(city)
        self.nodes.append(city)

    def _parse_town(self, text: str) -> None:
        params = _parse_params("town", text)
        town = Town(revenue=_parse_revenue("town", params.get("revenue", "0")))
        self.towns.append(town)
        self.nodes.append(town)

    def _parse_junction(self, text: str) -> None:
        if self.junction is not None:
            raise TileCodeError("A tile can only have one junction")
        self.junction = Junction()
        self.nodes.append(self.junction)

    def _parse_path(self, text: str) -> None:
        params = _parse_params("path", text)
        if "a" not in params or "b" not in params:
            raise TileCodeError(f"Path needs both ends: '{text}'")
        track = _parse_track(params.get("track", Track.BROAD.value))
        self.paths.append(Path(self._end(params["a"]), self._end(params["b"]), track=track))

    def _end(self, value: str) -> Union[int, Node]:
        if value.startswith("_"):
            idx = _parse_int("path", "node", value[1:])
            if not 0 <= idx < len(self.nodes):
                raise TileCodeError(f"Path references unknown node {value}")
            return self.nodes[idx]
        edge = _parse_int("path", "edge", value)
        if not 0 <= edge <= 5:
            raise TileCodeError(f"Invalid edge {edge}")
        return edge

    def _parse_border(self, text: str) -> None:
        params = _parse_params("border", text)
        if "edge" not in params:
            raise TileCodeError(f"Border needs an edge: '{text}'")
        edge = _parse_int("border", "edge", params["edge"])
        if not 0 <= edge <= 5:
            raise TileCodeError(f"Invalid edge {edge}")
        cost = _parse_int("border", "cost", params["cost"]) if "cost" in params else None
        self.borders.append(Border(edge=edge, cost=cost, type=params.get("type")))

    def _parse_upgrade(self, text: str) -> None:
        params = _parse_params("upgrade", text)
        cost = _parse_int("upgrade", "cost", params.get("cost", "0"))
        terrains = tuple(t for t in params.get("terrain", "").split("|") if t)
        self.upgrades.append(TerrainUpgrade(cost=cost, terrains=terrains))

    def _parse_label(self, text: str) -> None:
        self.label = text or None


def parse_tile_code(
    name: str,
    color: Union[TileColor, str],
    code: str = "",
    **kwargs: Any,
) -> Tile:
    """Build a tile from its code.

    Args:
        name: Tile name.
        color: Tile color, or its name.
        code: Tile code. An empty code gives a bare tile.
        **kwargs: Extra Tile arguments (unlimited, preprinted, index...).

    Returns:
        The new tile, unrotated and not on any hex.

    Raises:
        TileCodeError: If the color or code is invalid.
    """
    if not isinstance(color, TileColor):
        try:
            color = TileColor(color)
        except ValueError:
            raise TileCodeError(f"Invalid color '{color}' for tile {name}")
    parts = _TileCodeParser(code).parse()
    return Tile(name, color, **parts, **kwargs)
