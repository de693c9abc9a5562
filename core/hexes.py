"""Hex map model for the tile-laying engine.

The map is a fixed set of hexes linked to their neighbors by edge number.
Topology never changes during play; only the tile on each hex (and the
tokens and borders it carries) does. Every tile or token change bumps the
map version so that cached connectivity is recomputed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, Optional

from .constants import DIRECTIONS, Layout
from .tile import Border, City, Tile

if TYPE_CHECKING:
    from .entities import Token


_COORDINATE_RE = re.compile(r"^([A-Z]+)(\d+)$")


def parse_coordinates(hex_id: str, layout: Layout) -> tuple[int, int]:
    """Convert a map coordinate like "F13" into doubled (x, y) coordinates.

    Raises:
        ValueError: If the coordinate is malformed.
    """
    match = _COORDINATE_RE.match(hex_id)
    if match is None:
        raise ValueError(f"Invalid hex coordinate: {hex_id}")
    letters, number = match.groups()
    letter = 0
    for char in letters:
        letter = letter * 26 + (ord(char) - ord("A") + 1)
    letter -= 1
    number_idx = int(number) - 1
    if layout == Layout.FLAT:
        return (letter, number_idx)
    return (number_idx, letter)


@dataclass
class TileSwap:
    """Record of a tile being laid on a hex, so it can be undone exactly.

    Attributes:
        hex: The hex that changed.
        old_tile: Tile that was on the hex.
        new_tile: Tile now on the hex.
        moved_borders: Borders carried over from the old tile.
        moved_tokens: (token, old_city, new_city) for every relocated token.
    """

    hex: Hex
    old_tile: Tile
    new_tile: Tile
    moved_borders: list[Border] = field(default_factory=list)
    moved_tokens: list[tuple[Token, City, City]] = field(default_factory=list)

    def revert(self) -> None:
        """Put the old tile back as if the lay never happened."""
        for token, old_city, new_city in self.moved_tokens:
            new_city.remove_token(token)
            old_city.place_token(token)
        for border in self.moved_borders:
            if border in self.new_tile.borders:
                self.new_tile.borders.remove(border)
        self.old_tile.borders = list(self.moved_borders)
        self.new_tile.hex = None
        self.old_tile.hex = self.hex
        self.hex.tile = self.old_tile
        self.hex.touch()


class Hex:
    """A single map hex.

    Attributes:
        id: Map coordinate (e.g. "F13").
        tile: Tile currently on the hex.
        location_name: Optional place name printed on the map.
        neighbors: Adjacent hexes keyed by edge number.
        assignments: Markers placed on the hex (port, ship, mine...).
    """

    def __init__(self, id: str, tile: Tile, location_name: Optional[str] = None):
        self.id = id
        self.tile = tile
        self.location_name = location_name
        self.neighbors: dict[int, Hex] = {}
        self.assignments: dict[str, object] = {}
        self.hex_map: Optional[HexMap] = None
        tile.hex = self

    @property
    def name(self) -> str:
        return self.id

    @staticmethod
    def invert(edge: int) -> int:
        """Return the matching edge number as seen from the neighbor."""
        return (edge + 3) % 6

    def touch(self) -> None:
        if self.hex_map is not None:
            self.hex_map.touch()

    def edge_to(self, other: Hex) -> Optional[int]:
        for edge, neighbor in self.neighbors.items():
            if neighbor is other:
                return edge
        return None

    def targeting(self, other: Hex) -> bool:
        """Check if the current tile has track leaving toward another hex."""
        edge = self.edge_to(other)
        return edge is not None and edge in self.tile.exits

    def assign(self, key: str, value: object = True) -> None:
        self.assignments[key] = value

    def assigned(self, key: str) -> bool:
        return key in self.assignments

    def remove_assignment(self, key: str) -> None:
        self.assignments.pop(key, None)

    def lay(self, tile: Tile) -> TileSwap:
        """Replace the current tile.

        Borders on the old tile move to the new one. Tokens move to the new
        city that covers the old city's exits, or failing that to the city
        with the same index.

        Returns:
            A TileSwap that can revert the change.

        Raises:
            ValueError: If tokens exist but the new tile has no city for them.
        """
        old_tile = self.tile
        swap = TileSwap(hex=self, old_tile=old_tile, new_tile=tile)

        new_edges = [tile.node_exits(city) for city in tile.cities]
        for idx, city in enumerate(old_tile.cities):
            for token in city.get_placed_tokens():
                target = self._target_city(idx, old_tile.node_exits(city), tile, new_edges)
                if target is None:
                    raise ValueError(
                        f"Tile {tile.id} has no city for tokens on {old_tile.id}"
                    )
                city.remove_token(token)
                target.place_token(token)
                swap.moved_tokens.append((token, city, target))

        swap.moved_borders = list(old_tile.borders)
        tile.borders.extend(swap.moved_borders)
        old_tile.borders = []

        old_tile.hex = None
        tile.hex = self
        self.tile = tile
        self.touch()
        return swap

    @staticmethod
    def _target_city(
        idx: int,
        edges: set[int],
        tile: Tile,
        new_edges: list[set[int]],
    ) -> Optional[City]:
        if not tile.cities:
            return None
        if edges:
            for new_idx, city in enumerate(tile.cities):
                if edges <= new_edges[new_idx]:
                    return city
        return tile.cities[min(idx, len(tile.cities) - 1)]

    def __repr__(self) -> str:
        return f"Hex({self.id}, {self.tile.id})"


class HexMap:
    """All hexes of a game map, linked by adjacency.

    Attributes:
        hexes: Mapping from coordinate to hex.
        layout: Flat or pointy hex orientation.
        version: Counter bumped on every tile or token change.
    """

    def __init__(self, hexes: list[Hex], layout: Layout = Layout.POINTY):
        self.layout = layout
        self.hexes: dict[str, Hex] = {}
        self.version = 0
        for hex in hexes:
            if hex.id in self.hexes:
                raise ValueError(f"Duplicate hex: {hex.id}")
            hex.hex_map = self
            self.hexes[hex.id] = hex
        self._link_neighbors()

    def _link_neighbors(self) -> None:
        by_coordinates = {
            parse_coordinates(hex_id, self.layout): hex
            for hex_id, hex in self.hexes.items()
        }
        for (x, y), hex in by_coordinates.items():
            for edge, (dx, dy) in DIRECTIONS[self.layout].items():
                neighbor = by_coordinates.get((x + dx, y + dy))
                if neighbor is not None:
                    hex.neighbors[edge] = neighbor

    def hex_by_id(self, hex_id: str) -> Hex:
        """Look up a hex by coordinate.

        Raises:
            KeyError: If the hex does not exist.
        """
        return self.hexes[hex_id]

    def touch(self) -> None:
        """Mark the map as changed."""
        self.version += 1

    def __iter__(self) -> Iterator[Hex]:
        return iter(self.hexes.values())

    def __len__(self) -> int:
        return len(self.hexes)
