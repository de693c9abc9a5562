"""Supply of tiles available to be laid."""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from .constants import TileColor
from .tile import Tile


class TileCatalog:
    """Pool of unplaced tiles.

    Tiles leave the pool when laid and come back when upgraded over, unless
    they were printed on the map. Unlimited tiles get a fresh copy each time
    one is laid.
    """

    def __init__(self, tiles: Optional[Iterable[Tile]] = None):
        self.tiles: list[Tile] = list(tiles or [])

    def add_extra_tile(self, tile: Tile) -> Tile:
        """Add a new copy of a tile with the next free index."""
        next_index = 1 + max(
            (t.index for t in self.tiles if t.name == tile.name),
            default=tile.index,
        )
        extra = tile.duplicate(next_index)
        self.tiles.append(extra)
        return extra

    def remove(self, tile: Tile) -> None:
        """Take a tile out of the pool (no-op if it is not there)."""
        if tile in self.tiles:
            self.tiles.remove(tile)

    def return_tile(self, tile: Tile) -> None:
        """Give an upgraded-over tile back to the pool.

        Preprinted tiles are discarded.
        """
        if tile.preprinted or tile in self.tiles:
            return
        tile.rotate(0)
        self.tiles.append(tile)

    def available(self, colors: Optional[Iterable[TileColor]] = None) -> list[Tile]:
        """Tiles in the pool, optionally restricted to some colors."""
        if colors is None:
            return list(self.tiles)
        allowed = set(colors)
        return [tile for tile in self.tiles if tile.color in allowed]

    def count(self, name: str) -> int:
        return sum(1 for tile in self.tiles if tile.name == name)

    @property
    def names(self) -> list[str]:
        return sorted({tile.name for tile in self.tiles})

    def __contains__(self, tile: Tile) -> bool:
        return tile in self.tiles

    def __iter__(self) -> Iterator[Tile]:
        return iter(self.tiles)

    def __len__(self) -> int:
        return len(self.tiles)
