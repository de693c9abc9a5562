"""Actions consumed by the track step."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.entities import Entity
from core.hexes import Hex
from core.tile import Tile


@dataclass
class LayTile:
    """Lay or upgrade a tile.

    Attributes:
        entity: Corporation or company laying the tile.
        hex: Target hex.
        tile: Tile from the supply.
        rotation: Absolute rotation (0-5).
        cost: Extra surcharge computed by the caller.
        spender: Who pays, when not the entity itself.
    """

    entity: Entity
    hex: Hex
    tile: Tile
    rotation: int = 0
    cost: int = 0
    spender: Optional[Entity] = None

    def __str__(self) -> str:
        return (
            f"LayTile({self.entity.name}, tile={self.tile.name}, "
            f"hex={self.hex.id}, rotation={self.rotation})"
        )
