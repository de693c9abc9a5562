"""18 Ireland track rules.

Ireland mixes broad and narrow gauge. The main connectivity graph only
follows broad track; a second graph follows narrow track out from every
node the broad network reaches and ignores token blocking. Narrow-gauge
upgrades are free, and a tile's exits must match the gauge of the track
they join.
"""

from __future__ import annotations

from typing import Optional, Sequence

from core.constants import NOT_IF_UPGRADED, TileColor, Track
from core.entities import Company, Entity
from core.graph import ConnectivityGraph
from core.hexes import Hex
from core.tile import Tile

from ..game import BaseGame
from ..tracker import Tracker


class G18IrelandGame(BaseGame):
    CURRENCY_FORMAT_STR = "£%d"
    BANK_CASH = 4000

    TILE_LAYS = (
        {"lay": True, "upgrade": True},
        {"lay": NOT_IF_UPGRADED, "upgrade": False, "cost": 20},
    )
    # Schedule for a corporation owning the William Dargan private
    DARGAN_TILE_LAYS = (
        {"lay": True, "upgrade": True},
        {"lay": NOT_IF_UPGRADED, "upgrade": True, "cost": 20, "upgrade_cost": 30},
    )
    DARGAN_COMPANY = "WDE"
    # Companies that may lay track without a connection
    UNCONNECTED_LAY_COMPANIES = ("TIM", "DR", "TDR")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.narrow_graph = ConnectivityGraph(
            self.hex_map, skip_track=Track.BROAD, seed_graph=self.graph
        )

    def init_graph(self) -> ConnectivityGraph:
        return ConnectivityGraph(self.hex_map, skip_track=Track.NARROW)

    def invalidate_connectivity(self) -> None:
        super().invalidate_connectivity()
        self.narrow_graph.clear()

    def tile_lays(self, entity: Optional[Entity]) -> Sequence[dict]:
        if entity is None or not entity.is_corporation:
            return super().tile_lays(entity)
        if not any(company.id == self.DARGAN_COMPANY for company in entity.companies):
            return super().tile_lays(entity)
        return self.DARGAN_TILE_LAYS

    def upgrade_cost(self, old_tile: Tile, hex: Hex, entity: Entity) -> int:
        # Narrow gauge is built for free
        if all(path.track == Track.NARROW for path in hex.tile.paths):
            return 0
        return super().upgrade_cost(old_tile, hex, entity)

    @staticmethod
    def tile_uses_broad_rules(old_tile: Tile, tile: Tile) -> bool:
        """Check if a lay is a broad-gauge lay.

        A lay is broad gauge unless it adds a path that is neither broad nor
        already present on the old tile.
        """
        return all(
            path.track == Track.BROAD or any(path <= old for old in old_tile.paths)
            for path in tile.paths
        )

    def narrow_connected_hexes(self, entity: Entity) -> dict[Hex, set[int]]:
        return self.narrow_graph.connected_hexes(entity)

    def legal_tile_rotation(self, entity: Entity, hex: Hex, tile: Tile) -> bool:
        if not (entity.is_company and entity.id in self.UNCONNECTED_LAY_COMPANIES):
            corporation = entity.corporation if entity.is_company else entity
            if corporation is None:
                return False
            directions = set(self.graph.connected_hexes(corporation).get(hex, ()))
            if not self.tile_uses_broad_rules(hex.tile, tile):
                directions |= self.narrow_connected_hexes(corporation).get(hex, set())
            if not directions:
                return False

        for edge in tile.exits:
            connecting = next((p for p in tile.paths if edge in p.exits), None)
            neighbor = hex.neighbors.get(edge)
            if connecting is None or neighbor is None:
                continue
            neighboring = next(
                (p for p in neighbor.tile.paths if Hex.invert(edge) in p.exits), None
            )
            if neighboring is not None and not connecting.tracks_match(neighboring):
                return False
        return True

    def upgrades_to(
        self,
        from_tile: Tile,
        to_tile: Tile,
        special: bool = False,
        selected_company: Optional[Company] = None,
    ) -> bool:
        # The Irish Mail
        if special and from_tile.color == TileColor.BLUE and to_tile.color == TileColor.RED:
            return True
        return super().upgrades_to(from_tile, to_tile, False, selected_company=selected_company)


class G18IrelandTracker(Tracker):
    """Track step that can also build out from the narrow-gauge network."""

    game: G18IrelandGame

    def hex_neighbors(
        self, entity: Entity, hex: Hex, tile: Optional[Tile] = None
    ) -> Optional[set[int]]:
        edges = super().hex_neighbors(entity, hex, tile)
        if not entity.is_corporation:
            return edges
        narrow = self.game.narrow_connected_hexes(entity).get(hex)
        if not narrow:
            return edges
        return (edges or set()) | narrow
