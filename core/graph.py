"""Track connectivity for operating corporations.

The track on the map is turned into a networkx multigraph whose vertices are
cities, towns, junctions and hex edges (an edge shared by two hexes is one
vertex), and whose edges are tile paths. Connectivity for a corporation is a
walk from its placed tokens that may enter, but not pass through, cities
filled by other corporations.

Results are memoized per entity and recomputed whenever the map version
changes, so a tile lay or token move can never leave a stale answer behind.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Hashable, Optional

import networkx as nx

from .constants import Track
from .hexes import Hex, HexMap
from .tile import City, Node, Path, Town

if TYPE_CHECKING:
    from .entities import Entity


logger = logging.getLogger(__name__)


def edge_key(hex: Hex, edge: int) -> frozenset:
    """Graph vertex for a hex edge, shared with the neighbor across it."""
    neighbor = hex.neighbors.get(edge)
    if neighbor is None:
        return frozenset({(hex.id, edge)})
    return frozenset({(hex.id, edge), (neighbor.id, Hex.invert(edge))})


@dataclass
class Connectivity:
    """Everything an entity's network touches.

    Attributes:
        nodes: Cities and towns reached.
        paths: Paths usable by the entity.
        hexes: For each hex, the edges the entity can build from.
        reachable: Hexes holding at least one usable path.
    """

    nodes: set[Node]
    paths: set[Path]
    hexes: dict[Hex, set[int]]
    reachable: set[Hex]


class ConnectivityGraph:
    """Lazily computed connectivity of the map for each entity.

    Attributes:
        hex_map: The map being analysed.
        skip_track: Paths of this gauge are ignored.
        seed_graph: When set, walks start from the nodes this graph reaches
            and token blocking is ignored.
    """

    def __init__(
        self,
        hex_map: HexMap,
        skip_track: Optional[Track] = None,
        seed_graph: Optional[ConnectivityGraph] = None,
    ):
        self.hex_map = hex_map
        self.skip_track = skip_track
        self.seed_graph = seed_graph
        self._track: Optional[nx.MultiGraph] = None
        self._track_version = -1
        self._cache: dict[Entity, tuple[int, Connectivity]] = {}

    def clear(self) -> None:
        """Drop everything memoized."""
        self._cache.clear()
        self._track = None
        self._track_version = -1

    def track_graph(self) -> nx.MultiGraph:
        """Return the multigraph of all track on the map."""
        if self._track is None or self._track_version != self.hex_map.version:
            self._track = self._build_track_graph()
            self._track_version = self.hex_map.version
        return self._track

    def _build_track_graph(self) -> nx.MultiGraph:
        graph = nx.MultiGraph()
        for hex in self.hex_map:
            for path in hex.tile.paths:
                if self.skip_track is not None and path.track == self.skip_track:
                    continue
                graph.add_edge(
                    self._vertex(hex, path.a, path),
                    self._vertex(hex, path.b, path),
                    path=path,
                )
        return graph

    @staticmethod
    def _vertex(hex: Hex, end: object, path: Path) -> Hashable:
        if isinstance(end, int):
            return edge_key(hex, (end + path.rotation) % 6)
        return end

    def connectivity(self, entity: Entity) -> Connectivity:
        cached = self._cache.get(entity)
        if cached is not None and cached[0] == self.hex_map.version:
            return cached[1]
        result = self._compute(entity)
        self._cache[entity] = (self.hex_map.version, result)
        logger.debug(
            "Recomputed connectivity for %s at map version %d: %d hexes",
            entity.name, self.hex_map.version, len(result.hexes),
        )
        return result

    def _compute(self, entity: Entity) -> Connectivity:
        graph = self.track_graph()
        hexes: dict[Hex, set[int]] = defaultdict(set)

        if self.seed_graph is not None:
            start = list(self.seed_graph.connected_nodes(entity))
            check_blocking = False
        else:
            start = []
            for token in getattr(entity, "placed_tokens", []):
                city = token.city
                if city is None or city.hex is None:
                    continue
                start.append(city)
                hexes[city.hex].update(city.hex.neighbors)
            check_blocking = True

        seen: set[Hashable] = set(start)
        starts = set(start)
        frontier = deque(start)
        paths: set[Path] = set()

        while frontier:
            current = frontier.popleft()
            if (
                check_blocking
                and current not in starts
                and isinstance(current, City)
                and current.blocks(entity)
            ):
                continue
            if current not in graph:
                continue
            for neighbor, edges in graph.adj[current].items():
                for data in edges.values():
                    paths.add(data["path"])
                if neighbor not in seen:
                    seen.add(neighbor)
                    frontier.append(neighbor)

        for path in paths:
            hex = path.hex
            for edge in path.exits:
                hexes[hex].add(edge)
                neighbor = hex.neighbors.get(edge)
                if neighbor is not None:
                    hexes[neighbor].add(Hex.invert(edge))

        return Connectivity(
            nodes={n for n in seen if isinstance(n, (City, Town))},
            paths=paths,
            hexes=dict(hexes),
            reachable={path.hex for path in paths},
        )

    def connected_nodes(self, entity: Entity) -> set[Node]:
        return self.connectivity(entity).nodes

    def connected_paths(self, entity: Entity) -> set[Path]:
        return self.connectivity(entity).paths

    def connected_hexes(self, entity: Entity) -> dict[Hex, set[int]]:
        return self.connectivity(entity).hexes

    def reachable_hexes(self, entity: Entity) -> set[Hex]:
        return self.connectivity(entity).reachable
