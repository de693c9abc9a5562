"""Track tiles and their parts.

A tile holds paths between hex edges and nodes (cities, towns, junctions).
Edge numbers on paths are stored unrotated; the owning tile's rotation is
applied when asking for exits. Borders are stored with absolute edges since
they belong to the map position rather than the printed tile.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Union

from .constants import ALL_EDGES, TileColor, Track

if TYPE_CHECKING:
    from .entities import Corporation, Token
    from .hexes import Hex


class Node:
    """Base class for the non-edge ends of a path."""

    tile: Optional[Tile] = None
    index: int = 0

    @property
    def hex(self) -> Optional[Hex]:
        return self.tile.hex if self.tile is not None else None

    @property
    def max_revenue(self) -> int:
        return 0


@dataclass(eq=False)
class City(Node):
    """A city with token slots.

    Attributes:
        revenue: Flat revenue, or a mapping of phase color name to revenue.
        slots: Number of token slots.
        tokens: Slot contents, None for an empty slot.
    """

    revenue: Union[int, dict[str, int]] = 0
    slots: int = 1
    tokens: list[Optional[Token]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.slots < 1:
            raise ValueError(f"City must have at least one slot, got {self.slots}")
        if not self.tokens:
            self.tokens = [None] * self.slots

    @property
    def max_revenue(self) -> int:
        if isinstance(self.revenue, dict):
            return max(self.revenue.values(), default=0)
        return self.revenue

    def get_placed_tokens(self) -> list[Token]:
        """Return the tokens currently sitting in this city."""
        return [token for token in self.tokens if token is not None]

    def tokened_by(self, corporation: Corporation) -> bool:
        return any(
            token.corporation is corporation for token in self.get_placed_tokens()
        )

    def blocks(self, corporation: Corporation) -> bool:
        """Check if this city stops the corporation from tracing through it.

        A city blocks when every slot is filled and none holds the
        corporation's token.
        """
        return all(slot is not None for slot in self.tokens) and not self.tokened_by(corporation)

    def place_token(self, token: Token) -> None:
        """Put a token into the first free slot.

        Raises:
            ValueError: If every slot is already taken.
        """
        for idx, slot in enumerate(self.tokens):
            if slot is None:
                self.tokens[idx] = token
                token.city = self
                return
        raise ValueError(f"No free token slot in city {self.index} of tile {self.tile}")

    def remove_token(self, token: Token) -> None:
        for idx, slot in enumerate(self.tokens):
            if slot is token:
                self.tokens[idx] = None


@dataclass(eq=False)
class Town(Node):
    """A town (single revenue stop, no token slots)."""

    revenue: Union[int, dict[str, int]] = 0

    @property
    def max_revenue(self) -> int:
        if isinstance(self.revenue, dict):
            return max(self.revenue.values(), default=0)
        return self.revenue


@dataclass(eq=False)
class Junction(Node):
    """A plain track junction in the middle of a tile."""


PathEnd = Union[int, Node]


def _part_le(part: PathEnd, other: PathEnd) -> bool:
    """Check if one path end is covered by another.

    Edges must be the same absolute edge. A town is covered by a town or a
    city, a city only by a city.
    """
    if isinstance(part, int):
        return isinstance(other, int) and part == other
    if isinstance(part, City):
        return isinstance(other, City)
    if isinstance(part, Town):
        return isinstance(other, (Town, City))
    return isinstance(other, Junction)


@dataclass(eq=False)
class Path:
    """A piece of track between two ends of a tile.

    Attributes:
        a: First end (unrotated edge number or node).
        b: Second end (unrotated edge number or node).
        track: Gauge of the track.
    """

    a: PathEnd
    b: PathEnd
    track: Track = Track.BROAD
    tile: Optional[Tile] = None

    @property
    def ends(self) -> tuple[PathEnd, PathEnd]:
        return (self.a, self.b)

    @property
    def hex(self) -> Optional[Hex]:
        return self.tile.hex if self.tile is not None else None

    @property
    def rotation(self) -> int:
        return self.tile.rotation if self.tile is not None else 0

    def absolute_ends(self, rotation: Optional[int] = None) -> tuple[PathEnd, PathEnd]:
        """Return the ends with edge numbers rotated.

        Args:
            rotation: Rotation to apply. Defaults to the tile's rotation.
        """
        ticks = self.rotation if rotation is None else rotation
        return tuple(
            (end + ticks) % 6 if isinstance(end, int) else end
            for end in self.ends
        )

    @property
    def exits(self) -> list[int]:
        """Absolute edges this path leaves the hex through."""
        return [end for end in self.absolute_ends() if isinstance(end, int)]

    @property
    def nodes(self) -> list[Node]:
        """Revenue nodes (cities and towns) on this path."""
        return [end for end in self.ends if isinstance(end, (City, Town))]

    def touches(self, node: Node) -> bool:
        return self.a is node or self.b is node

    def is_subset_of(self, other: Path, rotation: Optional[int] = None) -> bool:
        """Check if this path is covered by another path.

        Ends must match pairwise in either order, and the gauge must match
        unless the other path is dual gauge.

        Args:
            other: The covering candidate, taken at its tile's rotation.
            rotation: Rotation for this path. Defaults to its tile's rotation.
        """
        if self.track != other.track and other.track != Track.DUAL:
            return False
        a, b = self.absolute_ends(rotation)
        other_a, other_b = other.absolute_ends()
        return (
            (_part_le(a, other_a) and _part_le(b, other_b))
            or (_part_le(a, other_b) and _part_le(b, other_a))
        )

    def __le__(self, other: Path) -> bool:
        return self.is_subset_of(other)

    def tracks_match(self, other: Path) -> bool:
        """Check if this path can join another path across a hex edge."""
        return (
            self.track == other.track
            or Track.DUAL in (self.track, other.track)
        )

    def __repr__(self) -> str:
        return f"Path({self.absolute_ends()}, {self.track.value})"


@dataclass
class Border:
    """A terrain edge (river, mountain range) with a cost to cross.

    Attributes:
        edge: Absolute edge of the hex the border lies on.
        cost: Cost to build across it, None for an impassable/cosmetic border.
        type: Terrain type name, used for discounts and income.
    """

    edge: int
    cost: Optional[int] = None
    type: Optional[str] = None


@dataclass(frozen=True)
class TerrainUpgrade:
    """Cost to lay track on a hex with terrain (mountain, water...)."""

    cost: int
    terrains: tuple[str, ...] = ()


class Tile:
    """A track tile, printed on the map or drawn from the tile supply.

    Attributes:
        name: Tile number/name (e.g. "57").
        color: Tile color, determining upgrade order.
        paths: Track pieces on the tile.
        cities: Cities in declaration order.
        towns: Towns in declaration order.
        borders: Terrain borders currently on the tile.
        upgrades: Terrain costs charged when this tile is upgraded.
        label: Optional label (e.g. "OO", "B") restricting upgrades.
        unlimited: Supply of this tile never runs out.
        preprinted: Printed on the map; never returned to the supply.
        blocks_lay: Cannot be laid by normal tile lays.
        index: Copy number among tiles with the same name.
    """

    def __init__(
        self,
        name: str,
        color: TileColor,
        paths: Optional[list[Path]] = None,
        cities: Optional[list[City]] = None,
        towns: Optional[list[Town]] = None,
        junction: Optional[Junction] = None,
        borders: Optional[list[Border]] = None,
        upgrades: Optional[list[TerrainUpgrade]] = None,
        label: Optional[str] = None,
        unlimited: bool = False,
        preprinted: bool = False,
        blocks_lay: bool = False,
        location_name: Optional[str] = None,
        index: int = 0,
    ):
        self.name = name
        self.color = color
        self.paths = list(paths or [])
        self.cities = list(cities or [])
        self.towns = list(towns or [])
        self.junction = junction
        self.borders = list(borders or [])
        self.upgrades = list(upgrades or [])
        self.label = label
        self.unlimited = unlimited
        self.preprinted = preprinted
        self.blocks_lay = blocks_lay
        self.location_name = location_name
        self.index = index
        self.rotation = 0
        self.legal_rotations: list[int] = []
        self.hex: Optional[Hex] = None

        for idx, node in enumerate(self.city_towns):
            node.tile = self
            node.index = idx
        if self.junction is not None:
            self.junction.tile = self
        for path in self.paths:
            path.tile = self

    @property
    def id(self) -> str:
        return f"{self.name}-{self.index}"

    @property
    def city_towns(self) -> list[Node]:
        return [*self.cities, *self.towns]

    def rotate(self, rotation: int) -> None:
        """Set the absolute rotation (0-5)."""
        if rotation not in ALL_EDGES:
            raise ValueError(f"Invalid rotation {rotation}")
        self.rotation = rotation

    @property
    def exits(self) -> list[int]:
        """Sorted absolute edges used by any path."""
        return sorted({edge for path in self.paths for edge in path.exits})

    def node_exits(self, node: Node) -> set[int]:
        """Absolute edges reached by the paths touching a node."""
        return {edge for path in self.paths if path.touches(node) for edge in path.exits}

    @property
    def city_town_edges(self) -> list[set[int]]:
        """Exit groups of the cities and towns that have track to an edge."""
        groups = [self.node_exits(node) for node in self.city_towns]
        return [edges for edges in groups if edges]

    @property
    def terrain(self) -> list[str]:
        return [terrain for upgrade in self.upgrades for terrain in upgrade.terrains]

    def paths_are_subset_of(self, other_paths: list[Path]) -> bool:
        """Check if this tile's track fits inside other_paths in some orientation."""
        return any(
            all(
                any(path.is_subset_of(other, rotation) for other in other_paths)
                for path in self.paths
            )
            for rotation in ALL_EDGES
        )

    def duplicate(self, index: int) -> Tile:
        """Create a fresh, unplaced copy of this tile with a new index."""
        node_map: dict[int, Node] = {}
        cities = []
        for city in self.cities:
            clone = City(revenue=city.revenue, slots=city.slots)
            node_map[id(city)] = clone
            cities.append(clone)
        towns = []
        for town in self.towns:
            clone = Town(revenue=town.revenue)
            node_map[id(town)] = clone
            towns.append(clone)
        junction = None
        if self.junction is not None:
            junction = Junction()
            node_map[id(self.junction)] = junction

        def copy_end(end: PathEnd) -> PathEnd:
            return end if isinstance(end, int) else node_map[id(end)]

        paths = [
            Path(copy_end(path.a), copy_end(path.b), track=path.track)
            for path in self.paths
        ]
        return Tile(
            self.name,
            self.color,
            paths=paths,
            cities=cities,
            towns=towns,
            junction=junction,
            upgrades=list(self.upgrades),
            label=self.label,
            unlimited=self.unlimited,
            preprinted=self.preprinted,
            blocks_lay=self.blocks_lay,
            location_name=self.location_name,
            index=index,
        )

    def __repr__(self) -> str:
        return f"Tile({self.id}, {self.color.value}, rotation={self.rotation})"
