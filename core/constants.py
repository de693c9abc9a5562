"""Constants and enums for the tile-laying engine."""

from enum import Enum


class TileColor(Enum):
    """Tile colors. Upgrade order is given by TILE_COLOR_ORDER."""

    WHITE = "white"  # Bare map hex, no track yet
    YELLOW = "yellow"
    GREEN = "green"
    BROWN = "brown"
    GRAY = "gray"
    # Off-sequence colors, only reachable through special upgrades
    BLUE = "blue"
    RED = "red"


class Track(Enum):
    """Track gauge of a path."""

    BROAD = "broad"
    NARROW = "narrow"
    DUAL = "dual"  # Usable as either gauge


class TrackRestriction(Enum):
    """Policies for whether an upgrade must be usable by the laying corporation."""

    PERMISSIVE = "permissive"
    CITY_PERMISSIVE = "city_permissive"
    RESTRICTIVE = "restrictive"
    SEMI_RESTRICTIVE = "semi_restrictive"


class AbilityType(Enum):
    """Kinds of special abilities relevant to laying track."""

    TILE_LAY = "tile_lay"
    TELEPORT = "teleport"
    BLOCKS_HEXES = "blocks_hexes"
    TILE_DISCOUNT = "tile_discount"
    TILE_INCOME = "tile_income"


class Layout(Enum):
    """Hex orientation of a map."""

    FLAT = "flat"
    POINTY = "pointy"


# Upgrade ranking
TILE_COLOR_ORDER = [
    TileColor.WHITE,
    TileColor.YELLOW,
    TileColor.GREEN,
    TileColor.BROWN,
    TileColor.GRAY,
]

# A lay of this color is a new lay; anything else counts as an upgrade
FIRST_LAY_COLOR = TileColor.YELLOW

ALL_EDGES = (0, 1, 2, 3, 4, 5)

# Doubled coordinate offsets to the neighbor on each edge.
# Flat maps use x=letter, y=number; pointy maps use x=number, y=letter.
DIRECTIONS = {
    Layout.FLAT: {
        0: (0, 2),
        1: (-1, 1),
        2: (-1, -1),
        3: (0, -2),
        4: (1, -1),
        5: (1, 1),
    },
    Layout.POINTY: {
        0: (-1, 1),
        1: (-2, 0),
        2: (-1, -1),
        3: (1, -1),
        4: (2, 0),
        5: (1, 1),
    },
}

# Entitlement value that resolves to True only while no upgrade was laid this turn
NOT_IF_UPGRADED = "not_if_upgraded"

# One lay or upgrade per turn
DEFAULT_TILE_LAYS = (
    {"lay": True, "upgrade": True},
)

# Ability time windows
TIME_TRACK = "track"
TIME_SPECIAL_TRACK = "special_track"
TIME_ANY = "any"
