"""Core data models for the tile-laying engine."""

from .constants import (
    TileColor,
    Track,
    TrackRestriction,
    AbilityType,
    Layout,
    TILE_COLOR_ORDER,
    FIRST_LAY_COLOR,
    ALL_EDGES,
    DIRECTIONS,
    NOT_IF_UPGRADED,
    DEFAULT_TILE_LAYS,
    TIME_TRACK,
    TIME_SPECIAL_TRACK,
    TIME_ANY,
)

from .errors import GameError

from .tile import (
    Node,
    City,
    Town,
    Junction,
    Path,
    Border,
    TerrainUpgrade,
    Tile,
)

from .hexes import Hex, HexMap, TileSwap, parse_coordinates

from .entities import Entity, Bank, Player, Token, Corporation, Company

from .abilities import (
    Ability,
    TileLayAbility,
    TeleportAbility,
    BlocksHexesAbility,
    TileDiscountAbility,
    TileIncomeAbility,
)

from .tile_catalog import TileCatalog

from .round_state import PendingToken, RoundState

from .graph import Connectivity, ConnectivityGraph

__all__ = [
    # Constants
    "TileColor",
    "Track",
    "TrackRestriction",
    "AbilityType",
    "Layout",
    "TILE_COLOR_ORDER",
    "FIRST_LAY_COLOR",
    "ALL_EDGES",
    "DIRECTIONS",
    "NOT_IF_UPGRADED",
    "DEFAULT_TILE_LAYS",
    "TIME_TRACK",
    "TIME_SPECIAL_TRACK",
    "TIME_ANY",
    # Errors
    "GameError",
    # Tiles
    "Node",
    "City",
    "Town",
    "Junction",
    "Path",
    "Border",
    "TerrainUpgrade",
    "Tile",
    # Map
    "Hex",
    "HexMap",
    "TileSwap",
    "parse_coordinates",
    # Entities
    "Entity",
    "Bank",
    "Player",
    "Token",
    "Corporation",
    "Company",
    # Abilities
    "Ability",
    "TileLayAbility",
    "TeleportAbility",
    "BlocksHexesAbility",
    "TileDiscountAbility",
    "TileIncomeAbility",
    # Tile supply and round state
    "TileCatalog",
    "PendingToken",
    "RoundState",
    # Connectivity
    "Connectivity",
    "ConnectivityGraph",
]
