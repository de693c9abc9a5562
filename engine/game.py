"""Base rules object for a game.

BaseGame owns the shared state the track step works on (map, tile supply,
entities, bank, phase, log) and exposes the rule hooks a specific game
overrides: tile-lay schedule, upgrade compatibility, costs, rotation rules
and the track-usage restriction policy.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from core.abilities import Ability
from core.constants import (
    DEFAULT_TILE_LAYS,
    TILE_COLOR_ORDER,
    AbilityType,
    TileColor,
    TrackRestriction,
)
from core.entities import Bank, Company, Corporation, Entity, Player
from core.graph import ConnectivityGraph
from core.hexes import Hex, HexMap
from core.tile import Tile
from core.tile_catalog import TileCatalog


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Phase:
    """Game phase as far as track is concerned.

    Attributes:
        name: Phase name (usually the train that started it).
        tiles: Tile colors that may be laid.
        status: Extra phase flags (e.g. "can_buy_companies").
    """

    name: str
    tiles: tuple[TileColor, ...] = (TileColor.YELLOW,)
    status: tuple[str, ...] = ()


class GameLog:
    """Ordered, player-facing game messages.

    Messages are mirrored to the module logger. Inside a transaction they
    are held back and dropped if the transaction fails.
    """

    def __init__(self) -> None:
        self.messages: list[str] = []
        self._pending: Optional[list[str]] = None

    def append(self, message: str) -> None:
        if self._pending is not None:
            self._pending.append(message)
            return
        self._emit(message)

    def _emit(self, message: str) -> None:
        self.messages.append(message)
        logger.info(message)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Only keep the messages of the block if it completes."""
        if self._pending is not None:
            yield
            return
        self._pending = []
        try:
            yield
        except Exception:
            self._pending = None
            raise
        pending, self._pending = self._pending, None
        for message in pending:
            self._emit(message)

    def __iter__(self) -> Iterator[str]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def __getitem__(self, idx: int) -> str:
        return self.messages[idx]


class BaseGame:
    """Default rules shared by all games.

    Subclasses override the class constants and hook methods.
    """

    TILE_LAYS: Sequence[dict] = DEFAULT_TILE_LAYS
    TRACK_RESTRICTION = TrackRestriction.SEMI_RESTRICTIVE
    CURRENCY_FORMAT_STR = "$%d"
    BANK_CASH = 12000
    LOANS = False
    LOAN_VALUE = 100

    def __init__(
        self,
        hex_map: HexMap,
        tiles: Optional[TileCatalog] = None,
        corporations: Optional[list[Corporation]] = None,
        companies: Optional[list[Company]] = None,
        players: Optional[list[Player]] = None,
        bank: Optional[Bank] = None,
        phase: Optional[Phase] = None,
    ):
        self.hex_map = hex_map
        self.tiles = tiles if tiles is not None else TileCatalog()
        self.corporations = list(corporations or [])
        self.companies = list(companies or [])
        self.players = list(players or [])
        self.bank = bank if bank is not None else Bank(cash=self.BANK_CASH)
        self.phase = phase if phase is not None else Phase(name="2")
        self.log = GameLog()
        self.loading = False
        self.current_entity: Optional[Entity] = None
        self.graph = self.init_graph()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def init_graph(self) -> ConnectivityGraph:
        return ConnectivityGraph(self.hex_map)

    def graph_for_entity(self, entity: Entity) -> ConnectivityGraph:
        return self.graph

    def invalidate_connectivity(self) -> None:
        """Force every connectivity query to be recomputed."""
        self.hex_map.touch()

    @property
    def hexes(self) -> list[Hex]:
        return list(self.hex_map)

    def hex_by_id(self, hex_id: str) -> Hex:
        return self.hex_map.hex_by_id(hex_id)

    def company_by_id(self, sym: str) -> Optional[Company]:
        return next((c for c in self.companies if c.sym == sym), None)

    def corporation_by_id(self, sym: str) -> Optional[Corporation]:
        return next((c for c in self.corporations if c.sym == sym), None)

    def format_currency(self, amount: int) -> str:
        return self.CURRENCY_FORMAT_STR % amount

    # -------------------------------------------------------------------------
    # Abilities
    # -------------------------------------------------------------------------

    def abilities(
        self,
        entity: Optional[Entity],
        ability_type: AbilityType,
        time: Optional[Sequence[str]] = None,
        passive_ok: bool = True,
    ) -> list[Ability]:
        """Active abilities of one kind held by an entity."""
        if entity is None or (entity.is_company and entity.closed):
            return []
        return [
            ability
            for ability in entity.all_abilities
            if ability.type == ability_type
            and ability.is_active(time)
            and (passive_ok or not ability.passive)
        ]

    def all_companies_with_ability(
        self, ability_type: AbilityType
    ) -> Iterator[tuple[Company, Ability]]:
        """Yield (company, ability) for every open company holding the kind."""
        for company in list(self.companies):
            if company.closed:
                continue
            for ability in self.abilities(company, ability_type):
                yield company, ability

    def hex_blocked_by_ability(self, entity: Entity, ability: Ability, hex: Hex) -> bool:
        """Check if a hex-blocking ability stops an entity from laying on a hex.

        The player controlling the blocking company is never blocked.
        """
        owner_player = ability.owner.player if ability.owner is not None else None
        if owner_player is not None and owner_player is entity.player:
            return False
        return hex.id in ability.hexes

    # -------------------------------------------------------------------------
    # Track rules
    # -------------------------------------------------------------------------

    def tile_lays(self, entity: Optional[Entity]) -> Sequence[dict]:
        """Ordered lay/upgrade entitlements for one turn."""
        return self.TILE_LAYS

    def upgrades_to(
        self,
        from_tile: Tile,
        to_tile: Tile,
        special: bool = False,
        selected_company: Optional[Company] = None,
    ) -> bool:
        """Check if one tile may replace another.

        The color must be the next in sequence and the old track must fit in
        the new tile. Special lays skip the label and city/town count checks.
        """
        if not self._upgrades_to_correct_color(from_tile, to_tile):
            return False
        if not from_tile.paths_are_subset_of(to_tile.paths):
            return False
        if special:
            return True
        if from_tile.label != to_tile.label:
            return False
        return self._upgrades_to_correct_city_town(from_tile, to_tile)

    @staticmethod
    def _upgrades_to_correct_color(from_tile: Tile, to_tile: Tile) -> bool:
        if from_tile.color not in TILE_COLOR_ORDER or to_tile.color not in TILE_COLOR_ORDER:
            return False
        return TILE_COLOR_ORDER.index(to_tile.color) == TILE_COLOR_ORDER.index(from_tile.color) + 1

    @staticmethod
    def _upgrades_to_correct_city_town(from_tile: Tile, to_tile: Tile) -> bool:
        # Labelled cities (OO and friends) may merge their cities
        if len(from_tile.towns) != len(to_tile.towns):
            return False
        if from_tile.label is None and len(from_tile.cities) != len(to_tile.cities):
            return False
        return True

    def upgrade_cost(self, old_tile: Tile, hex: Hex, entity: Entity) -> int:
        """Terrain cost of building on a hex, less any terrain discount."""
        ability = next(
            (
                a for a in entity.all_abilities
                if a.type == AbilityType.TILE_DISCOUNT
                and (a.hexes is None or hex.id in a.hexes)
            ),
            None,
        )
        total = 0
        for upgrade in old_tile.upgrades:
            discount = 0
            if ability is not None and set(upgrade.terrains) == {ability.terrain}:
                discount = min(ability.discount, upgrade.cost)
            if discount > 0:
                self.log.append(
                    f"{entity.name} receives a discount of "
                    f"{self.format_currency(discount)} from {ability.owner.name}"
                )
            total += upgrade.cost - discount
        return total

    def tile_cost_with_discount(self, tile: Tile, hex: Hex, entity: Entity, cost: int) -> int:
        """Final adjustment of a lay's cost."""
        return cost

    def legal_tile_rotation(self, entity: Entity, hex: Hex, tile: Tile) -> bool:
        """Game-specific rotation rule, checked before the generic ones."""
        return True

    def add_extra_tile(self, tile: Tile) -> Tile:
        return self.tiles.add_extra_tile(tile)

    # -------------------------------------------------------------------------
    # Money
    # -------------------------------------------------------------------------

    def buying_power(self, entity: Entity) -> int:
        return entity.cash

    def purchasable_companies(self, entity: Optional[Entity] = None) -> list[Company]:
        """Open companies still held by players."""
        return [
            company for company in self.companies
            if not company.closed
            and company.owner is not None
            and company.owner.is_player
        ]

    def maximum_loans(self, entity: Corporation) -> int:
        return entity.total_shares

    def can_take_loan(self, entity: Entity) -> bool:
        return (
            self.LOANS
            and entity.is_corporation
            and len(entity.loans) < self.maximum_loans(entity)
        )

    def loan_capacity(self, entity: Entity) -> int:
        """Money still available to an entity through loans."""
        if not self.can_take_loan(entity):
            return 0
        return (self.maximum_loans(entity) - len(entity.loans)) * self.LOAN_VALUE

    def take_loan(self, entity: Corporation) -> None:
        """Borrow LOAN_VALUE from the bank.

        Raises:
            ValueError: If the entity cannot take another loan.
        """
        if not self.can_take_loan(entity):
            raise ValueError(f"{entity.name} cannot take a loan")
        self.bank.spend(self.LOAN_VALUE, entity)
        entity.loans.append(self.LOAN_VALUE)
        self.log.append(f"{entity.name} takes a loan of {self.format_currency(self.LOAN_VALUE)}")
