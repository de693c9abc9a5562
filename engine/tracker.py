"""Track step: validating and applying tile lays.

The Tracker runs one entity's tile lays during an operating turn:
- Entitlements: which lay of the turn this is, and whether it may be a new
  tile, an upgrade, and at what surcharge
- Legality: hex blocks, upgrade compatibility, rotation and connectivity,
  and the game's track-usage restriction policy
- Cost: terrain, borders, ability discounts, free lays and teleports
- Effects: map update, token displacement, tile income, ability use

A lay is all-or-nothing. Every rule is checked before anything is committed;
checks that need the new track on the map run against a provisional
placement that is reverted if they fail.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional, Union

from core.abilities import Ability, TeleportAbility, TileIncomeAbility, TileLayAbility
from core.constants import (
    ALL_EDGES,
    FIRST_LAY_COLOR,
    NOT_IF_UPGRADED,
    TIME_TRACK,
    AbilityType,
    TileColor,
    TrackRestriction,
)
from core.entities import Company, Entity
from core.errors import GameError
from core.hexes import Hex
from core.round_state import PendingToken, RoundState
from core.tile import Border, Tile

from .actions import LayTile

if TYPE_CHECKING:
    from .game import BaseGame


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TileLay:
    """One resolved entry of a game's tile-lay schedule.

    Attributes:
        lay: A new (yellow) tile may be laid.
        upgrade: An existing tile may be upgraded.
        cost: Surcharge for a new tile.
        upgrade_cost: Surcharge for an upgrade.
        cannot_reuse_same_hex: The hex must not have been laid on this turn.
    """

    lay: bool
    upgrade: bool
    cost: int = 0
    upgrade_cost: int = 0
    cannot_reuse_same_hex: bool = False


@dataclass
class AbilityScan:
    """What the entity's matching tile-lay abilities contribute to a lay."""

    found: bool = False
    teleport: bool = False
    free: bool = False
    special: bool = False
    discount: int = 0
    extra_cost: int = 0
    teleports: list[TeleportAbility] = field(default_factory=list)
    reachable: list[TileLayAbility] = field(default_factory=list)
    used: list[Ability] = field(default_factory=list)


@dataclass
class BorderRemoval:
    """Borders a lay will clear, and what clearing them costs."""

    cost: int = 0
    types: list[str] = field(default_factory=list)
    pairs: list[tuple[Tile, Border, Tile, int]] = field(default_factory=list)


class Tracker:
    """Lays tiles for the entity currently operating.

    Attributes:
        game: Rules object providing the map, supply and hooks.
        round: Per-turn counters, owned by the round controller.
        time: Ability time windows this step counts as.
    """

    def __init__(
        self,
        game: BaseGame,
        round_state: Optional[RoundState] = None,
        time: Union[str, tuple[str, ...]] = TIME_TRACK,
    ):
        self.game = game
        self.round = round_state if round_state is not None else RoundState()
        self.time = (time,) if isinstance(time, str) else tuple(time)
        self._ability_handlers: dict[
            AbilityType, Callable[[AbilityScan, Ability], None]
        ] = {
            AbilityType.TELEPORT: self._apply_teleport_ability,
            AbilityType.TILE_LAY: self._apply_tile_lay_ability,
        }

    def setup(self) -> None:
        """Start a new turn."""
        self.round.setup()

    # -------------------------------------------------------------------------
    # Entitlements
    # -------------------------------------------------------------------------

    @staticmethod
    def operating_entity(entity: Entity) -> Optional[Entity]:
        """Resolve a company to its owner; other entities act for themselves."""
        return entity.owner if entity.is_company else entity

    def get_tile_lay(self, entity: Entity) -> Optional[TileLay]:
        """Return the entitlement for the next lay this turn, if any."""
        corporation = self.operating_entity(entity)
        lays = self.game.tile_lays(corporation)
        if self.round.num_laid_track >= len(lays):
            return None
        config = lays[self.round.num_laid_track]

        cost = config.get("cost") or 0
        upgrade_cost = config.get("upgrade_cost")
        return TileLay(
            lay=self._resolve_permission(config.get("lay", False)),
            upgrade=self._resolve_permission(config.get("upgrade", False)),
            cost=cost,
            upgrade_cost=cost if upgrade_cost is None else upgrade_cost,
            cannot_reuse_same_hex=bool(config.get("cannot_reuse_same_hex", False)),
        )

    def _resolve_permission(self, value: Union[bool, str]) -> bool:
        if value == NOT_IF_UPGRADED:
            return not self.round.upgraded_track
        return bool(value)

    def abilities(self, entity: Entity, passive_ok: bool = True) -> list[Ability]:
        """Tile-lay and teleport abilities usable in this step."""
        return [
            *self.game.abilities(entity, AbilityType.TILE_LAY, time=self.time, passive_ok=passive_ok),
            *self.game.abilities(entity, AbilityType.TELEPORT, time=self.time, passive_ok=passive_ok),
        ]

    def tile_lay_abilities_should_block(self, entity: Entity) -> bool:
        """Check if the entity holds a lay ability that does not use up a lay."""
        return any(
            not ability.consume_tile_lay
            for ability in self.game.abilities(
                entity, AbilityType.TILE_LAY, time=self.time, passive_ok=False
            )
        )

    def can_buy_tile_laying_company(self, entity: Entity, time: tuple[str, ...]) -> bool:
        """Check if the entity could buy a company that lays track now."""
        if entity is not self.game.current_entity:
            return False
        if "can_buy_companies" not in self.game.phase.status:
            return False

        buying_power = self.game.buying_power(entity)
        return any(
            company.min_price <= buying_power
            and any(
                ability.type == AbilityType.TILE_LAY and ability.is_active(time)
                for ability in company.all_abilities
            )
            for company in self.game.purchasable_companies(entity)
        )

    def can_lay_tile(self, entity: Entity) -> bool:
        """Check if the entity can still lay track this turn."""
        if self.tile_lay_abilities_should_block(entity):
            return True
        if self.can_buy_tile_laying_company(entity, time=self.time):
            return True

        tile_lay = self.get_tile_lay(entity)
        if tile_lay is None:
            return False

        operator = self.operating_entity(entity)
        if operator is None or not getattr(operator, "placed_tokens", []):
            return False
        return (
            self.game.buying_power(operator) >= tile_lay.cost
            and (tile_lay.lay or tile_lay.upgrade)
        )

    def tracker_available_hex(self, entity: Entity, hex: Hex) -> Optional[set[int]]:
        """Edges the entity could build from on a hex, if it may lay there now."""
        connected = self.hex_neighbors(entity, hex)
        if not connected:
            return None

        tile_lay = self.get_tile_lay(entity)
        if tile_lay is None:
            return None

        if hex.tile.color == TileColor.WHITE:
            if not tile_lay.lay:
                return None
        else:
            if not tile_lay.upgrade:
                return None
            if tile_lay.cannot_reuse_same_hex and hex in self.round.laid_hexes:
                return None
        return connected

    # -------------------------------------------------------------------------
    # Laying tiles
    # -------------------------------------------------------------------------

    def lay_tile_action(
        self,
        action: LayTile,
        entity: Optional[Entity] = None,
        spender: Optional[Entity] = None,
    ) -> None:
        """Lay a tile using the next entitlement of the turn.

        Raises:
            GameError: If the entitlement does not allow this lay or any
                rule of lay_tile is broken.
        """
        tile = action.tile
        tile_lay = self.get_tile_lay(action.entity)
        upgrade = tile.color != FIRST_LAY_COLOR

        if upgrade and not (tile_lay and tile_lay.upgrade):
            raise GameError("Cannot lay an upgrade now")
        if not upgrade and not (tile_lay and tile_lay.lay):
            raise GameError(f"Cannot lay a {FIRST_LAY_COLOR.value} now")
        if tile_lay.cannot_reuse_same_hex and action.hex in self.round.laid_hexes:
            raise GameError(
                f"{action.hex.id} cannot be laid as this hex was already laid on this turn"
            )

        extra_cost = tile_lay.upgrade_cost if upgrade else tile_lay.cost
        self.lay_tile(action, extra_cost=extra_cost, entity=entity, spender=spender)
        self.round.record_lay(action.hex, upgrade)

    def lay_tile(
        self,
        action: LayTile,
        extra_cost: int = 0,
        entity: Optional[Entity] = None,
        spender: Optional[Entity] = None,
    ) -> None:
        """Validate and apply a tile lay, charging its cost.

        Args:
            action: The lay to perform.
            extra_cost: Surcharge on top of terrain costs.
            entity: Entity laying the tile, defaults to the action's.
            spender: Entity paying, defaults to the action's spender or the
                laying entity.

        Raises:
            GameError: If the lay breaks any rule. Nothing is changed.
        """
        entity = entity or action.entity
        spender = spender or action.spender or entity
        extra_cost += action.cost
        tile = action.tile
        hex = action.hex
        rotation = action.rotation
        old_tile = hex.tile

        with self.game.log.transaction():
            self._check_hex_blocks(entity, hex)

            tile.rotate(rotation)
            scan = self._scan_abilities(entity, hex, tile)
            extra_cost += scan.extra_cost
            selected_company = entity if entity.is_company else None
            if not self.game.upgrades_to(
                old_tile, tile, scan.special, selected_company=selected_company
            ):
                raise GameError(f"{old_tile.name} is not upgradeable to {tile.name}")
            if not self.game.loading and not self.legal_tile_rotation(entity, hex, tile):
                raise GameError(f"{old_tile.name} is not legally rotated for {tile.name}")
            if entity.is_company and not scan.found:
                raise GameError(
                    f"{entity.name} does not have an ability that allows them to lay this tile"
                )
            if not tile.cities and any(city.get_placed_tokens() for city in old_tile.cities):
                raise GameError(f"{tile.name} has no city for the tokens on {hex.id}")

            swap = hex.lay(tile)
            try:
                self._check_reachable(scan, hex, entity, spender)
                if not scan.teleport:
                    self.check_track_restrictions(entity, old_tile, tile)

                terrain = list(old_tile.terrain)
                removal = self._plan_border_removal(tile, entity)
                if scan.free:
                    cost = extra_cost
                else:
                    if removal.cost > 0:
                        terrain += removal.types
                    base_cost = (
                        self.game.upgrade_cost(old_tile, hex, entity)
                        + removal.cost
                        + extra_cost
                        - scan.discount
                    )
                    cost = self.game.tile_cost_with_discount(tile, hex, entity, base_cost)

                teleport_cost = sum(ability.cost for ability in scan.teleports)
                self._check_affordable(spender, cost + teleport_cost)
            except Exception:
                swap.revert()
                logger.debug("Reverted provisional lay of %s on %s", tile.id, hex.id)
                raise

            # Committed from here on
            self.update_tile_lists(tile, old_tile)
            self._pay_teleports(scan, hex, spender)
            self._apply_border_removal(removal)
            self.pay_tile_cost(entity, tile, rotation, hex, spender, cost)
            self.update_token(action, entity, tile, old_tile)
            self._pay_tile_income(terrain, entity, spender)
            for ability in scan.used:
                ability.use()

    def _check_hex_blocks(self, entity: Entity, hex: Hex) -> None:
        if self.game.loading:
            return
        for company in self.game.companies:
            if company.closed:
                continue
            for ability in self.game.abilities(company, AbilityType.BLOCKS_HEXES):
                if self.game.hex_blocked_by_ability(entity, ability, hex):
                    raise GameError(f"{hex.id} is blocked by {company.name}")

    def _scan_abilities(self, entity: Entity, hex: Hex, tile: Tile) -> AbilityScan:
        scan = AbilityScan()
        for ability in self.abilities(entity):
            if ability.owner is not entity:
                continue
            if not ability.applies_to(hex.id, tile.name):
                continue
            scan.found = True
            scan.used.append(ability)
            self._ability_handlers[ability.type](scan, ability)
        return scan

    @staticmethod
    def _apply_teleport_ability(scan: AbilityScan, ability: TeleportAbility) -> None:
        scan.teleport = True
        if ability.free_tile_lay:
            scan.free = True
        if ability.cost > 0:
            scan.teleports.append(ability)

    @staticmethod
    def _apply_tile_lay_ability(scan: AbilityScan, ability: TileLayAbility) -> None:
        if ability.reachable:
            scan.reachable.append(ability)
        scan.free = ability.free
        scan.discount = ability.discount
        scan.extra_cost += ability.cost
        scan.special = scan.special or ability.special

    def _check_reachable(self, scan: AbilityScan, hex: Hex, entity: Entity, spender: Entity) -> None:
        if not scan.reachable or self.game.loading:
            return
        if hex.name == getattr(spender, "coordinates", None):
            return
        graph = self.game.graph_for_entity(spender)
        if hex not in graph.reachable_hexes(spender):
            raise GameError(
                f"Track laid must be connected to one of {spender.id}'s stations"
            )

    def _check_affordable(self, spender: Entity, amount: int) -> None:
        if amount <= 0:
            return
        available = spender.cash + self.game.loan_capacity(spender)
        if amount > available:
            raise GameError(
                f"{spender.name} cannot afford {self.game.format_currency(amount)}"
            )

    def _pay_teleports(self, scan: AbilityScan, hex: Hex, spender: Entity) -> None:
        for ability in scan.teleports:
            self.try_take_loan(spender, ability.cost)
            spender.spend(ability.cost, self.game.bank)
            location = f" ({hex.location_name})" if hex.location_name else ""
            self.game.log.append(
                f"{spender.name} ({ability.owner.id}) spends "
                f"{self.game.format_currency(ability.cost)} and teleports to {hex.name}{location}"
            )

    def update_tile_lists(self, tile: Tile, old_tile: Tile) -> None:
        """Move tiles between the map and the supply."""
        if tile.unlimited:
            self.game.add_extra_tile(tile)
        self.game.tiles.remove(tile)
        self.game.tiles.return_tile(old_tile)

    def try_take_loan(self, entity: Entity, amount: int) -> None:
        """Borrow until the entity can pay, where the game allows loans."""
        while amount > entity.cash and self.game.can_take_loan(entity):
            self.game.take_loan(entity)

    def pay_tile_cost(
        self,
        entity: Entity,
        tile: Tile,
        rotation: int,
        hex: Hex,
        spender: Entity,
        cost: int,
    ) -> None:
        """Charge the lay to the spender and log it."""
        self.try_take_loan(spender, cost)
        if cost > 0:
            spender.spend(cost, self.game.bank)

        acting = "" if spender is entity or not entity.is_company else f" ({entity.id})"
        spends = "" if cost <= 0 else f" spends {self.game.format_currency(cost)} and"
        location = hex.location_name or tile.location_name
        where = f" ({location})" if location else ""
        self.game.log.append(
            f"{spender.name}{acting}{spends} lays tile #{tile.name} "
            f"with rotation {rotation} on {hex.name}{where}"
        )

    def update_token(self, action: LayTile, entity: Entity, tile: Tile, old_tile: Tile) -> None:
        """Lift tokens whose city became ambiguous when track first appears.

        When a trackless hex with several cities gets track, tokens already
        there are removed and their owners choose a city again.
        """
        cities = tile.cities
        if old_tile.paths or not tile.paths or len(cities) <= 1:
            return
        tokens = [token for city in cities for token in city.get_placed_tokens()]
        actor = self.operating_entity(entity)
        for token in tokens:
            self.round.pending_tokens.append(
                PendingToken(entity=actor, hexes=[action.hex], token=token)
            )
            self.game.log.append(f"{actor.name} must choose city for token")
            token.remove()

    # -------------------------------------------------------------------------
    # Borders
    # -------------------------------------------------------------------------

    def _plan_border_removal(self, tile: Tile, entity: Entity) -> BorderRemoval:
        """Find borders both sides now build across, and what they cost."""
        removal = BorderRemoval()
        hex = tile.hex
        for border in tile.borders:
            if border.cost is None:
                continue
            neighbor = hex.neighbors.get(border.edge)
            if neighbor is None or not hex.targeting(neighbor) or not neighbor.targeting(hex):
                continue
            removal.types.append(border.type)
            removal.pairs.append((tile, border, neighbor.tile, Hex.invert(border.edge)))
            removal.cost += border.cost - self.border_cost_discount(entity, border, hex)
        return removal

    @staticmethod
    def _apply_border_removal(removal: BorderRemoval) -> None:
        for tile, border, neighbor_tile, neighbor_edge in removal.pairs:
            tile.borders.remove(border)
            neighbor_tile.borders = [
                nb for nb in neighbor_tile.borders if nb.edge != neighbor_edge
            ]

    def remove_border_calculate_cost(self, tile: Tile, entity: Entity) -> tuple[int, list[str]]:
        """Clear the borders a laid tile builds across.

        Each border shared with a neighbor is removed from both tiles and
        charged once.

        Returns:
            (total cost after discounts, terrain types of the cleared borders)
        """
        removal = self._plan_border_removal(tile, entity)
        self._apply_border_removal(removal)
        return removal.cost, removal.types

    def border_cost_discount(self, entity: Entity, border: Border, hex: Hex) -> int:
        """Discount on crossing a border from the entity's terrain abilities."""
        ability = next(
            (
                a for a in entity.all_abilities
                if a.type == AbilityType.TILE_DISCOUNT
                and a.terrain is not None
                and border.type == a.terrain
                and (a.hexes is None or hex.name in a.hexes)
            ),
            None,
        )
        discount = min(ability.discount, border.cost) if ability is not None else 0
        if discount > 0:
            self.game.log.append(
                f"{entity.name} receives a discount of "
                f"{self.game.format_currency(discount)} from {ability.owner.name}"
            )
        return discount

    # -------------------------------------------------------------------------
    # Tile income
    # -------------------------------------------------------------------------

    def _pay_tile_income(self, terrain: list[str], entity: Entity, spender: Entity) -> None:
        for company, ability in list(self.game.all_companies_with_ability(AbilityType.TILE_INCOME)):
            if ability.terrain is None:
                self.pay_all_tile_income(company, ability)
            else:
                self.pay_terrain_tile_income(company, ability, terrain, entity, spender)

    def pay_all_tile_income(self, company: Company, ability: TileIncomeAbility) -> None:
        """Pay the company's owner for any tile laid."""
        if company.owner is None:
            return
        income = ability.income
        self.game.bank.spend(income, company.owner)
        self.game.log.append(
            f"{company.owner.name} earns {self.game.format_currency(income)} "
            f"for the tile built by {company.name}"
        )

    def pay_terrain_tile_income(
        self,
        company: Company,
        ability: TileIncomeAbility,
        terrain: list[str],
        entity: Entity,
        spender: Entity,
    ) -> None:
        """Pay the company's owner once per paid terrain of its type.

        Owner-only income is paid only when the owner laid or paid for the tile.
        """
        if company.owner is None or ability.terrain not in terrain:
            return
        if ability.owner_only and company.owner is not entity and company.owner is not spender:
            return

        # Each matching border counts separately
        income = ability.income * terrain.count(ability.terrain)
        self.game.bank.spend(income, company.owner)
        self.game.log.append(
            f"{company.owner.name} earns {self.game.format_currency(income)} "
            f"for the {ability.terrain} tile built by {company.name}"
        )

    # -------------------------------------------------------------------------
    # Legality
    # -------------------------------------------------------------------------

    def check_track_restrictions(self, entity: Entity, old_tile: Tile, new_tile: Tile) -> None:
        """Enforce the game's rule on whether an upgrade must be usable.

        Raises:
            GameError: If the lay breaks the policy.
            ValueError: If the game names an unknown policy.
        """
        if self.game.loading or not entity.operator:
            return

        graph = self.game.graph_for_entity(entity)
        connected = graph.connected_paths(entity)
        old_paths = old_tile.paths
        changed_city = False
        used_new_track = not old_paths

        for new_path in new_tile.paths:
            if new_path not in connected:
                continue
            old_path = next((path for path in old_paths if new_path <= path), None)
            if old_path is None:
                used_new_track = True
            old_revenues = (
                sorted(node.max_revenue for node in old_path.nodes)
                if old_path is not None else None
            )
            new_revenues = sorted(node.max_revenue for node in new_path.nodes)
            if old_revenues != new_revenues:
                changed_city = True

        policy = TrackRestriction(self.game.TRACK_RESTRICTION)
        if policy == TrackRestriction.PERMISSIVE:
            return
        if policy == TrackRestriction.CITY_PERMISSIVE:
            if not new_tile.cities and not used_new_track:
                raise GameError("Must be city tile or use new track")
        elif policy == TrackRestriction.RESTRICTIVE:
            if not used_new_track:
                raise GameError("Must use new track")
        elif policy == TrackRestriction.SEMI_RESTRICTIVE:
            if not used_new_track and not changed_city:
                raise GameError("Must use new track or change city value")

    def hex_neighbors(
        self, entity: Entity, hex: Hex, tile: Optional[Tile] = None
    ) -> Optional[set[int]]:
        """Edges of a hex the entity may connect new track to.

        Teleports reach any hex they name. A company's own tile-lay ability
        reaches its hexes too, unless it must be reachable by the operating
        corporation and is not. Given a tile, only abilities that allow that
        tile are considered.
        """
        for ability in self.abilities(entity):
            if ability.owner is not entity:
                continue
            if tile is not None:
                if not ability.applies_to(hex.id, tile.name):
                    continue
            elif ability.hexes and hex.id not in ability.hexes:
                continue
            if ability.type == AbilityType.TELEPORT:
                return set(hex.neighbors)
            if entity.is_company:
                operator = entity.corporation or self.game.current_entity
                if ability.reachable and (
                    operator is None
                    or hex not in self.game.graph_for_entity(operator).connected_hexes(operator)
                ):
                    return None
                return set(hex.neighbors)

        return self.game.graph_for_entity(entity).connected_hexes(entity).get(hex)

    def legal_tile_rotation(self, entity: Entity, hex: Hex, tile: Tile) -> bool:
        """Check the tile's current rotation against the hex and old track."""
        if not self.game.legal_tile_rotation(entity, hex, tile):
            return False

        old_tile = hex.tile
        old_paths = old_tile.paths
        old_ctedges = old_tile.city_town_edges

        new_paths = tile.paths
        new_exits = set(tile.exits)
        new_ctedges = tile.city_town_edges
        extra_cities = max(0, len(new_ctedges) - len(old_ctedges))
        multi_city_upgrade = len(new_ctedges) > 1 and len(old_ctedges) > 1

        if not all(edge in hex.neighbors for edge in new_exits):
            return False
        if not new_exits & (self.hex_neighbors(entity, hex, tile) or set()):
            return False
        # Upgrades never remove connections
        if not all(any(path <= new_path for new_path in new_paths) for path in old_paths):
            return False
        # New cities not overlapping any old one must be paid for by city growth
        new_cities = sum(
            1 for newct in new_ctedges
            if all(not (newct & oldct) for oldct in old_ctedges)
        )
        if new_cities > extra_cities:
            return False
        # Every old city must land in exactly one new city
        if multi_city_upgrade:
            return all(
                sum(1 for newct in new_ctedges if oldct <= newct) == 1
                for oldct in old_ctedges
            )
        return True

    def legal_tile_rotations(self, entity: Entity, hex: Hex, tile: Tile) -> list[int]:
        """All rotations of a tile that may be laid on a hex."""
        rotations = []
        for rotation in ALL_EDGES:
            tile.rotate(rotation)
            if self.legal_tile_rotation(entity, hex, tile):
                rotations.append(rotation)
        return rotations

    def potential_tiles(self, entity: Entity, hex: Hex) -> list[Tile]:
        """One tile per name from the supply that could upgrade the hex."""
        seen: set[str] = set()
        tiles = []
        for tile in self.game.tiles.available(self.game.phase.tiles):
            if tile.name in seen:
                continue
            seen.add(tile.name)
            if tile.blocks_lay:
                continue
            if self.game.upgrades_to(hex.tile, tile):
                tiles.append(tile)
        return tiles

    def upgradeable_tiles(self, entity: Entity, hex: Hex) -> list[Tile]:
        """Potential tiles that have a legal rotation, set to the first one."""
        tiles = []
        for tile in self.potential_tiles(entity, hex):
            tile.rotate(0)
            tile.legal_rotations = self.legal_tile_rotations(entity, hex, tile)
            if not tile.legal_rotations:
                continue
            tile.rotate(tile.legal_rotations[0])
            tiles.append(tile)
        return tiles
