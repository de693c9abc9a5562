"""Special abilities relevant to laying track.

Each ability kind is its own dataclass with a fixed `type` discriminator, so
rule code can dispatch on `ability.type` and handle every kind explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Iterable, Optional, Union

from .constants import TIME_ANY, AbilityType

if TYPE_CHECKING:
    from .entities import Entity


@dataclass(eq=False)
class Ability:
    """Base ability.

    Attributes:
        owner: Entity holding the ability.
        when: Time windows in which the ability can be used. Empty means
            always.
        passive: Passive abilities apply without the owner choosing to use
            them.
        count: Remaining uses, None for unlimited.
        closed_when_used_up: Close the owning company when count hits zero.
    """

    type: ClassVar[AbilityType]

    owner: Optional[Entity] = None
    when: tuple[str, ...] = ()
    passive: bool = True
    count: Optional[int] = None
    closed_when_used_up: bool = False

    @property
    def used_up(self) -> bool:
        return self.count is not None and self.count <= 0

    def is_active(self, time: Union[str, Iterable[str], None] = None) -> bool:
        """Check if the ability can be used in one of the given time windows."""
        if self.used_up:
            return False
        if time is None or not self.when or TIME_ANY in self.when:
            return True
        times = {time} if isinstance(time, str) else set(time)
        return any(w in times for w in self.when)

    def use(self) -> None:
        """Spend one use, closing the owning company if that exhausts it."""
        if self.count is None:
            return
        self.count -= 1
        if self.used_up and self.closed_when_used_up and self.owner is not None and self.owner.is_company:
            self.owner.close()


@dataclass(eq=False)
class HexTileScope:
    """Mixin for abilities restricted to certain hexes and tile names."""

    hexes: list[str] = field(default_factory=list)
    tiles: list[str] = field(default_factory=list)

    def applies_to(self, hex_id: str, tile_name: str) -> bool:
        """Empty lists place no restriction."""
        if self.hexes and hex_id not in self.hexes:
            return False
        if self.tiles and tile_name not in self.tiles:
            return False
        return True


@dataclass(eq=False)
class TileLayAbility(HexTileScope, Ability):
    """Grants a tile lay, possibly discounted, free or out of sequence.

    Attributes:
        free: The lay costs nothing beyond surcharges.
        discount: Amount taken off the lay cost.
        cost: Surcharge added to the lay cost.
        reachable: The hex must be connected to the paying corporation.
        special: Allows upgrades outside the normal color sequence.
        consume_tile_lay: Using it uses up one of the normal lays.
    """

    type: ClassVar[AbilityType] = AbilityType.TILE_LAY

    passive: bool = False
    free: bool = False
    discount: int = 0
    cost: int = 0
    reachable: bool = False
    special: bool = False
    consume_tile_lay: bool = False


@dataclass(eq=False)
class TeleportAbility(HexTileScope, Ability):
    """Lay a tile on a hex that is not connected to the corporation.

    Attributes:
        free_tile_lay: The lay itself is free.
        cost: Charged to the spender when teleporting.
    """

    type: ClassVar[AbilityType] = AbilityType.TELEPORT

    passive: bool = False
    free_tile_lay: bool = False
    cost: int = 0


@dataclass(eq=False)
class BlocksHexesAbility(Ability):
    """Nobody but the owning player may lay track on these hexes."""

    type: ClassVar[AbilityType] = AbilityType.BLOCKS_HEXES

    hexes: list[str] = field(default_factory=list)


@dataclass(eq=False)
class TileDiscountAbility(Ability):
    """Reduce terrain costs.

    Attributes:
        discount: Amount taken off each matching terrain cost.
        terrain: Terrain type the discount applies to.
        hexes: Hexes where it applies, None for anywhere.
    """

    type: ClassVar[AbilityType] = AbilityType.TILE_DISCOUNT

    discount: int = 0
    terrain: Optional[str] = None
    hexes: Optional[list[str]] = None


@dataclass(eq=False)
class TileIncomeAbility(Ability):
    """Pay the company's owner whenever track is laid.

    Attributes:
        income: Payment per lay, or per matching terrain when terrain is set.
        terrain: Terrain type that triggers the payment, None for every lay.
        owner_only: Only pays when the owner laid or paid for the tile.
    """

    type: ClassVar[AbilityType] = AbilityType.TILE_INCOME

    income: int = 0
    terrain: Optional[str] = None
    owner_only: bool = False
