"""1817 track rules.

Corporations may borrow to pay for track, mines cannot be built over, and
the Pittsburgh Steel Mill private loses its special lay (and closes) once any
tile goes on its hex.
"""

from __future__ import annotations

from typing import Optional

from core.constants import AbilityType
from core.entities import Entity
from core.errors import GameError

from ..actions import LayTile
from ..game import BaseGame
from ..tracker import Tracker


class G1817Game(BaseGame):
    LOANS = True
    LOAN_VALUE = 100
    BANK_CASH = 99999

    PITTSBURGH_PRIVATE_HEX = "F13"
    PITTSBURGH_PRIVATE_NAME = "PSM"
    MINE_ASSIGNMENT = "mine"

    def buying_power(self, entity: Entity) -> int:
        return entity.cash + self.loan_capacity(entity)


class G1817Tracker(Tracker):
    """Track step with the mine and Pittsburgh Steel Mill rules."""

    game: G1817Game

    def lay_tile(
        self,
        action: LayTile,
        extra_cost: int = 0,
        entity: Optional[Entity] = None,
        spender: Optional[Entity] = None,
    ) -> None:
        if action.hex.assigned(self.game.MINE_ASSIGNMENT):
            raise GameError("Cannot upgrade mines")

        super().lay_tile(action, extra_cost=extra_cost, entity=entity, spender=spender)

        if action.hex.name != self.game.PITTSBURGH_PRIVATE_HEX:
            return

        # Any tile on the steel mill hex uses up the private's special lay
        psm = self.game.company_by_id(self.game.PITTSBURGH_PRIVATE_NAME)
        if psm is None or psm.closed:
            return
        abilities = self.game.abilities(psm, AbilityType.TILE_LAY)
        if not abilities:
            return

        for ability in abilities:
            psm.remove_ability(ability)
        self.game.log.append(f"{psm.name} closes as it can no longer be used")
        psm.close()
