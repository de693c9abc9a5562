"""Per-turn state of the track-laying step of an operating round."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .entities import Company, Corporation, Token
    from .hexes import Hex


@dataclass
class PendingToken:
    """A token knocked off the map that its owner must place again.

    Attributes:
        entity: Corporation that has to choose.
        hexes: Hexes the token may go back to.
        token: The removed token.
    """

    entity: Union[Corporation, Company]
    hexes: list[Hex]
    token: Token


@dataclass
class RoundState:
    """Track-laying counters for the entity currently operating.

    Attributes:
        num_laid_track: Tiles laid so far this turn.
        upgraded_track: Whether an upgrade was laid this turn.
        laid_hexes: Hexes laid on this turn, in order.
        pending_tokens: Tokens waiting for their owner to re-place them.
    """

    num_laid_track: int = 0
    upgraded_track: bool = False
    laid_hexes: list[Hex] = field(default_factory=list)
    pending_tokens: list[PendingToken] = field(default_factory=list)

    def setup(self) -> None:
        """Reset the counters for a new turn."""
        self.num_laid_track = 0
        self.upgraded_track = False
        self.laid_hexes = []

    def record_lay(self, hex: Hex, upgrade: bool) -> None:
        """Count one more lay this turn."""
        self.num_laid_track += 1
        self.laid_hexes.append(hex)
        if upgrade:
            self.upgraded_track = True
