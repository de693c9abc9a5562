"""Track-laying rules engine.

This module provides the rules built on the core models:
- Base game rules object with per-game hooks
- The Tracker, validating and applying tile lays
- Game variants overriding the hooks
"""

from .actions import LayTile

from .game import (
    BaseGame,
    GameLog,
    Phase,
)

from .tracker import (
    TileLay,
    Tracker,
)

__all__ = [
    # Actions
    "LayTile",
    # Game
    "BaseGame",
    "GameLog",
    "Phase",
    # Tracker
    "TileLay",
    "Tracker",
]
