"""Game-specific track rules."""

from .g1817 import G1817Game, G1817Tracker
from .g18_ireland import G18IrelandGame, G18IrelandTracker

__all__ = [
    "G1817Game",
    "G1817Tracker",
    "G18IrelandGame",
    "G18IrelandTracker",
]
