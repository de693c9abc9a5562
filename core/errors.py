"""Error types for the tile-laying engine."""


class GameError(Exception):
    """Raised when an action breaks a game rule.

    The message is the reason shown to the player. Raising it never leaves
    a partially applied action behind.
    """

    pass
