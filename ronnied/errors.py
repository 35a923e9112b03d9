"""Errors raised by the game engine and its stores.

Every error is reported synchronously to the caller; nothing here is retried.
"""


class GameError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    default_message = "game error"


class NotFoundError(GameError):
    default_message = "not found"


class InvalidStateError(GameError):
    default_message = "invalid game state"


class AlreadyRolledError(GameError):
    default_message = "player already rolled"


class PlayerNotInGameError(GameError):
    default_message = "player not in game"


class GameFullError(GameError):
    default_message = "game is at maximum capacity"


class NotCreatorError(GameError):
    default_message = "only the game creator can do this"


class NoUnpaidDrinksError(GameError):
    default_message = "no unpaid drinks"


class ValidationError(GameError):
    default_message = "invalid input"
