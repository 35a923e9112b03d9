"""Contracts the engine consumes from its persistence collaborators.

Every store serializes writes per key on its own; the engine does a full read,
mutates in memory and writes the whole aggregate back.
"""

from datetime import datetime
from typing import List, Protocol

from ronnied.models.dc_models import DrinkRecord, Game, Player, Session


class Roller(Protocol):
    def roll(self, sides: int) -> int: ...


class Clock(Protocol):
    def now(self) -> datetime: ...


class IdGenerator(Protocol):
    def new_id(self) -> str: ...


class GameStore(Protocol):
    async def get(self, game_id: str) -> Game:
        """Raises NotFoundError when the game does not exist."""
        ...

    async def put(self, game: Game) -> None: ...

    async def delete(self, game_id: str) -> None: ...

    async def list_children(self, parent_game_id: str) -> List[Game]:
        """Direct roll-off children, oldest first."""
        ...

    async def list_active_games(self) -> List[Game]: ...

    async def get_by_channel(self, channel_id: str) -> Game:
        """Latest root game of a channel. Raises NotFoundError."""
        ...


class PlayerStore(Protocol):
    async def get(self, player_id: str) -> Player:
        """Raises NotFoundError when the player does not exist."""
        ...

    async def put(self, player: Player) -> None: ...

    async def update_current_game(self, player_id: str, game_id: str | None) -> None: ...


class LedgerStore(Protocol):
    async def append(self, record: DrinkRecord) -> None: ...

    async def list_for_game(self, game_id: str) -> List[DrinkRecord]:
        """Records of a game in creation order, archived ones included."""
        ...

    async def list_for_session(self, session_id: str) -> List[DrinkRecord]:
        """Records of a session in creation order, archived ones included."""
        ...

    async def mark_paid(self, record_id: str, paid_at: datetime) -> DrinkRecord: ...

    async def get_or_create_current_session(self, channel_id: str, created_by: str = "system") -> Session: ...

    async def create_session(self, channel_id: str, created_by: str) -> Session:
        """Start a new active session; the previous one is deactivated."""
        ...

    async def archive_for_session(self, session_id: str, archived_at: datetime) -> int: ...

    async def delete_for_session(self, session_id: str) -> int: ...
