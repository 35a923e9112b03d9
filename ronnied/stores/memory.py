"""In-memory stores. Used by the test-suite and for local runs without Redis or a database."""

import asyncio
from datetime import datetime
from typing import Dict, List

from ronnied.dice import SystemClock, Uuid7Generator
from ronnied.errors import NotFoundError
from ronnied.models.dc_models import DrinkRecord, Game, GameStatus, Player, Session
from ronnied.stores.interface import Clock, IdGenerator


class MemoryGameStore:
    def __init__(self):
        self.games: Dict[str, Game] = {}
        self.channels: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, game_id: str) -> Game:
        async with self._lock:
            game = self.games.get(game_id)
            if game is None:
                raise NotFoundError(f"game {game_id} not found")
            # callers mutate what they read; hand out copies like a real store would
            return game.model_copy(deep=True)

    async def put(self, game: Game) -> None:
        async with self._lock:
            self.games[game.id] = game.model_copy(deep=True)
            if game.parent_game_id is None:
                indexed = self.games.get(self.channels.get(game.channel_id))
                if indexed is None or self._recency(game) >= self._recency(indexed):
                    self.channels[game.channel_id] = game.id

    @staticmethod
    def _recency(game: Game):
        # same order as the sql and redis stores: created_at, then id
        return game.created_at, game.id

    async def delete(self, game_id: str) -> None:
        async with self._lock:
            game = self.games.pop(game_id, None)
            if game is None or self.channels.get(game.channel_id) != game_id:
                return
            roots = [g for g in self.games.values() if g.channel_id == game.channel_id and g.parent_game_id is None]
            if roots:
                self.channels[game.channel_id] = max(roots, key=self._recency).id
            else:
                del self.channels[game.channel_id]

    async def list_children(self, parent_game_id: str) -> List[Game]:
        async with self._lock:
            children = [g for g in self.games.values() if g.parent_game_id == parent_game_id]
            children.sort(key=lambda g: g.created_at)
            return [child.model_copy(deep=True) for child in children]

    async def list_active_games(self) -> List[Game]:
        async with self._lock:
            return [
                game.model_copy(deep=True)
                for game in self.games.values()
                if game.status in (GameStatus.active, GameStatus.roll_off)
            ]

    async def get_by_channel(self, channel_id: str) -> Game:
        async with self._lock:
            game_id = self.channels.get(channel_id)
        if game_id is None:
            raise NotFoundError(f"no game in channel {channel_id}")
        return await self.get(game_id)


class MemoryPlayerStore:
    def __init__(self):
        self.players: Dict[str, Player] = {}
        self._lock = asyncio.Lock()

    async def get(self, player_id: str) -> Player:
        async with self._lock:
            player = self.players.get(player_id)
            if player is None:
                raise NotFoundError(f"player {player_id} not found")
            return player.model_copy(deep=True)

    async def put(self, player: Player) -> None:
        async with self._lock:
            self.players[player.id] = player.model_copy(deep=True)

    async def update_current_game(self, player_id: str, game_id: str | None) -> None:
        async with self._lock:
            player = self.players.get(player_id)
            if player is None:
                raise NotFoundError(f"player {player_id} not found")
            player.current_game_id = game_id


class MemoryLedgerStore:
    def __init__(self, clock: Clock | None = None, id_generator: IdGenerator | None = None):
        self.clock = clock or SystemClock()
        self.id_generator = id_generator or Uuid7Generator()
        self.records: List[DrinkRecord] = []
        self.sessions: Dict[str, Session] = {}
        self.current_sessions: Dict[str, str] = {}  # channel id -> session id
        self._lock = asyncio.Lock()

    async def append(self, record: DrinkRecord) -> None:
        async with self._lock:
            self.records.append(record.model_copy(deep=True))

    async def list_for_game(self, game_id: str) -> List[DrinkRecord]:
        async with self._lock:
            return [r.model_copy(deep=True) for r in self.records if r.game_id == game_id]

    async def list_for_session(self, session_id: str) -> List[DrinkRecord]:
        async with self._lock:
            return [r.model_copy(deep=True) for r in self.records if r.session_id == session_id]

    async def mark_paid(self, record_id: str, paid_at: datetime) -> DrinkRecord:
        async with self._lock:
            for record in self.records:
                if record.id == record_id:
                    record.paid = True
                    record.paid_at = paid_at
                    return record.model_copy(deep=True)
        raise NotFoundError(f"drink record {record_id} not found")

    async def get_or_create_current_session(self, channel_id: str, created_by: str = "system") -> Session:
        async with self._lock:
            session_id = self.current_sessions.get(channel_id)
            if session_id is not None and self.sessions[session_id].active:
                return self.sessions[session_id].model_copy()
            return self._new_session(channel_id, created_by)

    async def create_session(self, channel_id: str, created_by: str) -> Session:
        async with self._lock:
            return self._new_session(channel_id, created_by)

    def _new_session(self, channel_id: str, created_by: str) -> Session:
        previous_id = self.current_sessions.get(channel_id)
        if previous_id is not None:
            self.sessions[previous_id].active = False
        session = Session(
            id=self.id_generator.new_id(),
            channel_id=channel_id,
            created_by=created_by,
            created_at=self.clock.now(),
            active=True,
        )
        self.sessions[session.id] = session
        self.current_sessions[channel_id] = session.id
        return session.model_copy()

    async def archive_for_session(self, session_id: str, archived_at: datetime) -> int:
        count = 0
        async with self._lock:
            for record in self.records:
                if record.session_id == session_id and not record.archived:
                    record.archived = True
                    record.archived_at = archived_at
                    count += 1
        return count

    async def delete_for_session(self, session_id: str) -> int:
        async with self._lock:
            kept = [r for r in self.records if r.session_id != session_id]
            count = len(self.records) - len(kept)
            self.records = kept
        return count
