"""Redis-backed stores.

Values are the pydantic models' JSON. Lists are kept as sorted-set indexes
scored by creation time, so reads come back oldest first.
"""

import logging
from datetime import datetime
from typing import List

from redis.asyncio import Redis

from ronnied.dice import SystemClock, Uuid7Generator
from ronnied.errors import NotFoundError
from ronnied.models.dc_models import DrinkRecord, Game, GameStatus, Player, Session
from ronnied.stores.interface import Clock, IdGenerator

ACTIVE_GAMES_KEY = "active_games"


def game_key(game_id: str) -> str:
    return f"game:{game_id}"


def children_key(parent_game_id: str) -> str:
    return f"parent:child:index:{parent_game_id}"


def channel_games_key(channel_id: str) -> str:
    return f"channel_games:{channel_id}"


def player_key(player_id: str) -> str:
    return f"player:{player_id}"


def drink_key(record_id: str) -> str:
    return f"drink:{record_id}"


def game_drinks_key(game_id: str) -> str:
    return f"game_drinks:{game_id}"


def session_drinks_key(session_id: str) -> str:
    return f"session_drinks:{session_id}"


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def current_session_key(channel_id: str) -> str:
    return f"guild_session:{channel_id}"


class RedisGameStore:
    def __init__(self, redis: Redis):
        self.redis = redis

    async def get(self, game_id: str) -> Game:
        raw = await self.redis.get(game_key(game_id))
        if raw is None:
            raise NotFoundError(f"game {game_id} not found")
        return Game.model_validate_json(raw)

    async def put(self, game: Game) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(game_key(game.id), game.model_dump_json())
                if game.parent_game_id is not None:
                    pipe.zadd(
                        children_key(game.parent_game_id),
                        {game.id: game.created_at.timestamp()},
                    )
                else:
                    pipe.zadd(channel_games_key(game.channel_id), {game.id: game.created_at.timestamp()})
                if game.status in (GameStatus.active, GameStatus.roll_off):
                    pipe.sadd(ACTIVE_GAMES_KEY, game.id)
                else:
                    pipe.srem(ACTIVE_GAMES_KEY, game.id)
                await pipe.execute()
        except Exception as e:
            logging.error(f"Failed to store game {game.id}: {e}")
            raise

    async def delete(self, game_id: str) -> None:
        raw = await self.redis.get(game_key(game_id))
        if raw is None:
            return
        game = Game.model_validate_json(raw)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.delete(game_key(game_id))
            pipe.srem(ACTIVE_GAMES_KEY, game_id)
            if game.parent_game_id is not None:
                pipe.zrem(children_key(game.parent_game_id), game_id)
            else:
                pipe.zrem(channel_games_key(game.channel_id), game_id)
            await pipe.execute()

    async def _get_many(self, game_ids: List[str]) -> List[Game]:
        if not game_ids:
            return []
        raws = await self.redis.mget([game_key(game_id) for game_id in game_ids])
        # index entries may outlive a deleted game
        return [Game.model_validate_json(raw) for raw in raws if raw is not None]

    async def list_children(self, parent_game_id: str) -> List[Game]:
        child_ids = await self.redis.zrange(children_key(parent_game_id), 0, -1)
        return await self._get_many(list(child_ids))

    async def list_active_games(self) -> List[Game]:
        game_ids = await self.redis.smembers(ACTIVE_GAMES_KEY)
        return await self._get_many(sorted(game_ids))

    async def get_by_channel(self, channel_id: str) -> Game:
        # highest created_at first; equal scores fall back to the highest id
        game_ids = await self.redis.zrevrange(channel_games_key(channel_id), 0, 0)
        if not game_ids:
            raise NotFoundError(f"no game in channel {channel_id}")
        return await self.get(game_ids[0])


class RedisPlayerStore:
    def __init__(self, redis: Redis):
        self.redis = redis

    async def get(self, player_id: str) -> Player:
        raw = await self.redis.get(player_key(player_id))
        if raw is None:
            raise NotFoundError(f"player {player_id} not found")
        return Player.model_validate_json(raw)

    async def put(self, player: Player) -> None:
        await self.redis.set(player_key(player.id), player.model_dump_json())

    async def update_current_game(self, player_id: str, game_id: str | None) -> None:
        player = await self.get(player_id)
        player.current_game_id = game_id
        await self.put(player)


class RedisLedgerStore:
    def __init__(self, redis: Redis, clock: Clock | None = None, id_generator: IdGenerator | None = None):
        self.redis = redis
        self.clock = clock or SystemClock()
        self.id_generator = id_generator or Uuid7Generator()

    async def append(self, record: DrinkRecord) -> None:
        score = record.timestamp.timestamp()
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(drink_key(record.id), record.model_dump_json())
                pipe.zadd(game_drinks_key(record.game_id), {record.id: score})
                if record.session_id is not None:
                    pipe.zadd(session_drinks_key(record.session_id), {record.id: score})
                await pipe.execute()
        except Exception as e:
            logging.error(f"Failed to store drink record {record.id}: {e}")
            raise

    async def _list(self, index_key: str) -> List[DrinkRecord]:
        record_ids = await self.redis.zrange(index_key, 0, -1)
        if not record_ids:
            return []
        raws = await self.redis.mget([drink_key(record_id) for record_id in record_ids])
        return [DrinkRecord.model_validate_json(raw) for raw in raws if raw is not None]

    async def list_for_game(self, game_id: str) -> List[DrinkRecord]:
        return await self._list(game_drinks_key(game_id))

    async def list_for_session(self, session_id: str) -> List[DrinkRecord]:
        return await self._list(session_drinks_key(session_id))

    async def mark_paid(self, record_id: str, paid_at: datetime) -> DrinkRecord:
        raw = await self.redis.get(drink_key(record_id))
        if raw is None:
            raise NotFoundError(f"drink record {record_id} not found")
        record = DrinkRecord.model_validate_json(raw)
        record.paid = True
        record.paid_at = paid_at
        await self.redis.set(drink_key(record_id), record.model_dump_json())
        return record

    async def _read_session(self, session_id: str) -> Session | None:
        raw = await self.redis.get(session_key(session_id))
        return Session.model_validate_json(raw) if raw is not None else None

    async def get_or_create_current_session(self, channel_id: str, created_by: str = "system") -> Session:
        session_id = await self.redis.get(current_session_key(channel_id))
        if session_id is not None:
            session = await self._read_session(session_id)
            if session is not None and session.active:
                return session
        return await self.create_session(channel_id, created_by)

    async def create_session(self, channel_id: str, created_by: str) -> Session:
        previous_id = await self.redis.get(current_session_key(channel_id))
        previous = await self._read_session(previous_id) if previous_id is not None else None
        session = Session(
            id=self.id_generator.new_id(),
            channel_id=channel_id,
            created_by=created_by,
            created_at=self.clock.now(),
            active=True,
        )
        async with self.redis.pipeline(transaction=True) as pipe:
            if previous is not None and previous.active:
                previous.active = False
                pipe.set(session_key(previous.id), previous.model_dump_json())
            pipe.set(session_key(session.id), session.model_dump_json())
            pipe.set(current_session_key(channel_id), session.id)
            await pipe.execute()
        return session

    async def archive_for_session(self, session_id: str, archived_at: datetime) -> int:
        records = await self.list_for_session(session_id)
        count = 0
        async with self.redis.pipeline(transaction=True) as pipe:
            for record in records:
                if record.archived:
                    continue
                record.archived = True
                record.archived_at = archived_at
                pipe.set(drink_key(record.id), record.model_dump_json())
                count += 1
            await pipe.execute()
        return count

    async def delete_for_session(self, session_id: str) -> int:
        records = await self.list_for_session(session_id)
        async with self.redis.pipeline(transaction=True) as pipe:
            for record in records:
                pipe.delete(drink_key(record.id))
                pipe.zrem(game_drinks_key(record.game_id), record.id)
            pipe.delete(session_drinks_key(session_id))
            await pipe.execute()
        return len(records)
