import logging

from redis.asyncio import Redis

from ronnied import load_settings
from ronnied.dice import RandomRoller, SystemClock, Uuid7Generator
from ronnied.game_lock_manager import GameLockManager
from ronnied.services.game_service import GameService
from ronnied.stores.memory import MemoryGameStore, MemoryLedgerStore, MemoryPlayerStore
from ronnied.stores.redis_store import RedisGameStore, RedisLedgerStore, RedisPlayerStore


async def build_game_service(backend: str | None = None) -> GameService:
    """Build the engine over the configured store backend

    Args:
        backend (str | None): memory, redis or sql; defaults to STORE_BACKEND

    Returns:
        GameService: Engine wired with the default roller, clock and id generator
    """
    backend = backend or load_settings.store_backend
    clock = SystemClock()
    id_generator = Uuid7Generator()

    if backend == "memory":
        game_store = MemoryGameStore()
        player_store = MemoryPlayerStore()
        ledger_store = MemoryLedgerStore(clock, id_generator)
    elif backend == "redis":
        redis = Redis(
            host=load_settings.redis_host,
            port=load_settings.redis_port,
            decode_responses=True,
            health_check_interval=30,
        )
        game_store = RedisGameStore(redis)
        player_store = RedisPlayerStore(redis)
        ledger_store = RedisLedgerStore(redis, clock, id_generator)
    elif backend == "sql":
        # imported here so the engine is only created for the sql backend
        from ronnied.db import Session, create_tables
        from ronnied.stores.sql_store import SqlGameStore, SqlLedgerStore, SqlPlayerStore

        await create_tables()
        game_store = SqlGameStore(Session)
        player_store = SqlPlayerStore(Session)
        ledger_store = SqlLedgerStore(Session, clock, id_generator)
    else:
        raise ValueError(f"Unknown store backend: {backend}")

    logging.info(f"Game service uses the {backend} store backend")
    return GameService(
        config=load_settings.game_config(),
        game_store=game_store,
        player_store=player_store,
        ledger_store=ledger_store,
        roller=RandomRoller(),
        clock=clock,
        id_generator=id_generator,
        lock_manager=GameLockManager(),
    )
