from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Iterable, List

import pytest

from ronnied.game_lock_manager import GameLockManager
from ronnied.models.dc_models import GameConfig
from ronnied.services.game_service import GameService
from ronnied.stores.memory import MemoryGameStore, MemoryLedgerStore, MemoryPlayerStore

START = datetime(2026, 1, 1, 20, 0, tzinfo=timezone.utc)


class ScriptedRoller:
    """Hands out pre-scripted roll values in order."""

    def __init__(self, values: Iterable[int] = ()):
        self.values = deque(values)
        self.calls: List[int] = []

    def script(self, *values: int):
        self.values.extend(values)

    def roll(self, sides: int) -> int:
        if not self.values:
            raise AssertionError("roller ran out of scripted values")
        self.calls.append(sides)
        return self.values.popleft()


class FrozenClock:
    """Each call ticks one millisecond; advance() jumps ahead."""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        self.current += timedelta(milliseconds=1)
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class CountingIdGenerator:
    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self.count = 0

    def new_id(self) -> str:
        self.count += 1
        return f"{self.prefix}-{self.count:04d}"


@pytest.fixture
def roller():
    return ScriptedRoller()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def id_generator():
    return CountingIdGenerator()


@pytest.fixture
def config():
    return GameConfig()


@pytest.fixture
def game_store():
    return MemoryGameStore()


@pytest.fixture
def player_store():
    return MemoryPlayerStore()


@pytest.fixture
def ledger_store(clock, id_generator):
    return MemoryLedgerStore(clock, id_generator)


@pytest.fixture
def service(config, game_store, player_store, ledger_store, roller, clock, id_generator):
    return GameService(
        config=config,
        game_store=game_store,
        player_store=player_store,
        ledger_store=ledger_store,
        roller=roller,
        clock=clock,
        id_generator=id_generator,
        lock_manager=GameLockManager(),
    )


@pytest.fixture
def active_game(service):
    """Factory creating a started game in channel-1 with the given players."""

    async def make(*player_ids: str, channel_id: str = "channel-1"):
        creator, *others = player_ids
        game = await service.create_game(channel_id, creator, creator.capitalize())
        for player_id in others:
            await service.join_game(game.id, player_id, player_id.capitalize())
        started = await service.start_game(game.id, creator)
        return started.game

    return make


@pytest.fixture
def roll_all(service, roller):
    """Roll for each player in dict order with the given values."""

    async def roll(game_id: str, rolls: dict):
        outcomes = []
        for player_id, value in rolls.items():
            roller.script(value)
            outcomes.append(await service.roll_dice(game_id, player_id))
        return outcomes

    return roll
