from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from ronnied.create_db_engine import build_engine
from ronnied.db import create_tables, make_session_factory
from ronnied.errors import NotFoundError
from ronnied.game_lock_manager import GameLockManager
from ronnied.models.dc_models import (
    DrinkReason,
    DrinkRecord,
    Game,
    GameStatus,
    Participant,
    ParticipantStatus,
    Player,
    RollOffType,
)
from ronnied.services.game_service import GameService
from ronnied.stores.sql_store import SqlGameStore, SqlLedgerStore, SqlPlayerStore

START = datetime(2026, 1, 1, 20, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_factory():
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await create_tables(engine)
    yield make_session_factory(engine)
    await engine.dispose()


def make_game(game_id: str, parent_game_id=None, **kwargs) -> Game:
    return Game(
        id=game_id,
        channel_id="channel-1",
        creator_id="alice",
        parent_game_id=parent_game_id,
        participants=[
            Participant(id=f"{game_id}-p1", game_id=game_id, player_id="alice", player_name="Alice"),
            Participant(id=f"{game_id}-p2", game_id=game_id, player_id="bob", player_name="Bob"),
        ],
        created_at=START,
        updated_at=START,
        **kwargs,
    )


class TestSqlGameStore:
    @pytest.mark.asyncio
    async def test_put_and_get(self, session_factory):
        store = SqlGameStore(session_factory)
        game = make_game("root")
        await store.put(game)
        assert await store.get("root") == game

    @pytest.mark.asyncio
    async def test_update_keeps_participant_order(self, session_factory):
        store = SqlGameStore(session_factory)
        game = make_game("root")
        await store.put(game)

        game.status = GameStatus.active
        game.participants[1].roll_value = 4
        game.participants[1].roll_time = START + timedelta(seconds=5)
        game.participants[1].status = ParticipantStatus.active
        game.participants.append(
            Participant(id="root-p3", game_id="root", player_id="carol", player_name="Carol")
        )
        await store.put(game)

        stored = await store.get("root")
        assert stored == game
        assert [p.player_id for p in stored.participants] == ["alice", "bob", "carol"]

        game.participants = game.participants[:1]
        await store.put(game)
        assert [p.player_id for p in (await store.get("root")).participants] == ["alice"]

    @pytest.mark.asyncio
    async def test_children_and_channel(self, session_factory):
        store = SqlGameStore(session_factory)
        root = make_game("root", status=GameStatus.roll_off, lowest_roll_off_game_id="child")
        child = make_game("child", parent_game_id="root", status=GameStatus.roll_off, roll_off_type=RollOffType.lowest)
        child.created_at = START + timedelta(seconds=1)
        await store.put(root)
        await store.put(child)

        children = await store.list_children("root")
        assert [c.id for c in children] == ["child"]
        assert children[0].roll_off_type == RollOffType.lowest
        assert (await store.get_by_channel("channel-1")).id == "root"
        assert {g.id for g in await store.list_active_games()} == {"root", "child"}

    @pytest.mark.asyncio
    async def test_channel_keeps_latest_root_game(self, session_factory):
        store = SqlGameStore(session_factory)
        old = make_game("old", status=GameStatus.roll_off)
        new = make_game("new")
        new.created_at = START + timedelta(minutes=1)
        await store.put(old)
        await store.put(new)

        old.status = GameStatus.completed
        old.lowest_roll_charged_to = "bob"
        await store.put(old)
        assert (await store.get_by_channel("channel-1")).id == "new"
        assert (await store.get("old")).lowest_roll_charged_to == "bob"

    @pytest.mark.asyncio
    async def test_missing_game(self, session_factory):
        store = SqlGameStore(session_factory)
        with pytest.raises(NotFoundError):
            await store.get("missing")
        await store.put(make_game("root"))
        await store.delete("root")
        with pytest.raises(NotFoundError):
            await store.get("root")


class TestSqlPlayerAndLedgerStores:
    @pytest.mark.asyncio
    async def test_player_current_game(self, session_factory):
        store = SqlPlayerStore(session_factory)
        await store.put(Player(id="alice", name="Alice"))
        await store.update_current_game("alice", "root")
        assert (await store.get("alice")).current_game_id == "root"
        with pytest.raises(NotFoundError):
            await store.update_current_game("nobody", "root")

    @pytest.mark.asyncio
    async def test_sessions(self, session_factory, clock, id_generator):
        store = SqlLedgerStore(session_factory, clock, id_generator)
        first = await store.get_or_create_current_session("channel-1")
        assert (await store.get_or_create_current_session("channel-1")).id == first.id
        second = await store.create_session("channel-1", "alice")
        assert second.id != first.id
        assert (await store.get_or_create_current_session("channel-1")).id == second.id

    @pytest.mark.asyncio
    async def test_records_pay_archive_delete(self, session_factory, clock, id_generator):
        store = SqlLedgerStore(session_factory, clock, id_generator)
        for index, to_player_id in enumerate(["bob", "carol"]):
            await store.append(
                DrinkRecord(
                    id=f"drink-{index}",
                    game_id="root",
                    session_id="s1",
                    source_game_id="root",
                    to_player_id=to_player_id,
                    reason=DrinkReason.lowest_roll,
                    timestamp=START + timedelta(seconds=index),
                )
            )
        records = await store.list_for_game("root")
        assert [r.id for r in records] == ["drink-0", "drink-1"]
        assert records[0].timestamp == START

        paid = await store.mark_paid("drink-0", START + timedelta(minutes=1))
        assert paid.paid and paid.paid_at == START + timedelta(minutes=1)

        assert await store.archive_for_session("s1", START + timedelta(minutes=2)) == 2
        assert all(r.archived for r in await store.list_for_session("s1"))
        assert await store.delete_for_session("s1") == 2
        assert await store.list_for_game("root") == []


@pytest.mark.asyncio
async def test_engine_over_sql_stores(session_factory, config, roller, clock, id_generator):
    """A full round with a roll-off, persisted through SQLAlchemy."""
    service = GameService(
        config=config,
        game_store=SqlGameStore(session_factory),
        player_store=SqlPlayerStore(session_factory),
        ledger_store=SqlLedgerStore(session_factory, clock, id_generator),
        roller=roller,
        clock=clock,
        id_generator=id_generator,
        lock_manager=GameLockManager(),
    )
    game = await service.create_game("channel-1", "alice", "Alice")
    await service.join_game(game.id, "bob", "Bob")
    await service.join_game(game.id, "carol", "Carol")
    await service.start_game(game.id, "alice")

    roller.script(5, 2, 2, 3, 4)
    for player_id in ("alice", "bob", "carol"):
        await service.roll_dice(game.id, player_id)
    await service.roll_dice(game.id, "bob")
    outcome = await service.roll_dice(game.id, "carol")

    assert outcome.end_game.loser_player_id == "bob"
    assert outcome.end_game.completed_game_ids[-1] == game.id
    board = await service.ledger.get_leaderboard(game.id)
    assert [(e.player_id, e.drink_count) for e in board.entries][0] == ("bob", 1)
