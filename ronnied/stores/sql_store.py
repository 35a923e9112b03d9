"""SQLAlchemy-backed stores.

- Every store call owns one session and one transaction.
- CRUD helpers in ronnied.crud never commit; session.begin() does.
"""

from datetime import datetime
from typing import List

from sqlalchemy.ext.asyncio import async_sessionmaker

from ronnied.converter import DataConverter, to_utc
from ronnied.crud import CreateData, DeleteData, ReadData, UpdateData
from ronnied.dice import SystemClock, Uuid7Generator
from ronnied.errors import NotFoundError
from ronnied.models.dc_models import DrinkRecord, Game, GameStatus, Player, Session
from ronnied.models.schemas import GameRow, PlayerRow, SessionRow
from ronnied.stores.interface import Clock, IdGenerator

data_converter = DataConverter()


class SqlGameStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.Session = session_factory

    async def get(self, game_id: str) -> Game:
        async with self.Session() as session:
            row = await ReadData.read_game(game_id, session)
            if row is None:
                raise NotFoundError(f"game {game_id} not found")
            return data_converter.convert_gamerow_to_game(row)

    async def put(self, game: Game) -> None:
        async with self.Session() as session:
            async with session.begin():
                row = await ReadData.read_game(game.id, session)
                if row is None:
                    row = GameRow()
                    session.add(row)
                data_converter.copy_game_to_gamerow(game, row)

    async def delete(self, game_id: str) -> None:
        async with self.Session() as session:
            async with session.begin():
                await DeleteData.delete_game(game_id, session)

    async def list_children(self, parent_game_id: str) -> List[Game]:
        async with self.Session() as session:
            rows = await ReadData.read_children(parent_game_id, session)
            return [data_converter.convert_gamerow_to_game(row) for row in rows]

    async def list_active_games(self) -> List[Game]:
        async with self.Session() as session:
            rows = await ReadData.read_games_by_status(
                [GameStatus.active.value, GameStatus.roll_off.value], session
            )
            return [data_converter.convert_gamerow_to_game(row) for row in rows]

    async def get_by_channel(self, channel_id: str) -> Game:
        async with self.Session() as session:
            row = await ReadData.read_latest_root_game(channel_id, session)
            if row is None:
                raise NotFoundError(f"no game in channel {channel_id}")
            return data_converter.convert_gamerow_to_game(row)


class SqlPlayerStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.Session = session_factory

    async def get(self, player_id: str) -> Player:
        async with self.Session() as session:
            row = await ReadData.read_player(player_id, session)
            if row is None:
                raise NotFoundError(f"player {player_id} not found")
            return data_converter.convert_playerrow_to_player(row)

    async def put(self, player: Player) -> None:
        async with self.Session() as session:
            async with session.begin():
                row = await ReadData.read_player(player.id, session)
                if row is None:
                    row = PlayerRow()
                    session.add(row)
                data_converter.copy_player_to_playerrow(player, row)

    async def update_current_game(self, player_id: str, game_id: str | None) -> None:
        async with self.Session() as session:
            async with session.begin():
                updated = await UpdateData.update_current_game(player_id, game_id, session)
        if not updated:
            raise NotFoundError(f"player {player_id} not found")


class SqlLedgerStore:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
    ):
        self.Session = session_factory
        self.clock = clock or SystemClock()
        self.id_generator = id_generator or Uuid7Generator()

    async def append(self, record: DrinkRecord) -> None:
        async with self.Session() as session:
            async with session.begin():
                row = data_converter.convert_drinkrecord_to_drinkrecordrow(record)
                await CreateData.create_drink_record(row, session)

    async def list_for_game(self, game_id: str) -> List[DrinkRecord]:
        async with self.Session() as session:
            rows = await ReadData.read_drink_records_for_game(game_id, session)
            return [data_converter.convert_drinkrecordrow_to_drinkrecord(row) for row in rows]

    async def list_for_session(self, session_id: str) -> List[DrinkRecord]:
        async with self.Session() as session:
            rows = await ReadData.read_drink_records_for_session(session_id, session)
            return [data_converter.convert_drinkrecordrow_to_drinkrecord(row) for row in rows]

    async def mark_paid(self, record_id: str, paid_at: datetime) -> DrinkRecord:
        async with self.Session() as session:
            async with session.begin():
                row = await UpdateData.update_drink_paid(record_id, to_utc(paid_at), session)
                if row is None:
                    raise NotFoundError(f"drink record {record_id} not found")
                return data_converter.convert_drinkrecordrow_to_drinkrecord(row)

    async def get_or_create_current_session(self, channel_id: str, created_by: str = "system") -> Session:
        async with self.Session() as session:
            async with session.begin():
                row = await ReadData.read_active_session(channel_id, session)
                if row is None:
                    row = self._new_session_row(channel_id, created_by)
                    await CreateData.create_session(row, session)
                return data_converter.convert_sessionrow_to_session(row)

    async def create_session(self, channel_id: str, created_by: str) -> Session:
        async with self.Session() as session:
            async with session.begin():
                row = self._new_session_row(channel_id, created_by)
                await CreateData.create_session(row, session)
                return data_converter.convert_sessionrow_to_session(row)

    def _new_session_row(self, channel_id: str, created_by: str) -> SessionRow:
        return SessionRow(
            id=self.id_generator.new_id(),
            channel_id=channel_id,
            created_by=created_by,
            created_at=to_utc(self.clock.now()),
            active=True,
        )

    async def archive_for_session(self, session_id: str, archived_at: datetime) -> int:
        async with self.Session() as session:
            async with session.begin():
                return await UpdateData.archive_session_drinks(session_id, to_utc(archived_at), session)

    async def delete_for_session(self, session_id: str) -> int:
        async with self.Session() as session:
            async with session.begin():
                return await DeleteData.delete_session_drinks(session_id, session)
