import logging
from datetime import datetime
from typing import List

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ronnied.models.schemas import (
    DrinkRecordRow,
    GameRow,
    PlayerRow,
    SessionRow,
)

# The helpers below never commit; the caller owns the transaction (session.begin()).


class ReadData:
    @staticmethod
    async def read_game(game_id: str, session: AsyncSession) -> GameRow | None:
        """Read a game with its participants

        Args:
            game_id (str): To identify the game

        Returns:
            GameRow | None: None when the game does not exist
        """
        try:
            stmt = select(GameRow).where(GameRow.id == game_id)
            result = await session.execute(stmt)
            return result.scalars().first()
        except Exception as e:
            logging.error(f"Failed to read game data: {e}")
            raise

    @staticmethod
    async def read_children(parent_game_id: str, session: AsyncSession) -> List[GameRow]:
        """Read the roll-off games spawned from a game, oldest first"""
        try:
            stmt = (
                select(GameRow)
                .where(GameRow.parent_game_id == parent_game_id)
                .order_by(GameRow.created_at, GameRow.id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
        except Exception as e:
            logging.error(f"Failed to read roll-off games: {e}")
            raise

    @staticmethod
    async def read_games_by_status(statuses: List[str], session: AsyncSession) -> List[GameRow]:
        try:
            stmt = select(GameRow).where(GameRow.status.in_(statuses)).order_by(GameRow.created_at)
            result = await session.execute(stmt)
            return list(result.scalars().all())
        except Exception as e:
            logging.error(f"Failed to read active games: {e}")
            raise

    @staticmethod
    async def read_latest_root_game(channel_id: str, session: AsyncSession) -> GameRow | None:
        """Read the newest game of a channel that is not a roll-off

        Args:
            channel_id (str): To identify the channel

        Returns:
            GameRow | None: None when the channel never had a game
        """
        try:
            stmt = (
                select(GameRow)
                .where(GameRow.channel_id == channel_id, GameRow.parent_game_id.is_(None))
                .order_by(GameRow.created_at.desc(), GameRow.id.desc())
            )
            result = await session.execute(stmt)
            return result.scalars().first()
        except Exception as e:
            logging.error(f"Failed to read channel game: {e}")
            raise

    @staticmethod
    async def read_player(player_id: str, session: AsyncSession) -> PlayerRow | None:
        try:
            stmt = select(PlayerRow).where(PlayerRow.id == player_id)
            result = await session.execute(stmt)
            return result.scalars().first()
        except Exception as e:
            logging.error(f"Failed to read player data: {e}")
            raise

    @staticmethod
    async def read_drink_record(record_id: str, session: AsyncSession) -> DrinkRecordRow | None:
        try:
            stmt = select(DrinkRecordRow).where(DrinkRecordRow.id == record_id)
            result = await session.execute(stmt)
            return result.scalars().first()
        except Exception as e:
            logging.error(f"Failed to read drink record: {e}")
            raise

    @staticmethod
    async def read_drink_records_for_game(game_id: str, session: AsyncSession) -> List[DrinkRecordRow]:
        try:
            stmt = (
                select(DrinkRecordRow)
                .where(DrinkRecordRow.game_id == game_id)
                .order_by(DrinkRecordRow.timestamp, DrinkRecordRow.id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
        except Exception as e:
            logging.error(f"Failed to read drink records of game: {e}")
            raise

    @staticmethod
    async def read_drink_records_for_session(session_id: str, session: AsyncSession) -> List[DrinkRecordRow]:
        try:
            stmt = (
                select(DrinkRecordRow)
                .where(DrinkRecordRow.session_id == session_id)
                .order_by(DrinkRecordRow.timestamp, DrinkRecordRow.id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
        except Exception as e:
            logging.error(f"Failed to read drink records of session: {e}")
            raise

    @staticmethod
    async def read_active_session(channel_id: str, session: AsyncSession) -> SessionRow | None:
        try:
            stmt = (
                select(SessionRow)
                .where(SessionRow.channel_id == channel_id, SessionRow.active.is_(True))
                .order_by(SessionRow.created_at.desc(), SessionRow.id.desc())
            )
            result = await session.execute(stmt)
            return result.scalars().first()
        except Exception as e:
            logging.error(f"Failed to read drink session: {e}")
            raise


class CreateData:
    @staticmethod
    async def create_drink_record(record: DrinkRecordRow, session: AsyncSession) -> None:
        try:
            session.add(record)
            await session.flush()
        except Exception as e:
            logging.error(f"Failed to create drink record: {e}")
            raise

    @staticmethod
    async def create_session(drink_session: SessionRow, session: AsyncSession) -> None:
        """Add a drink session and deactivate the previous ones of the channel

        Args:
            drink_session (SessionRow): The new active session
        """
        try:
            stmt = (
                update(SessionRow)
                .where(SessionRow.channel_id == drink_session.channel_id, SessionRow.active.is_(True))
                .values(active=False)
            )
            await session.execute(stmt)
            session.add(drink_session)
            await session.flush()
        except Exception as e:
            logging.error(f"Failed to create drink session: {e}")
            raise


class UpdateData:
    @staticmethod
    async def update_current_game(player_id: str, game_id: str | None, session: AsyncSession) -> bool:
        """Point a player at the game they are playing

        Args:
            player_id (str): To identify the player
            game_id (str | None): None clears the reference

        Returns:
            bool: False when the player does not exist
        """
        try:
            stmt = update(PlayerRow).where(PlayerRow.id == player_id).values(current_game_id=game_id)
            result = await session.execute(stmt)
            return result.rowcount > 0
        except Exception as e:
            logging.error(f"Failed to update current game: {e}")
            raise

    @staticmethod
    async def update_drink_paid(record_id: str, paid_at: datetime, session: AsyncSession) -> DrinkRecordRow | None:
        try:
            row = await ReadData.read_drink_record(record_id, session)
            if row is None:
                return None
            row.paid = True
            row.paid_at = paid_at
            await session.flush()
            return row
        except Exception as e:
            logging.error(f"Failed to update paid drink: {e}")
            raise

    @staticmethod
    async def archive_session_drinks(session_id: str, archived_at: datetime, session: AsyncSession) -> int:
        try:
            stmt = (
                update(DrinkRecordRow)
                .where(DrinkRecordRow.session_id == session_id, DrinkRecordRow.archived.is_(False))
                .values(archived=True, archived_at=archived_at)
            )
            result = await session.execute(stmt)
            return result.rowcount
        except Exception as e:
            logging.error(f"Failed to archive drink records: {e}")
            raise


class DeleteData:
    @staticmethod
    async def delete_game(game_id: str, session: AsyncSession) -> None:
        try:
            row = await ReadData.read_game(game_id, session)
            if row is not None:
                await session.delete(row)
                await session.flush()
        except Exception as e:
            logging.error(f"Failed to delete game data: {e}")
            raise

    @staticmethod
    async def delete_session_drinks(session_id: str, session: AsyncSession) -> int:
        try:
            stmt = delete(DrinkRecordRow).where(DrinkRecordRow.session_id == session_id)
            result = await session.execute(stmt)
            return result.rowcount
        except Exception as e:
            logging.error(f"Failed to delete drink records: {e}")
            raise
