"""Drink ledger and session accounting use cases.

- Records are always attributed to the root game of a roll-off chain.
- A channel's current session is resolved lazily and created when missing.
- Archived records never count towards leaderboards, tabs or payments.
"""

import logging
from typing import Dict, Iterable, List

from ronnied.domain.ledger_rules import (
    UNKNOWN_PLAYER,
    build_leaderboard,
    build_player_stats,
    build_player_tab,
    find_latest_unpaid,
    live_records,
)
from ronnied.errors import NoUnpaidDrinksError, NotFoundError, ValidationError
from ronnied.game_lock_manager import GameLockManager
from ronnied.models.dc_models import DrinkReason, DrinkRecord, Game, Session
from ronnied.models.result_models import (
    GameTabSummary,
    Leaderboard,
    PayDrinkOutcome,
    PlayerStats,
    PlayerTab,
)
from ronnied.services.roll_off import find_root_game
from ronnied.stores.interface import Clock, GameStore, IdGenerator, LedgerStore, PlayerStore


class LedgerService:
    def __init__(
        self,
        game_store: GameStore,
        player_store: PlayerStore,
        ledger_store: LedgerStore,
        clock: Clock,
        id_generator: IdGenerator,
        lock_manager: GameLockManager | None = None,
    ):
        self.game_store = game_store
        self.player_store = player_store
        self.ledger_store = ledger_store
        self.clock = clock
        self.id_generator = id_generator
        self.locks = lock_manager or GameLockManager()

    async def record_drink(
        self,
        root: Game,
        source_game_id: str,
        from_player_id: str | None,
        to_player_id: str,
        reason: DrinkReason,
    ) -> DrinkRecord:
        """Append a drink owed in root's current session."""
        session = await self.ledger_store.get_or_create_current_session(root.channel_id)
        record = DrinkRecord(
            id=self.id_generator.new_id(),
            game_id=root.id,
            session_id=session.id,
            source_game_id=source_game_id,
            from_player_id=from_player_id,
            to_player_id=to_player_id,
            reason=reason,
            timestamp=self.clock.now(),
        )
        await self.ledger_store.append(record)
        logging.debug(f"Drink {reason.value} for {to_player_id} recorded in game {root.id}")
        return record

    async def player_names(self, player_ids: Iterable[str], game: Game | None = None) -> Dict[str, str]:
        """Display names from the game's participants, then the player store."""
        names: Dict[str, str] = {}
        if game is not None:
            names.update({p.player_id: p.player_name for p in game.participants})
        for player_id in player_ids:
            if player_id is None or player_id in names:
                continue
            try:
                player = await self.player_store.get(player_id)
                names[player_id] = player.name
            except NotFoundError:
                names[player_id] = UNKNOWN_PLAYER
        return names

    async def _root(self, game_id: str) -> Game:
        if not game_id:
            raise ValidationError("game id is required")
        game = await self.game_store.get(game_id)
        return await find_root_game(self.game_store, game)

    async def _session_for(self, root: Game) -> Session:
        return await self.ledger_store.get_or_create_current_session(root.channel_id)

    async def get_drink_records(self, game_id: str) -> List[DrinkRecord]:
        root = await self._root(game_id)
        return live_records(await self.ledger_store.list_for_game(root.id))

    async def get_leaderboard(self, game_id: str) -> Leaderboard:
        """Drinks per player of a game, most first. Every participant is listed."""
        root = await self._root(game_id)
        records = live_records(await self.ledger_store.list_for_game(root.id))
        names = await self.player_names([r.to_player_id for r in records], root)
        entries = build_leaderboard(records, names, [p.player_id for p in root.participants])
        return Leaderboard(game_id=root.id, entries=entries)

    async def get_session_leaderboard(
        self, session_id: str | None = None, channel_id: str | None = None
    ) -> Leaderboard:
        """Drinks per player across every game of a session.

        Args:
            session_id (str | None): Session to aggregate
            channel_id (str | None): Used when session_id is not given; resolves
                the channel's current session, creating one if none is active

        Returns:
            Leaderboard: Entries sorted by drink count, most first
        """
        session = None
        if not session_id:
            if not channel_id:
                raise ValidationError("session id or channel id is required")
            session = await self.ledger_store.get_or_create_current_session(channel_id)
            session_id = session.id
        records = live_records(await self.ledger_store.list_for_session(session_id))
        names = await self.player_names(dict.fromkeys(r.to_player_id for r in records))
        return Leaderboard(session=session, entries=build_leaderboard(records, names))

    async def session_leaderboard_for(self, root: Game):
        session = await self._session_for(root)
        board = await self.get_session_leaderboard(session_id=session.id)
        return session, board.entries

    async def get_player_stats(self, game_id: str) -> List[PlayerStats]:
        root = await self._root(game_id)
        records = live_records(await self.ledger_store.list_for_game(root.id))
        return build_player_stats(root.participants, records)

    async def get_player_tab(self, game_id: str, player_id: str) -> PlayerTab:
        if not player_id:
            raise ValidationError("player id is required")
        root = await self._root(game_id)
        records = live_records(await self.ledger_store.list_for_game(root.id))
        involved = [r.to_player_id for r in records] + [r.from_player_id for r in records if r.from_player_id]
        names = await self.player_names(dict.fromkeys(involved + [player_id]), root)
        return build_player_tab(player_id, names[player_id], records, names)

    async def pay_drink(self, game_id: str, player_id: str) -> PayDrinkOutcome:
        """Mark the player's most recent unpaid drink of the current session as paid."""
        if not player_id:
            raise ValidationError("player id is required")
        root = await self._root(game_id)
        async with self.locks.hold(root.id):
            session = await self._session_for(root)
            records = await self.ledger_store.list_for_session(session.id)
            latest = find_latest_unpaid(records, player_id)
            if latest is None:
                raise NoUnpaidDrinksError(f"player {player_id} has no unpaid drinks")
            record = await self.ledger_store.mark_paid(latest.id, self.clock.now())
        logging.info(f"Player {player_id} paid drink {record.id} in game {root.id}")
        return PayDrinkOutcome(game_id=root.id, record=record)

    async def reset_tab(self, game_id: str, resetter_id: str, archive: bool = True) -> GameTabSummary:
        """Snapshot the session leaderboard, then archive or delete its records.

        Args:
            game_id (str): Any game of the channel whose session is reset
            resetter_id (str): Player asking for the reset
            archive (bool): Archive the records instead of deleting them

        Returns:
            GameTabSummary: Leaderboard as it was right before the reset
        """
        if not resetter_id:
            raise ValidationError("resetter id is required")
        root = await self._root(game_id)
        async with self.locks.hold(root.id):
            session = await self._session_for(root)
            records = live_records(await self.ledger_store.list_for_session(session.id))
            names = await self.player_names(dict.fromkeys([r.to_player_id for r in records] + [resetter_id]), root)
            now = self.clock.now()
            summary = GameTabSummary(
                game_id=root.id,
                session_id=session.id,
                reset_time=now,
                resetter_id=resetter_id,
                resetter_name=names[resetter_id],
                archived=archive,
                entries=build_leaderboard(records, names),
                total_drinks=len(records),
            )
            if archive:
                count = await self.ledger_store.archive_for_session(session.id, now)
            else:
                count = await self.ledger_store.delete_for_session(session.id)
        logging.info(
            f"Tab of session {session.id} reset by {resetter_id}: "
            f"{count} records {'archived' if archive else 'deleted'}"
        )
        return summary

    async def start_new_session(self, channel_id: str, created_by: str) -> Session:
        if not channel_id or not created_by:
            raise ValidationError("channel id and creator are required")
        session = await self.ledger_store.create_session(channel_id, created_by)
        logging.info(f"New drinking session {session.id} started in channel {channel_id}")
        return session
