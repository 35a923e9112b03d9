"""Round resolution engine and game lifecycle use cases.

- Routers never touch stores directly; they call this service.
- Mutations take the lock of the root game of the tree they touch.
- Every mutation is a full read, an in-memory change and a full write.
"""

import logging
from typing import List

from ronnied.domain.round_rules import (
    ROLLABLE_STATUSES,
    all_players_rolled,
    classify_roll,
    eligible_recipients,
    is_ready_to_resolve,
    partition_round,
)
from ronnied.domain.ledger_rules import build_player_stats, live_records
from ronnied.errors import (
    AlreadyRolledError,
    GameFullError,
    InvalidStateError,
    NotCreatorError,
    NotFoundError,
    PlayerNotInGameError,
    ValidationError,
)
from ronnied.game_lock_manager import GameLockManager
from ronnied.models.dc_models import (
    DrinkReason,
    Game,
    GameConfig,
    GameStatus,
    Participant,
    ParticipantStatus,
    Player,
    RollOffType,
)
from ronnied.models.result_models import (
    AssignDrinkOutcome,
    EndGameOutcome,
    GameView,
    JoinGameOutcome,
    RollOffSpawn,
    RollOutcome,
    StartGameOutcome,
)
from ronnied.services.ledger_service import LedgerService
from ronnied.services.roll_off import RollOffSpawner, find_root_game
from ronnied.stores.interface import Clock, GameStore, IdGenerator, LedgerStore, PlayerStore, Roller


def require(**values):
    for name, value in values.items():
        if not value:
            raise ValidationError(f"{name.replace('_', ' ')} is required")


def unique(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(ids))


class GameService:
    def __init__(
        self,
        config: GameConfig,
        game_store: GameStore,
        player_store: PlayerStore,
        ledger_store: LedgerStore,
        roller: Roller,
        clock: Clock,
        id_generator: IdGenerator,
        lock_manager: GameLockManager | None = None,
    ):
        collaborators = {
            "config": config,
            "game_store": game_store,
            "player_store": player_store,
            "ledger_store": ledger_store,
            "roller": roller,
            "clock": clock,
            "id_generator": id_generator,
        }
        for name, collaborator in collaborators.items():
            if collaborator is None:
                raise ValueError(f"{name} is required")

        self.config = config
        self.game_store = game_store
        self.player_store = player_store
        self.ledger_store = ledger_store
        self.roller = roller
        self.clock = clock
        self.id_generator = id_generator
        self.locks = lock_manager or GameLockManager()
        self.roll_offs = RollOffSpawner(game_store, player_store, clock, id_generator)
        self.ledger = LedgerService(game_store, player_store, ledger_store, clock, id_generator, self.locks)

    async def _root_id(self, game_id: str) -> str:
        game = await self.game_store.get(game_id)
        root = await find_root_game(self.game_store, game)
        return root.id

    async def _save_player(self, player_id: str, player_name: str, game_id: str | None) -> None:
        try:
            player = await self.player_store.get(player_id)
            player.name = player_name or player.name
            player.current_game_id = game_id
        except NotFoundError:
            player = Player(id=player_id, name=player_name, current_game_id=game_id)
        await self.player_store.put(player)

    # Lifecycle

    async def create_game(self, channel_id: str, creator_id: str, creator_name: str) -> Game:
        """Create a game in Waiting with its creator as the first participant

        Args:
            channel_id (str): Context owning the game
            creator_id (str): Player creating the game
            creator_name (str): Display name of the creator

        Returns:
            Game: The stored game
        """
        require(channel_id=channel_id, creator_id=creator_id)
        now = self.clock.now()
        game_id = self.id_generator.new_id()
        game = Game(
            id=game_id,
            channel_id=channel_id,
            creator_id=creator_id,
            status=GameStatus.waiting,
            participants=[
                Participant(
                    id=self.id_generator.new_id(),
                    game_id=game_id,
                    player_id=creator_id,
                    player_name=creator_name,
                )
            ],
            created_at=now,
            updated_at=now,
        )
        await self.game_store.put(game)
        await self._save_player(creator_id, creator_name, game.id)
        logging.info(f"Game {game.id} created in channel {channel_id} by {creator_id}")
        return game

    async def join_game(self, game_id: str, player_id: str, player_name: str) -> JoinGameOutcome:
        require(game_id=game_id, player_id=player_id)
        async with self.locks.hold(await self._root_id(game_id)):
            game = await self.game_store.get(game_id)
            if game.get_participant(player_id) is not None:
                return JoinGameOutcome(game_id=game.id, already_joined=True)
            if game.status != GameStatus.waiting:
                raise InvalidStateError(f"cannot join a game that is {game.status.value}")
            if len(game.participants) >= self.config.max_players:
                raise GameFullError(f"game {game.id} already has {self.config.max_players} players")

            game.participants.append(
                Participant(
                    id=self.id_generator.new_id(),
                    game_id=game.id,
                    player_id=player_id,
                    player_name=player_name,
                )
            )
            game.updated_at = self.clock.now()
            await self.game_store.put(game)
            await self._save_player(player_id, player_name, game.id)
        logging.info(f"Player {player_id} joined game {game_id}")
        return JoinGameOutcome(game_id=game_id)

    async def leave_game(self, game_id: str, player_id: str) -> Game:
        require(game_id=game_id, player_id=player_id)
        async with self.locks.hold(await self._root_id(game_id)):
            game = await self.game_store.get(game_id)
            if game.get_participant(player_id) is None:
                raise PlayerNotInGameError(f"player {player_id} is not in game {game.id}")
            if game.status != GameStatus.waiting:
                raise InvalidStateError(f"cannot leave a game that is {game.status.value}")
            game.participants = [p for p in game.participants if p.player_id != player_id]
            game.updated_at = self.clock.now()
            await self.game_store.put(game)
            await self.roll_offs.point_players([player_id], None)
        logging.info(f"Player {player_id} left game {game_id}")
        return game

    async def start_game(self, game_id: str, player_id: str, force: bool = False) -> StartGameOutcome:
        """Move a Waiting game to Active.

        Only the creator may start, unless force is set and the game has been
        waiting longer than force_start_after. The creator then owes the
        starter a delayed_start drink.
        """
        require(game_id=game_id, player_id=player_id)
        async with self.locks.hold(await self._root_id(game_id)):
            game = await self.game_store.get(game_id)
            if game.status != GameStatus.waiting:
                raise InvalidStateError(f"cannot start a game that is {game.status.value}")
            if not game.participants:
                raise InvalidStateError("a game needs at least one player to start")

            creator = game.get_participant(game.creator_id)
            creator_name = creator.player_name if creator is not None else "Unknown Creator"
            now = self.clock.now()
            force_started = False
            if player_id != game.creator_id:
                if not force:
                    raise NotCreatorError()
                age = now - game.created_at
                if age < self.config.force_start_after:
                    raise NotCreatorError(
                        f"game must wait {self.config.force_start_after} before anyone else can start it "
                        f"(current age: {age})"
                    )
                force_started = True

            game.status = GameStatus.active
            game.updated_at = now
            await self.game_store.put(game)
            if force_started:
                await self.ledger.record_drink(game, game.id, player_id, game.creator_id, DrinkReason.delayed_start)
        logging.info(f"Game {game.id} started by {player_id}{' (forced)' if force_started else ''}")
        return StartGameOutcome(
            game=game, force_started=force_started, creator_id=game.creator_id, creator_name=creator_name
        )

    async def abandon_game(self, game_id: str) -> Game:
        """Force the game and every open roll-off below it to Completed."""
        require(game_id=game_id)
        async with self.locks.hold(await self._root_id(game_id)):
            game = await self.game_store.get(game_id)
            tree = [game] + await self.roll_offs.descendants(game.id)
            tree_ids = {g.id for g in tree}
            now = self.clock.now()
            for member in tree:
                if member.status == GameStatus.completed:
                    continue
                member.status = GameStatus.completed
                member.updated_at = now
                await self.game_store.put(member)

            player_ids = unique([p.player_id for member in tree for p in member.participants])
            for player_id in player_ids:
                try:
                    player = await self.player_store.get(player_id)
                except NotFoundError:
                    continue
                if player.current_game_id in tree_ids:
                    await self.player_store.update_current_game(player_id, None)
        logging.info(f"Game {game.id} abandoned with {len(tree) - 1} roll-off games")
        return game

    async def get_game(self, game_id: str) -> GameView:
        require(game_id=game_id)
        game = await self.game_store.get(game_id)
        return GameView(game=game, active_roll_offs=await self.roll_offs.descendants(game.id, open_only=True))

    async def get_game_by_channel(self, channel_id: str) -> GameView:
        require(channel_id=channel_id)
        game = await self.game_store.get_by_channel(channel_id)
        return GameView(game=game, active_roll_offs=await self.roll_offs.descendants(game.id, open_only=True))

    async def start_roll_off(self, parent_game_id: str, player_ids: List[str], roll_off_type: RollOffType) -> Game:
        require(parent_game_id=parent_game_id)
        async with self.locks.hold(await self._root_id(parent_game_id)):
            return await self.roll_offs.start_roll_off(parent_game_id, player_ids, roll_off_type)

    # Rolling and assigning

    async def roll_dice(self, game_id: str, player_id: str) -> RollOutcome:
        """Roll for player_id in game_id or in the open roll-off waiting on them

        Args:
            game_id (str): Game the caller is looking at, usually the root game
            player_id (str): Player rolling

        Returns:
            RollOutcome: Value, critical flags and, when the roll completed the
            round, the result of resolving it
        """
        require(game_id=game_id, player_id=player_id)
        root_id = await self._root_id(game_id)
        async with self.locks.hold(root_id):
            requested = await self.game_store.get(game_id)
            game = await self.roll_offs.find_active_roll_off(player_id, requested.id) or requested
            redirected = game.id != requested.id

            if game.status == GameStatus.waiting:
                if not self.config.auto_start_on_roll:
                    raise InvalidStateError("game has not been started")
                game.status = GameStatus.active
                logging.info(f"Game {game.id} started by the first roll of {player_id}")
            if game.status not in ROLLABLE_STATUSES:
                raise InvalidStateError(f"cannot roll in a game that is {game.status.value}")
            participant = game.get_participant(player_id)
            if participant is None:
                raise PlayerNotInGameError(f"player {player_id} is not in game {game.id}")
            if participant.has_rolled:
                raise AlreadyRolledError(f"player {player_id} already rolled {participant.roll_value}")

            value = self.roller.roll(self.config.dice_sides)
            now = self.clock.now()
            criticals = not game.is_roll_off or self.config.criticals_in_roll_offs
            status, is_hit, is_fail = classify_roll(value, self.config, criticals_enabled=criticals)
            participant.roll_value = value
            participant.roll_time = now
            participant.status = status
            game.updated_at = now

            root = game if game.id == root_id else await self.game_store.get(root_id)
            if is_fail:
                await self.ledger.record_drink(root, game.id, player_id, player_id, DrinkReason.critical_fail)
            await self.game_store.put(game)
            await self._record_last_roll(participant)

            outcome = RollOutcome(
                player_id=player_id,
                player_name=participant.player_name,
                game_id=game.id,
                root_game_id=root_id,
                roll_value=value,
                is_critical_hit=is_hit,
                is_critical_fail=is_fail,
                is_roll_off_roll=game.is_roll_off,
                redirected=redirected,
                all_players_rolled=all_players_rolled(game),
                game=game,
            )
            if is_hit:
                outcome.eligible_players = eligible_recipients(game, player_id)
            if is_ready_to_resolve(game):
                outcome.end_game = await self._end_game(game.id)
                outcome.round_resolved = True
                outcome.game = await self.game_store.get(game.id)
            outcome.game_ids_to_update = self._touched_games([game.id, root_id], outcome.end_game)
        logging.debug(f"Player {player_id} rolled {value} in game {game.id}")
        return outcome

    async def _record_last_roll(self, participant: Participant) -> None:
        try:
            player = await self.player_store.get(participant.player_id)
        except NotFoundError:
            player = Player(id=participant.player_id, name=participant.player_name)
        player.last_roll = participant.roll_value
        player.last_roll_time = participant.roll_time
        await self.player_store.put(player)

    @staticmethod
    def _touched_games(game_ids: List[str], end_game: EndGameOutcome | None) -> List[str]:
        if end_game is not None:
            game_ids = game_ids + [spawn.game_id for spawn in end_game.spawned()] + end_game.completed_game_ids
        return unique(game_ids)

    async def assign_drink(
        self,
        game_id: str,
        from_player_id: str,
        to_player_id: str,
        reason: DrinkReason = DrinkReason.critical_hit,
    ) -> AssignDrinkOutcome:
        """Settle a critical hit by giving a drink to another participant."""
        require(game_id=game_id, from_player_id=from_player_id, to_player_id=to_player_id)
        root_id = await self._root_id(game_id)
        async with self.locks.hold(root_id):
            game = await self.game_store.get(game_id)
            assigner = game.get_participant(from_player_id)
            if assigner is None or assigner.status != ParticipantStatus.needs_to_assign:
                pending = await self.roll_offs.find_pending_assignment(from_player_id, game.id)
                if pending is not None:
                    game = pending
                    assigner = game.get_participant(from_player_id)
            if assigner is None:
                raise PlayerNotInGameError(f"player {from_player_id} is not in game {game.id}")
            if game.status not in ROLLABLE_STATUSES:
                raise InvalidStateError(f"cannot assign drinks in a game that is {game.status.value}")
            if assigner.status != ParticipantStatus.needs_to_assign:
                raise InvalidStateError(f"player {from_player_id} has no drink to assign")
            if from_player_id == to_player_id and len(game.participants) > 1:
                raise ValidationError("cannot assign a drink to yourself")
            if game.get_participant(to_player_id) is None:
                raise PlayerNotInGameError(f"player {to_player_id} is not in game {game.id}")

            root = game if game.id == root_id else await self.game_store.get(root_id)
            record = await self.ledger.record_drink(root, game.id, from_player_id, to_player_id, reason)
            assigner.status = ParticipantStatus.active
            game.updated_at = self.clock.now()
            await self.game_store.put(game)

            outcome = AssignDrinkOutcome(record=record, game_id=game.id)
            if is_ready_to_resolve(game):
                outcome.end_game = await self._end_game(game.id)
                outcome.round_resolved = True
        logging.info(f"Player {from_player_id} assigned a drink to {to_player_id} in game {game.id}")
        return outcome

    # Round resolution

    async def check_round_completion(self, game_id: str) -> EndGameOutcome | None:
        """Resolve the round if it is ready; None when it is not."""
        require(game_id=game_id)
        async with self.locks.hold(await self._root_id(game_id)):
            game = await self.game_store.get(game_id)
            if game.status == GameStatus.completed:
                return await self._end_game(game.id)
            if game.status not in ROLLABLE_STATUSES or not is_ready_to_resolve(game):
                return None
            return await self._end_game(game.id)

    async def end_game(self, game_id: str) -> EndGameOutcome:
        require(game_id=game_id)
        async with self.locks.hold(await self._root_id(game_id)):
            return await self._end_game(game_id)

    async def _end_game(self, game_id: str) -> EndGameOutcome:
        """Resolve a fully rolled round. The caller holds the tree lock.

        Ties at an end this game settles spawn roll-offs; otherwise the sole
        lowest roller drinks and the game completes, completing every ancestor
        left without open roll-offs. Safe to call again on a resolved game.
        """
        game = await self.game_store.get(game_id)
        root = await find_root_game(self.game_store, game)
        if game.status == GameStatus.completed:
            return await self._finish_outcome(game, root, completed_ids=[])
        if game.status not in ROLLABLE_STATUSES:
            raise InvalidStateError(f"cannot end a game that is {game.status.value}")
        if not is_ready_to_resolve(game):
            raise InvalidStateError(f"round of game {game.id} is not complete")

        partition = partition_round(game.participants, game.roll_off_type)
        # a roll-off already linked on the game was spawned by an earlier attempt
        if partition.highest_tie and game.highest_roll_off_game_id is None:
            await self.roll_offs.spawn(game, partition.highest_group, RollOffType.highest)
        if partition.lowest_tie and game.lowest_roll_off_game_id is None:
            await self.roll_offs.spawn(game, partition.lowest_group, RollOffType.lowest)

        charged = False
        if partition.loser_player_id is not None and not await self._lowest_roll_charged(root.id, game):
            await self.ledger.record_drink(
                root, game.id, None, partition.loser_player_id, DrinkReason.lowest_roll
            )
            game.lowest_roll_charged_to = partition.loser_player_id
            charged = True
            logging.info(f"Player {partition.loser_player_id} rolled lowest in game {game.id}")

        completed_ids: List[str] = []
        if not partition.highest_tie and not partition.lowest_tie:
            completed_ids = await self._complete(game)
        elif charged:
            game.updated_at = self.clock.now()
            await self.game_store.put(game)
        return await self._finish_outcome(game, root, completed_ids)

    async def _lowest_roll_charged(self, root_id: str, game: Game) -> bool:
        """Whether game already charged its lowest roller.

        The marker on the game survives tab resets; the ledger scan covers
        games written before the marker existed and includes archived records.
        """
        if game.lowest_roll_charged_to is not None:
            return True
        for record in await self.ledger_store.list_for_game(root_id):
            if record.reason == DrinkReason.lowest_roll and record.source_game_id == game.id:
                return True
        return False

    async def _complete(self, game: Game) -> List[str]:
        """Complete game, then walk up completing ancestors without open roll-offs.

        Players of a completed roll-off are handed back to its parent.
        """
        now = self.clock.now()
        game.status = GameStatus.completed
        game.updated_at = now
        await self.game_store.put(game)
        completed_ids = [game.id]
        logging.info(f"Game {game.id} completed")

        current = game
        while current.parent_game_id is not None:
            parent = await self.game_store.get(current.parent_game_id)
            await self.roll_offs.point_players([p.player_id for p in current.participants], parent.id)
            if parent.status == GameStatus.completed:
                break
            still_open = False
            for child_id in parent.roll_off_game_ids():
                child = current if child_id == current.id else await self.game_store.get(child_id)
                if child.status != GameStatus.completed:
                    still_open = True
                    break
            if still_open:
                break
            parent.status = GameStatus.completed
            parent.updated_at = now
            await self.game_store.put(parent)
            completed_ids.append(parent.id)
            logging.info(f"Game {parent.id} completed once its roll-offs resolved")
            current = parent
        return completed_ids

    async def _finish_outcome(self, game: Game, root: Game, completed_ids: List[str]) -> EndGameOutcome:
        partition = None
        if game.participants and all_players_rolled(game):
            partition = partition_round(game.participants, game.roll_off_type)
        game = await self.game_store.get(game.id)
        root = await self.game_store.get(root.id)
        records = live_records(await self.ledger_store.list_for_game(root.id))
        session, session_entries = await self.ledger.session_leaderboard_for(root)

        outcome = EndGameOutcome(
            game_id=game.id,
            root_game_id=root.id,
            completed=game.status == GameStatus.completed,
            completed_game_ids=completed_ids,
            leaderboard=build_player_stats(root.participants, records),
            session_id=session.id,
            session_leaderboard=session_entries,
        )
        if partition is not None:
            outcome.winner_player_id = partition.winner_player_id
            outcome.loser_player_id = partition.loser_player_id
        for record in records:
            if record.reason == DrinkReason.lowest_roll and record.source_game_id == game.id:
                outcome.lowest_roll_drink = record
        for roll_off_type, child_id in (
            (RollOffType.highest, game.highest_roll_off_game_id),
            (RollOffType.lowest, game.lowest_roll_off_game_id),
        ):
            if child_id is None:
                continue
            child = await self.game_store.get(child_id)
            spawn = RollOffSpawn(
                game_id=child.id,
                roll_off_type=roll_off_type,
                player_ids=[p.player_id for p in child.participants],
            )
            if roll_off_type == RollOffType.highest:
                outcome.highest_roll_off = spawn
            else:
                outcome.lowest_roll_off = spawn
        return outcome
