"""Roll-off spawning and roll-off tree traversal.

Roll-off games are flat records linked by parent_game_id. Walks over the
tree use an explicit queue and never recurse, so nesting depth is unbounded.
"""

import logging
from collections import deque
from typing import Callable, List

from ronnied.domain.round_rules import reset_participants_for_roll_off
from ronnied.errors import InvalidStateError, NotFoundError, PlayerNotInGameError, ValidationError
from ronnied.models.dc_models import Game, GameStatus, ParticipantStatus, RollOffType
from ronnied.stores.interface import Clock, GameStore, IdGenerator, PlayerStore

GamePredicate = Callable[[Game], bool]


async def find_root_game(game_store: GameStore, game: Game) -> Game:
    """Follow parent links up to the game that started the chain."""
    seen = {game.id}
    current = game
    while current.parent_game_id is not None:
        if current.parent_game_id in seen:
            raise InvalidStateError(f"roll-off chain of {game.id} loops back on itself")
        seen.add(current.parent_game_id)
        current = await game_store.get(current.parent_game_id)
    return current


def waiting_to_roll(player_id: str) -> GamePredicate:
    def predicate(game: Game) -> bool:
        participant = game.get_participant(player_id)
        return participant is not None and not participant.has_rolled

    return predicate


def owes_assignment(player_id: str) -> GamePredicate:
    def predicate(game: Game) -> bool:
        participant = game.get_participant(player_id)
        return participant is not None and participant.status == ParticipantStatus.needs_to_assign

    return predicate


class RollOffSpawner:
    def __init__(
        self,
        game_store: GameStore,
        player_store: PlayerStore,
        clock: Clock,
        id_generator: IdGenerator,
    ):
        self.game_store = game_store
        self.player_store = player_store
        self.clock = clock
        self.id_generator = id_generator

    async def walk(self, game_id: str, predicate: GamePredicate, *, open_only: bool = True) -> Game | None:
        """Breadth-first search below game_id for the first game matching predicate.

        Args:
            game_id (str): Game whose descendants are searched (itself excluded)
            predicate (GamePredicate): Test applied to each descendant
            open_only (bool): Only visit roll-offs still in RollOff status

        Returns:
            Game | None: First match, all direct children being checked before any grandchild
        """
        queue = deque([game_id])
        seen = {game_id}
        while queue:
            current_id = queue.popleft()
            children = [
                child
                for child in await self.game_store.list_children(current_id)
                if child.id not in seen and (not open_only or child.status == GameStatus.roll_off)
            ]
            for child in children:
                if predicate(child):
                    return child
            for child in children:
                seen.add(child.id)
                queue.append(child.id)
        return None

    async def descendants(self, game_id: str, *, open_only: bool = False) -> List[Game]:
        found: List[Game] = []

        def collect(game: Game) -> bool:
            found.append(game)
            return False

        await self.walk(game_id, collect, open_only=open_only)
        return found

    async def find_active_roll_off(self, player_id: str, root_game_id: str) -> Game | None:
        """Open roll-off below root_game_id where player_id still has to roll."""
        return await self.walk(root_game_id, waiting_to_roll(player_id))

    async def find_pending_assignment(self, player_id: str, root_game_id: str) -> Game | None:
        return await self.walk(root_game_id, owes_assignment(player_id))

    async def spawn(self, parent: Game, player_ids: List[str], roll_off_type: RollOffType) -> Game:
        """Create a roll-off for player_ids and link it into parent.

        The child is written first, then the parent, then the players' current
        game. parent is mutated in place.
        """
        if len(player_ids) < 2:
            raise ValidationError("a roll-off needs at least two players")
        if not isinstance(roll_off_type, RollOffType):
            raise ValidationError(f"unsupported roll-off type: {roll_off_type}")

        tied = []
        for player_id in player_ids:
            participant = parent.get_participant(player_id)
            if participant is None:
                raise PlayerNotInGameError(f"player {player_id} is not in game {parent.id}")
            tied.append(participant)

        now = self.clock.now()
        child_id = self.id_generator.new_id()
        child = Game(
            id=child_id,
            channel_id=parent.channel_id,
            creator_id=parent.creator_id,
            status=GameStatus.roll_off,
            participants=reset_participants_for_roll_off(
                tied, child_id, [self.id_generator.new_id() for _ in tied]
            ),
            parent_game_id=parent.id,
            roll_off_type=roll_off_type,
            created_at=now,
            updated_at=now,
        )
        await self.game_store.put(child)

        if roll_off_type == RollOffType.highest:
            parent.highest_roll_off_game_id = child.id
        else:
            parent.lowest_roll_off_game_id = child.id
        parent.status = GameStatus.roll_off
        parent.updated_at = now
        await self.game_store.put(parent)

        await self.point_players(player_ids, child.id)
        logging.info(
            f"Spawned {roll_off_type.value} roll-off {child.id} from game {parent.id} for {len(player_ids)} players"
        )
        return child

    async def start_roll_off(self, parent_game_id: str, player_ids: List[str], roll_off_type: RollOffType) -> Game:
        """Public entry to spawn a roll-off under an Active or RollOff game."""
        try:
            roll_off_type = RollOffType(roll_off_type)
        except ValueError:
            raise ValidationError(f"unsupported roll-off type: {roll_off_type}")
        player_ids = list(dict.fromkeys(player_ids))
        if len(player_ids) < 2:
            raise ValidationError("a roll-off needs at least two players")
        parent = await self.game_store.get(parent_game_id)
        if parent.status not in (GameStatus.active, GameStatus.roll_off):
            raise InvalidStateError(f"cannot start a roll-off in a {parent.status.value} game")
        return await self.spawn(parent, player_ids, roll_off_type)

    async def point_players(self, player_ids: List[str], game_id: str | None) -> None:
        for player_id in player_ids:
            try:
                await self.player_store.update_current_game(player_id, game_id)
            except NotFoundError:
                logging.warning(f"Player {player_id} has no record; current game not updated")
