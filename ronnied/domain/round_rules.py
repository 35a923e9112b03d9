"""Round rules that are independent from the stores and the HTTP layer.

Rule of thumb:
- OK: classifying rolls, readiness checks, tie partitioning.
- Not OK: touching stores, Redis, FastAPI, datetime.now(), random, etc.
"""

from typing import List, Tuple

from pydantic import BaseModel, Field

from ronnied.models.dc_models import (
    Game,
    GameConfig,
    GameStatus,
    Participant,
    ParticipantStatus,
    RollOffType,
)
from ronnied.models.result_models import PlayerOption

ROLLABLE_STATUSES = (GameStatus.active, GameStatus.roll_off)


class RoundPartition(BaseModel):
    """How a fully rolled round splits into top and bottom groups."""

    max_roll: int
    min_roll: int
    highest_group: List[str] = Field(default_factory=list)
    lowest_group: List[str] = Field(default_factory=list)
    highest_tie: bool = False
    lowest_tie: bool = False
    all_tied: bool = False
    winner_player_id: str | None = None
    loser_player_id: str | None = None


def classify_roll(
    value: int, config: GameConfig, *, criticals_enabled: bool = True
) -> Tuple[ParticipantStatus, bool, bool]:
    """Classify a roll value.

    Args:
        value: The rolled value.
        config: Game rules holding the critical values.
        criticals_enabled: False for roll-off rolls unless the rules say otherwise.

    Returns:
        (new participant status, is critical hit, is critical fail)
    """
    if not criticals_enabled:
        return ParticipantStatus.active, False, False
    if value == config.critical_hit_value:
        return ParticipantStatus.needs_to_assign, True, False
    if value == config.critical_fail_value:
        return ParticipantStatus.active, False, True
    return ParticipantStatus.active, False, False


def all_players_rolled(game: Game) -> bool:
    return all(participant.has_rolled for participant in game.participants)


def has_pending_assignments(game: Game) -> bool:
    return any(
        participant.status == ParticipantStatus.needs_to_assign
        for participant in game.participants
    )


def is_ready_to_resolve(game: Game) -> bool:
    """A round resolves once everybody rolled and nobody owes an assignment."""
    if not game.participants:
        return False
    return all_players_rolled(game) and not has_pending_assignments(game)


def partition_round(participants: List[Participant], roll_off_type: RollOffType | None) -> RoundPartition:
    """Split a fully rolled round into its top and bottom groups.

    A root game (no roll-off type) looks at both ends. A highest roll-off only
    settles the top, a lowest roll-off only the bottom. When every participant
    tied, a single lowest tie is reported instead of two identical ones.
    """
    if not participants:
        raise ValueError("cannot partition a round without participants")

    max_roll = max(participant.roll_value for participant in participants)
    min_roll = min(participant.roll_value for participant in participants)
    highest_group = [p.player_id for p in participants if p.roll_value == max_roll]
    lowest_group = [p.player_id for p in participants if p.roll_value == min_roll]
    all_tied = max_roll == min_roll and len(participants) > 1

    partition = RoundPartition(
        max_roll=max_roll,
        min_roll=min_roll,
        highest_group=highest_group,
        lowest_group=lowest_group,
        all_tied=all_tied,
    )

    if roll_off_type is None:
        partition.highest_tie = len(highest_group) > 1 and not all_tied
        partition.lowest_tie = len(lowest_group) > 1
        settle_top = settle_bottom = True
    elif roll_off_type == RollOffType.highest:
        partition.highest_tie = len(highest_group) > 1
        settle_top, settle_bottom = True, False
    elif roll_off_type == RollOffType.lowest:
        partition.lowest_tie = len(lowest_group) > 1
        settle_top, settle_bottom = False, True
    else:
        raise ValueError(f"unsupported roll-off type: {roll_off_type}")

    if settle_top and len(highest_group) == 1:
        partition.winner_player_id = highest_group[0]
    if settle_bottom and len(lowest_group) == 1:
        partition.loser_player_id = lowest_group[0]
    return partition


def eligible_recipients(game: Game, player_id: str) -> List[PlayerOption]:
    """Players who may receive a drink assigned by player_id.

    Everyone but the assigner; a lone player has to take it themself.
    """
    options = [
        PlayerOption(player_id=p.player_id, player_name=p.player_name)
        for p in game.participants
        if p.player_id != player_id
    ]
    if options:
        return options
    assigner = game.get_participant(player_id)
    if assigner is None:
        return []
    return [
        PlayerOption(
            player_id=assigner.player_id,
            player_name=assigner.player_name,
            is_current_player=True,
        )
    ]


def reset_participants_for_roll_off(
    participants: List[Participant], game_id: str, new_ids: List[str]
) -> List[Participant]:
    """Copy tied participants into a fresh roll-off with their rolls cleared."""
    if len(new_ids) != len(participants):
        raise ValueError("one id is needed per roll-off participant")
    return [
        Participant(
            id=new_id,
            game_id=game_id,
            player_id=participant.player_id,
            player_name=participant.player_name,
            status=ParticipantStatus.waiting_to_roll,
            roll_value=0,
            roll_time=None,
        )
        for participant, new_id in zip(participants, new_ids)
    ]
