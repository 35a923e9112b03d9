from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ronnied.models.dc_models import DrinkReason, DrinkRecord, Game, RollOffType, Session


class PlayerOption(BaseModel):
    """A player who can receive an assigned drink."""

    player_id: str
    player_name: str
    is_current_player: bool = False


class PlayerStats(BaseModel):
    player_id: str
    player_name: str
    drinks_assigned: int = 0
    drinks_received: int = 0
    last_roll: int = 0
    last_roll_time: Optional[datetime] = None


class LeaderboardEntry(BaseModel):
    player_id: str
    player_name: str
    drink_count: int = 0
    paid_count: int = 0


class RollOffSpawn(BaseModel):
    game_id: str
    roll_off_type: RollOffType
    player_ids: List[str]


class EndGameOutcome(BaseModel):
    game_id: str
    root_game_id: str
    completed: bool
    highest_roll_off: RollOffSpawn | None = None
    lowest_roll_off: RollOffSpawn | None = None
    winner_player_id: str | None = None
    loser_player_id: str | None = None
    lowest_roll_drink: DrinkRecord | None = None
    completed_game_ids: List[str] = Field(default_factory=list)
    leaderboard: List[PlayerStats] = Field(default_factory=list)
    session_id: str | None = None
    session_leaderboard: List[LeaderboardEntry] = Field(default_factory=list)

    @property
    def needs_roll_off(self) -> bool:
        return self.highest_roll_off is not None or self.lowest_roll_off is not None

    def spawned(self) -> List[RollOffSpawn]:
        return [spawn for spawn in (self.highest_roll_off, self.lowest_roll_off) if spawn is not None]


class RollOutcome(BaseModel):
    player_id: str
    player_name: str
    game_id: str
    root_game_id: str
    roll_value: int
    is_critical_hit: bool = False
    is_critical_fail: bool = False
    is_roll_off_roll: bool = False
    redirected: bool = False
    all_players_rolled: bool = False
    round_resolved: bool = False
    eligible_players: List[PlayerOption] = Field(default_factory=list)
    end_game: EndGameOutcome | None = None
    game: Game
    game_ids_to_update: List[str] = Field(default_factory=list)


class AssignDrinkOutcome(BaseModel):
    record: DrinkRecord
    game_id: str
    round_resolved: bool = False
    end_game: EndGameOutcome | None = None


class JoinGameOutcome(BaseModel):
    game_id: str
    already_joined: bool = False


class StartGameOutcome(BaseModel):
    game: Game
    force_started: bool = False
    creator_id: str
    creator_name: str


class GameView(BaseModel):
    game: Game
    active_roll_offs: List[Game] = Field(default_factory=list)


class Leaderboard(BaseModel):
    game_id: str | None = None
    session: Session | None = None
    entries: List[LeaderboardEntry] = Field(default_factory=list)


class PlayerTabEntry(BaseModel):
    from_player_id: str | None
    from_player_name: str
    to_player_id: str
    to_player_name: str
    reason: DrinkReason
    timestamp: datetime
    paid: bool


class PlayerTab(BaseModel):
    player_id: str
    player_name: str
    drinks_owed: List[PlayerTabEntry] = Field(default_factory=list)
    drinks_assigned: List[PlayerTabEntry] = Field(default_factory=list)
    total_owed: int = 0
    total_assigned: int = 0
    net_drinks: int = 0


class GameTabSummary(BaseModel):
    game_id: str
    session_id: str | None
    reset_time: datetime
    resetter_id: str
    resetter_name: str
    archived: bool
    entries: List[LeaderboardEntry] = Field(default_factory=list)
    total_drinks: int = 0


class PayDrinkOutcome(BaseModel):
    game_id: str
    record: DrinkRecord
