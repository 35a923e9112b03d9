from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class GameStatus(str, Enum):
    waiting = "waiting"
    active = "active"
    roll_off = "roll_off"
    completed = "completed"


class ParticipantStatus(str, Enum):
    waiting_to_roll = "waiting_to_roll"
    active = "active"
    needs_to_assign = "needs_to_assign"


class DrinkReason(str, Enum):
    critical_hit = "critical_hit"
    critical_fail = "critical_fail"
    lowest_roll = "lowest_roll"
    delayed_start = "delayed_start"  # creator charged when a game had to be force-started


class RollOffType(str, Enum):
    highest = "highest"  # settles the top of the ranking
    lowest = "lowest"  # settles who drinks


DEFAULT_MAX_PLAYERS = 10
DEFAULT_DICE_SIDES = 6
DEFAULT_CRITICAL_HIT_VALUE = 6
DEFAULT_CRITICAL_FAIL_VALUE = 1


class GameConfig(BaseModel):
    """Rules of the game. Non-positive numbers fall back to the defaults."""

    max_players: int = DEFAULT_MAX_PLAYERS
    dice_sides: int = DEFAULT_DICE_SIDES
    critical_hit_value: int = DEFAULT_CRITICAL_HIT_VALUE
    critical_fail_value: int = DEFAULT_CRITICAL_FAIL_VALUE
    auto_start_on_roll: bool = True
    criticals_in_roll_offs: bool = False
    force_start_after: timedelta = timedelta(minutes=5)

    @field_validator("max_players", mode="before")
    @classmethod
    def _default_max_players(cls, value):
        return value if value and int(value) > 0 else DEFAULT_MAX_PLAYERS

    @field_validator("dice_sides", mode="before")
    @classmethod
    def _default_dice_sides(cls, value):
        return value if value and int(value) > 0 else DEFAULT_DICE_SIDES

    @field_validator("critical_hit_value", mode="before")
    @classmethod
    def _default_critical_hit(cls, value):
        return value if value and int(value) > 0 else DEFAULT_CRITICAL_HIT_VALUE

    @field_validator("critical_fail_value", mode="before")
    @classmethod
    def _default_critical_fail(cls, value):
        return value if value and int(value) > 0 else DEFAULT_CRITICAL_FAIL_VALUE

    @model_validator(mode="after")
    def _check_critical_values(self):
        for value in (self.critical_hit_value, self.critical_fail_value):
            if value > self.dice_sides:
                raise ValueError(f"critical value {value} is outside a d{self.dice_sides}")
        if self.critical_hit_value == self.critical_fail_value:
            raise ValueError("critical hit and critical fail values must differ")
        return self


class Participant(BaseModel):
    id: str
    game_id: str
    player_id: str
    player_name: str
    status: ParticipantStatus = ParticipantStatus.waiting_to_roll
    roll_value: int = 0
    roll_time: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def has_rolled(self) -> bool:
        return self.roll_time is not None


class Game(BaseModel):
    id: str
    channel_id: str
    creator_id: str
    status: GameStatus = GameStatus.waiting
    participants: List[Participant] = Field(default_factory=list)
    parent_game_id: str | None = None
    highest_roll_off_game_id: str | None = None
    lowest_roll_off_game_id: str | None = None
    roll_off_type: RollOffType | None = None
    lowest_roll_charged_to: str | None = None  # loser already charged the lowest_roll drink
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @property
    def is_roll_off(self) -> bool:
        return self.parent_game_id is not None

    def get_participant(self, player_id: str) -> Participant | None:
        for participant in self.participants:
            if participant.player_id == player_id:
                return participant
        return None

    def roll_off_game_ids(self) -> List[str]:
        return [
            game_id
            for game_id in (self.highest_roll_off_game_id, self.lowest_roll_off_game_id)
            if game_id is not None
        ]


class Player(BaseModel):
    id: str
    name: str
    current_game_id: str | None = None
    last_roll: int = 0
    last_roll_time: Optional[datetime] = None

    class Config:
        from_attributes = True


class DrinkRecord(BaseModel):
    id: str
    game_id: str
    session_id: str | None = None
    source_game_id: str | None = None
    from_player_id: str | None = None  # None when the game itself assigns the drink
    to_player_id: str
    reason: DrinkReason
    timestamp: datetime
    paid: bool = False
    paid_at: Optional[datetime] = None
    archived: bool = False
    archived_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Session(BaseModel):
    id: str
    channel_id: str
    created_by: str
    created_at: datetime
    active: bool = True

    class Config:
        from_attributes = True
