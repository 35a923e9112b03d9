from pydantic import BaseModel

from ronnied.models.dc_models import DrinkReason


class CreateGameRequest(BaseModel):
    channel_id: str
    creator_id: str
    creator_name: str


class JoinGameRequest(BaseModel):
    player_id: str
    player_name: str


class PlayerRequest(BaseModel):
    player_id: str


class StartGameRequest(BaseModel):
    player_id: str
    force: bool = False


class AssignDrinkRequest(BaseModel):
    from_player_id: str
    to_player_id: str
    reason: DrinkReason = DrinkReason.critical_hit


class ResetTabRequest(BaseModel):
    resetter_id: str
    archive: bool = True


class NewSessionRequest(BaseModel):
    created_by: str
