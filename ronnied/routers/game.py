import logging
from typing import Awaitable, List, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ronnied.errors import (
    AlreadyRolledError,
    GameError,
    GameFullError,
    InvalidStateError,
    NoUnpaidDrinksError,
    NotCreatorError,
    NotFoundError,
    PlayerNotInGameError,
    ValidationError,
)
from ronnied.models.dc_models import DrinkRecord, Game, Session
from ronnied.models.request_models import (
    AssignDrinkRequest,
    CreateGameRequest,
    JoinGameRequest,
    NewSessionRequest,
    PlayerRequest,
    ResetTabRequest,
    StartGameRequest,
)
from ronnied.models.result_models import (
    AssignDrinkOutcome,
    EndGameOutcome,
    GameTabSummary,
    GameView,
    JoinGameOutcome,
    Leaderboard,
    PayDrinkOutcome,
    PlayerTab,
    RollOutcome,
    StartGameOutcome,
)
from ronnied.services.game_service import GameService

T = TypeVar("T")

game_router = APIRouter()

STATUS_CODES = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    AlreadyRolledError: status.HTTP_409_CONFLICT,
    GameFullError: status.HTTP_409_CONFLICT,
    NoUnpaidDrinksError: status.HTTP_409_CONFLICT,
    PlayerNotInGameError: status.HTTP_400_BAD_REQUEST,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotCreatorError: status.HTTP_403_FORBIDDEN,
}


def to_http_exception(error: GameError) -> HTTPException:
    status_code = STATUS_CODES.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=error.message)


async def call(operation: Awaitable[T]) -> T:
    try:
        return await operation
    except GameError as e:
        logging.debug(f"Rejected request: {type(e).__name__}: {e.message}")
        raise to_http_exception(e)


def get_game_service(request: Request) -> GameService:
    return request.app.state.game_service


@game_router.post("/games", response_model=Game, status_code=status.HTTP_201_CREATED)
async def create_game(body: CreateGameRequest, service: GameService = Depends(get_game_service)):
    return await call(service.create_game(body.channel_id, body.creator_id, body.creator_name))


@game_router.post("/games/{game_id}/join", response_model=JoinGameOutcome)
async def join_game(game_id: str, body: JoinGameRequest, service: GameService = Depends(get_game_service)):
    return await call(service.join_game(game_id, body.player_id, body.player_name))


@game_router.post("/games/{game_id}/leave", response_model=Game)
async def leave_game(game_id: str, body: PlayerRequest, service: GameService = Depends(get_game_service)):
    return await call(service.leave_game(game_id, body.player_id))


@game_router.post("/games/{game_id}/start", response_model=StartGameOutcome)
async def start_game(game_id: str, body: StartGameRequest, service: GameService = Depends(get_game_service)):
    return await call(service.start_game(game_id, body.player_id, force=body.force))


@game_router.post("/games/{game_id}/roll", response_model=RollOutcome)
async def roll_dice(game_id: str, body: PlayerRequest, service: GameService = Depends(get_game_service)):
    return await call(service.roll_dice(game_id, body.player_id))


@game_router.post("/games/{game_id}/assign", response_model=AssignDrinkOutcome)
async def assign_drink(game_id: str, body: AssignDrinkRequest, service: GameService = Depends(get_game_service)):
    return await call(service.assign_drink(game_id, body.from_player_id, body.to_player_id, body.reason))


@game_router.post("/games/{game_id}/end", response_model=EndGameOutcome)
async def end_game(game_id: str, service: GameService = Depends(get_game_service)):
    return await call(service.end_game(game_id))


@game_router.post("/games/{game_id}/abandon", response_model=Game)
async def abandon_game(game_id: str, service: GameService = Depends(get_game_service)):
    return await call(service.abandon_game(game_id))


@game_router.get("/games/{game_id}", response_model=GameView)
async def get_game(game_id: str, service: GameService = Depends(get_game_service)):
    return await call(service.get_game(game_id))


@game_router.get("/channels/{channel_id}/game", response_model=GameView)
async def get_game_by_channel(channel_id: str, service: GameService = Depends(get_game_service)):
    return await call(service.get_game_by_channel(channel_id))


@game_router.get("/games/{game_id}/leaderboard", response_model=Leaderboard)
async def get_leaderboard(game_id: str, service: GameService = Depends(get_game_service)):
    return await call(service.ledger.get_leaderboard(game_id))


@game_router.get("/games/{game_id}/drinks", response_model=List[DrinkRecord])
async def get_drink_records(game_id: str, service: GameService = Depends(get_game_service)):
    return await call(service.ledger.get_drink_records(game_id))


@game_router.get("/games/{game_id}/tab/{player_id}", response_model=PlayerTab)
async def get_player_tab(game_id: str, player_id: str, service: GameService = Depends(get_game_service)):
    return await call(service.ledger.get_player_tab(game_id, player_id))


@game_router.post("/games/{game_id}/pay", response_model=PayDrinkOutcome)
async def pay_drink(game_id: str, body: PlayerRequest, service: GameService = Depends(get_game_service)):
    return await call(service.ledger.pay_drink(game_id, body.player_id))


@game_router.post("/games/{game_id}/reset-tab", response_model=GameTabSummary)
async def reset_tab(game_id: str, body: ResetTabRequest, service: GameService = Depends(get_game_service)):
    return await call(service.ledger.reset_tab(game_id, body.resetter_id, archive=body.archive))


@game_router.get("/sessions/leaderboard", response_model=Leaderboard)
async def get_session_leaderboard(
    session_id: str | None = None,
    channel_id: str | None = None,
    service: GameService = Depends(get_game_service),
):
    return await call(service.ledger.get_session_leaderboard(session_id=session_id, channel_id=channel_id))


@game_router.post(
    "/channels/{channel_id}/sessions", response_model=Session, status_code=status.HTTP_201_CREATED
)
async def start_new_session(channel_id: str, body: NewSessionRequest, service: GameService = Depends(get_game_service)):
    return await call(service.ledger.start_new_session(channel_id, body.created_by))
