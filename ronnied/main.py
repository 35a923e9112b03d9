import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ronnied.load_settings import log_level
from ronnied.routers import game
from ronnied.services.factory import build_game_service
from ronnied.services.game_service import GameService

logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def create_app(service: GameService | None = None) -> FastAPI:
    """Build the FastAPI app

    Args:
        service (GameService | None): Engine to serve; built from the
            environment at startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if service is None:
            app.state.game_service = await build_game_service()
        else:
            app.state.game_service = service
        logging.info("Start Server")
        try:
            yield
        finally:
            logging.info("Stop Server")

    app = FastAPI(lifespan=lifespan)
    app.include_router(game.game_router)
    return app


app = create_app()
