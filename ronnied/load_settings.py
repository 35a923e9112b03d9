import os
from dotenv import load_dotenv

from ronnied.models.dc_models import GameConfig

load_dotenv()

store_backend = os.getenv("STORE_BACKEND", "memory")
redis_host = os.getenv("REDIS_HOST", "localhost")
redis_port = int(os.getenv("REDIS_PORT", "6379"))
database_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./ronnied.sqlite3")
log_level = os.getenv("LOG_LEVEL", "INFO").upper()

max_players = int(os.getenv("MAX_PLAYERS", "10"))
dice_sides = int(os.getenv("DICE_SIDES", "6"))
critical_hit_value = int(os.getenv("CRITICAL_HIT_VALUE", "6"))
critical_fail_value = int(os.getenv("CRITICAL_FAIL_VALUE", "1"))


def game_config() -> GameConfig:
    """Game rules read from the environment"""
    return GameConfig(
        max_players=max_players,
        dice_sides=dice_sides,
        critical_hit_value=critical_hit_value,
        critical_fail_value=critical_fail_value,
    )
