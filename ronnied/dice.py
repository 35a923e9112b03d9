import random
from datetime import datetime, timezone

from uuid6 import uuid7


class RandomRoller:
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def roll(self, sides: int) -> int:
        """Roll a single die

        Args:
            sides (int): Number of faces on the die

        Returns:
            int: Value in [1, sides]
        """
        if sides < 1:
            raise ValueError(f"Invalid die: d{sides}")
        return self.rng.randint(1, sides)


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class Uuid7Generator:
    def new_id(self) -> str:
        return str(uuid7())
