import logging
from asyncio import Lock
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class GameLockManager:
    def __init__(self):
        self.locks: Dict[str, Lock] = {}  # one Lock per root game id
        self.holders: Dict[str, int] = {}  # callers holding or waiting on each lock
        self.lock = Lock()  # guards locks and holders

    async def get_lock(self, game_id: str) -> Lock:
        """Get the Lock of the specified game_id

        Args:
            game_id (str): ID of the root game of a roll-off tree

        Returns:
            Lock: Lock serializing mutations of that game tree
        """
        async with self.lock:
            if game_id not in self.locks:
                self.locks[game_id] = Lock()
                self.holders[game_id] = 0
            self.holders[game_id] += 1
            return self.locks[game_id]

    async def release(self, game_id: str):
        """Drop the Lock of the specified game_id once nobody needs it

        Args:
            game_id (str): ID of the root game of a roll-off tree
        """
        async with self.lock:
            if game_id not in self.holders:
                return
            self.holders[game_id] -= 1
            if self.holders[game_id] <= 0:
                del self.locks[game_id]
                del self.holders[game_id]

    @asynccontextmanager
    async def hold(self, game_id: str) -> AsyncIterator[None]:
        """Hold the game lock for the duration of the block"""
        game_lock = await self.get_lock(game_id)
        try:
            async with game_lock:
                yield
        finally:
            await self.release(game_id)

    async def active_games(self) -> int:
        async with self.lock:
            count = len(self.locks)
        logging.debug(f"Locked game trees: {count}")
        return count
