from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ronnied.load_settings import database_url


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine for sqlite+aiosqlite or postgresql+asyncpg urls"""
    if url.startswith("postgresql"):
        kwargs.setdefault("pool_size", 20)
        kwargs.setdefault("max_overflow", 20)
    return create_async_engine(url, echo=False, **kwargs)


engine = build_engine(database_url)
