import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ronnied.create_db_engine import engine
from ronnied.models.schemas import Base


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        autocommit=False,
        class_=AsyncSession,
        autoflush=True,
        expire_on_commit=False,
        bind=bind,
    )


async def create_tables(bind: AsyncEngine = engine) -> None:
    """Create tables if not exists"""
    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except IntegrityError as e:
        logging.warning(f"Table already exists or other integrity error: {e}")


# Centralized session factory to avoid creating it in router modules.
Session = make_session_factory(engine)
