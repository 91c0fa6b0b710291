# aura_connect/infrastructure/database.py
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from sqlalchemy.ext.asyncio.engine import create_async_engine, AsyncEngine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

# table registration
from aura_connect.accounts import models as _account_models  # noqa: F401
from aura_connect.models import message as _message_models  # noqa: F401
from aura_connect.models import social as _social_models  # noqa: F401

logger = structlog.get_logger(__name__)


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    if database_url.startswith("sqlite") and (":memory:" in database_url or database_url.endswith("://")):
        # one shared connection, otherwise every session sees an empty database
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(database_url, echo=echo)


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
    logger.info("db_tables_ready")


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session
