import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from ladder_bot.config import Config
from ladder_bot.database.models import Base, BotState
from ladder_bot.utils.logger import setup_logger


class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.async_session = None
        # Serializes write transactions issued from this process
        self._write_lock = asyncio.Lock()

    @property
    def session_factory(self):
        return self.async_session

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        engine_kwargs = {'echo': Config.DEBUG}
        if database_url.startswith('sqlite'):
            engine_kwargs['connect_args'] = {'timeout': 30}

        self.engine = create_async_engine(database_url, **engine_kwargs)

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a read session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure. Write transactions are serialized,
        so operations must receive the yielded session rather than opening a
        second transaction of their own.

        Usage:
            async with db.transaction() as session:
                challenge = await challenge_ops.confirm(..., session=session)
                await completion.apply(..., session=session)
        """
        async with self._write_lock:
            async with self.async_session() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
                finally:
                    await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Key/value bot state
    async def get_state(self, key: str, session: Optional[AsyncSession] = None) -> Optional[str]:
        """Read a bot_state value, or None when unset"""
        async def _get(session: AsyncSession) -> Optional[str]:
            result = await session.execute(select(BotState.value).where(BotState.key == key))
            return result.scalar_one_or_none()

        if session:
            return await _get(session)
        async with self.get_session() as db_session:
            return await _get(db_session)

    async def set_state(self, key: str, value: str, session: Optional[AsyncSession] = None):
        """Insert or replace a bot_state value"""
        async def _set(session: AsyncSession):
            await session.merge(BotState(key=key, value=str(value)))
            await session.flush()

        if session:
            await _set(session)
        else:
            async with self.transaction() as txn_session:
                await _set(txn_session)

    async def delete_state(self, key: str, session: Optional[AsyncSession] = None):
        """Remove a bot_state value if present"""
        async def _delete(session: AsyncSession):
            state = await session.get(BotState, key)
            if state:
                await session.delete(state)
                await session.flush()

        if session:
            await _delete(session)
        else:
            async with self.transaction() as txn_session:
                await _delete(txn_session)
