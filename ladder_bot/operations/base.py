"""
Shared session handling for ladder operations.

Each public operation accepts an optional session. When one is given the
operation joins the caller's transaction; otherwise it opens its own
write transaction or read session.
"""

from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from ladder_bot.database.database import Database
from ladder_bot.utils.clock import Clock, utc_now
from ladder_bot.utils.logger import setup_logger

T = TypeVar('T')


class BaseOperations:
    """Base class for operations classes bound to a Database."""

    def __init__(self, db: Database, clock: Clock = utc_now):
        self.db = db
        self.clock = clock
        self.logger = setup_logger(f"{type(self).__module__}.{type(self).__name__}")

    async def _write(self, op: Callable[[AsyncSession], Awaitable[T]],
                     session: Optional[AsyncSession] = None) -> T:
        if session:
            return await op(session)
        async with self.db.transaction() as txn_session:
            return await op(txn_session)

    async def _read(self, op: Callable[[AsyncSession], Awaitable[T]],
                    session: Optional[AsyncSession] = None) -> T:
        if session:
            return await op(session)
        async with self.db.get_session() as db_session:
            return await op(db_session)
