"""
Async database access for the ladder.

One Database instance owns the engine, the session factory and the
per-season locks that serialize ladder mutations.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ladder.config import Config
from ladder.database.models import Base, LadderPosition, User
from ladder.utils.logger import setup_logger

AFTER_COMMIT_KEY = 'after_commit'


def _engine_options(database_url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {'echo': Config.DEBUG}
    if database_url.endswith(':memory:'):
        # Every session must see the same in-memory database
        options['poolclass'] = StaticPool
    return options


class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.get_async_database_url()
        self.engine = None
        self.session_maker = None
        self._season_locks: Dict[int, asyncio.Lock] = {}

    async def initialize(self):
        """Connect and create any missing tables"""
        self.logger.info(f"Connecting to {self.database_url.split('://')[0]} database")
        self.engine = create_async_engine(self.database_url, **_engine_options(self.database_url))
        self.session_maker = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.logger.info("Database ready")

    async def close(self):
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.logger.info("Database connection closed")

    @asynccontextmanager
    async def get_session(self):
        """Read session; anything it changed is rolled back on error and never committed"""
        async with self.session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self):
        """
        Session that commits when the block exits cleanly.

        Operations taking a ``session`` argument join it, so several of them
        commit or roll back together:

            async with db.transaction() as session:
                await season_ops.create_season(..., session=session)
                await season_ops.activate_season(..., session=session)

        Exceptions must propagate out of the block for the rollback to happen.
        Callbacks registered with after_commit() run once the commit succeeds.
        """
        async with self.session_maker() as session:
            callbacks = session.info.setdefault(AFTER_COMMIT_KEY, [])
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            for callback in callbacks:
                try:
                    await callback()
                except Exception as e:
                    self.logger.error(f"After-commit callback failed: {e}")

    @staticmethod
    def after_commit(session: AsyncSession, callback: Callable[[], Awaitable[Any]]) -> None:
        """Defer callback until the transaction owning session has committed"""
        session.info.setdefault(AFTER_COMMIT_KEY, []).append(callback)

    @asynccontextmanager
    async def season_lock(self, season_id: int):
        """Serialize mutations of one season. Not reentrant."""
        lock = self._season_locks.setdefault(season_id, asyncio.Lock())
        async with lock:
            yield

    @asynccontextmanager
    async def ladder_transaction(self, season_id: int):
        """The unit of work for every ladder mutation: season lock plus one transaction"""
        async with self.season_lock(season_id):
            async with self.transaction() as session:
                yield session

    # Helpers for the command line and tests

    async def get_user(self, user_id: int) -> Optional[User]:
        async with self.get_session() as session:
            return await session.get(User, user_id)

    async def create_user(self, name: str, email: str) -> User:
        async with self.transaction() as session:
            user = User(name=name, email=email, is_active=True)
            session.add(user)
            await session.flush()
            await session.refresh(user)
            return user

    async def get_active_positions(self, season_id: int) -> List[LadderPosition]:
        """Active ladder rows from position 1 down"""
        async with self.get_session() as session:
            result = await session.execute(
                select(LadderPosition)
                .where(LadderPosition.season_id == season_id, LadderPosition.is_active == True)
                .order_by(LadderPosition.position)
            )
            return list(result.scalars().all())
