"""
Shared session handling for the operations classes.
"""

from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ladder.database.database import Database
from ladder.utils.exceptions import NotFoundError


class OperationsBase:
    """Session plumbing used by every operations class"""
    
    def __init__(self, db: Database):
        self.db = db
    
    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise creates and manages a new read session.
        """
        if session:
            # If a session is provided, we do not manage its lifecycle
            yield session
        else:
            async with self.db.get_session() as new_session:
                yield new_session
    
    async def _run_locked(
        self,
        season_id: int,
        work: Callable[[AsyncSession], Awaitable[Any]],
        session: Optional[AsyncSession] = None
    ) -> Any:
        """
        Run a mutation for one season.
        
        With a caller session the caller owns locking and commit; otherwise the
        work runs under the season lock in its own transaction.
        """
        if session:
            return await work(session)
        async with self.db.ladder_transaction(season_id) as txn_session:
            return await work(txn_session)
    
    async def _season_id_for(self, model, entity_id: int, entity_name: str,
                             session: Optional[AsyncSession] = None) -> int:
        """Season an entity belongs to, needed before its season lock can be taken"""
        async with self._get_session_context(session) as s:
            entity = await s.get(model, entity_id)
            if entity is None:
                raise NotFoundError(entity_name, entity_id)
            return entity.season_id
