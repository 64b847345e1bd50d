"""
Administrative Operations Module

Admin membership checks used to gate dispute resolution, playoffs,
ladder adjustments and season management. The configured owner
(Config.OWNER_USER_ID) is always an admin, with or without an Admin row.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config import Config
from ladder.database.models import Admin, User
from ladder.operations.base import OperationsBase
from ladder.utils.exceptions import NotAuthorizedError, NotFoundError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class AdminOperations(OperationsBase):
    """Admin membership lookups and grants"""
    
    def __init__(self, db):
        super().__init__(db)
        self.logger = logger
    
    async def _get_admin_row(self, session: AsyncSession, user_id: int) -> Optional[Admin]:
        result = await session.execute(select(Admin).where(Admin.user_id == user_id))
        return result.scalar_one_or_none()
    
    async def is_admin(self, user_id: Optional[int], session: Optional[AsyncSession] = None) -> bool:
        """Check whether a user may perform admin operations"""
        if user_id is None:
            return False
        if Config.OWNER_USER_ID and user_id == Config.OWNER_USER_ID:
            return True
        async with self._get_session_context(session) as s:
            return await self._get_admin_row(s, user_id) is not None
    
    async def require_admin(self, user_id: Optional[int],
                            session: Optional[AsyncSession] = None) -> Optional[Admin]:
        """
        Ensure a user is an admin.
        
        Returns:
            The user's Admin row, or None for an owner without one
            
        Raises:
            NotAuthorizedError: If the user is not an admin
        """
        async with self._get_session_context(session) as s:
            admin = await self._get_admin_row(s, user_id) if user_id is not None else None
        
        if admin is not None:
            return admin
        if Config.OWNER_USER_ID and user_id == Config.OWNER_USER_ID:
            return None
        
        self.logger.warning(f"User {user_id} attempted an admin operation")
        raise NotAuthorizedError(
            f"User {user_id} is not an admin",
            "Only admins can perform this action"
        )
    
    async def grant_admin(self, user_id: int, granted_by: Optional[int] = None,
                          session: Optional[AsyncSession] = None) -> Admin:
        """
        Make a user an admin. Idempotent.
        
        Args:
            user_id: User to promote
            granted_by: Acting admin, or None when bootstrapping from the command line
            session: Optional existing database session
        """
        async def _grant(s: AsyncSession) -> Admin:
            if granted_by is not None:
                await self.require_admin(granted_by, session=s)
            
            if await s.get(User, user_id) is None:
                raise NotFoundError("User", user_id)
            
            existing = await self._get_admin_row(s, user_id)
            if existing is not None:
                return existing
            
            admin = Admin(user_id=user_id)
            s.add(admin)
            await s.flush()
            self.logger.info(f"User {user_id} granted admin by {granted_by or 'command line'}")
            return admin
        
        if session:
            return await _grant(session)
        async with self.db.transaction() as txn_session:
            return await _grant(txn_session)
