"""
Season Operations

Seasons scope every ladder, challenge, match and bracket. All core APIs take a
season id explicitly; get_active_season() exists for callers that need to
find the current one.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config import Config
from ladder.database.models import Season, SeasonStatus
from ladder.operations.admin_operations import AdminOperations
from ladder.operations.base import OperationsBase
from ladder.utils.exceptions import NotFoundError, ValidationError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


async def load_season(session: AsyncSession, season_id: int) -> Season:
    """Season by id, raising NotFoundError when missing"""
    season = await session.get(Season, season_id)
    if season is None:
        raise NotFoundError("Season", season_id)
    return season


class SeasonOperations(OperationsBase):
    
    def __init__(self, db, admin_ops: Optional[AdminOperations] = None):
        super().__init__(db)
        self.admin_ops = admin_ops or AdminOperations(db)
        self.logger = logger
    
    async def create_season(
        self,
        admin_id: int,
        name: str,
        start_date: datetime,
        end_date: Optional[datetime] = None,
        wildcards_per_player: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> Season:
        """Create an inactive season; activate_season() makes it current"""
        if not name or not name.strip():
            raise ValidationError("Season name is empty", "Season name is required")
        if end_date is not None and end_date < start_date:
            raise ValidationError("Season ends before it starts", "End date must be after the start date")
        if wildcards_per_player is None:
            wildcards_per_player = Config.WILDCARDS_PER_PLAYER
        if wildcards_per_player < 0:
            raise ValidationError("Negative wildcard budget", "Wildcards per player cannot be negative")
        
        async def _create(s: AsyncSession) -> Season:
            await self.admin_ops.require_admin(admin_id, session=s)
            season = Season(
                name=name.strip(),
                start_date=start_date,
                end_date=end_date,
                is_active=False,
                status=SeasonStatus.ACTIVE,
                wildcards_per_player=wildcards_per_player
            )
            s.add(season)
            await s.flush()
            self.logger.info(f"Season {season.id} '{season.name}' created by admin {admin_id}")
            return season
        
        if session:
            return await _create(session)
        async with self.db.transaction() as txn_session:
            return await _create(txn_session)
    
    async def activate_season(self, admin_id: int, season_id: int, active: bool = True,
                              session: Optional[AsyncSession] = None) -> Season:
        """Mark a season current (deactivating every other season) or clear the flag"""
        async def _activate(s: AsyncSession) -> Season:
            await self.admin_ops.require_admin(admin_id, session=s)
            season = await load_season(s, season_id)
            if active:
                await s.execute(
                    update(Season)
                    .where(Season.id != season_id)
                    .values(is_active=False)
                )
            season.is_active = active
            await s.flush()
            self.logger.info(f"Season {season_id} {'activated' if active else 'deactivated'} by admin {admin_id}")
            return season
        
        if session:
            return await _activate(session)
        async with self.db.transaction() as txn_session:
            return await _activate(txn_session)
    
    async def get_active_season(self, session: Optional[AsyncSession] = None) -> Optional[Season]:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Season).where(Season.is_active == True).order_by(Season.id.desc())
            )
            return result.scalars().first()
    
    async def get_season(self, season_id: int, session: Optional[AsyncSession] = None) -> Season:
        async with self._get_session_context(session) as s:
            return await load_season(s, season_id)
