"""
Ladder Operations - position maintenance for a season's singles ladder.

Every mutation follows the same shape:
1. Load the season's active rows inside the season transaction
2. Compute the complete new arrangement with ladder.utils.positions
3. Apply it in two flushes: changed rows are parked at the sentinel
   position, then written with their final values

The active positions of a season are always exactly 1..N once a
transaction commits. A failure at any step rolls the whole transaction
back, so parked rows never persist; repair_stuck_positions() cleans up
rows left behind by anything that bypassed this path.
"""

from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ladder.constants import LadderConstants
from ladder.database.models import LadderChangeReason, LadderHistory, LadderPosition, User
from ladder.operations.admin_operations import AdminOperations
from ladder.operations.base import OperationsBase
from ladder.operations.season_operations import load_season
from ladder.utils import positions as position_math
from ladder.utils.exceptions import ConsistencyError, NotFoundError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class LadderOperations(OperationsBase):
    """
    Service class for ladder position maintenance.

    Insert, remove and move are admin actions; promote and rollback are
    driven by match results and dispute resolution and normally run inside
    the caller's session.
    """

    def __init__(self, db, admin_ops: Optional[AdminOperations] = None):
        """
        Initialize LadderOperations with database connection.

        Args:
            db: Database instance for persistence
            admin_ops: Admin checks for the admin-only operations
        """
        super().__init__(db)
        self.admin_ops = admin_ops or AdminOperations(db)
        self.logger = logger

    # Reads

    async def get_ladder(self, season_id: int, session: Optional[AsyncSession] = None) -> List[LadderPosition]:
        """Active ladder rows ordered from position 1, with users loaded"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(LadderPosition)
                .options(selectinload(LadderPosition.user))
                .where(
                    LadderPosition.season_id == season_id,
                    LadderPosition.is_active == True
                )
                .order_by(LadderPosition.position)
            )
            return list(result.scalars().all())

    async def get_position(self, season_id: int, user_id: int,
                           session: Optional[AsyncSession] = None) -> Optional[int]:
        """Current position of a user, or None when they are not on the ladder"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(LadderPosition.position).where(
                    LadderPosition.season_id == season_id,
                    LadderPosition.user_id == user_id,
                    LadderPosition.is_active == True
                )
            )
            return result.scalar_one_or_none()

    # Internal helpers

    async def _load_active_rows(self, session: AsyncSession, season_id: int,
                                require_dense: bool = True) -> Dict[int, LadderPosition]:
        """Lock and load the season's active rows keyed by user id"""
        result = await session.execute(
            select(LadderPosition)
            .where(
                LadderPosition.season_id == season_id,
                LadderPosition.is_active == True
            )
            .order_by(LadderPosition.position)
            .with_for_update()
        )
        rows = {row.user_id: row for row in result.scalars().all()}
        if require_dense:
            position_math.validate_dense(self._snapshot(rows))
        return rows

    @staticmethod
    def _snapshot(rows: Dict[int, LadderPosition]) -> position_math.Positions:
        return {user_id: row.position for user_id, row in rows.items()}

    async def _apply(self, session: AsyncSession, rows: Dict[int, LadderPosition],
                     updated: position_math.Positions) -> Dict[int, tuple]:
        """
        Write a computed arrangement back to the loaded rows.

        Returns:
            user_id -> (old, new) for every row that moved
        """
        changes = position_math.changed_entries(self._snapshot(rows), updated)
        if not changes:
            return changes

        # Park first so no intermediate state collides on the unique index
        for user_id in changes:
            rows[user_id].position = LadderConstants.SENTINEL_POSITION
        await session.flush()

        for user_id, (_, new_position) in changes.items():
            rows[user_id].position = new_position
        await session.flush()
        return changes

    async def _record_history(
        self,
        session: AsyncSession,
        season_id: int,
        user_id: int,
        previous_position: Optional[int],
        new_position: Optional[int],
        reason: LadderChangeReason,
        match_id: Optional[int] = None
    ) -> None:
        """
        Append an audit record in its own savepoint.

        A failed write is logged and only the savepoint is rolled back, so the
        ladder change itself still commits.
        """
        await session.flush()
        try:
            async with session.begin_nested():
                session.add(LadderHistory(
                    season_id=season_id,
                    user_id=user_id,
                    previous_position=previous_position,
                    new_position=new_position,
                    change_reason=reason,
                    match_id=match_id
                ))
                await session.flush()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Failed to record ladder history for user {user_id} in season {season_id}: {e}"
            )

    async def _position_before_match(self, session: AsyncSession, season_id: int, user_id: int,
                                     match_id: Optional[int]) -> Optional[int]:
        """Position a user held before the promotion recorded for match_id"""
        if match_id is None:
            return None
        result = await session.execute(
            select(LadderHistory.previous_position)
            .where(
                LadderHistory.season_id == season_id,
                LadderHistory.user_id == user_id,
                LadderHistory.match_id == match_id,
                LadderHistory.change_reason == LadderChangeReason.MATCH_RESULT
            )
            .order_by(LadderHistory.id.desc())
        )
        return result.scalars().first()

    # Admin mutations

    async def insert_player(
        self,
        season_id: int,
        user_id: int,
        desired_position: int,
        admin_id: int,
        session: Optional[AsyncSession] = None
    ) -> LadderPosition:
        """
        Add a player to the ladder at desired_position.

        Everyone at or below that slot moves down one. Positions past the
        bottom are clamped to N+1.

        Raises:
            NotAuthorizedError: admin_id is not an admin
            NotFoundError: unknown season or user
            ValidationError: position below 1, or the player is already on the ladder
        """
        async def _insert(s: AsyncSession) -> LadderPosition:
            await self.admin_ops.require_admin(admin_id, session=s)
            await load_season(s, season_id)
            if await s.get(User, user_id) is None:
                raise NotFoundError("User", user_id)

            rows = await self._load_active_rows(s, season_id)
            updated = position_math.insert_player(self._snapshot(rows), user_id, desired_position)
            await self._apply(s, rows, updated)

            entry = LadderPosition(
                season_id=season_id,
                user_id=user_id,
                position=updated[user_id],
                is_active=True
            )
            s.add(entry)
            await s.flush()

            await self._record_history(s, season_id, user_id, None, entry.position,
                                       LadderChangeReason.PLAYER_JOINED)
            self.logger.info(
                f"User {user_id} inserted at position {entry.position} in season {season_id} "
                f"(requested {desired_position}, {len(updated)} players)"
            )
            return entry

        return await self._run_locked(season_id, _insert, session)

    async def remove_player(
        self,
        season_id: int,
        user_id: int,
        admin_id: int,
        session: Optional[AsyncSession] = None
    ) -> LadderPosition:
        """
        Take a player off the ladder.

        The row is soft-deleted and keeps its last position; everyone below
        moves up one.
        """
        async def _remove(s: AsyncSession) -> LadderPosition:
            await self.admin_ops.require_admin(admin_id, session=s)
            rows = await self._load_active_rows(s, season_id)
            if user_id not in rows:
                raise NotFoundError("Ladder entry", user_id)

            entry = rows.pop(user_id)
            updated = position_math.remove_player(
                {**self._snapshot(rows), user_id: entry.position}, user_id
            )
            entry.is_active = False
            await s.flush()
            await self._apply(s, rows, updated)

            await self._record_history(s, season_id, user_id, entry.position, None,
                                       LadderChangeReason.PLAYER_WITHDREW)
            self.logger.info(
                f"User {user_id} removed from position {entry.position} in season {season_id}"
            )
            return entry

        return await self._run_locked(season_id, _remove, session)

    async def move_player(
        self,
        season_id: int,
        user_id: int,
        new_position: int,
        admin_id: int,
        session: Optional[AsyncSession] = None
    ) -> LadderPosition:
        """Admin adjustment: move a player to new_position (clamped to the bottom)"""
        async def _move(s: AsyncSession) -> LadderPosition:
            await self.admin_ops.require_admin(admin_id, session=s)
            rows = await self._load_active_rows(s, season_id)
            if user_id not in rows:
                raise NotFoundError("Ladder entry", user_id)

            previous_position = rows[user_id].position
            updated = position_math.move_player(self._snapshot(rows), user_id, new_position)
            changes = await self._apply(s, rows, updated)

            if changes:
                await self._record_history(s, season_id, user_id, previous_position, updated[user_id],
                                           LadderChangeReason.ADMIN_ADJUSTMENT)
                self.logger.info(
                    f"Admin {admin_id} moved user {user_id} from {previous_position} "
                    f"to {updated[user_id]} in season {season_id}"
                )
            return rows[user_id]

        return await self._run_locked(season_id, _move, session)

    # Match-driven mutations

    async def _load_pair(self, s: AsyncSession, season_id: int, first_id: int,
                         second_id: int) -> Dict[int, LadderPosition]:
        rows = await self._load_active_rows(s, season_id)
        found = [user_id for user_id in (first_id, second_id) if user_id in rows]
        if first_id == second_id or len(found) != 2:
            raise ConsistencyError(
                f"Expected 2 active ladder rows for users {first_id} and {second_id} "
                f"in season {season_id}, found {len(found)}"
            )
        return rows

    async def promote(
        self,
        season_id: int,
        winner_id: int,
        loser_id: int,
        match_id: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> bool:
        """
        Move a match winner into the loser's slot.

        The loser and everyone between them and the winner move down one.
        Nothing happens when the winner is already above the loser.

        Returns:
            True when the ladder changed

        Raises:
            ConsistencyError: the two players do not both hold active positions
        """
        async def _promote(s: AsyncSession) -> bool:
            rows = await self._load_pair(s, season_id, winner_id, loser_id)
            winner_position = rows[winner_id].position
            loser_position = rows[loser_id].position

            updated = position_math.promote_player(self._snapshot(rows), winner_id, loser_id)
            changes = await self._apply(s, rows, updated)
            if not changes:
                self.logger.debug(
                    f"No promotion: user {winner_id} at {winner_position} already above "
                    f"user {loser_id} at {loser_position}"
                )
                return False

            await self._record_history(s, season_id, winner_id, winner_position, loser_position,
                                       LadderChangeReason.MATCH_RESULT, match_id)
            self.logger.info(
                f"User {winner_id} promoted from {winner_position} to {loser_position} "
                f"over user {loser_id} in season {season_id}"
            )
            return True

        return await self._run_locked(season_id, _promote, session)

    async def rollback(
        self,
        season_id: int,
        promoted_id: int,
        demoted_id: int,
        match_id: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> bool:
        """
        Undo a promotion when a dispute reverses its result.

        With a match_id the promoted player returns to the position recorded
        in that match's history entry, and nothing happens when the match
        never promoted anyone. Without one they drop to the demoted player's
        current slot. The rows in between move up. Exact inverse of promote()
        only if no other ladder change happened in between.

        Returns:
            True when the ladder changed
        """
        async def _rollback(s: AsyncSession) -> bool:
            rows = await self._load_pair(s, season_id, promoted_id, demoted_id)
            promoted_position = rows[promoted_id].position
            demoted_position = rows[demoted_id].position
            original_position = await self._position_before_match(s, season_id, promoted_id, match_id)
            if match_id is not None and original_position is None:
                self.logger.warning(
                    f"Rollback skipped: match {match_id} recorded no promotion for user {promoted_id}"
                )
                return False

            updated = position_math.rollback_promotion(
                self._snapshot(rows), promoted_id, demoted_id, original_position
            )
            changes = await self._apply(s, rows, updated)
            if not changes:
                self.logger.warning(
                    f"Rollback skipped: user {promoted_id} at {promoted_position} is not above "
                    f"user {demoted_id} at {demoted_position}"
                )
                return False

            await self._record_history(s, season_id, promoted_id, promoted_position, updated[promoted_id],
                                       LadderChangeReason.ADMIN_ADJUSTMENT, match_id)
            self.logger.info(
                f"Promotion of user {promoted_id} rolled back from {promoted_position} "
                f"to {updated[promoted_id]} in season {season_id}"
            )
            return True

        return await self._run_locked(season_id, _rollback, session)

    # Maintenance

    async def repair_stuck_positions(
        self,
        season_id: int,
        admin_id: int,
        session: Optional[AsyncSession] = None
    ) -> int:
        """
        Reassign active rows stuck at the sentinel (or any non-positive position).

        Each stuck row takes the first gap in the positive sequence, or the
        slot past the end when there is none. Safe to run at any time.

        Returns:
            Number of rows repaired
        """
        async def _repair(s: AsyncSession) -> int:
            await self.admin_ops.require_admin(admin_id, session=s)
            rows = await self._load_active_rows(s, season_id, require_dense=False)

            stuck = sorted(
                (row for row in rows.values() if row.position < LadderConstants.TOP_POSITION),
                key=lambda row: row.id
            )
            if not stuck:
                return 0

            occupied = [row.position for row in rows.values() if row.position >= LadderConstants.TOP_POSITION]
            for row in stuck:
                previous_position = row.position
                row.position = position_math.first_open_position(occupied)
                occupied.append(row.position)
                await s.flush()
                await self._record_history(s, season_id, row.user_id, previous_position, row.position,
                                           LadderChangeReason.ADMIN_ADJUSTMENT)
                self.logger.warning(
                    f"Repaired user {row.user_id} in season {season_id}: "
                    f"{previous_position} -> {row.position}"
                )

            return len(stuck)

        return await self._run_locked(season_id, _repair, session)

    async def validate_ladder(self, season_id: int, session: Optional[AsyncSession] = None) -> bool:
        """True when the season's active positions are exactly 1..N"""
        ladder = await self.get_ladder(season_id, session=session)
        return position_math.is_dense({row.user_id: row.position for row in ladder})
