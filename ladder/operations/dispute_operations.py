"""
Dispute Operations

A player can dispute a completed match; an admin then either confirms the
recorded result or reverses it with a full replacement score. Reversing a
challenge match that changes the winner undoes the original promotion (when
the challenger had won) and applies a fresh one (when the challenger wins
now), both inside one transaction.
"""

from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.database.models import Challenge, DisputeAction, Match, MatchType, NotificationType
from ladder.operations.admin_operations import AdminOperations
from ladder.operations.base import OperationsBase
from ladder.operations.ladder_operations import LadderOperations
from ladder.operations.match_operations import coerce_final_set_type, winner_from_sets
from ladder.services.notifications import NotificationService
from ladder.utils.exceptions import (
    InvalidStateError, NotAuthorizedError, NotFoundError, ValidationError
)
from ladder.utils.logger import setup_logger
from ladder.utils.scores import format_score

logger = setup_logger(__name__)


class DisputeOperations(OperationsBase):

    def __init__(
        self,
        db,
        ladder_ops: Optional[LadderOperations] = None,
        admin_ops: Optional[AdminOperations] = None,
        notifier: Optional[NotificationService] = None
    ):
        super().__init__(db)
        self.admin_ops = admin_ops or AdminOperations(db)
        self.ladder_ops = ladder_ops or LadderOperations(db, self.admin_ops)
        self.notifier = notifier or NotificationService()
        self.logger = logger

    async def _load_match(self, session: AsyncSession, match_id: int) -> Match:
        match = await session.get(Match, match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        return match

    async def dispute_match(self, match_id: int, user_id: int,
                            session: Optional[AsyncSession] = None) -> Match:
        """Flag a completed match as disputed; only its players may do so"""
        season_id = await self._season_id_for(Match, match_id, "Match", session)

        async def _dispute(s: AsyncSession) -> Match:
            match = await self._load_match(s, match_id)
            if not match.involves(user_id):
                raise NotAuthorizedError(
                    f"User {user_id} did not play match {match_id}",
                    "You are not authorized to dispute this match"
                )
            if not match.is_complete:
                raise InvalidStateError(
                    f"Match {match_id} has no result",
                    "Cannot dispute a match that has not been completed"
                )
            if match.is_disputed:
                raise InvalidStateError(
                    f"Match {match_id} already disputed",
                    "This match is already disputed"
                )

            match.is_disputed = True
            match.disputed_by_user_id = user_id
            await s.flush()
            self.logger.info(f"Match {match_id} disputed by user {user_id}")

            opponent_id = match.player2_id if user_id == match.player1_id else match.player1_id
            self.db.after_commit(s, lambda: self.notifier.notify(
                opponent_id,
                NotificationType.SCORE_DISPUTED,
                "Match result disputed",
                f"Your opponent disputed the result of match #{match.id}. An admin will review it.",
                related_challenge_id=match.challenge_id,
                related_match_id=match.id
            ))
            return match

        return await self._run_locked(season_id, _dispute, session)

    async def resolve_dispute(
        self,
        match_id: int,
        admin_id: int,
        action,
        raw_sets: Optional[Sequence[Tuple[int, int]]] = None,
        final_set_type=None,
        new_winner_id: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> Match:
        """
        Settle a disputed match.

        Args:
            match_id: Disputed match
            admin_id: Resolving admin
            action: DisputeAction (or its value); confirm keeps the result,
                reverse replaces it
            raw_sets: Replacement scores, required for reverse
            final_set_type: How a replacement third set was played
            new_winner_id: Optional expected winner, must agree with raw_sets
            session: Optional existing database session

        Raises:
            NotAuthorizedError: admin_id is not an admin
            InvalidStateError: Match is not disputed, or a playoff reversal
                would change who advanced
            ValidationError: Unknown action or bad replacement scores
            ConsistencyError: The ladder no longer holds both players
        """
        try:
            action = DisputeAction(getattr(action, 'value', action))
        except ValueError:
            raise ValidationError(f"Unknown dispute action {action!r}", "Action must be confirm or reverse")
        final_set_type = coerce_final_set_type(final_set_type)
        if action == DisputeAction.REVERSE and not raw_sets:
            raise ValidationError(
                "Reverse without replacement scores",
                "Enter the corrected scores to reverse a result"
            )

        season_id = await self._season_id_for(Match, match_id, "Match", session)

        async def _resolve(s: AsyncSession) -> Match:
            admin = await self.admin_ops.require_admin(admin_id, session=s)
            match = await self._load_match(s, match_id)
            if not match.is_disputed:
                raise InvalidStateError(
                    f"Match {match_id} is not disputed",
                    "This match is not disputed"
                )

            if action == DisputeAction.REVERSE:
                await self._reverse(s, match, raw_sets, final_set_type, new_winner_id)

            match.is_disputed = False
            match.dispute_resolved_by_admin_id = admin.id if admin is not None else None
            await s.flush()

            self.logger.info(
                f"Dispute on match {match_id} resolved ({action.value}) by admin {admin_id}, "
                f"winner {match.winner_id}"
            )

            outcome = "confirmed" if action == DisputeAction.CONFIRM else f"changed to {format_score(match.sets)}"
            self.db.after_commit(s, lambda: self.notifier.notify_many(
                [match.player1_id, match.player2_id],
                NotificationType.DISPUTE_RESOLVED,
                "Dispute resolved",
                f"The result of match #{match.id} was {outcome}",
                related_challenge_id=match.challenge_id,
                related_match_id=match.id
            ))
            return match

        return await self._run_locked(season_id, _resolve, session)

    async def _reverse(self, s: AsyncSession, match: Match, raw_sets, final_set_type,
                       new_winner_id: Optional[int]) -> None:
        sets, computed_winner_id = winner_from_sets(match, raw_sets)
        if new_winner_id is not None and new_winner_id != computed_winner_id:
            raise ValidationError(
                f"Declared winner {new_winner_id} disagrees with scores (winner {computed_winner_id})",
                "The selected winner does not match the scores entered"
            )

        old_winner_id = match.winner_id
        winner_changed = old_winner_id != computed_winner_id

        if winner_changed and match.match_type.is_playoff:
            raise InvalidStateError(
                f"Reversal would change the winner of playoff match {match.id}",
                "Playoff results that change the winner cannot be reversed. Reset the playoffs instead."
            )

        if winner_changed and match.match_type == MatchType.CHALLENGE and match.challenge_id is not None:
            challenge = await s.get(Challenge, match.challenge_id)
            if challenge is not None:
                if old_winner_id == challenge.challenger_id:
                    await self.ladder_ops.rollback(
                        match.season_id, challenge.challenger_id, challenge.challenged_id,
                        match_id=match.id, session=s
                    )
                if computed_winner_id == challenge.challenger_id:
                    await self.ladder_ops.promote(
                        match.season_id, challenge.challenger_id, challenge.challenged_id,
                        match_id=match.id, session=s
                    )

        match.apply_sets(sets, final_set_type)
        match.winner_id = computed_winner_id
        self.logger.info(
            f"Match {match.id} reversed to {format_score(sets)}; winner {old_winner_id} -> {computed_winner_id}"
        )

    async def get_disputed_matches(self, admin_id: int, season_id: Optional[int] = None,
                                   session: Optional[AsyncSession] = None) -> List[Match]:
        """Open disputes, oldest first; admin only"""
        async with self._get_session_context(session) as s:
            await self.admin_ops.require_admin(admin_id, session=s)
            query = select(Match).where(Match.is_disputed == True)
            if season_id is not None:
                query = query.where(Match.season_id == season_id)
            result = await s.execute(query.order_by(Match.completed_at, Match.id))
            return list(result.scalars().all())
