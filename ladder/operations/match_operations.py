"""
Match Operations - score submission and winner determination.

Submitting the score of a challenge match completes the challenge and,
when the challenger won, promotes them into the challenged player's slot.
A defender who wins keeps their position and nobody moves.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.database.models import (
    Challenge, ChallengeStatus, FinalSetType, Match, MatchType, NotificationType
)
from ladder.operations.base import OperationsBase
from ladder.operations.ladder_operations import LadderOperations
from ladder.services.notifications import NotificationService
from ladder.utils.exceptions import (
    ConsistencyError, InvalidStateError, NotAuthorizedError, NotFoundError, ValidationError
)
from ladder.utils.logger import setup_logger
from ladder.utils.scores import WinnerSide, calculate_winner, format_score, parse_sets

logger = setup_logger(__name__)


def coerce_final_set_type(final_set_type) -> Optional[FinalSetType]:
    """Accept a FinalSetType, its string value, or None"""
    if final_set_type is None or isinstance(final_set_type, FinalSetType):
        return final_set_type
    try:
        return FinalSetType(final_set_type)
    except ValueError:
        raise ValidationError(
            f"Unknown final set type {final_set_type!r}",
            "Final set type must be tiebreak or full_set"
        )


def winner_from_sets(match: Match, raw_sets: Sequence[Tuple[int, int]]):
    """
    Validate raw set scores for a match and work out who won.

    Returns:
        (parsed sets, winning user id)
    """
    sets = parse_sets(raw_sets)
    side = calculate_winner(sets)
    if side is None:
        raise ValidationError(
            "Scores do not produce a winner",
            "Invalid score - match must have a winner"
        )
    winner_id = match.player1_id if side == WinnerSide.PLAYER1 else match.player2_id
    return sets, winner_id


class MatchOperations(OperationsBase):
    """Match lookups and result recording"""

    def __init__(self, db, ladder_ops: Optional[LadderOperations] = None,
                 notifier: Optional[NotificationService] = None):
        super().__init__(db)
        self.ladder_ops = ladder_ops or LadderOperations(db)
        self.notifier = notifier or NotificationService()
        self.logger = logger

    async def get_match(self, match_id: int, session: Optional[AsyncSession] = None) -> Match:
        async with self._get_session_context(session) as s:
            match = await s.get(Match, match_id)
            if match is None:
                raise NotFoundError("Match", match_id)
            return match

    async def get_matches_for_user(self, season_id: int, user_id: int,
                                   session: Optional[AsyncSession] = None) -> List[Match]:
        """All of a user's matches in a season, newest first"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Match)
                .where(
                    Match.season_id == season_id,
                    or_(Match.player1_id == user_id, Match.player2_id == user_id)
                )
                .order_by(Match.id.desc())
            )
            return list(result.scalars().all())

    async def submit_score(
        self,
        match_id: int,
        user_id: int,
        raw_sets: Sequence[Tuple[int, int]],
        final_set_type=None,
        session: Optional[AsyncSession] = None
    ) -> Match:
        """
        Record the result of a match.

        Args:
            match_id: Match being reported
            user_id: Reporting player, must be one of the two players
            raw_sets: (player1 games, player2 games) per set, two or three sets
            final_set_type: How a third set was played, tiebreak or full_set
            session: Optional existing database session

        Returns:
            The completed match

        Raises:
            NotAuthorizedError: Reporter did not play the match
            InvalidStateError: Match already has a result, or its challenge was withdrawn
            ValidationError: Malformed scores or no two-set winner
        """
        final_set_type = coerce_final_set_type(final_set_type)
        season_id = await self._season_id_for(Match, match_id, "Match", session)

        async def _submit(s: AsyncSession) -> Match:
            match = await self.get_match(match_id, session=s)
            if not match.involves(user_id):
                raise NotAuthorizedError(
                    f"User {user_id} did not play match {match_id}",
                    "You are not authorized to submit scores for this match"
                )
            if match.is_complete:
                raise InvalidStateError(
                    f"Match {match_id} already complete",
                    "This match has already been completed"
                )

            challenge = None
            if match.match_type == MatchType.CHALLENGE and match.challenge_id is not None:
                challenge = await s.get(Challenge, match.challenge_id)
                if challenge is not None and challenge.status != ChallengeStatus.ACCEPTED:
                    raise InvalidStateError(
                        f"Challenge {challenge.id} is {challenge.status.value}",
                        "This challenge is no longer active"
                    )

            sets, winner_id = winner_from_sets(match, raw_sets)
            now = datetime.now(timezone.utc)

            match.apply_sets(sets, final_set_type)
            match.winner_id = winner_id
            match.submitted_by_user_id = user_id
            match.completed_at = now

            if challenge is not None:
                challenge.status = ChallengeStatus.COMPLETED
                challenge.completed_at = now
            await s.flush()

            self.logger.info(
                f"Match {match_id} result {format_score(sets)} submitted by {user_id}, winner {winner_id}"
            )

            if challenge is not None and winner_id == challenge.challenger_id:
                try:
                    await self.ladder_ops.promote(
                        match.season_id, winner_id, challenge.challenged_id,
                        match_id=match.id, session=s
                    )
                except ConsistencyError as e:
                    # Score stands; an admin can fix the ladder by hand
                    self.logger.warning(f"Match {match_id} result kept without promotion: {e}")

            self.db.after_commit(s, lambda: self.notifier.notify_many(
                [match.player1_id, match.player2_id],
                NotificationType.SCORE_SUBMITTED,
                "Match result recorded",
                f"Result {format_score(sets)} was submitted for match #{match.id}",
                related_challenge_id=match.challenge_id,
                related_match_id=match.id
            ))
            return match

        return await self._run_locked(season_id, _submit, session)
