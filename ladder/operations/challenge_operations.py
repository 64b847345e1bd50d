"""
Challenge Operations

Handles challenge eligibility and the challenge state machine:

    pending  -> accepted | withdrawn (challenger) | cancelled (challenged rejects)
    accepted -> completed (score submitted) | withdrawn (challenger)

Accepting a challenge creates its Match row in the same transaction. A
player may be part of at most one pending or accepted challenge at a time.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config import Config
from ladder.database.models import (
    Challenge, ChallengeStatus, LadderPosition, Match, MatchType,
    NotificationType, SeasonStatus, WildcardUsage
)
from ladder.operations.base import OperationsBase
from ladder.operations.season_operations import load_season
from ladder.services.notifications import NotificationService
from ladder.utils.exceptions import (
    InvalidStateError, NotAuthorizedError, NotFoundError, ValidationError
)
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class ChallengeRules:
    """Eligibility rules gating challenge creation"""

    @staticmethod
    def can_challenge(
        challenger_position: int,
        challenged_position: int,
        is_wildcard: bool,
        wildcards_remaining: int,
        max_positions: Optional[int] = None
    ) -> bool:
        """
        Normal challenges reach up to max_positions slots above the challenger.
        A wildcard reaches anyone else on the ladder while the budget lasts.
        """
        if is_wildcard:
            return challenged_position != challenger_position and wildcards_remaining > 0

        if max_positions is None:
            max_positions = Config.MAX_POSITIONS_TO_CHALLENGE
        return 0 < challenger_position - challenged_position <= max_positions

    @classmethod
    def check(cls, challenger_position: int, challenged_position: int, is_wildcard: bool,
              wildcards_remaining: int) -> None:
        """Raise ValidationError with the reason a challenge is not allowed"""
        if cls.can_challenge(challenger_position, challenged_position, is_wildcard, wildcards_remaining):
            return

        if is_wildcard:
            if wildcards_remaining <= 0:
                raise ValidationError(
                    "No wildcards remaining",
                    "You have no wildcards remaining this season"
                )
            raise ValidationError("Wildcard target holds the challenger's position")

        raise ValidationError(
            f"Position {challenger_position} cannot challenge position {challenged_position}",
            f"You can only challenge players 1-{Config.MAX_POSITIONS_TO_CHALLENGE} positions above you "
            f"(use a wildcard to challenge others)"
        )


@dataclass
class ChallengeAcceptanceResult:
    """Result of challenge acceptance"""
    challenge: Challenge
    match: Match


class ChallengeOperations(OperationsBase):
    """
    Service class for challenge-related operations.

    Every mutation runs under the season's lock and transaction; notifications
    are sent once that transaction commits and never fail the operation.
    """

    def __init__(self, db, notifier: Optional[NotificationService] = None):
        """
        Initialize ChallengeOperations with database connection.

        Args:
            db: Database instance for persistence
            notifier: Notification collaborator, defaults to the configured service
        """
        super().__init__(db)
        self.notifier = notifier or NotificationService()
        self.logger = setup_logger(f"{__name__}.ChallengeOperations")

    # Queries

    async def _load_challenge(self, session: AsyncSession, challenge_id: int) -> Challenge:
        challenge = await session.get(Challenge, challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge", challenge_id)
        return challenge

    async def _position_of(self, session: AsyncSession, season_id: int, user_id: int) -> Optional[int]:
        result = await session.execute(
            select(LadderPosition.position).where(
                LadderPosition.season_id == season_id,
                LadderPosition.user_id == user_id,
                LadderPosition.is_active == True
            )
        )
        return result.scalar_one_or_none()

    async def get_active_challenge(self, season_id: int, user_id: int,
                                   session: Optional[AsyncSession] = None) -> Optional[Challenge]:
        """The pending or accepted challenge a user is part of, if any"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Challenge)
                .where(
                    Challenge.season_id == season_id,
                    Challenge.status.in_(ChallengeStatus.active_statuses()),
                    or_(Challenge.challenger_id == user_id, Challenge.challenged_id == user_id)
                )
                .order_by(Challenge.id.desc())
            )
            return result.scalars().first()

    async def get_challenges_for_user(self, season_id: int, user_id: int,
                                      session: Optional[AsyncSession] = None) -> List[Challenge]:
        """Every challenge a user sent or received this season, newest first"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Challenge)
                .where(
                    Challenge.season_id == season_id,
                    or_(Challenge.challenger_id == user_id, Challenge.challenged_id == user_id)
                )
                .order_by(Challenge.created_at.desc(), Challenge.id.desc())
            )
            return list(result.scalars().all())

    async def get_wildcards_remaining(self, season_id: int, user_id: int,
                                      session: Optional[AsyncSession] = None) -> Tuple[int, int]:
        """
        Wildcard budget for a player.

        Returns:
            (remaining, total) where total is the season's wildcards per player
        """
        async with self._get_session_context(session) as s:
            season = await load_season(s, season_id)
            used = await s.scalar(
                select(func.count(WildcardUsage.id)).where(
                    WildcardUsage.season_id == season_id,
                    WildcardUsage.user_id == user_id
                )
            )
            total = season.wildcards_per_player
            return max(total - (used or 0), 0), total

    # Mutations

    async def create_challenge(
        self,
        season_id: int,
        challenger_id: int,
        challenged_id: int,
        proposed_date: datetime,
        proposed_location: str,
        is_wildcard: bool = False,
        session: Optional[AsyncSession] = None
    ) -> Challenge:
        """
        Create a pending challenge.

        Raises:
            NotFoundError: Unknown season
            InvalidStateError: Season is not accepting challenges
            ValidationError: Ineligible target, no wildcards left, or either
                player already has an active challenge
        """
        if challenger_id == challenged_id:
            raise ValidationError("Self challenge", "You cannot challenge yourself")
        if not proposed_location or not proposed_location.strip():
            raise ValidationError("Missing location", "A proposed location is required")

        async def _create(s: AsyncSession) -> Challenge:
            season = await load_season(s, season_id)
            if season.status != SeasonStatus.ACTIVE:
                raise InvalidStateError(
                    f"Season {season_id} is {season.status.value}",
                    "Challenges are closed for this season"
                )

            challenger_position = await self._position_of(s, season_id, challenger_id)
            if challenger_position is None:
                raise ValidationError(
                    f"User {challenger_id} not on ladder",
                    "You must be on the ladder to create a challenge"
                )
            challenged_position = await self._position_of(s, season_id, challenged_id)
            if challenged_position is None:
                raise ValidationError(
                    f"User {challenged_id} not on ladder",
                    "Challenged player is not on the ladder"
                )

            remaining, _ = await self.get_wildcards_remaining(season_id, challenger_id, session=s)
            ChallengeRules.check(challenger_position, challenged_position, is_wildcard, remaining)

            if await self.get_active_challenge(season_id, challenger_id, session=s):
                raise ValidationError(
                    f"User {challenger_id} already has an active challenge",
                    "You already have an active challenge. Complete or withdraw it first."
                )
            if await self.get_active_challenge(season_id, challenged_id, session=s):
                raise ValidationError(
                    f"User {challenged_id} already has an active challenge",
                    "The challenged player already has an active challenge"
                )

            challenge = Challenge(
                season_id=season_id,
                challenger_id=challenger_id,
                challenged_id=challenged_id,
                is_wildcard=is_wildcard,
                status=ChallengeStatus.PENDING,
                proposed_date=proposed_date,
                proposed_location=proposed_location.strip()
            )
            s.add(challenge)
            await s.flush()  # Get challenge ID

            if is_wildcard:
                await self._record_wildcard(s, season_id, challenger_id, challenge.id)

            self.logger.info(
                f"Challenge {challenge.id}: {challenger_id} (#{challenger_position}) -> "
                f"{challenged_id} (#{challenged_position}){' [wildcard]' if is_wildcard else ''}"
            )
            self.db.after_commit(s, lambda: self.notifier.notify(
                challenged_id,
                NotificationType.CHALLENGE_RECEIVED,
                "New challenge",
                f"You have been challenged{' (wildcard)' if is_wildcard else ''} "
                f"for {proposed_date:%Y-%m-%d %H:%M} at {challenge.proposed_location}",
                related_challenge_id=challenge.id
            ))
            return challenge

        return await self._run_locked(season_id, _create, session)

    async def _record_wildcard(self, session: AsyncSession, season_id: int, user_id: int,
                               challenge_id: int) -> None:
        """Bookkeeping only; a failed write is logged and the challenge stands"""
        try:
            async with session.begin_nested():
                session.add(WildcardUsage(season_id=season_id, user_id=user_id, challenge_id=challenge_id))
                await session.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error recording wildcard usage for challenge {challenge_id}: {e}")

    async def accept_challenge(
        self,
        challenge_id: int,
        user_id: int,
        accepted_date: Optional[datetime] = None,
        accepted_location: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> ChallengeAcceptanceResult:
        """
        Accept a pending challenge and create its match.

        The accepted date and location default to the proposed ones.
        """
        season_id = await self._season_id_for(Challenge, challenge_id, "Challenge", session)

        async def _accept(s: AsyncSession) -> ChallengeAcceptanceResult:
            challenge = await self._load_challenge(s, challenge_id)
            if challenge.challenged_id != user_id:
                raise NotAuthorizedError(
                    f"User {user_id} cannot accept challenge {challenge_id}",
                    "You are not authorized to accept this challenge"
                )
            if challenge.status != ChallengeStatus.PENDING:
                raise InvalidStateError(
                    f"Challenge {challenge_id} is {challenge.status.value}",
                    "This challenge is no longer pending"
                )

            challenge.status = ChallengeStatus.ACCEPTED
            challenge.accepted_date = accepted_date or challenge.proposed_date
            challenge.accepted_location = (accepted_location or challenge.proposed_location).strip()

            match = Match(
                challenge_id=challenge.id,
                season_id=challenge.season_id,
                player1_id=challenge.challenger_id,
                player2_id=challenge.challenged_id,
                match_type=MatchType.CHALLENGE,
                match_date=challenge.accepted_date,
                location=challenge.accepted_location
            )
            s.add(match)
            await s.flush()

            self.logger.info(f"Challenge {challenge_id} accepted - Match {match.id} created")
            self.db.after_commit(s, lambda: self.notifier.notify(
                challenge.challenger_id,
                NotificationType.CHALLENGE_ACCEPTED,
                "Challenge accepted",
                f"Your challenge was accepted for {challenge.accepted_date:%Y-%m-%d %H:%M} "
                f"at {challenge.accepted_location}",
                related_challenge_id=challenge_id,
                related_match_id=match.id
            ))
            return ChallengeAcceptanceResult(challenge=challenge, match=match)

        return await self._run_locked(season_id, _accept, session)

    async def reject_challenge(self, challenge_id: int, user_id: int,
                               session: Optional[AsyncSession] = None) -> Challenge:
        """Challenged player declines a pending challenge; it ends cancelled"""
        season_id = await self._season_id_for(Challenge, challenge_id, "Challenge", session)

        async def _reject(s: AsyncSession) -> Challenge:
            challenge = await self._load_challenge(s, challenge_id)
            if challenge.challenged_id != user_id:
                raise NotAuthorizedError(
                    f"User {user_id} cannot reject challenge {challenge_id}",
                    "You are not authorized to reject this challenge"
                )
            if challenge.status != ChallengeStatus.PENDING:
                raise InvalidStateError(
                    f"Challenge {challenge_id} is {challenge.status.value}",
                    "This challenge is no longer pending"
                )

            challenge.status = ChallengeStatus.CANCELLED
            await s.flush()
            self.logger.info(f"Challenge {challenge_id} rejected by user {user_id}")
            self.db.after_commit(s, lambda: self.notifier.notify(
                challenge.challenger_id,
                NotificationType.CHALLENGE_REJECTED,
                "Challenge declined",
                "Your challenge was declined",
                related_challenge_id=challenge_id
            ))
            return challenge

        return await self._run_locked(season_id, _reject, session)

    async def withdraw_challenge(self, challenge_id: int, user_id: int,
                                 session: Optional[AsyncSession] = None) -> Challenge:
        """
        Challenger takes back a pending or accepted challenge.

        A match already created for an accepted challenge stays in place but
        can no longer receive a score.
        """
        season_id = await self._season_id_for(Challenge, challenge_id, "Challenge", session)

        async def _withdraw(s: AsyncSession) -> Challenge:
            challenge = await self._load_challenge(s, challenge_id)
            if challenge.challenger_id != user_id:
                raise NotAuthorizedError(
                    f"User {user_id} cannot withdraw challenge {challenge_id}",
                    "Only the challenger can withdraw a challenge"
                )
            if not challenge.is_active:
                raise InvalidStateError(
                    f"Challenge {challenge_id} is {challenge.status.value}",
                    "This challenge cannot be withdrawn"
                )

            challenge.status = ChallengeStatus.WITHDRAWN
            await s.flush()
            self.logger.info(f"Challenge {challenge_id} withdrawn by user {user_id}")
            self.db.after_commit(s, lambda: self.notifier.notify(
                challenge.challenged_id,
                NotificationType.CHALLENGE_WITHDRAWN,
                "Challenge withdrawn",
                "A challenge against you was withdrawn",
                related_challenge_id=challenge_id
            ))
            return challenge

        return await self._run_locked(season_id, _withdraw, session)
