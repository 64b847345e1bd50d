"""
Ladder service facade.

Single entry point for the request layer. Every method takes the acting
user's id first and returns an ActionResult: business-rule violations become
the error's user-facing message, unexpected faults are logged and reported
generically, and transient database errors are retried first.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple

from ladder.database.database import Database
from ladder.operations.admin_operations import AdminOperations
from ladder.operations.challenge_operations import ChallengeOperations
from ladder.operations.dispute_operations import DisputeOperations
from ladder.operations.ladder_operations import LadderOperations
from ladder.operations.match_operations import MatchOperations
from ladder.operations.playoff_operations import PlayoffOperations
from ladder.operations.season_operations import SeasonOperations
from ladder.services.base import BaseService
from ladder.services.notifications import NotificationService
from ladder.utils.exceptions import LadderError, NotAuthenticatedError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)

UNEXPECTED_ERROR = "An unexpected error occurred"


@dataclass
class ActionResult:
    """Outcome of a facade call"""
    success: bool
    data: Any = None
    error: Optional[str] = None


class LadderService(BaseService):
    """Request-facing facade over the operations layer"""

    def __init__(self, db: Database, notifier: Optional[NotificationService] = None):
        super().__init__(db)
        self.logger = logger
        self.notifier = notifier or NotificationService()

        self.admin_ops = AdminOperations(db)
        self.season_ops = SeasonOperations(db, self.admin_ops)
        self.ladder_ops = LadderOperations(db, self.admin_ops)
        self.challenge_ops = ChallengeOperations(db, self.notifier)
        self.match_ops = MatchOperations(db, self.ladder_ops, self.notifier)
        self.dispute_ops = DisputeOperations(db, self.ladder_ops, self.admin_ops, self.notifier)
        self.playoff_ops = PlayoffOperations(db, self.admin_ops, self.notifier)

    async def _execute(self, user_id: Optional[int], action: str,
                       operation: Callable[[], Awaitable[Any]]) -> ActionResult:
        try:
            if user_id is None:
                raise NotAuthenticatedError()
            data = await self.execute_with_retry(operation)
            return ActionResult(success=True, data=data)
        except LadderError as e:
            self.logger.info(f"{action} by user {user_id} rejected: {e}")
            return ActionResult(success=False, error=e.user_message)
        except Exception:
            self.logger.exception(f"Unexpected error during {action} by user {user_id}")
            return ActionResult(success=False, error=UNEXPECTED_ERROR)

    # Seasons and admins

    async def create_season(self, user_id: Optional[int], name: str, start_date: datetime,
                            end_date: Optional[datetime] = None,
                            wildcards_per_player: Optional[int] = None) -> ActionResult:
        return await self._execute(user_id, "create_season", lambda: self.season_ops.create_season(
            user_id, name, start_date, end_date, wildcards_per_player
        ))

    async def activate_season(self, user_id: Optional[int], season_id: int, active: bool = True) -> ActionResult:
        return await self._execute(user_id, "activate_season",
                                   lambda: self.season_ops.activate_season(user_id, season_id, active))

    async def get_active_season(self, user_id: Optional[int]) -> ActionResult:
        return await self._execute(user_id, "get_active_season", self.season_ops.get_active_season)

    async def is_admin(self, user_id: Optional[int]) -> ActionResult:
        return await self._execute(user_id, "is_admin", lambda: self.admin_ops.is_admin(user_id))

    async def grant_admin(self, user_id: Optional[int], target_user_id: int) -> ActionResult:
        return await self._execute(user_id, "grant_admin",
                                   lambda: self.admin_ops.grant_admin(target_user_id, granted_by=user_id))

    # Ladder

    async def get_ladder(self, user_id: Optional[int], season_id: int) -> ActionResult:
        return await self._execute(user_id, "get_ladder", lambda: self.ladder_ops.get_ladder(season_id))

    async def add_player(self, user_id: Optional[int], season_id: int, player_id: int,
                         position: int) -> ActionResult:
        return await self._execute(user_id, "add_player", lambda: self.ladder_ops.insert_player(
            season_id, player_id, position, admin_id=user_id
        ))

    async def remove_player(self, user_id: Optional[int], season_id: int, player_id: int) -> ActionResult:
        return await self._execute(user_id, "remove_player", lambda: self.ladder_ops.remove_player(
            season_id, player_id, admin_id=user_id
        ))

    async def move_player(self, user_id: Optional[int], season_id: int, player_id: int,
                          new_position: int) -> ActionResult:
        return await self._execute(user_id, "move_player", lambda: self.ladder_ops.move_player(
            season_id, player_id, new_position, admin_id=user_id
        ))

    async def repair_positions(self, user_id: Optional[int], season_id: int) -> ActionResult:
        return await self._execute(user_id, "repair_positions",
                                   lambda: self.ladder_ops.repair_stuck_positions(season_id, admin_id=user_id))

    # Challenges

    async def create_challenge(self, user_id: Optional[int], season_id: int, challenged_id: int,
                               proposed_date: datetime, proposed_location: str,
                               is_wildcard: bool = False) -> ActionResult:
        return await self._execute(user_id, "create_challenge", lambda: self.challenge_ops.create_challenge(
            season_id, user_id, challenged_id, proposed_date, proposed_location, is_wildcard
        ))

    async def accept_challenge(self, user_id: Optional[int], challenge_id: int,
                               accepted_date: Optional[datetime] = None,
                               accepted_location: Optional[str] = None) -> ActionResult:
        return await self._execute(user_id, "accept_challenge", lambda: self.challenge_ops.accept_challenge(
            challenge_id, user_id, accepted_date, accepted_location
        ))

    async def reject_challenge(self, user_id: Optional[int], challenge_id: int) -> ActionResult:
        return await self._execute(user_id, "reject_challenge",
                                   lambda: self.challenge_ops.reject_challenge(challenge_id, user_id))

    async def withdraw_challenge(self, user_id: Optional[int], challenge_id: int) -> ActionResult:
        return await self._execute(user_id, "withdraw_challenge",
                                   lambda: self.challenge_ops.withdraw_challenge(challenge_id, user_id))

    async def get_challenges(self, user_id: Optional[int], season_id: int) -> ActionResult:
        return await self._execute(user_id, "get_challenges",
                                   lambda: self.challenge_ops.get_challenges_for_user(season_id, user_id))

    async def get_wildcards_remaining(self, user_id: Optional[int], season_id: int) -> ActionResult:
        return await self._execute(user_id, "get_wildcards_remaining",
                                   lambda: self.challenge_ops.get_wildcards_remaining(season_id, user_id))

    # Matches and disputes

    async def get_matches(self, user_id: Optional[int], season_id: int) -> ActionResult:
        return await self._execute(user_id, "get_matches",
                                   lambda: self.match_ops.get_matches_for_user(season_id, user_id))

    async def submit_score(self, user_id: Optional[int], match_id: int,
                           sets: Sequence[Tuple[int, int]], final_set_type=None) -> ActionResult:
        """Record a result; a completed playoff match also advances the bracket"""
        async def _submit():
            season_id = (await self.match_ops.get_match(match_id)).season_id
            async with self.db.ladder_transaction(season_id) as session:
                match = await self.match_ops.submit_score(
                    match_id, user_id, sets, final_set_type, session=session
                )
                if match.match_type.is_playoff:
                    await self.playoff_ops.progress_to_next_round(match.id, session=session)
                return match

        return await self._execute(user_id, "submit_score", _submit)

    async def dispute_match(self, user_id: Optional[int], match_id: int) -> ActionResult:
        return await self._execute(user_id, "dispute_match",
                                   lambda: self.dispute_ops.dispute_match(match_id, user_id))

    async def resolve_dispute(self, user_id: Optional[int], match_id: int, action,
                              sets: Optional[Sequence[Tuple[int, int]]] = None, final_set_type=None,
                              new_winner_id: Optional[int] = None) -> ActionResult:
        return await self._execute(user_id, "resolve_dispute", lambda: self.dispute_ops.resolve_dispute(
            match_id, user_id, action, sets, final_set_type, new_winner_id
        ))

    async def get_disputed_matches(self, user_id: Optional[int], season_id: Optional[int] = None) -> ActionResult:
        return await self._execute(user_id, "get_disputed_matches",
                                   lambda: self.dispute_ops.get_disputed_matches(user_id, season_id))

    # Playoffs

    async def start_playoffs(self, user_id: Optional[int], season_id: int, playoff_format) -> ActionResult:
        return await self._execute(user_id, "start_playoffs",
                                   lambda: self.playoff_ops.start_playoffs(season_id, user_id, playoff_format))

    async def get_bracket(self, user_id: Optional[int], season_id: int) -> ActionResult:
        return await self._execute(user_id, "get_bracket", lambda: self.playoff_ops.get_bracket(season_id))

    async def reset_playoffs(self, user_id: Optional[int], season_id: int) -> ActionResult:
        return await self._execute(user_id, "reset_playoffs",
                                   lambda: self.playoff_ops.reset_playoffs(season_id, user_id))
