"""
Playoff Operations - knockout bracket lifecycle for a season.

The bracket itself lives in PlayoffBracket.bracket_data and is driven by the
pure state machine in ladder.utils.bracket. This module persists it, creates
Match rows (round 1 when playoffs start, later rounds once both players are
known) and moves the season through active -> playoffs -> completed.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.constants import UIConstants
from ladder.database.models import (
    LadderPosition, Match, MatchType, NotificationType, PlayoffBracket,
    PlayoffFormat, Season, SeasonStatus
)
from ladder.operations.admin_operations import AdminOperations
from ladder.operations.base import OperationsBase
from ladder.operations.season_operations import load_season
from ladder.services.notifications import NotificationService
from ladder.utils import positions as position_math
from ladder.utils.bracket import (
    Advancement, BracketMatch, BracketState, advance, generate_bracket, match_type_for_round
)
from ladder.utils.exceptions import InvalidStateError, NotFoundError, ValidationError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class PlayoffOperations(OperationsBase):
    """
    Service class for playoff bracket operations.

    Starting and resetting playoffs are admin actions; progression runs once
    per completed playoff match.
    """

    def __init__(self, db, admin_ops: Optional[AdminOperations] = None,
                 notifier: Optional[NotificationService] = None):
        super().__init__(db)
        self.admin_ops = admin_ops or AdminOperations(db)
        self.notifier = notifier or NotificationService()
        self.logger = logger

    async def _load_bracket_row(self, session: AsyncSession, season_id: int) -> Optional[PlayoffBracket]:
        result = await session.execute(
            select(PlayoffBracket).where(PlayoffBracket.season_id == season_id)
        )
        return result.scalar_one_or_none()

    async def _require_bracket_row(self, session: AsyncSession, season_id: int) -> PlayoffBracket:
        row = await self._load_bracket_row(session, season_id)
        if row is None:
            raise NotFoundError("Playoff bracket", season_id)
        return row

    def _create_match(self, session: AsyncSession, season_id: int, round_number: int,
                      round_name: str, slot: BracketMatch) -> Match:
        match = Match(
            season_id=season_id,
            player1_id=slot.player1_id,
            player2_id=slot.player2_id,
            match_type=MatchType(match_type_for_round(round_name)),
            round_number=round_number,
            bracket_position=slot.position,
            player1_seed=slot.player1_seed,
            player2_seed=slot.player2_seed
        )
        session.add(match)
        return match

    async def start_playoffs(
        self,
        season_id: int,
        admin_id: int,
        playoff_format,
        session: Optional[AsyncSession] = None
    ) -> BracketState:
        """
        Seed the top of the ladder into a bracket and create the first round.

        Args:
            season_id: Season to run playoffs for
            admin_id: Acting admin
            playoff_format: PlayoffFormat or its value (final, semis, quarters)
            session: Optional existing database session

        Raises:
            InvalidStateError: Season is not active, or playoffs already exist
            ValidationError: Unknown format or not enough players on the ladder
            ConsistencyError: Ladder rows are stuck outside 1..N
        """
        try:
            playoff_format = PlayoffFormat(getattr(playoff_format, 'value', playoff_format))
        except ValueError:
            raise ValidationError(
                f"Unknown playoff format {playoff_format!r}",
                "Playoff format must be final, semis or quarters"
            )

        async def _start(s: AsyncSession) -> BracketState:
            await self.admin_ops.require_admin(admin_id, session=s)
            season = await load_season(s, season_id)
            if season.status != SeasonStatus.ACTIVE:
                raise InvalidStateError(
                    f"Season {season_id} is {season.status.value}",
                    "Season must be in active status to start playoffs"
                )
            if await self._load_bracket_row(s, season_id) is not None:
                raise InvalidStateError(
                    f"Season {season_id} already has a bracket",
                    "Playoffs have already been started for this season"
                )

            result = await s.execute(
                select(LadderPosition.user_id, LadderPosition.position)
                .where(
                    LadderPosition.season_id == season_id,
                    LadderPosition.is_active == True
                )
                .order_by(LadderPosition.position)
            )
            rows = result.all()
            # Stuck rows would sort ahead of position 1
            position_math.validate_dense({row.user_id: row.position for row in rows})
            bracket = generate_bracket(playoff_format, [row.user_id for row in rows])

            first_round = bracket.rounds[0]
            created = [
                (slot, self._create_match(s, season_id, 1, first_round.round_name, slot))
                for slot in first_round.matches
            ]
            await s.flush()
            for slot, match in created:
                slot.match_id = match.id

            s.add(PlayoffBracket(
                season_id=season_id,
                format=playoff_format,
                bracket_data=bracket.to_dict()
            ))

            season.status = SeasonStatus.PLAYOFFS
            season.playoff_format = playoff_format
            season.playoff_started_at = datetime.now(timezone.utc)
            await s.flush()

            self.logger.info(
                f"Playoffs ({playoff_format.value}) started for season {season_id} "
                f"with {len(created) * 2} players by admin {admin_id}"
            )
            participants = [
                player_id
                for slot in first_round.matches
                for player_id in (slot.player1_id, slot.player2_id)
            ]
            self.db.after_commit(s, lambda: self.notifier.notify_many(
                participants,
                NotificationType.PLAYOFF_STARTED,
                f"{UIConstants.TROPHY_EMOJI} Playoffs Have Started!",
                "The knockout playoffs have begun! Check your first match in the bracket."
            ))
            return bracket

        return await self._run_locked(season_id, _start, session)

    async def progress_to_next_round(self, match_id: int,
                                     session: Optional[AsyncSession] = None) -> Advancement:
        """
        Feed a completed playoff match into the bracket.

        Places the winner in their next-round slot, creates the next Match
        once both of its players are known, and completes the playoffs when
        the final is decided.
        """
        season_id = await self._season_id_for(Match, match_id, "Match", session)

        async def _progress(s: AsyncSession):
            match = await s.get(Match, match_id)
            if not match.match_type.is_playoff:
                raise ValidationError(
                    f"Match {match_id} is a {match.match_type.value} match",
                    "This is not a playoff match"
                )
            if not match.is_complete:
                raise InvalidStateError(
                    f"Match {match_id} has no winner",
                    "Match is not complete yet"
                )

            bracket_row = await self._require_bracket_row(s, season_id)
            bracket = BracketState.from_dict(bracket_row.bracket_data)
            advancement = advance(
                bracket,
                match.round_number,
                match.bracket_position,
                match.winner_id,
                scores=[[set_score.player1, set_score.player2] for set_score in match.sets]
            )

            next_round_name = None
            if advancement.next_match is not None:
                next_round = advancement.bracket.round(advancement.next_round_number)
                next_round_name = next_round.round_name
                if advancement.create_match:
                    new_match = self._create_match(
                        s, season_id, next_round.round_number, next_round.round_name,
                        advancement.next_match
                    )
                    await s.flush()
                    advancement.next_match.match_id = new_match.id
                    self.logger.info(
                        f"{next_round.round_name} match {new_match.id} created: "
                        f"{new_match.player1_id} vs {new_match.player2_id}"
                    )

            bracket_row.bracket_data = advancement.bracket.to_dict()
            await s.flush()

            if advancement.champion_id is not None:
                await self.complete_playoffs(season_id, advancement.champion_id, session=s)

            self.logger.info(
                f"Playoff match {match_id} (round {match.round_number}, position "
                f"{match.bracket_position}) won by {match.winner_id}"
            )
            self.db.after_commit(s, lambda: self._notify_progress(match, advancement, next_round_name))
            return advancement

        return await self._run_locked(season_id, _progress, session)

    async def _notify_progress(self, match: Match, advancement: Advancement,
                               next_round_name: Optional[str]) -> None:
        if advancement.champion_id is None:
            await self.notifier.notify(
                match.winner_id,
                NotificationType.PLAYOFF_ADVANCED,
                "You Advanced!",
                f"Congratulations! You've advanced to the {next_round_name}.",
                related_match_id=match.id
            )
        await self.notifier.notify(
            match.loser_id,
            NotificationType.PLAYOFF_ELIMINATED,
            "Playoff Match Complete",
            f"Your playoff run has ended in the {match.match_type.value}. Great effort!",
            related_match_id=match.id
        )

    async def complete_playoffs(self, season_id: int, winner_id: int,
                                session: Optional[AsyncSession] = None) -> Season:
        """Record the champion and close the season"""
        async def _complete(s: AsyncSession) -> Season:
            season = await load_season(s, season_id)
            if season.status != SeasonStatus.PLAYOFFS:
                raise InvalidStateError(
                    f"Season {season_id} is {season.status.value}",
                    "Season is not in playoffs"
                )
            now = datetime.now(timezone.utc)

            bracket_row = await self._require_bracket_row(s, season_id)
            bracket = BracketState.from_dict(bracket_row.bracket_data)
            bracket.winner_id = winner_id
            bracket.completed_at = now.isoformat()
            bracket_row.bracket_data = bracket.to_dict()

            season.status = SeasonStatus.COMPLETED
            season.playoff_winner_id = winner_id
            season.playoff_completed_at = now
            await s.flush()

            self.logger.info(f"Season {season_id} playoffs complete, champion {winner_id}")
            self.db.after_commit(s, lambda: self.notifier.notify(
                winner_id,
                NotificationType.PLAYOFF_CHAMPION,
                f"{UIConstants.TROPHY_EMOJI} CHAMPION!",
                "Congratulations! You are the season champion!"
            ))
            return season

        return await self._run_locked(season_id, _complete, session)

    async def get_bracket(self, season_id: int, session: Optional[AsyncSession] = None) -> BracketState:
        """
        The season's bracket with every scheduled slot refreshed from its Match row.

        Raises:
            NotFoundError: Playoffs have not been started
        """
        async with self._get_session_context(session) as s:
            bracket_row = await self._require_bracket_row(s, season_id)
            bracket = BracketState.from_dict(bracket_row.bracket_data)

            match_ids = [slot.match_id for round_ in bracket.rounds for slot in round_.matches
                         if slot.match_id is not None]
            matches = {}
            if match_ids:
                result = await s.execute(select(Match).where(Match.id.in_(match_ids)))
                matches = {match.id: match for match in result.scalars().all()}

        for round_ in bracket.rounds:
            for slot in round_.matches:
                match = matches.get(slot.match_id)
                if match is None:
                    continue
                slot.player1_id = match.player1_id
                slot.player2_id = match.player2_id
                slot.winner_id = match.winner_id
                slot.is_complete = match.is_complete
                if match.sets:
                    slot.scores = [[set_score.player1, set_score.player2] for set_score in match.sets]
        bracket.refresh_winner()
        return bracket

    async def reset_playoffs(self, season_id: int, admin_id: int,
                             session: Optional[AsyncSession] = None) -> Season:
        """
        Throw away the bracket and every playoff match and return the season to active.

        Ladder positions are untouched.
        """
        async def _reset(s: AsyncSession) -> Season:
            await self.admin_ops.require_admin(admin_id, session=s)
            season = await load_season(s, season_id)

            result = await s.execute(
                delete(Match).where(
                    Match.season_id == season_id,
                    Match.match_type != MatchType.CHALLENGE
                )
            )
            await s.execute(delete(PlayoffBracket).where(PlayoffBracket.season_id == season_id))

            season.status = SeasonStatus.ACTIVE
            season.playoff_format = None
            season.playoff_started_at = None
            season.playoff_winner_id = None
            season.playoff_completed_at = None
            await s.flush()

            self.logger.warning(
                f"Playoffs reset for season {season_id} by admin {admin_id} "
                f"({result.rowcount} playoff matches deleted)"
            )
            return season

        return await self._run_locked(season_id, _reset, session)
