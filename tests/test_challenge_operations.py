from datetime import datetime

import pytest
from sqlalchemy import func, or_, select

from ladder.database.models import (
    Challenge, ChallengeStatus, Match, MatchType, NotificationType, Season, SeasonStatus
)
from ladder.operations.challenge_operations import ChallengeRules
from ladder.utils.exceptions import InvalidStateError, NotAuthorizedError, ValidationError

PROPOSED = datetime(2025, 6, 1, 18, 0)


class TestChallengeRules:
    @pytest.mark.parametrize("challenger, challenged, allowed", [
        (5, 4, True),
        (5, 3, True),
        (5, 2, False),
        (5, 5, False),
        (4, 5, False),
    ])
    def test_normal_range(self, challenger, challenged, allowed):
        assert ChallengeRules.can_challenge(challenger, challenged, False, 0, max_positions=2) is allowed

    def test_wildcard_reaches_anyone_while_budget_lasts(self):
        assert ChallengeRules.can_challenge(8, 1, True, 1)
        assert ChallengeRules.can_challenge(1, 8, True, 1)
        assert not ChallengeRules.can_challenge(8, 1, True, 0)
        assert not ChallengeRules.can_challenge(3, 3, True, 1)


async def challenge(challenge_ops, season, challenger, challenged, is_wildcard=False):
    return await challenge_ops.create_challenge(
        season.id, challenger.id, challenged.id, PROPOSED, "Court 1", is_wildcard=is_wildcard
    )


async def active_count(db, user_id):
    async with db.get_session() as session:
        return await session.scalar(
            select(func.count(Challenge.id)).where(
                Challenge.status.in_(ChallengeStatus.active_statuses()),
                or_(Challenge.challenger_id == user_id, Challenge.challenged_id == user_id)
            )
        )


async def test_create_within_range(season, ladder_players, challenge_ops, notifier):
    created = await challenge(challenge_ops, season, ladder_players[4], ladder_players[2])

    assert created.status == ChallengeStatus.PENDING
    assert created.is_wildcard is False
    assert notifier.types_for(ladder_players[2].id) == [NotificationType.CHALLENGE_RECEIVED]


async def test_out_of_range_needs_wildcard(season, ladder_players, challenge_ops):
    with pytest.raises(ValidationError) as exc:
        await challenge(challenge_ops, season, ladder_players[5], ladder_players[2])
    assert "use a wildcard" in exc.value.user_message


async def test_cannot_challenge_down_or_self(season, ladder_players, challenge_ops):
    with pytest.raises(ValidationError):
        await challenge(challenge_ops, season, ladder_players[2], ladder_players[4])
    with pytest.raises(ValidationError):
        await challenge(challenge_ops, season, ladder_players[2], ladder_players[2])


async def test_player_not_on_ladder(season, ladder_players, challenge_ops, make_players):
    outsider, = await make_players(1, prefix="outsider")
    with pytest.raises(ValidationError) as exc:
        await challenge(challenge_ops, season, outsider, ladder_players[0])
    assert exc.value.user_message == "You must be on the ladder to create a challenge"


async def test_wildcard_budget(season, ladder_players, challenge_ops):
    assert await challenge_ops.get_wildcards_remaining(season.id, ladder_players[7].id) == (1, 1)

    first = await challenge(challenge_ops, season, ladder_players[7], ladder_players[0], is_wildcard=True)
    assert first.is_wildcard
    assert await challenge_ops.get_wildcards_remaining(season.id, ladder_players[7].id) == (0, 1)

    await challenge_ops.withdraw_challenge(first.id, ladder_players[7].id)
    with pytest.raises(ValidationError) as exc:
        await challenge(challenge_ops, season, ladder_players[7], ladder_players[1], is_wildcard=True)
    assert exc.value.user_message == "You have no wildcards remaining this season"


async def test_wildcard_bookkeeping_failure_keeps_challenge(db, season, ladder_players, challenge_ops,
                                                            block_inserts, notifier):
    await block_inserts("wildcard_usage")
    challenger, target = ladder_players[7], ladder_players[0]

    created = await challenge(challenge_ops, season, challenger, target, is_wildcard=True)

    async with db.get_session() as session:
        stored = await session.get(Challenge, created.id)
    assert stored.status == ChallengeStatus.PENDING
    assert stored.is_wildcard
    # The unrecorded wildcard is not charged
    assert await challenge_ops.get_wildcards_remaining(season.id, challenger.id) == (1, 1)
    assert notifier.types_for(target.id) == [NotificationType.CHALLENGE_RECEIVED]


async def test_one_active_challenge_per_player(db, season, ladder_players, challenge_ops):
    p3, p4, p5, p6 = ladder_players[2], ladder_players[3], ladder_players[4], ladder_players[5]

    first = await challenge(challenge_ops, season, p5, p4)

    with pytest.raises(ValidationError):
        await challenge(challenge_ops, season, p5, p3)    # challenger busy
    with pytest.raises(ValidationError):
        await challenge(challenge_ops, season, p6, p4)    # target busy

    await challenge_ops.accept_challenge(first.id, p4.id)
    with pytest.raises(ValidationError):
        await challenge(challenge_ops, season, p6, p5)

    await challenge_ops.withdraw_challenge(first.id, p5.id)
    await challenge(challenge_ops, season, p6, p4)

    for user in ladder_players:
        assert await active_count(db, user.id) <= 1


async def test_accept_creates_match(db, season, ladder_players, challenge_ops, notifier):
    challenger, challenged = ladder_players[4], ladder_players[3]
    created = await challenge(challenge_ops, season, challenger, challenged)

    result = await challenge_ops.accept_challenge(created.id, challenged.id, accepted_location="Court 3")

    assert result.challenge.status == ChallengeStatus.ACCEPTED
    assert result.challenge.accepted_date == PROPOSED
    assert result.challenge.accepted_location == "Court 3"
    assert result.match.match_type == MatchType.CHALLENGE
    assert (result.match.player1_id, result.match.player2_id) == (challenger.id, challenged.id)
    assert result.match.challenge_id == created.id
    assert NotificationType.CHALLENGE_ACCEPTED in notifier.types_for(challenger.id)

    async with db.get_session() as session:
        assert await session.scalar(select(func.count(Match.id))) == 1


async def test_only_challenged_player_accepts_or_rejects(season, ladder_players, challenge_ops):
    created = await challenge(challenge_ops, season, ladder_players[4], ladder_players[3])

    with pytest.raises(NotAuthorizedError):
        await challenge_ops.accept_challenge(created.id, ladder_players[4].id)
    with pytest.raises(NotAuthorizedError):
        await challenge_ops.reject_challenge(created.id, ladder_players[0].id)


async def test_reject_cancels(season, ladder_players, challenge_ops, notifier):
    created = await challenge(challenge_ops, season, ladder_players[4], ladder_players[3])
    rejected = await challenge_ops.reject_challenge(created.id, ladder_players[3].id)

    assert rejected.status == ChallengeStatus.CANCELLED
    assert NotificationType.CHALLENGE_REJECTED in notifier.types_for(ladder_players[4].id)

    with pytest.raises(InvalidStateError):
        await challenge_ops.accept_challenge(created.id, ladder_players[3].id)


async def test_withdraw_rules(season, ladder_players, challenge_ops):
    created = await challenge(challenge_ops, season, ladder_players[4], ladder_players[3])

    with pytest.raises(NotAuthorizedError):
        await challenge_ops.withdraw_challenge(created.id, ladder_players[3].id)

    withdrawn = await challenge_ops.withdraw_challenge(created.id, ladder_players[4].id)
    assert withdrawn.status == ChallengeStatus.WITHDRAWN

    with pytest.raises(InvalidStateError):
        await challenge_ops.withdraw_challenge(created.id, ladder_players[4].id)


async def test_no_challenges_during_playoffs(db, season, ladder_players, challenge_ops):
    async with db.transaction() as session:
        stored = await session.get(Season, season.id)
        stored.status = SeasonStatus.PLAYOFFS

    with pytest.raises(InvalidStateError):
        await challenge(challenge_ops, season, ladder_players[4], ladder_players[3])


async def test_challenge_queries(season, ladder_players, challenge_ops):
    challenger = ladder_players[4]
    first = await challenge(challenge_ops, season, challenger, ladder_players[3])
    await challenge_ops.reject_challenge(first.id, ladder_players[3].id)
    second = await challenge(challenge_ops, season, challenger, ladder_players[2])

    history = await challenge_ops.get_challenges_for_user(season.id, challenger.id)
    assert [c.id for c in history] == [second.id, first.id]

    active = await challenge_ops.get_active_challenge(season.id, challenger.id)
    assert active.id == second.id

