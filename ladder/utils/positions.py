"""
Pure ladder position arithmetic.

Every function takes the current active arrangement as a mapping of
user_id -> position and returns a complete new mapping. Nothing here touches
the database: LadderOperations computes the final state with these helpers and
then applies it in a single transaction.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from ladder.constants import LadderConstants
from ladder.utils.exceptions import ConsistencyError, NotFoundError, ValidationError

Positions = Dict[int, int]


def ordered_user_ids(positions: Positions) -> List[int]:
    """User ids from the top of the ladder down"""
    return [user_id for user_id, _ in sorted(positions.items(), key=lambda item: item[1])]


def is_dense(positions: Positions) -> bool:
    """True when the positions are exactly 1..N with no gaps or duplicates"""
    return sorted(positions.values()) == list(range(1, len(positions) + 1))


def validate_dense(positions: Positions) -> None:
    if not is_dense(positions):
        raise ConsistencyError(
            f"Ladder positions are not a dense 1..{len(positions)} sequence: {sorted(positions.values())}"
        )


def _require(positions: Positions, user_id: int) -> int:
    if user_id not in positions:
        raise NotFoundError("Ladder entry", user_id)
    return positions[user_id]


def clamp_insert_position(desired_position: int, player_count: int) -> int:
    """Clamp an insert target to 1..N+1; anything below 1 is rejected"""
    if desired_position < LadderConstants.TOP_POSITION:
        raise ValidationError(
            f"Invalid ladder position {desired_position}",
            "Position must be 1 or greater"
        )
    return min(desired_position, player_count + 1)


def insert_player(positions: Positions, user_id: int, desired_position: int) -> Positions:
    """
    Insert a new player at desired_position.

    Everyone at or below that position moves one slot further from the top.
    """
    if user_id in positions:
        raise ValidationError(
            f"User {user_id} already holds position {positions[user_id]}",
            "Player is already in the ladder"
        )
    target = clamp_insert_position(desired_position, len(positions))

    updated = {
        other_id: position + 1 if position >= target else position
        for other_id, position in positions.items()
    }
    updated[user_id] = target
    return updated


def remove_player(positions: Positions, user_id: int) -> Positions:
    """Drop a player and close the gap by moving everyone below them up one slot"""
    removed_position = _require(positions, user_id)
    return {
        other_id: position - 1 if position > removed_position else position
        for other_id, position in positions.items()
        if other_id != user_id
    }


def promote_player(positions: Positions, winner_id: int, loser_id: int) -> Positions:
    """
    Move the winner into the loser's slot.

    The loser and everyone between them and the winner move one slot down.
    No-op when the winner is already above (or level with) the loser.
    """
    winner_position = _require(positions, winner_id)
    loser_position = _require(positions, loser_id)
    if winner_position <= loser_position:
        return dict(positions)

    updated = {}
    for other_id, position in positions.items():
        if other_id == winner_id:
            updated[other_id] = loser_position
        elif loser_position <= position < winner_position:
            updated[other_id] = position + 1
        else:
            updated[other_id] = position
    return updated


def rollback_promotion(positions: Positions, promoted_id: int, demoted_id: int,
                       original_position: Optional[int] = None) -> Positions:
    """
    Inverse of promote_player.

    The promoted player drops back to original_position (their slot before
    the promotion) and everyone in between moves up one. Without an original
    position they drop to the demoted player's current slot, which is only
    the inverse when the two were adjacent. Either way it is only an exact
    inverse when nothing else changed the ladder in between. No-op when the
    promoted player is not above the demoted one.
    """
    promoted_position = _require(positions, promoted_id)
    demoted_position = _require(positions, demoted_id)
    if promoted_position >= demoted_position:
        return dict(positions)

    target = demoted_position if original_position is None else original_position
    target = min(max(target, demoted_position), len(positions))

    updated = {}
    for other_id, position in positions.items():
        if other_id == promoted_id:
            updated[other_id] = target
        elif promoted_position < position <= target:
            updated[other_id] = position - 1
        else:
            updated[other_id] = position
    return updated


def move_player(positions: Positions, user_id: int, new_position: int) -> Positions:
    """Admin adjustment: move a player to new_position (clamped to 1..N)"""
    current_position = _require(positions, user_id)
    if new_position < LadderConstants.TOP_POSITION:
        raise ValidationError(
            f"Invalid ladder position {new_position}",
            "Position must be 1 or greater"
        )
    target = min(new_position, len(positions))
    if target == current_position:
        return dict(positions)

    updated = {}
    for other_id, position in positions.items():
        if other_id == user_id:
            updated[other_id] = target
        elif target < current_position and target <= position < current_position:
            updated[other_id] = position + 1
        elif target > current_position and current_position < position <= target:
            updated[other_id] = position - 1
        else:
            updated[other_id] = position
    return updated


def first_open_position(occupied: Iterable[int]) -> int:
    """First gap in the positive sequence, or one past the end when there is none"""
    taken = sorted(p for p in set(occupied) if p >= LadderConstants.TOP_POSITION)
    for expected, position in enumerate(taken, start=LadderConstants.TOP_POSITION):
        if position != expected:
            return expected
    return len(taken) + 1


def changed_entries(before: Positions, after: Positions) -> Dict[int, Tuple[int, int]]:
    """user_id -> (old, new) for every player present in both whose position changed"""
    return {
        user_id: (before[user_id], new_position)
        for user_id, new_position in after.items()
        if user_id in before and before[user_id] != new_position
    }
