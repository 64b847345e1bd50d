"""
Set score arithmetic for best-of-three singles matches.

Any pair of non-negative integers where one side is larger counts as a set win;
tennis scoring legality (6 games by 2, tiebreak ranges) is deliberately not enforced.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, List, Tuple

from ladder.utils.exceptions import ValidationError

SETS_TO_WIN = 2
MAX_SETS = 3


class WinnerSide(Enum):
    PLAYER1 = "player1"
    PLAYER2 = "player2"


@dataclass(frozen=True)
class SetScore:
    """Games won by each side in one set"""
    player1: int
    player2: int

    @property
    def winner(self) -> WinnerSide:
        return WinnerSide.PLAYER1 if self.player1 > self.player2 else WinnerSide.PLAYER2


def calculate_winner(sets: Sequence[SetScore]) -> Optional[WinnerSide]:
    """
    Count sets won per side and return the side that reached two.

    Returns None when neither side has two sets (e.g. 1-1 with no third set),
    which callers must treat as an invalid submission.
    """
    player1_sets = 0
    player2_sets = 0
    for set_score in sets[:MAX_SETS]:
        if set_score.winner == WinnerSide.PLAYER1:
            player1_sets += 1
        else:
            player2_sets += 1

    if player1_sets >= SETS_TO_WIN:
        return WinnerSide.PLAYER1
    if player2_sets >= SETS_TO_WIN:
        return WinnerSide.PLAYER2
    return None


def parse_sets(raw_sets: Sequence[Tuple[int, int]]) -> List[SetScore]:
    """
    Validate raw (player1, player2) pairs and convert them to SetScore values.

    Raises:
        ValidationError: wrong set count, negative or non-integer games, tied set,
            or a third set after one side already won the first two
    """
    if len(raw_sets) < SETS_TO_WIN or len(raw_sets) > MAX_SETS:
        raise ValidationError(
            f"Expected 2 or 3 sets, got {len(raw_sets)}",
            "Enter scores for two sets, plus a third set if the first two were split"
        )

    sets = []
    for index, pair in enumerate(raw_sets, start=1):
        if len(pair) != 2:
            raise ValidationError(f"Set {index} must have exactly two scores")
        player1, player2 = pair
        if not isinstance(player1, int) or not isinstance(player2, int) or isinstance(player1, bool) or isinstance(player2, bool):
            raise ValidationError(f"Set {index} scores must be whole numbers")
        if player1 < 0 or player2 < 0:
            raise ValidationError(f"Set {index} scores cannot be negative")
        if player1 == player2:
            raise ValidationError(
                f"Set {index} is tied at {player1}-{player2}",
                f"Set {index} cannot be tied - one player must win the set"
            )
        sets.append(SetScore(player1, player2))

    if len(sets) == MAX_SETS and sets[0].winner == sets[1].winner:
        raise ValidationError(
            "Third set recorded after the match was already decided",
            "A third set is only played when the first two sets are split"
        )

    return sets


def format_score(sets: Sequence[SetScore]) -> str:
    """Human-readable score line, e.g. '6-4, 3-6, 10-8'"""
    return ", ".join(f"{s.player1}-{s.player2}" for s in sets)
