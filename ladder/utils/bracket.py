"""
Knockout bracket state machine for the 2/4/8 player playoff formats.

The bracket is plain data (dataclasses that round-trip through the JSON
bracket_data column). Advancement is a pure function: it takes a bracket and a
completed match and returns a new bracket plus what the caller has to persist,
so the whole tree can be tested without a database.
"""

import copy
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ladder.constants import PlayoffConstants
from ladder.utils.exceptions import InvalidStateError, ValidationError

PLAYER1 = 'player1'
PLAYER2 = 'player2'


@dataclass
class BracketMatch:
    """One slot in the bracket; players stay None until their feeder match is decided"""
    position: int
    player1_seed: Optional[int] = None
    player2_seed: Optional[int] = None
    player1_id: Optional[int] = None
    player2_id: Optional[int] = None
    match_id: Optional[int] = None
    winner_id: Optional[int] = None
    is_complete: bool = False
    scores: Optional[List[List[int]]] = None

    @property
    def is_ready(self) -> bool:
        """Both players are known"""
        return self.player1_id is not None and self.player2_id is not None

    def place(self, slot: str, player_id: int, seed: Optional[int]) -> None:
        if slot == PLAYER1:
            self.player1_id, self.player1_seed = player_id, seed
        else:
            self.player2_id, self.player2_seed = player_id, seed

    def occupant(self, slot: str) -> Optional[int]:
        return self.player1_id if slot == PLAYER1 else self.player2_id


@dataclass
class BracketRound:
    round_number: int
    round_name: str
    matches: List[BracketMatch] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return bool(self.matches) and all(match.is_complete for match in self.matches)

    def match_at(self, bracket_position: int) -> BracketMatch:
        for match in self.matches:
            if match.position == bracket_position:
                return match
        raise ValidationError(
            f"Round {self.round_number} has no bracket position {bracket_position}"
        )


@dataclass
class BracketState:
    format: str
    rounds: List[BracketRound]
    winner_id: Optional[int] = None
    completed_at: Optional[str] = None

    @property
    def final_round(self) -> BracketRound:
        return self.rounds[-1]

    @property
    def is_complete(self) -> bool:
        return self.winner_id is not None

    def round(self, round_number: int) -> BracketRound:
        if not 1 <= round_number <= len(self.rounds):
            raise ValidationError(f"Bracket has no round {round_number}")
        return self.rounds[round_number - 1]

    def refresh_winner(self) -> None:
        """Tournament winner is set only once the final's single match is complete"""
        final_match = self.final_round.matches[0]
        if self.final_round.is_complete and final_match.winner_id is not None:
            self.winner_id = final_match.winner_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'format': self.format,
            'rounds': [
                {
                    'round_number': round_.round_number,
                    'round_name': round_.round_name,
                    'matches': [asdict(match) for match in round_.matches],
                    'is_complete': round_.is_complete,
                }
                for round_ in self.rounds
            ],
            'winner_id': self.winner_id,
            'completed_at': self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BracketState':
        rounds = [
            BracketRound(
                round_number=round_data['round_number'],
                round_name=round_data['round_name'],
                matches=[BracketMatch(**match_data) for match_data in round_data['matches']],
            )
            for round_data in data['rounds']
        ]
        return cls(
            format=data['format'],
            rounds=rounds,
            winner_id=data.get('winner_id'),
            completed_at=data.get('completed_at'),
        )


@dataclass(frozen=True)
class Advancement:
    """Outcome of feeding one completed match into the bracket"""
    bracket: BracketState
    champion_id: Optional[int] = None
    next_round_number: Optional[int] = None
    next_position: Optional[int] = None
    slot: Optional[str] = None
    create_match: bool = False

    @property
    def next_match(self) -> Optional[BracketMatch]:
        if self.next_round_number is None:
            return None
        return self.bracket.round(self.next_round_number).match_at(self.next_position)


def _format_key(playoff_format) -> str:
    key = getattr(playoff_format, 'value', playoff_format)
    if key not in PlayoffConstants.PLAYERS_REQUIRED:
        raise ValidationError(
            f"Unknown playoff format {key!r}",
            "Playoff format must be final, semis or quarters"
        )
    return key


def players_required(playoff_format) -> int:
    return PlayoffConstants.PLAYERS_REQUIRED[_format_key(playoff_format)]


def match_type_for_round(round_name: str) -> str:
    """MatchType value for matches played in a round"""
    lowered = round_name.lower()
    if 'quarter' in lowered:
        return 'quarterfinal'
    if 'semi' in lowered:
        return 'semifinal'
    return 'final'


def generate_bracket(playoff_format, seeded_player_ids: Sequence[int]) -> BracketState:
    """
    Build the bracket from players ordered by seed (ladder position 1 first).

    Round 1 is fully populated with the fixed seed pairings; later rounds hold
    empty slots that are filled as matches complete.
    """
    key = _format_key(playoff_format)
    needed = PlayoffConstants.PLAYERS_REQUIRED[key]
    if len(seeded_player_ids) < needed:
        raise ValidationError(
            f"Format {key} needs {needed} players, got {len(seeded_player_ids)}",
            f"Not enough players on ladder. Need {needed} but only {len(seeded_player_ids)} available."
        )

    round_names = PlayoffConstants.ROUND_NAMES[key]
    pairings = PlayoffConstants.FIRST_ROUND_SEEDING[key]

    first_round = BracketRound(
        round_number=1,
        round_name=round_names[0],
        matches=[
            BracketMatch(
                position=index,
                player1_seed=seed1,
                player2_seed=seed2,
                player1_id=seeded_player_ids[seed1 - 1],
                player2_id=seeded_player_ids[seed2 - 1],
            )
            for index, (seed1, seed2) in enumerate(pairings, start=1)
        ],
    )

    rounds = [first_round]
    match_count = len(pairings)
    for round_number, round_name in enumerate(round_names[1:], start=2):
        match_count //= 2
        rounds.append(BracketRound(
            round_number=round_number,
            round_name=round_name,
            matches=[BracketMatch(position=index) for index in range(1, match_count + 1)],
        ))

    return BracketState(format=key, rounds=rounds)


def next_slot(playoff_format, round_number: int, bracket_position: int) -> Optional[Tuple[int, str]]:
    """
    Where the winner of (round_number, bracket_position) plays next.

    Returns (next bracket position, 'player1' | 'player2'), or None when the
    match was the final.
    """
    key = _format_key(playoff_format)
    if round_number >= len(PlayoffConstants.ROUND_NAMES[key]):
        return None

    if key == 'semis':
        # SF1 -> final player1, SF2 -> final player2
        return 1, PLAYER1 if bracket_position == 1 else PLAYER2

    if key == 'quarters':
        if round_number == 1:
            # QF1/QF2 -> SF1, QF3/QF4 -> SF2
            next_position = 1 if bracket_position <= 2 else 2
            return next_position, PLAYER1 if bracket_position % 2 == 1 else PLAYER2
        return 1, PLAYER1 if bracket_position == 1 else PLAYER2

    return None


def advance(
    bracket: BracketState,
    round_number: int,
    bracket_position: int,
    winner_id: int,
    scores: Optional[List[List[int]]] = None,
) -> Advancement:
    """
    Record a completed match and move its winner into the next round.

    The input bracket is left untouched.

    Raises:
        ValidationError: unknown round/position, or winner not in the match
        InvalidStateError: the winner's next match has already been decided
    """
    updated = copy.deepcopy(bracket)
    current = updated.round(round_number).match_at(bracket_position)

    if winner_id not in (current.player1_id, current.player2_id):
        raise ValidationError(
            f"User {winner_id} did not play round {round_number} position {bracket_position}"
        )
    winner_seed = current.player1_seed if winner_id == current.player1_id else current.player2_seed

    current.winner_id = winner_id
    current.is_complete = True
    if scores is not None:
        current.scores = scores

    target = next_slot(updated.format, round_number, bracket_position)
    if target is None:
        updated.winner_id = winner_id
        return Advancement(bracket=updated, champion_id=winner_id)

    next_position, slot = target
    next_match = updated.round(round_number + 1).match_at(next_position)
    if next_match.is_complete:
        raise InvalidStateError(
            f"Round {round_number + 1} position {next_position} is already decided",
            "The next round match has already been played"
        )
    previous_occupant = next_match.occupant(slot)
    if next_match.match_id is not None and previous_occupant not in (None, winner_id):
        raise InvalidStateError(
            f"Round {round_number + 1} position {next_position} already scheduled with user {previous_occupant}",
            "The next round match has already been scheduled"
        )
    next_match.place(slot, winner_id, winner_seed)

    return Advancement(
        bracket=updated,
        next_round_number=round_number + 1,
        next_position=next_position,
        slot=slot,
        create_match=next_match.is_ready and next_match.match_id is None,
    )
