"""Bracket state machine without a database"""

import pytest

from ladder.utils.bracket import (
    PLAYER1, PLAYER2, BracketState, advance, generate_bracket, match_type_for_round,
    next_slot, players_required
)
from ladder.utils.exceptions import InvalidStateError, ValidationError

SEEDS = [101, 102, 103, 104, 105, 106, 107, 108]


def seed_pairs(bracket):
    return [(m.player1_seed, m.player2_seed) for m in bracket.rounds[0].matches]


def play(bracket, round_number, position, winner_slot=PLAYER1):
    match = bracket.round(round_number).match_at(position)
    winner = match.player1_id if winner_slot == PLAYER1 else match.player2_id
    return advance(bracket, round_number, position, winner)


class TestGenerate:
    def test_quarters_seeding(self):
        bracket = generate_bracket('quarters', SEEDS)
        assert seed_pairs(bracket) == [(1, 8), (4, 5), (2, 7), (3, 6)]
        assert [(m.player1_id, m.player2_id) for m in bracket.rounds[0].matches] == [
            (101, 108), (104, 105), (102, 107), (103, 106)
        ]
        assert [r.round_name for r in bracket.rounds] == ['Quarter Finals', 'Semi Finals', 'Final']
        assert len(bracket.rounds[1].matches) == 2
        assert len(bracket.rounds[2].matches) == 1
        assert bracket.rounds[1].matches[0].player1_id is None

    def test_semis_and_final_seeding(self):
        assert seed_pairs(generate_bracket('semis', SEEDS[:4])) == [(1, 4), (2, 3)]
        assert seed_pairs(generate_bracket('final', SEEDS[:2])) == [(1, 2)]

    def test_only_top_players_are_seeded(self):
        bracket = generate_bracket('semis', SEEDS)
        players = {p for m in bracket.rounds[0].matches for p in (m.player1_id, m.player2_id)}
        assert players == {101, 102, 103, 104}

    def test_not_enough_players(self):
        with pytest.raises(ValidationError) as exc:
            generate_bracket('quarters', SEEDS[:5])
        assert exc.value.user_message == "Not enough players on ladder. Need 8 but only 5 available."

    def test_unknown_format(self):
        with pytest.raises(ValidationError):
            players_required('round_robin')


class TestNextSlot:
    def test_quarters_feed_semis(self):
        assert next_slot('quarters', 1, 1) == (1, PLAYER1)
        assert next_slot('quarters', 1, 2) == (1, PLAYER2)
        assert next_slot('quarters', 1, 3) == (2, PLAYER1)
        assert next_slot('quarters', 1, 4) == (2, PLAYER2)
        assert next_slot('quarters', 2, 2) == (1, PLAYER2)

    def test_final_is_last(self):
        assert next_slot('semis', 2, 1) is None
        assert next_slot('final', 1, 1) is None

    def test_round_match_types(self):
        assert match_type_for_round('Quarter Finals') == 'quarterfinal'
        assert match_type_for_round('Semi Finals') == 'semifinal'
        assert match_type_for_round('Final') == 'final'


class TestAdvance:
    def test_next_match_created_only_when_both_feeders_done(self):
        bracket = generate_bracket('quarters', SEEDS)

        first = play(bracket, 1, 1)
        assert first.next_round_number == 2
        assert first.slot == PLAYER1
        assert first.create_match is False
        assert first.bracket.round(2).match_at(1).player1_id == 101
        assert first.bracket.round(2).match_at(1).player1_seed == 1
        # input untouched
        assert bracket.round(1).match_at(1).is_complete is False

        second = play(first.bracket, 1, 2, PLAYER2)
        assert second.create_match is True
        assert (second.next_match.player1_id, second.next_match.player2_id) == (101, 105)
        assert (second.next_match.player1_seed, second.next_match.player2_seed) == (1, 5)

    def test_full_quarters_run_to_champion(self):
        bracket = generate_bracket('quarters', SEEDS)
        for position in range(1, 5):
            bracket = play(bracket, 1, position).bracket
        assert bracket.round(1).is_complete
        assert not bracket.round(2).is_complete

        bracket = play(bracket, 2, 1).bracket
        result = play(bracket, 2, 2, PLAYER2)
        assert result.create_match
        assert (result.next_match.player1_id, result.next_match.player2_id) == (101, 103)

        final = play(result.bracket, 3, 1, PLAYER2)
        assert final.champion_id == 103
        assert final.next_match is None
        assert final.bracket.winner_id == 103
        assert final.bracket.is_complete

    def test_winner_must_have_played(self):
        bracket = generate_bracket('final', SEEDS[:2])
        with pytest.raises(ValidationError):
            advance(bracket, 1, 1, 999)

    def test_cannot_change_a_decided_next_round(self):
        bracket = generate_bracket('semis', SEEDS[:4])
        bracket = play(bracket, 1, 1).bracket
        bracket = play(bracket, 1, 2).bracket
        bracket = play(bracket, 2, 1).bracket
        with pytest.raises(InvalidStateError):
            advance(bracket, 1, 1, 104)

    def test_round_trip_through_json_document(self):
        bracket = play(generate_bracket('semis', SEEDS[:4]), 1, 1).bracket
        data = bracket.to_dict()
        assert data['rounds'][0]['is_complete'] is False
        assert data['rounds'][0]['matches'][0]['winner_id'] == 101
        assert BracketState.from_dict(data) == bracket
