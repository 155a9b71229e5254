"""Set score parsing and best-of-three validation."""
import pytest

from ladder_bot.utils.ladder_exceptions import LadderValidationError
from ladder_bot.utils.scores import (
    SetScore, match_score_from_json, parse_match, parse_set, set_winner, validate_sets
)


def test_straight_sets_win_for_challenger():
    score = parse_match(["10-6", "10-8"])
    assert score.challenger_won
    assert (score.challenger_sets, score.defender_sets) == (2, 0)
    assert score.is_perfect
    assert not score.is_comeback
    assert score.describe() == "10-6, 10-8"


def test_defender_input_is_flipped_into_challenger_order():
    score = parse_match(["10-6", "10-8"], submitter_is_challenger=False)
    assert not score.challenger_won
    assert score.sets[0] == SetScore(challenger=6, defender=10)
    assert score.defender_points == 20


def test_comeback_after_dropping_first_set():
    score = parse_match(["6-10", "10-4", "10-8"])
    assert score.challenger_won
    assert score.is_comeback
    assert not score.is_perfect
    assert (score.sets_winner, score.sets_loser) == (2, 1)
    assert (score.challenger_points, score.defender_points) == (26, 22)


def test_blank_third_set_is_ignored():
    score = parse_match(["10-2", "10-3", "   "])
    assert len(score.sets) == 2


def test_parse_set_accepts_en_dash_and_spaces():
    assert parse_set(" 12 – 10 ") == (12, 10)


@pytest.mark.parametrize("text", ["", "ten-six", "10:6", "100-6", "10-"])
def test_parse_set_rejects_garbage(text):
    with pytest.raises(LadderValidationError):
        parse_set(text)


def test_set_needs_ten_points_and_a_lead():
    assert set_winner(10, 8) == 0
    assert set_winner(9, 11) == 1
    with pytest.raises(LadderValidationError):
        set_winner(9, 7)
    with pytest.raises(LadderValidationError):
        set_winner(10, 10)


def test_split_sets_need_a_decider():
    with pytest.raises(LadderValidationError) as exc:
        parse_match(["10-6", "6-10"])
    assert "Set 3" in exc.value.user_message


def test_single_set_is_rejected():
    with pytest.raises(LadderValidationError):
        parse_match(["10-6", None, ""])


def test_more_than_three_sets_is_rejected():
    with pytest.raises(LadderValidationError):
        validate_sets([(10, 6), (6, 10), (10, 6), (10, 4)])


def test_negative_points_are_rejected():
    with pytest.raises(LadderValidationError):
        validate_sets([(10, -1), (10, 2)])


def test_stored_line_rebuilds_the_same_winner():
    stored = parse_match(["4-10", "10-7", "8-10"]).to_json()
    assert stored == [[4, 10], [10, 7], [8, 10]]
    assert not match_score_from_json(stored).challenger_won
