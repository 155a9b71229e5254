"""Elo rating math."""
import pytest

from ladder_bot.utils.elo import EloCalculator


def test_even_ratings_expect_half():
    assert EloCalculator.calculate_expected_score(1200, 1200) == pytest.approx(0.5)


def test_even_match_moves_sixteen_points():
    assert EloCalculator.calculate_match_ratings(1200, 1200) == (1216, 1184)


def test_favourite_gains_less():
    winner, loser = EloCalculator.calculate_match_ratings(1400, 1200)
    assert (winner, loser) == (1408, 1192)


def test_underdog_gains_more():
    winner, loser = EloCalculator.calculate_match_ratings(1200, 1400)
    assert (winner, loser) == (1224, 1376)


def test_rating_is_floored():
    assert EloCalculator.calculate_new_rating(110, 110, 0.0) == 100
