import math
from typing import Tuple

from ladder_bot.config import Config


class EloCalculator:
    """Elo rating math for ladder matches. Ratings are tracked, never used for pairing."""

    @staticmethod
    def calculate_expected_score(rating_a: int, rating_b: int) -> float:
        """
        Calculate the expected score for player A against player B

        Args:
            rating_a: Player A's current Elo rating
            rating_b: Player B's current Elo rating

        Returns:
            Expected score (0.0 to 1.0) for player A
        """
        return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))

    @staticmethod
    def calculate_new_rating(current_rating: int, opponent_rating: int, actual_score: float,
                             k_factor: int = Config.ELO_K_FACTOR,
                             floor: int = Config.ELO_FLOOR) -> int:
        """
        Calculate a player's rating after one match, rounded and floored

        Args:
            current_rating: Player's rating before the match
            opponent_rating: Opponent's rating before the match
            actual_score: 1.0 for a win, 0.0 for a loss
        """
        expected_score = EloCalculator.calculate_expected_score(current_rating, opponent_rating)
        new_rating = round(current_rating + k_factor * (actual_score - expected_score))
        return max(floor, new_rating)

    @staticmethod
    def calculate_match_ratings(winner_rating: int, loser_rating: int,
                                k_factor: int = Config.ELO_K_FACTOR,
                                floor: int = Config.ELO_FLOOR) -> Tuple[int, int]:
        """Return (new_winner_rating, new_loser_rating) using pre-match ratings for both sides"""
        return (
            EloCalculator.calculate_new_rating(winner_rating, loser_rating, 1.0, k_factor, floor),
            EloCalculator.calculate_new_rating(loser_rating, winner_rating, 0.0, k_factor, floor),
        )
