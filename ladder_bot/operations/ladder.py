"""
Wiring for the ladder operations.

Builds every operations class against one Database, clock and
leaderboard service so the bot and the tests share the same graph.
"""

from dataclasses import dataclass
from typing import Optional

from ladder_bot.database.database import Database
from ladder_bot.operations.admin_operations import AdminOperations
from ladder_bot.operations.challenge_operations import ChallengeOperations
from ladder_bot.operations.correction_operations import CorrectionOperations
from ladder_bot.operations.history_operations import HistoryOperations
from ladder_bot.operations.match_completion import MatchCompletion
from ladder_bot.operations.player_operations import PlayerOperations
from ladder_bot.operations.prediction_operations import PredictionOperations
from ladder_bot.operations.result_operations import ResultOperations
from ladder_bot.services.leaderboard import LeaderboardRenderer, LeaderboardService
from ladder_bot.utils.clock import Clock, utc_now


@dataclass
class LadderOperations:
    db: Database
    players: PlayerOperations
    history: HistoryOperations
    predictions: PredictionOperations
    completion: MatchCompletion
    challenges: ChallengeOperations
    results: ResultOperations
    corrections: CorrectionOperations
    admin: AdminOperations
    leaderboard: LeaderboardService

    @classmethod
    def build(cls, db: Database, renderer: Optional[LeaderboardRenderer] = None,
              clock: Clock = utc_now) -> 'LadderOperations':
        players = PlayerOperations(db, clock)
        history = HistoryOperations(db, clock)
        predictions = PredictionOperations(db, clock)
        leaderboard = LeaderboardService(players, renderer, clock)
        completion = MatchCompletion(db, players, history, predictions, leaderboard, clock)
        challenges = ChallengeOperations(db, players, completion, clock)
        return cls(
            db=db,
            players=players,
            history=history,
            predictions=predictions,
            completion=completion,
            challenges=challenges,
            results=ResultOperations(db, challenges, clock),
            corrections=CorrectionOperations(db, clock),
            admin=AdminOperations(db, players, challenges, completion, leaderboard, clock),
            leaderboard=leaderboard,
        )
