"""
Match Completion Pipeline

Applies every effect of a finished match: cooldowns, rank swap, win/loss
counters, streaks, point and title statistics, match history, Elo and
prediction resolution.

``apply`` must run inside the same transaction as the status transition
that finished the challenge. When a challenge id is given the pipeline
first sets ``Challenge.completion_applied``; a second run for the same
challenge is detected and skipped, so retries after a partial failure
cannot double-apply effects.

``publish`` is called after the transaction commits and only touches
the leaderboard presentation.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ladder_bot.database.database import Database
from ladder_bot.database.models import Challenge
from ladder_bot.operations.base import BaseOperations
from ladder_bot.operations.history_operations import HistoryEntry, HistoryOperations
from ladder_bot.operations.player_operations import EloUpdate, PlayerOperations
from ladder_bot.operations.prediction_operations import PredictionOperations
from ladder_bot.services.configuration import LadderSettings
from ladder_bot.services.leaderboard import LeaderboardService
from ladder_bot.utils.clock import Clock, utc_now
from ladder_bot.utils.scores import MatchScore


@dataclass
class MatchOutcome:
    """Everything the pipeline needs to know about a finished match"""
    challenger_id: str
    defender_id: str
    defender_rank: int  # rank at stake, 0 for unranked matches
    winner_id: str
    loser_id: str
    score: Optional[MatchScore] = None
    is_forfeit: bool = False
    skip_cooldown: bool = False
    challenge_id: Optional[int] = None
    # Used when no score line exists (forfeits, admin-forced results)
    sets_winner: int = 2
    sets_loser: int = 0

    @property
    def winner_is_challenger(self) -> bool:
        return self.winner_id == self.challenger_id

    @property
    def is_ranked_match(self) -> bool:
        return bool(self.defender_rank)


@dataclass
class CompletionResult:
    """Pipeline output"""
    winner_id: str
    loser_id: str
    new_winner_rank: Optional[int]
    new_loser_rank: Optional[int]
    cooldown_until: Optional[datetime]
    winner_is_challenger: bool
    winner_rank_before: Optional[int] = None
    loser_rank_before: Optional[int] = None
    elo: Optional[EloUpdate] = None
    already_applied: bool = False

    @property
    def ranks_changed(self) -> bool:
        return (self.new_winner_rank != self.winner_rank_before
                or self.new_loser_rank != self.loser_rank_before)


class MatchCompletion(BaseOperations):
    """The match completion pipeline."""

    def __init__(self, db: Database, players: PlayerOperations, history: HistoryOperations,
                 predictions: PredictionOperations, leaderboard: Optional[LeaderboardService] = None,
                 clock: Clock = utc_now):
        super().__init__(db, clock)
        self.players = players
        self.history = history
        self.predictions = predictions
        self.leaderboard = leaderboard

    async def _claim(self, challenge_id: int, session: AsyncSession) -> bool:
        """Set the completion marker. False when it was already set."""
        result = await session.execute(
            update(Challenge)
            .where(Challenge.id == challenge_id, Challenge.completion_applied.is_(False))
            .values(completion_applied=True, completed_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def apply(self, outcome: MatchOutcome, settings: LadderSettings,
                    session: AsyncSession) -> CompletionResult:
        """Apply all effects of a finished match inside the caller's transaction."""
        winner = await self.players.get_or_create(outcome.winner_id, session)
        loser = await self.players.get_or_create(outcome.loser_id, session)

        if outcome.challenge_id is not None and not await self._claim(outcome.challenge_id, session):
            self.logger.warning(f"Completion for challenge {outcome.challenge_id} already applied, skipping")
            return CompletionResult(
                winner_id=winner.discord_id, loser_id=loser.discord_id,
                new_winner_rank=winner.rank, new_loser_rank=loser.rank,
                cooldown_until=None, winner_is_challenger=outcome.winner_is_challenger,
                winner_rank_before=winner.rank, loser_rank_before=loser.rank,
                already_applied=True,
            )

        now = self.clock()
        winner_before, loser_before = winner.rank, loser.rank

        cooldown_until = None
        if not outcome.skip_cooldown:
            cooldown_until = now + settings.cooldown
            winner.cooldown_until = cooldown_until
            loser.cooldown_until = cooldown_until

        if outcome.winner_is_challenger and outcome.is_ranked_match:
            await self.players.swap_ranks(winner.discord_id, loser.discord_id, session=session)

        self.players.record_win(winner)
        self.players.record_loss(loser)
        self.players.update_win_streak(winner)
        self.players.update_loss_streak(loser)

        winner_entry = HistoryEntry(
            player_id=winner.discord_id, opponent_id=loser.discord_id, won=True,
            was_challenger=outcome.winner_is_challenger, rank_before=winner_before,
            was_forfeit=outcome.is_forfeit,
        )
        loser_entry = HistoryEntry(
            player_id=loser.discord_id, opponent_id=winner.discord_id, won=False,
            was_challenger=not outcome.winner_is_challenger, rank_before=loser_before,
            was_forfeit=outcome.is_forfeit,
        )

        score = None if outcome.is_forfeit else outcome.score
        if score is not None:
            if outcome.winner_is_challenger:
                winner_points, loser_points = score.challenger_points, score.defender_points
            else:
                winner_points, loser_points = score.defender_points, score.challenger_points
            self.players.add_points(winner, winner_points, loser_points)
            self.players.add_points(loser, loser_points, winner_points)
            if score.is_perfect:
                self.players.record_perfect_match(winner)
            if score.is_comeback:
                self.players.record_comeback_win(winner)
            if outcome.winner_is_challenger:
                self.players.record_title_take(winner)
            else:
                self.players.record_title_defense(winner)

            winner_entry.sets_won = loser_entry.sets_lost = score.sets_winner
            winner_entry.sets_lost = loser_entry.sets_won = score.sets_loser
            winner_entry.points_scored = loser_entry.points_conceded = winner_points
            winner_entry.points_conceded = loser_entry.points_scored = loser_points
            winner_entry.was_perfect = score.is_perfect
            winner_entry.was_comeback = score.is_comeback
        else:
            # No sets were played: only a challenger's win counts as a title take
            if outcome.winner_is_challenger:
                self.players.record_title_take(winner)
            winner_entry.sets_won = loser_entry.sets_lost = outcome.sets_winner
            winner_entry.sets_lost = loser_entry.sets_won = outcome.sets_loser

        await session.flush()
        winner_entry.rank_after = winner.rank
        loser_entry.rank_after = loser.rank
        await self.history.record_match(winner_entry, loser_entry, outcome.challenge_id, session)

        elo = await self.players.update_elo(winner.discord_id, loser.discord_id, session=session)

        if outcome.challenge_id is not None:
            await self.predictions.resolve_predictions(outcome.challenge_id, winner.discord_id, session)

        if outcome.is_forfeit:
            detail = "forfeit"
        elif score is not None:
            detail = score.describe()
        else:
            detail = f"{outcome.sets_winner}-{outcome.sets_loser} sets"
        self.logger.info(
            f"Completed match (challenge {outcome.challenge_id}): {winner.discord_id} beat "
            f"{loser.discord_id} ({detail}); ranks {winner_before}->{winner.rank}, "
            f"{loser_before}->{loser.rank}"
        )

        return CompletionResult(
            winner_id=winner.discord_id,
            loser_id=loser.discord_id,
            new_winner_rank=winner.rank,
            new_loser_rank=loser.rank,
            cooldown_until=cooldown_until,
            winner_is_challenger=outcome.winner_is_challenger,
            winner_rank_before=winner_before,
            loser_rank_before=loser_before,
            elo=elo,
        )

    async def publish(self, result: CompletionResult):
        """Post-commit presentation: refresh now, and again when the cooldown lapses."""
        if self.leaderboard is None or result.already_applied:
            return
        await self.leaderboard.refresh()
        if result.cooldown_until is not None:
            self.leaderboard.schedule_refresh(result.cooldown_until)
